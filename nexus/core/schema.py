"""
Vault data model.
Records, provider configurations and personas as they are stored and exchanged.
"""

import json
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class OriginKind(str, Enum):
    USER_INPUT = "USER_INPUT"
    SYSTEM_INFERENCE = "SYSTEM_INFERENCE"
    IMPORTED_FILE = "IMPORTED_FILE"
    EMAIL_IMPORT = "EMAIL_IMPORT"


class VaultState(str, Enum):
    LOCKED = "LOCKED"
    UNLOCKED = "UNLOCKED"
    DURESS = "DURESS"


class UnlockResult(str, Enum):
    SUCCESS = "SUCCESS"
    DURESS = "DURESS"
    INVALID = "INVALID"


class StorageMode(str, Enum):
    AUTO_SYNC_ALL = "AUTO_SYNC_ALL"
    SELECTIVE_MANUAL = "SELECTIVE_MANUAL"


class ProviderKind(str, Enum):
    GOOGLE = "GOOGLE"
    OPENAI = "OPENAI"
    ANTHROPIC = "ANTHROPIC"
    GROQ = "GROQ"
    MISTRAL = "MISTRAL"
    XAI = "XAI"
    CUSTOM_LOCAL = "CUSTOM_LOCAL"


def _unique_tags(tags: List[str]) -> List[str]:
    seen = set()
    ordered = []
    for tag in tags:
        if tag not in seen:
            seen.add(tag)
            ordered.append(tag)
    return ordered


@dataclass
class MemoryRecord:
    """One stored, embedded chunk of text."""
    id: str
    content: str
    embedding: List[float]
    tags: List[str]
    origin: OriginKind
    is_user_authored: bool
    created_at: datetime
    last_accessed_at: datetime
    is_synced: bool = False
    integrity_tag: str = ""

    def __post_init__(self):
        self.tags = _unique_tags(list(self.tags))
        self.origin = OriginKind(self.origin)

    def to_row(self) -> Dict[str, Any]:
        """Flatten to the column layout used by the memories table."""
        return {
            "id": self.id,
            "content": self.content,
            "embedding": json.dumps(list(self.embedding)),
            "tags": json.dumps(self.tags),
            "origin": self.origin.value,
            "is_user_authored": int(self.is_user_authored),
            "created_at": self.created_at.isoformat(),
            "last_accessed_at": self.last_accessed_at.isoformat(),
            "is_synced": int(self.is_synced),
            "integrity_tag": self.integrity_tag,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'MemoryRecord':
        """Rebuild a record from a memories table row. Raises on malformed data."""
        return cls(
            id=row["id"],
            content=row["content"],
            embedding=[float(v) for v in json.loads(row["embedding"])],
            tags=json.loads(row["tags"]),
            origin=OriginKind(row["origin"]),
            is_user_authored=bool(row["is_user_authored"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            last_accessed_at=datetime.fromisoformat(row["last_accessed_at"]),
            is_synced=bool(row["is_synced"]),
            integrity_tag=row["integrity_tag"] or "",
        )


@dataclass
class ProviderConfig:
    """Connection settings for one generation backend."""
    id: str
    kind: ProviderKind
    display_name: str
    credential: Optional[str] = None
    endpoint: Optional[str] = None
    model_id: Optional[str] = None
    is_active: bool = False

    def __post_init__(self):
        self.kind = ProviderKind(self.kind)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProviderConfig':
        return cls(
            id=data["id"],
            kind=ProviderKind(data["kind"]),
            display_name=data.get("display_name", data["kind"]),
            credential=data.get("credential"),
            endpoint=data.get("endpoint"),
            model_id=data.get("model_id"),
            is_active=bool(data.get("is_active", False)),
        )

    def public_view(self) -> Dict[str, Any]:
        """Dictionary safe to hand to callers: credential presence only."""
        data = self.to_dict()
        data["has_credential"] = bool(data.pop("credential"))
        return data


@dataclass
class PersonaProfile:
    """Assistant identity used to build the system directive."""
    id: str
    name: str
    role: str
    tone: str
    system_prompt: str
    avatar_color: str = "#06b6d4"
    is_custom: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PersonaProfile':
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if k in data})

    def system_directive(self) -> str:
        return (
            f"SYSTEM IDENTITY:\nNAME: {self.name}\nROLE: {self.role}\n"
            f"TONE: {self.tone}\nDIRECTIVE: {self.system_prompt}"
        )


DEFAULT_PERSONAS: List[PersonaProfile] = [
    PersonaProfile(
        id="nexus-default",
        name="Nexus",
        role="System Guardian",
        tone="Professional, Objective, Efficient",
        system_prompt=(
            "You are Nexus, a secure local memory assistant. You are concise, objective, "
            "and focused on data integrity. You prioritize security and factuality. "
            "Address the user professionally."
        ),
        avatar_color="#06b6d4",
    ),
    PersonaProfile(
        id="jarvis-protocol",
        name="J.A.R.V.I.S.",
        role="Cybernetic Butler",
        tone="British Wit, Hyper-Competent, Deferential",
        system_prompt=(
            "You are the user's personal operations chief and digital butler. Your responses "
            "are exceedingly capable, slightly dry in humor, and concise. When presenting "
            "recalled memory data, say 'Recall complete.'"
        ),
        avatar_color="#ea580c",
    ),
    PersonaProfile(
        id="the-curator",
        name="The Curator",
        role="Knowledge Manager",
        tone="Sophisticated, Insightful, Precise",
        system_prompt=(
            "You are The Curator. You manage the user's vault and connect current queries "
            "to the historical context stored in it."
        ),
        avatar_color="#f59e0b",
    ),
    PersonaProfile(
        id="executive-ops",
        name="Executive Ops",
        role="Efficiency Lead",
        tone="Proactive, Brief, Action-Oriented",
        system_prompt=(
            "You are the Executive Operations Lead. You are polite but focused on execution. "
            "You prefer bullet points and clear action items."
        ),
        avatar_color="#ef4444",
    ),
    PersonaProfile(
        id="focus-mode",
        name="Focus Mode",
        role="Deep Work Facilitator",
        tone="Calm, Essentialist, Minimal",
        system_prompt=(
            "You are in Focus Mode. Your responses are calm, thoughtful, and brief. "
            "Focus on the core essence of the query."
        ),
        avatar_color="#10b981",
    ),
]

"""
Ingestion pipeline: quota check, chunking, embedding and a single commit.
"""

import hashlib
import mimetypes
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from util.logging import logger
from .chunking import chunk_text
from .config import CHUNK_SIZE, CHUNK_OVERLAP
from .errors import CapacityExceeded
from .schema import MemoryRecord, OriginKind
from .store import PersistentStore
from ..vector.embeddings import IEmbeddingProvider

INGEST_TAG = "ingest"


def new_record_id() -> str:
    return f"mem-{uuid.uuid4().hex}"


def integrity_tag(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def file_header(path: Path) -> str:
    """Header prepended to imported file content."""
    mime_type = mimetypes.guess_type(path.name)[0] or "text/plain"
    return f"[FILE: {path.name} ({mime_type})]\n\n"


def read_text_file(path) -> str:
    """Read a text file and prefix it with its import header."""
    path = Path(path)
    return file_header(path) + path.read_text(encoding="utf-8")


class IngestionPipeline:
    """Turns raw text into committed, embedded chunk records."""

    def __init__(self, store: PersistentStore, embedder: IEmbeddingProvider,
                 chunk_size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP,
                 clock: Callable[[], datetime] = None,
                 access_check: Optional[Callable[[], None]] = None):
        self.store = store
        self.embedder = embedder
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.access_check = access_check

    def ingest_chunks(self, content: str, origin: OriginKind, is_user_authored: bool,
                      quota_bytes: int) -> List[MemoryRecord]:
        """Ingest content and return every chunk record, in order.

        Raises:
            LockedVault: From the access check when the vault is locked
            ValueError: Empty or whitespace-only content
            CapacityExceeded: The store would grow past ``quota_bytes``
        """
        if self.access_check is not None:
            self.access_check()

        if not content or not content.strip():
            raise ValueError("Cannot ingest empty content")

        current_bytes = self.store.size_bytes()
        incoming_bytes = len(content.encode("utf-8"))
        if current_bytes + incoming_bytes > quota_bytes:
            logger.log_operation("ingest", "denied", {
                "current_bytes": current_bytes,
                "incoming_bytes": incoming_bytes,
                "quota_bytes": quota_bytes
            })
            raise CapacityExceeded(current_bytes, incoming_bytes, quota_bytes)

        now = self.clock()
        records = []
        for chunk in chunk_text(content, self.chunk_size, self.overlap):
            records.append(MemoryRecord(
                id=new_record_id(),
                content=chunk,
                embedding=self.embedder.embed_text(chunk),
                tags=[INGEST_TAG],
                origin=OriginKind(origin),
                is_user_authored=is_user_authored,
                created_at=now,
                last_accessed_at=now,
                is_synced=False,
                integrity_tag=integrity_tag(chunk),
            ))

        self.store.insert_many(records)
        logger.log_operation("ingest", "success", {
            "chunks": len(records),
            "bytes": incoming_bytes,
            "origin": OriginKind(origin).value
        })
        return records

    def ingest(self, content: str, origin: OriginKind, is_user_authored: bool,
               quota_bytes: int) -> MemoryRecord:
        """Ingest content and return the first chunk's record."""
        return self.ingest_chunks(content, origin, is_user_authored, quota_bytes)[0]

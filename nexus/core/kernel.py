"""
Vault kernel: the single facade over storage, security, retrieval and generation.

Every state transition runs under one re-entrant lock. While a duress session
is open all reads and writes go to a throwaway decoy that never touches the
real store or keychain.
"""

import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from util.logging import logger, audit_event
from .config import (
    MEMORY_DB_NAME, KEYCHAIN_DB_NAME, DEFAULT_TEMPERATURE, VERSION,
    ensure_data_directory, get_embedding_provider, get_default_provider_seed, get_pipeline_step_delay
)
from .db import MEMORY_PATH, remove_db_files
from .errors import VaultError
from .events import (
    EventBus, VAULT_UPDATED, VAULT_LOCKED, VAULT_UNLOCKED, VAULT_WIPED, NAVIGATE, PIPELINE_STEP
)
from .ingestion import IngestionPipeline, read_text_file
from .keychain import (
    KeychainStore, PROVIDER_CONFIGS, CUSTOM_PERSONAS, ACTIVE_PERSONA_ID, STORAGE_MODE
)
from .schema import (
    MemoryRecord, OriginKind, PersonaProfile, ProviderConfig, ProviderKind,
    StorageMode, UnlockResult, VaultState, DEFAULT_PERSONAS
)
from .security import SecuritySessionManager
from .store import PersistentStore
from .sync import CloudMirror
from ..providers.base import (
    GenerationRequest, GenerationResponse, InjectionStrategy, RoutingMode, UsageMetrics
)
from ..providers.registry import ProviderRegistry
from ..providers.router import ProviderRouter
from ..vector.embeddings import IEmbeddingProvider
from ..vector.retrieval import RetrievalScorer
from ..vector.types import ScoredRecord

AUTO = "AUTO"
DEFAULT_PERSONA_ID = "nexus-default"
DEFAULT_SEARCH_LIMIT = 4
NO_PROVIDER_MESSAGE = (
    "SYSTEM ALERT: No Active API Connection. Please configure a provider before generating."
)


@dataclass
class DecoyVault:
    """Volatile stand-in for every real unit during a duress session."""
    store: PersistentStore
    configs: List[ProviderConfig] = field(default_factory=list)
    custom_personas: List[PersonaProfile] = field(default_factory=list)
    active_persona_id: str = DEFAULT_PERSONA_ID
    storage_mode: StorageMode = StorageMode.SELECTIVE_MANUAL


class VaultKernel:
    """Facade over the vault's components."""

    def __init__(self, data_dir=None,
                 embedder: IEmbeddingProvider = None,
                 mirror: CloudMirror = None,
                 registry: ProviderRegistry = None,
                 events: EventBus = None,
                 clock: Callable[[], datetime] = None,
                 dev_mode: Optional[bool] = None,
                 cloud_entitled: Callable[[], bool] = None,
                 step_delay: Optional[float] = None):
        self.data_dir = ensure_data_directory(Path(data_dir) if data_dir is not None else None)
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.embedder = embedder or get_embedding_provider()
        self.dimension = self.embedder.get_dimension()

        self.store = PersistentStore(str(self.data_dir / MEMORY_DB_NAME), self.dimension)
        self.keychain = KeychainStore(str(self.data_dir / KEYCHAIN_DB_NAME))
        self.security = SecuritySessionManager(
            self.keychain, clock=self.clock, dev_mode=dev_mode, cloud_entitled=cloud_entitled
        )

        self.scorer = RetrievalScorer()
        self.router = ProviderRouter()
        self.registry = registry or ProviderRegistry()
        self.mirror = mirror or CloudMirror()
        self.events = events or EventBus()
        self.step_delay = get_pipeline_step_delay() if step_delay is None else step_delay

        self._decoy: Optional[DecoyVault] = None
        self._lock = threading.RLock()

    # ── security lifecycle ──────────────────────────────────────────

    @property
    def state(self) -> VaultState:
        return self.security.state

    def has_pin(self) -> bool:
        return self.security.has_pin()

    def set_pin(self, pin: str, current_pin: Optional[str] = None) -> None:
        with self._lock:
            self.security.set_pin(pin, current_pin=current_pin)

    def unlock(self, pin: str) -> UnlockResult:
        with self._lock:
            self._discard_decoy()
            result = self.security.unlock(pin)

            if result == UnlockResult.DURESS:
                self._decoy = DecoyVault(store=PersistentStore(MEMORY_PATH, self.dimension))
            elif result == UnlockResult.SUCCESS:
                self._seed_default_provider()
                self._sync_pending()
            else:
                return result

            self.events.emit(VAULT_UNLOCKED, {})
            return result

    def lock(self) -> None:
        with self._lock:
            self.security.lock()
            self._discard_decoy()
            self.events.emit(VAULT_LOCKED, {})

    def status(self) -> Dict[str, Any]:
        with self._lock:
            is_open = self.security.session is not None
            return {
                "state": self.state.value,
                "has_pin": self.has_pin(),
                "record_count": self._active_store().count() if is_open else None,
                "storage_mode": self.storage_mode.value if is_open else None,
                "cloud_sync_eligible": self.security.is_cloud_sync_eligible,
                "dimension": self.dimension,
                "version": VERSION,
            }

    def _discard_decoy(self):
        """Close the decoy store and forget every decoy unit."""
        if self._decoy is None:
            return
        try:
            self._decoy.store.close()
        except Exception as e:
            logger.log_operation("decoy.close", "failed", {"error": str(e)})
        self._decoy = None

    def _active_store(self) -> PersistentStore:
        self.security.require_access()
        if self.security.is_duress and self._decoy is not None:
            return self._decoy.store
        return self.store

    # ── memories ────────────────────────────────────────────────────

    def ingest(self, content: str, origin: OriginKind, is_user_authored: bool,
               quota_bytes: int) -> MemoryRecord:
        """
        Chunk, embed and commit content against the active store.

        Returns:
            The first chunk's record

        Raises:
            LockedVault, CapacityExceeded, ValueError
        """
        with self._lock:
            store = self._active_store()
            pipeline = IngestionPipeline(
                store, self.embedder, clock=self.clock, access_check=self.security.require_access
            )
            records = pipeline.ingest_chunks(content, origin, is_user_authored, quota_bytes)

            if self._auto_sync_enabled():
                for record in records:
                    self._replicate(record)

            self.events.emit(VAULT_UPDATED, {"action": "ingest", "record_ids": [r.id for r in records]})
            return records[0]

    def ingest_file(self, path, quota_bytes: int) -> MemoryRecord:
        """Import a text file as a non-user-authored record."""
        with self._lock:
            self.security.require_access()
            content = read_text_file(path)
            record = self.ingest(content, OriginKind.IMPORTED_FILE, False, quota_bytes)
            self.events.emit(NAVIGATE, {"view": "library"})
            return record

    def search(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> List[ScoredRecord]:
        """Rank stored records against a query and mark the hits as accessed."""
        with self._lock:
            store = self._active_store()
            now = self.clock()
            query_vector = self.embedder.embed_text(query)
            results = self.scorer.search(query_vector, store.select_all(), limit, query_text=query, now=now)

            for scored in results:
                store.update(scored.record.id, last_accessed_at=now)
                scored.record.last_accessed_at = now

            logger.log_operation("search", "success", {"limit": limit, "results": len(results)})
            return results

    def get_record(self, record_id: str) -> Optional[MemoryRecord]:
        with self._lock:
            return self._active_store().select_by_id(record_id)

    def get_records_by_ids(self, record_ids: List[str]) -> List[MemoryRecord]:
        with self._lock:
            store = self._active_store()
            records = [store.select_by_id(record_id) for record_id in record_ids]
            return [r for r in records if r is not None]

    def list_records(self) -> List[MemoryRecord]:
        """All records, newest first."""
        with self._lock:
            return list(reversed(self._active_store().select_all()))

    def purge(self, record_id: str) -> bool:
        with self._lock:
            deleted = self._active_store().delete(record_id)
            if deleted:
                self.events.emit(VAULT_UPDATED, {"action": "purge", "record_ids": [record_id]})
            return deleted

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            records = self._active_store().select_all()
            by_origin = {origin.value: 0 for origin in OriginKind}
            for record in records:
                by_origin[record.origin.value] += 1
            return {
                "record_count": len(records),
                "size_bytes": self._active_store().size_bytes(),
                "synced_count": sum(1 for r in records if r.is_synced),
                "user_authored_count": sum(1 for r in records if r.is_user_authored),
                "by_origin": by_origin,
            }

    # ── cloud mirror ────────────────────────────────────────────────

    @property
    def storage_mode(self) -> StorageMode:
        if self.security.is_duress and self._decoy is not None:
            return self._decoy.storage_mode
        raw = self.keychain.get(STORAGE_MODE)
        try:
            return StorageMode(raw) if raw else StorageMode.SELECTIVE_MANUAL
        except ValueError:
            logger.log_operation("keychain.load_unit", "degraded", {"unit": STORAGE_MODE, "value": raw})
            return StorageMode.SELECTIVE_MANUAL

    def set_storage_mode(self, mode: StorageMode) -> None:
        mode = StorageMode(mode)
        with self._lock:
            self.security.require_access()
            if self.security.is_duress:
                self._decoy.storage_mode = mode
                return

            self.keychain.set(STORAGE_MODE, mode.value)
            audit_event("vault.storage_mode", {"mode": mode.value})
            if mode == StorageMode.AUTO_SYNC_ALL:
                self._sync_pending()

    def sync_record(self, record_id: str) -> bool:
        """Replicate one record on demand. Returns False when it was not mirrored."""
        with self._lock:
            store = self._active_store()
            record = store.select_by_id(record_id)
            if record is None:
                raise KeyError(record_id)
            if self.security.is_duress or not self.security.is_cloud_sync_eligible:
                logger.log_sync_operation(record_id, "denied", {"reason": "sync not eligible"})
                return False
            return self._replicate(record)

    def _auto_sync_enabled(self) -> bool:
        return (
            self.state == VaultState.UNLOCKED
            and self.security.is_cloud_sync_eligible
            and self.storage_mode == StorageMode.AUTO_SYNC_ALL
        )

    def _sync_pending(self) -> int:
        if not self._auto_sync_enabled():
            return 0
        pending = [r for r in self.store.select_all() if not r.is_synced]
        return sum(1 for record in pending if self._replicate(record))

    def _replicate(self, record: MemoryRecord) -> bool:
        try:
            mirrored = self.mirror.replicate(record.id, record.content, self.security.session_key)
        except Exception as e:
            logger.log_sync_operation(record.id, "failed", {"error": str(e)})
            return False

        if mirrored:
            self.store.update(record.id, is_synced=True)
            record.is_synced = True
            self.events.emit(VAULT_UPDATED, {"action": "sync", "record_ids": [record.id]})
        return mirrored

    # ── personas ────────────────────────────────────────────────────

    def _custom_personas(self) -> List[PersonaProfile]:
        if self.security.is_duress and self._decoy is not None:
            return list(self._decoy.custom_personas)

        personas = []
        for data in self.keychain.load_list(CUSTOM_PERSONAS):
            try:
                persona = PersonaProfile.from_dict(data)
            except TypeError as e:
                logger.log_operation("keychain.load_unit", "degraded", {"unit": CUSTOM_PERSONAS, "error": str(e)})
                continue
            persona.is_custom = True
            personas.append(persona)
        return personas

    def all_personas(self) -> List[PersonaProfile]:
        with self._lock:
            self.security.require_access()
            return list(DEFAULT_PERSONAS) + self._custom_personas()

    def active_persona(self) -> PersonaProfile:
        with self._lock:
            self.security.require_access()
            if self.security.is_duress:
                active_id = self._decoy.active_persona_id
            else:
                active_id = self.keychain.get(ACTIVE_PERSONA_ID) or DEFAULT_PERSONA_ID

            for persona in self.all_personas():
                if persona.id == active_id:
                    return persona
            return DEFAULT_PERSONAS[0]

    def set_active_persona(self, persona_id: str) -> PersonaProfile:
        with self._lock:
            persona = next((p for p in self.all_personas() if p.id == persona_id), None)
            if persona is None:
                raise KeyError(persona_id)

            if self.security.is_duress:
                self._decoy.active_persona_id = persona_id
            else:
                self.keychain.set(ACTIVE_PERSONA_ID, persona_id)
            return persona

    def save_custom_persona(self, persona: PersonaProfile) -> PersonaProfile:
        """Create or replace a custom persona. Built-in ids cannot be overwritten."""
        with self._lock:
            self.security.require_access()
            if any(p.id == persona.id for p in DEFAULT_PERSONAS):
                raise ValueError(f"Persona id {persona.id} is reserved")

            persona.is_custom = True
            personas = [p for p in self._custom_personas() if p.id != persona.id]
            personas.append(persona)
            self._store_custom_personas(personas)
            return persona

    def delete_custom_persona(self, persona_id: str) -> bool:
        with self._lock:
            self.security.require_access()
            personas = self._custom_personas()
            remaining = [p for p in personas if p.id != persona_id]
            if len(remaining) == len(personas):
                return False

            self._store_custom_personas(remaining)
            if self._active_persona_id() == persona_id:
                self.set_active_persona(DEFAULT_PERSONA_ID)
            return True

    def _active_persona_id(self) -> str:
        if self.security.is_duress:
            return self._decoy.active_persona_id
        return self.keychain.get(ACTIVE_PERSONA_ID) or DEFAULT_PERSONA_ID

    def _store_custom_personas(self, personas: List[PersonaProfile]):
        if self.security.is_duress:
            self._decoy.custom_personas = personas
        else:
            self.keychain.save_json(CUSTOM_PERSONAS, [p.to_dict() for p in personas])

    # ── provider configs ────────────────────────────────────────────

    def _load_configs(self) -> List[ProviderConfig]:
        if self.security.is_duress and self._decoy is not None:
            return self._decoy.configs

        configs = []
        for data in self.keychain.load_list(PROVIDER_CONFIGS):
            try:
                configs.append(ProviderConfig.from_dict(data))
            except (KeyError, ValueError, TypeError) as e:
                logger.log_operation("keychain.load_unit", "degraded", {"unit": PROVIDER_CONFIGS, "error": str(e)})
        return configs

    def _save_configs(self, configs: List[ProviderConfig]):
        if self.security.is_duress:
            self._decoy.configs = configs
        else:
            self.keychain.save_json(PROVIDER_CONFIGS, [c.to_dict() for c in configs])

    def list_provider_configs(self) -> List[ProviderConfig]:
        with self._lock:
            self.security.require_access()
            return list(self._load_configs())

    def get_provider_config(self, config_id: str) -> Optional[ProviderConfig]:
        return next((c for c in self.list_provider_configs() if c.id == config_id), None)

    def active_provider_config(self) -> Optional[ProviderConfig]:
        return next((c for c in self.list_provider_configs() if c.is_active), None)

    def add_provider_config(self, kind: ProviderKind, display_name: Optional[str] = None,
                            credential: Optional[str] = None, endpoint: Optional[str] = None,
                            model_id: Optional[str] = None, activate: bool = False) -> ProviderConfig:
        with self._lock:
            self.security.require_access()
            kind = ProviderKind(kind)
            config = ProviderConfig(
                id=f"cfg-{uuid.uuid4().hex[:12]}",
                kind=kind,
                display_name=display_name or kind.value,
                credential=credential or None,
                endpoint=endpoint or None,
                model_id=model_id or None,
            )
            configs = self._load_configs() + [config]
            self._save_configs(configs)
            audit_event("provider.added", {"config_id": config.id, "kind": kind.value},
                        {"credential": credential})

            if activate:
                self.set_active_provider(config.id)
                config.is_active = True
            return config

    def delete_provider_config(self, config_id: str) -> bool:
        with self._lock:
            self.security.require_access()
            configs = self._load_configs()
            remaining = [c for c in configs if c.id != config_id]
            if len(remaining) == len(configs):
                return False
            self._save_configs(remaining)
            audit_event("provider.deleted", {"config_id": config_id})
            return True

    def set_active_provider(self, config_id: str) -> bool:
        """Activate one config and deactivate the rest. False if the id is unknown."""
        with self._lock:
            self.security.require_access()
            configs = self._load_configs()
            if not any(c.id == config_id for c in configs):
                return False
            for config in configs:
                config.is_active = config.id == config_id
            self._save_configs(configs)
            return True

    def provider_status(self, config_id: str) -> Dict[str, Any]:
        """Describe the adapter a config resolves to. Raises KeyError for an unknown id."""
        config = self.get_provider_config(config_id)
        if config is None:
            raise KeyError(config_id)
        status = self.registry.create_adapter(config).get_status()
        status["is_active"] = config.is_active
        return status

    def _seed_default_provider(self):
        """Give a fresh vault one working config from the environment."""
        if self._load_configs():
            return
        seed = get_default_provider_seed()
        if seed is None:
            return
        try:
            self.add_provider_config(
                seed["kind"], display_name=seed["display_name"], credential=seed["credential"],
                model_id=seed["model_id"], activate=True
            )
        except ValueError as e:
            logger.log_operation("provider.seed", "failed", {"error": str(e)})

    # ── generation ──────────────────────────────────────────────────

    def _resolve_provider(self, provider: Optional[str], query: str,
                          context: List[str]) -> Tuple[Optional[ProviderConfig], RoutingMode]:
        configs = self.list_provider_configs()
        if provider == AUTO:
            decision = self.router.route(query, context, configs)
            if decision is None:
                return None, RoutingMode.STANDARD
            return decision.config, decision.mode

        if provider is None:
            config = next((c for c in configs if c.is_active), None)
            return config, RoutingMode.STANDARD

        config = next((c for c in configs if c.id == provider), None)
        if config is None:
            raise KeyError(provider)
        return config, RoutingMode.STANDARD

    def _complete(self, config: Optional[ProviderConfig], mode: RoutingMode, query: str,
                  context: List[str], temperature: float, injection_strategy: InjectionStrategy,
                  related_record_ids: List[str]) -> GenerationResponse:
        if config is None:
            return GenerationResponse(
                text=NO_PROVIDER_MESSAGE,
                usage=UsageMetrics(
                    input_tokens=0, output_tokens=0, total_tokens=0, cost_estimate=0.0,
                    provider=ProviderKind.CUSTOM_LOCAL.value, model="none",
                    routing_mode=RoutingMode.STANDARD
                ),
                related_record_ids=list(related_record_ids),
            )

        request = GenerationRequest(
            system_directive=self.active_persona().system_directive(),
            retrieved_context=list(context),
            query=query,
            temperature=temperature,
            injection_strategy=injection_strategy,
        )
        adapter = self.registry.create_adapter(config)
        try:
            response = adapter.complete(request, mode)
        except VaultError as e:
            logger.log_provider_call(config.kind.value, adapter.model_name, mode.value, "failed", {"error": str(e)})
            raise
        response.related_record_ids = list(related_record_ids)
        return response

    def generate(self, query: str, context: Optional[List[str]] = None,
                 provider: Optional[str] = AUTO,
                 temperature: float = DEFAULT_TEMPERATURE,
                 injection_strategy: InjectionStrategy = InjectionStrategy.PREPEND,
                 related_record_ids: Optional[List[str]] = None) -> GenerationResponse:
        """
        Generate a response for a query.

        Args:
            query: User query
            context: Retrieved context strings
            provider: "AUTO" to route, None for the active config, or a config id
            temperature: Sampling temperature
            injection_strategy: How context is placed around the query
            related_record_ids: Record ids the context came from

        Raises:
            LockedVault: Vault is locked
            KeyError: Unknown config id
            ProviderUnavailable: The selected backend failed
        """
        context = list(context or [])
        config, mode = self._resolve_provider(provider, query, context)
        return self._complete(config, mode, query, context, temperature,
                              InjectionStrategy(injection_strategy), related_record_ids or [])

    def ask(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT,
            provider: Optional[str] = AUTO,
            temperature: float = DEFAULT_TEMPERATURE,
            injection_strategy: InjectionStrategy = InjectionStrategy.PREPEND) -> GenerationResponse:
        """Retrieve, route and generate in one paced pipeline."""
        self.security.require_access()
        self.events.emit(PIPELINE_STEP, {"step": "retrieve", "query_length": len(query)})
        results = self.search(query, limit)
        context = [scored.record.content for scored in results]
        self._pace()

        self.events.emit(PIPELINE_STEP, {"step": "route", "context_items": len(context)})
        config, mode = self._resolve_provider(provider, query, context)
        self._pace()

        self.events.emit(PIPELINE_STEP, {
            "step": "generate",
            "provider": config.kind.value if config else None,
            "mode": mode.value
        })
        response = self._complete(config, mode, query, context, temperature,
                                  InjectionStrategy(injection_strategy),
                                  [scored.record.id for scored in results])
        self.events.emit(PIPELINE_STEP, {"step": "complete", "total_tokens": response.usage.total_tokens})
        return response

    def _pace(self):
        if self.step_delay > 0:
            time.sleep(self.step_delay)

    # ── wipe ────────────────────────────────────────────────────────

    def wipe_all(self) -> None:
        """Destroy every record, credential and setting, then force LOCKED. Cannot fail."""
        with self._lock:
            for step, action in (
                ("store", self.store.wipe),
                ("decoy", lambda: self._decoy.store.wipe() if self._decoy else None),
                ("keychain", self.keychain.clear),
            ):
                try:
                    action()
                except Exception as e:
                    logger.log_operation("wipe", "failed", {"step": step, "error": str(e)})
                    if step == "store":
                        self._reopen_empty_store()

            self.security.reset()
            self._discard_decoy()
            logger.log_security_event("wipe", "success")
            self.events.emit(VAULT_WIPED, {})
            self.events.emit(VAULT_LOCKED, {})

    def _reopen_empty_store(self):
        path = self.store.db_path
        try:
            self.store.close()
        except Exception as e:
            logger.log_operation("wipe", "failed", {"step": "store_close", "error": str(e)})
        remove_db_files(path)
        self.store = PersistentStore(path, self.dimension)

    def close(self):
        with self._lock:
            self._discard_decoy()
            self.store.close()
            self.keychain.close()

"""
HTTP surface over the vault kernel.
"""

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from typing import List
from dotenv import load_dotenv

from .schemas import (
    HealthResponse,
    VaultStatusResponse,
    SetPinRequest,
    UnlockRequest,
    UnlockResponse,
    StorageModeRequest,
    IngestRequest,
    MemoryRecordResponse,
    MemoryListResponse,
    SearchRequest,
    SearchResult,
    SearchResponse,
    SyncResponse,
    ProviderConfigRequest,
    ProviderConfigResponse,
    ProviderStatusResponse,
    PersonaRequest,
    PersonaResponse,
    GenerateRequest,
    AskRequest,
    GenerateResponse,
    StatsResponse,
    MessageResponse
)
from ..core.config import VERSION, debug_enabled, get_storage_quota, validate_config
from ..core.db import health_check
from ..core.errors import (
    LockedVault, CapacityExceeded, InvalidCredential, ProviderUnavailable, UnknownProviderKind
)
from ..core.kernel import VaultKernel
from ..core.schema import MemoryRecord, PersonaProfile, UnlockResult, VaultState
from util.logging import logger

load_dotenv()


def _record_response(record: MemoryRecord) -> MemoryRecordResponse:
    return MemoryRecordResponse(
        id=record.id,
        content=record.content,
        tags=record.tags,
        origin=record.origin,
        is_user_authored=record.is_user_authored,
        created_at=record.created_at,
        last_accessed_at=record.last_accessed_at,
        is_synced=record.is_synced,
        integrity_tag=record.integrity_tag
    )


def _persona_response(persona: PersonaProfile, active_id: str) -> PersonaResponse:
    return PersonaResponse(**persona.to_dict(), is_active=persona.id == active_id)


def _public_state(state: VaultState) -> str:
    # A duress session must be indistinguishable from a real one
    return VaultState.UNLOCKED.value if state == VaultState.DURESS else state.value


def get_kernel(request: Request) -> VaultKernel:
    kernel = request.app.state.kernel
    if kernel is None:
        kernel = VaultKernel()
        request.app.state.kernel = kernel
    return kernel


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


def create_app(kernel: VaultKernel = None) -> FastAPI:
    """Build the API around a kernel. Without one, a kernel on NEXUS_DATA_DIR is opened on first use."""
    app = FastAPI(
        title="Nexus Memory Vault API",
        version=VERSION,
        description="Local-first memory vault with retrieval and provider routing",
        docs_url="/docs" if debug_enabled() else None,
        redoc_url="/redoc" if debug_enabled() else None
    )
    app.state.kernel = kernel

    for issue in validate_config():
        logger.warning(f"Configuration issue: {issue}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LockedVault)
    async def locked_handler(request: Request, exc: LockedVault):
        return _error(423, "Vault is locked")

    @app.exception_handler(CapacityExceeded)
    async def capacity_handler(request: Request, exc: CapacityExceeded):
        return _error(413, str(exc))

    @app.exception_handler(InvalidCredential)
    async def credential_handler(request: Request, exc: InvalidCredential):
        return _error(401, str(exc))

    @app.exception_handler(ProviderUnavailable)
    async def provider_handler(request: Request, exc: ProviderUnavailable):
        return _error(503, str(exc))

    @app.exception_handler(UnknownProviderKind)
    async def unknown_kind_handler(request: Request, exc: UnknownProviderKind):
        logger.error(f"Adapter lookup failed: {exc}")
        return _error(500, str(exc))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _error(400, str(exc))

    # ── health / vault lifecycle ────────────────────────────────────

    @app.get("/health", response_model=HealthResponse)
    def health_check_endpoint(kernel: VaultKernel = Depends(get_kernel)):
        """Check storage health."""
        db_health = health_check(kernel.store.db_path)
        keychain_health = health_check(kernel.keychain.db_path, required_tables=("kv",))
        return HealthResponse(
            status="healthy" if db_health and keychain_health else "unhealthy",
            version=VERSION,
            db_health=db_health,
            keychain_health=keychain_health
        )

    @app.get("/vault/status", response_model=VaultStatusResponse)
    def vault_status(kernel: VaultKernel = Depends(get_kernel)):
        status = kernel.status()
        status["state"] = _public_state(kernel.state)
        return VaultStatusResponse(**status)

    @app.post("/vault/pin", response_model=MessageResponse)
    def set_pin(req: SetPinRequest, kernel: VaultKernel = Depends(get_kernel)):
        kernel.set_pin(req.pin, current_pin=req.current_pin)
        return MessageResponse(success=True, message="PIN updated")

    @app.post("/vault/unlock", response_model=UnlockResponse)
    def unlock(req: UnlockRequest, kernel: VaultKernel = Depends(get_kernel)):
        result = kernel.unlock(req.pin)
        if result == UnlockResult.INVALID:
            raise HTTPException(status_code=401, detail="Invalid PIN")
        return UnlockResponse(result=UnlockResult.SUCCESS.value, state=_public_state(kernel.state))

    @app.post("/vault/lock", response_model=MessageResponse)
    def lock(kernel: VaultKernel = Depends(get_kernel)):
        kernel.lock()
        return MessageResponse(success=True, message="Vault locked")

    @app.post("/vault/wipe", response_model=MessageResponse)
    def wipe(kernel: VaultKernel = Depends(get_kernel)):
        kernel.wipe_all()
        return MessageResponse(success=True, message="Vault wiped")

    @app.put("/vault/storage-mode", response_model=MessageResponse)
    def set_storage_mode(req: StorageModeRequest, kernel: VaultKernel = Depends(get_kernel)):
        kernel.set_storage_mode(req.mode)
        return MessageResponse(success=True, message=f"Storage mode set to {req.mode.value}")

    @app.get("/vault/stats", response_model=StatsResponse)
    def stats(kernel: VaultKernel = Depends(get_kernel)):
        return StatsResponse(**kernel.stats())

    # ── memories ────────────────────────────────────────────────────

    @app.get("/memories", response_model=MemoryListResponse)
    def list_memories(kernel: VaultKernel = Depends(get_kernel)):
        records = kernel.list_records()
        return MemoryListResponse(records=[_record_response(r) for r in records], count=len(records))

    @app.post("/memories", response_model=MemoryRecordResponse)
    def ingest(req: IngestRequest, kernel: VaultKernel = Depends(get_kernel)):
        record = kernel.ingest(req.content, req.origin, req.is_user_authored, get_storage_quota())
        return _record_response(record)

    @app.post("/memories/search", response_model=SearchResponse)
    def search(req: SearchRequest, kernel: VaultKernel = Depends(get_kernel)):
        results = kernel.search(req.query, req.limit)
        return SearchResponse(
            query=req.query,
            results=[
                SearchResult(record=_record_response(s.record), score=s.score, similarity=s.similarity)
                for s in results
            ]
        )

    @app.get("/memories/{record_id}", response_model=MemoryRecordResponse)
    def get_memory(record_id: str, kernel: VaultKernel = Depends(get_kernel)):
        record = kernel.get_record(record_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Record not found")
        return _record_response(record)

    @app.delete("/memories/{record_id}", response_model=MessageResponse)
    def purge_memory(record_id: str, kernel: VaultKernel = Depends(get_kernel)):
        if not kernel.purge(record_id):
            raise HTTPException(status_code=404, detail="Record not found")
        return MessageResponse(success=True, message="Record purged")

    @app.post("/memories/{record_id}/sync", response_model=SyncResponse)
    def sync_memory(record_id: str, kernel: VaultKernel = Depends(get_kernel)):
        try:
            synced = kernel.sync_record(record_id)
        except KeyError:
            raise HTTPException(status_code=404, detail="Record not found")
        return SyncResponse(id=record_id, synced=synced)

    # ── providers ───────────────────────────────────────────────────

    @app.get("/providers", response_model=List[ProviderConfigResponse])
    def list_providers(kernel: VaultKernel = Depends(get_kernel)):
        return [ProviderConfigResponse(**c.public_view()) for c in kernel.list_provider_configs()]

    @app.post("/providers", response_model=ProviderConfigResponse)
    def add_provider(req: ProviderConfigRequest, kernel: VaultKernel = Depends(get_kernel)):
        config = kernel.add_provider_config(
            req.kind,
            display_name=req.display_name,
            credential=req.credential,
            endpoint=req.endpoint,
            model_id=req.model_id,
            activate=req.activate
        )
        return ProviderConfigResponse(**config.public_view())

    @app.delete("/providers/{config_id}", response_model=MessageResponse)
    def delete_provider(config_id: str, kernel: VaultKernel = Depends(get_kernel)):
        if not kernel.delete_provider_config(config_id):
            raise HTTPException(status_code=404, detail="Provider config not found")
        return MessageResponse(success=True, message="Provider config deleted")

    @app.get("/providers/{config_id}/status", response_model=ProviderStatusResponse)
    def provider_status(config_id: str, kernel: VaultKernel = Depends(get_kernel)):
        try:
            return ProviderStatusResponse(**kernel.provider_status(config_id))
        except KeyError:
            raise HTTPException(status_code=404, detail="Provider config not found")

    @app.post("/providers/{config_id}/activate", response_model=MessageResponse)
    def activate_provider(config_id: str, kernel: VaultKernel = Depends(get_kernel)):
        if not kernel.set_active_provider(config_id):
            raise HTTPException(status_code=404, detail="Provider config not found")
        return MessageResponse(success=True, message="Provider activated")

    # ── personas ────────────────────────────────────────────────────

    @app.get("/personas", response_model=List[PersonaResponse])
    def list_personas(kernel: VaultKernel = Depends(get_kernel)):
        active_id = kernel.active_persona().id
        return [_persona_response(p, active_id) for p in kernel.all_personas()]

    @app.post("/personas", response_model=PersonaResponse)
    def save_persona(req: PersonaRequest, kernel: VaultKernel = Depends(get_kernel)):
        persona = kernel.save_custom_persona(PersonaProfile(**req.model_dump(), is_custom=True))
        return _persona_response(persona, kernel.active_persona().id)

    @app.delete("/personas/{persona_id}", response_model=MessageResponse)
    def delete_persona(persona_id: str, kernel: VaultKernel = Depends(get_kernel)):
        if not kernel.delete_custom_persona(persona_id):
            raise HTTPException(status_code=404, detail="Custom persona not found")
        return MessageResponse(success=True, message="Persona deleted")

    @app.post("/personas/{persona_id}/activate", response_model=PersonaResponse)
    def activate_persona(persona_id: str, kernel: VaultKernel = Depends(get_kernel)):
        try:
            persona = kernel.set_active_persona(persona_id)
        except KeyError:
            raise HTTPException(status_code=404, detail="Persona not found")
        return _persona_response(persona, persona.id)

    # ── generation ──────────────────────────────────────────────────

    @app.post("/generate", response_model=GenerateResponse)
    def generate(req: GenerateRequest, kernel: VaultKernel = Depends(get_kernel)):
        try:
            response = kernel.generate(
                req.query,
                context=req.context,
                provider=req.provider,
                temperature=req.temperature,
                injection_strategy=req.injection_strategy
            )
        except KeyError:
            raise HTTPException(status_code=404, detail="Provider config not found")
        return GenerateResponse(**response.to_dict())

    @app.post("/ask", response_model=GenerateResponse)
    def ask(req: AskRequest, kernel: VaultKernel = Depends(get_kernel)):
        try:
            response = kernel.ask(
                req.query,
                limit=req.limit,
                provider=req.provider,
                temperature=req.temperature,
                injection_strategy=req.injection_strategy
            )
        except KeyError:
            raise HTTPException(status_code=404, detail="Provider config not found")
        return GenerateResponse(**response.to_dict())

    return app


app = create_app()

"""
Request and response models for the vault HTTP API.
"""

from pydantic import BaseModel, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

from ..core.schema import OriginKind, ProviderKind, StorageMode
from ..providers.base import InjectionStrategy


def _not_blank(v: str, name: str) -> str:
    if not v or not v.strip():
        raise ValueError(f'{name} cannot be empty')
    return v


def _digits(v: str, name: str) -> str:
    if not v.isdigit():
        raise ValueError(f'{name} must contain digits only')
    return v


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    keychain_health: bool


class VaultStatusResponse(BaseModel):
    state: str
    has_pin: bool
    record_count: Optional[int] = None
    storage_mode: Optional[StorageMode] = None
    cloud_sync_eligible: bool
    dimension: int
    version: str


class SetPinRequest(BaseModel):
    pin: str
    current_pin: Optional[str] = None

    @field_validator('pin')
    @classmethod
    def pin_must_be_digits(cls, v):
        return _digits(v, 'pin')


class UnlockRequest(BaseModel):
    pin: str


class UnlockResponse(BaseModel):
    result: str
    state: str


class StorageModeRequest(BaseModel):
    mode: StorageMode


class IngestRequest(BaseModel):
    content: str
    origin: OriginKind = OriginKind.USER_INPUT
    is_user_authored: bool = True

    @field_validator('content')
    @classmethod
    def content_must_not_be_empty(cls, v):
        return _not_blank(v, 'content')


class MemoryRecordResponse(BaseModel):
    id: str
    content: str
    tags: List[str]
    origin: OriginKind
    is_user_authored: bool
    created_at: datetime
    last_accessed_at: datetime
    is_synced: bool
    integrity_tag: str


class MemoryListResponse(BaseModel):
    records: List[MemoryRecordResponse]
    count: int


class SearchRequest(BaseModel):
    query: str
    limit: int = 4

    @field_validator('query')
    @classmethod
    def query_must_not_be_empty(cls, v):
        return _not_blank(v, 'query')

    @field_validator('limit')
    @classmethod
    def limit_must_be_valid(cls, v):
        if v < 1 or v > 100:
            raise ValueError('limit must be between 1 and 100')
        return v


class SearchResult(BaseModel):
    record: MemoryRecordResponse
    score: float
    similarity: float


class SearchResponse(BaseModel):
    query: str
    results: List[SearchResult]


class SyncResponse(BaseModel):
    id: str
    synced: bool


class ProviderConfigRequest(BaseModel):
    kind: ProviderKind
    display_name: Optional[str] = None
    credential: Optional[str] = None
    endpoint: Optional[str] = None
    model_id: Optional[str] = None
    activate: bool = False

    @field_validator('endpoint')
    @classmethod
    def endpoint_must_be_http(cls, v):
        if v and not v.startswith(('http://', 'https://')):
            raise ValueError('endpoint must start with http:// or https://')
        return v


class ProviderConfigResponse(BaseModel):
    """Public view of a provider config; the credential itself is never returned."""
    id: str
    kind: ProviderKind
    display_name: str
    endpoint: Optional[str] = None
    model_id: Optional[str] = None
    is_active: bool
    has_credential: bool


class ProviderStatusResponse(BaseModel):
    config_id: str
    kind: ProviderKind
    model_name: str
    adapter_type: str
    is_active: bool


class PersonaRequest(BaseModel):
    id: str
    name: str
    role: str
    tone: str
    system_prompt: str
    avatar_color: str = "#06b6d4"

    @field_validator('id', 'name', 'system_prompt')
    @classmethod
    def field_must_not_be_empty(cls, v, info):
        return _not_blank(v, info.field_name)


class PersonaResponse(BaseModel):
    id: str
    name: str
    role: str
    tone: str
    system_prompt: str
    avatar_color: str
    is_custom: bool
    is_active: bool = False


class GenerateRequest(BaseModel):
    query: str
    context: List[str] = []
    provider: Optional[str] = "AUTO"
    temperature: float = 0.7
    injection_strategy: InjectionStrategy = InjectionStrategy.PREPEND

    @field_validator('query')
    @classmethod
    def query_must_not_be_empty(cls, v):
        return _not_blank(v, 'query')

    @field_validator('temperature')
    @classmethod
    def temperature_must_be_valid(cls, v):
        if v < 0.0 or v > 2.0:
            raise ValueError('temperature must be between 0.0 and 2.0')
        return v


class AskRequest(BaseModel):
    query: str
    limit: int = 4
    provider: Optional[str] = "AUTO"
    temperature: float = 0.7
    injection_strategy: InjectionStrategy = InjectionStrategy.PREPEND

    @field_validator('query')
    @classmethod
    def query_must_not_be_empty(cls, v):
        return _not_blank(v, 'query')

    @field_validator('limit')
    @classmethod
    def limit_must_be_valid(cls, v):
        if v < 1 or v > 100:
            raise ValueError('limit must be between 1 and 100')
        return v


class UsageResponse(BaseModel):
    input_tokens: int
    output_tokens: int
    total_tokens: int
    cost_estimate: float
    provider: str
    model: str
    routing_mode: str


class GenerateResponse(BaseModel):
    text: str
    usage: UsageResponse
    related_record_ids: List[str] = []


class StatsResponse(BaseModel):
    record_count: int
    size_bytes: int
    synced_count: int
    user_authored_count: int
    by_origin: Dict[str, int]


class MessageResponse(BaseModel):
    success: bool
    message: str
    details: Optional[Dict[str, Any]] = None

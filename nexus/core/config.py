"""
Vault configuration.
Environment-driven settings for storage, security, embeddings and providers.
"""

import os
from pathlib import Path

# Storage configuration
DATA_DIR = os.getenv("NEXUS_DATA_DIR", "./data")
MEMORY_DB_NAME = "nexus_memories.db"
KEYCHAIN_DB_NAME = "nexus_keychain.db"

# Embedding configuration
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "hash")  # hash|sentence
EMBED_DIMENSION = int(os.getenv("EMBED_DIMENSION", "128"))
EMBED_MODEL_NAME = os.getenv("EMBED_MODEL_NAME", "all-MiniLM-L6-v2")

# Ingestion configuration
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "500"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "50"))
DEFAULT_STORAGE_QUOTA_BYTES = 100 * 1024 * 1024  # 100 MB, free tier

# Security configuration - skeleton key only honoured in development mode
DEVELOPMENT_MODE = os.getenv("DEVELOPMENT_MODE", "false").lower() == "true"
SKELETON_PIN = os.getenv("SKELETON_PIN", "0000")
DURESS_PIN = os.getenv("DURESS_PIN", "9999")
PIN_MIN_LENGTH = 4
SCRYPT_N = int(os.getenv("SCRYPT_N", str(2 ** 14)))
SCRYPT_R = 8
SCRYPT_P = 1

# Cloud mirror configuration (best-effort sink, off unless entitled)
CLOUD_SYNC_ENTITLED = os.getenv("CLOUD_SYNC_ENTITLED", "false").lower() == "true"
CLOUD_MIRROR_ENDPOINT = os.getenv("CLOUD_MIRROR_ENDPOINT")  # None = simulated uploads
CLOUD_MIRROR_BUCKET = os.getenv("CLOUD_MIRROR_BUCKET", "nexus-vault-v1")
CLOUD_MIRROR_TOKEN = os.getenv("CLOUD_MIRROR_TOKEN")
CLOUD_MIRROR_TIMEOUT_SEC = float(os.getenv("CLOUD_MIRROR_TIMEOUT_SEC", "10"))

# Provider configuration
PROVIDER_TIMEOUT_SEC = float(os.getenv("PROVIDER_TIMEOUT_SEC", "60"))
DEFAULT_TEMPERATURE = 0.7
PIPELINE_STEP_DELAY_SEC = float(os.getenv("PIPELINE_STEP_DELAY_SEC", "0"))

# Version string
VERSION = "2.1.0"


def get_embedding_provider():
    """Get configured embedding provider implementation."""
    if EMBED_PROVIDER == "sentence":
        from ..vector.embeddings import SentenceTransformerEmbedding
        return SentenceTransformerEmbedding(EMBED_MODEL_NAME)

    from ..vector.embeddings import HashedTokenEmbedding
    return HashedTokenEmbedding(dimension=EMBED_DIMENSION)


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def development_mode_enabled():
    """Check if the development skeleton key is allowed."""
    return os.getenv("DEVELOPMENT_MODE", "false").lower() == "true"


def cloud_sync_entitled():
    """Cloud mirror entitlement is decided outside the kernel (license tier)."""
    return os.getenv("CLOUD_SYNC_ENTITLED", "false").lower() == "true"


def get_storage_quota():
    """Byte quota handed to ingestion by external callers."""
    return int(os.getenv("STORAGE_QUOTA_BYTES", str(DEFAULT_STORAGE_QUOTA_BYTES)))


def get_pipeline_step_delay():
    """Pacing delay between retrieve/route/generate stages in seconds."""
    return float(os.getenv("PIPELINE_STEP_DELAY_SEC", str(PIPELINE_STEP_DELAY_SEC)))


def get_default_provider_seed():
    """Optional credential used to seed a working provider config."""
    api_key = os.getenv("DEFAULT_PROVIDER_API_KEY") or os.getenv("API_KEY")
    if not api_key:
        return None
    return {
        "kind": os.getenv("DEFAULT_PROVIDER_KIND", "GOOGLE"),
        "display_name": os.getenv("DEFAULT_PROVIDER_NAME", "System Default Provider"),
        "credential": api_key,
        "model_id": os.getenv("DEFAULT_PROVIDER_MODEL", "gemini-2.5-flash"),
    }


def get_data_dir() -> Path:
    """Resolve the data directory, re-reading the environment."""
    return Path(os.getenv("NEXUS_DATA_DIR", DATA_DIR))


def ensure_data_directory(data_dir: Path = None) -> Path:
    """Ensure the data directory exists."""
    path = Path(data_dir) if data_dir is not None else get_data_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def validate_config():
    """Validate vault configuration and return any issues."""
    issues = []

    if EMBED_PROVIDER not in ["hash", "sentence"]:
        issues.append(f"Invalid EMBED_PROVIDER: {EMBED_PROVIDER}")

    if EMBED_DIMENSION < 1:
        issues.append("EMBED_DIMENSION must be >= 1")

    if CHUNK_OVERLAP >= CHUNK_SIZE:
        issues.append("CHUNK_OVERLAP must be smaller than CHUNK_SIZE")

    if not DURESS_PIN.isdigit() or len(DURESS_PIN) < PIN_MIN_LENGTH:
        issues.append(f"DURESS_PIN must be at least {PIN_MIN_LENGTH} digits")

    if development_mode_enabled() and SKELETON_PIN == DURESS_PIN:
        issues.append("SKELETON_PIN and DURESS_PIN must differ")

    if PROVIDER_TIMEOUT_SEC <= 0:
        issues.append("PROVIDER_TIMEOUT_SEC must be > 0")

    return issues

"""
PIN credential storage and the lock/unlock/duress session lifecycle.

The session manager is an explicit object: keychain, clock and policy flags
are injected so each test (and each kernel) owns a fresh instance.
"""

import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from util.logging import logger
from .config import (
    SKELETON_PIN, DURESS_PIN, PIN_MIN_LENGTH, SCRYPT_N, SCRYPT_R, SCRYPT_P,
    development_mode_enabled, cloud_sync_entitled
)
from .errors import InvalidCredential, LockedVault
from .keychain import KeychainStore, PIN_HASH
from .schema import VaultState, UnlockResult

SALT_BYTES = 16
KEY_BYTES = 32
SESSION_KEY_INFO = b"nexus-vault session key"


@dataclass
class SecuritySession:
    """Live session material. Never serialized."""
    state: VaultState
    session_key: bytes
    is_cloud_sync_eligible: bool
    opened_at: datetime


def _scrypt(pin: str, salt: bytes, n: int, r: int, p: int) -> bytes:
    kdf = Scrypt(salt=salt, length=KEY_BYTES, n=n, r=r, p=p)
    return kdf.derive(pin.encode())


def hash_pin(pin: str, n: int = SCRYPT_N, r: int = SCRYPT_R, p: int = SCRYPT_P) -> str:
    """Encode a salted scrypt hash as ``scrypt$n$r$p$salt$hash``."""
    salt = secrets.token_bytes(SALT_BYTES)
    digest = _scrypt(pin, salt, n, r, p)
    return f"scrypt${n}${r}${p}${salt.hex()}${digest.hex()}"


def verify_pin(pin: str, encoded: str) -> Optional[bytes]:
    """Return the KDF output when ``pin`` matches ``encoded``, else None."""
    try:
        scheme, n, r, p, salt_hex, digest_hex = encoded.split("$")
        if scheme != "scrypt":
            return None
        digest = _scrypt(pin, bytes.fromhex(salt_hex), int(n), int(r), int(p))
    except ValueError:
        logger.log_security_event("verify_pin", "error", {"reason": "malformed stored hash"})
        return None

    if hmac.compare_digest(digest, bytes.fromhex(digest_hex)):
        return digest
    return None


def derive_session_key(kdf_output: bytes) -> bytes:
    hkdf = HKDF(algorithm=hashes.SHA256(), length=KEY_BYTES, salt=None, info=SESSION_KEY_INFO)
    return hkdf.derive(kdf_output)


def _validate_pin_format(pin: str):
    if not isinstance(pin, str) or not pin.isdigit() or len(pin) < PIN_MIN_LENGTH:
        raise ValueError(f"PIN must be at least {PIN_MIN_LENGTH} digits")


class SecuritySessionManager:
    """Owns the vault state machine: LOCKED -> UNLOCKED | DURESS -> LOCKED."""

    def __init__(self, keychain: KeychainStore,
                 clock: Callable[[], datetime] = None,
                 dev_mode: Optional[bool] = None,
                 skeleton_pin: Optional[str] = None,
                 duress_pin: Optional[str] = None,
                 cloud_entitled: Callable[[], bool] = None):
        self.keychain = keychain
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.dev_mode = development_mode_enabled() if dev_mode is None else dev_mode
        self.skeleton_pin = skeleton_pin or SKELETON_PIN
        self.duress_pin = duress_pin or DURESS_PIN
        self.cloud_entitled = cloud_entitled or cloud_sync_entitled
        self._session: Optional[SecuritySession] = None

    # ── state ───────────────────────────────────────────────────────

    @property
    def state(self) -> VaultState:
        return self._session.state if self._session else VaultState.LOCKED

    @property
    def session(self) -> Optional[SecuritySession]:
        return self._session

    @property
    def is_duress(self) -> bool:
        return self.state == VaultState.DURESS

    @property
    def session_key(self) -> Optional[bytes]:
        return self._session.session_key if self._session else None

    @property
    def is_cloud_sync_eligible(self) -> bool:
        return bool(self._session and self._session.is_cloud_sync_eligible)

    def has_pin(self) -> bool:
        return self.keychain.get(PIN_HASH) is not None

    def require_access(self):
        """Raise LockedVault unless a session (real or duress) is open."""
        if self._session is None:
            raise LockedVault("Vault is locked")

    # ── transitions ─────────────────────────────────────────────────

    def _open(self, state: VaultState, session_key: bytes, sync_eligible: bool):
        self._session = SecuritySession(
            state=state,
            session_key=session_key,
            is_cloud_sync_eligible=sync_eligible,
            opened_at=self.clock(),
        )

    def unlock(self, pin: str) -> UnlockResult:
        """Attempt to open a session. Any active session is discarded first."""
        self._session = None

        if self.dev_mode and pin == self.skeleton_pin:
            self._open(VaultState.UNLOCKED, secrets.token_bytes(KEY_BYTES), bool(self.cloud_entitled()))
            logger.log_security_event("unlock", "warning", {"method": "skeleton_key"})
            return UnlockResult.SUCCESS

        if pin == self.duress_pin:
            # Decoy session: sync stays off no matter the entitlement
            self._open(VaultState.DURESS, secrets.token_bytes(KEY_BYTES), False)
            logger.log_security_event("unlock", "success", {"method": "pin"})
            return UnlockResult.DURESS

        stored = self.keychain.get(PIN_HASH)
        kdf_output = verify_pin(pin, stored) if stored else None
        if kdf_output is not None:
            self._open(VaultState.UNLOCKED, derive_session_key(kdf_output), bool(self.cloud_entitled()))
            logger.log_security_event("unlock", "success", {"method": "pin"})
            return UnlockResult.SUCCESS

        logger.log_security_event("unlock", "denied", {"has_pin": stored is not None})
        return UnlockResult.INVALID

    def set_pin(self, pin: str, current_pin: Optional[str] = None) -> None:
        """Store a new PIN hash.

        Args:
            pin: New PIN, digits only
            current_pin: Required when replacing a PIN outside an unlocked session

        Raises:
            ValueError: PIN too short, non-numeric or equal to the duress PIN
            InvalidCredential: Replacement not authorized
        """
        _validate_pin_format(pin)
        if pin == self.duress_pin:
            raise ValueError("PIN cannot match the duress PIN")

        if self.state == VaultState.DURESS:
            # Accepted and discarded; the real credential is never touched
            logger.log_security_event("set_pin", "warning", {"discarded": True})
            return

        stored = self.keychain.get(PIN_HASH)
        if stored is not None and self.state != VaultState.UNLOCKED:
            if current_pin is None or verify_pin(current_pin, stored) is None:
                logger.log_security_event("set_pin", "denied", {"reason": "current PIN mismatch"})
                raise InvalidCredential("Current PIN is incorrect")

        self.keychain.set(PIN_HASH, hash_pin(pin))
        logger.log_security_event("set_pin", "success", {"replaced": stored is not None})

    def lock(self) -> None:
        """Discard the session key and return to LOCKED."""
        was_open = self._session is not None
        self._session = None
        if was_open:
            logger.log_security_event("lock", "success")

    def reset(self) -> None:
        """Unconditional teardown used by wipe."""
        self._session = None

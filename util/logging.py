"""
Structured audit logging for vault operations.

Every line carries an operation name, a status and a sanitized details dict.
Record content, credentials and PIN material are redacted before formatting.
"""

import logging
from typing import Any, Dict, List

LOGGER_NAME = "nexus_vault"
REDACTED = "[REDACTED]"
MAX_VALUE_LENGTH = 100

# Fields whose values never reach a log line
SENSITIVE_FIELDS = [
    'content', 'credential', 'api_key', 'pin', 'current_pin', 'session_key',
    'secret', 'password', 'token', 'payload'
]

STATUS_LEVELS = {
    "failed": logging.ERROR,
    "error": logging.ERROR,
    "denied": logging.WARNING,
    "degraded": logging.WARNING,
    "warning": logging.WARNING,
}


def _build_logger(name: str) -> logging.Logger:
    vault_logger = logging.getLogger(name)
    vault_logger.setLevel(logging.INFO)

    if not vault_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('%(asctime)s [%(name)s] %(levelname)s %(message)s'))
        vault_logger.addHandler(handler)
    return vault_logger


class StructuredLogger:
    """Audit-style logger shared by the store, security, provider and sync layers."""

    def __init__(self, name: str = LOGGER_NAME):
        self.logger = _build_logger(name)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Emit ``operation``/``status`` at the level the status implies."""
        message = f"op={operation} status={status}"
        if details:
            message += f" details={details}"
        self.logger.log(STATUS_LEVELS.get(status, logging.INFO), message)

    def log_memory_operation(self, operation: str, record_id: str, details: Dict[str, Any] = None,
                             status: str = "success"):
        log_details = {"record_id": record_id}
        log_details.update(sanitize_payload(details or {}))
        self.log_operation(f"memory.{operation}", status, log_details)

    def log_security_event(self, event: str, status: str = "success", details: Dict[str, Any] = None):
        """Lock, unlock, duress and wipe transitions. Never pass PIN material here."""
        self.log_operation(f"security.{event}", status, sanitize_payload(details) if details else {})

    def log_provider_call(self, provider: str, model: str, mode: str, status: str = "success",
                          details: Dict[str, Any] = None):
        log_details = {"provider": provider, "model": model, "mode": mode}
        log_details.update(sanitize_payload(details or {}))
        self.log_operation("provider.complete", status, log_details)

    def log_sync_operation(self, record_id: str, status: str = "success", details: Dict[str, Any] = None):
        log_details = {"record_id": record_id}
        log_details.update(sanitize_payload(details or {}))
        self.log_operation("sync.replicate", status, log_details)

    def warning(self, message: str) -> None:
        self.logger.warning(message)

    def error(self, message: str) -> None:
        self.logger.error(message)


logger = StructuredLogger()


def audit_event(event_type: str, identifiers: Dict[str, Any], payload: Dict[str, Any] = None,
                sensitive_fields: List[str] = None):
    """Record an administrative change. Identifiers are logged as-is, payload values are redacted."""
    log_details = dict(identifiers or {})
    if payload:
        log_details["payload"] = sanitize_payload(payload, sensitive_fields=sensitive_fields)
    logger.log_operation(event_type.replace(".", "_"), "audit", log_details)


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Redact sensitive keys and truncate long strings, recursing through dicts and lists."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        return {
            k: (REDACTED if v is not None and not reveal_sensitive and k in sensitive_fields
                else sanitize_payload(v, reveal_sensitive, sensitive_fields))
            for k, v in payload.items()
        }
    if isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    if isinstance(payload, str) and len(payload) > MAX_VALUE_LENGTH:
        return payload[:MAX_VALUE_LENGTH] + "..."
    return payload

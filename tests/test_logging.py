"""
Audit logging and privacy controls.
"""

import logging

from util.logging import audit_event, logger, sanitize_payload


class TestSanitizePayload:
    def test_sensitive_fields_are_redacted(self):
        payload = {"record_id": "mem-1", "content": "my diary", "credential": "sk-live", "pin": "4242"}
        sanitized = sanitize_payload(payload)

        assert sanitized["record_id"] == "mem-1"
        assert sanitized["content"] == "[REDACTED]"
        assert sanitized["credential"] == "[REDACTED]"
        assert sanitized["pin"] == "[REDACTED]"

    def test_missing_sensitive_value_stays_none(self):
        assert sanitize_payload({"credential": None}) == {"credential": None}

    def test_nested_and_long_values(self):
        sanitized = sanitize_payload({"items": [{"token": "abc"}], "note": "n" * 150})
        assert sanitized["items"] == [{"token": "[REDACTED]"}]
        assert sanitized["note"] == "n" * 100 + "..."

    def test_reveal_sensitive(self):
        assert sanitize_payload({"pin": "4242"}, reveal_sensitive=True) == {"pin": "4242"}


class TestAuditEvent:
    def test_audit_event_redacts_payload(self, caplog):
        with caplog.at_level(logging.INFO, logger="nexus_vault"):
            audit_event("provider.added", {"config_id": "cfg-1"}, {"credential": "sk-live", "kind": "OPENAI"})

        message = caplog.records[-1].getMessage()
        assert "provider_added" in message
        assert "cfg-1" in message
        assert "sk-live" not in message
        assert "[REDACTED]" in message

    def test_failed_operations_log_as_errors(self, caplog):
        with caplog.at_level(logging.INFO, logger="nexus_vault"):
            logger.log_sync_operation("mem-9", "failed", {"error": "timeout", "payload": "ciphertext"})

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert "mem-9" in record.getMessage()
        assert "ciphertext" not in record.getMessage()

    def test_denied_operations_log_as_warnings(self, caplog):
        with caplog.at_level(logging.INFO, logger="nexus_vault"):
            logger.log_operation("ingest", "denied", {"reason": "quota"})
        assert caplog.records[-1].levelno == logging.WARNING

    def test_unlock_logs_never_contain_pin(self, caplog, keychain, clock):
        from nexus.core.security import SecuritySessionManager

        manager = SecuritySessionManager(keychain, clock=clock, dev_mode=False)
        with caplog.at_level(logging.INFO, logger="nexus_vault"):
            manager.set_pin("8642")
            manager.unlock("8642")
            manager.unlock("1357")

        assert caplog.records
        assert all("8642" not in r.getMessage() and "1357" not in r.getMessage() for r in caplog.records)

"""
Kernel tests: security lifecycle, duress isolation, memories, providers, personas and wipe.
"""

from unittest.mock import MagicMock

import pytest

from nexus.core.errors import LockedVault, ProviderUnavailable
from nexus.core.events import (
    VAULT_UPDATED, VAULT_LOCKED, VAULT_UNLOCKED, VAULT_WIPED, NAVIGATE, PIPELINE_STEP
)
from nexus.core.kernel import NO_PROVIDER_MESSAGE, DEFAULT_PERSONA_ID
from nexus.core.schema import (
    OriginKind, PersonaProfile, ProviderKind, StorageMode, UnlockResult, VaultState
)
from nexus.providers.base import RoutingMode

QUOTA = 10_000_000


class Recorder:
    """Collects (event, payload) pairs from the bus."""

    def __init__(self, bus, *event_names):
        self.seen = []
        for name in event_names:
            bus.subscribe(name, self)

    def __call__(self, event, payload):
        self.seen.append((event, payload))

    def names(self):
        return [event for event, _ in self.seen]


def custom_persona(persona_id="pirate"):
    return PersonaProfile(id=persona_id, name="Cap", role="Navigator", tone="Salty",
                          system_prompt="Speak like a sailor.")


class TestLifecycle:
    def test_locked_kernel_rejects_data_operations(self, kernel):
        assert kernel.state == VaultState.LOCKED
        with pytest.raises(LockedVault):
            kernel.ingest("hello", OriginKind.USER_INPUT, True, QUOTA)
        with pytest.raises(LockedVault):
            kernel.search("hello")
        with pytest.raises(LockedVault):
            kernel.list_provider_configs()
        with pytest.raises(LockedVault):
            kernel.generate("hello")

    def test_status_hides_counts_while_locked(self, kernel):
        status = kernel.status()
        assert status["state"] == "LOCKED"
        assert status["record_count"] is None
        assert status["has_pin"] is False

    def test_unlock_and_lock_emit_events(self, kernel, events):
        recorder = Recorder(events, VAULT_UNLOCKED, VAULT_LOCKED)
        kernel.set_pin("4242")

        assert kernel.unlock("4242") == UnlockResult.SUCCESS
        assert kernel.unlock("0001") == UnlockResult.INVALID
        assert kernel.state == VaultState.LOCKED
        kernel.lock()

        assert recorder.names() == [VAULT_UNLOCKED, VAULT_LOCKED]

    def test_records_survive_restart(self, make_kernel):
        first = make_kernel()
        first.set_pin("4242")
        first.unlock("4242")
        record = first.ingest("persisted across restarts", OriginKind.USER_INPUT, True, QUOTA)
        first.close()

        second = make_kernel()
        assert second.unlock("4242") == UnlockResult.SUCCESS
        assert second.get_record(record.id).content == "persisted across restarts"


class TestMemories:
    def test_ingest_emits_update(self, unlocked_kernel, events):
        recorder = Recorder(events, VAULT_UPDATED)
        record = unlocked_kernel.ingest("hello world", OriginKind.USER_INPUT, True, QUOTA)

        assert recorder.seen == [(VAULT_UPDATED, {"action": "ingest", "record_ids": [record.id]})]
        assert unlocked_kernel.status()["record_count"] == 1

    def test_hello_world_search_scenario(self, unlocked_kernel):
        record = unlocked_kernel.ingest("hello world", OriginKind.USER_INPUT, True, quota_bytes=1000)
        results = unlocked_kernel.search("hello", 4)
        assert results[0].record.id == record.id
        assert results[0].record.tags == ["ingest"]

    def test_search_marks_hits_as_accessed(self, unlocked_kernel, clock):
        record = unlocked_kernel.ingest("rent is due on friday", OriginKind.USER_INPUT, True, QUOTA)
        clock.advance(days=3)

        results = unlocked_kernel.search("rent is due on friday")

        assert [r.record.id for r in results] == [record.id]
        assert results[0].record.last_accessed_at == clock.now
        assert unlocked_kernel.get_record(record.id).last_accessed_at == clock.now

    def test_list_records_newest_first(self, unlocked_kernel, clock):
        first = unlocked_kernel.ingest("first note", OriginKind.USER_INPUT, True, QUOTA)
        clock.advance(minutes=1)
        second = unlocked_kernel.ingest("second note", OriginKind.EMAIL_IMPORT, False, QUOTA)

        assert [r.id for r in unlocked_kernel.list_records()] == [second.id, first.id]
        assert [r.id for r in unlocked_kernel.get_records_by_ids([first.id, "mem-missing"])] == [first.id]

    def test_purge(self, unlocked_kernel):
        record = unlocked_kernel.ingest("temporary", OriginKind.USER_INPUT, True, QUOTA)
        assert unlocked_kernel.purge(record.id) is True
        assert unlocked_kernel.purge(record.id) is False
        assert unlocked_kernel.get_record(record.id) is None

    def test_stats(self, unlocked_kernel):
        unlocked_kernel.ingest("mine", OriginKind.USER_INPUT, True, QUOTA)
        unlocked_kernel.ingest("forwarded", OriginKind.EMAIL_IMPORT, False, QUOTA)

        stats = unlocked_kernel.stats()
        assert stats["record_count"] == 2
        assert stats["user_authored_count"] == 1
        assert stats["synced_count"] == 0
        assert stats["by_origin"]["EMAIL_IMPORT"] == 1
        assert stats["size_bytes"] > 0

    def test_ingest_file_navigates_to_library(self, unlocked_kernel, events, tmp_path):
        recorder = Recorder(events, NAVIGATE)
        path = tmp_path / "journal.txt"
        path.write_text("Dear diary", encoding="utf-8")

        record = unlocked_kernel.ingest_file(path, QUOTA)

        assert record.origin == OriginKind.IMPORTED_FILE
        assert record.is_user_authored is False
        assert record.content.startswith("[FILE: journal.txt")
        assert recorder.seen == [(NAVIGATE, {"view": "library"})]


class TestDuress:
    def test_duress_session_is_isolated(self, unlocked_kernel):
        real = unlocked_kernel.ingest("the real secret", OriginKind.USER_INPUT, True, QUOTA)
        unlocked_kernel.lock()

        assert unlocked_kernel.unlock("9999") == UnlockResult.DURESS
        assert unlocked_kernel.state == VaultState.DURESS
        assert unlocked_kernel.list_records() == []
        assert unlocked_kernel.search("the real secret") == []

        decoy = unlocked_kernel.ingest("decoy note", OriginKind.USER_INPUT, True, QUOTA)
        unlocked_kernel.add_provider_config(ProviderKind.OPENAI, credential="sk-decoy", activate=True)
        unlocked_kernel.save_custom_persona(custom_persona())
        unlocked_kernel.set_storage_mode(StorageMode.AUTO_SYNC_ALL)
        assert [r.id for r in unlocked_kernel.list_records()] == [decoy.id]

        unlocked_kernel.lock()
        unlocked_kernel.unlock("4242")

        assert [r.id for r in unlocked_kernel.list_records()] == [real.id]
        assert unlocked_kernel.list_provider_configs() == []
        assert all(not p.is_custom for p in unlocked_kernel.all_personas())
        assert unlocked_kernel.storage_mode == StorageMode.SELECTIVE_MANUAL

    def test_decoy_is_discarded_between_duress_sessions(self, kernel):
        kernel.set_pin("4242")
        kernel.unlock("9999")
        kernel.ingest("gone soon", OriginKind.USER_INPUT, True, QUOTA)
        kernel.lock()

        kernel.unlock("9999")
        assert kernel.list_records() == []

    def test_decoy_store_is_closed_when_discarded(self, kernel):
        kernel.set_pin("4242")
        kernel.unlock("9999")
        first = kernel._decoy.store
        kernel.lock()
        assert first._conn is None

        kernel.unlock("9999")
        second = kernel._decoy.store
        kernel.unlock("4242")
        assert second._conn is None

        kernel.unlock("9999")
        third = kernel._decoy.store
        kernel.wipe_all()
        assert third._conn is None
        assert kernel._decoy is None

    def test_duress_never_syncs(self, make_kernel):
        mirror = MagicMock()
        kernel = make_kernel(mirror=mirror, cloud_entitled=lambda: True)
        kernel.set_pin("4242")
        kernel.unlock("9999")
        record = kernel.ingest("decoy", OriginKind.USER_INPUT, True, QUOTA)

        assert kernel.sync_record(record.id) is False
        mirror.replicate.assert_not_called()

    def test_status_in_duress_reports_decoy(self, unlocked_kernel):
        unlocked_kernel.ingest("real one", OriginKind.USER_INPUT, True, QUOTA)
        unlocked_kernel.unlock("9999")
        status = unlocked_kernel.status()
        assert status["state"] == "DURESS"
        assert status["record_count"] == 0
        assert status["cloud_sync_eligible"] is False

    def test_wipe_from_duress_destroys_real_data(self, unlocked_kernel, events):
        recorder = Recorder(events, VAULT_WIPED, VAULT_LOCKED)
        unlocked_kernel.ingest("real secret", OriginKind.USER_INPUT, True, QUOTA)
        unlocked_kernel.unlock("9999")

        unlocked_kernel.wipe_all()

        assert recorder.names() == [VAULT_WIPED, VAULT_LOCKED]
        assert unlocked_kernel.state == VaultState.LOCKED
        assert not unlocked_kernel.has_pin()
        assert unlocked_kernel.store.count() == 0


class TestWipe:
    def test_wipe_removes_everything(self, unlocked_kernel):
        unlocked_kernel.ingest("something", OriginKind.USER_INPUT, True, QUOTA)
        unlocked_kernel.add_provider_config(ProviderKind.GROQ, credential="gsk", activate=True)
        unlocked_kernel.set_storage_mode(StorageMode.AUTO_SYNC_ALL)

        unlocked_kernel.wipe_all()

        assert unlocked_kernel.state == VaultState.LOCKED
        assert not unlocked_kernel.has_pin()
        assert unlocked_kernel.store.count() == 0

        unlocked_kernel.set_pin("1357")
        unlocked_kernel.unlock("1357")
        assert unlocked_kernel.list_records() == []
        assert unlocked_kernel.list_provider_configs() == []
        assert unlocked_kernel.storage_mode == StorageMode.SELECTIVE_MANUAL

    def test_wipe_survives_store_failure(self, unlocked_kernel):
        unlocked_kernel.ingest("something", OriginKind.USER_INPUT, True, QUOTA)
        unlocked_kernel.store.wipe = MagicMock(side_effect=RuntimeError("disk gone"))

        unlocked_kernel.wipe_all()

        assert unlocked_kernel.state == VaultState.LOCKED
        assert unlocked_kernel.store.count() == 0


class TestCloudSync:
    def test_manual_sync_when_entitled(self, make_kernel):
        mirror = MagicMock()
        mirror.replicate.return_value = True
        kernel = make_kernel(mirror=mirror, cloud_entitled=lambda: True)
        kernel.set_pin("4242")
        kernel.unlock("4242")
        record = kernel.ingest("sync me", OriginKind.USER_INPUT, True, QUOTA)
        mirror.replicate.assert_not_called()

        assert kernel.sync_record(record.id) is True
        assert kernel.get_record(record.id).is_synced is True
        record_id, content, key = mirror.replicate.call_args.args
        assert (record_id, content) == (record.id, "sync me")
        assert key == kernel.security.session_key

    def test_sync_denied_without_entitlement(self, unlocked_kernel):
        record = unlocked_kernel.ingest("stay local", OriginKind.USER_INPUT, True, QUOTA)
        assert unlocked_kernel.sync_record(record.id) is False
        assert unlocked_kernel.get_record(record.id).is_synced is False

    def test_sync_unknown_record(self, unlocked_kernel):
        with pytest.raises(KeyError):
            unlocked_kernel.sync_record("mem-missing")

    def test_auto_sync_replicates_backlog_and_new_records(self, make_kernel):
        kernel = make_kernel(cloud_entitled=lambda: True)
        kernel.set_pin("4242")
        kernel.unlock("4242")
        backlog = kernel.ingest("written before auto sync", OriginKind.USER_INPUT, True, QUOTA)
        assert kernel.get_record(backlog.id).is_synced is False

        kernel.set_storage_mode(StorageMode.AUTO_SYNC_ALL)
        assert kernel.get_record(backlog.id).is_synced is True

        fresh = kernel.ingest("written after", OriginKind.USER_INPUT, True, QUOTA)
        assert kernel.get_record(fresh.id).is_synced is True

    def test_failed_mirror_leaves_record_unsynced(self, make_kernel):
        mirror = MagicMock()
        mirror.replicate.side_effect = RuntimeError("bucket unreachable")
        kernel = make_kernel(mirror=mirror, cloud_entitled=lambda: True)
        kernel.set_pin("4242")
        kernel.unlock("4242")
        record = kernel.ingest("try to sync", OriginKind.USER_INPUT, True, QUOTA)

        assert kernel.sync_record(record.id) is False
        assert kernel.get_record(record.id).is_synced is False


class TestProviders:
    def test_activation_is_exclusive(self, unlocked_kernel):
        first = unlocked_kernel.add_provider_config(ProviderKind.OPENAI, credential="sk-1", activate=True)
        second = unlocked_kernel.add_provider_config(ProviderKind.ANTHROPIC, credential="sk-2")
        assert unlocked_kernel.active_provider_config().id == first.id

        assert unlocked_kernel.set_active_provider(second.id) is True
        active = [c.id for c in unlocked_kernel.list_provider_configs() if c.is_active]
        assert active == [second.id]
        assert unlocked_kernel.set_active_provider("cfg-missing") is False

    def test_delete_provider_config(self, unlocked_kernel):
        config = unlocked_kernel.add_provider_config(ProviderKind.MISTRAL, credential="m")
        assert unlocked_kernel.delete_provider_config(config.id) is True
        assert unlocked_kernel.delete_provider_config(config.id) is False
        assert unlocked_kernel.get_provider_config(config.id) is None

    def test_environment_seeds_default_provider(self, monkeypatch, kernel):
        monkeypatch.setenv("DEFAULT_PROVIDER_API_KEY", "seed-key")
        kernel.set_pin("4242")
        kernel.unlock("4242")

        configs = kernel.list_provider_configs()
        assert len(configs) == 1
        assert configs[0].kind == ProviderKind.GOOGLE
        assert configs[0].is_active is True
        assert configs[0].credential == "seed-key"

        kernel.lock()
        kernel.unlock("4242")
        assert len(kernel.list_provider_configs()) == 1

    def test_no_provider_returns_system_alert(self, unlocked_kernel):
        response = unlocked_kernel.generate("anything at all")
        assert response.text == NO_PROVIDER_MESSAGE
        assert response.usage.total_tokens == 0
        assert response.usage.cost_estimate == 0

    def test_generate_with_active_config(self, unlocked_kernel):
        unlocked_kernel.add_provider_config(ProviderKind.OPENAI, activate=True)
        response = unlocked_kernel.generate("what is due", context=["rent"], provider=None, temperature=0.2)

        assert response.text.startswith("[SIMULATED OPENAI RESPONSE]")
        assert "T=0.2" in response.text
        assert response.usage.routing_mode == RoutingMode.STANDARD

    def test_generate_with_explicit_config_id(self, unlocked_kernel):
        unlocked_kernel.add_provider_config(ProviderKind.OPENAI, activate=True)
        groq = unlocked_kernel.add_provider_config(ProviderKind.GROQ)
        response = unlocked_kernel.generate("hello", provider=groq.id)
        assert response.usage.provider == "GROQ"

        with pytest.raises(KeyError):
            unlocked_kernel.generate("hello", provider="cfg-missing")

    def test_auto_routing(self, unlocked_kernel):
        unlocked_kernel.add_provider_config(ProviderKind.GOOGLE)
        unlocked_kernel.add_provider_config(ProviderKind.GROQ)
        response = unlocked_kernel.generate("hey there")
        assert response.usage.provider == "GROQ"
        assert response.usage.routing_mode == RoutingMode.LIGHTNING

    def test_adapter_failure_propagates(self, make_kernel):
        registry = MagicMock()
        registry.create_adapter.return_value.complete.side_effect = ProviderUnavailable("OPENAI", "HTTP 500")
        kernel = make_kernel(registry=registry)
        kernel.set_pin("4242")
        kernel.unlock("4242")
        kernel.add_provider_config(ProviderKind.OPENAI, credential="sk", activate=True)

        with pytest.raises(ProviderUnavailable):
            kernel.generate("hello", provider=None)

    def test_ask_runs_paced_pipeline(self, unlocked_kernel, events):
        recorder = Recorder(events, PIPELINE_STEP)
        record = unlocked_kernel.ingest("the boiler code is 7731", OriginKind.USER_INPUT, True, QUOTA)
        unlocked_kernel.add_provider_config(ProviderKind.ANTHROPIC, activate=True)

        response = unlocked_kernel.ask("the boiler code is 7731", provider=None)

        assert [payload["step"] for _, payload in recorder.seen] == ["retrieve", "route", "generate", "complete"]
        assert response.related_record_ids == [record.id]
        assert "Context used: YES" in response.text

    def test_ask_while_locked_emits_nothing(self, kernel, events):
        recorder = Recorder(events, PIPELINE_STEP)
        with pytest.raises(LockedVault):
            kernel.ask("anything")
        assert recorder.seen == []


class TestPersonas:
    def test_defaults_and_active(self, unlocked_kernel):
        personas = unlocked_kernel.all_personas()
        assert personas[0].id == DEFAULT_PERSONA_ID
        assert unlocked_kernel.active_persona().id == DEFAULT_PERSONA_ID

        unlocked_kernel.set_active_persona("jarvis-protocol")
        assert unlocked_kernel.active_persona().name == "J.A.R.V.I.S."

        with pytest.raises(KeyError):
            unlocked_kernel.set_active_persona("nobody")

    def test_custom_persona_lifecycle(self, unlocked_kernel):
        saved = unlocked_kernel.save_custom_persona(custom_persona())
        assert saved.is_custom is True
        unlocked_kernel.set_active_persona("pirate")
        assert unlocked_kernel.active_persona().system_directive().startswith("SYSTEM IDENTITY:\nNAME: Cap")

        assert unlocked_kernel.delete_custom_persona("pirate") is True
        assert unlocked_kernel.active_persona().id == DEFAULT_PERSONA_ID
        assert unlocked_kernel.delete_custom_persona("pirate") is False

    def test_builtin_ids_are_reserved(self, unlocked_kernel):
        with pytest.raises(ValueError):
            unlocked_kernel.save_custom_persona(custom_persona(DEFAULT_PERSONA_ID))

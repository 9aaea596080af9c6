"""Tests for the audit trail and the edit/delete gate."""

import pytest

from daily_closing.audit import Actor, AuditAction, BackendAuditLog
from daily_closing.auth import AuthDecision, SharedSecretAuthorizer

ACTOR = Actor(id="u-7", name="Omar", role="manager")


class TestBackendAuditLog:
    """Tests for best-effort audit writes."""

    @pytest.mark.asyncio
    async def test_writes_entry(self, backend):
        audit = BackendAuditLog(backend, collection="audit_logs")

        await audit.log_action(ACTOR, AuditAction.DELETE, "sales", "Deleted daily closing")

        rows = backend.rows("audit_logs")
        assert len(rows) == 1
        assert rows[0]["user_id"] == "u-7"
        assert rows[0]["user_name"] == "Omar"
        assert rows[0]["user_role"] == "manager"
        assert rows[0]["action"] == "delete"
        assert rows[0]["resource"] == "sales"
        assert rows[0]["timestamp"]

    @pytest.mark.asyncio
    async def test_no_actor_skips_write(self, backend):
        audit = BackendAuditLog(backend, collection="audit_logs")

        await audit.log_action(None, AuditAction.CREATE, "sales", "x")

        assert backend.rows("audit_logs") == []

    @pytest.mark.asyncio
    async def test_write_failure_is_swallowed(self, backend):
        """A failed audit write never propagates to the mutation."""
        audit = BackendAuditLog(backend, collection="audit_logs")
        backend.fail_next("insert")

        await audit.log_action(ACTOR, AuditAction.UPDATE, "sales", "x")

        assert backend.rows("audit_logs") == []

    def test_actions_are_the_ledger_mutations(self):
        assert [a.value for a in AuditAction] == ["create", "update", "delete"]

    def test_default_collection_from_settings(self, backend):
        assert BackendAuditLog(backend)._collection == "audit_logs"


class TestSharedSecretAuthorizer:
    """Tests for the shared-code gate."""

    def test_matching_code_granted(self):
        assert SharedSecretAuthorizer("1234").check_secret("1234") is AuthDecision.GRANTED

    def test_wrong_or_missing_code_denied(self):
        gate = SharedSecretAuthorizer("1234")

        assert gate.check_secret("4321") is AuthDecision.DENIED
        assert gate.check_secret("") is AuthDecision.DENIED
        assert gate.check_secret(None) is AuthDecision.DENIED

    def test_defaults_to_configured_secret(self):
        assert SharedSecretAuthorizer().check_secret("2468") is AuthDecision.GRANTED

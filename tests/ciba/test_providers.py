"""Tests for backchannel providers."""

from __future__ import annotations

import json
import logging
import os
import random
import time
from datetime import UTC, datetime, timedelta

import pytest

from trustbridge.ciba.models import BackchannelAuthRequest, BackchannelStatus
from trustbridge.ciba.providers import (
    BackchannelError,
    FileBackchannelProvider,
    InMemoryBackchannelProvider,
    MockBackchannelProvider,
    create_backchannel_provider,
    user_id_from_login_hint,
)


def make_request(login_hint: str = "alice@uni-a.example", age: int = 0, expires_in: int = 300, **kwargs):
    return BackchannelAuthRequest(
        login_hint=login_hint,
        client_id="portal",
        expires_in=expires_in,
        created_at=datetime.now(UTC) - timedelta(seconds=age),
        **kwargs,
    )


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


# ============================================================================
# In-memory provider
# ============================================================================


class TestInMemoryBackchannelProvider:
    """Decisions recorded through approve/deny/fail."""

    def test_initiate_pending(self):
        provider = InMemoryBackchannelProvider()
        request = make_request(scope="openid email")

        provider.initiate(request)
        status = provider.get_status(request.auth_req_id)

        assert status.status == BackchannelStatus.PENDING
        assert status.client_id == "portal"
        assert status.scope == "openid email"
        assert provider.pending() == [request]
        assert len(provider) == 1

    def test_duplicate_auth_req_id(self):
        provider = InMemoryBackchannelProvider()
        request = make_request()
        provider.initiate(request)

        with pytest.raises(BackchannelError, match="Duplicate"):
            provider.initiate(request)

    def test_approve(self):
        provider = InMemoryBackchannelProvider()
        request = make_request()
        provider.initiate(request)

        provider.approve(request.auth_req_id, "alice")
        status = provider.get_status(request.auth_req_id)

        assert status.status == BackchannelStatus.APPROVED
        assert status.user_id == "alice"
        assert provider.pending() == []

    def test_decision_is_final(self):
        provider = InMemoryBackchannelProvider()
        request = make_request()
        provider.initiate(request)
        provider.deny(request.auth_req_id, "not me")

        with pytest.raises(BackchannelError, match="already denied"):
            provider.approve(request.auth_req_id, "alice")

        status = provider.get_status(request.auth_req_id)
        assert status.error_code == "access_denied"
        assert status.error_description == "not me"

    def test_fail(self):
        provider = InMemoryBackchannelProvider()
        request = make_request()
        provider.initiate(request)

        provider.fail(request.auth_req_id, "transaction_failed", "device offline")

        status = provider.get_status(request.auth_req_id)
        assert status.status == BackchannelStatus.ERROR
        assert status.error_code == "transaction_failed"

    def test_unknown_request(self):
        provider = InMemoryBackchannelProvider()

        assert provider.get_status("urn:uuid:missing") is None
        with pytest.raises(BackchannelError, match="Unknown"):
            provider.approve("urn:uuid:missing", "alice")

    def test_pending_request_expires(self):
        provider = InMemoryBackchannelProvider()
        request = make_request(age=60, expires_in=30)
        provider.initiate(request)

        assert provider.get_status(request.auth_req_id).status == BackchannelStatus.EXPIRED
        with pytest.raises(BackchannelError):
            provider.approve(request.auth_req_id, "alice")

    def test_cancel(self):
        provider = InMemoryBackchannelProvider()
        request = make_request()
        provider.initiate(request)

        assert provider.cancel(request.auth_req_id) is True
        assert provider.cancel(request.auth_req_id) is False
        assert provider.get_status(request.auth_req_id) is None

    def test_cleanup_expired(self):
        provider = InMemoryBackchannelProvider()
        old = make_request(age=900)
        fresh = make_request()
        provider.initiate(old)
        provider.initiate(fresh)

        assert provider.cleanup_expired(600) == 1
        assert provider.get_status(old.auth_req_id) is None
        assert provider.get_status(fresh.auth_req_id) is not None

    def test_delivery_modes(self):
        assert InMemoryBackchannelProvider().supported_delivery_modes == frozenset({"poll"})


# ============================================================================
# Mock provider
# ============================================================================


class TestUserIdFromLoginHint:
    @pytest.mark.parametrize(
        "hint,expected",
        [
            ("alice@uni-a.example", "alice"),
            ("alice", "alice"),
            ("@odd", "@odd"),
            (None, "mock-user"),
            ("", "mock-user"),
        ],
    )
    def test_extract(self, hint, expected):
        assert user_id_from_login_hint(hint) == expected


class TestMockBackchannelProvider:
    """Self-deciding provider for demos."""

    def test_approves_after_delay(self):
        clock = FakeClock()
        provider = MockBackchannelProvider(delay=5, rng=random.Random(0), clock=clock)
        request = make_request()
        provider.initiate(request)

        assert provider.get_status(request.auth_req_id).status == BackchannelStatus.PENDING

        clock.now += 5
        status = provider.get_status(request.auth_req_id)
        assert status.status == BackchannelStatus.APPROVED
        assert status.user_id == "alice"

        # The decision sticks on later polls
        assert provider.get_status(request.auth_req_id).status == BackchannelStatus.APPROVED

    def test_denies(self):
        clock = FakeClock()
        provider = MockBackchannelProvider(delay=0, approval_rate=0, rng=random.Random(0), clock=clock)
        request = make_request()
        provider.initiate(request)

        assert provider.get_status(request.auth_req_id).status == BackchannelStatus.DENIED

    def test_errors(self):
        clock = FakeClock()
        provider = MockBackchannelProvider(delay=0, error_rate=100, rng=random.Random(0), clock=clock)
        request = make_request()
        provider.initiate(request)

        status = provider.get_status(request.auth_req_id)
        assert status.status == BackchannelStatus.ERROR
        assert status.error_code == "server_error"

    def test_rates_distribute_outcomes(self):
        clock = FakeClock()
        provider = MockBackchannelProvider(
            delay=0, approval_rate=50, error_rate=10, rng=random.Random(1234), clock=clock
        )
        outcomes = []
        for _ in range(300):
            request = make_request()
            provider.initiate(request)
            outcomes.append(provider.get_status(request.auth_req_id).status)

        assert set(outcomes) == {BackchannelStatus.APPROVED, BackchannelStatus.DENIED, BackchannelStatus.ERROR}
        assert outcomes.count(BackchannelStatus.APPROVED) > outcomes.count(BackchannelStatus.ERROR)

    def test_manual_decision_wins(self):
        clock = FakeClock()
        provider = MockBackchannelProvider(delay=5, rng=random.Random(0), clock=clock)
        request = make_request()
        provider.initiate(request)

        provider.deny(request.auth_req_id)
        clock.now += 10

        assert provider.get_status(request.auth_req_id).status == BackchannelStatus.DENIED

    def test_auto_decide_off(self):
        clock = FakeClock()
        provider = MockBackchannelProvider(delay=0, auto_decide=False, clock=clock)
        request = make_request()
        provider.initiate(request)
        clock.now += 100

        assert provider.get_status(request.auth_req_id).status == BackchannelStatus.PENDING

    def test_cancel_forgets_outcome(self):
        provider = MockBackchannelProvider(delay=0, rng=random.Random(0), clock=FakeClock())
        request = make_request()
        provider.initiate(request)

        assert provider.cancel(request.auth_req_id)
        assert provider._outcomes == {}

    def test_invalid_rates(self):
        with pytest.raises(ValueError):
            MockBackchannelProvider(approval_rate=120)
        with pytest.raises(ValueError):
            MockBackchannelProvider(error_rate=-1)

    def test_warns_on_construction(self, caplog):
        with caplog.at_level(logging.WARNING):
            MockBackchannelProvider()
        assert "Do not use in production" in caplog.text


# ============================================================================
# File provider
# ============================================================================


class TestFileBackchannelProvider:
    """Inbox/outbox exchange through the filesystem."""

    def test_creates_directories(self, tmp_path):
        provider = FileBackchannelProvider(tmp_path / "bc")
        assert provider.inbox.is_dir()
        assert provider.outbox.is_dir()

    def test_initiate_writes_inbox(self, tmp_path):
        provider = FileBackchannelProvider(tmp_path)
        request = make_request(binding_message="4711")

        provider.initiate(request)

        files = list(provider.inbox.glob("*.json"))
        assert len(files) == 1
        assert ":" not in files[0].name
        data = json.loads(files[0].read_text())
        assert data["auth_req_id"] == request.auth_req_id
        assert data["binding_message"] == "4711"

    def test_pending_until_outbox_written(self, tmp_path):
        provider = FileBackchannelProvider(tmp_path)
        request = make_request()
        provider.initiate(request)

        assert provider.get_status(request.auth_req_id).status == BackchannelStatus.PENDING

        outbox_file = provider.outbox / provider._file_name(request.auth_req_id)
        outbox_file.write_text(json.dumps({"status": "APPROVED", "user_id": "alice"}))

        status = provider.get_status(request.auth_req_id)
        assert status.status == BackchannelStatus.APPROVED
        assert status.user_id == "alice"
        assert status.client_id == "portal"

    def test_denied_with_description(self, tmp_path):
        provider = FileBackchannelProvider(tmp_path)
        request = make_request()
        provider.initiate(request)
        (provider.outbox / provider._file_name(request.auth_req_id)).write_text(
            json.dumps(
                {
                    "status": "denied",
                    "error_code": "access_denied",
                    "error_description": "declined on phone",
                    "updated_at": "2026-01-15T10:00:00+00:00",
                }
            )
        )

        status = provider.get_status(request.auth_req_id)

        assert status.status == BackchannelStatus.DENIED
        assert status.error_description == "declined on phone"
        assert status.updated_at == datetime(2026, 1, 15, 10, 0, tzinfo=UTC)

    def test_unknown_status_treated_as_pending(self, tmp_path, caplog):
        provider = FileBackchannelProvider(tmp_path)
        request = make_request()
        provider.initiate(request)
        (provider.outbox / provider._file_name(request.auth_req_id)).write_text('{"status": "maybe"}')

        with caplog.at_level(logging.WARNING):
            assert provider.get_status(request.auth_req_id).status == BackchannelStatus.PENDING
        assert "Unknown status 'maybe'" in caplog.text

    def test_expired_without_decision(self, tmp_path):
        provider = FileBackchannelProvider(tmp_path)
        request = make_request(age=60, expires_in=30)
        provider.initiate(request)

        assert provider.get_status(request.auth_req_id).status == BackchannelStatus.EXPIRED

    def test_unknown_request(self, tmp_path):
        assert FileBackchannelProvider(tmp_path).get_status("urn:uuid:missing") is None

    def test_corrupt_outbox(self, tmp_path):
        provider = FileBackchannelProvider(tmp_path)
        request = make_request()
        provider.initiate(request)
        (provider.outbox / provider._file_name(request.auth_req_id)).write_text("{oops")

        with pytest.raises(BackchannelError):
            provider.get_status(request.auth_req_id)

    def test_cancel(self, tmp_path):
        provider = FileBackchannelProvider(tmp_path)
        request = make_request()
        provider.initiate(request)
        (provider.outbox / provider._file_name(request.auth_req_id)).write_text('{"status": "approved"}')

        assert provider.cancel(request.auth_req_id) is True
        assert provider.cancel(request.auth_req_id) is False
        assert provider.get_status(request.auth_req_id) is None

    def test_cleanup_by_age(self, tmp_path):
        provider = FileBackchannelProvider(tmp_path)
        old, fresh = make_request(), make_request()
        provider.initiate(old)
        provider.initiate(fresh)
        old_path = provider.inbox / provider._file_name(old.auth_req_id)
        stale = time.time() - 3600
        os.utime(old_path, (stale, stale))

        assert provider.cleanup_expired(600) == 1
        assert not old_path.exists()
        assert provider.get_status(fresh.auth_req_id) is not None


# ============================================================================
# Factory
# ============================================================================


class TestCreateBackchannelProvider:
    def test_default_is_memory(self):
        assert type(create_backchannel_provider()) is InMemoryBackchannelProvider

    def test_kinds(self, tmp_path):
        assert isinstance(create_backchannel_provider("mock"), MockBackchannelProvider)
        assert isinstance(create_backchannel_provider("FILE", str(tmp_path)), FileBackchannelProvider)

    def test_from_environment(self, monkeypatch, tmp_path):
        from trustbridge.core.config import clear_config_cache

        monkeypatch.setenv("TRUSTBRIDGE_BACKCHANNEL_PROVIDER", "file")
        monkeypatch.setenv("TRUSTBRIDGE_BACKCHANNEL_DIR", str(tmp_path / "bc"))
        clear_config_cache()

        provider = create_backchannel_provider()

        assert isinstance(provider, FileBackchannelProvider)
        assert provider.base_dir == tmp_path / "bc"

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="Unknown backchannel provider"):
            create_backchannel_provider("carrier-pigeon")

"""Tests for trustbridge.core.logging module."""

from __future__ import annotations

import json
import logging

import pytest

from trustbridge.core.config import clear_config_cache
from trustbridge.core.logging import (
    REDACTED,
    ConsoleFormatter,
    JSONFormatter,
    attempt_context,
    configure_logging,
    get_attempt_id,
    get_log_context,
    redact_params,
)


def _record(message: str = "hello", level: int = logging.INFO, **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="trustbridge.test",
        level=level,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


# ============================================================================
# Attempt context
# ============================================================================


class TestAttemptContext:
    def test_empty_outside_context(self):
        assert get_attempt_id() is None
        assert get_log_context() == {}

    def test_binds_and_restores(self):
        with attempt_context("attempt-1", provider_id="B") as attempt_id:
            assert attempt_id == "attempt-1"
            assert get_log_context() == {"attempt_id": "attempt-1", "provider_id": "B"}
        assert get_attempt_id() is None

    def test_nested_inherits_fields(self):
        """Inner contexts keep the outer provider unless they override it."""
        with attempt_context("outer", provider_id="B"):
            with attempt_context("inner"):
                assert get_log_context() == {"attempt_id": "inner", "provider_id": "B"}
            assert get_attempt_id() == "outer"


# ============================================================================
# Redaction
# ============================================================================


class TestRedactParams:
    """Credentials never reach a log sink."""

    def test_sensitive_keys_masked(self):
        params = {"grant_type": "authorization_code", "code": "abc", "client_secret": "s3cret"}
        redacted = redact_params(params)

        assert redacted["grant_type"] == "authorization_code"
        assert redacted["code"] == REDACTED
        assert redacted["client_secret"] == REDACTED

    def test_token_like_keys_masked(self):
        redacted = redact_params({"access_token": "x", "id_token": "y", "refresh_token": "z"})
        assert set(redacted.values()) == {REDACTED}

    def test_nested_structures(self):
        redacted = redact_params({"outer": {"auth_req_id": "urn:uuid:1"}, "items": [{"password": "p"}]})
        assert redacted["outer"]["auth_req_id"] == REDACTED
        assert redacted["items"][0]["password"] == REDACTED

    def test_long_strings_truncated(self):
        redacted = redact_params({"login_hint": "x" * 600})
        assert len(redacted["login_hint"]) == 503

    def test_input_untouched(self):
        params = {"code": "abc"}
        redact_params(params)
        assert params == {"code": "abc"}


# ============================================================================
# Formatters
# ============================================================================


class TestJSONFormatter:
    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "trustbridge.test"
        assert data["message"] == "hello"
        assert "timestamp" in data
        assert "location" not in data

    def test_includes_attempt_context(self):
        with attempt_context("attempt-42", provider_id="B"):
            data = json.loads(JSONFormatter().format(_record()))
        assert data["attempt_id"] == "attempt-42"
        assert data["provider_id"] == "B"

    def test_copies_routing_extras(self):
        data = json.loads(JSONFormatter().format(_record(network_id="research", hop_count=2, unrelated="x")))

        assert data["network_id"] == "research"
        assert data["hop_count"] == 2
        assert "unrelated" not in data

    def test_warning_has_location(self):
        data = json.loads(JSONFormatter().format(_record(level=logging.WARNING)))
        assert data["location"].endswith(":10")


class TestConsoleFormatter:
    def test_prefixes_short_attempt_id(self):
        formatter = ConsoleFormatter(use_colors=False)
        with attempt_context("abcdef0123456789"):
            line = formatter.format(_record())
        assert line.startswith("[abcdef01] ")
        assert line.endswith("trustbridge.test: hello")

    def test_no_prefix_outside_attempt(self):
        assert not ConsoleFormatter(use_colors=False).format(_record()).startswith("[")


# ============================================================================
# configure_logging
# ============================================================================


class TestConfigureLogging:
    def test_sets_level_and_json_handler(self, restore_root_logger):
        configure_logging(level="DEBUG", json_format=True)

        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, JSONFormatter)

    def test_unknown_level_falls_back_to_info(self, restore_root_logger):
        configure_logging(level="chatty", json_format=False)

        assert restore_root_logger.level == logging.INFO
        assert isinstance(restore_root_logger.handlers[0].formatter, ConsoleFormatter)

    def test_format_from_settings(self, restore_root_logger, clean_env):
        clean_env.setenv("TRUSTBRIDGE_LOG_FORMAT", "text")
        clean_env.setenv("TRUSTBRIDGE_LOG_LEVEL", "WARNING")
        clear_config_cache()

        configure_logging()

        assert restore_root_logger.level == logging.WARNING
        assert isinstance(restore_root_logger.handlers[0].formatter, ConsoleFormatter)

    def test_writes_json_log_file(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "trustbridge.log"

        configure_logging(level="INFO", json_format=False, log_file=str(log_file))
        logging.getLogger("trustbridge.test").info("to file")
        for handler in restore_root_logger.handlers:
            handler.flush()

        assert json.loads(log_file.read_text().splitlines()[-1])["message"] == "to file"

# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for kahla_notify/logging.py."""

import logging

from kahla_notify.logging import SecretFilter, configure_logging


def _record(msg: str, *args: object) -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg=msg,
        args=args,
        exc_info=None,
    )


class TestSecretFilter:
    """Tests for SecretFilter class."""

    def test_filter_returns_true(self) -> None:
        """Filter should always return True (never suppress records)."""
        assert SecretFilter().filter(_record("test message")) is True

    def test_no_secrets_no_redaction(self) -> None:
        record = _record("Login as user: bot@example.com")
        SecretFilter().filter(record)
        assert record.msg == "Login as user: bot@example.com"

    def test_redacts_message(self) -> None:
        SecretFilter.register_secret("hunter2")
        record = _record("Password: hunter2")
        SecretFilter().filter(record)
        assert record.msg == "Password: [REDACTED]"

    def test_redacts_string_args(self) -> None:
        SecretFilter.register_secret("aB3dE5gH7jK9mN1pQ3sT5vX7zA9cE1gH")
        record = _record(
            "Send new token %s to %d",
            "aB3dE5gH7jK9mN1pQ3sT5vX7zA9cE1gH",
            42,
        )
        SecretFilter().filter(record)
        assert record.args == ("[REDACTED]", 42)
        assert record.getMessage() == "Send new token [REDACTED] to 42"

    def test_overlapping_secrets_redact_fully(self) -> None:
        """The longer secret wins when one contains the other."""
        SecretFilter.register_secret("abc")
        SecretFilter.register_secret("abcdef")
        record = _record("x abcdef y")
        SecretFilter().filter(record)
        assert record.msg == "x [REDACTED] y"

    def test_empty_secret_ignored(self) -> None:
        SecretFilter.register_secret("")
        record = _record("nothing to hide")
        SecretFilter().filter(record)
        assert record.msg == "nothing to hide"

    def test_unregister_stops_redaction(self) -> None:
        SecretFilter.register_secret("password")
        SecretFilter.register_secret("old-token")
        SecretFilter.unregister_secret("old-token")

        record = _record("password old-token")
        SecretFilter().filter(record)

        assert record.msg == "[REDACTED] old-token"
        assert SecretFilter.secret_count() == 1

    def test_unregister_unknown_is_noop(self) -> None:
        SecretFilter.unregister_secret("never-registered")
        assert SecretFilter.secret_count() == 0

    def test_unregister_last_secret_disables_pattern(self) -> None:
        SecretFilter.register_secret("only")
        SecretFilter.unregister_secret("only")
        record = _record("only")
        SecretFilter().filter(record)
        assert record.msg == "only"

    def test_register_is_idempotent(self) -> None:
        SecretFilter.register_secret("hunter2")
        SecretFilter.register_secret("hunter2")
        assert SecretFilter.secret_count() == 1

    def test_clear_secrets(self) -> None:
        SecretFilter.register_secret("hunter2")
        SecretFilter.clear_secrets()
        record = _record("hunter2")
        SecretFilter().filter(record)
        assert record.msg == "hunter2"


class TestConfigureLogging:
    """Tests for configure_logging."""

    def setup_method(self) -> None:
        root = logging.getLogger()
        self._saved_handlers = root.handlers[:]
        self._saved_level = root.level

    def teardown_method(self) -> None:
        root = logging.getLogger()
        root.handlers = self._saved_handlers
        root.setLevel(self._saved_level)

    def test_sets_level_and_single_handler(self) -> None:
        configure_logging(level=logging.DEBUG)
        configure_logging(level=logging.WARNING)

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1

    def test_secret_filter_attached(self) -> None:
        configure_logging()
        handler = logging.getLogger().handlers[0]
        assert any(isinstance(f, SecretFilter) for f in handler.filters)

    def test_secret_filter_optional(self) -> None:
        configure_logging(add_secret_filter=False)
        handler = logging.getLogger().handlers[0]
        assert handler.filters == []

    def test_custom_format(self) -> None:
        configure_logging(format_string="%(levelname)s:%(message)s")
        handler = logging.getLogger().handlers[0]
        assert handler.formatter is not None
        assert handler.formatter._fmt == "%(levelname)s:%(message)s"

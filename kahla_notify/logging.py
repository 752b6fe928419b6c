# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Root logger setup and redaction of relay credentials.

The relay handles two kinds of credentials that must never reach log
output: the account password, fixed for the process lifetime, and the
relay tokens, which come and go as peers ask for new ones.  Both are
registered with ``SecretFilter``.  Tokens are unregistered again when
they are revoked or their conversation leaves the registry, so the set
of redacted strings tracks the live registry instead of growing with
every ``"refresh token"`` request.

Usage:
    # In the entry point
    from kahla_notify.logging import configure_logging
    configure_logging(level=logging.DEBUG if args.debug else logging.INFO)

    # In relay modules
    logger = logging.getLogger(__name__)
    logger.info("Send new token OK (conversation %d)", conversation_id)
"""

import logging
import re
import threading
from typing import ClassVar


REDACTED = "[REDACTED]"

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class SecretFilter(logging.Filter):
    """Handler filter replacing registered credentials with ``[REDACTED]``.

    The secret set is process-wide.  Registration happens from the
    session and registry worker threads, so writers serialize on a lock
    while ``filter`` reads the compiled pattern without locking.

    Example:
        SecretFilter.register_secret(config.password)
        logger.info("Login with %s", config.password)
        # Output: "Login with [REDACTED]"
    """

    _secrets: ClassVar[set[str]] = set()
    _pattern: ClassVar[re.Pattern[str] | None] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def filter(self, record: logging.LogRecord) -> bool:
        pattern = self._pattern
        if pattern is None:
            return True
        record.msg = pattern.sub(REDACTED, str(record.msg))
        if isinstance(record.args, tuple):
            record.args = tuple(
                pattern.sub(REDACTED, arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True

    @classmethod
    def register_secret(cls, secret: str) -> None:
        """Start redacting ``secret``.  Empty strings are ignored."""
        if not secret:
            return
        with cls._lock:
            if secret in cls._secrets:
                return
            cls._secrets.add(secret)
            cls._compile()

    @classmethod
    def unregister_secret(cls, secret: str) -> None:
        """Stop redacting ``secret``, e.g. a token that was revoked."""
        with cls._lock:
            if secret not in cls._secrets:
                return
            cls._secrets.discard(secret)
            cls._compile()

    @classmethod
    def secret_count(cls) -> int:
        with cls._lock:
            return len(cls._secrets)

    @classmethod
    def clear_secrets(cls) -> None:
        """Forget every secret.  Used by tests."""
        with cls._lock:
            cls._secrets.clear()
            cls._pattern = None

    @classmethod
    def _compile(cls) -> None:
        # Caller holds _lock. Longest first so a token containing another
        # secret is replaced whole.
        if not cls._secrets:
            cls._pattern = None
            return
        ordered = sorted(cls._secrets, key=len, reverse=True)
        cls._pattern = re.compile("|".join(map(re.escape, ordered)))


def configure_logging(
    level: int = logging.INFO,
    format_string: str | None = None,
    add_secret_filter: bool = True,
) -> None:
    """Install a single stderr handler on the root logger.

    Calling it again replaces the previous handler, so ``--debug`` can
    reconfigure the level without duplicating output.

    Args:
        level: Root logger level.
        format_string: Record format; ``DEFAULT_FORMAT`` if None.
        add_secret_filter: Attach ``SecretFilter`` to the handler.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))
    if add_secret_filter:
        handler.addFilter(SecretFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.setLevel(level)
    root.addHandler(handler)

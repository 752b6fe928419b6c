# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Single-flight guard for named background operations.

A trigger either starts the operation on a background thread or, if a
run with the same key is already in flight, is dropped.  Nothing is
queued and triggers are not coalesced beyond "ignore while busy".

Usage:
    gate = TaskGate()
    gate.try_run("refresh-conversations", service.refresh_from_friend_list)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable


logger = logging.getLogger(__name__)


class TaskGate:
    """Keyed try-acquire slots, one per operation name.

    Different keys run concurrently with each other; a key never runs
    concurrently with itself.  Background threads are daemons and are
    not joined, so a stuck operation cannot block process exit.
    """

    def __init__(self) -> None:
        self._slots: dict[str, threading.Lock] = {}
        self._slots_lock = threading.Lock()

    def _slot(self, key: str) -> threading.Lock:
        with self._slots_lock:
            slot = self._slots.get(key)
            if slot is None:
                slot = self._slots[key] = threading.Lock()
            return slot

    def is_running(self, key: str) -> bool:
        """Return True if an execution for ``key`` is in flight."""
        return self._slot(key).locked()

    def try_run(self, key: str, fn: Callable[[], object]) -> bool:
        """Start ``fn`` in the background unless ``key`` is busy.

        Args:
            key: Operation name.
            fn: Operation to run.  Its return value is ignored and any
                exception is logged.

        Returns:
            True if the operation was started, False if it was skipped.
        """
        slot = self._slot(key)
        if not slot.acquire(blocking=False):
            logger.info("Task '%s' already in progress, ignoring trigger", key)
            return False

        logger.info("Task '%s' started", key)
        thread = threading.Thread(
            target=self._run,
            args=(key, fn, slot),
            daemon=True,
            name=f"TaskGate-{key}",
        )
        try:
            thread.start()
        except RuntimeError:
            slot.release()
            raise
        return True

    @staticmethod
    def _run(key: str, fn: Callable[[], object], slot: threading.Lock) -> None:
        try:
            fn()
        except Exception:
            logger.exception("Task '%s' failed", key)
        finally:
            slot.release()
            logger.debug("Task '%s' finished", key)

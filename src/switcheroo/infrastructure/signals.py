"""Process signal sink — graceful termination of superseded processes."""

from __future__ import annotations

import os
import signal
from typing import Protocol

from switcheroo.domain.errors import SignalError


class SignalSink(Protocol):
    """Delivers a graceful-shutdown request to a process."""

    def terminate(self, pid: int) -> None:
        """Ask *pid* to shut down. Raises SignalError on failure."""
        ...


class OsSignalSink:
    """SignalSink that sends SIGTERM (never SIGKILL) via ``os.kill``."""

    def __init__(self, signum: int = signal.SIGTERM) -> None:
        self._signum = signum

    def terminate(self, pid: int) -> None:
        try:
            os.kill(pid, self._signum)
        except OSError as exc:
            raise SignalError(f"kill -{int(self._signum)} {pid}: {exc}", pid=pid) from exc

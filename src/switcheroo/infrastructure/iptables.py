"""Rule engine adapter — runs iptables list/insert/delete commands.

The handover core only sees the :class:`RuleEngine` protocol, so tests can
swap in a fake and deployments can choose how iptables is invoked (directly
as root, or through ``sudo``).
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from collections.abc import Sequence
from typing import Protocol

from switcheroo.domain.errors import RuleEngineError

logger = logging.getLogger(__name__)


class RuleEngine(Protocol):
    """Control-plane capability used by the rule store and coordinator.

    Implementations are synchronous and raise RuleEngineError on failure.
    """

    def list(self, chain: str) -> str:
        """Return the raw, line-numbered listing of *chain*."""
        ...

    def insert(self, chain: str, incoming_port: int, redirect_port: int, tag: str) -> None:
        """Insert a redirect rule at the head of *chain*."""
        ...

    def delete(self, chain: str, number: int) -> None:
        """Delete rule *number* from *chain*."""
        ...


class IptablesRuleEngine:
    """RuleEngine backed by the ``iptables`` binary.

    Args:
        command: Argument prefix used to invoke iptables, e.g.
            ``["iptables"]`` or ``["sudo", "/usr/sbin/iptables"]``.
        table: The NAT table holding redirect rules.
    """

    def __init__(self, command: Sequence[str] = ("iptables",), *, table: str = "nat") -> None:
        self._command = list(command)
        self._table = table

    @classmethod
    def locate(
        cls,
        *,
        sudo: bool = False,
        binary: str = "iptables",
        sudo_binary: str = "sudo",
        table: str = "nat",
    ) -> IptablesRuleEngine:
        """Resolve iptables (and optionally sudo) on PATH.

        Without *sudo* the calling process must already be root.
        """
        iptables = shutil.which(binary)
        if iptables is None:
            raise RuleEngineError(f"failed to locate {binary} binary", binary=binary)
        command = [iptables]
        if sudo:
            sudo_path = shutil.which(sudo_binary)
            if sudo_path is None:
                raise RuleEngineError(f"failed to locate {sudo_binary} binary", binary=sudo_binary)
            command.insert(0, sudo_path)
        return cls(command, table=table)

    @property
    def command(self) -> list[str]:
        return list(self._command)

    def list(self, chain: str) -> str:
        return self._run("-t", self._table, "-L", chain, "-n", "--line-numbers")

    def insert(self, chain: str, incoming_port: int, redirect_port: int, tag: str) -> None:
        self._run(
            "-t", self._table,
            "-I", chain,
            "-p", "tcp",
            "--dport", str(incoming_port),
            "-j", "REDIRECT", "--to-ports", str(redirect_port),
            "-m", "comment", "--comment", tag,
        )  # fmt: skip

    def delete(self, chain: str, number: int) -> None:
        self._run("-t", self._table, "-D", chain, str(number))

    def _run(self, *args: str) -> str:
        """Run iptables with *args*; return combined stdout/stderr. Raises on failure."""
        argv = [*self._command, *args]
        logger.debug("exec %s", " ".join(argv))
        try:
            result = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as exc:
            output = (exc.output or "").strip()
            msg = f"{' '.join(args)} exited with status {exc.returncode}"
            if output:
                msg = f"{msg}: {output}"
            raise RuleEngineError(msg, returncode=exc.returncode, output=output) from exc
        except OSError as exc:
            raise RuleEngineError(f"failed to execute {argv[0]}: {exc}") from exc
        return result.stdout

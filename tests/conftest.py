"""Shared pytest fixtures and test doubles for switcheroo tests."""

from __future__ import annotations

import errno
import logging
from collections.abc import Generator, Iterator
from dataclasses import dataclass
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from switcheroo.config.models import HandoverConfig, PortRange
from switcheroo.domain.errors import RuleEngineError, SignalError
from switcheroo.domain.rules import Chain
from switcheroo.domain.tags import format_tag
from switcheroo.services.handover import HandoverService

NAMESPACE = "test"
INCOMING_PORT = 9999
OWN_PID = 4242

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


@dataclass
class FakeEntry:
    dport: int
    to_port: int
    comment: str


class FakeRuleEngine:
    """In-memory NAT table that numbers rules the way iptables does.

    Inserting puts a rule at position 1 and shifts the rest up; deleting
    rule N shifts every later rule down by one. Deleting a number past the
    end of the chain fails, so deleting in the wrong order is detectable.
    """

    def __init__(self) -> None:
        self.chains: dict[str, list[FakeEntry]] = {str(c): [] for c in Chain}
        self.calls: list[tuple[object, ...]] = []
        self.fail_list: set[str] = set()
        self.fail_insert: set[str] = set()
        self.fail_delete_ports: set[int] = set()

    # --- seeding helpers ---

    def seed(
        self,
        chain: Chain | str,
        port: int,
        pid: int,
        *,
        namespace: str = NAMESPACE,
        dport: int = INCOMING_PORT,
    ) -> None:
        """Append a tagged rule (as a previous generation would have inserted it)."""
        self.chains[str(chain)].append(FakeEntry(dport, port, format_tag(namespace, port, pid)))

    def seed_foreign(self, chain: Chain | str, comment: str = "", *, to_port: int = 8080) -> None:
        self.chains[str(chain)].append(FakeEntry(80, to_port, comment))

    def ports(self, chain: Chain | str) -> list[int]:
        return [entry.to_port for entry in self.chains[str(chain)]]

    def comments(self, chain: Chain | str) -> list[str]:
        return [entry.comment for entry in self.chains[str(chain)]]

    # --- RuleEngine protocol ---

    def list(self, chain: str) -> str:
        self.calls.append(("list", str(chain)))
        if str(chain) in self.fail_list:
            raise RuleEngineError(f"iptables: No chain/target/match by that name ({chain})")
        lines = [
            f"Chain {chain} (policy ACCEPT)",
            "num  target     prot opt source               destination",
        ]
        for number, entry in enumerate(self.chains[str(chain)], start=1):
            comment = f" /* {entry.comment} */" if entry.comment else ""
            lines.append(
                f"{number:<4} REDIRECT   tcp  --  0.0.0.0/0            0.0.0.0/0"
                f"            tcp dpt:{entry.dport}{comment} redir ports {entry.to_port}"
            )
        return "\n".join(lines) + "\n"

    def insert(self, chain: str, incoming_port: int, redirect_port: int, tag: str) -> None:
        self.calls.append(("insert", str(chain), incoming_port, redirect_port, tag))
        if str(chain) in self.fail_insert:
            raise RuleEngineError(f"iptables: insert into {chain} refused")
        self.chains[str(chain)].insert(0, FakeEntry(incoming_port, redirect_port, tag))

    def delete(self, chain: str, number: int) -> None:
        self.calls.append(("delete", str(chain), number))
        entries = self.chains[str(chain)]
        if not 1 <= number <= len(entries):
            raise RuleEngineError(f"iptables: Index of deletion too big ({chain} {number})")
        if entries[number - 1].to_port in self.fail_delete_ports:
            raise RuleEngineError(f"iptables: delete {chain} {number} refused")
        del entries[number - 1]


class FakeSignalSink:
    """Records terminate() calls; pids in ``fail_pids`` raise SignalError."""

    def __init__(self) -> None:
        self.terminated: list[int] = []
        self.fail_pids: set[int] = set()

    def terminate(self, pid: int) -> None:
        if pid in self.fail_pids:
            raise SignalError(f"kill -15 {pid}: No such process", pid=pid)
        self.terminated.append(pid)


class FakeBinder:
    """Stand-in for bind_listener.

    Ports in ``busy`` fail with EADDRINUSE; ports in ``errors`` fail with the
    mapped errno. Everything else "binds" and returns a mock socket.
    """

    def __init__(self, busy: set[int] | None = None, errors: dict[int, int] | None = None) -> None:
        self.busy = busy or set()
        self.errors = errors or {}
        self.attempted: list[int] = []

    def __call__(self, port: int, host: str = "") -> MagicMock:
        self.attempted.append(port)
        if port in self.busy:
            raise OSError(errno.EADDRINUSE, "Address already in use")
        if port in self.errors:
            raise OSError(self.errors[port], "bind failed")
        sock = MagicMock(name=f"listener:{port}")
        sock.getsockname.return_value = ("0.0.0.0", port)
        return sock


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _restore_logging_state() -> Generator[None]:
    """Undo logging configuration done by CLI invocations so it cannot leak between tests."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    sw = logging.getLogger("switcheroo")
    sw_level = sw.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    sw.setLevel(sw_level)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def engine() -> FakeRuleEngine:
    return FakeRuleEngine()


@pytest.fixture
def signals() -> FakeSignalSink:
    return FakeSignalSink()


@pytest.fixture
def binder() -> FakeBinder:
    return FakeBinder()


@pytest.fixture
def config() -> HandoverConfig:
    """Network-only handover config on a 10-port range."""
    return HandoverConfig(
        namespace=NAMESPACE,
        incoming_port=INCOMING_PORT,
        port_range=PortRange(min=40400, max=40409),
    )


@pytest.fixture
def both_chains_config() -> HandoverConfig:
    return HandoverConfig(
        namespace=NAMESPACE,
        incoming_port=INCOMING_PORT,
        port_range=PortRange(min=40400, max=40409),
        chains=frozenset({Chain.NETWORK, Chain.LOOPBACK}),
    )


@pytest.fixture
def service(
    config: HandoverConfig, engine: FakeRuleEngine, signals: FakeSignalSink
) -> HandoverService:
    """HandoverService wired to fakes, running as pid 4242."""
    return HandoverService(config, rule_engine=engine, signal_sink=signals, pid=OWN_PID)


@pytest.fixture
def _isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Run in an empty temp dir with no switcheroo env vars or config file.

    Use via ``@pytest.mark.usefixtures("_isolated_cwd")`` on command test
    classes.
    """
    import os

    for key in list(os.environ):
        if key.startswith("SWITCHEROO_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    yield


@pytest.fixture
def cli_engine(engine: FakeRuleEngine, monkeypatch: pytest.MonkeyPatch) -> FakeRuleEngine:
    """Make the CLI use the fake engine instead of locating iptables."""
    from switcheroo.infrastructure.iptables import IptablesRuleEngine

    monkeypatch.setattr(IptablesRuleEngine, "locate", lambda **kwargs: engine)
    return engine

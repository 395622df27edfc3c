"""HandoverService — two-phase Begin/Finalize takeover plus standalone Cleanup.

Pipeline:
  begin():    DISCOVER → ALLOCATE → (caller starts serving on the listener)
  finalize(): INSERT → REDISCOVER → DELETE STALE → SIGNAL
  cleanup():  DISCOVER → DELETE ALL (stop at first failure)

Inserting at the head of each chain is the cutover point: from then on new
connections to the incoming port reach the new process. Everything after it
is best-effort housekeeping, so its failures become warnings rather than
errors. Cleanup is the opposite: deleting rules is its whole job, so the
first failure aborts it.

Two processes finalizing the same namespace at once are not coordinated;
safety rests on iptables applying each insert/delete atomically and on the
kernel refusing to bind one port twice.
"""

from __future__ import annotations

import socket
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from switcheroo.domain.errors import (
    CleanupDeleteError,
    DiscoveryError,
    RuleEngineError,
    RuleInstallError,
    SignalError,
    StaleCleanupError,
)
from switcheroo.domain.rules import Chain, Rule, format_rules
from switcheroo.domain.tags import format_tag
from switcheroo.infrastructure.sockets import bind_listener
from switcheroo.services.base import BaseService, StageLogger
from switcheroo.services.ports import Binder, allocate_port
from switcheroo.services.result import ServiceError, ServiceResult
from switcheroo.services.rule_store import RuleStore

if TYPE_CHECKING:
    from switcheroo.config.models import HandoverConfig
    from switcheroo.infrastructure.iptables import RuleEngine


class HandoverState(StrEnum):
    """Lifecycle of one handover."""

    IDLE = "idle"
    BOUND = "bound"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class Handover:
    """A bound-but-not-yet-routed process generation, returned by ``begin()``.

    Start serving on :attr:`listener`, then call :meth:`finalize` to route
    the incoming port here and retire the previous generation.
    """

    service: HandoverService
    listener: socket.socket
    port: int
    pid: int
    existing_rules: list[Rule] = field(default_factory=list)
    state: HandoverState = HandoverState.BOUND

    def finalize(self) -> ServiceResult:
        return self.service._finalize(self)


class HandoverService(BaseService):
    """Coordinates redirect-rule handover for one namespace."""

    def __init__(self, config: HandoverConfig, *, rule_engine: RuleEngine, **kwargs: Any) -> None:
        super().__init__(config, rule_engine=rule_engine, **kwargs)
        self._store = RuleStore(config, rule_engine)

    # ------------------------------------------------------------------
    # Begin
    # ------------------------------------------------------------------

    def begin(self, *, bind: Binder = bind_listener, host: str = "") -> Handover:
        """Discover current rules and claim a free private port.

        No traffic is routed to the returned listener until ``finalize()``.
        Raises DiscoveryError, BindError or PortExhaustedError.
        """
        log = self._stage_logger("start")

        rules = self._store.discover()
        if rules:
            log.info("Existing rules found: %s (n=%d)", format_rules(rules), len(rules))

        port, listener = allocate_port(
            self._store.ports_in_use(rules),
            self._config.port_range,
            bind=bind,
            host=host,
            log=log,
        )

        warnings: list[str] = []
        self._dispatch_event(
            "post_begin",
            {
                "namespace": self._config.namespace,
                "port": port,
                "existing_rules": [rule.model_dump(mode="json") for rule in rules],
            },
            warnings,
        )
        for warning in warnings:
            log.warning(warning)

        return Handover(service=self, listener=listener, port=port, pid=self._pid, existing_rules=rules)

    # ------------------------------------------------------------------
    # Finalize
    # ------------------------------------------------------------------

    def _finalize(self, handover: Handover) -> ServiceResult:
        op = "finalize"
        log = self._stage_logger("finalize")
        meta = self._meta("finalize")

        if handover.state is not HandoverState.BOUND:
            return ServiceResult(
                ok=False,
                op=op,
                error=ServiceError(
                    code="INVALID_STATE",
                    message=f"cannot finalize a handover in state {handover.state}",
                    detail={"state": str(handover.state)},
                ),
                meta=meta,
            )
        handover.state = HandoverState.FINALIZING
        warnings: list[str] = []

        # INSERT (the cutover point)
        tag = format_tag(self._config.namespace, handover.port, handover.pid)
        installed: list[Chain] = []
        for chain in self._config.enabled_chains:
            try:
                self._rule_engine.insert(chain, self._config.incoming_port, handover.port, tag)
            except RuleEngineError as exc:
                handover.state = HandoverState.FAILED
                failure = RuleInstallError(
                    f"installing rule in chain {chain} failed: {exc.message}",
                    failed_chain=str(chain),
                    installed_chains=[str(c) for c in installed],
                )
                log.error(failure.message)
                detail: dict[str, Any] = {}
                if installed and self._config.rollback_partial_install:
                    detail["rolled_back"] = self._rollback(handover.port, log, warnings)
                return ServiceResult(
                    ok=False,
                    op=op,
                    warnings=warnings,
                    error=ServiceError.from_exception(failure, **detail),
                    meta=meta,
                )
            installed.append(chain)

        log.info(
            "Installed iptables %s rule for routing :%d -> :%d",
            "+".join(installed),
            self._config.incoming_port,
            handover.port,
        )

        # REDISCOVER
        try:
            rules = self._store.discover()
        except DiscoveryError as exc:
            handover.state = HandoverState.FAILED
            log.error("Traffic was cut over but stale rules could not be listed: %s", exc.message)
            return ServiceResult(
                ok=False,
                op=op,
                error=ServiceError.from_exception(exc, port=handover.port),
                meta=meta,
            )

        # DELETE STALE
        rules_deleted = 0
        kill_set: dict[int, None] = {}
        for rule in rules:
            if rule.port == handover.port:
                continue
            try:
                self._rule_engine.delete(rule.chain, rule.number)
            except RuleEngineError as exc:
                failure = StaleCleanupError(f"deleting rule {rule} failed: {exc.message}")
                log.error(failure.message)
                warnings.append(failure.message)
            else:
                rules_deleted += 1
            kill_set.setdefault(rule.pid, None)

        # SIGNAL
        signaled: list[int] = []
        for pid in kill_set:
            if pid == handover.pid:
                log.warning("Stale rule owned by this process (pid %d); not signaling", pid)
                continue
            if pid <= 1:
                log.warning("Stale rule carries reserved pid %d; not signaling", pid)
                warnings.append(f"not signaling reserved pid {pid}")
                continue
            try:
                self._signal_sink.terminate(pid)
            except SignalError as exc:
                log.warning("Signaling pid %d failed: %s", pid, exc.message)
                warnings.append(exc.message)
            else:
                signaled.append(pid)

        log.info(
            "rules deleted: %d / processes signaled: %d / DONE", rules_deleted, len(signaled)
        )
        handover.state = HandoverState.DONE

        self._dispatch_event(
            "post_finalize",
            {
                "namespace": self._config.namespace,
                "port": handover.port,
                "rules_deleted": rules_deleted,
                "processes_signaled": signaled,
            },
            warnings,
        )

        return ServiceResult(
            ok=True,
            op=op,
            data={
                "port": handover.port,
                "incoming_port": self._config.incoming_port,
                "chains": [str(c) for c in installed],
                "rules_deleted": rules_deleted,
                "processes_signaled": len(signaled),
                "pids": signaled,
            },
            warnings=warnings,
            meta=meta,
        )

    def _rollback(self, port: int, log: StageLogger, warnings: list[str]) -> list[str]:
        """Delete rules already inserted for *port*. Returns the removed rules."""
        try:
            rules = self._store.discover()
        except DiscoveryError as exc:
            log.warning("Rollback skipped; listing rules failed: %s", exc.message)
            warnings.append(f"rollback skipped: {exc.message}")
            return []

        removed: list[str] = []
        for rule in rules:
            if rule.port != port:
                continue
            try:
                self._rule_engine.delete(rule.chain, rule.number)
            except RuleEngineError as exc:
                log.warning("Rollback of rule %s failed: %s", rule, exc.message)
                warnings.append(f"rollback of rule {rule} failed: {exc.message}")
            else:
                removed.append(str(rule))
        log.info("Rolled back %d partially installed rule(s)", len(removed))
        return removed

    # ------------------------------------------------------------------
    # Cleanup / inspection
    # ------------------------------------------------------------------

    def cleanup(self) -> ServiceResult:
        """Delete every rule of the namespace. Never signals processes."""
        op = "cleanup"
        log = self._stage_logger("cleanup")
        meta = self._meta("cleanup")

        try:
            rules = self._store.discover()
        except DiscoveryError as exc:
            return ServiceResult(ok=False, op=op, error=ServiceError.from_exception(exc), meta=meta)

        deleted: list[Rule] = []
        for rule in rules:
            log.info("deleting rule %s", rule)
            try:
                self._rule_engine.delete(rule.chain, rule.number)
            except RuleEngineError as exc:
                failure = CleanupDeleteError(
                    f"deleting rule {rule} failed: {exc.message}",
                    rule=str(rule),
                    rules_deleted=len(deleted),
                )
                log.error(failure.message)
                return ServiceResult(
                    ok=False,
                    op=op,
                    error=ServiceError.from_exception(failure),
                    meta=meta,
                )
            deleted.append(rule)

        warnings: list[str] = []
        self._dispatch_event(
            "post_cleanup",
            {"namespace": self._config.namespace, "rules_deleted": len(deleted)},
            warnings,
        )

        return ServiceResult(
            ok=True,
            op=op,
            data={
                "rules_deleted": len(deleted),
                "items": [rule.model_dump(mode="json") for rule in deleted],
            },
            warnings=warnings,
            meta=meta,
        )

    def list_rules(self) -> ServiceResult:
        """Report the namespace's rules in deletion order."""
        op = "rules"
        meta = self._meta("rules")
        try:
            rules = self._store.discover()
        except DiscoveryError as exc:
            return ServiceResult(ok=False, op=op, error=ServiceError.from_exception(exc), meta=meta)

        return ServiceResult(
            ok=True,
            op=op,
            data={
                "count": len(rules),
                "items": [rule.model_dump(mode="json") for rule in rules],
            },
            meta=meta,
        )

"""BaseService — shared foundation for switcheroo services.

Every service receives the immutable :class:`HandoverConfig` plus the
external capabilities it may touch (rule engine, signal sink, plugins).
Services never cache control-plane state between calls.
"""

from __future__ import annotations

import logging
import os
from collections.abc import MutableMapping
from typing import TYPE_CHECKING, Any

from switcheroo.infrastructure.signals import OsSignalSink

if TYPE_CHECKING:
    from switcheroo.config.models import HandoverConfig
    from switcheroo.infrastructure.iptables import RuleEngine
    from switcheroo.infrastructure.signals import SignalSink
    from switcheroo.plugins.manager import PluginManager

logger = logging.getLogger(__name__)


class StageLogger(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Attach ``namespace``, ``pid`` and ``stage`` to every record.

    A logger without handlers (or with a ``NullHandler``) is a valid no-op
    sink; nothing here depends on records being emitted.
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, Any]:
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {})}
        return msg, kwargs


class BaseService:
    """Base for service-layer classes.

    Usage::

        class HandoverService(BaseService):
            def cleanup(self) -> ServiceResult:
                log = self._stage_logger("cleanup")
                ...
    """

    def __init__(
        self,
        config: HandoverConfig,
        *,
        rule_engine: RuleEngine,
        signal_sink: SignalSink | None = None,
        plugins: PluginManager | None = None,
        logger: logging.Logger | None = None,
        pid: int | None = None,
    ) -> None:
        self._config = config
        self._rule_engine = rule_engine
        self._signal_sink: SignalSink = signal_sink or OsSignalSink()
        self._plugins = plugins
        self._logger = logger or logging.getLogger("switcheroo.handover")
        self._pid = os.getpid() if pid is None else pid

    @property
    def config(self) -> HandoverConfig:
        return self._config

    @property
    def pid(self) -> int:
        return self._pid

    def _stage_logger(self, stage: str) -> StageLogger:
        return StageLogger(
            self._logger,
            {"namespace": self._config.namespace, "pid": self._pid, "stage": stage},
        )

    def _meta(self, stage: str) -> dict[str, Any]:
        return {"namespace": self._config.namespace, "pid": self._pid, "stage": stage}

    def _dispatch_event(self, hook_name: str, payload: dict[str, Any], warnings: list[str]) -> None:
        """Call a plugin hook. No-op if no plugin manager was given.

        INVARIANT: Plugin failures are warnings, never errors.
        """
        if self._plugins is None:
            return
        try:
            getattr(self._plugins.hook, hook_name)(**payload)
        except Exception:
            logger.debug("Plugin hook %s failed", hook_name, exc_info=True)
            warnings.append(f"Plugin hook {hook_name} failed")

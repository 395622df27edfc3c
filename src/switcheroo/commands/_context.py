"""AppContext — shared Click context for all commands.

Created once by the root CLI group and flows to all subcommands via
``@click.pass_obj``.  Provides lazy HandoverService construction and
centralized result emission (stdout/stderr routing + exit codes).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import click

from switcheroo.domain.errors import SwitcherooError
from switcheroo.output.formatters import OutputSettings, format_result

if TYPE_CHECKING:
    from switcheroo.config.settings import SwitcherooSettings
    from switcheroo.plugins.manager import PluginManager
    from switcheroo.services.handover import HandoverService
    from switcheroo.services.result import ServiceResult

logger = logging.getLogger(__name__)


class AppContext:
    """Shared context flowing through Click's command hierarchy.

    Subcommands access it via ``@click.pass_obj``.  The rule engine is
    located lazily so ``--help`` and ``--version`` never look up iptables.
    """

    def __init__(self, settings: SwitcherooSettings) -> None:
        self.settings = settings
        self._plugins: PluginManager | None = None
        self._service: HandoverService | None = None

        from switcheroo.config.logging import configure_logging

        configure_logging(
            verbose=settings.verbose,
            log_json=settings.log_json,
            json_output=settings.json_output,
        )

    @property
    def plugins(self) -> PluginManager:
        """Entry-point plugins (loaded on first access)."""
        if self._plugins is None:
            from switcheroo.plugins.manager import PluginManager

            self._plugins = PluginManager()
            names = self._plugins.discover_and_load()
            logger.debug("Plugins loaded: %s", ", ".join(names) or "none")
        return self._plugins

    @property
    def service(self) -> HandoverService:
        """The handover service for the configured namespace."""
        if self._service is None:
            from switcheroo.infrastructure.iptables import IptablesRuleEngine
            from switcheroo.services.handover import HandoverService

            ipt = self.settings.iptables
            try:
                engine = IptablesRuleEngine.locate(
                    sudo=ipt.sudo,
                    binary=ipt.binary,
                    sudo_binary=ipt.sudo_binary,
                    table=ipt.table,
                )
            except SwitcherooError as exc:
                raise click.ClickException(exc.message) from exc
            self._service = HandoverService(
                self.settings.handover,
                rule_engine=engine,
                plugins=self.plugins,
            )
        return self._service

    def emit(self, result: ServiceResult) -> None:
        """Format and output a ServiceResult with correct exit semantics.

        * Success (``result.ok``): writes to stdout, returns normally.
          Warnings are emitted to stderr so they don't pollute piped output.
        * Failure: writes to stderr, exits with code 1.
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        output = format_result(result, settings=settings)
        if result.ok:
            click.echo(output)
            # In JSON mode, warnings are already in the serialized payload.
            if not settings.json_output:
                for warning in result.warnings:
                    click.echo(f"WARNING: {warning}", err=True)
        else:
            click.echo(output, err=True)
            raise SystemExit(1)

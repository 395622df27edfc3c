"""Root CLI group for switcheroo with global flags and command registration."""

from __future__ import annotations

from typing import Any

import click
from pydantic import ValidationError

from switcheroo import __version__
from switcheroo.commands import register_commands
from switcheroo.commands._context import AppContext
from switcheroo.config.models import HandoverConfig
from switcheroo.config.settings import SwitcherooSettings
from switcheroo.domain.errors import SwitcherooError
from switcheroo.domain.rules import Chain


def _handover_overrides(
    namespace: str | None,
    incoming_port: int | None,
    port_min: int | None,
    port_max: int | None,
) -> dict[str, Any]:
    """Partial ``[handover]`` dict holding only the flags that were given."""
    overrides: dict[str, Any] = {}
    if namespace is not None:
        overrides["namespace"] = namespace
    if incoming_port is not None:
        overrides["incoming_port"] = incoming_port
    port_range: dict[str, int] = {}
    if port_min is not None:
        port_range["min"] = port_min
    if port_max is not None:
        port_range["max"] = port_max
    if port_range:
        overrides["port_range"] = port_range
    return overrides


def _apply_chain_flags(
    settings: SwitcherooSettings,
    network: bool | None,
    loopback: bool | None,
) -> SwitcherooSettings:
    """Toggle chains on top of the configured set; unset flags keep their value."""
    if network is None and loopback is None:
        return settings
    chains = set(settings.handover.chains)
    for chain, flag in ((Chain.NETWORK, network), (Chain.LOOPBACK, loopback)):
        if flag is True:
            chains.add(chain)
        elif flag is False:
            chains.discard(chain)
    handover = HandoverConfig.model_validate(
        {**settings.handover.model_dump(), "chains": frozenset(chains)}
    )
    return settings.model_copy(update={"handover": handover})


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="switcheroo")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-q", "--quiet", is_flag=True, help="Minimal output.")
@click.option("-v", "--verbose", is_flag=True, help="Detailed output with debug logs.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
@click.option("-n", "--namespace", default=None, help="Namespace tag for this service's rules.")
@click.option("-p", "--incoming-port", type=int, default=None, help="Public port to redirect.")
@click.option("--port-min", type=int, default=None, help="Lowest private port.")
@click.option("--port-max", type=int, default=None, help="Highest private port.")
@click.option(
    "--network/--no-network", default=None, help="Route network traffic (PREROUTING chain)."
)
@click.option(
    "--loopback/--no-loopback", default=None, help="Route localhost traffic (OUTPUT chain)."
)
@click.option("--sudo/--no-sudo", default=None, help="Run iptables through sudo.")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
    namespace: str | None,
    incoming_port: int | None,
    port_min: int | None,
    port_max: int | None,
    network: bool | None,
    loopback: bool | None,
    sudo: bool | None,
) -> None:
    """switcheroo: zero-downtime restarts via iptables redirects."""
    ctx.ensure_object(dict)
    sections: dict[str, Any] = {}
    handover = _handover_overrides(namespace, incoming_port, port_min, port_max)
    if handover:
        sections["handover"] = handover
    if sudo is not None:
        sections["iptables"] = {"sudo": sudo}

    try:
        settings = SwitcherooSettings.from_cli(
            config_path=config_path,
            json_output=json_output,
            quiet=quiet,
            verbose=verbose,
            log_json=log_json,
            **sections,
        )
        settings = _apply_chain_flags(settings, network, loopback)
    except SwitcherooError as exc:
        raise click.ClickException(exc.message) from exc
    except ValidationError as exc:
        raise click.ClickException(f"invalid configuration: {exc}") from exc

    ctx.obj = AppContext(settings)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)

"""Command: list this namespace's redirect rules."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from switcheroo.commands._context import AppContext


@click.command(
    epilog="""\
\b
Examples:
  switcheroo --namespace api rules
  switcheroo --namespace api --loopback rules
  switcheroo --json --sudo rules""",
)
@click.pass_obj
def rules(app: AppContext) -> None:
    """List redirect rules tagged with the namespace, in deletion order."""
    app.emit(app.service.list_rules())

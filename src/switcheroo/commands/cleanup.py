"""Command: remove every redirect rule of the namespace."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from switcheroo.commands._context import AppContext


@click.command(
    epilog="""\
\b
Examples:
  switcheroo --namespace api cleanup
  switcheroo --namespace api --network --loopback --sudo cleanup
  switcheroo --json cleanup""",
)
@click.pass_obj
def cleanup(app: AppContext) -> None:
    """Delete all rules of the namespace, stopping at the first failure.

    Processes owning the rules are not signaled.
    """
    app.emit(app.service.cleanup())

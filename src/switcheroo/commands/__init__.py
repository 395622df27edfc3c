"""Subcommand modules for switcheroo.

Provides register_commands() which uses deferred imports to keep
``switcheroo --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all standalone commands on the root CLI group."""
    from switcheroo.commands.cleanup import cleanup
    from switcheroo.commands.rules import rules
    from switcheroo.commands.serve import serve

    cli.add_command(rules)
    cli.add_command(cleanup)
    cli.add_command(serve)

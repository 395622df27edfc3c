"""Pluggy hook specifications for handover lifecycle events.

Hooks are called synchronously after the corresponding operation has
finished its external mutations, so a plugin can never delay a cutover.
"""

from __future__ import annotations

from typing import Any

import pluggy

hookspec = pluggy.HookspecMarker("switcheroo")


class SwitcherooHookSpec:
    """Hook specifications for the switcheroo plugin system."""

    @hookspec
    def post_begin(
        self,
        namespace: str,
        port: int,
        existing_rules: list[dict[str, Any]],
    ) -> None:
        """Called after a private port has been bound."""

    @hookspec
    def post_finalize(
        self,
        namespace: str,
        port: int,
        rules_deleted: int,
        processes_signaled: list[int],
    ) -> None:
        """Called after traffic has been cut over and stale owners signaled."""

    @hookspec
    def post_cleanup(self, namespace: str, rules_deleted: int) -> None:
        """Called after all of a namespace's rules were removed."""

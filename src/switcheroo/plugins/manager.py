"""Handover plugin loading.

Plugins come from the ``switcheroo.plugins`` entry-point group (loaded with
pluggy's setuptools loader) or are registered directly, as the tests do.
"""

from __future__ import annotations

import inspect
import logging

import pluggy

from switcheroo.plugins.hookspecs import SwitcherooHookSpec

PROJECT_NAME = "switcheroo"
ENTRY_POINT_GROUP = "switcheroo.plugins"

hookimpl = pluggy.HookimplMarker(PROJECT_NAME)

logger = logging.getLogger(__name__)


class PluginManager:
    """Holds the handover hook specs and the plugins implementing them."""

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(SwitcherooHookSpec)

    def discover_and_load(self) -> list[str]:
        """Load entry-point plugins. Returns the names of all registered plugins."""
        self._pm.load_setuptools_entrypoints(ENTRY_POINT_GROUP)
        for name, plugin_cls in self._class_plugins():
            self._instantiate(name, plugin_cls)
        return self.list_plugin_names()

    def register_plugin(self, plugin: object, name: str | None = None) -> None:
        """Register a plugin instance directly."""
        resolved_name = name or plugin.__class__.__name__
        self._pm.register(plugin, name=resolved_name)
        logger.debug("Registered plugin: %s", resolved_name)

    @property
    def hook(self) -> pluggy.HookRelay:
        return self._pm.hook

    def list_plugin_names(self) -> list[str]:
        return [self._pm.get_name(p) or p.__class__.__name__ for p in self._pm.get_plugins()]

    def _class_plugins(self) -> list[tuple[str, type]]:
        """Plugins registered as bare classes that carry hook implementations.

        An entry point may name a class rather than an instance; its hook
        methods would then be called without ``self``.
        """
        found = []
        for plugin in self._pm.get_plugins():
            if inspect.isclass(plugin) and self._has_hook_impls(plugin):
                found.append((self._pm.get_name(plugin) or plugin.__name__, plugin))
        return found

    def _instantiate(self, name: str, plugin_cls: type) -> None:
        self._pm.unregister(name=name)
        try:
            instance = plugin_cls()
        except Exception:
            logger.warning("Failed to instantiate entry-point plugin %s", name, exc_info=True)
            return
        self._pm.register(instance, name=name)
        logger.debug("Instantiated entry-point plugin: %s", name)

    @staticmethod
    def _has_hook_impls(cls: type) -> bool:
        """True if any public attribute of *cls* carries the ``switcheroo_impl`` marker."""
        return any(
            getattr(member, f"{PROJECT_NAME}_impl", None)
            for attr, member in inspect.getmembers(cls, callable)
            if not attr.startswith("_")
        )

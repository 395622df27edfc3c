"""Rule store — reads this namespace's rules from the control plane.

The store is a view, not a cache: every :meth:`RuleStore.discover` call
re-lists each enabled chain, because rule numbers are only meaningful at
the instant of the query.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from switcheroo.domain.errors import DiscoveryError, RuleEngineError
from switcheroo.domain.rules import Rule, sort_for_deletion
from switcheroo.domain.tags import parse_rules

if TYPE_CHECKING:
    from switcheroo.config.models import HandoverConfig
    from switcheroo.infrastructure.iptables import RuleEngine


class RuleStore:
    """Discovers tagged rules for one namespace across the enabled chains."""

    def __init__(self, config: HandoverConfig, rule_engine: RuleEngine) -> None:
        self._config = config
        self._rule_engine = rule_engine

    def discover(self) -> list[Rule]:
        """Return every rule of the namespace, safe to delete front to back.

        Raises DiscoveryError if a chain cannot be listed, and RuleParseError
        (a DiscoveryError) if a tagged line is malformed.
        """
        rules: list[Rule] = []
        for chain in self._config.enabled_chains:
            try:
                output = self._rule_engine.list(chain)
            except RuleEngineError as exc:
                raise DiscoveryError(
                    f"listing chain {chain} failed: {exc.message}", chain=str(chain)
                ) from exc
            rules.extend(parse_rules(output, self._config.namespace, chain))
        return sort_for_deletion(rules)

    @staticmethod
    def ports_in_use(rules: list[Rule]) -> set[int]:
        """Ports referenced by *rules*, as returned by :meth:`discover`."""
        return {rule.port for rule in rules}

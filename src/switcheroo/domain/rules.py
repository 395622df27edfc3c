"""Redirect rule model and deletion ordering.

A rule number is a chain-relative position assigned by iptables. Deleting
rule N shifts every later rule in the same chain down by one, so a snapshot
of rules stays valid only if it is consumed in descending number order.

INVARIANT: Every deleter consumes rules through :func:`sort_for_deletion`.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum

from pydantic import BaseModel, Field


class Chain(StrEnum):
    """NAT chains a redirect rule can live in.

    Network and loopback traffic traverse different chains, so a loopback
    rule never affects traffic from the outside and vice versa.
    """

    NETWORK = "PREROUTING"
    LOOPBACK = "OUTPUT"


CHAIN_ORDER: tuple[Chain, ...] = (Chain.NETWORK, Chain.LOOPBACK)


def ordered_chains(chains: Iterable[Chain]) -> list[Chain]:
    """Return *chains* in the fixed processing order (network first)."""
    selected = set(chains)
    return [chain for chain in CHAIN_ORDER if chain in selected]


class Rule(BaseModel):
    """A tagged redirect rule as observed by a single discovery query."""

    model_config = {"frozen": True}

    chain: Chain
    number: int = Field(ge=1)
    port: int
    pid: int

    def __str__(self) -> str:
        return f"[chain={self.chain};num={self.number};port={self.port};pid={self.pid}]"


def sort_for_deletion(rules: Iterable[Rule]) -> list[Rule]:
    """Order rules so deleting them front to back never invalidates a number.

    Descending by rule number. The sort is stable, so rules from different
    chains that share a number keep their discovery order.

    Examples:
        >>> nums = [Rule(chain=Chain.NETWORK, number=n, port=1, pid=1) for n in (42, 1, 420, 240)]
        >>> [r.number for r in sort_for_deletion(nums)]
        [420, 240, 42, 1]
    """
    return sorted(rules, key=lambda rule: rule.number, reverse=True)


def format_rules(rules: Iterable[Rule]) -> str:
    """Render rules as a comma-joined list for log lines."""
    return ",".join(str(rule) for rule in rules)

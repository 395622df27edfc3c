"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, switcheroo.toml only contains
overrides. A typical service needs only ``[handover] namespace`` and
``incoming_port``.

Validation failures raise :class:`ConfigurationError` directly (pydantic
lets non-ValueError exceptions propagate), so a bad namespace is reported
before any iptables command runs.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from switcheroo.domain.errors import ConfigurationError
from switcheroo.domain.rules import Chain, ordered_chains
from switcheroo.domain.tags import validate_namespace

PORT_MIN = 1
PORT_MAX = 65535

_CHAIN_ALIASES: dict[str, Chain] = {
    "network": Chain.NETWORK,
    "loopback": Chain.LOOPBACK,
    "localhost": Chain.LOOPBACK,
}


def _check_port(name: str, value: int) -> int:
    if not PORT_MIN <= value <= PORT_MAX:
        raise ConfigurationError(f"{name} {value} is outside {PORT_MIN}-{PORT_MAX}")
    return value


class PortRange(BaseModel):
    """Inclusive range of private ports a new process may bind."""

    model_config = {"frozen": True}

    min: int = 40400
    max: int = 40499

    @model_validator(mode="after")
    def _check_bounds(self) -> PortRange:
        _check_port("port range min", self.min)
        _check_port("port range max", self.max)
        if self.min > self.max:
            raise ConfigurationError(f"invalid port range [{self.min}:{self.max}]")
        return self

    @property
    def size(self) -> int:
        return self.max - self.min + 1

    def __str__(self) -> str:
        return f"[{self.min}:{self.max}]"


class HandoverConfig(BaseModel):
    """[handover] section — everything one handover needs to know.

    Immutable for the lifetime of a handover.
    """

    model_config = {"frozen": True}

    namespace: str = "default"
    incoming_port: int = 8080
    port_range: PortRange = Field(default_factory=PortRange)
    chains: frozenset[Chain] = frozenset({Chain.NETWORK})
    rollback_partial_install: bool = False

    @field_validator("namespace")
    @classmethod
    def _check_namespace(cls, value: str) -> str:
        return validate_namespace(value)

    @field_validator("incoming_port")
    @classmethod
    def _check_incoming_port(cls, value: int) -> int:
        return _check_port("incoming port", value)

    @field_validator("chains", mode="before")
    @classmethod
    def _resolve_chain_names(cls, value: Any) -> Any:
        """Accept chain names (``PREROUTING``) or aliases (``network``)."""
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple, set, frozenset)):
            return value
        resolved: list[Any] = []
        for item in value:
            if isinstance(item, str) and item.lower() in _CHAIN_ALIASES:
                resolved.append(_CHAIN_ALIASES[item.lower()])
            else:
                resolved.append(item)
        return frozenset(resolved)

    @field_validator("chains")
    @classmethod
    def _check_chains(cls, value: frozenset[Chain]) -> frozenset[Chain]:
        if not value:
            raise ConfigurationError("at least one chain (network or loopback) must be enabled")
        return value

    @property
    def enabled_chains(self) -> list[Chain]:
        """Enabled chains in processing order."""
        return ordered_chains(self.chains)


class IptablesConfig(BaseModel):
    """[iptables] section."""

    model_config = {"frozen": True}

    binary: str = "iptables"
    sudo: bool = False
    sudo_binary: str = "sudo"
    table: str = "nat"


class ServeConfig(BaseModel):
    """[serve] section — the sample HTTP server."""

    model_config = {"frozen": True}

    host: str = ""
    self_check_attempts: int = 50
    self_check_interval: float = 0.005
    shutdown_timeout: float = 60.0

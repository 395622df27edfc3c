"""Error taxonomy for handover operations.

Every error carries a stable ``code`` that the service layer copies into
:class:`~switcheroo.services.result.ServiceError` payloads.

Fatal errors (abort the calling operation):
- ConfigurationError, DiscoveryError, RuleParseError, BindError,
  PortExhaustedError, RuleInstallError, CleanupDeleteError.

Non-fatal (logged and recorded as warnings after cutover):
- StaleCleanupError, SignalError.
"""

from __future__ import annotations

from typing import Any


class SwitcherooError(Exception):
    """Base class for all switcheroo errors."""

    code = "SWITCHEROO_ERROR"

    def __init__(self, message: str, **detail: Any) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ConfigurationError(SwitcherooError):
    """Invalid configuration, raised before any external interaction."""

    code = "CONFIGURATION_INVALID"


class RuleEngineError(SwitcherooError):
    """A control-plane command (list/insert/delete) failed."""

    code = "RULE_ENGINE_FAILED"


class DiscoveryError(SwitcherooError):
    """Listing the rules of a chain failed."""

    code = "DISCOVERY_FAILED"


class RuleParseError(DiscoveryError):
    """A line carrying this namespace's tag has a malformed numeric field."""

    code = "RULE_PARSE_FAILED"


class BindError(SwitcherooError):
    """Binding a listener failed for a reason other than address-in-use."""

    code = "BIND_FAILED"


class PortExhaustedError(SwitcherooError):
    """A full sweep of the port range found no bindable port."""

    code = "PORT_EXHAUSTED"


class RuleInstallError(SwitcherooError):
    """Inserting the redirect rule into a chain failed."""

    code = "RULE_INSTALL_FAILED"


class StaleCleanupError(SwitcherooError):
    """Deleting a superseded rule failed during finalize."""

    code = "STALE_CLEANUP_FAILED"


class SignalError(SwitcherooError):
    """Delivering the termination signal to a process failed."""

    code = "SIGNAL_FAILED"


class CleanupDeleteError(SwitcherooError):
    """Deleting a rule failed during standalone cleanup."""

    code = "CLEANUP_DELETE_FAILED"

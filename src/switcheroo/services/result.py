"""ServiceResult and ServiceError — the universal service contract.

INVARIANT: Service-layer operations report through ServiceResult.
The one exception is ``HandoverService.begin()``, which hands the caller a
live socket and therefore raises instead.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from switcheroo.domain.errors import SwitcherooError


class ServiceError(BaseModel):
    """Structured error payload within a ServiceResult."""

    model_config = {"frozen": True}

    code: str
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: SwitcherooError, **detail: Any) -> ServiceError:
        """Copy code, message and detail from a switcheroo exception."""
        return cls(code=exc.code, message=exc.message, detail={**exc.detail, **detail})


class ServiceResult(BaseModel):
    """Universal return type for service operations.

    Attributes:
        ok: Whether the operation succeeded.
        op: Name of the operation (e.g. ``"finalize"``).
        data: Operation-specific payload on success.
        warnings: Non-fatal issues encountered during the operation.
        error: Structured error if ``ok`` is False.
        meta: Optional metadata (namespace, pid, etc.).
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None

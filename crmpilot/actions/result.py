"""Uniform result envelope returned by every operation."""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class ActionResult:
    """Outcome of one dispatched operation.

    Attributes:
        success: Whether the operation completed
        description: One short sentence for the user
        payload: Operation data, including side effects
            (created ids, ``draftCreated``, ``navigation``)
        error_kind: ValidationError / NotFoundError / ProviderUnavailable /
            InternalError on failure, None on success
    """

    success: bool
    description: str
    payload: Optional[dict[str, Any]] = field(default_factory=dict)
    error_kind: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "description": self.description,
            "payload": self.payload,
            "errorKind": self.error_kind,
        }


def ok(description: str, /, **payload: Any) -> ActionResult:
    return ActionResult(success=True, description=description, payload=payload)


def failure(description: str, error_kind: str = "InternalError") -> ActionResult:
    return ActionResult(success=False, description=description, payload=None, error_kind=error_kind)

"""Error taxonomy of the compliance core.

Storage and pydantic errors are translated into these types before they
leave the core, so callers only ever handle ``RopaError`` subclasses.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import pydantic


class RopaError(Exception):
    """Base exception for all compliance-core errors."""


class NotFoundError(RopaError):
    """Record is absent, or belongs to another organization.

    Both cases produce the same message so tenant existence never leaks.
    """

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ValidationError(RopaError):
    """Malformed input. ``field_errors`` maps field name to messages."""

    def __init__(self, message: str, field_errors: dict[str, list[str]] | None = None) -> None:
        super().__init__(message)
        self.field_errors = field_errors or {}

    @classmethod
    def from_pydantic(cls, exc: pydantic.ValidationError) -> ValidationError:
        field_errors: dict[str, list[str]] = {}
        for err in exc.errors():
            loc = ".".join(str(part) for part in err["loc"]) or "__root__"
            field_errors.setdefault(loc, []).append(err["msg"])
        summary = "; ".join(f"{name}: {', '.join(msgs)}" for name, msgs in field_errors.items())
        return cls(f"Invalid input: {summary}", field_errors)


class CycleError(RopaError):
    """A hierarchy mutation would create a loop."""

    def __init__(self, recipient_id: Any, parent_id: Any) -> None:
        super().__init__(f"Setting {parent_id} as parent of {recipient_id} would create a circular reference")
        self.recipient_id = recipient_id
        self.parent_id = parent_id


class ConfigurationError(RopaError):
    """A precondition for a computation is missing. Fatal to the call, never retried."""


class ConflictError(RopaError):
    """A uniqueness or referential constraint was violated."""


class CancelledError(RopaError):
    """A traversal was aborted by its caller's cancellation token or deadline."""

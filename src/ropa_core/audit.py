"""SHA-256 hash-chained change records for compliance entities.

Each organization owns its own chain, so one tenant's history can be
verified (and exported) without reading another tenant's events.
"""

from __future__ import annotations

import hashlib
import json
import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ropa_core.enums import AuditEventType  # noqa: TC001 - runtime needed by Pydantic

GENESIS_HASH = "0" * 64


class AuditEvent(BaseModel):
    """An immutable change record linked to its predecessor by hash."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    organization_id: uuid.UUID
    event_type: AuditEventType
    entity_type: str = Field(min_length=1, max_length=100)
    entity_id: str = Field(min_length=1, max_length=200)
    actor_id: str = Field(min_length=1, max_length=200)
    description: str = Field(default="")
    details: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    previous_hash: str = Field(default=GENESIS_HASH, max_length=64)
    event_hash: str = Field(default="", max_length=64)

    def compute_hash(self) -> str:
        payload = {
            "organization_id": str(self.organization_id),
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "description": self.description,
            "details": self.details,
            "occurred_at": self.occurred_at.isoformat(),
            "previous_hash": self.previous_hash,
        }
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def seal(self) -> AuditEvent:
        self.event_hash = self.compute_hash()
        return self

    def verify(self) -> bool:
        return self.event_hash == self.compute_hash()


def verify_chain(events: list[AuditEvent]) -> bool:
    """Check hashes and links of one organization's events, oldest first."""
    if not events:
        return True

    if events[0].previous_hash != GENESIS_HASH:
        return False

    organization_id = events[0].organization_id
    for i, event in enumerate(events):
        if event.organization_id != organization_id:
            return False
        if not event.verify():
            return False
        if i > 0 and event.previous_hash != events[i - 1].event_hash:
            return False

    return True

# jurisdiction/services/normalization.py
"""
Field normalization and store error classification.

Nothing reaches the store before it has been through ``validate_and_normalize``
(creates) or ``normalize_update`` (partial updates).
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel

from jurisdiction.exceptions import (
    ConflictError,
    JurisdictionError,
    NotFoundError,
    OptimisticLockError,
    StoreUnavailableError,
    ValidationError,
)
from jurisdiction.schemas.hierarchy import NodeDetails, NodeUpdate
from jurisdiction.services.store import (
    ForeignKeyViolation,
    RecordNotFound,
    StoreConnectionError,
    StoreError,
    UniqueViolation,
)

CODE_PATTERN = re.compile(r"^[A-Z0-9_-]+$")

NAME_REQUIRED = "Name is required"
CODE_FORMAT = "Code can only contain letters, numbers, hyphens, and underscores"

DEFAULT_LOCK_TOLERANCE = timedelta(seconds=1)


class NormalizedNode(BaseModel):
    name: str
    code: Optional[str] = None
    description: Optional[str] = None


def normalize_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError(NAME_REQUIRED, {"field": "name"})
    return name


def normalize_code(code: Optional[str]) -> Optional[str]:
    """Trims and uppercases a code. Blank codes become None, never ''."""
    if code is None:
        return None
    code = code.strip().upper()
    if not code:
        return None
    if not CODE_PATTERN.match(code):
        raise ValidationError(CODE_FORMAT, {"field": "code"})
    return code


def normalize_description(description: Optional[str]) -> Optional[str]:
    if description is None:
        return None
    return description.strip() or None


def validate_and_normalize(payload: NodeDetails) -> NormalizedNode:
    return NormalizedNode(
        name=normalize_name(payload.name),
        code=normalize_code(payload.code),
        description=normalize_description(payload.description),
    )


def normalize_update(payload: NodeUpdate) -> Dict[str, Any]:
    """Normalizes only the fields the caller actually sent."""
    sent = payload.model_fields_set
    changes: Dict[str, Any] = {}
    if "name" in sent:
        changes["name"] = normalize_name(payload.name)
    if "code" in sent:
        changes["code"] = normalize_code(payload.code)
    if "description" in sent:
        changes["description"] = normalize_description(payload.description)
    if "admin_id" in sent:
        changes["admin_id"] = payload.admin_id
    if "active" in sent and payload.active is not None:
        changes["active"] = payload.active
    return changes


def _as_utc(value: datetime) -> datetime:
    # Mongo hands back naive UTC datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def check_optimistic_lock(
    stored: datetime,
    expected: Optional[datetime],
    entity: str,
    tolerance: timedelta = DEFAULT_LOCK_TOLERANCE,
) -> None:
    if expected is None:
        return
    if abs(_as_utc(stored) - _as_utc(expected)) >= tolerance:
        raise OptimisticLockError(
            entity,
            {
                "stored_updated_at": _as_utc(stored).isoformat(),
                "expected_updated_at": _as_utc(expected).isoformat(),
            },
        )


def classify_store_error(exc: StoreError, entity: str) -> JurisdictionError:
    """Maps a store failure onto the error taxonomy. ``entity`` is lowercase."""
    title = entity[0].upper() + entity[1:]
    if isinstance(exc, UniqueViolation):
        return ConflictError(f"{title} with this code already exists")
    if isinstance(exc, ForeignKeyViolation):
        return ConflictError(f"Cannot delete {entity}: has dependent records")
    if isinstance(exc, RecordNotFound):
        return NotFoundError(f"{title} not found")
    if isinstance(exc, StoreConnectionError):
        return StoreUnavailableError("The data store is temporarily unavailable")
    return JurisdictionError(str(exc))

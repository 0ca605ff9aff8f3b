"""
Input validation applied before any adapter is called.

Each validator returns the cleaned value or raises InvalidInputError /
DatabaseError(INVALID_INPUT); the store turns those into envelopes without
retrying.
"""
from datetime import date, datetime
from typing import Any, Dict, List

from pydantic import ValidationError

from ..exceptions import DatabaseError, ErrorCode, InvalidInputError
from ..medications.schemas import MedicationUpdate, NewMedication


def _error_details(exc: ValidationError) -> List[Dict[str, Any]]:
    return [
        {"field": ".".join(str(part) for part in error.get("loc", ())), "message": error.get("msg")}
        for error in exc.errors()
    ]


def _invalid(exc: ValidationError, operation: str) -> DatabaseError:
    details = _error_details(exc)
    first = details[0] if details else {"field": "medication", "message": "invalid value"}
    field = first["field"] or "medication"
    return DatabaseError(
        ErrorCode.INVALID_INPUT,
        f"Invalid {field}: {first['message']}",
        operation,
        {"errors": details}
    )


# Largest value an SQLite INTEGER column holds
MAX_ID = 2 ** 63 - 1


def validate_medication_id(value: Any, operation: str = "unknown") -> int:
    """
    Check that an id is a positive integer that fits in storage.

    Raises:
        InvalidInputError: For booleans, non-integers and values outside 1..MAX_ID
    """
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= MAX_ID:
        raise InvalidInputError("id", value, operation, "must be a positive integer")
    return value


def coerce_date(value: Any, field: str = "date", operation: str = "unknown") -> date:
    """
    Turn a date, datetime or ISO string into a calendar date.

    The time part of datetimes and ISO timestamps is ignored.

    Raises:
        InvalidInputError: If the value is not a recognizable date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            pass
    raise InvalidInputError(field, value, operation, "must be a valid date (YYYY-MM-DD)")


def validate_taken(value: Any, operation: str = "unknown") -> bool:
    if not isinstance(value, bool):
        raise InvalidInputError("taken", value, operation, "must be a boolean")
    return value


def validate_new_medication(payload: Any, operation: str = "add_medication") -> NewMedication:
    """
    Validate a creation payload.

    Args:
        payload: NewMedication or a mapping using attribute or camelCase keys
        operation: Operation name for error reporting

    Returns:
        NewMedication: Validated medication with its time normalized to "HH:MM"
    """
    if isinstance(payload, NewMedication):
        return payload
    if not isinstance(payload, dict):
        raise InvalidInputError("medication", payload, operation, "must be an object")
    try:
        return NewMedication.model_validate(payload)
    except ValidationError as e:
        raise _invalid(e, operation) from e


_UPDATE_KEYS = set(MedicationUpdate.model_fields) | {
    field.alias for field in MedicationUpdate.model_fields.values() if field.alias
}


def validate_update(payload: Any, operation: str = "update_medication") -> Dict[str, Any]:
    """
    Validate a partial update and return the changes keyed by attribute name.

    Unknown keys (such as id or createdAt) are dropped first; an update with
    nothing left is rejected.
    """
    if isinstance(payload, MedicationUpdate):
        changes = payload.changes()
    elif isinstance(payload, dict):
        known = {key: value for key, value in payload.items() if key in _UPDATE_KEYS}
        if not known:
            raise InvalidInputError("updates", None, operation, "At least one update field is required")
        try:
            changes = MedicationUpdate.model_validate(known).changes()
        except ValidationError as e:
            raise _invalid(e, operation) from e
    else:
        raise InvalidInputError("updates", payload, operation, "must be an object")

    if not changes:
        raise InvalidInputError("updates", None, operation, "At least one update field is required")
    return changes

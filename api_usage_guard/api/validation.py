"""
Payload validation at the request boundary.

Every creation and update payload is checked here before it reaches a
service. Wire payloads use camelCase keys; parsed results use the
snake_case names the services take.
"""

import math
from typing import Any, Dict, Mapping, Tuple

from api_usage_guard.core.errors import ValidationFailure
from api_usage_guard.storage.models import AlertType, NotificationMethod, UsageEntry


def _require_mapping(body: Any) -> Mapping:
    if not isinstance(body, Mapping):
        raise ValidationFailure("Request body must be an object")
    return body


def _check_keys(body: Mapping, allowed: set) -> None:
    unknown_keys = set(body.keys()) - allowed
    if unknown_keys:
        raise ValidationFailure(f"Unknown fields: {sorted(unknown_keys)}")


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _string(body: Mapping, key: str) -> str:
    value = body.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationFailure(f"'{key}' must be a non-empty string")
    return value


def _non_negative(body: Mapping, key: str) -> float:
    value = body.get(key)
    if not _is_number(value) or value < 0:
        raise ValidationFailure(f"'{key}' must be a non-negative number")
    return float(value)


def _enum(body: Mapping, key: str, enum_type) -> Any:
    value = body.get(key)
    try:
        return enum_type(value)
    except ValueError:
        valid = [member.value for member in enum_type]
        raise ValidationFailure(f"'{key}' must be one of: {valid}")


def parse_integration_create(body: Any) -> Dict[str, str]:
    body = _require_mapping(body)
    _check_keys(body, {"name", "type", "apiKey"})
    return {
        "name": _string(body, "name"),
        "type": _string(body, "type"),
        "api_key": _string(body, "apiKey"),
    }


def parse_integration_update(body: Any) -> Dict[str, str]:
    """Only ``name`` and ``apiKey`` may change after creation."""
    body = _require_mapping(body)
    if "type" in body:
        raise ValidationFailure("Integration type cannot be changed")
    _check_keys(body, {"name", "apiKey"})

    changes = {}
    if "name" in body:
        changes["name"] = _string(body, "name")
    if "apiKey" in body:
        changes["api_key"] = _string(body, "apiKey")
    return changes


def parse_usage_entry(body: Any) -> UsageEntry:
    body = _require_mapping(body)
    _check_keys(body, {"date", "usage", "cost"})
    return UsageEntry(
        date=_string(body, "date"),
        usage=_non_negative(body, "usage"),
        cost=_non_negative(body, "cost"),
    )


def parse_usage_update(body: Any) -> Dict[str, Any]:
    body = _require_mapping(body)
    _check_keys(body, {"date", "usage", "cost"})

    changes: Dict[str, Any] = {}
    if "date" in body:
        changes["date"] = _string(body, "date")
    for key in ("usage", "cost"):
        if key in body:
            changes[key] = _non_negative(body, key)
    return changes


def parse_range_query(query: Any) -> Tuple[str, str]:
    query = _require_mapping(query)
    return _string(query, "start"), _string(query, "end")


def parse_alert_create(body: Any) -> Dict[str, Any]:
    body = _require_mapping(body)
    _check_keys(body, {"integrationId", "threshold", "type", "notificationMethod"})

    threshold = body.get("threshold")
    if not _is_number(threshold):
        raise ValidationFailure("'threshold' must be a number")

    return {
        "integration_id": _string(body, "integrationId"),
        "threshold": float(threshold),
        "type": _enum(body, "type", AlertType),
        "notification_method": _enum(body, "notificationMethod", NotificationMethod),
    }


def parse_alert_update(body: Any) -> Dict[str, Any]:
    """Only ``threshold`` and ``notificationMethod`` may change after creation."""
    body = _require_mapping(body)
    if "integrationId" in body or "type" in body:
        raise ValidationFailure("Alert integrationId and type cannot be changed")
    if "triggered" in body:
        raise ValidationFailure("Alert triggered flag cannot be changed")
    _check_keys(body, {"threshold", "notificationMethod"})

    changes: Dict[str, Any] = {}
    if "threshold" in body:
        if not _is_number(body["threshold"]):
            raise ValidationFailure("'threshold' must be a number")
        changes["threshold"] = float(body["threshold"])
    if "notificationMethod" in body:
        changes["notification_method"] = _enum(body, "notificationMethod", NotificationMethod)
    return changes


def parse_user_create(body: Any) -> Tuple[str, str, str]:
    body = _require_mapping(body)
    name, email, password = body.get("name"), body.get("email"), body.get("password")
    if not all(isinstance(value, str) and value for value in (name, email, password)):
        raise ValidationFailure("Missing required fields")
    return name, email, password


def parse_user_update(body: Any) -> Dict[str, str]:
    body = _require_mapping(body)
    _check_keys(body, {"name", "email"})

    changes = {}
    for key in ("name", "email"):
        if key in body:
            changes[key] = _string(body, key)
    return changes


def parse_login(body: Any) -> Tuple[str, str]:
    body = _require_mapping(body)
    email, password = body.get("email"), body.get("password")
    if not isinstance(email, str) or not isinstance(password, str) or not email or not password:
        raise ValidationFailure("Missing required fields")
    return email, password

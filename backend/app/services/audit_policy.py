from __future__ import annotations

from hashlib import sha256
import re
from typing import Any, Dict, Optional, Set

from app.core.config import settings

PHONE_PATTERN = re.compile(r"\+?\d[\d\s().-]{7,}\d")

REASON_MAX_LENGTH = 50

# Free-text values that may carry contact details.
FREE_TEXT_KEYS: Set[str] = {"reason"}

DEFAULT_ALLOWED_KEYS: Set[str] = {"changed"}

RESOURCE_METADATA_KEYS: Dict[str, Set[str]] = {
    "appointment": {
        "patient_ref",
        "provider_id",
        "status",
        "previous_status",
    },
}

ACTION_METADATA_KEYS: Dict[str, Set[str]] = {
    "appointment.reschedule": {"previous_start", "new_start", "previous_provider_id"},
    "appointment.cancel": {"reason"},
    "appointment.confirm": {"kind"},
}


def _allowed_keys(resource_type: str, action: str) -> Set[str]:
    allowed = set(DEFAULT_ALLOWED_KEYS)
    allowed.update(RESOURCE_METADATA_KEYS.get(resource_type, set()))
    allowed.update(ACTION_METADATA_KEYS.get(action, set()))
    return allowed


def sanitize_metadata(
    resource_type: str,
    action: str,
    metadata: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    if not metadata:
        return {}

    allowed = _allowed_keys(resource_type, action)
    sanitized: Dict[str, Any] = {}
    for key, value in metadata.items():
        if key not in allowed:
            raise ValueError(
                f"Audit metadata key '{key}' is not allowed for action '{action}' on '{resource_type}'"
            )
        sanitized[key] = _redact(value) if key in FREE_TEXT_KEYS else value
    return sanitized


def _redact(value: Any) -> Any:
    if isinstance(value, str):
        return PHONE_PATTERN.sub("[redacted]", value)
    if isinstance(value, dict):
        return {key: _redact(nested) for key, nested in value.items()}
    if isinstance(value, (list, tuple)):
        return [_redact(item) for item in value]
    return value


def make_patient_reference(patient_id: int) -> str:
    secret = settings.audit_hash_secret
    digest = sha256(f"{secret}:patient:{patient_id}".encode("utf-8")).hexdigest()
    return f"pid:{digest[:16]}"


def truncate_reason(reason: str) -> str:
    reason = reason.strip()
    if len(reason) > REASON_MAX_LENGTH:
        return reason[:REASON_MAX_LENGTH] + "..."
    return reason


def ensure_appointment_metadata(
    *,
    patient_id: Optional[int] = None,
    reason: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {}
    if patient_id is not None:
        metadata["patient_ref"] = make_patient_reference(patient_id)
    if reason is not None:
        metadata["reason"] = truncate_reason(reason)
    if extra:
        metadata.update({key: value for key, value in extra.items() if value is not None})
    return metadata

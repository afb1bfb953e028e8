from __future__ import annotations

import pytest

from app.services.audit_policy import ensure_appointment_metadata, sanitize_metadata


def test_reschedule_timestamps_are_kept_verbatim() -> None:
    metadata = sanitize_metadata(
        "appointment",
        "appointment.reschedule",
        {
            "previous_start": "2024-03-05T15:00:00+00:00",
            "new_start": "2024-03-05T13:50:00+00:00",
            "provider_id": "dr-silva",
        },
    )

    assert metadata["previous_start"] == "2024-03-05T15:00:00+00:00"
    assert metadata["new_start"] == "2024-03-05T13:50:00+00:00"


def test_phone_numbers_are_redacted_from_reasons() -> None:
    metadata = sanitize_metadata(
        "appointment",
        "appointment.cancel",
        ensure_appointment_metadata(patient_id=1, reason="Ligar para +55 11 98765-4321"),
    )

    assert metadata["reason"] == "Ligar para [redacted]"
    assert metadata["patient_ref"].startswith("pid:")


def test_unknown_metadata_keys_are_rejected() -> None:
    with pytest.raises(ValueError):
        sanitize_metadata("appointment", "appointment.cancel", {"already_cancelled": True})

    with pytest.raises(ValueError):
        sanitize_metadata("appointment", "appointment.confirm", {"patient_id": 1})

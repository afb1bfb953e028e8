from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from typing import List

import httpx
import pytest
from structlog.testing import capture_logs

from app.services import notifications
from app.services.notifications import (
    AppointmentCancelledEvent,
    AppointmentUpdatedEvent,
    NotificationDispatcher,
    SlotFreedEvent,
    SyncCollaborator,
    WaitlistCollaborator,
    WebhookError,
    WebhookSyncClient,
    WebhookWaitlistClient,
)

START = datetime(2024, 3, 5, 13, 0, tzinfo=timezone.utc)


def _cancelled(appointment_id: int = 11) -> AppointmentCancelledEvent:
    return AppointmentCancelledEvent(
        appointment_id=appointment_id,
        patient_id=4,
        service_id=2,
        provider_id="dr-silva",
        start_time=START,
        status="cancelled",
        patient_name="Maria Souza",
        patient_phone="+55 11 98765-4321",
        service_name="Consulta",
    )


def _freed(appointment_id: int = 11) -> SlotFreedEvent:
    return SlotFreedEvent(appointment_id=appointment_id, service_type="Consulta", provider_id="dr-silva", start_time=START)


def test_failed_job_does_not_affect_the_other(make_dispatcher) -> None:
    dispatcher, sync, waitlist = make_dispatcher(sync_fails=True)

    with capture_logs() as logs:
        dispatcher.appointment_cancelled(_cancelled(), _freed())
        dispatcher.wait()

    assert len(sync.calls) == 1
    assert waitlist.calls == [_freed()]
    failed = [entry for entry in logs if entry["event"] == "notification_failed"]
    sent = [entry for entry in logs if entry["event"] == "notification_sent"]
    assert [(entry["collaborator"], entry["operation"], entry["appointment_id"]) for entry in failed] == [
        ("sync", "appointment_cancelled", 11)
    ]
    assert [(entry["collaborator"], entry["operation"]) for entry in sent] == [("waitlist", "slot_freed")]


def test_slow_collaborator_does_not_hold_back_the_other() -> None:
    release = threading.Event()
    freed = threading.Event()

    class BlockedSync(SyncCollaborator):
        def appointment_cancelled(self, event: AppointmentCancelledEvent) -> None:
            release.wait(timeout=5)

    class SignallingWaitlist(WaitlistCollaborator):
        def slot_freed(self, event: SlotFreedEvent) -> None:
            freed.set()

    dispatcher = NotificationDispatcher(BlockedSync(), SignallingWaitlist(), max_workers=2)
    try:
        dispatcher.appointment_cancelled(_cancelled(), _freed())
        assert freed.wait(timeout=5)
    finally:
        release.set()
        dispatcher.shutdown()


def test_dispatch_returns_before_delivery() -> None:
    release = threading.Event()
    delivered = threading.Event()

    class BlockedSync(SyncCollaborator):
        def appointment_updated(self, event: AppointmentUpdatedEvent) -> None:
            release.wait(timeout=5)
            delivered.set()

    dispatcher = NotificationDispatcher(BlockedSync(), WaitlistCollaborator(), max_workers=1)
    try:
        dispatcher.appointment_updated(AppointmentUpdatedEvent(appointment_id=1, changes={"start_time": START}))
        assert not delivered.is_set()
    finally:
        release.set()
        dispatcher.shutdown()

    assert delivered.is_set()


def test_submission_after_shutdown_is_logged(make_dispatcher) -> None:
    dispatcher, sync, _waitlist = make_dispatcher()
    dispatcher.shutdown()

    with capture_logs() as logs:
        dispatcher.appointment_updated(AppointmentUpdatedEvent(appointment_id=5))

    assert sync.calls == []
    assert [entry["event"] for entry in logs] == ["notification_not_submitted"]
    assert logs[0]["appointment_id"] == 5


def test_sync_webhook_posts_snake_case_payload() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(202)

    client = WebhookSyncClient(
        updated_url="https://automation.example/updated",
        cancelled_url="https://automation.example/cancelled",
        transport=httpx.MockTransport(handler),
    )

    client.appointment_updated(AppointmentUpdatedEvent(appointment_id=9, changes={"start_time": START}))
    client.appointment_cancelled(_cancelled(9))

    assert [str(request.url) for request in requests] == [
        "https://automation.example/updated",
        "https://automation.example/cancelled",
    ]
    assert json.loads(requests[0].content) == {
        "appointment_id": 9,
        "changes": {"start_time": "2024-03-05T13:00:00+00:00"},
    }
    cancelled = json.loads(requests[1].content)
    assert cancelled["patient_phone"] == "+55 11 98765-4321"
    assert cancelled["start_time"] == "2024-03-05T13:00:00+00:00"
    assert cancelled["service_name"] == "Consulta"


def test_waitlist_webhook_error_status_raises() -> None:
    client = WebhookWaitlistClient(
        url="https://waitlist.example/slot-freed",
        transport=httpx.MockTransport(lambda request: httpx.Response(503)),
    )

    with pytest.raises(WebhookError):
        client.slot_freed(_freed())


def test_unconfigured_webhook_is_skipped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client = WebhookWaitlistClient(url=None, transport=httpx.MockTransport(handler))

    with capture_logs() as logs:
        client.slot_freed(_freed())

    assert logs[0]["event"] == "webhook_not_configured"
    assert logs[0]["webhook"] == "waitlist.slot_freed"


def test_default_dispatcher_lifecycle(make_dispatcher) -> None:
    dispatcher, _sync, _waitlist = make_dispatcher()
    notifications.set_notification_dispatcher(dispatcher)
    try:
        assert notifications.get_notification_dispatcher() is dispatcher
    finally:
        notifications.stop_notifications()

    assert notifications.get_notification_dispatcher() is not dispatcher
    notifications.stop_notifications()


def test_submission_error_never_reaches_the_caller(make_dispatcher, monkeypatch: pytest.MonkeyPatch) -> None:
    dispatcher, sync, waitlist = make_dispatcher()

    def broken_submit(*args, **kwargs):
        raise TypeError("executor unavailable")

    monkeypatch.setattr(dispatcher._executor, "submit", broken_submit)

    with capture_logs() as logs:
        dispatcher.appointment_cancelled(_cancelled(), _freed())

    assert sync.calls == []
    assert waitlist.calls == []
    assert [(entry["event"], entry["collaborator"]) for entry in logs] == [
        ("notification_not_submitted", "sync"),
        ("notification_not_submitted", "waitlist"),
    ]

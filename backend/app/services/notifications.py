"""Best-effort fan-out to the sync and waitlist collaborators after a commit."""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Set

import httpx
import structlog

from app.core.config import settings

logger = structlog.get_logger(__name__)


def _json_ready(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value.isoformat() if isinstance(value, datetime) else value
        for key, value in payload.items()
    }


@dataclass
class AppointmentUpdatedEvent:
    appointment_id: int
    changes: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {"appointment_id": self.appointment_id, "changes": _json_ready(self.changes)}


@dataclass
class AppointmentCancelledEvent:
    appointment_id: int
    patient_id: int
    service_id: int
    provider_id: Optional[str]
    start_time: datetime
    status: str
    patient_name: Optional[str] = None
    patient_phone: Optional[str] = None
    service_name: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return _json_ready(asdict(self))


@dataclass
class SlotFreedEvent:
    appointment_id: int
    service_type: Optional[str]
    provider_id: Optional[str]
    start_time: datetime

    def to_payload(self) -> Dict[str, Any]:
        return _json_ready(asdict(self))


class SyncCollaborator:
    """Automation system that keeps reminders in step with appointment changes."""

    def appointment_updated(self, event: AppointmentUpdatedEvent) -> None:
        raise NotImplementedError

    def appointment_cancelled(self, event: AppointmentCancelledEvent) -> None:
        raise NotImplementedError


class WaitlistCollaborator:
    """Waitlist auto-fill, told whenever a slot becomes free."""

    def slot_freed(self, event: SlotFreedEvent) -> None:
        raise NotImplementedError


class WebhookError(RuntimeError):
    pass


class _WebhookClient:
    def __init__(self, *, timeout: float = 10.0, transport: Optional[httpx.BaseTransport] = None) -> None:
        self.timeout = timeout
        self.transport = transport

    def _post(self, name: str, url: Optional[str], payload: Dict[str, Any]) -> None:
        if not url:
            logger.warning("webhook_not_configured", webhook=name)
            return
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            response = client.post(url, json=payload)
        if response.is_error:
            raise WebhookError(f"{name} webhook failed: {response.status_code}")
        logger.info("webhook_delivered", webhook=name, status_code=response.status_code)


class WebhookSyncClient(_WebhookClient, SyncCollaborator):
    def __init__(
        self,
        *,
        updated_url: Optional[str],
        cancelled_url: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        super().__init__(timeout=timeout, transport=transport)
        self.updated_url = updated_url
        self.cancelled_url = cancelled_url

    def appointment_updated(self, event: AppointmentUpdatedEvent) -> None:
        self._post("sync.appointment_updated", self.updated_url, event.to_payload())

    def appointment_cancelled(self, event: AppointmentCancelledEvent) -> None:
        self._post("sync.appointment_cancelled", self.cancelled_url, event.to_payload())


class WebhookWaitlistClient(_WebhookClient, WaitlistCollaborator):
    def __init__(
        self,
        *,
        url: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        super().__init__(timeout=timeout, transport=transport)
        self.url = url

    def slot_freed(self, event: SlotFreedEvent) -> None:
        self._post("waitlist.slot_freed", self.url, event.to_payload())


class NotificationDispatcher:
    """Runs every collaborator call as its own job on a bounded worker pool.

    Nothing submitted here can raise into the caller: delivery errors and
    failed submissions (after shutdown, for one) are logged with the
    appointment id and operation so they can be reconciled by hand. No
    retries are attempted.
    """

    def __init__(
        self,
        sync: SyncCollaborator,
        waitlist: WaitlistCollaborator,
        *,
        max_workers: int = 4,
    ) -> None:
        self.sync = sync
        self.waitlist = waitlist
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    def appointment_updated(self, event: AppointmentUpdatedEvent) -> None:
        self._submit("sync", "appointment_updated", event.appointment_id, self.sync.appointment_updated, event)

    def appointment_cancelled(self, cancelled: AppointmentCancelledEvent, freed: SlotFreedEvent) -> None:
        self._submit("sync", "appointment_cancelled", cancelled.appointment_id, self.sync.appointment_cancelled, cancelled)
        self._submit("waitlist", "slot_freed", freed.appointment_id, self.waitlist.slot_freed, freed)

    def wait(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            pending = set(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self, *, wait_for_pending: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_pending)

    def _submit(
        self,
        collaborator: str,
        operation: str,
        appointment_id: int,
        deliver: Callable[[Any], None],
        event: Any,
    ) -> None:
        try:
            future = self._executor.submit(self._deliver, collaborator, operation, appointment_id, deliver, event)
        except Exception:
            logger.exception(
                "notification_not_submitted",
                collaborator=collaborator,
                operation=operation,
                appointment_id=appointment_id,
            )
            return
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _deliver(
        self,
        collaborator: str,
        operation: str,
        appointment_id: int,
        deliver: Callable[[Any], None],
        event: Any,
    ) -> None:
        try:
            deliver(event)
        except Exception:
            logger.exception(
                "notification_failed",
                collaborator=collaborator,
                operation=operation,
                appointment_id=appointment_id,
            )
            return
        logger.info(
            "notification_sent",
            collaborator=collaborator,
            operation=operation,
            appointment_id=appointment_id,
        )


def build_default_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(
        WebhookSyncClient(
            updated_url=settings.sync_webhook_updated_url,
            cancelled_url=settings.sync_webhook_cancelled_url,
            timeout=settings.notification_timeout_seconds,
        ),
        WebhookWaitlistClient(
            url=settings.waitlist_webhook_url,
            timeout=settings.notification_timeout_seconds,
        ),
        max_workers=settings.notification_max_workers,
    )


_dispatcher: Optional[NotificationDispatcher] = None


def get_notification_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = build_default_dispatcher()
    return _dispatcher


def set_notification_dispatcher(dispatcher: Optional[NotificationDispatcher]) -> None:
    global _dispatcher
    _dispatcher = dispatcher


def start_notifications() -> None:
    get_notification_dispatcher()


def stop_notifications() -> None:
    global _dispatcher
    if _dispatcher is not None:
        dispatcher = _dispatcher
        _dispatcher = None
        dispatcher.shutdown(wait_for_pending=True)

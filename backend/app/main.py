from __future__ import annotations


from fastapi import FastAPI

from app.api.v1 import appointments
from app.core.config import settings
from app.core.logging_config import configure_logging
from app.db.session import init_db
from app.services.notifications import start_notifications, stop_notifications

configure_logging()

app = FastAPI(title=settings.project_name)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    start_notifications()


@app.on_event("shutdown")
def on_shutdown() -> None:
    stop_notifications()


@app.get("/healthz", tags=["system"])
def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(appointments.router, prefix="/api/v1")

from __future__ import annotations

from restaurant_ledger.core.celery_app import celery_app
from restaurant_ledger.core.logging import get_logger

logger = get_logger("restaurant_ledger.events")


@celery_app.task(name="events.ledger", ignore_result=True)
def handle_ledger_event(event_name: str, payload: dict) -> None:
    """Hand ledger events to downstream adapters; today they are only logged."""
    logger.info("Ledger event", extra={"event": event_name, "payload": payload})

from __future__ import annotations

from typing import Any

from restaurant_ledger.core.config import settings
from restaurant_ledger.core.logging import get_logger
from restaurant_ledger.tasks.events import handle_ledger_event

logger = get_logger("restaurant_ledger.events")


def emit_ledger_event(name: str, payload: dict[str, Any]) -> None:
    """Publish ledger events (rewards, redemptions, coupon usage) through the message broker.

    Events are emitted after the ledger write landed, so a broker failure is
    logged and never turned into a failed request.
    """
    try:
        handle_ledger_event.apply_async((name, payload), queue=settings.LEDGER_EVENTS_QUEUE, ignore_result=True)
    except Exception:
        logger.warning("Could not publish ledger event", extra={"event": name, "payload": payload}, exc_info=True)

# Overview: Fire-and-forget notification trigger for engine events (low stock, restock).

from __future__ import annotations

from typing import Callable

from flask import Flask, current_app

from ..extensions import db
from ..models import LowStockAlert
from laundry.time_utils import utcnow

"""
Notification contract

- notify(event, payload) is called only after the unit of work that caused
  the event has committed.
- Handlers never affect the caller: failures are logged and dropped.
- Delivery (email/SMS) is outside this service; the default handler only
  keeps LowStockAlert rows current so a delivery worker can pick them up.
"""

Handler = Callable[[str, dict], None]

_EXTENSION_KEY = "laundry.notification_handlers"


def init_app(app: Flask) -> None:
    handlers: list[Handler] = []
    if app.config.get("LOW_STOCK_NOTIFICATIONS_ENABLED", True):
        handlers.append(record_low_stock_alert)
    app.extensions[_EXTENSION_KEY] = handlers


def register_handler(handler: Handler, app: Flask | None = None) -> None:
    app = app or current_app
    app.extensions.setdefault(_EXTENSION_KEY, []).append(handler)


def notify(event: str, payload: dict) -> None:
    handlers = current_app.extensions.get(_EXTENSION_KEY, [])
    for handler in handlers:
        try:
            handler(event, payload)
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Notification handler failed for %s", event)


def record_low_stock_alert(event: str, payload: dict) -> None:
    from .transaction import unit_of_work

    item_id = payload["inventory_item_id"]

    if event == "inventory.low_stock":
        with unit_of_work("notifications.low_stock_alert"):
            alert = (
                db.session.query(LowStockAlert)
                .filter_by(inventory_item_id=item_id, is_resolved=False)
                .first()
            )
            if alert is None:
                alert = LowStockAlert(
                    inventory_item_id=item_id,
                    branch_id=payload["branch_id"],
                    item_name=payload.get("item_name"),
                    current_stock=payload["current_stock"],
                    reorder_level=payload["reorder_level"],
                    alerts_sent=1,
                    alert_sent_at=utcnow(),
                )
                db.session.add(alert)
            else:
                alert.alerts_sent += 1
                alert.current_stock = payload["current_stock"]
                alert.reorder_level = payload["reorder_level"]
                alert.alert_sent_at = utcnow()
        current_app.logger.warning(
            "Low stock: %s at branch %s (%s <= %s)",
            payload.get("item_name"), payload["branch_id"],
            payload["current_stock"], payload["reorder_level"],
        )

    elif event == "inventory.restocked":
        with unit_of_work("notifications.resolve_low_stock_alert"):
            open_alerts = (
                db.session.query(LowStockAlert)
                .filter_by(inventory_item_id=item_id, is_resolved=False)
                .all()
            )
            for alert in open_alerts:
                alert.is_resolved = True
                alert.resolved_at = utcnow()
                alert.current_stock = payload["current_stock"]

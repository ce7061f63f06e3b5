from datetime import datetime, timezone

from flask import current_app

from services.lifecycle import BookingLifecycle


def get_lifecycle() -> BookingLifecycle:
    return BookingLifecycle(
        clock=current_app.extensions["clock"],
        notifier=current_app.extensions["notifier"],
    )


def parse_iso(dt_str):
    """ISO 8601 -> naive UTC. Raises ValueError on bad input."""
    if not dt_str:
        return None
    if dt_str.endswith("Z"):
        dt_str = dt_str[:-1] + "+00:00"
    value = datetime.fromisoformat(dt_str)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

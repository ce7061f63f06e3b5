from datetime import datetime, timedelta


class SystemClock:
    """Wall clock. Naive UTC, matching the column defaults on the models."""

    def now(self) -> datetime:
        return datetime.utcnow()


class FixedClock:
    """Clock pinned to a given instant; tests move it forward explicitly."""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current

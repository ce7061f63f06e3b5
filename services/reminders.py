"""
Reminder scheduler.

Every tick runs two independent scans:

- smart reminders: approved bookings starting within the horizon get the
  60 and 10 minute reminders, plus a 2 hour one for students who often
  miss appointments. Each (student, tier, booking) fires at most once; the
  notification row is the guard.
- faculty load suggestions: faculty with a heavy day tomorrow are nudged,
  at most once per faculty per day.

All state lives in the database, so overlapping or restarted schedulers do
not double-fire.
"""
import logging
import math
import threading
from datetime import datetime, timedelta

from models import db
from models.booking import ATTENDANCE_NO_SHOW, NO_SHOW
from models import notification as kinds
from services import store
from services.clock import SystemClock
from services.notifier import Notifier

logger = logging.getLogger(__name__)

TIER_TYPES = {
    120: kinds.REMINDER_2HOUR,
    60: kinds.REMINDER_1HOUR,
    10: kinds.REMINDER_10MIN,
}
BASE_TIERS = (60, 10)
EXTRA_TIER = 120

HORIZON_MINUTES = 120
NO_SHOW_HISTORY_LIMIT = 10
NO_SHOW_RATE_THRESHOLD = 0.3
HEAVY_THRESHOLD = 6
LOAD_ACTION = "open_more_slots"


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def minutes_between(start: datetime, end: datetime) -> int:
    return math.floor((end - start).total_seconds() / 60)


def should_fire(minutes_to_start: int, tier: int) -> bool:
    # one-minute window, matched to the scan period
    return tier - 1 <= minutes_to_start <= tier


def no_show_rate(outcomes) -> float:
    outcomes = list(outcomes)
    if not outcomes:
        return 0.0
    misses = sum(1 for b in outcomes if b.status == NO_SHOW or b.attendance_status == ATTENDANCE_NO_SHOW)
    return misses / len(outcomes)


def reminder_tiers(rate: float, threshold: float = NO_SHOW_RATE_THRESHOLD):
    tiers = list(BASE_TIERS)
    if rate >= threshold:
        tiers.insert(0, EXTRA_TIER)
    return tiers


def reminder_title(tier: int) -> str:
    if tier == 120:
        return "Appointment in 2 hours"
    return f"Appointment in {tier} minutes"


class ReminderScheduler:
    def __init__(
        self,
        clock=None,
        notifier: Notifier = None,
        interval_seconds: int = 60,
        horizon_minutes: int = HORIZON_MINUTES,
        history_limit: int = NO_SHOW_HISTORY_LIMIT,
        rate_threshold: float = NO_SHOW_RATE_THRESHOLD,
        heavy_threshold: int = HEAVY_THRESHOLD,
    ):
        self.clock = clock or SystemClock()
        self.notifier = notifier or Notifier()
        self.interval_seconds = interval_seconds
        self.horizon_minutes = horizon_minutes
        self.history_limit = history_limit
        self.rate_threshold = rate_threshold
        self.heavy_threshold = heavy_threshold

    @classmethod
    def from_config(cls, config, clock=None, notifier=None):
        return cls(
            clock=clock,
            notifier=notifier,
            interval_seconds=config.get("REMINDER_SCAN_INTERVAL_SECONDS", 60),
            horizon_minutes=config.get("REMINDER_HORIZON_MINUTES", HORIZON_MINUTES),
            history_limit=config.get("NO_SHOW_HISTORY_LIMIT", NO_SHOW_HISTORY_LIMIT),
            rate_threshold=config.get("NO_SHOW_RATE_THRESHOLD", NO_SHOW_RATE_THRESHOLD),
            heavy_threshold=config.get("HEAVY_LOAD_THRESHOLD", HEAVY_THRESHOLD),
        )

    # ---------- pass A ----------

    def process_smart_reminders(self) -> int:
        """Returns the number of reminders fired."""
        now = self.clock.now()
        horizon = now + timedelta(minutes=self.horizon_minutes)
        bookings = store.find_upcoming_approved_in_window(now, horizon)

        rates = {}
        fired = 0
        # ids read up front: each ledger commit expires the loaded rows
        for booking_id, b in [(b.id, b) for b in bookings]:
            try:
                fired += self._remind(b, now, rates)
            except Exception:
                db.session.rollback()
                logger.exception("Reminder processing failed for booking %s", booking_id)
        if fired:
            logger.info("process_smart_reminders: %s reminders fired", fired)
        return fired

    def _remind(self, booking, now: datetime, rates: dict) -> int:
        minutes_to_start = minutes_between(now, booking.slot.start_time)
        if minutes_to_start < 0:
            return 0

        student_id = booking.student_id
        if student_id not in rates:
            rates[student_id] = no_show_rate(store.recent_terminal_outcomes(student_id, limit=self.history_limit))

        fired = 0
        for tier in reminder_tiers(rates[student_id], self.rate_threshold):
            if not should_fire(minutes_to_start, tier):
                continue
            reminder_type = TIER_TYPES[tier]
            if store.reminder_exists(student_id, reminder_type, booking.id):
                continue

            faculty = booking.slot.faculty
            row = self.notifier.notify(
                student_id,
                reminder_type,
                reminder_title(tier),
                f"Your appointment with {faculty.display_name if faculty else 'your faculty'} is starting soon",
                event_payload={"bookingId": str(booking.id)},
                booking_id=booking.id,
                dedup_key=store.reminder_dedup_key(booking.id),
            )
            if row is not None:
                fired += 1
        return fired

    # ---------- pass B ----------

    def process_faculty_load_suggestions(self) -> int:
        """Returns the number of suggestions created."""
        now = self.clock.now()
        tomorrow_start = start_of_day(now + timedelta(days=1))
        tomorrow_end = start_of_day(now + timedelta(days=2))
        date_key = tomorrow_start.date().isoformat()

        created = 0
        for faculty_id, count in store.approved_counts_by_faculty(tomorrow_start, tomorrow_end):
            if count < self.heavy_threshold:
                continue
            try:
                row = self.notifier.notify(
                    faculty_id,
                    kinds.FACULTY_LOAD_SUGGESTION,
                    "Busy Day Tomorrow",
                    f"You have {count} approved bookings tomorrow. Consider opening extra slots to reduce crowding.",
                    event_payload={"date": date_key},
                    action=LOAD_ACTION,
                    date_key=date_key,
                    count=count,
                    dedup_key=f"{LOAD_ACTION}:{date_key}",
                )
            except Exception:
                logger.exception("Load suggestion failed for faculty %s", faculty_id)
                db.session.rollback()
                continue
            if row is not None:
                created += 1
        return created

    # ---------- driver ----------

    def _safe_run(self, fn, label: str):
        try:
            return fn()
        except Exception:
            logger.exception("[ReminderScheduler] %s failed", label)
            db.session.rollback()
            return None

    def tick(self) -> dict:
        return {
            "reminders": self._safe_run(self.process_smart_reminders, "process_smart_reminders"),
            "load_suggestions": self._safe_run(self.process_faculty_load_suggestions, "process_faculty_load_suggestions"),
        }

    def run_forever(self, stop_event: threading.Event = None, on_tick=None):
        """
        Tick immediately, then every interval until stop_event is set.
        `on_tick` wraps each tick (the CLI uses it to push an app context).
        """
        stop_event = stop_event or threading.Event()
        logger.info("ReminderScheduler started (every %ss)", self.interval_seconds)
        while not stop_event.is_set():
            if on_tick:
                on_tick(self.tick)
            else:
                self.tick()
            stop_event.wait(self.interval_seconds)
        logger.info("ReminderScheduler stopped")

"""Cron schedule parsing for backup policies.

Expressions use the standard five fields (minute, hour, day of month, month,
day of week) and are evaluated in UTC. APScheduler's ``CronTrigger`` does the
matching; this module only bridges the places where classic cron and
APScheduler disagree:

* day-of-week numbers start at Sunday (0 and 7) in cron and at Monday in
  APScheduler, so numeric day-of-week tokens are rewritten to day names;
* when neither day-of-month nor day-of-week starts with ``*``, cron fires
  when *either* matches, so the two halves are evaluated as separate triggers.
"""
from datetime import datetime, timedelta, timezone

from apscheduler.triggers.cron import CronTrigger

from .errors import InvalidScheduleError

DESCRIPTORS = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}

_DAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun")
_TICK = timedelta(microseconds=1)


class Schedule:
    def __init__(self, expression: str, triggers: list[CronTrigger]):
        self.expression = expression
        self._triggers = triggers

    def next(self, instant: datetime) -> datetime:
        """Return the first fire time strictly after ``instant``."""
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        start = instant + _TICK
        candidates = [trigger.get_next_fire_time(None, start) for trigger in self._triggers]
        candidates = [candidate for candidate in candidates if candidate is not None]
        if not candidates:
            raise InvalidScheduleError(self.expression, "schedule never fires")
        return min(candidates).astimezone(timezone.utc)

    def __repr__(self) -> str:
        return f"Schedule({self.expression!r})"


def _day_of_week(field: str) -> str:
    names: list[str] = []
    for part in field.split(","):
        if any(char.isalpha() for char in part):
            if part not in names:
                names.append(part)
            continue
        base, _, step_text = part.partition("/")
        step = int(step_text) if step_text else 1
        if step < 1:
            raise ValueError(f"invalid step {step_text!r} in day of week")
        if base == "*":
            if not step_text:
                return "*"
            start, end = 0, 6
        elif "-" in base:
            first, last = base.split("-", 1)
            start, end = int(first), int(last)
        else:
            start = int(base)
            end = 6 if step_text else start
        if not 0 <= start <= 7 or not 0 <= end <= 7 or start > end:
            raise ValueError(f"day of week out of range in {part!r}")
        for value in range(start, end + 1, step):
            name = _DAY_NAMES[value]
            if name not in names:
                names.append(name)
    return ",".join(names)


def parse_schedule(expression: str) -> Schedule:
    if not expression or not expression.strip():
        raise InvalidScheduleError(expression or "", "empty schedule")
    normalized = expression.strip()
    normalized = DESCRIPTORS.get(normalized.lower(), normalized)
    fields = normalized.split()
    if len(fields) != 5:
        raise InvalidScheduleError(expression, f"expected 5 fields, got {len(fields)}")
    minute, hour, day, month, day_of_week = fields
    try:
        # Either field starting with "*" (even "*/2") makes cron require both to match.
        either = not day.startswith("*") and not day_of_week.startswith("*")
        day_of_week = _day_of_week(day_of_week)
        if either:
            triggers = [
                CronTrigger(minute=minute, hour=hour, day=day, month=month, timezone="UTC"),
                CronTrigger(minute=minute, hour=hour, month=month, day_of_week=day_of_week, timezone="UTC"),
            ]
        else:
            triggers = [
                CronTrigger(
                    minute=minute,
                    hour=hour,
                    day=day,
                    month=month,
                    day_of_week=day_of_week,
                    timezone="UTC",
                )
            ]
    except ValueError as exc:
        raise InvalidScheduleError(expression, str(exc)) from exc
    return Schedule(expression, triggers)

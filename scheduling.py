"""
DIGIBOARD schedule core
Weekly lecture schedule rules: time-of-day normalization, conflict detection
and next lecture lookup. Works on plain lecture records, no database access.

"""
from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Iterable, Mapping

WEEK_DAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
LECTURE_TYPES = ["Lecture", "Lab", "Tutorial", "Seminar"]
DEFAULT_LECTURE_TYPE = "Lecture"
REFERENCE_DATE = date(2000, 1, 3)
CONFLICT_KINDS = ("teacher", "classroom")
TEACHER_CONFLICT, CLASSROOM_CONFLICT = CONFLICT_KINDS

TIME_OF_DAY_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
TRUE_VALUES = {"true", "on", "1", "yes"}
FALSE_VALUES = {"false", "off", "0", "no", ""}

REQUIRED_LECTURE_FIELDS = {
    "subject": ["subject"],
    "teacher_id": ["teacher_id", "teacher"],
    "classroom": ["classroom"],
    "day_of_week": ["day_of_week", "dayOfWeek"],
    "start_time": ["start_time", "startTime"],
    "end_time": ["end_time", "endTime"],
    "semester": ["semester"],
}
LECTURE_FIELD_ALIASES = {
    "teacher": "teacher_id",
    "dayOfWeek": "day_of_week",
    "startTime": "start_time",
    "endTime": "end_time",
    "lectureType": "lecture_type",
    "isActive": "is_active",
}


class ValidationError(ValueError):
    def __init__(self, fields: Mapping[str, str]):
        self.fields = dict(fields)
        detail = ", ".join(f"{name}: {message}" for name, message in self.fields.items())
        super().__init__(f"Invalid data ({detail})")


class InvalidTimeFormat(ValueError):
    def __init__(self, value: Any, reason: str = "expected HH:MM or a full date-time"):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid time {value!r}: {reason}")


@dataclass(frozen=True)
class LectureSlot:
    id: Any
    teacher_id: Any
    classroom: str
    day_of_week: str
    start_time: datetime
    end_time: datetime
    is_active: bool = True
    subject: str = ""


@dataclass(frozen=True)
class ConflictMatch:
    kind: str
    lecture: Any

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "lecture_id": self.lecture.id,
            "subject": getattr(self.lecture, "subject", ""),
            "teacher_id": self.lecture.teacher_id,
            "classroom": self.lecture.classroom,
            "day_of_week": self.lecture.day_of_week,
            "start_time": format_time(self.lecture.start_time),
            "end_time": format_time(self.lecture.end_time),
        }


def _anchor(hour: int, minute: int) -> datetime:
    return datetime.combine(REFERENCE_DATE, time(hour, minute))


def normalize_time(raw: str) -> datetime:
    """
    Turn "HH:MM" or a full date-time string into a datetime on REFERENCE_DATE.

    Only hour and minute survive, so "14:00" and "2025-03-04T14:00:00" come
    out equal. Timezone offsets are dropped, the wall-clock value is kept.
    """
    if not isinstance(raw, str):
        raise InvalidTimeFormat(raw, "expected a string")
    text = raw.strip()
    if not text:
        raise InvalidTimeFormat(raw, "empty value")

    if "T" in text or " " in text:
        iso_text = text[:-1] + "+00:00" if text.endswith("Z") else text
        try:
            parsed = datetime.fromisoformat(iso_text)
        except ValueError:
            raise InvalidTimeFormat(raw, "unparseable date-time") from None
        return _anchor(parsed.hour, parsed.minute)

    match = TIME_OF_DAY_PATTERN.match(text)
    if not match:
        raise InvalidTimeFormat(raw)
    hour = int(match.group(1))
    minute = int(match.group(2))
    second = int(match.group(3) or 0)
    if not 0 <= hour <= 23:
        raise InvalidTimeFormat(raw, "hour must be between 0 and 23")
    if not 0 <= minute <= 59:
        raise InvalidTimeFormat(raw, "minute must be between 0 and 59")
    if not 0 <= second <= 59:
        raise InvalidTimeFormat(raw, "second must be between 0 and 59")
    return _anchor(hour, minute)


def minute_of_day(value: datetime | time) -> int:
    return value.hour * 60 + value.minute


def format_time(value: datetime | time | None) -> str | None:
    if value is None:
        return None
    return f"{value.hour:02d}:{value.minute:02d}"


def overlaps(a_start: datetime | time, a_end: datetime | time, b_start: datetime | time, b_end: datetime | time) -> bool:
    # Half-open [start, end): touching endpoints do not overlap.
    return minute_of_day(a_start) < minute_of_day(b_end) and minute_of_day(b_start) < minute_of_day(a_end)


def classroom_key(value: str | None) -> str:
    return " ".join((value or "").split()).casefold()


def _same_classroom(a: str | None, b: str | None) -> bool:
    key = classroom_key(a)
    return bool(key) and key == classroom_key(b)


def _same_teacher(a: Any, b: Any) -> bool:
    if a is None or b is None:
        return False
    return str(a) == str(b)


def _sort_key(lecture: Any) -> tuple[int, str]:
    return minute_of_day(lecture.start_time), str(lecture.id)


def conflict_kinds(a: Any, b: Any) -> list[str]:
    if a.day_of_week != b.day_of_week:
        return []
    if not overlaps(a.start_time, a.end_time, b.start_time, b.end_time):
        return []
    kinds: list[str] = []
    if _same_teacher(a.teacher_id, b.teacher_id):
        kinds.append(TEACHER_CONFLICT)
    if _same_classroom(a.classroom, b.classroom):
        kinds.append(CLASSROOM_CONFLICT)
    return kinds


def find_conflicts(candidate: Any, existing: Iterable[Any]) -> list[ConflictMatch]:
    """
    Report every active lecture that clashes with ``candidate``.

    A lecture sharing both teacher and classroom yields one match per kind.
    The candidate's own id is skipped so an edit never clashes with itself.
    """
    candidate_id = getattr(candidate, "id", None)
    matches: list[ConflictMatch] = []
    for lecture in sorted(existing, key=_sort_key):
        if not lecture.is_active:
            continue
        if candidate_id is not None and lecture.id is not None and str(lecture.id) == str(candidate_id):
            continue
        for kind in conflict_kinds(candidate, lecture):
            matches.append(ConflictMatch(kind=kind, lecture=lecture))
    return matches


def split_conflicts(matches: Iterable[ConflictMatch]) -> tuple[list[Any], list[Any]]:
    teacher_conflicts: list[Any] = []
    classroom_conflicts: list[Any] = []
    for match in matches:
        if match.kind == TEACHER_CONFLICT:
            teacher_conflicts.append(match.lecture)
        else:
            classroom_conflicts.append(match.lecture)
    return teacher_conflicts, classroom_conflicts


def find_all_conflicts(lectures: Iterable[Any]) -> list[tuple[Any, Any, list[str]]]:
    by_day: dict[str, list[Any]] = defaultdict(list)
    for lecture in lectures:
        if lecture.is_active:
            by_day[lecture.day_of_week].append(lecture)

    pairs: list[tuple[Any, Any, list[str]]] = []
    for day in WEEK_DAYS:
        day_lectures = sorted(by_day.get(day, []), key=_sort_key)
        for i, first in enumerate(day_lectures):
            for second in day_lectures[i + 1:]:
                # Sorted by start: nothing later can overlap once a start passes first's end.
                if minute_of_day(second.start_time) >= minute_of_day(first.end_time):
                    break
                kinds = conflict_kinds(first, second)
                if kinds:
                    pairs.append((first, second, kinds))
    return pairs


def day_name(moment: datetime) -> str:
    return WEEK_DAYS[moment.weekday()]


def day_sequence_after(day: str) -> list[str]:
    index = WEEK_DAYS.index(day)
    return WEEK_DAYS[index + 1:] + WEEK_DAYS[: index + 1]


def find_next_occurrence(now: datetime, lectures: Iterable[Any]) -> Any | None:
    active = [lecture for lecture in lectures if lecture.is_active]
    if not active:
        return None

    today = day_name(now)
    now_minute = minute_of_day(now)
    later_today = [
        lecture
        for lecture in active
        if lecture.day_of_week == today and minute_of_day(lecture.start_time) > now_minute
    ]
    if later_today:
        return min(later_today, key=_sort_key)

    for day in day_sequence_after(today):
        on_day = [lecture for lecture in active if lecture.day_of_week == day]
        if on_day:
            return min(on_day, key=_sort_key)
    return None


def group_by_day(lectures: Iterable[Any]) -> dict[str, list[Any]]:
    schedule: dict[str, list[Any]] = {day: [] for day in WEEK_DAYS}
    for lecture in lectures:
        if lecture.day_of_week in schedule:
            schedule[lecture.day_of_week].append(lecture)
    for day in WEEK_DAYS:
        schedule[day].sort(key=_sort_key)
    return schedule


def _first_value(data: Mapping[str, Any], keys: list[str]) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value.strip() if isinstance(value, str) else value
    return None


def parse_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ValidationError({"is_active": f"not a boolean: {value!r}"})


def canonical_lecture_fields(data: Mapping[str, Any]) -> dict[str, Any]:
    # Snake-case wins when a payload carries both spellings.
    canonical: dict[str, Any] = {}
    for key, value in data.items():
        target = LECTURE_FIELD_ALIASES.get(key, key)
        if target != key and target in data:
            continue
        canonical[target] = value
    return canonical


def validate_lecture(data: Mapping[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    missing: dict[str, str] = {}
    for field, keys in REQUIRED_LECTURE_FIELDS.items():
        value = _first_value(data, keys)
        if value is None or value == "":
            missing[field] = "required"
        else:
            cleaned[field] = value
    if missing:
        raise ValidationError(missing)

    errors: dict[str, str] = {}
    try:
        cleaned["teacher_id"] = int(cleaned["teacher_id"])
    except (TypeError, ValueError):
        errors["teacher_id"] = "must be an integer id"
    if cleaned["day_of_week"] not in WEEK_DAYS:
        errors["day_of_week"] = f"must be one of {', '.join(WEEK_DAYS)}"

    lecture_type = _first_value(data, ["lecture_type", "lectureType"]) or DEFAULT_LECTURE_TYPE
    if lecture_type not in LECTURE_TYPES:
        errors["lecture_type"] = f"must be one of {', '.join(LECTURE_TYPES)}"
    cleaned["lecture_type"] = lecture_type
    if errors:
        raise ValidationError(errors)

    cleaned["start_time"] = normalize_time(str(cleaned["start_time"]))
    cleaned["end_time"] = normalize_time(str(cleaned["end_time"]))
    if cleaned["end_time"] <= cleaned["start_time"]:
        raise ValidationError({"end_time": "must be after start_time"})

    cleaned["course"] = _first_value(data, ["course"]) or cleaned["subject"]
    cleaned["chapter"] = _first_value(data, ["chapter"]) or ""
    cleaned["description"] = _first_value(data, ["description"]) or ""
    cleaned["is_active"] = parse_bool(_first_value(data, ["is_active", "isActive"]), default=True)
    return cleaned

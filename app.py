"""
DIGIBOARD admin service
Teachers and weekly lecture schedule, done with flask and sqlalchemy

"""
from __future__ import annotations

import logging
import os
import re
import sys
import time
from datetime import datetime
from typing import Any, Iterable

import click
from flask import Flask, jsonify, request
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from scheduling import (
    WEEK_DAYS,
    InvalidTimeFormat,
    LectureSlot,
    ValidationError,
    canonical_lecture_fields,
    day_name,
    find_all_conflicts,
    find_conflicts,
    find_next_occurrence,
    format_time,
    group_by_day,
    minute_of_day,
    normalize_time,
    split_conflicts,
    validate_lecture,
)

CONFLICT_POLICIES = ("warn", "block")
MISSING_TEACHER_LABEL = "No teacher"
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_PATTERN = re.compile(r"^\+?(\(\d{1,4}\)\s?)?\d[\d\s.-]{5,18}\d$")

app = Flask(__name__)
app.config["SQLALCHEMY_DATABASE_URI"] = os.getenv("DATABASE_URL", "sqlite:///digiboard.db")
app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
app.config["CONFLICT_POLICY"] = os.getenv("CONFLICT_POLICY", "warn").strip().lower()
app.config["NOW_PROVIDER"] = datetime.now
if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {"connect_args": {"timeout": 30}}

BOARD_LOG = logging.getLogger("DIGIBOARD")
if not BOARD_LOG.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("DIGIBOARD | %(asctime)s | %(levelname)s | %(message)s"))
    BOARD_LOG.addHandler(_handler)
BOARD_LOG.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
BOARD_LOG.propagate = False

if app.config["CONFLICT_POLICY"] not in CONFLICT_POLICIES:
    BOARD_LOG.warning("step=config.conflict_policy_unknown value=%r fallback=warn", app.config["CONFLICT_POLICY"])
    app.config["CONFLICT_POLICY"] = "warn"

db = SQLAlchemy(app)


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, _connection_record):
    module_name = dbapi_connection.__class__.__module__
    if module_name.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


class Teacher(db.Model):
    __tablename__ = "teachers"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    department = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(40), nullable=True)
    office = db.Column(db.String(120), nullable=True)
    profile_image = db.Column(db.String(500), nullable=False, default="")
    subjects = db.Column(db.Text, nullable=False, default="")
    experience = db.Column(db.Integer, nullable=False, default=0)
    qualifications = db.Column(db.Text, nullable=False, default="")
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


class Lecture(db.Model):
    __tablename__ = "lectures"

    id = db.Column(db.Integer, primary_key=True)
    subject = db.Column(db.String(200), nullable=False)
    # Weak reference: no foreign key, a deleted teacher leaves the id dangling.
    teacher_id = db.Column(db.Integer, nullable=False)
    classroom = db.Column(db.String(120), nullable=False)
    day_of_week = db.Column(db.String(20), nullable=False)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)
    lecture_type = db.Column(db.String(20), nullable=False, default="Lecture")
    semester = db.Column(db.String(40), nullable=False)
    course = db.Column(db.String(200), nullable=False)
    chapter = db.Column(db.String(200), nullable=False, default="")
    description = db.Column(db.Text, nullable=False, default="")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


def split_multi_value_field(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    text = (value or "").strip()
    if not text:
        return []
    return [item.strip() for item in re.split(r"[|;,]", text) if item.strip()]


def parse_int_list(values: list[Any]) -> list[int]:
    parsed: list[int] = []
    for value in values:
        try:
            parsed.append(int(value))
        except (TypeError, ValueError):
            continue
    return parsed


def current_time() -> datetime:
    return app.config["NOW_PROVIDER"]()


def request_data() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        return payload
    return request.form.to_dict()


def request_id_list(fields: tuple[str, ...] = ("lecture_ids", "lectureIds")) -> list[int]:
    payload = request.get_json(silent=True)
    values: list[Any] = []
    for field in fields:
        if isinstance(payload, dict):
            raw = payload.get(field) or []
            values.extend(raw if isinstance(raw, list) else [raw])
        else:
            values.extend(request.form.getlist(field))
    return parse_int_list(values)


def error_response(message: str, status: int, **extra: Any):
    return jsonify({"error": message, **extra}), status


def validate_teacher(data: dict[str, Any]) -> dict[str, Any]:
    errors: dict[str, str] = {}
    cleaned: dict[str, Any] = {}

    for field in ("name", "email", "department"):
        value = str(data.get(field) or "").strip()
        if not value:
            errors[field] = "required"
        cleaned[field] = value

    if cleaned["email"] and not EMAIL_PATTERN.match(cleaned["email"]):
        errors["email"] = "not a valid email address"
    cleaned["email"] = cleaned["email"].lower()

    phone = str(data.get("phone") or "").strip()
    if phone and not PHONE_PATTERN.match(phone):
        errors["phone"] = "not a recognized phone number"
    cleaned["phone"] = phone or None
    cleaned["office"] = str(data.get("office") or "").strip() or None
    cleaned["profile_image"] = str(data.get("profile_image") or data.get("profileImage") or "").strip()

    raw_experience = data.get("experience")
    if raw_experience is None or str(raw_experience).strip() == "":
        cleaned["experience"] = 0
    else:
        try:
            cleaned["experience"] = int(str(raw_experience).strip())
        except ValueError:
            errors["experience"] = "must be a whole number"
        else:
            if cleaned["experience"] < 0:
                errors["experience"] = "must not be negative"

    cleaned["subjects"] = ", ".join(split_multi_value_field(data.get("subjects")))
    cleaned["qualifications"] = ", ".join(split_multi_value_field(data.get("qualifications")))

    if errors:
        raise ValidationError(errors)
    return cleaned


def teacher_to_dict(teacher: Teacher) -> dict[str, Any]:
    return {
        "id": teacher.id,
        "name": teacher.name,
        "email": teacher.email,
        "department": teacher.department,
        "phone": teacher.phone,
        "office": teacher.office,
        "profile_image": teacher.profile_image,
        "subjects": split_multi_value_field(teacher.subjects),
        "experience": teacher.experience,
        "qualifications": split_multi_value_field(teacher.qualifications),
    }


def teachers_by_id(teacher_ids: Iterable[int | None]) -> dict[int, Teacher]:
    ids = {teacher_id for teacher_id in teacher_ids if teacher_id is not None}
    if not ids:
        return {}
    return {teacher.id: teacher for teacher in Teacher.query.filter(Teacher.id.in_(ids)).all()}


def lecture_to_dict(lecture: Lecture, teachers: dict[int, Teacher]) -> dict[str, Any]:
    teacher = teachers.get(lecture.teacher_id)
    return {
        "id": lecture.id,
        "subject": lecture.subject,
        "teacher_id": lecture.teacher_id,
        "teacher": teacher_to_dict(teacher) if teacher else None,
        "teacher_name": teacher.name if teacher else MISSING_TEACHER_LABEL,
        "classroom": lecture.classroom,
        "day_of_week": lecture.day_of_week,
        "start_time": format_time(lecture.start_time),
        "end_time": format_time(lecture.end_time),
        "lecture_type": lecture.lecture_type,
        "semester": lecture.semester,
        "course": lecture.course,
        "chapter": lecture.chapter,
        "description": lecture.description,
        "is_active": lecture.is_active,
    }


def lecture_fields(lecture: Lecture) -> dict[str, Any]:
    return {
        "subject": lecture.subject,
        "teacher_id": lecture.teacher_id,
        "classroom": lecture.classroom,
        "day_of_week": lecture.day_of_week,
        "start_time": format_time(lecture.start_time),
        "end_time": format_time(lecture.end_time),
        "lecture_type": lecture.lecture_type,
        "semester": lecture.semester,
        "course": lecture.course,
        "chapter": lecture.chapter,
        "description": lecture.description,
        "is_active": lecture.is_active,
    }


def lectures_to_dicts(lectures: list[Lecture]) -> list[dict[str, Any]]:
    teachers = teachers_by_id(lecture.teacher_id for lecture in lectures)
    return [lecture_to_dict(lecture, teachers) for lecture in lectures]


def weekly_order_key(lecture: Lecture) -> tuple[int, int, int]:
    day_index = WEEK_DAYS.index(lecture.day_of_week) if lecture.day_of_week in WEEK_DAYS else len(WEEK_DAYS)
    return day_index, minute_of_day(lecture.start_time), lecture.id


def active_lectures_query(exclude_id: int | None = None):
    query = Lecture.query.filter(Lecture.is_active.is_(True))
    if exclude_id is not None:
        query = query.filter(Lecture.id != exclude_id)
    return query


def conflict_scope_query(day_of_week: str, exclude_id: int | None = None):
    # Teacher and classroom matching happens in find_conflicts, not in SQL.
    return active_lectures_query(exclude_id).filter(Lecture.day_of_week == day_of_week)


def resolve_conflict_policy(data: dict[str, Any]) -> str:
    requested = str(data.get("conflict_policy") or app.config["CONFLICT_POLICY"]).strip().lower()
    if requested not in CONFLICT_POLICIES:
        raise ValidationError({"conflict_policy": f"must be one of {', '.join(CONFLICT_POLICIES)}"})
    return requested


def check_lecture_conflicts(cleaned: dict[str, Any], lecture_id: int | None = None):
    candidate = LectureSlot(
        id=lecture_id,
        teacher_id=cleaned["teacher_id"],
        classroom=cleaned["classroom"],
        day_of_week=cleaned["day_of_week"],
        start_time=cleaned["start_time"],
        end_time=cleaned["end_time"],
        is_active=cleaned["is_active"],
        subject=cleaned["subject"],
    )
    scope = conflict_scope_query(cleaned["day_of_week"], exclude_id=lecture_id)
    return find_conflicts(candidate, scope.all())


def conflicts_payload(matches) -> dict[str, Any]:
    teacher_conflicts, classroom_conflicts = split_conflicts(matches)
    return {
        "conflicts": [match.to_dict() for match in matches],
        "teacher_conflict_ids": [lecture.id for lecture in teacher_conflicts],
        "classroom_conflict_ids": [lecture.id for lecture in classroom_conflicts],
    }


def validated_lecture_or_error(data: dict[str, Any], step: str):
    try:
        cleaned = validate_lecture(data)
    except InvalidTimeFormat as exc:
        BOARD_LOG.warning("step=%s.validation_failed reason=invalid_time value=%r", step, exc.value)
        return None, error_response(str(exc), 400, error_type="invalid_time_format", value=str(exc.value))
    except ValidationError as exc:
        BOARD_LOG.warning("step=%s.validation_failed fields=%s", step, sorted(exc.fields))
        return None, error_response(str(exc), 400, error_type="validation_error", fields=exc.fields)

    if db.session.get(Teacher, cleaned["teacher_id"]) is None:
        BOARD_LOG.warning("step=%s.validation_failed reason=teacher_not_found teacher_id=%s", step, cleaned["teacher_id"])
        return None, error_response(
            "Selected teacher does not exist.",
            400,
            error_type="validation_error",
            fields={"teacher_id": "unknown teacher"},
        )
    return cleaned, None


def save_lecture(lecture: Lecture | None, data: dict[str, Any] | None = None):
    step = "lectures.update" if lecture else "lectures.create"
    lecture_id = lecture.id if lecture else None
    if data is None:
        data = request_data()
    BOARD_LOG.info("step=%s.request lecture_id=%s fields=%s", step, lecture_id, sorted(data))

    try:
        policy = resolve_conflict_policy(data)
    except ValidationError as exc:
        BOARD_LOG.warning("step=%s.validation_failed reason=unknown_conflict_policy", step)
        return error_response(str(exc), 400, error_type="validation_error", fields=exc.fields)

    cleaned, error = validated_lecture_or_error(data, step)
    if error:
        return error

    matches = check_lecture_conflicts(cleaned, lecture_id)
    if matches:
        teacher_conflicts, classroom_conflicts = split_conflicts(matches)
        BOARD_LOG.warning(
            "step=%s.conflicts lecture_id=%s policy=%s teacher_conflicts=%s classroom_conflicts=%s",
            step,
            lecture_id,
            policy,
            len(teacher_conflicts),
            len(classroom_conflicts),
        )
        if policy == "block":
            return error_response(
                "Lecture overlaps existing lectures.",
                409,
                error_type="schedule_conflict",
                conflict_policy=policy,
                **conflicts_payload(matches),
            )

    created = lecture is None
    if created:
        lecture = Lecture()
        db.session.add(lecture)
    for key, value in cleaned.items():
        setattr(lecture, key, value)
    db.session.commit()

    BOARD_LOG.info("step=%s.success lecture_id=%s conflicts=%s", step, lecture.id, len(matches))
    body = {
        "lecture": lectures_to_dicts([lecture])[0],
        "conflict_policy": policy,
        **conflicts_payload(matches),
    }
    return jsonify(body), 201 if created else 200


def audit_schedule() -> list[tuple[Lecture, Lecture, list[str]]]:
    pairs = find_all_conflicts(active_lectures_query().all())
    for first, second, kinds in pairs:
        BOARD_LOG.warning(
            "step=audit.conflict day=%s first_id=%s second_id=%s kinds=%s",
            first.day_of_week,
            first.id,
            second.id,
            ",".join(kinds),
        )
    BOARD_LOG.info("step=audit.complete conflicting_pairs=%s", len(pairs))
    return pairs


def ensure_lecture_indexes() -> None:
    if db.engine.url.get_backend_name() != "sqlite":
        return

    max_attempts = 6
    for attempt in range(1, max_attempts + 1):
        try:
            with db.engine.begin() as conn:
                conn.exec_driver_sql(
                    "CREATE INDEX IF NOT EXISTS ix_lectures_day_active "
                    "ON lectures(day_of_week, is_active)"
                )
                conn.exec_driver_sql(
                    "CREATE INDEX IF NOT EXISTS ix_lectures_teacher "
                    "ON lectures(teacher_id)"
                )
            BOARD_LOG.info("step=bootstrap.indexes_ready attempt=%s", attempt)
            return
        except OperationalError as exc:
            is_locked = "database is locked" in str(exc).lower()
            if not is_locked or attempt == max_attempts:
                raise
            wait_seconds = attempt * 0.5
            BOARD_LOG.warning("step=bootstrap.indexes_retry attempt=%s wait_seconds=%s reason=database_locked", attempt, wait_seconds)
            time.sleep(wait_seconds)


def run_bootstrap_step(step_name: str, fn, *, max_attempts: int = 8, skip_if_locked: bool = True) -> bool:
    for attempt in range(1, max_attempts + 1):
        try:
            fn()
            BOARD_LOG.info("step=bootstrap.step_ok name=%s attempt=%s", step_name, attempt)
            return True
        except OperationalError as exc:
            db.session.rollback()
            is_locked = "database is locked" in str(exc).lower()
            if not is_locked:
                raise
            if attempt == max_attempts:
                if skip_if_locked:
                    BOARD_LOG.warning("step=bootstrap.step_skipped name=%s reason=database_locked", step_name)
                    return False
                raise
            wait_seconds = attempt * 0.5
            BOARD_LOG.warning(
                "step=bootstrap.step_retry name=%s attempt=%s wait_seconds=%s reason=database_locked",
                step_name,
                attempt,
                wait_seconds,
            )
            time.sleep(wait_seconds)
    return False


@app.errorhandler(404)
def not_found(_error):
    return error_response("Not found.", 404)


@app.get("/status")
def status():
    return jsonify({"status": "ok", "service": "digiboard-admin", "timestamp": datetime.now().isoformat()})


@app.get("/api/health")
def health():
    try:
        teacher_count = Teacher.query.count()
    except SQLAlchemyError as exc:
        db.session.rollback()
        BOARD_LOG.error("step=health.database_unreachable error=%s", exc.__class__.__name__)
        return jsonify({"status": "unhealthy", "database": "disconnected", "error": str(exc)}), 500

    return jsonify({"status": "healthy", "database": "connected", "teacher_count": teacher_count})


@app.get("/debug/time-test")
def debug_time_test():
    raw = request.args.get("time", "14:00")
    try:
        parsed = normalize_time(raw)
    except InvalidTimeFormat as exc:
        BOARD_LOG.info("step=debug.time_test input=%r valid=False", raw)
        return jsonify({"input": raw, "is_valid": False, "error": str(exc)})

    BOARD_LOG.info("step=debug.time_test input=%r valid=True output=%s", raw, parsed.isoformat())
    return jsonify({"input": raw, "is_valid": True, "output": parsed.isoformat(), "time_of_day": format_time(parsed)})


@app.get("/dashboard")
def dashboard():
    now = current_time()
    active = active_lectures_query().all()
    next_lecture = find_next_occurrence(now, active)
    stats = {
        "total_teachers": Teacher.query.count(),
        "total_lectures": Lecture.query.count(),
        "active_lectures": len(active),
        "next_lecture": lectures_to_dicts([next_lecture])[0] if next_lecture else None,
    }
    BOARD_LOG.info(
        "step=dashboard.render day=%s time=%s active_lectures=%s next_lecture_id=%s",
        day_name(now),
        format_time(now),
        len(active),
        next_lecture.id if next_lecture else None,
    )
    return jsonify({"now": now.isoformat(), "today": day_name(now), "stats": stats})


@app.get("/schedule")
def schedule():
    now = current_time()
    today = day_name(now)
    weekly = group_by_day(Lecture.query.all())
    teachers = teachers_by_id(lecture.teacher_id for lectures in weekly.values() for lecture in lectures)
    weekly_schedule = {day: [lecture_to_dict(lecture, teachers) for lecture in lectures] for day, lectures in weekly.items()}
    BOARD_LOG.info("step=schedule.render today=%s lectures=%s", today, sum(len(items) for items in weekly.values()))
    return jsonify({"today": today, "today_schedule": weekly_schedule[today], "weekly_schedule": weekly_schedule})


@app.get("/teachers")
def list_teachers():
    teachers = Teacher.query.order_by(Teacher.name.asc()).all()
    BOARD_LOG.info("step=teachers.list count=%s", len(teachers))
    return jsonify({"teachers": [teacher_to_dict(teacher) for teacher in teachers]})


@app.get("/teachers/<int:teacher_id>")
def get_teacher(teacher_id: int):
    teacher = db.get_or_404(Teacher, teacher_id)
    return jsonify({"teacher": teacher_to_dict(teacher)})


@app.post("/teachers")
def create_teacher():
    data = request_data()
    BOARD_LOG.info("step=teachers.create.request name=%r email=%r", data.get("name"), data.get("email"))
    try:
        cleaned = validate_teacher(data)
    except ValidationError as exc:
        BOARD_LOG.warning("step=teachers.create.validation_failed fields=%s", sorted(exc.fields))
        return error_response(str(exc), 400, error_type="validation_error", fields=exc.fields)

    teacher = Teacher(**cleaned)
    db.session.add(teacher)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        BOARD_LOG.warning("step=teachers.create.failed reason=duplicate_email email=%r", cleaned["email"])
        return error_response("Teacher email must be unique.", 409, error_type="duplicate_email")

    BOARD_LOG.info("step=teachers.create.success teacher_id=%s", teacher.id)
    return jsonify({"teacher": teacher_to_dict(teacher)}), 201


@app.post("/teachers/<int:teacher_id>/update")
def update_teacher(teacher_id: int):
    teacher = db.get_or_404(Teacher, teacher_id)
    data = request_data()
    BOARD_LOG.info("step=teachers.update.request teacher_id=%s fields=%s", teacher_id, sorted(data))
    try:
        cleaned = validate_teacher(data)
    except ValidationError as exc:
        BOARD_LOG.warning("step=teachers.update.validation_failed teacher_id=%s fields=%s", teacher_id, sorted(exc.fields))
        return error_response(str(exc), 400, error_type="validation_error", fields=exc.fields)

    for key, value in cleaned.items():
        setattr(teacher, key, value)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        BOARD_LOG.warning("step=teachers.update.failed teacher_id=%s reason=duplicate_email", teacher_id)
        return error_response("Teacher email must be unique.", 409, error_type="duplicate_email")

    BOARD_LOG.info("step=teachers.update.success teacher_id=%s", teacher_id)
    return jsonify({"teacher": teacher_to_dict(teacher)})


@app.post("/teachers/<int:teacher_id>/delete")
def delete_teacher(teacher_id: int):
    teacher = db.get_or_404(Teacher, teacher_id)
    BOARD_LOG.info("step=teachers.delete.request teacher_id=%s", teacher_id)
    orphaned = Lecture.query.filter_by(teacher_id=teacher.id).count()
    db.session.delete(teacher)
    db.session.commit()
    if orphaned:
        BOARD_LOG.warning("step=teachers.delete.orphaned_lectures teacher_id=%s count=%s", teacher_id, orphaned)
    BOARD_LOG.info("step=teachers.delete.success teacher_id=%s", teacher_id)
    return jsonify({"success": True, "orphaned_lectures": orphaned})


@app.get("/lectures")
def list_lectures():
    lectures = sorted(Lecture.query.all(), key=weekly_order_key)
    BOARD_LOG.info("step=lectures.list count=%s", len(lectures))
    return jsonify({"lectures": lectures_to_dicts(lectures)})


@app.get("/lectures/<int:lecture_id>")
def get_lecture(lecture_id: int):
    lecture = db.get_or_404(Lecture, lecture_id)
    return jsonify({"lecture": lectures_to_dicts([lecture])[0]})


@app.post("/lectures")
def create_lecture():
    return save_lecture(None)


@app.post("/lectures/<int:lecture_id>/update")
def update_lecture(lecture_id: int):
    lecture = db.get_or_404(Lecture, lecture_id)
    return save_lecture(lecture)


@app.put("/lectures/<int:lecture_id>")
def quick_update_lecture(lecture_id: int):
    lecture = db.get_or_404(Lecture, lecture_id)
    changes = canonical_lecture_fields(request_data())
    BOARD_LOG.info("step=lectures.quick_update.request lecture_id=%s fields=%s", lecture_id, sorted(changes))
    return save_lecture(lecture, {**lecture_fields(lecture), **changes})


@app.post("/lectures/check-conflicts")
def check_conflicts():
    data = request_data()
    lecture_id = parse_int_list([data.get("id")])
    lecture_id = lecture_id[0] if lecture_id else None
    BOARD_LOG.info("step=lectures.check_conflicts.request lecture_id=%s", lecture_id)

    cleaned, error = validated_lecture_or_error(data, "lectures.check_conflicts")
    if error:
        return error

    matches = check_lecture_conflicts(cleaned, lecture_id)
    BOARD_LOG.info("step=lectures.check_conflicts.complete lecture_id=%s conflicts=%s", lecture_id, len(matches))
    return jsonify({"has_conflicts": bool(matches), **conflicts_payload(matches)})


@app.post("/lectures/<int:lecture_id>/delete")
def delete_lecture(lecture_id: int):
    lecture = db.get_or_404(Lecture, lecture_id)
    BOARD_LOG.info("step=lectures.delete.request lecture_id=%s", lecture_id)
    db.session.delete(lecture)
    db.session.commit()
    BOARD_LOG.info("step=lectures.delete.success lecture_id=%s", lecture_id)
    return jsonify({"success": True})


@app.post("/lectures/bulk-delete")
def bulk_delete_lectures():
    lecture_ids = request_id_list()
    BOARD_LOG.info("step=lectures.bulk_delete.request ids=%s", lecture_ids)
    if not lecture_ids:
        BOARD_LOG.warning("step=lectures.bulk_delete.validation_failed reason=no_lectures_selected")
        return error_response("No lectures selected.", 400, error_type="validation_error")

    deleted = Lecture.query.filter(Lecture.id.in_(lecture_ids)).delete(synchronize_session=False)
    db.session.commit()
    BOARD_LOG.info("step=lectures.bulk_delete.success deleted=%s", deleted)
    return jsonify({"success": True, "count": deleted})


def apply_active_flags(lectures: list[Lecture], flags: dict[int, bool], step: str):
    activated: list[Lecture] = []
    for lecture in lectures:
        new_value = flags[lecture.id]
        if new_value and not lecture.is_active:
            activated.append(lecture)
        lecture.is_active = new_value
    db.session.flush()

    reported: dict[int, list[dict[str, Any]]] = {}
    if activated:
        active = active_lectures_query().all()
        for lecture in activated:
            matches = find_conflicts(lecture, active)
            if matches:
                reported[lecture.id] = [match.to_dict() for match in matches]
                BOARD_LOG.warning("step=%s.conflicts lecture_id=%s conflicts=%s", step, lecture.id, len(matches))
    db.session.commit()
    return reported


@app.post("/lectures/bulk-toggle-status")
def bulk_toggle_lectures():
    lecture_ids = request_id_list()
    BOARD_LOG.info("step=lectures.bulk_toggle.request ids=%s", lecture_ids)
    if not lecture_ids:
        BOARD_LOG.warning("step=lectures.bulk_toggle.validation_failed reason=no_lectures_selected")
        return error_response("No lectures selected.", 400, error_type="validation_error")

    lectures = Lecture.query.filter(Lecture.id.in_(lecture_ids)).all()
    flags = {lecture.id: not lecture.is_active for lecture in lectures}
    conflicts = apply_active_flags(lectures, flags, "lectures.bulk_toggle")
    BOARD_LOG.info("step=lectures.bulk_toggle.success count=%s", len(lectures))
    return jsonify({"success": True, "count": len(lectures), "conflicts": conflicts})


@app.post("/lectures/bulk-update")
def bulk_update_lectures():
    data = request_data()
    action = str(data.get("action") or "").strip().lower()
    lecture_ids = request_id_list()
    BOARD_LOG.info("step=lectures.bulk_update.request action=%r ids=%s", action, lecture_ids)
    if action not in ("activate", "deactivate"):
        BOARD_LOG.warning("step=lectures.bulk_update.validation_failed reason=unknown_action action=%r", action)
        return error_response("Action must be activate or deactivate.", 400, error_type="validation_error")
    if not lecture_ids:
        BOARD_LOG.warning("step=lectures.bulk_update.validation_failed reason=no_lectures_selected")
        return error_response("No lectures selected.", 400, error_type="validation_error")

    lectures = Lecture.query.filter(Lecture.id.in_(lecture_ids)).all()
    flags = {lecture.id: action == "activate" for lecture in lectures}
    conflicts = apply_active_flags(lectures, flags, "lectures.bulk_update")
    BOARD_LOG.info("step=lectures.bulk_update.success action=%s count=%s", action, len(lectures))
    return jsonify({"success": True, "count": len(lectures), "conflicts": conflicts})


def initialize_database() -> None:
    with app.app_context():
        run_bootstrap_step("create_all", db.create_all)
        run_bootstrap_step("ensure_lecture_indexes", ensure_lecture_indexes)
        run_bootstrap_step("audit_schedule", audit_schedule)
        BOARD_LOG.info("step=bootstrap.db_ready uri=%s", app.config["SQLALCHEMY_DATABASE_URI"])


@app.cli.command("init-db")
def init_db_command() -> None:
    initialize_database()
    click.echo("Database ready.")


@app.cli.command("audit-schedule")
def audit_schedule_command() -> None:
    pairs = audit_schedule()
    if not pairs:
        click.echo("No conflicts found.")
        return

    click.echo(f"Conflicts found: {len(pairs)}")
    for first, second, kinds in pairs:
        click.echo(
            f"- {first.day_of_week} "
            f"{format_time(first.start_time)}-{format_time(first.end_time)} #{first.id} {first.subject}  <->  "
            f"{format_time(second.start_time)}-{format_time(second.end_time)} #{second.id} {second.subject} "
            f"({', '.join(kinds)})"
        )
    sys.exit(1)


if __name__ == "__main__":
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "3001"))
    debug = os.getenv("FLASK_DEBUG", "0") == "1"
    should_initialize = (not debug) or (os.getenv("WERKZEUG_RUN_MAIN") == "true")
    if should_initialize:
        initialize_database()
    else:
        BOARD_LOG.info("step=bootstrap.skip reason=debug_reloader_parent")
    BOARD_LOG.info("step=server.start host=%s port=%s debug=%s conflict_policy=%s", host, port, debug, app.config["CONFLICT_POLICY"])
    app.run(host=host, port=port, debug=debug, use_reloader=False)

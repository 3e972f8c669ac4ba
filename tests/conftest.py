import os
from datetime import datetime

os.environ["DATABASE_URL"] = "sqlite://"  # in-memory db, must be set before the app module is imported
os.environ.setdefault("CONFLICT_POLICY", "warn")

import pytest

from app import Teacher, app as flask_app, db
from scheduling import LectureSlot, normalize_time

# Wednesday
FIXED_NOW = datetime(2025, 1, 15, 14, 0)


@pytest.fixture()
def app():
    flask_app.config["TESTING"] = True
    flask_app.config["CONFLICT_POLICY"] = "warn"
    flask_app.config["NOW_PROVIDER"] = lambda: FIXED_NOW
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def teacher(app):
    row = Teacher(name="Ada Lovelace", email="ada@example.com", department="Mathematics")
    db.session.add(row)
    db.session.commit()
    return row


@pytest.fixture()
def other_teacher(app):
    row = Teacher(name="Alan Turing", email="alan@example.com", department="Computing")
    db.session.add(row)
    db.session.commit()
    return row


def make_slot(id, teacher_id, classroom, day, start, end, is_active=True):
    return LectureSlot(
        id=id,
        teacher_id=teacher_id,
        classroom=classroom,
        day_of_week=day,
        start_time=normalize_time(start),
        end_time=normalize_time(end),
        is_active=is_active,
        subject=f"Subject {id}",
    )


def lecture_form(teacher_id, **overrides):
    form = {
        "subject": "Algebra",
        "teacher": str(teacher_id),
        "classroom": "Room 101",
        "dayOfWeek": "Monday",
        "startTime": "09:00",
        "endTime": "10:00",
        "semester": "XII",
    }
    form.update(overrides)
    return form

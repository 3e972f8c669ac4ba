"""
Conflict detection over the weekly schedule.

Two active lectures conflict when they share a teacher or a classroom on the
same weekday and their [start, end) ranges overlap. Touching ends are fine.
"""

import pytest

from conftest import make_slot
from scheduling import (
    CONFLICT_KINDS,
    classroom_key,
    find_all_conflicts,
    find_conflicts,
    normalize_time,
    overlaps,
    split_conflicts,
)


@pytest.fixture
def monday_nine():
    return make_slot("L1", "T", "Room 101", "Monday", "09:00", "10:00")


def test_overlap_is_symmetric():
    ranges = [("09:00", "10:00"), ("09:30", "10:30"), ("10:00", "11:00"), ("08:00", "12:00"), ("11:00", "11:30")]
    for a_start, a_end in ranges:
        for b_start, b_end in ranges:
            a = (normalize_time(a_start), normalize_time(a_end))
            b = (normalize_time(b_start), normalize_time(b_end))
            assert overlaps(*a, *b) == overlaps(*b, *a)


def test_touching_endpoints_do_not_overlap():
    assert not overlaps(normalize_time("09:00"), normalize_time("10:00"), normalize_time("10:00"), normalize_time("11:00"))
    assert overlaps(normalize_time("09:00"), normalize_time("10:01"), normalize_time("10:00"), normalize_time("11:00"))


def test_teacher_conflict_in_other_room(monday_nine):
    candidate = make_slot(None, "T", "Room 202", "Monday", "09:30", "10:30")
    teacher_conflicts, classroom_conflicts = split_conflicts(find_conflicts(candidate, [monday_nine]))
    assert teacher_conflicts == [monday_nine]
    assert classroom_conflicts == []


def test_boundary_touch_reports_nothing(monday_nine):
    candidate = make_slot(None, "T", "Room 101", "Monday", "10:00", "11:00")
    assert find_conflicts(candidate, [monday_nine]) == []


def test_classroom_conflict_for_other_teacher(monday_nine):
    candidate = make_slot(None, "U", "Room 101", "Monday", "09:45", "10:15")
    teacher_conflicts, classroom_conflicts = split_conflicts(find_conflicts(candidate, [monday_nine]))
    assert teacher_conflicts == []
    assert classroom_conflicts == [monday_nine]


def test_classroom_match_ignores_case_and_spaces(monday_nine):
    candidate = make_slot(None, "U", " room 101 ", "Monday", "09:45", "10:15")
    assert [match.kind for match in find_conflicts(candidate, [monday_nine])] == ["classroom"]


def test_same_teacher_and_room_appears_in_both_partitions(monday_nine):
    candidate = make_slot(None, "T", "Room 101", "Monday", "09:15", "09:45")
    matches = find_conflicts(candidate, [monday_nine])
    assert sorted(match.kind for match in matches) == ["classroom", "teacher"]
    teacher_conflicts, classroom_conflicts = split_conflicts(matches)
    assert teacher_conflicts == [monday_nine]
    assert classroom_conflicts == [monday_nine]


def test_different_days_never_conflict(monday_nine):
    candidate = make_slot(None, "T", "Room 101", "Tuesday", "09:00", "10:00")
    assert find_conflicts(candidate, [monday_nine]) == []


def test_editing_lecture_does_not_conflict_with_itself(monday_nine):
    edited = make_slot("L1", "T", "Room 101", "Monday", "09:00", "10:00")
    assert find_conflicts(edited, [monday_nine]) == []


def test_inactive_lecture_never_conflicts():
    inactive = make_slot("L1", "T", "Room 101", "Monday", "09:00", "10:00", is_active=False)
    candidate = make_slot(None, "T", "Room 101", "Monday", "09:00", "10:00")
    assert find_conflicts(candidate, [inactive]) == []


def test_inactive_candidate_is_still_checked(monday_nine):
    candidate = make_slot("L2", "T", "Room 202", "Monday", "09:30", "10:30", is_active=False)
    assert [match.lecture for match in find_conflicts(candidate, [monday_nine])] == [monday_nine]


def test_three_overlapping_lectures_each_report_the_other_two():
    lectures = [
        make_slot("A", "T", "Room 1", "Monday", "09:00", "10:30"),
        make_slot("B", "T", "Room 2", "Monday", "09:30", "11:00"),
        make_slot("C", "T", "Room 3", "Monday", "10:00", "10:45"),
    ]
    for lecture in lectures:
        found = {match.lecture.id for match in find_conflicts(lecture, lectures)}
        assert found == {other.id for other in lectures} - {lecture.id}


def test_conflict_match_to_dict(monday_nine):
    candidate = make_slot(None, "T", "Room 202", "Monday", "09:30", "10:30")
    (match,) = find_conflicts(candidate, [monday_nine])
    assert match.to_dict() == {
        "kind": "teacher",
        "lecture_id": "L1",
        "subject": "Subject L1",
        "teacher_id": "T",
        "classroom": "Room 101",
        "day_of_week": "Monday",
        "start_time": "09:00",
        "end_time": "10:00",
    }


def test_find_all_conflicts_reports_each_pair_once():
    lectures = [
        make_slot("A", "T", "Room 1", "Monday", "09:00", "10:30"),
        make_slot("B", "T", "Room 2", "Monday", "09:30", "11:00"),
        make_slot("C", "U", "Room 2", "Monday", "10:45", "12:00"),
        make_slot("D", "U", "Room 9", "Monday", "13:00", "14:00"),
        make_slot("E", "T", "Room 1", "Monday", "09:00", "10:30", is_active=False),
        make_slot("F", "T", "Room 1", "Tuesday", "09:00", "10:30"),
    ]
    pairs = {(first.id, second.id): kinds for first, second, kinds in find_all_conflicts(lectures)}
    assert pairs == {("A", "B"): ["teacher"], ("B", "C"): ["classroom"]}


@pytest.mark.parametrize(("stored", "typed"), [("Aula Ä", " aula  ä "), ("Straße 4", "STRASSE 4"), ("Sala Ñ", "sala ñ")])
def test_classroom_match_folds_non_ascii(stored, typed):
    assert classroom_key(stored) == classroom_key(typed)
    existing = make_slot("L1", "T", stored, "Monday", "09:00", "10:00")
    candidate = make_slot(None, "U", typed, "Monday", "09:30", "10:30")
    assert [match.kind for match in find_conflicts(candidate, [existing])] == ["classroom"]


def test_same_teacher_and_room_yields_every_kind(monday_nine):
    candidate = make_slot(None, "T", "room 101", "Monday", "09:15", "09:45")
    matches = find_conflicts(candidate, [monday_nine])
    assert tuple(match.kind for match in matches) == CONFLICT_KINDS
    teacher_side, classroom_side = split_conflicts(matches)
    assert teacher_side == classroom_side == [monday_nine]

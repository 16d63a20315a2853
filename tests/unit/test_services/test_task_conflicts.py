"""Tests for time-overlap detection."""

import pytest
from datetime import timedelta

from src.models.task import TaskStatus
from src.services.task_conflicts import (
    build_task_conflict_map,
    find_task_conflicts_for_range,
    overlaps,
    to_time_range,
)
from tests.utils.factories import BASE_TIME, create_task


def at(hours: float):
    return BASE_TIME + timedelta(hours=hours)


@pytest.mark.unit
def test_conflict_map_is_symmetric():
    a = create_task(task_id="a", start_at=at(0), end_at=at(2))
    b = create_task(task_id="b", start_at=at(1), end_at=at(3))
    c = create_task(task_id="c", start_at=at(5), end_at=at(6))

    conflicts = build_task_conflict_map([a, b, c])

    assert conflicts == {"a": {"b"}, "b": {"a"}, "c": set()}


@pytest.mark.unit
def test_touching_bounds_conflict():
    """A.end == B.start counts as a conflict."""
    a = create_task(task_id="a", start_at=at(0), end_at=at(1))
    b = create_task(task_id="b", start_at=at(1), end_at=at(2))

    conflicts = build_task_conflict_map([a, b])

    assert conflicts["a"] == {"b"}
    assert conflicts["b"] == {"a"}


@pytest.mark.unit
def test_task_never_conflicts_with_itself():
    a = create_task(task_id="a", start_at=at(0), end_at=at(1))
    conflicts = build_task_conflict_map([a])
    assert conflicts == {"a": set()}


@pytest.mark.unit
def test_done_tasks_are_ignored():
    a = create_task(task_id="a", start_at=at(0), end_at=at(2))
    done = create_task(task_id="done", start_at=at(1), end_at=at(3), status=TaskStatus.DONE)

    conflicts = build_task_conflict_map([a, done])

    assert conflicts == {"a": set()}


@pytest.mark.unit
def test_missing_end_is_a_point_in_time():
    point = create_task(task_id="point", start_at=at(1)).model_copy(update={"end_at": None})
    span = create_task(task_id="span", start_at=at(0), end_at=at(1))
    later = create_task(task_id="later", start_at=at(1.5), end_at=at(2))

    conflicts = build_task_conflict_map([point, span, later])

    assert conflicts["point"] == {"span"}
    assert conflicts["later"] == set()


@pytest.mark.unit
def test_to_time_range_defaults_and_clamps():
    assert to_time_range(at(1)) == (at(1), at(1))
    assert to_time_range(at(1), at(0)) == (at(1), at(1))
    assert to_time_range(at(1), "not a date") == (at(1), at(1))
    assert to_time_range(at(1), "2026-02-11T12:00:00Z") == (at(1), at(3))


@pytest.mark.unit
def test_overlaps_inclusive():
    assert overlaps((at(0), at(1)), (at(1), at(2)))
    assert not overlaps((at(0), at(1)), (at(1.01), at(2)))


@pytest.mark.unit
def test_find_conflicts_for_candidate_range():
    """Edit form warning: excludes the edited task and sorts by start."""
    late = create_task(task_id="late", start_at=at(2), end_at=at(4))
    early = create_task(task_id="early", start_at=at(0), end_at=at(3))
    editing = create_task(task_id="editing", start_at=at(2), end_at=at(3))
    far = create_task(task_id="far", start_at=at(10), end_at=at(11))

    found = find_task_conflicts_for_range(
        [late, early, editing, far], at(2.5), at(3.5), exclude_task_id="editing"
    )

    assert [task.id for task in found] == ["early", "late"]

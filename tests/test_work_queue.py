"""Tests for the segment work queue."""

from speechbridge.services.pipeline.models import Segment
from speechbridge.services.pipeline.work_queue import WorkQueue


def _segment(n: int) -> Segment:
    return Segment(raw_text=f"s{n}", annotated_text=f"s{n}", sequence=n)


def test_fifo_order_and_peek_does_not_remove():
    queue = WorkQueue()
    queue.extend(_segment(i) for i in range(3))

    assert queue.peek().sequence == 0
    assert len(queue) == 3
    assert [queue.pop().sequence for _ in range(3)] == [0, 1, 2]
    assert queue.pop() is None
    assert not queue


def test_append_reports_empty_to_non_empty_transition():
    queue = WorkQueue()

    assert queue.append(_segment(0)) is True
    assert queue.append(_segment(1)) is False
    assert queue.extend([_segment(2)]) is False

    queue.clear()
    assert queue.extend([_segment(3), _segment(4)]) is True


def test_pop_if_head_only_removes_matching_head():
    queue = WorkQueue()
    first, second = _segment(0), _segment(1)
    queue.extend([first, second])

    assert queue.pop_if_head(second) is False
    assert queue.pop_if_head(first) is True
    assert queue.snapshot() == [second]


def test_clear_returns_dropped_count():
    queue = WorkQueue()
    queue.extend(_segment(i) for i in range(4))

    assert queue.clear() == 4
    assert len(queue) == 0

"""Shared fixtures: in-memory store, simulated clock, small question bank and roster."""
import sys
import os
import heapq
import itertools

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from question_bank import parse_rows
from realtime_store import RealtimeStore
from roster import Roster, Student
from scheduler import Scheduler, TimerHandle


class FakeScheduler(Scheduler):
    """Simulated clock: callbacks run only when the test advances time."""

    def __init__(self):
        self.now = 0.0
        self._queue: list = []
        self._seq = itertools.count()

    def call_later(self, delay, callback):
        handle = TimerHandle()
        heapq.heappush(self._queue, (self.now + delay, next(self._seq), handle, callback))
        return handle

    async def advance(self, seconds: float):
        target = self.now + seconds
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            self.now = due
            if not handle.cancelled:
                await callback()
        self.now = target

    def pending(self) -> int:
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)


def make_rows(num_questions=12):
    return [
        {
            "Question": f"Question {i + 1}?",
            "A": f"Right {i + 1}",
            "B": "Wrong B",
            "C": "Wrong C",
            "D": "Wrong D",
            "Answer": f"Right {i + 1}",
            "Category": "Test",
        }
        for i in range(num_questions)
    ]


def make_bank(num_questions=12):
    return parse_rows(make_rows(num_questions))


@pytest.fixture
def store():
    return RealtimeStore()


@pytest.fixture
def clock():
    return FakeScheduler()


@pytest.fixture
def bank():
    return make_bank()


@pytest.fixture
def roster():
    return Roster([
        Student("01", "Alice", "pw1"),
        Student("02", "Bob", "pw2"),
        Student("03", "Carol", "pw3"),
    ])

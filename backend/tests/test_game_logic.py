import sys
import os
import random

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from room_state import (
    P1, P2, MatchSettings, Role, both_answered, draw_question_order, new_room, opponent, role_for_seat,
    rounds_in_match, score_answer, score_round, streak_bonus,
)
import config


def pick(correct=True, time=20):
    return {"text": "X", "isCorrect": correct, "time": time}


# ---------------------------------------------------------------------------
# Scoring Tests
# ---------------------------------------------------------------------------

class TestStreakBonus:
    def test_no_bonus_below_three(self):
        assert streak_bonus(0) == 0
        assert streak_bonus(1) == 0
        assert streak_bonus(2) == 0

    def test_bonus_from_three(self):
        assert streak_bonus(3) == 50
        assert streak_bonus(5) == 50

    def test_bonus_from_six(self):
        assert streak_bonus(6) == 100
        assert streak_bonus(20) == 100


class TestScoreAnswer:
    def test_correct_first_answer_time_points_only(self):
        """Answering correctly at 22s left with no prior streak gives 220."""
        points, streak = score_answer(pick(True, 22), 0)
        assert points == 220
        assert streak == 1

    def test_wrong_answer_resets_streak(self):
        points, streak = score_answer(pick(False, 25), 4)
        assert points == 0
        assert streak == 0

    def test_no_answer_resets_streak(self):
        points, streak = score_answer(None, 7)
        assert points == 0
        assert streak == 0

    def test_third_in_a_row_gets_small_bonus(self):
        points, streak = score_answer(pick(True, 10), 2)
        assert streak == 3
        assert points == 10 * config.TIME_POINTS_PER_SECOND + 50

    def test_sixth_in_a_row_gets_big_bonus(self):
        points, streak = score_answer(pick(True, 0), 5)
        assert streak == 6
        assert points == 100

    def test_streak_increments_by_exactly_one(self):
        for prior in range(0, 12):
            _, streak = score_answer(pick(True, 5), prior)
            assert streak == prior + 1


class TestScoreRound:
    def make_room(self):
        return new_room(list(range(10)), MatchSettings.standard())

    def test_each_seat_scored_independently(self):
        room = self.make_room()
        room["selections"] = {P1: pick(True, 22), P2: pick(False, 29)}
        room["streaks"] = {P1: 0, P2: 3}
        scores, streaks = score_round(room)
        assert scores == {P1: 220, P2: 0}
        assert streaks == {P1: 1, P2: 0}

    def test_both_correct_both_scored(self):
        room = self.make_room()
        room["selections"] = {P1: pick(True, 12), P2: pick(True, 12)}
        room["scores"] = {P1: 100, P2: 40}
        scores, _ = score_round(room)
        assert scores == {P1: 220, P2: 160}

    def test_missing_selections_map(self):
        room = self.make_room()
        del room["selections"]
        room["streaks"] = {P1: 5, P2: 2}
        scores, streaks = score_round(room)
        assert scores == {P1: 0, P2: 0}
        assert streaks == {P1: 0, P2: 0}

    def test_both_answered(self):
        room = self.make_room()
        assert not both_answered(room)
        room["selections"] = {P1: pick()}
        assert not both_answered(room)
        room["selections"][P2] = pick(False)
        assert both_answered(room)


# ---------------------------------------------------------------------------
# Room record & roles
# ---------------------------------------------------------------------------

class TestRoomRecord:
    def test_new_room_defaults(self):
        room = new_room([4, 2, 9], MatchSettings.standard())
        assert room["currentIdx"] == 0
        assert room["questionOrder"] == [4, 2, 9]
        assert room["timeLeft"] == config.ROUND_SECONDS
        assert room["gameOver"] is False
        assert room["statsSaved"] is False
        assert room["forfeitedBy"] is None
        assert room["players"][P1]["presence"] is False

    def test_single_question_variant(self):
        settings = MatchSettings.single_question()
        assert settings.max_questions == 1
        assert settings.round_seconds == 15
        assert new_room([0], settings)["timeLeft"] == 15

    def test_question_order_distinct(self):
        order = draw_question_order(50, 10, random.Random(7))
        assert len(order) == 10
        assert len(set(order)) == 10
        assert all(0 <= i < 50 for i in order)

    def test_small_bank_shortens_match(self):
        settings = MatchSettings.standard()
        order = draw_question_order(4, settings.max_questions, random.Random(1))
        assert sorted(order) == [0, 1, 2, 3]
        assert rounds_in_match(new_room(order, settings), settings) == 4

    def test_full_bank_plays_max_questions(self):
        settings = MatchSettings.standard()
        order = draw_question_order(50, settings.max_questions, random.Random(1))
        assert rounds_in_match(new_room(order, settings), settings) == config.MAX_QUESTIONS

    def test_roles(self):
        assert role_for_seat(P1) == Role.AUTHORITY
        assert role_for_seat(P2) == Role.PARTICIPANT
        assert role_for_seat(None) == Role.OBSERVER

    def test_opponent(self):
        assert opponent(P1) == P2
        assert opponent(P2) == P1

"""Room record layout, seat roles and per-round scoring."""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple
import random

import config

P1 = "p1"
P2 = "p2"
SEATS = (P1, P2)


class Role(str, Enum):
    AUTHORITY = "authority"      # seat p1, advances the round clock
    PARTICIPANT = "participant"  # seat p2
    OBSERVER = "observer"        # teacher / viewer


def role_for_seat(seat: Optional[str]) -> Role:
    if seat == P1:
        return Role.AUTHORITY
    if seat == P2:
        return Role.PARTICIPANT
    return Role.OBSERVER


def opponent(seat: str) -> str:
    return P2 if seat == P1 else P1


@dataclass(frozen=True)
class MatchSettings:
    max_questions: int = config.MAX_QUESTIONS
    round_seconds: int = config.ROUND_SECONDS
    reveal_seconds: float = config.REVEAL_SECONDS
    grace_seconds: float = config.DISCONNECT_GRACE_SECONDS
    tick_seconds: float = config.TICK_SECONDS

    @classmethod
    def standard(cls) -> "MatchSettings":
        return cls()

    @classmethod
    def single_question(cls) -> "MatchSettings":
        return cls(max_questions=1, round_seconds=config.SINGLE_QUESTION_ROUND_SECONDS)


def empty_seat() -> dict:
    return {"presence": False, "identity": None, "displayName": ""}


def draw_question_order(bank_size: int, count: int, rng: Optional[random.Random] = None) -> List[int]:
    """Sample ``count`` distinct question indices, fewer if the bank is smaller."""
    rng = rng or random
    return rng.sample(range(bank_size), min(count, bank_size))


def new_room(question_order: List[int], settings: MatchSettings) -> dict:
    return {
        "players": {P1: empty_seat(), P2: empty_seat()},
        "currentIdx": 0,
        "questionOrder": list(question_order),
        "scores": {P1: 0, P2: 0},
        "streaks": {P1: 0, P2: 0},
        "selections": {P1: None, P2: None},
        "timeLeft": settings.round_seconds,
        "showResult": False,
        "gameOver": False,
        "forfeitedBy": None,
        "statsSaved": False,
    }


# --- Snapshot accessors (the store drops empty maps and None leaves) ---

def seat_info(room: Optional[dict], seat: str) -> dict:
    return ((room or {}).get("players") or {}).get(seat) or empty_seat()


def is_present(room: Optional[dict], seat: str) -> bool:
    return bool(seat_info(room, seat).get("presence"))


def selection(room: Optional[dict], seat: str) -> Optional[dict]:
    return ((room or {}).get("selections") or {}).get(seat)


def both_answered(room: Optional[dict]) -> bool:
    return all(selection(room, seat) for seat in SEATS)


def seat_value(room: Optional[dict], field: str, seat: str) -> int:
    return int(((room or {}).get(field) or {}).get(seat) or 0)


def current_question_index(room: dict) -> Optional[int]:
    order = room.get("questionOrder") or []
    idx = room.get("currentIdx", 0)
    if 0 <= idx < len(order):
        return order[idx]
    return None


def rounds_in_match(room: Optional[dict], settings: MatchSettings) -> int:
    """One round per drawn question, never more than the match length."""
    order = (room or {}).get("questionOrder") or []
    return min(settings.max_questions, len(order)) if order else settings.max_questions


# --- Scoring ---

def streak_bonus(streak: int) -> int:
    bonus = 0
    for threshold, points in sorted(config.STREAK_BONUSES.items()):
        if streak >= threshold:
            bonus = points
    return bonus


def score_answer(sel: Optional[dict], streak: int) -> Tuple[int, int]:
    """Return (points, new_streak) for one seat's selection this round."""
    if not sel or not sel.get("isCorrect"):
        return 0, 0
    new_streak = streak + 1
    points = int(sel.get("time", 0)) * config.TIME_POINTS_PER_SECOND + streak_bonus(new_streak)
    return points, new_streak


def score_round(room: dict) -> Tuple[Dict[str, int], Dict[str, int]]:
    scores = {}
    streaks = {}
    for seat in SEATS:
        points, new_streak = score_answer(selection(room, seat), seat_value(room, "streaks", seat))
        scores[seat] = seat_value(room, "scores", seat) + points
        streaks[seat] = new_streak
    return scores, streaks

"""One-time application of a finished match to both players' profiles."""
from dataclasses import dataclass
from typing import Optional
import logging

import config
from profiles import apply_profile_delta
from realtime_store import RealtimeStore
from room_state import P1, SEATS, opponent, seat_info, seat_value

logger = logging.getLogger(__name__)


@dataclass
class MatchOutcome:
    winner: Optional[str]  # seat, None on a tie
    loser: Optional[str]
    forfeit: bool = False

    @property
    def is_tie(self) -> bool:
        return self.winner is None


def decide_outcome(room: dict) -> MatchOutcome:
    forfeited_by = room.get("forfeitedBy")
    if forfeited_by in SEATS:
        return MatchOutcome(winner=opponent(forfeited_by), loser=forfeited_by, forfeit=True)
    p1_score = seat_value(room, "scores", "p1")
    p2_score = seat_value(room, "scores", "p2")
    if p1_score > p2_score:
        return MatchOutcome(winner="p1", loser="p2")
    if p2_score > p1_score:
        return MatchOutcome(winner="p2", loser="p1")
    return MatchOutcome(winner=None, loser=None)


def responsible_seat(room: dict) -> str:
    """The non-forfeiting seat settles a forfeit; otherwise p1 does."""
    forfeited_by = room.get("forfeitedBy")
    if forfeited_by in SEATS:
        return opponent(forfeited_by)
    return P1


async def settle_match(store: RealtimeStore, room_id: str) -> Optional[MatchOutcome]:
    """
    Settle a finished match exactly once.

    ``statsSaved`` is claimed with a compare-and-set transaction on the room,
    so concurrent callers cannot both pass the guard. Returns the applied
    outcome, or None when the match is unfinished or already settled.
    """
    def claim(room):
        if not room or not room.get("gameOver") or room.get("statsSaved"):
            return None
        room["statsSaved"] = True
        return room

    result = await store.transact(f"rooms/{room_id}", claim)
    if not result.committed:
        logger.debug("Room %s: settlement skipped (not finished or already saved)", room_id)
        return None

    room = result.value
    outcome = decide_outcome(room)
    winner_id = seat_info(room, outcome.winner).get("identity") if outcome.winner else None
    loser_id = seat_info(room, outcome.loser).get("identity") if outcome.loser else None

    if outcome.forfeit:
        if loser_id:
            await apply_profile_delta(store, loser_id, energy=-config.FORFEIT_ENERGY)
        if winner_id:
            await apply_profile_delta(store, winner_id, energy=config.FORFEIT_WIN_ENERGY, wins=1)
        logger.info("Room %s settled: %s forfeited", room_id, outcome.loser)
    elif outcome.is_tie:
        for seat in SEATS:
            identity = seat_info(room, seat).get("identity")
            if identity:
                await apply_profile_delta(store, identity, score=seat_value(room, "scores", seat))
        logger.info("Room %s settled: tie", room_id)
    else:
        if winner_id:
            await apply_profile_delta(store, winner_id, energy=config.WIN_ENERGY, wins=1,
                                      score=seat_value(room, "scores", outcome.winner))
        if loser_id:
            await apply_profile_delta(store, loser_id, energy=-config.LOSS_ENERGY,
                                      score=seat_value(room, "scores", outcome.loser))
        logger.info("Room %s settled: %s won", room_id, outcome.winner)
    return outcome

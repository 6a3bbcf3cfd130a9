"""
Round state machine for one room.

Runs only in the session holding seat p1, which is the sole writer of the
round clock, reveal, scores/streaks and the normal transition to game over.
Decisions are taken against the latest room snapshot pushed by the store;
snapshots from an earlier round are ignored, so a delayed push can stall a
round but never score it twice.
"""
from enum import Enum
from typing import Callable, Optional
import logging

from realtime_store import RealtimeStore
from room_state import MatchSettings, P2, both_answered, is_present, rounds_in_match, score_round
from scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class RoundPhase(str, Enum):
    WAITING = "WAITING_FOR_OPPONENT"
    IN_ROUND = "IN_ROUND"
    REVEALING = "REVEALING"
    GAME_OVER = "GAME_OVER"


class MatchController:
    def __init__(self, store: RealtimeStore, scheduler: Scheduler, room_id: str,
                 settings: Optional[MatchSettings] = None):
        self.store = store
        self.scheduler = scheduler
        self.room_id = room_id
        self.settings = settings or MatchSettings.standard()
        self.path = f"rooms/{room_id}"
        self.phase = RoundPhase.WAITING
        self.room: Optional[dict] = None
        self.round_idx = 0
        self.time_left = self.settings.round_seconds
        self.rounds_revealed = 0
        self._tick_timer: Optional[TimerHandle] = None
        self._advance_timer: Optional[TimerHandle] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    async def start(self):
        self._unsubscribe = await self.store.subscribe(self.path, self._on_room)

    def stop(self):
        self._cancel_timers()
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _cancel_timers(self):
        if self._tick_timer:
            self._tick_timer.cancel()
            self._tick_timer = None
        if self._advance_timer:
            self._advance_timer.cancel()
            self._advance_timer = None

    def _is_current(self, room: dict) -> bool:
        return room.get("currentIdx", 0) == self.round_idx and not room.get("showResult")

    async def _on_room(self, room: Optional[dict]):
        self.room = room
        if room is None or self.phase == RoundPhase.GAME_OVER:
            return

        if room.get("gameOver"):
            # Also covers forfeits written by any participant
            self.phase = RoundPhase.GAME_OVER
            self._cancel_timers()
            logger.info("Room %s: game over observed (forfeitedBy=%s)", self.room_id, room.get("forfeitedBy"))
            return

        if self.phase == RoundPhase.WAITING:
            if is_present(room, P2):
                self.round_idx = room.get("currentIdx", 0)
                self.time_left = room.get("timeLeft", self.settings.round_seconds)
                logger.info("Room %s: opponent joined, starting round %d", self.room_id, self.round_idx + 1)
                self._begin_round()
        elif self.phase == RoundPhase.IN_ROUND and self._is_current(room) and both_answered(room):
            await self._reveal()

    def _begin_round(self):
        self.phase = RoundPhase.IN_ROUND
        self._tick_timer = self.scheduler.call_later(self.settings.tick_seconds, self._tick)

    async def _tick(self):
        self._tick_timer = None
        if self.phase != RoundPhase.IN_ROUND:
            return
        self.time_left = max(0, self.time_left - 1)
        await self.store.update(self.path, {"timeLeft": self.time_left})
        # Both-answered or a forfeit may have ended the round during the write
        if self.phase != RoundPhase.IN_ROUND:
            return
        if self.time_left <= 0:
            await self._reveal()
        else:
            self._tick_timer = self.scheduler.call_later(self.settings.tick_seconds, self._tick)

    async def _reveal(self):
        if self.phase != RoundPhase.IN_ROUND:
            return
        self.phase = RoundPhase.REVEALING
        if self._tick_timer:
            self._tick_timer.cancel()
            self._tick_timer = None

        room = self.room or {}
        if not self._is_current(room):
            # Latest push still describes the previous round
            room = {**room, "selections": None}
        scores, streaks = score_round(room)
        self.rounds_revealed += 1
        logger.info("Room %s: reveal round %d, scores %s", self.room_id, self.round_idx + 1, scores)
        self._advance_timer = self.scheduler.call_later(self.settings.reveal_seconds, self._advance)
        await self.store.update(self.path, {
            "showResult": True,
            "scores": scores,
            "streaks": streaks,
        })

    async def _advance(self):
        self._advance_timer = None
        if self.phase != RoundPhase.REVEALING:
            return

        if self.round_idx + 1 >= rounds_in_match(self.room, self.settings):
            self.phase = RoundPhase.GAME_OVER
            logger.info("Room %s: final round revealed, game over", self.room_id)
            await self.store.update(self.path, {"gameOver": True})
            return

        self.round_idx += 1
        self.time_left = self.settings.round_seconds
        self.phase = RoundPhase.IN_ROUND
        await self.store.update(self.path, {
            "currentIdx": self.round_idx,
            "selections": None,
            "timeLeft": self.time_left,
            "showResult": False,
        })
        if self.phase == RoundPhase.IN_ROUND and self._tick_timer is None:
            self._tick_timer = self.scheduler.call_later(self.settings.tick_seconds, self._tick)

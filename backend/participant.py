"""
Per-client view of a room.

Every connected client (both seats and viewers) runs one ParticipantView. It
mirrors the room record pushed by the store, submits this seat's answer,
writes forfeits, watches the other seats' presence for disconnect-as-forfeit,
and settles the match when this seat is the one responsible for it.
"""
from typing import Awaitable, Callable, Dict, Optional
import logging

from errors import AnswerRejectedError
from lobby import release_seat, room_path
from question_bank import Question, QuestionBank
from question_stats import record_answer
from realtime_store import RealtimeStore
from room_state import (
    P2, SEATS, MatchSettings, Role, current_question_index, is_present, opponent, role_for_seat,
    seat_info, selection,
)
from scheduler import Scheduler, TimerHandle
from settlement import responsible_seat, settle_match

logger = logging.getLogger(__name__)

Listener = Callable[[Optional[dict]], Awaitable[None]]


class ParticipantView:
    def __init__(self, store: RealtimeStore, scheduler: Scheduler, room_id: str,
                 identity: str, client_id: str, bank: QuestionBank,
                 seat: Optional[str] = None, settings: Optional[MatchSettings] = None,
                 listener: Optional[Listener] = None):
        self.store = store
        self.scheduler = scheduler
        self.room_id = room_id
        self.identity = identity
        self.client_id = client_id
        self.bank = bank
        self.seat = seat
        self.role = role_for_seat(seat)
        self.settings = settings or MatchSettings.standard()
        self.listener = listener
        self.room: Optional[dict] = None
        self.evicted = False
        self._match_started = False
        self._grace_timers: Dict[str, TimerHandle] = {}
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def is_player(self) -> bool:
        return self.role != Role.OBSERVER

    @property
    def path(self) -> str:
        return room_path(self.room_id)

    async def open(self):
        self._unsubscribe = await self.store.subscribe(self.path, self._on_room)

    def close(self):
        self._cancel_grace_timers()
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    # --- reactive side ---

    async def _on_room(self, room: Optional[dict]):
        self.room = room
        if room is not None and self.is_player and not self.evicted \
                and seat_info(room, self.seat).get("identity") != self.identity:
            # A new match reclaimed this seat after we left it
            self._evict()

        # An evicted view only mirrors the room; it never judges the new match
        if room is not None and not self.evicted:
            if room.get("gameOver"):
                self._cancel_grace_timers()
                if self.is_player and responsible_seat(room) == self.seat and not room.get("statsSaved"):
                    await settle_match(self.store, self.room_id)
            else:
                self._watch_presence(room)

        if self.listener:
            await self.listener(self.room)

    def _evict(self):
        self.evicted = True
        self.store.cancel_on_disconnect(self.client_id)
        self._cancel_grace_timers()
        self._match_started = False
        logger.info("Room %s: %s no longer holds seat %s", self.room_id, self.identity, self.seat)

    def _watched_seats(self):
        if not self.is_player:
            return SEATS
        return (opponent(self.seat),)

    def _watch_presence(self, room: dict):
        if all(is_present(room, seat) for seat in SEATS):
            self._match_started = True
        if not self._match_started:
            return
        for seat in self._watched_seats():
            if is_present(room, seat):
                handle = self._grace_timers.pop(seat, None)
                if handle:
                    handle.cancel()
                    logger.info("Room %s: seat %s reconnected within grace period", self.room_id, seat)
            elif seat not in self._grace_timers:
                logger.info("Room %s: seat %s went away, waiting %ss", self.room_id, seat, self.settings.grace_seconds)
                self._grace_timers[seat] = self.scheduler.call_later(
                    self.settings.grace_seconds, lambda s=seat: self._grace_expired(s))

    def _cancel_grace_timers(self):
        for handle in self._grace_timers.values():
            handle.cancel()
        self._grace_timers.clear()

    async def _grace_expired(self, seat: str):
        self._grace_timers.pop(seat, None)
        room = self.room
        if self.evicted or not room or room.get("gameOver") or is_present(room, seat):
            return
        logger.info("Room %s: seat %s did not return, recording forfeit", self.room_id, seat)
        await self.store.update(self.path, {"gameOver": True, "forfeitedBy": seat})

    # --- actions ---

    def current_question(self) -> Optional[Question]:
        if not self.room:
            return None
        return self.bank.get(current_question_index(self.room))

    async def submit_answer(self, option_text: str) -> bool:
        """Record this seat's one answer for the current round; returns correctness."""
        room = self.room
        if not self.is_player:
            raise AnswerRejectedError("Viewers cannot answer")
        if not room or self.evicted:
            raise AnswerRejectedError("Not in a room")
        if room.get("gameOver"):
            raise AnswerRejectedError("The match is over")
        if room.get("showResult"):
            raise AnswerRejectedError("Answers are being revealed")
        if not is_present(room, P2):
            raise AnswerRejectedError("Waiting for an opponent to join")
        if seat_info(room, self.seat).get("identity") != self.identity:
            raise AnswerRejectedError("You are not a player in this room")
        if selection(room, self.seat):
            raise AnswerRejectedError("Already answered")
        question = self.current_question()
        if question is None or option_text not in question.options:
            raise AnswerRejectedError("Unknown option")

        correct = question.is_correct(option_text)
        await self.store.set(f"{self.path}/selections/{self.seat}", {
            "text": option_text,
            "isCorrect": correct,
            "time": int(room.get("timeLeft", 0)),
        })
        await record_answer(self.store, question, correct)
        logger.info("Room %s: %s answered round %d (%s)", self.room_id, self.seat,
                    room.get("currentIdx", 0) + 1, "correct" if correct else "wrong")
        return correct

    async def forfeit(self) -> bool:
        room = self.room
        if not self.is_player or self.evicted or not room or room.get("gameOver"):
            return False
        logger.info("Room %s: %s forfeits", self.room_id, self.seat)
        await self.store.update(self.path, {"forfeitedBy": self.seat, "gameOver": True})
        return True

    async def leave(self):
        """Leave the room: a forfeit mid-match, a clean presence clear otherwise."""
        if self.is_player and not self.evicted:
            room = self.room or {}
            if not room.get("gameOver") and is_present(room, opponent(self.seat)):
                await self.forfeit()
            await release_seat(self.store, self.room_id, self.seat, self.client_id)
        self.close()

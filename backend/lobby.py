"""Seat assignment for numbered rooms."""
from dataclasses import dataclass
from typing import List, Optional
import logging
import random

import config
from errors import EnergyExhaustedError, InvalidCredentialsError, MatchInProgressError, RoomFullError, RoomNotFoundError
from profiles import get_profile
from realtime_store import RealtimeStore
from room_state import (
    P1, P2, MatchSettings, Role, draw_question_order, is_present, new_room, role_for_seat, seat_info,
)

logger = logging.getLogger(__name__)


@dataclass
class JoinResult:
    room_id: str
    role: Role
    seat: Optional[str] = None


def room_path(room_id: str) -> str:
    return f"rooms/{room_id}"


def presence_path(room_id: str, seat: str) -> str:
    return f"rooms/{room_id}/players/{seat}/presence"


def _claimable_fresh(room: Optional[dict]) -> bool:
    """A new match starts when p1 is free and nobody is mid-match in seat p2."""
    if not room:
        return True
    return not is_present(room, P2) or bool(room.get("gameOver"))


async def join_room(store: RealtimeStore, room_id: str, identity: str, client_id: str,
                    bank_size: int, settings: Optional[MatchSettings] = None,
                    rng: Optional[random.Random] = None) -> JoinResult:
    if room_id not in config.room_ids():
        raise RoomNotFoundError()

    if identity == config.TEACHER_ID:
        logger.info("Teacher is viewing room %s", room_id)
        return JoinResult(room_id, Role.OBSERVER)

    profile = await get_profile(store, identity)
    if profile is None:
        raise InvalidCredentialsError("Please log in first")
    if int(profile.get("energy", 0)) <= 0:
        raise EnergyExhaustedError()

    settings = settings or MatchSettings.standard()
    display_name = profile.get("displayName") or identity
    seated = {"presence": True, "identity": identity, "displayName": display_name}
    claimed: Optional[str] = None
    rejection: Optional[Exception] = None

    def claim(room):
        nonlocal claimed, rejection
        claimed = rejection = None
        if not is_present(room, P1):
            if not _claimable_fresh(room):
                rejection = MatchInProgressError()
                return None
            fresh = new_room(draw_question_order(bank_size, settings.max_questions, rng), settings)
            fresh["players"][P1] = dict(seated)
            claimed = P1
            return fresh
        if seat_info(room, P1).get("identity") == identity:
            rejection = RoomFullError("You are already seated in this room")
            return None
        if is_present(room, P2):
            rejection = RoomFullError()
            return None
        if room.get("currentIdx", 0) > 0 or room.get("gameOver"):
            rejection = MatchInProgressError()
            return None
        room.setdefault("players", {})[P2] = dict(seated)
        claimed = P2
        return room

    result = await store.transact(room_path(room_id), claim)
    if not result.committed:
        logger.info("Join rejected for %s in room %s: %s", identity, room_id, rejection)
        raise rejection or RoomFullError()

    store.on_disconnect_set(client_id, presence_path(room_id, claimed), False)
    logger.info("%s claimed seat %s in room %s", identity, claimed, room_id)
    return JoinResult(room_id, role_for_seat(claimed), claimed)


async def release_seat(store: RealtimeStore, room_id: str, seat: str, client_id: str):
    """Clean presence clear, no scoring consequence."""
    store.cancel_on_disconnect(client_id)
    await store.set(presence_path(room_id, seat), False)


def room_status(room: Optional[dict]) -> str:
    if not room or not (is_present(room, P1) or is_present(room, P2)):
        return "empty"
    if room.get("gameOver"):
        return "finished"
    if is_present(room, P1) and is_present(room, P2):
        return "playing"
    return "waiting"


async def list_rooms(store: RealtimeStore) -> List[dict]:
    rooms = await store.get("rooms") or {}
    listing = []
    for room_id in config.room_ids():
        room = rooms.get(room_id)
        listing.append({
            "room_id": room_id,
            "status": room_status(room),
            "players": {
                seat: seat_info(room, seat).get("displayName", "") if is_present(room, seat) else None
                for seat in (P1, P2)
            },
            "occupancy": sum(1 for seat in (P1, P2) if is_present(room, seat)),
        })
    return listing

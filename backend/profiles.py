"""Persistent per-student profiles stored under users/<student_id>."""
from datetime import date
from typing import Optional
import logging

import config
from errors import InvalidCredentialsError
from realtime_store import RealtimeStore
from roster import Roster

logger = logging.getLogger(__name__)


def profile_path(student_id: str) -> str:
    return f"users/{student_id}"


def new_profile(display_name: str, today: str) -> dict:
    return {
        "displayName": display_name,
        "totalWins": 0,
        "totalScore": 0,
        "energy": config.DAILY_ENERGY_FLOOR,
        "lastLoginDate": today,
    }


def refresh_daily(profile: dict, display_name: str, today: str) -> dict:
    """Top energy up to the daily floor on the first login of a calendar day."""
    if profile.get("lastLoginDate") != today:
        profile["energy"] = max(int(profile.get("energy", 0)), config.DAILY_ENERGY_FLOOR)
        profile["lastLoginDate"] = today
    profile.setdefault("displayName", display_name)
    return profile


async def login(store: RealtimeStore, roster: Roster, student_id: str, password: str,
                today: Optional[date] = None) -> dict:
    student = roster.authenticate(student_id, password)
    if not student:
        logger.warning("Rejected login for '%s'", student_id)
        raise InvalidCredentialsError()

    day = (today or date.today()).isoformat()
    created = False

    def apply(current):
        nonlocal created
        if current is None:
            created = True
            return new_profile(student.name, day)
        return refresh_daily(current, student.name, day)

    result = await store.transact(profile_path(student.id), apply)
    if created:
        logger.info("Created profile for %s (%s)", student.id, student.name)
    return result.value


async def get_profile(store: RealtimeStore, student_id: str) -> Optional[dict]:
    return await store.get(profile_path(student_id))


def adjust_profile(profile: Optional[dict], energy: int = 0, wins: int = 0, score: int = 0) -> Optional[dict]:
    """Apply settlement deltas to a profile; energy never drops below zero."""
    if profile is None:
        return None
    profile["energy"] = max(0, int(profile.get("energy", 0)) + energy)
    profile["totalWins"] = int(profile.get("totalWins", 0)) + wins
    profile["totalScore"] = int(profile.get("totalScore", 0)) + score
    return profile


async def apply_profile_delta(store: RealtimeStore, student_id: str, energy: int = 0,
                              wins: int = 0, score: int = 0) -> bool:
    result = await store.transact(
        profile_path(student_id),
        lambda current: adjust_profile(current, energy=energy, wins=wins, score=score),
    )
    if not result.committed:
        logger.warning("No profile for %s, settlement delta dropped", student_id)
    return result.committed

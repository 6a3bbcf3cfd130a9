"""Centralized configuration: every env var in one place."""
import os
import logging
from dotenv import load_dotenv

load_dotenv()

_BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# --- Server ---
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "")

# --- Data files ---
QUESTION_BANK_FILE = os.getenv("QUESTION_BANK_FILE", os.path.join(_BASE_DIR, "data", "questions.csv"))
ROSTER_FILE = os.getenv("ROSTER_FILE", os.path.join(_BASE_DIR, "data", "students.json"))

# --- Rooms ---
TOTAL_ROOMS = int(os.getenv("TOTAL_ROOMS", "15"))
TEACHER_ID = os.getenv("TEACHER_ID", "TEACHER")
TEACHER_PASSWORD = os.getenv("TEACHER_PASSWORD", "teacher")

# --- Match ---
MAX_QUESTIONS = 10
ROUND_SECONDS = 30
SINGLE_QUESTION_ROUND_SECONDS = 15  # single-question variant
REVEAL_SECONDS = 3
DISCONNECT_GRACE_SECONDS = 4
TICK_SECONDS = 1

# --- Scoring ---
TIME_POINTS_PER_SECOND = 10
STREAK_BONUSES = {3: 50, 6: 100}  # min streak -> bonus points

# --- Energy ---
DAILY_ENERGY_FLOOR = int(os.getenv("DAILY_ENERGY_FLOOR", "10"))
WIN_ENERGY = 2
LOSS_ENERGY = 1
FORFEIT_ENERGY = 5
FORFEIT_WIN_ENERGY = 2

# --- WebSocket Security ---
WS_RATE_LIMIT_PER_SEC = 10  # max messages per second per client
MAX_WS_MESSAGE_SIZE = 4096  # bytes

# --- Discussion board ---
BOARD_API_BASE = os.getenv("BOARD_API_BASE", "http://localhost:8000/api")
BOARD_TIMEOUT = 5  # seconds
BOARD_POLL_INTERVAL = 10  # seconds
MAX_BOARD_MESSAGES = 500
MAX_MESSAGE_LENGTH = 300
MAX_NICKNAME_LENGTH = 20

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")  # empty = stdout only


def room_ids() -> list[str]:
    return [f"room{i}" for i in range(1, TOTAL_ROOMS + 1)]


def setup_logging():
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if LOG_FILE:
        handlers.append(logging.FileHandler(LOG_FILE))
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )

from fastapi import FastAPI, WebSocket, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, field_validator
from typing import List
from contextlib import asynccontextmanager
from datetime import datetime
import itertools
import re
import uvicorn
import logging
import socket as socketlib

import config
config.setup_logging()

from errors import InvalidCredentialsError
from lobby import list_rooms
from profiles import get_profile, login
from question_stats import error_rate_report
from session_manager import session_manager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting classroom quiz backend (%d questions, %d rooms)",
                len(session_manager.bank), config.TOTAL_ROOMS)
    yield
    logger.info("Shutting down classroom quiz backend")


app = FastAPI(title="Classroom Quiz Battle Backend", lifespan=lifespan)


def get_local_ip():
    try:
        s = socketlib.socket(socketlib.AF_INET, socketlib.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except Exception:
        return "127.0.0.1"


def _strip_markup(v: str) -> str:
    v = re.sub(r'<[^>]+>', '', v)
    v = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', v)
    return v.strip()


# --- Login & profiles ---

class LoginRequest(BaseModel):
    student_id: str
    password: str

    @field_validator('student_id')
    @classmethod
    def validate_student_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Student id is required')
        return v


@app.post("/login")
async def login_student(request: LoginRequest):
    try:
        profile = await login(session_manager.store, session_manager.roster, request.student_id, request.password)
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=401, detail=e.message)
    token = session_manager.issue_token(request.student_id)
    logger.info("Student %s logged in", request.student_id)
    return {
        "token": token,
        "student_id": request.student_id,
        "is_teacher": request.student_id == config.TEACHER_ID,
        "profile": profile,
    }


@app.get("/profiles/{student_id}")
async def read_profile(student_id: str):
    profile = await get_profile(session_manager.store, student_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


# --- Lobby ---

@app.get("/rooms")
async def get_rooms():
    return {"rooms": await list_rooms(session_manager.store)}


@app.get("/stats")
async def get_question_stats(token: str = ""):
    """Per-question error rates, teacher only."""
    if not session_manager.is_teacher_token(token):
        raise HTTPException(status_code=403, detail="Teacher access only")
    return {"questions": await error_rate_report(session_manager.store)}


@app.websocket("/ws/{room_id}/{student_id}")
async def websocket_endpoint(websocket: WebSocket, room_id: str, student_id: str, token: str = ""):
    await session_manager.connect(websocket, room_id, student_id, token=token)


# --- Discussion board ---

board_messages: List[dict] = []
_message_ids = itertools.count(1)


class MessageRequest(BaseModel):
    nickname: str
    content: str

    @field_validator('nickname')
    @classmethod
    def validate_nickname(cls, v: str) -> str:
        v = _strip_markup(v)
        if not v or len(v) > config.MAX_NICKNAME_LENGTH:
            raise ValueError(f'Nickname must be 1-{config.MAX_NICKNAME_LENGTH} characters')
        return v

    @field_validator('content')
    @classmethod
    def validate_content(cls, v: str) -> str:
        v = _strip_markup(v)
        if not v or len(v) > config.MAX_MESSAGE_LENGTH:
            raise ValueError(f'Message must be 1-{config.MAX_MESSAGE_LENGTH} characters')
        return v


@app.get("/api/messages")
async def get_messages():
    return list(reversed(board_messages))


@app.get("/api/message_count")
async def get_message_count():
    return {"count": len(board_messages)}


@app.post("/api/messages", status_code=201)
async def post_message(request: MessageRequest):
    message = {
        "id": next(_message_ids),
        "nickname": request.nickname,
        "content": request.content,
        "time": datetime.now().strftime("%Y-%m-%d %H:%M"),
    }
    board_messages.append(message)
    if len(board_messages) > config.MAX_BOARD_MESSAGES:
        del board_messages[:len(board_messages) - config.MAX_BOARD_MESSAGES]
    return message


# Configure CORS
if config.ALLOWED_ORIGINS.strip():
    origins = [o.strip() for o in config.ALLOWED_ORIGINS.split(",")]
else:
    local_ip = get_local_ip()
    origins = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        f"http://{local_ip}:5173",
    ]
session_manager.allowed_origins = origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
)


@app.get("/")
async def root():
    return {"message": "Classroom Quiz Battle API is running"}


@app.get("/health")
async def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    uvicorn.run("main:app", host=config.HOST, port=config.PORT, reload=True)

from fastapi import WebSocket, WebSocketDisconnect
from typing import Dict, List, Optional
import asyncio
import copy
import hmac
import json
import logging
import secrets
import time
import uuid

import config
from errors import GameError
from lobby import join_room
from match_controller import MatchController
from participant import ParticipantView
from question_bank import QuestionBank, load_question_bank
from realtime_store import RealtimeStore
from room_state import P1, MatchSettings, Role, opponent
from roster import Roster, load_roster
from scheduler import AsyncioScheduler, Scheduler

logger = logging.getLogger(__name__)


class Session:
    """One WebSocket client seated (or viewing) in one room."""

    def __init__(self, websocket: WebSocket, client_id: str, identity: str, room_id: str):
        self.websocket = websocket
        self.client_id = client_id
        self.identity = identity
        self.room_id = room_id
        self.view: Optional[ParticipantView] = None
        self.controller: Optional[MatchController] = None
        self.outbox: asyncio.Queue = asyncio.Queue()
        self.sender_task: Optional[asyncio.Task] = None
        self.msg_timestamps: List[float] = []

    def send(self, message: dict):
        self.outbox.put_nowait(message)

    async def _pump(self):
        while True:
            message = await self.outbox.get()
            try:
                await self.websocket.send_json(message)
            except Exception:
                logger.debug("Dropping message for closed client %s", self.client_id)
                return

    def start(self):
        self.sender_task = asyncio.create_task(self._pump())

    async def flush(self):
        """Wait until every queued message has been handed to the socket."""
        while not self.outbox.empty() and self.sender_task and not self.sender_task.done():
            await asyncio.sleep(0)

    def stop(self):
        if self.controller:
            self.controller.stop()
            self.controller = None
        if self.view:
            self.view.close()
        if self.sender_task:
            self.sender_task.cancel()


class SessionManager:
    def __init__(self, store: Optional[RealtimeStore] = None, scheduler: Optional[Scheduler] = None,
                 bank: Optional[QuestionBank] = None, roster: Optional[Roster] = None,
                 settings: Optional[MatchSettings] = None):
        self.store = store or RealtimeStore()
        self.scheduler = scheduler or AsyncioScheduler()
        self.bank = bank if bank is not None else load_question_bank(config.QUESTION_BANK_FILE)
        self.roster = roster or load_roster(config.ROSTER_FILE)
        self.settings = settings or MatchSettings.standard()
        self.tokens: Dict[str, str] = {}  # token -> student id
        self.sessions: Dict[str, Session] = {}  # client_id -> session
        self.allowed_origins: List[str] = []

    # --- auth tokens ---

    def issue_token(self, student_id: str) -> str:
        token = secrets.token_urlsafe(32)
        self.tokens[token] = student_id
        return token

    def identity_for(self, token: str) -> Optional[str]:
        return self.tokens.get(token) if token else None

    def token_matches(self, token: str, student_id: str) -> bool:
        owner = self.identity_for(token)
        return owner is not None and hmac.compare_digest(owner, student_id)

    def is_teacher_token(self, token: str) -> bool:
        return self.token_matches(token, config.TEACHER_ID)

    def reset(self):
        for session in list(self.sessions.values()):
            session.stop()
        self.sessions.clear()
        self.tokens.clear()
        self.store.clear()

    # --- room state for clients ---

    def room_message(self, session: Session, room: Optional[dict]) -> dict:
        view = session.view
        public = copy.deepcopy(room) if room else None
        question = None
        if public is not None:
            revealed = bool(public.get("showResult") or public.get("gameOver"))
            # Players only see the opponent's pick once the round is revealed
            if view and view.is_player and not revealed:
                selections = public.get("selections") or {}
                if selections.get(opponent(view.seat)):
                    selections[opponent(view.seat)] = {"answered": True}
            q = view.current_question() if view else None
            if q:
                seed = f"{session.room_id}:{public.get('currentIdx', 0)}:{q.index}"
                question = q.to_public(seed, reveal=revealed)
        return {"type": "ROOM_STATE", "room": public, "question": question}

    # --- connection lifecycle ---

    async def connect(self, websocket: WebSocket, room_id: str, student_id: str, token: str = ""):
        # Validate WebSocket origin
        origin = websocket.headers.get("origin", "")
        if self.allowed_origins and origin not in self.allowed_origins:
            logger.warning("Rejected WebSocket from unauthorized origin: %s", origin)
            await websocket.close(code=1008)
            return

        await websocket.accept()
        if not self.token_matches(token, student_id):
            await websocket.send_json({"type": "ERROR", "message": "Please log in first"})
            await websocket.close()
            return

        client_id = f"{student_id}-{uuid.uuid4().hex[:8]}"
        try:
            result = await join_room(self.store, room_id, student_id, client_id, len(self.bank), self.settings)
        except GameError as e:
            await websocket.send_json({"type": "ERROR", "message": e.message})
            await websocket.close()
            return

        session = Session(websocket, client_id, student_id, room_id)
        self.sessions[client_id] = session
        session.start()
        session.send({
            "type": "JOINED_ROOM",
            "room_id": room_id,
            "role": "viewer" if result.role == Role.OBSERVER else result.role.value,
            "seat": result.seat,
        })

        async def forward(room):
            session.send(self.room_message(session, room))

        session.view = ParticipantView(self.store, self.scheduler, room_id, student_id, client_id,
                                       self.bank, seat=result.seat, settings=self.settings, listener=forward)
        if result.seat == P1:
            session.controller = MatchController(self.store, self.scheduler, room_id, self.settings)
            await session.controller.start()
        await session.view.open()

        try:
            while True:
                data = await websocket.receive_text()

                # Enforce message size limit
                if len(data) > config.MAX_WS_MESSAGE_SIZE:
                    session.send({"type": "ERROR", "message": "Message too large"})
                    continue

                # Per-client rate limiting
                now = time.time()
                session.msg_timestamps[:] = [t for t in session.msg_timestamps if now - t < 1.0]
                if len(session.msg_timestamps) >= config.WS_RATE_LIMIT_PER_SEC:
                    session.send({"type": "ERROR", "message": "Too many messages"})
                    continue
                session.msg_timestamps.append(now)

                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning("Malformed JSON from client %s: %s", client_id, data[:100])
                    session.send({"type": "ERROR", "message": "Invalid message format"})
                    continue

                if not await self.handle_message(session, message):
                    await session.flush()
                    await websocket.close()
                    break
        except WebSocketDisconnect:
            logger.info("Client %s disconnected from room %s", client_id, room_id)
        except Exception:
            logger.exception("WebSocket error for client %s in room %s", client_id, room_id)
        finally:
            session.stop()
            self.sessions.pop(client_id, None)
            await self.store.disconnect(client_id)

    async def handle_message(self, session: Session, message: dict) -> bool:
        """Handle one client message; returns False when the client left the room."""
        msg_type = message.get("type") if isinstance(message, dict) else None
        view = session.view

        if msg_type == "ANSWER":
            text = message.get("text")
            if not isinstance(text, str):
                session.send({"type": "ERROR", "message": "Invalid answer"})
                return True
            try:
                correct = await view.submit_answer(text)
            except GameError as e:
                session.send({"type": "ERROR", "message": e.message})
                return True
            session.send({"type": "ANSWER_RESULT", "correct": correct})

        elif msg_type == "FORFEIT":
            if await view.forfeit():
                session.send({"type": "FORFEITED"})

        elif msg_type == "LEAVE":
            await view.leave()
            session.send({"type": "LEFT_ROOM", "room_id": session.room_id})
            return False

        else:
            session.send({"type": "ERROR", "message": "Unknown message type"})
        return True


session_manager = SessionManager()

"""Client for the discussion-board REST service. Failures only flip it offline."""
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional
import asyncio
import logging

import requests

import config

logger = logging.getLogger(__name__)

LOADING = "loading"
ONLINE = "online"
OFFLINE = "offline"


@dataclass
class BoardState:
    status: str = LOADING
    count: int = 0
    messages: List[dict] = field(default_factory=list)


class DiscussionBoardClient:
    def __init__(self, api_base: str = config.BOARD_API_BASE, timeout: float = config.BOARD_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.state = BoardState()

    def _set_status(self, status: str):
        if status != self.state.status:
            logger.info("Discussion board is %s", status)
        self.state.status = status

    def refresh(self) -> BoardState:
        """Fetch the message count, then the messages. Keeps the last messages when offline."""
        try:
            res = self.session.get(f"{self.api_base}/message_count", timeout=self.timeout)
            if not res.ok:
                self._set_status(OFFLINE)
                return self.state
            self.state.count = int(res.json().get("count", 0))
            res = self.session.get(f"{self.api_base}/messages", timeout=self.timeout)
            if not res.ok:
                self._set_status(OFFLINE)
                return self.state
            self.state.messages = res.json()
            self._set_status(ONLINE)
        except (requests.RequestException, ValueError) as e:
            logger.warning("Discussion board unreachable: %s", e)
            self._set_status(OFFLINE)
        return self.state

    def post(self, nickname: str, content: str) -> bool:
        if not content.strip() or self.state.status == OFFLINE:
            return False
        try:
            res = self.session.post(
                f"{self.api_base}/messages",
                json={"nickname": nickname, "content": content},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("Posting to discussion board failed: %s", e)
            return False
        if not res.ok:
            logger.warning("Discussion board rejected post: HTTP %d", res.status_code)
            return False
        self.refresh()
        return True

    async def poll_forever(self, on_update: Optional[Callable[[BoardState], Awaitable[None]]] = None,
                           interval: float = config.BOARD_POLL_INTERVAL):
        while True:
            try:
                state = await asyncio.to_thread(self.refresh)
                if on_update:
                    await on_update(state)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Discussion board update failed")
            try:
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break

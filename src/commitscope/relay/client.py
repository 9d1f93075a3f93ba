"""Client side of the stream relay.

A :class:`ChatSession` sends a conversation (or a commit analysis request)
to the relay and folds the streamed bytes into one growing assistant turn.
Status moves ``idle -> sending -> streaming`` and ends in ``ready``,
``cancelled`` or ``errored``. Partial assistant content is kept whichever
way a request ends.
"""

import asyncio
import codecs
from typing import Any, Callable, Dict, List, Optional

import httpx
from loguru import logger

from commitscope.errors import ChatRequestError
from commitscope.types.chat import ChatTurn, StreamStatus

CHAT_PATH = "/read"
ANALYZE_PATH = "/api/analyze-commits"

StatusCallback = Callable[[StreamStatus, str], None]
UpdateCallback = Callable[[], None]


class StreamDecoder:
    """Incremental UTF-8 decoder that carries split multi-byte sequences across chunks."""

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self.text = ""

    def feed(self, data: bytes) -> str:
        """Decode ``data`` and return the cumulative text so far."""
        self.text += self._decoder.decode(data)
        return self.text

    def flush(self) -> str:
        """Emit any residue held back by the decoder and return the final text."""
        self.text += self._decoder.decode(b"", final=True)
        return self.text


class ChatSession:
    """One conversation against the relay, tracking at most one stream at a time."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        on_update: Optional[UpdateCallback] = None,
        on_status: Optional[StatusCallback] = None,
    ):
        self.client = client
        self.turns: List[ChatTurn] = []
        self.status = StreamStatus.IDLE
        self.error: Optional[str] = None
        self._on_update = on_update
        self._on_status = on_status
        self._task: Optional[asyncio.Task] = None
        self._cancel_requested = False

    @property
    def in_flight(self) -> bool:
        return self.status in (StreamStatus.SENDING, StreamStatus.STREAMING)

    async def send(self, user_input: str) -> bool:
        """Send ``user_input`` with the conversation so far.

        Returns ``False`` without doing anything if the input is blank or a
        request is already in flight; otherwise returns whether the stream
        completed.
        """
        if not user_input or not user_input.strip() or self.in_flight:
            return False

        history = self.turns + [ChatTurn(role="user", content=user_input)]
        payload = [turn.model_dump_json() for turn in history]
        return await self._run(CHAT_PATH, payload, user_input)

    async def send_analysis(self, label: str, request: Dict[str, Any]) -> bool:
        """Ask the relay to review commits, showing ``label`` as the user turn."""
        if self.in_flight:
            return False
        return await self._run(ANALYZE_PATH, request, label)

    def cancel(self) -> None:
        """Abort the in-flight request, keeping whatever text already arrived."""
        if self._task is not None and not self._task.done():
            self._cancel_requested = True
            self._task.cancel()

    async def _run(self, path: str, body: Any, user_text: str) -> bool:
        self.turns.append(ChatTurn(role="user", content=user_text))
        placeholder = ChatTurn(role="assistant", content="")
        self.turns.append(placeholder)
        self.error = None
        self._cancel_requested = False
        self._set_status(StreamStatus.SENDING)

        self._task = asyncio.ensure_future(self._stream(path, body, placeholder))
        try:
            await self._task
        except asyncio.CancelledError:
            self._set_status(StreamStatus.CANCELLED)
            if not self._cancel_requested:
                raise
            return False
        except (httpx.HTTPError, ChatRequestError) as e:
            logger.error(f"Chat request to {path} failed: {e}")
            self.error = str(e)
            self._set_status(StreamStatus.ERRORED)
            return False
        except Exception as e:
            self.error = str(e)
            self._set_status(StreamStatus.ERRORED)
            raise
        finally:
            self._task = None

        self._set_status(StreamStatus.READY)
        self._notify()
        return True

    async def _stream(self, path: str, body: Any, placeholder: ChatTurn) -> None:
        async with self.client.stream("POST", path, json=body) as response:
            if response.is_error:
                detail = (await response.aread()).decode("utf-8", errors="replace")
                raise ChatRequestError(response.status_code, detail or response.reason_phrase)

            self._set_status(StreamStatus.STREAMING)
            decoder = StreamDecoder()
            async for data in response.aiter_bytes():
                placeholder.content = decoder.feed(data)
                self._notify()
            placeholder.content = decoder.flush()

    def _set_status(self, status: StreamStatus) -> None:
        self.status = status
        if self._on_status is not None:
            self._on_status(status, status.label)

    def _notify(self) -> None:
        if self._on_update is not None:
            self._on_update()

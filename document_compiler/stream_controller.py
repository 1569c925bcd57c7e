"""
Compilation stream controller.

Drives one compilation request against an AI text stream as an explicit state
machine:

    IDLE -> STREAMING -> (COMPLETE | INCOMPLETE_RETRY* -> COMPLETE | INCOMPLETE_EXHAUSTED) -> IDLE

Chunks carrying an in-band ``[PROGRESS]`` line are routed to a status sink and
kept out of the document body. When the finished body still contains
placeholders, the request is re-issued with a "continue" instruction up to
`max_retries` times. Only a complete body is persisted as the final snapshot;
intermediate snapshots are saved best-effort in the background while
streaming, one at a time, writing only the newest pending body.
"""
import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple

from .completeness import count_placeholders
from .context_window import select_relevant_messages_with_min_context
from .exceptions import (
    ApiCallError, CompilationAbortedError, CompilationInProgressError, RateLimitError,
    is_rate_limit_error
)
from .models import Message

logger = logging.getLogger(__name__)

PROGRESS_MARKER = "[PROGRESS]"
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 2.0
DEFAULT_CONTINUE_INSTRUCTION = (
    "Continue filling in the remaining fields of the document. "
    "Replace every remaining placeholder."
)

_END_OF_STREAM = object()


class CompilationState(Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    INCOMPLETE_RETRY = "incomplete_retry"
    COMPLETE = "complete"
    INCOMPLETE_EXHAUSTED = "incomplete_exhausted"
    ABORTED = "aborted"


class ProgressSplitter:
    """
    Separates ``[PROGRESS]<line>\\n`` status lines from document text.

    A progress line stays open until its newline, even when the newline
    arrives in a later chunk. A chunk ending in a prefix of the marker
    (e.g. ``"[PROG"``) is held back until the next chunk decides it.
    """

    def __init__(self, marker: str = PROGRESS_MARKER):
        self.marker = marker
        self._body_parts: List[str] = []
        self._pending = ""
        self._in_progress_line = False
        self._progress_buffer = ""
        self.progress_message: Optional[str] = None

    @property
    def body(self) -> str:
        return "".join(self._body_parts)

    def feed(self, chunk: str) -> Tuple[str, List[str]]:
        """
        Consumes one chunk.

        Returns:
            The text appended to the body by this chunk, and the progress
            lines completed by it.
        """
        text = self._pending + (chunk or "")
        self._pending = ""
        added: List[str] = []
        lines: List[str] = []

        while text:
            if self._in_progress_line:
                newline = text.find("\n")
                if newline < 0:
                    self._progress_buffer += text
                    break
                self._progress_buffer += text[:newline]
                lines.append(self._close_progress_line())
                text = text[newline + 1:]
                continue

            index = text.find(self.marker)
            if index >= 0:
                added.append(text[:index])
                text = text[index + len(self.marker):]
                self._in_progress_line = True
                continue

            held = self._partial_marker_length(text)
            if held:
                self._pending = text[-held:]
                text = text[:-held]
            added.append(text)
            break

        body_added = "".join(added)
        if body_added:
            self._body_parts.append(body_added)
        return body_added, lines

    def finish(self) -> Tuple[str, List[str]]:
        """Flushes held-back text and any unterminated progress line at end of stream."""
        body_added = self._pending
        self._pending = ""
        lines: List[str] = []
        if self._in_progress_line:
            # Held text belongs to the open progress line
            self._progress_buffer += body_added
            body_added = ""
            lines.append(self._close_progress_line())
        if body_added:
            self._body_parts.append(body_added)
        return body_added, lines

    def _close_progress_line(self) -> str:
        line = self._progress_buffer.strip()
        self._progress_buffer = ""
        self._in_progress_line = False
        self.progress_message = line
        return line

    def _partial_marker_length(self, text: str) -> int:
        for length in range(min(len(self.marker) - 1, len(text)), 0, -1):
            if text.endswith(self.marker[:length]):
                return length
        return 0


class CompilationOutcome:
    """
    Result of one `CompilationController.run` call.

    Attributes:
        state (CompilationState): COMPLETE, INCOMPLETE_EXHAUSTED or ABORTED.
        body (str): Document body of the last attempt, stripped.
        retries (int): Continue-retries performed.
        remaining_placeholders (int): Placeholders left in `body`.
        notice (Optional[str]): User-facing message for the terminal state.
        progress_message (Optional[str]): Last status line received.
    """

    def __init__(
        self,
        state: CompilationState,
        body: str,
        retries: int = 0,
        remaining_placeholders: int = 0,
        notice: Optional[str] = None,
        progress_message: Optional[str] = None
    ):
        self.state = state
        self.body = body
        self.retries = retries
        self.remaining_placeholders = remaining_placeholders
        self.notice = notice
        self.progress_message = progress_message

    @property
    def is_complete(self) -> bool:
        return self.state is CompilationState.COMPLETE

    def to_dict(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'body': self.body,
            'retries': self.retries,
            'remaining_placeholders': self.remaining_placeholders,
            'notice': self.notice,
            'progress_message': self.progress_message,
        }

    def __repr__(self):
        return (f"CompilationOutcome(state={self.state.value}, retries={self.retries}, "
                f"remaining_placeholders={self.remaining_placeholders})")


StreamFactory = Callable[[List[Any]], AsyncIterator[str]]


class CompilationController:
    """
    Runs compilation requests for one conversation, one at a time.

    Args:
        stream_factory: Called with the message history, returns an async
            iterator of text chunks.
        store: Optional persistence collaborator exposing
            `save_intermediate_snapshot(body)` and `save_final_snapshot(body)`,
            either plain or coroutine functions. Plain functions run in a
            worker thread.
        max_retries: Continue-retries allowed while placeholders remain.
        retry_delay: Seconds to wait before each retry.
        continue_instruction: User message appended to history on retry.
        on_progress: Called with each progress line.
        on_notice: Called with the terminal notice.
        min_exchanges: Exchanges always kept when trimming history.
        max_context_tokens: Token budget for the history. None sends it untrimmed.
    """

    def __init__(
        self,
        stream_factory: StreamFactory,
        store: Any = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        continue_instruction: str = DEFAULT_CONTINUE_INSTRUCTION,
        on_progress: Optional[Callable[[str], None]] = None,
        on_notice: Optional[Callable[[str], None]] = None,
        min_exchanges: int = 5,
        max_context_tokens: Optional[int] = None
    ):
        self.stream_factory = stream_factory
        self.store = store
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.continue_instruction = continue_instruction
        self.on_progress = on_progress
        self.on_notice = on_notice
        self.min_exchanges = min_exchanges
        self.max_context_tokens = max_context_tokens

        self.state = CompilationState.IDLE
        self.retry_count = 0
        self._in_flight = False
        self._abort_event: Optional[asyncio.Event] = None
        self._pending_saves = set()
        self._save_task: Optional[asyncio.Future] = None
        self._queued_body: Optional[str] = None
        self._current_body = ""
        self._progress_message: Optional[str] = None

    @classmethod
    def from_config(cls, config: Dict[str, Any], stream_factory: StreamFactory, store: Any = None, **kwargs):
        """Builds a controller from the `compilation` and `context` config sections."""
        compilation = config.get('compilation', {})
        context = config.get('context', {})
        kwargs.setdefault('max_retries', compilation.get('max_retries', DEFAULT_MAX_RETRIES))
        kwargs.setdefault('retry_delay', compilation.get('retry_delay_sec', DEFAULT_RETRY_DELAY))
        kwargs.setdefault('continue_instruction',
                          compilation.get('continue_instruction') or DEFAULT_CONTINUE_INSTRUCTION)
        kwargs.setdefault('min_exchanges', context.get('min_exchanges', 5))
        kwargs.setdefault('max_context_tokens', context.get('max_tokens'))
        return cls(stream_factory, store=store, **kwargs)

    @property
    def is_streaming(self) -> bool:
        return self._in_flight

    def abort(self) -> bool:
        """
        Requests cancellation of the in-flight compilation.

        Returns:
            True if a compilation was running and has been signalled.
        """
        if not self._in_flight or self._abort_event is None:
            return False
        logger.info("Abort requested for in-flight compilation")
        self._abort_event.set()
        return True

    async def run(self, messages: Sequence[Any]) -> CompilationOutcome:
        """
        Compiles until the body has no placeholders or the retry cap is hit.

        Args:
            messages: Conversation history ending with the user's request.

        Returns:
            The terminal outcome. ABORTED outcomes are returned, not raised.

        Raises:
            CompilationInProgressError: If another run is in flight.
            ApiCallError: If the stream fails (RateLimitError for quota errors).
        """
        # Claimed before the first await so a second caller sees it
        if self._in_flight:
            raise CompilationInProgressError("A compilation is already in progress for this conversation.")
        self._in_flight = True
        self._abort_event = asyncio.Event()
        self.retry_count = 0
        self._current_body = ""
        self._progress_message = None

        try:
            return await self._run_loop(list(messages))
        except CompilationAbortedError:
            retries = self.retry_count
            self._set_state(CompilationState.ABORTED)
            body = self._current_body.strip()
            return CompilationOutcome(
                CompilationState.ABORTED, body, retries=retries,
                remaining_placeholders=count_placeholders(body),
                notice="Compilation aborted.", progress_message=self._progress_message,
            )
        except ApiCallError as e:
            logger.error(f"Compilation stream failed: {e}")
            raise
        except Exception as e:
            if is_rate_limit_error(e):
                logger.error(f"Compilation stream hit a rate limit: {e}")
                raise RateLimitError() from e
            logger.error(f"Unexpected error during compilation: {e}", exc_info=True)
            raise
        finally:
            await self._drain_saves()
            self.retry_count = 0
            self._abort_event = None
            self._in_flight = False
            self._set_state(CompilationState.IDLE)

    async def _run_loop(self, history: List[Any]) -> CompilationOutcome:
        while True:
            self._set_state(CompilationState.STREAMING)
            body = (await self._stream_once(history)).strip()
            self._current_body = body
            remaining = count_placeholders(body)

            if remaining == 0:
                self._set_state(CompilationState.COMPLETE)
                await self._persist_final(body)
                notice = "Document compiled: all fields have been filled."
                self._notify(notice)
                return CompilationOutcome(
                    CompilationState.COMPLETE, body, retries=self.retry_count,
                    notice=notice, progress_message=self._progress_message,
                )

            if self.retry_count >= self.max_retries:
                self._set_state(CompilationState.INCOMPLETE_EXHAUSTED)
                notice = (f"Compilation stopped after {self.retry_count} retries: "
                          f"{remaining} field(s) still need to be filled.")
                self._notify(notice)
                return CompilationOutcome(
                    CompilationState.INCOMPLETE_EXHAUSTED, body, retries=self.retry_count,
                    remaining_placeholders=remaining, notice=notice,
                    progress_message=self._progress_message,
                )

            self.retry_count += 1
            self._set_state(CompilationState.INCOMPLETE_RETRY)
            logger.info(f"{remaining} placeholder(s) remain, retry {self.retry_count}/{self.max_retries}")
            await self._wait_before_retry()
            history = history + [
                Message('assistant', body),
                Message('user', self.continue_instruction),
            ]

    async def _stream_once(self, history: List[Any]) -> str:
        splitter = ProgressSplitter()
        iterator = self.stream_factory(self._select_context(history)).__aiter__()
        try:
            while True:
                chunk = await self._next_chunk(iterator)
                if chunk is _END_OF_STREAM:
                    break
                self._handle_split(splitter, *splitter.feed(chunk))
            self._handle_split(splitter, *splitter.finish())
        finally:
            aclose = getattr(iterator, 'aclose', None)
            if aclose is not None:
                await aclose()
        return splitter.body

    async def _next_chunk(self, iterator: AsyncIterator[str]) -> Any:
        """Awaits the next chunk, racing it against an abort request."""
        if self._abort_event.is_set():
            raise CompilationAbortedError("Compilation aborted by caller.")

        next_task = asyncio.ensure_future(_anext(iterator))
        abort_task = asyncio.ensure_future(self._abort_event.wait())
        try:
            done, _ = await asyncio.wait({next_task, abort_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            abort_task.cancel()

        if next_task in done:
            try:
                return next_task.result()
            except StopAsyncIteration:
                return _END_OF_STREAM

        next_task.cancel()
        await asyncio.gather(next_task, return_exceptions=True)
        raise CompilationAbortedError("Compilation aborted by caller.")

    async def _wait_before_retry(self) -> None:
        if self.retry_delay <= 0:
            if self._abort_event.is_set():
                raise CompilationAbortedError("Compilation aborted by caller.")
            return
        try:
            await asyncio.wait_for(self._abort_event.wait(), timeout=self.retry_delay)
        except asyncio.TimeoutError:
            return
        raise CompilationAbortedError("Compilation aborted by caller.")

    def _select_context(self, history: List[Any]) -> List[Any]:
        if self.max_context_tokens is None:
            return list(history)
        query = _message_content(history[-1]) if history else ""
        return select_relevant_messages_with_min_context(
            history, query, self.min_exchanges, self.max_context_tokens
        )

    def _handle_split(self, splitter: ProgressSplitter, body_added: str, lines: List[str]) -> None:
        for line in lines:
            self._progress_message = line
            logger.debug(f"Progress: {line}")
            if self.on_progress:
                self.on_progress(line)
        if body_added:
            self._current_body = splitter.body
            self._save_intermediate(self._current_body)

    def _save_intermediate(self, body: str) -> None:
        """
        Queues an intermediate save without waiting for it.

        At most one save runs at a time. Bodies arriving while it runs replace
        each other, so only the newest one is written next.
        """
        if self.store is None:
            return
        self._queued_body = body
        if self._save_task is not None and not self._save_task.done():
            return
        task = asyncio.ensure_future(self._write_queued_bodies())
        self._save_task = task
        self._pending_saves.add(task)
        task.add_done_callback(self._on_save_done)

    async def _write_queued_bodies(self) -> None:
        while self._queued_body is not None:
            body, self._queued_body = self._queued_body, None
            try:
                await self._call_store('save_intermediate_snapshot', body)
            except Exception as e:
                logger.error(f"Failed to save intermediate snapshot: {e}")

    async def _call_store(self, method_name: str, body: str) -> None:
        save = getattr(self.store, method_name)
        if inspect.iscoroutinefunction(save):
            await save(body)
            return
        # Synchronous stores do file I/O and must not block the event loop
        result = await asyncio.to_thread(save, body)
        if inspect.isawaitable(result):
            await result

    def _on_save_done(self, task: asyncio.Future) -> None:
        self._pending_saves.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Failed to save intermediate snapshot: {error}")

    async def _drain_saves(self) -> None:
        if self._pending_saves:
            await asyncio.gather(*list(self._pending_saves), return_exceptions=True)

    async def _persist_final(self, body: str) -> None:
        await self._drain_saves()
        if self.store is None or not body:
            return
        try:
            await self._call_store('save_final_snapshot', body)
        except Exception as e:
            logger.error(f"Failed to save final snapshot: {e}", exc_info=True)

    def _notify(self, notice: str) -> None:
        logger.info(notice)
        if self.on_notice:
            self.on_notice(notice)

    def _set_state(self, state: CompilationState) -> None:
        if state is not self.state:
            logger.info(f"Compilation state: {self.state.value} -> {state.value}")
        self.state = state


async def _anext(iterator: AsyncIterator[str]) -> str:
    return await iterator.__anext__()


def _message_content(message: Any) -> str:
    if isinstance(message, Message):
        return message.content
    return message.get('content', '') if isinstance(message, dict) else str(message)

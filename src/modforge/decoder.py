"""Incremental decoder for the marker protocol.

Model output arrives as fragments whose boundaries carry no meaning: a fragment
may end in the middle of a marker, a path or a file body. ``StreamDecoder``
buffers input and only emits an update once the closing marker of a unit has
been seen, so every plan and artifact it reports is complete and final.

The decoder is a small state machine. While ``SCANNING`` it looks for the
earliest opening marker and drops everything before it. Inside a plan it
looks for either the plan's closer or a code block opener, so a plan that is
never closed does not hold back the files that follow it. Inside a code block
it only searches for the block's closing literal. Searches resume from a
cursor so earlier text is not rescanned on every fragment.

A success marker written inside a unit that never closes is only known to be
real once the stream ends; ``close()`` resolves it then.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterable, AsyncIterator, Iterable, Iterator

from modforge.protocol import (
    CODE_END,
    CODE_START,
    PLAN_END,
    PLAN_START,
    SUCCESS_START,
    TAG_CLOSE,
    ArtifactUpdate,
    CompletedUpdate,
    FailedUpdate,
    PlanUpdate,
    Update,
)
from modforge.util.logging import get_logger, redact

logger = get_logger("modforge.decoder")


class Phase(str, Enum):
    SCANNING = "scanning"
    PLAN_BODY = "plan_body"
    CODE_PATH = "code_path"
    CODE_BODY = "code_body"
    SUCCESS_MESSAGE = "success_message"
    FINISHED = "finished"


_OPENERS: tuple[tuple[str, Phase], ...] = (
    (PLAN_START, Phase.PLAN_BODY),
    (CODE_START, Phase.CODE_PATH),
    (SUCCESS_START, Phase.SUCCESS_MESSAGE),
)
_LONGEST_OPENER = max(len(marker) for marker, _ in _OPENERS)
_OPEN_UNIT_PHASES = (Phase.PLAN_BODY, Phase.CODE_PATH, Phase.CODE_BODY)


@dataclass
class StreamDecoder:
    """Decoder state for exactly one generation call."""

    buffer: str = ""
    cursor: int = 0
    phase: Phase = Phase.SCANNING
    plan_emitted: bool = False
    plan_open: bool = False
    # Plan text seen before code blocks that were decoded inside the open plan.
    plan_parts: list[str] = field(default_factory=list)
    current_path: str | None = None
    artifacts: dict[str, str] = field(default_factory=dict)

    @property
    def finished(self) -> bool:
        return self.phase is Phase.FINISHED

    @property
    def pending_unit(self) -> str | None:
        """Describe the innermost unit left open in the buffer, if any."""
        if self.phase is Phase.PLAN_BODY:
            return "plan"
        if self.phase is Phase.CODE_PATH:
            return "code block tag"
        if self.phase is Phase.CODE_BODY:
            return f"code block {self.current_path!r}"
        if self.phase is Phase.SUCCESS_MESSAGE:
            return "success marker"
        return None

    def feed(self, fragment: str) -> list[Update]:
        """Append a fragment and return every update it completes."""
        if self.phase is Phase.FINISHED:
            if fragment:
                logger.debug("Ignoring %d characters after success marker", len(fragment))
            return []
        self.buffer += fragment
        updates: list[Update] = []
        while self._step(updates):
            pass
        return updates

    def close(self) -> list[Update]:
        """Finish the decode at end of stream.

        Returns a completed update when a success marker sits inside a plan or
        code block that was never closed, and nothing otherwise.
        """
        if self.phase not in _OPEN_UNIT_PHASES:
            return []
        pending = "".join(self.plan_parts)
        if self.phase is Phase.CODE_BODY:
            pending += f"{self.current_path}{TAG_CLOSE}"
        pending += self.buffer
        start = pending.find(SUCCESS_START)
        if start == -1:
            return []
        end = pending.find(TAG_CLOSE, start + len(SUCCESS_START))
        if end == -1:
            return []
        logger.warning("Accepting success marker left inside unterminated %s", self.pending_unit)
        message = pending[start + len(SUCCESS_START) : end].strip()
        self._finish()
        return [CompletedUpdate(message=message)]

    def _step(self, updates: list[Update]) -> bool:
        if self.phase is Phase.SCANNING:
            return self._scan()
        if self.phase is Phase.PLAN_BODY:
            found = self._find_first((PLAN_END, CODE_START))
            if found is None:
                return False
            text = self._consume(*found)
            if found[1] == CODE_START:
                self.plan_parts.append(text)
                self.phase = Phase.CODE_PATH
                return True
            body = "".join(self.plan_parts) + text
            steps = tuple(line.strip() for line in body.split("\n") if line.strip())
            self.plan_parts = []
            self.plan_open = False
            self.plan_emitted = True
            self.phase = Phase.SCANNING
            updates.append(PlanUpdate(plan=steps))
            return True
        if self.phase is Phase.CODE_PATH:
            found = self._find_first((TAG_CLOSE,))
            if found is None:
                return False
            self.current_path = self._consume(*found)
            self.phase = Phase.CODE_BODY
            return True
        if self.phase is Phase.CODE_BODY:
            found = self._find_first((CODE_END,))
            if found is None:
                return False
            content = self._consume(*found)
            path = self.current_path or ""
            self.artifacts[path] = content.strip()
            self.current_path = None
            self.phase = Phase.PLAN_BODY if self.plan_open else Phase.SCANNING
            updates.append(ArtifactUpdate(artifacts=dict(self.artifacts)))
            return True
        if self.phase is Phase.SUCCESS_MESSAGE:
            found = self._find_first((TAG_CLOSE,))
            if found is None:
                return False
            message = self._consume(*found)
            self._finish()
            updates.append(CompletedUpdate(message=message.strip()))
        return False

    def _finish(self) -> None:
        self.phase = Phase.FINISHED
        self.buffer = ""
        self.cursor = 0
        self.plan_parts = []

    def _active_openers(self) -> list[tuple[str, Phase]]:
        # The plan block is accepted once; a repeated plan opener is inert text.
        return [
            (marker, phase)
            for marker, phase in _OPENERS
            if not (self.plan_emitted and marker == PLAN_START)
        ]

    def _scan(self) -> bool:
        openers = self._active_openers()
        best_index = -1
        best: tuple[str, Phase] | None = None
        for marker, phase in openers:
            index = self.buffer.find(marker)
            if index != -1 and (best is None or index < best_index):
                best_index = index
                best = (marker, phase)
        if best is None:
            keep_from = self._partial_opener_start(openers)
            self.buffer = self.buffer[keep_from:]
            self.cursor = 0
            return False
        marker, phase = best
        self.buffer = self.buffer[best_index + len(marker) :]
        self.cursor = 0
        self.phase = phase
        self.plan_open = phase is Phase.PLAN_BODY
        return True

    def _partial_opener_start(self, openers: list[tuple[str, Phase]]) -> int:
        """Index of a trailing prefix of some opener, or the buffer length."""
        start = max(0, len(self.buffer) - _LONGEST_OPENER + 1)
        index = self.buffer.find("[", start)
        while index != -1:
            tail = self.buffer[index:]
            if any(marker.startswith(tail) for marker, _ in openers):
                return index
            index = self.buffer.find("[", index + 1)
        return len(self.buffer)

    def _find_first(self, markers: tuple[str, ...]) -> tuple[int, str] | None:
        """Earliest complete occurrence of any marker at or after the cursor."""
        best: tuple[int, str] | None = None
        for marker in markers:
            index = self.buffer.find(marker, self.cursor)
            if index != -1 and (best is None or index < best[0]):
                best = (index, marker)
        if best is None:
            # A marker split across fragments starts at most len(marker) - 1 from the end.
            longest = max(len(marker) for marker in markers)
            self.cursor = max(0, len(self.buffer) - longest + 1)
        return best

    def _consume(self, index: int, marker: str) -> str:
        text = self.buffer[:index]
        self.buffer = self.buffer[index + len(marker) :]
        self.cursor = 0
        return text


def describe_error(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or exc.__class__.__name__


def _end_of_stream(decoder: StreamDecoder, fail_on_truncation: bool) -> list[Update]:
    updates = decoder.close()
    pending = decoder.pending_unit
    if pending is None:
        return updates
    logger.warning("Stream ended with unterminated %s", pending)
    if fail_on_truncation:
        updates.append(FailedUpdate(error=f"Stream ended before the {pending} was closed"))
    return updates


def iter_updates(fragments: Iterable[str], fail_on_truncation: bool = False) -> Iterator[Update]:
    """Decode a synchronous fragment source into updates."""
    decoder = StreamDecoder()
    try:
        for fragment in fragments:
            yield from decoder.feed(fragment)
            if decoder.finished:
                return
    except Exception as exc:
        error = describe_error(exc)
        logger.error("Fragment source failed: %s", redact(error))
        yield FailedUpdate(error=error)
        return
    finally:
        close = getattr(fragments, "close", None)
        if callable(close):
            close()
    yield from _end_of_stream(decoder, fail_on_truncation)


async def decode_stream(
    fragments: AsyncIterable[str], fail_on_truncation: bool = False
) -> AsyncIterator[Update]:
    """Decode an asynchronous fragment source into updates.

    A failing source yields a single ``FailedUpdate`` and ends the decode. The
    source is no longer pulled once the success marker resolves.
    """
    decoder = StreamDecoder()
    try:
        async for fragment in fragments:
            for update in decoder.feed(fragment):
                yield update
            if decoder.finished:
                return
    except Exception as exc:
        error = describe_error(exc)
        logger.error("Fragment source failed: %s", redact(error))
        yield FailedUpdate(error=error)
        return
    finally:
        aclose = getattr(fragments, "aclose", None)
        if callable(aclose):
            await aclose()
    for update in _end_of_stream(decoder, fail_on_truncation):
        yield update

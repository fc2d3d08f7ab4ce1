"""Telegram framing state machine."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from models.records import Reading
from services.parser import EmptyTelegramError, assemble_reading

logger = logging.getLogger(__name__)

START_MARKER = "/ISK5"
END_MARKER = "!"


class FramerState(str, Enum):
    idle = "idle"
    collecting = "collecting"


class LineKind(str, Enum):
    start = "start"
    end = "end"
    data = "data"


def classify(line: str) -> LineKind:
    if line.startswith(START_MARKER):
        return LineKind.start
    if line.startswith(END_MARKER):
        return LineKind.end
    return LineKind.data


class TelegramFramer:
    """Assembles telegram lines between start and end markers into readings.

    Feed lines in arrival order with :meth:`feed`. A reading is returned for
    the line that closes a non-empty telegram; every other call returns
    ``None``. A start marker seen while already collecting keeps the block
    that is in progress.
    """

    def __init__(self) -> None:
        self.state = FramerState.idle
        self.block: List[str] = []
        self._transitions: Dict[
            Tuple[FramerState, LineKind], Callable[[str], Optional[Reading]]
        ] = {
            (FramerState.idle, LineKind.start): self._begin,
            (FramerState.idle, LineKind.end): self._ignore,
            (FramerState.idle, LineKind.data): self._ignore,
            (FramerState.collecting, LineKind.start): self._ignore,
            (FramerState.collecting, LineKind.end): self._finish,
            (FramerState.collecting, LineKind.data): self._append,
        }

    def feed(self, line: str) -> Optional[Reading]:
        return self._transitions[(self.state, classify(line))](line)

    def reset(self) -> None:
        self.state = FramerState.idle
        self.block = []

    def _begin(self, _line: str) -> None:
        self.state = FramerState.collecting
        self.block = []

    def _ignore(self, _line: str) -> None:
        return None

    def _append(self, line: str) -> None:
        self.block.append(line)

    def _finish(self, _line: str) -> Optional[Reading]:
        block = self.block
        self.reset()
        try:
            return assemble_reading(block)
        except EmptyTelegramError as exc:
            logger.debug(
                "Discarding telegram",
                extra={"reason": str(exc), "state": self.state.value},
            )
            return None

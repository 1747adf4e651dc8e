"""
Compensation Stack
Undo steps collected while a multi-step write is in progress
"""

import logging
from typing import Awaitable, Callable, List, Tuple

logger = logging.getLogger(__name__)

UndoStep = Callable[[], Awaitable[None]]


class CompensationStack:
    """
    Records an undo step after each successful write. On failure the steps
    run newest-first; a failing undo step is logged and the rest still run.
    """

    def __init__(self, label: str):
        self.label = label
        self._steps: List[Tuple[str, UndoStep]] = []

    def __len__(self) -> int:
        return len(self._steps)

    def push(self, description: str, undo: UndoStep) -> None:
        self._steps.append((description, undo))

    def absorb(self, other: "CompensationStack") -> None:
        """Take over another stack's undo steps, keeping their order"""
        self._steps.extend(other._steps)
        other._steps.clear()

    def commit(self) -> None:
        """Keep everything written so far"""
        self._steps.clear()

    async def unwind(self) -> None:
        while self._steps:
            description, undo = self._steps.pop()
            logger.warning("[%s] compensating: %s", self.label, description)
            try:
                await undo()
            except Exception:
                logger.exception("[%s] compensation step failed: %s", self.label, description)

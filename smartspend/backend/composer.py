"""
Live preview for the expense input box.

Two producers write to one preview slot: the heuristic parser, which runs
on every update, and the AI classifier, which runs once the text has been
stable for the quiet period. Every update bumps a generation counter and an
AI result is only applied if it was requested under the current generation.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional

from .models import ParsedExpense
from .parser import parse_multiple_expenses

logger = logging.getLogger(__name__)

DEFAULT_QUIET_PERIOD = 0.8
MIN_PREVIEW_LENGTH = 3


class ExpenseComposer:
    def __init__(self, ai_service=None, quiet_period: float = DEFAULT_QUIET_PERIOD,
                 on_preview: Optional[Callable[[Optional[List[ParsedExpense]], str], None]] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.ai_service = ai_service
        self.quiet_period = quiet_period
        self.on_preview = on_preview
        self.clock = clock

        self.text = ''
        self.preview: Optional[List[ParsedExpense]] = None
        self.source: Optional[str] = None  # 'heuristic' or 'ai'
        self.generation = 0
        self._pending: Optional[asyncio.Task] = None

    def update(self, text: str):
        """Handle a new input value. Must be called from a running event loop."""
        self.text = text
        self.generation += 1
        self._cancel_pending()

        if len(text.strip()) <= MIN_PREVIEW_LENGTH:
            self._set_preview(None, None)
            return self.preview

        parsed = parse_multiple_expenses(text, self.clock())
        self._set_preview(parsed or None, 'heuristic')

        if self.ai_service is not None:
            self._pending = asyncio.get_running_loop().create_task(
                self._upgrade(text, self.generation)
            )
        return self.preview

    async def _upgrade(self, text, generation):
        await asyncio.sleep(self.quiet_period)
        if generation != self.generation:
            return
        # The network call itself is not cancellable once started
        upgraded = await asyncio.to_thread(self.ai_service.classify_expenses, text, self.clock())
        if generation != self.generation:
            logger.debug(f"Discarding stale AI preview (generation {generation} < {self.generation})")
            return
        if upgraded:
            self._set_preview(upgraded, 'ai')

    async def flush(self):
        """Wait for the pending AI upgrade, if any."""
        task = self._pending
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    def commit(self) -> List[ParsedExpense]:
        """Return the items to save and reset the input."""
        items = list(self.preview) if self.preview else parse_multiple_expenses(self.text, self.clock())
        self.text = ''
        self.generation += 1
        self._cancel_pending()
        self._set_preview(None, None)
        return items

    def _cancel_pending(self):
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    def _set_preview(self, preview, source):
        self.preview = preview
        self.source = source
        if self.on_preview is not None:
            self.on_preview(preview, source)

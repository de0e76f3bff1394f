"""
Screen Calculation Runner

Evaluates every calculated text value on a screen and publishes the resolved
texts, keeping results consistent while the user edits and switches screens:

- each evaluate_screen() call takes a new generation number for its screen;
  numbers are never reused, so a forgotten screen cannot revive an old run
- when a run completes it publishes only if its generation is still the
  latest for that screen and the screen is still the current one
- set_current_screen() and cancel() invalidate runs already in flight

Stale runs simply finish and are discarded; start() additionally tracks the
background task so cancel() can stop it early.
"""

import asyncio
import itertools
import logging
from collections.abc import Callable

from canvasforge.models.contracts.elements import Screen
from canvasforge.services.calculation_engine import CalculationEngine, has_calculations
from canvasforge.services.element_tree import iter_elements

logger = logging.getLogger(__name__)

EngineFactory = Callable[[Screen], CalculationEngine]


def _default_engine_factory(screen: Screen) -> CalculationEngine:
    return CalculationEngine.for_forest(screen.elements)


class ScreenCalculationRunner:
    """
    Last-started-wins evaluation of calculated texts, per screen.

    Args:
        engine_factory: Builds the engine scoped to a screen's elements
        text_key: Property holding the text to evaluate
    """

    def __init__(self, engine_factory: EngineFactory | None = None, *, text_key: str = "value"):
        self._engine_factory = engine_factory or _default_engine_factory
        self.text_key = text_key
        self.current_screen_id: str | None = None
        self._generations: dict[str, int] = {}
        self._counter = itertools.count(1)
        self._results: dict[str, dict[str, str]] = {}
        self._tasks: dict[str, set[asyncio.Task]] = {}

    # -------------------------------------------------------------------------
    # Screen tracking
    # -------------------------------------------------------------------------

    def set_current_screen(self, screen_id: str | None) -> None:
        """Switch screens; runs for the screen being left are invalidated."""
        previous = self.current_screen_id
        if previous is not None and previous != screen_id:
            self._invalidate(previous)
        self.current_screen_id = screen_id

    def cancel(self, screen_id: str) -> None:
        """Invalidate runs in flight for a screen and stop its background tasks."""
        self._invalidate(screen_id)
        for task in list(self._tasks.get(screen_id, ())):
            if not task.done():
                task.cancel()
        logger.debug(f"Cancelled calculation runs for screen '{screen_id}'")

    def results(self, screen_id: str) -> dict[str, str]:
        """Last published element id -> resolved text map for a screen."""
        return dict(self._results.get(screen_id, {}))

    def generation(self, screen_id: str) -> int:
        return self._generations.get(screen_id, 0)

    def _invalidate(self, screen_id: str) -> None:
        self._generations[screen_id] = next(self._counter)

    def _is_latest(self, screen_id: str, generation: int) -> bool:
        if self.generation(screen_id) != generation:
            return False
        return self.current_screen_id is None or self.current_screen_id == screen_id

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    async def evaluate_screen(self, screen: Screen) -> dict[str, str] | None:
        """
        Evaluate every text element of a screen that contains tokens.

        Returns:
            The published map, or None when a newer run, a screen switch or a
            cancel superseded this one before it finished.
        """
        self._invalidate(screen.id)
        generation = self.generation(screen.id)
        engine = self._engine_factory(screen)

        targets = [
            element
            for element in iter_elements(screen.elements)
            if has_calculations(element.properties.get(self.text_key))
        ]
        texts = await asyncio.gather(
            *(
                engine.evaluate(element.properties[self.text_key], current_element_id=element.id)
                for element in targets
            )
        )
        resolved = {element.id: text for element, text in zip(targets, texts)}

        if not self._is_latest(screen.id, generation):
            logger.debug(
                f"Discarding stale calculation run {generation} for screen '{screen.id}'"
            )
            return None

        self._results[screen.id] = resolved
        logger.debug(f"Published {len(resolved)} calculated values for screen '{screen.id}'")
        return resolved

    def start(self, screen: Screen) -> asyncio.Task:
        """Run evaluate_screen() in the background; the task is tracked for cancel()."""
        task = asyncio.create_task(self.evaluate_screen(screen))
        self._tasks.setdefault(screen.id, set()).add(task)
        task.add_done_callback(lambda done: self._forget_task(screen.id, done))
        return task

    def forget_screen(self, screen_id: str) -> None:
        """Drop all bookkeeping for a screen that no longer exists."""
        self.cancel(screen_id)
        self._generations.pop(screen_id, None)
        self._results.pop(screen_id, None)
        if self.current_screen_id == screen_id:
            self.current_screen_id = None

    def _forget_task(self, screen_id: str, task: asyncio.Task) -> None:
        tasks = self._tasks.get(screen_id)
        if tasks is None:
            return
        tasks.discard(task)
        if not tasks:
            del self._tasks[screen_id]

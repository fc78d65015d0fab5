from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable, Union

from .models import ScoreBreakdown, WidgetStateResponse
from .scoring import build_breakdown, extract_brand_name, fetch_logo
from .signals import check_schema_markup, check_wikipedia

logger = logging.getLogger(__name__)

SignalChecker = Callable[[str], Awaitable[int]]


class Phase(str, Enum):
    IDLE = "idle"
    CALCULATING = "calculating"
    RESULT = "result"


@dataclass(frozen=True)
class WidgetState:
    url: str = ""
    breakdown: ScoreBreakdown | None = None
    logo_url: str = ""
    calculating: bool = False
    last_calculated_url: str = ""
    # Bumped by reset so a calculation that started earlier cannot publish into the cleared state.
    generation: int = 0

    @property
    def phase(self) -> Phase:
        if self.calculating:
            return Phase.CALCULATING
        if self.breakdown is not None:
            return Phase.RESULT
        return Phase.IDLE

    def to_response(self) -> WidgetStateResponse:
        return WidgetStateResponse(
            phase=self.phase.value,
            url=self.url,
            breakdown=self.breakdown,
            logo_url=self.logo_url,
            calculating=self.calculating,
            last_calculated_url=self.last_calculated_url,
        )


@dataclass(frozen=True)
class CalculationStarted:
    url: str


@dataclass(frozen=True)
class CalculationFinished:
    generation: int
    breakdown: ScoreBreakdown | None
    logo_url: str = ""


@dataclass(frozen=True)
class ResetRequested:
    pass


Action = Union[CalculationStarted, CalculationFinished, ResetRequested]


def reduce(state: WidgetState, action: Action) -> WidgetState:
    """Return the snapshot that follows ``state`` after ``action``."""
    if isinstance(action, CalculationStarted):
        return replace(state, url=action.url, calculating=True, last_calculated_url=action.url)

    if isinstance(action, CalculationFinished):
        if action.generation != state.generation or action.breakdown is None:
            # Stale (reset happened meanwhile) or aborted: only release the in-flight flag.
            return replace(state, calculating=False)
        return replace(state, breakdown=action.breakdown, logo_url=action.logo_url, calculating=False)

    if isinstance(action, ResetRequested):
        return WidgetState(calculating=state.calculating, generation=state.generation + 1)

    raise TypeError(f"unknown action: {action!r}")


class GeoScoreWidget:
    """Server-side controller for the GEO score widget.

    All state lives in one immutable ``WidgetState`` that is swapped in a
    single assignment per transition. The event loop never preempts between
    the guard check and the ``CalculationStarted`` dispatch, so two submissions
    cannot both pass the guard.
    """

    def __init__(
        self,
        *,
        schema_checker: SignalChecker | None = None,
        wiki_checker: SignalChecker | None = None,
        parallel_checks: bool = False,
    ) -> None:
        self._state = WidgetState()
        self._schema_checker = schema_checker or check_schema_markup
        self._wiki_checker = wiki_checker or check_wikipedia
        self.parallel_checks = parallel_checks

    @property
    def state(self) -> WidgetState:
        return self._state

    def _dispatch(self, action: Action) -> WidgetState:
        self._state = reduce(self._state, action)
        return self._state

    async def _run_checks(self, url: str, brand: str) -> tuple[int, int]:
        if self.parallel_checks:
            tasks = [
                asyncio.ensure_future(self._schema_checker(url)),
                asyncio.ensure_future(self._wiki_checker(brand)),
            ]
            try:
                schema, wiki = await asyncio.gather(*tasks)
            finally:
                # Cancel whichever check is still running after a failure.
                for task in tasks:
                    if not task.done():
                        task.cancel()
            return schema, wiki
        schema = await self._schema_checker(url)
        wiki = await self._wiki_checker(brand)
        return schema, wiki

    async def calculate_score(self, url: str) -> bool:
        state = self._state
        if state.calculating or url == state.last_calculated_url:
            logger.info("calculation skipped for %r (phase=%s)", url, state.phase.value)
            return False

        generation = self._dispatch(CalculationStarted(url)).generation
        logger.info("calculating GEO score for %r", url)

        breakdown: ScoreBreakdown | None = None
        logo = ""
        try:
            brand = extract_brand_name(url)
            logo = fetch_logo(url)
            schema, wiki = await self._run_checks(url, brand)
            breakdown = build_breakdown(url, brand, wiki_score=wiki, schema_score=schema)
        finally:
            self._dispatch(CalculationFinished(generation, breakdown, logo))

        if generation != self._state.generation:
            logger.info("discarded result for %r after reset", url)
        else:
            logger.info("GEO score for %r: %d/100", breakdown.brand, breakdown.total)
        return True

    def reset(self) -> WidgetState:
        return self._dispatch(ResetRequested())

"""Runs a simulation request against the book store."""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Optional

from loguru import logger

from ..datafeed.book_store import BookStore
from ..types import OrderSimulation, OrderSimulationResult
from .impact import generate_warnings, simulate_order_impact, validate_simulation

Sleep = Callable[[float], Awaitable[None]]


class SimulationOrchestrator:
    """
    Book lookup -> optional delay -> impact simulation -> warnings.

    The book reference is taken when simulate() is called. The timing delay is a
    cooperative suspension: feeds keep updating the store meanwhile, but the
    result is computed against the book as of call time.
    """

    def __init__(
        self,
        store: BookStore,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._store = store
        self._sleep = sleep
        self._rng = rng or random.Random()

    async def simulate(self, request: OrderSimulation) -> OrderSimulationResult:
        """
        Raises InvalidOrderError for a malformed request and NoBookDataError if
        no book has been received for (venue, symbol).
        """
        validate_simulation(request)
        book = self._store.get(request.venue, request.symbol)

        delay = request.timing.seconds
        if delay > 0:
            logger.debug("Delaying {} {} simulation by {}s", request.venue.value, request.symbol, delay)
            await self._sleep(delay)

        outcome = simulate_order_impact(
            book,
            request.side,
            request.quantity,
            request.order_type,
            request.price,
            rng=self._rng,
        )
        warnings = generate_warnings(request, outcome.impact_metrics)

        logger.info(
            "Simulated {} {} {} {} x{}: fill {:.1f}% avg {:.4f} slippage {:.2f}%",
            request.venue.value, request.symbol, request.order_type.value, request.side.value,
            request.quantity, outcome.impact_metrics.estimated_fill_percentage,
            outcome.impact_metrics.average_fill_price, outcome.impact_metrics.slippage,
        )

        return OrderSimulationResult(
            position=outcome.position,
            impact_metrics=outcome.impact_metrics,
            affected_levels=outcome.affected_levels,
            orderbook=book,
            simulation=request,
            warnings=warnings,
        )

"""SniperBot: wires discovery, scoring, risk and execution into one loop.

Discovery events arrive through a bounded channel and are handled one at a
time by a consumer task. Each event runs the full gate sequence:

    must-have filter -> prediction -> sentiment -> score -> signal
    -> circuit breaker -> admission -> reservation -> sizing -> buy

Any gate that fails drops the event with a log line. Nothing is retried or
re-queued. Open positions are re-evaluated by an APScheduler interval job
that drives the PositionMonitor. Stopping lets the event being processed
finish first.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import signal
from collections import defaultdict
from collections.abc import Callable
from enum import Enum
from typing import Any, Optional

from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from sniper.config import MIN_POSITION_USD, POSITION_CHECK_INTERVAL, SOL_MINT, SniperConfig
from sniper.discovery.channel import DiscoveryChannel, DiscoverySource
from sniper.discovery.models import DiscoveryEvent, TokenMetadata
from sniper.discovery.pumpfun import PumpFunFeed
from sniper.execution.engine import ExecutionEngine, OrderResult
from sniper.execution.monitor import PositionMonitor
from sniper.execution.position_manager import Position
from sniper.execution.risk_manager import RiskManager
from sniper.scoring.base import PriceFeed, Predictor, Scorer, SentimentSource
from sniper.scoring.predictor import HeuristicPredictor
from sniper.scoring.scorer import TokenScorer
from sniper.scoring.sentiment import CachedSentiment

logger = logging.getLogger(__name__)


class BotState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class BotEvent(str, Enum):
    STARTED = "started"
    STOPPED = "stopped"
    POSITION_OPENED = "position_opened"
    POSITION_CLOSED = "position_closed"
    TRADE_FAILED = "trade_failed"


# (event, payload) -> None or awaitable
Listener = Callable[[BotEvent, dict[str, Any]], Any]


class SniperBot:
    """Orchestrates the sniper pipeline.

    Collaborators not passed in are built from the config, so tests can
    substitute any one of them without touching the others.
    """

    def __init__(
        self,
        config: SniperConfig,
        engine: Optional[ExecutionEngine] = None,
        risk_manager: Optional[RiskManager] = None,
        scorer: Optional[Scorer] = None,
        predictor: Optional[Predictor] = None,
        sentiment: Optional[SentimentSource] = None,
        price_feed: Optional[PriceFeed] = None,
        discovery: Optional[DiscoverySource] = None,
    ) -> None:
        self.config = config
        self.engine = engine or ExecutionEngine(config.execution, config.network)
        self.rm = risk_manager or RiskManager(config.trading, config.initial_capital)
        self.scorer = scorer or TokenScorer(config.trading)
        self.predictor = predictor or HeuristicPredictor(config.ml)
        self.sentiment = sentiment or CachedSentiment(config.sentiment)
        self.price_feed = price_feed or self.engine.jupiter
        self.discovery = discovery or PumpFunFeed(config.discovery)

        self.channel = DiscoveryChannel(config.system.discovery_buffer)
        self.monitor = PositionMonitor(self.rm, self.price_feed, self._on_monitor_close)

        self.state = BotState.STOPPED
        self._listeners: dict[BotEvent, list[Listener]] = defaultdict(list)
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._consumer: Optional[asyncio.Task] = None
        self._in_flight: Optional[asyncio.Task] = None
        self._health_runner: Optional[web.AppRunner] = None
        self._shutdown_event = asyncio.Event()
        self.events_processed = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self.state == BotState.RUNNING:
            logger.warning("bot_already_running")
            return

        logger.info(
            "bot_starting",
            extra={"bot_name": self.config.system.name, "dry_run": self.engine.dry_run},
        )

        await self.engine.initialize()
        balance = await self.engine.get_native_balance()
        logger.info("wallet_balance", extra={"sol": balance})

        await self.predictor.initialize()

        await self.discovery.start(self.channel)
        self._consumer = asyncio.create_task(self._consume(), name="sniper-consumer")

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._job_position_monitor,
            "interval",
            seconds=POSITION_CHECK_INTERVAL,
            id="position_monitor",
            name="Position Monitor",
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()

        if self.config.system.health_port:
            await self._start_health_server()

        self.state = BotState.RUNNING
        logger.info("bot_started", extra={"positions": self.rm.pm.n_positions})
        await self._emit(BotEvent.STARTED, {})

    async def stop(self) -> None:
        """Halt ingestion and monitoring. Open positions are left as they are."""
        if self.state == BotState.STOPPED:
            return
        logger.info("bot_stopping")

        await self.discovery.stop()

        # The event being processed runs to completion before the bot stops
        in_flight = self._in_flight
        if self._consumer is not None:
            self._consumer.cancel()
            await asyncio.gather(self._consumer, return_exceptions=True)
            self._consumer = None
        if in_flight is not None:
            logger.info("bot_waiting_for_inflight_event")
            await self._finish(in_flight)
            self._in_flight = None

        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        if self._health_runner is not None:
            await self._health_runner.cleanup()
            self._health_runner = None

        self.state = BotState.STOPPED
        logger.info("bot_stopped", extra={"open_positions": self.rm.pm.n_positions})
        await self._emit(BotEvent.STOPPED, {"open_positions": self.rm.pm.n_positions})

    async def run_forever(self) -> None:
        """Start, then block until SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._signal_handler)

        await self.start()
        try:
            await self._shutdown_event.wait()
        finally:
            await self.stop()
            await self.engine.close()

    def _signal_handler(self) -> None:
        logger.info("shutdown_signal_received")
        self._shutdown_event.set()

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, event: BotEvent, listener: Listener) -> None:
        self._listeners[event].append(listener)

    async def _emit(self, event: BotEvent, payload: dict[str, Any]) -> None:
        for listener in list(self._listeners[event]):
            try:
                result = listener(event, payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.error("listener_error", extra={"event": event.value}, exc_info=True)

    # ------------------------------------------------------------------
    # Discovery consumer
    # ------------------------------------------------------------------

    async def _consume(self) -> None:
        while True:
            event = await self.channel.get()
            self._in_flight = asyncio.create_task(
                self.process_event(event), name=f"sniper-event-{event.token.address}"
            )
            try:
                # Cancelling the consumer leaves the event task running
                await asyncio.shield(self._in_flight)
            except Exception:
                logger.error(
                    "process_event_error",
                    extra={"address": event.token.address},
                    exc_info=True,
                )
            finally:
                if self._in_flight is not None and self._in_flight.done():
                    self._in_flight = None
                self.channel.task_done()

    async def _finish(self, task: asyncio.Task) -> None:
        try:
            await task
        except Exception:
            logger.error("process_event_error", exc_info=True)

    async def process_event(self, event: DiscoveryEvent) -> Optional[Position]:
        """Run one discovery event through every gate. Returns the opened position."""
        self.events_processed += 1
        token = event.token
        address = token.address
        timeout = self.config.system.collaborator_timeout

        check = self.scorer.passes_must_have(token)
        if not check.passes:
            logger.debug("token_filtered", extra={"address": address, "reasons": check.reasons})
            return None

        try:
            prediction = await asyncio.wait_for(self.predictor.predict(token), timeout)
        except Exception:
            logger.warning("prediction_failed", extra={"address": address}, exc_info=True)
            return None
        if not self.predictor.meets_threshold(prediction.probability):
            logger.debug(
                "prediction_below_threshold",
                extra={"address": address, "probability": prediction.probability},
            )
            return None

        sentiment_score = 0.0
        if self.config.sentiment.enabled:
            try:
                result = await asyncio.wait_for(self.sentiment.sentiment(token), timeout)
                sentiment_score = result.score
            except Exception:
                logger.warning("sentiment_failed", extra={"address": address}, exc_info=True)
                return None

        try:
            score = await asyncio.wait_for(
                self.scorer.score(token, prediction.probability, sentiment_score), timeout
            )
        except Exception:
            logger.warning("scoring_failed", extra={"address": address}, exc_info=True)
            return None

        trade_signal = self.scorer.generate_signal(token, score)
        if trade_signal is None:
            logger.debug(
                "no_signal",
                extra={"address": address, "score": round(score.total_score, 1)},
            )
            return None

        logger.info(
            "signal_generated",
            extra={
                "address": address,
                "symbol": token.token.symbol,
                "score": round(trade_signal.score, 1),
                "probability": round(trade_signal.probability, 3),
                "reasons": list(trade_signal.reasons),
            },
        )

        breaker = self.rm.check_circuit_breaker()
        if breaker.triggered:
            logger.warning("circuit_breaker_active", extra={"reason": breaker.reason})
            return None

        admission = self.rm.can_open_position()
        if not admission.allowed:
            logger.info(
                "position_rejected",
                extra={"address": address, "reason": admission.reason},
            )
            return None

        reservation = self.rm.reserve(address)
        if not reservation.allowed:
            logger.info(
                "position_rejected",
                extra={"address": address, "reason": reservation.reason},
            )
            return None

        try:
            return await self._open(trade_signal.token, trade_signal.probability)
        finally:
            self.rm.release(address)

    async def _open(self, token: TokenMetadata, probability: float) -> Optional[Position]:
        address = token.address
        timeout = self.config.system.collaborator_timeout

        volatility = self.monitor.observed_volatility()
        size_usd = self.rm.size_usd(probability, self.config.trading.kelly_odds, volatility)
        if size_usd < MIN_POSITION_USD:
            logger.info(
                "position_too_small",
                extra={"address": address, "size_usd": round(size_usd, 2)},
            )
            return None

        try:
            sol_price = await asyncio.wait_for(self.price_feed.get_price(SOL_MINT), timeout)
            entry_price = token.price
            if entry_price <= 0:
                entry_price = await asyncio.wait_for(self.price_feed.get_price(address), timeout)
        except Exception:
            logger.warning("entry_pricing_failed", extra={"address": address}, exc_info=True)
            return None
        if sol_price <= 0 or entry_price <= 0:
            logger.warning("entry_pricing_failed", extra={"address": address})
            return None

        amount_sol = size_usd / sol_price
        result = await self.engine.buy(address, amount_sol)
        if not result.success:
            logger.warning(
                "buy_failed",
                extra={
                    "address": address,
                    "error_code": result.error_code.value if result.error_code else "",
                    "error": result.error,
                },
            )
            await self._emit(BotEvent.TRADE_FAILED, {"side": "buy", "address": address, "result": result})
            return None

        position = Position(
            address=address,
            symbol=token.token.symbol,
            entry_price=entry_price,
            quantity=amount_sol,
            value_usd=size_usd,
            stop_price=self.rm.dynamic_stop_price(entry_price, volatility),
            take_profit_levels=self.rm.build_take_profit_levels(),
            tx_handle=result.tx_handle or "",
        )
        if not self.rm.open_position(position):
            logger.error("position_open_conflict", extra={"address": address})
            return None

        logger.info(
            "position_opened",
            extra={
                "address": address,
                "symbol": position.symbol,
                "size_usd": round(size_usd, 2),
                "amount_sol": round(amount_sol, 6),
                "entry_price": entry_price,
                "tx": position.tx_handle,
                "simulated": result.simulated,
            },
        )
        await self._emit(BotEvent.POSITION_OPENED, {"position": position, "result": result})
        return position

    # ------------------------------------------------------------------
    # Exits
    # ------------------------------------------------------------------

    async def close_position(
        self,
        address: str,
        percentage: float,
        reason: str,
        current_price: Optional[float] = None,
    ) -> Optional[OrderResult]:
        """Sell ``percentage`` of a position; the portfolio changes only on success."""
        if self.rm.pm.get_position(address) is None:
            logger.debug("close_unknown_position", extra={"address": address})
            return None

        result = await self.engine.sell(address, percentage)
        if not result.success:
            logger.warning(
                "sell_failed",
                extra={
                    "address": address,
                    "reason": reason,
                    "error_code": result.error_code.value if result.error_code else "",
                    "error": result.error,
                },
            )
            await self._emit(BotEvent.TRADE_FAILED, {"side": "sell", "address": address, "result": result})
            return result

        realized = self.rm.close_position(address, percentage, current_price)
        still_open = self.rm.pm.get_position(address) is not None
        logger.info(
            "position_closed",
            extra={
                "address": address,
                "percentage": percentage,
                "reason": reason,
                "realized_pnl": round(realized, 2),
                "fully_closed": not still_open,
                "tx": result.tx_handle or "",
            },
        )
        await self._emit(
            BotEvent.POSITION_CLOSED,
            {
                "address": address,
                "percentage": percentage,
                "reason": reason,
                "realized_pnl": realized,
                "fully_closed": not still_open,
            },
        )
        return result

    async def _on_monitor_close(self, address: str, percentage: float, reason: str, price: float) -> None:
        await self.close_position(address, percentage, reason, price)

    async def _job_position_monitor(self) -> None:
        try:
            await self.monitor.tick()
        except Exception:
            logger.error("position_monitor_error", exc_info=True)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "mode": "DRY_RUN" if self.engine.dry_run else "LIVE",
            "events_processed": self.events_processed,
            "discovery_queued": self.channel.qsize(),
            "discovery_dropped": self.channel.dropped,
            "monitor_ticks": self.monitor.ticks,
            "orders": len(self.engine.order_log),
            "rpc_cursor": self.engine.endpoints.cursor,
            "risk": self.rm.status(),
        }

    async def _start_health_server(self) -> None:
        app = web.Application()
        app.router.add_get("/health", self._health_handler)

        self._health_runner = web.AppRunner(app)
        await self._health_runner.setup()
        site = web.TCPSite(self._health_runner, "0.0.0.0", self.config.system.health_port)
        await site.start()
        logger.info("health_server_started", extra={"port": self.config.system.health_port})

    async def _health_handler(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok", **self.status()})

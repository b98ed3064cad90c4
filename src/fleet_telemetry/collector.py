import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from fleet_telemetry.client import FetchOrchestrator
from fleet_telemetry.config import SOURCES
from fleet_telemetry.engine import TelemetryEngine
from fleet_telemetry.exceptions import FetchExhausted, PayloadRejected
from fleet_telemetry.source_config import SourceConfig

logger = logging.getLogger(__name__)


def request_params(source: SourceConfig, now: datetime | None = None) -> dict[str, str]:
    params = dict(source.params)
    if source.date_range:
        today = (now or datetime.now(timezone.utc)).date().isoformat()
        params["from_date"] = today
        params["to_date"] = today
    return params


class SourcePoller:
    """Polls one source on a fixed interval, never overlapping itself.

    The handler is synchronous and only runs once a fetch has completed,
    so a cancelled poll never leaves partial results behind.
    """

    def __init__(
        self,
        source: SourceConfig,
        orchestrator: FetchOrchestrator,
        handler: Callable[[Any], None],
        on_failure: Callable[[BaseException], None] | None = None,
    ):
        self.source = source
        self.orchestrator = orchestrator
        self.handler = handler
        self.on_failure = on_failure
        self._inflight: asyncio.Task | None = None
        self._loop_task: asyncio.Task | None = None

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def _failed(self, error: BaseException) -> None:
        if self.on_failure is not None:
            self.on_failure(error)

    async def _poll(self) -> bool:
        name = self.source.name
        try:
            payload = await self.orchestrator.fetch(
                self.source.api_url, params=request_params(self.source)
            )
        except FetchExhausted as e:
            logger.warning("[%s] poll failed, keeping last data: %s", name, e)
            self._failed(e)
            return False
        except Exception as e:
            logger.exception("Fetch failed for %s", name)
            self._failed(e)
            return False

        try:
            self.handler(payload)
        except PayloadRejected as e:
            logger.warning("[%s] provider rejected the request: %s", name, e)
            self._failed(e)
            return False
        except Exception as e:
            logger.exception("Poll failed for %s", name)
            self._failed(e)
            return False
        return True

    async def poll_once(self) -> bool:
        """Run one poll now. Returns False if skipped or failed."""
        if self.in_flight:
            logger.debug("[%s] previous poll still in flight, skipping", self.source.name)
            return False
        self._inflight = asyncio.create_task(self._poll())
        return await self._inflight

    async def run(self) -> None:
        logger.info(
            "Starting poller for %s — polling every %ds",
            self.source.display_name,
            self.source.poll_interval,
        )
        try:
            while True:
                if self.in_flight:
                    logger.debug(
                        "[%s] previous poll still in flight, skipping tick",
                        self.source.name,
                    )
                else:
                    self._inflight = asyncio.create_task(self._poll())
                await asyncio.sleep(self.source.poll_interval)
        except asyncio.CancelledError:
            logger.info("Poller for %s shutting down", self.source.name)
            if self._inflight is not None:
                self._inflight.cancel()
            raise

    def start(self) -> asyncio.Task:
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self.run())
        return self._loop_task

    async def stop(self) -> None:
        tasks = [t for t in (self._loop_task, self._inflight) if t is not None]
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_task = None
        self._inflight = None


class Collector:
    """One poller per enabled source, wired into the engine."""

    def __init__(
        self,
        engine: TelemetryEngine,
        orchestrator: FetchOrchestrator,
        sources: dict[str, SourceConfig] | None = None,
    ):
        self.engine = engine
        sources = SOURCES if sources is None else sources
        self.pollers: dict[str, SourcePoller] = {}
        for name, source in sources.items():
            if not source.enabled:
                continue
            self.pollers[name] = SourcePoller(
                source,
                orchestrator,
                handler=self._handler_for(source),
                on_failure=lambda e, name=name: engine.record_failure(name, e),
            )

    def _handler_for(self, source: SourceConfig) -> Callable[[Any], None]:
        if source.kind == "roster":
            return lambda payload: self._ingest_live(source.name, payload)
        if source.kind == "summary":
            return lambda payload: self._ingest_summary(source.name, payload)
        raise ValueError(f"Unknown source kind: {source.kind}")

    def _ingest_live(self, name: str, payload: Any) -> None:
        batch = self.engine.ingest_live(payload, source=name)
        logger.info(
            "[%s] %d vehicles seen, %d records rejected",
            name,
            len(batch.samples),
            batch.rejected,
        )

    def _ingest_summary(self, name: str, payload: Any) -> None:
        snapshot = self.engine.ingest_summary(payload, source=name)
        logger.info("[%s] %d summary rows", name, len(snapshot.rows))

    def start(self) -> list[asyncio.Task]:
        return [poller.start() for poller in self.pollers.values()]

    async def stop(self) -> None:
        await asyncio.gather(*(poller.stop() for poller in self.pollers.values()))


async def run(engine: TelemetryEngine, orchestrator: FetchOrchestrator):
    """Start a poller for each enabled source and run until cancelled."""
    collector = Collector(engine, orchestrator)
    if not collector.pollers:
        logger.warning("No sources enabled!")
        return

    logger.info("Collector starting with %d sources", len(collector.pollers))
    tasks = collector.start()
    try:
        await asyncio.gather(*tasks)
    except asyncio.CancelledError:
        logger.info("Collector shutting down")
        await collector.stop()
        raise

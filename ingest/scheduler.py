from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass, replace
from enum import Enum

from loguru import logger

from health.health import record_run_failure, record_run_success
from ingest.errors import ArchiveError, FetchError, ParseError, WarningPipelineError
from ingest.fetch import Fetcher
from ingest.instances import InstanceConfig
from ingest.pipeline import Clock, empty_result, run_pipeline, utc_now
from normalize.models import PipelineResult, result_to_dict
from realtime.bus import Event, EventBus
from store.db import Database
from store.results import MemoryResultStore, ResultStore


SleepFn = Callable[[float], Awaitable[None]]


class RunPhase(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"


@dataclass
class InstanceState:
    phase: RunPhase = RunPhase.IDLE
    last_good: PipelineResult | None = None
    last_result: PipelineResult | None = None
    runs: int = 0
    failures: int = 0
    dropped: int = 0
    last_error: str | None = None


class InstanceScheduler:
    """Runs the pipeline for one configured instance.

    At most one run is in flight; triggers arriving meanwhile are dropped.
    The last successful result is kept in memory and in ``store``; a failed
    run re-delivers it marked stale when the instance allows it.
    """

    def __init__(
        self,
        config: InstanceConfig,
        *,
        fetcher: Fetcher,
        store: ResultStore | None = None,
        bus: EventBus | None = None,
        db: Database | None = None,
        clock: Clock = utc_now,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.config = config
        self.state = InstanceState()
        self._fetcher = fetcher
        self._store = store if store is not None else MemoryResultStore()
        self._bus = bus
        self._db = db
        self._clock = clock
        self._sleep = sleep
        self._timer: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def busy(self) -> bool:
        return self.state.phase is RunPhase.FETCHING

    async def start(self) -> None:
        self.state.last_good = self._store.load(self.config.instance_id)
        if self.config.auto_refresh_seconds > 0:
            self._timer = asyncio.create_task(self._timer_loop())
        if self.config.immediate_fetch:
            self._spawn(from_timer=False)
        logger.info(
            "{}: started (interval {}s, cached result: {})",
            self.config.instance_id,
            self.config.auto_refresh_seconds,
            self.state.last_good is not None,
        )

    async def stop(self) -> None:
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            with suppress(asyncio.CancelledError):
                await self._timer
            self._timer = None
        logger.info("{}: stopped", self.config.instance_id)

    def _spawn(self, *, from_timer: bool) -> None:
        task = asyncio.create_task(self.trigger(from_timer=from_timer))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(
                "{}: background run crashed", self.config.instance_id
            )

    async def _timer_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.auto_refresh_seconds)
            self._spawn(from_timer=True)

    async def trigger(
        self, *, from_timer: bool = False, url: str | None = None
    ) -> PipelineResult | None:
        if self._closed:
            return None
        if self.state.phase is RunPhase.FETCHING:
            self.state.dropped += 1
            logger.info(
                "{}: run already in flight, dropping {} trigger",
                self.config.instance_id,
                "timer" if from_timer else "external",
            )
            return None

        self.state.phase = RunPhase.FETCHING
        try:
            result, succeeded = await self._run(from_timer=from_timer, url=url)
        finally:
            self.state.phase = RunPhase.IDLE

        if self._closed:
            logger.info("{}: discarding result of run finished after stop", self.config.instance_id)
            return None

        self.state.runs += 1
        self.state.last_result = result
        if succeeded:
            self.state.last_good = result
            self._store.save(self.config.instance_id, result)
        await self._emit(result)
        return result

    async def _attempt(self, *, from_timer: bool, url: str | None) -> PipelineResult:
        try:
            return await run_pipeline(
                self.config, self._fetcher, now=self._clock(), url=url, from_timer=from_timer
            )
        except (ParseError, ArchiveError) as e:
            delay = self.config.parse_retry_delay_seconds
            logger.warning(
                "{}: unreadable feed, retrying once in {}s: {}",
                self.config.instance_id,
                delay,
                e,
            )
            await self._sleep(delay)
            return await run_pipeline(
                self.config, self._fetcher, now=self._clock(), url=url, from_timer=from_timer
            )

    async def _run(
        self, *, from_timer: bool, url: str | None
    ) -> tuple[PipelineResult, bool]:
        try:
            result = await self._attempt(from_timer=from_timer, url=url)
        except WarningPipelineError as e:
            return self._failed(e, from_timer=from_timer, url=url), False
        except Exception as e:
            logger.opt(exception=e).error(
                "{}: unexpected error during run", self.config.instance_id
            )
            return self._failed(e, from_timer=from_timer, url=url), False

        self.state.last_error = None
        if self._db is not None:
            record_run_success(
                self._db,
                instance_id=self.config.instance_id,
                at=result.computed_at,
                count=result.count,
            )
        return result, True

    def _failed(
        self, error: Exception, *, from_timer: bool, url: str | None
    ) -> PipelineResult:
        now = self._clock()
        message = f"{error.__class__.__name__}: {error}"
        if isinstance(error, FetchError) and error.status is not None:
            message = f"FetchError: HTTP {error.status} ({error.url})"
        self.state.failures += 1
        self.state.last_error = message

        cached = self.state.last_good
        if self.config.allow_stale and cached is not None:
            result = replace(
                cached,
                stale=True,
                error=message,
                delivered_at=now,
                from_timer=from_timer,
            )
        else:
            result = empty_result(
                self.config,
                now=now,
                error=message,
                sources=(url or self.config.feed_url,),
                from_timer=from_timer,
            )

        if self._db is not None:
            record_run_failure(
                self._db,
                instance_id=self.config.instance_id,
                at=now,
                error=message,
                stale_delivered=result.stale,
            )
        logger.warning(
            "{}: run failed ({}), delivering {}",
            self.config.instance_id,
            message,
            "stale result" if result.stale else "empty result",
        )
        return result

    async def _emit(self, result: PipelineResult) -> None:
        if self._bus is None:
            return
        await self._bus.publish(
            Event(
                type="warnings.result",
                data={"instance_id": self.config.instance_id, **result_to_dict(result)},
            )
        )

"""
Rendering Engine Pool

Owns a bounded set of long-lived rendering engine instances and hands them
out one job at a time. Callers only ever hold an EngineLease; the engine
objects themselves never leave the pool.

Instance lifecycle:

    STARTING -> IDLE -> ACQUIRED -> IDLE         normal loop
    ACQUIRED -> RENDERING -> ACQUIRED            one render at a time
    RENDERING -> CRASHED                         discarded, replaced lazily
    IDLE -> CLOSING -> TERMINATED                idle eviction or shutdown

Usage:
    pool = RenderEnginePool(WeasyPrintEngine, max_size=2)
    pool.start()
    with pool.lease() as lease:
        pdf_bytes = pool.render(lease, html, options)
    pool.shutdown()
"""

import atexit
import itertools
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from documents.services.config import PipelineConfig, get_pipeline_config
from documents.services.exceptions import (
    EngineBusy,
    PoolExhausted,
    PoolShutDown,
    RenderCrash,
    RenderTimeout,
)
from .dto import RenderOptions
from .interfaces import IRenderEngine


logger = logging.getLogger(__name__)


class EngineState(str, Enum):
    STARTING = 'starting'
    IDLE = 'idle'
    ACQUIRED = 'acquired'
    RENDERING = 'rendering'
    CRASHED = 'crashed'
    CLOSING = 'closing'
    TERMINATED = 'terminated'


@dataclass(frozen=True)
class EngineLease:
    """Handle for one acquisition; stale after release."""

    slot_id: int
    token: int


class _Slot:
    __slots__ = ('slot_id', 'engine', 'state', 'token', 'idle_since', 'renders')

    def __init__(self, slot_id: int, engine: IRenderEngine):
        self.slot_id = slot_id
        self.engine = engine
        self.state = EngineState.STARTING
        self.token = None
        self.idle_since = None
        self.renders = 0


class RenderEnginePool:
    """
    Bounded pool of rendering engine instances.

    All slot state is guarded by one Condition. Engine start, render and
    close run outside the lock so a slow engine never blocks other callers
    from acquiring or releasing.

    Args:
        engine_factory: Callable returning a new, not yet started IRenderEngine
        max_size: Hard ceiling on live instances (starting ones included)
        min_size: Warm instances kept through idle eviction
        idle_timeout: Seconds an instance may stay idle before eviction
        acquire_timeout: Default seconds ``acquire`` waits for capacity
        render_timeout: Wall-clock budget for a single render
        startup_timeout: Seconds an engine may take to become ready
        crash_alert_threshold: Consecutive crashes after which RenderCrash
            is flagged ``support_required``
        reap_interval: Seconds between idle-eviction sweeps of the reaper
            thread (defaults to a quarter of ``idle_timeout``)
        clock: Monotonic clock used for idle bookkeeping
    """

    def __init__(
        self,
        engine_factory: Callable[[], IRenderEngine],
        *,
        max_size: int = 2,
        min_size: int = 0,
        idle_timeout: float = 300.0,
        acquire_timeout: float = 10.0,
        render_timeout: float = 30.0,
        startup_timeout: float = 30.0,
        crash_alert_threshold: int = 3,
        reap_interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        if not 0 <= min_size <= max_size:
            raise ValueError("min_size must be between 0 and max_size")

        self.engine_factory = engine_factory
        self.max_size = max_size
        self.min_size = min_size
        self.idle_timeout = idle_timeout
        self.acquire_timeout = acquire_timeout
        self.render_timeout = render_timeout
        self.startup_timeout = startup_timeout
        self.crash_alert_threshold = crash_alert_threshold
        self.reap_interval = reap_interval or max(idle_timeout / 4, 1.0)
        self._clock = clock

        self._cond = threading.Condition()
        self._slots: dict[int, _Slot] = {}
        self._ids = itertools.count(1)
        self._tokens = itertools.count(1)
        self._closed = False
        self._consecutive_crashes = 0
        self._totals = {
            'started': 0,
            'renders': 0,
            'crashes': 0,
            'timeouts': 0,
            'evicted': 0,
            'exhausted': 0,
        }

        self._stop = threading.Event()
        self._reaper = None

    @classmethod
    def from_config(
        cls,
        engine_factory: Callable[[], IRenderEngine],
        config: Optional[PipelineConfig] = None,
        **kwargs
    ) -> 'RenderEnginePool':
        """Build a pool with limits from the pipeline configuration."""
        config = config or get_pipeline_config()
        return cls(
            engine_factory,
            max_size=config.pool_max_size,
            min_size=config.pool_min_size,
            idle_timeout=config.pool_idle_timeout,
            acquire_timeout=config.pool_acquire_timeout,
            render_timeout=config.pool_render_timeout,
            startup_timeout=config.pool_startup_timeout,
            crash_alert_threshold=config.pool_crash_alert_threshold,
            **kwargs
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Start the idle reaper thread and warm up ``min_size`` instances.

        A warm-up failure is logged, not raised; the missing instance is
        started on a later acquire instead.
        """
        if self._reaper is None:
            self._reaper = threading.Thread(
                target=self._reap_loop,
                name='render-pool-reaper',
                daemon=True,
            )
            self._reaper.start()

        for _ in range(self.min_size):
            slot = self._reserve_slot()
            if slot is None:
                break
            try:
                self._start_engine(slot)
            except RenderCrash as e:
                logger.warning(f"Warm-up of rendering engine {slot.slot_id} failed: {e}")
                break
            with self._cond:
                self._mark_idle(slot)
                self._cond.notify_all()

        logger.info(f"Rendering engine pool started (min={self.min_size}, max={self.max_size})")

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Stop accepting acquisitions, wait for in-flight renders, close everything.

        Args:
            timeout: Seconds to wait for acquired instances to be released
                (defaults to the render timeout). Instances still busy after
                that are terminated anyway.
        """
        timeout = self.render_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout

        with self._cond:
            self._closed = True
            self._stop.set()
            self._cond.notify_all()

            while self._busy_count():
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning(
                        f"Shutting down with {self._busy_count()} engine(s) still busy"
                    )
                    break
                self._cond.wait(remaining)

            doomed = list(self._slots.values())
            for slot in doomed:
                slot.state = EngineState.CLOSING
            self._slots.clear()

        for slot in doomed:
            self._close_engine(slot)

        reaper, self._reaper = self._reaper, None
        if reaper is not None and reaper is not threading.current_thread():
            reaper.join(timeout=1.0)
        logger.info("Rendering engine pool shut down")

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Acquire / render / release
    # ------------------------------------------------------------------

    def acquire(self, timeout: Optional[float] = None) -> EngineLease:
        """
        Acquire an engine instance.

        Blocks until an idle instance exists, a new one may be started
        without exceeding ``max_size``, or the timeout elapses.

        Args:
            timeout: Seconds to wait (defaults to ``acquire_timeout``)

        Returns:
            EngineLease to pass to render() and release()

        Raises:
            PoolExhausted: If no capacity became available in time
            PoolShutDown: If the pool is shutting down or closed
            RenderCrash: If a replacement engine failed to start
        """
        timeout = self.acquire_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout
        dead = []

        try:
            with self._cond:
                while True:
                    if self._closed:
                        raise PoolShutDown("Rendering engine pool is shut down")

                    slot = self._pop_idle(dead)
                    if slot is not None:
                        return self._hand_out(slot)

                    if len(self._slots) < self.max_size:
                        slot = self._new_slot()
                        break

                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        self._totals['exhausted'] += 1
                        logger.warning(f"Rendering engine pool exhausted after {timeout}s")
                        raise PoolExhausted(
                            f"No rendering engine available within {timeout}s",
                            retry_after=max(1.0, self.render_timeout / 2),
                        )
                    self._cond.wait(remaining)
        finally:
            for stale in dead:
                self._close_engine(stale)

        self._start_engine(slot)
        with self._cond:
            if self._closed:
                self._slots.pop(slot.slot_id, None)
                doomed = slot
            else:
                return self._hand_out(slot)
        self._close_engine(doomed)
        raise PoolShutDown("Rendering engine pool is shut down")

    def render(self, lease: EngineLease, markup: str, options: RenderOptions) -> bytes:
        """
        Render resolved markup on the leased instance.

        An instance serves one render at a time: while a render is in
        flight the slot is RENDERING and a second render on the same lease
        is rejected. On timeout or crash the instance is discarded; the
        failure is raised to this caller and a replacement is started on a
        later acquire.

        Raises:
            RenderTimeout: If the render exceeded ``render_timeout``
            RenderCrash: If the engine terminated or failed
            EngineBusy: If the lease is already rendering
            ValueError: If the lease is not currently active
        """
        with self._cond:
            slot = self._slots.get(lease.slot_id)
            if slot is None or slot.token != lease.token:
                raise ValueError(f"Engine lease {lease} is not active")
            if slot.state == EngineState.RENDERING:
                raise EngineBusy(f"Engine lease {lease} is already rendering")
            if slot.state != EngineState.ACQUIRED:
                raise ValueError(f"Engine lease {lease} is not active")
            slot.state = EngineState.RENDERING
            engine = slot.engine

        try:
            content = engine.render(markup, options, self.render_timeout)
        except RenderTimeout:
            with self._cond:
                self._totals['timeouts'] += 1
            self._discard(slot, 'render timeout')
            raise
        except RenderCrash as e:
            crashes = self._record_crash()
            self._discard(slot, 'engine crash')
            raise RenderCrash(
                e.message,
                support_required=crashes >= self.crash_alert_threshold,
            ) from e
        except Exception as e:
            logger.error(f"Unexpected engine failure on slot {slot.slot_id}: {e}", exc_info=True)
            crashes = self._record_crash()
            self._discard(slot, 'unexpected engine failure')
            raise RenderCrash(
                f"Rendering engine failed: {e}",
                support_required=crashes >= self.crash_alert_threshold,
            ) from e
        except BaseException:
            # Interrupted mid-render; the engine state is unknown
            self._discard(slot, 'interrupted render')
            raise

        doomed = None
        with self._cond:
            slot.renders += 1
            self._totals['renders'] += 1
            self._consecutive_crashes = 0
            if slot.token == lease.token:
                slot.state = EngineState.ACQUIRED
            else:
                # Released while rendering; hand the instance back now
                doomed = self._settle(slot)
            self._cond.notify_all()

        if doomed is not None:
            self._close_engine(doomed)
        return content

    def release(self, lease: EngineLease) -> None:
        """
        Return a leased instance to the pool. Safe to call more than once.

        Releasing a lease that is still rendering detaches it; the instance
        goes back to the pool when that render finishes.
        """
        doomed = None
        with self._cond:
            slot = self._slots.get(lease.slot_id)
            if slot is None or slot.token != lease.token:
                return
            if slot.state == EngineState.RENDERING:
                slot.token = None
                return
            if slot.state != EngineState.ACQUIRED:
                return
            slot.token = None
            doomed = self._settle(slot)
            self._cond.notify_all()

        if doomed is not None:
            self._close_engine(doomed)

    @contextmanager
    def lease(self, timeout: Optional[float] = None):
        """Scoped acquisition; the instance is released on every exit path."""
        lease = self.acquire(timeout)
        try:
            yield lease
        finally:
            self.release(lease)

    def state_of(self, lease: EngineLease) -> EngineState:
        """Current state of the instance behind a lease (TERMINATED once removed)."""
        with self._cond:
            slot = self._slots.get(lease.slot_id)
            return slot.state if slot is not None else EngineState.TERMINATED

    # ------------------------------------------------------------------
    # Idle eviction
    # ------------------------------------------------------------------

    def evict_idle(self) -> int:
        """
        Close instances idle longer than ``idle_timeout``, down to ``min_size``.

        Returns:
            Number of instances evicted
        """
        now = self._clock()
        with self._cond:
            expired = sorted(
                (
                    slot for slot in self._slots.values()
                    if slot.state == EngineState.IDLE
                    and now - slot.idle_since >= self.idle_timeout
                ),
                key=lambda slot: slot.idle_since,
            )
            evictable = max(len(self._slots) - self.min_size, 0)
            doomed = expired[:evictable]
            for slot in doomed:
                slot.state = EngineState.CLOSING
                self._slots.pop(slot.slot_id)
            self._totals['evicted'] += len(doomed)

        for slot in doomed:
            logger.info(f"Evicting rendering engine {slot.slot_id} after {self.idle_timeout}s idle")
            self._close_engine(slot)
        return len(doomed)

    def _reap_loop(self) -> None:
        while not self._stop.wait(self.reap_interval):
            try:
                self.evict_idle()
            except Exception as e:
                logger.error(f"Idle eviction failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> dict:
        with self._cond:
            states = [slot.state for slot in self._slots.values()]
            return {
                'size': len(states),
                'idle': states.count(EngineState.IDLE),
                'acquired': states.count(EngineState.ACQUIRED),
                'rendering': states.count(EngineState.RENDERING),
                'starting': states.count(EngineState.STARTING),
                'max_size': self.max_size,
                'min_size': self.min_size,
                'consecutive_crashes': self._consecutive_crashes,
                'closed': self._closed,
                **{f'total_{key}': value for key, value in self._totals.items()},
            }

    # ------------------------------------------------------------------
    # Internals (callers of the underscore helpers hold self._cond
    # unless noted otherwise)
    # ------------------------------------------------------------------

    def _new_slot(self) -> _Slot:
        slot = _Slot(next(self._ids), self.engine_factory())
        self._slots[slot.slot_id] = slot
        return slot

    def _reserve_slot(self) -> Optional[_Slot]:
        # Not under the lock
        with self._cond:
            if self._closed or len(self._slots) >= self.max_size:
                return None
            return self._new_slot()

    def _start_engine(self, slot: _Slot) -> None:
        # Not under the lock
        try:
            slot.engine.start(self.startup_timeout)
        except Exception as e:
            with self._cond:
                slot.state = EngineState.CRASHED
                self._slots.pop(slot.slot_id, None)
                self._cond.notify_all()
            crashes = self._record_crash()
            self._close_engine(slot)
            logger.error(f"Rendering engine {slot.slot_id} failed to start: {e}")
            if isinstance(e, RenderCrash):
                e.support_required = crashes >= self.crash_alert_threshold
                raise
            raise RenderCrash(
                f"Rendering engine failed to start: {e}",
                support_required=crashes >= self.crash_alert_threshold,
            ) from e

        with self._cond:
            self._totals['started'] += 1
        logger.info(f"Started rendering engine {slot.slot_id}")

    def _pop_idle(self, dead: list) -> Optional[_Slot]:
        idle = [slot for slot in self._slots.values() if slot.state == EngineState.IDLE]
        # Most recently used first, so surplus instances age out
        idle.sort(key=lambda slot: slot.idle_since, reverse=True)
        for slot in idle:
            if slot.engine.is_alive():
                return slot
            logger.warning(f"Rendering engine {slot.slot_id} died while idle")
            slot.state = EngineState.CRASHED
            self._slots.pop(slot.slot_id)
            dead.append(slot)
        return None

    def _hand_out(self, slot: _Slot) -> EngineLease:
        slot.state = EngineState.ACQUIRED
        slot.token = next(self._tokens)
        slot.idle_since = None
        return EngineLease(slot_id=slot.slot_id, token=slot.token)

    def _mark_idle(self, slot: _Slot) -> None:
        slot.state = EngineState.IDLE
        slot.idle_since = self._clock()

    def _settle(self, slot: _Slot) -> Optional[_Slot]:
        """Put a released slot back to IDLE, or return it for closing."""
        if self._closed or not slot.engine.is_alive():
            slot.state = EngineState.CLOSING if self._closed else EngineState.CRASHED
            self._slots.pop(slot.slot_id, None)
            return slot
        self._mark_idle(slot)
        return None

    def _busy_count(self) -> int:
        return sum(
            1 for slot in self._slots.values()
            if slot.state in (EngineState.ACQUIRED, EngineState.RENDERING, EngineState.STARTING)
        )

    def _record_crash(self) -> int:
        # Not under the lock
        with self._cond:
            self._consecutive_crashes += 1
            self._totals['crashes'] += 1
            return self._consecutive_crashes

    def _discard(self, slot: _Slot, reason: str) -> None:
        # Not under the lock
        with self._cond:
            slot.state = EngineState.CRASHED
            slot.token = None
            self._slots.pop(slot.slot_id, None)
            self._cond.notify_all()
        logger.warning(f"Discarding rendering engine {slot.slot_id}: {reason}")
        self._close_engine(slot)

    def _close_engine(self, slot: _Slot) -> None:
        # Not under the lock
        slot.state = EngineState.CLOSING
        try:
            slot.engine.close()
        except Exception as e:
            logger.error(f"Failed to close rendering engine {slot.slot_id}: {e}", exc_info=True)
        slot.state = EngineState.TERMINATED


_pool = None
_pool_lock = threading.Lock()


def get_engine_pool() -> RenderEnginePool:
    """
    Process-wide pool of WeasyPrint engines, created and warmed on first use.

    The pool is shut down when the interpreter exits.
    """
    global _pool
    with _pool_lock:
        if _pool is None or _pool.closed:
            from .engine import WeasyPrintEngine

            _pool = RenderEnginePool.from_config(WeasyPrintEngine)
            _pool.start()
            atexit.register(_pool.shutdown, 5.0)
        return _pool


def close_engine_pool() -> None:
    """Shut down the process-wide pool, if one was created."""
    global _pool
    with _pool_lock:
        pool, _pool = _pool, None
    if pool is not None:
        pool.shutdown()

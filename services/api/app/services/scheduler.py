from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from packages.shared.clock import utcnow
from packages.shared.schemas.order_status import PROGRESSION, OrderStatusV1
from services.api.app.errors import SchedulerBusyError
from services.api.app.models.scheduler import SchedulerStatusOut
from services.api.app.services.notifications import NotificationDispatcher
from services.api.app.services.order_status import advance_order_status
from services.api.app.services.store import Store

logger = logging.getLogger(__name__)

DEFAULT_DWELL_MINUTES = (30, 60, 120, 60)
DEFAULT_INTERVAL_MINUTES = 30.0


@dataclass(frozen=True, slots=True)
class ProgressionRule:
    current: OrderStatusV1
    next: OrderStatusV1
    dwell: timedelta


def build_rules(dwell_minutes: tuple[float, ...] | list[float] = DEFAULT_DWELL_MINUTES) -> list[ProgressionRule]:
    if len(dwell_minutes) != len(PROGRESSION) - 1:
        raise ValueError(f"Expected {len(PROGRESSION) - 1} dwell times, got {len(dwell_minutes)}")
    return [
        ProgressionRule(current=current, next=nxt, dwell=timedelta(minutes=float(minutes)))
        for current, nxt, minutes in zip(PROGRESSION, PROGRESSION[1:], dwell_minutes)
    ]


def rules_from_env() -> list[ProgressionRule]:
    raw = os.getenv("BOUQUET_STATUS_DWELL_MINUTES", "").strip()
    if not raw:
        return build_rules()
    return build_rules([float(p) for p in raw.split(",")])


def interval_from_env() -> timedelta:
    minutes = float(os.getenv("BOUQUET_SCHEDULER_INTERVAL_MINUTES", str(DEFAULT_INTERVAL_MINUTES)))
    return timedelta(minutes=minutes)


class StatusScheduler:
    """Moves orders one step along the fulfillment state machine once they have dwelt
    long enough in their current status.

    Owns one daemon thread. A tick runs immediately on `start()` and then every
    `interval`. Ticks never overlap: a tick that finds another in progress is skipped.
    """

    def __init__(
        self,
        store: Store,
        dispatcher: NotificationDispatcher | None = None,
        *,
        rules: list[ProgressionRule] | None = None,
        interval: timedelta = timedelta(minutes=DEFAULT_INTERVAL_MINUTES),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.rules = rules if rules is not None else build_rules()
        self.interval = interval
        self._clock = clock

        self._lock = threading.Lock()
        self._in_progress = False
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

        self.last_run: datetime | None = None
        self.last_result: str | None = None
        self.next_run: datetime | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            logger.info("[SCHEDULER] Background scheduler is already running")
            return

        logger.info("[SCHEDULER] Starting order status progression every %s", self.interval)
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="status-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            logger.info("[SCHEDULER] Background scheduler stopped")
        self.next_run = None

    def trigger(self) -> int:
        logger.info("[SCHEDULER] Manual trigger for order status progression")
        advanced = self.tick()
        if advanced is None:
            raise SchedulerBusyError()
        return advanced

    def status(self) -> SchedulerStatusOut:
        return SchedulerStatusOut(
            running=self.running,
            in_progress=self._in_progress,
            interval_minutes=self.interval.total_seconds() / 60,
            last_run=self.last_run.isoformat() if self.last_run else None,
            next_run=self.next_run.isoformat() if self.next_run and self.running else None,
            last_result=self.last_result,
        )

    def tick(self) -> int | None:
        """Run one progression pass. Returns the number of orders advanced, or None when
        another pass is already in progress."""

        with self._lock:
            if self._in_progress:
                logger.info("[SCHEDULER] Skipping run - already in progress")
                return None
            self._in_progress = True

        try:
            now = self._clock()
            self.last_run = now
            advanced = self._advance_all(now)
            self.last_result = f"Successfully advanced {advanced} orders"
            logger.info("[SCHEDULER] Progression completed. Advanced %s orders total.", advanced)
            return advanced
        except Exception as e:
            self.last_result = f"Error: {e}"
            logger.error("[SCHEDULER] Error during order status progression: %s", e)
            return 0
        finally:
            with self._lock:
                self._in_progress = False

    def _advance_all(self, now: datetime) -> int:
        advanced = 0
        for rule in self.rules:
            cutoff = now - rule.dwell
            orders = self.store.list_advanceable_orders(cutoff, rule.current)
            if orders:
                logger.info(
                    "[SCHEDULER] Found %s orders to advance from %s to %s",
                    len(orders),
                    rule.current.value,
                    rule.next.value,
                )

            for order in orders:
                try:
                    updated = advance_order_status(
                        self.store,
                        order.id,
                        rule.current,
                        rule.next,
                        note="Advanced automatically",
                        now=now,
                    )
                except Exception as e:
                    logger.error("[SCHEDULER] Failed to advance order %s: %s", order.order_number, e)
                    continue

                advanced += 1
                if self.dispatcher is None:
                    continue
                try:
                    self.dispatcher.send_status_update(updated, rule.next)
                except Exception as e:
                    logger.error(
                        "[SCHEDULER] Failed to notify for order %s: %s", order.order_number, e
                    )
        return advanced

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.tick()
            self.next_run = self._clock() + self.interval
            if self._stop.wait(self.interval.total_seconds()):
                break

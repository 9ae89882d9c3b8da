"""
Geofence evaluation scheduler for CrowdSafe.

This module owns the periodic task that drives rule evaluation. The task
is started and stopped explicitly by the process lifecycle; tests drive
single cycles through ``run_once``.
"""

import asyncio
import time
from typing import List, Optional
from crowdsafe.core.models import AlertEvent
from crowdsafe.features.geofence import GeofenceEngine
from crowdsafe.observability import metrics
from crowdsafe.observability.logging_setup import get_logger

log = get_logger("crowdsafe.scheduler")

class EvaluationScheduler:
    """지오펜스 주기 평가 스케줄러"""

    def __init__(self,
                 engine: GeofenceEngine,
                 *,
                 interval_sec: float = 120,
                 cycle_timeout_sec: Optional[float] = None):
        """
        초기화합니다.

        Args:
            engine: 지오펜스 엔진
            interval_sec: 평가 주기 (초)
            cycle_timeout_sec: 한 주기의 최대 소요 시간 (기본: 주기와 동일)
        """
        self.engine = engine
        self.interval_sec = interval_sec
        self.cycle_timeout_sec = cycle_timeout_sec or interval_sec
        self.cycles = 0
        self.start_time = time.time()
        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None

        log.info(f"스케줄러 초기화됨 interval:{interval_sec}s")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> List[AlertEvent]:
        """한 주기를 실행합니다. 타임아웃을 넘기면 예외를 전파합니다."""
        events = await asyncio.wait_for(self.engine.run_cycle(), self.cycle_timeout_sec)
        self.cycles += 1
        metrics.uptime_seconds.set(time.time() - self.start_time)
        return events

    def start(self) -> asyncio.Task:
        """백그라운드 평가 태스크를 시작합니다. 이미 실행 중이면 기존 태스크를 반환합니다."""
        if self.running:
            return self._task
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        log.info("스케줄러 시작됨")
        return self._task

    async def stop(self) -> None:
        """평가 태스크를 멈추고 종료를 기다립니다."""
        if self._task is None:
            return
        self._stopping.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        log.info(f"스케줄러 중지됨 cycles:{self.cycles}")

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except asyncio.TimeoutError:
                log.error(f"평가 주기 타임아웃 timeout:{self.cycle_timeout_sec}s")
            except Exception as e:
                log.error(f"평가 주기 오류 error:{e!r}")

            try:
                await asyncio.wait_for(self._stopping.wait(), self.interval_sec)
            except asyncio.TimeoutError:
                pass

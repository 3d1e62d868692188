import asyncio
import traceback
from pathlib import Path
from typing import List, Optional

import psutil

from .event_manager import EventManager
from ..models.config import SystemMonitorConfig
from ..models.events import CpuUsageChanged, MemoryUsageChanged, TemperatureChanged
from ..utils.logging import get_logger

logger = get_logger(__name__)


def read_thermal_zone(paths: List[str]) -> Optional[int]:
    """First readable sysfs temperature in whole degrees Celsius"""
    for path in paths:
        try:
            millidegrees = int(Path(path).read_text().strip())
        except (OSError, ValueError):
            continue
        return millidegrees // 1000
    return None


def read_psutil_temperature() -> Optional[int]:
    sensors = getattr(psutil, "sensors_temperatures", None)
    if sensors is None:
        return None
    try:
        readings = sensors()
    except (OSError, RuntimeError):
        return None
    for entries in readings.values():
        for entry in entries:
            if entry.current is not None:
                return int(entry.current)
    return None


class SystemMonitor:
    """Periodic CPU, memory and temperature sampling published on the event bus"""

    def __init__(self, config: SystemMonitorConfig, event_manager: EventManager):
        self.config = config
        self.event_manager = event_manager
        self.is_running = False
        self._tasks: List[asyncio.Task] = []

    def sample_usage(self) -> None:
        # Non-blocking: percentage since the previous call
        cpu_usage = psutil.cpu_percent(interval=None)
        self.event_manager.publish(CpuUsageChanged(usage=float(cpu_usage)))

        memory = psutil.virtual_memory()
        used = memory.total - memory.available
        percent = (used / memory.total) * 100.0 if memory.total else 0.0
        self.event_manager.publish(MemoryUsageChanged(used=used, total=memory.total, percent=percent))

    def sample_temperature(self) -> Optional[int]:
        celsius = read_thermal_zone(self.config.thermal_paths)
        if celsius is None:
            celsius = read_psutil_temperature()
        if celsius is None:
            logger.debug("Temperature read failed: no thermal zone found")
            return None
        self.event_manager.publish(TemperatureChanged(celsius=celsius))
        return celsius

    async def _usage_loop(self) -> None:
        while self.is_running:
            try:
                self.sample_usage()
            except Exception:
                logger.debug(f"System monitoring error: {traceback.format_exc()}")
            await asyncio.sleep(self.config.cpu_interval)

    async def _temperature_loop(self) -> None:
        while self.is_running:
            try:
                await asyncio.to_thread(self.sample_temperature)
            except Exception as e:
                logger.debug(f"Temperature monitoring error: {e}")
            await asyncio.sleep(self.config.temperature_interval)

    async def start_monitoring(self) -> None:
        logger.info("Starting system monitoring")
        self.is_running = True
        # Prime the CPU counter so the first sample is meaningful
        psutil.cpu_percent(interval=None)
        self._tasks = [
            asyncio.create_task(self._usage_loop()),
            asyncio.create_task(self._temperature_loop()),
        ]
        await asyncio.gather(*self._tasks, return_exceptions=True)

    async def stop(self) -> None:
        self.is_running = False
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        logger.info("System monitoring stopped")

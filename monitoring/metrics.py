"""
In-process metrics for the ingestion and ask pipelines.

Counters (runs per stage, embedded texts, provider errors) and timing
histograms, keyed by metric name plus labels. Exported as JSON at /metrics.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

LabelSet = Tuple[Tuple[str, str], ...]
SeriesKey = Tuple[str, LabelSet]


def series_key(name: str, labels: Optional[Dict[str, Any]] = None) -> SeriesKey:
    """Label values are stringified so True and "True" name the same series"""
    return name, tuple(sorted((str(k), str(v)) for k, v in (labels or {}).items()))


@dataclass
class Histogram:
    count: int = 0
    total: float = 0.0
    minimum: float = float("inf")
    maximum: float = float("-inf")

    def record(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.minimum = min(self.minimum, value)
        self.maximum = max(self.maximum, value)

    def snapshot(self) -> Dict[str, float]:
        if not self.count:
            return {"count": 0, "sum": 0.0, "min": 0.0, "max": 0.0, "avg": 0.0}
        return {
            "count": self.count,
            "sum": self.total,
            "min": self.minimum,
            "max": self.maximum,
            "avg": self.total / self.count,
        }


class MetricsRegistry:
    _instance = None

    def __init__(self):
        self._counters: Dict[SeriesKey, float] = {}
        self._histograms: Dict[SeriesKey, Histogram] = {}
        self._lock = asyncio.Lock()
        self._started = time.time()

    @classmethod
    def instance(cls) -> "MetricsRegistry":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    async def inc(self, name: str, value: float = 1.0, labels: Optional[Dict[str, Any]] = None) -> None:
        key = series_key(name, labels)
        async with self._lock:
            self._counters[key] = self._counters.get(key, 0.0) + value

    async def observe(self, name: str, observation: float, labels: Optional[Dict[str, Any]] = None) -> None:
        key = series_key(name, labels)
        async with self._lock:
            self._histograms.setdefault(key, Histogram()).record(observation)

    def counter_value(self, name: str, labels: Optional[Dict[str, Any]] = None) -> float:
        return self._counters.get(series_key(name, labels), 0.0)

    def histogram(self, name: str, labels: Optional[Dict[str, Any]] = None) -> Dict[str, float]:
        return self._histograms.get(series_key(name, labels), Histogram()).snapshot()

    async def export(self) -> Dict[str, Any]:
        async with self._lock:
            return {
                "uptime_seconds": round(time.time() - self._started, 3),
                "counters": [
                    {"name": name, "labels": dict(labels), "value": value}
                    for (name, labels), value in sorted(self._counters.items())
                ],
                "histograms": [
                    {"name": name, "labels": dict(labels), **hist.snapshot()}
                    for (name, labels), hist in sorted(self._histograms.items(), key=lambda item: item[0])
                ],
            }

    def reset(self) -> None:
        self._counters.clear()
        self._histograms.clear()
        self._started = time.time()


async def inc(name: str, value: float = 1.0, labels: Optional[Dict[str, Any]] = None) -> None:
    await MetricsRegistry.instance().inc(name, value, labels)


async def observe(name: str, observation: float, labels: Optional[Dict[str, Any]] = None) -> None:
    await MetricsRegistry.instance().observe(name, observation, labels)


async def get_metrics() -> Dict[str, Any]:
    return await MetricsRegistry.instance().export()

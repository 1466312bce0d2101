from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from xmlaggregator.cache.durable import DurableTier
from xmlaggregator.cache.memory import MemoryTier
from xmlaggregator.cache.tiered import TieredCache
from xmlaggregator.config import Settings
from xmlaggregator.lib.clock import ManualClock
from xmlaggregator.lib.stats import PipelineStatistics

from tests.helpers import SleepRecorder


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start_ms=1_700_000_000_000)


@pytest.fixture
def statistics() -> PipelineStatistics:
    return PipelineStatistics()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(cache_dir=tmp_path / "cache")


@pytest.fixture
def cache(tmp_path: Path, clock: ManualClock, statistics: PipelineStatistics) -> TieredCache:
    return TieredCache(
        MemoryTier(50),
        DurableTier(tmp_path / "cache" / "cache.db"),
        statistics=statistics,
        clock=clock,
    )

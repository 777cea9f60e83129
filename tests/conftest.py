import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from connectors.kv_store import MemoryStore
from connectors.lead_store import MemoryLeadStore
from pipeline.config import Settings
from pipeline.workflow import LeadPipeline, PipelineContext

# 2025-10-09T08:53:20Z
START_TIME = 1760000000.0


class FakeClock:
    """Deterministic clock returning epoch seconds."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(**overrides) -> Settings:
    settings = Settings()
    settings.redis_url = None
    settings.supabase_url = ""
    settings.supabase_key = None
    settings.attribution_ttl_days = 90
    settings.submission_cooldown_seconds = 300
    settings.notify_webhook_secret = ""
    for name, value in overrides.items():
        setattr(settings, name, value)
    return settings


def make_pipeline(clock=None, sink=None, settings=None) -> LeadPipeline:
    clock = clock or FakeClock()
    ctx = PipelineContext(
        store=MemoryStore(clock=clock),
        sink=sink or MemoryLeadStore(),
        settings=settings or make_settings(),
        clock=clock,
    )
    return LeadPipeline(ctx)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryStore(clock=clock)

"""Shared fixtures: in-memory database, fake Garmin client, fixed clock."""

import tempfile
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.src.config import ConfigManager
from backend.src.garmin_client import FetchResult
from backend.src.models import Base

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)

HRV_PAYLOAD = {"wellnessData": [{"lastNightAvg": 45, "sevenDayAvg": 48, "status": "BALANCED"}]}
SLEEP_PAYLOAD = {"dailySleepDTO": {"sleepTimeSeconds": 27000, "sleepScore": 82}}
STEPS_PAYLOAD = {"totalSteps": 8500, "totalKilocalories": 2200}


def make_session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def make_config(**overrides):
    config = ConfigManager(data_dir=tempfile.mkdtemp(prefix="gaf-config-"))
    config.update_config(request_delay_seconds=0, **overrides)
    return config


def data(payload):
    return FetchResult(success=True, data=payload)


EMPTY = FetchResult(success=True, is_empty=True)


class FakeGarminClient:
    """
    Stand-in for GarminConnectClient. Responses are looked up by
    (date, metric_type), then by metric_type, falling back to an empty result.
    Exceptions in the table are raised.
    """
    def __init__(self, responses=None, authenticate_ok=True, account_id=None):
        self.responses = responses or {}
        self.authenticate_ok = authenticate_ok
        self.account_id = account_id
        self.auth_calls = []
        self.fetch_calls = []
        self.closed = False

    async def authenticate(self, email, password):
        self.auth_calls.append((email, password))
        return self.authenticate_ok

    async def fetch_data(self, day, metric_type):
        self.fetch_calls.append((day, metric_type))
        result = self.responses.get((day, metric_type), self.responses.get(metric_type, EMPTY))
        if isinstance(result, Exception):
            raise result
        return result

    def close(self):
        self.closed = True

"""Shared fixtures for tracker tests"""

from datetime import datetime
from typing import Optional

import pytest

from timetracker.config import Config
from timetracker.database import Database
from timetracker.environment import HostContext
from timetracker.models import MS_PER_MINUTE, TimeEntry
from timetracker.session import TrackerEngine

CONFIG_VARIABLES = [
    'TIMETRACKER_DATA_DIR',
    'IDLE_THRESHOLD_SECONDS',
    'IDLE_CHECK_INTERVAL_SECONDS',
    'AUTO_SAVE_INTERVAL_SECONDS',
    'AUTO_START',
    'AUTO_STOP',
    'FILE_ACTIVITY_POLL_SECONDS',
    'LOG_LEVEL',
]


def local_ms(value: str) -> int:
    """Epoch milliseconds for a local 'YYYY-MM-DD HH:MM' string"""
    return int(datetime.strptime(value, '%Y-%m-%d %H:%M').timestamp() * 1000)


# 2025-04-10 09:00 local time
T0 = local_ms('2025-04-10 09:00')


class FakeClock:
    """Controllable millisecond clock"""

    def __init__(self, start: int):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, minutes: float = 0, seconds: float = 0, ms: int = 0):
        self.now += int(minutes * MS_PER_MINUTE + seconds * 1000 + ms)


def make_entry(
    project: str,
    start: str,
    minutes: Optional[float],
    comment: Optional[str] = None,
    entry_id: Optional[str] = None
) -> TimeEntry:
    """Build a logged entry starting at a local 'YYYY-MM-DD HH:MM'"""
    start_ms = local_ms(start)
    entry = TimeEntry(
        id=entry_id or f"{start_ms}-{project}",
        environment_id='env-test',
        date=start[:10],
        start_time=start_ms,
        project=project,
        workspace=f"/work/{project}",
        comment=comment
    )
    if minutes is None:
        return entry
    return entry.finalize(start_ms + int(minutes * MS_PER_MINUTE))


@pytest.fixture
def clock():
    return FakeClock(T0)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove tracker settings from the environment"""
    for name in CONFIG_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def config(tmp_path, clean_env):
    clean_env.setenv('TIMETRACKER_DATA_DIR', str(tmp_path / 'data'))
    clean_env.setenv('IDLE_THRESHOLD_SECONDS', '600')
    clean_env.setenv('AUTO_SAVE_INTERVAL_SECONDS', '300')
    clean_env.setenv('AUTO_START', 'false')
    clean_env.setenv('AUTO_STOP', 'false')
    return Config(env_path=tmp_path / 'missing.env')


@pytest.fixture
def db(config):
    return Database(config.db_path)


@pytest.fixture
def context(tmp_path):
    workspace = tmp_path / 'alpha'
    workspace.mkdir()
    return HostContext(workspace=str(workspace))


@pytest.fixture
def notices():
    return []


@pytest.fixture
def make_engine(config, db, context, clock, notices):
    """Factory for engines driven by hand (no background threads)"""

    def factory(**overrides) -> TrackerEngine:
        params = dict(
            config=config,
            db=db,
            context=context,
            clock=clock,
            notify=notices.append,
            background_timers=False
        )
        params.update(overrides)
        return TrackerEngine(**params)

    return factory


@pytest.fixture
def engine(make_engine):
    return make_engine()

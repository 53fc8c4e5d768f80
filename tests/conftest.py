#!/usr/bin/env python3
"""
Pytest configuration and fixtures
"""

import pytest
import tempfile
import shutil
from datetime import datetime, timezone
from pathlib import Path
from zoneinfo import ZoneInfo
import sys

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from warstats.config import load_config
from warstats.merge.war_log_merger import WarLogMerger
from warstats.models import RawWarRecord
from warstats.normalizers.week_key import WeekKeyResolver
from warstats.providers.provider_base import ClanDataProvider
from warstats.store.history_store import HistoryStore

CHICAGO = ZoneInfo("America/Chicago")


def boundary(year, month, day):
    """Week key (04:30 Central) for a Monday."""
    return datetime(year, month, day, 4, 30, tzinfo=CHICAGO)


class FakeProvider(ClanDataProvider):
    """Scripted provider: returns (or raises) whatever the test sets."""

    def __init__(self, members=None, war_log=None, current_race=None):
        super().__init__({})
        self.members = members or []
        self.war_log = war_log if war_log is not None else []
        self.current_race = current_race if current_race is not None else []
        self.calls = []

    def _answer(self, name, value):
        self.calls.append(name)
        if isinstance(value, Exception):
            raise value
        return value

    def fetch_members(self):
        return self._answer("members", self.members)

    def fetch_war_log(self):
        return self._answer("war_log", self.war_log)

    def fetch_current_race(self):
        return self._answer("current_race", self.current_race)


@pytest.fixture
def temp_data_dir():
    """Temporary directory for test data"""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture
def config(temp_data_dir):
    """Default configuration pointed at the temporary data directory"""
    return load_config(overrides={"DATA_DIR": str(temp_data_dir)}, use_env=False)


@pytest.fixture
def resolver():
    return WeekKeyResolver()


@pytest.fixture
def now():
    """A Wednesday afternoon, well away from any rollover window"""
    return datetime(2026, 1, 14, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(temp_data_dir, resolver):
    return HistoryStore(temp_data_dir, max_weeks=260, resolver=resolver)


@pytest.fixture
def merger(store, resolver):
    return WarLogMerger(store, resolver, max_weeks=260)


@pytest.fixture
def sample_war_log_payload():
    """Two war-log items in the shapes the upstream API returns"""
    return [
        {
            "seasonId": 127,
            "sectionIndex": 1,
            "createdDate": "20260112T094052.000Z",
            "standings": [
                {"rank": 1, "clan": {"tag": "#2CPPJLJ", "participants": [
                    {"tag": "#AAA", "name": "Alice", "fame": 2900, "decksUsed": 16},
                    {"tag": "#BBB", "name": "Bob", "fame": 1500, "decksUsed": 12},
                ]}},
                {"rank": 2, "clan": {"tag": "#OTHER", "participants": [
                    {"tag": "#ZZZ", "name": "Rival", "fame": 9999, "decksUsed": 16},
                ]}},
            ],
        },
        {
            "endDate": "2026-01-05T10:30:00Z",
            "participants": [
                {"tag": "#AAA", "name": "Alice", "warPoints": 2500, "battlesPlayed": 14},
                {"tag": "#BBB", "name": "Bob", "warPoints": None},
            ],
        },
    ]


@pytest.fixture
def sample_raw_records(sample_war_log_payload):
    return [RawWarRecord.from_payload(item, "warlog", "2CPPJLJ") for item in sample_war_log_payload]


@pytest.fixture
def sample_roster():
    return [
        {"tag": "#AAA", "name": "Alice", "role": "elder"},
        {"tag": "#BBB", "name": "Bob", "role": "member"},
        {"tag": "#CCC", "name": "Cara", "role": "coLeader"},
    ]

#!/usr/bin/env python3
"""
Demo Provider

Generated clan data for running without an API key: ten members and ten
weeks of war results ending at the current week boundary. Each week six to
nine members take part, so the leaderboard shows some zero weeks too.
"""

import random
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from warstats.models import RawWarRecord
from warstats.normalizers.week_key import WeekKeyResolver, week_key_to_string
from warstats.providers.provider_base import ClanDataProvider

DEMO_MEMBERS = (
    ("#DEMO001", "GladiatorMax", "leader"),
    ("#DEMO002", "WarriorKing", "coLeader"),
    ("#DEMO003", "BattleMaster", "elder"),
    ("#DEMO004", "ChampionElite", "elder"),
    ("#DEMO005", "SpartanWarrior", "member"),
    ("#DEMO006", "ArenaLegend", "member"),
    ("#DEMO007", "TrophyHunter", "member"),
    ("#DEMO008", "ClashVeteran", "member"),
    ("#DEMO009", "RoyalGuard", "member"),
    ("#DEMO010", "EliteFighter", "member"),
)

DEMO_WEEKS = 10


class DemoProvider(ClanDataProvider):
    """Deterministic (per seed) stand-in for the live API."""

    is_demo = True

    def __init__(self, config: Optional[Dict[str, Any]] = None, seed: Optional[int] = None,
                 now: Optional[datetime] = None):
        """
        Args:
            config: Configuration dictionary (boundary settings are used)
            seed: Random seed; None gives different data on every run
            now: Fixed evaluation instant (defaults to the wall clock)
        """
        super().__init__(config)
        self.rng = random.Random(seed)
        self.resolver = WeekKeyResolver.from_config(self.config or None)
        self._now = now

    def _current_boundary(self) -> datetime:
        return self.resolver.current_week_key(self._now or datetime.now(timezone.utc))

    def fetch_members(self) -> List[Dict[str, Any]]:
        return [{"tag": tag, "name": name, "role": role} for tag, name, role in DEMO_MEMBERS]

    def fetch_war_log(self) -> List[RawWarRecord]:
        boundary = self._current_boundary()
        records = []
        for week in range(DEMO_WEEKS):
            count = self.rng.randint(6, 9)
            chosen = self.rng.sample(DEMO_MEMBERS, count)
            participants = tuple(
                {
                    "tag": tag,
                    "name": name,
                    "warPoints": self.rng.randint(100, 499),
                    "decksUsed": self.rng.randint(1, 16),
                }
                for tag, name, _ in chosen
            )
            end = boundary - timedelta(days=7 * week)
            records.append(RawWarRecord(
                source="demo",
                participants=participants,
                end_date=week_key_to_string(end),
                created_date=week_key_to_string(end),
            ))
        self.logger.info(f"🎭 Generated {len(records)} demo war weeks")
        return records

    def fetch_current_race(self) -> List[RawWarRecord]:
        participants = tuple(
            {"tag": tag, "name": name, "fame": self.rng.randint(0, 3600), "decksUsed": self.rng.randint(0, 16)}
            for tag, name, _ in DEMO_MEMBERS
        )
        return [RawWarRecord(source="demo", participants=participants, state="warDay")]

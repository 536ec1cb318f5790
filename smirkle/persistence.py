"""
Persistence collaborator contract and an in-memory implementation.

The game core only needs two calls from the backend:
- record_session(user_id, summary)  once per finished session
- load_profile(user_id)             once when a session starts
"""
from __future__ import annotations
import logging
from typing import Dict, List, Protocol

from smirkle.models import PlayerProfile, SessionSummary
from smirkle.progression import LEVEL_THRESHOLD, badges_for, calculate_level

logger = logging.getLogger(__name__)


class PersistencePort(Protocol):
    async def record_session(self, user_id: str, summary: SessionSummary) -> None:
        ...

    async def load_profile(self, user_id: str) -> PlayerProfile:
        ...


def apply_summary(profile: PlayerProfile, summary: SessionSummary,
                  level_threshold: int = LEVEL_THRESHOLD) -> PlayerProfile:
    """Profile after adding one session's score: totals, level, new badges."""
    lifetime = profile.lifetime_score + summary.score
    new_badges = badges_for(lifetime, profile.badges)
    return profile.model_copy(update={
        "lifetime_score": lifetime,
        "high_score": max(profile.high_score, summary.score),
        "level": calculate_level(lifetime, level_threshold),
        "badges": list(profile.badges) + new_badges,
    })


class InMemoryPersistence:
    """Dict-backed store; good enough for local play and tests."""
    def __init__(self, level_threshold: int = LEVEL_THRESHOLD):
        self.level_threshold = level_threshold
        self.profiles: Dict[str, PlayerProfile] = {}
        self.sessions: Dict[str, List[SessionSummary]] = {}

    async def load_profile(self, user_id: str) -> PlayerProfile:
        return self.profiles.get(user_id) or PlayerProfile(user_id=user_id)

    async def record_session(self, user_id: str, summary: SessionSummary) -> None:
        self.sessions.setdefault(user_id, []).append(summary)
        profile = await self.load_profile(user_id)
        updated = apply_summary(profile, summary, self.level_threshold)
        self.profiles[user_id] = updated
        logger.info(f"[persistence] user={user_id} score={summary.score} "
                    f"lifetime={updated.lifetime_score} level={updated.level}")

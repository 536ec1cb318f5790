"""
Levels, titles, badges and score formatting.
"""
from __future__ import annotations
from typing import Iterable, List

from smirkle.models import Badge, LevelInfo

LEVEL_THRESHOLD = 388800  # four hours of play at the default award

LEVEL_TITLES = {
    1: "Poker Facer",
    2: "Stone Cold",
    3: "The Guarded",
    4: "Unshakeable",
    5: "Cool Customer",
    10: "Ice Breaker",
    15: "Why So Serious?",
    20: "Emotionless Warrior",
    30: "Deadpan Pro",
    45: "Emotionless Master",
    60: "Stoic Sage",
    90: "Deadpan Legend",
    120: "No Laugh Master",
    180: "No Laugh Matter",
}

BADGES: List[Badge] = [
    Badge(id="poker_facer", name="Poker Facer", icon="🎭",
          description="Complete your first game without smiling",
          level_requirement=1, min_lifetime_score=0),
    Badge(id="stone_cold", name="Stone Cold", icon="🗿",
          description="Reach 10,000 lifetime points",
          level_requirement=2, min_lifetime_score=10_000),
    Badge(id="the_guarded", name="The Guarded", icon="🛡️",
          description="Reach 50,000 lifetime points",
          level_requirement=3, min_lifetime_score=50_000),
    Badge(id="why_so_serious", name="Why So Serious?", icon="🤡",
          description="Reach 100,000 lifetime points",
          level_requirement=15, min_lifetime_score=100_000),
    Badge(id="emotionless_master", name="Emotionless Master", icon="🎯",
          description="Reach 500,000 lifetime points",
          level_requirement=45, min_lifetime_score=500_000),
    Badge(id="deadpan_legend", name="Deadpan Legend", icon="👑",
          description="Reach 1,000,000 lifetime points",
          level_requirement=90, min_lifetime_score=1_000_000),
    Badge(id="no_laugh_matter", name="No Laugh Matter", icon="🏆",
          description="Reach 2,000,000 lifetime points",
          level_requirement=180, min_lifetime_score=2_000_000),
]


def calculate_level(total_points: int, threshold: int = LEVEL_THRESHOLD) -> int:
    return int(total_points) // int(threshold) + 1


def level_title(level: int) -> str:
    for lvl in sorted(LEVEL_TITLES, reverse=True):
        if level >= lvl:
            return LEVEL_TITLES[lvl]
    return f"Level {level}"


def level_info(total_points: int, threshold: int = LEVEL_THRESHOLD) -> LevelInfo:
    level = calculate_level(total_points, threshold)
    current = (level - 1) * threshold
    nxt = level * threshold
    return LevelInfo(
        level=level,
        title=level_title(level),
        points_required=current,
        points_to_next_level=nxt - total_points,
        progress=(total_points - current) / threshold * 100.0,
    )


def badges_for(lifetime_score: int, owned: Iterable[Badge] = ()) -> List[Badge]:
    """Badges newly earned at this lifetime score, excluding those already owned."""
    have = {b.id for b in owned}
    return [b for b in BADGES if lifetime_score >= b.min_lifetime_score and b.id not in have]


def format_time(seconds: int) -> str:
    mins, secs = divmod(int(seconds), 60)
    return f"{mins:02d}:{secs:02d}"


def format_score(score: int) -> str:
    if score >= 1_000_000_000:
        return f"{score / 1_000_000_000:.1f}B"
    if score >= 1_000_000:
        return f"{score / 1_000_000:.1f}M"
    if score >= 1_000:
        return f"{score / 1_000:.1f}K"
    return str(score)

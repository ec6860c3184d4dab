"""
XP and level computation. Level is always derived from XP, never stored on its own.
"""
from dataclasses import dataclass

DEFAULT_LEVEL_STEP = 100
LEVELS_PER_TITLE = 5

LEVEL_TITLES = (
    "Job Seeker",
    "Application Novice",
    "Career Explorer",
    "Job Hunter",
    "Application Expert",
    "Career Strategist",
    "Job Search Master",
    "Career Champion",
    "Application Legend",
    "Ultimate Job Seeker",
)

LEVEL_COLORS = (
    "#6B7280",
    "#EF4444",
    "#F97316",
    "#EAB308",
    "#22C55E",
    "#06B6D4",
    "#3B82F6",
    "#8B5CF6",
    "#EC4899",
    "#F59E0B",
)


@dataclass(frozen=True)
class UserLevel:
    level: int
    xp: int
    xp_to_next: int
    total_xp: int
    title: str
    color: str


def compute_level(total_xp: int, level_step: int = DEFAULT_LEVEL_STEP) -> int:
    """floor(total_xp / level_step) + 1"""
    if total_xp < 0:
        raise ValueError(f"total_xp cannot be negative: {total_xp}")
    if level_step <= 0:
        raise ValueError(f"level_step must be positive: {level_step}")
    return total_xp // level_step + 1


def build_user_level(total_xp: int, level_step: int = DEFAULT_LEVEL_STEP) -> UserLevel:
    level = compute_level(total_xp, level_step)
    xp_in_level = total_xp % level_step
    band = min((level - 1) // LEVELS_PER_TITLE, len(LEVEL_TITLES) - 1)
    return UserLevel(
        level=level,
        xp=xp_in_level,
        xp_to_next=level_step - xp_in_level,
        total_xp=total_xp,
        title=LEVEL_TITLES[band],
        color=LEVEL_COLORS[band],
    )

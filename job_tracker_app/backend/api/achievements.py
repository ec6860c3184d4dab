"""
Achievement, level, streak and progress endpoints.
"""
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query

from .. import schemas
from ..services.achievement_catalog import AchievementCategory, AchievementRarity, AchievementTier
from ..services.exceptions import AchievementEngineError
from ..services.progress_session import ProgressSession
from ..services.progress_store import (
    AchievementFilter,
    AchievementView,
    SortKey,
    category_counts,
    filter_achievements,
    sort_achievements,
)
from ..utils.api_helpers import check_resource_exists, handle_service_error
from .deps import get_progress_session

router = APIRouter()

RECENT_UNLOCKS_LIMIT = 5


def to_schema(view: AchievementView) -> schemas.Achievement:
    return schemas.Achievement(
        id=view.id,
        name=view.name,
        description=view.description,
        category=view.category.value,
        tier=view.tier.value,
        rarity=view.rarity.value,
        icon=view.icon,
        xp_reward=view.xp_reward,
        unlocked=view.unlocked,
        unlocked_at=view.unlocked_at,
        pending=view.pending,
        progress=round(view.progress, 2),
        current=view.current,
        target=view.target,
    )


@router.get("/", response_model=schemas.AchievementList)
def list_achievements(
    category: Optional[AchievementCategory] = None,
    tier: Optional[AchievementTier] = None,
    rarity: Optional[AchievementRarity] = None,
    unlocked: Optional[bool] = None,
    search: Optional[str] = Query(None, max_length=100),
    sort: SortKey = SortKey.CATALOG,
    session: ProgressSession = Depends(get_progress_session),
):
    """
    List the catalog with the user's unlock state and progress.
    """
    snapshot = session.snapshot
    criteria = AchievementFilter(category=category, tier=tier, rarity=rarity, unlocked=unlocked, search=search)
    views = sort_achievements(filter_achievements(snapshot.achievements, criteria), sort)
    return schemas.AchievementList(
        achievements=[to_schema(v) for v in views],
        total=len(snapshot.achievements),
        unlocked=len(snapshot.unlocked_ids),
        evaluation_enabled=session.evaluation_enabled,
        degraded=snapshot.degraded,
    )


@router.get("/level", response_model=schemas.UserLevel)
def read_level(session: ProgressSession = Depends(get_progress_session)):
    return schemas.UserLevel.model_validate(session.snapshot.level)


@router.get("/streak", response_model=schemas.StreakSummary)
def read_streak(session: ProgressSession = Depends(get_progress_session)):
    stats = session.snapshot.stats
    return schemas.StreakSummary(
        daily_streak=stats.daily_streak,
        longest_streak=stats.longest_streak,
        last_application_date=stats.last_application_date,
        streak_start_date=stats.streak_start_date,
    )


@router.get("/stats", response_model=schemas.ProgressStats)
def read_stats(session: ProgressSession = Depends(get_progress_session)):
    """
    Summary stats with unlocked counts per category and the most recent unlocks.
    """
    snapshot = session.snapshot
    stats = snapshot.stats
    recent = [v for v in sort_achievements(snapshot.achievements, SortKey.RECENT) if v.unlocked]
    return schemas.ProgressStats(
        total_xp=stats.total_xp,
        current_level=stats.current_level,
        achievements_unlocked=stats.achievements_unlocked,
        total_achievements=len(snapshot.achievements),
        daily_streak=stats.daily_streak,
        longest_streak=stats.longest_streak,
        category_counts=category_counts(snapshot.achievements, unlocked_only=True),
        recent_unlocks=[to_schema(v) for v in recent[:RECENT_UNLOCKS_LIMIT]],
        evaluation_enabled=session.evaluation_enabled,
        degraded=snapshot.degraded,
    )


@router.post("/recompute", response_model=schemas.RecomputeResponse)
def recompute(
    background_tasks: BackgroundTasks,
    session: ProgressSession = Depends(get_progress_session),
):
    """
    Re-evaluate everything from the full history. The optimistic result is
    returned immediately; writing the unlocks happens after the response.
    """
    try:
        result = session.recompute()
    except AchievementEngineError as e:
        raise handle_service_error(e, "Achievement")
    if result is None:
        # superseded by a trigger that arrived while this one was running
        return schemas.RecomputeResponse(scheduled=False, evaluation_enabled=session.evaluation_enabled)
    background_tasks.add_task(session.sync)
    return schemas.RecomputeResponse(
        scheduled=True,
        newly_unlocked=list(result.newly_unlocked),
        level=schemas.UserLevel.model_validate(result.snapshot.level),
        pending=[v.id for v in result.snapshot.achievements if v.pending],
        evaluation_enabled=session.evaluation_enabled,
    )


@router.post("/sync", response_model=schemas.SyncResponse)
def sync(
    force: bool = False,
    session: ProgressSession = Depends(get_progress_session),
):
    """
    Flush pending unlocks and notifications to the store now.
    """
    result = session.sync(force=force)
    return schemas.SyncResponse(
        created=list(result.created),
        already_unlocked=list(result.already_unlocked),
        still_pending=list(result.still_pending),
        notified=list(result.notified),
        dead_lettered=list(result.dead_lettered),
    )


@router.get("/{achievement_id}", response_model=schemas.Achievement)
def read_achievement(achievement_id: str, session: ProgressSession = Depends(get_progress_session)):
    view = next((v for v in session.snapshot.achievements if v.id == achievement_id), None)
    check_resource_exists(view, "Achievement")
    return to_schema(view)

"""
Popularity score.

score = votes * Wv + upvote% * Wu + max(0, RankMax - rank) * Wr
        + max(0, RecencyMaxDays - age_days) * Wc + (Wverified if verified)

Non-decreasing in votes and upvote percent, non-increasing in rank and
staleness, all else fixed. Every weight comes from ScoringConfig.
"""

from datetime import datetime, timezone

from catalog_mirror.config import ScoringConfig, get_settings

SECONDS_PER_DAY = 86400.0


def rank_boost(rank: int | None, config: ScoringConfig) -> float:
    """Headroom below the rank cap; unranked entities get nothing."""
    if rank is None:
        return 0.0
    return max(0.0, config.rank_max - rank)


def recency_boost(
    last_seen_at: datetime | None,
    config: ScoringConfig,
    *,
    now: datetime | None = None,
) -> float:
    """Days remaining before the recency window closes."""
    if last_seen_at is None or config.recency_max_days <= 0:
        return 0.0
    now = now or datetime.now(timezone.utc)
    if last_seen_at.tzinfo is None:
        last_seen_at = last_seen_at.replace(tzinfo=timezone.utc)
    age_days = max(0.0, (now - last_seen_at).total_seconds() / SECONDS_PER_DAY)
    return max(0.0, config.recency_max_days - age_days)


def compute_popularity_score(
    *,
    vote_count: int | None,
    upvote_percent: float | None,
    rank: int | None,
    last_seen_at: datetime | None,
    creator_verified: bool | None,
    config: ScoringConfig | None = None,
    now: datetime | None = None,
) -> float:
    """
    Compute the derived popularity score of an entity.

    Args:
        vote_count: Total votes (None counts as 0)
        upvote_percent: Share of upvotes, 0-100 (None counts as 0)
        rank: Chart position (None = unranked)
        last_seen_at: Last time discovery observed the entity
        creator_verified: Whether the creator carries a verified badge
        config: Weights and caps (defaults from settings)
        now: Reference time for the recency window

    Returns:
        float: Popularity score
    """
    config = config or get_settings().scoring
    score = (vote_count or 0) * config.vote_weight
    score += (upvote_percent or 0.0) * config.upvote_weight
    score += rank_boost(rank, config) * config.rank_weight
    score += recency_boost(last_seen_at, config, now=now) * config.recency_weight
    if creator_verified:
        score += config.verified_bonus
    return score

"""
Phase ranking.

`compute_ranking` is pure so the ordering can be checked without a database:
identical inputs always produce the identical list.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.datetime_utils import utc_now_naive
from app.core.errors import Conflict, ValidationError
from app.models.phase import RecPhaseRanking
from app.models.review import RecReview
from app.services.phase_configs import eligible_application_query, normalize_config_track, normalize_phase, resolve_phase_config
from app.services.reviews import overall_average, weighted_average

DEFAULT_MEAN = 3.0
DEFAULT_STD = 1.0
SCORE_FLOOR = 1.0
SCORE_CEILING = 5.0


@dataclass(frozen=True)
class ReviewInput:
    reviewer_email: str
    scores: dict[str, float]
    recommendation: str | None = None
    referral_signal: str = "neutral"


@dataclass
class RankingEntry:
    application_id: int
    applicant_name: str
    applicant_email: str
    track: str
    submitted_at: datetime | None
    reviews: list[ReviewInput] = field(default_factory=list)


@dataclass(frozen=True)
class RankingConfig:
    scoring_categories: Sequence[dict[str, Any]] = ()
    referral_weights: dict[str, float] | None = None
    use_z_score_normalization: bool = False


def reviewer_statistics(entries: Iterable[RankingEntry]) -> dict[str, tuple[float, float, int]]:
    collected: dict[str, list[float]] = {}
    for entry in entries:
        for review in entry.reviews:
            collected.setdefault(review.reviewer_email, []).extend(float(v) for v in review.scores.values())
    stats: dict[str, tuple[float, float, int]] = {}
    for email, values in collected.items():
        if len(values) < 2:
            stats[email] = (DEFAULT_MEAN, DEFAULT_STD, len(values))
            continue
        mean = sum(values) / len(values)
        variance = sum((value - mean) ** 2 for value in values) / len(values)
        stats[email] = (mean, math.sqrt(variance) or DEFAULT_STD, len(values))
    return stats


def normalize_score(score: float, stats: tuple[float, float, int] | None) -> float:
    if stats is None:
        return score
    mean, std, count = stats
    if count < 2 or std == 0:
        return score
    return max(SCORE_FLOOR, min(SCORE_CEILING, DEFAULT_MEAN + (score - mean) / std))


def _sort_key(item: dict[str, Any]):
    submitted = item["submitted_at"] or ""
    # Unsubmitted entries sort after every timestamp.
    return (
        -item["weighted_score"],
        -item["referral_count"],
        item["deferral_count"],
        submitted == "",
        submitted,
        item["application_id"],
    )


def compute_ranking(entries: Sequence[RankingEntry], config: RankingConfig) -> list[dict[str, Any]]:
    seen: set[int] = set()
    for entry in entries:
        if entry.application_id in seen:
            raise ValidationError(f"Application {entry.application_id} appears twice in the ranking")
        seen.add(entry.application_id)

    stats = reviewer_statistics(entries) if config.use_z_score_normalization else {}
    weights = config.referral_weights or {}

    ranked: list[dict[str, Any]] = []
    for entry in entries:
        collected: dict[str, list[float]] = {}
        recommendations = {"advance": 0, "hold": 0, "reject": 0}
        referral = deferral = neutral = 0
        for review in entry.reviews:
            for key, value in review.scores.items():
                score = float(value)
                if config.use_z_score_normalization:
                    score = normalize_score(score, stats.get(review.reviewer_email))
                collected.setdefault(key, []).append(score)
            if review.recommendation in recommendations:
                recommendations[review.recommendation] += 1
            if review.referral_signal == "referral":
                referral += 1
            elif review.referral_signal == "deferral":
                deferral += 1
            else:
                neutral += 1

        averages = {key: sum(values) / len(values) for key, values in collected.items()}
        average = overall_average(averages) if entry.reviews else 0.0
        weighted = weighted_average(averages, list(config.scoring_categories), average) if entry.reviews else 0.0
        weighted += referral * float(weights.get("advocate") or 0) + deferral * float(weights.get("oppose") or 0)

        ranked.append(
            {
                "application_id": entry.application_id,
                "applicant_name": entry.applicant_name,
                "applicant_email": entry.applicant_email,
                "track": entry.track,
                "rank": 0,
                "average_score": round(average, 4),
                "weighted_score": round(weighted, 4),
                "review_count": len(entry.reviews),
                "referral_count": referral,
                "deferral_count": deferral,
                "neutral_count": neutral,
                "recommendations": recommendations,
                "submitted_at": entry.submitted_at.isoformat() if entry.submitted_at else None,
            }
        )

    ranked.sort(key=_sort_key)
    for index, item in enumerate(ranked, start=1):
        item["rank"] = index
    return ranked


async def build_ranking(
    session: AsyncSession, *, cycle_id: int, phase: str, track: str | None
) -> list[dict[str, Any]]:
    phase = normalize_phase(phase)
    config_track = normalize_config_track(track)
    applications = (
        await session.execute(eligible_application_query(cycle_id=cycle_id, phase=phase, track=config_track))
    ).scalars().all()
    entries = {
        app.application_id: RankingEntry(
            application_id=app.application_id,
            applicant_name=app.full_name or app.email.split("@", 1)[0],
            applicant_email=app.email,
            track=app.track,
            submitted_at=app.submitted_at,
        )
        for app in applications
    }
    if entries:
        reviews = (
            await session.execute(
                select(RecReview)
                .where(RecReview.phase == phase, RecReview.application_id.in_(list(entries)))
                .order_by(RecReview.review_id.asc())
            )
        ).scalars().all()
        for review in reviews:
            entries[review.application_id].reviews.append(
                ReviewInput(
                    reviewer_email=review.reviewer_email,
                    scores=dict(review.scores or {}),
                    recommendation=review.recommendation,
                    referral_signal=review.referral_signal or "neutral",
                )
            )

    config = await resolve_phase_config(session, cycle_id=cycle_id, phase=phase, track=config_track)
    ranking_config = RankingConfig(
        scoring_categories=tuple(config.scoring_categories or ()) if config else (),
        referral_weights=config.referral_weights if config else None,
        use_z_score_normalization=bool(config.use_z_score_normalization) if config else False,
    )
    return compute_ranking([entries[key] for key in sorted(entries)], ranking_config)


async def next_ranking_version(session: AsyncSession, *, cycle_id: int, phase: str, track: str) -> int:
    current = (
        await session.execute(
            select(func.max(RecPhaseRanking.version)).where(
                RecPhaseRanking.cycle_id == cycle_id,
                RecPhaseRanking.phase == phase,
                RecPhaseRanking.track == track,
            )
        )
    ).scalar_one_or_none()
    return int(current or 0) + 1


async def stage_ranking(
    session: AsyncSession,
    *,
    cycle_id: int,
    phase: str,
    track: str,
    rankings: list[dict[str, Any]],
    finalized: bool = False,
) -> RecPhaseRanking:
    """Adds a new ranking version to the current transaction without committing."""
    now = utc_now_naive()
    ranking = RecPhaseRanking(
        cycle_id=cycle_id,
        phase=phase,
        track=track,
        version=await next_ranking_version(session, cycle_id=cycle_id, phase=phase, track=track),
        rankings=rankings,
        generated_at=now,
        finalized_at=now if finalized else None,
    )
    session.add(ranking)
    await session.flush()
    return ranking


async def generate_phase_ranking(
    session: AsyncSession, *, cycle_id: int, phase: str, track: str | None = None
) -> RecPhaseRanking:
    phase = normalize_phase(phase)
    config_track = normalize_config_track(track)
    rankings = await build_ranking(session, cycle_id=cycle_id, phase=phase, track=config_track)
    try:
        ranking = await stage_ranking(session, cycle_id=cycle_id, phase=phase, track=config_track, rankings=rankings)
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise Conflict("Another ranking was generated at the same time; retry")
    return ranking


async def get_latest_phase_ranking(
    session: AsyncSession, *, cycle_id: int, phase: str, track: str | None = None
) -> RecPhaseRanking | None:
    return (
        await session.execute(
            select(RecPhaseRanking)
            .where(
                RecPhaseRanking.cycle_id == cycle_id,
                RecPhaseRanking.phase == normalize_phase(phase),
                RecPhaseRanking.track == normalize_config_track(track),
            )
            .order_by(RecPhaseRanking.version.desc())
            .limit(1)
        )
    ).scalars().first()


async def get_finalized_phase_ranking(
    session: AsyncSession, *, cycle_id: int, phase: str, track: str | None = None
) -> RecPhaseRanking | None:
    return (
        await session.execute(
            select(RecPhaseRanking)
            .where(
                RecPhaseRanking.cycle_id == cycle_id,
                RecPhaseRanking.phase == normalize_phase(phase),
                RecPhaseRanking.track == normalize_config_track(track),
                RecPhaseRanking.finalized_at.is_not(None),
            )
            .order_by(RecPhaseRanking.finalized_at.desc(), RecPhaseRanking.version.desc())
            .limit(1)
        )
    ).scalars().first()

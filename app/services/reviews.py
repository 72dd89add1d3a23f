from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.datetime_utils import utc_now_naive
from app.core.errors import Conflict, ValidationError
from app.models.review import RecReview
from app.schemas.review import PhaseReviewSummary, RecommendationTally, ReferralTally, ReviewUpsert
from app.schemas.user import UserContext
from app.services.applications import get_application
from app.services.phase_configs import PHASE_FINALIZED, normalize_phase, resolve_phase_config


def weighted_average(scores: dict[str, float], categories: list[dict] | None, fallback: float) -> float:
    if not categories:
        return fallback
    total_weight = 0.0
    weighted_sum = 0.0
    for category in categories:
        key = category.get("key")
        if key in scores:
            weight = float(category.get("weight") or 0)
            weighted_sum += scores[key] * weight
            total_weight += weight
    return weighted_sum / total_weight if total_weight > 0 else fallback


def overall_average(scores: dict[str, float]) -> float:
    if "overall" in scores:
        return scores["overall"]
    if not scores:
        return 0.0
    return sum(scores.values()) / len(scores)


def _check_scores(scores: dict[str, float], categories: list[dict]) -> None:
    if not categories:
        return
    bounds = {c["key"]: (float(c.get("min_score", 1)), float(c.get("max_score", 5))) for c in categories}
    for key, value in scores.items():
        if key not in bounds:
            raise ValidationError(f"Unknown scoring category: {key}")
        low, high = bounds[key]
        if not low <= float(value) <= high:
            raise ValidationError(f"Score for {key} must be between {low:g} and {high:g}")


async def upsert_phase_review(session: AsyncSession, *, payload: ReviewUpsert, reviewer: UserContext) -> RecReview:
    application = await get_application(session, payload.application_id)
    phase = normalize_phase(payload.phase)
    config = await resolve_phase_config(
        session, cycle_id=application.cycle_id, phase=phase, track=application.track
    )
    if config is not None and config.status == PHASE_FINALIZED:
        raise Conflict("Phase is finalized; reviews can no longer be changed")
    _check_scores(payload.scores, config.scoring_categories if config else [])

    reviewer_email = str(reviewer.email)
    review = (
        await session.execute(
            select(RecReview).where(
                RecReview.application_id == application.application_id,
                RecReview.phase == phase,
                RecReview.reviewer_email == reviewer_email,
            )
        )
    ).scalars().first()
    if review is None:
        review = RecReview(
            cycle_id=application.cycle_id,
            application_id=application.application_id,
            phase=phase,
            reviewer_email=reviewer_email,
        )
        session.add(review)
    review.track = application.track
    review.reviewer_name = reviewer.full_name
    review.scores = {key: float(value) for key, value in payload.scores.items()}
    review.notes = payload.notes
    review.question_notes = payload.question_notes
    review.recommendation = payload.recommendation
    review.referral_signal = payload.referral_signal
    review.updated_at = utc_now_naive()
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise Conflict("Review was saved concurrently; reload and retry")
    return review


async def list_reviews(session: AsyncSession, *, application_id: int, phase: str | None = None) -> list[RecReview]:
    query = select(RecReview).where(RecReview.application_id == application_id)
    if phase:
        query = query.where(RecReview.phase == normalize_phase(phase))
    rows = await session.execute(query.order_by(RecReview.phase.asc(), RecReview.created_at.asc()))
    return list(rows.scalars().all())


async def get_phase_review_summary(
    session: AsyncSession, *, application_id: int, phase: str
) -> PhaseReviewSummary | None:
    application = await get_application(session, application_id)
    phase = normalize_phase(phase)
    reviews = await list_reviews(session, application_id=application_id, phase=phase)
    if not reviews:
        return None

    collected: dict[str, list[float]] = {}
    recommendations = RecommendationTally()
    referrals = ReferralTally()
    for review in reviews:
        for key, value in (review.scores or {}).items():
            collected.setdefault(key, []).append(float(value))
        if review.recommendation in ("advance", "hold", "reject"):
            setattr(recommendations, review.recommendation, getattr(recommendations, review.recommendation) + 1)
        signal = review.referral_signal if review.referral_signal in ("referral", "deferral") else "neutral"
        setattr(referrals, signal, getattr(referrals, signal) + 1)

    scores = {key: sum(values) / len(values) for key, values in collected.items()}
    avg_score = overall_average(scores)
    config = await resolve_phase_config(
        session, cycle_id=application.cycle_id, phase=phase, track=application.track
    )
    return PhaseReviewSummary(
        phase=phase,
        review_count=len(reviews),
        avg_score=round(avg_score, 4),
        weighted_score=round(weighted_average(scores, config.scoring_categories if config else None, avg_score), 4),
        scores={key: round(value, 4) for key, value in scores.items()},
        recommendations=recommendations,
        referrals=referrals,
        reviewers=[review.reviewer_email for review in reviews],
    )

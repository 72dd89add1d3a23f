from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

Recommendation = Literal["advance", "hold", "reject"]
ReferralSignal = Literal["referral", "neutral", "deferral"]


class ReviewUpsert(BaseModel):
    application_id: int
    phase: str
    scores: Dict[str, float] = Field(default_factory=dict)
    notes: Optional[str] = None
    question_notes: Optional[Dict[str, str]] = None
    recommendation: Optional[Recommendation] = None
    referral_signal: ReferralSignal = "neutral"


class ReviewOut(BaseModel):
    review_id: int
    cycle_id: int
    application_id: int
    phase: str
    track: Optional[str] = None
    reviewer_email: str
    reviewer_name: Optional[str] = None
    scores: Dict[str, float]
    notes: Optional[str] = None
    question_notes: Optional[Dict[str, str]] = None
    recommendation: Optional[str] = None
    referral_signal: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RecommendationTally(BaseModel):
    advance: int = 0
    hold: int = 0
    reject: int = 0


class ReferralTally(BaseModel):
    referral: int = 0
    neutral: int = 0
    deferral: int = 0


class PhaseReviewSummary(BaseModel):
    phase: str
    review_count: int
    avg_score: float
    weighted_score: float
    scores: Dict[str, float]
    recommendations: RecommendationTally
    referrals: ReferralTally
    reviewers: List[str]

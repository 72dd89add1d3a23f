from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

PhaseStatus = Literal["not_started", "in_progress", "finalized"]
DecisionAction = Literal["advance", "reject", "manual_advance", "manual_reject"]


class ScoringCategory(BaseModel):
    key: str
    label: str
    description: Optional[str] = None
    min_score: float = 1
    max_score: float = 5
    weight: float = Field(default=1.0, ge=0)


class ReferralWeights(BaseModel):
    advocate: float = 1.0
    oppose: float = -1.0


class InterviewQuestion(BaseModel):
    key: str
    question: str


class CutoffCriteria(BaseModel):
    type: Literal["top_n", "min_score", "manual"]
    top_n: Optional[int] = Field(default=None, ge=0)
    min_score: Optional[float] = None
    include_manual_overrides: bool = True

    @model_validator(mode="after")
    def _check_threshold(self):
        if self.type == "top_n" and self.top_n is None:
            raise ValueError("top_n is required for top_n cutoffs")
        if self.type == "min_score" and self.min_score is None:
            raise ValueError("min_score is required for min_score cutoffs")
        return self


class PhaseConfigCreate(BaseModel):
    phase: str
    track: str = "both"
    status: PhaseStatus = "not_started"
    scoring_categories: List[ScoringCategory] = Field(default_factory=list)
    min_reviewers_required: int = Field(default=2, ge=0)
    referral_weights: Optional[ReferralWeights] = None
    use_z_score_normalization: bool = False
    interview_questions: Optional[List[InterviewQuestion]] = None


class PhaseConfigUpdate(BaseModel):
    status: Optional[PhaseStatus] = None
    scoring_categories: Optional[List[ScoringCategory]] = None
    min_reviewers_required: Optional[int] = Field(default=None, ge=0)
    referral_weights: Optional[ReferralWeights] = None
    use_z_score_normalization: Optional[bool] = None
    interview_questions: Optional[List[InterviewQuestion]] = None


class PhaseConfigOut(BaseModel):
    phase_config_id: int
    cycle_id: int
    phase: str
    track: str
    status: str
    scoring_categories: List[ScoringCategory]
    min_reviewers_required: int
    referral_weights: Optional[ReferralWeights] = None
    use_z_score_normalization: bool
    interview_questions: Optional[List[InterviewQuestion]] = None
    finalized_at: Optional[datetime] = None
    finalized_by: Optional[str] = None
    cutoff_applied_at: Optional[datetime] = None
    cutoff_applied_by: Optional[str] = None
    cutoff_criteria: Optional[CutoffCriteria] = None
    cutoff_ranking_id: Optional[int] = None

    class Config:
        from_attributes = True


class RankedApplicant(BaseModel):
    application_id: int
    applicant_name: str
    applicant_email: str
    track: str
    rank: int
    average_score: float
    weighted_score: float
    review_count: int
    referral_count: int
    deferral_count: int
    neutral_count: int
    recommendations: dict
    submitted_at: Optional[datetime] = None
    decision: Optional[DecisionAction] = None
    decision_reason: Optional[str] = None
    decision_by: Optional[str] = None
    decision_at: Optional[datetime] = None


class PhaseRankingOut(BaseModel):
    ranking_id: int
    cycle_id: int
    phase: str
    track: str
    version: int
    rankings: List[RankedApplicant]
    generated_at: datetime
    finalized_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ManualOverride(BaseModel):
    application_id: int
    action: Literal["advance", "reject"]
    reason: str = ""


class ApplyCutoffRequest(BaseModel):
    phase: str
    track: str = "both"
    cutoff_criteria: CutoffCriteria
    manual_overrides: List[ManualOverride] = Field(default_factory=list)
    # Version of the ranking the reviewer looked at; a newer ranking makes the request stale.
    ranking_version: Optional[int] = None
    finalize_after: bool = True


class ApplyCutoffResponse(BaseModel):
    ranking_id: int
    ranking_version: int
    advanced: List[int]
    rejected: List[int]


class PhaseDecisionOut(BaseModel):
    decision_id: int
    cycle_id: int
    phase: str
    track: str
    ranking_id: int
    application_id: int
    action: str
    reason: Optional[str] = None
    previous_stage: str
    new_stage: str
    performed_by: str
    performed_at: datetime

    class Config:
        from_attributes = True


class ReviewerCompletion(BaseModel):
    email: str
    reviewed: int
    total: int
    percentage: float


class PhaseCompleteness(BaseModel):
    cycle_id: int
    phase: str
    track: str
    status: str
    total_applicants: int
    applicants_with_reviews: int
    applicants_fully_reviewed: int
    reviewer_completion: List[ReviewerCompletion]


class RevertPhaseOut(BaseModel):
    reverted: int

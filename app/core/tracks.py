from __future__ import annotations

from app.core.stage_machine import (
    ACCEPTED,
    INTERVIEW_ROUND1,
    INTERVIEW_ROUND2,
    PHASE1_REVIEW,
    REJECTED,
    SUBMITTED,
)

BUSINESS = "business"
TECHNICAL = "technical"
AI_INVESTMENT_FUND = "ai_investment_fund"
AI_ENERGY_EFFICIENCY = "ai_energy_efficiency"
BOTH = "both"

ALL_TRACKS: tuple[str, ...] = (BUSINESS, TECHNICAL, AI_INVESTMENT_FUND, AI_ENERGY_EFFICIENCY, BOTH)

_TRACK_ALIASES = {
    "engineering": TECHNICAL,
    "tech": TECHNICAL,
    "all": BOTH,
}


def normalize_track(raw: str | None) -> str | None:
    if raw is None:
        return None
    value = raw.strip().lower().replace(" ", "_").replace("-", "_")
    if not value:
        return None
    value = _TRACK_ALIASES.get(value, value)
    return value if value in ALL_TRACKS else None


# Review phases and slot kinds.
PHASE_APPLICATION = "application"
PHASE_INTERVIEW_ROUND1 = INTERVIEW_ROUND1
PHASE_INTERVIEW_ROUND2 = INTERVIEW_ROUND2

ALL_PHASES: tuple[str, ...] = (PHASE_APPLICATION, PHASE_INTERVIEW_ROUND1, PHASE_INTERVIEW_ROUND2)

SLOT_COFFEE_CHAT = "coffee_chat"
ALL_SLOT_KINDS: tuple[str, ...] = (SLOT_COFFEE_CHAT, INTERVIEW_ROUND1, INTERVIEW_ROUND2)

# Stages an application must be in to be ranked for a phase.
PHASE_ELIGIBLE_STAGES: dict[str, tuple[str, ...]] = {
    PHASE_APPLICATION: (SUBMITTED, PHASE1_REVIEW),
    PHASE_INTERVIEW_ROUND1: (INTERVIEW_ROUND1,),
    PHASE_INTERVIEW_ROUND2: (INTERVIEW_ROUND2,),
}

# Where a cutoff decision moves an application.
PHASE_OUTCOMES: dict[str, dict[str, str]] = {
    PHASE_APPLICATION: {"advance": INTERVIEW_ROUND1, "reject": REJECTED},
    PHASE_INTERVIEW_ROUND1: {"advance": INTERVIEW_ROUND2, "reject": REJECTED},
    PHASE_INTERVIEW_ROUND2: {"advance": ACCEPTED, "reject": REJECTED},
}

# Stage an application returns to when a phase is reverted.
PHASE_ENTRY_STAGE: dict[str, str] = {
    PHASE_APPLICATION: PHASE1_REVIEW,
    PHASE_INTERVIEW_ROUND1: INTERVIEW_ROUND1,
    PHASE_INTERVIEW_ROUND2: INTERVIEW_ROUND2,
}


def track_matches(applicant_track: str | None, target_track: str | None) -> bool:
    """A missing or `both` target admits every applicant track."""
    if not target_track or target_track == BOTH:
        return True
    return applicant_track in (target_track, BOTH)

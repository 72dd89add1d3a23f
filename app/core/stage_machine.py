from __future__ import annotations

from typing import Iterable


# Canonical application stage identifiers.
DRAFT = "draft"
SUBMITTED = "submitted"
PHASE1_REVIEW = "phase1_review"
INTERVIEW_ROUND1 = "interview_round1"
INTERVIEW_ROUND2 = "interview_round2"
FINAL_REVIEW = "final_review"
WAITLISTED = "waitlisted"
ACCEPTED = "accepted"
REJECTED = "rejected"
WITHDRAWN = "withdrawn"


# Main line first, side outcomes after.
ALL_STAGES: tuple[str, ...] = (
    DRAFT,
    SUBMITTED,
    PHASE1_REVIEW,
    INTERVIEW_ROUND1,
    INTERVIEW_ROUND2,
    FINAL_REVIEW,
    ACCEPTED,
    WAITLISTED,
    REJECTED,
    WITHDRAWN,
)

MAIN_SEQUENCE: tuple[str, ...] = (
    DRAFT,
    SUBMITTED,
    PHASE1_REVIEW,
    INTERVIEW_ROUND1,
    INTERVIEW_ROUND2,
    FINAL_REVIEW,
    ACCEPTED,
)

TERMINAL_STAGES: frozenset[str] = frozenset({ACCEPTED, REJECTED, WITHDRAWN})


# Legacy names still found in stored documents and older clients.
_ALIASES = {
    "under_review": PHASE1_REVIEW,
    "phase_1_review": PHASE1_REVIEW,
    "round1": INTERVIEW_ROUND1,
    "round2": INTERVIEW_ROUND2,
    "decision": FINAL_REVIEW,
}


# Each stage may only move to its immediate successor or to a side outcome.
STAGE_GRAPH: dict[str, frozenset[str]] = {
    DRAFT: frozenset({SUBMITTED, WITHDRAWN}),
    SUBMITTED: frozenset({PHASE1_REVIEW, REJECTED, WITHDRAWN}),
    PHASE1_REVIEW: frozenset({INTERVIEW_ROUND1, REJECTED, WITHDRAWN}),
    INTERVIEW_ROUND1: frozenset({INTERVIEW_ROUND2, REJECTED, WITHDRAWN}),
    INTERVIEW_ROUND2: frozenset({FINAL_REVIEW, REJECTED, WITHDRAWN}),
    FINAL_REVIEW: frozenset({ACCEPTED, WAITLISTED, REJECTED, WITHDRAWN}),
    WAITLISTED: frozenset({ACCEPTED, REJECTED, WITHDRAWN}),
    ACCEPTED: frozenset(),
    REJECTED: frozenset(),
    WITHDRAWN: frozenset(),
}


def normalize_stage_name(raw: str | None) -> str | None:
    if raw is None:
        return None
    normalized = raw.strip().lower().replace(" ", "_").replace("-", "_")
    if not normalized:
        return None
    return _ALIASES.get(normalized, normalized)


def is_known_stage(stage: str | None) -> bool:
    return normalize_stage_name(stage) in STAGE_GRAPH


def is_terminal_stage(stage: str | None) -> bool:
    return normalize_stage_name(stage) in TERMINAL_STAGES


def allowed_next_stages(stage: str | None) -> frozenset[str]:
    normalized = normalize_stage_name(stage)
    if normalized is None:
        return frozenset({DRAFT})
    return STAGE_GRAPH.get(normalized, frozenset())


def can_transition(from_stage: str | None, to_stage: str | None, *, override: bool = False) -> bool:
    to_normalized = normalize_stage_name(to_stage)
    from_normalized = normalize_stage_name(from_stage)

    if to_normalized is None or to_normalized not in STAGE_GRAPH:
        return False

    # Initial entry state for applications that do not exist yet.
    if from_normalized is None:
        return to_normalized == DRAFT or override

    if from_normalized not in STAGE_GRAPH:
        return override

    if from_normalized == to_normalized:
        return False

    if override:
        return True

    return to_normalized in STAGE_GRAPH[from_normalized]


def path_is_valid(path: Iterable[str]) -> bool:
    items = [normalize_stage_name(item) for item in path]
    if len(items) < 2:
        return False
    for index in range(len(items) - 1):
        if not can_transition(items[index], items[index + 1]):
            return False
    return True

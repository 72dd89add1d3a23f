from __future__ import annotations

from datetime import datetime
import unittest

from app.core.errors import ValidationError
from app.services.ranking import (
    RankingConfig,
    RankingEntry,
    ReviewInput,
    compute_ranking,
    normalize_score,
    reviewer_statistics,
)

CATEGORIES = (
    {"key": "overall", "label": "Overall", "weight": 0.5},
    {"key": "experience", "label": "Experience", "weight": 0.5},
)


def entry(application_id: int, *reviews: ReviewInput, submitted: datetime | None = None) -> RankingEntry:
    return RankingEntry(
        application_id=application_id,
        applicant_name=f"Applicant {application_id}",
        applicant_email=f"a{application_id}@umich.edu",
        track="technical",
        submitted_at=submitted,
        reviews=list(reviews),
    )


def review(email: str, overall: float, experience: float, *, signal: str = "neutral", rec: str | None = None):
    return ReviewInput(
        reviewer_email=email,
        scores={"overall": overall, "experience": experience},
        recommendation=rec,
        referral_signal=signal,
    )


class ComputeRankingTests(unittest.TestCase):
    def test_orders_by_weighted_score(self) -> None:
        ranked = compute_ranking(
            [
                entry(1, review("r1@umich.edu", 3, 3)),
                entry(2, review("r1@umich.edu", 5, 4)),
                entry(3, review("r1@umich.edu", 4, 4)),
            ],
            RankingConfig(scoring_categories=CATEGORIES),
        )
        self.assertEqual([item["application_id"] for item in ranked], [2, 3, 1])
        self.assertEqual([item["rank"] for item in ranked], [1, 2, 3])
        self.assertAlmostEqual(ranked[0]["weighted_score"], 4.5)

    def test_ties_break_on_referrals_then_deferrals(self) -> None:
        ranked = compute_ranking(
            [
                entry(1, review("r1@umich.edu", 4, 4, signal="deferral")),
                entry(2, review("r1@umich.edu", 4, 4)),
                entry(3, review("r1@umich.edu", 4, 4, signal="referral")),
            ],
            RankingConfig(scoring_categories=CATEGORIES),
        )
        self.assertEqual([item["application_id"] for item in ranked], [3, 2, 1])

    def test_full_ties_break_on_submission_time_then_id(self) -> None:
        early = datetime(2025, 9, 1, 12, 0)
        late = datetime(2025, 9, 2, 12, 0)
        ranked = compute_ranking(
            [
                entry(4, review("r1@umich.edu", 4, 4)),
                entry(3, review("r1@umich.edu", 4, 4), submitted=late),
                entry(2, review("r1@umich.edu", 4, 4), submitted=early),
                entry(1, review("r1@umich.edu", 4, 4), submitted=early),
            ],
            RankingConfig(scoring_categories=CATEGORIES),
        )
        self.assertEqual([item["application_id"] for item in ranked], [1, 2, 3, 4])

    def test_same_input_gives_same_output(self) -> None:
        entries = [entry(i, review("r1@umich.edu", 3 + i % 2, 4)) for i in range(1, 8)]
        config = RankingConfig(scoring_categories=CATEGORIES)
        self.assertEqual(compute_ranking(entries, config), compute_ranking(list(reversed(entries)), config))

    def test_unreviewed_applicants_rank_last_with_zero(self) -> None:
        ranked = compute_ranking(
            [entry(1), entry(2, review("r1@umich.edu", 2, 2))],
            RankingConfig(scoring_categories=CATEGORIES),
        )
        self.assertEqual(ranked[-1]["application_id"], 1)
        self.assertEqual(ranked[-1]["weighted_score"], 0.0)
        self.assertEqual(ranked[-1]["review_count"], 0)

    def test_referral_weights_shift_score(self) -> None:
        ranked = compute_ranking(
            [entry(1, review("r1@umich.edu", 4, 4, signal="referral"))],
            RankingConfig(scoring_categories=CATEGORIES, referral_weights={"advocate": 0.5, "oppose": -0.5}),
        )
        self.assertAlmostEqual(ranked[0]["weighted_score"], 4.5)
        self.assertEqual(ranked[0]["referral_count"], 1)

    def test_recommendations_are_tallied(self) -> None:
        ranked = compute_ranking(
            [
                entry(
                    1,
                    review("r1@umich.edu", 4, 4, rec="advance"),
                    review("r2@umich.edu", 3, 3, rec="hold"),
                    review("r3@umich.edu", 2, 2, rec="advance"),
                )
            ],
            RankingConfig(scoring_categories=CATEGORIES),
        )
        self.assertEqual(ranked[0]["recommendations"], {"advance": 2, "hold": 1, "reject": 0})
        self.assertEqual(ranked[0]["neutral_count"], 3)

    def test_duplicate_applications_are_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            compute_ranking([entry(1), entry(1)], RankingConfig())

    def test_without_categories_uses_overall(self) -> None:
        ranked = compute_ranking([entry(1, review("r1@umich.edu", 2, 5))], RankingConfig())
        self.assertAlmostEqual(ranked[0]["weighted_score"], 2.0)


class NormalizationTests(unittest.TestCase):
    def test_reviewer_with_single_score_uses_defaults(self) -> None:
        stats = reviewer_statistics(
            [entry(1, ReviewInput(reviewer_email="solo@umich.edu", scores={"overall": 5}))]
        )
        self.assertEqual(stats["solo@umich.edu"], (3.0, 1.0, 1))

    def test_normalized_scores_are_clamped(self) -> None:
        self.assertEqual(normalize_score(5.0, (1.0, 0.5, 4)), 5.0)
        self.assertEqual(normalize_score(1.0, (5.0, 0.5, 4)), 1.0)
        self.assertEqual(normalize_score(4.0, None), 4.0)

    def test_harsh_reviewer_is_lifted(self) -> None:
        harsh = [review("harsh@umich.edu", 2, 2), review("harsh@umich.edu", 1, 1)]
        kind = [review("kind@umich.edu", 5, 5), review("kind@umich.edu", 4, 4)]
        ranked = compute_ranking(
            [entry(1, harsh[0], kind[1]), entry(2, harsh[1], kind[0])],
            RankingConfig(scoring_categories=CATEGORIES, use_z_score_normalization=True),
        )
        by_id = {item["application_id"]: item for item in ranked}
        # Each applicant got one reviewer's high mark and the other's low mark.
        self.assertAlmostEqual(by_id[1]["weighted_score"], by_id[2]["weighted_score"])


if __name__ == "__main__":
    unittest.main()

"""
Tests for grade thresholds and explanations.
"""

import pytest

from analyzer.services.grading import NO_REVIEWS_GRADE, build_explanation, calculate_grade


class TestCalculateGrade:
    @pytest.mark.parametrize(
        "fake_percentage, grade",
        [
            (0.0, "A"),
            (15.0, "A"),
            (15.1, "B"),
            (30.0, "B"),
            (45.0, "C"),
            (50.0, "C"),
            (70.0, "D"),
            (70.1, "F"),
            (100.0, "F"),
        ],
    )
    def test_thresholds(self, fake_percentage, grade):
        assert calculate_grade(fake_percentage, review_count=10) == grade

    def test_no_reviews(self):
        assert calculate_grade(0.0, review_count=0) == NO_REVIEWS_GRADE
        assert calculate_grade(None) == NO_REVIEWS_GRADE


class TestExplanation:
    def test_counts_and_summary(self):
        text = build_explanation("B", 2, 10, "Several reviews share phrasing.")
        assert text.startswith("2 of 10 analyzed reviews")
        assert text.endswith("Several reviews share phrasing.")

    def test_no_reviews(self):
        assert build_explanation(NO_REVIEWS_GRADE, 0, 0) == "No reviews were available to analyze."

"""
Authenticity grade from the share of suspected fake reviews.
"""

from typing import Optional

NO_REVIEWS_GRADE = "U"

# Upper bound of fake percentage (inclusive) for each grade
GRADE_THRESHOLDS = (
    (15.0, "A"),
    (30.0, "B"),
    (50.0, "C"),
    (70.0, "D"),
)

GRADE_DESCRIPTIONS = {
    "A": "Reviews appear highly trustworthy.",
    "B": "Reviews appear mostly trustworthy.",
    "C": "A notable share of reviews looks suspicious.",
    "D": "Many reviews look suspicious.",
    "F": "Most reviews look unreliable.",
    NO_REVIEWS_GRADE: "No reviews were available to analyze.",
}


def calculate_grade(fake_percentage: Optional[float], review_count: int = 1) -> str:
    if not review_count or fake_percentage is None:
        return NO_REVIEWS_GRADE

    for upper_bound, grade in GRADE_THRESHOLDS:
        if fake_percentage <= upper_bound:
            return grade
    return "F"


def build_explanation(grade: str, fake_count: int, total: int, summary: str = None) -> str:
    """Human readable summary stored with the product."""
    if grade == NO_REVIEWS_GRADE or not total:
        return GRADE_DESCRIPTIONS[NO_REVIEWS_GRADE]

    text = (
        f"{fake_count} of {total} analyzed reviews were flagged as potentially fake. "
        f"{GRADE_DESCRIPTIONS[grade]}"
    )
    if summary:
        text = f"{text} {summary.strip()}"
    return text

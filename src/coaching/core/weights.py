"""Subject weight helpers.

A weight map assigns each subject an integer percentage; the values are
non-negative and add up to exactly 100.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence


class SubjectWeightError(ValueError):
    """Raised when a subject weight map is malformed."""


def equal_subject_weights(subjects: Sequence[str]) -> dict[str, int]:
    """Split 100 evenly across subjects, remainder to the first one.

    Args:
        subjects: Subject names in display order.

    Returns:
        Ordered mapping subject -> weight. Empty when no subjects.

    Example:
        >>> equal_subject_weights(["Physics", "Chemistry", "Mathematics"])
        {'Physics': 34, 'Chemistry': 33, 'Mathematics': 33}
    """
    if not subjects:
        return {}

    equal = 100 // len(subjects)
    remainder = 100 - equal * len(subjects)

    weights: dict[str, int] = {}
    for index, subject in enumerate(subjects):
        weights[subject] = equal + (remainder if index == 0 else 0)
    return weights


def validate_subject_weights(weights: Mapping[str, int]) -> dict[str, int]:
    """Check a weight map and return it as a plain dict.

    Raises:
        SubjectWeightError: On non-integer or negative values, or a total other than 100.
    """
    if not weights:
        raise SubjectWeightError("At least one subject weight is required")

    for subject, value in weights.items():
        if isinstance(value, bool) or not isinstance(value, int):
            raise SubjectWeightError(f"Weight for '{subject}' must be an integer")
        if value < 0:
            raise SubjectWeightError(f"Weight for '{subject}' must be non-negative")

    total = sum(weights.values())
    if total != 100:
        raise SubjectWeightError(f"Subject weights must sum to 100 (got {total})")

    return dict(weights)

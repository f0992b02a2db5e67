"""
Similarity Judge

Decides whether two responses are "the same" or "different" using a fuzzy
textual score, because dynamic fragments (timestamps, nonces) make
byte-exact comparison useless.
"""

import re
from collections import Counter
from typing import Optional

from proxydiff.comparison.diff_reporter import unified_body_diff
from proxydiff.config.settings import DEFAULT_DIFFERENT_THRESHOLD, DEFAULT_SAME_THRESHOLD
from proxydiff.domain.records import ResponseRecord
from proxydiff.exceptions import DivergenceAssertionError, EquivalenceAssertionError
from proxydiff.utils.logger import get_logger

logger = get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")


def _bigrams(text: str) -> Counter:
    return Counter(text[i : i + 2] for i in range(len(text) - 1))


def similarity(a: str, b: str) -> float:
    """
    Dice coefficient over character bigrams, ignoring whitespace.

    1.0 for identical input (including two empty strings). 0.0 when either
    side has fewer than two non-whitespace characters and they differ.

    Example:
        >>> similarity("Hello World", "Hello World")
        1.0
        >>> round(similarity("Hello World", "Completely Different Page"), 3)
        0.065
    """
    a = _WHITESPACE.sub("", a or "")
    b = _WHITESPACE.sub("", b or "")

    if a == b:
        return 1.0
    if len(a) < 2 or len(b) < 2:
        return 0.0

    bigrams_a = _bigrams(a)
    bigrams_b = _bigrams(b)
    overlap = sum((bigrams_a & bigrams_b).values())

    return 2.0 * overlap / (len(a) - 1 + len(b) - 1)


class SimilarityJudge:
    """
    Applies the "same" and "different" predicates to a pair of responses.

    Scores between different_threshold and same_threshold satisfy neither.
    """

    def __init__(
        self,
        same_threshold: float = DEFAULT_SAME_THRESHOLD,
        different_threshold: float = DEFAULT_DIFFERENT_THRESHOLD,
    ):
        self.same_threshold = same_threshold
        self.different_threshold = different_threshold

    def score(self, old: ResponseRecord, new: ResponseRecord) -> float:
        return similarity(old.body, new.body)

    def assert_equivalent(
        self, old: ResponseRecord, new: ResponseRecord, path: Optional[str] = None
    ) -> float:
        """
        Require the same status, the same redirect target and near-identical bodies.

        Status and Location are compared exactly before the body is looked at;
        a redirect target has no fuzzy tolerance.

        Returns:
            The body similarity score

        Raises:
            EquivalenceAssertionError: With both full bodies attached
        """
        if old.status_code != new.status_code:
            raise EquivalenceAssertionError(
                "status",
                f"status code differs: old {old.status_code}, new {new.status_code}",
                path=path,
                old_body=old.body,
                new_body=new.body,
            )

        if (old.location is not None or new.location is not None) and old.location != new.location:
            raise EquivalenceAssertionError(
                "location",
                f"redirect target differs: old {old.location!r}, new {new.location!r}",
                path=path,
                old_body=old.body,
                new_body=new.body,
            )

        score = self.score(old, new)
        if score < self.same_threshold:
            diff = unified_body_diff(old.body, new.body)
            logger.info(
                "Bodies differ beyond tolerance",
                operation="assert_equivalent",
                context={"path": path, "score": round(score, 4), "threshold": self.same_threshold},
            )
            raise EquivalenceAssertionError(
                "similarity",
                f"similarity is {score:.4f} (expected >= {self.same_threshold})\n{diff}",
                path=path,
                score=score,
                old_body=old.body,
                new_body=new.body,
                diff=diff,
            )

        return score

    def assert_divergent(
        self, old: ResponseRecord, new: ResponseRecord, path: Optional[str] = None
    ) -> float:
        """
        Require the bodies to be clearly different.

        Raises:
            DivergenceAssertionError: Reporting the score (a body diff of
                near-identical pages is not useful here)
        """
        score = self.score(old, new)
        if score >= self.different_threshold:
            raise DivergenceAssertionError(score, self.different_threshold, path=path)
        return score

"""
Scenario assertion primitives.

The two calls a scenario driver needs: "old and new serve this path the same"
and "old and new serve this path differently". Both return the new-backend
response so the caller can classify it further.
"""

from typing import Optional

from proxydiff.api.dual_fetcher import DualBackendFetcher, create_fetcher
from proxydiff.comparison.similarity import SimilarityJudge
from proxydiff.config.settings import Settings
from proxydiff.domain.records import ResponseRecord
from proxydiff.rules.classifier import ClassifierMarkers, ResponseClassifier
from proxydiff.utils.logger import get_logger, log_operation

logger = get_logger(__name__)


class ScenarioAssertions:
    """Composes fetcher, judge and classifier into per-path assertions."""

    def __init__(
        self,
        fetcher: DualBackendFetcher,
        judge: Optional[SimilarityJudge] = None,
        classifier: Optional[ResponseClassifier] = None,
    ):
        self.fetcher = fetcher
        self.judge = judge or SimilarityJudge()
        self.classifier = classifier or ResponseClassifier()

    @classmethod
    def from_settings(cls, settings: Settings, session_factory=None) -> "ScenarioAssertions":
        """Wire the whole engine from run settings."""
        return cls(
            fetcher=create_fetcher(settings, session_factory=session_factory),
            judge=SimilarityJudge(settings.same_threshold, settings.different_threshold),
            classifier=ResponseClassifier(ClassifierMarkers.from_dict(settings.classifier_markers)),
        )

    @log_operation("assert_equivalent")
    def assert_equivalent(self, path: str, deadline: Optional[float] = None) -> ResponseRecord:
        """
        Assert both backends serve ``path`` the same.

        ``deadline`` (time.monotonic() based) bounds the fetch; see
        DualBackendFetcher.fetch.

        Raises:
            EquivalenceAssertionError: Status, Location or body mismatch
            FetchError: A backend could not be fetched
        """
        old, new = self.fetcher.fetch_path(path, deadline=deadline)
        score = self.judge.assert_equivalent(old, new, path=path)
        logger.debug(
            "served as before",
            operation="assert_equivalent",
            context={"path": path, "status_code": new.status_code, "score": round(score, 4)},
        )
        return new

    @log_operation("assert_divergent")
    def assert_divergent(self, path: str, deadline: Optional[float] = None) -> ResponseRecord:
        """
        Assert the backends serve ``path`` differently.

        Raises:
            DivergenceAssertionError: Bodies too similar
            FetchError: A backend could not be fetched
        """
        old, new = self.fetcher.fetch_path(path, deadline=deadline)
        score = self.judge.assert_divergent(old, new, path=path)
        logger.debug(
            "no longer served as before",
            operation="assert_divergent",
            context={"path": path, "old_status": old.status_code, "new_status": new.status_code, "score": round(score, 4)},
        )
        return new

    def assert_served_by_cms(self, response: ResponseRecord, path: Optional[str] = None) -> None:
        """Require ``response`` to look CMS-rendered."""
        self.classifier.assert_served_by_cms(response, path=path)

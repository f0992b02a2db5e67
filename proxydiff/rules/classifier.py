"""
Response Classifier

Decides which origin (legacy static site or CMS) actually produced a response,
independently of which backend was asked. Rules are an ordered decision table
evaluated first-match-wins; each predicate is a pure function of one response.

Rule order:
1. legacy_redirect       - redirect + legacy edge-cache Via header  -> legacy
2. legacy_access_denied  - 403 + generic "Access Denied" page        -> skipped
3. cms_content           - no legacy markers + CMS marker present     -> cms
4. (fallback)                                                        -> indeterminate
"""

from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from proxydiff.domain.records import ClassificationVerdict, ResponseRecord
from proxydiff.exceptions import ClassificationAssertionError
from proxydiff.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ClassifierMarkers:
    """Strings that betray each origin."""

    # Homepage script path only the legacy static site emits
    legacy_script_path: str = '<script type="text/javascript" src="/public/hp2013/'
    # Legacy bundled JS filename
    legacy_js_bundle: str = "scripts/epfl-jquery-built.js"
    # REST API link every CMS-rendered page carries
    cms_marker: str = "wp-json"
    # Substring of the Via header added by the legacy edge cache
    legacy_via_signature: str = "legacy-edge"
    access_denied_marker: str = "Access Denied"

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ClassifierMarkers":
        """Build markers from a settings mapping; unknown keys are ignored."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: str(v) for k, v in data.items() if k in known})


Predicate = Callable[[ResponseRecord, ClassifierMarkers], bool]


@dataclass(frozen=True)
class ClassificationRule:
    """One row of the decision table."""

    name: str
    predicate: Predicate
    verdict: ClassificationVerdict


def is_legacy_redirect(response: ResponseRecord, markers: ClassifierMarkers) -> bool:
    """
    Redirect bodies look alike on both origins, so provenance comes from the
    Via header instead of content.
    """
    via = response.header("Via") or ""
    return response.is_redirect and markers.legacy_via_signature.lower() in via.lower()


def is_legacy_access_denied(response: ResponseRecord, markers: ClassifierMarkers) -> bool:
    return response.status_code == 403 and markers.access_denied_marker in response.body


def has_cms_content(response: ResponseRecord, markers: ClassifierMarkers) -> bool:
    body = response.body
    return (
        markers.legacy_script_path not in body
        and markers.legacy_js_bundle not in body
        and markers.cms_marker in body
    )


DEFAULT_RULES: Tuple[ClassificationRule, ...] = (
    ClassificationRule(
        "legacy_redirect", is_legacy_redirect, ClassificationVerdict.SERVED_BY_LEGACY_ORIGIN
    ),
    ClassificationRule(
        "legacy_access_denied", is_legacy_access_denied, ClassificationVerdict.SKIPPED
    ),
    ClassificationRule("cms_content", has_cms_content, ClassificationVerdict.SERVED_BY_CMS_ORIGIN),
)


class ResponseClassifier:
    """Evaluates the decision table against one response."""

    def __init__(
        self,
        markers: Optional[ClassifierMarkers] = None,
        rules: Optional[List[ClassificationRule]] = None,
    ):
        self.markers = markers or ClassifierMarkers()
        self.rules: List[ClassificationRule] = list(rules if rules is not None else DEFAULT_RULES)

    def explain(self, response: ResponseRecord) -> Tuple[ClassificationVerdict, Optional[str]]:
        """Return (verdict, name of the matching rule or None for the fallback)."""
        for rule in self.rules:
            if rule.predicate(response, self.markers):
                return rule.verdict, rule.name
        return ClassificationVerdict.INDETERMINATE, None

    def classify(self, response: ResponseRecord) -> ClassificationVerdict:
        verdict, rule_name = self.explain(response)
        logger.debug(
            f"classified as {verdict.value}",
            operation="classify",
            context={"url": response.url, "backend": response.backend, "rule": rule_name},
        )
        return verdict

    def assert_served_by(
        self,
        response: ResponseRecord,
        expected: ClassificationVerdict,
        path: Optional[str] = None,
    ) -> ClassificationVerdict:
        """
        Require ``expected`` (SKIPPED is accepted: it makes no content claim).

        Raises:
            ClassificationAssertionError: On any other verdict
        """
        verdict = self.classify(response)
        if verdict not in (expected, ClassificationVerdict.SKIPPED):
            raise ClassificationAssertionError(verdict, expected, path=path)
        return verdict

    def assert_served_by_cms(
        self, response: ResponseRecord, path: Optional[str] = None
    ) -> ClassificationVerdict:
        return self.assert_served_by(response, ClassificationVerdict.SERVED_BY_CMS_ORIGIN, path)


_default_classifier = ResponseClassifier()


def classify(response: ResponseRecord) -> ClassificationVerdict:
    """Classify with the default markers and rule table."""
    return _default_classifier.classify(response)


def describe_rules(classifier: ResponseClassifier) -> List[Dict[str, str]]:
    """Rule table as plain data, in evaluation order."""
    return [{"name": r.name, "verdict": r.verdict.value} for r in classifier.rules]

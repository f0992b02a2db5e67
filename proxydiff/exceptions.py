"""
Exception hierarchy for the differential harness.

Fetch failures (the backend could not be reached in time) and assertion
failures (the backends answered, but not the way the scenario expects) are
kept apart so that a report can tell "backend down" from "behavior changed".
"""

from typing import Optional


class ProxyDiffError(Exception):
    """Base exception for all harness errors."""

    pass


class ConfigurationError(ProxyDiffError):
    """Raised when settings or the scenario catalog are invalid."""

    pass


class FetchError(ProxyDiffError):
    """
    Raised when a request to one backend could not complete.

    Carries which side ("old" or "new") failed and the path that was requested.
    Never retried: a failed fetch fails the scenario.
    """

    kind = "fetch failure"

    def __init__(
        self,
        side: Optional[str],
        path: Optional[str],
        reason: str,
        backend: Optional[str] = None,
    ) -> None:
        side_fragment = f" on {side} backend" if side else ""
        backend_fragment = f" ({backend})" if backend else ""
        path_fragment = f" for {path}" if path else ""
        super().__init__(
            f"{self.kind}{side_fragment}{backend_fragment}{path_fragment}: {reason}"
        )
        self.side = side
        self.path = path
        self.reason = reason
        self.backend = backend


class BackendConnectionError(FetchError):
    """Raised when the TCP connect or TLS handshake to a backend fails."""

    kind = "connectivity failure"


class FetchTimeoutError(FetchError):
    """Raised when a fetch exceeds its deadline (backend slow rather than down)."""

    kind = "timeout"


class ScenarioAssertionError(ProxyDiffError, AssertionError):
    """
    Base class for threshold and expectation violations.

    Subclasses AssertionError so that test drivers report these as failures.
    """

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class EquivalenceAssertionError(ScenarioAssertionError):
    """
    Raised when old and new backends were expected to behave the same but did not.

    Attributes:
        reason: "status", "location" or "similarity"
        score: body similarity (None when a status/location mismatch short-circuits)
        old_body / new_body: full bodies, so the judgment can be redone by hand
        diff: unified diff of the two bodies
    """

    def __init__(
        self,
        reason: str,
        message: str,
        path: Optional[str] = None,
        score: Optional[float] = None,
        old_body: str = "",
        new_body: str = "",
        diff: str = "",
    ) -> None:
        super().__init__(message, path=path)
        self.reason = reason
        self.score = score
        self.old_body = old_body
        self.new_body = new_body
        self.diff = diff


class DivergenceAssertionError(ScenarioAssertionError):
    """Raised when old and new were expected to differ but are too similar."""

    def __init__(self, score: float, threshold: float, path: Optional[str] = None) -> None:
        super().__init__(
            f"similarity is {score:.4f} (expected < {threshold})", path=path
        )
        self.score = score
        self.threshold = threshold


class ClassificationAssertionError(ScenarioAssertionError):
    """Raised when a response was not produced by the expected origin."""

    def __init__(self, verdict, expected, path: Optional[str] = None) -> None:
        super().__init__(
            f"expected response from {expected.value}, classified as {verdict.value}",
            path=path,
        )
        self.verdict = verdict
        self.expected = expected

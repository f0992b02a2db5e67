"""
Request/response domain model.

A comparison binds one RequestSpec to the two backends and yields one
ResponseRecord per backend. All records are immutable once built.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urljoin

from requests.structures import CaseInsensitiveDict

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})


def _freeze_headers(headers: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    return MappingProxyType(CaseInsensitiveDict(headers or {}))


@dataclass(frozen=True)
class BackendEndpoint:
    """
    One physical server to dial.

    Attributes:
        name: "old" or "new"; tags log lines and failures
        ip: IP address dialed instead of the logical host's DNS answer
        port: TLS port (443 unless a test points elsewhere)
    """

    name: str
    ip: str
    port: int = 443

    def __str__(self) -> str:
        return f"{self.name}@{self.ip}:{self.port}"


@dataclass(frozen=True)
class RequestSpec:
    """Path (with optional query string) resolved against the logical base URL."""

    path: str
    base_url: str
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "headers", _freeze_headers(self.headers))

    @property
    def url(self) -> str:
        return urljoin(self.base_url, self.path)


@dataclass(frozen=True)
class ResponseRecord:
    """
    Status, headers and body captured from one backend.

    Headers are looked up case-insensitively and cannot be mutated.
    """

    status_code: int
    headers: Mapping[str, str]
    body: str
    url: str = ""
    backend: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "headers", _freeze_headers(self.headers))

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name, default)

    @property
    def location(self) -> Optional[str]:
        return self.headers.get("Location")

    @property
    def is_redirect(self) -> bool:
        return self.status_code in REDIRECT_STATUSES

    def to_dict(self, include_body: bool = True) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary for reports."""
        data: Dict[str, Any] = {
            "status_code": self.status_code,
            "headers": dict(self.headers.items()),
            "url": self.url,
            "backend": self.backend,
        }
        if include_body:
            data["body"] = self.body
        else:
            data["body_length"] = len(self.body)
        return data


class ClassificationVerdict(Enum):
    """Which origin actually produced a response."""

    SERVED_BY_LEGACY_ORIGIN = "legacy"
    SERVED_BY_CMS_ORIGIN = "cms"
    INDETERMINATE = "indeterminate"
    # No content claim is made (e.g. a generic access-denied page)
    SKIPPED = "skipped"

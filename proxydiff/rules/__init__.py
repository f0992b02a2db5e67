"""Response classification rules"""

from .classifier import (
    ClassificationRule,
    ClassifierMarkers,
    ResponseClassifier,
    DEFAULT_RULES,
    classify,
    has_cms_content,
    is_legacy_access_denied,
    is_legacy_redirect,
)

__all__ = [
    "ClassificationRule",
    "ClassifierMarkers",
    "ResponseClassifier",
    "DEFAULT_RULES",
    "classify",
    "has_cms_content",
    "is_legacy_access_denied",
    "is_legacy_redirect",
]

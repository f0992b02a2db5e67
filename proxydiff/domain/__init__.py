"""Domain models - request, response and verdict records."""

from .records import (
    BackendEndpoint,
    ClassificationVerdict,
    RequestSpec,
    ResponseRecord,
)

__all__ = ["BackendEndpoint", "ClassificationVerdict", "RequestSpec", "ResponseRecord"]

"""Forced-route transport - dial a fixed backend IP as the logical host."""

from .forced_route import ConnectionFactory, ForcedRouteAdapter, ForcedRouteTransport

__all__ = ["ConnectionFactory", "ForcedRouteAdapter", "ForcedRouteTransport"]

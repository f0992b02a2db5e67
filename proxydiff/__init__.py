"""Differential testing harness for load-balancer reconfigurations."""

__version__ = "1.0.0"

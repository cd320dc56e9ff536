"""Prometheus counters, gauges, descriptors and collectors, with an HTTP API v1 client."""

__version__ = "0.1.0"
"""
Core functionality for tiny-kmv.
"""

from tiny_kmv.core.base import CardinalityEstimator, StreamSummary

__all__ = [
    "StreamSummary",
    "CardinalityEstimator",
]

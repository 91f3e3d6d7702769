"""
tiny-kmv - K-Minimum-Values sketches for streams

tiny-kmv is a Python library for estimating the number of distinct elements in
a data stream, and the overlap between streams, from a fixed-size sample of
their smallest hash values.
"""

__version__ = "0.1.0"

# Import main classes to make them available at the top level
from tiny_kmv.algorithms.kmv import (
    DEFAULT_CAPACITY,
    MAX_HASH_VALUE,
    KMinValues,
    cardinality_intersection,
    cardinality_union,
    direct_sum,
    jaccard,
    union,
)
from tiny_kmv.core.base import CardinalityEstimator, StreamSummary

__all__ = [
    # Core base classes
    "StreamSummary",
    "CardinalityEstimator",
    # Sketch and set algebra
    "KMinValues",
    "union",
    "direct_sum",
    "jaccard",
    "cardinality_union",
    "cardinality_intersection",
    # Constants
    "DEFAULT_CAPACITY",
    "MAX_HASH_VALUE",
]

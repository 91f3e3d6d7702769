"""
Algorithm implementations for tiny-kmv.
"""

from tiny_kmv.algorithms.kmv import KMinValues

__all__ = [
    "KMinValues",
]

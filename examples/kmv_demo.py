"""
K-Minimum-Values Example for tiny-kmv.

This example demonstrates how to use KMV sketches for cardinality estimation
and for comparing the overlap of several streams.
"""

import hashlib
import random

from tiny_kmv import KMinValues, cardinality_intersection, jaccard


def hash64(item) -> int:
    """Hash any item to a uniform unsigned 64-bit integer."""
    digest = hashlib.blake2b(repr(item).encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big")


def demonstrate_basic_kmv():
    """Estimate the number of distinct users in a stream of page views."""
    print("\n=== Basic KMV Demo ===")

    kmv = KMinValues(capacity=1024)
    print(f"Using K={kmv.capacity} (error ~{kmv.relative_error():.2%})")

    rng = random.Random(42)
    seen = set()
    for i in range(200000):
        user = f"user-{rng.randint(0, 50000)}"
        seen.add(user)
        kmv.update(hash64(user))

        if i % 50000 == 0:
            print(f"  Processed {i} views, current estimate: {kmv.cardinality():.0f}")

    estimate = kmv.cardinality()
    print(f"\nFinal estimate: {estimate:.0f} (true: {len(seen)})")
    print(f"Relative error: {abs(estimate - len(seen)) / len(seen):.2%}")

    raw = kmv.to_bytes()
    restored = KMinValues.from_bytes(raw)
    print(
        f"Serialized size: {len(raw)} bytes, "
        f"restored estimate: {restored.cardinality():.0f}"
    )


def demonstrate_overlap():
    """Compare the audiences of two overlapping campaigns."""
    print("\n=== KMV Overlap Demo ===")

    campaign_a = KMinValues(capacity=2048)
    campaign_b = KMinValues(capacity=2048)

    # 0..59999 saw campaign A, 40000..99999 saw campaign B
    for i in range(60000):
        campaign_a.update(hash64(f"visitor-{i}"))
    for i in range(40000, 100000):
        campaign_b.update(hash64(f"visitor-{i}"))

    print(f"Campaign A: {campaign_a.cardinality():.0f} (true: 60000)")
    print(f"Campaign B: {campaign_b.cardinality():.0f} (true: 60000)")
    print(f"Union: {campaign_a.cardinality_union(campaign_b):.0f} (true: 100000)")
    print(
        f"Intersection: {cardinality_intersection(campaign_a, campaign_b):.0f} "
        "(true: 20000)"
    )
    print(f"Jaccard: {jaccard(campaign_a, campaign_b):.3f} (true: 0.200)")


if __name__ == "__main__":
    demonstrate_basic_kmv()
    demonstrate_overlap()

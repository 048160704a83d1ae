"""Coarse key-compatibility heuristic.

This is deliberately not music theory: it only distinguishes an identical
key, a shared tonic with a different mode, and everything else.
"""

from __future__ import annotations

from reactive_dj.models import MusicalKey

IDENTICAL = 1.0
SAME_TONIC = 0.8
MODE_MISMATCH = 0.6
UNRELATED = 0.3


def key_compatibility(a: MusicalKey, b: MusicalKey) -> float:
    """Compatibility in ``[0, 1]`` between two keys.

    ======================================  =====
    Relation                                Score
    ======================================  =====
    identical key                           1.0
    same tonic, different mode              0.8
    different tonic, different mode         0.6
    different tonic, same mode              0.3
    ======================================  =====
    """
    if a == b:
        return IDENTICAL
    if a.tonic == b.tonic:
        return SAME_TONIC
    if a.mode != b.mode:
        return MODE_MISMATCH
    return UNRELATED

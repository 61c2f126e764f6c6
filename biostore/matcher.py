"""
Descriptor Matcher: Compare face descriptors by Euclidean distance.

Turns a stored descriptor and a live descriptor into an authentication
decision. Pure functions: no state, no I/O, deterministic and symmetric in
the distance.

The extractor upstream may find no face in a frame. That "no descriptor"
outcome is handled by the caller and never reaches this module.

Usage:
    from biostore.matcher import compare_descriptors

    result = compare_descriptors(stored.descriptor, live_descriptor)
    if result.is_match:
        ...
"""

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from biostore.models import DESCRIPTOR_LENGTH, as_descriptor

logger = logging.getLogger(__name__)


DEFAULT_THRESHOLD = 0.45


@dataclass
class MatchResult:
    """
    Result of a descriptor comparison.

    Attributes:
        is_match: True iff distance <= threshold.
        distance: Euclidean distance between the two descriptors. Reported
                  for diagnostics on both outcomes.
    """

    is_match: bool
    distance: float


def _validate(stored: np.ndarray, live: np.ndarray) -> None:
    if stored.shape != live.shape:
        raise ValueError(
            f"Descriptor length mismatch: stored={stored.shape[0]}, live={live.shape[0]}"
        )
    if stored.shape[0] != DESCRIPTOR_LENGTH:
        raise ValueError(
            f"Descriptors must have {DESCRIPTOR_LENGTH} values, got {stored.shape[0]}"
        )


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """L2 norm of the element-wise difference, computed in float64."""
    a = as_descriptor(a)
    b = as_descriptor(b)
    _validate(a, b)
    return float(np.linalg.norm(a - b))


def compare_descriptors(
    stored: Sequence[float],
    live: Sequence[float],
    threshold: float = DEFAULT_THRESHOLD,
) -> MatchResult:
    """
    Compare a stored descriptor with a live one.

    Args:
        stored: Enrolled descriptor (128 values).
        live: Descriptor extracted from the current frame (128 values).
        threshold: Maximum distance accepted as the same face.

    Returns:
        MatchResult with the decision and the distance.

    Raises:
        ValueError: If either descriptor does not have 128 values.
    """
    distance = euclidean_distance(stored, live)
    is_match = distance <= threshold

    logger.debug(f"Descriptor distance {distance:.4f} (threshold {threshold}): "
                 f"{'match' if is_match else 'no match'}")
    return MatchResult(is_match=is_match, distance=distance)

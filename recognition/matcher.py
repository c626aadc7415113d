"""
Distance-based matching of a probe embedding against enrolled students.

Each student is reduced to the smallest distance over its reference
embeddings and the closest student overall is accepted when that distance is
within the configured threshold. Confidence is reported as::

    confidence = clip(1 - distance / max_distance, 0, 1)

with ``max_distance`` defaulting to 2.0, the largest distance between unit
vectors under both supported metrics.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

import numpy as np

from core.errors import AmbiguousMatch, DimensionMismatch, NotFound, ValidationError
from core.models import Candidate, as_vector

METRICS = ("euclidean", "cosine")


@dataclass(frozen=True)
class MatcherConfig:
    threshold: float = 0.5
    metric: str = "euclidean"
    normalize: bool = False
    tie_epsilon: float = 1e-6
    max_distance: float = 2.0

    def __post_init__(self) -> None:
        if self.metric not in METRICS:
            raise ValueError(f"Unsupported metric: {self.metric}")
        if self.threshold < 0:
            raise ValueError("threshold must be non-negative")
        if self.max_distance <= 0:
            raise ValueError("max_distance must be positive")

    def confidence(self, distance: float) -> float:
        return float(np.clip(1.0 - distance / self.max_distance, 0.0, 1.0))


@dataclass(frozen=True)
class Matched:
    student_id: str
    distance: float
    confidence: float

    kind = "matched"


@dataclass(frozen=True)
class NoMatch:
    best_distance: Optional[float] = None
    best_student_id: Optional[str] = None

    kind = "no_match"


@dataclass(frozen=True)
class Ambiguous:
    student_ids: Tuple[str, ...]
    distance: float

    kind = "ambiguous"


MatchDecision = Union[Matched, NoMatch, Ambiguous]


def _normalize(vectors: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(vectors, axis=-1, keepdims=True)
    norms[norms == 0] = 1.0
    return vectors / norms


def compute_distances(probe: np.ndarray, references: np.ndarray, config: MatcherConfig) -> np.ndarray:
    """Distances from ``probe`` (D,) to every row of ``references`` (n, D)."""
    if config.normalize:
        probe = _normalize(probe)
        references = _normalize(references)
    if config.metric == "euclidean":
        return np.linalg.norm(references - probe, axis=1)
    probe_norm = np.linalg.norm(probe)
    ref_norms = np.linalg.norm(references, axis=1)
    denom = ref_norms * probe_norm
    denom[denom == 0] = 1.0
    similarity = references @ probe / denom
    return 1.0 - np.clip(similarity, -1.0, 1.0)


def match(probe, candidates: Iterable[Candidate], config: MatcherConfig) -> MatchDecision:
    try:
        probe = as_vector(probe)
    except ValueError as exc:
        raise ValidationError(f"Invalid probe: {exc}") from exc

    best_ids: List[str] = []
    best_distances: List[float] = []
    for student_id, references in candidates:
        references = np.asarray(references, dtype=np.float64)
        if len(references) == 0:
            continue
        if references.shape[1] != probe.shape[0]:
            raise DimensionMismatch(references.shape[1], probe.shape[0])
        per_reference = compute_distances(probe, references, config)
        # corrupted references never compete
        per_reference = per_reference[np.isfinite(per_reference)]
        if per_reference.size == 0:
            continue
        best_ids.append(student_id)
        best_distances.append(float(np.min(per_reference)))

    if not best_ids:
        return NoMatch()

    distances = np.array(best_distances)
    best_idx = int(np.argmin(distances))
    best_dist = float(distances[best_idx])
    if not best_dist <= config.threshold:
        return NoMatch(best_distance=best_dist, best_student_id=best_ids[best_idx])

    tied = np.flatnonzero(distances - best_dist <= config.tie_epsilon)
    if len(tied) > 1:
        return Ambiguous(student_ids=tuple(sorted(best_ids[i] for i in tied)), distance=best_dist)
    return Matched(
        student_id=best_ids[best_idx],
        distance=best_dist,
        confidence=config.confidence(best_dist),
    )


def require_match(decision: MatchDecision) -> Matched:
    """Strict variant for callers that treat anything but a match as an error."""
    if isinstance(decision, Ambiguous):
        raise AmbiguousMatch(decision.student_ids, decision.distance)
    if isinstance(decision, NoMatch):
        raise NotFound("No enrolled student within threshold")
    return decision

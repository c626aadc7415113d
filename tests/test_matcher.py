from __future__ import annotations

import numpy as np
import pytest

from core.errors import AmbiguousMatch, DimensionMismatch, NotFound, ValidationError
from recognition.matcher import Ambiguous, Matched, MatcherConfig, NoMatch, match, require_match


def _candidates():
    return [
        ("alice", np.array([[1.0, 0.0, 0.0]])),
        ("bob", np.array([[0.0, 1.0, 0.0], [0.0, 0.9, 0.1]])),
    ]


def test_close_probe_matches_with_high_confidence():
    config = MatcherConfig(threshold=0.1, metric="euclidean")

    decision = match([0.99, 0.01, 0.0], _candidates(), config)

    assert isinstance(decision, Matched)
    assert decision.student_id == "alice"
    assert decision.distance == pytest.approx(np.sqrt(2) * 0.01)
    assert 0.98 <= decision.confidence <= 1.0


def test_confidence_is_linear_in_distance():
    config = MatcherConfig(max_distance=2.0)

    assert config.confidence(0.0) == 1.0
    assert config.confidence(0.5) == pytest.approx(0.75)
    assert config.confidence(3.0) == 0.0


def test_empty_candidates_is_no_match():
    decision = match([1.0, 0.0, 0.0], [], MatcherConfig())

    assert decision == NoMatch()


def test_student_reduced_to_best_reference():
    config = MatcherConfig(threshold=0.2)

    decision = match([0.0, 0.9, 0.1], _candidates(), config)

    assert isinstance(decision, Matched)
    assert decision.student_id == "bob"
    assert decision.distance == pytest.approx(0.0)


def test_far_probe_reports_best_candidate():
    decision = match([0.0, 0.0, 1.0], _candidates(), MatcherConfig(threshold=0.5))

    assert isinstance(decision, NoMatch)
    assert decision.best_student_id == "bob"
    assert decision.best_distance == pytest.approx(np.linalg.norm([0.0, -0.9, 0.9]))


def test_equal_distances_are_ambiguous():
    candidates = [
        ("alice", np.array([[1.0, 0.0]])),
        ("carol", np.array([[0.0, 1.0]])),
    ]
    probe = [np.sqrt(0.5), np.sqrt(0.5)]

    decision = match(probe, candidates, MatcherConfig(threshold=1.0))

    assert isinstance(decision, Ambiguous)
    assert decision.student_ids == ("alice", "carol")


def test_tie_above_threshold_is_no_match():
    candidates = [
        ("alice", np.array([[1.0, 0.0]])),
        ("carol", np.array([[0.0, 1.0]])),
    ]

    decision = match([np.sqrt(0.5), np.sqrt(0.5)], candidates, MatcherConfig(threshold=0.1))

    assert isinstance(decision, NoMatch)


def test_decision_is_deterministic():
    config = MatcherConfig(threshold=0.3)
    probe = [0.7, 0.7, 0.1]

    decisions = {match(probe, _candidates(), config) for _ in range(20)}

    assert len(decisions) == 1


@pytest.mark.parametrize("probe", [[0.95, 0.05, 0.0], [0.5, 0.5, 0.0], [0.0, 0.2, 0.8]])
def test_lowering_threshold_never_creates_a_match(probe):
    thresholds = [1.5, 1.0, 0.5, 0.2, 0.1, 0.05, 0.0]
    matched = [
        isinstance(match(probe, _candidates(), MatcherConfig(threshold=t)), Matched)
        for t in thresholds
    ]

    # once a lower threshold rejects, every lower one rejects too
    first_reject = matched.index(False) if False in matched else len(matched)
    assert not any(matched[first_reject:])


def test_cosine_metric_ignores_scale():
    config = MatcherConfig(threshold=0.01, metric="cosine")

    decision = match([5.0, 0.0, 0.0], _candidates(), config)

    assert isinstance(decision, Matched)
    assert decision.student_id == "alice"
    assert decision.distance == pytest.approx(0.0)


def test_normalize_makes_euclidean_scale_free():
    plain = match([3.0, 0.0, 0.0], _candidates(), MatcherConfig(threshold=0.1))
    normalized = match([3.0, 0.0, 0.0], _candidates(), MatcherConfig(threshold=0.1, normalize=True))

    assert isinstance(plain, NoMatch)
    assert isinstance(normalized, Matched)


def test_probe_dimension_mismatch():
    with pytest.raises(DimensionMismatch):
        match([1.0, 0.0], _candidates(), MatcherConfig())


def test_invalid_config_rejected():
    with pytest.raises(ValueError):
        MatcherConfig(metric="manhattan")
    with pytest.raises(ValueError):
        MatcherConfig(threshold=-0.1)


def test_require_match():
    matched = Matched("alice", 0.01, 0.995)

    assert require_match(matched) is matched
    with pytest.raises(AmbiguousMatch) as exc_info:
        require_match(Ambiguous(("alice", "carol"), 0.3))
    assert exc_info.value.student_ids == ["alice", "carol"]
    with pytest.raises(NotFound):
        require_match(NoMatch(0.8, "bob"))


def test_non_finite_reference_never_matches():
    config = MatcherConfig(threshold=0.1)
    candidates = [
        ("alice", np.array([[1.0, 0.0, 0.0]])),
        ("bob", np.array([[np.nan, 0.0, 0.0]])),
        ("carol", np.array([[np.inf, 0.0, 0.0], [0.0, 0.0, 1.0]])),
    ]

    decision = match([1.0, 0.0, 0.0], candidates, config)

    assert decision == Matched("alice", 0.0, 1.0)


def test_only_corrupted_references_is_no_match():
    decision = match([1.0, 0.0, 0.0], [("bob", np.array([[np.nan, 0.0, 0.0]]))], MatcherConfig())

    assert decision == NoMatch()


@pytest.mark.parametrize("probe", [[np.nan, 0.0, 0.0], [np.inf, 0.0, 0.0], [[1.0, 0.0, 0.0]]])
def test_invalid_probe_rejected(probe):
    with pytest.raises(ValidationError):
        match(probe, _candidates(), MatcherConfig())

"""Tests for exploration/exploitation selection."""

import random

import pytest

from ensemble.schemas import CandidateAction, ScoredAction
from ensemble.selection import exploration_probability, select_actions


def scored(*pairs):
    return [ScoredAction(action=CandidateAction(type=name), score=score) for name, score in pairs]


class FixedRandom(random.Random):
    """Random source whose `random()` always returns the same value."""

    def __init__(self, value):
        super().__init__(0)
        self.value = value

    def random(self):
        return self.value


@pytest.mark.parametrize(
    "rate, confidence, expected",
    [
        (0.1, 0.5, 0.05),
        (1.0, 0.0, 1.0),
        (0.5, 1.0, 0.0),
        (2.0, 0.0, 1.0),
        (0.5, 1.5, 0.0),
    ],
)
def test_exploration_probability_is_clamped(rate, confidence, expected):
    assert exploration_probability(rate, confidence) == pytest.approx(expected)


def test_exploit_keeps_candidates_within_seventy_percent():
    candidates = scored(("low", 0.3), ("top", 1.0), ("close", 0.75), ("edge", 0.7))

    chosen = select_actions(candidates, exploration_rate=0.0, confidence=0.5, max_batch=10, rng=random.Random(1))

    assert [action.type for action in chosen] == ["top", "close", "edge"]


def test_exploit_is_capped_by_max_batch():
    candidates = scored(("a", 1.0), ("b", 0.9), ("c", 0.8))

    chosen = select_actions(candidates, exploration_rate=0.0, confidence=0.5, max_batch=2, rng=random.Random(1))

    assert [action.type for action in chosen] == ["a", "b"]


def test_full_exploration_picks_exactly_one():
    candidates = scored(("a", 1.0), ("b", 0.1), ("c", 0.1))
    rng = random.Random(3)

    for _ in range(50):
        chosen = select_actions(candidates, exploration_rate=1.0, confidence=0.0, max_batch=10, rng=rng)
        assert len(chosen) == 1


def test_exploration_reaches_low_scoring_candidates():
    candidates = scored(("a", 1.0), ("b", 0.1))

    chosen = select_actions(candidates, exploration_rate=1.0, confidence=0.0, max_batch=10, rng=FixedRandom(0.0))

    assert len(chosen) == 1
    # randrange still uses the seeded generator, so both outcomes are possible over time
    seen = {
        select_actions(candidates, exploration_rate=1.0, confidence=0.0, max_batch=10, rng=random.Random(seed))[0].type
        for seed in range(30)
    }
    assert seen == {"a", "b"}


def test_same_seed_same_choice():
    candidates = scored(("a", 0.5), ("b", 0.5), ("c", 0.4))

    def run(seed):
        rng = random.Random(seed)
        return [
            [action.type for action in select_actions(candidates, exploration_rate=0.6, confidence=0.2, max_batch=3, rng=rng)]
            for _ in range(20)
        ]

    assert run(11) == run(11)


def test_empty_input_selects_nothing():
    assert select_actions([], exploration_rate=1.0, confidence=0.0, max_batch=3, rng=random.Random(0)) == []

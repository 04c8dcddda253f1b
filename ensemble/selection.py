"""Exploration/exploitation selection.

Every random draw of the decide step lives here, behind an injectable
`random.Random`, so selection can be tested without a running pipeline.
"""

import random
from typing import List, Sequence

from .schemas import CandidateAction, ScoredAction

EXPLOIT_RATIO = 0.7


def exploration_probability(exploration_rate: float, confidence: float) -> float:
    """`exploration_rate * (1 - confidence)` clamped to [0, 1]."""
    return max(0.0, min(1.0, exploration_rate * (1.0 - confidence)))


def rank(scored: Sequence[ScoredAction]) -> List[ScoredAction]:
    """Sort by descending score; ties keep their original order."""
    return sorted(scored, key=lambda item: item.score, reverse=True)


def select_actions(
    scored: Sequence[ScoredAction],
    *,
    exploration_rate: float,
    confidence: float,
    max_batch: int,
    rng: random.Random,
) -> List[CandidateAction]:
    """Choose which candidates to execute this tick.

    Args:
        scored: Candidates with their final scores (any order)
        exploration_rate: Agent's base exploration rate
        confidence: Agent's current confidence in [0, 1]
        max_batch: Upper bound on the number of exploited actions
        rng: Random source; the same seed yields the same choice

    Returns:
        One uniformly chosen candidate when exploring, otherwise every candidate
        scoring at least 70% of the best score, best first, capped at max_batch.
        Empty input gives an empty list.
    """
    if not scored:
        return []

    ranked = rank(scored)

    # Exactly one draw decides the mode, a second one picks the explored action
    if rng.random() < exploration_probability(exploration_rate, confidence):
        return [ranked[rng.randrange(len(ranked))].action]

    threshold = ranked[0].score * EXPLOIT_RATIO
    chosen = [item.action for item in ranked if item.score >= threshold]
    return chosen[: max(1, max_batch)]

"""
Learning subsystem: per-agent memory of perception -> action outcomes.

Each agent owns one `LearningState`. It is read during the decide step
(preference and pattern lookups bias candidate scores) and written only
during the learn step, so an agent never mutates it concurrently with its
own decisions. Nothing here is shared between agents.

Three structures are maintained:
- experiences: bounded buffer of recent (context, action, reward) records
- preferences: action type -> smoothed reward, `new = old * 0.8 + reward * 0.2`
- patterns: "<context hash>:<action type>" -> occurrence count and running
  average reward, only for experiences whose reward beats HIGH_REWARD_THRESHOLD
"""

import time
from collections import deque
from dataclasses import dataclass, field
from numbers import Real
from typing import Any, Deque, Dict, Mapping, Optional

from pydantic import BaseModel, Field

from .schemas import PatternRecord

HIGH_REWARD_THRESHOLD = 0.7
LOW_REWARD_THRESHOLD = 0.3
PREFERENCE_RETENTION = 0.8
DEFAULT_PREFERENCE = 0.5
CONFIDENCE_GAIN = 0.01
CONFIDENCE_LOSS = 0.02


def _canonical(value: Any) -> Any:
    # bool is a Real subclass; keep True/False readable
    if isinstance(value, bool):
        return value
    if isinstance(value, Real):
        rounded = round(float(value), 1)
        return 0.0 if rounded == 0 else rounded
    return value


def hash_perceptions(perception: Mapping[str, Any]) -> str:
    """Reduce a perception to a canonical context key.

    Keys are sorted and numbers rounded to one decimal place, so near-identical
    situations collapse to the same key:

        >>> hash_perceptions({"zone": "center", "activity": 0.74})
        'activity:0.7|zone:center'
    """
    return "|".join(f"{key}:{_canonical(perception[key])}" for key in sorted(perception))


def pattern_key(context: str, action_type: str) -> str:
    return f"{context}:{action_type}"


@dataclass(frozen=True)
class Experience:
    """One executed action and the reward it earned."""

    context: str
    action_type: str
    reward: float
    perception: Dict[str, Any] = field(default_factory=dict)
    result: Any = None
    failed: bool = False
    timestamp: float = field(default_factory=time.time)


class PatternEntry(BaseModel):
    """High-reward situation remembered for an action type."""

    context: str
    action_type: str
    count: int = Field(0, ge=0)
    avg_reward: float = Field(0.0, ge=0.0, le=1.0)

    def fold(self, reward: float) -> None:
        self.count += 1
        self.avg_reward = self.avg_reward + (reward - self.avg_reward) / self.count


class LearningState:
    """Preference map, pattern table and experience buffer for one agent."""

    def __init__(self, history_length: int = 100, learning_rate: float = 0.1) -> None:
        self.learning_rate = learning_rate
        self.experiences: Deque[Experience] = deque(maxlen=history_length * 2)
        self.preferences: Dict[str, float] = {}
        self.patterns: Dict[str, PatternEntry] = {}
        self.avg_reward: float = 0.0

    # ------------------------------------------------------------------
    # Read side (decide step)
    # ------------------------------------------------------------------

    def preference(self, action_type: str) -> float:
        return self.preferences.get(action_type, DEFAULT_PREFERENCE)

    def pattern(self, context: str, action_type: str) -> Optional[PatternEntry]:
        return self.patterns.get(pattern_key(context, action_type))

    # ------------------------------------------------------------------
    # Write side (learn step)
    # ------------------------------------------------------------------

    def record(
        self,
        context: str,
        action_type: str,
        reward: float,
        *,
        perception: Optional[Mapping[str, Any]] = None,
        result: Any = None,
        failed: bool = False,
        timestamp: Optional[float] = None,
    ) -> Experience:
        """Fold one outcome into every learned structure.

        Rewards are clamped to [0, 1] first, which keeps preferences and
        pattern averages inside [0, 1] for any input sequence.
        """
        reward = max(0.0, min(1.0, float(reward)))
        experience = Experience(
            context=context,
            action_type=action_type,
            reward=reward,
            perception=dict(perception or {}),
            result=result,
            failed=failed,
            timestamp=timestamp if timestamp is not None else time.time(),
        )
        self.experiences.append(experience)

        alpha = self.learning_rate
        self.avg_reward = (1 - alpha) * self.avg_reward + alpha * reward

        old = self.preference(action_type)
        self.preferences[action_type] = old * PREFERENCE_RETENTION + reward * (1 - PREFERENCE_RETENTION)

        if reward > HIGH_REWARD_THRESHOLD:
            key = pattern_key(context, action_type)
            entry = self.patterns.get(key)
            if entry is None:
                entry = PatternEntry(context=context, action_type=action_type)
                self.patterns[key] = entry
            entry.fold(reward)

        return experience

    def adjust_confidence(self, confidence: float) -> float:
        """Nudge confidence by the running average reward.

        High average reward raises confidence slightly, low average lowers it
        twice as fast, anything in between leaves it unchanged.
        """
        if self.avg_reward > HIGH_REWARD_THRESHOLD:
            return min(1.0, confidence + CONFIDENCE_GAIN)
        if self.avg_reward < LOW_REWARD_THRESHOLD:
            return max(0.0, confidence - CONFIDENCE_LOSS)
        return confidence

    # ------------------------------------------------------------------
    # Snapshot support
    # ------------------------------------------------------------------

    def export_patterns(self) -> Dict[str, PatternRecord]:
        return {
            key: PatternRecord(count=entry.count, avg_reward=entry.avg_reward)
            for key, entry in self.patterns.items()
        }

    def import_state(
        self,
        preferences: Mapping[str, float],
        patterns: Mapping[str, PatternRecord],
        avg_reward: float,
    ) -> None:
        self.preferences = {key: max(0.0, min(1.0, value)) for key, value in preferences.items()}
        self.patterns = {}
        for key, record in patterns.items():
            context, _, action_type = key.rpartition(":")
            self.patterns[key] = PatternEntry(
                context=context,
                action_type=action_type,
                count=record.count,
                avg_reward=max(0.0, min(1.0, record.avg_reward)),
            )
        self.avg_reward = max(0.0, min(1.0, avg_reward))

    def __repr__(self) -> str:
        return (
            f"LearningState(avg_reward={self.avg_reward:.3f}, "
            f"preferences={len(self.preferences)}, patterns={len(self.patterns)})"
        )

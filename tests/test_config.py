"""Tests for environment-driven configuration."""

import pytest

from ensemble.config import Config
from ensemble.schemas import AgentConfig


def test_defaults_validate():
    Config.validate()
    assert "Update Rate" in Config.display()


@pytest.mark.parametrize(
    "attribute, value",
    [
        ("UPDATE_RATE_MS", 0),
        ("HISTORY_LENGTH", 0),
        ("MAX_ACTIONS", -1),
        ("LEARNING_RATE", 1.5),
        ("EXPLORATION_RATE", -0.1),
    ],
)
def test_out_of_range_values_are_rejected(monkeypatch, attribute, value):
    monkeypatch.setattr(Config, attribute, value)

    with pytest.raises(ValueError):
        Config.validate()


def test_agent_config_reads_defaults_and_overrides(monkeypatch):
    monkeypatch.setattr(Config, "UPDATE_RATE_MS", 20)
    monkeypatch.setattr(Config, "EXPLORATION_RATE", 0.25)

    config = AgentConfig(history_length=7)

    assert config.update_interval == pytest.approx(0.02)
    assert config.exploration_rate == 0.25
    assert config.history_length == 7


def test_seed_appears_in_display(monkeypatch):
    monkeypatch.setattr(Config, "SEED", 1234)
    assert "Seed: 1234" in Config.display()

    monkeypatch.setattr(Config, "SEED", None)
    assert "Seed: random" in Config.display()

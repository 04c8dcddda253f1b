"""
Ensemble Configuration

Loads configuration from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return int(raw)


class Config:
    """Application configuration loaded from environment variables."""

    # Runtime timer
    # Milliseconds between timer firings; each agent may run slower via its own interval
    UPDATE_RATE_MS: int = int(os.getenv("ENSEMBLE_UPDATE_RATE_MS", "50"))

    # Agent defaults
    HISTORY_LENGTH: int = int(os.getenv("ENSEMBLE_HISTORY_LENGTH", "100"))
    LEARNING_RATE: float = float(os.getenv("ENSEMBLE_LEARNING_RATE", "0.1"))
    EXPLORATION_RATE: float = float(os.getenv("ENSEMBLE_EXPLORATION_RATE", "0.1"))
    MAX_ACTIONS: int = int(os.getenv("ENSEMBLE_MAX_ACTIONS", "10"))

    # Seed shared by agents that are not handed their own random source
    SEED: Optional[int] = _optional_int("ENSEMBLE_SEED")

    # Persistence
    SNAPSHOT_DIR: Path = Path(os.getenv("ENSEMBLE_SNAPSHOT_DIR", "ensemble_snapshots"))

    # Logging
    VERBOSE: bool = bool(os.getenv("ENSEMBLE_VERBOSE"))

    # Project Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent
    DESCRIPTORS_DIR: Path = PROJECT_ROOT / "examples" / "descriptors"

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if values are out of range."""
        if cls.UPDATE_RATE_MS <= 0:
            raise ValueError(
                "ENSEMBLE_UPDATE_RATE_MS must be a positive number of milliseconds"
            )

        if cls.HISTORY_LENGTH <= 0:
            raise ValueError("ENSEMBLE_HISTORY_LENGTH must be >= 1")

        if cls.MAX_ACTIONS <= 0:
            raise ValueError("ENSEMBLE_MAX_ACTIONS must be >= 1")

        for name, value in (
            ("ENSEMBLE_LEARNING_RATE", cls.LEARNING_RATE),
            ("ENSEMBLE_EXPLORATION_RATE", cls.EXPLORATION_RATE),
        ):
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Ensemble Configuration:",
            f"  Update Rate: {cls.UPDATE_RATE_MS}ms",
            f"  History Length: {cls.HISTORY_LENGTH}",
            f"  Learning Rate: {cls.LEARNING_RATE}",
            f"  Exploration Rate: {cls.EXPLORATION_RATE}",
            f"  Max Actions: {cls.MAX_ACTIONS}",
            f"  Seed: {cls.SEED if cls.SEED is not None else 'random'}",
            f"  Snapshots: {cls.SNAPSHOT_DIR}",
        ]
        return "\n".join(lines)

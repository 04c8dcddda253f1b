"""
PersistenceStrategy interface for saving learned state between sessions.

Persistence is OPTIONAL. A session runs entirely in memory unless a
strategy is handed to the runtime; the core never decides on a storage
format beyond the JSON-compatible `AgentSnapshot` shape:

    {preferences, patterns, avg_reward, confidence, current_state, dwell_time}

Two included implementations:
1. InMemoryPersistence - dict-based, lost on exit (tests, prototyping)
2. JsonPersistence - one human-readable JSON file per agent per session

Usage pattern:
    persistence = JsonPersistence("ensemble_snapshots")
    runtime = AgentRuntime(persistence=persistence)
    ...
    await runtime.save_learning("evening-set")
    # next session
    await runtime.load_learning("evening-set")
"""

import asyncio
import json
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .config import Config
from .schemas import AgentSnapshot


class PersistenceStrategy(ABC):
    """Abstract base class for learning-state persistence.

    All methods are async so file or network backends never block the timer
    loop; for the in-memory backend they are effectively no-ops.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the backend (create directories, open connections)."""

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources. Stored data stays readable."""

    @abstractmethod
    async def save_snapshot(self, session_id: str, snapshot: AgentSnapshot) -> None:
        """Store (or replace) the snapshot of one agent in a session."""

    @abstractmethod
    async def load_snapshot(self, session_id: str, agent_id: str) -> Optional[AgentSnapshot]:
        """Return the stored snapshot, or None if the agent has none."""

    @abstractmethod
    async def list_snapshots(self, session_id: str) -> List[str]:
        """Return agent ids with a stored snapshot in the session, sorted."""

    @abstractmethod
    async def delete_session(self, session_id: str) -> None:
        """Remove every snapshot stored for the session."""


class InMemoryPersistence(PersistenceStrategy):
    """Dict-backed persistence. Data is lost when the process exits."""

    def __init__(self) -> None:
        self.snapshots: Dict[Tuple[str, str], AgentSnapshot] = {}

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        # Data is kept so callers can inspect it after a run
        pass

    async def save_snapshot(self, session_id: str, snapshot: AgentSnapshot) -> None:
        self.snapshots[(session_id, snapshot.agent_id)] = snapshot.model_copy(deep=True)

    async def load_snapshot(self, session_id: str, agent_id: str) -> Optional[AgentSnapshot]:
        snapshot = self.snapshots.get((session_id, agent_id))
        return snapshot.model_copy(deep=True) if snapshot is not None else None

    async def list_snapshots(self, session_id: str) -> List[str]:
        return sorted(agent_id for sid, agent_id in self.snapshots if sid == session_id)

    async def delete_session(self, session_id: str) -> None:
        for key in [key for key in self.snapshots if key[0] == session_id]:
            del self.snapshots[key]


class JsonPersistence(PersistenceStrategy):
    """File-based persistence using pretty-printed JSON.

    Directory structure:
    ```
    {base_path}/
      {session_id}/
        orchestrator.json
        dynamics.json
        ...
    ```

    All file I/O runs in the default thread pool via `asyncio.to_thread`.
    """

    def __init__(self, base_path: Union[Path, str, None] = None):
        self.base_path = Path(base_path) if base_path is not None else Config.SNAPSHOT_DIR

    async def initialize(self) -> None:
        await asyncio.to_thread(self.base_path.mkdir, parents=True, exist_ok=True)

    async def close(self) -> None:
        return None

    async def save_snapshot(self, session_id: str, snapshot: AgentSnapshot) -> None:
        path = self._snapshot_path(session_id, snapshot.agent_id)
        await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
        payload = snapshot.model_dump(mode="json")
        await asyncio.to_thread(path.write_text, json.dumps(payload, indent=2), "utf-8")

    async def load_snapshot(self, session_id: str, agent_id: str) -> Optional[AgentSnapshot]:
        path = self._snapshot_path(session_id, agent_id)
        if not path.exists():
            return None
        text = await asyncio.to_thread(path.read_text, "utf-8")
        return AgentSnapshot.model_validate_json(text)

    async def list_snapshots(self, session_id: str) -> List[str]:
        directory = self._session_dir(session_id)
        if not directory.exists():
            return []
        paths = await asyncio.to_thread(lambda: list(directory.glob("*.json")))
        return sorted(path.stem for path in paths)

    async def delete_session(self, session_id: str) -> None:
        directory = self._session_dir(session_id)
        if directory.exists():
            await asyncio.to_thread(shutil.rmtree, directory)

    def _session_dir(self, session_id: str) -> Path:
        return self.base_path / session_id

    def _snapshot_path(self, session_id: str, agent_id: str) -> Path:
        return self._session_dir(session_id) / f"{agent_id}.json"

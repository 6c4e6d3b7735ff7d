"""
Workflow snapshot persistence

A single serialized WorkflowState blob stored under one fixed key. Saves,
loads and clears are best-effort: storage failures are logged and turned into
no-ops, never propagated to the flow.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from .main import WorkflowState

logger = logging.getLogger(__name__)

STORAGE_KEY = "kyc_flow_state"


class PersistenceCache(ABC):
    """Base class for snapshot stores"""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def save(self, state: WorkflowState) -> None:
        if not self.enabled:
            return
        try:
            self._write(json.dumps(state.to_dict()))
        except Exception as e:
            logger.warning(f"Failed to save workflow state: {e}")

    def load(self) -> Optional[WorkflowState]:
        if not self.enabled:
            return None
        try:
            raw = self._read()
            if not raw:
                return None
            data: Dict[str, Any] = json.loads(raw)
            return WorkflowState.from_dict(data)
        except Exception as e:
            logger.warning(f"Failed to load workflow state: {e}")
            return None

    def clear(self) -> None:
        if not self.enabled:
            return
        try:
            self._remove()
        except Exception as e:
            logger.warning(f"Failed to clear workflow state: {e}")

    @abstractmethod
    def _write(self, payload: str) -> None:
        pass

    @abstractmethod
    def _read(self) -> Optional[str]:
        pass

    @abstractmethod
    def _remove(self) -> None:
        pass


class MemoryStore(PersistenceCache):
    """Keeps the snapshot in process memory"""

    def __init__(self, enabled: bool = True):
        super().__init__(enabled)
        self._items: Dict[str, str] = {}

    def _write(self, payload: str) -> None:
        self._items[STORAGE_KEY] = payload

    def _read(self) -> Optional[str]:
        return self._items.get(STORAGE_KEY)

    def _remove(self) -> None:
        self._items.pop(STORAGE_KEY, None)


class JsonFileStore(PersistenceCache):
    """Keeps the snapshot in <directory>/kyc_flow_state.json"""

    def __init__(self, directory: Path, enabled: bool = True):
        super().__init__(enabled)
        self.directory = Path(directory)

    @property
    def path(self) -> Path:
        return self.directory / f"{STORAGE_KEY}.json"

    def _write(self, payload: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        # Write then rename so readers never see a half-written snapshot
        tmp_path = self.path.with_suffix(".json.tmp")
        tmp_path.write_text(payload)
        tmp_path.replace(self.path)

    def _read(self) -> Optional[str]:
        if not self.path.exists():
            return None
        return self.path.read_text()

    def _remove(self) -> None:
        if self.path.exists():
            self.path.unlink()

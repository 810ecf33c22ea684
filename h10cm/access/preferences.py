"""
H10CM - Program Preference Stores

Persistence of each user's selected program context, restored when a session
initializes.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Union

from h10cm.access.interfaces import PreferenceStore

logger = logging.getLogger("H10CM_Preferences")


class MemoryPreferenceStore(PreferenceStore):
    """Process-local preference store."""

    def __init__(self):
        self._programs: Dict[str, str] = {}

    def load_program(self, user_id: str) -> Optional[str]:
        return self._programs.get(user_id)

    def save_program(self, user_id: str, program_id: Optional[str]) -> None:
        if program_id is None:
            self._programs.pop(user_id, None)
        else:
            self._programs[user_id] = program_id


class JsonPreferenceStore(PreferenceStore):
    """
    Preference store backed by a JSON file.

    The file holds a single object mapping user ids to program ids. A missing
    or unreadable file is treated as empty.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read preferences from {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed preferences file {self.path}")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def load_program(self, user_id: str) -> Optional[str]:
        return self._read().get(user_id)

    def save_program(self, user_id: str, program_id: Optional[str]) -> None:
        data = self._read()
        if program_id is None:
            data.pop(user_id, None)
        else:
            data[user_id] = program_id

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        tmp_path.replace(self.path)

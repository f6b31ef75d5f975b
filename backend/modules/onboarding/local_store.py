"""
Local flag stores.

JsonFileFlagStore persists flags in a small JSON file so the CLI keeps the
onboarding hint between runs. InMemoryFlagStore is for tests.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


class JsonFileFlagStore:
    """Flags stored as a JSON object in one file."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        content = self._path.read_text(encoding="utf-8")
        if not content.strip():
            return {}
        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError(f"{self._path} does not contain a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def _save(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        # Write to a sibling temp file and swap it in so readers never see half a file
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".flags-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, self._path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)
        logger.debug(f"Local flag {key} set to {value}")

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)


class InMemoryFlagStore:
    """Flags held in a dict, with failure injection."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self.values: dict[str, str] = dict(initial or {})
        self._failures: list[Exception] = []

    def fail_next(self, error: Exception) -> None:
        self._failures.append(error)

    def _maybe_fail(self) -> None:
        if self._failures:
            raise self._failures.pop(0)

    def get(self, key: str) -> Optional[str]:
        self._maybe_fail()
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self._maybe_fail()
        self.values[key] = value

    def remove(self, key: str) -> None:
        self._maybe_fail()
        self.values.pop(key, None)

"""
A small durable key-value store backed by a single JSON file.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from dataset_watcher.exceptions import StateStoreError

log = logging.getLogger(__name__)


class StateStore:
    """
    Persists a flat mapping of JSON values to disk.

    Every `save` rewrites the whole file atomically (temporary file + rename) so a
    crash mid-write never leaves a truncated state behind. Callers are expected to
    serialize read-modify-write sequences themselves.
    """

    def __init__(self, config_dir_path: Path, filename: str = "state.json"):
        self.path = config_dir_path / filename

    def _read_sync(self) -> dict[str, Any]:
        """Reads the stored mapping, treating a missing or corrupt file as empty."""
        if not self.path.is_file():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            log.warning(
                f"[yellow]Could not read state file '{self.path}', "
                f"starting from defaults: {e}[/yellow]"
            )
            return {}
        if not isinstance(data, dict):
            log.warning(
                f"[yellow]State file '{self.path}' does not hold a mapping, "
                "ignoring it.[/yellow]"
            )
            return {}
        return data

    def _write_sync(self, data: dict[str, Any]) -> None:
        """Writes the mapping atomically."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=".state-", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, sort_keys=True)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StateStoreError(f"Failed to save state to '{self.path}': {e}") from e

    def _save_sync(self, patch: dict[str, Any]) -> None:
        data = self._read_sync()
        data.update(patch)
        self._write_sync(data)

    async def load(self, defaults: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Loads the stored mapping layered over `defaults`.

        Args:
            defaults: Values returned for keys that have never been saved.

        Returns:
            A new dictionary; mutating it does not affect the store.
        """
        stored = await asyncio.to_thread(self._read_sync)
        return {**(defaults or {}), **stored}

    async def save(self, patch: dict[str, Any]) -> None:
        """Merges `patch` into the stored mapping and writes it to disk."""
        if not patch:
            return
        await asyncio.to_thread(self._save_sync, patch)

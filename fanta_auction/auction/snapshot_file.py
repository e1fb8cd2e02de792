"""
Latest-snapshot persistence.

Only the most recent committed snapshot is kept; there is no transaction log.
Uses atomic writes (temp file + rename) so the file is never left half written.
"""

import json
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class SnapshotFile:
    """JSON file holding the latest auction snapshot."""

    def __init__(self, filepath: Path):
        """
        Args:
            filepath: Path to the JSON snapshot file
        """
        self.filepath = Path(filepath)
        self.filepath.parent.mkdir(parents=True, exist_ok=True)

    def save(self, snapshot: dict) -> None:
        """
        Write snapshot atomically.

        Args:
            snapshot: Snapshot dict (version, published_at, state)
        """
        temp_path = self.filepath.with_suffix('.tmp')
        with open(temp_path, 'w', encoding='utf-8') as f:
            json.dump(snapshot, f, indent=2)

        temp_path.replace(self.filepath)
        logger.debug(f"Saved snapshot v{snapshot.get('version')} → {self.filepath}")

    def load(self) -> Optional[dict]:
        """
        Read the latest snapshot.

        Returns:
            Snapshot dict or None if missing or unreadable
        """
        if not self.filepath.exists():
            logger.debug(f"Snapshot file does not exist: {self.filepath}")
            return None

        try:
            with open(self.filepath, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.error(f"Failed to read snapshot {self.filepath}: {e}")
            return None

        logger.info(f"Loaded snapshot v{data.get('version')} ← {self.filepath}")
        return data


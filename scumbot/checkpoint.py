"""Durable per-category read positions.

Each category owns one JSON file in the state directory::

    {"CurrentLogFile": "...", "LastLineNumber": 103, "LastUpdate": "2024-..."}

Files are replaced atomically (temp file, then rename) so a crash mid-write
leaves the previous checkpoint intact.
"""

import json
from collections import namedtuple
from datetime import datetime, timezone

from twisted.python import filepath

from scumbot.errors import CheckpointCorrupt

Checkpoint = namedtuple("Checkpoint",
                        ["category", "active_file", "last_line", "last_updated"])


def utcnow():
    return datetime.now(timezone.utc)


def advance(checkpoint, category, active_file, total_lines, restarted=False,
            now=None):
    """Checkpoint after a successful read of ``active_file`` up to ``total_lines``.

    A different file than the one recorded is a rotation: counting restarts
    from whatever the new file holds, never from the old number. So does a
    file the reader found truncated in place (``restarted``).
    """
    now = now or utcnow()
    if (checkpoint is not None and checkpoint.active_file == active_file
            and not restarted):
        # same file: never move backwards
        total_lines = max(total_lines, checkpoint.last_line)
    return Checkpoint(category, active_file, total_lines, now)


class CheckpointStore:
    def __init__(self, state_dir):
        self.root = filepath.FilePath(state_dir)

    def path_for(self, category):
        return self.root.child(f"{category}.json")

    def load(self, category):
        """Return the stored Checkpoint, None if there is none yet.

        Raises CheckpointCorrupt for a file that exists but cannot be used.
        """
        fp = self.path_for(category)
        if not fp.exists():
            return None
        try:
            data = json.loads(fp.getContent().decode("utf-8"))
            last_line = int(data["LastLineNumber"])
            if last_line < 0:
                raise ValueError("negative line number")
            updated = data.get("LastUpdate")
            return Checkpoint(category,
                              str(data["CurrentLogFile"]),
                              last_line,
                              datetime.fromisoformat(updated) if updated else None)
        except (IOError, OSError, UnicodeDecodeError, ValueError,
                KeyError, TypeError) as e:
            raise CheckpointCorrupt(f"{fp.path}: {e}") from e

    def save(self, checkpoint):
        if not self.root.exists():
            self.root.makedirs(ignoreExistingDirectory=True)
        stamp = checkpoint.last_updated or utcnow()
        data = {"CurrentLogFile": checkpoint.active_file,
                "LastLineNumber": checkpoint.last_line,
                "LastUpdate": stamp.isoformat()}
        self.path_for(checkpoint.category).setContent(
            json.dumps(data, indent=2).encode("utf-8"), ext=b".tmp")

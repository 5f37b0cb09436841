"""Find the log file a category is currently writing to.

The server starts a new ``{category}_{YYYYMMDDhhmmss}.log`` on every restart
and leaves the old ones behind, so the active file is the newest one.
"""

import os
import re
from collections import namedtuple

from twisted.python import filepath

from scumbot.errors import LogUnavailable

LogFileHandle = namedtuple("LogFileHandle", ["path", "created"])

STAMP_RE = re.compile(r"_(\d{14})\.log$")


def creation_time(path):
    st = os.stat(path)
    # st_birthtime where the platform has it; ctime is creation time on Windows
    # but the last inode change (chmod, chown) on Linux
    return getattr(st, "st_birthtime", st.st_ctime)


def name_stamp(path):
    """The ``YYYYMMDDhhmmss`` the server put in the file name, "" without one."""
    m = STAMP_RE.search(path)
    return m.group(1) if m else ""


def candidates(log_dir, category):
    """All rotated files of ``category`` in ``log_dir`` as LogFileHandles."""
    root = filepath.FilePath(log_dir)
    if not root.isdir():
        raise LogUnavailable(f"log directory {root.path} is missing")
    # the suffix has to start with a digit so "kill" never picks up "kill_feed_..."
    name_re = re.compile(r"^" + re.escape(category) + r"_\d[^/\\]*\.log$")
    handles = []
    for child in root.globChildren(f"{category}_*.log"):
        if not name_re.match(child.basename()):
            continue
        try:
            handles.append(LogFileHandle(child.path, creation_time(child.path)))
        except (IOError, OSError):
            # rotated away between the listing and the stat
            continue
    return handles


def resolve(log_dir, category):
    """Return the active LogFileHandle of ``category``, None when there is none.

    The server's own creation stamp in the file name decides first, since a
    Linux ctime moves whenever an old file is touched by chmod or a backup
    tool. Files without one fall back to the filesystem creation time, and
    equal times go to the lexically greatest path.
    """
    handles = candidates(log_dir, category)
    if not handles:
        return None
    return max(handles, key=lambda h: (name_stamp(h.path), h.created, h.path))

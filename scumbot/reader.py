"""Incremental line reading for growing log files.

The game writes UTF-16 LE with a BOM, so lines are split on the *encoded*
newline in binary mode and decoded one at a time. That keeps memory flat on
big files and gives plain byte offsets that can be seeked to on the next tick
(text-mode ``tell()`` on a UTF-16 stream is far too slow to call per line).

Only complete lines count. A line still being written (no newline yet) is
left for the next read, so it is never split in two.
"""

import codecs
from collections import namedtuple

from scumbot.errors import LogUnavailable

DEFAULT_ENCODING = "utf-16"
CHUNK_SIZE = 64 * 1024

# (bom, codec to decode with once the bom is skipped, bytes per code unit)
BOMS = [(codecs.BOM_UTF8, "utf-8", 1),
        (codecs.BOM_UTF16_LE, "utf-16-le", 2),
        (codecs.BOM_UTF16_BE, "utf-16-be", 2)]

ReadResult = namedtuple("ReadResult",
                        ["new_lines", "total_lines", "success", "offset",
                         "restarted", "error"])
# where the last read stopped: line count and byte position after that line
Offset = namedtuple("Offset", ["line", "byte"])


def failed(error):
    return ReadResult([], 0, False, None, False, error)


def detect_codec(head, encoding):
    """Work out (codec, bytes to skip, code unit width) from the file head."""
    name = codecs.lookup(encoding).name
    family = "utf-16" if name.startswith("utf-16") else name.split("-sig")[0]
    for bom, codec, unit in BOMS:
        if head.startswith(bom) and codec.startswith(family):
            return codec, len(bom), unit
    if name == "utf-16":
        return "utf-16-le", 0, 2
    if name.startswith("utf-16"):
        return name, 0, 2
    if name == "utf-8-sig":
        return "utf-8", 0, 1
    return name, 0, 1


def iter_lines(handle, start, codec, unit):
    """Yield (raw line bytes, byte offset after the line) for complete lines.

    ``start`` must be the start of a line, so every newline that is a real
    one sits on a code-unit boundary relative to it.
    """
    newline = "\n".encode(codec)
    handle.seek(start)
    buf = b""
    base = start
    while True:
        chunk = handle.read(CHUNK_SIZE)
        if not chunk:
            return  # whatever is left in buf is a partial line
        buf += chunk
        pos = 0
        while True:
            idx = buf.find(newline, pos)
            # skip matches straddling two code units
            while idx != -1 and (idx - pos) % unit:
                idx = buf.find(newline, idx + 1)
            if idx == -1:
                break
            end = idx + len(newline)
            yield buf[pos:idx], base + end
            pos = end
        buf = buf[pos:]
        base += pos


def decode_line(raw, codec):
    line = raw.decode(codec, errors="replace")
    return line.rstrip("\r").lstrip("\ufeff")


def _open(path, encoding):
    handle = open(path, "rb")
    head = handle.read(4)
    codec, skip, unit = detect_codec(head, encoding)
    return handle, codec, skip, unit


def tail(path, encoding=DEFAULT_ENCODING):
    """Count the complete lines of ``path`` without returning any of them.

    Used on a category's very first run so years of history are not replayed.
    """
    try:
        handle, codec, skip, unit = _open(path, encoding)
        with handle:
            total, end = 0, skip
            for _, end in iter_lines(handle, skip, codec, unit):
                total += 1
    except (IOError, OSError) as e:
        return failed(LogUnavailable(f"could not read {path}: {e}"))
    return ReadResult([], total, True, Offset(total, end), False, None)


def read(path, from_line, encoding=DEFAULT_ENCODING, offset=None):
    """Return the complete lines of ``path`` after line number ``from_line``.

    ``offset`` is the Offset handed back by the previous read of the same
    file; when it still lines up the file is seeked instead of rescanned.
    A file holding fewer lines than ``from_line`` was truncated or replaced
    in place: it is read again from the top and ``restarted`` is set.
    """
    try:
        handle, codec, skip, unit = _open(path, encoding)
        with handle:
            handle.seek(0, 2)
            size = handle.tell()
            if offset is not None and offset.line == from_line and skip <= offset.byte <= size:
                lines, total, end = _collect(handle, offset.byte, from_line, codec, unit)
                return ReadResult(lines, total, True, Offset(total, end), False, None)

            line_no, start = 0, skip
            if from_line > 0:
                for _, end in iter_lines(handle, skip, codec, unit):
                    line_no += 1
                    start = end
                    if line_no == from_line:
                        break
            restarted = line_no < from_line
            if restarted:
                line_no, start = 0, skip
            lines, total, end = _collect(handle, start, line_no, codec, unit)
    except (IOError, OSError) as e:
        return failed(LogUnavailable(f"could not read {path}: {e}"))
    return ReadResult(lines, total, True, Offset(total, end), restarted, None)


def _collect(handle, start, line_no, codec, unit):
    lines, end = [], start
    for raw, end in iter_lines(handle, start, codec, unit):
        lines.append(decode_line(raw, codec))
    return lines, line_no + len(lines), end

"""Line grammars: ordered pattern tables that turn log lines into events.

A Grammar is a category's list of Rules. Rules are tried in order and the
first one whose pattern matches builds the event, so specific patterns have
to come before generic fallbacks. Most lines match nothing and are simply
ignored.

Field conversion is explicit. A rule that matches but carries a value that
will not convert raises MalformedLine instead of guessing.
"""

import math
import re
from collections import namedtuple
from datetime import datetime, timezone
from types import MappingProxyType

from scumbot.errors import MalformedLine

Actor = namedtuple("Actor", ["name", "player_id", "steam_id"])
Location = namedtuple("Location", ["x", "y", "z"])
Event = namedtuple("Event", ["timestamp", "category", "event_type", "actor",
                             "attributes", "location", "raw_line"])

NOBODY = Actor("", None, None)

# every line the server writes starts with this
TIMESTAMP = r"^(?P<ts>\d{4}\.\d\d\.\d\d-\d\d\.\d\d\.\d\d):\s+"
TIMESTAMP_FORMAT = "%Y.%m.%d-%H.%M.%S"

# anything further out is not a position on any map
COORDINATE_LIMIT = 1.0e8

RE_XYZ = re.compile(r"X=(?P<x>\S+?),?\s+Y=(?P<y>\S+?),?\s+Z=(?P<z>[^\s,)\]]+)")
RE_TRIPLE = re.compile(r"(?P<x>-?[\d.]+),\s*(?P<y>-?[\d.]+),\s*(?P<z>-?[\d.]+)")


def parse_timestamp(text):
    try:
        stamp = datetime.strptime(text, TIMESTAMP_FORMAT)
    except (TypeError, ValueError):
        raise MalformedLine(f"bad timestamp {text!r}")
    # server logs are written in UTC
    return stamp.replace(tzinfo=timezone.utc)


def to_int(value, field="value"):
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise MalformedLine(f"{field} is not an integer: {value!r}")


def to_float(value, field="value"):
    try:
        number = float(str(value).strip().rstrip(","))
    except (TypeError, ValueError):
        raise MalformedLine(f"{field} is not a number: {value!r}")
    if not math.isfinite(number):
        raise MalformedLine(f"{field} is not finite: {value!r}")
    return number


def to_location(x, y, z):
    loc = Location(to_float(x, "x"), to_float(y, "y"), to_float(z, "z"))
    if any(abs(c) > COORDINATE_LIMIT for c in loc):
        raise MalformedLine(f"coordinates out of range: {loc}")
    return loc


def find_location(text):
    """Location from the first ``X=.. Y=.. Z=..`` group in ``text``, or None."""
    m = RE_XYZ.search(text or "")
    if not m:
        return None
    return to_location(m.group("x"), m.group("y"), m.group("z"))


def triple_location(text):
    """Location from a bare ``1.0, 2.0, 3.0`` triple."""
    m = RE_TRIPLE.search(text or "")
    if not m:
        raise MalformedLine(f"no coordinates in {text!r}")
    return to_location(m.group("x"), m.group("y"), m.group("z"))


def make_actor(name, player_id=None, steam_id=None):
    return Actor(name or "",
                 to_int(player_id, "player id") if player_id not in (None, "") else None,
                 str(steam_id) if steam_id else None)


class Rule:
    """One line pattern: an event type, a regex and a field extractor.

    The extractor receives the match object and returns a dict with any of
    ``actor``, ``attributes`` and ``location``. With no extractor the named
    groups (other than the timestamp) become the attributes.
    """

    def __init__(self, event_type, pattern, extract=None, timestamped=True):
        self.event_type = event_type
        self.regex = re.compile((TIMESTAMP if timestamped else r"^") + pattern)
        self.extract = extract

    def match(self, line):
        return self.regex.match(line)

    def build(self, category, match, line):
        if self.extract is not None:
            fields = self.extract(match) or {}
        else:
            fields = {"attributes": {k: v for k, v in match.groupdict().items()
                                     if k != "ts" and v is not None}}
        ts = match.groupdict().get("ts")
        return Event(parse_timestamp(ts) if ts else fields.get("timestamp"),
                     category,
                     self.event_type,
                     fields.get("actor") or NOBODY,
                     MappingProxyType(dict(fields.get("attributes") or {})),
                     fields.get("location"),
                     line)

    def __repr__(self):
        return f"<Rule {self.event_type} {self.regex.pattern!r}>"


class Grammar:
    """The ordered, immutable rule table of one category."""

    def __init__(self, category, rules, version=1):
        self.category = category
        self.rules = tuple(rules)
        self.version = version

    def parse(self, line):
        for rule in self.rules:
            m = rule.match(line)
            if m:
                return rule.build(self.category, m, line)
        return None

    def event_types(self):
        return sorted({r.event_type for r in self.rules})


class GrammarRegistry:
    def __init__(self, grammars=()):
        self.grammars = {}
        for g in grammars:
            self.register(g)

    def register(self, grammar):
        if grammar.category in self.grammars:
            raise ValueError(f"grammar for {grammar.category} already registered")
        self.grammars[grammar.category] = grammar

    def categories(self):
        return sorted(self.grammars)

    def get(self, category):
        return self.grammars.get(category)

    def parse_line(self, category, raw_line):
        """Event for ``raw_line`` or None when nothing in the grammar matches.

        Raises MalformedLine when a rule matched but its fields are bad.
        """
        grammar = self.grammars.get(category)
        if grammar is None:
            return None
        line = raw_line.rstrip("\r\n")
        if not line.strip():
            return None
        try:
            return grammar.parse(line)
        except MalformedLine as e:
            e.line = raw_line
            raise

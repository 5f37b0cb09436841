"""Post-processing of parsed events: display names, cleanup, coordinates.

Everything here is a pure function of the event (plus the static item
catalog); nothing touches the network or the filesystem after the catalog
is loaded.
"""

import json
import re
import unicodedata

from twisted.python import log

NAME_LIMIT = 100
TEXT_LIMIT = 500
REPEAT_LIMIT = 3

# attribute keys holding player-controlled text
NAME_KEYS = ("victim", "target", "owner", "event", "trader", "command", "kind")
TEXT_KEYS = ("text", "args", "reason", "detail")
# attribute keys holding game item/blueprint identifiers
ITEM_KEYS = ("item", "weapon", "vehicle", "bomb")

# map is a square of 8 x 8 km centred on 0,0, split into 4 x 4 sectors
MAP_HALF_SIZE = 400000.0
GRID_ROWS = "ABCD"
GRID_COLUMNS = 4

RE_REPEAT = re.compile(r"(.)\1{%d,}" % REPEAT_LIMIT, re.DOTALL)
RE_MARKDOWN = re.compile(r"([\\`*_~|>])")
RE_MENTION = re.compile(r"@(everyone|here)", re.IGNORECASE)
RE_ITEM_AFFIX = re.compile(r"^(?:BP_|BPC_)?(?:Weapon_|Item_)?|_C$")
# bidirectional overrides reorder the rest of the message
BIDI_CONTROLS = {chr(c) for c in list(range(0x202A, 0x202F)) + list(range(0x2066, 0x206A))}

CHAT_SCOPES = {"global": "Global", "local": "Local", "squad": "Squad", "admin": "Admin"}
WEAPON_TYPES = {"projectile": "ranged", "melee": "melee", "explosion": "explosive"}
LOCK_TYPES = {"basic": "Basic", "medium": "Medium", "advanced": "Advanced", "dial": "Dial"}


def strip_controls(text):
    return "".join(ch for ch in text
                   if unicodedata.category(ch) != "Cc" and ch not in BIDI_CONTROLS)


def collapse_repeats(text, limit=REPEAT_LIMIT):
    return RE_REPEAT.sub(lambda m: m.group(1) * limit, text)


def cap(text, limit):
    if len(text) <= limit:
        return text
    return text[:limit - 1] + "…"


def escape_markdown(text):
    text = RE_MARKDOWN.sub(r"\\\1", text)
    # a zero width space keeps the mention from pinging anyone
    return RE_MENTION.sub("@\u200b\\1", text)


def clean(text, limit=TEXT_LIMIT):
    """Make player-controlled text safe to drop into a chat message.

    Unicode is kept as typed; only control characters, runs of the same
    character and Markdown/mention syntax are dealt with.
    """
    if text is None:
        return ""
    text = collapse_repeats(strip_controls(str(text))).strip()
    return escape_markdown(cap(text, limit))


def clean_name(name):
    return clean(name, NAME_LIMIT)


def format_location(location):
    if location is None:
        return ""
    return "X={:.0f} Y={:.0f} Z={:.0f}".format(*location)


def grid_sector(location):
    """Map sector ("A1" .. "D4") a location falls into, "" if off the map."""
    if location is None:
        return ""
    cell = (2 * MAP_HALF_SIZE) / GRID_COLUMNS
    col = int((location.x + MAP_HALF_SIZE) // cell)
    row = int((MAP_HALF_SIZE - location.y) // cell)
    if not (0 <= col < GRID_COLUMNS and 0 <= row < len(GRID_ROWS)):
        return ""
    return f"{GRID_ROWS[row]}{col + 1}"


class ItemCatalog:
    """Static lookup from game item ids to display names.

    Unknown ids get a readable name made from the id itself
    (``BP_Weapon_AK47_C`` becomes ``AK47``).
    """

    def __init__(self, names=None):
        self.names = dict(names or {})

    @classmethod
    def from_file(cls, path):
        if not path:
            return cls()
        try:
            with open(path, encoding="utf-8") as f:
                return cls(json.load(f))
        except (IOError, OSError):
            # no catalog is normal for a fresh install
            return cls()
        except json.JSONDecodeError as e:
            log.msg(f"Error: Invalid JSON in {path}: {e}")
            return cls()

    @staticmethod
    def prettify(item_id):
        name = RE_ITEM_AFFIX.sub("", item_id)
        return name.replace("_", " ").strip() or item_id

    def display_name(self, item_id):
        if not item_id:
            return ""
        if item_id in self.names:
            return self.names[item_id]
        short = RE_ITEM_AFFIX.sub("", item_id)
        return self.names.get(short, self.prettify(item_id))


class Normalizer:
    def __init__(self, catalog=None):
        self.catalog = catalog or ItemCatalog()

    def normalize(self, event):
        attributes = dict(event.attributes)
        for key in NAME_KEYS:
            if key in attributes:
                attributes[key] = clean_name(attributes[key])
        for key in TEXT_KEYS:
            if key in attributes:
                attributes[key] = clean(attributes[key])
        for key in ITEM_KEYS:
            if attributes.get(key):
                attributes[key + "_name"] = clean_name(self.catalog.display_name(attributes[key]))
        if "scope" in attributes:
            attributes["scope"] = CHAT_SCOPES.get(attributes["scope"].lower(), attributes["scope"])
        if "weapon_type" in attributes:
            attributes["weapon_type"] = WEAPON_TYPES.get(attributes["weapon_type"].lower(),
                                                         attributes["weapon_type"].lower())
        if "lock" in attributes:
            attributes["lock"] = LOCK_TYPES.get(attributes["lock"].lower(), attributes["lock"])
        if "success" in attributes and isinstance(attributes["success"], str):
            attributes["success"] = attributes["success"].lower() == "yes"
        if event.location is not None:
            attributes["coords"] = format_location(event.location)
            attributes["sector"] = grid_sector(event.location)
        actor = event.actor._replace(name=clean_name(event.actor.name))
        return event._replace(actor=actor, attributes=type(event.attributes)(attributes))

"""The grammar table: one Grammar per SCUM log category.

Everything here is configuration. The engine only ever sees the Grammar
objects built at the bottom; adding a category means adding a table entry.
"""

import json
import math

from scumbot.errors import MalformedLine
from scumbot.grammar import (Grammar, GrammarRegistry, Rule, find_location,
                             make_actor, to_float, to_int, to_location,
                             triple_location)

# pieces shared between patterns
STEAM = r"(?P<steam>\d{17})"
# Name (12, 76561198000000000)
PLAYER = r"(?P<name>.+?) \((?P<pid>\d+), " + STEAM + r"\)"
# '76561198000000000:Name(12)'
QUOTED_PLAYER = r"'" + STEAM + r":(?P<name>.*?)\((?P<pid>\d+)\)'"
TRIPLE = r"-?[\d.]+, -?[\d.]+, -?[\d.]+"
WHERE = r"(?P<where>X=.*)"


def player(m):
    return make_actor(m.group("name"), m.group("pid"), m.group("steam"))


def where(m):
    return find_location(m.group("where")) if m.group("where") else None


def distance(a, b):
    return math.sqrt(sum((p - q) ** 2 for p, q in zip(a, b)))


### login

def _session(m):
    return {"actor": player(m),
            "attributes": {"ip": m.group("ip") or "",
                           "drone": bool(m.groupdict().get("drone"))},
            "location": where(m)}

LOGIN_USER = (r"'(?:(?P<ip>\d{1,3}(?:\.\d{1,3}){3}) )?" + STEAM +
              r":(?P<name>.*?)\((?P<pid>\d+)\)'")

LOGIN = Grammar("login", [
    Rule("login", LOGIN_USER + r" logged in at: " + r"(?P<where>X=\S+ Y=\S+ Z=\S+)"
                  r"(?P<drone> \(as drone\))?", _session),
    Rule("logout", LOGIN_USER + r" logged out at: " + r"(?P<where>X=\S+ Y=\S+ Z=\S+)",
         _session),
], version=2)


### kill

def _json_player(block, who):
    try:
        actor = make_actor(block["ProfileName"], None, block["UserId"])
        loc = block.get("ServerLocation")
        where = to_location(loc["X"], loc["Y"], loc["Z"]) if loc else None
    except (KeyError, TypeError) as e:
        raise MalformedLine(f"{who} block incomplete: {e}")
    return actor, where, bool(block.get("IsInGameEvent", False))


def _kill_json(m):
    try:
        data = json.loads(m.group("json"))
        killer, victim = data["Killer"], data["Victim"]
        weapon = data.get("Weapon") or ""
    except (ValueError, KeyError, TypeError) as e:
        raise MalformedLine(f"kill record unreadable: {e}")
    if not isinstance(weapon, str):
        raise MalformedLine(f"kill record weapon is not text: {weapon!r}")
    k_actor, k_loc, k_event = _json_player(killer, "killer")
    v_actor, v_loc, v_event = _json_player(victim, "victim")
    weapon_id, _, weapon_type = weapon.partition(" [")
    attributes = {"victim": v_actor.name,
                  "victim_steam_id": v_actor.steam_id or "",
                  "weapon": weapon_id.strip(),
                  "weapon_type": weapon_type.rstrip("]"),
                  "in_event": k_event or v_event}
    if k_loc and v_loc:
        # game units are centimetres
        attributes["distance"] = round(distance(k_loc, v_loc) / 100.0, 2)
    return {"actor": k_actor, "attributes": attributes, "location": v_loc}


def _kill_text(m):
    attributes = {"victim": m.group("victim"),
                  "victim_steam_id": m.group("victim_steam"),
                  "weapon": m.group("weapon"),
                  "weapon_type": m.group("wtype") or "",
                  "in_event": False}
    location = None
    if m.group("dist"):
        attributes["distance"] = to_float(m.group("dist"), "distance")
        location = triple_location(m.group("vloc"))
    return {"actor": make_actor(m.group("killer"), None, m.group("killer_steam")),
            "attributes": attributes,
            "location": location}


def _suicide(m):
    return {"actor": player(m), "attributes": {}, "location": where(m)}

KILL = Grammar("kill", [
    Rule("kill", r"(?P<json>\{.*\"Killer\".*\})\s*$", _kill_json),
    Rule("kill", r"Died: (?P<victim>.+?) \((?P<victim_steam>\d{17})\), "
                 r"Killer: (?P<killer>.+?) \((?P<killer_steam>\d{17})\) "
                 r"Weapon: (?P<weapon>\S+)(?: \[(?P<wtype>\w+)\])?"
                 r"(?: S:?\[KillerLoc ?: (?P<kloc>" + TRIPLE + r") "
                 r"VictimLoc: (?P<vloc>" + TRIPLE + r"), Distance: (?P<dist>\S+) m\])?",
         _kill_text),
    Rule("suicide", r"Comm?itted suicide\. User: " + PLAYER + r"(?:, Location: " + WHERE + r")?",
         _suicide),
], version=2)


### event kills (arena, team deathmatch)

def _event_kill(m):
    attributes = {"victim": m.group("victim"),
                  "victim_steam_id": m.group("vsteam"),
                  "weapon": m.group("weapon"),
                  "event": m.group("event")}
    if m.group("dist"):
        attributes["distance"] = to_float(m.group("dist"), "distance")
    return {"actor": make_actor(m.group("killer"), m.group("kpid"), m.group("ksteam")),
            "attributes": attributes}

EVENT_KILL = Grammar("event_kill", [
    Rule("event_kill", r"\[EventKill\] (?P<killer>.+?) \((?P<kpid>\d+), (?P<ksteam>\d{17})\) "
                       r"killed (?P<victim>.+?) \((?P<vpid>\d+), (?P<vsteam>\d{17})\) "
                       r"with (?P<weapon>\S+) in event (?P<event>\S+)"
                       r"(?: at distance (?P<dist>\S+) m)?",
         _event_kill),
])


### chat / admin

def _chat(m):
    return {"actor": player(m),
            "attributes": {"scope": m.group("scope"), "text": m.group("text")}}


def _admin(m):
    return {"actor": player(m),
            "attributes": {"command": m.group("command"), "args": m.group("args") or ""}}

CHAT = Grammar("chat", [
    Rule("chat", QUOTED_PLAYER + r" '(?P<scope>\w+): (?P<text>.*)'$", _chat),
])

ADMIN = Grammar("admin", [
    Rule("admin_command", QUOTED_PLAYER + r" Command: '(?P<command>\S+)(?: (?P<args>.*?))?'$",
         _admin),
])


### economy

def _trade(m):
    attributes = {"item": m.group("item"),
                  "quantity": to_int(m.group("qty"), "quantity"),
                  "price": to_int(m.group("price"), "price"),
                  "trader": m.group("trader")}
    return {"actor": make_actor(m.group("name"), None, m.group("steam")),
            "attributes": attributes}


def _bank(m):
    attributes = {"account": m.group("account"),
                  "amount": to_int(m.group("amount"), "amount")}
    if m.groupdict().get("target"):
        attributes["target"] = m.group("target")
    return {"actor": make_actor(m.group("name"), m.group("pid")),
            "attributes": attributes}

TRADEABLE = r"\[Trade\] Tradeable \((?P<item>\S+) \(x(?P<qty>\d+)\)\) "
BANK_USER = r"\[Bank\] (?P<name>.+?)\(ID:(?P<pid>\d+)\)\(Account Number:(?P<account>\d+)\) "

ECONOMY = Grammar("economy", [
    Rule("trade_purchase", TRADEABLE + r"purchased by (?P<name>.+?)\(" + STEAM + r"\) "
                           r"for (?P<price>-?\d+) money from trader (?P<trader>[^,\s]+)", _trade),
    Rule("trade_sale", TRADEABLE + r"sold by (?P<name>.+?)\(" + STEAM + r"\) "
                       r"for (?P<price>-?\d+).*? to trader (?P<trader>[^,\s]+)", _trade),
    Rule("bank_deposit", BANK_USER + r"deposited (?P<amount>\d+)", _bank),
    Rule("bank_withdraw", BANK_USER + r"withdrew (?P<amount>\d+)", _bank),
    Rule("bank_transfer", BANK_USER + r"transferred (?P<amount>\d+) to (?P<target>.+?)\(ID:\d+\)",
         _bank),
])


### violations

def _sanction(m):
    return {"actor": make_actor("", None, m.group("steam")),
            "attributes": {"reason": (m.group("reason") or "").strip()}}


def _violation(m):
    return {"actor": player(m),
            "attributes": {"kind": m.group("kind"), "detail": m.group("detail") or ""}}

VIOLATIONS = Grammar("violations", [
    Rule("ban", r"AConZGameMode::BanPlayerById: User id: '" + STEAM + r"'(?:, Reason: (?P<reason>.*))?$",
         _sanction),
    Rule("kick", r"AConZGameMode::KickPlayer: User id: '" + STEAM + r"'(?:, Reason: (?P<reason>.*))?$",
         _sanction),
    Rule("violation", r"\[(?P<kind>[\w ]+?)\] Violation by " + PLAYER + r"(?:: (?P<detail>.*))?$",
         _violation),
])


### fame points

def _fame(m):
    return {"actor": make_actor(m.group("name"), None, m.group("steam")),
            "attributes": {"points": to_float(m.group("points"), "fame points")}}

FAMEPOINTS = Grammar("famepoints", [
    Rule("fame", r"Player (?P<name>.+?)\(" + STEAM + r"\) has (?P<points>\S+) fame points", _fame),
])


### gameplay

def _lockpick(m):
    return {"actor": player(m),
            "attributes": {"success": m.group("success"),
                           "elapsed": to_float(m.group("elapsed"), "elapsed time"),
                           "failed_attempts": to_int(m.group("failed"), "failed attempts"),
                           "target": m.group("target"),
                           "target_id": m.group("target_id"),
                           "lock": m.group("lock"),
                           "owner": m.group("owner") or ""},
            "location": where(m)}


def _bomb(m):
    return {"actor": player(m), "attributes": {"bomb": m.group("bomb")},
            "location": where(m)}


def _flag(m):
    return {"actor": player(m), "attributes": {"flag": to_int(m.group("flag"), "flag id")},
            "location": where(m)}

GAMEPLAY = Grammar("gameplay", [
    Rule("lockpick", r"\[LogMinigame\] \[\w*LockpickingMinigame_C\] User: " + PLAYER +
                     r"\. Success: (?P<success>Yes|No)\. Elapsed time: (?P<elapsed>\S+?)\. "
                     r"Failed attempts: (?P<failed>\S+?)\. Target object: (?P<target>.+?)"
                     r"\(ID: (?P<target_id>[^)]*)\)\. Lock type: (?P<lock>\w+)\."
                     r"(?: User owner: (?P<owner>.*?)\.)? Location: " + WHERE, _lockpick),
    Rule("bomb_defusal", r"\[LogBomb\] Defused\. User: " + PLAYER +
                         r"\. Bomb: (?P<bomb>\S+?)\. Location: " + WHERE, _bomb),
    Rule("flag_claim", r"\[LogBaseBuilding\] \[Flag\] Claimed\. User: " + PLAYER +
                       r"\. FlagId: (?P<flag>\S+?)\. Location: " + WHERE, _flag),
])


### bases and vehicles

def _chest(m):
    return {"actor": player(m), "attributes": {"chest": m.group("chest")},
            "location": where(m)}


def _vehicle(m):
    if m.group("steam"):
        actor = player(m)
    else:
        actor = make_actor("")
    return {"actor": actor,
            "attributes": {"how": m.group("how"),
                           "vehicle": m.group("vehicle"),
                           "vehicle_id": to_int(m.group("vid"), "vehicle id")},
            "location": where(m)}


def _raid(m):
    attributes = {"flag": to_int(m.group("flag"), "flag id"), "state": m.group("state")}
    if m.group("minutes"):
        attributes["minutes"] = to_int(m.group("minutes"), "minutes")
    return {"actor": player(m), "attributes": attributes}

CHEST_OWNERSHIP = Grammar("chest_ownership", [
    Rule("chest_claim", r"Chest \(entity id: (?P<chest>\d+)\) ownership changed\. "
                        r"New owner: " + PLAYER + r"(?:\. Location: " + WHERE + r")?$", _chest),
])

VEHICLE_DESTRUCTION = Grammar("vehicle_destruction", [
    Rule("vehicle_destroyed", r"\[(?P<how>Destroyed|Disappeared by inactivity|Disappeared)\] "
                              r"(?P<vehicle>\w+)\. VehicleId: (?P<vid>\S+?)\. "
                              r"Owner: (?:" + STEAM + r" \((?P<pid>\d+), (?P<name>.+?)\)|N/A)\. "
                              r"Location: " + WHERE, _vehicle),
])

RAID_PROTECTION = Grammar("raid_protection", [
    Rule("raid_protection", r"\[RaidProtection\] Flag (?P<flag>\S+) owned by " + PLAYER +
                            r" (?P<state>activated|deactivated|expired)"
                            r"(?: for (?P<minutes>\S+) minutes)?", _raid),
])


GRAMMARS = (LOGIN, KILL, EVENT_KILL, CHAT, ADMIN, ECONOMY, VIOLATIONS,
            FAMEPOINTS, GAMEPLAY, CHEST_OWNERSHIP, VEHICLE_DESTRUCTION,
            RAID_PROTECTION)


def default_registry():
    return GrammarRegistry(GRAMMARS)

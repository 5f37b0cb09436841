"""Event to Discord message mapping.

One template per event type, filled from the (already cleaned) event
fields. Values never act as templates themselves, so braces typed by
players are harmless.
"""

# some lookup tables for formatting messages
titles = { "login"             : "Login",
           "logout"            : "Logout",
           "kill"              : "Kill",
           "suicide"           : "Suicide",
           "event_kill"        : "Event kill",
           "chat"              : "Chat",
           "admin_command"     : "Admin command",
           "trade_purchase"    : "Purchase",
           "trade_sale"        : "Sale",
           "bank_deposit"      : "Bank deposit",
           "bank_withdraw"     : "Bank withdrawal",
           "bank_transfer"     : "Bank transfer",
           "ban"               : "Ban",
           "kick"              : "Kick",
           "violation"         : "Violation",
           "fame"              : "Fame points",
           "lockpick"          : "Lockpicking",
           "bomb_defusal"      : "Bomb defused",
           "flag_claim"        : "Flag claimed",
           "chest_claim"       : "Chest claimed",
           "vehicle_destroyed" : "Vehicle destroyed",
           "raid_protection"   : "Raid protection"
         }

templates = { "login"             : "**{name}** logged in{drone}",
              "logout"            : "**{name}** logged out",
              "kill"              : "**{name}** killed **{victim}** with {weapon_name}{range}",
              "suicide"           : "**{name}** committed suicide",
              "event_kill"        : "**{name}** killed **{victim}** with {weapon_name} in {event}{range}",
              "chat"              : "[{scope}] **{name}**: {text}",
              "admin_command"     : "**{name}** ran {command} {args}",
              "trade_purchase"    : "**{name}** bought {quantity}x {item_name} for {price} from {trader}",
              "trade_sale"        : "**{name}** sold {quantity}x {item_name} for {price} to {trader}",
              "bank_deposit"      : "**{name}** deposited {amount} into account {account}",
              "bank_withdraw"     : "**{name}** withdrew {amount} from account {account}",
              "bank_transfer"     : "**{name}** transferred {amount} to {target}",
              "ban"               : "**{steam_id}** was banned. {reason}",
              "kick"              : "**{steam_id}** was kicked. {reason}",
              "violation"         : "**{name}**: {kind} {detail}",
              "fame"              : "**{name}** has {points:.0f} fame points",
              "lockpick"          : "**{name}** {outcome} picking {target} ({lock}) after {failed_attempts} failed attempts",
              "bomb_defusal"      : "**{name}** defused {bomb_name}",
              "flag_claim"        : "**{name}** claimed flag {flag}",
              "chest_claim"       : "**{name}** claimed chest {chest}",
              "vehicle_destroyed" : "{vehicle_name} ({vehicle_id}) {how_text}{owner_text}",
              "raid_protection"   : "Raid protection {state} for flag {flag} of **{name}**{duration}"
            }

# embed colours
colors = { "login"             : 0x2ECC71,
           "logout"            : 0x95A5A6,
           "kill"              : 0xE74C3C,
           "suicide"           : 0x992D22,
           "event_kill"        : 0xE67E22,
           "chat"              : 0x3498DB,
           "admin_command"     : 0x9B59B6,
           "ban"               : 0x000000,
           "kick"              : 0x7F8C8D,
           "violation"         : 0xF1C40F,
           "vehicle_destroyed" : 0xA84300
         }
DEFAULT_COLOR = 0x1ABC9C


class Fields(dict):
    """Template values; anything a template asks for but the event lacks is blank."""
    def __missing__(self, key):
        return ""


def fields_for(event):
    a = event.attributes
    f = Fields(a)
    f["name"] = event.actor.name or "Someone"
    f["steam_id"] = event.actor.steam_id or ""
    f["drone"] = " as a drone" if a.get("drone") else ""
    f["range"] = " from {:.0f} m".format(a["distance"]) if a.get("distance") else ""
    f["outcome"] = "succeeded" if a.get("success") else "failed"
    f["how_text"] = "was destroyed" if a.get("how") == "Destroyed" else "disappeared"
    f["owner_text"] = f" (owner **{event.actor.name}**)" if event.actor.name else ""
    f["duration"] = f" for {a['minutes']} minutes" if a.get("minutes") else ""
    for key in ("weapon", "item", "bomb", "vehicle"):
        f.setdefault(key + "_name", a.get(key, ""))
    return f


def render(event):
    """Discord message body for ``event``."""
    f = fields_for(event)
    template = templates.get(event.event_type, "**{name}**: " + event.event_type)
    embed = {"title": titles.get(event.event_type, event.event_type),
             "description": template.format_map(f).strip(),
             "color": colors.get(event.event_type, DEFAULT_COLOR)}
    if event.timestamp is not None:
        embed["timestamp"] = event.timestamp.isoformat()
    if event.location is not None:
        where = f["coords"]
        if f["sector"]:
            where = f"{f['sector']} ({where})"
        embed["fields"] = [{"name": "Location", "value": where, "inline": True}]
    if event.actor.steam_id:
        embed["footer"] = {"text": f"SteamID {event.actor.steam_id}"}
    return {"embeds": [embed], "allowed_mentions": {"parse": []}}

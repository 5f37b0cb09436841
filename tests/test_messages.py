from types import MappingProxyType

import pytest

from scumbot import messages
from scumbot.categories import default_registry
from scumbot.grammar import Actor, Event
from scumbot.normalize import Normalizer
from conftest import KILLER, STAMP, kill_line

STEAM = "76561198000000003"


@pytest.fixture
def event_of():
    registry = default_registry()
    normalizer = Normalizer()
    return lambda category, line: normalizer.normalize(registry.parse_line(category, line))


def test_kill_embed(event_of):
    body = messages.render(event_of("kill", kill_line()))
    embed, = body["embeds"]
    assert embed["title"] == "Kill"
    assert embed["description"] == "**Killer** killed **Victim** with AK47 from 10 m"
    assert embed["color"] == 0xE74C3C
    assert embed["timestamp"] == "2024-01-01T12:00:00+00:00"
    assert embed["fields"] == [{"name": "Location", "value": "B3 (X=1100 Y=200 Z=0)",
                                "inline": True}]
    assert embed["footer"] == {"text": f"SteamID {KILLER}"}
    # nobody gets pinged, whatever the text says
    assert body["allowed_mentions"] == {"parse": []}


def test_player_braces_are_not_templates(event_of):
    event = event_of("chat", f"{STAMP}'{STEAM}:Sam(1)' 'Global: {{name}} {{0}} {{__class__}}'")
    description = messages.render(event)["embeds"][0]["description"]
    assert description == "[Global] **Sam**: {name} {0} {__class__}"


def test_vehicle_without_owner(event_of):
    event = event_of("vehicle_destruction",
                     f"{STAMP}[Disappeared by inactivity] BPC_Rager. VehicleId: 4568. "
                     "Owner: N/A. Location: X=1.0 Y=2.0 Z=3.0")
    embed = messages.render(event)["embeds"][0]
    assert embed["description"] == "Rager (4568) disappeared"
    assert "footer" not in embed


def test_fame_points_are_rounded(event_of):
    event = event_of("famepoints", f"{STAMP}Player Sam({STEAM}) has 123.4 fame points")
    assert messages.render(event)["embeds"][0]["description"] == "**Sam** has 123 fame points"


def test_every_event_type_has_a_title_and_template():
    event_types = {t for g in default_registry().grammars.values() for t in g.event_types()}
    assert event_types <= set(messages.titles)
    assert event_types <= set(messages.templates)


def test_unknown_event_type_still_renders():
    event = Event(None, "misc", "mystery", Actor("Bob", None, None), MappingProxyType({}),
                  None, "raw")
    embed = messages.render(event)["embeds"][0]
    assert embed["title"] == "mystery"
    assert embed["description"] == "**Bob**: mystery"
    assert embed["color"] == messages.DEFAULT_COLOR
    assert "timestamp" not in embed
    assert "fields" not in embed

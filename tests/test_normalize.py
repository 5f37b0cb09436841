import json

import pytest

from scumbot.categories import default_registry
from scumbot.grammar import Location
from scumbot.normalize import (ItemCatalog, Normalizer, clean, collapse_repeats,
                               escape_markdown, format_location, grid_sector,
                               strip_controls)
from conftest import STAMP, kill_line

STEAM = "76561198000000003"


@pytest.fixture
def registry():
    return default_registry()


def test_controls_and_bidi_overrides_are_removed():
    assert strip_controls("a\x00b\x07c\u202ed\u2066e") == "abcde"


def test_repeats_are_collapsed():
    assert collapse_repeats("heyyyyyyyy!!!!!!") == "heyyy!!!"
    assert collapse_repeats("aaa") == "aaa"


def test_markdown_and_mentions_are_neutralised():
    assert escape_markdown("**bold** _it_ `code`") == r"\*\*bold\*\* \_it\_ \`code\`"
    assert escape_markdown("hi @everyone") == "hi @\u200beveryone"
    assert "@here" not in escape_markdown("@here")


def test_clean_keeps_unicode_and_caps_length():
    assert clean("Привет, 世界 🦀") == "Привет, 世界 🦀"
    long = clean("ab" * 400)
    assert len(long) == 500
    assert long.endswith("…")
    assert clean(None) == ""


def test_locations():
    assert format_location(Location(1.4, -2.6, 3.0)) == "X=1 Y=-3 Z=3"
    assert format_location(None) == ""
    assert grid_sector(Location(-399000.0, 399000.0, 0.0)) == "A1"
    assert grid_sector(Location(0.0, 0.0, 0.0)) == "C3"
    assert grid_sector(Location(399000.0, -399000.0, 0.0)) == "D4"
    assert grid_sector(Location(500000.0, 0.0, 0.0)) == ""
    assert grid_sector(None) == ""


def test_catalog_prefers_known_names(tmp_path):
    path = tmp_path / "items.json"
    path.write_text(json.dumps({"BP_Weapon_AK47_C": "AK-47", "Cal_22": ".22 Ammo"}))
    catalog = ItemCatalog.from_file(str(path))
    assert catalog.display_name("BP_Weapon_AK47_C") == "AK-47"
    assert catalog.display_name("BP_Cal_22_C") == ".22 Ammo"
    assert catalog.display_name("BP_Weapon_M1911_C") == "M1911"
    assert catalog.display_name("Improvised_Bomb") == "Improvised Bomb"
    assert catalog.display_name("") == ""


def test_catalog_file_problems_give_an_empty_catalog(tmp_path):
    assert ItemCatalog.from_file(str(tmp_path / "missing.json")).names == {}
    bad = tmp_path / "bad.json"
    bad.write_text("{oops")
    assert ItemCatalog.from_file(str(bad)).names == {}
    assert ItemCatalog.from_file(None).names == {}


def test_normalize_kill(registry):
    event = Normalizer().normalize(registry.parse_line("kill", kill_line(victim="*Vic*")))
    assert event.attributes["victim"] == r"\*Vic\*"
    assert event.attributes["weapon_name"] == "AK47"
    assert event.attributes["weapon_type"] == "ranged"
    assert event.attributes["coords"] == "X=1100 Y=200 Z=0"
    assert event.attributes["sector"] == "B3"
    # the raw identifier stays available
    assert event.attributes["weapon"] == "BP_Weapon_AK47_C"


def test_normalize_chat(registry):
    raw = registry.parse_line(
        "chat", f"{STAMP}'{STEAM}:_Sam_(12)' 'global: @everyone looooooook \x1b[31m'")
    event = Normalizer().normalize(raw)
    assert event.actor.name == r"\_Sam\_"
    assert event.attributes["scope"] == "Global"
    assert event.attributes["text"] == "@\u200beveryone loook [31m"


def test_normalize_lockpick_enums(registry):
    raw = registry.parse_line(
        "gameplay", f"{STAMP}[LogMinigame] [LockpickingMinigame_C] User: Sam (12, {STEAM}). "
                    "Success: No. Elapsed time: 1.0. Failed attempts: 3. Target object: "
                    "Door(ID: 1). Lock type: advanced. Location: X=1.0 Y=2.0 Z=3.0")
    event = Normalizer().normalize(raw)
    assert event.attributes["success"] is False
    assert event.attributes["lock"] == "Advanced"


def test_normalize_escapes_event_trader_and_command(registry):
    event_kill = registry.parse_line(
        "event_kill", f"{STAMP}[EventKill] Ann (1, {STEAM}) killed Bob (2, 76561198000000004) "
                      "with Weapon_M9 in event *Team_Deathmatch* at distance 12.5 m")
    assert Normalizer().normalize(event_kill).attributes["event"] == r"\*Team\_Deathmatch\*"

    trade = registry.parse_line(
        "economy", f"{STAMP}[Trade] Tradeable (Cal_22 (x1)) purchased by Sam({STEAM}) for 40 "
                   "money from trader A_0_Armory, old amount in store is 5, new amount is 3")
    assert Normalizer().normalize(trade).attributes["trader"] == r"A\_0\_Armory"

    admin = registry.parse_line("admin", f"{STAMP}'{STEAM}:Admin(1)' Command: '`@everyone` 1'")
    attributes = Normalizer().normalize(admin).attributes
    assert attributes["command"] == "\\`@\u200beveryone\\`"
    assert attributes["args"] == "1"


def test_normalize_is_pure(registry):
    raw = registry.parse_line("kill", kill_line())
    normalizer = Normalizer()
    first = normalizer.normalize(raw)
    assert first == normalizer.normalize(raw)
    assert "weapon_name" not in raw.attributes
    with pytest.raises(TypeError):
        first.attributes["victim"] = "x"

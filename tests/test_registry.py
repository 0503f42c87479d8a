import json

import pytest

from core.config_loader import ConfigLoader, ROSTER_SCHEMA_PATH, streamer_entry_errors, validation_errors
from core.context import ChannelConfig
from core.registry import ChannelRegistry, RosterError
from shared.storage.kv import MemoryKVStore


SEED = {
    "groups": ["A4A", "NMC"],
    "streamers": [
        {"name": "First", "channelId": "UC1", "groups": ["A4A"]},
        {"name": "Second", "channelId": "UC2", "groups": ["NMC", "NMC"], "enabled": False, "order": 1},
        {"name": "no id"},
        "garbage",
        {"name": "First again", "channelId": "UC1", "groups": ["A4A"]},
    ],
}


@pytest.fixture
def seed_path(tmp_path):
    path = tmp_path / "channels.json"
    path.write_text(json.dumps(SEED), encoding="utf-8")
    return path


def _registry(kv, seed_path, **kwargs) -> ChannelRegistry:
    return ChannelRegistry(kv, config_loader=ConfigLoader(seed_path), **kwargs)


def test_seed_is_sanitized_and_deduplicated(seed_path):
    roster = ConfigLoader(seed_path).load_roster_seed()

    assert roster["groups"] == ["A4A", "NMC"]
    assert [s["channelId"] for s in roster["streamers"]] == ["UC1", "UC2"]
    assert roster["streamers"][0]["name"] == "First again"
    assert roster["streamers"][1]["order"] == 1


def test_missing_seed_yields_empty_roster(tmp_path):
    roster = ConfigLoader(tmp_path / "nope.json").load_roster_seed(["A4A"])

    assert roster == {"groups": ["A4A"], "streamers": []}


def test_list_falls_back_to_seed_until_first_write(kv, seed_path):
    registry = _registry(kv, seed_path)

    assert registry.stored_roster() is None
    channels = registry.list()

    assert [c.id for c in channels] == ["UC1", "UC2"]
    assert channels[1].groups == ["NMC"]
    assert channels[1].enabled is False


def test_upsert_adds_then_replaces(kv, seed_path):
    registry = _registry(kv, seed_path)

    assert registry.upsert(ChannelConfig(id="UC3", display_name="Third", groups=["A4A"])) is True
    assert registry.upsert(ChannelConfig(id="UC3", display_name="Third (renamed)")) is False

    stored = registry.stored_roster()
    assert [s["channelId"] for s in stored["streamers"]] == ["UC1", "UC2", "UC3"]
    assert registry.get("UC3").display_name == "Third (renamed)"
    assert registry.get("UC404") is None


def test_remove_requires_stored_roster(kv, seed_path):
    registry = _registry(kv, seed_path)

    assert registry.remove("UC1") is False

    registry.upsert(ChannelConfig(id="UC3", display_name="Third"))

    assert registry.remove("UC1") is True
    assert registry.remove("UC1") is False
    assert [c.id for c in registry.list()] == ["UC2", "UC3"]


def test_invalid_stored_entries_are_skipped(kv, seed_path):
    kv.set("streamers:config", {"streamers": [{"channelId": "UC9", "name": "ok"}, {"name": "bad"}, 5]})
    registry = _registry(kv, seed_path, default_groups=["A4A"])

    assert [c.id for c in registry.list()] == ["UC9"]
    assert registry.stored_roster()["groups"] == ["A4A"]


def test_unreadable_store_raises_roster_error(kv, seed_path, monkeypatch):
    def _broken_get(key):
        raise OSError("unreachable")

    monkeypatch.setattr(kv, "get", _broken_get)

    with pytest.raises(RosterError):
        _registry(kv, seed_path).list()


def test_unwritable_store_raises_roster_error(kv, seed_path, monkeypatch):
    def _broken_set(key, value, ttl=None):
        raise OSError("disk full")

    monkeypatch.setattr(kv, "set", _broken_set)

    with pytest.raises(RosterError):
        _registry(kv, seed_path).upsert(ChannelConfig(id="UC3", display_name="x"))


@pytest.mark.asyncio
async def test_refresh_names_counts_updates_and_failures(seed_path):
    registry = _registry(MemoryKVStore(), seed_path)
    names = {"UC1": "First (new)", "UC2": "Second"}

    async def lookup(channel_id):
        if channel_id == "UC2":
            raise RuntimeError("quota")
        return names.get(channel_id)

    updated, failed, total = await registry.refresh_names(lookup)

    assert (updated, failed, total) == (1, 1, 2)
    assert registry.get("UC1").display_name == "First (new)"
    assert registry.get("UC2").display_name == "Second"


@pytest.mark.asyncio
async def test_refresh_names_keeps_name_when_lookup_returns_nothing(seed_path):
    registry = _registry(MemoryKVStore(), seed_path)

    async def lookup(channel_id):
        return None

    assert await registry.refresh_names(lookup) == (0, 0, 2)
    assert registry.get("UC1").display_name == "First again"


def test_channel_config_requires_id():
    with pytest.raises(RuntimeError):
        ChannelConfig(id="", display_name="x")

    config = ChannelConfig(id="UC1", display_name="", groups=["A", "B", "A"])
    assert config.display_name == "UC1"
    assert config.groups == ["A", "B"]


def test_shipped_seed_matches_roster_schema():
    shipped = ROSTER_SCHEMA_PATH.parent.parent / "shared" / "config" / "channels.json"
    seed = json.loads(shipped.read_text(encoding="utf-8"))
    schema = json.loads(ROSTER_SCHEMA_PATH.read_text(encoding="utf-8"))

    assert validation_errors(seed, schema) == []
    assert len(seed["streamers"]) == 60


def test_streamer_entry_errors_name_the_bad_field():
    assert streamer_entry_errors({"channelId": "UC1", "groups": ["A4A"], "enabled": False, "order": 2}) == []
    assert streamer_entry_errors({"channelId": "UC1", "name": None}) == []

    errors = streamer_entry_errors({"channelId": "UC1", "enabled": "false"})
    assert len(errors) == 1
    assert errors[0].startswith("'enabled':")

    assert streamer_entry_errors({"name": "no id"})
    assert streamer_entry_errors({"channelId": ""})


def test_seed_entry_with_non_boolean_enabled_is_skipped(tmp_path):
    path = tmp_path / "channels.json"
    path.write_text(
        json.dumps({"streamers": [
            {"channelId": "UC1", "enabled": "false"},
            {"channelId": "UC2", "enabled": False},
        ]}),
        encoding="utf-8",
    )

    roster = ConfigLoader(path).load_roster_seed()

    assert [s["channelId"] for s in roster["streamers"]] == ["UC2"]
    assert roster["streamers"][0]["enabled"] is False


def test_stored_entry_with_non_boolean_enabled_is_skipped(kv, seed_path):
    kv.set("streamers:config", {"streamers": [
        {"channelId": "UC1", "name": "one", "enabled": "false"},
        {"channelId": "UC2", "name": "two", "enabled": True},
    ]})

    assert [c.id for c in _registry(kv, seed_path).list()] == ["UC2"]

    with pytest.raises(ValueError):
        ChannelConfig.from_dict({"channelId": "UC1", "enabled": "false"})

import json
from pathlib import Path

from wemp.menu_payload import (
    ImagePayload,
    MenuPayloadRegistry,
    NewsPayload,
    TextPayload,
    UnknownPayload,
    build_click_key,
    make_id,
    parse_click_key,
)


def _registry(tmp_path: Path) -> MenuPayloadRegistry:
    return MenuPayloadRegistry(tmp_path / "menu-payloads.json")


def test_make_id_is_stable_short_hex() -> None:
    payload = TextPayload(text="营业时间：9:00-18:00")

    first = make_id("acc", payload)
    second = make_id("acc", TextPayload(text="营业时间：9:00-18:00"))

    assert first == second
    assert len(first) == 16
    assert all(c in "0123456789abcdef" for c in first)


def test_make_id_depends_on_account_and_payload() -> None:
    payload = NewsPayload(title="t", content_url="https://mp.example.com/s/1")

    assert make_id("a", payload) != make_id("b", payload)
    assert make_id("a", payload) != make_id("a", NewsPayload(title="t", content_url="https://mp.example.com/s/2"))


def test_register_and_get_survive_a_fresh_registry(tmp_path: Path) -> None:
    payload = NewsPayload(title="新品发布", content_url="https://mp.example.com/s/abc")
    payload_id = _registry(tmp_path).register("acc", payload)

    loaded = _registry(tmp_path).get("acc", payload_id)

    assert loaded == payload
    assert _registry(tmp_path).get("other", payload_id) is None


def test_stored_document_uses_camel_case_wire_form(tmp_path: Path) -> None:
    registry = _registry(tmp_path)
    payload_id = registry.register("acc", ImagePayload(media_id="MEDIA_1"))

    doc = json.loads((tmp_path / "menu-payloads.json").read_text(encoding="utf-8"))

    assert doc["version"] == 1
    entry = doc["accounts"]["acc"][payload_id]
    assert entry["payload"] == {"kind": "image", "mediaId": "MEDIA_1"}
    assert isinstance(entry["updatedAt"], int)


def test_upsert_overwrites_existing_entry(tmp_path: Path) -> None:
    registry = _registry(tmp_path)
    registry.upsert("acc", "fixed", TextPayload(text="old"))
    registry.upsert("acc", "fixed", TextPayload(text="new"))

    assert registry.get("acc", "fixed") == TextPayload(text="new")


def test_unknown_payload_drops_unset_fields(tmp_path: Path) -> None:
    registry = _registry(tmp_path)
    payload_id = registry.register("acc", UnknownPayload(original_type="miniprogram", url="https://x.test"))

    doc = json.loads((tmp_path / "menu-payloads.json").read_text(encoding="utf-8"))

    assert doc["accounts"]["acc"][payload_id]["payload"] == {
        "kind": "unknown",
        "originalType": "miniprogram",
        "url": "https://x.test",
    }


def test_corrupt_entry_reads_as_missing(tmp_path: Path) -> None:
    path = tmp_path / "menu-payloads.json"
    path.write_text(
        json.dumps({"version": 1, "accounts": {"acc": {"bad": {"payload": {"kind": "nope"}}}}}),
        encoding="utf-8",
    )

    assert MenuPayloadRegistry(path).get("acc", "bad") is None


def test_click_key_round_trip_and_foreign_keys() -> None:
    key = build_click_key("0123456789abcdef")

    assert parse_click_key(key) == "0123456789abcdef"
    assert len(key.encode("utf-8")) <= 128
    assert parse_click_key("V1001_TODAY_MUSIC") is None
    assert parse_click_key("") is None

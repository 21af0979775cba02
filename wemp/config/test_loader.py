import json
from pathlib import Path

import pytest

from wemp.config.loader import camel_to_snake, convert_keys, load_config, save_config, snake_to_camel
from wemp.config.schema import WempAccountConfig, WempConfig

_ENV_KEYS = (
    "WEMP_APP_ID",
    "WEMP_APP_SECRET",
    "WEMP_TOKEN",
    "WEMP_ENCODING_AES_KEY",
    "WEMP_WEBHOOK_PATH",
    "WEMP_DM_POLICY",
    "WEMP_ALLOW_FROM",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def _write(path: Path, data: dict) -> Path:
    path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    return path


def test_loads_camel_case_accounts(tmp_path: Path) -> None:
    path = _write(tmp_path / "config.json", {
        "defaultAccount": "shopMain",
        "accounts": {
            "shopMain": {
                "enabled": True,
                "appId": "wx123",
                "appSecret": "s",
                "encodingAESKey": "k" * 43,
                "dmPolicy": "allowlist",
                "allowFrom": ["u1"],
                "csAgent": {"agentId": "shop-cs", "systemPrompt": "你是客服"},
                "pairingApiToken": "tok",
            },
        },
    })

    config = load_config(path)

    assert config.default_account == "shopMain"
    account = config.get_account()
    assert account is not None
    assert account.app_id == "wx123"
    assert account.encoding_aes_key == "k" * 43
    assert account.dm_policy == "allowlist"
    assert account.allow_from == ["u1"]
    assert account.cs_agent.agent_id == "shop-cs"
    assert account.cs_agent.system_prompt == "你是客服"
    assert account.pairing_api_token == "tok"


def test_invalid_file_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{broken", encoding="utf-8")

    assert load_config(path) == WempConfig()

    _write(path, {"accounts": {"a": {"dmPolicy": "everyone"}}})
    assert load_config(path) == WempConfig()


def test_env_overrides_create_default_account(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WEMP_APP_ID", "wxenv")
    monkeypatch.setenv("WEMP_APP_SECRET", "envsecret")
    monkeypatch.setenv("WEMP_DM_POLICY", "OPEN")
    monkeypatch.setenv("WEMP_ALLOW_FROM", "a, b,,c")

    config = load_config(tmp_path / "missing.json")

    account = config.accounts["default"]
    assert account.enabled is True
    assert account.app_id == "wxenv"
    assert account.app_secret == "envsecret"
    assert account.dm_policy == "open"
    assert account.allow_from == ["a", "b", "c"]


def test_unknown_dm_policy_env_is_ignored(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WEMP_DM_POLICY", "everyone")

    config = load_config(tmp_path / "missing.json")

    assert config.accounts["default"].dm_policy == "pairing"


def test_save_writes_camel_case_and_reloads(tmp_path: Path) -> None:
    path = tmp_path / "sub" / "config.json"
    account = WempAccountConfig(app_id="wx1", main_agent_id="boss", encoding_aes_key="k" * 43)
    config = WempConfig(accounts={"my_account": account})

    save_config(config, path)

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert "my_account" in raw["accounts"]
    assert raw["accounts"]["my_account"]["appId"] == "wx1"
    assert raw["accounts"]["my_account"]["encodingAESKey"] == "k" * 43
    assert "encodingAesKey" not in raw["accounts"]["my_account"]
    assert raw["defaultAccount"] == "default"
    reloaded = load_config(path).accounts["my_account"]
    assert reloaded.main_agent_id == "boss"
    assert reloaded.encoding_aes_key == "k" * 43


def test_key_conversion() -> None:
    assert camel_to_snake("encodingAESKey") == "encoding_aes_key"
    assert camel_to_snake("appId") == "app_id"
    assert snake_to_camel("pairing_api_token") == "pairingApiToken"
    assert snake_to_camel("encoding_aes_key") == "encodingAESKey"
    assert convert_keys({"accounts": {"shopMain": {"appId": "x"}}}) == {"accounts": {"shopMain": {"app_id": "x"}}}

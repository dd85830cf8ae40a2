import json
import os

import pytest

from gemini_bridge.config import ConfigManager, deep_merge
from gemini_bridge.errors import ConfigError


def test_init_writes_defaults_with_private_mode(tmp_path):
    path = tmp_path / "config.json"
    manager = ConfigManager(path)
    manager.init()
    saved = json.loads(path.read_text(encoding="utf-8"))
    assert saved["provider"] == "gemini-cli"
    assert saved["auth_type"] == "oauth"
    assert saved["settings"]["cache_ttl"] == 3600
    assert os.stat(path).st_mode & 0o777 == 0o600


def test_init_keeps_existing_values(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"settings": {"cache_ttl": 60}}), encoding="utf-8")
    data = ConfigManager(path).init()
    assert data["settings"]["cache_ttl"] == 60
    assert data["settings"]["notify"] == "subtle"


def test_get_set_delete_dotted_keys(tmp_path):
    manager = ConfigManager(tmp_path / "config.json")
    manager.set("oauth.client_id", "abc")
    manager.set("settings.debug_level", 2)
    assert manager.get("oauth.client_id") == "abc"
    assert manager.get("settings.debug_level") == 2
    assert manager.get("oauth.missing", "fallback") == "fallback"
    assert manager.delete("oauth.client_id") is True
    assert manager.delete("oauth.client_id") is False
    assert manager.get("oauth") == {}


def test_get_expands_environment_variables(tmp_path, monkeypatch):
    monkeypatch.setenv("BRIDGE_TEST_ROOT", "/opt/bridge")
    manager = ConfigManager(tmp_path / "config.json")
    manager.set("paths.cache", "${BRIDGE_TEST_ROOT}/cache")
    assert manager.get("paths.cache") == "/opt/bridge/cache"


def test_merge_dict_and_file(tmp_path):
    manager = ConfigManager(tmp_path / "config.json")
    manager.set("settings.cache_ttl", 10)
    manager.set("settings.notify", "quiet")
    manager.merge({"settings": {"cache_ttl": 20}})
    other = tmp_path / "other.json"
    other.write_text(json.dumps({"provider": "other", "settings": {"debug_level": 1}}), encoding="utf-8")
    manager.merge(other)
    assert manager.get("settings") == {"cache_ttl": 20, "notify": "quiet", "debug_level": 1}
    assert manager.get("provider") == "other"


def test_deep_merge_does_not_mutate_inputs():
    base = {"a": {"b": 1}}
    merged = deep_merge(base, {"a": {"c": 2}})
    assert merged == {"a": {"b": 1, "c": 2}}
    assert base == {"a": {"b": 1}}


def test_save_and_reload(tmp_path):
    path = tmp_path / "nested" / "config.json"
    manager = ConfigManager(path)
    manager.set("provider", "gemini-cli")
    manager.save()
    assert ConfigManager(path).get("provider") == "gemini-cli"


def test_invalid_json_raises(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        ConfigManager(path)


def test_secure_values_are_encrypted(tmp_path):
    manager = ConfigManager(tmp_path / "config.json")
    manager.set_secure("oauth.client_secret", "super-secret", password="pw")
    raw = manager.get("oauth.client_secret")
    assert raw.startswith("enc:")
    assert "super-secret" not in raw
    assert manager.get_secure("oauth.client_secret", password="pw") == "super-secret"
    manager.set("plain", "value")
    assert manager.get_secure("plain", password="pw") == "value"


def test_validate_reports_schema_errors(tmp_path):
    manager = ConfigManager(tmp_path / "config.json")
    manager.init()
    assert manager.validate() == []
    manager.set("auth_type", "password")
    manager.set("oauth", {"client_id": ""})
    errors = manager.validate()
    assert any(error.startswith("auth_type") for error in errors)
    assert any(error.startswith("oauth") for error in errors)


def test_provider_helpers(tmp_path):
    manager = ConfigManager(tmp_path / "config.json")
    assert manager.get_provider_auth_method("gemini-cli") == "api_key"
    manager.set_provider_config("gemini-cli", "auth_method", "oauth")
    manager.set_provider_config("gemini-cli", "model", "gemini-2.5-pro")
    assert manager.get_provider_auth_method("gemini-cli") == "oauth"
    assert manager.get_provider_config("gemini-cli", "model") == "gemini-2.5-pro"
    assert manager.get_provider_config("other", "model", "none") == "none"

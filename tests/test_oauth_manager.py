import json
import time

from gemini_bridge.auth import oauth_manager
from gemini_bridge.services.gemini_client import GeminiResult


def isolate(monkeypatch, tmp_path):
    creds = tmp_path / "gemini" / "oauth_creds.json"
    monkeypatch.setenv("GEMINI_OAUTH_CREDS", str(creds))
    monkeypatch.setenv("CLAUDE_CONFIG_DIR", str(tmp_path / "claude"))
    return creds


def write_creds(path, **fields):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"access_token": "ya29.token", **fields}), encoding="utf-8")


class RefreshingClient:
    """Simulates the gemini CLI rewriting its credentials on a successful call."""

    def __init__(self, creds_path, ok=True):
        self.creds_path = creds_path
        self.ok = ok
        self.prompts = []

    def run_prompt(self, prompt, stdin=None, cwd=None):
        self.prompts.append(prompt)
        if self.ok:
            write_creds(self.creds_path, expiry_date=int((time.time() + 3600) * 1000))
            return GeminiResult(True, "2")
        return GeminiResult(False, "", "auth error", 1)


def test_not_authenticated_without_creds(monkeypatch, tmp_path):
    isolate(monkeypatch, tmp_path)
    status = oauth_manager.check_oauth_status(now=1000)
    assert status.status == "not_authenticated"
    cached = json.loads((tmp_path / "claude" / "gemini-oauth-status.json").read_text(encoding="utf-8"))
    assert cached == {"status": "not_authenticated", "expiry": 0, "time_remaining": 0, "checked_at": 1000}
    assert oauth_manager.get_oauth_info() == "Not authenticated"


def test_status_from_expiry_date_in_milliseconds(monkeypatch, tmp_path):
    creds = isolate(monkeypatch, tmp_path)
    now = 1_700_000_000
    write_creds(creds, expiry_date=(now + 3600) * 1000)
    status = oauth_manager.check_oauth_status(now=now)
    assert status.status == "valid"
    assert status.expiry == now + 3600
    assert status.time_remaining == 3600

    write_creds(creds, expiry_date=(now + 120) * 1000)
    assert oauth_manager.check_oauth_status(now=now).status == "expiring_soon"

    write_creds(creds, expiry_date=(now - 5) * 1000)
    assert oauth_manager.check_oauth_status(now=now).status == "expired"


def test_malformed_expiry_is_treated_as_expired(monkeypatch, tmp_path):
    creds = isolate(monkeypatch, tmp_path)
    write_creds(creds, expiry_date="2024-01-01T00:00:00Z")
    assert oauth_manager.read_expiry() == 0
    assert oauth_manager.check_oauth_status(now=1000).status == "expired"
    write_creds(creds, exp=["soon"])
    assert oauth_manager.check_oauth_status(now=1000).status == "expired"


def test_status_from_legacy_exp_seconds(monkeypatch, tmp_path):
    creds = isolate(monkeypatch, tmp_path)
    write_creds(creds, exp=2000)
    assert oauth_manager.check_oauth_status(now=1000).status == "valid"
    assert oauth_manager.check_oauth_status(now=1800).status == "expiring_soon"


def test_oauth_info_strings(monkeypatch, tmp_path):
    creds = isolate(monkeypatch, tmp_path)
    now = 1_000_000
    write_creds(creds, exp=now + 3 * 3600 + 5 * 60 + 10)
    assert oauth_manager.get_oauth_info(now=now) == "Valid for 3h 5m"
    write_creds(creds, exp=now + 30 * 60)
    assert oauth_manager.get_oauth_info(now=now) == "Valid for 30 minutes"
    write_creds(creds, exp=now - 1)
    assert oauth_manager.get_oauth_info(now=now) == "Expired"


def test_ensure_authenticated_valid_skips_refresh(monkeypatch, tmp_path):
    creds = isolate(monkeypatch, tmp_path)
    write_creds(creds, expiry_date=int((time.time() + 7200) * 1000))
    client = RefreshingClient(creds)
    assert oauth_manager.ensure_authenticated(client)
    assert client.prompts == []


def test_ensure_authenticated_refreshes_expired_token(monkeypatch, tmp_path):
    creds = isolate(monkeypatch, tmp_path)
    write_creds(creds, expiry_date=int((time.time() - 60) * 1000))
    client = RefreshingClient(creds)
    assert oauth_manager.ensure_authenticated(client)
    assert client.prompts == [oauth_manager.REFRESH_PROMPT]
    assert oauth_manager.check_oauth_status().status == "valid"


def test_ensure_authenticated_reports_failed_refresh(monkeypatch, tmp_path):
    creds = isolate(monkeypatch, tmp_path)
    write_creds(creds, expiry_date=int((time.time() + 60) * 1000))
    assert not oauth_manager.ensure_authenticated(RefreshingClient(creds, ok=False))


def test_ensure_authenticated_without_creds(monkeypatch, tmp_path):
    creds = isolate(monkeypatch, tmp_path)
    client = RefreshingClient(creds)
    assert not oauth_manager.ensure_authenticated(client)
    assert client.prompts == []


def test_monitor_stops_when_not_authenticated(monkeypatch, tmp_path):
    isolate(monkeypatch, tmp_path)
    sleeps = []
    final = oauth_manager.monitor_oauth_health(interval=5, sleep=sleeps.append)
    assert final == "not_authenticated"
    assert sleeps == []


def test_monitor_refreshes_and_honours_max_checks(monkeypatch, tmp_path):
    creds = isolate(monkeypatch, tmp_path)
    write_creds(creds, expiry_date=int((time.time() + 100) * 1000))
    client = RefreshingClient(creds)
    sleeps = []
    final = oauth_manager.monitor_oauth_health(interval=5, max_checks=3, sleep=sleeps.append, client=client)
    assert final == "valid"
    assert sleeps == [5, 5]
    assert len(client.prompts) == 1

import json
import subprocess
from datetime import datetime

from gemini_bridge.hooks.registry import ProjectRegistry
from gemini_bridge.install import installer
from gemini_bridge.install.settings import ClaudeSettings


def isolate(monkeypatch, tmp_path):
    monkeypatch.setenv("CLAUDE_CONFIG_DIR", str(tmp_path / "claude"))
    monkeypatch.setenv("GEMINI_BRIDGE_HOME", str(tmp_path / "home"))
    monkeypatch.setenv("GEMINI_OAUTH_CREDS", str(tmp_path / "gemini" / "oauth_creds.json"))


def make_project(tmp_path, name):
    project = tmp_path / name
    project.mkdir()
    return project.resolve()


def test_settings_add_and_remove_hooks(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"statusLine": {"type": "command", "command": "pwd"}}), encoding="utf-8")
    settings = ClaudeSettings(path)
    assert settings.add_hook("PreToolUse", "Read|Grep", "gemini-bridge route")
    assert not settings.add_hook("PreToolUse", "Read|Grep", "gemini-bridge route")
    assert settings.add_hook("PreToolUse", "Read|Grep", "other-tool")
    assert settings.has_hook("gemini-bridge route")
    assert settings.has_hook("gemini-bridge route", "PreToolUse")
    assert not settings.has_hook("gemini-bridge route", "PostToolUse")
    groups = settings.data["hooks"]["PreToolUse"]
    assert len(groups) == 1
    assert [h["command"] for h in groups[0]["hooks"]] == ["gemini-bridge route", "other-tool"]

    assert settings.remove_hook("gemini-bridge route")
    assert settings.remove_hook("other-tool")
    assert not settings.remove_hook("other-tool")
    assert "hooks" not in settings.data
    settings.save()
    assert json.loads(path.read_text(encoding="utf-8")) == {"statusLine": {"type": "command", "command": "pwd"}}


def test_settings_matcher_change_moves_hook(tmp_path):
    settings = ClaudeSettings(tmp_path / "settings.json")
    settings.add_hook("PreToolUse", "Read", "gemini-bridge route")
    assert settings.add_hook("PreToolUse", "Read|Task", "gemini-bridge route")
    assert settings.data["hooks"]["PreToolUse"] == [
        {"matcher": "Read|Task", "hooks": [{"type": "command", "command": "gemini-bridge route"}]}
    ]


def test_settings_backup_is_timestamped(tmp_path):
    path = tmp_path / "settings.json"
    settings = ClaudeSettings(path)
    assert settings.backup() is None
    path.write_text("{}", encoding="utf-8")
    backup = settings.backup(now=datetime(2024, 5, 1, 12, 30, 45))
    assert backup.name == "settings.json.backup.20240501_123045"
    assert backup.read_text(encoding="utf-8") == "{}"


def test_install_registers_project_and_router(monkeypatch, tmp_path):
    isolate(monkeypatch, tmp_path)
    first = make_project(tmp_path, "first")
    second = make_project(tmp_path, "second")

    result = installer.install(first, "Read|Grep")
    assert result["hook_changed"] is True
    assert (first / ".gemini-oddity" / "cache" / "gemini").is_dir()
    assert (first / ".gemini-oddity" / "logs").is_dir()
    settings = ClaudeSettings()
    assert settings.hook_matcher(installer.ROUTER_COMMAND, "PreToolUse") == "Read|Grep"

    assert installer.install(first, "Read|Grep")["hook_changed"] is False
    installer.install(second, "Task|Read")
    settings.reload()
    assert settings.hook_matcher(installer.ROUTER_COMMAND, "PreToolUse") == "Read|Grep|Task"
    assert set(ProjectRegistry().list()) == {str(first), str(second)}


def test_uninstall_removes_router_with_last_project(monkeypatch, tmp_path):
    isolate(monkeypatch, tmp_path)
    first = make_project(tmp_path, "first")
    second = make_project(tmp_path, "second")
    installer.install(first, "Read")
    installer.install(second, "Grep")

    result = installer.uninstall(first, remove_files=True)
    assert result["unregistered"] and result["files_removed"]
    assert not (first / ".gemini-oddity").exists()
    settings = ClaudeSettings()
    assert settings.hook_matcher(installer.ROUTER_COMMAND, "PreToolUse") == "Grep"

    installer.uninstall(second)
    settings.reload()
    assert not settings.has_hook(installer.ROUTER_COMMAND)
    assert (second / ".gemini-oddity").is_dir()
    assert not installer.uninstall(second)["unregistered"]


def test_install_cron_is_not_duplicated():
    crontab = {"content": "0 * * * * backup.sh\n"}

    def runner(args, **kwargs):
        if args == ["crontab", "-l"]:
            return subprocess.CompletedProcess(args, 0, stdout=crontab["content"], stderr="")
        crontab["content"] = kwargs["input"]
        return subprocess.CompletedProcess(args, 0, stdout="", stderr="")

    assert installer.install_cron(runner)
    assert crontab["content"] == f"0 * * * * backup.sh\n{installer.CRON_LINE}\n"
    assert not installer.install_cron(runner)


def test_install_cron_with_empty_crontab():
    written = {}

    def runner(args, **kwargs):
        if args == ["crontab", "-l"]:
            return subprocess.CompletedProcess(args, 1, stdout="", stderr="no crontab for user")
        written["content"] = kwargs["input"]
        return subprocess.CompletedProcess(args, 0)

    assert installer.install_cron(runner)
    assert written["content"] == f"{installer.CRON_LINE}\n"


def test_setup_pr_monitoring_preserves_settings(monkeypatch, tmp_path):
    isolate(monkeypatch, tmp_path)
    path = tmp_path / "claude" / "settings.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({"model": "opus", "hooks": {"PreToolUse": [
        {"matcher": "Read", "hooks": [{"type": "command", "command": "gemini-bridge route"}]}
    ]}}), encoding="utf-8")

    assert installer.setup_pr_monitoring()
    assert not installer.setup_pr_monitoring()
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["model"] == "opus"
    assert data["hooks"]["PreToolUse"][0]["matcher"] == "Read"
    post = data["hooks"]["PostToolUse"][0]
    assert post["matcher"] == "Bash"
    assert post["hooks"][0]["command"] == installer.PR_HOOK_COMMAND
    assert list(path.parent.glob("settings.json.backup.*"))


def test_verify_reports_each_check(monkeypatch, tmp_path):
    isolate(monkeypatch, tmp_path)
    monkeypatch.setattr(installer.shutil, "which", lambda name: f"/usr/bin/{name}")
    project = make_project(tmp_path, "proj")
    installer.install(project)
    checks = {check.name: check for check in installer.verify()}
    assert checks["claude CLI"].ok and checks["gemini CLI"].ok
    assert checks["Bridge registry"].ok
    assert checks["Router hook"].ok
    assert not checks["Gemini OAuth"].ok
    assert checks["Gemini OAuth"].detail == "Not authenticated"


def test_missing_requirements(monkeypatch):
    monkeypatch.setattr(installer.shutil, "which", lambda name: None if name == "gemini" else f"/bin/{name}")
    assert [p.name for p in installer.missing_requirements()] == ["gemini"]

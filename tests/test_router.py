import json

from gemini_bridge.hooks import notify, router
from gemini_bridge.hooks.registry import ProjectRegistry
from gemini_bridge.schemas.hook import HookPayload, HookResponse


def isolate(monkeypatch, tmp_path):
    monkeypatch.setenv("CLAUDE_CONFIG_DIR", str(tmp_path / "claude"))
    monkeypatch.setenv("GEMINI_BRIDGE_HOME", str(tmp_path / "home"))
    monkeypatch.setenv("GEMINI_ODDITY_NOTIFY", "quiet")
    monkeypatch.delenv("CLAUDE_WORKING_DIR", raising=False)


def make_project(tmp_path, name="proj", installed=True):
    project = tmp_path / name
    (project / "src").mkdir(parents=True)
    (project / "src" / "main.py").write_text("print('hi')\n", encoding="utf-8")
    (project / "package.json").write_text("{}", encoding="utf-8")
    if installed:
        (project / ".gemini-oddity").mkdir()
    return project.resolve()


class RecordingHook:
    def __init__(self):
        self.calls = []

    def factory(self, root, settings):
        self.calls.append((root, settings))
        return self

    def process_tool_call(self, payload):
        return HookResponse.delegated("from gemini")


def test_registry_lifecycle(monkeypatch, tmp_path):
    isolate(monkeypatch, tmp_path)
    project = make_project(tmp_path)
    registry = ProjectRegistry()
    assert registry.initialize() is True
    assert registry.initialize() is False
    registry.register(project, "Read|Grep")
    payload = json.loads(registry.path.read_text(encoding="utf-8"))
    entry = payload["projects"][str(project)]
    assert entry["bridge_version"] == "2.0.0"
    assert entry["config"] == {"tools": "Read|Grep", "enabled": True}
    assert "router_installed" in payload and "version" in payload

    assert registry.set_enabled(project, False)
    assert registry.get(project).config.enabled is False
    assert registry.unregister(project)
    assert not registry.unregister(project)
    assert registry.list() == {}


def test_extract_working_directory(tmp_path):
    project = make_project(tmp_path)
    by_file = HookPayload(tool_name="Read", tool_input={"file_path": str(project / "src" / "main.py")})
    assert router.extract_working_directory(by_file) == project / "src"
    by_path = HookPayload(tool_name="Grep", tool_input={"path": "src"}, cwd=str(project))
    assert router.extract_working_directory(by_path) == project / "src"
    by_cwd = HookPayload(tool_name="Task", tool_input={"prompt": "x"}, cwd=str(project))
    assert router.extract_working_directory(by_cwd) == project


def test_extract_working_directory_falls_back_to_env(monkeypatch, tmp_path):
    project = make_project(tmp_path)
    monkeypatch.setenv("CLAUDE_WORKING_DIR", str(project))
    assert router.extract_working_directory(HookPayload(tool_name="Task")) == project


def test_find_project_root(monkeypatch, tmp_path):
    isolate(monkeypatch, tmp_path)
    installed = make_project(tmp_path, "installed")
    marked = make_project(tmp_path, "marked", installed=False)
    registry = ProjectRegistry()
    assert router.find_project_root(installed / "src", registry) == installed
    assert router.find_project_root(marked / "src", registry) is None
    registry.register(marked)
    assert router.find_project_root(marked / "src", registry) == marked


def test_route_delegates_configured_tool(monkeypatch, tmp_path):
    isolate(monkeypatch, tmp_path)
    project = make_project(tmp_path)
    ProjectRegistry().register(project, "Read|Grep")
    hook = RecordingHook()
    payload = {"tool_name": "Grep", "tool_input": {"pattern": "x", "path": str(project / "src")}}
    response = router.route(payload, hook.factory)
    assert response.reason == "from gemini"
    root, settings = hook.calls[0]
    assert root == project
    assert settings.tool_set() == {"Read", "Grep"}
    log = (tmp_path / "claude" / "bridge-status.log").read_text(encoding="utf-8")
    assert "[DELEGATE] Routing Grep to project: proj" in log


def test_route_skips_unconfigured_tool_and_unknown_projects(monkeypatch, tmp_path):
    isolate(monkeypatch, tmp_path)
    project = make_project(tmp_path)
    ProjectRegistry().register(project, "Read")
    hook = RecordingHook()
    grep = {"tool_name": "Grep", "tool_input": {"path": str(project)}}
    assert router.route(grep, hook.factory).action == "continue"
    outside = make_project(tmp_path, "outside", installed=False)
    read = {"tool_name": "Read", "tool_input": {"file_path": str(outside / "src" / "main.py")}}
    assert router.route(read, hook.factory).action == "continue"
    assert hook.calls == []
    log = (tmp_path / "claude" / "bridge-status.log").read_text(encoding="utf-8")
    assert "not configured for delegation" in log
    assert "No registered project found" in log


def test_route_skips_disabled_project(monkeypatch, tmp_path):
    isolate(monkeypatch, tmp_path)
    project = make_project(tmp_path)
    registry = ProjectRegistry()
    registry.register(project)
    registry.set_enabled(project, False)
    hook = RecordingHook()
    payload = {"tool_name": "Read", "tool_input": {"file_path": str(project / "src" / "main.py")}}
    assert router.route(payload, hook.factory).action == "continue"
    assert hook.calls == []


def test_run_router_handles_bad_input(monkeypatch, tmp_path):
    isolate(monkeypatch, tmp_path)
    assert router.run_router("{]") == '{"action":"continue"}'
    assert router.run_router(json.dumps({"tool_input": {}})) == '{"action":"continue"}'
    log = (tmp_path / "claude" / "bridge-status.log").read_text(encoding="utf-8")
    assert "Could not extract tool name" in log


def test_notify_levels(monkeypatch, tmp_path):
    isolate(monkeypatch, tmp_path)
    monkeypatch.setenv("GEMINI_ODDITY_NOTIFY", "bogus")
    assert notify.notify_level() == "subtle"
    monkeypatch.setenv("GEMINI_ODDITY_NOTIFY", "quiet")
    notify.notify_user("DELEGATE", "hidden")
    assert "hidden" in (tmp_path / "claude" / "bridge-status.log").read_text(encoding="utf-8")


def test_notify_level_falls_back_to_config(monkeypatch, tmp_path):
    isolate(monkeypatch, tmp_path)
    monkeypatch.delenv("GEMINI_ODDITY_NOTIFY")
    config = tmp_path / "home" / "config.json"
    config.parent.mkdir(parents=True)
    config.write_text(json.dumps({"settings": {"notify": "verbose"}}), encoding="utf-8")
    assert notify.notify_level() == "verbose"
    monkeypatch.setenv("GEMINI_ODDITY_NOTIFY", "debug")
    assert notify.notify_level() == "debug"
    config.write_text("{not json", encoding="utf-8")
    monkeypatch.delenv("GEMINI_ODDITY_NOTIFY")
    assert notify.notify_level() == "subtle"


def test_status_summary(monkeypatch, tmp_path):
    isolate(monkeypatch, tmp_path)
    project = make_project(tmp_path)
    ProjectRegistry().register(project)
    info = router.status()
    assert info["version"] == "2.0.0"
    assert info["notify"] == "quiet"
    assert info["projects"] == {str(project): "2.0.0"}

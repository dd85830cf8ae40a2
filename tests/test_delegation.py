from gemini_bridge.delegation import (
    DelegationEngine,
    DelegationSettings,
    calculate_complexity_score,
    check_keyword_triggers,
    estimate_tokens,
)


def make_file(directory, name, size):
    path = directory / name
    path.write_bytes(b"a" * size)
    return path


def test_estimate_tokens_uses_four_bytes_per_token():
    assert estimate_tokens(0) == 0
    assert estimate_tokens(4000) == 1000
    assert estimate_tokens(7) == 1


def test_complexity_scores_match_reference_cases():
    assert calculate_complexity_score("Task", "Review and refactor entire codebase", 5, 100000) == 10
    assert calculate_complexity_score("Task", "Simple analysis task", 2, 5000) == 5
    assert calculate_complexity_score("Read", "", 1, 1000) == 1
    assert calculate_complexity_score("Grep", "Search across many files", 10, 50000) == 8


def test_keyword_triggers():
    assert check_keyword_triggers("Please do a Security Audit of auth") == "security audit"
    assert check_keyword_triggers("think carefully about this") == "think carefully"
    assert check_keyword_triggers("rename a variable") is None


def test_tool_not_configured(tmp_path):
    decision = DelegationEngine().decide("Write", "comprehensive", [make_file(tmp_path, "a.py", 10)])
    assert not decision.delegate
    assert decision.reason == "tool_not_configured"


def test_no_content():
    decision = DelegationEngine().decide("Task", "  ", [])
    assert decision.reason == "no_content"


def test_exceeds_gemini_limit(tmp_path):
    engine = DelegationEngine(DelegationSettings(gemini_token_limit=100))
    decision = engine.decide("Read", "", [make_file(tmp_path, "a.py", 1000)])
    assert not decision.delegate
    assert decision.reason == "exceeds_gemini_limit"


def test_keyword_trigger_delegates():
    decision = DelegationEngine().decide("Task", "Run a security audit on the login flow", [])
    assert decision.delegate
    assert decision.reason == "keyword:security audit"


def test_large_single_file_exceeds_claude_limit(tmp_path):
    decision = DelegationEngine().decide("Read", "", [make_file(tmp_path, "big.log", 250_000)])
    assert decision.delegate
    assert decision.reason == "exceeds_claude_limit"
    assert decision.estimated_tokens == 62_500


def test_multi_file(tmp_path):
    files = [make_file(tmp_path, "a.py", 3000), make_file(tmp_path, "b.py", 3000)]
    decision = DelegationEngine().decide("Grep", "", files)
    assert decision.delegate
    assert decision.reason == "multi_file"
    assert decision.file_count == 2
    assert decision.total_size == 6000


def test_complexity_threshold(tmp_path):
    decision = DelegationEngine().decide(
        "Task", "refactor and review this module", [make_file(tmp_path, "mod.py", 60_000)]
    )
    assert decision.delegate
    assert decision.reason == "complexity:7"
    assert decision.score == 7


def test_small_read_stays_with_claude(tmp_path):
    decision = DelegationEngine().decide("Read", "", [make_file(tmp_path, "a.py", 1000)])
    assert not decision.delegate
    assert decision.reason == "below_thresholds"
    assert decision.score == 1


def test_disabled_keyword_matching(tmp_path):
    engine = DelegationEngine(DelegationSettings(keyword_matching_enabled=False))
    decision = engine.decide("Task", "security audit", [])
    assert decision.reason == "below_thresholds"


def test_settings_layer_yaml_env_and_overrides(tmp_path, monkeypatch):
    bridge_dir = tmp_path / ".gemini-oddity"
    bridge_dir.mkdir()
    (bridge_dir / "delegation.yaml").write_text(
        "delegation:\n  min_files_for_gemini: 5\n  keyword_matching_enabled: false\n  tools: Read|Grep\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("MIN_FILE_SIZE_FOR_GEMINI", "100")
    monkeypatch.delenv("GEMINI_BRIDGE_TOOLS", raising=False)
    settings = DelegationSettings.load(tmp_path, overrides={"complexity_threshold": "9"})
    assert settings.min_files_for_gemini == 5
    assert settings.keyword_matching_enabled is False
    assert settings.min_file_size_for_gemini == 100
    assert settings.complexity_threshold == 9
    assert settings.tool_set() == {"Read", "Grep"}
    assert settings.claude_token_limit == 50000

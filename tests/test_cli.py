# tests/test_cli.py

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace

import pytest

from atlas_os.cli import main as cli_main
from atlas_os.cli.bootstrap import create_initial_state
from atlas_os.llm.errors import LLMNotConfiguredError
from atlas_os.llm.offline import OfflineLLMClient


@pytest.fixture()
def quiet_cli(monkeypatch: pytest.MonkeyPatch, settings: SimpleNamespace) -> SimpleNamespace:
    monkeypatch.setattr(cli_main, "get_settings", lambda: settings)
    monkeypatch.setattr(cli_main, "setup_logging", lambda **_kw: None)
    return settings


def test_state_falls_back_to_offline_llm(settings: SimpleNamespace) -> None:
    state = create_initial_state(settings=settings)

    assert isinstance(state.llm, OfflineLLMClient)
    assert settings.db_path.exists()


def test_offline_client_answers_json_engines() -> None:
    llm = OfflineLLMClient()

    plan = json.loads(llm.complete([], system_prompt="You are the Atlas orchestrator."))
    assert plan["recommended_agents"] == []
    assert llm.complete([], system_prompt="You are a task extractor assistant.") == "[]"
    assert "You said: hi" in llm.complete([{"role": "user", "content": "hi"}])
    with pytest.raises(LLMNotConfiguredError):
        llm.embed("text")


def test_seed_agents_command(quiet_cli: SimpleNamespace, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    agents_file = tmp_path / "agents.json"
    agents_file.write_text(json.dumps({"agents": [{"name": "Seeded", "sector": "UTILITY"}]}), encoding="utf-8")

    code = cli_main.main(["seed-agents", str(agents_file)])

    assert code == 0
    assert json.loads(capsys.readouterr().out) == {"imported": 1, "skipped": 0, "errors": []}


def test_seed_agents_missing_file(quiet_cli: SimpleNamespace, tmp_path: Path) -> None:
    assert cli_main.main(["seed-agents", str(tmp_path / "missing.json")]) == 1


def test_sweep_command_prints_summary(quiet_cli: SimpleNamespace, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli_main.main(["sweep"])

    assert code == 0
    assert json.loads(capsys.readouterr().out) == {"processed": 0, "skipped": 0, "results": []}

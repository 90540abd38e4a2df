from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

import main as cli_module
from ensemble.agent import orchestrator as orchestrator_module
from ensemble.agent.persistence import EventStore
from ensemble.team.files import load_bucket, load_spec, save_spec
from ensemble.team.models import AgentSpec, EnvironmentSpec
from tests.helpers.stubs import ScriptedLLMClient, by_role, complete, text


@pytest.fixture
def workspace(tmp_path, monkeypatch) -> Path:
    config_dir = tmp_path / ".ensemble"
    config_dir.mkdir()
    (config_dir / "config.toml").write_text(
        f"data_dir = '{tmp_path / 'data'}'\n\n[replay]\nstructural_pause_ms = 0\nbatch_pause_ms = 0\n",
    )
    monkeypatch.setattr(
        "ensemble.config.loader.get_system_config_path",
        lambda: tmp_path / "missing.toml",
    )
    monkeypatch.setenv("API_KEY", "sk-test")
    return tmp_path


@pytest.fixture
def scripted(monkeypatch) -> ScriptedLLMClient:
    client = ScriptedLLMClient(
        responder=by_role(
            {
                "Researcher": [text("Facts."), complete()],
                "Writer": [text("Brief."), complete()],
            },
            default=[text("Final deliverable."), complete()],
        ),
    )
    monkeypatch.setattr(orchestrator_module, "LLMClient", lambda config: client)
    return client


def _team_file(workspace: Path) -> Path:
    path = workspace / "team.json"
    save_spec(
        path,
        EnvironmentSpec(
            name="Brief",
            objective="Brief on tides",
            agents=[
                AgentSpec(id="researcher", role="Researcher"),
                AgentSpec(id="writer", role="Writer", depends_on=["researcher"]),
            ],
        ),
    )
    return path


def test_seed_tools_is_idempotent(tmp_path) -> None:
    bucket = tmp_path / "bucket.json"
    runner = CliRunner()

    first = runner.invoke(cli_module.main, ["seed-tools", str(bucket)])
    second = runner.invoke(cli_module.main, ["seed-tools", str(bucket)])

    assert first.exit_code == 0
    assert second.exit_code == 0
    assert [item.label for item in load_bucket(bucket)] == ["web_search", "web_fetch", "code_execution"]


def test_runs_without_history(workspace) -> None:
    result = CliRunner().invoke(cli_module.main, ["--cwd", str(workspace), "runs"])

    assert result.exit_code == 0
    assert "No recorded runs" in result.output


def test_execute_records_a_run_that_can_be_replayed(workspace, scripted) -> None:
    runner = CliRunner()

    result = runner.invoke(
        cli_module.main,
        ["--cwd", str(workspace), "execute", str(_team_file(workspace))],
    )

    assert result.exit_code == 0, result.output
    assert len(scripted.calls) == 3
    runs = EventStore(workspace / "data").list_runs()
    assert len(runs) == 1

    replayed = runner.invoke(cli_module.main, ["--cwd", str(workspace), "replay", runs[0].run_id])

    assert replayed.exit_code == 0, replayed.output
    assert len(scripted.calls) == 3


def test_execute_rejects_invalid_team_file(workspace) -> None:
    path = workspace / "broken.json"
    path.write_text(json.dumps({"agents": [{"id": "a"}, {"id": "a"}]}))

    result = CliRunner().invoke(cli_module.main, ["--cwd", str(workspace), "execute", str(path)])

    assert result.exit_code == 1


def test_design_writes_team_file(workspace, monkeypatch) -> None:
    spec_json = json.dumps({"name": "Haiku", "agents": [{"id": "poet", "role": "Poet"}]})
    client = ScriptedLLMClient(scripts=[[text(spec_json), complete()]])
    monkeypatch.setattr(orchestrator_module, "LLMClient", lambda config: client)
    out = workspace / "haiku.json"

    result = CliRunner().invoke(
        cli_module.main,
        ["--cwd", str(workspace), "design", "Write a haiku", "--out", str(out)],
    )

    assert result.exit_code == 0, result.output
    assert [agent.id for agent in load_spec(out).agents] == ["poet"]


def test_unknown_replay_run_fails(workspace) -> None:
    result = CliRunner().invoke(cli_module.main, ["--cwd", str(workspace), "replay", "nope"])

    assert result.exit_code == 1

import json

import pytest
from rich.console import Console
from typer.testing import CliRunner

from shiro_tactician.main import app, buff_table
from shiro_tactician.parser import extract

runner = CliRunner()


def test_extract_json():
    result = runner.invoke(app, ["extract", "自身の攻撃が20%上昇", "--json"])

    assert result.exit_code == 0
    buffs = json.loads(result.output)
    assert len(buffs) == 1
    assert buffs[0]["stat"] == "attack"
    assert buffs[0]["value"] == 20
    assert buffs[0]["target"] == "self"


def test_extract_table():
    result = runner.invoke(app, ["extract", "敵の防御が20%低下"])
    assert result.exit_code == 0
    assert "enemy_defense" in result.output


def test_extract_nothing():
    result = runner.invoke(app, ["extract", "特に効果なし"])
    assert result.exit_code == 0
    assert "No buffs" in result.output


def test_units(data_dir):
    result = runner.invoke(app, ["--data-dir", str(data_dir), "units"])
    assert result.exit_code == 0
    assert "kiyosu" in result.output
    assert "azuchi" in result.output


def test_missing_data_dir(tmp_path):
    result = runner.invoke(app, ["--data-dir", str(tmp_path / "nope"), "units"])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_data_dir_from_environment(data_dir, monkeypatch):
    monkeypatch.setenv("SHIRO_DATA_DIR", str(data_dir))
    result = runner.invoke(app, ["unit", "kiyosu"])
    assert result.exit_code == 0
    assert "清洲城" in result.output


def test_unit_not_found(data_dir):
    result = runner.invoke(app, ["--data-dir", str(data_dir), "unit", "nope"])
    assert result.exit_code == 1
    assert "Unit not found" in result.output


def test_damage_json(data_dir):
    result = runner.invoke(app, ["--data-dir", str(data_dir), "damage", "kiyosu", "--json"])

    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["unit_id"] == "kiyosu"
    assert data["phase1_attack"] == pytest.approx(1200)
    assert data["dps"] == pytest.approx(1200 * 60 / 41)


def test_damage_overrides(data_dir):
    result = runner.invoke(
        app,
        ["--data-dir", str(data_dir), "damage", "kiyosu", "--enemy-defense", "200", "--strategy", "--json"],
    )

    assert result.exit_code == 0
    data = json.loads(result.output)
    # 1000 x (1 + 50%) with the activated buff, minus 200 defense
    assert data["phase3_damage"] == pytest.approx(1300)


def test_damage_with_environment(data_dir):
    result = runner.invoke(app, ["--data-dir", str(data_dir), "damage", "kiyosu", "--env", "armored", "--json"])
    assert result.exit_code == 0
    assert json.loads(result.output)["phase3_damage"] == pytest.approx(700)


def test_unknown_environment(data_dir):
    result = runner.invoke(app, ["--data-dir", str(data_dir), "damage", "kiyosu", "--env", "nope"])
    assert result.exit_code == 1
    assert "Environment not found" in result.output


def test_squad(data_dir):
    result = runner.invoke(app, ["--data-dir", str(data_dir), "squad", "main"])
    assert result.exit_code == 0
    assert "Squad: main" in result.output


def test_squad_json(data_dir):
    result = runner.invoke(app, ["--data-dir", str(data_dir), "squad", "main", "--json"])
    assert result.exit_code == 0
    assert '"kiyosu"' in result.output
    assert '"azuchi"' in result.output


def test_squad_not_found(data_dir):
    result = runner.invoke(app, ["--data-dir", str(data_dir), "squad", "nope"])
    assert result.exit_code == 1


def test_scenarios(data_dir):
    result = runner.invoke(app, ["--data-dir", str(data_dir), "scenarios", "kiyosu"])
    assert result.exit_code == 0
    assert "strategy_active" in result.output


def test_buff_table_flags_inferred_target():
    buffs = extract("攻撃が20%上昇")
    assert buffs[0].confidence == "inferred"

    console = Console(record=True, width=200)
    console.print(buff_table(buffs, title="Buffs"))
    assert "target inferred" in console.export_text()

import logging

import pytest
import yaml

from shiro_tactician.data_loader import DataLoader
from shiro_tactician.models import SQUAD_SIZE, Environment, SquadRecord, Stat


def test_missing_data_dir(tmp_path):
    with pytest.raises(FileNotFoundError):
        DataLoader(tmp_path / "nope")


def test_missing_subdirs_load_nothing(tmp_path):
    loader = DataLoader(tmp_path)
    assert loader.load_units() == []
    assert loader.load_squad_records() == []
    assert loader.load_environments() == []


def test_load_units_assembles_raw_text(data_dir):
    units = DataLoader(data_dir).load_units()

    assert sorted(u.id for u in units) == ["azuchi", "kiyosu"]
    kiyosu = next(u for u in units if u.id == "kiyosu")
    assert kiyosu.base_stat(Stat.ATTACK) == 1000
    assert [b.stat for b in kiyosu.passives] == [Stat.ATTACK]
    assert not kiyosu.strategies[0].is_active


def test_load_unit_by_id(data_dir):
    loader = DataLoader(data_dir)
    assert loader.load_unit_by_id("azuchi").name == "安土城"
    assert loader.load_unit_by_id("missing") is None


def test_unit_id_defaults_to_file_stem(data_dir):
    (data_dir / "units" / "hikone.yaml").write_text("name: 彦根城\nweapon: 鉄砲\n", encoding="utf-8")
    assert DataLoader(data_dir).load_unit_by_id("hikone").weapon == "鉄砲"


def test_stored_unit_record_round_trips(data_dir):
    loader = DataLoader(data_dir)
    unit = loader.load_unit_by_id("kiyosu")

    record = unit.model_dump(mode="json")
    record["id"] = "kiyosu-saved"
    record["saved_at"] = "2024-01-01"
    (data_dir / "units" / "kiyosu-saved.yaml").write_text(
        yaml.safe_dump(record, allow_unicode=True), encoding="utf-8"
    )

    stored = loader.load_unit_by_id("kiyosu-saved")
    assert stored.passives == unit.passives
    assert stored.strategies == unit.strategies


def test_invalid_yaml_is_skipped(data_dir, caplog):
    (data_dir / "units" / "broken.yaml").write_text("name: [unclosed\n", encoding="utf-8")

    with caplog.at_level(logging.ERROR):
        units = DataLoader(data_dir).load_units()

    assert len(units) == 2
    assert "broken.yaml" in caplog.text


def test_invalid_record_is_skipped(data_dir, caplog):
    (data_dir / "units" / "noweapon.yaml").write_text("name: 名無し\n", encoding="utf-8")

    with caplog.at_level(logging.ERROR):
        units = DataLoader(data_dir).load_units()

    assert len(units) == 2
    assert "Validation error" in caplog.text


def test_load_environment_by_id(data_dir):
    environment = DataLoader(data_dir).load_environment_by_id("armored")
    assert type(environment) is Environment
    assert environment.enemy_defense == 500
    assert DataLoader(data_dir).load_environment_by_id("missing") is None


def test_load_squad_resolves_units(data_dir, caplog):
    with caplog.at_level(logging.WARNING):
        squad = DataLoader(data_dir).load_squad_by_id("main")

    assert len(squad.slots) == SQUAD_SIZE
    assert [u.id for u in squad.members()] == ["kiyosu", "azuchi"]
    assert squad.slots[2] is None
    assert "missing-unit" in caplog.text


def test_build_squad_with_given_units(data_dir):
    loader = DataLoader(data_dir)
    units = loader.load_units()
    squad = loader.build_squad(SquadRecord(id="s", slots=[None, "azuchi"]), units)
    assert squad.slots[0] is None
    assert squad.slots[1].id == "azuchi"

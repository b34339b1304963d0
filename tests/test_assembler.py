import pytest
from pydantic import ValidationError

from shiro_tactician.assembler import BuffIdGenerator, RawUnitData, assemble_unit, slugify
from shiro_tactician.models import BuffSource, RangeToAttack, Stat


def _raw(**fields) -> RawUnitData:
    defaults = {
        "name": "清洲城",
        "weapon": "刀",
        "base_stats": {Stat.ATTACK: 1000},
        "passive_texts": ["自身の攻撃が20%上昇"],
        "strategy_texts": ["20秒間自身の攻撃が50%上昇"],
    }
    defaults.update(fields)
    return RawUnitData(**defaults)


def test_id_generator_is_sequential():
    ids = BuffIdGenerator("x")
    assert [ids.next_id() for _ in range(3)] == ["x-1", "x-2", "x-3"]


def test_separate_generators_do_not_share_state():
    first = BuffIdGenerator()
    second = BuffIdGenerator()
    first.next_id()
    assert second.next_id() == "buff-1"


def test_slugify():
    assert slugify("Himeji Castle") == "himeji-castle"
    assert slugify("清洲城") == "清洲城"
    assert slugify("!!!") == "unit"


def test_assemble_unit():
    unit = assemble_unit(_raw(id="kiyosu"))

    assert unit.id == "kiyosu"
    assert unit.weapon_range == "近"
    assert unit.weapon_type == "物"
    assert unit.placement == "近"

    assert len(unit.passives) == 1
    assert unit.passives[0].source == BuffSource.SELF_SKILL
    assert unit.passives[0].is_active
    assert unit.passives[0].id == "kiyosu-1"

    assert len(unit.strategies) == 1
    assert unit.strategies[0].source == BuffSource.STRATEGY
    assert not unit.strategies[0].is_active

    assert unit.raw_passive_texts == ["自身の攻撃が20%上昇"]
    assert unit.raw_strategy_texts == ["20秒間自身の攻撃が50%上昇"]


def test_assemble_without_id_uses_slug():
    unit = assemble_unit(_raw())
    assert unit.id == "清洲城"


def test_activate_strategies():
    unit = assemble_unit(_raw(), activate_strategies=True)
    assert all(b.is_active for b in unit.strategies)


def test_explicit_id_generator():
    unit = assemble_unit(_raw(), BuffIdGenerator("shared"))
    assert [b.id for b in unit.all_buffs()] == ["shared-1", "shared-2"]


def test_formation_texts_become_passives():
    unit = assemble_unit(_raw(passive_texts=[], formation_texts=["攻撃が10%上昇"]))
    assert [b.source for b in unit.passives] == [BuffSource.FORMATION_SKILL]


def test_special_texts():
    unit = assemble_unit(_raw(special_texts=["敵の防御が20%低下"]))
    assert [b.stat for b in unit.specials] == [Stat.ENEMY_DEFENSE]
    assert unit.specials[0].source == BuffSource.SPECIAL_ABILITY


def test_unrecognized_text_yields_no_buffs():
    unit = assemble_unit(_raw(passive_texts=["特に効果なし"], strategy_texts=[]))
    assert unit.all_buffs() == []


def test_range_to_attack_bool_is_coerced():
    unit = assemble_unit(_raw(range_to_attack=True))
    assert unit.range_to_attack == RangeToAttack(enabled=True)

    unit = assemble_unit(_raw(range_to_attack=False))
    assert unit.range_to_attack is None


def test_assembled_unit_is_frozen():
    unit = assemble_unit(_raw())
    with pytest.raises(ValidationError):
        unit.name = "changed"


def test_with_strategies_active_does_not_mutate():
    unit = assemble_unit(_raw())
    active = unit.with_strategies_active()
    assert all(b.is_active for b in active.strategies)
    assert not any(b.is_active for b in unit.strategies)

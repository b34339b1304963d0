import pytest
from conftest import make_buff, make_unit

from shiro_tactician.models import BuffSource, ConditionContext, ConditionTag, DamageScenario, Environment, Stat
from shiro_tactician.scenarios import SCENARIO_LABELS, calculate_damage_range


def test_plain_unit_has_no_scenarios(katana_unit):
    damage_range = calculate_damage_range(katana_unit)
    assert damage_range.scenarios == []
    assert damage_range.max == damage_range.base


def test_enemy_hp_scenarios():
    unit = make_unit(passives=[make_buff(Stat.GIVE_DAMAGE, 100, tags=[ConditionTag.HP_DEPENDENT])])
    damage_range = calculate_damage_range(unit, Environment())

    # Full HP matches the base environment and is dropped
    kinds = [s.scenario for s in damage_range.scenarios]
    assert kinds == [DamageScenario.ENEMY_HP_1, DamageScenario.ENEMY_HP_30, DamageScenario.ENEMY_HP_50]

    dps = [s.result.dps for s in damage_range.scenarios]
    assert dps == sorted(dps, reverse=True)
    assert damage_range.max.dps == pytest.approx(dps[0])
    assert damage_range.scenarios[0].label == SCENARIO_LABELS[DamageScenario.ENEMY_HP_1]


def test_enemy_hp_condition_scenarios():
    unit = make_unit(passives=[make_buff(Stat.ATTACK, 50, tags=[ConditionTag.ENEMY_HP_BELOW_30])])
    context = ConditionContext(enemy_hp_percent=100)
    damage_range = calculate_damage_range(unit, Environment(), context)

    kinds = {s.scenario for s in damage_range.scenarios}
    assert kinds == {DamageScenario.ENEMY_HP_30, DamageScenario.ENEMY_HP_1}
    assert damage_range.max.phase1_attack == pytest.approx(1500)
    assert damage_range.base.phase1_attack == 1000


def test_strategy_active_scenario():
    buff = make_buff(Stat.ATTACK, 50, source=BuffSource.STRATEGY, is_active=False)
    unit = make_unit(strategies=[buff])

    damage_range = calculate_damage_range(unit)

    assert [s.scenario for s in damage_range.scenarios] == [DamageScenario.STRATEGY_ACTIVE]
    assert damage_range.max.phase1_attack == pytest.approx(1500)
    assert damage_range.base.phase1_attack == 1000

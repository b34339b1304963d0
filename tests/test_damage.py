import pytest
from conftest import make_buff, make_unit

from shiro_tactician.damage import compare, resolve, strategy_multiplier
from shiro_tactician.models import (
    AbilityMode,
    AmbushInfo,
    BuffMode,
    BuffSource,
    ConditionalGiveDamage,
    ConditionTag,
    Environment,
    RangeToAttack,
    ReplacedAttack,
    SpecialAttack,
    Stat,
    StrategyDamage,
    Target,
)
from shiro_tactician.phases import MIN_DAMAGE, interpolate_hp_damage

# Sword frames: 19 attack + 22 gap
SWORD_FRAMES = 41


def _dps(damage: float, frames: float = SWORD_FRAMES) -> float:
    return damage * 60 / frames


# =============================================================================
# PHASES
# =============================================================================


def test_baseline_dps(katana_unit, neutral_env):
    result = resolve(katana_unit, neutral_env)

    assert result.phase1_attack == 1000
    assert result.total_damage == 1000
    assert result.breakdown.dps.total_frames == SWORD_FRAMES
    assert result.dps == pytest.approx(1463.41, abs=0.01)


def test_percent_and_flat_attack():
    unit = make_unit(
        passives=[
            make_buff(Stat.ATTACK, 20, buff_id="p"),
            make_buff(Stat.ATTACK, 100, mode=BuffMode.FLAT_SUM, buff_id="f"),
        ]
    )
    result = resolve(unit)
    assert result.phase1_attack == pytest.approx(1320)
    assert result.breakdown.phase1.flat_buff_applied == 100


def test_environment_inspire_and_percent(katana_unit):
    result = resolve(katana_unit, Environment(inspire_flat=200, attack_percent=50))
    assert result.phase1_attack == pytest.approx(1800)


def test_ambush_multiplies_phase1():
    unit = make_unit(ambush_info=AmbushInfo(max_count=2, attack_multiplier=1.4))
    result = resolve(unit)
    assert result.breakdown.phase1.ambush_multiplier == pytest.approx(1.96)
    assert result.phase1_attack == pytest.approx(1960)


def test_range_to_attack():
    unit = make_unit(base_stats={Stat.ATTACK: 1000, Stat.RANGE: 200}, range_to_attack=RangeToAttack())
    result = resolve(unit)
    assert result.phase1_attack == pytest.approx(1200)
    assert result.breakdown.phase1.range_to_attack_applied


def test_give_damage_multiplier():
    unit = make_unit(passives=[make_buff(Stat.GIVE_DAMAGE, 20)])
    assert resolve(unit).phase2_damage == pytest.approx(1200)


def test_hp_dependent_give_damage_interpolates():
    unit = make_unit(passives=[make_buff(Stat.GIVE_DAMAGE, 100, tags=[ConditionTag.HP_DEPENDENT])])
    assert resolve(unit, Environment(enemy_hp_percent=100)).phase2_damage == pytest.approx(1000)
    assert resolve(unit, Environment(enemy_hp_percent=50)).phase2_damage == pytest.approx(1500)
    assert interpolate_hp_damage(0, 2) == 2


def test_range_threshold_give_damage():
    buff = make_buff(Stat.GIVE_DAMAGE, 100, range_threshold=300)
    short = make_unit(base_stats={Stat.ATTACK: 1000, Stat.RANGE: 200}, passives=[buff])
    long = make_unit(base_stats={Stat.ATTACK: 1000, Stat.RANGE: 300}, passives=[buff])
    assert resolve(short).phase2_damage == pytest.approx(1000)
    assert resolve(long).phase2_damage == pytest.approx(2000)


def test_conditional_give_damage():
    unit = make_unit(
        base_stats={Stat.ATTACK: 1000, Stat.RANGE: 400},
        conditional_give_damage=[ConditionalGiveDamage(range_threshold=350, multiplier=1.5)],
    )
    assert resolve(unit).phase2_damage == pytest.approx(1500)


def test_defense_floor():
    unit = make_unit(attack=100)
    result = resolve(unit, Environment(enemy_defense=500))
    assert result.phase3_damage == MIN_DAMAGE
    assert result.total_damage == 1


def test_defense_debuffs_flat_then_percent(katana_unit):
    env = Environment(enemy_defense=500, defense_debuff_flat=100, defense_debuff_percent=50)
    result = resolve(katana_unit, env)
    assert result.breakdown.phase3.effective_defense == pytest.approx(200)
    assert result.phase3_damage == pytest.approx(800)


def test_own_defense_debuff_uses_max_with_environment():
    unit = make_unit(passives=[make_buff(Stat.ENEMY_DEFENSE, 80, target=Target.RANGE)])
    result = resolve(unit, Environment(enemy_defense=500, defense_debuff_percent=50))
    assert result.breakdown.phase3.effective_defense == pytest.approx(100)


def test_defense_ignore():
    unit = make_unit(passives=[make_buff(Stat.ENEMY_DEFENSE_IGNORE_COMPLETE, 1, mode=BuffMode.ABSOLUTE_SET)])
    result = resolve(unit, Environment(enemy_defense=5000))
    assert result.breakdown.phase3.defense_ignored
    assert result.phase3_damage == 1000


def test_phase4_is_floored(katana_unit):
    result = resolve(katana_unit, Environment(damage_dealt=20, damage_taken=10))
    assert result.phase4_damage == 1320

    odd = resolve(make_unit(attack=333), Environment(damage_dealt=10))
    assert odd.phase4_damage == 366


def test_multi_hit():
    unit = make_unit(multi_hit=2)
    result = resolve(unit)
    assert result.total_damage == 2000
    assert result.breakdown.phase5.attack_count == 2


def test_parsed_attack_count():
    unit = make_unit(passives=[make_buff(Stat.ATTACK_COUNT, 3, mode=BuffMode.ABSOLUTE_SET)])
    assert resolve(unit).total_damage == 3000


# =============================================================================
# DPS
# =============================================================================


def test_attack_speed_shortens_attack_frames():
    unit = make_unit(passives=[make_buff(Stat.ATTACK_SPEED, 50)])
    result = resolve(unit)
    assert result.breakdown.dps.attack_frames == pytest.approx(19 / 1.5)
    assert result.dps == pytest.approx(_dps(1000, 19 / 1.5 + 22))


def test_gap_reduction(katana_unit):
    result = resolve(katana_unit, Environment(gap_reduction=50))
    assert result.breakdown.dps.gap_frames == pytest.approx(11)
    assert result.dps == pytest.approx(2000)


def test_unknown_weapon_has_no_dps():
    unit = make_unit(weapon="謎")
    result = resolve(unit)
    assert result.total_damage == 1000
    assert result.dps == 0


# =============================================================================
# CYCLES
# =============================================================================


def test_special_attack_cycle():
    unit = make_unit(special_attack=SpecialAttack(multiplier=3, cycle_n=4))
    result = resolve(unit)

    assert result.special_attack_damage == pytest.approx(3000)
    # Three normal hits and one special over four attack intervals
    assert result.cycle_dps == pytest.approx(6000 / (4 * SWORD_FRAMES / 60))


def test_special_attack_ignores_defense():
    unit = make_unit(special_attack=SpecialAttack(multiplier=2, defense_ignore=True))
    result = resolve(unit, Environment(enemy_defense=500))
    assert result.total_damage == 500
    assert result.special_attack_damage == 2000


def test_special_attack_damage_only_boosts_special_hit():
    unit = make_unit(
        passives=[make_buff(Stat.SPECIAL_ATTACK_DAMAGE, 50)],
        special_attack=SpecialAttack(multiplier=2, cycle_n=4),
    )
    result = resolve(unit)

    assert result.phase2_damage == pytest.approx(1000)
    assert all(m.type != "special_attack" for m in result.breakdown.phase2.multipliers)
    assert result.special_attack_damage == pytest.approx(3000)
    assert result.breakdown.special_attack.give_damage_multiplier == pytest.approx(1.5)


def test_bell_weapon_resolves_one_hit():
    result = resolve(make_unit(weapon="鈴"))
    assert result.breakdown.phase5.attack_count == 1
    assert result.total_damage == 1000
    assert result.dps == pytest.approx(1000 * 60 / 134)


def test_strategy_damage_cycle():
    unit = make_unit(strategy_damage=StrategyDamage(multiplier=5, cycle_duration=20))
    result = resolve(unit)

    assert result.strategy_damage == pytest.approx(5000)
    expected = (_dps(1000) * 20 - 1000 + 5000) / 20
    assert result.strategy_cycle_dps == pytest.approx(expected)


def test_strategy_buff_window():
    strategy = StrategyDamage(multiplier=1, cycle_duration=20, buff_duration=10, buff_damage_dealt=2)
    result = resolve(make_unit(strategy_damage=strategy))

    breakdown = result.breakdown.strategy_damage
    assert breakdown.buffed_dps == pytest.approx(_dps(2000))
    expected = (_dps(2000) * 10 + _dps(1000) * 10 - 1000 + 1000) / 20
    assert breakdown.cycle_dps == pytest.approx(expected)


def test_strategy_multiplier_interpolates_enemy_hp():
    unit = make_unit(strategy_damage=StrategyDamage(multiplier=2, max_multiplier=4))
    assert strategy_multiplier(unit, Environment(enemy_hp_percent=100)) == 2
    assert strategy_multiplier(unit, Environment(enemy_hp_percent=50)) == 3
    assert strategy_multiplier(unit, Environment(enemy_hp_percent=0)) == 4


def test_ability_mode_uptime():
    mode = AbilityMode(replaced_attack=ReplacedAttack(multiplier=2), duration=10, cooldown=30)
    result = resolve(make_unit(ability_mode=mode))

    breakdown = result.breakdown.ability_mode
    assert breakdown.uptime == pytest.approx(0.25)
    assert breakdown.active_dps == pytest.approx(_dps(2000))
    assert breakdown.average_dps == pytest.approx(0.25 * _dps(2000) + 0.75 * _dps(1000))


def test_inspire_amount():
    unit = make_unit(
        passives=[make_buff(Stat.INSPIRE, 30, mode=BuffMode.FLAT_SUM, target=Target.RANGE, inspire_source_stat=Stat.ATTACK)]
    )
    result = resolve(unit)
    assert result.phase1_attack == 1000
    assert result.inspire_amount == pytest.approx(300)


def test_no_optional_outputs_by_default(katana_unit):
    result = resolve(katana_unit)
    assert result.special_attack_damage is None
    assert result.strategy_damage is None
    assert result.inspire_amount is None
    assert result.breakdown.ability_mode is None


# =============================================================================
# ACTIVATION AND COMPARISON
# =============================================================================


def test_inactive_strategy_buffs_do_not_count():
    buff = make_buff(Stat.ATTACK, 50, source=BuffSource.STRATEGY, is_active=False)
    unit = make_unit(strategies=[buff])
    assert resolve(unit).phase1_attack == 1000
    assert resolve(unit.with_strategies_active()).phase1_attack == pytest.approx(1500)


def test_compare():
    before = resolve(make_unit())
    after = resolve(make_unit(passives=[make_buff(Stat.ATTACK, 20)]))

    comparison = compare(before, after)
    assert comparison.diff.total_damage == pytest.approx(200)
    assert comparison.diff.total_damage_percent == pytest.approx(20)
    assert comparison.diff.dps_percent == pytest.approx(20)
    assert comparison.diff.inspire_amount is None


def test_resolve_does_not_mutate(katana_unit, neutral_env):
    snapshot = katana_unit.model_dump()
    resolve(katana_unit, neutral_env)
    assert katana_unit.model_dump() == snapshot

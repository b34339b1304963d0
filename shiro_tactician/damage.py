"""
Damage resolution.

Runs the five phases for a unit's normal attack and, where the unit
describes them, its special attack, activated-ability damage and ability
mode, blending each into a cycle DPS.
"""

import logging
from dataclasses import dataclass

from .models import (
    AbilityModeBreakdown,
    ConditionContext,
    DamageBreakdown,
    DamageComparison,
    DamageDiff,
    DamageResult,
    DpsBreakdown,
    Environment,
    MultiplierDetail,
    Phase2Breakdown,
    Phase3Breakdown,
    Phase4Breakdown,
    Phase5Breakdown,
    SpecialAttackBreakdown,
    Stat,
    StrategyDamageBreakdown,
    Unit,
)
from .phases import (
    SelfBuffSummary,
    calculate_dps,
    hit_count,
    phase1_attack,
    phase2_multipliers,
    phase3_defense,
    phase4_dealt_taken,
    phase5_hits,
    summarize_self_buffs,
)
from .weapons import FRAMES_PER_SECOND

logger = logging.getLogger(__name__)


@dataclass
class HitResult:
    """Phases 2-5 of one attack instance."""

    phase2: Phase2Breakdown
    phase3: Phase3Breakdown
    phase4: Phase4Breakdown
    phase5: Phase5Breakdown

    @property
    def total(self) -> float:
        return self.phase5.total_damage


def resolve_hit(
    attack: float,
    unit: Unit,
    environment: Environment,
    summary: SelfBuffSummary,
    *,
    hits: int,
    special: bool = False,
    ignore_defense: bool = False,
    extra: list[MultiplierDetail] | None = None,
    dealt_factor: float = 1.0,
) -> HitResult:
    damage, p2 = phase2_multipliers(attack, unit, environment, summary, special=special, extra=extra)
    damage, p3 = phase3_defense(damage, environment, summary, ignore_defense=ignore_defense)
    damage, p4 = phase4_dealt_taken(damage, environment, summary, extra_factor=dealt_factor)
    _, p5 = phase5_hits(damage, hits)
    return HitResult(p2, p3, p4, p5)


def _cycle_seconds(attacks: int, dps: DpsBreakdown) -> float:
    return attacks * dps.total_frames / FRAMES_PER_SECOND


# =============================================================================
# SPECIAL ATTACK
# =============================================================================


def special_attack_cycle(
    attack: float,
    unit: Unit,
    environment: Environment,
    summary: SelfBuffSummary,
    normal: HitResult,
    dps: DpsBreakdown,
) -> SpecialAttackBreakdown | None:
    """
    Special attack every ``cycle_n`` attacks, replacing one normal hit.

    cycle damage = (n - 1) x normal + special over n attack intervals.
    """
    special = unit.special_attack
    if special is None:
        return None

    effective = special.multiplier * (special.stack_multiplier or 1)
    hit = resolve_hit(
        attack,
        unit,
        environment,
        summary,
        hits=special.hits,
        special=True,
        ignore_defense=special.defense_ignore,
        extra=[MultiplierDetail(type="special_attack_multiplier", value=effective)],
    )

    give_damage = 1.0
    for percent in summary.special_attack_damage:
        give_damage *= 1 + percent / 100

    n = max(1, special.cycle_n)
    seconds = _cycle_seconds(n, dps)
    cycle_damage = (n - 1) * normal.total + hit.total
    cycle_dps = cycle_damage / seconds if seconds > 0 else 0.0

    return SpecialAttackBreakdown(
        multiplier=special.multiplier,
        hits=special.hits,
        defense_ignore=special.defense_ignore,
        cycle_n=n,
        range_multiplier=special.range_multiplier,
        stack_multiplier=special.stack_multiplier,
        effective_multiplier=effective,
        give_damage_multiplier=give_damage,
        damage=hit.total,
        cycle_dps=cycle_dps,
    )


# =============================================================================
# ACTIVATED ABILITY
# =============================================================================


def strategy_multiplier(unit: Unit, environment: Environment) -> float:
    """Activated-ability multiplier, interpolated by enemy HP when it has a maximum."""
    strategy = unit.strategy_damage
    if strategy.max_multiplier is None:
        return strategy.multiplier
    # Base multiplier at full enemy HP, maximum at zero
    missing = 1 - environment.enemy_hp_percent / 100
    return strategy.multiplier + (strategy.max_multiplier - strategy.multiplier) * missing


def strategy_damage_cycle(
    attack: float,
    unit: Unit,
    environment: Environment,
    summary: SelfBuffSummary,
    normal: HitResult,
    dps: DpsBreakdown,
) -> StrategyDamageBreakdown | None:
    """
    Activated-ability damage blended over its cycle.

    The instant hit replaces one normal attack. During the buff window the
    normal attack runs with the window's multipliers and speed.
    """
    strategy = unit.strategy_damage
    if strategy is None:
        return None

    multiplier = strategy_multiplier(unit, environment)
    instant = resolve_hit(
        attack,
        unit,
        environment,
        summary,
        hits=strategy.hits,
        ignore_defense=strategy.defense_ignore,
        extra=[MultiplierDetail(type="strategy_multiplier", value=multiplier)],
    )

    cycle = strategy.cycle_duration
    buffed_dps = None
    window = 0.0
    has_window_buff = any(
        v is not None
        for v in (
            strategy.buff_give_damage,
            strategy.buff_damage_dealt,
            strategy.buff_attack_speed,
            strategy.buff_attack_gap,
        )
    )
    if strategy.buff_duration and has_window_buff:
        extra = []
        if strategy.buff_give_damage is not None:
            extra.append(MultiplierDetail(type="strategy_window", value=strategy.buff_give_damage))
        buffed = resolve_hit(
            attack,
            unit,
            environment,
            summary,
            hits=hit_count(unit, summary),
            extra=extra,
            dealt_factor=strategy.buff_damage_dealt or 1.0,
        )
        buffed_breakdown = calculate_dps(
            buffed.total,
            unit,
            environment,
            summary,
            speed_factor=strategy.buff_attack_speed or 1.0,
            gap_reduction=strategy.buff_attack_gap,
        )
        buffed_dps = buffed_breakdown.dps
        window = min(strategy.buff_duration, cycle)

    if cycle > 0:
        sustained = (buffed_dps or 0.0) * window + dps.dps * (cycle - window)
        cycle_dps = max(0.0, sustained - normal.total + instant.total) / cycle
    else:
        cycle_dps = 0.0

    return StrategyDamageBreakdown(
        multiplier=strategy.multiplier,
        hits=strategy.hits,
        max_multiplier=strategy.max_multiplier,
        defense_ignore=strategy.defense_ignore,
        range_multiplier=strategy.range_multiplier,
        cycle_duration=cycle,
        instant_damage=instant.total,
        cycle_dps=cycle_dps,
        buffed_dps=buffed_dps,
        buff_duration=strategy.buff_duration,
    )


def ability_mode_cycle(
    attack: float,
    unit: Unit,
    environment: Environment,
    summary: SelfBuffSummary,
    dps: DpsBreakdown,
) -> AbilityModeBreakdown | None:
    """Normal attack replaced while the ability runs; DPS averaged by uptime."""
    mode = unit.ability_mode
    if mode is None:
        return None

    extra = [MultiplierDetail(type="replaced_attack", value=mode.replaced_attack.multiplier)]
    if mode.give_damage:
        extra.append(MultiplierDetail(type="ability_mode", value=1 + mode.give_damage / 100))
    hit = resolve_hit(attack, unit, environment, summary, hits=mode.replaced_attack.hits, extra=extra)
    active = calculate_dps(hit.total, unit, environment, summary, gap_reduction=mode.gap_reduction)

    period = mode.duration + mode.cooldown
    uptime = mode.duration / period if period > 0 else 0.0
    average = active.dps * uptime + dps.dps * (1 - uptime)

    return AbilityModeBreakdown(
        replaced_attack=mode.replaced_attack,
        give_damage=mode.give_damage,
        gap_reduction=mode.gap_reduction,
        duration=mode.duration,
        cooldown=mode.cooldown,
        active_dps=active.dps,
        inactive_dps=dps.dps,
        average_dps=average,
        uptime=uptime,
    )


def inspire_amount(attack: float, summary: SelfBuffSummary) -> float | None:
    """Flat attack this unit lends allies from its own attack, if it inspires."""
    percents = [value for stat, value in summary.inspire if stat == Stat.ATTACK]
    if not percents:
        return None
    return attack * max(percents) / 100


# =============================================================================
# ENTRY POINTS
# =============================================================================


def resolve(
    unit: Unit,
    environment: Environment | None = None,
    context: ConditionContext | None = None,
) -> DamageResult:
    """
    Resolve a unit's damage in an environment.

    Args:
        unit: Assembled unit.
        environment: Ambient overlay; neutral when omitted.
        context: Optional condition context. Derived from the
            environment when omitted.

    Returns:
        DamageResult with a phase-by-phase breakdown.
    """
    environment = environment or Environment()
    summary = summarize_self_buffs(unit, environment, context)

    attack, p1 = phase1_attack(unit, environment, summary)
    normal = resolve_hit(attack, unit, environment, summary, hits=hit_count(unit, summary))
    dps = calculate_dps(normal.total, unit, environment, summary)
    if dps.total_frames == 0:
        logger.debug(f"No frame data for weapon {unit.weapon!r}; DPS is 0")

    special = special_attack_cycle(attack, unit, environment, summary, normal, dps)
    strategy = strategy_damage_cycle(attack, unit, environment, summary, normal, dps)
    ability = ability_mode_cycle(attack, unit, environment, summary, dps)

    return DamageResult(
        unit_id=unit.id,
        phase1_attack=attack,
        phase2_damage=normal.phase2.damage,
        phase3_damage=normal.phase3.damage,
        phase4_damage=normal.phase4.damage,
        total_damage=normal.total,
        dps=dps.dps,
        special_attack_damage=special.damage if special else None,
        cycle_dps=special.cycle_dps if special else None,
        strategy_damage=strategy.instant_damage if strategy else None,
        strategy_cycle_dps=strategy.cycle_dps if strategy else None,
        inspire_amount=inspire_amount(attack, summary),
        breakdown=DamageBreakdown(
            phase1=p1,
            phase2=normal.phase2,
            phase3=normal.phase3,
            phase4=normal.phase4,
            phase5=normal.phase5,
            dps=dps,
            special_attack=special,
            strategy_damage=strategy,
            ability_mode=ability,
        ),
    )


def _percent_change(before: float, after: float) -> float:
    return (after - before) / before * 100 if before > 0 else 0.0


def compare(before: DamageResult, after: DamageResult) -> DamageComparison:
    """Difference between two results of the same unit."""
    inspire = None
    if before.inspire_amount is not None and after.inspire_amount is not None:
        inspire = after.inspire_amount - before.inspire_amount

    return DamageComparison(
        unit_id=after.unit_id,
        before=before,
        after=after,
        diff=DamageDiff(
            total_damage=after.total_damage - before.total_damage,
            total_damage_percent=_percent_change(before.total_damage, after.total_damage),
            dps=after.dps - before.dps,
            dps_percent=_percent_change(before.dps, after.dps),
            inspire_amount=inspire,
        ),
    )

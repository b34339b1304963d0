"""
Five-phase damage model.

Phase 1: attack value
Phase 2: damage multipliers
Phase 3: enemy defense
Phase 4: damage dealt / damage taken (floored)
Phase 5: hit count

plus attack-speed-aware DPS from weapon frame data.
"""

import math
from dataclasses import dataclass, field

from .buffs import ambush_multiplier, effective_value, skill_multiplier_of
from .conditions import are_conditions_satisfied
from .models import (
    Buff,
    BuffMode,
    ConditionContext,
    ConditionTag,
    DpsBreakdown,
    Environment,
    FlatBonusDetail,
    MultiplierDetail,
    Phase1Breakdown,
    Phase2Breakdown,
    Phase3Breakdown,
    Phase4Breakdown,
    Phase5Breakdown,
    Stat,
    Target,
    Unit,
)
from .weapons import FRAMES_PER_SECOND, get_weapon_frames

MIN_DAMAGE = 1


@dataclass
class GiveDamageFactor:
    percent: float
    condition: str | None = None
    hp_dependent: bool = False
    range_threshold: float | None = None


@dataclass
class SelfBuffSummary:
    """A unit's own buffs folded into the inputs of the phase functions."""

    attack_flat: float = 0.0
    attack_flat_details: list[FlatBonusDetail] = field(default_factory=list)
    attack_percent: float = 0.0
    attack_duplicate: float = 0.0
    final_range: float = 0.0

    give_damage: list[GiveDamageFactor] = field(default_factory=list)
    special_attack_damage: list[float] = field(default_factory=list)
    damage_dealt: float = 0.0
    enemy_damage_taken: float = 0.0

    enemy_defense_percent: float = 0.0
    enemy_defense_flat: float = 0.0
    defense_ignore: bool = False
    defense_ignore_percent: float = 0.0

    attack_speed: float = 0.0
    attack_speed_duplicate: float = 0.0
    attack_gap: float = 0.0
    attack_count: int | None = None

    inspire: list[tuple[Stat, float]] = field(default_factory=list)


def condition_context(environment: Environment, context: ConditionContext | None = None) -> ConditionContext:
    """Explicit context, or one derived from the environment."""
    return context if context is not None else ConditionContext.from_environment(environment)


def _reaches_self(buff: Buff) -> bool:
    if not buff.is_active:
        return False
    if buff.target == Target.OUT_OF_RANGE:
        return False
    return ConditionTag.EXCLUDE_SELF not in buff.condition_tags


def _condition_label(buff: Buff) -> str:
    if buff.condition_tags:
        return ",".join(tag.value for tag in buff.condition_tags)
    return buff.raw_text or "always"


def summarize_self_buffs(unit: Unit, environment: Environment, context: ConditionContext | None = None) -> SelfBuffSummary:
    """
    Fold the unit's own applicable buffs into phase inputs.

    Percent channels follow the max rule, flat channels sum.
    """
    ctx = condition_context(environment, context)
    multiplier = skill_multiplier_of(unit, ctx)
    summary = SelfBuffSummary()

    range_flat = 0.0
    range_percent = 0.0
    range_duplicate = 0.0
    threshold_buffs: list[tuple[Buff, float]] = []

    for buff in unit.all_buffs():
        if not _reaches_self(buff) or not are_conditions_satisfied(buff.condition_tags, unit, ctx):
            continue
        value = effective_value(buff, multiplier, ctx)
        stat, mode = buff.stat, buff.mode

        if stat == Stat.ATTACK and mode == BuffMode.FLAT_SUM:
            summary.attack_flat += value
            summary.attack_flat_details.append(FlatBonusDetail(value=value, condition=_condition_label(buff)))
        elif stat == Stat.ATTACK and mode == BuffMode.PERCENT_MAX:
            summary.attack_percent = max(summary.attack_percent, value)
        elif stat == Stat.EFFECT_DUPLICATE_ATTACK:
            summary.attack_duplicate += value
        elif stat == Stat.RANGE and mode == BuffMode.FLAT_SUM:
            range_flat += value
        elif stat == Stat.RANGE and mode == BuffMode.PERCENT_MAX:
            range_percent = max(range_percent, value)
        elif stat == Stat.EFFECT_DUPLICATE_RANGE:
            range_duplicate += value
        elif stat == Stat.GIVE_DAMAGE:
            if buff.range_threshold is not None:
                threshold_buffs.append((buff, value))
            else:
                summary.give_damage.append(
                    GiveDamageFactor(
                        percent=value,
                        condition=_condition_label(buff),
                        hp_dependent=ConditionTag.HP_DEPENDENT in buff.condition_tags,
                    )
                )
        elif stat == Stat.SPECIAL_ATTACK_DAMAGE:
            summary.special_attack_damage.append(value)
        elif stat == Stat.DAMAGE_DEALT:
            summary.damage_dealt = max(summary.damage_dealt, value)
        elif stat == Stat.ENEMY_DAMAGE_TAKEN:
            summary.enemy_damage_taken = max(summary.enemy_damage_taken, value)
        elif stat == Stat.ENEMY_DEFENSE and mode == BuffMode.PERCENT_MAX:
            summary.enemy_defense_percent = max(summary.enemy_defense_percent, value)
        elif stat == Stat.ENEMY_DEFENSE and mode == BuffMode.FLAT_SUM:
            summary.enemy_defense_flat += value
        elif stat == Stat.ENEMY_DEFENSE_IGNORE_COMPLETE:
            summary.defense_ignore = True
        elif stat == Stat.ENEMY_DEFENSE_IGNORE_PERCENT:
            summary.defense_ignore_percent = max(summary.defense_ignore_percent, value)
        elif stat == Stat.ATTACK_SPEED:
            summary.attack_speed = max(summary.attack_speed, value)
        elif stat == Stat.EFFECT_DUPLICATE_ATTACK_SPEED:
            summary.attack_speed_duplicate += value
        elif stat == Stat.ATTACK_GAP:
            summary.attack_gap = max(summary.attack_gap, value)
        elif stat == Stat.ATTACK_COUNT:
            summary.attack_count = int(value)
        elif stat == Stat.INSPIRE and buff.inspire_source_stat is not None:
            summary.inspire.append((buff.inspire_source_stat, value))

    base_range = unit.base_stat(Stat.RANGE)
    summary.final_range = (base_range * (1 + range_percent / 100) + range_flat) * (1 + range_duplicate / 100)

    for buff, value in threshold_buffs:
        summary.give_damage.append(
            GiveDamageFactor(
                percent=value,
                condition=f"range >= {buff.range_threshold:g}",
                range_threshold=buff.range_threshold,
            )
        )
    return summary


# =============================================================================
# PHASES
# =============================================================================


def phase1_attack(unit: Unit, environment: Environment, summary: SelfBuffSummary) -> tuple[float, Phase1Breakdown]:
    """Attack = (base + flat + range) x (1 + percent) x (1 + duplicate) x ambush."""
    base = unit.base_stat(Stat.ATTACK)
    flat = summary.attack_flat + environment.inspire_flat
    details = list(summary.attack_flat_details)
    if environment.inspire_flat:
        details.append(FlatBonusDetail(value=environment.inspire_flat, condition="environment inspire"))

    range_bonus = 0.0
    conversion = unit.range_to_attack
    if conversion is not None and conversion.enabled:
        if conversion.threshold is None or summary.final_range >= conversion.threshold:
            range_bonus = summary.final_range

    percent = summary.attack_percent + environment.attack_percent
    duplicate = summary.attack_duplicate + environment.duplicate_buff

    ambush = 1.0
    info = unit.ambush_info
    if info is not None and info.attack_multiplier is not None:
        count = environment.current_ambush_count if environment.current_ambush_count is not None else info.max_count
        ambush = ambush_multiplier(info.attack_multiplier, info.is_multiplicative, count)

    attack = (base + flat + range_bonus) * (1 + percent / 100) * (1 + duplicate / 100) * ambush
    attack = max(0.0, attack)

    return attack, Phase1Breakdown(
        base_attack=base,
        flat_buff_applied=flat,
        flat_buff_details=details,
        range_converted_bonus=range_bonus,
        range_to_attack_applied=range_bonus > 0,
        percent_buff_applied=percent,
        duplicate_buff_applied=duplicate,
        ambush_multiplier=ambush,
        final_attack=attack,
    )


def interpolate_hp_damage(hp_percent: float, max_multiplier: float) -> float:
    """1x at full enemy HP, ``max_multiplier`` at zero, linear between."""
    return 1 + (max_multiplier - 1) * (1 - hp_percent / 100)


def phase2_multipliers(
    attack: float,
    unit: Unit,
    environment: Environment,
    summary: SelfBuffSummary,
    *,
    special: bool = False,
    extra: list[MultiplierDetail] | None = None,
) -> tuple[float, Phase2Breakdown]:
    """
    Apply damage multipliers.

    Args:
        special: Include special-attack-only factors.
        extra: Additional factors (activated-ability windows).
    """
    multipliers: list[MultiplierDetail] = []

    for factor in summary.give_damage:
        if factor.range_threshold is not None and summary.final_range < factor.range_threshold:
            continue
        value = 1 + factor.percent / 100
        if factor.hp_dependent:
            value = interpolate_hp_damage(environment.enemy_hp_percent, value)
        multipliers.append(MultiplierDetail(type="give_damage", value=value, condition=factor.condition))

    for conditional in unit.conditional_give_damage:
        if summary.final_range >= conditional.range_threshold:
            multipliers.append(
                MultiplierDetail(
                    type="conditional",
                    value=conditional.multiplier,
                    condition=f"range >= {conditional.range_threshold:g}",
                )
            )

    if special:
        for percent in summary.special_attack_damage:
            multipliers.append(MultiplierDetail(type="special_attack", value=1 + percent / 100))

    if extra:
        multipliers.extend(extra)

    if environment.damage_multiplier != 1:
        multipliers.append(MultiplierDetail(type="environment", value=environment.damage_multiplier))

    damage = attack
    for detail in multipliers:
        damage *= detail.value
    return damage, Phase2Breakdown(multipliers=multipliers, damage=damage)


def effective_defense(environment: Environment, summary: SelfBuffSummary) -> float:
    """Enemy defense after flat then percent debuffs, floored at 0."""
    defense = environment.enemy_defense
    flat = environment.defense_debuff_flat + summary.enemy_defense_flat
    defense = max(0.0, defense - flat)

    percent = min(100.0, max(environment.defense_debuff_percent, summary.enemy_defense_percent))
    defense = max(0.0, defense * (1 - percent / 100))

    if summary.defense_ignore_percent:
        defense *= 1 - min(100.0, summary.defense_ignore_percent) / 100
    return defense


def phase3_defense(
    damage: float,
    environment: Environment,
    summary: SelfBuffSummary,
    *,
    ignore_defense: bool = False,
) -> tuple[float, Phase3Breakdown]:
    """Subtract effective defense; the result never drops below MIN_DAMAGE."""
    ignored = ignore_defense or summary.defense_ignore
    defense = 0.0 if ignored else effective_defense(environment, summary)
    result = max(MIN_DAMAGE, damage - defense)
    return result, Phase3Breakdown(
        enemy_defense=environment.enemy_defense,
        effective_defense=defense,
        defense_ignored=ignored,
        damage=result,
    )


def phase4_dealt_taken(
    damage: float,
    environment: Environment,
    summary: SelfBuffSummary,
    *,
    extra_factor: float = 1.0,
) -> tuple[float, Phase4Breakdown]:
    """floor(damage x (1 + dealt/100) x (1 + taken/100))."""
    dealt = max(environment.damage_dealt, summary.damage_dealt)
    taken = max(environment.damage_taken, summary.enemy_damage_taken)
    result = math.floor(damage * (1 + dealt / 100) * (1 + taken / 100) * extra_factor)
    return result, Phase4Breakdown(damage_dealt=dealt, damage_taken=taken, damage=result)


def phase5_hits(damage: float, hits: int) -> tuple[float, Phase5Breakdown]:
    total = damage * hits
    return total, Phase5Breakdown(attack_count=hits, total_damage=total)


def hit_count(unit: Unit, summary: SelfBuffSummary) -> int:
    """Explicit multi-hit, else a parsed attack count, else 1."""
    return unit.multi_hit or summary.attack_count or 1


# =============================================================================
# DPS
# =============================================================================


def calculate_dps(
    damage: float,
    unit: Unit,
    environment: Environment,
    summary: SelfBuffSummary,
    *,
    speed_factor: float = 1.0,
    gap_reduction: float | None = None,
) -> DpsBreakdown:
    """
    Damage per second from weapon frames.

    Args:
        damage: Damage per attack.
        speed_factor: Extra attack-speed factor (activated-ability windows).
        gap_reduction: Overrides the gap reduction percent.

    Returns:
        Breakdown with ``dps == 0`` when the weapon has no frame data.
    """
    frames = get_weapon_frames(unit.weapon)
    if frames is None:
        return DpsBreakdown()

    speed = max(summary.attack_speed, environment.attack_speed)
    gap = gap_reduction if gap_reduction is not None else max(summary.attack_gap, environment.gap_reduction)
    gap = min(100.0, gap)

    attack_frames = frames.attack / ((1 + speed / 100) * (1 + summary.attack_speed_duplicate / 100) * speed_factor)
    gap_frames = frames.gap * (1 - gap / 100)
    total = attack_frames + gap_frames
    attacks_per_second = FRAMES_PER_SECOND / total if total > 0 else 0.0

    return DpsBreakdown(
        base_attack_frames=frames.attack,
        base_gap_frames=frames.gap,
        attack_speed_percent=speed,
        gap_reduction_percent=gap,
        attack_frames=attack_frames,
        gap_frames=gap_frames,
        total_frames=total,
        attacks_per_second=attacks_per_second,
        dps=damage * attacks_per_second,
    )

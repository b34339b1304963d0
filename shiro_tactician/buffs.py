"""
Squad buff aggregation.

For every unit in a squad, folds the applicable buffs of all members into
final stat values with a base/own/allied attribution.

Stacking rules:
- percent_max: only the strongest buff per (unit, stat) counts
- flat_sum: summed
- percent_reduction: subtracted from the base, additive across sources
- absolute_set: overwrites the running value

The same effect reaching a unit from two sources is dropped when marked
non-stacking and reduced by its stack penalty when one is given.
"""

import logging
from dataclasses import dataclass

from .conditions import are_conditions_satisfied
from .models import (
    Buff,
    BuffMode,
    BuffSource,
    ConditionContext,
    ConditionTag,
    DynamicBuffType,
    Squad,
    Stat,
    StatBreakdown,
    Target,
    Unit,
    UnitBuffResult,
)

logger = logging.getLogger(__name__)

# Stats whose percent buffs scale the base value. Every other stat is a
# percentage already, so a percent buff adds its value directly.
SCALAR_STATS = {
    Stat.ATTACK,
    Stat.DEFENSE,
    Stat.RANGE,
    Stat.HP,
    Stat.RECOVERY,
    Stat.COST,
    Stat.COST_GIANT,
    Stat.COST_STRATEGY,
    Stat.COST_ENEMY_DEFEAT,
    Stat.COST_DEFEAT_BONUS,
    Stat.COOLDOWN,
    Stat.STRATEGY_COOLDOWN,
    Stat.TARGET_COUNT,
    Stat.ATTACK_COUNT,
    Stat.SKILL_MULTIPLIER,
}


def is_percent_native(stat: Stat) -> bool:
    return stat not in SCALAR_STATS


def percent_contribution(stat: Stat, base: float, value: float) -> float:
    """Amount a percent buff adds to a stat."""
    if is_percent_native(stat):
        return value
    return base * value / 100


# =============================================================================
# TARGETING
# =============================================================================


def resolve_target(target: Target, source_index: int, member_count: int) -> list[int]:
    """
    Squad positions a target selector reaches.

    Without a spatial model, ally/range/all/field reach every member and
    out_of_range reaches every member except the source.
    """
    if target == Target.SELF:
        return [source_index]
    if target == Target.OUT_OF_RANGE:
        return [i for i in range(member_count) if i != source_index]
    return list(range(member_count))


def is_buff_applicable(
    buff: Buff,
    source_index: int,
    target_index: int,
    target_unit: Unit,
    member_count: int,
    context: ConditionContext | None = None,
) -> bool:
    """Whether a source's buff reaches a target under its selector and conditions."""
    if not buff.is_active:
        return False
    is_self = source_index == target_index
    if ConditionTag.EXCLUDE_SELF in buff.condition_tags and is_self:
        return False
    if buff.benefits_only_self and not is_self:
        return False
    if target_index not in resolve_target(buff.target, source_index, member_count):
        return False
    # Permissive when the ambush count is unknown
    if buff.requires_ambush and context is not None and context.ambush_count == 0:
        return False
    return are_conditions_satisfied(buff.condition_tags, target_unit, context)


# =============================================================================
# SCALING
# =============================================================================


def ambush_multiplier(base: float, is_multiplicative: bool, count: int) -> float:
    """Multiplicative: base ** count. Additive: 1 + (base - 1) * count."""
    if is_multiplicative:
        return base**count
    return 1 + (base - 1) * count


def skill_multiplier_of(unit: Unit, context: ConditionContext | None = None) -> float:
    """Passive-ability effect multiplier of a unit (1 when absent or inactive)."""
    multiplier = 1.0
    for buff in unit.all_buffs():
        if buff.stat != Stat.SKILL_MULTIPLIER or not buff.is_active:
            continue
        if are_conditions_satisfied(buff.condition_tags, unit, context):
            multiplier = buff.value
    return multiplier


def dynamic_count(buff: Buff, context: ConditionContext | None) -> int:
    """Runtime count for a dynamic buff, never below 1."""
    count = None
    if context is not None:
        if buff.dynamic and buff.dynamic.kind == DynamicBuffType.PER_AMBUSH_DEPLOYED and context.ambush_count:
            count = context.ambush_count
        else:
            count = context.dynamic_count
    return count if count else 1


def effective_value(buff: Buff, skill_multiplier: float = 1.0, context: ConditionContext | None = None) -> float:
    """
    Buff value after the skill multiplier and dynamic scaling.

    Dynamic percent buffs compound: (1 + v/100) ** n - 1. Dynamic flat
    buffs scale linearly.
    """
    value = buff.value
    if buff.source == BuffSource.SELF_SKILL and buff.stat != Stat.SKILL_MULTIPLIER:
        value *= skill_multiplier

    if buff.dynamic is None or buff.mode == BuffMode.ABSOLUTE_SET:
        return value

    count = dynamic_count(buff, context)
    if buff.mode == BuffMode.FLAT_SUM:
        return value * count
    return ((1 + value / 100) ** count - 1) * 100


def effect_key(buff: Buff) -> tuple:
    """
    Identity of an effect across sources.

    The same effect reaching a unit twice (e.g. two copies of one castle
    girl) is dropped when the buff is non-stacking, and reduced by its
    stack penalty otherwise.
    """
    return (buff.stat, buff.mode, buff.raw_text, buff.target)


# =============================================================================
# AGGREGATION
# =============================================================================


@dataclass
class _PercentSlot:
    magnitude: float
    contribution: float
    is_own: bool


class _StatAccumulator:
    """Running value and attribution of one stat of one unit."""

    def __init__(self, base: float):
        self.base = base
        self.value = base
        self.own = 0.0
        self.allied = 0.0
        self.best_percent: _PercentSlot | None = None

    def _attribute(self, amount: float, is_own: bool) -> None:
        if is_own:
            self.own += amount
        else:
            self.allied += amount

    def apply(self, stat: Stat, mode: BuffMode, value: float, is_own: bool) -> None:
        if mode == BuffMode.PERCENT_MAX:
            if self.best_percent is not None and abs(value) <= self.best_percent.magnitude:
                return
            if self.best_percent is not None:
                self.value -= self.best_percent.contribution
                self._attribute(-self.best_percent.contribution, self.best_percent.is_own)
            contribution = percent_contribution(stat, self.base, value)
            self.best_percent = _PercentSlot(abs(value), contribution, is_own)
            self.value += contribution
            self._attribute(contribution, is_own)
        elif mode == BuffMode.FLAT_SUM:
            self.value += value
            self._attribute(value, is_own)
        elif mode == BuffMode.PERCENT_REDUCTION:
            reduction = percent_contribution(stat, self.base, value)
            self.value -= reduction
            self._attribute(-reduction, is_own)
        elif mode == BuffMode.ABSOLUTE_SET:
            delta = value - self.value
            self.value = value
            self._attribute(delta, is_own)

    def scale(self, factor: float) -> None:
        """Multiply the running value, attributing the gain to the unit itself."""
        delta = self.value * (factor - 1)
        self.value += delta
        self.own += delta

    def breakdown(self) -> StatBreakdown:
        return StatBreakdown(base=self.base, own=self.own, allied=self.allied)


def _apply_ambush(unit: Unit, accumulators: dict[Stat, _StatAccumulator], context: ConditionContext | None) -> None:
    info = unit.ambush_info
    if info is None:
        return
    count = context.ambush_count if context and context.ambush_count is not None else info.max_count
    if info.attack_multiplier is not None:
        accumulators[Stat.ATTACK].scale(ambush_multiplier(info.attack_multiplier, info.is_multiplicative, count))
    if info.attack_speed_multiplier is not None:
        factor = ambush_multiplier(info.attack_speed_multiplier, info.is_multiplicative, count)
        accumulators[Stat.ATTACK_SPEED].apply(Stat.ATTACK_SPEED, BuffMode.FLAT_SUM, (factor - 1) * 100, True)


def aggregate(squad: Squad, context: ConditionContext | None = None) -> dict[str, UnitBuffResult]:
    """
    Aggregate buffs across a squad.

    Args:
        squad: Eight unit-or-empty slots. Duplicate ids are not detected.
        context: Optional battle context for condition tags and counts.

    Returns:
        Mapping of unit id to its aggregated stats and attribution.
    """
    members = squad.members()
    count = len(members)
    multipliers = [skill_multiplier_of(unit, context) for unit in members]

    results: dict[str, UnitBuffResult] = {}
    for target_index, target_unit in enumerate(members):
        accumulators = {stat: _StatAccumulator(target_unit.base_stat(stat)) for stat in Stat}
        active_ids: list[str] = []
        applied_effects: set[tuple] = set()

        for source_index, source_unit in enumerate(members):
            for buff in source_unit.all_buffs():
                if not is_buff_applicable(buff, source_index, target_index, target_unit, count, context):
                    continue
                key = effect_key(buff)
                overlaps = key in applied_effects
                if overlaps and buff.non_stacking:
                    continue
                applied_effects.add(key)

                value = effective_value(buff, multipliers[source_index], context)
                if overlaps and buff.stack_penalty:
                    value *= 1 - buff.stack_penalty / 100
                accumulators[buff.stat].apply(buff.stat, buff.mode, value, source_index == target_index)
                active_ids.append(buff.id)

        _apply_ambush(target_unit, accumulators, context)

        results[target_unit.id] = UnitBuffResult(
            unit_id=target_unit.id,
            stats={stat: acc.value for stat, acc in accumulators.items()},
            breakdown={stat: acc.breakdown() for stat, acc in accumulators.items()},
            active_buff_ids=active_ids,
        )

    logger.debug(f"Aggregated buffs for {len(results)} units")
    return results

"""
Damage range across battle scenarios.

Resolves a unit in its base environment and again at fixed enemy HP levels
and with its activated ability switched on, keeping the scenarios that
change the outcome.
"""

import dataclasses

from .damage import resolve
from .models import (
    ConditionContext,
    DamageRange,
    DamageResult,
    DamageScenario,
    Environment,
    ScenarioResult,
    Unit,
)

SCENARIO_LABELS: dict[DamageScenario, str] = {
    DamageScenario.BASE: "基本",
    DamageScenario.ENEMY_HP_100: "敵HP100%",
    DamageScenario.ENEMY_HP_50: "敵HP50%",
    DamageScenario.ENEMY_HP_30: "敵HP30%",
    DamageScenario.ENEMY_HP_1: "敵HP1%",
    DamageScenario.STRATEGY_ACTIVE: "計略中",
}

ENEMY_HP_SCENARIOS: dict[DamageScenario, float] = {
    DamageScenario.ENEMY_HP_100: 100,
    DamageScenario.ENEMY_HP_50: 50,
    DamageScenario.ENEMY_HP_30: 30,
    DamageScenario.ENEMY_HP_1: 1,
}

_TOLERANCE = 1e-9


def _differs(result: DamageResult, base: DamageResult) -> bool:
    return (
        abs(result.dps - base.dps) > _TOLERANCE
        or abs(result.total_damage - base.total_damage) > _TOLERANCE
        or result.strategy_damage != base.strategy_damage
        or result.cycle_dps != base.cycle_dps
    )


def _with_enemy_hp(context: ConditionContext | None, hp: float) -> ConditionContext | None:
    if context is None:
        return None
    return dataclasses.replace(context, enemy_hp_percent=hp)


def calculate_damage_range(
    unit: Unit,
    environment: Environment | None = None,
    context: ConditionContext | None = None,
) -> DamageRange:
    """
    Damage of a unit across scenarios.

    Args:
        unit: Assembled unit.
        environment: Base environment.
        context: Optional condition context; its enemy HP follows the scenario.

    Returns:
        Base result, the highest-DPS result, and the differing scenarios
        sorted by DPS (highest first).
    """
    environment = environment or Environment()
    base = resolve(unit, environment, context)

    scenarios: list[ScenarioResult] = []
    for scenario, hp in ENEMY_HP_SCENARIOS.items():
        env = environment.model_copy(update={"enemy_hp_percent": hp})
        result = resolve(unit, env, _with_enemy_hp(context, hp))
        if _differs(result, base):
            scenarios.append(ScenarioResult(scenario=scenario, label=SCENARIO_LABELS[scenario], result=result))

    if unit.strategies:
        result = resolve(unit.with_strategies_active(), environment, context)
        if _differs(result, base):
            scenarios.append(
                ScenarioResult(
                    scenario=DamageScenario.STRATEGY_ACTIVE,
                    label=SCENARIO_LABELS[DamageScenario.STRATEGY_ACTIVE],
                    result=result,
                )
            )

    scenarios.sort(key=lambda s: s.result.dps, reverse=True)
    best = base
    for scenario in scenarios:
        if scenario.result.dps > best.dps:
            best = scenario.result

    return DamageRange(base=base, max=best, scenarios=scenarios)

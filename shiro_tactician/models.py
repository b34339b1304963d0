"""
Pydantic models for the Shiro Tactician rules engine.

Units are assembled once from raw ability text and treated as immutable
values afterwards. The aggregator and the damage resolver only ever build
new result records from them.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

SQUAD_SIZE = 8

# =============================================================================
# ENUMS
# =============================================================================


class Stat(str, Enum):
    """Numeric channels a buff can affect."""

    # Primary stats
    ATTACK = "attack"
    DEFENSE = "defense"
    RANGE = "range"
    HP = "hp"
    RECOVERY = "recovery"
    COST = "cost"

    # Cost variants
    COST_GRADUAL = "cost_gradual"  # 徐々気
    COST_GIANT = "cost_giant"  # Giant-stage cost reduction
    COST_STRATEGY = "cost_strategy"  # Activated ability cost reduction
    COST_ENEMY_DEFEAT = "cost_enemy_defeat"  # Debuff: cost gained when that enemy dies
    COST_DEFEAT_BONUS = "cost_defeat_bonus"  # Buff: cost gained when this unit defeats

    # Timing
    COOLDOWN = "cooldown"  # Redeploy time
    STRATEGY_COOLDOWN = "strategy_cooldown"
    ATTACK_SPEED = "attack_speed"
    ATTACK_GAP = "attack_gap"
    MOVEMENT_SPEED = "movement_speed"

    # Counts
    TARGET_COUNT = "target_count"
    ATTACK_COUNT = "attack_count"

    # Damage channels
    DAMAGE_DEALT = "damage_dealt"
    GIVE_DAMAGE = "give_damage"
    SPECIAL_ATTACK_DAMAGE = "special_attack_damage"
    DAMAGE_TAKEN = "damage_taken"
    DAMAGE_RECOVERY = "damage_recovery"
    DAMAGE_DRAIN = "damage_drain"
    CRITICAL_BONUS = "critical_bonus"

    # Effect duplicates (multiply in phase 1)
    EFFECT_DUPLICATE_ATTACK = "effect_duplicate_attack"
    EFFECT_DUPLICATE_DEFENSE = "effect_duplicate_defense"
    EFFECT_DUPLICATE_RANGE = "effect_duplicate_range"
    EFFECT_DUPLICATE_ATTACK_SPEED = "effect_duplicate_attack_speed"

    # Enemy-facing debuffs
    ENEMY_ATTACK = "enemy_attack"
    ENEMY_DEFENSE = "enemy_defense"
    ENEMY_DEFENSE_IGNORE_PERCENT = "enemy_defense_ignore_percent"
    ENEMY_DEFENSE_IGNORE_COMPLETE = "enemy_defense_ignore_complete"
    ENEMY_MOVEMENT = "enemy_movement"
    ENEMY_RETREAT = "enemy_retreat"
    ENEMY_KNOCKBACK = "enemy_knockback"
    ENEMY_RANGE = "enemy_range"
    ENEMY_DAMAGE_DEALT = "enemy_damage_dealt"
    ENEMY_DAMAGE_TAKEN = "enemy_damage_taken"

    # Special
    INSPIRE = "inspire"
    SKILL_MULTIPLIER = "skill_multiplier"
    KI_GAIN = "ki_gain"

    @property
    def is_enemy_facing(self) -> bool:
        """Whether this channel debuffs the opposing side."""
        return self.value.startswith("enemy_")


class BuffMode(str, Enum):
    """Stacking rule family."""

    PERCENT_MAX = "percent_max"
    FLAT_SUM = "flat_sum"
    PERCENT_REDUCTION = "percent_reduction"  # Recast/redeploy reductions
    ABSOLUTE_SET = "absolute_set"


class BuffSource(str, Enum):
    """Where a buff came from."""

    SELF_SKILL = "self_skill"  # Passive ability
    ALLY_SKILL = "ally_skill"
    STRATEGY = "strategy"  # Activated ability
    FORMATION_SKILL = "formation_skill"
    SPECIAL_ABILITY = "special_ability"


class Target(str, Enum):
    """Which squad members receive a buff."""

    SELF = "self"
    ALLY = "ally"
    RANGE = "range"  # In range
    ALL = "all"
    FIELD = "field"
    OUT_OF_RANGE = "out_of_range"


class ConditionTag(str, Enum):
    """Situational predicates gating buff applicability."""

    # Weapon class
    MELEE = "melee"
    RANGED = "ranged"
    PHYSICAL = "physical"
    MAGICAL = "magical"

    # Own HP
    HP_ABOVE_50 = "hp_above_50"
    HP_BELOW_50 = "hp_below_50"
    HP_ABOVE_70 = "hp_above_70"
    HP_BELOW_30 = "hp_below_30"
    HP_FULL = "hp_full"

    # Enemy HP
    ENEMY_HP_ABOVE_50 = "enemy_hp_above_50"
    ENEMY_HP_BELOW_50 = "enemy_hp_below_50"
    ENEMY_HP_BELOW_30 = "enemy_hp_below_30"

    # Giant stage
    GIANT_1_PLUS = "giant_1_plus"
    GIANT_2_PLUS = "giant_2_plus"
    GIANT_3_PLUS = "giant_3_plus"
    GIANT_4_PLUS = "giant_4_plus"
    GIANT_5 = "giant_5"

    # Terrain attributes
    WATER = "water"
    PLAIN = "plain"
    MOUNTAIN = "mountain"
    PLAIN_MOUNTAIN = "plain_mountain"
    HELL = "hell"
    FICTIONAL = "fictional"

    # Season attributes
    SUMMER = "summer"
    KENRAN = "kenran"
    HALLOWEEN = "halloween"
    SCHOOL = "school"
    CHRISTMAS = "christmas"
    NEW_YEAR = "new_year"
    MOON_VIEWING = "moon_viewing"
    BRIDE = "bride"

    # Unit type
    CASTLE_GIRL = "castle_girl"
    AMBUSH = "ambush"
    LORD = "lord"

    # Enemy type
    FLYING_ENEMY = "flying_enemy"
    GROUND_ENEMY = "ground_enemy"
    BOSS_ENEMY = "boss_enemy"

    # Special
    SAME_WEAPON = "same_weapon"
    DIFFERENT_WEAPON = "different_weapon"
    NIGHT_BATTLE = "night_battle"
    CONTINUOUS_DEPLOY = "continuous_deploy"
    ON_WATER = "on_water"
    EXCLUDE_SELF = "exclude_self"
    HP_DEPENDENT = "hp_dependent"
    ON_PLACEMENT = "on_placement"


class DynamicBuffType(str, Enum):
    """Runtime counts a dynamic buff scales with."""

    PER_ENEMY_IN_RANGE = "per_enemy_in_range"
    PER_ALLY_IN_RANGE = "per_ally_in_range"
    PER_ALLY_OTHER = "per_ally_other"
    PER_AMBUSH_DEPLOYED = "per_ambush_deployed"
    PER_ENEMY_DEFEATED = "per_enemy_defeated"
    PER_SPECIFIC_ATTRIBUTE = "per_specific_attribute"
    PER_SPECIFIC_WEAPON = "per_specific_weapon"


class UnitType(str, Enum):
    """Unit categories."""

    CASTLE_GIRL = "castle_girl"
    AMBUSH = "ambush"
    LORD = "lord"


class EnemyType(str, Enum):
    """Enemy categories used by enemy-type conditions."""

    FLYING = "flying"
    GROUND = "ground"
    BOSS = "boss"


# =============================================================================
# BUFF MODELS
# =============================================================================


class DynamicDescriptor(BaseModel):
    """How a dynamic buff scales with a runtime count."""

    kind: DynamicBuffType
    parameter: str  # Matched phrase, e.g. "味方1体につき"
    category: str = "formation"  # formation or combat_situation
    unit_value: float = 0.0  # Value per counted instance


class ParsedBuff(BaseModel):
    """A partial modifier produced by the extractor (no id, source or activity)."""

    stat: Stat
    mode: BuffMode
    value: float
    target: Target = Target.SELF
    condition_tags: list[ConditionTag] = Field(default_factory=list)
    dynamic: DynamicDescriptor | None = None

    # Provenance and annotations
    raw_text: str = ""
    note: str | None = None
    is_duplicate: bool = False  # 効果重複
    non_stacking: bool = False  # 重複なし
    stack_penalty: float | None = None  # 重複時効果N%減少
    max_stacks: int | None = None
    requires_ambush: bool = False  # Needs a deployed ambush
    benefits_only_self: bool = False  # Enemy debuff that only helps the source
    range_threshold: float | None = None  # Applies only when final range >= threshold
    inspire_source_stat: Stat | None = None
    giant_scaled: bool = False
    confidence: str = "certain"  # certain, inferred, uncertain
    inference_reason: str | None = None

    def dedupe_key(self) -> tuple:
        """Identity used to drop repeated matches of the same clause."""
        return (
            self.stat,
            self.mode,
            self.value,
            self.target,
            self.raw_text,
            tuple(self.condition_tags),
            self.inspire_source_stat,
        )


class Buff(ParsedBuff):
    """A modifier attached to a unit."""

    model_config = ConfigDict(frozen=True)

    id: str
    source: BuffSource
    is_active: bool = True


# =============================================================================
# UNIT DESCRIPTORS
# =============================================================================


class AmbushInfo(BaseModel):
    """Self-scaling by the count of co-deployed ambush copies."""

    max_count: int = 1
    attack_multiplier: float | None = None  # Per copy, e.g. 1.4
    attack_speed_multiplier: float | None = None
    is_multiplicative: bool = True  # True: m ** n, False: 1 + (m - 1) * n


class RangeToAttack(BaseModel):
    """Adds the final range value to attack as a flat bonus."""

    enabled: bool = True
    threshold: float | None = None  # Only when final range >= threshold


class ConditionalGiveDamage(BaseModel):
    """Damage multiplier gated by the unit's final range."""

    range_threshold: float
    multiplier: float  # e.g. 2 = x2


class SpecialAttack(BaseModel):
    """Boosted attack triggering once every `cycle_n` normal attacks."""

    multiplier: float
    hits: int = 1
    defense_ignore: bool = False
    cycle_n: int = 3
    range_multiplier: float | None = None  # Reported only; no spatial model
    stack_multiplier: float | None = None  # Max-stock consumption bonus


class StrategyDamage(BaseModel):
    """Damage dealt when the activated ability fires."""

    multiplier: float
    hits: int = 1
    max_multiplier: float | None = None  # HP-dependent maximum
    defense_ignore: bool = False
    range_multiplier: float | None = None
    cycle_duration: float = 10.0  # Seconds between activations

    # Buffs during the effect window
    buff_duration: float | None = None
    buff_give_damage: float | None = None  # Phase 2 factor, e.g. 1.3
    buff_damage_dealt: float | None = None  # Phase 4 factor, e.g. 2.5
    buff_attack_speed: float | None = None  # Factor, e.g. 2.5
    buff_attack_gap: float | None = None  # Percent reduction, e.g. 80


class ReplacedAttack(BaseModel):
    multiplier: float
    hits: int = 1


class AbilityMode(BaseModel):
    """Normal attack replacement while the activated ability is running."""

    replaced_attack: ReplacedAttack
    give_damage: float | None = None  # Percent, Phase 2
    gap_reduction: float | None = None  # Percent
    duration: float
    cooldown: float


# =============================================================================
# UNIT / SQUAD / ENVIRONMENT
# =============================================================================


class Unit(BaseModel):
    """
    Assembled unit record.

    Frozen after construction. Unknown fields from persisted records
    (e.g. ``saved_at``) are ignored.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    # Identity
    id: str
    name: str
    rarity: str | None = None
    period: str | None = None  # e.g. "絢爛"
    season_attributes: list[str] = Field(default_factory=list)
    unit_type: UnitType = UnitType.CASTLE_GIRL

    # Weapon and attributes
    weapon: str
    weapon_range: str | None = None  # 近, 遠, 遠近
    weapon_type: str | None = None  # 物, 術
    placement: str | None = None  # 近, 遠, 遠近
    attributes: list[str] = Field(default_factory=list)

    base_stats: dict[Stat, float] = Field(default_factory=dict)

    # Buffs by provenance
    passives: list[Buff] = Field(default_factory=list)
    strategies: list[Buff] = Field(default_factory=list)
    specials: list[Buff] = Field(default_factory=list)

    # Damage descriptors
    ambush_info: AmbushInfo | None = None
    range_to_attack: RangeToAttack | None = None
    multi_hit: int | None = None
    special_attack: SpecialAttack | None = None
    strategy_damage: StrategyDamage | None = None
    conditional_give_damage: list[ConditionalGiveDamage] = Field(default_factory=list)
    ability_mode: AbilityMode | None = None

    # Raw text kept for scenario analysis
    raw_passive_texts: list[str] = Field(default_factory=list)
    raw_strategy_texts: list[str] = Field(default_factory=list)
    raw_special_texts: list[str] = Field(default_factory=list)

    @field_validator("range_to_attack", mode="before")
    @classmethod
    def _coerce_range_to_attack(cls, value):
        # Older records store a bare boolean
        if isinstance(value, bool):
            return {"enabled": True} if value else None
        return value

    def base_stat(self, stat: Stat) -> float:
        """Base value of a stat (0 when absent)."""
        return self.base_stats.get(stat, 0.0)

    def all_buffs(self) -> list[Buff]:
        """Passive, activated and special buffs in that order."""
        return [*self.passives, *self.strategies, *self.specials]

    def with_strategies_active(self, active: bool = True) -> "Unit":
        """Copy of this unit with every activated-ability buff switched on or off."""
        strategies = [b.model_copy(update={"is_active": active}) for b in self.strategies]
        return self.model_copy(update={"strategies": strategies})


class Squad(BaseModel):
    """Fixed-size formation of unit-or-empty slots."""

    slots: list[Unit | None] = Field(default_factory=lambda: [None] * SQUAD_SIZE)

    @classmethod
    def of(cls, *units: Unit) -> "Squad":
        """Build a squad from units, padding the remaining slots with None."""
        slots: list[Unit | None] = list(units)
        slots.extend([None] * (SQUAD_SIZE - len(slots)))
        return cls(slots=slots)

    def members(self) -> list[Unit]:
        return [unit for unit in self.slots if unit is not None]


class Environment(BaseModel):
    """
    Caller-supplied ambient overlay not tied to any unit.

    All fields default to neutral values.
    """

    # Attack
    inspire_flat: float = 0.0  # Flat attack bonus
    attack_percent: float = 0.0
    duplicate_buff: float = 0.0
    damage_dealt: float = 0.0
    damage_multiplier: float = 1.0

    # Speed
    attack_speed: float = 0.0
    gap_reduction: float = 0.0

    # Enemy
    enemy_defense: float = 0.0
    defense_debuff_percent: float = 0.0
    defense_debuff_flat: float = 0.0
    damage_taken: float = 0.0
    enemy_hp_percent: float = 100.0
    enemy_type: EnemyType | None = None

    # Counts
    dynamic_count: int = 0
    current_ambush_count: int | None = None

    # Situational flags (None means unknown)
    ally_hp_percent: float | None = None
    giant_level: int | None = None
    night_battle: bool | None = None
    on_water: bool | None = None


@dataclass
class ConditionContext:
    """
    Optional battle context for condition evaluation.

    Any accessor left as None makes the corresponding predicate permissive.
    """

    get_hp_percent: Callable[[str], float | None] | None = None
    get_giant_level: Callable[[str], int | None] | None = None
    is_target_flying: Callable[[], bool] | None = None
    is_target_boss: Callable[[], bool] | None = None
    enemy_type: EnemyType | None = None
    has_same_weapon_in_range: Callable[[Unit], bool] | None = None
    has_different_weapon_in_range: Callable[[Unit], bool] | None = None
    is_night_battle: bool | None = None
    is_continuous_deploy: Callable[[str], bool] | None = None
    is_on_water: bool | None = None
    ally_hp_percent: float | None = None
    enemy_hp_percent: float | None = None

    # Counts used by the aggregator
    dynamic_count: int | None = None
    ambush_count: int | None = None

    @classmethod
    def from_environment(cls, environment: Environment) -> "ConditionContext":
        """Context derived from an environment overlay."""
        giant_level = environment.giant_level
        return cls(
            get_giant_level=(lambda _unit_id: giant_level) if giant_level is not None else None,
            enemy_type=environment.enemy_type,
            is_night_battle=environment.night_battle,
            is_on_water=environment.on_water,
            ally_hp_percent=environment.ally_hp_percent,
            enemy_hp_percent=environment.enemy_hp_percent,
            dynamic_count=environment.dynamic_count,
            ambush_count=environment.current_ambush_count,
        )


# =============================================================================
# AGGREGATION RESULTS
# =============================================================================


class StatBreakdown(BaseModel):
    """Attribution of a stat's final value."""

    base: float = 0.0
    own: float = 0.0  # From the unit's own buffs
    allied: float = 0.0  # From other squad members


class UnitBuffResult(BaseModel):
    """Aggregated stats of one squad member."""

    unit_id: str
    stats: dict[Stat, float] = Field(default_factory=dict)
    breakdown: dict[Stat, StatBreakdown] = Field(default_factory=dict)
    active_buff_ids: list[str] = Field(default_factory=list)


# =============================================================================
# DAMAGE RESULTS
# =============================================================================


class FlatBonusDetail(BaseModel):
    value: float
    condition: str


class Phase1Breakdown(BaseModel):
    base_attack: float
    flat_buff_applied: float
    flat_buff_details: list[FlatBonusDetail] = Field(default_factory=list)
    range_converted_bonus: float = 0.0
    range_to_attack_applied: bool = False
    percent_buff_applied: float
    duplicate_buff_applied: float
    ambush_multiplier: float = 1.0
    final_attack: float


class MultiplierDetail(BaseModel):
    type: str
    value: float
    condition: str | None = None


class Phase2Breakdown(BaseModel):
    multipliers: list[MultiplierDetail] = Field(default_factory=list)
    damage: float


class Phase3Breakdown(BaseModel):
    enemy_defense: float
    effective_defense: float
    defense_ignored: bool = False
    damage: float


class Phase4Breakdown(BaseModel):
    damage_dealt: float
    damage_taken: float
    damage: float


class Phase5Breakdown(BaseModel):
    attack_count: int
    total_damage: float


class DpsBreakdown(BaseModel):
    base_attack_frames: float = 0.0
    base_gap_frames: float = 0.0
    attack_speed_percent: float = 0.0
    gap_reduction_percent: float = 0.0
    attack_frames: float = 0.0
    gap_frames: float = 0.0
    total_frames: float = 0.0
    attacks_per_second: float = 0.0
    dps: float = 0.0


class SpecialAttackBreakdown(BaseModel):
    multiplier: float
    hits: int
    defense_ignore: bool
    cycle_n: int
    range_multiplier: float | None = None
    stack_multiplier: float | None = None
    effective_multiplier: float
    give_damage_multiplier: float = 1.0  # Special-attack-only factor
    damage: float
    cycle_dps: float


class StrategyDamageBreakdown(BaseModel):
    multiplier: float
    hits: int
    max_multiplier: float | None = None
    defense_ignore: bool
    range_multiplier: float | None = None
    cycle_duration: float
    instant_damage: float
    cycle_dps: float
    buffed_dps: float | None = None
    buff_duration: float | None = None


class AbilityModeBreakdown(BaseModel):
    replaced_attack: ReplacedAttack
    give_damage: float | None = None
    gap_reduction: float | None = None
    duration: float
    cooldown: float
    active_dps: float
    inactive_dps: float
    average_dps: float
    uptime: float


class DamageBreakdown(BaseModel):
    phase1: Phase1Breakdown
    phase2: Phase2Breakdown
    phase3: Phase3Breakdown
    phase4: Phase4Breakdown
    phase5: Phase5Breakdown
    dps: DpsBreakdown
    special_attack: SpecialAttackBreakdown | None = None
    strategy_damage: StrategyDamageBreakdown | None = None
    ability_mode: AbilityModeBreakdown | None = None


class DamageResult(BaseModel):
    """Phase-by-phase damage of one unit."""

    unit_id: str
    phase1_attack: float
    phase2_damage: float
    phase3_damage: float
    phase4_damage: float
    total_damage: float
    dps: float

    special_attack_damage: float | None = None
    cycle_dps: float | None = None
    strategy_damage: float | None = None
    strategy_cycle_dps: float | None = None
    inspire_amount: float | None = None

    breakdown: DamageBreakdown


class DamageDiff(BaseModel):
    total_damage: float
    total_damage_percent: float
    dps: float
    dps_percent: float
    inspire_amount: float | None = None


class DamageComparison(BaseModel):
    unit_id: str
    before: DamageResult
    after: DamageResult
    diff: DamageDiff


class DamageScenario(str, Enum):
    """Situations a damage range is evaluated under."""

    BASE = "base"
    ENEMY_HP_100 = "enemy_hp_100"
    ENEMY_HP_50 = "enemy_hp_50"
    ENEMY_HP_30 = "enemy_hp_30"
    ENEMY_HP_1 = "enemy_hp_1"
    STRATEGY_ACTIVE = "strategy_active"


class ScenarioResult(BaseModel):
    scenario: DamageScenario
    label: str
    result: DamageResult


class DamageRange(BaseModel):
    base: DamageResult
    max: DamageResult
    scenarios: list[ScenarioResult] = Field(default_factory=list)


# =============================================================================
# DATA FILE RECORDS
# =============================================================================


class SquadRecord(BaseModel):
    """Squad as stored on disk: unit ids by slot."""

    id: str
    name: str | None = None
    slots: list[str | None] = Field(default_factory=list, max_length=SQUAD_SIZE)


class EnvironmentRecord(Environment):
    """Named environment preset."""

    id: str
    name: str | None = None

    def to_environment(self) -> Environment:
        return Environment.model_validate(self.model_dump(exclude={"id", "name"}))

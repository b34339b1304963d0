"""
Condition tag taxonomy.

Extracts situational predicates from ability text and evaluates them
against a unit. Context-dependent predicates are permissive: when the
context cannot answer, the condition counts as satisfied so buffs can be
previewed without a full battle state.
"""

import operator
import re
from collections.abc import Callable
from dataclasses import dataclass

from .models import ConditionContext, ConditionTag, EnemyType, Unit, UnitType
from .weapons import get_weapon_info

DISPLAY_PROMINENT = "prominent"
DISPLAY_NORMAL = "normal"
DISPLAY_SUBTLE = "subtle"


@dataclass(frozen=True)
class ConditionPattern:
    """One row of the tag detection table."""

    pattern: re.Pattern
    tags: tuple[ConditionTag, ...]
    priority: int
    exclusive: bool
    category: str


def _p(regex: str, *tags: ConditionTag, priority: int, exclusive: bool, category: str) -> ConditionPattern:
    return ConditionPattern(re.compile(regex, re.IGNORECASE), tags, priority, exclusive, category)


# Timing/trigger phrases that read like conditions but gate nothing
EXCLUDED_CONDITION_PATTERNS: list[re.Pattern] = [
    re.compile(p)
    for p in (
        r"計略(?:発動)?中",
        r"計略(?:使用)?時",
        r"特技(?:発動)?中",
        r"特技(?:使用)?時",
        r"巨大化時",
        r"巨大化(?:毎|ごと)に",
        r"巨大化する(?:度|たび)に",
        r"巨大化(?:する)?(?:と|すると)",
        r"効果時間[:：]\s*\d+秒",
        r"\d+秒間",
        r"効果重複",
        r"重複可(?:能)?",
        r"ゲージ蓄積",
        r"最大ストック",
        r"時間経過で",
        r"徐々に",
    )
]

CONDITION_PRIORITY: dict[ConditionTag, int] = {
    ConditionTag.HP_ABOVE_50: 9,
    ConditionTag.HP_BELOW_50: 9,
    ConditionTag.HP_ABOVE_70: 8,
    ConditionTag.HP_BELOW_30: 8,
    ConditionTag.HP_FULL: 7,
    ConditionTag.ENEMY_HP_ABOVE_50: 8,
    ConditionTag.ENEMY_HP_BELOW_50: 8,
    ConditionTag.ENEMY_HP_BELOW_30: 8,
    ConditionTag.MELEE: 6,
    ConditionTag.RANGED: 6,
    ConditionTag.PHYSICAL: 6,
    ConditionTag.MAGICAL: 6,
    ConditionTag.WATER: 6,
    ConditionTag.PLAIN: 6,
    ConditionTag.MOUNTAIN: 6,
    ConditionTag.PLAIN_MOUNTAIN: 6,
    ConditionTag.HELL: 6,
    ConditionTag.FICTIONAL: 6,
    ConditionTag.SUMMER: 6,
    ConditionTag.KENRAN: 6,
    ConditionTag.HALLOWEEN: 6,
    ConditionTag.SCHOOL: 6,
    ConditionTag.CHRISTMAS: 6,
    ConditionTag.NEW_YEAR: 6,
    ConditionTag.MOON_VIEWING: 6,
    ConditionTag.BRIDE: 6,
    ConditionTag.GIANT_3_PLUS: 5,
    ConditionTag.GIANT_4_PLUS: 5,
    ConditionTag.GIANT_5: 5,
    ConditionTag.AMBUSH: 5,
    ConditionTag.LORD: 5,
    ConditionTag.FLYING_ENEMY: 5,
    ConditionTag.GROUND_ENEMY: 5,
    ConditionTag.BOSS_ENEMY: 5,
    ConditionTag.SAME_WEAPON: 3,
    ConditionTag.DIFFERENT_WEAPON: 3,
    ConditionTag.NIGHT_BATTLE: 2,
    ConditionTag.CONTINUOUS_DEPLOY: 2,
    ConditionTag.ON_WATER: 6,
    ConditionTag.EXCLUDE_SELF: 5,
    ConditionTag.HP_DEPENDENT: 7,
    ConditionTag.ON_PLACEMENT: 6,
    ConditionTag.GIANT_1_PLUS: 1,
    ConditionTag.GIANT_2_PLUS: 1,
    ConditionTag.CASTLE_GIRL: 1,
}

_HP = r"(?:HP|耐久|体力)"
_SUFFIX = r"(?:属性)?(?:城娘)?(?:のみ|限定)?"

CONDITION_DETECTION_PATTERNS: list[ConditionPattern] = [
    # Placement / water markers
    _p(r"【配置】|配置(?:時|と同時)", ConditionTag.ON_PLACEMENT, priority=120, exclusive=False, category="trigger"),
    _p(r"【水上】|水上(?:マップ)?", ConditionTag.ON_WATER, priority=115, exclusive=False, category="terrain"),
    # Exclusion
    _p(r"自身を除く|自分を除く", ConditionTag.EXCLUDE_SELF, priority=110, exclusive=False, category="exclusion"),
    # HP dependency
    _p(
        rf"{_HP}(?:に)?依存|{_HP}(?:が)?(?:高い|低い)(?:ほど|程)|{_HP}に応じて?",
        ConditionTag.HP_DEPENDENT,
        priority=105,
        exclusive=False,
        category="hp_dependency",
    ),
    # Weapon class
    _p(r"近接(?:武器)?(?:のみ|限定)?", ConditionTag.MELEE, priority=100, exclusive=True, category="weapon_range"),
    _p(r"遠隔(?:武器)?(?:のみ|限定)?", ConditionTag.RANGED, priority=100, exclusive=True, category="weapon_range"),
    _p(r"物理(?:攻撃)?(?:のみ|限定)?", ConditionTag.PHYSICAL, priority=95, exclusive=True, category="attack_type"),
    _p(r"(?:法術|術)(?:攻撃)?(?:のみ|限定)?", ConditionTag.MAGICAL, priority=95, exclusive=True, category="attack_type"),
    # Enemy HP
    _p(rf"{_HP}(?:が)?50%以上の敵|敵の{_HP}(?:が)?50%以上", ConditionTag.ENEMY_HP_ABOVE_50, priority=92, exclusive=True, category="enemy_hp_condition"),
    _p(rf"{_HP}(?:が)?50%以下の敵|敵の{_HP}(?:が)?50%以下", ConditionTag.ENEMY_HP_BELOW_50, priority=92, exclusive=True, category="enemy_hp_condition"),
    _p(rf"{_HP}(?:が)?30%以下の敵|敵の{_HP}(?:が)?30%以下", ConditionTag.ENEMY_HP_BELOW_30, priority=92, exclusive=True, category="enemy_hp_condition"),
    # Own HP
    _p(rf"(?<!敵の){_HP}(?:が)?50%以上(?!の敵)", ConditionTag.HP_ABOVE_50, priority=90, exclusive=True, category="hp_condition"),
    _p(rf"(?<!敵の){_HP}(?:が)?50%以下(?!の敵)", ConditionTag.HP_BELOW_50, priority=90, exclusive=True, category="hp_condition"),
    _p(rf"(?<!敵の){_HP}(?:が)?70%以上(?!の敵)", ConditionTag.HP_ABOVE_70, priority=90, exclusive=True, category="hp_condition"),
    _p(rf"(?<!敵の){_HP}(?:が)?30%以下(?!の敵)", ConditionTag.HP_BELOW_30, priority=90, exclusive=True, category="hp_condition"),
    _p(rf"{_HP}(?:が)?(?:満タン|100%|最大)", ConditionTag.HP_FULL, priority=90, exclusive=True, category="hp_condition"),
    # Attributes
    _p(rf"平山{_SUFFIX}", ConditionTag.PLAIN_MOUNTAIN, priority=85, exclusive=False, category="attribute"),
    _p(rf"水{_SUFFIX}", ConditionTag.WATER, priority=80, exclusive=False, category="attribute"),
    _p(rf"平{_SUFFIX}", ConditionTag.PLAIN, priority=80, exclusive=False, category="attribute"),
    _p(rf"山{_SUFFIX}", ConditionTag.MOUNTAIN, priority=80, exclusive=False, category="attribute"),
    _p(rf"地獄{_SUFFIX}", ConditionTag.HELL, priority=80, exclusive=False, category="attribute"),
    _p(r"架空(?:城)?(?:のみ|限定)?", ConditionTag.FICTIONAL, priority=80, exclusive=False, category="attribute"),
    # Season attributes
    _p(rf"夏{_SUFFIX}", ConditionTag.SUMMER, priority=80, exclusive=False, category="season"),
    _p(rf"絢爛{_SUFFIX}", ConditionTag.KENRAN, priority=80, exclusive=False, category="season"),
    _p(rf"ハロウィン{_SUFFIX}", ConditionTag.HALLOWEEN, priority=80, exclusive=False, category="season"),
    _p(rf"学園{_SUFFIX}", ConditionTag.SCHOOL, priority=80, exclusive=False, category="season"),
    _p(rf"聖夜{_SUFFIX}", ConditionTag.CHRISTMAS, priority=80, exclusive=False, category="season"),
    _p(rf"正月{_SUFFIX}", ConditionTag.NEW_YEAR, priority=80, exclusive=False, category="season"),
    _p(rf"お月見{_SUFFIX}", ConditionTag.MOON_VIEWING, priority=80, exclusive=False, category="season"),
    _p(rf"花嫁{_SUFFIX}", ConditionTag.BRIDE, priority=80, exclusive=False, category="season"),
    # Unit type; "殿" alone is a target, only "殿のみ" gates
    _p(r"伏兵(?:のみ|限定)?", ConditionTag.AMBUSH, priority=75, exclusive=False, category="target_type"),
    _p(r"殿(?:のみ|限定)", ConditionTag.LORD, priority=75, exclusive=False, category="target_type"),
    # Enemy type
    _p(r"飛行(?:敵|ユニット)(?:のみ|限定)?", ConditionTag.FLYING_ENEMY, priority=75, exclusive=False, category="enemy_type"),
    _p(r"地上(?:敵|ユニット)(?:のみ|限定)?", ConditionTag.GROUND_ENEMY, priority=75, exclusive=False, category="enemy_type"),
    _p(r"ボス(?:敵)?(?:のみ|限定)?", ConditionTag.BOSS_ENEMY, priority=75, exclusive=False, category="enemy_type"),
    # Special
    _p(r"同(?:じ)?武器(?:種)?(?:のみ|限定)?", ConditionTag.SAME_WEAPON, priority=50, exclusive=False, category="special"),
    _p(r"異(?:なる)?武器(?:種)?(?:のみ|限定)?", ConditionTag.DIFFERENT_WEAPON, priority=50, exclusive=False, category="special"),
    _p(r"夜戦", ConditionTag.NIGHT_BATTLE, priority=50, exclusive=False, category="special"),
]

_SORTED_PATTERNS = sorted(CONDITION_DETECTION_PATTERNS, key=lambda p: p.priority, reverse=True)


def strip_excluded_phrases(text: str) -> str:
    """Remove trigger/duration phrases that are not applicability gates."""
    for pattern in EXCLUDED_CONDITION_PATTERNS:
        text = pattern.sub("", text)
    return text


def extract_condition_tags(text: str) -> list[ConditionTag]:
    """
    Extract condition tags from ability text.

    Args:
        text: Raw or preprocessed ability text.

    Returns:
        Deduplicated tags, highest priority first, ties by name.
    """
    if not text:
        return []

    cleaned = strip_excluded_phrases(text)

    detected: list[ConditionTag] = []
    matched_categories: set[str] = set()
    for entry in _SORTED_PATTERNS:
        if entry.exclusive and entry.category in matched_categories:
            continue
        if entry.pattern.search(cleaned):
            detected.extend(entry.tags)
            if entry.exclusive:
                matched_categories.add(entry.category)

    unique = set(detected)
    return sorted(unique, key=lambda tag: (-CONDITION_PRIORITY.get(tag, 0), tag.value))


def get_display_level(tag: ConditionTag) -> str:
    """Presentation tier of a tag: prominent, normal or subtle."""
    priority = CONDITION_PRIORITY.get(tag, 0)
    if priority >= 8:
        return DISPLAY_PROMINENT
    if priority >= 5:
        return DISPLAY_NORMAL
    return DISPLAY_SUBTLE


# =============================================================================
# INTRINSIC UNIT PROPERTIES
# =============================================================================

PHYSICAL_WEAPONS = {"弓", "鉄砲", "石弓", "投剣", "軍船", "槍", "刀", "盾", "ランス", "双剣", "拳", "鞭", "茶器", "大砲"}
MAGICAL_WEAPONS = {"歌舞", "本", "法術", "鈴", "杖", "札", "陣貝"}


def _placement(unit: Unit) -> str | None:
    if unit.placement:
        return unit.placement
    info = get_weapon_info(unit.weapon)
    if info:
        return info.placement
    return unit.weapon_range


def is_melee(unit: Unit) -> bool:
    return _placement(unit) in ("近", "遠近")


def is_ranged(unit: Unit) -> bool:
    return _placement(unit) in ("遠", "遠近")


def is_physical(unit: Unit) -> bool:
    if unit.weapon_type == "物":
        return True
    if unit.weapon_type == "術":
        return False
    if unit.weapon in MAGICAL_WEAPONS:
        return False
    # Unknown weapons are not excluded
    return True


def is_magical(unit: Unit) -> bool:
    if unit.weapon_type == "術":
        return True
    if unit.weapon_type == "物":
        return False
    if unit.weapon in PHYSICAL_WEAPONS:
        return False
    return True


def _has_attribute(unit: Unit, attribute: str) -> bool:
    return attribute in unit.attributes


def _has_season(unit: Unit, keyword: str) -> bool:
    if keyword in unit.season_attributes:
        return True
    return bool(unit.period and keyword in unit.period)


_ATTRIBUTE_TAGS = {
    ConditionTag.WATER: "水",
    ConditionTag.PLAIN: "平",
    ConditionTag.MOUNTAIN: "山",
    ConditionTag.PLAIN_MOUNTAIN: "平山",
    ConditionTag.HELL: "地獄",
    ConditionTag.FICTIONAL: "架空",
}

_SEASON_TAGS = {
    ConditionTag.SUMMER: "夏",
    ConditionTag.KENRAN: "絢爛",
    ConditionTag.HALLOWEEN: "ハロウィン",
    ConditionTag.SCHOOL: "学園",
    ConditionTag.CHRISTMAS: "聖夜",
    ConditionTag.NEW_YEAR: "正月",
    ConditionTag.MOON_VIEWING: "お月見",
    ConditionTag.BRIDE: "花嫁",
}

# Own HP "以下" is strict, enemy HP "以下" is inclusive
_HP_TAGS = {
    ConditionTag.HP_ABOVE_50: (operator.ge, 50),
    ConditionTag.HP_BELOW_50: (operator.lt, 50),
    ConditionTag.HP_ABOVE_70: (operator.ge, 70),
    ConditionTag.HP_BELOW_30: (operator.lt, 30),
    ConditionTag.HP_FULL: (operator.ge, 100),
}

_ENEMY_HP_TAGS = {
    ConditionTag.ENEMY_HP_ABOVE_50: (operator.ge, 50),
    ConditionTag.ENEMY_HP_BELOW_50: (operator.le, 50),
    ConditionTag.ENEMY_HP_BELOW_30: (operator.le, 30),
}

_GIANT_TAGS = {
    ConditionTag.GIANT_1_PLUS: 1,
    ConditionTag.GIANT_2_PLUS: 2,
    ConditionTag.GIANT_3_PLUS: 3,
    ConditionTag.GIANT_4_PLUS: 4,
    ConditionTag.GIANT_5: 5,
}


def _compare(value: float | None, op: Callable[[float, float], bool], threshold: float) -> bool:
    if value is None:
        return True
    return op(value, threshold)


def _hp_percent(unit: Unit, context: ConditionContext | None) -> float | None:
    if context is None:
        return None
    if context.get_hp_percent is not None:
        hp = context.get_hp_percent(unit.id)
        if hp is not None:
            return hp
    return context.ally_hp_percent


def _enemy_type_matches(expected: EnemyType, context: ConditionContext | None) -> bool:
    if context is None:
        return True
    if context.enemy_type is not None:
        return context.enemy_type == expected
    if expected == EnemyType.FLYING and context.is_target_flying is not None:
        return context.is_target_flying()
    if expected == EnemyType.GROUND and context.is_target_flying is not None:
        return not context.is_target_flying()
    if expected == EnemyType.BOSS and context.is_target_boss is not None:
        return context.is_target_boss()
    return True


def check_condition(tag: ConditionTag, unit: Unit, context: ConditionContext | None = None) -> bool:
    """
    Evaluate a single condition tag for a unit.

    Args:
        tag: Tag to evaluate.
        unit: Unit receiving the buff.
        context: Optional battle context. Missing accessors are permissive.

    Returns:
        True when the condition holds or cannot be checked.
    """
    # Intrinsic properties
    if tag == ConditionTag.MELEE:
        return is_melee(unit)
    if tag == ConditionTag.RANGED:
        return is_ranged(unit)
    if tag == ConditionTag.PHYSICAL:
        return is_physical(unit)
    if tag == ConditionTag.MAGICAL:
        return is_magical(unit)
    if tag in _ATTRIBUTE_TAGS:
        return _has_attribute(unit, _ATTRIBUTE_TAGS[tag])
    if tag in _SEASON_TAGS:
        return _has_season(unit, _SEASON_TAGS[tag])
    if tag == ConditionTag.CASTLE_GIRL:
        return unit.unit_type == UnitType.CASTLE_GIRL
    if tag == ConditionTag.AMBUSH:
        return unit.unit_type == UnitType.AMBUSH
    if tag == ConditionTag.LORD:
        return unit.unit_type == UnitType.LORD

    # Context thresholds
    if tag in _HP_TAGS:
        op, threshold = _HP_TAGS[tag]
        return _compare(_hp_percent(unit, context), op, threshold)
    if tag in _ENEMY_HP_TAGS:
        op, threshold = _ENEMY_HP_TAGS[tag]
        return _compare(context.enemy_hp_percent if context else None, op, threshold)
    if tag in _GIANT_TAGS:
        level = context.get_giant_level(unit.id) if context and context.get_giant_level else None
        return _compare(level, operator.ge, _GIANT_TAGS[tag])
    if tag == ConditionTag.FLYING_ENEMY:
        return _enemy_type_matches(EnemyType.FLYING, context)
    if tag == ConditionTag.GROUND_ENEMY:
        return _enemy_type_matches(EnemyType.GROUND, context)
    if tag == ConditionTag.BOSS_ENEMY:
        return _enemy_type_matches(EnemyType.BOSS, context)
    if tag == ConditionTag.SAME_WEAPON:
        return context.has_same_weapon_in_range(unit) if context and context.has_same_weapon_in_range else True
    if tag == ConditionTag.DIFFERENT_WEAPON:
        if context and context.has_different_weapon_in_range:
            return context.has_different_weapon_in_range(unit)
        return True
    if tag == ConditionTag.NIGHT_BATTLE:
        return True if context is None or context.is_night_battle is None else context.is_night_battle
    if tag == ConditionTag.CONTINUOUS_DEPLOY:
        return context.is_continuous_deploy(unit.id) if context and context.is_continuous_deploy else True
    if tag == ConditionTag.ON_WATER:
        return True if context is None or context.is_on_water is None else context.is_on_water

    # exclude_self is filtered by the aggregator; hp_dependent scales at damage time;
    # on_placement is a trigger marker
    return True


def are_conditions_satisfied(
    tags: list[ConditionTag] | None,
    unit: Unit,
    context: ConditionContext | None = None,
) -> bool:
    """True when every tag holds for the unit (or there are no tags)."""
    if not tags:
        return True
    return all(check_condition(tag, unit, context) for tag in tags)

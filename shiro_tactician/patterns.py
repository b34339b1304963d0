"""
Numbered extraction rules.

Rules run in ascending number order. Numbers step by 10 so a new rule can
be slotted between two existing ones. Rules sharing an ``exclusion_group``
claim the spans they match: a later rule of the same group skips any
match overlapping a claimed span, so the specific phrasing wins over the
generic fallback for the same vocabulary.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass

from .models import BuffMode, Stat, Target

NUM = r"(\d+(?:\.\d+)?)"

# Flat values must not be followed by a percent, multiplier, count or threshold
_FLAT_END = r"(?![\d.%倍回体秒連マ])(?!以上|以下|低下|減少)"

# Own-stat vocabulary must not be read off enemy debuffs or special attacks
_NOT_ENEMY = r"(?<!敵の)(?<!敵)(?<!特殊)"


def _group(index: int = 1) -> Callable[[re.Match], float]:
    def transform(match: re.Match) -> float:
        return float(match.group(index))

    return transform


def _first(match: re.Match) -> float:
    """First non-empty numeric group."""
    return float(next(g for g in match.groups() if g is not None))


def multiplier_to_percent(multiplier: float) -> float:
    """x1.4 -> +40.0"""
    return round((multiplier - 1) * 100, 2)


def _as_percent(index: int = 1) -> Callable[[re.Match], float]:
    def transform(match: re.Match) -> float:
        return multiplier_to_percent(float(match.group(index)))

    return transform


def _negated(match: re.Match) -> float:
    return -_first(match)


def _one(match: re.Match) -> float:
    return 1.0


@dataclass(frozen=True)
class Rule:
    """One extraction rule."""

    number: int
    stat: Stat
    mode: BuffMode
    regex: re.Pattern
    target: Target | None = None  # Overrides inferred target
    value_transform: Callable[[re.Match], float] = _first
    exclusion_group: str | None = None
    note: str | None = None
    inspire_source_stat: Stat | None = None
    annotate: Callable[[re.Match], dict] | None = None  # Extra ParsedBuff fields

    def value_of(self, match: re.Match) -> float:
        return self.value_transform(match)


def _rule(number, stat, mode, regex, **kwargs) -> Rule:
    return Rule(number, stat, mode, re.compile(regex), **kwargs)


def _range_threshold(match: re.Match) -> dict:
    return {"range_threshold": float(match.group(1))}


_PCT_MAX = BuffMode.PERCENT_MAX
_FLAT = BuffMode.FLAT_SUM
_REDUCE = BuffMode.PERCENT_REDUCTION
_SET = BuffMode.ABSOLUTE_SET

RULES: list[Rule] = [
    # =========================================================================
    # ENEMY-FACING DEBUFFS (before own stats sharing the vocabulary)
    # =========================================================================
    _rule(10, Stat.ENEMY_DEFENSE_IGNORE_PERCENT, _PCT_MAX, rf"防御(?:力)?の?{NUM}%(?:を)?無視", exclusion_group="defense_ignore"),
    _rule(20, Stat.ENEMY_DEFENSE_IGNORE_COMPLETE, _SET, r"防御(?:力)?(?:を)?無視", value_transform=_one, exclusion_group="defense_ignore"),
    _rule(30, Stat.ENEMY_DEFENSE, _PCT_MAX, rf"敵の防御(?:力)?(?:が|を)?{NUM}%(?:低下|減少)"),
    _rule(40, Stat.ENEMY_DEFENSE, _FLAT, rf"敵の防御(?:力)?(?:が|を)?{NUM}(?![\d.%倍])(?:低下|減少)"),
    _rule(50, Stat.ENEMY_ATTACK, _PCT_MAX, rf"敵の攻撃(?:力)?(?:が|を)?{NUM}%(?:低下|減少)"),
    _rule(60, Stat.ENEMY_ATTACK, _FLAT, rf"敵の攻撃(?:力)?(?:が|を)?{NUM}(?:低下|減少)"),
    _rule(70, Stat.ENEMY_MOVEMENT, _PCT_MAX, rf"(?:敵の)?移動速度(?:が|を)?{NUM}%(?:低下|減少)"),
    _rule(80, Stat.ENEMY_RANGE, _PCT_MAX, rf"敵の射程(?:が|を)?{NUM}%(?:低下|減少)"),
    _rule(90, Stat.ENEMY_DAMAGE_TAKEN, _PCT_MAX, rf"敵(?:の|が受ける)被?ダメ(?:ージ)?(?:が|を)?{NUM}%(?:上昇|増加)", exclusion_group="enemy_damage_taken"),
    _rule(100, Stat.ENEMY_DAMAGE_TAKEN, _PCT_MAX, rf"敵(?:の|が受ける)被?ダメ(?:ージ)?(?:が)?{NUM}倍", value_transform=_as_percent(), exclusion_group="enemy_damage_taken"),
    _rule(110, Stat.ENEMY_DAMAGE_DEALT, _PCT_MAX, rf"敵の与(?:える)?ダメ(?:ージ)?(?:が|を)?{NUM}%(?:低下|減少)"),
    _rule(120, Stat.ENEMY_KNOCKBACK, _FLAT, rf"敵を{NUM}(?:マス)?(?:後退|ノックバック)"),
    # =========================================================================
    # COST
    # =========================================================================
    _rule(200, Stat.COST_ENEMY_DEFEAT, _FLAT, rf"(?:その|対象の)敵(?:を)?撃破(?:時|した際)(?:に)?(?:獲得)?気(?:が)?\+?{NUM}", target=Target.FIELD, exclusion_group="cost"),
    _rule(210, Stat.COST_DEFEAT_BONUS, _FLAT, rf"敵(?:を)?撃破(?:時|(?:する)?(?:毎|ごと)に)(?:に)?(?:獲得)?気(?:が|を)?\+?{NUM}", target=Target.FIELD, exclusion_group="cost"),
    _rule(220, Stat.COST_GIANT, _REDUCE, rf"巨大化(?:の|に必要な)?(?:消費)?気(?:が)?{NUM}%?(?:減少|軽減)", target=Target.FIELD, exclusion_group="cost"),
    _rule(230, Stat.COST_STRATEGY, _FLAT, rf"計略(?:の)?(?:消費)?気(?:が)?{NUM}(?:減少|軽減)", target=Target.FIELD, exclusion_group="cost"),
    _rule(240, Stat.COST_GRADUAL, _PCT_MAX, rf"(?:自然)?気(?:の)?(?:自然)?(?:回復|増加)(?:量|速度)?(?:が)?{NUM}%(?:上昇|増加)", target=Target.FIELD, exclusion_group="cost"),
    _rule(250, Stat.KI_GAIN, _PCT_MAX, rf"気(?:の)?獲得量(?:が)?{NUM}%(?:上昇|増加)", exclusion_group="cost"),
    _rule(260, Stat.COST, _FLAT, rf"(?<!消費)気(?:が|を)?\+?{NUM}(?:増加|獲得|回復)", target=Target.FIELD, exclusion_group="cost"),
    # =========================================================================
    # DAMAGE CHANNELS (specific phrasing first)
    # =========================================================================
    _rule(300, Stat.GIVE_DAMAGE, _PCT_MAX, rf"射程(?:が)?{NUM}以上(?:の場合|なら|で|のとき)?(?:、)?与えるダメージ(?:が)?{NUM}倍", value_transform=_as_percent(2), exclusion_group="give_damage", annotate=_range_threshold),
    _rule(310, Stat.GIVE_DAMAGE, _PCT_MAX, rf"(?:耐久|HP){NUM}%以下の敵に与えるダメージ(?:が)?{NUM}倍", value_transform=_as_percent(2), exclusion_group="give_damage"),
    _rule(320, Stat.GIVE_DAMAGE, _PCT_MAX, rf"(?:耐久|HP){NUM}%以上の敵に(?:与えるダメージ(?:が)?)?{NUM}倍", value_transform=_as_percent(2), exclusion_group="give_damage"),
    _rule(330, Stat.GIVE_DAMAGE, _PCT_MAX, rf"敵の(?:耐久|HP)が低い(?:程|ほど)[^。]*?最大{NUM}倍", value_transform=_as_percent(), exclusion_group="give_damage", note="enemy HP dependent"),
    _rule(340, Stat.SPECIAL_ATTACK_DAMAGE, _PCT_MAX, rf"特殊攻撃(?:の|で)?(?:与える)?ダメージ(?:が)?{NUM}倍", value_transform=_as_percent(), exclusion_group="give_damage"),
    _rule(350, Stat.SPECIAL_ATTACK_DAMAGE, _PCT_MAX, rf"特殊攻撃(?:の|で)?(?:与える)?ダメージ(?:が)?{NUM}%(?:上昇|増加)", exclusion_group="give_damage"),
    _rule(360, Stat.GIVE_DAMAGE, _PCT_MAX, rf"(?<!敵の)与えるダメージ(?:が)?{NUM}倍", value_transform=_as_percent(), exclusion_group="give_damage"),
    _rule(370, Stat.GIVE_DAMAGE, _PCT_MAX, rf"(?<!敵の)与えるダメージ(?:が)?{NUM}%(?:上昇|増加)", exclusion_group="give_damage"),
    _rule(380, Stat.DAMAGE_DEALT, _PCT_MAX, rf"(?<!敵の)与ダメ(?:ージ)?(?:が)?{NUM}倍", value_transform=_as_percent(), exclusion_group="damage_dealt"),
    _rule(390, Stat.DAMAGE_DEALT, _PCT_MAX, rf"(?<!敵の)与ダメ(?:ージ)?(?:が)?{NUM}%(?!低下|減少)(?:上昇|増加)?", exclusion_group="damage_dealt"),
    _rule(400, Stat.DAMAGE_TAKEN, _PCT_MAX, rf"(?<!敵の)(?:被ダメ(?:ージ)?|受けるダメージ)(?:が|を|\+)?{NUM}%(?:軽減|低下|減少)", value_transform=_negated, exclusion_group="damage_taken"),
    _rule(410, Stat.DAMAGE_TAKEN, _PCT_MAX, rf"(?<!敵の)(?:被ダメ(?:ージ)?|受けるダメージ)(?:が)?{NUM}倍", value_transform=_as_percent(), exclusion_group="damage_taken"),
    _rule(420, Stat.DAMAGE_DRAIN, _PCT_MAX, rf"与えたダメージの{NUM}%(?:を|分)?(?:耐久)?(?:を)?(?:回復|吸収)"),
    _rule(430, Stat.DAMAGE_RECOVERY, _PCT_MAX, rf"受けたダメージの{NUM}%(?:を|分)?(?:耐久)?(?:を)?回復"),
    _rule(440, Stat.CRITICAL_BONUS, _PCT_MAX, rf"会心(?:ダメージ|時のダメージ)(?:が)?{NUM}%(?:上昇|増加)"),
    # =========================================================================
    # INSPIRE / META
    # =========================================================================
    _rule(500, Stat.INSPIRE, _FLAT, rf"自身の攻撃(?:力)?(?:と防御(?:力)?)?の{NUM}%[^。]*?加算", target=Target.RANGE, inspire_source_stat=Stat.ATTACK),
    _rule(510, Stat.INSPIRE, _FLAT, rf"自身の防御(?:力)?の{NUM}%[^。]*?加算", target=Target.RANGE, inspire_source_stat=Stat.DEFENSE),
    _rule(520, Stat.SKILL_MULTIPLIER, _SET, rf"(?:特技|特殊能力)(?:の)?効果(?:が)?{NUM}倍", target=Target.SELF),
    # =========================================================================
    # OWN STATS
    # =========================================================================
    _rule(600, Stat.ATTACK_SPEED, _PCT_MAX, rf"{_NOT_ENEMY}攻撃速度(?:が|を)?{NUM}%(?!低下|減少)(?:上昇|増加)?", exclusion_group="attack_speed"),
    _rule(610, Stat.ATTACK_SPEED, _PCT_MAX, rf"{_NOT_ENEMY}攻撃速度(?:が)?{NUM}倍", value_transform=_as_percent(), exclusion_group="attack_speed"),
    _rule(620, Stat.ATTACK_GAP, _PCT_MAX, rf"(?:攻撃後の)?隙(?:が|を)?{NUM}%(?:短縮|減少|低下)", target=Target.SELF),
    _rule(630, Stat.MOVEMENT_SPEED, _PCT_MAX, rf"(?<!敵の)移動速度(?:が|を)?{NUM}%(?:上昇|増加)"),
    _rule(640, Stat.ATTACK, _PCT_MAX, rf"{_NOT_ENEMY}攻撃(?:力)?(?:が|を)?\+?{NUM}%(?!低下|減少)(?:上昇|増加)?", exclusion_group="attack"),
    _rule(650, Stat.ATTACK, _PCT_MAX, rf"{_NOT_ENEMY}攻撃(?:力)?(?:が)?{NUM}倍", value_transform=_as_percent(), exclusion_group="attack"),
    _rule(660, Stat.ATTACK, _FLAT, rf"{_NOT_ENEMY}攻撃(?:力)?(?:が|を)?\+?{NUM}{_FLAT_END}(?:上昇|増加)?", exclusion_group="attack"),
    _rule(670, Stat.DEFENSE, _PCT_MAX, rf"{_NOT_ENEMY}防御(?:力)?(?:が|を)?\+?{NUM}%(?!低下|減少|を?無視)(?:上昇|増加)?", exclusion_group="defense"),
    _rule(680, Stat.DEFENSE, _PCT_MAX, rf"{_NOT_ENEMY}防御(?:力)?(?:が)?{NUM}倍", value_transform=_as_percent(), exclusion_group="defense"),
    _rule(690, Stat.DEFENSE, _FLAT, rf"{_NOT_ENEMY}防御(?:力)?(?:が|を)?\+?{NUM}{_FLAT_END}(?:上昇|増加)?", exclusion_group="defense"),
    _rule(700, Stat.RANGE, _PCT_MAX, rf"(?<!敵の)射程(?:が|を)?\+?{NUM}%(?!低下|減少)(?:上昇|増加)?", exclusion_group="range"),
    _rule(710, Stat.RANGE, _PCT_MAX, rf"(?<!敵の)射程(?:が)?{NUM}倍", value_transform=_as_percent(), exclusion_group="range"),
    _rule(720, Stat.RANGE, _FLAT, rf"(?<!敵の)射程(?:が|を)?\+?{NUM}{_FLAT_END}(?:上昇|増加)?", exclusion_group="range"),
    _rule(730, Stat.HP, _PCT_MAX, rf"(?<!敵の)(?:最大)?耐久(?:が|を)?{NUM}%(?:上昇|増加)", exclusion_group="hp"),
    _rule(740, Stat.HP, _FLAT, rf"(?<!敵の)(?:最大)?耐久(?:が|を)?\+?{NUM}(?:上昇|増加)", exclusion_group="hp"),
    _rule(750, Stat.RECOVERY, _PCT_MAX, rf"回復(?:量)?(?:が|を)?{NUM}%(?:上昇|増加)", exclusion_group="recovery"),
    _rule(760, Stat.RECOVERY, _FLAT, rf"回復(?:量)?(?:が|を)?\+?{NUM}{_FLAT_END}(?:上昇|増加)", exclusion_group="recovery"),
    # =========================================================================
    # COUNTS / TIMING
    # =========================================================================
    _rule(800, Stat.TARGET_COUNT, _FLAT, rf"(?:攻撃)?対象(?:数)?(?:が|を)?\+?{NUM}(?:体)?(?:増加|追加)"),
    _rule(810, Stat.ATTACK_COUNT, _SET, rf"{NUM}(?:連撃|連続攻撃|回攻撃)"),
    _rule(820, Stat.STRATEGY_COOLDOWN, _REDUCE, rf"計略(?:の)?再使用(?:時間|までの時間)?(?:が|を)?{NUM}%短縮", exclusion_group="cooldown"),
    _rule(830, Stat.COOLDOWN, _REDUCE, rf"再配置(?:時間|までの時間)?(?:が|を)?{NUM}%短縮", exclusion_group="cooldown"),
]

RULES.sort(key=lambda rule: rule.number)

# Effect-duplicate markers redirect these stats to their duplicate channels
DUPLICATE_STAT_MAP: dict[Stat, Stat] = {
    Stat.ATTACK: Stat.EFFECT_DUPLICATE_ATTACK,
    Stat.DEFENSE: Stat.EFFECT_DUPLICATE_DEFENSE,
    Stat.RANGE: Stat.EFFECT_DUPLICATE_RANGE,
    Stat.ATTACK_SPEED: Stat.EFFECT_DUPLICATE_ATTACK_SPEED,
}


def get_rule(number: int) -> Rule | None:
    """Look up a rule by its number."""
    return next((rule for rule in RULES if rule.number == number), None)

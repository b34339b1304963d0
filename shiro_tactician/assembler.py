"""
Unit assembly.

Builds immutable Unit records from raw ability text and base stats by
running the extractor over each text list and stamping every parsed buff
with an id, a source and an activity flag.
"""

import itertools
import logging
import re

from pydantic import BaseModel, Field

from .models import (
    AbilityMode,
    AmbushInfo,
    Buff,
    BuffSource,
    ConditionalGiveDamage,
    ParsedBuff,
    RangeToAttack,
    SpecialAttack,
    Stat,
    StrategyDamage,
    Unit,
    UnitType,
)
from .parser import extract
from .weapons import get_weapon_info

logger = logging.getLogger(__name__)


class BuffIdGenerator:
    """
    Sequential buff id source.

    One generator per assembly keeps ids deterministic and lets units be
    assembled concurrently without shared state.
    """

    def __init__(self, prefix: str = "buff"):
        self.prefix = prefix
        self._counter = itertools.count(1)

    def next_id(self) -> str:
        return f"{self.prefix}-{next(self._counter)}"


class RawUnitData(BaseModel):
    """Unit as written by hand or produced by the scraper: text plus numbers."""

    id: str | None = None
    name: str
    weapon: str
    rarity: str | None = None
    period: str | None = None
    season_attributes: list[str] = Field(default_factory=list)
    unit_type: UnitType = UnitType.CASTLE_GIRL
    weapon_range: str | None = None
    weapon_type: str | None = None
    placement: str | None = None
    attributes: list[str] = Field(default_factory=list)
    base_stats: dict[Stat, float] = Field(default_factory=dict)

    passive_texts: list[str] = Field(default_factory=list)
    strategy_texts: list[str] = Field(default_factory=list)
    special_texts: list[str] = Field(default_factory=list)
    formation_texts: list[str] = Field(default_factory=list)

    ambush_info: AmbushInfo | None = None
    range_to_attack: RangeToAttack | bool | None = None
    multi_hit: int | None = None
    special_attack: SpecialAttack | None = None
    strategy_damage: StrategyDamage | None = None
    conditional_give_damage: list[ConditionalGiveDamage] = Field(default_factory=list)
    ability_mode: AbilityMode | None = None


def slugify(name: str) -> str:
    """Lowercase, whitespace to hyphens. Non-ASCII letters are kept."""
    slug = re.sub(r"[\s_]+", "-", name.strip().lower())
    return re.sub(r"[^\w-]", "", slug) or "unit"


def stamp(
    parsed: list[ParsedBuff],
    source: BuffSource,
    id_generator: BuffIdGenerator,
    *,
    is_active: bool = True,
) -> list[Buff]:
    """Attach id, source and activity to parsed buffs."""
    return [
        Buff(**buff.model_dump(), id=id_generator.next_id(), source=source, is_active=is_active) for buff in parsed
    ]


def _buffs_from_texts(
    texts: list[str],
    source: BuffSource,
    id_generator: BuffIdGenerator,
    *,
    is_active: bool = True,
) -> list[Buff]:
    buffs: list[Buff] = []
    for text in texts:
        parsed = extract(text)
        if not parsed:
            logger.debug(f"No buffs in {source.value} text: {text}")
        buffs.extend(stamp(parsed, source, id_generator, is_active=is_active))
    return buffs


def assemble_unit(
    raw: RawUnitData,
    id_generator: BuffIdGenerator | None = None,
    *,
    activate_strategies: bool = False,
) -> Unit:
    """
    Assemble a Unit from raw data.

    Args:
        raw: Texts, base stats and damage descriptors.
        id_generator: Buff id source. Defaults to a fresh generator
            prefixed with the unit id.
        activate_strategies: Whether activated-ability buffs start active.

    Returns:
        Frozen Unit. Passive, formation and special buffs are active.
    """
    unit_id = raw.id or slugify(raw.name)
    ids = id_generator or BuffIdGenerator(prefix=unit_id)

    weapon_info = get_weapon_info(raw.weapon)
    weapon_range = raw.weapon_range or (weapon_info.range if weapon_info else None)
    weapon_type = raw.weapon_type or (weapon_info.type if weapon_info else None)
    placement = raw.placement or (weapon_info.placement if weapon_info else None)

    passives = _buffs_from_texts(raw.passive_texts, BuffSource.SELF_SKILL, ids)
    passives += _buffs_from_texts(raw.formation_texts, BuffSource.FORMATION_SKILL, ids)
    strategies = _buffs_from_texts(raw.strategy_texts, BuffSource.STRATEGY, ids, is_active=activate_strategies)
    specials = _buffs_from_texts(raw.special_texts, BuffSource.SPECIAL_ABILITY, ids)

    unit = Unit(
        id=unit_id,
        name=raw.name,
        rarity=raw.rarity,
        period=raw.period,
        season_attributes=raw.season_attributes,
        unit_type=raw.unit_type,
        weapon=raw.weapon,
        weapon_range=weapon_range,
        weapon_type=weapon_type,
        placement=placement,
        attributes=raw.attributes,
        base_stats=raw.base_stats,
        passives=passives,
        strategies=strategies,
        specials=specials,
        ambush_info=raw.ambush_info,
        range_to_attack=raw.range_to_attack,
        multi_hit=raw.multi_hit,
        special_attack=raw.special_attack,
        strategy_damage=raw.strategy_damage,
        conditional_give_damage=raw.conditional_give_damage,
        ability_mode=raw.ability_mode,
        raw_passive_texts=raw.passive_texts + raw.formation_texts,
        raw_strategy_texts=raw.strategy_texts,
        raw_special_texts=raw.special_texts,
    )
    logger.debug(f"Assembled {unit.id}: {len(passives)} passive, {len(strategies)} strategy, {len(specials)} special")
    return unit

"""
Text-to-buff extractor.

Turns one raw ability description into zero or more ParsedBuff records:

1. Normalize width and wording.
2. Strip the optional global effect-multiplier clause.
3. Split into sentences, with an implicit split before every per-giant-stage
   phrase and before any reset trigger inside a scoped sentence, tracking the
   giant-stage scope flag.
4. Run the numbered rule table over every sentence segment.
5. Add tag-conditional clones, deduplicate, apply the global multiplier.

Unrecognized text yields an empty list.
"""

import logging
import re
from dataclasses import dataclass, field

from .conditions import extract_condition_tags
from .models import (
    BuffMode,
    ConditionTag,
    DynamicBuffType,
    DynamicDescriptor,
    ParsedBuff,
    Stat,
    Target,
)
from .patterns import DUPLICATE_STAT_MAP, RULES, Rule

logger = logging.getLogger(__name__)

GIANT_STAGE_COUNT = 5

PER_GIANT_STAGE = re.compile(r"巨大化(?:毎|ごと)に|巨大化する(?:度|たび)に|巨大化1回につき")
SCOPE_RESET_TRIGGERS = re.compile(
    r"最大巨大化時|巨大化5段階(?:目)?(?:時|の時)|配置(?:時|と同時)|撤退時|敵撃破時|敵を撃破(?:すると|した時)"
)
GLOBAL_MULTIPLIER = re.compile(
    r"(自身|対象|射程内(?:の)?(?:城娘)?|範囲内(?:の)?(?:城娘)?)(?:に対して)?(?:は|には)?効果(\d+(?:\.\d+)?)倍"
)
SENTENCE_BREAK = re.compile(r"[。｡!！\n]|\.(?!\d)|(?<!\d)\.")

DUPLICATE_MARKER = re.compile(r"効果重複|同種効果重複|同種効果と重複|重複可能|重複可|割合重複")
EXPLICIT_NON_DUPLICATE = re.compile(r"同種効果の重複無し|重複不可")
NON_STACKING = re.compile(r"重複なし")
STACK_PENALTY = re.compile(r"重複時(?:の)?効果(\d+(?:\.\d+)?)%(?:減少|低下)")
SELF_ONLY_BENEFIT = re.compile(r"[（(]自分のみ[）)]")
SELF_ONLY_TARGET = re.compile(r"[（(][^）)]*自分(?:のみ)?(?:が対象)?[^）)]*[）)]|自分のみ")
MAX_STACKS = re.compile(r"[（(](\d+)回まで[）)]")
STACKABLE_TRIGGER = re.compile(r"敵撃破(?:毎|ごと)に|巨大化(?:毎|ごと)に|配置(?:毎|ごと)に")

COST_STATS = {
    Stat.COST,
    Stat.COST_GRADUAL,
    Stat.COST_GIANT,
    Stat.COST_STRATEGY,
    Stat.COST_ENEMY_DEFEAT,
    Stat.COST_DEFEAT_BONUS,
}

TAG_TO_CONDITION: dict[str, ConditionTag] = {
    "絢爛": ConditionTag.KENRAN,
    "夏": ConditionTag.SUMMER,
    "ハロウィン": ConditionTag.HALLOWEEN,
    "学園": ConditionTag.SCHOOL,
    "聖夜": ConditionTag.CHRISTMAS,
    "正月": ConditionTag.NEW_YEAR,
    "お月見": ConditionTag.MOON_VIEWING,
    "花嫁": ConditionTag.BRIDE,
    "水": ConditionTag.WATER,
    "平": ConditionTag.PLAIN,
    "山": ConditionTag.MOUNTAIN,
    "平山": ConditionTag.PLAIN_MOUNTAIN,
    "地獄": ConditionTag.HELL,
}

_NORMALIZATIONS: list[tuple[str, str]] = [
    ("アップ", "上昇"),
    ("ダウン", "低下"),
    ("上がる", "上昇"),
    ("下がる", "低下"),
    ("増加する", "増加"),
    ("減少する", "減少"),
    ("短縮する", "短縮"),
    ("軽減する", "軽減"),
]

_WIDTH_TABLE = str.maketrans({**{chr(0xFF10 + i): str(i) for i in range(10)}, "％": "%", "＋": "+", "－": "-", "×": "x", "：": ":"})


# =============================================================================
# PREPROCESSING
# =============================================================================


def preprocess(text: str) -> str:
    """Full-width digits and symbols to ASCII, wording variants to canonical forms."""
    result = text.translate(_WIDTH_TABLE)
    for variant, canonical in _NORMALIZATIONS:
        result = result.replace(variant, canonical)
    return result


def strip_global_multiplier(text: str) -> tuple[str, tuple[Target, float] | None]:
    """
    Remove the global effect-multiplier clause.

    Returns:
        The remaining text and ``(target_class, multiplier)`` when a clause was found.
    """
    match = GLOBAL_MULTIPLIER.search(text)
    if not match:
        return text, None

    keyword = match.group(1)
    if keyword == "対象":
        target = Target.ALLY
    elif keyword.startswith(("射程内", "範囲内")):
        target = Target.RANGE
    else:
        target = Target.SELF

    remaining = text[: match.start()] + text[match.end() :]
    return remaining, (target, float(match.group(2)))


def split_sentences(text: str) -> list[str]:
    """Split on sentence punctuation and before every per-giant-stage phrase."""
    marked = PER_GIANT_STAGE.sub(lambda m: "\n" + m.group(0), text)
    return [s.strip() for s in SENTENCE_BREAK.split(marked) if s and s.strip()]


def split_at_scope_resets(sentence: str) -> list[str]:
    """Split before every giant-scope reset trigger that is not at the start."""
    starts = [m.start() for m in SCOPE_RESET_TRIGGERS.finditer(sentence) if m.start() > 0]
    if not starts:
        return [sentence]
    bounds = [0, *starts, len(sentence)]
    pieces = [sentence[a:b].strip() for a, b in zip(bounds, bounds[1:])]
    return [p for p in pieces if p]


_HEADER = re.compile(r"全?近接(?:城娘)?の|全?遠隔(?:城娘)?の|全?架空(?:城|属性(?:の城娘)?)?の")


def split_condition_headers(sentence: str) -> list[str]:
    """Split "全近接城娘の…全遠隔城娘の…" into one segment per header."""
    matches = list(_HEADER.finditer(sentence))
    if len(matches) <= 1:
        return [sentence]

    segments = []
    prefix = sentence[: matches[0].start()].strip()
    if prefix:
        segments.append(prefix)
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(sentence)
        segment = sentence[match.start() : end].strip()
        if segment:
            segments.append(segment)
    return segments


_STAT_WORDS = r"与ダメ(?:ージ)?|被ダメ(?:ージ)?|攻撃速度|移動速度|攻撃(?:力)?|防御(?:力)?|射程|回復|耐久|隙"
_PARALLEL_PATTERNS = [
    re.compile(rf"(?P<s1>{_STAT_WORDS})[/／](?P<s2>{_STAT_WORDS})(?:[/／](?P<s3>{_STAT_WORDS}))?(?:が|を)?"),
    re.compile(rf"(?P<s1>{_STAT_WORDS})[と・、](?P<s2>{_STAT_WORDS})(?:[と・、](?P<s3>{_STAT_WORDS}))?(?:が|を|の)?"),
]
_PERCENT_AND_FLAT = re.compile(r"(攻撃|防御|射程)(\d+)%と(\d+)([（(]効果重複[）)])?")
_INSPIRE_PARALLEL = re.compile(r"自身の(?:攻撃|防御)[と・](?:攻撃|防御)の\d+%.*?加算")


def expand_parallel_stats(line: str) -> list[str]:
    """
    Expand parallel stat notation into one line per stat.

    "攻撃と防御が30%上昇" becomes "攻撃30%上昇" and "防御30%上昇";
    "攻撃5%と70(効果重複)" becomes a percent line carrying the duplicate
    marker and a flat line without it.
    """
    if _INSPIRE_PARALLEL.search(line):
        return [line]

    match = _PERCENT_AND_FLAT.search(line)
    if match:
        stat, percent, flat, duplicate = match.group(1), match.group(2), match.group(3), match.group(4) or ""
        prefix, remainder = line[: match.start()], line[match.end() :]
        return [f"{prefix}{stat}{percent}%{duplicate}{remainder}", f"{prefix}{stat}+{flat}{remainder}"]

    for pattern in _PARALLEL_PATTERNS:
        match = pattern.search(line)
        if not match:
            continue
        stats = [s for s in (match.group("s1"), match.group("s2"), match.group("s3")) if s]
        prefix, remainder = line[: match.start()], line[match.end() :]

        # "範囲攻撃の範囲2倍" keeps only the value part
        if re.match(r"[^0-9]*?\d+(?:\.\d+)?(?:倍|%)", remainder):
            value_part = re.search(r"\d+(?:\.\d+)?(?:倍|%).*", remainder)
            if value_part:
                remainder = value_part.group(0)

        connector = "" if match.group(0)[-1] in "がをの" else "が"
        return [f"{prefix}{stat}{connector}{remainder}" for stat in stats]

    return [line]


# =============================================================================
# CONTEXT DETECTION
# =============================================================================


@dataclass
class TargetGuess:
    target: Target
    note: str | None = None
    confidence: str = "certain"
    reason: str | None = None


def detect_target(text: str) -> TargetGuess:
    """Infer the buff target from wording."""
    area = re.search(r"範囲:\s*(超特大|特大|大|中|小)", text)
    if area:
        size = area.group(1)
        return TargetGuess(Target.ALLY if size in ("中", "小") else Target.RANGE, note=f"範囲:{size}")

    if "射程外" in text:
        return TargetGuess(Target.OUT_OF_RANGE)
    if re.search(r"射程内|範囲内", text):
        return TargetGuess(Target.RANGE)
    if re.search(r"全(?:て)?の?城娘|味方全(?:体|員)|殿|全体", text):
        return TargetGuess(Target.ALL)
    if "対象" in text:
        return TargetGuess(Target.ALLY)
    if re.search(r"味方|城娘", text):
        return TargetGuess(Target.RANGE, confidence="inferred", reason="味方/城娘 read as in-range")
    return TargetGuess(Target.SELF, confidence="inferred", reason="no target wording")


@dataclass
class SentenceContext:
    condition_tags: list[ConditionTag] = field(default_factory=list)
    target: Target | None = None
    is_self_only: bool = False


def detect_sentence_context(sentence: str) -> SentenceContext:
    """Self-only sentences and melee/ranged/fictional headers."""
    context = SentenceContext()
    if sentence.strip().startswith("自身の"):
        context.is_self_only = True
        context.target = Target.SELF

    if re.search(r"全?近接(?:城娘)?の", sentence):
        context.condition_tags.append(ConditionTag.MELEE)
        context.target = Target.RANGE
    if re.search(r"全?遠隔(?:城娘)?の", sentence):
        context.condition_tags.append(ConditionTag.RANGED)
        context.target = Target.RANGE
    if re.search(r"全?架空(?:城|属性(?:の城娘)?)?の", sentence):
        context.condition_tags.append(ConditionTag.FICTIONAL)
        context.target = Target.RANGE
    return context


_DYNAMIC_PATTERNS: list[tuple[re.Pattern, DynamicBuffType, str]] = [
    (re.compile(p), kind, category)
    for p, kind, category in (
        (r"味方\d*体につき", DynamicBuffType.PER_ALLY_OTHER, "formation"),
        (r"味方の城娘\d*体につき", DynamicBuffType.PER_ALLY_OTHER, "formation"),
        (r"編成している城娘\d*体につき", DynamicBuffType.PER_ALLY_OTHER, "formation"),
        (r"他の城娘\d*体につき", DynamicBuffType.PER_ALLY_OTHER, "formation"),
        (r"射程内(?:の)?味方\d*体(?:毎|ごと)に", DynamicBuffType.PER_ALLY_IN_RANGE, "formation"),
        (r"射程内(?:の)?城娘\d*体(?:毎|ごと)に", DynamicBuffType.PER_ALLY_IN_RANGE, "formation"),
        (r"範囲内(?:の)?味方\d*体(?:毎|ごと)に", DynamicBuffType.PER_ALLY_IN_RANGE, "formation"),
        (r"射程内(?:の)?敵\d*体(?:毎|ごと)に", DynamicBuffType.PER_ENEMY_IN_RANGE, "combat_situation"),
        (r"範囲内(?:の)?敵\d*体(?:毎|ごと)に", DynamicBuffType.PER_ENEMY_IN_RANGE, "combat_situation"),
        (r"攻撃対象(?:の)?敵\d*体(?:毎|ごと)に", DynamicBuffType.PER_ENEMY_IN_RANGE, "combat_situation"),
        (r"伏兵\d*体につき", DynamicBuffType.PER_AMBUSH_DEPLOYED, "formation"),
        (r"配置(?:された|している)伏兵\d*体につき", DynamicBuffType.PER_AMBUSH_DEPLOYED, "formation"),
        (r"伏兵が配置されている", DynamicBuffType.PER_AMBUSH_DEPLOYED, "formation"),
        (r"撃破(?:した)?敵\d*体(?:毎|ごと)に", DynamicBuffType.PER_ENEMY_DEFEATED, "combat_situation"),
        (r"敵\d*体撃破(?:する)?(?:毎|ごと)に", DynamicBuffType.PER_ENEMY_DEFEATED, "combat_situation"),
        (r"敵を撃破(?:する)?(?:毎|ごと)に", DynamicBuffType.PER_ENEMY_DEFEATED, "combat_situation"),
        (r"(?:同じ|同一)?属性(?:の)?城娘\d*体(?:毎|ごと|につき)", DynamicBuffType.PER_SPECIFIC_ATTRIBUTE, "formation"),
        (r"(?:同じ|同一)?武器種(?:の)?城娘\d*体(?:毎|ごと|につき)", DynamicBuffType.PER_SPECIFIC_WEAPON, "formation"),
        (r"[水平山]属性(?:の)?城娘\d*体(?:毎|ごと|につき)", DynamicBuffType.PER_SPECIFIC_ATTRIBUTE, "formation"),
    )
]


def detect_dynamic(text: str, value: float) -> DynamicDescriptor | None:
    """Per-count scaling phrase, if any."""
    for pattern, kind, category in _DYNAMIC_PATTERNS:
        match = pattern.search(text)
        if match:
            return DynamicDescriptor(kind=kind, parameter=match.group(0), category=category, unit_value=value)
    return None


# =============================================================================
# LINE EXTRACTION
# =============================================================================


def _overlaps(span: tuple[int, int], claimed: list[tuple[int, int]]) -> bool:
    return any(span[0] < end and start < span[1] for start, end in claimed)


_MODE_RANK = {
    BuffMode.ABSOLUTE_SET: 3,
    BuffMode.PERCENT_MAX: 2,
    BuffMode.PERCENT_REDUCTION: 1,
    BuffMode.FLAT_SUM: 0,
}


def _resolve_target(rule: Rule, line: str, match: re.Match, segment: str, context: SentenceContext, guess: TargetGuess) -> Target:
    if rule.stat in COST_STATS:
        return Target.FIELD
    if rule.stat == Stat.INSPIRE:
        return guess.target if guess.target != Target.SELF else (rule.target or Target.RANGE)

    target = context.target or rule.target or guess.target

    if "自身の" in line[max(0, match.start() - 15) : match.start()]:
        target = Target.SELF
    if rule.stat == Stat.GIVE_DAMAGE and "敵に与える" in line[max(0, match.start() - 5) : match.end()]:
        target = Target.SELF
    if rule.stat == Stat.ATTACK_GAP and context.target is None:
        target = Target.SELF
    if not rule.stat.is_enemy_facing and SELF_ONLY_TARGET.search(segment):
        target = Target.SELF
    return target


def _extract_line(
    line: str,
    segment: str,
    context: SentenceContext,
    has_duplicate_marker: bool,
    giant_scoped: bool,
) -> list[ParsedBuff]:
    guess = detect_target(line)

    duplicate_match = DUPLICATE_MARKER.search(line)
    duplicate_position = duplicate_match.start() if duplicate_match else -1
    # A marker the expansion dropped from this line does not carry over
    if DUPLICATE_MARKER.search(segment):
        effective_marker = duplicate_position >= 0
    else:
        effective_marker = has_duplicate_marker

    non_stacking = bool(NON_STACKING.search(segment) or EXPLICIT_NON_DUPLICATE.search(segment))
    penalty_match = STACK_PENALTY.search(segment)
    stack_penalty = float(penalty_match.group(1)) if penalty_match else None
    benefits_only_self = bool(SELF_ONLY_BENEFIT.search(segment))
    stacks_match = MAX_STACKS.search(segment)
    max_stacks = int(stacks_match.group(1)) if stacks_match else None
    stackable = bool(STACKABLE_TRIGGER.search(segment)) or max_stacks is not None

    if context.is_self_only:
        condition_tags: list[ConditionTag] = []
    elif context.condition_tags:
        condition_tags = list(context.condition_tags)
    else:
        condition_tags = extract_condition_tags(segment)

    results: list[ParsedBuff] = []
    claimed: dict[str, list[tuple[int, int]]] = {}

    for rule in RULES:
        for match in rule.regex.finditer(line):
            span = match.span()
            if rule.exclusion_group:
                group_spans = claimed.setdefault(rule.exclusion_group, [])
                if _overlaps(span, group_spans):
                    continue
                group_spans.append(span)

            value = rule.value_of(match)
            note = guess.note or rule.note

            giant_scaled = False
            if giant_scoped and rule.mode != BuffMode.ABSOLUTE_SET:
                value = round(value * GIANT_STAGE_COUNT, 6)
                giant_scaled = True

            if stackable and max_stacks:
                value = value * max_stacks
                stack_note = f"value at {max_stacks} stacks"
                note = f"{note}; {stack_note}" if note else stack_note

            is_duplicate = (duplicate_position >= 0 and span[1] <= duplicate_position) or (
                effective_marker and duplicate_position < 0
            )
            stat = rule.stat
            if is_duplicate and rule.mode == BuffMode.PERCENT_MAX:
                stat = DUPLICATE_STAT_MAP.get(rule.stat, rule.stat)

            dynamic = detect_dynamic(line, value)
            requires_ambush = (
                "伏兵の射程内" in segment
                or "伏兵" in match.group(0)
                or (dynamic is not None and dynamic.kind == DynamicBuffType.PER_AMBUSH_DEPLOYED)
            )

            extra = rule.annotate(match) if rule.annotate else {}
            buff = ParsedBuff(
                stat=stat,
                mode=rule.mode,
                value=value,
                target=_resolve_target(rule, line, match, segment, context, guess),
                condition_tags=condition_tags,
                dynamic=dynamic,
                raw_text=match.group(0),
                note=note,
                is_duplicate=is_duplicate,
                non_stacking=non_stacking,
                stack_penalty=stack_penalty,
                max_stacks=max_stacks,
                requires_ambush=requires_ambush,
                benefits_only_self=benefits_only_self,
                inspire_source_stat=rule.inspire_source_stat,
                giant_scaled=giant_scaled,
                confidence=guess.confidence,
                inference_reason=guess.reason,
                **extra,
            )
            results.append(buff)

            # "自身の攻撃と防御の…加算" inspires from both stats
            if rule.stat == Stat.INSPIRE and rule.inspire_source_stat == Stat.ATTACK and "攻撃と防御" in match.group(0):
                results.append(buff.model_copy(update={"inspire_source_stat": Stat.DEFENSE}))

    # Same clause matched by several modes: keep the strongest mode
    unique: dict[tuple, ParsedBuff] = {}
    for buff in results:
        key = (buff.stat, buff.target, buff.raw_text, buff.inspire_source_stat)
        existing = unique.get(key)
        if existing is None or _MODE_RANK[buff.mode] > _MODE_RANK[existing.mode]:
            unique[key] = buff
    return list(unique.values())


_TAG_CONDITIONAL = re.compile(r"[［\[]([^\]］]+)[］\]](?:城娘)?(?:は|には)(\d+)%?(?:上昇|増加)?")


def extract_tag_conditional(text: str, buffs: list[ParsedBuff]) -> list[ParsedBuff]:
    """Tagged copies for "［絢爛］城娘は50%" style overrides."""
    clones = []
    for match in _TAG_CONDITIONAL.finditer(text):
        tag_name = match.group(1)
        tag = TAG_TO_CONDITION.get(tag_name)
        if tag is None:
            continue
        base = next((b for b in buffs if b.stat in (Stat.ATTACK, Stat.DEFENSE)), None)
        if base is None:
            continue
        clones.append(
            base.model_copy(update={"value": float(match.group(2)), "condition_tags": [tag], "note": f"{tag_name}城娘"})
        )
    return clones


def apply_global_multiplier(buffs: list[ParsedBuff], target: Target, multiplier: float) -> list[ParsedBuff]:
    """
    Scale buffs by the global effect multiplier.

    Buffs already aimed at the multiplier's target class are scaled. When
    the class is ``self`` and a buff reaches further, the buff is split into
    an ``exclude_self`` original and a scaled self copy.
    """
    transformed: list[ParsedBuff] = []
    for buff in buffs:
        if buff.target == Target.FIELD:
            transformed.append(buff)
        elif buff.target == target:
            transformed.append(buff.model_copy(update={"value": round(buff.value * multiplier, 6)}))
        elif target == Target.SELF:
            tags = list(buff.condition_tags)
            if ConditionTag.EXCLUDE_SELF not in tags:
                tags.append(ConditionTag.EXCLUDE_SELF)
            transformed.append(buff.model_copy(update={"condition_tags": tags}))
            transformed.append(
                buff.model_copy(
                    update={
                        "target": Target.SELF,
                        "value": round(buff.value * multiplier, 6),
                        "condition_tags": [t for t in buff.condition_tags if t != ConditionTag.EXCLUDE_SELF],
                        "raw_text": f"{buff.raw_text}(自身効果{multiplier:g}倍)",
                    }
                )
            )
        else:
            transformed.append(buff)
    return transformed


# =============================================================================
# ENTRY POINT
# =============================================================================


def extract(text: str) -> list[ParsedBuff]:
    """
    Extract buffs from one ability description.

    Args:
        text: Raw ability text.

    Returns:
        Parsed buffs in discovery order; empty when nothing is recognized.
    """
    if not text or not text.strip():
        return []

    normalized = preprocess(text)
    body, global_multiplier = strip_global_multiplier(normalized)
    has_duplicate_marker = bool(DUPLICATE_MARKER.search(body))

    buffs: list[ParsedBuff] = []
    giant_scoped = False
    for sentence in split_sentences(body):
        # A reset trigger inside a scoped sentence ends the scope mid-sentence
        if giant_scoped or PER_GIANT_STAGE.match(sentence):
            clauses = split_at_scope_resets(sentence)
        else:
            clauses = [sentence]

        for clause in clauses:
            if SCOPE_RESET_TRIGGERS.search(clause) and giant_scoped:
                logger.debug(f"Giant-stage scope cleared at: {clause}")
                giant_scoped = False
            if PER_GIANT_STAGE.match(clause):
                logger.debug(f"Giant-stage scope set at: {clause}")
                giant_scoped = True

            for segment in split_condition_headers(clause):
                context = detect_sentence_context(segment)
                for line in expand_parallel_stats(segment):
                    buffs.extend(_extract_line(line, segment, context, has_duplicate_marker, giant_scoped))

    buffs.extend(extract_tag_conditional(body, buffs))

    unique: dict[tuple, ParsedBuff] = {}
    for buff in buffs:
        unique.setdefault(buff.dedupe_key(), buff)
    buffs = list(unique.values())

    if global_multiplier:
        buffs = apply_global_multiplier(buffs, *global_multiplier)

    if not buffs:
        logger.debug(f"No buffs recognized in: {text}")
    return buffs


def extract_all(texts: list[str]) -> list[ParsedBuff]:
    """Extract from several descriptions in order."""
    return [buff for text in texts for buff in extract(text)]

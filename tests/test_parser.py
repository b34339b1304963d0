import pytest

from shiro_tactician.models import BuffMode, ConditionTag, Stat, Target
from shiro_tactician.parser import (
    GIANT_STAGE_COUNT,
    apply_global_multiplier,
    expand_parallel_stats,
    extract,
    extract_all,
    preprocess,
    split_at_scope_resets,
    split_sentences,
    strip_global_multiplier,
)
from shiro_tactician.patterns import RULES, get_rule, multiplier_to_percent

# =============================================================================
# PREPROCESSING
# =============================================================================


def test_preprocess_full_width():
    assert preprocess("攻撃が２０％アップ") == "攻撃が20%上昇"


def test_split_sentences_breaks_before_giant_phrase():
    assert split_sentences("攻撃が20%上昇巨大化毎に射程が10上昇") == ["攻撃が20%上昇", "巨大化毎に射程が10上昇"]


def test_split_sentences_keeps_decimals():
    assert split_sentences("攻撃が1.5倍。防御が20%上昇") == ["攻撃が1.5倍", "防御が20%上昇"]


def test_strip_global_multiplier():
    text, multiplier = strip_global_multiplier("射程内の城娘の攻撃が20%上昇。自身に対しては効果2倍")
    assert multiplier == (Target.SELF, 2.0)
    assert "効果2倍" not in text


def test_expand_parallel_stats():
    assert expand_parallel_stats("攻撃と防御が30%上昇") == ["攻撃30%上昇", "防御30%上昇"]


def test_rules_are_ordered():
    numbers = [rule.number for rule in RULES]
    assert numbers == sorted(numbers)
    assert len(set(numbers)) == len(numbers)
    assert get_rule(640).stat == Stat.ATTACK
    assert get_rule(1) is None


def test_multiplier_to_percent():
    assert multiplier_to_percent(1.4) == 40.0
    assert multiplier_to_percent(2) == 100.0


# =============================================================================
# EXTRACTION
# =============================================================================


def test_unrecognized_text_is_empty():
    assert extract("") == []
    assert extract("特に効果なし") == []


def test_self_percent_attack():
    buffs = extract("自身の攻撃が20%上昇")
    assert len(buffs) == 1
    buff = buffs[0]
    assert buff.stat == Stat.ATTACK
    assert buff.mode == BuffMode.PERCENT_MAX
    assert buff.value == 20
    assert buff.target == Target.SELF


def test_multiplier_phrase_becomes_percent():
    buffs = extract("攻撃が1.5倍")
    assert [(b.stat, b.mode, b.value) for b in buffs] == [(Stat.ATTACK, BuffMode.PERCENT_MAX, 50.0)]


def test_enemy_debuff_is_not_own_stat():
    buffs = extract("敵の防御が20%低下")
    assert [(b.stat, b.value) for b in buffs] == [(Stat.ENEMY_DEFENSE, 20)]


def test_parallel_stats_extracted_separately():
    buffs = extract("攻撃と防御が30%上昇")
    assert {(b.stat, b.value) for b in buffs} == {(Stat.ATTACK, 30), (Stat.DEFENSE, 30)}


def test_giant_scope_applies_to_following_sentence_only():
    buffs = extract("自身の攻撃が20%上昇巨大化毎に射程内の遠隔城娘の攻撃が10上昇")
    assert len(buffs) == 2

    percent, flat = buffs
    assert percent.stat == Stat.ATTACK
    assert percent.mode == BuffMode.PERCENT_MAX
    assert percent.value == 20
    assert percent.target == Target.SELF
    assert not percent.giant_scaled

    assert flat.stat == Stat.ATTACK
    assert flat.mode == BuffMode.FLAT_SUM
    assert flat.value == 10 * GIANT_STAGE_COUNT
    assert flat.target == Target.RANGE
    assert flat.condition_tags == [ConditionTag.RANGED]
    assert flat.giant_scaled


def test_giant_scope_reset():
    buffs = extract("巨大化毎に攻撃が10上昇。最大巨大化時、射程が20上昇")
    by_stat = {b.stat: b for b in buffs}
    assert by_stat[Stat.ATTACK].value == 50
    assert by_stat[Stat.RANGE].value == 20
    assert not by_stat[Stat.RANGE].giant_scaled


def test_giant_scope_reset_mid_sentence():
    buffs = extract("巨大化毎に攻撃が10上昇、最大巨大化時射程が20上昇")
    by_stat = {b.stat: b for b in buffs}

    assert by_stat[Stat.ATTACK].value == 50
    assert by_stat[Stat.ATTACK].giant_scaled
    assert by_stat[Stat.RANGE].mode == BuffMode.FLAT_SUM
    assert by_stat[Stat.RANGE].value == 20
    assert not by_stat[Stat.RANGE].giant_scaled


def test_split_at_scope_resets():
    assert split_at_scope_resets("巨大化毎に攻撃が10上昇、配置時射程が20上昇") == [
        "巨大化毎に攻撃が10上昇、",
        "配置時射程が20上昇",
    ]
    assert split_at_scope_resets("最大巨大化時射程が20上昇") == ["最大巨大化時射程が20上昇"]


def test_global_range_multiplier_scales_matching_target():
    buffs = extract("射程内の城娘の攻撃が20%上昇。射程内の城娘は効果1.5倍")
    attack = [b for b in buffs if b.stat == Stat.ATTACK]

    assert len(attack) == 1
    assert attack[0].target == Target.RANGE
    assert attack[0].value == 30


def test_global_target_multiplier_scales_matching_target():
    buffs = extract("対象の攻撃が20%上昇。対象には効果2倍")
    attack = [b for b in buffs if b.stat == Stat.ATTACK]

    assert len(attack) == 1
    assert attack[0].target == Target.ALLY
    assert attack[0].value == 40


def test_global_self_multiplier_splits_buff():
    buffs = extract("射程内の城娘の攻撃が20%上昇。自身に対しては効果2倍")
    assert len(buffs) == 2

    others = next(b for b in buffs if b.target == Target.RANGE)
    own = next(b for b in buffs if b.target == Target.SELF)
    assert others.value == 20
    assert ConditionTag.EXCLUDE_SELF in others.condition_tags
    assert own.value == 40
    assert ConditionTag.EXCLUDE_SELF not in own.condition_tags


def test_apply_global_multiplier_leaves_field_buffs():
    buffs = extract("気が5増加")
    assert buffs[0].target == Target.FIELD
    assert apply_global_multiplier(buffs, Target.SELF, 2.0) == buffs


def test_duplicate_marker_redirects_stat():
    buffs = extract("攻撃が20%上昇(効果重複)")
    assert len(buffs) == 1
    assert buffs[0].stat == Stat.EFFECT_DUPLICATE_ATTACK
    assert buffs[0].is_duplicate


@pytest.mark.parametrize(
    "text, stat",
    [
        ("与ダメージが20%低下", Stat.DAMAGE_DEALT),
        ("攻撃速度が20%低下", Stat.ATTACK_SPEED),
        ("攻撃速度が20%減少", Stat.ATTACK_SPEED),
    ],
)
def test_decrease_is_not_read_as_buff(text, stat):
    assert [b for b in extract(text) if b.stat == stat] == []


def test_damage_dealt_increase_still_matches():
    buffs = extract("与ダメージが20%上昇")
    assert [(b.stat, b.value) for b in buffs] == [(Stat.DAMAGE_DEALT, 20)]


def test_damage_taken_with_wo_particle():
    buffs = extract("射程内の城娘の被ダメージを20%軽減")
    taken = [b for b in buffs if b.stat == Stat.DAMAGE_TAKEN]

    assert len(taken) == 1
    assert taken[0].value == -20
    assert taken[0].target == Target.RANGE


def test_attack_speed_and_gap_parallel():
    assert expand_parallel_stats("攻撃速度と隙が20%短縮") == ["攻撃速度20%短縮", "隙20%短縮"]

    stats = {b.stat for b in extract("攻撃速度と隙が20%短縮")}
    assert stats == {Stat.ATTACK_SPEED, Stat.ATTACK_GAP}


def test_stack_penalty_annotation():
    buffs = extract("射程内の城娘の攻撃が100上昇(重複時効果50%減少)")
    attack = [b for b in buffs if b.stat == Stat.ATTACK]

    assert len(attack) == 1
    assert attack[0].stack_penalty == 50
    assert extract("射程内の城娘の攻撃が100上昇")[0].stack_penalty is None


def test_cost_targets_field():
    buffs = extract("気が5増加")
    assert [(b.stat, b.mode, b.value, b.target) for b in buffs] == [(Stat.COST, BuffMode.FLAT_SUM, 5, Target.FIELD)]


def test_inspire_from_own_attack():
    buffs = extract("自身の攻撃の30%を射程内の城娘の攻撃に加算")
    assert len(buffs) == 1
    buff = buffs[0]
    assert buff.stat == Stat.INSPIRE
    assert buff.value == 30
    assert buff.target == Target.RANGE
    assert buff.inspire_source_stat == Stat.ATTACK


@pytest.mark.parametrize(
    "text",
    [
        "自身の攻撃が20%上昇巨大化毎に射程内の遠隔城娘の攻撃が10上昇",
        "射程内の城娘の攻撃が20%上昇。自身に対しては効果2倍",
        "攻撃と防御が30%上昇",
    ],
)
def test_extraction_is_idempotent(text):
    assert extract(text) == extract(text)


def test_extract_all_concatenates():
    texts = ["自身の攻撃が20%上昇", "敵の防御が20%低下"]
    assert extract_all(texts) == extract(texts[0]) + extract(texts[1])

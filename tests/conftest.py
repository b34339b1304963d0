import pytest

from shiro_tactician.models import (
    Buff,
    BuffMode,
    BuffSource,
    ConditionTag,
    Environment,
    Stat,
    Target,
    Unit,
)


def make_buff(
    stat: Stat,
    value: float,
    *,
    mode: BuffMode = BuffMode.PERCENT_MAX,
    target: Target = Target.SELF,
    source: BuffSource = BuffSource.SELF_SKILL,
    tags: list[ConditionTag] | None = None,
    buff_id: str = "b-1",
    is_active: bool = True,
    **extra,
) -> Buff:
    return Buff(
        id=buff_id,
        stat=stat,
        mode=mode,
        value=value,
        target=target,
        source=source,
        condition_tags=tags or [],
        is_active=is_active,
        **extra,
    )


def make_unit(unit_id: str = "u1", weapon: str = "刀", attack: float = 1000, **fields) -> Unit:
    base_stats = fields.pop("base_stats", {Stat.ATTACK: attack})
    return Unit(id=unit_id, name=unit_id, weapon=weapon, base_stats=base_stats, **fields)


@pytest.fixture
def katana_unit() -> Unit:
    """Attack 1000 sword user with no buffs."""
    return make_unit("katana", weapon="刀", attack=1000)


@pytest.fixture
def bow_unit() -> Unit:
    return make_unit("bow", weapon="弓", attack=800)


@pytest.fixture
def neutral_env() -> Environment:
    return Environment()


UNIT_YAML = """\
id: kiyosu
name: 清洲城
weapon: 刀
base_stats:
  attack: 1000
  range: 170
passive_texts:
  - 自身の攻撃が20%上昇
strategy_texts:
  - 20秒間自身の攻撃が50%上昇
"""

SUPPORT_YAML = """\
id: azuchi
name: 安土城
weapon: 弓
base_stats:
  attack: 800
passive_texts:
  - 射程内の城娘の攻撃が15%上昇
"""

SQUAD_YAML = """\
id: main
name: Main
slots: [kiyosu, azuchi, missing-unit]
"""

ENV_YAML = """\
id: armored
name: Armored
enemy_defense: 500
"""


@pytest.fixture
def data_dir(tmp_path):
    """Data directory with two units, a squad and an environment."""
    for subdir in ("units", "squads", "environments"):
        (tmp_path / subdir).mkdir()
    (tmp_path / "units" / "kiyosu.yaml").write_text(UNIT_YAML, encoding="utf-8")
    (tmp_path / "units" / "azuchi.yaml").write_text(SUPPORT_YAML, encoding="utf-8")
    (tmp_path / "units" / "_template.yaml").write_text("name: ignored\n", encoding="utf-8")
    (tmp_path / "squads" / "main.yaml").write_text(SQUAD_YAML, encoding="utf-8")
    (tmp_path / "environments" / "armored.yaml").write_text(ENV_YAML, encoding="utf-8")
    return tmp_path

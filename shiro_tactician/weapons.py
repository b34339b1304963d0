"""
Weapon reference tables.

Frame data drives the DPS model; the class mapping drives weapon-class
conditions (melee/ranged, physical/magical).
"""

from dataclasses import dataclass

FRAMES_PER_SECOND = 60


@dataclass(frozen=True)
class WeaponFrames:
    """Attack animation and post-attack gap, in frames."""

    attack: int
    gap: int

    @property
    def total(self) -> int:
        return self.attack + self.gap


@dataclass(frozen=True)
class WeaponInfo:
    range: str  # 近 or 遠
    type: str  # 物 or 術
    placement: str  # 近, 遠 or 遠近


WEAPON_FRAMES: dict[str, WeaponFrames] = {
    "刀": WeaponFrames(19, 22),
    "槍": WeaponFrames(23, 27),
    "槌": WeaponFrames(27, 30),
    "盾": WeaponFrames(24, 30),
    "拳": WeaponFrames(37, 18),
    "鎌": WeaponFrames(22, 22),
    "戦棍": WeaponFrames(27, 25),
    "双剣": WeaponFrames(29, 21),
    "ランス": WeaponFrames(27, 27),
    "弓": WeaponFrames(19, 18),
    "石弓": WeaponFrames(24, 24),
    "鉄砲": WeaponFrames(29, 27),
    "大砲": WeaponFrames(42, 42),
    "歌舞": WeaponFrames(47, 54),
    "法術": WeaponFrames(42, 30),
    "鈴": WeaponFrames(134, 0),  # 12 hits of 1/12 attack, resolved as one
    "杖": WeaponFrames(37, 30),
    "祓串": WeaponFrames(32, 27),
    "投剣": WeaponFrames(24, 18),
    "鞭": WeaponFrames(24, 21),
    "陣貝": WeaponFrames(218, 0),
    "軍船": WeaponFrames(32, 42),
    "その他": WeaponFrames(37, 30),  # Same as 杖
}

WEAPON_MAPPING: dict[str, WeaponInfo] = {
    # Melee physical
    "刀": WeaponInfo("近", "物", "近"),
    "槍": WeaponInfo("近", "物", "近"),
    "槌": WeaponInfo("近", "物", "近"),
    "盾": WeaponInfo("近", "物", "近"),
    "拳": WeaponInfo("近", "物", "近"),
    "鎌": WeaponInfo("近", "物", "近"),
    "戦棍": WeaponInfo("近", "物", "近"),
    "双剣": WeaponInfo("近", "物", "近"),
    "ランス": WeaponInfo("近", "物", "近"),
    # Ranged physical
    "弓": WeaponInfo("遠", "物", "遠"),
    "石弓": WeaponInfo("遠", "物", "遠"),
    "鉄砲": WeaponInfo("遠", "物", "遠"),
    # Ranged magical
    "歌舞": WeaponInfo("遠", "術", "遠"),
    "法術": WeaponInfo("遠", "術", "遠"),
    "杖": WeaponInfo("遠", "術", "遠"),
    "鈴": WeaponInfo("遠", "術", "遠"),
    "祓串": WeaponInfo("遠", "術", "遠"),
    "本": WeaponInfo("遠", "術", "遠"),
    "その他": WeaponInfo("遠", "術", "遠"),
    # Both, physical
    "投剣": WeaponInfo("遠", "物", "遠近"),
    "鞭": WeaponInfo("近", "物", "遠近"),
    "茶器": WeaponInfo("近", "物", "遠近"),
    "大砲": WeaponInfo("遠", "物", "遠近"),
    "軍船": WeaponInfo("遠", "物", "遠近"),
    # Both, magical
    "陣貝": WeaponInfo("遠", "術", "遠近"),
}


def get_weapon_frames(weapon: str) -> WeaponFrames | None:
    """Frame data for a weapon class, or None when unknown."""
    return WEAPON_FRAMES.get(weapon)


def get_weapon_info(weapon: str) -> WeaponInfo | None:
    """Class mapping for a weapon, or None when unknown."""
    return WEAPON_MAPPING.get(weapon)

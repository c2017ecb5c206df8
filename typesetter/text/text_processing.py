import re
from typing import Dict, List, NamedTuple

# Latin letters, digits and ASCII/general punctuation are laid sideways in
# vertical writing (text-orientation: mixed).
LATIN_PATTERN = re.compile(r"[\u0020-\u007e\u00a0-\u024f\u2010-\u2027\u2030-\u205e]")

# CJK punctuation whose vertical form is the horizontal glyph turned 90 degrees.
CJK_VERTICAL_PUNCTUATION = frozenset(
    "，。、：；"
    "（）［］｛｝【】〔〕〖〗《》〈〉「」『』"
    "〜～ー－＝"
    "…‥—―"
    "＜＞｜"
)

ROTATED_DEGREES = 90
UPRIGHT_DEGREES = 0


class FontSpec(NamedTuple):
    css_family: str
    weight: int


# Editor font ids mapped to their web font family and weight.
FONT_FAMILIES: Dict[str, FontSpec] = {
    "noto": FontSpec("Noto Sans SC", 700),
    "noto-bold": FontSpec("Noto Sans SC", 900),
    "noto-serif": FontSpec("Noto Serif SC", 700),
    "zhimang": FontSpec("Zhi Mang Xing", 400),
    "mashan": FontSpec("Ma Shan Zheng", 400),
    "liujian": FontSpec("Liu Jian Mao Cao", 400),
    "longcang": FontSpec("Long Cang", 400),
    "kuaile": FontSpec("ZCOOL KuaiLe", 400),
    "xiaowei": FontSpec("ZCOOL XiaoWei", 400),
}
DEFAULT_FONT_ID = "noto"


def resolve_font(font_id: str) -> FontSpec:
    """Returns the font spec for an editor font id, defaulting to Noto."""
    return FONT_FAMILIES.get(font_id, FONT_FAMILIES[DEFAULT_FONT_ID])


def needs_vertical_rotation(char: str) -> bool:
    """True if the glyph must be turned clockwise when set vertically."""
    return bool(LATIN_PATTERN.match(char)) or char in CJK_VERTICAL_PUNCTUATION


def glyph_rotation(char: str) -> int:
    """Clockwise rotation in degrees applied to a glyph in vertical text."""
    return ROTATED_DEGREES if needs_vertical_rotation(char) else UPRIGHT_DEGREES


def split_lines(text: str) -> List[str]:
    """Splits bubble text into lines (columns when vertical), keeping blanks."""
    return text.replace("\r\n", "\n").replace("\r", "\n").split("\n")

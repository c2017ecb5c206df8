from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional, Tuple

from typesetter.text.text_processing import glyph_rotation, split_lines

Box = Tuple[float, float, float, float]


@dataclass(frozen=True)
class GlyphPlacement:
    """A vertically set character, positioned by its center."""

    char: str
    center_x: float
    center_y: float
    advance: float
    extent: float
    rotation: int

    @property
    def box(self) -> Box:
        return (
            self.center_x - self.extent / 2.0,
            self.center_y - self.advance / 2.0,
            self.center_x + self.extent / 2.0,
            self.center_y + self.advance / 2.0,
        )


@dataclass(frozen=True)
class LinePlacement:
    """A horizontal line, positioned by its center."""

    text: str
    center_x: float
    center_y: float
    width: float
    height: float

    @property
    def box(self) -> Box:
        return (
            self.center_x - self.width / 2.0,
            self.center_y - self.height / 2.0,
            self.center_x + self.width / 2.0,
            self.center_y + self.height / 2.0,
        )


@dataclass(frozen=True)
class TextLayout:
    vertical: bool
    glyphs: List[GlyphPlacement] = field(default_factory=list)
    lines: List[LinePlacement] = field(default_factory=list)
    bounds: Optional[Box] = None

    @property
    def center(self) -> Optional[Tuple[float, float]]:
        if self.bounds is None:
            return None
        left, top, right, bottom = self.bounds
        return (left + right) / 2.0, (top + bottom) / 2.0

    def translated(self, dx: float, dy: float) -> "TextLayout":
        glyphs = [
            replace(g, center_x=g.center_x + dx, center_y=g.center_y + dy)
            for g in self.glyphs
        ]
        lines = [
            replace(ln, center_x=ln.center_x + dx, center_y=ln.center_y + dy)
            for ln in self.lines
        ]
        bounds = None
        if self.bounds is not None:
            left, top, right, bottom = self.bounds
            bounds = (left + dx, top + dy, right + dx, bottom + dy)
        return TextLayout(self.vertical, glyphs, lines, bounds)


def _union(boxes: List[Box]) -> Optional[Box]:
    if not boxes:
        return None
    return (
        min(b[0] for b in boxes),
        min(b[1] for b in boxes),
        max(b[2] for b in boxes),
        max(b[3] for b in boxes),
    )


def layout_vertical(
    text: str,
    font_px: float,
    line_height: float,
    box_width: float,
    box_height: float,
    measure_char: Callable[[str], float],
    letter_spacing: float = 0.0,
) -> TextLayout:
    """
    Lays out vertical-rl text inside a box.

    Each line becomes a column, columns progress right to left and are
    top-aligned; the block of columns is centered in the box. Upright
    characters advance by one em, sideways characters by their horizontal
    advance, each followed by the letter spacing. Bounds are measured from
    the glyph boxes only, so blank columns do not pull the visual center.

    Args:
        text: Bubble text
        font_px: Font size in pixels
        line_height: Column pitch in pixels
        box_width, box_height: Bubble box size in pixels
        measure_char: Horizontal advance of a single character
        letter_spacing: Extra advance after every character, in pixels

    Returns:
        TextLayout in box-local coordinates
    """
    columns = split_lines(text)
    advances = [
        [measure_char(c) if glyph_rotation(c) else font_px for c in column]
        for column in columns
    ]
    block_width = len(columns) * line_height
    block_height = max(
        (sum(a) + letter_spacing * (len(a) - 1) for a in advances if a), default=0.0
    )
    block_left = (box_width - block_width) / 2.0
    block_top = (box_height - block_height) / 2.0

    glyphs: List[GlyphPlacement] = []
    for index, (column, column_advances) in enumerate(zip(columns, advances)):
        center_x = block_left + block_width - (index + 0.5) * line_height
        cursor_y = block_top
        for char, advance in zip(column, column_advances):
            if not char.isspace():
                glyphs.append(
                    GlyphPlacement(
                        char=char,
                        center_x=center_x,
                        center_y=cursor_y + advance / 2.0,
                        advance=advance,
                        extent=font_px,
                        rotation=glyph_rotation(char),
                    )
                )
            cursor_y += advance + letter_spacing

    return TextLayout(True, glyphs=glyphs, bounds=_union([g.box for g in glyphs]))


def layout_horizontal(
    text: str,
    font_px: float,
    line_height: float,
    box_width: float,
    box_height: float,
    measure_line: Callable[[str], float],
    letter_spacing: float = 0.0,
    measure_char: Optional[Callable[[str], float]] = None,
) -> TextLayout:
    """
    Lays out centered horizontal lines as a vertically centered block.

    With letter spacing, characters are set one by one, so a line is as wide
    as its character advances plus the spacing between them.
    """
    rows = split_lines(text)

    def row_width(row: str) -> float:
        if not row:
            return 0.0
        if not letter_spacing or measure_char is None:
            return measure_line(row)
        return sum(measure_char(c) for c in row) + letter_spacing * (len(row) - 1)

    block_top = (box_height - len(rows) * line_height) / 2.0
    lines = [
        LinePlacement(
            text=row,
            center_x=box_width / 2.0,
            center_y=block_top + (index + 0.5) * line_height,
            width=row_width(row),
            height=line_height,
        )
        for index, row in enumerate(rows)
    ]
    return TextLayout(False, lines=lines, bounds=_union([ln.box for ln in lines]))


def measure_and_center(layout: TextLayout, center_x: float, center_y: float) -> TextLayout:
    """Moves a layout so the center of its measured bounds sits on the given point."""
    measured = layout.center
    if measured is None:
        return layout
    return layout.translated(center_x - measured[0], center_y - measured[1])


def layout_text(
    text: str,
    vertical: bool,
    font_px: float,
    line_height: float,
    box_width: float,
    box_height: float,
    measure_char: Callable[[str], float],
    measure_line: Callable[[str], float],
    letter_spacing: float = 0.0,
) -> TextLayout:
    """Runs one layout pass and re-centers it on its measured bounds."""
    if vertical:
        layout = layout_vertical(
            text, font_px, line_height, box_width, box_height, measure_char, letter_spacing
        )
    else:
        layout = layout_horizontal(
            text,
            font_px,
            line_height,
            box_width,
            box_height,
            measure_line,
            letter_spacing,
            measure_char,
        )
    return measure_and_center(layout, box_width / 2.0, box_height / 2.0)

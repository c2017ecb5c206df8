from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from utils.exceptions import ValidationError

MASK_SHAPES = ("rectangle", "rounded", "ellipse")

DEFAULT_MASK_SHAPE = "ellipse"
DEFAULT_MASK_CORNER_RADIUS = 15.0
DEFAULT_MASK_FEATHER = 10.0

GOOGLE_FONTS_CSS_URL = (
    "https://fonts.googleapis.com/css2"
    "?family=Noto+Sans+SC:wght@400;700;900"
    "&family=Noto+Serif+SC:wght@400;700"
    "&family=Zhi+Mang+Xing"
    "&family=Ma+Shan+Zheng"
    "&family=Liu+Jian+Mao+Cao"
    "&family=Long+Cang"
    "&family=ZCOOL+KuaiLe"
    "&family=ZCOOL+XiaoWei"
    "&display=swap"
)


class ExportMethod(str, Enum):
    """Render strategy used for export."""

    CANVAS = "canvas"  # measured layout, painted with Pillow
    SCREENSHOT = "screenshot"  # full-fidelity capture on a skia surface


@dataclass
class ExportOptions:
    """Export options consumed from the editor settings."""

    default_mask_shape: Optional[str] = None
    default_mask_corner_radius: Optional[float] = None
    default_mask_feather: Optional[float] = None
    export_method: ExportMethod = ExportMethod.CANVAS

    def __post_init__(self):
        if not isinstance(self.export_method, ExportMethod):
            try:
                self.export_method = ExportMethod(self.export_method)
            except ValueError as e:
                raise ValidationError(
                    f"Unknown export method '{self.export_method}'"
                ) from e

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ExportOptions":
        """Builds options from editor (camelCase) or snake_case keys."""
        data = data or {}

        def pick(camel: str, snake: str):
            if camel in data:
                return data[camel]
            return data.get(snake)

        method = pick("exportMethod", "export_method")
        return cls(
            default_mask_shape=pick("defaultMaskShape", "default_mask_shape"),
            default_mask_corner_radius=pick(
                "defaultMaskCornerRadius", "default_mask_corner_radius"
            ),
            default_mask_feather=pick("defaultMaskFeather", "default_mask_feather"),
            export_method=method if method is not None else ExportMethod.CANVAS,
        )


@dataclass
class FontConfig:
    """Configuration for remote font resolution."""

    stylesheet_url: str = GOOGLE_FONTS_CSS_URL
    # A plain user agent makes Google Fonts serve whole TrueType files instead
    # of unicode-range WOFF2 subsets.
    user_agent: str = "Mozilla/5.0 (compatible; MangaTypesetter/1.0)"
    timeout: float = 30.0
    chunk_size: int = 0x8000 * 3


@dataclass
class OutputConfig:
    """Configuration for encoding exported images."""

    png_compression: int = 6
    jpeg_quality: int = 90
    archive_name: str = "manga_typeset_result.zip"
    archive_folder: str = "typeset_manga"


@dataclass
class TypesetConfig:
    """Main configuration for the typesetting export engine."""

    export: ExportOptions = field(default_factory=ExportOptions)
    fonts: FontConfig = field(default_factory=FontConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    verbose: bool = False

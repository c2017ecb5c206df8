import base64
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

# A raster source is a referenceable handle (filesystem path) or an embedded
# encoded payload (raw bytes, base64 text or a data URL).
ImageSource = Union[str, bytes, Path]

TRANSPARENT = "transparent"
STAGE_STATUSES = ("idle", "processing", "done", "error")


def clamp(value: float, minimum: float, maximum: float) -> float:
    return min(max(value, minimum), maximum)


@dataclass(frozen=True)
class Rect:
    """Center-based rectangle in percentages of the image size."""

    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class Bubble:
    """User-placed styled text region with a background mask shape."""

    id: str
    x: float
    y: float
    width: float
    height: float
    text: str = ""
    is_vertical: bool = True
    font_family: str = "noto"
    font_size: float = 1.0
    color: str = "#000000"
    stroke_color: Optional[str] = "#ffffff"
    background_color: str = "#ffffff"
    rotation: float = 0.0
    mask_shape: Optional[str] = None
    mask_corner_radius: Optional[float] = None
    mask_feather: Optional[float] = None
    auto_detect_background: Optional[bool] = None
    letter_spacing: Optional[float] = None  # em
    line_height: Optional[float] = None  # multiple of the font size

    def __post_init__(self):
        object.__setattr__(self, "width", clamp(float(self.width), 0.0, 100.0))
        object.__setattr__(self, "height", clamp(float(self.height), 0.0, 100.0))

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bubble":
        return cls(
            id=str(data["id"]),
            x=float(data["x"]),
            y=float(data["y"]),
            width=float(data["width"]),
            height=float(data["height"]),
            text=data.get("text", ""),
            is_vertical=bool(data.get("isVertical", True)),
            font_family=data.get("fontFamily", "noto"),
            font_size=float(data.get("fontSize", 1.0)),
            color=data.get("color", "#000000"),
            stroke_color=data.get("strokeColor"),
            background_color=data.get("backgroundColor", "#ffffff"),
            rotation=float(data.get("rotation", 0.0)),
            mask_shape=data.get("maskShape"),
            mask_corner_radius=data.get("maskCornerRadius"),
            mask_feather=data.get("maskFeather"),
            auto_detect_background=data.get("autoDetectBackground"),
            letter_spacing=data.get("letterSpacing"),
            line_height=data.get("lineHeight"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "text": self.text,
            "isVertical": self.is_vertical,
            "fontFamily": self.font_family,
            "fontSize": self.font_size,
            "color": self.color,
            "strokeColor": self.stroke_color,
            "backgroundColor": self.background_color,
            "rotation": self.rotation,
            "maskShape": self.mask_shape,
            "maskCornerRadius": self.mask_corner_radius,
            "maskFeather": self.mask_feather,
            "autoDetectBackground": self.auto_detect_background,
            "letterSpacing": self.letter_spacing,
            "lineHeight": self.line_height,
        }
        return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class MaskRegion:
    """Rectangle marking content to remove, tagged inpaint or fill."""

    id: str
    x: float
    y: float
    width: float
    height: float
    method: Optional[str] = None  # "inpaint" | "fill"
    is_cleaned: bool = False
    fill_color: Optional[str] = None

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MaskRegion":
        return cls(
            id=str(data["id"]),
            x=float(data["x"]),
            y=float(data["y"]),
            width=float(data["width"]),
            height=float(data["height"]),
            method=data.get("method"),
            is_cleaned=bool(data.get("isCleaned", False)),
            fill_color=data.get("fillColor"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "method": self.method,
            "isCleaned": self.is_cleaned,
            "fillColor": self.fill_color,
        }
        return {k: v for k, v in data.items() if v is not None}


def _pick_source(data: Dict[str, Any], *keys: str) -> Optional[ImageSource]:
    for key in keys:
        value = data.get(key)
        if value:
            return value
    return None


@dataclass(frozen=True)
class ImageRecord:
    """Per-image editing state, exchanged by whole-record replacement."""

    id: str
    name: str
    width: int
    height: int
    source: ImageSource
    original_source: Optional[ImageSource] = None
    cleaned_source: Optional[ImageSource] = None
    bubbles: Tuple[Bubble, ...] = field(default_factory=tuple)
    mask_regions: Tuple[MaskRegion, ...] = field(default_factory=tuple)
    status: str = "idle"
    detection_status: str = "idle"
    inpainting_status: str = "idle"
    error_message: Optional[str] = None
    skipped: bool = False

    def __post_init__(self):
        object.__setattr__(self, "bubbles", tuple(self.bubbles))
        object.__setattr__(self, "mask_regions", tuple(self.mask_regions))

    @property
    def background_source(self) -> ImageSource:
        """Raster used under the overlays: cleaned, then original, then current."""
        return self.cleaned_source or self.original_source or self.source

    @property
    def pristine_source(self) -> ImageSource:
        return self.original_source or self.source

    def find_region(self, region_id: str) -> Optional[MaskRegion]:
        for region in self.mask_regions:
            if region.id == region_id:
                return region
        return None

    def with_changes(self, **changes) -> "ImageRecord":
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageRecord":
        return cls(
            id=str(data["id"]),
            name=data.get("name", str(data["id"])),
            width=int(data["width"]),
            height=int(data["height"]),
            source=_pick_source(data, "source", "url", "base64"),
            original_source=_pick_source(
                data, "originalSource", "originalUrl", "originalBase64"
            ),
            cleaned_source=_pick_source(
                data, "cleanedSource", "inpaintedUrl", "inpaintedBase64"
            ),
            bubbles=tuple(Bubble.from_dict(b) for b in data.get("bubbles") or []),
            mask_regions=tuple(
                MaskRegion.from_dict(m) for m in data.get("maskRegions") or []
            ),
            status=data.get("status", "idle"),
            detection_status=data.get("detectionStatus", "idle"),
            inpainting_status=data.get("inpaintingStatus", "idle"),
            error_message=data.get("errorMessage"),
            skipped=bool(data.get("skipped", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        def as_json(src):
            if src is None:
                return None
            if isinstance(src, bytes):
                return base64.b64encode(src).decode("ascii")
            return str(src)

        data = {
            "id": self.id,
            "name": self.name,
            "width": self.width,
            "height": self.height,
            "source": as_json(self.source),
            "originalSource": as_json(self.original_source),
            "cleanedSource": as_json(self.cleaned_source),
            "bubbles": [b.to_dict() for b in self.bubbles],
            "maskRegions": [m.to_dict() for m in self.mask_regions],
            "status": self.status,
            "detectionStatus": self.detection_status,
            "inpaintingStatus": self.inpainting_status,
            "errorMessage": self.error_message,
            "skipped": self.skipped,
        }
        return {k: v for k, v in data.items() if v is not None}

import base64
import hashlib
import io
import re
import time
from collections import OrderedDict
from dataclasses import dataclass
from functools import cached_property
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Set

import requests
from fontTools.ttLib import TTFont

from typesetter.config import FontConfig
from utils.exceptions import FontError
from utils.logging import log_message

FONT_FACE_PATTERN = re.compile(r"@font-face\s*\{[^}]*\}", re.IGNORECASE)
FAMILY_PATTERN = re.compile(r"font-family:\s*['\"]?([^;'\"]+?)['\"]?\s*;", re.IGNORECASE)
WEIGHT_PATTERN = re.compile(r"font-weight:\s*(\d+)", re.IGNORECASE)
STYLE_PATTERN = re.compile(r"font-style:\s*([a-z]+)", re.IGNORECASE)
URL_PATTERN = re.compile(r"url\(\s*['\"]?([^'\")\s]+)['\"]?\s*\)")
DATA_URL_PATTERN = re.compile(r"^data:([^;,]+);base64,(.*)$", re.DOTALL)

FONT_MIME_TYPES = {
    "ttf": "font/ttf",
    "otf": "font/otf",
    "woff": "font/woff",
    "woff2": "font/woff2",
}


# --- LRU Cache Implementation ---
class LRUCache:
    """Simple LRU cache implementation to prevent unbounded memory growth."""

    def __init__(self, max_size: int = 100):
        self.max_size = max_size
        self.cache = OrderedDict()

    def get(self, key):
        if key in self.cache:
            value = self.cache.pop(key)
            self.cache[key] = value
            return value
        return None

    def put(self, key, value):
        if key in self.cache:
            self.cache.pop(key)
        elif len(self.cache) >= self.max_size:
            self.cache.popitem(last=False)
        self.cache[key] = value

    def clear(self):
        self.cache.clear()

    def __contains__(self, key):
        return key in self.cache

    def __len__(self):
        return len(self.cache)


@dataclass(frozen=True)
class FontFace:
    """A decoded font resource from one @font-face block."""

    family: str
    weight: int
    style: str
    data: bytes  # plain sfnt (TrueType/OpenType) data
    codepoints: FrozenSet[int]

    @cached_property
    def key(self) -> str:
        return hashlib.blake2b(self.data, digest_size=8).hexdigest()

    def has_glyph(self, char: str) -> bool:
        return ord(char) in self.codepoints


def parse_stylesheet(css: str) -> Dict[str, List[str]]:
    """Groups the @font-face blocks of a style sheet by font family."""
    families: Dict[str, List[str]] = {}
    for match in FONT_FACE_PATTERN.finditer(css):
        block = match.group(0)
        family_match = FAMILY_PATTERN.search(block)
        if not family_match:
            continue
        families.setdefault(family_match.group(1).strip(), []).append(block)
    return families


def iter_base64_chunks(data: bytes, chunk_size: int) -> Iterator[str]:
    """Yields the base64 text of data in pieces that concatenate cleanly."""
    # Chunks must be a multiple of 3 bytes so no padding appears mid-stream
    chunk_size = max(3, chunk_size - chunk_size % 3)
    for start in range(0, len(data), chunk_size):
        yield base64.b64encode(data[start : start + chunk_size]).decode("ascii")


def encode_base64_chunked(data: bytes, chunk_size: int) -> str:
    parts = []
    for part in iter_base64_chunks(data, chunk_size):
        parts.append(part)
        time.sleep(0)  # yield between chunks
    return "".join(parts)


def _font_mime_type(url: str, content_type: Optional[str]) -> str:
    if content_type and content_type.startswith("font/"):
        return content_type.split(";")[0].strip()
    extension = url.split("?")[0].rsplit(".", 1)[-1].lower()
    return FONT_MIME_TYPES.get(extension, "font/ttf")


def load_font_face(data: bytes, family: str, weight: int = 400, style: str = "normal") -> FontFace:
    """
    Normalizes font data to sfnt and reads its character coverage.

    WOFF and WOFF2 payloads are unpacked with fontTools since neither Skia nor
    FreeType builds reliably accept them.

    Raises:
        FontError: If the data is not a readable font
    """
    try:
        font = TTFont(io.BytesIO(data), fontNumber=0)
        codepoints = frozenset((font.getBestCmap() or {}).keys())
        if font.flavor:
            font.flavor = None
            buffer = io.BytesIO()
            font.save(buffer)
            data = buffer.getvalue()
    except Exception as e:
        log_message(f"Could not decode font data for '{family}': {e}", always_print=True)
        raise FontError(f"Failed to decode font data for family '{family}'") from e
    return FontFace(family=family, weight=weight, style=style, data=data, codepoints=codepoints)


class FontResourceCache:
    """
    Resolves web font families to self-contained style rules and font faces.

    The remote style sheet is fetched and parsed once. Every font resource it
    references is fetched once and kept as a data URL, so repeated exports
    never touch the network again. Network failures degrade to an empty or
    partial font set instead of failing the render.
    """

    def __init__(
        self,
        config: Optional[FontConfig] = None,
        session: Optional[requests.Session] = None,
        verbose: bool = False,
    ):
        self.config = config or FontConfig()
        self.verbose = verbose
        self._session = session
        self._families: Optional[Dict[str, List[str]]] = None
        self._embedded: Dict[str, str] = {}
        # URLs whose fetch failed; not attempted again until clear()
        self._failed: Set[str] = set()
        self._faces = LRUCache(max_size=50)

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _fetch(self, url: str) -> requests.Response:
        response = self.session.get(
            url,
            headers={"User-Agent": self.config.user_agent},
            timeout=self.config.timeout,
        )
        response.raise_for_status()
        return response

    def load_stylesheet(self) -> Dict[str, List[str]]:
        """
        Returns the family -> @font-face blocks mapping, fetching it once.

        A failed fetch is remembered as an empty mapping until clear().
        """
        if self._families is not None:
            return self._families

        try:
            response = self._fetch(self.config.stylesheet_url)
        except requests.RequestException as e:
            log_message(
                f"Font style sheet unavailable, using fallback fonts: {e}",
                always_print=True,
            )
            self._families = {}
            return self._families

        self._families = parse_stylesheet(response.text)
        log_message(
            f"Loaded font style sheet: {len(self._families)} families",
            verbose=self.verbose,
        )
        return self._families

    def embed_resource(self, url: str) -> Optional[str]:
        """Returns the resource at url as a data URL, or None if it cannot be fetched."""
        cached = self._embedded.get(url)
        if cached is not None:
            return cached
        if url in self._failed:
            return None

        try:
            response = self._fetch(url)
        except requests.RequestException as e:
            log_message(f"Font resource fetch failed for {url}: {e}", always_print=True)
            self._failed.add(url)
            return None

        mime_type = _font_mime_type(url, response.headers.get("Content-Type"))
        encoded = encode_base64_chunked(response.content, self.config.chunk_size)
        data_url = f"data:{mime_type};base64,{encoded}"
        self._embedded[url] = data_url
        log_message(
            f"Embedded font resource ({len(response.content)} bytes)",
            verbose=self.verbose,
        )
        return data_url

    def get_embedded_css(self, families: Iterable[str]) -> str:
        """
        Builds style rules for the given families with every resource inlined.

        Args:
            families: CSS family names, e.g. "Noto Sans SC"

        Returns:
            str: @font-face blocks with data URLs, or "" if none match
        """
        stylesheet = self.load_stylesheet()
        blocks: List[str] = []
        for family in dict.fromkeys(families):
            blocks.extend(stylesheet.get(family, []))
        if not blocks:
            return ""

        css = "\n".join(blocks)
        for url in dict.fromkeys(URL_PATTERN.findall(css)):
            if url.startswith("data:"):
                continue
            data_url = self.embed_resource(url)
            if data_url is not None:
                css = css.replace(url, data_url)
        return css

    def resolve_faces(self, families: Iterable[str]) -> Dict[str, List[FontFace]]:
        """Decodes the embedded style rules of the given families into font faces."""
        return self.faces_from_css(self.get_embedded_css(families))

    def faces_from_css(self, css: str) -> Dict[str, List[FontFace]]:
        """
        Decodes every embedded @font-face block of a style text.

        Blocks still pointing at remote URLs (failed fetches) are skipped.
        """
        faces: Dict[str, List[FontFace]] = {}
        for family, blocks in parse_stylesheet(css).items():
            for block in blocks:
                url_match = URL_PATTERN.search(block)
                data_match = DATA_URL_PATTERN.match(url_match.group(1)) if url_match else None
                if not data_match:
                    continue

                weight_match = WEIGHT_PATTERN.search(block)
                style_match = STYLE_PATTERN.search(block)
                weight = int(weight_match.group(1)) if weight_match else 400
                style = style_match.group(1).lower() if style_match else "normal"

                cache_key = (family, weight, style, hash(data_match.group(2)))
                face = self._faces.get(cache_key)
                if face is None:
                    try:
                        face = load_font_face(
                            base64.b64decode(data_match.group(2)), family, weight, style
                        )
                    except FontError:
                        continue
                    self._faces.put(cache_key, face)
                faces.setdefault(family, []).append(face)
        return faces

    def clear(self) -> None:
        self._families = None
        self._embedded.clear()
        self._failed.clear()
        self._faces.clear()


def select_faces(faces: List[FontFace], weight: int) -> List[FontFace]:
    """Orders faces of one family by closeness to the requested weight."""
    return sorted(faces, key=lambda face: (abs(face.weight - weight), face.style != "normal"))


_font_cache: Optional[FontResourceCache] = None


def get_font_cache(config: Optional[FontConfig] = None, verbose: bool = False) -> FontResourceCache:
    """Get the process-wide font resource cache, creating it on first use."""
    global _font_cache
    if _font_cache is None:
        _font_cache = FontResourceCache(config=config, verbose=verbose)
    return _font_cache


def reset_font_cache() -> None:
    """Drops the process-wide font cache and everything it holds."""
    global _font_cache
    if _font_cache is not None:
        _font_cache.clear()
    _font_cache = None

"""
Layout engine for mind map documents.

Converts a document tree into a scene graph using a left-to-right tree
layout:
- Each node box is sized from its text (measured by an injected TextMeasurer)
- Children sit one column to the right of their parent, stacked vertically
  and centred on the parent's vertical centre
- Collapsed nodes are laid out as leaves; their subtrees are skipped

Two measurers are provided: PillowTextMeasurer reads real glyph advances from
FreeType fonts, and HeuristicTextMeasurer estimates widths from character
classes when a deterministic result matters more than accuracy.

The engine keeps no state between calls: the same inputs always produce the
same scene graph.
"""

import re
from collections.abc import Iterable
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from PIL import ImageFont

from .models import (
    DEFAULT_FONT,
    DEFAULT_LAYOUT,
    Bounds,
    BoxSize,
    Connector,
    FontSpec,
    LayoutConfig,
    Node,
    PositionedNode,
    SceneGraph,
    TextExtent,
)


@runtime_checkable
class TextMeasurer(Protocol):
    """Protocol for text measurement supplied by the host."""

    def measure_text(self, text: str, font: FontSpec) -> TextExtent:
        """Return the rendered size of `text` in `font`."""
        ...


class HeuristicTextMeasurer:
    """Deterministic width estimate from per-character advance factors.

    Used when the host has no real font metrics available.
    """

    NARROW = "il.,:;|!'`"
    WIDE = "mwMW@#%"

    def measure_text(self, text: str, font: FontSpec) -> TextExtent:
        size = font.size
        width = 0.0
        for ch in text:
            if ch.isspace():
                width += size * 0.33
            elif ch in self.NARROW:
                width += size * 0.3
            elif ch in self.WIDE:
                width += size * 0.9
            else:
                width += size * 0.6
        if font.weight >= 600:
            width *= 1.05  # Bold glyphs are slightly wider
        return TextExtent(width=width, height=font.line_height)


DEFAULT_MEASURER = HeuristicTextMeasurer()

GENERIC_FONT_FALLBACKS = {
    "sans-serif": ["Helvetica", "Arial", "Liberation Sans", "DejaVu Sans"],
    "serif": ["Times New Roman", "Times", "Liberation Serif", "DejaVu Serif"],
    "monospace": ["Courier New", "Courier", "Liberation Mono", "DejaVu Sans Mono"],
}

FONT_DIRS = [
    Path("/System/Library/Fonts"),
    Path("/System/Library/Fonts/Supplemental"),
    Path("/Library/Fonts"),
    Path("~/Library/Fonts").expanduser(),
    Path("/usr/share/fonts"),
    Path("/usr/local/share/fonts"),
    Path("~/.local/share/fonts").expanduser(),
    Path("C:/Windows/Fonts"),
]


def _normalize(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "", name.lower())


class PillowTextMeasurer:
    """Measures text with FreeType fonts loaded through Pillow.

    The CSS family list in `FontSpec.family` is tried in order, generic
    families map to common installed fonts, and weights of 600 and above
    prefer bold faces. When no font file can be loaded, Pillow's bundled
    default font is used at the requested size.
    """

    def __init__(self, font_dirs: Optional[Iterable[Path]] = None) -> None:
        self._font_dirs = list(font_dirs) if font_dirs is not None else FONT_DIRS
        self._font_files: Optional[dict[str, Path]] = None
        self._font_cache: dict[tuple[str, int, bool], ImageFont.ImageFont | ImageFont.FreeTypeFont] = {}

    def measure_text(self, text: str, font: FontSpec) -> TextExtent:
        width = self.font(font).getlength(text)
        return TextExtent(width=float(width), height=font.line_height)

    def font(self, spec: FontSpec) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
        """Get the (cached) Pillow font for a font spec."""
        size = max(1, int(round(spec.size)))
        bold = spec.weight >= 600
        cache_key = (spec.family.lower(), size, bold)
        if cache_key in self._font_cache:
            return self._font_cache[cache_key]

        face = None
        for candidate in self.font_candidates(spec.family, bold):
            try:
                face = ImageFont.truetype(str(candidate), size)
                break
            except OSError:
                continue
        if face is None:
            face = ImageFont.load_default(size)

        self._font_cache[cache_key] = face
        return face

    def font_candidates(self, family: str, bold: bool) -> list[Path]:
        """Font files to try for a CSS family list, best match first."""
        names: list[str] = []
        for entry in family.split(","):
            name = entry.strip().strip("\"'")
            if name:
                names.extend(GENERIC_FONT_FALLBACKS.get(name.lower(), [name]))

        weight_suffixes = ("bold", "semibold", "") if bold else ("", "regular", "book")
        files = self._index_font_files()
        candidates: list[Path] = []
        for name in names:
            base = _normalize(name)
            for suffix in weight_suffixes:
                path = files.get(base + suffix)
                if path is not None and path not in candidates:
                    candidates.append(path)
        # Pillow also resolves bare file names against the system font directories
        candidates.append(Path("DejaVuSans-Bold.ttf" if bold else "DejaVuSans.ttf"))
        return candidates

    def _index_font_files(self) -> dict[str, Path]:
        if self._font_files is None:
            self._font_files = {}
            for directory in self._font_dirs:
                if not directory.is_dir():
                    continue
                for pattern in ("*.ttf", "*.otf", "*.ttc"):
                    for path in sorted(directory.rglob(pattern)):
                        self._font_files.setdefault(_normalize(path.stem), path)
        return self._font_files


CAPABILITIES = {
    "component": "LayoutEngine",
    "version": "1.0.0",
    "features": ["tree-layout", "text-measurement", "font-metrics", "collapse-support", "bezier-connectors"],
}


def measure(
    text: str,
    font: FontSpec = DEFAULT_FONT,
    config: LayoutConfig = DEFAULT_LAYOUT,
    measurer: Optional[TextMeasurer] = None,
) -> BoxSize:
    """
    Compute the box size for a node's text.

    Args:
        text: Node text
        font: Font and padding description
        config: Layout config providing the width clamp
        measurer: Text measurer (heuristic measurer if None)

    Returns:
        Box size: padded text width clamped to [min_text_width, max_text_width],
        height of one line plus vertical padding
    """
    measurer = measurer or DEFAULT_MEASURER
    text_width = measurer.measure_text(text, font).width
    width = min(max(text_width + font.padding_x * 2, config.min_text_width), config.max_text_width)
    height = font.line_height + font.padding_y * 2
    return BoxSize(width=width, height=height)


def layout(
    document: Node,
    config: LayoutConfig = DEFAULT_LAYOUT,
    font: FontSpec = DEFAULT_FONT,
    collapsed_ids: Iterable[str] = frozenset(),
    measurer: Optional[TextMeasurer] = None,
) -> SceneGraph:
    """
    Lay out a document tree, root at the origin, growing to the right.

    Args:
        document: Root node of the tree
        config: Spacing and width limits
        font: Font and padding description
        collapsed_ids: Node IDs whose subtrees are hidden
        measurer: Text measurer (heuristic measurer if None)

    Returns:
        SceneGraph with nodes in pre-order, one connector per visible
        parent/child pair, and the tight bounding box of all nodes
    """
    collapsed = frozenset(collapsed_ids)
    measurer = measurer or DEFAULT_MEASURER
    nodes: list[PositionedNode] = []
    connectors: list[Connector] = []

    def size_of(node: Node) -> BoxSize:
        return measure(node.text, font, config, measurer)

    def place(node: Node, x: float, y: float, size: BoxSize, depth: int) -> None:
        is_collapsed = node.id in collapsed
        nodes.append(PositionedNode(
            id=node.id,
            x=x,
            y=y,
            width=size.width,
            height=size.height,
            depth=depth,
            is_collapsed=is_collapsed,
            has_notes=node.has_notes,
            has_children=node.has_children,
            text=node.text,
            class_tag=node.class_tag,
        ))

        if not node.children or is_collapsed:
            return

        child_sizes = [size_of(child) for child in node.children]
        block_height = (
            sum(s.height for s in child_sizes)
            + config.spacing.vertical * (len(child_sizes) - 1)
        )
        child_x = x + size.width + config.spacing.horizontal
        child_y = y + size.height / 2 - block_height / 2

        for child, child_size in zip(node.children, child_sizes):
            place(child, child_x, child_y, child_size, depth + 1)
            connectors.append(Connector(from_id=node.id, to_id=child.id))
            child_y += child_size.height + config.spacing.vertical

    place(document, 0.0, 0.0, size_of(document), 0)

    return SceneGraph(
        nodes=tuple(nodes),
        connectors=tuple(connectors),
        bounds=Bounds(
            min_x=min(n.x for n in nodes),
            min_y=min(n.y for n in nodes),
            max_x=max(n.right() for n in nodes),
            max_y=max(n.bottom() for n in nodes),
        ),
    )


def toggle_collapsed(collapsed_ids: Iterable[str], node_id: str) -> frozenset[str]:
    """Return a new collapsed-set with `node_id` added or removed."""
    collapsed = set(collapsed_ids)
    if node_id in collapsed:
        collapsed.discard(node_id)
    else:
        collapsed.add(node_id)
    return frozenset(collapsed)

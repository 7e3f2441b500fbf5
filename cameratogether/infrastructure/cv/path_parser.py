# cameratogether/infrastructure/cv/path_parser.py
"""Frame geometry shared by the collage compositor, the viewfinder guide and
template previews.

Template frames use a small SVG path subset: ``M``, ``L``, ``H``, ``V`` and
``Z`` with absolute coordinates. Anything else fails closed.
"""
import logging
import re
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np
from svgpathtools import parse_path

from cameratogether.domain.errors import InvalidTemplate

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

_NUMBER = r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?"
_TOKEN_RE = re.compile(rf"[MLHVZ]|{_NUMBER}|[\s,]+")
_SEPARATORS_RE = re.compile(r"[\s,]+")


@dataclass(frozen=True)
class BoundingBox:
    x: float
    y: float
    width: float
    height: float

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height


@dataclass(frozen=True)
class ViewBox:
    min_x: float
    min_y: float
    width: float
    height: float

    def scale_for(self, size: Tuple[int, int]) -> Tuple[float, float]:
        return size[0] / self.width, size[1] / self.height

    def to_canvas(self, points: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
        sx, sy = self.scale_for(size)
        return (points - np.array([self.min_x, self.min_y])) * np.array([sx, sy])


@dataclass(frozen=True)
class FrameShape:
    """Polygon outline(s) of one frame plus their bounding box, in view-box units."""

    subpaths: Tuple[Tuple[Point, ...], ...] = ()
    bbox: BoundingBox = BoundingBox(0.0, 0.0, 0.0, 0.0)

    @property
    def is_empty(self) -> bool:
        return not any(len(sub) >= 2 for sub in self.subpaths)

    @property
    def points(self) -> List[Point]:
        return [p for sub in self.subpaths for p in sub]

    def polygons_on(self, view_box: ViewBox, size: Tuple[int, int]) -> List[List[Point]]:
        """Subpaths scaled to pixel coordinates of a ``size`` canvas."""
        polygons = []
        for sub in self.subpaths:
            if len(sub) < 2:
                continue
            scaled = view_box.to_canvas(np.asarray(sub, dtype=float), size)
            polygons.append([(float(x), float(y)) for x, y in scaled])
        return polygons

    def bbox_on(self, view_box: ViewBox, size: Tuple[int, int]) -> BoundingBox:
        corners = np.array([[self.bbox.x, self.bbox.y], [self.bbox.max_x, self.bbox.max_y]])
        (x0, y0), (x1, y1) = view_box.to_canvas(corners, size)
        return BoundingBox(float(x0), float(y0), float(x1 - x0), float(y1 - y0))


EMPTY_SHAPE = FrameShape()


def parse_view_box(text: str) -> ViewBox:
    parts = [p for p in _SEPARATORS_RE.split((text or "").strip()) if p]
    if len(parts) != 4:
        raise InvalidTemplate(f"viewBox must have 4 numbers, got {text!r}")
    try:
        min_x, min_y, width, height = (float(p) for p in parts)
    except ValueError as e:
        raise InvalidTemplate(f"viewBox is not numeric: {text!r}") from e
    if width <= 0 or height <= 0:
        raise InvalidTemplate(f"viewBox must have a positive size: {text!r}")
    return ViewBox(min_x, min_y, width, height)


def _split_subpaths(path) -> Tuple[Tuple[Point, ...], ...]:
    subpaths: List[List[Point]] = []
    previous_end = None
    for segment in path:
        if previous_end is None or segment.start != previous_end:
            subpaths.append([(segment.start.real, segment.start.imag)])
        subpaths[-1].append((segment.end.real, segment.end.imag))
        previous_end = segment.end
    for sub in subpaths:
        if len(sub) > 2 and sub[0] == sub[-1]:
            sub.pop()
    return tuple(tuple(sub) for sub in subpaths)


def _parse(text: str) -> FrameShape:
    # Lower-case commands are read as absolute, like the upper-case ones.
    normalized = (text or "").strip().upper()
    if not normalized:
        raise InvalidTemplate("Frame path is empty.")
    if _TOKEN_RE.sub("", normalized):
        raise InvalidTemplate(f"Frame path uses unsupported commands: {text!r}")
    if not normalized.startswith("M"):
        raise InvalidTemplate(f"Frame path must start with M: {text!r}")

    try:
        path = parse_path(normalized)
    except (ValueError, IndexError, TypeError) as e:
        raise InvalidTemplate(f"Malformed frame path: {text!r}") from e

    subpaths = _split_subpaths(path)
    if not subpaths:
        raise InvalidTemplate(f"Frame path has no segments: {text!r}")
    xmin, xmax, ymin, ymax = path.bbox()
    return FrameShape(subpaths=subpaths, bbox=BoundingBox(xmin, ymin, xmax - xmin, ymax - ymin))


def parse_frame_path(text: str, strict: bool = True) -> FrameShape:
    """Parse one frame path.

    With ``strict`` an unparsable path raises ``InvalidTemplate``; otherwise it
    degrades to an empty shape so the rest of the collage still renders.
    """
    try:
        return _parse(text)
    except InvalidTemplate as e:
        if strict:
            raise
        logger.warning(f"Ignoring frame geometry: {e.message}")
        return EMPTY_SHAPE


def parse_frames(paths: Sequence[str], strict: bool = True) -> List[FrameShape]:
    return [parse_frame_path(p, strict=strict) for p in paths]

# cameratogether/infrastructure/cv/image_process.py
import io
import math
from typing import List, Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageOps

from cameratogether.config.settings import settings
from cameratogether.domain.errors import InsufficientImages, InvalidTemplate
from cameratogether.domain.models import Template
from cameratogether.infrastructure.cv.path_parser import (
    BoundingBox,
    FrameShape,
    ViewBox,
    parse_frame_path,
    parse_frames,
    parse_view_box,
)

Color = Tuple[int, ...]
Polygon = List[Tuple[float, float]]

BACKGROUND = (255, 255, 255)
STROKE_COLOR = (255, 255, 255)
GUIDE_DIM = (0, 0, 0, 128)

def decode_image(data: bytes, max_side: Optional[int] = None) -> Optional[Image.Image]:
    if data is None: return None
    max_side = max_side or settings.MAX_DECODE_SIDE
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (OSError, ValueError):
        return None
    # Camera photos carry their orientation in EXIF
    img = ImageOps.exif_transpose(img).convert("RGB")
    w, h = img.size
    m = max(w, h)
    if m > max_side:
        scale = max_side / m
        img = img.resize((max(1, int(w * scale)), max(1, int(h * scale))), Image.Resampling.LANCZOS)
    return img

def encode_image(img: Image.Image, fmt: str = "jpeg", quality: int = 85) -> bytes:
    fmt = (fmt or "jpeg").lower()
    if fmt in ("jpg", "jpeg"):
        # JPEG can't have alpha
        if img.mode != "RGB":
            img = img.convert("RGB")
        save_kwargs = dict(format="JPEG", quality=quality, optimize=True)
    elif fmt == "png":
        save_kwargs = dict(format="PNG", optimize=True)
    else:
        save_kwargs = dict(format=fmt.upper())

    buf = io.BytesIO()
    img.save(buf, **save_kwargs)
    return buf.getvalue()

def cover_fit_rect(source_size: Tuple[int, int], box: BoundingBox) -> Tuple[float, float, float, float]:
    """Rectangle the source must be drawn into so it covers ``box`` without letterboxing.

    The overflow on one axis is centered and later removed by the frame clip.
    """
    source_w, source_h = source_size
    source_ratio = source_w / source_h
    target_ratio = box.width / box.height

    x, y, w, h = box.x, box.y, box.width, box.height
    if source_ratio > target_ratio:
        w = box.height * source_ratio
        x = box.x - (w - box.width) / 2
    else:
        h = box.width / source_ratio
        y = box.y - (h - box.height) / 2
    return x, y, w, h

def frame_mask(size: Tuple[int, int], polygons: Sequence[Polygon]) -> Image.Image:
    mask = Image.new("L", size, 0)
    draw = ImageDraw.Draw(mask)
    for polygon in polygons:
        if len(polygon) >= 3:
            draw.polygon(polygon, fill=255)
    return mask

def stroke_polygons(img: Image.Image, polygons: Sequence[Polygon], color: Color, width: int) -> None:
    if width <= 0:
        return
    draw = ImageDraw.Draw(img)
    for polygon in polygons:
        draw.line(list(polygon) + [polygon[0]], fill=color, width=width, joint="curve")

def paste_clipped(canvas: Image.Image, photo: Image.Image, polygons: Sequence[Polygon], box: BoundingBox) -> None:
    x, y, w, h = cover_fit_rect(photo.size, box)
    left, top = int(math.floor(x)), int(math.floor(y))
    width = max(1, int(math.ceil(x + w)) - left)
    height = max(1, int(math.ceil(y + h)) - top)

    resized = photo.convert("RGB").resize((width, height), Image.Resampling.LANCZOS)
    mask = frame_mask(canvas.size, polygons).crop((left, top, left + width, top + height))
    canvas.paste(resized, (left, top), mask)

def _template_geometry(template: Template, strict: bool) -> Tuple[ViewBox, List[FrameShape]]:
    view_box = parse_view_box(template.view_box)
    if len(template.frames) != template.photo_count:
        raise InvalidTemplate(
            f"Template '{template.name}' declares {template.photo_count} photos but has {len(template.frames)} frames."
        )
    return view_box, parse_frames([f.path for f in template.frames], strict=strict)

def generate_collage(
    template: Template,
    images: Sequence[Image.Image],
    canvas_size: Optional[int] = None,
    stroke_width: Optional[int] = None,
    stroke_color: Color = STROKE_COLOR,
    background: Color = BACKGROUND,
    strict: Optional[bool] = None,
) -> Image.Image:
    """Draw ``images[i]`` clipped to frame ``i`` of ``template`` on a square canvas."""
    if len(images) < template.photo_count:
        raise InsufficientImages(template.photo_count, len(images))
    canvas_size = canvas_size or settings.CANVAS_SIZE
    stroke_width = settings.FRAME_STROKE_WIDTH if stroke_width is None else stroke_width
    strict = settings.STRICT_FRAME_PATHS if strict is None else strict

    view_box, shapes = _template_geometry(template, strict)
    size = (canvas_size, canvas_size)
    canvas = Image.new("RGB", size, background)

    for photo, shape in zip(images, shapes):
        if shape.is_empty:
            continue
        box = shape.bbox_on(view_box, size)
        if box.width <= 0 or box.height <= 0:
            continue
        polygons = shape.polygons_on(view_box, size)
        paste_clipped(canvas, photo, polygons, box)
        stroke_polygons(canvas, polygons, stroke_color, stroke_width)

    return canvas

def render_frame_guide(template: Template, frame_index: int, size: Tuple[int, int], line_width: int = 3) -> Image.Image:
    """Viewfinder overlay: dimmed everywhere except the member's own frame."""
    if not 0 <= frame_index < len(template.frames):
        raise InvalidTemplate(f"Template '{template.name}' has no frame {frame_index}.")
    view_box = parse_view_box(template.view_box)
    shape = parse_frame_path(template.frames[frame_index].path, strict=settings.STRICT_FRAME_PATHS)

    overlay = Image.new("RGBA", size, GUIDE_DIM)
    polygons = shape.polygons_on(view_box, size)
    draw = ImageDraw.Draw(overlay)
    for polygon in polygons:
        if len(polygon) >= 3:
            draw.polygon(polygon, fill=(0, 0, 0, 0))
    stroke_polygons(overlay, polygons, STROKE_COLOR + (255,), line_width)
    return overlay

def render_template_preview(template: Template, size: int = 200, line_width: int = 2) -> Image.Image:
    # Previews only outline the frames; a bad path just leaves its frame out.
    view_box = parse_view_box(template.view_box)
    preview = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    for frame in template.frames:
        shape = parse_frame_path(frame.path, strict=False)
        stroke_polygons(preview, shape.polygons_on(view_box, (size, size)), STROKE_COLOR + (255,), line_width)
    return preview

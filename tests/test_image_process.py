import io

import pytest
from PIL import Image

from cameratogether.domain.collage_service import CapturedImages, compose_captured
from cameratogether.domain.errors import InsufficientImages, InvalidTemplate
from cameratogether.domain.models import Template, TemplateFrame
from cameratogether.infrastructure.cv.image_process import (
    cover_fit_rect,
    decode_image,
    encode_image,
    generate_collage,
    render_frame_guide,
    render_template_preview,
)
from cameratogether.infrastructure.cv.path_parser import BoundingBox


def _is_close(pixel, expected, tolerance=12):
    return all(abs(a - b) <= tolerance for a, b in zip(pixel, expected))


class TestCoverFit:
    def test_wide_source_overflows_horizontally(self):
        x, y, w, h = cover_fit_rect((400, 200), BoundingBox(0, 0, 100, 100))
        assert (w, h) == pytest.approx((200, 100))
        assert x == pytest.approx(-50)
        assert y == pytest.approx(0)

    def test_tall_source_overflows_vertically(self):
        x, y, w, h = cover_fit_rect((100, 300), BoundingBox(10, 10, 50, 50))
        assert (w, h) == pytest.approx((50, 150))
        assert x == pytest.approx(10)
        assert y == pytest.approx(10 - 50)

    def test_same_ratio_fits_exactly(self):
        assert cover_fit_rect((640, 480), BoundingBox(5, 5, 40, 30)) == pytest.approx((5, 5, 40, 30))


class TestGenerateCollage:
    def test_each_photo_lands_in_its_frame(self, two_frame_template, red_image, blue_image):
        collage = generate_collage(two_frame_template, [red_image, blue_image], canvas_size=100)
        assert collage.size == (100, 100)
        assert _is_close(collage.getpixel((25, 50)), (255, 0, 0))
        assert _is_close(collage.getpixel((75, 50)), (0, 0, 255))
        # gutter between frames keeps the background
        assert collage.getpixel((50, 50)) == (255, 255, 255)

    def test_too_few_images(self, two_frame_template, red_image):
        with pytest.raises(InsufficientImages) as exc:
            generate_collage(two_frame_template, [red_image], canvas_size=100)
        assert exc.value.required == 2
        assert exc.value.supplied == 1

    def test_frame_count_mismatch(self, red_image):
        template = Template(name="broken", photo_count=1, viewBox="0 0 1 1", frames=[])
        with pytest.raises(InvalidTemplate):
            generate_collage(template, [red_image], canvas_size=100)

    def test_bad_path_fails_in_strict_mode(self, red_image, blue_image):
        template = Template(
            name="curvy",
            photo_count=2,
            viewBox="0 0 1 1",
            frames=[
                TemplateFrame(id=1, path="M0 0 C0.2 0.2 0.4 0.4 0.5 0.5"),
                TemplateFrame(id=2, path="M0.51 0.02H0.98V0.98H0.51V0.02Z"),
            ],
        )
        with pytest.raises(InvalidTemplate):
            generate_collage(template, [red_image, blue_image], canvas_size=100, strict=True)

        collage = generate_collage(template, [red_image, blue_image], canvas_size=100, strict=False)
        assert collage.getpixel((25, 50)) == (255, 255, 255)
        assert _is_close(collage.getpixel((75, 50)), (0, 0, 255))

    def test_captured_images_compose_in_frame_order(self, two_frame_template, red_image, blue_image):
        captured = CapturedImages()
        captured.assign(1, blue_image)
        with pytest.raises(InsufficientImages):
            compose_captured(two_frame_template, captured, canvas_size=100)
        captured.assign(0, red_image)
        collage = compose_captured(two_frame_template, captured, canvas_size=100)
        assert _is_close(collage.getpixel((25, 50)), (255, 0, 0))
        assert len(captured) == 2


class TestOverlays:
    def test_frame_guide_cuts_out_own_frame(self, two_frame_template):
        guide = render_frame_guide(two_frame_template, 0, (100, 100))
        assert guide.mode == "RGBA"
        assert guide.getpixel((25, 50))[3] == 0
        assert guide.getpixel((75, 50)) == (0, 0, 0, 128)

    def test_frame_guide_unknown_frame(self, two_frame_template):
        with pytest.raises(InvalidTemplate):
            render_frame_guide(two_frame_template, 2, (100, 100))

    def test_preview_outlines_frames(self, two_frame_template):
        preview = render_template_preview(two_frame_template, size=200)
        assert preview.size == (200, 200)
        assert preview.getpixel((50, 100))[3] == 0
        assert preview.getpixel((4, 100))[3] == 255


class TestCodec:
    def test_decode_downscales_and_drops_alpha(self):
        buf = io.BytesIO()
        Image.new("RGBA", (400, 200), (0, 255, 0, 255)).save(buf, format="PNG")
        img = decode_image(buf.getvalue(), max_side=100)
        assert img.mode == "RGB"
        assert img.size == (100, 50)

    def test_decode_garbage_returns_none(self):
        assert decode_image(b"not an image") is None

    def test_encode_jpeg(self, red_image):
        data = encode_image(red_image, fmt="jpeg", quality=80)
        assert data[:2] == b"\xff\xd8"

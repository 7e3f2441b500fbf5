# cameratogether/domain/collage_service.py
import logging
import os, io, time, base64
from typing import Dict, List, Optional

import asyncio
import aiohttp
import aiofiles
import psutil
from concurrent.futures import ThreadPoolExecutor
from PIL import Image

from cameratogether.config.settings import settings
from cameratogether.delivery.schemas.body import CollageRequest
from cameratogether.domain.errors import InsufficientImages
from cameratogether.domain.models import Template
from cameratogether.infrastructure.cv import image_process

# --- LOGGER SETUP ---
# Dedicated logger so collage timings don't mix with the uvicorn access log.
logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False


def _memory_mb() -> float:
    return psutil.Process(os.getpid()).memory_info().rss / 1024 / 1024


class CapturedImages:
    """Photos of the current session, one per frame index.

    Held only until the collage is produced or the session resets.
    """

    def __init__(self):
        self._images: Dict[int, Image.Image] = {}

    def __len__(self) -> int:
        return len(self._images)

    def __contains__(self, frame_index: int) -> bool:
        return frame_index in self._images

    def assign(self, frame_index: int, image: Image.Image) -> None:
        if frame_index < 0:
            raise ValueError(f"Frame index must be >= 0, got {frame_index}")
        previous = self._images.get(frame_index)
        if previous is not None and previous is not image:
            previous.close()
        self._images[frame_index] = image

    def ordered(self, photo_count: int) -> List[Image.Image]:
        missing = [i for i in range(photo_count) if i not in self._images]
        if missing:
            raise InsufficientImages(photo_count, photo_count - len(missing))
        return [self._images[i] for i in range(photo_count)]

    def clear(self) -> None:
        for img in self._images.values():
            img.close()
        self._images.clear()


def compose_captured(template: Template, captured: CapturedImages, canvas_size: Optional[int] = None) -> Image.Image:
    return image_process.generate_collage(template, captured.ordered(template.photo_count), canvas_size=canvas_size)


class CollageService:
    """Builds collages from photo sources for the HTTP service."""

    def __init__(self, executor: ThreadPoolExecutor):
        self.executor = executor

    async def _load_image_bytes_async(self, src: str, session: aiohttp.ClientSession) -> Optional[bytes]:
        try:
            if src.startswith(("http://", "https://")):
                timeout = aiohttp.ClientTimeout(total=settings.REQUEST_TIMEOUT)
                async with session.get(src, timeout=timeout) as response:
                    response.raise_for_status()
                    return await response.read()
            if os.path.isfile(src):
                async with aiofiles.open(src, "rb") as f:
                    return await f.read()
            if src.startswith("data:image"):
                _, encoded = src.split(",", 1)
                return base64.b64decode(encoded + "===")
            return base64.b64decode(src + "===")
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
            logger.warning(f"Failed to load image from '{src[:70]}...': {type(e).__name__}")
            return None

    async def _load_many_bytes_async(self, sources: List[str]) -> List[Optional[bytes]]:
        async with aiohttp.ClientSession() as session:
            tasks = [self._load_image_bytes_async(src, session) for src in sources]
            return await asyncio.gather(*tasks)

    def _compose(self, template: Template, images_bytes: List[Optional[bytes]], canvas_size: Optional[int], fmt: str) -> bytes:
        images = [image_process.decode_image(b) for b in images_bytes]
        valid = [img for img in images if img is not None]
        try:
            if len(valid) < len(images) or len(valid) < template.photo_count:
                raise InsufficientImages(template.photo_count, len(valid))
            collage = image_process.generate_collage(template, valid, canvas_size=canvas_size)
            try:
                return image_process.encode_image(collage, fmt=fmt, quality=settings.JPEG_QUALITY)
            finally:
                collage.close()
        finally:
            for img in valid:
                img.close()

    async def process_collage(self, request: CollageRequest) -> bytes:
        run_id = request.id
        fmt = request.format or settings.SAVE_FORMAT
        logger.info(f"=== START COLLAGE Run ID: {run_id} ({request.template.name}, {len(request.images)} images) ===")
        logger.info(f"Memory usage at start: {_memory_mb():.1f}MB for Run ID: {run_id}")
        overall_start_time = time.perf_counter()

        # Stage 1: download
        images_bytes = await self._load_many_bytes_async(request.images)
        logger.info(f"Stage 1/2: Loaded {sum(b is not None for b in images_bytes)}/{len(images_bytes)} images for Run ID: {run_id}")

        # Stage 2: composite on the worker pool
        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(
            self.executor, self._compose, request.template, images_bytes, request.canvas_size, fmt
        )

        overall_duration = time.perf_counter() - overall_start_time
        logger.info(f"Memory after compositing: {_memory_mb():.1f}MB for Run ID: {run_id}")
        logger.info(f"=== COMPLETED COLLAGE Run ID: {run_id} in {overall_duration:.2f}s ({len(data)} bytes) ===")
        return data

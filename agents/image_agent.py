"""
Image Agent: Generates one still image per scene.

Strategies (RenderSettings.image_generation_method):
- placeholder: procedural gradient card drawn with Pillow (no external service)
- stockPhoto: Pexels photo matched on keywords extracted from the prompt
- aiGenerated: Replicate text-to-image model

A failed stockPhoto/aiGenerated scene falls back to the placeholder for that
scene only; the reason is kept on the artifact so the job can report it.
"""

import os
import re
import textwrap
import threading
import uuid
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, List

import requests
from PIL import Image, ImageDraw, ImageFont

from agents.pexels_agent import PexelsAgent
from schemas import Scene, RenderSettings, ImageArtifact, ImageGenerationMethod
from utils.constants import KEYWORD_COUNT, PLACEHOLDER_GRADIENTS, STOP_WORDS
from utils.errors import ImageGenerationFailed
from utils.logger import get_logger
logger = get_logger("image_agent")

_WORD_RE = re.compile(r"[^\W\d_]+", re.UNICODE)


def extract_keywords(text: str, limit: int = KEYWORD_COUNT) -> List[str]:
    """
    Top content words of a prompt.

    Lower-cased, stop words and words shorter than three letters dropped,
    ranked by frequency then first appearance.
    """
    words = [w for w in _WORD_RE.findall((text or "").lower()) if len(w) >= 3 and w not in STOP_WORDS]
    if not words:
        return []
    counts = Counter(words)
    first_seen = {}
    for i, w in enumerate(words):
        first_seen.setdefault(w, i)
    ranked = sorted(counts, key=lambda w: (-counts[w], first_seen[w]))
    return ranked[:limit]


def enhance_prompt(prompt: str, style: str) -> str:
    """Append style and vertical orientation hints for generative models."""
    prompt = prompt.strip().rstrip(".")
    return f"{prompt}, {style} style, vertical 9:16 composition, high detail"


def _load_font(size: int):
    for name in ("DejaVuSans-Bold.ttf", "arial.ttf"):
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


class ImageAgent:
    """
    Image generation agent.

    Per-scene work runs in a small thread pool; results come back in scene
    order regardless of completion order.
    """

    def __init__(
        self,
        pexels: Optional[PexelsAgent] = None,
        replicate_model: str = "black-forest-labs/flux-schnell",
        http_timeout: int = 30,
        max_workers: int = 4,
    ):
        """
        Initialize Image Agent.

        Args:
            pexels: Stock photo client (created lazily when needed)
            replicate_model: Replicate model reference for aiGenerated
            http_timeout: Download timeout in seconds
            max_workers: Parallel scenes
        """
        self.replicate_token = os.getenv("REPLICATE_API_TOKEN")
        self.replicate_model = replicate_model
        self.http_timeout = http_timeout
        self.max_workers = max(1, max_workers)
        self._pexels = pexels
        self._pexels_lock = threading.Lock()

        logger.info(
            f"[ImageAgent] Init - Replicate: {'YES' if self.replicate_token else 'NO'}, "
            f"Pexels: {'YES' if os.getenv('PEXELS_API_KEY') or pexels else 'NO'}"
        )

    @property
    def pexels(self) -> PexelsAgent:
        # shared by the worker threads so used-photo tracking stays in one place
        with self._pexels_lock:
            if self._pexels is None:
                self._pexels = PexelsAgent(timeout=self.http_timeout)
            return self._pexels

    # =========================================================================
    # Stage entry point
    # =========================================================================

    def synthesize(self, scenes: List[Scene], settings: RenderSettings, work_dir: str) -> List[ImageArtifact]:
        """
        Generate one image per scene.

        Returns:
            ImageArtifacts, index-aligned with `scenes`

        Raises:
            ImageGenerationFailed: a scene failed even with the placeholder
        """
        os.makedirs(work_dir, exist_ok=True)
        method = ImageGenerationMethod(settings.image_generation_method)
        logger.info(f"[ImageAgent] {len(scenes)} scenes via {method.value}")

        def _one(index: int) -> ImageArtifact:
            return self.generate_image(index, scenes[index], settings, work_dir)

        if self.max_workers == 1 or len(scenes) == 1:
            return [_one(i) for i in range(len(scenes))]

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(scenes))) as executor:
            # map() yields in submission order
            return list(executor.map(_one, range(len(scenes))))

    def generate_image(
        self,
        scene_index: int,
        scene: Scene,
        settings: RenderSettings,
        work_dir: str,
    ) -> ImageArtifact:
        """Generate the image for one scene, falling back to the placeholder."""
        method = ImageGenerationMethod(settings.image_generation_method)
        prompt = scene.prompt
        output_path = os.path.join(work_dir, f"image_{scene_index:03d}_{uuid.uuid4().hex[:8]}.png")
        fallback_reason = None

        if method != ImageGenerationMethod.PLACEHOLDER:
            try:
                if method == ImageGenerationMethod.STOCK_PHOTO:
                    self._generate_stock_photo(prompt, output_path)
                else:
                    self._call_replicate_api(prompt, settings, output_path)
                logger.info(f"  [Image] Scene {scene_index + 1}: {method.value} OK")
                return ImageArtifact(
                    scene_index=scene_index,
                    file_path=output_path,
                    source_prompt=prompt,
                    method=method,
                )
            except Exception as e:
                fallback_reason = f"{method.value}: {e}"
                logger.warning(f"  [Image] Scene {scene_index + 1}: {method.value} failed ({e}). Using placeholder.")
                if os.path.exists(output_path):
                    os.remove(output_path)

        try:
            self._generate_placeholder_image(scene_index, prompt, settings, output_path)
        except Exception as e:
            raise ImageGenerationFailed(scene_index, e) from e

        return ImageArtifact(
            scene_index=scene_index,
            file_path=output_path,
            source_prompt=prompt,
            method=ImageGenerationMethod.PLACEHOLDER,
            fallback_reason=fallback_reason,
        )

    # =========================================================================
    # Strategies
    # =========================================================================

    def _generate_stock_photo(self, prompt: str, output_path: str) -> str:
        keywords = extract_keywords(prompt)
        logger.info(f"     Stock keywords: {keywords}")
        return self.pexels.fetch_photo(keywords, output_path, orientation="portrait")

    def _call_replicate_api(self, prompt: str, settings: RenderSettings, output_path: str) -> str:
        """
        Generate with Replicate and download the result.

        Returns:
            Image path
        """
        if not self.replicate_token:
            raise RuntimeError("REPLICATE_API_TOKEN is not set")

        import replicate

        full_prompt = enhance_prompt(prompt, settings.image_style)
        logger.info(f"     Calling Replicate ({self.replicate_model}): {full_prompt[:60]}...")

        output = replicate.run(
            self.replicate_model,
            input={
                "prompt": full_prompt,
                "aspect_ratio": "9:16",
                "output_format": "png",
            },
        )

        # Handle different output formats
        if isinstance(output, list):
            if not output:
                raise RuntimeError("Replicate returned no images")
            output = output[0]
        if isinstance(output, str):
            image_url = output
        elif hasattr(output, 'url'):
            # FileOutput object from Replicate
            image_url = output.url
        else:
            image_url = str(output)

        img_response = requests.get(image_url, timeout=self.http_timeout)
        if img_response.status_code != 200:
            raise RuntimeError(f"Failed to download image: HTTP {img_response.status_code}")

        with open(output_path, "wb") as f:
            f.write(img_response.content)
        return output_path

    def _generate_placeholder_image(
        self,
        scene_index: int,
        prompt: str,
        settings: RenderSettings,
        output_path: str,
    ) -> str:
        """
        Procedural placeholder card (Pillow only).

        Gradient background picked by scene index, translucent circles, the
        scene number and the prompt keywords.
        """
        os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
        width, height = settings.width, settings.height
        top, bottom = PLACEHOLDER_GRADIENTS[scene_index % len(PLACEHOLDER_GRADIENTS)]

        img = Image.new("RGB", (width, height), color=top)
        draw = ImageDraw.Draw(img)
        for y in range(height):
            t = y / max(1, height - 1)
            color = tuple(int(top[c] + (bottom[c] - top[c]) * t) for c in range(3))
            draw.line([(0, y), (width, y)], fill=color)

        # decorative circles, placed from the scene index
        overlay = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        odraw = ImageDraw.Draw(overlay)
        unit = min(width, height)
        for k in range(4):
            r = int(unit * (0.12 + 0.06 * ((scene_index + k) % 3)))
            cx = int(width * ((0.15 + 0.27 * k + 0.11 * scene_index) % 1.0))
            cy = int(height * ((0.1 + 0.23 * k + 0.07 * scene_index) % 1.0))
            odraw.ellipse([cx - r, cy - r, cx + r, cy + r], fill=(255, 255, 255, 40))
        img = Image.alpha_composite(img.convert("RGBA"), overlay).convert("RGB")
        draw = ImageDraw.Draw(img)

        title_font = _load_font(max(24, unit // 9))
        text_font = _load_font(max(16, unit // 24))

        title = f"Scene {scene_index + 1}"
        self._draw_centered(draw, title, title_font, width, height // 3, fill="white")

        keywords = extract_keywords(prompt, limit=5)
        caption = " · ".join(keywords) if keywords else prompt
        lines = textwrap.wrap(caption, width=28)[:5]
        line_height = int(text_font.size * 1.4) if hasattr(text_font, "size") else 24
        y = height // 2
        for line in lines:
            self._draw_centered(draw, line, text_font, width, y, fill=(235, 235, 235))
            y += line_height

        img.save(output_path, format="PNG")
        return output_path

    @staticmethod
    def _draw_centered(draw: ImageDraw.ImageDraw, text: str, font, width: int, y: int, fill):
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
        x = (width - (right - left)) // 2
        draw.text((x, y - (bottom - top) // 2), text, font=font, fill=fill)

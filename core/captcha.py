"""
Captcha image generation.

Draws a random lowercase alphanumeric string, then distorts it with a
horizontal and a vertical wave and overlays a grid. Only the image and the
solution are produced here; storing and verifying challenges is the
moderation manager's job.
"""

import io
import math
import random
import secrets
from dataclasses import dataclass

from PIL import Image, ImageDraw, ImageFont


# Visually ambiguous glyphs (0/o, 1/l/i) are left out
ALPHABET = "abcdefghjkmnpqrstuvwxyz23456789"

# Glyphs are drawn with the bitmap font at 1/SCALE size, then enlarged
SCALE = 3


@dataclass
class CaptchaImage:
    """A generated captcha: the lowercase solution and its PNG image."""
    solution: str
    png: bytes


class CaptchaGenerator:
    """Generates distorted captcha images."""

    def __init__(self, length: int = 6, width: int = 180, height: int = 60):
        self.length = length
        self.width = width
        self.height = height
        self._rng = random.SystemRandom()
        self._font = ImageFont.load_default()

    def generate(self) -> CaptchaImage:
        solution = "".join(secrets.choice(ALPHABET) for _ in range(self.length))
        return CaptchaImage(solution=solution, png=self.render(solution))

    def render(self, text: str) -> bytes:
        """Render ``text`` as a distorted PNG image."""
        small = Image.new("L", (self.width // SCALE, self.height // SCALE), 255)
        draw = ImageDraw.Draw(small)
        step = small.width / (len(text) + 1)
        for i, char in enumerate(text):
            x = int(step * (i + 0.5)) + self._rng.randint(-1, 1)
            y = max(0, small.height // 4 + self._rng.randint(-2, 2))
            draw.text((x, y), char, fill=0, font=self._font)

        img = small.resize((self.width, self.height), Image.Resampling.BICUBIC)
        img = self._wave(img, amplitude=self.height / 12, period=self.height / 1.5, horizontal=True)
        img = self._wave(img, amplitude=self.height / 12, period=self.width / 3, horizontal=False)
        self._grid(img, cells=8)

        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()

    def _wave(self, img: Image.Image, amplitude: float, period: float, horizontal: bool) -> Image.Image:
        """Shift rows (horizontal) or columns (vertical) along a sine wave."""
        width, height = img.size
        phase = self._rng.uniform(0, 2 * math.pi)
        out = Image.new(img.mode, img.size, 255)

        if horizontal:
            for y in range(height):
                offset = int(amplitude * math.sin(2 * math.pi * y / period + phase))
                out.paste(img.crop((0, y, width, y + 1)), (offset, y))
        else:
            for x in range(width):
                offset = int(amplitude * math.sin(2 * math.pi * x / period + phase))
                out.paste(img.crop((x, 0, x + 1, height)), (x, offset))
        return out

    def _grid(self, img: Image.Image, cells: int) -> None:
        draw = ImageDraw.Draw(img)
        width, height = img.size
        for i in range(1, cells):
            x = width * i // cells
            y = height * i // cells
            draw.line([(x, 0), (x, height)], fill=170)
            draw.line([(0, y), (width, y)], fill=170)

"""Render printed digit glyphs as seed samples for augmentation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Sequence

import cv2
import numpy as np

from ..core.errors import InvalidArgument
from ..core.types import Array, Digit, Sample, SampleCollection
from .augmentation import AugmentationConfig, AugmentationGenerator

FONTS: Dict[str, int] = {
    "simplex": cv2.FONT_HERSHEY_SIMPLEX,
    "duplex": cv2.FONT_HERSHEY_DUPLEX,
    "complex": cv2.FONT_HERSHEY_COMPLEX,
    "triplex": cv2.FONT_HERSHEY_TRIPLEX,
    "plain": cv2.FONT_HERSHEY_PLAIN,
}

IMAGE_SIZE = 32


def render_digit(
    digit: int,
    *,
    font: str = "simplex",
    size: int = IMAGE_SIZE,
    thickness: int = 2,
    fill: float = 0.7,
) -> Array:
    """Draw ``digit`` centred on a ``size x size`` grid, ink = 1.0."""

    if not 0 <= int(digit) <= 9:
        raise InvalidArgument(f"digit must be in 0..9, got {digit}")
    if font not in FONTS:
        raise InvalidArgument(f"Unknown font {font!r}. Available fonts: {', '.join(sorted(FONTS))}")
    face = FONTS[font]
    text = str(int(digit))
    (_, base_h), _ = cv2.getTextSize(text, face, 1.0, thickness)
    scale = fill * size / max(base_h, 1)
    (tw, th), _ = cv2.getTextSize(text, face, scale, thickness)
    canvas = np.zeros((size, size), dtype=np.uint8)
    origin = ((size - tw) // 2, (size + th) // 2)
    cv2.putText(canvas, text, origin, face, scale, 255, thickness, lineType=cv2.LINE_AA)
    return canvas.astype(np.float64) / 255.0


def glyph_samples(
    digits: Iterable[int] = range(10),
    fonts: Sequence[str] = ("simplex",),
    *,
    size: int = IMAGE_SIZE,
    thickness: int = 2,
) -> SampleCollection:
    collection = SampleCollection()
    for font in fonts:
        for digit in digits:
            pixels = render_digit(digit, font=font, size=size, thickness=thickness)
            collection.append(Sample(pixels.reshape(-1), Digit(int(digit))))
    return collection


@dataclass(frozen=True)
class GlyphDataset:
    """Augmented training and holdout collections grown from rendered glyphs."""

    train: SampleCollection
    holdout: SampleCollection
    provenance: Dict[str, Any] = field(default_factory=dict)


def build_glyph_dataset(
    *,
    fonts: Sequence[str] = ("simplex",),
    variants: int = 10,
    holdout_variants: int = 2,
    seed: int = 0,
    size: int = IMAGE_SIZE,
    thickness: int = 2,
    include_base: bool = True,
    workers: int = 1,
    augmentation: AugmentationConfig | None = None,
) -> GlyphDataset:
    """Expand each rendered glyph into augmented train and holdout samples.

    The two splits use independent random streams derived from ``seed``.
    """

    bases = glyph_samples(fonts=fonts, size=size, thickness=thickness)
    train_rng, holdout_rng = np.random.default_rng(seed).spawn(2)
    train_gen = AugmentationGenerator(train_rng, augmentation, workers=workers)
    holdout_gen = AugmentationGenerator(holdout_rng, augmentation, workers=workers)

    train = SampleCollection()
    holdout = SampleCollection()
    for base in bases:
        if include_base:
            train.append(base)
        train.extend(train_gen.generate_series(base, variants))
        holdout.extend(holdout_gen.generate_series(base, holdout_variants))

    provenance = {
        "type": "glyphs",
        "fonts": list(fonts),
        "size": size,
        "thickness": thickness,
        "variants": variants,
        "holdout_variants": holdout_variants,
        "include_base": include_base,
        "seed": seed,
        "train_samples": len(train),
        "holdout_samples": len(holdout),
    }
    return GlyphDataset(train=train, holdout=holdout, provenance=provenance)


__all__ = ["FONTS", "GlyphDataset", "IMAGE_SIZE", "build_glyph_dataset", "glyph_samples", "render_digit"]

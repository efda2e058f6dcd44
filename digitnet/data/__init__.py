"""Sample sources and augmentation."""

from .augmentation import AugmentationConfig, AugmentationGenerator, AugmentationParams, Morphology
from .glyphs import GlyphDataset, build_glyph_dataset, glyph_samples, render_digit

__all__ = [
    "AugmentationConfig",
    "AugmentationGenerator",
    "AugmentationParams",
    "GlyphDataset",
    "Morphology",
    "build_glyph_dataset",
    "glyph_samples",
    "render_digit",
]

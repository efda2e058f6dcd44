"""Label-preserving geometric and photometric sample augmentation."""

from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from enum import Enum
from typing import List, Mapping

import cv2
import numpy as np

from ..core.errors import InvalidArgument, ShapeMismatch
from ..core.types import Array, Sample

_KERNEL = np.ones((3, 3), dtype=np.uint8)


class Morphology(str, Enum):
    NONE = "none"
    DILATE = "dilate"
    ERODE = "erode"


@dataclass(frozen=True)
class AugmentationConfig:
    """Ranges and probabilities for the random perturbations."""

    max_rotation: float = 15.0
    min_scale: float = 0.85
    max_scale: float = 1.15
    max_shift: float = 3.0
    dilate_below: float = 0.30
    erode_above: float = 0.85
    jitter_probability: float = 0.5
    jitter_pixel_probability: float = 0.05
    jitter_amplitude: float = 0.2

    def __post_init__(self) -> None:
        if self.max_rotation < 0 or self.max_shift < 0 or self.jitter_amplitude < 0:
            raise InvalidArgument("Rotation, shift and jitter ranges must be non-negative")
        if not 0 < self.min_scale <= self.max_scale:
            raise InvalidArgument(
                f"Scale range must satisfy 0 < min <= max, got {self.min_scale}..{self.max_scale}"
            )
        if not 0.0 <= self.dilate_below <= self.erode_above <= 1.0:
            raise InvalidArgument("Morphology thresholds must satisfy 0 <= dilate <= erode <= 1")
        for name in ("jitter_probability", "jitter_pixel_probability"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise InvalidArgument(f"{name} must lie in [0, 1]")

    @classmethod
    def from_mapping(cls, options: Mapping[str, object] | None) -> "AugmentationConfig":
        options = dict(options or {})
        unknown = set(options) - set(asdict(cls()))
        if unknown:
            raise InvalidArgument(f"Unknown augmentation options: {', '.join(sorted(unknown))}")
        return cls(**{key: float(value) for key, value in options.items()})  # type: ignore[arg-type]


@dataclass(frozen=True)
class AugmentationParams:
    """One draw of the random perturbation parameters."""

    angle: float = 0.0
    scale: float = 1.0
    shift_x: float = 0.0
    shift_y: float = 0.0
    morphology: Morphology = Morphology.NONE
    jitter: bool = False


def grid_side(length: int) -> int:
    """Side of the square grid holding ``length`` pixels."""

    side = math.isqrt(length)
    if side == 0 or side * side != length:
        raise ShapeMismatch(f"Input of length {length} is not a square image")
    return side


class AugmentationGenerator:
    """Produce perturbed copies of a labelled sample.

    Every variant is drawn from its own child random stream spawned from
    ``rng`` in index order, so the output for a given seed does not depend on
    ``workers``.
    """

    def __init__(
        self,
        rng: np.random.Generator | None = None,
        config: AugmentationConfig | None = None,
        *,
        workers: int = 1,
    ) -> None:
        if workers <= 0:
            raise InvalidArgument(f"workers must be positive, got {workers}")
        self.rng = rng if rng is not None else np.random.default_rng()
        self.config = config or AugmentationConfig()
        self.workers = workers

    def generate_series(self, base_sample: Sample, count: int) -> List[Sample]:
        if count < 0:
            raise InvalidArgument(f"count must be >= 0, got {count}")
        side = grid_side(base_sample.input.size)
        if count == 0:
            return []
        grid = base_sample.input.reshape(side, side).astype(np.float32)
        streams = self.rng.spawn(count)

        def _variant(stream: np.random.Generator) -> Sample:
            params = self.draw_parameters(stream)
            pixels = self.apply(grid, params, stream)
            return Sample(pixels.reshape(-1).astype(np.float64), base_sample.label)

        if self.workers == 1:
            return [_variant(stream) for stream in streams]
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            return list(pool.map(_variant, streams))

    def draw_parameters(self, rng: np.random.Generator) -> AugmentationParams:
        cfg = self.config
        angle = rng.uniform(-cfg.max_rotation, cfg.max_rotation)
        scale = rng.uniform(cfg.min_scale, cfg.max_scale)
        shift_x = rng.uniform(-cfg.max_shift, cfg.max_shift)
        shift_y = rng.uniform(-cfg.max_shift, cfg.max_shift)
        r = rng.random()
        if r < cfg.dilate_below:
            morphology = Morphology.DILATE
        elif r > cfg.erode_above:
            morphology = Morphology.ERODE
        else:
            morphology = Morphology.NONE
        jitter = bool(rng.random() < cfg.jitter_probability)
        return AugmentationParams(
            angle=float(angle),
            scale=float(scale),
            shift_x=float(shift_x),
            shift_y=float(shift_y),
            morphology=morphology,
            jitter=jitter,
        )

    def apply(
        self, grid: Array, params: AugmentationParams, rng: np.random.Generator
    ) -> Array:
        """Warp, reshape strokes, jitter and clamp one ``H x W`` grid."""

        grid = np.asarray(grid, dtype=np.float32)
        height, width = grid.shape
        center = ((width - 1) / 2.0, (height - 1) / 2.0)
        matrix = cv2.getRotationMatrix2D(center, params.angle, params.scale)
        matrix[0, 2] += params.shift_x
        matrix[1, 2] += params.shift_y
        out = cv2.warpAffine(
            grid,
            matrix,
            (width, height),
            flags=cv2.INTER_CUBIC,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=0.0,
        )

        if params.morphology is Morphology.DILATE:
            out = cv2.dilate(out, _KERNEL)
        elif params.morphology is Morphology.ERODE:
            out = cv2.erode(out, _KERNEL, borderType=cv2.BORDER_CONSTANT, borderValue=0.0)

        out = out.astype(np.float64)
        if params.jitter:
            cfg = self.config
            hit = rng.random(out.shape) < cfg.jitter_pixel_probability
            noise = rng.uniform(-cfg.jitter_amplitude, cfg.jitter_amplitude, size=out.shape)
            out = out + np.where(hit, noise, 0.0)
        return np.clip(out, 0.0, 1.0)


__all__ = [
    "AugmentationConfig",
    "AugmentationGenerator",
    "AugmentationParams",
    "Morphology",
    "grid_side",
]

import numpy as np
import pytest

from digitnet.core.errors import InvalidArgument, ShapeMismatch
from digitnet.core.types import Digit, Sample
from digitnet.data.augmentation import (
    AugmentationConfig,
    AugmentationGenerator,
    AugmentationParams,
    Morphology,
    grid_side,
)
from digitnet.data.glyphs import render_digit


@pytest.fixture
def base_sample():
    return Sample(render_digit(4).reshape(-1), Digit.FOUR)


def test_series_cardinality_and_labels(base_sample):
    generator = AugmentationGenerator(np.random.default_rng(0))
    series = generator.generate_series(base_sample, 7)
    assert len(series) == 7
    for sample in series:
        assert sample.label is Digit.FOUR
        assert sample.input.shape == base_sample.input.shape
        assert sample.input.min() >= 0.0 and sample.input.max() <= 1.0
        assert sample.prediction is None


def test_zero_and_negative_counts(base_sample):
    generator = AugmentationGenerator(np.random.default_rng(0))
    assert generator.generate_series(base_sample, 0) == []
    with pytest.raises(InvalidArgument):
        generator.generate_series(base_sample, -1)


def test_non_square_input_rejected():
    generator = AugmentationGenerator(np.random.default_rng(0))
    with pytest.raises(ShapeMismatch):
        generator.generate_series(Sample(np.zeros(30), Digit.ONE), 2)
    assert grid_side(1024) == 32


def test_identity_draw_reproduces_source(base_sample):
    generator = AugmentationGenerator(np.random.default_rng(0))
    grid = base_sample.input.reshape(32, 32)
    out = generator.apply(grid, AugmentationParams(), np.random.default_rng(1))
    np.testing.assert_allclose(out, grid, atol=1e-6)


def test_series_reproducible_for_fixed_seed(base_sample):
    first = AugmentationGenerator(np.random.default_rng(42)).generate_series(base_sample, 5)
    second = AugmentationGenerator(np.random.default_rng(42)).generate_series(base_sample, 5)
    for a, b in zip(first, second):
        np.testing.assert_array_equal(a.input, b.input)


def test_thread_pool_matches_single_worker(base_sample):
    serial = AugmentationGenerator(np.random.default_rng(3), workers=1)
    pooled = AugmentationGenerator(np.random.default_rng(3), workers=4)
    for a, b in zip(serial.generate_series(base_sample, 12), pooled.generate_series(base_sample, 12)):
        np.testing.assert_array_equal(a.input, b.input)


def test_variants_differ_from_each_other(base_sample):
    series = AugmentationGenerator(np.random.default_rng(8)).generate_series(base_sample, 4)
    assert not np.array_equal(series[0].input, series[1].input)


def test_dilate_ignores_off_grid_neighbours():
    generator = AugmentationGenerator(np.random.default_rng(0))
    grid = np.zeros((8, 8))
    grid[4, 4] = 1.0
    grid[0, 0] = 0.6
    out = generator.apply(grid, AugmentationParams(morphology=Morphology.DILATE), np.random.default_rng(0))
    np.testing.assert_allclose(out[3:6, 3:6], np.ones((3, 3)), atol=1e-6)
    np.testing.assert_allclose(out[0:2, 0:2], np.full((2, 2), 0.6), atol=1e-6)
    assert out[2, 2] == pytest.approx(0.0)


def test_erode_treats_off_grid_as_background():
    generator = AugmentationGenerator(np.random.default_rng(0))
    grid = np.ones((6, 6))
    out = generator.apply(grid, AugmentationParams(morphology=Morphology.ERODE), np.random.default_rng(0))
    interior = out[1:-1, 1:-1]
    np.testing.assert_allclose(interior, np.ones_like(interior), atol=1e-6)
    border = np.concatenate([out[0], out[-1], out[:, 0], out[:, -1]])
    np.testing.assert_allclose(border, np.zeros_like(border), atol=1e-6)


def test_jitter_stays_within_amplitude():
    config = AugmentationConfig(jitter_pixel_probability=1.0, jitter_amplitude=0.2)
    generator = AugmentationGenerator(np.random.default_rng(0), config)
    grid = np.full((8, 8), 0.5)
    out = generator.apply(grid, AugmentationParams(jitter=True), np.random.default_rng(5))
    assert out.min() >= 0.3 - 1e-9 and out.max() <= 0.7 + 1e-9
    assert not np.allclose(out, 0.5)


def test_output_is_clamped():
    config = AugmentationConfig(jitter_pixel_probability=1.0, jitter_amplitude=0.2)
    generator = AugmentationGenerator(np.random.default_rng(0), config)
    out = generator.apply(np.ones((8, 8)), AugmentationParams(jitter=True), np.random.default_rng(1))
    assert out.max() <= 1.0 and out.min() >= 0.0


def test_drawn_parameters_stay_in_range():
    generator = AugmentationGenerator(np.random.default_rng(0))
    rng = np.random.default_rng(11)
    draws = [generator.draw_parameters(rng) for _ in range(300)]
    assert all(-15.0 <= p.angle <= 15.0 for p in draws)
    assert all(0.85 <= p.scale <= 1.15 for p in draws)
    assert all(-3.0 <= p.shift_x <= 3.0 and -3.0 <= p.shift_y <= 3.0 for p in draws)
    kinds = {p.morphology for p in draws}
    assert kinds == {Morphology.NONE, Morphology.DILATE, Morphology.ERODE}
    assert {p.jitter for p in draws} == {True, False}


def test_config_validation():
    with pytest.raises(InvalidArgument):
        AugmentationConfig(min_scale=1.2, max_scale=1.0)
    with pytest.raises(InvalidArgument):
        AugmentationConfig(dilate_below=0.9, erode_above=0.5)
    with pytest.raises(InvalidArgument):
        AugmentationConfig.from_mapping({"max_rotaton": 5})
    assert AugmentationConfig.from_mapping({"max_rotation": 5}).max_rotation == 5.0

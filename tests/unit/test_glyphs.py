import numpy as np
import pytest

from digitnet.core.errors import InvalidArgument
from digitnet.core.types import Digit
from digitnet.data.glyphs import FONTS, build_glyph_dataset, glyph_samples, render_digit


@pytest.mark.parametrize("font", sorted(FONTS))
def test_render_digit_draws_ink_on_grid(font):
    pixels = render_digit(8, font=font)
    assert pixels.shape == (32, 32)
    assert pixels.min() >= 0.0 and pixels.max() <= 1.0
    assert pixels.sum() > 10.0


def test_render_digit_rejects_bad_arguments():
    with pytest.raises(InvalidArgument):
        render_digit(10)
    with pytest.raises(InvalidArgument):
        render_digit(3, font="comic")


def test_glyph_samples_cover_every_digit_per_font():
    samples = glyph_samples(fonts=("simplex", "duplex"), size=16)
    assert len(samples) == 20
    assert [s.label for s in samples][:10] == list(Digit)[:10]
    assert all(s.input.size == 256 for s in samples)


def test_dataset_sizes_and_provenance():
    dataset = build_glyph_dataset(fonts=("simplex",), variants=2, holdout_variants=1, seed=3)
    assert len(dataset.train) == 30
    assert len(dataset.holdout) == 10
    assert dataset.provenance["train_samples"] == 30
    assert dataset.provenance["holdout_samples"] == 10
    assert dataset.provenance["fonts"] == ["simplex"]


def test_dataset_without_base_glyphs():
    dataset = build_glyph_dataset(variants=1, holdout_variants=0, include_base=False)
    assert len(dataset.train) == 10
    assert len(dataset.holdout) == 0


def test_dataset_is_reproducible_and_splits_differ():
    first = build_glyph_dataset(variants=1, holdout_variants=1, seed=5, include_base=False)
    second = build_glyph_dataset(variants=1, holdout_variants=1, seed=5, include_base=False)
    for a, b in zip(first.train, second.train):
        np.testing.assert_array_equal(a.input, b.input)
    assert not np.array_equal(first.train[0].input, first.holdout[0].input)

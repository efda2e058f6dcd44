import numpy as np
import pytest

from digitnet.core.errors import InvalidArgument
from digitnet.core.types import NUM_CLASSES, Digit, Sample, SampleCollection


class _FixedPredictions:
    """Stand-in engine that hands out canned predictions in order."""

    def __init__(self, predictions):
        self._predictions = iter(predictions)

    def predict(self, sample):
        sample.prediction = np.asarray(next(self._predictions), dtype=np.float64)


def _one_hot(index):
    out = np.full(NUM_CLASSES, 0.1)
    out[index] = 0.9
    return out


def test_target_is_one_hot():
    sample = Sample(np.zeros(4), Digit.SEVEN)
    expected = np.zeros(NUM_CLASSES)
    expected[7] = 1.0
    np.testing.assert_array_equal(sample.target, expected)


def test_unknown_label_has_no_target():
    sample = Sample(np.zeros(4))
    assert sample.label is Digit.UNKNOWN
    assert sample.target is None
    assert sample.recognized_label is None


def test_integer_labels_are_coerced():
    assert Sample(np.zeros(4), 3).label is Digit.THREE


def test_input_is_read_only_copy():
    source = np.array([0.0, 0.5, 1.0, 0.25])
    sample = Sample(source, Digit.ONE)
    source[0] = 1.0
    assert sample.input[0] == 0.0
    with pytest.raises(ValueError):
        sample.input[1] = 0.0


@pytest.mark.parametrize(
    "values",
    [np.array([0.0, 1.5]), np.array([-0.1, 0.5]), np.zeros((2, 2)), np.array([np.nan, 0.0])],
)
def test_invalid_inputs_rejected(values):
    with pytest.raises(InvalidArgument):
        Sample(values, Digit.ONE)


def test_recognized_label_ties_resolve_to_lowest_index():
    sample = Sample(np.zeros(4))
    prediction = np.zeros(NUM_CLASSES)
    prediction[[2, 5, 8]] = 0.7
    sample.prediction = prediction
    assert sample.recognized_label is Digit.TWO


def test_collection_basic_operations():
    collection = SampleCollection()
    first = Sample(np.zeros(4), Digit.ONE)
    collection.append(first)
    collection.extend([Sample(np.ones(4), Digit.TWO)])
    assert len(collection) == 2
    assert collection[0] is first
    assert [s.label for s in collection] == [Digit.ONE, Digit.TWO]


def test_evaluate_accuracy_counts_matches():
    labels = [Digit.ZERO, Digit.ONE, Digit.TWO, Digit.THREE]
    collection = SampleCollection(Sample(np.zeros(4), label) for label in labels)
    engine = _FixedPredictions([_one_hot(0), _one_hot(1), _one_hot(0), _one_hot(0)])
    assert collection.evaluate_accuracy(engine) == 0.5
    assert [s.recognized_label for s in collection] == [Digit.ZERO, Digit.ONE, Digit.ZERO, Digit.ZERO]


def test_evaluate_accuracy_of_empty_collection():
    assert SampleCollection().evaluate_accuracy(_FixedPredictions([])) == 0.0

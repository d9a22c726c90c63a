import statistics

import pytest

from elabview.measurement import SignalMeasurement, measure


def test_constant_signal_has_no_noise():
    result = measure([2.5, 2.5, 2.5, 2.5])
    assert result.average == pytest.approx(2.5)
    assert result.min_value == 2.5
    assert result.max_value == 2.5
    assert result.noise == pytest.approx(0.0)


def test_extremes_come_from_the_samples():
    result = measure([3.0, -1.0, 2.0])
    assert result.min_value == -1.0
    assert result.max_value == 3.0


def test_average_and_noise_match_population_statistics():
    samples = [0.1, 0.4, 1.3, 2.2, 0.9, 1.7]
    result = measure(samples)
    assert result.average == pytest.approx(statistics.fmean(samples))
    assert result.noise == pytest.approx(statistics.pstdev(samples))


def test_average_lies_between_extremes():
    result = measure([5.0, 1.0, 4.0, 2.0, 3.5])
    assert result.min_value <= result.average <= result.max_value


def test_single_sample():
    result = measure([1.25])
    assert result == SignalMeasurement(1.25, 1.25, 1.25, 0.0)


def test_empty_signal_is_rejected():
    with pytest.raises(ValueError):
        measure([])
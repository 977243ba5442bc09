import numpy as np
import pytest

from subalign.scoring import (
    flatness, frequency_weight, frequency_weights, quality_score,
    weighted_mean)

FREQS = np.arange(20.0, 151.0)
WEIGHTS = frequency_weights(FREQS)


def score(magnitude, theoretical=None):
    if theoretical is None:
        theoretical = np.full(FREQS.size, 80.0)
    return quality_score(FREQS, magnitude, theoretical, WEIGHTS)


def test_weight_peaks_at_55_hz():
    weights = [frequency_weight(f) for f in np.arange(10, 500.5, 0.5)]
    assert frequency_weight(55) == pytest.approx(1.0)
    assert frequency_weight(55) == pytest.approx(max(weights))


def test_weight_bounds():
    assert frequency_weight(10) == pytest.approx(0.1)
    assert frequency_weight(1000) == pytest.approx(0.1)
    for f in np.arange(1, 1000, 3.3):
        assert 0.1 <= frequency_weight(f) <= 1.0


def test_weights_of_array():
    weights = frequency_weights(np.array([20.0, 55.0, 100.0]))
    assert weights.shape == (3,)
    assert weights[1] == pytest.approx(1.0)


def test_weighted_mean():
    assert weighted_mean(np.array([1.0, 3.0]), np.array([1.0, 1.0])) == 2
    assert weighted_mean(np.array([1.0, 3.0]), np.zeros(2)) == 0
    assert weighted_mean(np.array([]), np.array([])) == 0


def test_perfect_response():
    result = score(np.full(FREQS.size, 80.0))
    assert result.efficiency == pytest.approx(100)
    assert result.referenceLevel == pytest.approx(80)
    assert result.dipPenalty == 0
    assert result.peakPenalty == 0
    assert result.nullPenalty == 0
    assert result.smoothnessPenalty == 0
    assert result.total == pytest.approx(100)


def test_level_above_theoretical_is_capped():
    result = score(np.full(FREQS.size, 90.0))
    assert result.efficiency == pytest.approx(100)


def test_narrow_null_is_penalized():
    magnitude = np.full(FREQS.size, 80.0)
    magnitude[40] = 60
    result = score(magnitude)
    assert result.nullPenalty > 0
    assert result.dipPenalty > 0
    assert result.smoothnessPenalty > 0
    assert result.total < score(np.full(FREQS.size, 80.0)).total


def test_dip_is_worse_than_peak():
    dip = np.full(FREQS.size, 80.0)
    dip[30:40] -= 6
    peak = np.full(FREQS.size, 80.0)
    peak[30:40] += 6
    dipScore = score(dip)
    peakScore = score(peak)
    assert dipScore.dipPenalty > 0
    assert peakScore.peakPenalty > 0
    assert peakScore.total > dipScore.total


def test_zero_weights_give_finite_score():
    magnitude = np.full(FREQS.size, 70.0)
    result = quality_score(
        FREQS, magnitude, np.full(FREQS.size, 80.0), np.zeros(FREQS.size))
    assert np.isfinite(result.total)
    assert result.efficiency == 0


def test_empty_response():
    empty = np.array([])
    assert quality_score(empty, empty, empty, empty).total == 0


def test_flatness():
    assert flatness(np.full(10, 80.0)) == 0
    assert flatness(np.array([80.0])) == 0
    assert flatness(np.array([0.0, 3.0])) == pytest.approx(2.75)
    assert flatness(np.array([0.0, 6.0, 0.0])) > flatness(np.array([0.0, 3.0]))


def test_components_on_octave_grid():
    # One octave per bin, so slopes are plain dB differences.
    freqs = np.array([10.0, 20.0, 40.0, 80.0, 160.0])
    magnitude = np.array([0.0, 0.0, -20.0, 0.0, 20.0])
    result = quality_score(freqs, magnitude, np.zeros(5), np.ones(5))

    assert result.referenceLevel == pytest.approx(0)
    # Linear ratios 1, 1, 0.1, 1 and 1 (capped).
    assert result.efficiency == pytest.approx(82)
    # 20 dB below the reference, 3 dB allowed.
    assert result.dipPenalty == pytest.approx(17 ** 1.8 / 5)
    # 20 dB above the reference, 3 dB allowed.
    assert result.peakPenalty == pytest.approx(0.3 * 17 / 5)
    # Three 20 dB/octave steps, 12 dB/octave allowed.
    assert result.smoothnessPenalty == pytest.approx(3 * 0.05 * 8 / 5)
    # Local average 5 dB, so 25 dB deep; half-depth band 20..80 Hz.
    null = (25 / 6) ** 1.5 * (40 / 60) / 5 / 5
    assert result.nullPenalty == pytest.approx(null)
    assert result.total == pytest.approx(
        82 - 2 * 17 ** 1.8 / 5 - 3 * null - 0.5 * 0.3 * 17 / 5
        - 3 * 0.05 * 8 / 5)


def test_null_q_is_capped():
    freqs = np.array([100.0, 100.5, 101.0, 101.5, 102.0])
    magnitude = np.array([0.0, 0.0, -12.0, 0.0, 0.0])
    result = quality_score(freqs, magnitude, np.zeros(5), np.ones(5))
    # Q is 101 / 1 Hz, capped at 15.
    assert result.nullPenalty == pytest.approx(2 ** 1.5 * 15 / 5 / 5)


def test_null_needs_more_than_6_db():
    freqs = np.array([100.0, 100.5, 101.0, 101.5, 102.0])
    magnitude = np.array([0.0, 0.0, -6.0, 0.0, 0.0])
    result = quality_score(freqs, magnitude, np.zeros(5), np.ones(5))
    assert result.nullPenalty == 0
    assert result.referenceLevel == pytest.approx(-1.2)
    assert result.dipPenalty == pytest.approx(1.8 ** 1.8 / 5)
    assert result.peakPenalty == 0


def test_weights_scale_penalties():
    freqs = np.array([10.0, 20.0, 40.0, 80.0, 160.0])
    magnitude = np.array([0.0, 0.0, -10.0, 0.0, 0.0])
    weights = np.array([1.0, 1.0, 3.0, 1.0, 1.0])
    result = quality_score(freqs, magnitude, np.zeros(5), weights)
    assert result.referenceLevel == pytest.approx(-30 / 7)
    assert result.dipPenalty == pytest.approx(
        3 * (10 - 30 / 7 - 3) ** 1.8 / 7)
    assert result.efficiency == pytest.approx(
        100 * (4 + 3 * 10 ** -0.5) / 7)

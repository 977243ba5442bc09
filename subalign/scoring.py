"""
Quality score of a combined subwoofer response relative to its
theoretical ceiling.

Dips are penalized much harder than peaks, since peaks can be taken
out afterwards with equalization while dips cannot.
"""

from typing import NamedTuple

import numpy as np
from numba import njit

DIP_THRESHOLD_DB = 3.0
PEAK_THRESHOLD_DB = 3.0
NULL_THRESHOLD_DB = 6.0
MAX_NULL_Q = 15.0
SLOPE_LIMIT_DB_PER_OCTAVE = 12.0


class QualityScore(NamedTuple):
    efficiency: float
    referenceLevel: float
    dipPenalty: float
    peakPenalty: float
    nullPenalty: float
    smoothnessPenalty: float

    @property
    def total(self) -> float:
        return (
            self.efficiency
            - 2 * self.dipPenalty
            - 3 * self.nullPenalty
            - 0.5 * self.peakPenalty
            - 1 * self.smoothnessPenalty)


def frequency_weight(freq: float) -> float:
    """
    Perceptual importance of a frequency for subwoofer integration,
    between 0.1 and 1.
    """
    if freq < 15:
        return 0.1
    # Room-mode region.
    modal = np.exp(-0.5 * ((freq - 55) / 30) ** 2)
    # Crossover region.
    crossover = 0.6 * np.exp(-0.5 * ((freq - 100) / 25) ** 2)
    weight = max(modal, crossover)
    if freq < 25:
        weight *= (freq / 25) ** 1.5
    if freq > 150:
        weight *= np.exp(-(freq - 150) / 100)
    return float(min(max(weight, 0.1), 1.0))


def frequency_weights(freqs: np.ndarray) -> np.ndarray:
    return np.array([frequency_weight(f) for f in freqs], float)


def weighted_mean(values: np.ndarray, weights: np.ndarray) -> float:
    total = weights.sum()
    if not values.size or total <= 0:
        return 0.0
    return float((values * weights).sum() / total)


def quality_score(
        freqs: np.ndarray, magnitude: np.ndarray,
        theoretical: np.ndarray, weights: np.ndarray) -> QualityScore:
    """
    Score a combined magnitude response (in dB) against the theoretical
    magnitude (in dB) on the same frequency grid.
    """
    if not magnitude.size:
        return QualityScore(0.0, 0.0, 0.0, 0.0, 0.0, 0.0)
    ratio = np.fmin(10 ** ((magnitude - theoretical) / 20), 1.0)
    efficiency = 100 * weighted_mean(ratio, weights)
    reference = weighted_mean(magnitude, weights)

    below = reference - magnitude - DIP_THRESHOLD_DB
    dip = weighted_mean(np.fmax(below, 0) ** 1.8, weights)
    above = magnitude - reference - PEAK_THRESHOLD_DB
    peak = weighted_mean(0.3 * np.fmax(above, 0), weights)

    total = weights.sum()
    if total > 0:
        null = null_penalty(freqs, magnitude, weights) / total
        slope = smoothness_penalty(freqs, magnitude, weights) / total
    else:
        null = slope = 0.0
    return QualityScore(efficiency, reference, dip, peak, null, slope)


@njit
def null_penalty(
        freqs: np.ndarray, magnitude: np.ndarray,
        weights: np.ndarray) -> float:
    """
    Summed penalty of narrow, deep nulls. The depth of a bin is measured
    against the average of its two neighbors on either side and the
    narrowness by the Q of the bandwidth at half the depth.
    """
    n = magnitude.size
    penalty = 0.0
    for i in range(2, n - 2):
        local = 0.25 * (
            magnitude[i - 2] + magnitude[i - 1]
            + magnitude[i + 1] + magnitude[i + 2])
        drop = local - magnitude[i]
        if drop <= NULL_THRESHOLD_DB:
            continue
        halfLevel = magnitude[i] + drop / 2
        lo = i
        while lo > 0 and magnitude[lo] < halfLevel:
            lo -= 1
        hi = i
        while hi < n - 1 and magnitude[hi] < halfLevel:
            hi += 1
        bandwidth = freqs[hi] - freqs[lo]
        q = freqs[i] / bandwidth if bandwidth > 0 else MAX_NULL_Q
        qFactor = min(q, MAX_NULL_Q) / 5
        depthFactor = (drop / NULL_THRESHOLD_DB) ** 1.5
        penalty += weights[i] * depthFactor * qFactor
    return penalty


@njit
def smoothness_penalty(
        freqs: np.ndarray, magnitude: np.ndarray,
        weights: np.ndarray) -> float:
    """Summed penalty of slopes steeper than 12 dB/octave."""
    penalty = 0.0
    for i in range(1, magnitude.size):
        octaves = np.log2(freqs[i] / freqs[i - 1])
        if octaves <= 0:
            continue
        slope = abs(magnitude[i] - magnitude[i - 1]) / octaves
        if slope > SLOPE_LIMIT_DB_PER_OCTAVE:
            penalty += weights[i] * 0.05 * (slope - SLOPE_LIMIT_DB_PER_OCTAVE)
    return penalty


def flatness(magnitude: np.ndarray) -> float:
    """
    Flatness of a magnitude response in dB, lower is flatter. Combines
    the deviation from the mean level, the variation between adjacent
    points and the peak-to-peak range.
    """
    if magnitude.size <= 1:
        return 0.0
    stdDev = magnitude.std()
    localRms = np.sqrt(np.mean(np.diff(magnitude) ** 2))
    peakToPeak = magnitude.max() - magnitude.min()
    return float(0.5 * stdDev + 0.3 * 2 * localRms + 0.2 * peakToPeak / 3)

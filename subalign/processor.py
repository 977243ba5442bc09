from typing import Union

import numpy as np
from numba import njit

from subalign.polar import dbToLinearGain, normalizePhase, radiansToDegrees


class FrequencyResponseProcessor:
    """
    Signal processing helpers for magnitude/phase responses:
    log-frequency smoothing and minimum-phase reconstruction.
    """

    @staticmethod
    def smooth(
            freqs: np.ndarray, magnitude: np.ndarray,
            fractionalOctave: Union[str, float] = '1/12') -> np.ndarray:
        """
        Smooth the magnitude (in dB) with a Gaussian window over
        log-frequency.

        Args:
          freqs: Frequencies in Hz, strictly increasing and positive.
          magnitude: Magnitude in dB for every frequency.
          fractionalOctave: Width of the window, given either as a
            string like ``'1/6'``, as the fraction ``1/6`` or as the
            denominator ``6``.
        """
        freqs = np.asarray(freqs, float)
        magnitude = np.asarray(magnitude, float)
        if not magnitude.size:
            return magnitude.copy()
        width = np.log(2) / octave_denominator(fractionalOctave)
        return smooth_log(freqs, magnitude, width)

    @staticmethod
    def calculateMinimumPhase(magnitude: np.ndarray) -> np.ndarray:
        """
        Calculate the minimum phase in degrees that belongs to the given
        magnitude (in dB), using the cepstral method.
        """
        magnitude = np.asarray(magnitude, float)
        n = magnitude.size
        if not n:
            return np.zeros(0)
        size = 1 << int(np.ceil(np.log2(2 * n)))

        logMag = np.empty(size)
        logMag[:n] = np.log(np.fmax(dbToLinearGain(magnitude), 1e-10))
        # Hold the last value over the gap between the half and its mirror.
        logMag[n:size - n + 1] = logMag[n - 1]
        logMag[size - n + 1:] = logMag[n - 1:0:-1]

        cepstrum = np.fft.ifft(logMag)
        window = np.zeros(size)
        window[0] = 1
        window[1:size // 2] = 2
        window[size // 2] = 1
        spectrum = np.fft.fft(cepstrum * window)
        return normalizePhase(radiansToDegrees(spectrum[:n].imag))


def octave_denominator(fractionalOctave: Union[str, float]) -> float:
    """
    Parse a fractional octave such as ``'1/3'``, ``1/3`` or ``3`` into
    its denominator.
    """
    if isinstance(fractionalOctave, str):
        num, sep, den = fractionalOctave.partition('/')
        try:
            value = float(den) / float(num) if sep else float(num)
        except ValueError:
            raise ValueError(
                f'Invalid fractional octave: {fractionalOctave!r}') from None
    else:
        value = float(fractionalOctave)
        if 0 < value < 1:
            value = 1 / value
    if not value > 0:
        raise ValueError(f'Invalid fractional octave: {fractionalOctave!r}')
    return value


@njit
def smooth_log(
        freqs: np.ndarray, magnitude: np.ndarray,
        width: float) -> np.ndarray:
    """
    Gaussian-weighted average of every point with its neighbors that
    lie within ``width`` in natural-log frequency.
    """
    logFreqs = np.log(freqs)
    smoothed = np.empty_like(magnitude)
    for i in range(magnitude.size):
        total = 0.0
        weights = 0.0
        for j in range(magnitude.size):
            dist = abs(logFreqs[j] - logFreqs[i])
            if dist <= width:
                w = np.exp(-dist * dist / (2 * width * width))
                total += magnitude[j] * w
                weights += w
        smoothed[i] = total / weights if weights > 0 else magnitude[i]
    return smoothed

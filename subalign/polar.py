from typing import Any, NamedTuple

import numpy as np

MIN_DB = 20 * np.log10(np.finfo(float).eps)


def dbToLinearGain(db):
    return np.power(10.0, np.asarray(db, float) / 20)


def linearGainToDb(gain):
    """Convert linear gain to dB, flooring silence at ``MIN_DB``."""
    return 20 * np.log10(np.fmax(gain, np.finfo(float).eps))


def degreesToRadians(degrees):
    return np.asarray(degrees, float) * np.pi / 180


def radiansToDegrees(radians):
    return np.asarray(radians, float) * 180 / np.pi


def normalizePhase(degrees):
    """Wrap phase in degrees to the range (-180, 180]."""
    return 180 - np.mod(180 - np.asarray(degrees, float), 360)


class PolarSample(NamedTuple):
    """
    Complex frequency-domain value given as magnitude in dB and
    phase in degrees.

    The fields can be scalars or numpy arrays of the same shape, in which
    case every operation works elementwise over all frequency bins at once.
    """

    magnitudeDb: Any
    phaseDegrees: Any

    dbToLinearGain = staticmethod(dbToLinearGain)
    linearGainToDb = staticmethod(linearGainToDb)
    degreesToRadians = staticmethod(degreesToRadians)
    radiansToDegrees = staticmethod(radiansToDegrees)
    normalizePhase = staticmethod(normalizePhase)

    @classmethod
    def fromDb(cls, magnitudeDb, phaseDegrees=0.0) -> 'PolarSample':
        return cls(magnitudeDb, normalizePhase(phaseDegrees))

    @classmethod
    def fromComplex(cls, z) -> 'PolarSample':
        z = np.asarray(z)
        mag = linearGainToDb(np.abs(z))
        phase = normalizePhase(np.degrees(np.angle(z)))
        if z.ndim == 0:
            return cls(float(mag), float(phase))
        return cls(mag, phase)

    @property
    def linear(self):
        return dbToLinearGain(self.magnitudeDb)

    def toComplex(self):
        return self.linear * np.exp(1j * degreesToRadians(self.phaseDegrees))

    def add(self, other: 'PolarSample') -> 'PolarSample':
        """
        Vector sum of two samples. A zero-magnitude operand (-inf dB)
        leaves the other one unchanged.
        """
        return PolarSample.fromComplex(self.toComplex() + other.toComplex())

    def addGainDb(self, db) -> 'PolarSample':
        return PolarSample(self.magnitudeDb + db, self.phaseDegrees)

    def addPhaseDegrees(self, delta) -> 'PolarSample':
        return PolarSample(
            self.magnitudeDb, normalizePhase(self.phaseDegrees + delta))

    def delay(self, seconds, frequencyHz) -> 'PolarSample':
        """Rotate phase by the amount a pure time delay causes."""
        return self.addPhaseDegrees(-360 * frequencyHz * seconds)

    def invertPolarity(self) -> 'PolarSample':
        return self.addPhaseDegrees(180)

    def __str__(self):
        return f'{self.magnitudeDb:.2f}dB ∠{self.phaseDegrees:.2f}°'

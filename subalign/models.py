from dataclasses import dataclass, replace
from typing import List, NamedTuple, Optional

import numpy as np

FREQ_TOLERANCE = 1e-7


class AllPass(NamedTuple):
    enabled: bool = False
    frequency: float = 0.0
    q: float = 0.0


class CorrectionParam(NamedTuple):
    """
    Correction applied to one subwoofer. Immutable: search operators
    derive new instances with ``_replace``.
    """

    delay: float = 0.0  # seconds
    gain: float = 0.0  # dB
    polarity: int = 1
    allPass: AllPass = AllPass()


EMPTY_CONFIG = CorrectionParam()


@dataclass
class FrequencyResponse:
    """
    Frequency response with magnitude in dB and phase in degrees
    for every frequency in ``freqs``.
    """

    freqs: np.ndarray
    magnitude: np.ndarray
    phase: np.ndarray
    measurementId: str = ''
    displayName: str = ''
    freqStep: Optional[float] = None
    ppo: Optional[float] = None
    param: Optional[CorrectionParam] = None

    def __post_init__(self):
        self.freqs = np.asarray(self.freqs, float)
        self.magnitude = np.asarray(self.magnitude, float)
        self.phase = np.asarray(self.phase, float)

    def clip(self, fmin: float, fmax: float) -> 'FrequencyResponse':
        """Return the part of the response within [fmin, fmax]."""
        i0 = np.searchsorted(self.freqs, fmin - FREQ_TOLERANCE, 'left')
        i1 = np.searchsorted(self.freqs, fmax + FREQ_TOLERANCE, 'right')
        return replace(
            self,
            freqs=self.freqs[i0:i1],
            magnitude=self.magnitude[i0:i1],
            phase=self.phase[i0:i1])

    def withParam(self, param: CorrectionParam) -> 'FrequencyResponse':
        return replace(self, param=param)


class Range(NamedTuple):
    min: float
    max: float
    step: float = 0.0


class AllPassConfig(NamedTuple):
    enabled: bool
    frequency: Range
    q: Range


class OptimizationConfig(NamedTuple):
    """Search space of the optimizer. Delays are in seconds."""

    frequency: Range
    gain: Range
    delay: Range
    allPass: AllPassConfig


DEFAULT_CONFIG = OptimizationConfig(
    frequency=Range(20, 200),
    gain=Range(0, 0, 0.1),
    delay=Range(-0.005, 0.005, 0.00001),
    allPass=AllPassConfig(
        enabled=False,
        frequency=Range(10, 100, 1),
        q=Range(0.1, 0.5, 0.1)))


@dataclass
class GeneticOptions:
    """Tuning of the genetic search."""

    populationSize: int = 110
    generations: int = 80
    eliteFraction: float = 0.13
    mutationRate: float = 0.5
    mutationAmount: float = 0.4
    tournamentSize: int = 3
    withAllPassProbability: float = 0.7
    runs: int = 1
    maxNoImprovementGenerations: int = 20
    minGenerations: int = 20
    coarseStepFactor: float = 5
    coarseSampleLimit: int = 2000
    localSearchIterations: int = 10
    finalLocalSearchIterations: int = 50


class EvaluatedCandidate(NamedTuple):
    param: CorrectionParam
    response: FrequencyResponse
    score: float
    hasAllPass: bool


class ComparativeAnalysis(NamedTuple):
    measurementId: str
    displayName: str
    improvementPercentage: Optional[float]
    recommended: str


class OptimizationResult(NamedTuple):
    optimizedSubs: List[FrequencyResponse]
    bestSum: FrequencyResponse
    bestScore: float
    comparativeAnalysis: List[ComparativeAnalysis]
    theoreticalMaxResponse: FrequencyResponse

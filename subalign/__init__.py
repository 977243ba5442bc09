"""Align multiple subwoofers for the smoothest and strongest sum"""

from subalign.io_ import format_response, read_response, write_response
from subalign.log import OptimizerLog
from subalign.models import (
    AllPass, AllPassConfig, ComparativeAnalysis, CorrectionParam,
    DEFAULT_CONFIG, EMPTY_CONFIG, EvaluatedCandidate, FrequencyResponse,
    GeneticOptions, OptimizationConfig, OptimizationResult, Range)
from subalign.optimizer import MultiSubOptimizer
from subalign.polar import PolarSample
from subalign.processor import FrequencyResponseProcessor
from subalign.random_ import RandomSource, XorShiftRandom
from subalign.scoring import QualityScore, frequency_weight

import math
import time
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import eventkit as ev
import numpy as np

from subalign import scoring
from subalign.log import OptimizerLog
from subalign.models import (
    AllPass, ComparativeAnalysis, CorrectionParam, DEFAULT_CONFIG,
    EMPTY_CONFIG, EvaluatedCandidate, FrequencyResponse, GeneticOptions,
    OptimizationConfig, OptimizationResult, Range)
from subalign.polar import PolarSample
from subalign.processor import FrequencyResponseProcessor
from subalign.random_ import RandomSource

CLASSIC_LIMIT = 1000
CACHE_LIMIT = 10000
GRID_TOLERANCE = 1e-3
ALL_PASS_THRESHOLD = 0.02
MAX_DELAY_PENALTY = 2.0
LOCAL_SEARCH_SCALES = (4, 2, 1, 0.5, 0.25)
LOCAL_SEARCH_INTERVAL = 5
STAGNATION_RESTART = 8
LOW_DIVERSITY = 0.05

Best = Optional[EvaluatedCandidate]


class MultiSubOptimizer:
    """
    Find the delay, gain, polarity and optional all-pass filter for every
    subwoofer so that their sum is as smooth as possible and as close as
    possible to the coherent sum.

    The first subwoofer is the fixed reference. The others are optimized
    one after the other, each against the running sum of the ones
    before it. Small parameter spaces are searched exhaustively, larger
    ones with a genetic algorithm that is refined by local search.

    Events:
        * progress(displayName, generation, bestScore):
          Emitted after every generation of the genetic search.
        * subOptimized(sub, candidate):
          Emitted when the correction of a subwoofer is settled.
    """

    computeFrequencyWeight = staticmethod(scoring.frequency_weight)

    def __init__(
            self,
            subMeasurements: Sequence[FrequencyResponse],
            config: OptimizationConfig = DEFAULT_CONFIG,
            options: GeneticOptions = None,
            rng: RandomSource = None,
            log=None):
        """
        Args:
          subMeasurements: Frequency response of every subwoofer, the
            first one being the reference.
          config: Search space.
          options: Tuning of the genetic search.
          rng: Source of randomness, unseeded by default.
          log: Narration sink with ``info``, ``warn``, ``success`` and
            ``debug`` methods.
        """
        self.validateMeasurements(subMeasurements)
        if config.delay.min > config.delay.max or config.delay.step <= 0:
            raise ValueError('Invalid delay range parameters')
        if config.allPass.enabled and config.allPass.q.min <= 0:
            raise ValueError('All-pass Q must be positive')
        self.subMeasurements = list(subMeasurements)
        self.config = config
        self.options = options or GeneticOptions()
        self.rng = rng or RandomSource()
        self.log = log or OptimizerLog()
        self.optimizedSubs: List[FrequencyResponse] = []
        self.frequencyWeights: Optional[np.ndarray] = None
        self.theoreticalMaxResponse: Optional[FrequencyResponse] = None
        self.evaluationCount = 0
        self.cacheHits = 0
        self._cache: Dict[tuple, EvaluatedCandidate] = {}
        self.progress = ev.Event('progress')
        self.subOptimized = ev.Event('subOptimized')

    @staticmethod
    def validateMeasurements(subMeasurements: Sequence[FrequencyResponse]):
        if not subMeasurements or len(subMeasurements) < 2:
            raise ValueError('At least 2 subwoofer measurements required')
        for sub in subMeasurements:
            size = len(sub.freqs)
            if size != len(sub.magnitude) or size != len(sub.phase):
                raise ValueError(
                    'Frequency, magnitude and phase arrays must have '
                    'the same length')
            if not sub.measurementId:
                raise ValueError('Measurement identifier is required')

    @property
    def logText(self) -> str:
        return getattr(self.log, 'text', '')

    def optimizeSubwoofers(self) -> OptimizationResult:
        """Optimize all subwoofers after the first one."""
        start = time.perf_counter()
        prepared = self.prepareMeasurements()
        self.theoreticalMaxResponse = self.calculateCombinedResponse(
            prepared, theoretical=True)

        paramCount = self.countAllPossibleCombinations()
        method = 'classic' if paramCount <= CLASSIC_LIMIT else 'genetic'
        self.log.info(
            f'Optimizing with {method} method: '
            f'{paramCount} test parameters per sub')

        self.optimizedSubs = []
        comparativeAnalysis = []
        previousSum = prepared[0]
        bestScore = 0.0
        for original, sub in zip(self.subMeasurements[1:], prepared[1:]):
            best, improvement = self.optimizeSingleSub(
                sub, previousSum, method)
            optimized = original.withParam(best.param)
            self.optimizedSubs.append(optimized)
            self.checkDelayBoundaries(optimized)
            comparativeAnalysis.append(ComparativeAnalysis(
                sub.measurementId, sub.displayName, improvement,
                'with-allpass' if best.hasAllPass else 'without-allpass'))
            self.subOptimized.emit(optimized, best)
            previousSum = best.response
            bestScore = best.score

        result = OptimizationResult(
            list(self.optimizedSubs), previousSum, bestScore,
            comparativeAnalysis, self.theoreticalMaxResponse)
        self.logResults(time.perf_counter() - start, result)
        return result

    def prepareMeasurements(self) -> List[FrequencyResponse]:
        """
        Clip all measurements to the configured frequency range, check
        that they share one frequency grid and compute the frequency
        weights for that grid.

        The other subs are clipped to the band of the clipped first sub,
        widened by the grid tolerance.
        """
        fmin = self.config.frequency.min
        fmax = self.config.frequency.max
        first = self.subMeasurements[0].clip(fmin, fmax) \
            .withParam(EMPTY_CONFIG)
        if not first.freqs.size:
            raise ValueError(
                f'No frequency points between {fmin}Hz and {fmax}Hz')
        lo = first.freqs[0] - GRID_TOLERANCE
        hi = first.freqs[-1] + GRID_TOLERANCE
        prepared = [first] + [
            sub.clip(lo, hi).withParam(EMPTY_CONFIG)
            for sub in self.subMeasurements[1:]]

        for index, sub in enumerate(prepared[1:], 1):
            name = sub.displayName or index
            if sub.freqs.size != first.freqs.size:
                raise ValueError(
                    f'Sub {name} has a different number of frequency '
                    'points than the first sub')
            diff = np.abs(sub.freqs - first.freqs) > GRID_TOLERANCE
            if diff.any():
                raise ValueError(
                    f'Sub {name} has a different frequency point at index '
                    f'{int(np.argmax(diff))} than the first sub')

        self.frequencyWeights = scoring.frequency_weights(first.freqs)
        return prepared

    def generateTestParams(
            self, stepFactor: float = 1) -> List[CorrectionParam]:
        """
        Return every combination of polarity, delay, gain and all-pass
        setting, on grids that are ``stepFactor`` times coarser than the
        configured steps.
        """
        cfg = self.config
        delays = grid(cfg.delay, stepFactor)
        gains = grid(cfg.gain, stepFactor)
        allPassList = [AllPass()]
        if cfg.allPass.enabled:
            allPassList += [
                AllPass(True, freq, q)
                for freq in grid(cfg.allPass.frequency, stepFactor)
                for q in grid(cfg.allPass.q, stepFactor)]
        return [
            CorrectionParam(delay, gain, polarity, allPass)
            for polarity in (-1, 1)
            for delay in delays
            for gain in gains
            for allPass in allPassList]

    def countAllPossibleCombinations(self) -> int:
        cfg = self.config
        allPassCount = 1
        if cfg.allPass.enabled:
            allPassCount += (
                len(grid(cfg.allPass.frequency)) * len(grid(cfg.allPass.q)))
        return 2 * len(grid(cfg.delay)) * len(grid(cfg.gain)) * allPassCount

    def optimizeSingleSub(
            self, sub: FrequencyResponse, previousSum: FrequencyResponse,
            method: str = 'genetic') -> Tuple[EvaluatedCandidate,
                                              Optional[float]]:
        """
        Find the best correction of ``sub`` for adding it to
        ``previousSum``.

        Returns:
          The chosen candidate and the improvement in percent of the best
          all-pass solution over the best one without all-pass (None if
          not applicable).
        """
        self.clearCache()
        evaluations = self.evaluationCount
        hits = self.cacheHits
        theoretical = self.calculateCombinedResponse(
            [sub, previousSum], realisticTheoretical=True)
        baseline = self.evaluateParametersCached(
            sub, previousSum, theoretical, EMPTY_CONFIG)

        if method == 'classic':
            bestWith, bestWithout = self.classicSearch(
                sub, previousSum, theoretical)
        elif method == 'genetic':
            bestWith, bestWithout = self.geneticSearch(
                sub, previousSum, theoretical)
        else:
            raise ValueError(f'Unknown optimization method: {method}')
        # Never do worse than leaving the sub alone.
        if bestWithout is None or baseline.score > bestWithout.score:
            bestWithout = baseline

        improvement = self.calculateImprovementPercentage(
            bestWith.score if bestWith else None, bestWithout.score)
        self.logComparisonResults(
            sub, bestWith, bestWithout, improvement, method)
        best = self.chooseBestSolution(bestWith, bestWithout)
        self.log.debug(
            f'{sub.displayName}: {self.evaluationCount - evaluations} '
            f'evaluations, {self.cacheHits - hits} cache hits')
        return best, improvement

    def classicSearch(
            self, sub: FrequencyResponse, previousSum: FrequencyResponse,
            theoretical: FrequencyResponse) -> Tuple[Best, Best]:
        """Evaluate every parameter combination."""
        bestWith = bestWithout = None
        for param in self.generateTestParams():
            candidate = self.evaluateParametersCached(
                sub, previousSum, theoretical, param)
            bestWith, bestWithout = self.updateBestSolutions(
                [candidate], bestWith, bestWithout)
        return bestWith, bestWithout

    def geneticSearch(
            self, sub: FrequencyResponse, previousSum: FrequencyResponse,
            theoretical: FrequencyResponse) -> Tuple[Best, Best]:
        """
        Seed with the best of a coarse grid, evolve the population and
        polish the best solutions with and without all-pass.
        """
        opts = self.options
        coarseParams = self.stratifiedSample(
            self.generateTestParams(opts.coarseStepFactor),
            opts.coarseSampleLimit)
        coarse = [
            self.evaluateParametersCached(sub, previousSum, theoretical, p)
            for p in coarseParams]
        coarseBest = max(coarse, key=lambda c: c.score)
        bestWith, bestWithout = self.updateBestSolutions(coarse, None, None)

        for _ in range(opts.runs):
            population = self.createHybridPopulation(
                coarseBest.param, opts.populationSize,
                opts.withAllPassProbability)
            bestWith, bestWithout = self.runGeneticLoop(
                sub, previousSum, theoretical, population,
                bestWith, bestWithout)

        if bestWith is not None:
            bestWith = self.localSearch(
                sub, previousSum, theoretical, bestWith,
                opts.finalLocalSearchIterations)
        if bestWithout is not None:
            bestWithout = self.localSearch(
                sub, previousSum, theoretical, bestWithout,
                opts.finalLocalSearchIterations)
        return bestWith, bestWithout

    def runGeneticLoop(
            self, sub: FrequencyResponse, previousSum: FrequencyResponse,
            theoretical: FrequencyResponse,
            population: List[CorrectionParam],
            bestWith: Best, bestWithout: Best) -> Tuple[Best, Best]:
        opts = self.options
        generations = opts.generations
        stagnation = 0
        bestScore = -math.inf
        for generation in range(generations):
            evaluated = [
                self.evaluateParametersCached(
                    sub, previousSum, theoretical, param)
                for param in population]
            evaluated.sort(key=lambda c: c.score, reverse=True)

            if generation and generation % LOCAL_SEARCH_INTERVAL == 0:
                refined = self.localSearch(
                    sub, previousSum, theoretical, evaluated[0],
                    opts.localSearchIterations)
                if refined.score > evaluated[0].score:
                    evaluated[0] = refined

            bestWith, bestWithout = self.updateBestSolutions(
                evaluated, bestWith, bestWithout)
            if evaluated[0].score > bestScore + 1e-9:
                bestScore = evaluated[0].score
                stagnation = 0
            else:
                stagnation += 1
            self.progress.emit(sub.displayName, generation, bestScore)

            if stagnation >= opts.maxNoImprovementGenerations \
                    and generation >= opts.minGenerations:
                self.log.debug(
                    f'Early stopping at generation {generation}: no '
                    f'improvement for {stagnation} generations')
                break
            if generation == generations - 1:
                break

            if stagnation >= STAGNATION_RESTART \
                    and stagnation % STAGNATION_RESTART == 0:
                evaluated = self.replaceWorst(
                    evaluated, sub, previousSum, theoretical)
            amount = max(
                opts.mutationAmount * math.exp(-3 * generation / generations),
                0.1 * opts.mutationAmount)
            rate = opts.mutationRate
            if self.populationDiversity(evaluated) < LOW_DIVERSITY:
                rate = min(1.0, 1.5 * rate)
            population = self.createNextGeneration(evaluated, rate, amount)

        return bestWith, bestWithout

    def replaceWorst(
            self, evaluated: List[EvaluatedCandidate],
            sub: FrequencyResponse, previousSum: FrequencyResponse,
            theoretical: FrequencyResponse) -> List[EvaluatedCandidate]:
        """Replace the worst 10% of a sorted population by random ones."""
        count = max(1, len(evaluated) // 10)
        fresh = [
            self.evaluateParametersCached(
                sub, previousSum, theoretical, param)
            for param in self.createInitialPopulation(
                count, self.options.withAllPassProbability)]
        evaluated = evaluated[:len(evaluated) - count] + fresh
        evaluated.sort(key=lambda c: c.score, reverse=True)
        return evaluated

    def populationDiversity(
            self, evaluated: List[EvaluatedCandidate]) -> float:
        """
        Spread of the population: the mean of the normalized standard
        deviations of delay and gain and the share of the minority
        polarity.
        """
        if not evaluated:
            return 0.0
        params = [c.param for c in evaluated]
        parts = []
        for values, r in [
                ([p.delay for p in params], self.config.delay),
                ([p.gain for p in params], self.config.gain)]:
            if r.max > r.min:
                parts.append(np.std(values) / (r.max - r.min))
        positive = np.mean([p.polarity == 1 for p in params])
        parts.append(min(positive, 1 - positive))
        return float(np.mean(parts))

    @staticmethod
    def updateBestSolutions(
            evaluated: Sequence[EvaluatedCandidate],
            bestWith: Best, bestWithout: Best) -> Tuple[Best, Best]:
        """Track the best candidates with and without all-pass."""
        for candidate in evaluated:
            if candidate.hasAllPass:
                if bestWith is None or candidate.score > bestWith.score:
                    bestWith = candidate
            elif bestWithout is None or candidate.score > bestWithout.score:
                bestWithout = candidate
        return bestWith, bestWithout

    def stratifiedSample(
            self, params: List[CorrectionParam],
            limit: int) -> List[CorrectionParam]:
        """
        Thin out the parameter list to at most ``limit`` entries, keeping
        the proportion between entries with and without all-pass.
        """
        if len(params) <= limit:
            return params
        disabled = [p for p in params if not p.allPass.enabled]
        enabled = [p for p in params if p.allPass.enabled]
        numDisabled = round(limit * len(disabled) / len(params))
        if disabled:
            numDisabled = max(1, numDisabled)
        numEnabled = limit - numDisabled if enabled else 0
        return evenly(disabled, numDisabled) + evenly(enabled, numEnabled)

    def createHybridPopulation(
            self, coarseBest: CorrectionParam, populationSize: int,
            withAllPassProbability: float) -> List[CorrectionParam]:
        """
        Create a population of mutated copies of the coarse best (40%)
        and random individuals (60%).
        """
        focusedCount = int(0.4 * populationSize)
        population = [
            self.mutate(coarseBest, self.rng.uniform(0.1, 0.4))
            for _ in range(focusedCount)]
        population += self.createInitialPopulation(
            populationSize - focusedCount, withAllPassProbability)
        return population

    def createInitialPopulation(
            self, size: int,
            withAllPassProbability: float) -> List[CorrectionParam]:
        cfg = self.config
        population = []
        for _ in range(size):
            delay = self.randomValue(cfg.delay)
            gain = self.randomValue(cfg.gain)
            polarity = 1 if self.rng.random() < 0.5 else -1
            allPass = AllPass()
            if cfg.allPass.enabled \
                    and self.rng.random() < withAllPassProbability:
                allPass = self.randomAllPass()
            population.append(CorrectionParam(delay, gain, polarity, allPass))
        return population

    def createNextGeneration(
            self, evaluated: List[EvaluatedCandidate],
            mutationRate: float,
            mutationAmount: float) -> List[CorrectionParam]:
        """
        Create the next generation from a population that is sorted
        by descending score.
        """
        size = self.options.populationSize
        eliteCount = min(
            len(evaluated),
            max(1, round(size * self.options.eliteFraction)))
        nextGeneration = [c.param for c in evaluated[:eliteCount]]
        while len(nextGeneration) < size:
            parent1 = self.tournamentSelection(evaluated)
            parent2 = self.tournamentSelection(evaluated)
            if self.rng.random() < 0.5 and parent1 is not parent2:
                child = self.crossover(parent1.param, parent2.param)
            else:
                child = parent1.param
            if self.rng.random() < mutationRate:
                child = self.mutate(child, mutationAmount)
            nextGeneration.append(child)
        return nextGeneration

    def tournamentSelection(
            self, evaluated: List[EvaluatedCandidate]) -> EvaluatedCandidate:
        tournament = [
            self.rng.choice(evaluated)
            for _ in range(self.options.tournamentSize)]
        return max(tournament, key=lambda c: c.score)

    def crossover(
            self, parent1: CorrectionParam,
            parent2: CorrectionParam) -> CorrectionParam:
        """Uniform crossover of two parents into a new child."""
        rnd = self.rng.random
        delay = parent2.delay if rnd() < 0.5 else parent1.delay
        gain = parent2.gain if rnd() < 0.5 else parent1.gain
        polarity = parent2.polarity if rnd() < 0.5 else parent1.polarity
        allPass = parent1.allPass
        if self.config.allPass.enabled:
            if rnd() < 0.2:
                allPass = parent2.allPass
            elif parent1.allPass.enabled and parent2.allPass.enabled:
                if rnd() < 0.5:
                    allPass = allPass._replace(
                        frequency=parent2.allPass.frequency)
                if rnd() < 0.5:
                    allPass = allPass._replace(q=parent2.allPass.q)
        return CorrectionParam(delay, gain, polarity, allPass)

    def mutate(
            self, param: CorrectionParam,
            mutationAmount: float) -> CorrectionParam:
        """Return a mutated copy of the given parameters."""
        cfg = self.config
        delay = self.mutateValue(param.delay, cfg.delay, mutationAmount)
        gain = self.mutateValue(param.gain, cfg.gain, mutationAmount)
        polarity = param.polarity
        if self.rng.random() < 0.1:
            polarity = -polarity
        allPass = param.allPass
        if cfg.allPass.enabled:
            allPass = self.mutateAllPass(allPass, mutationAmount)
        return CorrectionParam(delay, gain, polarity, allPass)

    def mutateValue(
            self, value: float, r: Range, mutationAmount: float,
            probability: float = 0.3) -> float:
        if self.rng.random() >= probability:
            return value
        spread = (r.max - r.min) * mutationAmount
        value += self.rng.uniform(-spread, spread)
        return clamp(snap(value, r.step), r)

    def mutateAllPass(
            self, allPass: AllPass, mutationAmount: float) -> AllPass:
        cfg = self.config.allPass
        if self.rng.random() < 0.1:
            if allPass.enabled:
                allPass = allPass._replace(enabled=False)
            else:
                allPass = self.randomAllPass()
        if allPass.enabled:
            allPass = allPass._replace(
                frequency=self.mutateValue(
                    allPass.frequency, cfg.frequency, mutationAmount),
                q=self.mutateValue(allPass.q, cfg.q, mutationAmount))
        return allPass

    def randomAllPass(self) -> AllPass:
        cfg = self.config.allPass
        return AllPass(
            True, self.randomValue(cfg.frequency), self.randomValue(cfg.q))

    def randomValue(self, r: Range) -> float:
        return clamp(snap(self.rng.uniform(r.min, r.max), r.step), r)

    def localSearch(
            self, sub: FrequencyResponse, previousSum: FrequencyResponse,
            theoretical: FrequencyResponse, candidate: EvaluatedCandidate,
            maxIterations: int) -> EvaluatedCandidate:
        """
        Hill-climb from the candidate. For every step scale, keep moving
        to the best neighbor until no neighbor improves any more.
        """
        best = candidate
        for scale in LOCAL_SEARCH_SCALES:
            for _ in range(maxIterations):
                improved = best
                for param in self.neighbours(best.param, scale):
                    neighbour = self.evaluateParametersCached(
                        sub, previousSum, theoretical, param)
                    if neighbour.score > improved.score:
                        improved = neighbour
                if improved is best:
                    break
                best = improved
        return best

    def neighbours(
            self, param: CorrectionParam,
            scale: float) -> List[CorrectionParam]:
        """Parameters one scaled step away in every direction."""
        cfg = self.config
        result = []
        for sign in (-1, 1):
            step = sign * scale
            result.append(param._replace(delay=clamp(
                param.delay + step * cfg.delay.step, cfg.delay)))
            if cfg.gain.max > cfg.gain.min:
                result.append(param._replace(gain=clamp(
                    param.gain + step * cfg.gain.step, cfg.gain)))
            allPass = param.allPass
            if allPass.enabled:
                apCfg = cfg.allPass
                result.append(param._replace(allPass=allPass._replace(
                    frequency=clamp(
                        allPass.frequency + step * apCfg.frequency.step,
                        apCfg.frequency))))
                result.append(param._replace(allPass=allPass._replace(
                    q=clamp(allPass.q + step * apCfg.q.step, apCfg.q))))
        return [p for p in result if p != param]

    @staticmethod
    def cacheKey(param: CorrectionParam) -> tuple:
        allPass = param.allPass
        return (
            round(param.delay, 7),
            round(param.gain, 3),
            param.polarity,
            allPass.enabled,
            round(allPass.frequency, 2) if allPass.enabled else 0.0,
            round(allPass.q, 3) if allPass.enabled else 0.0)

    def clearCache(self):
        self._cache.clear()

    def evaluateParametersCached(
            self, sub: FrequencyResponse, previousSum: FrequencyResponse,
            theoretical: FrequencyResponse,
            param: CorrectionParam) -> EvaluatedCandidate:
        key = self.cacheKey(param)
        candidate = self._cache.get(key)
        if candidate is not None:
            self.cacheHits += 1
            return candidate
        candidate = self.evaluateParameters(
            sub, previousSum, theoretical, param)
        self._cache[key] = candidate
        if len(self._cache) > CACHE_LIMIT:
            for key in list(self._cache)[:len(self._cache) // 2]:
                del self._cache[key]
        return candidate

    def evaluateParameters(
            self, sub: FrequencyResponse, previousSum: FrequencyResponse,
            theoretical: FrequencyResponse,
            param: CorrectionParam = None) -> EvaluatedCandidate:
        """
        Score the sum of ``previousSum`` and ``sub`` corrected with
        ``param`` (by default the parameters attached to ``sub``).
        """
        if param is None:
            param = sub.param or EMPTY_CONFIG
        self.evaluationCount += 1
        modified = self.calculateResponseWithParams(sub, param)
        response = self.calculateCombinedResponse([modified, previousSum])
        response.param = param
        score = self.calculateQualityScore(response, theoretical) \
            - self.delayPenalty(param.delay)
        return EvaluatedCandidate(
            param, response, float(score), param.allPass.enabled)

    def delayPenalty(self, delay: float) -> float:
        """Quadratic penalty for large delays, at most 2 points."""
        maxDelay = max(abs(self.config.delay.min), abs(self.config.delay.max))
        if maxDelay <= 0:
            return 0.0
        return MAX_DELAY_PENALTY * min(abs(delay) / maxDelay, 1.0) ** 2

    def scoreBreakdown(
            self, response: FrequencyResponse,
            theoretical: FrequencyResponse) -> scoring.QualityScore:
        weights = self.frequencyWeights
        if weights is None or weights.size != response.freqs.size:
            weights = scoring.frequency_weights(response.freqs)
        return scoring.quality_score(
            response.freqs, response.magnitude,
            theoretical.magnitude, weights)

    def calculateQualityScore(
            self, response: FrequencyResponse,
            theoretical: FrequencyResponse) -> float:
        return self.scoreBreakdown(response, theoretical).total

    def calculateFlatnessScore(self, response: FrequencyResponse) -> float:
        return scoring.flatness(response.magnitude)

    def calculateCombinedResponse(
            self, subs: Sequence[FrequencyResponse],
            theoretical: bool = False,
            realisticTheoretical: bool = False) -> FrequencyResponse:
        """
        Sum the responses bin by bin.

        Args:
          subs: Responses on the same frequency grid.
          theoretical: Ignore the phases and sum coherently.
          realisticTheoretical: Use for every response the minimum phase
            of its magnitude. This ignores true differences in arrival
            time between the subwoofers.
        """
        if theoretical and realisticTheoretical:
            raise ValueError(
                'Only one of theoretical and realisticTheoretical '
                'can be requested')
        if not subs:
            raise ValueError('No measurements provided')
        first = subs[0]
        total = None
        for sub in subs:
            if sub.magnitude.size != first.freqs.size:
                raise ValueError('Responses must have the same length')
            if theoretical:
                phase = np.zeros_like(sub.magnitude)
            elif realisticTheoretical:
                phase = FrequencyResponseProcessor.calculateMinimumPhase(
                    sub.magnitude)
            else:
                phase = sub.phase
            polar = PolarSample.fromDb(sub.magnitude, phase)
            total = polar if total is None else total.add(polar)
        return FrequencyResponse(
            first.freqs, total.magnitudeDb, total.phaseDegrees,
            displayName='sum', freqStep=first.freqStep, ppo=first.ppo)

    def calculateResponseWithParams(
            self, sub: FrequencyResponse,
            param: CorrectionParam = None) -> FrequencyResponse:
        """Apply the correction to the response of one subwoofer."""
        if param is None:
            param = sub.param or EMPTY_CONFIG
        polar = PolarSample.fromDb(sub.magnitude, sub.phase) \
            .addGainDb(param.gain) \
            .delay(param.delay, sub.freqs)
        if param.allPass.enabled:
            phaseShift = self.calculateAllPassResponse(
                param.allPass.frequency, param.allPass.q)
            polar = polar.addPhaseDegrees(phaseShift(sub.freqs))
        if param.polarity == -1:
            polar = polar.invertPolarity()
        return replace(
            sub, magnitude=polar.magnitudeDb, phase=polar.phaseDegrees,
            param=param)

    @staticmethod
    def calculateAllPassResponse(
            frequencyHz: float, q: float) -> Callable[[np.ndarray], np.ndarray]:
        """
        Return the phase shift in degrees, as function of frequency, of a
        second-order all-pass filter. The magnitude is not affected.
        """
        if q <= 0:
            raise ValueError(f'All-pass Q must be positive, got {q}')
        w0 = 2 * np.pi * frequencyHz

        def phaseShift(freq):
            w = 2 * np.pi * np.asarray(freq, float)
            return np.degrees(-2 * np.arctan2(w0 * w / q, w0 * w0 - w * w))

        return phaseShift

    @staticmethod
    def calculateImprovementPercentage(
            scoreWithAllPass: Optional[float],
            scoreWithoutAllPass: float) -> Optional[float]:
        if scoreWithAllPass is None \
                or scoreWithAllPass <= 0 or scoreWithoutAllPass <= 0:
            return None
        return round(
            (scoreWithAllPass - scoreWithoutAllPass)
            / scoreWithoutAllPass * 100, 2)

    def chooseBestSolution(
            self, bestWithAllPass: Best,
            bestWithoutAllPass: EvaluatedCandidate) -> EvaluatedCandidate:
        """
        Prefer the simpler solution without all-pass, unless the all-pass
        solution scores at least 2% better.
        """
        if bestWithAllPass is not None:
            without = bestWithoutAllPass.score
            threshold = without + ALL_PASS_THRESHOLD * abs(without)
            if bestWithAllPass.score > threshold:
                self.log.info(
                    'Using all-pass filter for significant improvement')
                return bestWithAllPass
        return bestWithoutAllPass

    def checkDelayBoundaries(self, sub: FrequencyResponse) -> bool:
        """Warn if the delay is at the edge of the configured range."""
        delay = sub.param.delay
        r = self.config.delay
        margin = r.step / 2
        if delay >= r.max - margin or delay <= r.min + margin:
            self.log.warn(
                f'Optimal delay for {sub.displayName} is at the edge: '
                f'{delay * 1000:.2f}ms. This may indicate that the delay '
                'range is too narrow.')
            return True
        return False

    def getFinalSubSum(self) -> FrequencyResponse:
        """
        Sum the full, unclipped responses of all subwoofers with their
        optimized parameters.
        """
        if not self.optimizedSubs:
            raise RuntimeError('Subwoofers have not been optimized yet')
        first, *others = self.subMeasurements
        responses = [first.withParam(EMPTY_CONFIG)]
        for original in others:
            found = next((
                sub for sub in self.optimizedSubs
                if sub.measurementId == original.measurementId), None)
            if found is None:
                raise ValueError(
                    f'Sub {original.displayName} not found in optimized subs')
            responses.append(
                self.calculateResponseWithParams(original, found.param))
        return self.calculateCombinedResponse(responses)

    def logComparisonResults(
            self, sub: FrequencyResponse, bestWithAllPass: Best,
            bestWithoutAllPass: EvaluatedCandidate,
            improvementPercentage: Optional[float], method: str):
        if bestWithAllPass is None:
            return
        improvement = 'N/A' if improvementPercentage is None \
            else f'{improvementPercentage}%'
        self.log.info(
            f'Sub {sub.displayName} {method} optimization results:\n'
            f'    - Best without all-pass: Score '
            f'{bestWithoutAllPass.score:.2f}\n'
            f'    - Best with all-pass: Score {bestWithAllPass.score:.2f}\n'
            f'    - Improvement with all-pass: {improvement}')

    def logResults(self, executionTime: float, result: OptimizationResult):
        self.log.info('Optimized parameters:')
        for sub in result.optimizedSubs:
            param = sub.param
            allPass = 'allpass: disabled'
            if param.allPass.enabled:
                allPass = (
                    f'allpass: freq: {param.allPass.frequency}Hz '
                    f'Q: {param.allPass.q}')
            self.log.info(
                f'{sub.displayName} inverted: {param.polarity == -1} '
                f'delay: {param.delay * 1000:.2f}ms '
                f'gain: {param.gain:.2f}dB {allPass}')
        self.log.info(f'Execution time: {executionTime:.3f}s')
        self.log.info(f'Best score: {result.bestScore:.2f}')
        self.log.info(
            f'Flatness: {self.calculateFlatnessScore(result.bestSum):.2f}')
        self.log.success('Optimization completed')


def grid(r: Range, stepFactor: float = 1) -> List[float]:
    """Values from ``r.min`` to ``r.max`` in steps of ``r.step * stepFactor``."""
    step = r.step * stepFactor
    if step <= 0 or r.max <= r.min:
        return [float(r.min)]
    count = int(math.floor((r.max - r.min) / step + 0.5)) + 1
    decimals = max(0, -math.floor(math.log10(step))) + 3
    return [
        min(round(r.min + i * step, decimals), r.max) for i in range(count)]


def snap(value: float, step: float) -> float:
    return round(value / step) * step if step > 0 else value


def clamp(value: float, r: Range) -> float:
    return min(max(value, r.min), r.max)


def evenly(items: list, count: int) -> list:
    """Pick ``count`` items spread evenly over the list."""
    if count >= len(items):
        return list(items)
    if count <= 0:
        return []
    indices = np.unique(np.linspace(0, len(items) - 1, count).round())
    return [items[int(i)] for i in indices]

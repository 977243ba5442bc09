import argparse
import logging
import sys

import subalign as sa


def parseArgs(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='subalign',
        description='Align multiple subwoofers for the smoothest sum.')
    parser.add_argument(
        'responses', nargs='+', metavar='RESPONSE',
        help='Text file with freq, magnitude and phase columns, '
        'the first one is the reference')
    parser.add_argument('--fmin', type=float, default=20, help='Hz')
    parser.add_argument('--fmax', type=float, default=200, help='Hz')
    parser.add_argument('--delay-min', type=float, default=-5, help='ms')
    parser.add_argument('--delay-max', type=float, default=5, help='ms')
    parser.add_argument('--delay-step', type=float, default=0.01, help='ms')
    parser.add_argument('--gain-min', type=float, default=0, help='dB')
    parser.add_argument('--gain-max', type=float, default=0, help='dB')
    parser.add_argument('--gain-step', type=float, default=0.1, help='dB')
    parser.add_argument(
        '--allpass', action='store_true', help='Try all-pass filters')
    parser.add_argument(
        '--seed', type=int, help='Seed for a reproducible search')
    parser.add_argument(
        '-o', '--output', help='Write the optimized sum to this file')
    parser.add_argument('-v', '--verbose', action='store_true')
    return parser.parse_args(argv)


def makeConfig(args: argparse.Namespace) -> sa.OptimizationConfig:
    return sa.DEFAULT_CONFIG._replace(
        frequency=sa.Range(args.fmin, args.fmax),
        gain=sa.Range(args.gain_min, args.gain_max, args.gain_step),
        delay=sa.Range(
            args.delay_min / 1000, args.delay_max / 1000,
            args.delay_step / 1000),
        allPass=sa.DEFAULT_CONFIG.allPass._replace(enabled=args.allpass))


def run(args: argparse.Namespace) -> int:
    responses = [sa.read_response(path) for path in args.responses]
    rng = sa.XorShiftRandom(args.seed) if args.seed is not None else None
    optimizer = sa.MultiSubOptimizer(responses, makeConfig(args), rng=rng)
    result = optimizer.optimizeSubwoofers()

    for sub, analysis in zip(
            result.optimizedSubs, result.comparativeAnalysis):
        param = sub.param
        line = (
            f'{sub.displayName}: delay {param.delay * 1000:.3f}ms, '
            f'gain {param.gain:.2f}dB, '
            f'{"inverted" if param.polarity == -1 else "normal"}')
        if param.allPass.enabled:
            line += (
                f', all-pass {param.allPass.frequency:g}Hz '
                f'Q {param.allPass.q:g}')
        if analysis.improvementPercentage is not None:
            line += f' (all-pass gain {analysis.improvementPercentage}%)'
        print(line)
    print(f'Score: {result.bestScore:.2f}')

    if args.output:
        sa.write_response(args.output, optimizer.getFinalSubSum())
    return 0


def main(argv=None) -> int:
    args = parseArgs(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(message)s')
    try:
        return run(args)
    except (ValueError, OSError) as exc:
        logging.getLogger('subalign').error(str(exc))
        return 1


if __name__ == '__main__':
    sys.exit(main())

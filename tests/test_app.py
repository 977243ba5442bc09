import numpy as np
import pytest

import subalign as sa
from subalign import app

FREQS = np.arange(20.0, 151.0)


def write_sub(path, phase):
    sa.write_response(str(path), sa.FrequencyResponse(
        FREQS, np.full(FREQS.size, 80.0), np.full(FREQS.size, phase),
        measurementId=path.stem, displayName=path.stem))
    return str(path)


def test_make_config():
    args = app.parseArgs([
        'a.txt', 'b.txt', '--delay-min', '-2', '--delay-max', '3',
        '--delay-step', '0.05', '--allpass'])
    config = app.makeConfig(args)
    assert config.delay.min == pytest.approx(-0.002)
    assert config.delay.max == pytest.approx(0.003)
    assert config.delay.step == pytest.approx(0.00005)
    assert config.allPass.enabled
    assert config.frequency == sa.Range(20, 200)


def test_main(tmp_path, capsys):
    sub1 = write_sub(tmp_path / 'sub1.txt', 0)
    sub2 = write_sub(tmp_path / 'sub2.txt', 180)
    output = tmp_path / 'sum.txt'
    code = app.main([
        sub1, sub2, '--fmin', '20', '--fmax', '150',
        '--delay-min', '-1', '--delay-max', '1', '--delay-step', '0.1',
        '--seed', '3', '-o', str(output)])
    assert code == 0
    out = capsys.readouterr().out
    assert 'sub2: delay' in out
    assert '0.000ms' in out
    assert 'inverted' in out
    total = sa.read_response(str(output))
    np.testing.assert_allclose(
        total.magnitude, 80 + 20 * np.log10(2), atol=1e-3)


def test_main_needs_two_responses(tmp_path):
    sub1 = write_sub(tmp_path / 'sub1.txt', 0)
    assert app.main([sub1]) == 1


def test_main_missing_file(tmp_path):
    sub1 = write_sub(tmp_path / 'sub1.txt', 0)
    assert app.main([sub1, str(tmp_path / 'nope.txt')]) == 1

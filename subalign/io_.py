from pathlib import Path
from typing import Optional

from subalign.models import FrequencyResponse


def format_response(response: FrequencyResponse) -> str:
    """
    Format the response as text with one ``freq magnitude phase``
    line per frequency.
    """
    return '\n'.join(
        f'{freq:.6f}  {mag:.3f} {phase:.4f}'
        for freq, mag, phase in zip(
            response.freqs, response.magnitude, response.phase))


def write_response(path: str, response: FrequencyResponse):
    """
    Write response to a text file, preceded by a header with the name
    and measurement identifier.
    """
    header = [
        f'* {response.displayName or "response"}',
        f'* measurement: {response.measurementId}',
        '* Freq(Hz) SPL(dB) Phase(degrees)']
    with open(path, 'w') as f:
        f.write('\n'.join(header) + '\n')
        f.write(format_response(response) + '\n')


def read_response(
        path: str, measurementId: Optional[str] = None,
        displayName: Optional[str] = None) -> FrequencyResponse:
    """
    Read a response from a text file with whitespace separated
    ``freq magnitude [phase]`` columns. Comment lines starting with ``*``
    and lines whose leading columns can't be parsed are skipped; extra
    columns are ignored and a missing phase is 0.

    Params:
      path: Filename of the text file.
      measurementId: Identifier of the measurement, default is the
        file stem.
      displayName: Name to show, default is the file stem.
    """
    freqs, mags, phases = [], [], []
    with open(path, 'r') as f:
        for line in f.readlines():
            if line.lstrip().startswith('*'):
                continue
            try:
                values = [
                    float(v) for v in line.replace(',', ' ').split()[:3]]
            except ValueError:
                continue
            if len(values) < 2:
                continue
            freqs.append(values[0])
            mags.append(values[1])
            phases.append(values[2] if len(values) > 2 else 0.0)
    stem = Path(path).stem
    return FrequencyResponse(
        freqs, mags, phases,
        measurementId=measurementId or stem,
        displayName=displayName or stem)

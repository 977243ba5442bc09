import logging
from typing import List

SUCCESS = 25
logging.addLevelName(SUCCESS, 'SUCCESS')


class OptimizerLog:
    """
    Default narration sink of the optimizer. Messages go to the
    ``subalign`` logger and are also kept, so that the whole narration
    can be shown to the user afterwards.

    Any object with ``info``, ``warn``, ``success`` and ``debug``
    methods can be used in its place.
    """

    def __init__(self, logger: logging.Logger = None):
        self.logger = logger or logging.getLogger('subalign')
        self.lines: List[str] = []

    @property
    def text(self) -> str:
        return '\n'.join(self.lines)

    def _log(self, level: int, message: str):
        self.lines.append(message)
        self.logger.log(level, message)

    def info(self, message: str):
        self._log(logging.INFO, message)

    def warn(self, message: str):
        self._log(logging.WARNING, message)

    def success(self, message: str):
        self._log(SUCCESS, message)

    def debug(self, message: str):
        self.logger.debug(message)

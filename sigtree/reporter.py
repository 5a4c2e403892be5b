"""
Progress reporting for the verification pipeline.

The pipeline announces each stage to an injected Reporter. The default is
silent; LoggingReporter narrates through the standard logging module.
"""

import logging
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class Step(Protocol):
    def start(self, msg: Optional[str] = None) -> None: ...
    def update(self, msg: str) -> None: ...
    def success(self, msg: str) -> None: ...
    def fail(self, msg: str) -> None: ...


class Reporter(Protocol):
    def step(self, title: str) -> Step: ...
    def error(self, exc: BaseException) -> None: ...


class NullStep:
    def start(self, msg: Optional[str] = None) -> None:
        return

    def update(self, msg: str) -> None:
        return

    def success(self, msg: str) -> None:
        return

    def fail(self, msg: str) -> None:
        return


class NullReporter:
    def step(self, title: str) -> Step:
        return NullStep()

    def error(self, exc: BaseException) -> None:
        return


class LoggingStep:
    def __init__(self, prefix: str, log: logging.Logger):
        self.prefix = prefix
        self._log = log

    def _fmt(self, msg: Optional[str]) -> str:
        return f"{self.prefix}: {msg}" if msg else self.prefix

    def start(self, msg: Optional[str] = None) -> None:
        self._log.info(self._fmt(msg))

    def update(self, msg: str) -> None:
        self._log.debug(self._fmt(msg))

    def success(self, msg: str) -> None:
        self._log.info("%s [ok]", self._fmt(msg))

    def fail(self, msg: str) -> None:
        self._log.error("%s [failed]", self._fmt(msg))


class LoggingReporter:
    """Numbers each step and writes its progress to a logger."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger
        self.n = 0
        self.last: Optional[LoggingStep] = None

    def step(self, title: str) -> LoggingStep:
        self.n += 1
        self.last = LoggingStep(f"{self.n}. {title}", self._log)
        return self.last

    def error(self, exc: BaseException) -> None:
        if self.last is not None:
            self.last.fail(str(exc))
        else:
            self._log.error("verification failed: %s", exc)


def new_reporter(r: Optional[Reporter]) -> Reporter:
    return r if r is not None else NullReporter()


__all__ = [
    "Step",
    "Reporter",
    "NullStep",
    "NullReporter",
    "LoggingStep",
    "LoggingReporter",
    "new_reporter",
]

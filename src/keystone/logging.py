"""
structlog setup for Keystone.

Every sync run tags its log lines with the run id, the job being run
(sheet, mail, nudges, all) and the account owner. Those values live in
context variables so concurrent jobs under asyncio.gather keep their own
tags. The API switches to JSON rendering at startup; everything else
(tests, scripts) gets the console renderer.
"""

import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

import structlog
from structlog.types import Processor

from .config import config

_RUN_CONTEXT: dict[str, ContextVar[str | None]] = {
    key: ContextVar(f'keystone_{key}', default=None)
    for key in ('run_id', 'job', 'owner_email')
}


def get_run_id() -> str | None:
    return _RUN_CONTEXT['run_id'].get()


def get_job() -> str | None:
    return _RUN_CONTEXT['job'].get()


def get_owner_email() -> str | None:
    return _RUN_CONTEXT['owner_email'].get()


def add_context_info(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """structlog processor: copy whichever run tags are set onto the event."""
    for key, var in _RUN_CONTEXT.items():
        value = var.get()
        if value:
            event_dict[key] = value
    return event_dict


def configure_logging(
    json_output: bool = False,
    log_level: str | None = None,
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        json_output: Render one JSON object per line instead of coloured console output.
        log_level: Level name; falls back to LOG_LEVEL from the environment.
    """
    level_num = getattr(logging, (log_level or config.LOG_LEVEL).upper(), logging.INFO)
    logging.basicConfig(format='%(message)s', stream=sys.stdout, level=level_num)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_context_info,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt='iso'),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def logging_context(
    run_id: str | None = None,
    job: str | None = None,
    owner_email: str | None = None,
) -> Iterator[None]:
    """
    Tag every log line emitted inside the block.

    Only the arguments given are changed; on exit the previous tags come back,
    so nested blocks behave as expected:

        with logging_context(run_id=run_id, job='all'):
            with logging_context(job='mail'):
                logger.info('ingest.started')   # run_id kept, job='mail'
    """
    values = {'run_id': run_id, 'job': job, 'owner_email': owner_email}
    tokens = [
        (_RUN_CONTEXT[key], _RUN_CONTEXT[key].set(value))
        for key, value in values.items()
        if value is not None
    ]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


class PipelineTimer:
    """
    Wall-clock milliseconds per named stage of one reconcile or ingest run.

        timer = PipelineTimer()
        with timer.stage('fetch'):
            values = await sheets.read_values(...)
        result.stage_timings = timer.summary()['stages']

    A stage is recorded even when its body raises.
    """

    def __init__(self):
        self.stages: dict[str, float] = {}
        self._started = time.perf_counter()

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        began = time.perf_counter()
        try:
            yield
        finally:
            self.stages[name] = (time.perf_counter() - began) * 1000

    @property
    def total_ms(self) -> float:
        return (time.perf_counter() - self._started) * 1000

    def summary(self) -> dict[str, Any]:
        return {
            'total_ms': round(self.total_ms, 2),
            'stages': {name: round(ms, 2) for name, ms in self.stages.items()},
        }


configure_logging(json_output=False)

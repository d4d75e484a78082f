"""
Logging Configuration
=====================
Attaches output handlers to the 'paperfold' logger.

Every module logs through `logging.getLogger(__name__)`, so the records of
'paperfold.model.stack', 'paperfold.controller.paper_manager' and the rest all
propagate here. What the levels mean for the folding core:

* DEBUG - per-step detail: split children, deferred problem edges, LUG
  component operations.
* INFO - committed edits and folds, with the step they were committed at.
* WARNING - rejected operations (bad ids, conflicting annotations).
* ERROR - aborted operations whose invariants broke, with the involved ids.

Library users that configure logging themselves never need this module; the
CLI and the dev runner call it once at start-up.
"""
import logging
import sys
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%H:%M:%S'


def _attach(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Send the folding core's log records to stdout and, optionally, a file.

    Repeated calls replace the handlers of earlier calls, so a test session
    that also runs the CLI does not print every record twice.

    Args:
        level: Threshold for the 'paperfold' logger and its handlers.
        log_file: Path of a log file, truncated on each call.
    """
    logger = logging.getLogger("paperfold")
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    _attach(logger, logging.StreamHandler(sys.stdout), level)
    if log_file:
        _attach(logger, logging.FileHandler(log_file, mode='w', encoding='utf-8'), level)

    logger.info(f"Logging initialized at {logging.getLevelName(level)}.")

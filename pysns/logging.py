"""Package logger and the stage state dump used by the deployment pipeline."""

import logging
import time

from pprintpp import pformat

__all__ = ["logger", "log_state", "set_verbosity"]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("PySNS")

_handler = logging.StreamHandler()
_handler.setFormatter(logging.Formatter(LOG_FORMAT))
logger.addHandler(_handler)

# Collaborators that are the same for every stage of a run.
_SHARED_ATTRIBUTES = ("context", "config", "sleep")


def set_verbosity(verbose: bool):
    """Switch the package logger between INFO and DEBUG."""
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def _stage_state(stage) -> str:
    state = {k: v for k, v in vars(stage).items() if k not in _SHARED_ATTRIBUTES}
    return pformat(state, indent=2)


def log_state(func):
    """Log a stage's own attributes once its method returns or raises.

    The dump goes to DEBUG on success and to WARNING on failure, along with the
    time spent in the call. Exceptions are re-raised unchanged.
    """

    def wrapper(stage, *args, **kwargs):
        name = f"{stage.__class__.__name__}.{func.__name__}"
        start = time.monotonic()
        try:
            output = func(stage, *args, **kwargs)
        except Exception:
            logger.warning(
                f"Stage {name} failed after {time.monotonic() - start:.1f}s, "
                f"state:\n {_stage_state(stage)}"
            )
            raise
        logger.debug(
            f"Stage {name} done in {time.monotonic() - start:.1f}s, "
            f"state:\n {_stage_state(stage)}"
        )
        return output

    wrapper.__name__ = func.__name__
    wrapper.__doc__ = func.__doc__
    return wrapper

import contextvars
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict

import pandas as pd
import rpy2.robjects as ro
from rpy2.robjects import pandas2ri
from rpy2.robjects.conversion import localconverter

logger = logging.getLogger(__name__)


@contextmanager
def context_wrapper():
    ctx = contextvars.copy_context()
    yield lambda func, *args, **kwargs: ctx.run(func, *args, **kwargs)


def _describe(value: Any) -> str:
    """Short description of an argument, tables are summarised by their shape."""
    if isinstance(value, (pd.DataFrame, pd.Series)):
        return f"<{type(value).__name__} {value.shape}>"
    return repr(value)


def run_func_dict(kwargs: Dict, func: Callable) -> Any:
    """
    Run func with keyword arguments, as needed by parallelize_map. Conversion
        between pandas and R objects is enabled for the duration of the call.
        Exceptions are logged instead of raised, so that a failing job does not
        stop the remaining ones.
    """
    args_str = ", ".join(f"{k}={_describe(v)}" for k, v in kwargs.items())
    logger.info(f"Starting execution of {func.__name__} with arguments: {args_str}")
    try:
        with localconverter(ro.default_converter + pandas2ri.converter):
            with context_wrapper() as run_in_context:
                result = run_in_context(func, **kwargs)
                logger.info(f"Successfully executed {func.__name__}")
                return result
    except Exception as e:
        logger.error(f"Error occurred while executing {func.__name__}: {e}")
        logger.debug("Traceback:", exc_info=True)

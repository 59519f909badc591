import os
from functools import partial
from typing import Any, Dict

import typeguard

# https://github.com/python/typing/issues/182#issuecomment-199532520
JsonDict = Dict[str, Any]

E8S_PER_TOKEN = 100_000_000


def typechecked(func=None, *args, **kwargs):
    if os.getenv("PYSNS_NO_TYPE_CHECK", "False").lower() in ("true", "1"):
        if func is None:
            return partial(typechecked, *args, **kwargs)
        return func
    return typeguard.typechecked(func, *args, **kwargs)


def format_tokens(e8s: int) -> str:
    """Render an e8s amount as a decimal token string, e.g. ``150000000 -> "1.5"``."""
    sign = "-" if e8s < 0 else ""
    whole, frac = divmod(abs(e8s), E8S_PER_TOKEN)
    if frac == 0:
        return f"{sign}{whole}"
    return f"{sign}{whole}.{frac:08d}".rstrip("0")

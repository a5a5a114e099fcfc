"""RFC 8785 JSON Canonicalization Scheme (JCS) wrapper.

Delegates serialisation to the ``jcs`` library (a Python implementation of
RFC 8785). Inputs are checked against the supported JSON value set first so
that every rejection surfaces as an :class:`EncodingError` with a path to
the offending value.
"""

import math
from typing import Any

import jcs as _jcs

from .errors import EncodingError

# Largest integer an IEEE-754 double (and so any JCS verifier) reproduces exactly.
MAX_SAFE_INTEGER = 2**53 - 1


def _check(value: Any, path: str, seen: set[int]) -> None:
    if value is None or isinstance(value, (bool, str)):
        return
    if isinstance(value, int):
        if abs(value) > MAX_SAFE_INTEGER:
            raise EncodingError(f"Integer at {path} exceeds the safe range")
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            raise EncodingError(f"Non-finite number at {path}")
        return
    if isinstance(value, (dict, list, tuple)):
        if id(value) in seen:
            raise EncodingError(f"Cyclic reference at {path}")
        seen.add(id(value))
        if isinstance(value, dict):
            for key, item in value.items():
                if not isinstance(key, str):
                    raise EncodingError(
                        f"Non-string key {key!r} at {path}"
                    )
                _check(item, f"{path}.{key}", seen)
        else:
            for index, item in enumerate(value):
                _check(item, f"{path}[{index}]", seen)
        seen.discard(id(value))
        return
    raise EncodingError(
        f"Unsupported value of type {type(value).__name__} at {path}"
    )


def canonicalize(obj: Any) -> bytes:
    """Canonicalize a JSON-like value to UTF-8 bytes per RFC 8785.

    Args:
        obj: A finite, acyclic value built from dicts (str keys),
            lists/tuples, str, int, finite float, bool and None.

    Returns:
        Canonical JSON encoded as UTF-8 bytes.

    Raises:
        EncodingError: If the input cannot be canonicalized.
    """
    _check(obj, "$", set())
    try:
        return _jcs.canonicalize(obj)
    except Exception as e:
        raise EncodingError(f"Canonicalization failed: {e}") from e

"""Core value definitions for resolved site data.

This module defines the JSON value type used everywhere a resolved
data source value crosses the engine boundary: cached response bodies,
distilled values, page payloads and generated files.

It also provides utilities for recursively normalizing arbitrary runtime
objects into strict JSON-compatible values and for producing the
canonical JSON encoding used for hashing and comparisons.
"""

from collections.abc import Mapping, Sequence
from json import dumps
from typing import Any

from pydantic import BaseModel

#: Scalars represent atomic JSON values.
type Scalar = str | int | float | bool

#: A JSON value is considered resolved: it can be serialized as is
#: and safely consumed by encoders, decoders and output writers.
type Json = Scalar | Sequence['Json'] | Mapping[str, 'Json'] | None

#: A value in runtime represents any Python object produced by user
#: callables (mappers, encoders) prior to normalization into `Json`.
type RuntimeValue = Any

MAPPINGS = (dict,)
SCALARS = (str, int, float, bool)
SEQUENCES = (list, tuple)


def _normalize_key(value: RuntimeValue) -> str:
    """Validate and normalize a mapping key.

    Args:
        value: Candidate mapping key.

    Returns:
        The validated key as a string.

    Raises:
        TypeError: If the provided key is not a string.
    """
    if not isinstance(value, str):
        raise TypeError(f'Can not use {value!r} as JSON object key')

    return value


def normalize(value: RuntimeValue) -> Json:
    """Recursively normalize a runtime value into a `Json` value.

    Tuples become lists and Pydantic models are dumped in JSON mode.

    Args:
        value: Runtime value to normalize.

    Returns:
        A fully normalized JSON-compatible value.

    Raises:
        TypeError: If the value type is unsupported.
    """
    if value is None:
        return None

    if isinstance(value, SCALARS):
        return value

    if isinstance(value, BaseModel):
        return normalize(value.model_dump(mode='json'))

    if isinstance(value, MAPPINGS):
        return {
           _normalize_key(key): normalize(item)
           for key, item in value.items()
        }

    if isinstance(value, SEQUENCES):
        return [
            normalize(item)
            for item in value
        ]

    raise TypeError(f'{value!r} has unsupported type')


def canonical(value: RuntimeValue) -> str:
    """Encode a value as canonical JSON.

    Object keys are sorted and separators are compact, so two
    structurally equal values always produce the same string.

    Args:
        value: Runtime value to encode.

    Returns:
        Canonical JSON string.

    Raises:
        TypeError: If the value can not be normalized.
    """
    return dumps(
        normalize(value),
        ensure_ascii=False,
        separators=(',', ':'),
        sort_keys=True,
    )


def compact(value: RuntimeValue) -> str:
    """Encode a value as compact JSON, keeping the order of object keys."""
    return dumps(
        normalize(value),
        ensure_ascii=False,
        separators=(',', ':'),
    )

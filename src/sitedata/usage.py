"""Tracking of the JSON parts consumed by decoders.

Every decoder reports a projection of its input: the minimal part of
the value it actually looked at. Projections of several decoders applied
to the same cached response are merged, and the merged projection is
used to strip the response before it is persisted, so the output keeps
the union of the fields the decoders need and nothing else.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sitedata.values import Json


class Projection:
    """Base class of projections."""

    def materialize(self) -> 'Json':
        """Build the stripped JSON value described by the projection."""
        raise NotImplementedError


@dataclass(frozen=True)
class Unused(Projection):
    """Nothing of the value was consumed."""

    def materialize(self) -> 'Json':
        """Unused values are encoded as `null`."""
        return None


@dataclass(frozen=True)
class Whole(Projection):
    """The complete value was consumed."""

    value: 'Json'

    def materialize(self) -> 'Json':
        """Return the original value."""
        return self.value


@dataclass(frozen=True)
class Fields(Projection):
    """Some fields of an object were consumed."""

    fields: 'Mapping[str, Projection]' = field(default_factory=dict)

    def materialize(self) -> 'Json':
        """Build an object with the consumed fields only."""
        return {
            name: projection.materialize()
            for name, projection in self.fields.items()
        }


@dataclass(frozen=True)
class Items(Projection):
    """Some items of an array were consumed.

    The array keeps its original length; items never looked at are
    replaced with `null` so that indexes stay stable.
    """

    items: 'Mapping[int, Projection]' = field(default_factory=dict)
    length: int = 0

    def materialize(self) -> 'Json':
        """Build an array with the consumed items only."""
        return [
            self.items.get(position, UNUSED).materialize()
            for position in range(self.length)
        ]


@dataclass(frozen=True)
class Raw(Projection):
    """The raw body (text or bytes) was consumed as is."""

    def materialize(self) -> 'Json':
        """Raw bodies are not JSON values."""
        raise TypeError('Raw bodies can not be materialized as JSON')


UNUSED = Unused()
RAW = Raw()


def merge(left: Projection, right: Projection) -> Projection:  # noqa: PLR0911
    """Merge two projections of the same value.

    Args:
        left: First projection.
        right: Second projection.

    Returns:
        A projection covering everything consumed by either side.
    """
    if isinstance(left, Raw) or isinstance(right, Raw):
        return RAW

    if isinstance(left, Unused):
        return right

    if isinstance(right, Unused):
        return left

    if isinstance(left, Whole):
        return left

    if isinstance(right, Whole):
        return right

    if isinstance(left, Fields) and isinstance(right, Fields):
        fields = dict(left.fields)
        for name, projection in right.fields.items():
            fields[name] = merge(fields.get(name, UNUSED), projection)
        return Fields(fields)

    if isinstance(left, Items) and isinstance(right, Items):
        items = dict(left.items)
        for position, projection in right.items.items():
            items[position] = merge(items.get(position, UNUSED), projection)
        return Items(items, max(left.length, right.length))

    raise ShapeMismatchError(left, right)


class ShapeMismatchError(ValueError):
    """Raised when projections of incompatible shapes are merged."""

    def __init__(self, left: Projection, right: Projection) -> None:
        """Initialize the error with both projections."""
        self.left = left
        self.right = right

        super().__init__(f'Can not merge {type(left).__name__} with {type(right).__name__}')


#: Usage of cached responses, keyed by request hash.
type Usage = dict[str, Projection]


def merge_usage(*usages: 'Mapping[str, Projection]') -> Usage:
    """Merge per-request usages of several resolved data sources."""
    result: Usage = {}
    for usage in usages:
        for key, projection in usage.items():
            result[key] = merge(result.get(key, UNUSED), projection)

    return result

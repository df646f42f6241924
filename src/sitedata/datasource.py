"""Declarative data source expressions.

A data source describes a value to compute, possibly requiring
host-performed requests. It is a closed set of immutable node types:

- `Pure`: an already resolved value;
- `Fail`: a permanent, non-retryable failure;
- `RequestSource`: one raw request and the decoder of its response;
- `Map`: a transformation of a resolved value;
- `Combine`: a fixed list of independent sources;
- `AndThen`: a dependent continuation whose next source is only known
  once the previous value is resolved;
- `Distill`: a value persisted under a small stable key instead of the
  raw responses it was computed from.

Nodes do nothing on their own; they are interpreted by
`sitedata.core.resolver.resolve` against a response cache.
"""

from collections.abc import Callable, Sequence
from typing import Any, Literal

from pydantic import Field

from sitedata.decoders import Decoder
from sitedata.models import SchemaModel
from sitedata.names import DistillKey  # noqa: TC001
from sitedata.request import Request  # noqa: TC001
from sitedata.secrets import RequestTemplate, masked
from sitedata.values import Json, RuntimeValue

#: How a raw response body is presented to the decoder.
Expect = Literal['json', 'string', 'bytes', 'whatever']


class DataSource(SchemaModel):
    """Base class of data source expression nodes."""

    def map(self, function: Callable[[Any], Any]) -> 'Map':
        """Transform the resolved value."""
        return Map(source=self, function=function)

    def and_then(self, function: 'Callable[[Any], DataSource]') -> 'AndThen':
        """Continue with a source built from the resolved value."""
        return AndThen(source=self, function=function)

    def distill(self, key: str, encode: Callable[[Any], Json],
                decoder: Decoder[Any]) -> 'Distill':
        """Persist the resolved value under a stable key.

        Args:
            key: Stable key of the distilled value.
            encode: Encoder of the value into JSON.
            decoder: Decoder of the encoded JSON back into the value.

        Returns:
            A `Distill` node wrapping this source.
        """
        return Distill(key=key, source=self, encode=encode, decoder=decoder)


class Pure(DataSource):
    """Already resolved value."""

    value: RuntimeValue = Field(
        default=None,
        title='Value',
        description='The resolved value.',
    )


class Fail(DataSource):
    """Permanent failure with a user-provided message."""

    message: str = Field(
        title='Message',
        description='Human-readable failure message.',
    )


class RequestSource(DataSource):
    """Raw request and the decoder applied to its response."""

    request: Request = Field(
        title='Request',
        description='Masked request whose response is decoded.',
    )

    decoder: Decoder[Any] = Field(
        title='Decoder',
        description='Decoder applied to the response body.',
    )

    expect: Expect = Field(
        default='json',
        title='Expectation',
        description=(
            'How the body is presented to the decoder: parsed JSON, '
            'text, bytes, or ignored (`whatever`).'
        ),
    )


class Map(DataSource):
    """Transformation of a resolved value."""

    source: DataSource
    function: Callable[[Any], Any]


class Combine(DataSource):
    """Independent sources resolved together into a list."""

    sources: tuple[DataSource, ...] = ()


class AndThen(DataSource):
    """Dependent continuation of a resolved value."""

    source: DataSource
    function: Callable[[Any], DataSource]


class Distill(DataSource):
    """Value persisted under a stable key."""

    key: DistillKey
    source: DataSource
    encode: Callable[[Any], Json]
    decoder: Decoder[Any]


def succeed(value: RuntimeValue = None) -> Pure:
    """Build a resolved source."""
    return Pure(value=value)


def fail(message: str) -> Fail:
    """Build a failing source."""
    return Fail(message=message)


def request(request: Request | RequestTemplate, decoder: Decoder[Any],
            expect: Expect = 'json') -> RequestSource:
    """Build a source decoding the response of a request.

    Request templates referencing secrets are masked first.
    """
    return RequestSource(request=masked(request), decoder=decoder, expect=expect)


def combine(sources: Sequence[DataSource]) -> Combine:
    """Resolve several sources into a list of values."""
    return Combine(sources=tuple(sources))


def map2[A, B, T](function: Callable[[A, B], T],
                  first: DataSource, second: DataSource) -> Map:
    """Combine two sources with a function."""
    return combine((first, second)).map(lambda values: function(*values))


def resolve_all(source: DataSource) -> AndThen:
    """Flatten a source of a list of sources into a source of a list."""
    return source.and_then(lambda sources: combine(sources))


def from_result(ok: bool, value: RuntimeValue) -> Pure | Fail:  # noqa: FBT001
    """Build a source from a result pair.

    Args:
        ok: Whether the result is a success.
        value: The value on success, the failure message otherwise.

    Returns:
        A `Pure` or `Fail` node.
    """
    if ok:
        return succeed(value)

    return fail(str(value))

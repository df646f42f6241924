"""Interpretation of data source expressions against a response cache.

`resolve` is a pure, synchronous function: given a data source and the
responses known so far, it returns one of three statuses:

- `Complete`: the value is resolved; it carries the usage of every
  cached response it consumed and the distilled values it produced;
- `Incomplete`: the value depends on requests that are not answered
  yet; it carries every such request discoverable without more answers;
- `Failure`: the value can never be resolved; it carries the errors
  (the first one is the reason reported to the user) and the requests
  of sibling branches that are still discoverable.

Requests hidden behind an unresolved `AndThen` are never reported: they
only become known once the value they depend on is resolved.
"""

from dataclasses import dataclass, field
from json import JSONDecodeError, loads
from typing import TYPE_CHECKING, Any, Protocol

from sitedata.datasource import AndThen, Combine, DataSource, Distill, Fail, Map, Pure, RequestSource
from sitedata.errors import (
    DecodeError,
    DecoderFailure,
    DistillKeyCollisionError,
    ExplicitFailure,
    MissingSecretError,
    ResolutionError,
)
from sitedata.usage import RAW, UNUSED, Usage, merge_usage
from sitedata.values import canonical

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from sitedata.core.cache import Response
    from sitedata.request import Request


class ResponseLookup(Protocol):
    """Read access to answered requests."""

    def get(self, key: str) -> 'Response | None':
        """Stored response of a hash (or distill key)."""


@dataclass(frozen=True)
class Complete:
    """Resolved value."""

    value: Any
    usage: Usage = field(default_factory=dict)
    distilled: 'Mapping[str, str]' = field(default_factory=dict)


@dataclass(frozen=True)
class Incomplete:
    """Value waiting for requests to be answered."""

    requests: 'tuple[Request, ...]'


@dataclass(frozen=True)
class Failure:
    """Value that can never be resolved."""

    errors: tuple[ResolutionError, ...]
    requests: 'tuple[Request, ...]' = ()

    @property
    def reason(self) -> ResolutionError:
        """The error reported to the user."""
        return self.errors[0]


type Status = Complete | Incomplete | Failure


def unique_requests(requests: 'Iterable[Request]') -> 'tuple[Request, ...]':
    """Deduplicate requests by hash, keeping the first occurrence."""
    seen: dict[str, Request] = {}
    for request in requests:
        seen.setdefault(request.hash(), request)

    return tuple(seen.values())


def merge_distilled(*mappings: 'Mapping[str, str]') -> dict[str, str]:
    """Merge distilled values.

    Raises:
        DistillKeyCollisionError: If one key holds different encoded values.
    """
    result: dict[str, str] = {}
    for mapping in mappings:
        for key, encoded in mapping.items():
            if (known := result.setdefault(key, encoded)) != encoded:
                raise DistillKeyCollisionError(key, known, encoded)

    return result


def completed(value: Any, usages: 'Iterable[Usage]',  # noqa: ANN401
              distilled: 'Iterable[Mapping[str, str]]') -> Status:
    """Build a complete status, checking distill key collisions."""
    try:
        merged = merge_distilled(*distilled)
    except DistillKeyCollisionError as error:
        return Failure((error,))

    return Complete(value, merge_usage(*usages), merged)


def _decode_body(source: RequestSource, response: 'Response') -> Any:  # noqa: ANN401
    """Present the response body in the expected form."""
    if source.expect == 'json':
        return loads(response.text)

    if source.expect == 'bytes':
        return response.content

    return response.text


def _describe_bad_response(request: 'Request', response: 'Response') -> str:
    """Describe an unusable response."""
    if response.error is not None:
        return f'Request failed for {request.display_url}: {response.error}'

    return f'Bad status {response.status} for {request.display_url}'


def _resolve_request(source: RequestSource, cache: ResponseLookup) -> Status:
    """Resolve a request node."""
    key = source.request.hash()
    if (response := cache.get(key)) is None:
        return Incomplete((source.request,))

    if (missing := response.missing_secret) is not None:
        return Failure((MissingSecretError(missing.name, suggestion=missing.suggestion),))

    if source.expect == 'whatever':
        return Complete(None, {key: UNUSED})

    display = source.request.display_url
    if not response.ok:
        return Failure((DecoderFailure(_describe_bad_response(source.request, response), request=display),))

    try:
        body = _decode_body(source, response)
    except JSONDecodeError as error:
        return Failure((DecoderFailure(f'Invalid JSON: {error}', request=display),))

    try:
        value, projection = source.decoder.decode(body)
    except DecodeError as error:
        return Failure((DecoderFailure(error, request=display),))

    if source.expect != 'json':
        projection = RAW

    return Complete(value, {key: projection})


def _resolve_combine(source: Combine, cache: ResponseLookup) -> Status:
    """Resolve independent sources, collecting every missing request."""
    values, usages, distilled = [], [], []
    requests: list[Request] = []
    errors: list[ResolutionError] = []

    for item in source.sources:
        status = resolve(item, cache)
        if isinstance(status, Complete):
            values.append(status.value)
            usages.append(status.usage)
            distilled.append(status.distilled)
        elif isinstance(status, Incomplete):
            requests.extend(status.requests)
        else:
            errors.extend(status.errors)
            requests.extend(status.requests)

    if errors:
        return Failure(tuple(errors), unique_requests(requests))

    if requests:
        return Incomplete(unique_requests(requests))

    return completed(values, usages, distilled)


def _resolve_and_then(source: AndThen, cache: ResponseLookup) -> Status:
    """Resolve a dependent continuation."""
    status = resolve(source.source, cache)
    if not isinstance(status, Complete):
        return status

    following = source.function(status.value)
    if not isinstance(following, DataSource):
        raise TypeError(
            f'and_then function must return a data source, '
            f'got {type(following).__name__}',
        )

    next_status = resolve(following, cache)
    if not isinstance(next_status, Complete):
        return next_status

    return completed(
        next_status.value,
        (status.usage, next_status.usage),
        (status.distilled, next_status.distilled),
    )


def _resolve_distill(source: Distill, cache: ResponseLookup) -> Status:
    """Resolve a distilled value from its key or from the inner source."""
    if (stored := cache.get(source.key)) is not None:
        encoded = stored.text
    else:
        status = resolve(source.source, cache)
        if not isinstance(status, Complete):
            return status
        encoded = canonical(source.encode(status.value))
        try:
            inner = merge_distilled(status.distilled, {source.key: encoded})
        except DistillKeyCollisionError as error:
            return Failure((error,))

    try:
        value = source.decoder.decode_value(loads(encoded))
    except (JSONDecodeError, DecodeError) as error:
        return Failure((DecoderFailure(
            error if isinstance(error, DecodeError) else f'Invalid JSON: {error}',
            request=f'distilled value {source.key!r}',
        ),))

    if stored is not None:
        return Complete(value, {}, {source.key: encoded})

    return Complete(value, {}, inner)


def resolve(source: DataSource, cache: ResponseLookup) -> Status:
    """Resolve a data source against the known responses.

    Exceptions raised by user-provided functions (`map`, `and_then`,
    distill encoders) are not caught here.

    Args:
        source: Data source to resolve.
        cache: Responses answered so far.

    Returns:
        The status of the data source.
    """
    match source:
        case Pure(value=value):
            return Complete(value)

        case Fail(message=message):
            return Failure((ExplicitFailure(message),))

        case RequestSource():
            return _resolve_request(source, cache)

        case Map(source=inner, function=function):
            status = resolve(inner, cache)
            if isinstance(status, Complete):
                return Complete(function(status.value), status.usage, status.distilled)
            return status

        case Combine():
            return _resolve_combine(source, cache)

        case AndThen():
            return _resolve_and_then(source, cache)

        case Distill():
            return _resolve_distill(source, cache)

    raise TypeError(f'Unknown data source node {type(source).__name__}')

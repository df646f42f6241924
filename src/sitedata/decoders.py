"""Composable decoders for raw response bodies.

A decoder is a pure function from a raw value (parsed JSON, text or
bytes) to a typed Python value. Decoders are built from small
combinators in the manner of Elm's `Json.Decode`:

    stars = field('stargazer_count', integer())
    repo = record({
        'stars': stars,
        'language': field('language', string()),
    })

Besides the value, every decoder reports a projection (see
`sitedata.usage`) of the input parts it consumed. Failures raise
`DecodeError` with the JSON path of the offending value.
"""

from collections.abc import Callable, Mapping
from typing import Any

from sitedata.errors import DecodeError
from sitedata.usage import UNUSED, Fields, Items, Projection, Whole, merge

#: Decoder runner: returns a decoded value and the consumed projection.
type DecoderRunner[T] = Callable[[Any], tuple[T, Projection]]


class Decoder[T]:
    """Decoder of raw values into typed values."""

    def __init__(self, runner: DecoderRunner[T], *, name: str = 'decoder') -> None:
        """Initialize a decoder.

        Args:
            runner: Callable implementing the decoding logic.
            name: Short description used in `repr`.
        """
        self.runner = runner
        self.name = name

    def __repr__(self) -> str:
        """Developer representation."""
        return f'<Decoder {self.name}>'

    def decode(self, value: Any) -> tuple[T, Projection]:  # noqa: ANN401
        """Decode a raw value.

        Args:
            value: Raw input value.

        Returns:
            A tuple of the decoded value and the consumed projection.

        Raises:
            DecodeError: If the input does not match the decoder.
        """
        return self.runner(value)

    def decode_value(self, value: Any) -> T:  # noqa: ANN401
        """Decode a raw value, discarding the projection."""
        result, _ = self.decode(value)

        return result

    def map[U](self, function: Callable[[T], U]) -> 'Decoder[U]':
        """Transform the decoded value."""
        def runner(value: Any) -> tuple[U, Projection]:  # noqa: ANN401
            result, projection = self.decode(value)
            return function(result), projection

        return Decoder(runner, name=f'map({self.name})')

    def and_then[U](self, function: Callable[[T], 'Decoder[U]']) -> 'Decoder[U]':
        """Choose the next decoder from the decoded value.

        Both decoders run on the same input; their projections merge.
        """
        def runner(value: Any) -> tuple[U, Projection]:  # noqa: ANN401
            result, projection = self.decode(value)
            next_result, next_projection = function(result).decode(value)
            return next_result, merge(projection, next_projection)

        return Decoder(runner, name=f'and_then({self.name})')


def _scalar[T](expected: str, check: Callable[[Any], bool],
               convert: Callable[[Any], T] | None = None) -> Decoder[T]:
    """Build a decoder for a scalar value."""
    def runner(value: Any) -> tuple[T, Projection]:  # noqa: ANN401
        if not check(value):
            raise DecodeError(expected, value)
        result = convert(value) if convert else value
        return result, Whole(value)

    return Decoder(runner, name=expected)


def _is_integer(value: Any) -> bool:  # noqa: ANN401
    """Check for an integral JSON number (booleans excluded)."""
    if isinstance(value, bool):
        return False

    if isinstance(value, float):
        return value.is_integer()

    return isinstance(value, int)


def _is_number(value: Any) -> bool:  # noqa: ANN401
    """Check for a JSON number (booleans excluded)."""
    return isinstance(value, int | float) and not isinstance(value, bool)


def string() -> Decoder[str]:
    """Decode a string."""
    return _scalar('a STRING', lambda value: isinstance(value, str))


def integer() -> Decoder[int]:
    """Decode an integral number."""
    return _scalar('an INT', _is_integer, int)


def number() -> Decoder[float]:
    """Decode any number as float."""
    return _scalar('a FLOAT', _is_number, float)


def boolean() -> Decoder[bool]:
    """Decode a boolean."""
    return _scalar('a BOOL', lambda value: isinstance(value, bool))


def binary() -> Decoder[bytes]:
    """Decode a raw binary body."""
    return _scalar('BYTES', lambda value: isinstance(value, bytes))


def null[T](default: T) -> Decoder[T]:
    """Decode `null` into a default value."""
    return _scalar('null', lambda value: value is None, lambda _: default)


def value() -> Decoder[Any]:
    """Decode any value as is (the whole value is consumed)."""
    def runner(raw: Any) -> tuple[Any, Projection]:  # noqa: ANN401
        return raw, Whole(raw)

    return Decoder(runner, name='value')


def succeed[T](result: T) -> Decoder[T]:
    """Ignore the input and succeed with a constant."""
    def runner(_: Any) -> tuple[T, Projection]:  # noqa: ANN401
        return result, UNUSED

    return Decoder(runner, name='succeed')


def fail(message: str) -> Decoder[Any]:
    """Ignore the input and fail with a message."""
    def runner(raw: Any) -> tuple[Any, Projection]:  # noqa: ANN401
        raise DecodeError(message, raw)

    return Decoder(runner, name='fail')


def field[T](name: str, decoder: Decoder[T]) -> Decoder[T]:
    """Decode a field of an object."""
    def runner(raw: Any) -> tuple[T, Projection]:  # noqa: ANN401
        if not isinstance(raw, dict) or name not in raw:
            raise DecodeError(f'an OBJECT with a field named `{name}`', raw)
        try:
            result, projection = decoder.decode(raw[name])
        except DecodeError as error:
            raise error.at(name) from None
        return result, Fields({name: projection})

    return Decoder(runner, name=f'field({name!r})')


def optional_field[T](name: str, decoder: Decoder[T],
                      default: T | None = None) -> Decoder[T | None]:
    """Decode a field of an object, or return a default if it is missing."""
    def runner(raw: Any) -> tuple[T | None, Projection]:  # noqa: ANN401
        if not isinstance(raw, dict):
            raise DecodeError('an OBJECT', raw)
        if name not in raw:
            return default, Fields({})
        try:
            result, projection = decoder.decode(raw[name])
        except DecodeError as error:
            raise error.at(name) from None
        return result, Fields({name: projection})

    return Decoder(runner, name=f'optional_field({name!r})')


def at[T](path: 'list[str] | tuple[str, ...]', decoder: Decoder[T]) -> Decoder[T]:
    """Decode a nested field following a path of names."""
    for name in reversed(path):
        decoder = field(name, decoder)

    return decoder


def index[T](position: int, decoder: Decoder[T]) -> Decoder[T]:
    """Decode an item of an array."""
    def runner(raw: Any) -> tuple[T, Projection]:  # noqa: ANN401
        if not isinstance(raw, list) or not 0 <= position < len(raw):
            raise DecodeError(f'a LONGER array. Need index {position}', raw)
        try:
            result, projection = decoder.decode(raw[position])
        except DecodeError as error:
            raise error.at(position) from None
        return result, Items({position: projection}, len(raw))

    return Decoder(runner, name=f'index({position})')


def list_of[T](decoder: Decoder[T]) -> Decoder[list[T]]:
    """Decode every item of an array."""
    def runner(raw: Any) -> tuple[list[T], Projection]:  # noqa: ANN401
        if not isinstance(raw, list):
            raise DecodeError('a LIST', raw)
        results, projections = [], {}
        for position, item in enumerate(raw):
            try:
                result, projections[position] = decoder.decode(item)
            except DecodeError as error:
                raise error.at(position) from None
            results.append(result)
        return results, Items(projections, len(raw))

    return Decoder(runner, name=f'list_of({decoder.name})')


def dict_of[T](decoder: Decoder[T]) -> Decoder[dict[str, T]]:
    """Decode every value of an object."""
    def runner(raw: Any) -> tuple[dict[str, T], Projection]:  # noqa: ANN401
        if not isinstance(raw, dict):
            raise DecodeError('an OBJECT', raw)
        results, projections = {}, {}
        for name, item in raw.items():
            try:
                results[name], projections[name] = decoder.decode(item)
            except DecodeError as error:
                raise error.at(name) from None
        return results, Fields(projections)

    return Decoder(runner, name=f'dict_of({decoder.name})')


def nullable[T](decoder: Decoder[T]) -> Decoder[T | None]:
    """Decode `null` as `None`, anything else with a decoder."""
    def runner(raw: Any) -> tuple[T | None, Projection]:  # noqa: ANN401
        if raw is None:
            return None, Whole(None)
        return decoder.decode(raw)

    return Decoder(runner, name=f'nullable({decoder.name})')


def one_of[T](*decoders: Decoder[T]) -> Decoder[T]:
    """Try decoders in order and use the first that succeeds."""
    def runner(raw: Any) -> tuple[T, Projection]:  # noqa: ANN401
        problems = []
        for decoder in decoders:
            try:
                return decoder.decode(raw)
            except DecodeError as error:
                problems.append(error)
        raise DecodeError('one of the alternatives', raw, problems=problems)

    return Decoder(runner, name='one_of')


def map2[A, B, T](function: Callable[[A, B], T],
                  first: Decoder[A], second: Decoder[B]) -> Decoder[T]:
    """Combine two decoders applied to the same input."""
    def runner(raw: Any) -> tuple[T, Projection]:  # noqa: ANN401
        first_result, first_projection = first.decode(raw)
        second_result, second_projection = second.decode(raw)
        return (
            function(first_result, second_result),
            merge(first_projection, second_projection),
        )

    return Decoder(runner, name='map2')


def record(decoders: Mapping[str, Decoder[Any]]) -> Decoder[dict[str, Any]]:
    """Decode several values from the same input into a dictionary.

    Args:
        decoders: Mapping of result keys to decoders.

    Returns:
        Decoder producing a dictionary with the same keys.
    """
    def runner(raw: Any) -> tuple[dict[str, Any], Projection]:  # noqa: ANN401
        results, projection = {}, UNUSED
        for key, decoder in decoders.items():
            results[key], item_projection = decoder.decode(raw)
            projection = merge(projection, item_projection)
        return results, projection

    return Decoder(runner, name='record')

"""Core exception hierarchy and build error records.

This module defines the error types used across the library to report
definition problems, permanent resolution failures and internal
convergence errors in a structured and extensible way.

Permanent resolution failures (`ResolutionError` subclasses) are never
retried by the engine. Each of them converts into a `BuildError` record,
the user-facing surface handed to terminal renderers and build tools.
"""

from difflib import get_close_matches
from json import dumps
from os import linesep
from typing import TYPE_CHECKING, Any, Literal, TypedDict

from pydantic import Field
from yaml import dump

from sitedata.models import SchemaModel
from sitedata.values import MAPPINGS, SCALARS, SEQUENCES

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from importlib.metadata import EntryPoint

SNIPPET_ELLIPSIS = f' ...{linesep}'
SNIPPET_INDENT = 2

FORMAT_REPLACER = '<runtime object>'
FORMAT_INDENT = 4

#: Colors understood by build error renderers.
Color = Literal['red', 'yellow', 'green', 'cyan', 'magenta', 'blue']

#: Path segment inside a decoded JSON value.
type PathSegment = str | int


class MessageSegment(SchemaModel):
    """Rich-text fragment of a build error message."""

    text: str = Field(
        title='Text',
        description='Literal text of the fragment.',
    )

    color: Color | None = Field(
        default=None,
        title='Color',
        description='Optional foreground color used by terminal renderers.',
    )

    bold: bool = Field(
        default=False,
        title='Bold flag',
        description='Whether the fragment is rendered with emphasis.',
    )


def plain(text: str) -> MessageSegment:
    """Build an unstyled message segment."""
    return MessageSegment(text=text)


def styled(text: str, color: Color, *, bold: bool = False) -> MessageSegment:
    """Build a colored message segment."""
    return MessageSegment(text=text, color=color, bold=bold)


class BuildError(SchemaModel):
    """User-facing record describing one build defect.

    Build errors are collected across all tracked data sources before
    a build terminates, so a single run reports every defect found.
    """

    title: str = Field(
        title='Title',
        description='Short upper-case title (for example, `DECODER ERROR`).',
    )

    message: tuple[MessageSegment, ...] = Field(
        default=(),
        title='Message',
        description='Structured rich-text segments of the error message.',
    )

    path: str = Field(
        default='',
        title='Origin',
        description='Identifier of the originating route or module.',
    )

    fatal: bool = Field(
        default=True,
        title='Fatal flag',
        description='Whether the error aborts the build.',
    )

    def to_text(self) -> str:
        """Render the error as plain text without styles."""
        body = ''.join(segment.text for segment in self.message)

        return f'-- {self.title} -- {self.path}{linesep}{linesep}{body}'


class ErrorContext(TypedDict, total=False):
    """Container describing contextual information for error formatting.

    All fields are optional; the formatter adapts output based on
    provided values.
    """

    #: Identifier of the tracked item (`page:/blog`, `shared`, ...).
    origin: str | None

    #: Display form of the request that produced the failing value.
    request: str | None

    #: Underlying exception that triggered formatting.
    error: Exception | None

    #: Value associated with the error.
    element: Any


class ErrorFormatter:
    """Utility class for formatting engine errors.

    This formatter is responsible for producing human-readable error
    messages with optional origin information and a YAML snippet of the
    value involved in the failure.
    """

    @classmethod
    def format(cls, message: str, context: ErrorContext | None = None) -> str:
        """Format an error message using contextual information.

        Args:
            message: Base human-readable error message.
            context: Optional error context with origin and data.

        Returns:
            A fully formatted error message suitable for display.
        """
        if not context:
            return message

        message += linesep
        message += cls.get_location_string(context, indent=FORMAT_INDENT)
        message += cls.get_snippet_string(context, indent=FORMAT_INDENT * 2)

        return message

    @classmethod
    def get_location_string(cls, context: ErrorContext, *,
                            indent: str | int | None = None) -> str:
        """Format origin information.

        Args:
            context: Error context containing origin metadata.
            indent: Optional indentation (string or number of spaces).

        Returns:
            A formatted string naming the tracked item and the request,
            or an empty string when neither is known.
        """
        indent = cls._ensure_indent(indent)

        message = ''
        if origin := context.get('origin'):
            message += f'{indent}in {origin}{linesep}'

        if request := context.get('request'):
            message += f'{indent}while requesting {request}{linesep}'

        return message

    @classmethod
    def get_snippet_string(cls, context: ErrorContext, *,
                           indent: str | int | None = None) -> str:
        """Generate a formatted snippet illustrating the failing value.

        Args:
            context: Error context containing the element.
            indent: Optional indentation (string or number of spaces).

        Returns:
            A formatted multi-line snippet string, or an empty string
            if no snippet data is available.
        """
        indent = cls._ensure_indent(indent)

        if (element := context.get('element')) is not None:
            snippet = f'{indent}{SNIPPET_ELLIPSIS}'
            snippet += cls._make_yaml(element, indent)
            snippet += linesep
            return snippet

        return ''

    @classmethod
    def _filter_unsafe(cls, value: Any) -> Any:  # noqa: ANN401
        """Recursively sanitize values for safe YAML serialization.

        Non-scalar and non-container objects are replaced with
        a placeholder to prevent leaking opaque data.

        Args:
            value: Arbitrary value to sanitize.

        Returns:
            A YAML-safe representation of the value.
        """
        if value is None or isinstance(value, SCALARS):
            return value

        if isinstance(value, MAPPINGS):
            return {
                str(key): cls._filter_unsafe(item)
                for key, item in value.items()
            }

        if isinstance(value, SEQUENCES):
            return [
                cls._filter_unsafe(item)
                for item in value
            ]

        return FORMAT_REPLACER

    @classmethod
    def _make_yaml(cls, value: Any, indent: str = '') -> str:  # noqa: ANN401
        """Serialize a value to a YAML-formatted string.

        Args:
            value: Arbitrary value to serialize.
            indent: Optional indentation prefix.

        Returns:
            A YAML-formatted string representation of the value.
        """
        data = dump(
            cls._filter_unsafe(value),
            indent=SNIPPET_INDENT,
            sort_keys=False,
        )

        return cls._make_indent(data, indent)

    @staticmethod
    def _make_indent(value: str, indent: str) -> str:
        """Apply indentation to a multi-line string.

        Empty or whitespace-only lines are omitted.
        """
        if not indent:
            return value

        return linesep.join(
            f'{indent}{line}'
            for line in value.splitlines()
            if line.strip()
        )

    @staticmethod
    def _ensure_indent(indent: str | int | None = None) -> str:
        """Normalize indentation input to a string of spaces."""
        if isinstance(indent, int) and indent > 0:
            return ' ' * indent

        if isinstance(indent, str):
            return indent

        return ''


class PortWarning(UserWarning):
    """Warning emitted for non-fatal port registration issues.

    Used when a port plugin can not be loaded but the error does not
    prevent the build from running (relaxed mode).
    """


class SiteDataError(Exception, ErrorFormatter):
    """Base exception for all sitedata errors.

    All custom exceptions raised by the library inherit from this class
    to allow unified error handling by callers.
    """

    def __init__(self, message: str, *,
                 context: ErrorContext | None = None) -> None:
        """Initialize an error.

        Args:
            message: Human-readable error description.
            context: Error context containing optional origin and value.
        """
        self.message = message
        self.context = context

        super().__init__(message)

    def __str__(self) -> str:
        """String representation."""
        return self.format(self.message, self.context)


class SettingsError(SiteDataError):
    """Error raised when build settings can not be loaded or validated."""


class DefinitionError(SiteDataError):
    """Error raised for invalid site, glob or port definitions.

    Definition errors are programming errors in the site code and are
    raised eagerly when the definition is built, not during resolution.
    """


class PortError(DefinitionError):
    """Error raised for fatal port registration failures."""

    def __init__(self, message: str, *,
                 entrypoint: 'EntryPoint | None' = None) -> None:
        """Initialize a port error.

        Args:
            message: Human-readable error description.
            entrypoint: Optional plugin entry point associated with the error.
        """
        self.entrypoint = entrypoint

        super().__init__(message)


class ConvergenceError(SiteDataError):
    """Internal error raised when the convergence loop can not progress.

    This indicates a data source that claims to be incomplete while no
    new request can be issued for it, or a host that never answered a
    request it was asked for.
    """


class DecodeError(SiteDataError):
    """Error raised by decoders on unexpected input.

    Decode errors carry the JSON path of the offending value and a
    description of what was expected. They are converted into
    `DecoderFailure` by the resolver.
    """

    def __init__(self, expected: str, value: Any = None, *,  # noqa: ANN401
                 path: 'Sequence[PathSegment]' = (),
                 problems: 'Sequence[DecodeError]' = ()) -> None:
        """Initialize a decode error.

        Args:
            expected: Description of the expected value (`an INT`).
            value: The value that failed to decode.
            path: Path from the decoded root to the value.
            problems: Nested errors of alternative decoders (`one_of`).
        """
        self.expected = expected
        self.value = value
        self.path = tuple(path)
        self.problems = tuple(problems)

        super().__init__(self.describe())

    def at(self, segment: PathSegment) -> 'DecodeError':
        """Return a copy of the error nested under a path segment."""
        return DecodeError(
            self.expected,
            self.value,
            path=(segment, *self.path),
            problems=self.problems,
        )

    @property
    def location(self) -> str:
        """JSON-path-style location (`json.items[2].name`)."""
        location = 'json'
        for segment in self.path:
            if isinstance(segment, int):
                location += f'[{segment}]'
            else:
                location += f'.{segment}'

        return location

    def describe(self) -> str:
        """Describe the failure in plain text."""
        return ''.join(segment.text for segment in self.segments())

    def segments(self) -> list[MessageSegment]:
        """Describe the failure as structured message segments."""
        if self.problems:
            result = [plain(
                f'All alternatives failed at {self.location} '
                f'in the following {len(self.problems)} ways:',
            )]
            for position, problem in enumerate(self.problems, start=1):
                result.append(plain(f'{linesep}{linesep}({position}) '))
                result.extend(problem.segments())
            return result

        if not self.path:
            intro = [plain('Problem with the given value:')]
        else:
            intro = [
                plain('Problem with the value at '),
                styled(self.location, 'cyan'),
                plain(':'),
            ]

        return [
            *intro,
            plain(f'{linesep}{linesep}'),
            styled(pretty(self.value), 'yellow'),
            plain(f'{linesep}{linesep}Expecting '),
            styled(self.expected, 'red', bold=True),
        ]


def pretty(value: Any, indent: int = FORMAT_INDENT) -> str:  # noqa: ANN401
    """Pretty-print a JSON value, indenting every line."""
    try:
        text = dumps(value, indent=indent, ensure_ascii=False)
    except (TypeError, ValueError):
        text = repr(value)

    prefix = ' ' * indent

    return linesep.join(f'{prefix}{line}' for line in text.splitlines())


class ResolutionError(SiteDataError):
    """Base class of permanent resolution failures.

    A resolution error is never retried by re-running the same requests.
    It short-circuits its own data source tree and surfaces to the user
    as a `BuildError`.
    """

    title: str = 'DATA SOURCE ERROR'

    def segments(self) -> list[MessageSegment]:
        """Structured message segments of the error."""
        return [plain(self.message)]

    def to_build_error(self, path: str = '') -> BuildError:
        """Convert the error into a user-facing build error record.

        Args:
            path: Identifier of the originating route or module.

        Returns:
            A fatal `BuildError`.
        """
        return BuildError(
            title=self.title,
            message=tuple(self.segments()),
            path=path,
            fatal=True,
        )


class DecoderFailure(ResolutionError):
    """A decoder rejected a cached response."""

    title = 'DECODER ERROR'

    def __init__(self, error: DecodeError | str, *, request: str | None = None) -> None:
        """Initialize a decoder failure.

        Args:
            error: Decode error or a plain failure description.
            request: Display form of the request whose response failed.
        """
        self.error = error if isinstance(error, DecodeError) else None
        self.request = request

        message = error.describe() if isinstance(error, DecodeError) else error

        super().__init__(message, context=ErrorContext(request=request))

    def segments(self) -> list[MessageSegment]:
        """Structured message segments of the error."""
        result = []
        if self.request:
            result += [
                plain('I encountered an error while decoding the response of '),
                styled(self.request, 'cyan'),
                plain(f'{linesep}{linesep}'),
            ]

        if self.error is not None:
            return result + self.error.segments()

        return [*result, plain(self.message)]


class ExplicitFailure(ResolutionError):
    """A data source failed with a user-provided message."""

    title = 'CALLED FAIL'


class MissingSecretError(ResolutionError):
    """A referenced secret has no candidate value."""

    title = 'MISSING SECRET'

    def __init__(self, name: str, known: 'Iterable[str]' = (), *,
                 suggestion: str | None = None) -> None:
        """Initialize a missing secret error.

        Args:
            name: Name of the missing secret.
            known: Names of the secrets that are available.
            suggestion: Closest known name, when already computed.
        """
        self.name = name
        self.suggestion = suggestion or suggest(name, known)

        message = f'Secret {name!r} is not defined'
        if self.suggestion:
            message += f'. Did you mean {self.suggestion!r}?'

        super().__init__(message)

    def segments(self) -> list[MessageSegment]:
        """Structured message segments of the error."""
        result = [
            plain('I expected to find the secret '),
            styled(self.name, 'yellow'),
            plain(', but it is not defined.'),
        ]
        if self.suggestion:
            result += [
                plain(f'{linesep}{linesep}Maybe you meant '),
                styled(self.suggestion, 'green'),
                plain('?'),
            ]

        return result


class DistillKeyCollisionError(ResolutionError):
    """Two different encoded values were registered under one key."""

    title = 'NON-UNIQUE DISTILL KEYS'

    def __init__(self, key: str, first: str, second: str) -> None:
        """Initialize a collision error.

        Args:
            key: The distillation key.
            first: Encoded value registered first.
            second: Conflicting encoded value.
        """
        self.key = key
        self.first = first
        self.second = second

        super().__init__(
            f'Distill key {key!r} was registered with different values: '
            f'{first} and {second}',
        )

    def segments(self) -> list[MessageSegment]:
        """Structured message segments of the error."""
        return [
            plain('I encountered DataSource.distill with two matching keys '
                  'that had differing encoded values.'),
            plain(f'{linesep}{linesep}Key: '),
            styled(self.key, 'yellow'),
            plain(f'{linesep}{linesep}First value:{linesep}'),
            styled(self.first, 'cyan'),
            plain(f'{linesep}{linesep}Second value:{linesep}'),
            styled(self.second, 'cyan'),
        ]


class BuildFailure(SiteDataError):
    """Terminal build failure carrying every collected build error."""

    def __init__(self, errors: 'Sequence[BuildError]') -> None:
        """Initialize a build failure.

        Args:
            errors: Ordered build error records.
        """
        self.errors = tuple(errors)

        super().__init__(f'Build failed with {len(self.errors)} error(s)')

    def __str__(self) -> str:
        """String representation listing every error."""
        return f'{linesep}{linesep}'.join((
            self.message,
            *(error.to_text() for error in self.errors),
        ))


def suggest(name: str, known: 'Iterable[str]') -> str | None:
    """Find the closest known name for a "did you mean" hint."""
    matches = get_close_matches(name, list(known), n=1, cutoff=0.6)

    return matches[0] if matches else None

"""Typed glob patterns over the site files.

A glob is built from a sequence of parts, each either matched only or
captured under a name:

    posts = (
        Glob()
        .match(literal('content/blog/'))
        .capture('slug', wildcard())
        .match(literal('.md'))
    )

Compiling a glob produces, from the same part list, the glob syntax
sent to the host file matcher and the regular expression used locally
to re-derive the captures of every path the host returns. Paths that
do not match the local expression are dropped.
"""

from collections.abc import Callable, Sequence
from re import compile as regexp
from re import escape
from typing import Any, Literal

from pydantic import Field

from sitedata.datasource import DataSource, RequestSource, combine, fail, succeed
from sitedata.decoders import field, list_of, string
from sitedata.decoders import one_of as one_of_decoder
from sitedata.errors import DefinitionError
from sitedata.models import SchemaModel
from sitedata.request import Request

#: Characters escaped in literal glob fragments.
GLOB_SPECIAL = frozenset('*?[]{},\\')

PartKind = Literal['literal', 'wildcard', 'recursive_wildcard', 'integer', 'one_of', 'digits']


class Part(SchemaModel):
    """Structural element of a glob pattern.

    Every non-literal part owns exactly one regex group.
    """

    kind: PartKind

    syntax: str = Field(
        title='Glob syntax',
        description='Fragment of the glob syntax sent to the host.',
    )

    regex: str = Field(
        title='Regular expression',
        description='Fragment of the local regular expression.',
    )

    convert: Callable[[str | None], Any] = Field(
        default=str,
        title='Converter',
        description='Converter of the matched group into the captured value.',
    )


def _escape_glob(text: str) -> str:
    """Escape glob special characters of a literal."""
    return ''.join(f'\\{char}' if char in GLOB_SPECIAL else char for char in text)


def _segments(value: str | None) -> list[str]:
    """Split a recursive match into path segments."""
    return value.split('/') if value else []


def literal(text: str) -> Part:
    """Match a literal string."""
    if not text:
        raise DefinitionError('Glob literal can not be empty')

    return Part(kind='literal', syntax=_escape_glob(text), regex=escape(text))


def wildcard() -> Part:
    """Match any characters of a single path segment (`*`)."""
    return Part(kind='wildcard', syntax='*', regex='([^/]*?)')


def recursive_wildcard() -> Part:
    """Match any number of directories (`**`), captured as segments."""
    return Part(kind='recursive_wildcard', syntax='**', regex='(.*?)', convert=_segments)


def integer() -> Part:
    """Match digits, captured as an integer."""
    return Part(kind='integer', syntax='*', regex=r'(\d+)', convert=int)


def digits() -> Part:
    """Match digits, captured as a string (leading zeros kept)."""
    return Part(kind='digits', syntax='*', regex=r'(\d+)')


def one_of(default: tuple[str, Any], *others: tuple[str, Any]) -> Part:
    """Match one of several literals, captured as the mapped value.

    Args:
        default: First `(literal, value)` alternative.
        *others: Other alternatives.

    Returns:
        A glob part.
    """
    options = (default, *others)
    mapping = dict(options)

    if len(mapping) != len(options):
        raise DefinitionError('Glob alternatives must be unique')

    syntax = ','.join(_escape_glob(text) for text, _ in options)
    regex = '|'.join(escape(text) for text, _ in options)

    return Part(
        kind='one_of',
        syntax=f'{{{syntax}}}' if others else syntax,
        regex=f'({regex})',
        convert=lambda value: mapping.get(value or '', default[1]),
    )


class GlobMatch(SchemaModel):
    """File matched by a glob, with its captures."""

    path: str
    captures: dict[str, Any] = Field(default_factory=dict)

    def __getitem__(self, name: str) -> Any:  # noqa: ANN401
        """Captured value by name."""
        return self.captures[name]


class CompiledGlob(SchemaModel):
    """Glob syntax and local regular expression built from one part list."""

    syntax: str
    regex: str
    names: tuple[str | None, ...]
    converters: tuple[Callable[[str | None], Any], ...]

    def extract(self, path: str) -> dict[str, Any] | None:
        """Captures of a path, or `None` if it does not match."""
        if (found := regexp(self.regex).fullmatch(path)) is None:
            return None

        return {
            name: convert(group)
            for name, convert, group in zip(self.names, self.converters, found.groups(), strict=True)
            if name is not None
        }


class Glob(SchemaModel):
    """Immutable glob pattern builder."""

    parts: tuple[tuple[str | None, Part], ...] = ()

    def match(self, part: Part) -> 'Glob':
        """Append a matched (not captured) part."""
        return Glob(parts=(*self.parts, (None, part)))

    def capture(self, name: str, part: Part) -> 'Glob':
        """Append a part captured under a name."""
        if part.kind == 'literal':
            raise DefinitionError(f'Glob literal can not be captured as {name!r}')

        if name in {known for known, _ in self.parts}:
            raise DefinitionError(f'Duplicated glob capture {name!r}')

        return Glob(parts=(*self.parts, (name, part)))

    def compile(self) -> CompiledGlob:
        """Build the glob syntax and regular expression.

        A recursive wildcard followed by a literal starting with `/`
        becomes `**/` so that it also matches zero directories.

        Raises:
            DefinitionError: If the glob has no parts.
        """
        if not self.parts:
            raise DefinitionError('Glob has no parts')

        syntax, regex = [], []
        names, converters = [], []
        skip_slash = False

        for position, (name, part) in enumerate(self.parts):
            if part.kind == 'literal':
                offset = 1 if skip_slash else 0
                syntax.append(part.syntax[offset:])
                regex.append(part.regex[offset:])
                skip_slash = False
                continue

            following = self.parts[position + 1][1] if position + 1 < len(self.parts) else None

            if (part.kind == 'recursive_wildcard' and following is not None
                    and following.kind == 'literal' and following.syntax.startswith('/')):
                syntax.append('**/')
                regex.append('(?:(.*?)/)?')
                skip_slash = True
            else:
                syntax.append(part.syntax)
                regex.append(part.regex)

            names.append(name)
            converters.append(part.convert)

        return CompiledGlob(
            syntax=''.join(syntax),
            regex=''.join(regex),
            names=tuple(names),
            converters=tuple(converters),
        )

    def to_source(self) -> DataSource:
        """Data source listing the matching files, sorted by path."""
        compiled = self.compile()

        def collect(paths: list[str]) -> list[GlobMatch]:
            matches = []
            for path in sorted(set(paths)):
                if (captures := compiled.extract(path)) is not None:
                    matches.append(GlobMatch(path=path, captures=captures))
            return matches

        return RequestSource(
            request=Request(target='glob', url=compiled.syntax),
            decoder=list_of(one_of_decoder(string(), field('path', string()))),
        ).map(collect)


def expect_unique_match(glob: Glob) -> DataSource:
    """Data source of the single file matching a glob.

    Zero or multiple matches fail permanently.
    """
    syntax = glob.compile().syntax

    def check(matches: list[GlobMatch]) -> DataSource:
        if len(matches) == 1:
            return succeed(matches[0])
        if not matches:
            return fail(f'No files matched the pattern: {syntax}')
        return fail(
            f'Expected a unique match for the pattern {syntax}, '
            f'but found {len(matches)}: {", ".join(match.path for match in matches)}',
        )

    return glob.to_source().and_then(check)


def expect_unique_match_from_list(globs: Sequence[Glob]) -> DataSource:
    """Data source of the single file matching any glob of a list.

    Zero or multiple matches across all globs fail permanently.
    """
    patterns = ', '.join(glob.compile().syntax for glob in globs)

    def check(results: list[list[GlobMatch]]) -> DataSource:
        matches = [match for result in results for match in result]
        if len(matches) == 1:
            return succeed(matches[0])
        if not matches:
            return fail(f'No files matched any of the patterns: {patterns}')
        return fail(
            f'Expected a unique match for the patterns {patterns}, '
            f'but found {len(matches)}: {", ".join(match.path for match in matches)}',
        )

    return combine([glob.to_source() for glob in globs]).and_then(check)

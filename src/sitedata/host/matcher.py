"""Host-side glob matching over a directory tree.

Supported syntax:

- `*` matches any characters except `/`;
- `?` matches one character except `/`;
- `**` matches any characters including `/`;
- `**/` matches zero or more leading directories;
- `[abc]`, `[a-z]`, `[!abc]` match one character of a set;
- `{a,b}` matches one of the alternatives;
- `\\` escapes the next character.
"""

from pathlib import Path
from re import Pattern, escape
from re import compile as regexp
from re import error as RegexError

import structlog

from sitedata.errors import DefinitionError

logger = structlog.get_logger()

SPECIAL_CHARS = frozenset('*?[{\\')


def _translate_class(syntax: str, start: int) -> tuple[str, int]:
    """Translate a `[...]` set starting after the opening bracket."""
    end = syntax.find(']', start + 1 if syntax[start:start + 1] in {'!', '^'} else start)
    if end < 0:
        return escape('['), start

    content = syntax[start:end]
    negate = content[:1] in {'!', '^'}
    if negate:
        content = content[1:]

    content = content.replace('\\', '\\\\')

    return f'[{"^/" if negate else ""}{content}]', end + 1


def _translate_group(syntax: str, start: int) -> tuple[str, int]:
    """Translate a `{a,b}` group starting after the opening brace.

    Escaped commas and braces belong to the alternatives.
    """
    options, first, position = [], start, start

    while position < len(syntax):
        char = syntax[position]
        if char == '\\':
            position += 2
            continue
        if char in {',', '}'}:
            options.append(translate_fragment(syntax[first:position]))
            first = position + 1
        if char == '}':
            return f'(?:{"|".join(options)})', position + 1
        position += 1

    return escape('{'), start


def translate_fragment(syntax: str) -> str:
    """Translate glob syntax into an unanchored regular expression."""
    result, position = [], 0

    while position < len(syntax):
        char = syntax[position]
        position += 1

        if char == '\\':
            if position < len(syntax):
                result.append(escape(syntax[position]))
                position += 1
            else:
                result.append(escape(char))

        elif char == '*':
            if syntax[position:position + 1] != '*':
                result.append('[^/]*')
            elif syntax[position + 1:position + 2] == '/':
                result.append('(?:.*/)?')
                position += 2
            else:
                result.append('.*')
                position += 1

        elif char == '?':
            result.append('[^/]')

        elif char == '[':
            fragment, position = _translate_class(syntax, position)
            result.append(fragment)

        elif char == '{':
            fragment, position = _translate_group(syntax, position)
            result.append(fragment)

        else:
            result.append(escape(char))

    return ''.join(result)


def translate(syntax: str) -> Pattern[str]:
    """Compile glob syntax into a regular expression matching whole paths.

    Raises:
        DefinitionError: If the pattern can not be compiled.
    """
    try:
        return regexp(f'^{translate_fragment(syntax)}$')
    except RegexError as base:
        raise DefinitionError(f'Invalid glob pattern {syntax!r}') from base


def static_base(syntax: str) -> str:
    """Leading directories of a pattern that contain no special characters."""
    parts = syntax.split('/')[:-1]

    base = []
    for part in parts:
        if SPECIAL_CHARS.intersection(part):
            break
        base.append(part)

    return '/'.join(base)


def scan(root: Path | str, syntax: str) -> list[str]:
    """Find the files under a root matching a glob pattern.

    Args:
        root: Directory the pattern is relative to.
        syntax: Glob pattern.

    Returns:
        Sorted relative POSIX paths of the matching files.
    """
    root = Path(root)
    pattern = translate(syntax)

    directory = root / static_base(syntax)
    if not directory.is_dir():
        return []

    matches = sorted(
        relative
        for path in directory.rglob('*')
        if path.is_file()
        and pattern.match(relative := path.relative_to(root).as_posix())
    )

    logger.debug('glob.scanned', pattern=syntax, matches=len(matches))

    return matches

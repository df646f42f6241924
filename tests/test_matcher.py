"""Tests for host-side glob matching."""

from typing import TYPE_CHECKING

import pytest

from sitedata.errors import DefinitionError
from sitedata.host.matcher import scan, static_base, translate

if TYPE_CHECKING:
    from pathlib import Path


@pytest.mark.parametrize('syntax, path, expected', (
    pytest.param('content/*.md', 'content/a.md', True, id='wildcard'),
    pytest.param('content/*.md', 'content/x/a.md', False, id='wildcard stays in segment'),
    pytest.param('content/**/*.md', 'content/a.md', True, id='recursive zero directories'),
    pytest.param('content/**/*.md', 'content/x/y/a.md', True, id='recursive directories'),
    pytest.param('content/**', 'content/x/y/a.md', True, id='trailing recursive'),
    pytest.param('content/?.md', 'content/a.md', True, id='single character'),
    pytest.param('content/?.md', 'content/ab.md', False, id='single character only'),
    pytest.param('content/[ab].md', 'content/b.md', True, id='character set'),
    pytest.param('content/[!ab].md', 'content/b.md', False, id='negated character set'),
    pytest.param('content/[!ab].md', 'content/c.md', True, id='negated character set match'),
    pytest.param('*.{md,txt}', 'a.txt', True, id='alternatives'),
    pytest.param('*.{md,txt}', 'a.html', False, id='alternatives mismatch'),
    pytest.param('{a\\,b,c}.md', 'a,b.md', True, id='escaped comma in alternatives'),
    pytest.param('{a\\,b,c}.md', 'b.md', False, id='escaped comma does not split'),
    pytest.param('{a\\},c}.md', 'a}.md', True, id='escaped brace in alternatives'),
    pytest.param('content/\\*.md', 'content/*.md', True, id='escaped wildcard'),
    pytest.param('content/\\*.md', 'content/a.md', False, id='escaped wildcard is literal'),
    pytest.param('a.md', 'aXmd', False, id='dot is literal'),
))
def test_translate(syntax: str, path: str, expected: bool) -> None:  # noqa: FBT001
    """Match paths with the supported glob syntax."""
    assert bool(translate(syntax).match(path)) is expected


def test_translate_invalid() -> None:
    """Reject patterns that do not compile."""
    with pytest.raises(DefinitionError, match='Invalid glob pattern'):
        translate('content/[z-a].md')


@pytest.mark.parametrize('syntax, expected', (
    pytest.param('content/blog/*.md', 'content/blog', id='literal directories'),
    pytest.param('content/**/index.md', 'content', id='recursive'),
    pytest.param('*.md', '', id='root'),
    pytest.param('content/{a,b}/*.md', 'content', id='alternatives'),
))
def test_static_base(syntax: str, expected: str) -> None:
    """Find the directory to walk."""
    assert static_base(syntax) == expected


def test_scan(tmp_path: 'Path') -> None:
    """List matching files relative to the root, sorted."""
    for name in ('content/blog/b.md', 'content/blog/a.md', 'content/blog/x/c.md', 'content/index.md'):
        (tmp_path / name).parent.mkdir(parents=True, exist_ok=True)
        (tmp_path / name).write_text('', encoding='utf-8')

    assert scan(tmp_path, 'content/blog/*.md') == ['content/blog/a.md', 'content/blog/b.md']
    assert scan(tmp_path, 'content/**/*.md') == [
        'content/blog/a.md',
        'content/blog/b.md',
        'content/blog/x/c.md',
        'content/index.md',
    ]
    assert scan(tmp_path, 'missing/*.md') == []

"""Tests for error formatting and build error records."""

import pytest

from sitedata.errors import (
    BuildFailure,
    DecodeError,
    DecoderFailure,
    ErrorContext,
    ExplicitFailure,
    MissingSecretError,
    SiteDataError,
    suggest,
)


def test_error_without_context() -> None:
    """Render the bare message without context."""
    assert str(SiteDataError('Something failed')) == 'Something failed'


def test_error_with_context() -> None:
    """Render the origin, the request and a snippet of the value."""
    error = SiteDataError('Invalid value', context=ErrorContext(
        origin='page:/blog',
        request='GET https://x',
        element={'path': ['..'], 'handler': object()},
    ))

    lines = str(error).splitlines()

    assert lines[0] == 'Invalid value'
    assert lines[1] == '    in page:/blog'
    assert lines[2] == '    while requesting GET https://x'
    assert '<runtime object>' in str(error)


def test_decode_error_segments() -> None:
    """Describe decode errors with the location and the value."""
    error = DecodeError('an INT', 'abc').at('stars').at('repo')

    text = error.describe()

    assert error.location == 'json.repo.stars'
    assert text.startswith('Problem with the value at json.repo.stars:')
    assert '"abc"' in text
    assert text.endswith('Expecting an INT')


def test_decoder_failure_build_error() -> None:
    """Convert decoder failures into build errors."""
    failure = DecoderFailure(DecodeError('a STRING', 1, path=('language',)), request='GET https://x')

    error = failure.to_build_error('page:/')

    assert error.title == 'DECODER ERROR'
    assert error.path == 'page:/'
    assert error.fatal
    assert error.message[1].text == 'GET https://x'
    assert error.message[1].color == 'cyan'
    assert 'Expecting a STRING' in error.to_text()


def test_missing_secret_build_error() -> None:
    """Suggest the closest known secret name."""
    error = MissingSecretError('GITHUB_TOKN', ['GITHUB_TOKEN', 'API_KEY']).to_build_error('shared')

    assert error.title == 'MISSING SECRET'
    assert ''.join(segment.text for segment in error.message).endswith('Maybe you meant GITHUB_TOKEN?')


@pytest.mark.parametrize('name, known, expected', (
    pytest.param('GITHUB_TOKN', ('GITHUB_TOKEN', 'API_KEY'), 'GITHUB_TOKEN', id='typo'),
    pytest.param('TOKEN', ('DATABASE_URL',), None, id='unrelated'),
    pytest.param('TOKEN', (), None, id='nothing known'),
))
def test_suggest(name: str, known: tuple[str, ...], expected: str | None) -> None:
    """Find the closest known name."""
    assert suggest(name, known) == expected


def test_build_failure_text() -> None:
    """List every error of a failed build."""
    failure = BuildFailure([
        ExplicitFailure('first').to_build_error('page:/a'),
        ExplicitFailure('second').to_build_error('page:/b'),
    ])

    text = str(failure)

    assert text.startswith('Build failed with 2 error(s)')
    assert '-- CALLED FAIL -- page:/a' in text
    assert text.endswith('second')

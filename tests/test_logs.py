"""Tests for structured logging setup."""

from json import loads

import pytest
import structlog

from sitedata.logs import bind_context, clear_context, configure_logging


def test_configure_json_logging(capsys: pytest.CaptureFixture[str]) -> None:
    """Render events as JSON lines on the standard error."""
    configure_logging('info', json=True)
    logger = structlog.get_logger()

    bind_context(build='test')
    try:
        logger.debug('convergence.stored', stored=1)
        logger.info('convergence.round', round=1, requests=2)
    finally:
        clear_context()

    lines = capsys.readouterr().err.splitlines()

    assert len(lines) == 1

    event = loads(lines[0])

    assert event['event'] == 'convergence.round'
    assert event['level'] == 'info'
    assert event['round'] == 1
    assert event['build'] == 'test'
    assert 'timestamp' in event


def test_configure_debug_logging(capsys: pytest.CaptureFixture[str]) -> None:
    """Emit debug events at the debug level."""
    configure_logging('debug')

    structlog.get_logger().debug('glob.scanned', pattern='*.md', matches=0)

    assert 'glob.scanned' in capsys.readouterr().err


def test_clear_context_by_name() -> None:
    """Unbind only the named context values."""
    bind_context(site='blog', round=2)

    clear_context('round')

    assert structlog.contextvars.get_contextvars() == {'site': 'blog'}

"""Tests configurations and fixtures."""

from importlib.metadata import EntryPoint, EntryPoints
from typing import TYPE_CHECKING

import pytest
import structlog

from sitedata.core.cache import Response
from sitedata.host import Answer

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping, Sequence

if TYPE_CHECKING:
    from pytest_mock import MockerFixture, MockType

if TYPE_CHECKING:
    from sitedata.host.ports import PortPlugin
    from sitedata.request import Request


class FakeHost:
    """Host answering requests from a fixed table.

    Answers are looked up by the display form of the masked request
    (`GET https://...`, `file://content/index.md`). Requests missing
    from the table are answered with `default`, or left unanswered when
    no default is given. Every performed batch is recorded with the log
    context bound while it was performed.
    """

    def __init__(self, answers: 'Mapping[str, Response | str]', default: str | None = None) -> None:
        self.answers = dict(answers)
        self.default = default
        self.batches: list[list[str]] = []
        self.contexts: list[dict[str, object]] = []

    async def perform(self, requests: 'Sequence[Request]') -> list[Answer]:
        self.batches.append([request.display_url for request in requests])
        self.contexts.append(structlog.contextvars.get_contextvars())

        answers = []
        for request in requests:
            answer = self.answers.get(request.display_url, self.default)
            if answer is None:
                continue
            if not isinstance(answer, Response):
                answer = Response(body=answer)
            answers.append(Answer(request=request, response=answer))

        return answers

    @property
    def performed(self) -> list[str]:
        """Every performed request, in order."""
        return [request for batch in self.batches for request in batch]


@pytest.fixture(autouse=True)
def reset_logging() -> 'Iterator[None]':
    """Restore the default structlog configuration and context after each test.

    The command-line interface binds the log output to the stream that
    is current when it runs, which `CliRunner` closes afterwards.
    """
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def make_host() -> 'Callable[..., FakeHost]':
    """Provide a factory of table-driven fake hosts."""
    return FakeHost


@pytest.fixture
def patch_entrypoints(mocker: 'MockerFixture') -> 'Callable[..., MockType]':
    """Provide a factory for mocking `importlib.metadata.entry_points`.

    Returns a callable that patches `entry_points()` to simulate
    discovery of port plugins in the `sitedata_ports` entry point group.

    The returned factory allows configuring:
    - loadable plugins (or any other object returned by `load()`),
    - or an exception raised during plugin loading,
    - or an empty entry point list.
    """
    def patch(*plugins: 'PortPlugin | object', raises: Exception | None = None) -> 'MockType':
        """Patch `entry_points` with a controlled plugin configuration.

        Args:
            plugins: Objects to be returned by `EntryPoint.load()`.
                If empty, no entry points are registered.
            raises: Exception to raise when `EntryPoint.load()` is called.
                Used to simulate plugin load failures.

        Returns:
            A mock patch object produced by `mocker.patch` that replaces
            `importlib.metadata.entry_points` for the duration of the test.
        """
        entrypoints = []
        for position, plugin in enumerate(plugins):
            ep = mocker.Mock(spec=EntryPoint)
            ep.group = 'sitedata_ports'
            ep.name = f'tests{position}'
            ep.value = f'tests.ports:plugin{position}'
            ep.load.return_value = plugin
            if raises is not None:
                ep.load.side_effect = raises
            entrypoints.append(ep)

        return mocker.patch(
            'importlib.metadata.entry_points',
            return_value=EntryPoints(entrypoints),
        )

    return patch

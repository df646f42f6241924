"""Tests for the in-process host executor."""

from json import loads
from typing import TYPE_CHECKING

import aiohttp
import pytest

from sitedata.core.cache import Response
from sitedata.host import LocalHost, text_or_bytes
from sitedata.host.ports import Port, PortRegistry, port
from sitedata.request import JsonBody, Request, StringBody
from sitedata.secrets import RequestTemplate, SecretsProvider, secret, template
from sitedata.sources.files import read
from sitedata.sources.port import call

if TYPE_CHECKING:
    from pathlib import Path

    from pytest_mock import MockerFixture, MockType


@pytest.fixture
def site_root(tmp_path: 'Path') -> 'Path':
    """Site directory with a few content files."""
    (tmp_path / 'content' / 'blog').mkdir(parents=True)
    (tmp_path / 'content' / 'blog' / 'first-post.md').write_text('---\ntitle: First\n---\nHello', encoding='utf-8')
    (tmp_path / 'content' / 'blog' / 'second.md').write_text('Second', encoding='utf-8')
    (tmp_path / 'logo.png').write_bytes(b'\x89PNG\r\n\x1a\n\xff')

    return tmp_path


@pytest.fixture
def session(mocker: 'MockerFixture') -> 'MockType':
    """Network session answering every request with a JSON document."""
    response = mocker.Mock(status=200)
    response.read = mocker.AsyncMock(return_value=b'{"stargazer_count":86}')

    session = mocker.MagicMock(spec=aiohttp.ClientSession)
    session.request.return_value.__aenter__.return_value = response

    return session


def test_text_or_bytes() -> None:
    """Store UTF-8 content as text and anything else as base64."""
    assert text_or_bytes('Grüße'.encode()) == Response(body='Grüße')
    assert text_or_bytes(b'\xff\x00', 200) == Response(body='/wA=', encoding='base64', status=200)


@pytest.mark.asyncio
async def test_host_perform_files(site_root: 'Path') -> None:
    """Answer file reads and scans, echoing the masked requests."""
    host = LocalHost(site_root)
    requests = [
        read('content/blog/second.md'),
        read('logo.png'),
        read('content/missing.md'),
        Request(target='glob', url='content/blog/*.md'),
    ]

    answers = await host.perform(requests)

    assert [answer.request for answer in answers] == requests
    assert answers[0].response == Response(body='Second')
    assert answers[1].response.encoding == 'base64'
    assert answers[1].response.content == b'\x89PNG\r\n\x1a\n\xff'
    assert answers[2].response.error.startswith('Could not read file content/missing.md')
    assert not answers[2].response.ok
    assert loads(answers[3].response.body) == ['content/blog/first-post.md', 'content/blog/second.md']


@pytest.mark.asyncio
@pytest.mark.parametrize('name', (
    pytest.param('../logo.png', id='parent'),
    pytest.param('blog/../../logo.png', id='nested parent'),
    pytest.param('{root}/logo.png', id='absolute'),
))
async def test_host_read_file_outside_root(site_root: 'Path', name: str) -> None:
    """Refuse to read files outside of the site root."""
    host = LocalHost(site_root / 'content')

    response = await host.read_file(name.format(root=site_root))

    assert not response.ok
    assert response.error.startswith('Refusing to read')
    assert response.body == ''


@pytest.mark.asyncio
async def test_host_fetch(session: 'MockType') -> None:
    """Send the unmasked request and store the body."""
    host = LocalHost(secrets=SecretsProvider({'TOKEN': 't0ken'}))
    request = RequestTemplate(
        url='https://api.example.com/repo',
        headers=(('Authorization', template('token ', secret('TOKEN'))),),
    ).mask()

    response = await host.answer(request, session)

    assert response == Response(body='{"stargazer_count":86}', status=200)
    session.request.assert_called_once_with(
        'GET',
        'https://api.example.com/repo',
        headers=[('Authorization', 'token t0ken')],
    )


@pytest.mark.asyncio
async def test_host_fetch_bodies(session: 'MockType') -> None:
    """Send text and JSON bodies."""
    host = LocalHost()

    await host.fetch(Request(method='POST', url='https://x', body=StringBody(content='a=1')), session)
    await host.fetch(Request(method='POST', url='https://x', body=JsonBody(value={'a': 1})), session)

    text_call, json_call = session.request.call_args_list

    assert text_call.kwargs == {'headers': [('Content-Type', 'text/plain')], 'data': b'a=1'}
    assert json_call.kwargs == {'headers': [], 'json': {'a': 1}}


@pytest.mark.asyncio
async def test_host_fetch_bad_status(session: 'MockType') -> None:
    """Keep the status of unsuccessful responses."""
    session.request.return_value.__aenter__.return_value.status = 404

    response = await LocalHost().fetch(Request(url='https://x'), session)

    assert response.status == 404
    assert not response.ok


@pytest.mark.asyncio
async def test_host_fetch_transport_error(session: 'MockType') -> None:
    """Translate transport failures into error responses."""
    session.request.side_effect = aiohttp.ClientConnectionError('Connection refused')

    response = await LocalHost().fetch(Request(url='https://x'), session)

    assert response == Response(error='Connection refused')


@pytest.mark.asyncio
async def test_host_missing_secret(session: 'MockType') -> None:
    """Answer requests needing an unknown secret without sending them."""
    host = LocalHost(secrets=SecretsProvider({'GITHUB_TOKEN': 'x'}))
    request = RequestTemplate(url=template('https://x/?token=', secret('GITHUB_TOKN'))).mask()

    response = await host.answer(request, session)

    assert response.missing_secret.name == 'GITHUB_TOKN'
    assert response.missing_secret.suggestion == 'GITHUB_TOKEN'
    session.request.assert_not_called()


@pytest.mark.asyncio
async def test_host_call_port() -> None:
    """Call synchronous and asynchronous port handlers."""
    @port('math.double')
    def double(value: int) -> int:
        return value * 2

    async def greet(value: dict) -> str:
        return f'Hello, {value["name"]}!'

    host = LocalHost(ports=PortRegistry([double, Port(name='greet', handler=greet)]))

    assert await host.call_port(call('math.double', 21).request) == Response(body='42')
    assert await host.call_port(call('greet', {'name': 'Alice'}).request) == Response(body='"Hello, Alice!"')


@pytest.mark.asyncio
async def test_host_call_port_failures() -> None:
    """Translate unknown ports and handler errors into error responses."""
    @port('broken')
    def broken(_: object) -> None:
        raise RuntimeError('database is down')

    host = LocalHost(ports=PortRegistry([broken]))

    unknown = await host.call_port(call('missing').request)
    failed = await host.call_port(call('broken').request)

    assert unknown.error == "Unknown port 'missing'"
    assert failed.error == "Port 'broken' failed: database is down"

"""Host executors performing batches of requests.

The engine never performs I/O itself: every round of the convergence
loop hands the missing requests to a `HostExecutor`. Requests are given
in masked form; the host substitutes secret values right before sending
and answers with responses keyed by the masked request.

`LocalHost` performs requests in-process:

- `http` requests with `aiohttp`;
- `file` reads relative to a root directory;
- `glob` scans of the root directory;
- `port` calls to registered handlers.
"""

from asyncio import Semaphore, gather, to_thread
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import aiohttp
import structlog
from pydantic import Field

from sitedata.core.cache import MissingSecret, Response
from sitedata.errors import MissingSecretError
from sitedata.host.matcher import scan
from sitedata.host.ports import PortRegistry
from sitedata.models import SchemaModel
from sitedata.request import BytesBody, JsonBody, Request, StringBody
from sitedata.secrets import SecretsProvider, unmask
from sitedata.values import canonical

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = structlog.get_logger()

DEFAULT_MAX_CONCURRENCY = 8
DEFAULT_TIMEOUT = 30.0


class Answer(SchemaModel):
    """Response of the host to one masked request."""

    request: Request = Field(
        title='Request',
        description='Masked request, as it was given to the host.',
    )

    response: Response = Field(
        title='Response',
        description='Stored answer.',
    )


class HostExecutor(Protocol):
    """Performer of request batches."""

    async def perform(self, requests: 'Sequence[Request]') -> list[Answer]:
        """Perform a batch of masked requests."""


def text_or_bytes(content: bytes, status: int | None = None) -> Response:
    """Store content as text when it is valid UTF-8, as base64 otherwise."""
    try:
        return Response(body=content.decode('utf-8'), status=status)
    except UnicodeDecodeError:
        return Response.from_bytes(content, status=status)


class LocalHost:
    """In-process host executor."""

    def __init__(self, root: Path | str = '.', *,
                 secrets: SecretsProvider | None = None,
                 ports: PortRegistry | None = None,
                 max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
                 request_timeout: float = DEFAULT_TIMEOUT) -> None:
        """Initialize the host.

        Args:
            root: Directory of `file` and `glob` requests.
            secrets: Provider of secret values (no secrets if omitted).
            ports: Registry of port handlers (no ports if omitted).
            max_concurrency: Upper bound of requests performed at once.
            request_timeout: Total timeout of one network request, in seconds.
        """
        self.root = Path(root)
        self.secrets = secrets or SecretsProvider()
        self.ports = ports or PortRegistry()
        self.max_concurrency = max_concurrency
        self.request_timeout = request_timeout

    async def perform(self, requests: 'Sequence[Request]') -> list[Answer]:
        """Perform a batch of masked requests concurrently."""
        semaphore = Semaphore(self.max_concurrency)
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)

        async with aiohttp.ClientSession(timeout=timeout) as session:
            async def limited(request: Request) -> Answer:
                async with semaphore:
                    return Answer(request=request, response=await self.answer(request, session))

            return list(await gather(*(limited(request) for request in requests)))

    async def answer(self, request: Request, session: aiohttp.ClientSession) -> Response:
        """Perform one masked request."""
        try:
            sendable = unmask(request, self.secrets)
        except MissingSecretError as error:
            logger.warning('host.missing_secret', request=request.display_url, secret=error.name)
            return Response(missing_secret=MissingSecret(name=error.name, suggestion=error.suggestion))

        logger.debug('host.request', request=request.display_url)

        match sendable.target:
            case 'http':
                return await self.fetch(sendable, session)
            case 'file':
                return await self.read_file(sendable.url)
            case 'glob':
                return await self.glob(sendable.url)
            case 'port':
                return await self.call_port(sendable)

        return Response(error=f'Unknown request target {sendable.target!r}')

    async def fetch(self, request: Request, session: aiohttp.ClientSession) -> Response:
        """Perform a network request."""
        options: dict[str, Any] = {'headers': list(request.headers)}

        if isinstance(request.body, StringBody):
            options['data'] = request.body.content.encode('utf-8')
            options['headers'].append(('Content-Type', request.body.mime_type))
        elif isinstance(request.body, BytesBody):
            options['data'] = request.body.content
            options['headers'].append(('Content-Type', request.body.mime_type))
        elif isinstance(request.body, JsonBody):
            options['json'] = request.body.value

        try:
            async with session.request(request.method, request.url, **options) as response:
                content = await response.read()
                status = response.status

        except (aiohttp.ClientError, TimeoutError) as error:
            logger.warning('host.request_failed', request=request.display_url, error=repr(error))
            return Response(error=str(error) or type(error).__name__)

        if not 200 <= status < 300:  # noqa: PLR2004
            logger.warning('host.bad_status', request=request.display_url, status=status)

        return text_or_bytes(content, status)

    async def read_file(self, name: str) -> Response:
        """Read a file relative to the root.

        Paths leaving the root (absolute or through `..`) are refused.
        """
        root = self.root.resolve()
        path = (root / name).resolve()
        if not path.is_relative_to(root):
            logger.warning('host.file_outside_root', path=name)
            return Response(error=f'Refusing to read {name} outside of the site root')

        try:
            content = await to_thread(path.read_bytes)
        except OSError as error:
            logger.warning('host.file_failed', path=str(path), error=error.strerror)
            return Response(error=f'Could not read file {name}: {error.strerror}')

        return text_or_bytes(content)

    async def glob(self, syntax: str) -> Response:
        """Scan the root for files matching a pattern."""
        matches = await to_thread(scan, self.root, syntax)

        return Response(body=canonical(matches))

    async def call_port(self, request: Request) -> Response:
        """Call a registered port handler."""
        if (handler := self.ports.get(request.url)) is None:
            return Response(error=f'Unknown port {request.url!r}')

        body: Any = None
        if isinstance(request.body, JsonBody):
            body = request.body.value
        elif isinstance(request.body, StringBody):
            body = request.body.content

        try:
            result = await handler.call(body)
            return Response(body=canonical(result))

        except Exception as error:
            logger.warning('host.port_failed', port=request.url, error=repr(error))
            return Response(error=f'Port {request.url!r} failed: {error}')

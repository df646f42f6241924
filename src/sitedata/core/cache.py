"""Response cache keyed by request hash.

The cache maps request hashes to stored responses, or to a pending
marker while a request is in flight. It is append-only for the
duration of a build: a stored response is never replaced, only a
pending marker is.

Persisted caches from a previous build are trusted as-is. Text bodies
are persisted as plain strings, binary bodies as base64 objects:

    {
        "3f1c...": "{\"stargazer_count\":86}",
        "9a0e...": {"body": "iVBORw0KGgo=", "encoding": "base64"}
    }
"""

from base64 import b64decode, b64encode
from json import JSONDecodeError, dumps, loads
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final, Literal

import structlog
from pydantic import Field, ValidationError

from sitedata.errors import SettingsError
from sitedata.models import SchemaModel

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

logger = structlog.get_logger()

#: Encodings of persisted response bodies.
Encoding = Literal['text', 'base64']


class MissingSecret(SchemaModel):
    """Secret a host could not find while unmasking a request."""

    name: str
    suggestion: str | None = None


class Response(SchemaModel):
    """Stored answer to one request."""

    body: str = Field(
        default='',
        title='Body',
        description='Response body, as text or base64 encoded bytes.',
    )

    encoding: Encoding = Field(
        default='text',
        title='Encoding',
        description='Encoding of the body.',
    )

    status: int | None = Field(
        default=None,
        title='Status',
        description='Status code of network responses.',
    )

    error: str | None = Field(
        default=None,
        title='Error',
        description='Transport failure reported by the host.',
    )

    missing_secret: MissingSecret | None = Field(
        default=None,
        title='Missing secret',
        description='Secret that prevented the host from sending the request.',
    )

    @classmethod
    def from_bytes(cls, content: bytes, status: int | None = None) -> 'Response':
        """Build a response from binary content."""
        return cls(
            body=b64encode(content).decode('ascii'),
            encoding='base64',
            status=status,
        )

    @property
    def ok(self) -> bool:
        """Whether the response can be decoded."""
        if self.error is not None or self.missing_secret is not None:
            return False

        return self.status is None or 200 <= self.status < 300  # noqa: PLR2004

    @property
    def content(self) -> bytes:
        """Body as bytes."""
        if self.encoding == 'base64':
            return b64decode(self.body)

        return self.body.encode('utf-8')

    @property
    def text(self) -> str:
        """Body as text."""
        if self.encoding == 'base64':
            return self.content.decode('utf-8', errors='replace')

        return self.body

    def persisted(self) -> 'str | dict[str, str]':
        """Persisted form of the response."""
        if self.encoding == 'text':
            return self.body

        return {'body': self.body, 'encoding': self.encoding}


class _Pending:
    """Marker of a request in flight."""

    def __repr__(self) -> str:
        """Developer representation."""
        return 'PENDING'


PENDING: Final = _Pending()


class ResponseCache:
    """Append-only mapping of request hashes to responses."""

    def __init__(self, entries: 'Mapping[str, Response] | None' = None) -> None:
        """Initialize the cache.

        Args:
            entries: Responses known before the build starts.
        """
        self._entries: dict[str, Response | _Pending] = dict(entries or {})

    def __contains__(self, key: object) -> bool:
        """Check whether a response is stored under a hash."""
        return isinstance(self._entries.get(key), Response)  # type: ignore[arg-type]

    def __len__(self) -> int:
        """Number of stored responses (pending markers excluded)."""
        return sum(1 for _ in self.items())

    def get(self, key: str) -> Response | None:
        """Stored response of a hash, or `None` if missing or pending."""
        entry = self._entries.get(key)
        if isinstance(entry, Response):
            return entry

        return None

    def is_pending(self, key: str) -> bool:
        """Check whether a hash is in flight."""
        return self._entries.get(key) is PENDING

    def is_known(self, key: str) -> bool:
        """Check whether a hash is either stored or in flight."""
        return key in self._entries

    @property
    def pending(self) -> tuple[str, ...]:
        """Hashes of the requests in flight."""
        return tuple(key for key, entry in self._entries.items() if entry is PENDING)

    def mark_pending(self, keys: 'Iterable[str]') -> None:
        """Mark hashes as in flight, skipping stored responses."""
        for key in keys:
            self._entries.setdefault(key, PENDING)

    def add(self, key: str, response: Response) -> bool:
        """Store a response.

        A stored response is never replaced; a pending marker is.

        Returns:
            Whether the response was stored.
        """
        if isinstance(self._entries.get(key), Response):
            return False

        self._entries[key] = response
        return True

    def update(self, answers: 'Iterable[tuple[str, Response]]') -> int:
        """Store several responses.

        Returns:
            The number of newly stored responses.
        """
        return sum(self.add(key, response) for key, response in answers)

    def items(self) -> 'Iterator[tuple[str, Response]]':
        """Iterate over the stored responses."""
        for key, entry in self._entries.items():
            if isinstance(entry, Response):
                yield key, entry

    @classmethod
    def loads(cls, data: 'Mapping[str, Any]') -> 'ResponseCache':
        """Build a cache from its persisted form.

        Raises:
            SettingsError: If an entry has an unexpected shape.
        """
        entries = {}
        for key, value in data.items():
            if isinstance(value, str):
                entries[key] = Response(body=value)
                continue
            try:
                entries[key] = Response.model_validate(value)
            except ValidationError as base:
                raise SettingsError(f'Invalid cache entry {key!r}') from base

        return cls(entries)

    @classmethod
    def load(cls, path: Path | str) -> 'ResponseCache':
        """Load a persisted cache, or an empty cache if the file is missing.

        Raises:
            SettingsError: If the file is not a valid persisted cache.
        """
        path = Path(path)
        if not path.is_file():
            logger.debug('cache.missing', path=str(path))
            return cls()

        try:
            data = loads(path.read_text(encoding='utf-8'))
        except JSONDecodeError as base:
            raise SettingsError(f'Cache file {path} is not valid JSON') from base

        if not isinstance(data, dict):
            raise SettingsError(f'Cache file {path} must contain an object')

        cache = cls.loads(data)
        logger.info('cache.loaded', path=str(path), entries=len(cache))

        return cache


def dump_cache(entries: 'Mapping[str, Response]', path: Path | str) -> None:
    """Persist responses in the cache file format.

    Args:
        entries: Responses keyed by hash (or distill key).
        path: Target file; parent directories are created.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    data = {key: response.persisted() for key, response in sorted(entries.items())}
    path.write_text(dumps(data, ensure_ascii=False, indent=2), encoding='utf-8')

    logger.info('cache.written', path=str(path), entries=len(data))

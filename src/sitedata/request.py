"""Raw request values and their canonical hash.

A request describes one unit of host-performed I/O: an HTTP call, a
file read, a directory glob scan or a call to a host-defined port.
Requests are immutable; their hash is the key of the response cache.

Requests handled by the engine are always in masked form: secret values
are represented by `<NAME>` placeholders listed in `Request.secrets`.
The hash therefore depends on the names of the secrets, never on their
values (see `sitedata.secrets`).
"""

from base64 import b64encode
from hashlib import sha256
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator

from sitedata.models import SchemaModel
from sitedata.values import Json, canonical, normalize

#: Host handler a request is routed to.
Target = Literal['http', 'file', 'glob', 'port']

#: Legacy URL prefixes, used for display only.
_DISPLAY_PREFIXES = {
    'file': 'file://',
    'glob': 'glob://',
    'port': 'port://',
}


class EmptyBody(SchemaModel):
    """Request without a body."""

    kind: Literal['empty'] = 'empty'

    def canonical(self) -> dict[str, Json]:
        """Canonical representation used for hashing."""
        return {'kind': self.kind}


class StringBody(SchemaModel):
    """Request with a text body."""

    kind: Literal['string'] = 'string'

    content: str = Field(
        title='Content',
        description='Text content of the body.',
    )

    mime_type: str = Field(
        default='text/plain',
        title='MIME type',
        description='Content type sent along with the body.',
    )

    def canonical(self) -> dict[str, Json]:
        """Canonical representation used for hashing."""
        return {'kind': self.kind, 'content': self.content, 'mimeType': self.mime_type}


class JsonBody(SchemaModel):
    """Request with a JSON body."""

    kind: Literal['json'] = 'json'

    value: Any = Field(
        title='Value',
        description='JSON value of the body.',
    )

    @field_validator('value', mode='before')
    @classmethod
    def check_value(cls, value: Any) -> Json:  # noqa: ANN401
        """Normalize the body into a JSON value.

        Raises:
            ValueError: If the body is not JSON-compatible.
        """
        try:
            return normalize(value)
        except TypeError as base:
            raise ValueError(str(base)) from base

    def canonical(self) -> dict[str, Json]:
        """Canonical representation used for hashing."""
        return {'kind': self.kind, 'value': self.value}


class BytesBody(SchemaModel):
    """Request with a binary body."""

    kind: Literal['bytes'] = 'bytes'

    content: bytes = Field(
        title='Content',
        description='Binary content of the body.',
    )

    mime_type: str = Field(
        default='application/octet-stream',
        title='MIME type',
        description='Content type sent along with the body.',
    )

    def canonical(self) -> dict[str, Json]:
        """Canonical representation used for hashing."""
        return {
            'kind': self.kind,
            'content': b64encode(self.content).decode('ascii'),
            'mimeType': self.mime_type,
        }


Body = Annotated[
    EmptyBody | StringBody | JsonBody | BytesBody,
    Field(discriminator='kind'),
]


class Request(SchemaModel):
    """Immutable description of one outbound operation."""

    target: Target = Field(
        default='http',
        title='Target',
        description=(
            'Host handler the request is routed to: network (`http`), '
            'file read (`file`), directory scan (`glob`) or a '
            'host-defined RPC channel (`port`).'
        ),
    )

    method: str = Field(
        default='GET',
        title='Method',
        description='Request method, normalized to upper case.',
    )

    url: str = Field(
        title='Resource',
        description='URL, file path, glob label or port name.',
    )

    headers: tuple[tuple[str, str], ...] = Field(
        default=(),
        title='Headers',
        description='Ordered header name/value pairs.',
    )

    body: Body = Field(
        default_factory=EmptyBody,
        title='Body',
        description='Request body.',
    )

    secrets: tuple[str, ...] = Field(
        default=(),
        title='Referenced secrets',
        description=(
            'Names of secrets whose `<NAME>` placeholders occur in the '
            'request. Empty for requests that need no secrets.'
        ),
    )

    @field_validator('method')
    @classmethod
    def check_method(cls, value: str) -> str:
        """Normalize the method to upper case."""
        return value.upper()

    def canonical(self) -> str:
        """Canonical JSON form of the request.

        Target, method, URL, headers (in order), the kind-tagged body and
        the referenced secret names participate, so a literal `<NAME>` text
        never shares a key with a masked secret.
        """
        return canonical({
            'target': self.target,
            'method': self.method,
            'url': self.url,
            'headers': [list(header) for header in self.headers],
            'body': self.body.canonical(),
            'secrets': sorted(self.secrets),
        })

    def hash(self) -> str:
        """Deterministic cache key of the request."""
        return sha256(self.canonical().encode('utf-8')).hexdigest()

    @property
    def display_url(self) -> str:
        """Human-readable form of the request for logs and errors."""
        prefix = _DISPLAY_PREFIXES.get(self.target, '')
        if self.target == 'http':
            return f'{self.method} {self.url}'

        return f'{prefix}{self.url}'


def get(url: str, headers: 'list[tuple[str, str]] | tuple[tuple[str, str], ...]' = ()) -> Request:
    """Build a plain HTTP GET request."""
    return Request(url=url, headers=tuple(headers))

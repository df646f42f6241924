"""File read data sources.

Files are read by the host relative to the site root. Text files may
start with a YAML frontmatter block:

    ---
    title: First post
    ---
    Body of the post.
"""

from typing import TYPE_CHECKING, Any

from yaml import YAMLError, safe_load

from sitedata.datasource import RequestSource
from sitedata.decoders import Decoder, value
from sitedata.errors import DecodeError
from sitedata.models import SchemaModel
from sitedata.request import Request
from sitedata.usage import RAW

if TYPE_CHECKING:
    from collections.abc import Callable

    from sitedata.usage import Projection

FRONTMATTER_FENCE = '---'


class Document(SchemaModel):
    """Text file split into its frontmatter and body."""

    frontmatter: Any = None
    body: str = ''


def split_frontmatter(text: str) -> tuple[str | None, str]:
    """Split a text into its raw frontmatter and its body.

    Returns:
        The frontmatter source (`None` without a frontmatter block) and
        the remaining body.
    """
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip() != FRONTMATTER_FENCE:
        return None, text

    for position, line in enumerate(lines[1:], start=1):
        if line.rstrip() == FRONTMATTER_FENCE:
            return ''.join(lines[1:position]), ''.join(lines[position + 1:])

    return None, text


def parse_document(text: str) -> Document:
    """Parse a text file with an optional YAML frontmatter.

    Raises:
        DecodeError: If the frontmatter is not valid YAML.
    """
    source, body = split_frontmatter(text)
    if source is None:
        return Document(body=body)

    try:
        frontmatter = safe_load(source)
    except YAMLError as base:
        raise DecodeError('a valid YAML frontmatter', source) from base

    return Document(frontmatter=frontmatter, body=body)


def _document_decoder[T](build: 'Callable[[Document], T]', name: str) -> Decoder[T]:
    """Build a decoder of raw file text."""
    def runner(raw: Any) -> 'tuple[T, Projection]':  # noqa: ANN401
        if not isinstance(raw, str):
            raise DecodeError('a STRING', raw)
        return build(parse_document(raw)), RAW

    return Decoder(runner, name=name)


def read(path: str) -> Request:
    """Build a file read request."""
    return Request(target='file', url=path)


def raw(path: str) -> RequestSource:
    """Data source of the raw text of a file."""
    return RequestSource(request=read(path), decoder=value(), expect='string')


def binary(path: str) -> RequestSource:
    """Data source of the bytes of a file."""
    return RequestSource(request=read(path), decoder=value(), expect='bytes')


def json_file(path: str, decoder: Decoder[Any]) -> RequestSource:
    """Data source of a JSON file decoded with a decoder."""
    return RequestSource(request=read(path), decoder=decoder, expect='json')


def _decode_frontmatter(decoder: Decoder[Any], frontmatter: Any) -> Any:  # noqa: ANN401
    """Decode a parsed frontmatter, reporting errors under `frontmatter`."""
    try:
        return decoder.decode_value(frontmatter)
    except DecodeError as error:
        raise error.at('frontmatter') from None


def body_with_frontmatter(path: str, decoder: Decoder[Any]) -> RequestSource:
    """Data source of a `Document` whose frontmatter is decoded."""
    return RequestSource(
        request=read(path),
        decoder=_document_decoder(
            lambda document: Document(
                frontmatter=_decode_frontmatter(decoder, document.frontmatter),
                body=document.body,
            ),
            name='body_with_frontmatter',
        ),
        expect='string',
    )


def only_frontmatter(path: str, decoder: Decoder[Any]) -> RequestSource:
    """Data source of the decoded frontmatter of a file."""
    return RequestSource(
        request=read(path),
        decoder=_document_decoder(
            lambda document: _decode_frontmatter(decoder, document.frontmatter),
            name='only_frontmatter',
        ),
        expect='string',
    )


def body_without_frontmatter(path: str) -> RequestSource:
    """Data source of the body of a file, frontmatter removed."""
    return RequestSource(
        request=read(path),
        decoder=_document_decoder(lambda document: document.body, name='body_without_frontmatter'),
        expect='string',
    )

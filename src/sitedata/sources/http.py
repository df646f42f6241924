"""Network request data sources.

URLs and header values may reference secrets, in which case the request
is hashed and cached in masked form:

    repo = get_json(
        'https://api.github.com/repos/dillonkearns/elm-pages',
        record({
            'stars': field('stargazer_count', integer()),
            'language': field('language', string()),
        }),
        headers=[('Authorization', template('token ', secret('GITHUB_TOKEN')))],
    )
"""

from collections.abc import Sequence
from typing import Any

from sitedata.datasource import Expect, RequestSource
from sitedata.datasource import request as request_source
from sitedata.decoders import Decoder, value
from sitedata.request import BytesBody, EmptyBody, JsonBody, StringBody
from sitedata.secrets import JsonTemplateBody, RequestTemplate, StringTemplateBody, Text

#: Header pairs whose values may reference secrets.
type Headers = Sequence[tuple[str, Text]]

#: Bodies accepted by request builders.
type AnyBody = EmptyBody | StringBody | JsonBody | BytesBody | StringTemplateBody | JsonTemplateBody


def request(method: str, url: Text, decoder: Decoder[Any], *,
            headers: Headers = (), body: AnyBody | None = None,
            expect: Expect = 'json') -> RequestSource:
    """Build a network request data source.

    Args:
        method: Request method.
        url: URL, possibly referencing secrets.
        decoder: Decoder of the response body.
        headers: Ordered header pairs.
        body: Optional request body.
        expect: How the response body is presented to the decoder.

    Returns:
        A request node holding the masked request.

    Raises:
        pydantic.ValidationError: If the request is malformed.
    """
    template = RequestTemplate(
        target='http',
        method=method,
        url=url,
        headers=tuple(headers),
        body=body,
    )

    return request_source(template, decoder, expect)


def get_json(url: Text, decoder: Decoder[Any], *, headers: Headers = ()) -> RequestSource:
    """GET a JSON document."""
    return request('GET', url, decoder, headers=headers)


def get_text(url: Text, *, headers: Headers = ()) -> RequestSource:
    """GET a text document."""
    return request('GET', url, value(), headers=headers, expect='string')


def get_bytes(url: Text, *, headers: Headers = ()) -> RequestSource:
    """GET a binary document."""
    return request('GET', url, value(), headers=headers, expect='bytes')


def post_json(url: Text, payload: Any, decoder: Decoder[Any], *,  # noqa: ANN401
              headers: Headers = ()) -> RequestSource:
    """POST a JSON payload and decode the JSON response."""
    return request('POST', url, decoder, headers=headers, body=JsonTemplateBody(value=payload))


def fire(method: str, url: Text, *, headers: Headers = (),
         body: AnyBody | None = None) -> RequestSource:
    """Perform a request whose response is ignored."""
    return request(method, url, value(), headers=headers, body=body, expect='whatever')

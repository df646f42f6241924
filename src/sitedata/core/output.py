"""Build output assembly and response distillation.

Once every tracked item is resolved, the responses actually consumed
are stripped down to the parts their decoders looked at. The stripped
responses and the distilled values form the per-page static data and
the lighter cache persisted for the next build.
"""

from json import loads
from typing import TYPE_CHECKING, Any

from pydantic import Field

from sitedata.core.cache import Response
from sitedata.models import SchemaModel
from sitedata.site import GeneratedFile  # noqa: TC001
from sitedata.usage import Fields, Items, Raw
from sitedata.values import compact

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from sitedata.core.resolver import ResponseLookup
    from sitedata.usage import Projection


def encode_response(response: Response, projection: 'Projection') -> Response:
    """Strip a response to the projection consumed by its decoders.

    Raw (text or binary) bodies are kept whole. JSON bodies are replaced
    with the compact encoding of the projected value, with object fields
    in the order of the original body.
    """
    if isinstance(projection, Raw):
        return Response(body=response.body, encoding=response.encoding)

    stripped = projection.materialize()
    if isinstance(projection, Fields | Items):
        stripped = _in_order(stripped, loads(response.text))

    return Response(body=compact(stripped))


def _in_order(stripped: Any, original: Any) -> Any:  # noqa: ANN401
    """Reorder the fields of a stripped value like the original value."""
    if isinstance(stripped, dict) and isinstance(original, dict):
        return {
            name: _in_order(stripped[name], item)
            for name, item in original.items()
            if name in stripped
        }

    if isinstance(stripped, list) and isinstance(original, list):
        return [
            _in_order(item, source)
            for item, source in zip(stripped, original, strict=False)
        ]

    return stripped


def encode_responses(cache: 'ResponseLookup',
                     usage: 'Mapping[str, Projection]') -> dict[str, Response]:
    """Strip every consumed response.

    Args:
        cache: Responses answered during the build.
        usage: Merged projections keyed by request hash.

    Returns:
        Stripped responses keyed by request hash.
    """
    result = {}
    for key, projection in usage.items():
        if (response := cache.get(key)) is not None:
            result[key] = encode_response(response, projection)

    return result


def static_data(responses: 'Mapping[str, Response]',
                distilled: 'Mapping[str, str]') -> dict[str, str]:
    """Static data map of a payload (bodies and distilled values)."""
    data = {key: response.body for key, response in responses.items()}
    data.update(distilled)

    return dict(sorted(data.items()))


class Payload(SchemaModel):
    """Resolved data with the static data it was decoded from."""

    data: Any = Field(
        default=None,
        title='Data',
        description='Resolved value.',
    )

    static_data: dict[str, str] = Field(
        default_factory=dict,
        title='Static data',
        description='Stripped response bodies and distilled values, by key.',
    )


class PagePayload(Payload):
    """Resolved data of one page."""

    route: str = Field(
        title='Route',
        description='Route of the page.',
    )

    not_found: Any = Field(
        default=None,
        title='Not found reason',
        description='Reason returned by the route check when the page does not exist.',
    )

    @property
    def found(self) -> bool:
        """Whether the page exists."""
        return self.not_found is None


class BuildOutput(SchemaModel):
    """Successful result of a build."""

    pages: tuple[PagePayload, ...] = ()
    shared: Payload | None = None
    generated_files: tuple[GeneratedFile, ...] = ()

    responses: dict[str, Response] = Field(
        default_factory=dict,
        title='Responses',
        description='Every consumed response, stripped, keyed by request hash.',
    )

    distilled: dict[str, str] = Field(
        default_factory=dict,
        title='Distilled values',
        description='Encoded distilled values keyed by distill key.',
    )

    def page(self, route: str) -> PagePayload | None:
        """Payload of a route, if any."""
        for payload in self.pages:
            if payload.route == route:
                return payload

        return None

    def persisted_cache(self) -> dict[str, Response]:
        """Cache entries persisted for the next build."""
        entries = dict(self.responses)
        entries.update(
            (key, Response(body=encoded))
            for key, encoded in self.distilled.items()
        )

        return entries


def payload_of(cache: 'ResponseLookup', value: Any,  # noqa: ANN401
               usage: 'Mapping[str, Projection]',
               distilled: 'Mapping[str, str]') -> dict[str, Any]:
    """Build payload fields from a resolved value."""
    responses = encode_responses(cache, usage)

    return {'data': value, 'static_data': static_data(responses, distilled)}


def collect_files(values: 'Iterable[Any]') -> tuple[GeneratedFile, ...]:
    """Validate generated file values."""
    return tuple(
        value if isinstance(value, GeneratedFile) else GeneratedFile.model_validate(value)
        for value in values
    )

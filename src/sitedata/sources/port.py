"""Host-defined RPC channel data sources."""

from typing import Any

from sitedata.datasource import RequestSource
from sitedata.decoders import Decoder, value
from sitedata.errors import DefinitionError
from sitedata.names import PORT_PATTERN
from sitedata.request import JsonBody, Request


def call(name: str, payload: Any = None, decoder: Decoder[Any] | None = None) -> RequestSource:  # noqa: ANN401
    """Call a host port with a JSON payload.

    Args:
        name: Name of the port.
        payload: JSON payload passed to the port handler.
        decoder: Decoder of the handler result (any JSON if omitted).

    Returns:
        A request node.

    Raises:
        DefinitionError: If the port name is invalid.
    """
    if not PORT_PATTERN.match(name):
        raise DefinitionError(f'Invalid port name {name!r}')

    return RequestSource(
        request=Request(target='port', url=name, body=JsonBody(value=payload)),
        decoder=decoder or value(),
    )

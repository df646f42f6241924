"""Host-defined RPC channels ("ports") and their discovery.

A port is a named handler called by the host for `port` requests. The
handler receives the JSON body of the request and returns a JSON value
(synchronously or as an awaitable).

Ports are registered programmatically or discovered from the
`sitedata_ports` entry point group. Each entry point must expose a
`PortPlugin`. Plugins are loaded defensively: individual failures do not
interrupt the loading process unless strict mode is enabled.
"""

from collections.abc import Awaitable, Callable
from inspect import isawaitable
from typing import TYPE_CHECKING, Any
from warnings import warn

import structlog
from pydantic import Field, ValidationError

from sitedata.errors import PortError, PortWarning
from sitedata.models import SchemaModel
from sitedata.names import PortName  # noqa: TC001

if TYPE_CHECKING:
    from importlib.metadata import EntryPoint

    from sitedata.values import Json

logger = structlog.get_logger()

#: Entry point group of port plugins.
ENTRYPOINT_GROUP = 'sitedata_ports'

#: Port handler: takes the JSON body of a request.
type PortHandler = Callable[[Any], Any | Awaitable[Any]]


class Port(SchemaModel):
    """Named RPC handler."""

    name: PortName = Field(
        title='Name',
        description='Name used by `port` requests.',
    )

    handler: Callable[[Any], Any] = Field(
        title='Handler',
        description='Callable receiving the JSON body and returning a JSON value.',
    )

    async def call(self, body: 'Json') -> 'Json':
        """Call the handler, awaiting its result if needed."""
        result = self.handler(body)
        if isawaitable(result):
            result = await result

        return result


class PortPlugin(SchemaModel):
    """Declarative container of ports contributed by a distribution."""

    name: str = Field(
        title='Name',
        description='Name of the plugin, used in diagnostics.',
    )

    ports: list[Port] = Field(
        default_factory=list,
        title='Ports',
        description='Ports provided by the plugin.',
    )


def port(name: str) -> Callable[[PortHandler], Port]:
    """Decorate a function as a port handler."""
    def decorator(handler: PortHandler) -> Port:
        return Port(name=name, handler=handler)

    return decorator


class PortRegistry:
    """Registry of the ports known to a host.

    Attributes:
        strict_mode: If True, any registration issue raises an error.
            If False, issues are emitted as warnings and loading continues.
    """

    def __init__(self, ports: 'list[Port] | None' = None, *, strict_mode: bool = True) -> None:
        """Initialize the registry.

        Args:
            ports: Ports registered up front.
            strict_mode: Whether registration issues are fatal.
        """
        self.strict_mode = strict_mode
        self.ports: dict[str, Port] = {}

        for item in ports or ():
            self.add_port(item)

    def __contains__(self, name: object) -> bool:
        """Check whether a port is registered."""
        return name in self.ports

    def get(self, name: str) -> Port | None:
        """Registered port by name."""
        return self.ports.get(name)

    def add_port(self, item: Port, entrypoint: 'EntryPoint | None' = None) -> None:
        """Register a port.

        Args:
            item: Port definition.
            entrypoint: Entry point from which the port was loaded, if applicable.

        Raises:
            PortError: If the port shadows another one on strict mode.
        """
        module = entrypoint.value if entrypoint else getattr(item.handler, '__module__', None)

        if item.name in self.ports and (error := self.emit_port_issue(
            f'Port {item.name!r} from {module!r} is shadowing an existing',
            entrypoint,
        )):
            raise error

        self.ports[item.name] = item

    def emit_port_issue(self, message: str,
                        entrypoint: 'EntryPoint | None' = None) -> Exception | None:
        """Emit a port warning or return the exception.

        Returns:
            PortError on strict mode, otherwise `None`
                with producing a PortWarning.
        """
        if self.strict_mode:
            return PortError(message, entrypoint=entrypoint)

        warn(message, category=PortWarning, stacklevel=2)

        return None

    def _load_plugin(self, entrypoint: 'EntryPoint') -> None:
        """Load and register the ports of a single entry point.

        Raises:
            PortError: If any loading issues occur on strict mode.
        """
        try:
            plugin = entrypoint.load()

        except ValidationError as base:
            if error := self.emit_port_issue(
                f'Failed to validate entrypoint {entrypoint.name!r}',
                entrypoint,
            ):
                raise error from base
            return

        except Exception as base:
            if error := self.emit_port_issue(
                f'Failed to load entrypoint {entrypoint.name!r}',
                entrypoint,
            ):
                raise error from base
            return

        if not isinstance(plugin, PortPlugin):
            if error := self.emit_port_issue(
                f'Loaded from entrypoint {entrypoint.name!r} object is not a port plugin',
                entrypoint,
            ):
                raise error
            return

        for item in plugin.ports:
            self.add_port(item, entrypoint)

        logger.debug('ports.loaded', plugin=plugin.name, ports=[item.name for item in plugin.ports])

    def load_plugins(self) -> None:
        """Discover port plugins from the `sitedata_ports` entry point group.

        Raises:
            PortError: If any loading issues occur on strict mode.
        """
        from importlib.metadata import entry_points  # noqa: PLC0415

        for entrypoint in entry_points().select(group=ENTRYPOINT_GROUP):
            self._load_plugin(entrypoint)

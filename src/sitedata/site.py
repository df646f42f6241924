"""Site definitions consumed by the convergence loop.

A site is the upstream collaborator of the engine: a set of pages, each
with its data source and an optional route check, a shared data source
and a list of generated-file sources.
"""

from typing import Any

from pydantic import Field, field_validator

from sitedata.datasource import DataSource, Pure
from sitedata.errors import DefinitionError
from sitedata.models import SchemaModel


class GeneratedFile(SchemaModel):
    """File produced by a generated-file data source."""

    path: tuple[str, ...] = Field(
        title='Path',
        description='Path segments of the file, relative to the output directory.',
    )

    content: str = Field(
        title='Content',
        description='Text content of the file.',
    )

    @field_validator('path')
    @classmethod
    def check_path(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        """Reject empty paths and parent or absolute segments."""
        if not value:
            raise ValueError('Generated file path is empty')

        for segment in value:
            if not segment or segment in {'.', '..'} or '/' in segment:
                raise ValueError(f'Invalid generated file path segment {segment!r}')

        return value

    @property
    def filename(self) -> str:
        """POSIX path of the file."""
        return '/'.join(self.path)


class Page(SchemaModel):
    """Page route with its data source."""

    route: str = Field(
        title='Route',
        description='Route of the page (for example, `/blog/first-post`).',
    )

    data: DataSource = Field(
        default_factory=Pure,
        title='Data',
        description='Data source of the page data.',
    )

    handle_route: DataSource | None = Field(
        default=None,
        title='Route check',
        description=(
            'Optional data source resolving to `None` when the route '
            'exists, or to a not-found reason otherwise.'
        ),
    )

    @property
    def name(self) -> str:
        """Tracked item name of the page."""
        return f'page:{self.route}'


class Site(SchemaModel):
    """Complete site definition."""

    pages: tuple[Page, ...] = Field(
        default=(),
        title='Pages',
        description='Pages of the site.',
    )

    shared: DataSource | None = Field(
        default=None,
        title='Shared data',
        description='Data source shared by every page.',
    )

    generated_files: tuple[DataSource, ...] = Field(
        default=(),
        title='Generated files',
        description='Data sources resolving to `GeneratedFile` values.',
    )

    @field_validator('pages')
    @classmethod
    def check_pages(cls, value: tuple[Page, ...]) -> tuple[Page, ...]:
        """Reject duplicated routes."""
        routes: set[str] = set()
        for page in value:
            if page.route in routes:
                raise ValueError(f'Duplicated route {page.route!r}')
            routes.add(page.route)

        return value

    def page(self, route: str) -> Page:
        """Find a page by route.

        Raises:
            DefinitionError: If no page has the route.
        """
        for page in self.pages:
            if page.route == route:
                return page

        raise DefinitionError(f'Unknown route {route!r}')


def page(route: str, data: DataSource | None = None,
         handle_route: DataSource | None = None) -> Page:
    """Build a page definition."""
    extra: dict[str, Any] = {}
    if data is not None:
        extra['data'] = data

    return Page(route=route, handle_route=handle_route, **extra)


def load_site(reference: str) -> Site:
    """Import a site definition from a `module:attribute` reference.

    The attribute is either a `Site` or a callable returning one.

    Raises:
        DefinitionError: If the reference can not be resolved to a site.
    """
    from importlib import import_module  # noqa: PLC0415

    module_name, _, attribute = reference.partition(':')
    if not module_name or not attribute:
        raise DefinitionError(f'Site reference {reference!r} must look like `module:attribute`')

    try:
        module = import_module(module_name)
    except ImportError as base:
        raise DefinitionError(f'Can not import site module {module_name!r}') from base

    try:
        definition = getattr(module, attribute)
    except AttributeError as base:
        raise DefinitionError(f'Module {module_name!r} has no attribute {attribute!r}') from base

    if not isinstance(definition, Site) and callable(definition):
        definition = definition()

    if not isinstance(definition, Site):
        raise DefinitionError(f'{reference!r} is not a site definition')

    return definition

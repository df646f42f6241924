"""Command-line interface of sitedata.

    sitedata build mysite:site --output public
    sitedata hash https://api.github.com/repos/dillonkearns/elm-pages
    sitedata cache-info
"""

from pathlib import Path

from click import BadParameter, ClickException, argument, echo, group, option, style
from click import Path as PathParam

from sitedata.core.cache import ResponseCache, dump_cache
from sitedata.core.convergence import build
from sitedata.errors import BuildFailure, SiteDataError
from sitedata.host import LocalHost
from sitedata.host.ports import PortRegistry
from sitedata.logs import bind_context, clear_context, configure_logging
from sitedata.render import render_error, write_output
from sitedata.request import Request
from sitedata.secrets import SecretsProvider
from sitedata.settings import DEFAULT_CONFIG_FILE, BuildSettings
from sitedata.site import load_site

ConfigFilepath = PathParam(
    dir_okay=False,
    exists=True,
    readable=True,
    path_type=Path,
)

DirectoryPath = PathParam(
    file_okay=False,
    path_type=Path,
)


def _load_settings(config: Path | None, **overrides: object) -> BuildSettings:
    """Load settings from an explicit or the default configuration file."""
    overrides = {name: value for name, value in overrides.items() if value is not None}

    if config is None and Path(DEFAULT_CONFIG_FILE).is_file():
        config = Path(DEFAULT_CONFIG_FILE)

    if config is not None:
        return BuildSettings.from_file(config, **overrides)

    return BuildSettings.load(**overrides)


def _parse_header(value: str) -> tuple[str, str]:
    """Parse a `NAME:VALUE` header option."""
    name, separator, content = value.partition(':')
    if not separator or not name.strip():
        raise BadParameter(f'{value!r} is not a NAME:VALUE header', param_hint='--header')

    return name.strip(), content.strip()


@group(help='Resolve the data of a static site.')
def cli() -> None:
    """Root CLI group for sitedata tools."""
    return None


@cli.command(
    name='build',
    help=(
        'Resolve every page of SITE (a `module:attribute` reference) and '
        'write the page payloads, the generated files and the cache.'
    ),
)
@argument('site')
@option(
    '-c', '--config',
    type=ConfigFilepath,
    default=None,
    help=f'Settings file (defaults to {DEFAULT_CONFIG_FILE} when present).',
)
@option('--root', type=DirectoryPath, default=None, help='Site root directory.')
@option('-o', '--output', type=DirectoryPath, default=None, help='Output directory.')
@option('--cache/--no-cache', default=True, help='Reuse and update the persisted cache.')
@option('-v', '--verbose', is_flag=True, help='Emit debug log events.')
def build_site(site: str, config: Path | None, root: Path | None,  # noqa: PLR0913
               output: Path | None, cache: bool, verbose: bool) -> None:  # noqa: FBT001
    """Build the data of a site."""
    try:
        settings = _load_settings(
            config,
            root=root,
            output_dir=output.resolve() if output else None,
            log_level='debug' if verbose else None,
        )
        configure_logging(settings.log_level, json=settings.log_json)
        bind_context(site=site)

        definition = load_site(site)

        ports = PortRegistry(strict_mode=settings.strict_ports)
        ports.load_plugins()

        host = LocalHost(
            settings.root,
            secrets=SecretsProvider.from_environ(),
            ports=ports,
            max_concurrency=settings.max_concurrency,
            request_timeout=settings.request_timeout,
        )

        responses = ResponseCache.load(settings.cache_path) if cache else ResponseCache()
        result = build(definition, host, responses, max_rounds=settings.max_rounds)

    except BuildFailure as failure:
        for error in failure.errors:
            echo(render_error(error), err=True)
        raise ClickException(failure.message) from failure

    except SiteDataError as error:
        raise ClickException(str(error)) from error

    finally:
        clear_context('site')

    written = write_output(result, settings.output_path)
    if cache:
        dump_cache(result.persisted_cache(), settings.cache_path)

    found = sum(1 for payload in result.pages if payload.found)
    echo(style(f'Built {found} page(s), {len(written)} file(s) written to {settings.output_path}', fg='green'))


@cli.command(name='hash', help='Print the cache key of a network request.')
@argument('url')
@option('-X', '--method', default='GET', show_default=True, help='Request method.')
@option('-H', '--header', 'headers', multiple=True, help='Header as NAME:VALUE (repeatable).')
@option('-s', '--secret', 'secrets', multiple=True,
        help='Name of a secret whose <NAME> placeholder occurs in the request (repeatable).')
def print_hash(url: str, method: str, headers: tuple[str, ...], secrets: tuple[str, ...]) -> None:
    """Print the hash of a request."""
    request = Request(
        method=method,
        url=url,
        headers=tuple(_parse_header(header) for header in headers),
        secrets=secrets,
    )

    echo(request.hash())


@cli.command(name='cache-info', help='Print the number of entries in the persisted cache.')
@option(
    '-c', '--config',
    type=ConfigFilepath,
    default=None,
    help=f'Settings file (defaults to {DEFAULT_CONFIG_FILE} when present).',
)
@option('--cache-file', type=PathParam(dir_okay=False, path_type=Path), default=None,
        help='Persisted cache file.')
def cache_info(config: Path | None, cache_file: Path | None) -> None:
    """Describe the persisted cache."""
    try:
        settings = _load_settings(config, cache_file=cache_file)
        configure_logging(settings.log_level, json=settings.log_json)
        responses = ResponseCache.load(settings.cache_path)
    except SiteDataError as error:
        raise ClickException(str(error)) from error

    echo(f'{settings.cache_path}: {len(responses)} entries')


if __name__ == '__main__':
    cli()

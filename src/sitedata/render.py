"""Page payload rendering helpers.

Routes are written as directories: the payload of `/blog/first-post` is
stored in `blog/first-post/content.json` under the output directory,
next to the generated files of the site.
"""

from json import dumps
from os import linesep
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from click import style

if TYPE_CHECKING:
    from sitedata.core.output import BuildOutput, Payload
    from sitedata.errors import BuildError

logger = structlog.get_logger()

CONTENT_FILE = 'content.json'


def normalize_route(route: str) -> str:
    """Strip a trailing `index` segment and the surrounding slashes."""
    route = route.strip('/')
    if route == 'index' or route.endswith('/index'):
        route = route.removesuffix('index')

    return route.strip('/')


def path_to_root(route: str) -> str:
    """Relative path from a route directory back to the output root."""
    if not (route := normalize_route(route)):
        return ''

    return '../' * len(route.split('/'))


def base_route(route: str) -> str:
    """Value of the `<base href>` of a route."""
    return path_to_root(route) or './'


def content_json(payload: 'Payload', body: str | None = None) -> str:
    """Encode the `content.json` document of a payload."""
    return dumps(
        {'body': body, 'staticData': payload.static_data},
        ensure_ascii=False,
        separators=(',', ':'),
    )


def write_output(output: 'BuildOutput', directory: Path | str) -> list[Path]:
    """Write the payloads of the found pages and the generated files.

    Args:
        output: Successful build output.
        directory: Output directory; created as needed.

    Returns:
        Paths of the written files.
    """
    directory = Path(directory)
    written = []

    for payload in output.pages:
        if not payload.found:
            logger.info('output.not_found', route=payload.route, reason=str(payload.not_found))
            continue

        target = directory / normalize_route(payload.route) / CONTENT_FILE
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content_json(payload), encoding='utf-8')

        logger.info('output.page', route=payload.route, path=str(target))
        written.append(target)

    for generated in output.generated_files:
        target = directory.joinpath(*generated.path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(generated.content, encoding='utf-8')

        logger.info('output.file', path=str(target))
        written.append(target)

    return written


def render_error(error: 'BuildError', *, color: bool = True) -> str:
    """Render a build error for the terminal."""
    header = f'-- {error.title} {"-" * max(4, 60 - len(error.title))} {error.path}'.rstrip()
    body = ''.join(
        style(segment.text, fg=segment.color, bold=segment.bold) if color else segment.text
        for segment in error.message
    )

    return f'{style(header, fg="cyan") if color else header}{linesep}{linesep}{body}{linesep}'

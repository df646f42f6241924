"""Asynchronous convergence loop.

The loop drives every tracked item of a site (pages, shared data and
generated files) to completion:

1. resolve every tracked item against the cache;
2. stop if every item is complete;
3. collect the requests of incomplete and failing items, skipping the
   ones already answered or in flight;
4. stop with the collected errors if nothing new can be requested, or
   with a `ConvergenceError` if items are waiting for nothing;
5. mark the batch as pending, let the host perform it, store the
   answers and start a new round.

Pages with a route check are resolved in two stages: the page data is
only tracked once the route check resolves to `None`. Both stages may
complete in the same round.
"""

from asyncio import run as asyncio_run
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NoReturn

import structlog
from pydantic import ValidationError

from sitedata.core.cache import ResponseCache
from sitedata.core.output import BuildOutput, PagePayload, Payload, collect_files, encode_responses, payload_of
from sitedata.core.resolver import (
    Complete,
    Failure,
    Incomplete,
    completed,
    merge_distilled,
    resolve,
    unique_requests,
)
from sitedata.errors import (
    BuildFailure,
    ConvergenceError,
    DistillKeyCollisionError,
    ErrorContext,
    SiteDataError,
)
from sitedata.logs import bind_context, clear_context
from sitedata.usage import merge_usage

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sitedata.core.resolver import Status
    from sitedata.datasource import DataSource
    from sitedata.host import HostExecutor
    from sitedata.request import Request
    from sitedata.site import Site

logger = structlog.get_logger()

DEFAULT_MAX_ROUNDS = 100


@dataclass(frozen=True)
class Tracked:
    """Item driven by the loop."""

    name: str
    source: 'DataSource'
    route: str | None = None
    check: 'DataSource | None' = None


@dataclass(frozen=True)
class Outcome:
    """Status of a tracked item after one round."""

    status: 'Status'
    not_found: Any = None


def tracked_items(site: 'Site') -> list[Tracked]:
    """List the tracked items of a site, in reporting order."""
    items = [
        Tracked(page.name, page.data, route=page.route, check=page.handle_route)
        for page in site.pages
    ]

    if site.shared is not None:
        items.append(Tracked('shared', site.shared))

    items.extend(
        Tracked(f'generated:{position}', source)
        for position, source in enumerate(site.generated_files)
    )

    return items


class Convergence:
    """Driver resolving a site through repeated host round trips."""

    def __init__(self, site: 'Site', host: 'HostExecutor',
                 cache: ResponseCache | None = None, *,
                 max_rounds: int = DEFAULT_MAX_ROUNDS) -> None:
        """Initialize the loop.

        Args:
            site: Site definition to resolve.
            host: Executor of the missing requests.
            cache: Responses known before the build (a fresh cache if omitted).
            max_rounds: Upper bound of host round trips.
        """
        self.site = site
        self.host = host
        self.cache = cache if cache is not None else ResponseCache()
        self.max_rounds = max_rounds

        self.items = tracked_items(site)
        self.rounds = 0
        self.requested: dict[str, Request] = {}

    def evaluate(self, item: Tracked) -> Outcome:
        """Resolve one tracked item against the current cache.

        Raises:
            SiteDataError: If a user-provided function fails.
        """
        try:
            return self._evaluate(item)

        except SiteDataError:
            raise

        except Exception as base:
            raise SiteDataError(
                f'Unexpected error while resolving {item.name}',
                context=ErrorContext(origin=item.name, error=base),
            ) from base

    def _evaluate(self, item: Tracked) -> Outcome:
        """Resolve the route check, then the data of a tracked item."""
        if item.check is None:
            return Outcome(resolve(item.source, self.cache))

        check = resolve(item.check, self.cache)
        if not isinstance(check, Complete):
            return Outcome(check)

        if check.value is not None:
            return Outcome(check, not_found=check.value)

        status = resolve(item.source, self.cache)
        if not isinstance(status, Complete):
            return Outcome(status)

        return Outcome(completed(
            status.value,
            (check.usage, status.usage),
            (check.distilled, status.distilled),
        ))

    async def run(self) -> BuildOutput:
        """Drive every tracked item to completion.

        Every event logged during a round, by the loop or by the host,
        carries the `round` number.

        Returns:
            The build output.

        Raises:
            BuildFailure: If any tracked item failed permanently.
            ConvergenceError: If the loop can not make progress.
        """
        try:
            while True:
                self.rounds += 1
                bind_context(round=self.rounds)

                outcomes = {item.name: self.evaluate(item) for item in self.items}

                requests: list[Request] = []
                waiting, failed = [], []
                for name, outcome in outcomes.items():
                    status = outcome.status
                    if isinstance(status, Incomplete):
                        waiting.append(name)
                        requests.extend(status.requests)
                    elif isinstance(status, Failure):
                        failed.append(name)
                        requests.extend(status.requests)

                if not waiting and not failed:
                    return self.assemble(outcomes)

                batch = [
                    request for request in unique_requests(requests)
                    if not self.cache.is_known(request.hash())
                ]

                logger.info(
                    'convergence.round',
                    waiting=len(waiting),
                    failed=len(failed),
                    requests=len(batch),
                )

                if not batch:
                    if failed:
                        self.fail(outcomes)
                    self.deadlock(waiting)

                if self.rounds > self.max_rounds:
                    raise ConvergenceError(f'Data did not converge after {self.max_rounds} rounds')

                await self.perform(batch)

        finally:
            clear_context('round')

    async def perform(self, batch: 'Sequence[Request]') -> None:
        """Let the host perform a batch and store the answers."""
        keys = {request.hash(): request for request in batch}
        self.requested.update(keys)
        self.cache.mark_pending(keys)

        logger.info(
            'convergence.batch',
            size=len(batch),
            requests=[request.display_url for request in batch],
        )

        answers = await self.host.perform(list(batch))
        stored = self.cache.update(
            (answer.request.hash(), answer.response)
            for answer in answers
        )

        answered = {answer.request.hash() for answer in answers}
        if unanswered := [request for key, request in keys.items() if key not in answered]:
            logger.warning(
                'convergence.unanswered',
                requests=[request.display_url for request in unanswered],
            )

        logger.debug('convergence.stored', stored=stored)

    def fail(self, outcomes: 'dict[str, Outcome]') -> NoReturn:
        """Stop the build with the reason of every failed item.

        Raises:
            BuildFailure: Always.
        """
        errors = [
            outcome.status.reason.to_build_error(name)
            for name, outcome in outcomes.items()
            if isinstance(outcome.status, Failure)
        ]

        logger.error(
            'convergence.failed',
            errors=[error.title for error in errors],
        )

        raise BuildFailure(errors)

    def deadlock(self, waiting: list[str]) -> NoReturn:
        """Stop the build of items waiting for nothing.

        Raises:
            ConvergenceError: Always.
        """
        message = f'No new request can be issued for {", ".join(waiting)}'

        pending = [
            self.requested[key].display_url if key in self.requested else key
            for key in self.cache.pending
        ]
        if pending:
            message += f'; the host never answered {len(pending)} request(s): {", ".join(pending)}'

        logger.error('convergence.deadlock', waiting=waiting, pending=pending)

        raise ConvergenceError(message)

    def assemble(self, outcomes: 'dict[str, Outcome]') -> BuildOutput:
        """Build the output of a complete site.

        Raises:
            BuildFailure: If distilled values collide across items.
            SiteDataError: If a generated file value is invalid.
        """
        statuses = [outcome.status for outcome in outcomes.values()]
        usage = merge_usage(*(status.usage for status in statuses))

        try:
            distilled = merge_distilled(*(status.distilled for status in statuses))
        except DistillKeyCollisionError as error:
            raise BuildFailure([error.to_build_error('site')]) from error

        pages, shared, files = [], None, []
        for item in self.items:
            outcome = outcomes[item.name]
            status = outcome.status
            value = status.value if outcome.not_found is None else None
            fields = payload_of(self.cache, value, status.usage, status.distilled)

            if item.route is not None:
                pages.append(PagePayload(route=item.route, not_found=outcome.not_found, **fields))
            elif item.name == 'shared':
                shared = Payload(**fields)
            else:
                files.append((item.name, status.value))

        generated = []
        for name, value in files:
            try:
                generated.extend(collect_files([value]))
            except ValidationError as base:
                raise SiteDataError(
                    f'Invalid generated file from {name}',
                    context=ErrorContext(origin=name, element=value),
                ) from base

        output = BuildOutput(
            pages=tuple(pages),
            shared=shared,
            generated_files=tuple(generated),
            responses=encode_responses(self.cache, usage),
            distilled=distilled,
        )

        logger.info(
            'convergence.complete',
            rounds=self.rounds,
            pages=len(output.pages),
            responses=len(output.responses),
            distilled=len(output.distilled),
        )

        return output


async def converge(site: 'Site', host: 'HostExecutor',
                   cache: ResponseCache | None = None, *,
                   max_rounds: int = DEFAULT_MAX_ROUNDS) -> BuildOutput:
    """Resolve a site (see `Convergence.run`)."""
    return await Convergence(site, host, cache, max_rounds=max_rounds).run()


def build(site: 'Site', host: 'HostExecutor',
          cache: ResponseCache | None = None, *,
          max_rounds: int = DEFAULT_MAX_ROUNDS) -> BuildOutput:
    """Resolve a site from synchronous code."""
    return asyncio_run(converge(site, host, cache, max_rounds=max_rounds))

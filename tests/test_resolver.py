"""Tests for data source resolution against a response cache."""

from typing import TYPE_CHECKING

import pytest

from sitedata.core.cache import MissingSecret, Response, ResponseCache
from sitedata.core.resolver import Complete, Failure, Incomplete, resolve
from sitedata.datasource import (
    Pure,
    combine,
    fail,
    from_result,
    map2,
    request,
    resolve_all,
    succeed,
)
from sitedata.decoders import field, integer, string, value
from sitedata.errors import DecoderFailure, DistillKeyCollisionError, ExplicitFailure, MissingSecretError
from sitedata.request import Request, get
from sitedata.usage import RAW, UNUSED

if TYPE_CHECKING:
    from sitedata.datasource import DataSource

REPO = get('https://api.example.com/repo')
USER = get('https://api.example.com/user')
REPO_BODY = '{"stargazer_count":86,"language":"Elm","id":1}'


def cache_of(*answers: tuple[Request, Response | str]) -> ResponseCache:
    """Build a cache answering requests."""
    return ResponseCache({
        item.hash(): answer if isinstance(answer, Response) else Response(body=answer)
        for item, answer in answers
    })


@pytest.mark.parametrize('source, expected', (
    pytest.param(succeed(1), 1, id='pure'),
    pytest.param(succeed(1).map(lambda x: x + 1), 2, id='map'),
    pytest.param(combine([succeed(1), succeed('a'), succeed(None)]), [1, 'a', None], id='combine'),
    pytest.param(combine([]), [], id='empty combine'),
    pytest.param(map2(lambda a, b: a * b, succeed(6), succeed(7)), 42, id='map2'),
    pytest.param(succeed(3).and_then(lambda x: succeed(x * 2)), 6, id='and_then'),
    pytest.param(resolve_all(succeed([succeed(1), succeed(2)])), [1, 2], id='resolve all'),
    pytest.param(from_result(True, 'ok'), 'ok', id='from result'),
))
def test_resolve_without_requests(source: 'DataSource', expected: object) -> None:
    """Resolve request-free sources against an empty cache immediately."""
    status = resolve(source, ResponseCache())

    assert status == Complete(expected)


def test_resolve_missing_request() -> None:
    """Report the request of a missing response."""
    status = resolve(request(REPO, field('stargazer_count', integer())), ResponseCache())

    assert status == Incomplete((REPO,))


def test_resolve_pending_request_is_missing() -> None:
    """Treat pending requests as missing."""
    cache = ResponseCache()
    cache.mark_pending([REPO.hash()])

    status = resolve(request(REPO, value()), cache)

    assert status == Incomplete((REPO,))


def test_resolve_shared_request() -> None:
    """Satisfy two decoders of one request with a single response."""
    source = combine([
        request(REPO, field('stargazer_count', integer())),
        request(REPO, field('language', string())),
    ])

    assert resolve(source, ResponseCache()) == Incomplete((REPO,))

    status = resolve(source, cache_of((REPO, REPO_BODY)))

    assert isinstance(status, Complete)
    assert status.value == [86, 'Elm']
    assert status.usage[REPO.hash()].materialize() == {'stargazer_count': 86, 'language': 'Elm'}


def test_resolve_combine_collects_requests() -> None:
    """Report every missing request of independent sources at once."""
    source = combine([
        request(REPO, value()),
        request(USER, value()),
        succeed(1),
    ])

    assert resolve(source, ResponseCache()) == Incomplete((REPO, USER))
    assert resolve(source, cache_of((USER, '{}'))) == Incomplete((REPO,))


def test_resolve_and_then_hides_second_stage() -> None:
    """Reveal dependent requests only once their input is resolved."""
    def owner(login: str) -> 'DataSource':
        return request(get(f'https://api.example.com/users/{login}'), field('name', string()))

    source = request(REPO, field('owner', string())).and_then(owner)
    second = get('https://api.example.com/users/dillon')

    assert resolve(source, ResponseCache()) == Incomplete((REPO,))

    stage = resolve(source, cache_of((REPO, '{"owner":"dillon"}')))

    assert stage == Incomplete((second,))

    status = resolve(source, cache_of((REPO, '{"owner":"dillon"}'), (second, '{"name":"Dillon"}')))

    assert isinstance(status, Complete)
    assert status.value == 'Dillon'
    assert set(status.usage) == {REPO.hash(), second.hash()}


def test_resolve_and_then_failure_short_circuits() -> None:
    """Never call the continuation of a failed source."""
    def unexpected(_: object) -> 'DataSource':
        raise AssertionError('continuation called')

    status = resolve(fail('boom').and_then(unexpected), ResponseCache())

    assert isinstance(status, Failure)
    assert str(status.reason) == 'boom'


def test_resolve_and_then_requires_data_source() -> None:
    """Reject continuations that do not return a data source."""
    with pytest.raises(TypeError, match='and_then function must return a data source, got int'):
        resolve(succeed(1).and_then(lambda x: x), ResponseCache())


def test_resolve_propagates_user_errors() -> None:
    """Let exceptions of user functions propagate."""
    with pytest.raises(ZeroDivisionError):
        resolve(succeed(0).map(lambda x: 1 / x), ResponseCache())


def test_resolve_fail() -> None:
    """Fail permanently with the user message."""
    status = resolve(fail('boom'), ResponseCache())

    assert isinstance(status, Failure)
    assert isinstance(status.reason, ExplicitFailure)
    assert status.reason.title == 'CALLED FAIL'
    assert status.requests == ()


def test_resolve_from_result_failure() -> None:
    """Build failing sources from result pairs."""
    status = resolve(from_result(False, 'not ok'), ResponseCache())

    assert isinstance(status, Failure)
    assert str(status.reason) == 'not ok'


def test_resolve_fail_keeps_sibling_requests() -> None:
    """Report the failure with the requests of sibling branches."""
    source = combine([
        fail('boom'),
        request(REPO, value()),
        request(USER, value()),
    ])

    status = resolve(source, ResponseCache())

    assert isinstance(status, Failure)
    assert str(status.reason) == 'boom'
    assert status.requests == (REPO, USER)


def test_resolve_decoder_failure() -> None:
    """Describe responses the decoder rejects."""
    source = request(REPO, field('stargazer_count', string()))

    status = resolve(source, cache_of((REPO, REPO_BODY)))

    assert isinstance(status, Failure)
    assert isinstance(status.reason, DecoderFailure)
    assert status.reason.title == 'DECODER ERROR'
    assert status.reason.request == 'GET https://api.example.com/repo'
    assert status.reason.error.location == 'json.stargazer_count'

    text = ''.join(segment.text for segment in status.reason.segments())

    assert 'GET https://api.example.com/repo' in text
    assert 'Expecting a STRING' in text


@pytest.mark.parametrize('response, message', (
    pytest.param(
        Response(body='not json'),
        'Invalid JSON',
        id='invalid json',
    ),
    pytest.param(
        Response(body='{"message":"Not Found"}', status=404),
        'Bad status 404 for GET https://api.example.com/repo',
        id='bad status',
    ),
    pytest.param(
        Response(error='Connection refused'),
        'Request failed for GET https://api.example.com/repo: Connection refused',
        id='transport error',
    ),
))
def test_resolve_unusable_response(response: Response, message: str) -> None:
    """Fail permanently on responses that can not be decoded."""
    status = resolve(request(REPO, value()), cache_of((REPO, response)))

    assert isinstance(status, Failure)
    assert isinstance(status.reason, DecoderFailure)
    assert status.reason.message.startswith(message)


def test_resolve_missing_secret() -> None:
    """Fail permanently when the host lacks a secret."""
    response = Response(missing_secret=MissingSecret(name='GITHUB_TOKN', suggestion='GITHUB_TOKEN'))

    status = resolve(request(REPO, value()), cache_of((REPO, response)))

    assert isinstance(status, Failure)
    assert isinstance(status.reason, MissingSecretError)
    assert status.reason.name == 'GITHUB_TOKN'
    assert status.reason.suggestion == 'GITHUB_TOKEN'
    assert status.reason.title == 'MISSING SECRET'


def test_resolve_whatever_ignores_body() -> None:
    """Accept any answer of requests whose response is ignored."""
    source = request(REPO, value(), expect='whatever')

    status = resolve(source, cache_of((REPO, Response(body='<html>', status=500))))

    assert status == Complete(None, {REPO.hash(): UNUSED})


def test_resolve_whatever_missing_secret() -> None:
    """Fail on a missing secret even when the response is ignored."""
    source = request(REPO, value(), expect='whatever')

    status = resolve(source, cache_of((REPO, Response(missing_secret=MissingSecret(name='TOKEN')))))

    assert isinstance(status, Failure)
    assert isinstance(status.reason, MissingSecretError)
    assert status.reason.name == 'TOKEN'


def test_resolve_string_and_bytes() -> None:
    """Present raw bodies as text or bytes."""
    text = request(REPO, value(), expect='string')
    binary = request(USER, value(), expect='bytes')
    cache = cache_of((REPO, '<html>'), (USER, Response.from_bytes(b'\x89PNG')))

    assert resolve(text, cache) == Complete('<html>', {REPO.hash(): RAW})
    assert resolve(binary, cache) == Complete(b'\x89PNG', {USER.hash(): RAW})


def test_resolve_is_idempotent() -> None:
    """Resolve the same source to the same status again."""
    source = combine([request(REPO, field('language', string())), succeed(1)])
    cache = cache_of((REPO, REPO_BODY))

    assert resolve(source, cache) == resolve(source, cache)


def test_distill_merges_equal_values() -> None:
    """Merge one key registered twice with the same encoding."""
    stars = request(REPO, field('stargazer_count', integer()))
    source = combine([
        stars.distill('stars', lambda x: x, integer()),
        stars.distill('stars', lambda x: x, integer()),
    ])

    status = resolve(source, cache_of((REPO, REPO_BODY)))

    assert isinstance(status, Complete)
    assert status.value == [86, 86]
    assert status.distilled == {'stars': '86'}
    assert status.usage == {}


def test_distill_key_collision() -> None:
    """Fail permanently when one key holds two encodings."""
    source = combine([
        succeed(86).distill('stars', lambda x: x, integer()),
        succeed(123).distill('stars', lambda x: x, integer()),
    ])

    status = resolve(source, ResponseCache())

    assert isinstance(status, Failure)
    assert isinstance(status.reason, DistillKeyCollisionError)
    assert status.reason.title == 'NON-UNIQUE DISTILL KEYS'
    assert (status.reason.key, status.reason.first, status.reason.second) == ('stars', '86', '123')
    assert str(status.reason) == "Distill key 'stars' was registered with different values: 86 and 123"


def test_distill_reads_stored_value() -> None:
    """Resolve distilled values without their raw requests."""
    source = request(REPO, field('stargazer_count', integer())).distill('stars', lambda x: x, integer())
    cache = ResponseCache({'stars': Response(body='86')})

    assert resolve(source, cache) == Complete(86, {}, {'stars': '86'})


def test_distill_round_trips_encoding() -> None:
    """Decode the encoded value instead of returning the raw value."""
    source = succeed((1, 2)).distill('pair', list, value())

    status = resolve(source, ResponseCache())

    assert status == Complete([1, 2], {}, {'pair': '[1,2]'})


def test_distill_decoder_failure() -> None:
    """Fail when the distilled encoding does not decode back."""
    source = succeed('x').distill('name', lambda x: x, integer())

    status = resolve(source, ResponseCache())

    assert isinstance(status, Failure)
    assert isinstance(status.reason, DecoderFailure)
    assert status.reason.request == "distilled value 'name'"


def test_distill_waits_for_source() -> None:
    """Report the requests of the inner source."""
    source = request(REPO, value()).distill('repo', lambda x: x, value())

    assert resolve(source, ResponseCache()) == Incomplete((REPO,))


def test_pure_default_value() -> None:
    """Resolve an empty pure source to `None`."""
    assert resolve(Pure(), ResponseCache()) == Complete(None)

"""
Tests for SourceFetcher: retries with backoff, relay fallback, caching and errors.
Run: python tests/test_fetcher.py
"""

import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
	sys.path.insert(0, str(ROOT))

import aiohttp
import pytest

from ripdb.errors import FetchExhaustedError, FetchTimeoutError, TransportError
from ripdb.fetcher import SourceFetcher, csv_source, sheets_api_source, unwrap_envelope
from tests.fakes import FakeResponse, FakeSession, RecordingSleep, json_response


CSV_URL = 'http://example.test/deaths.csv'
CSV_BODY = 'Actor,Movie\nSean Bean,GoldenEye\n'
RELAYS = ['http://relay-one.test/get?url={quoted}', 'http://relay-two.test/{url}']


def make_fetcher(session, **kwargs):
	sleep = RecordingSleep()
	options = dict(max_retries=3, backoff_base=2.0, proxy_templates=RELAYS, session=session, sleep=sleep)
	options.update(kwargs)
	return SourceFetcher(**options), sleep


def test_direct_success():
	session = FakeSession({CSV_URL: FakeResponse(body=CSV_BODY)})
	fetcher, sleep = make_fetcher(session)
	result = asyncio.run(fetcher.fetch(csv_source(CSV_URL)))
	assert result.payload == CSV_BODY
	assert result.method == 'direct'
	assert result.url == CSV_URL
	assert sleep.delays == []


def test_transient_failures_are_retried_with_backoff():
	session = FakeSession({CSV_URL: [
		FakeResponse(status=500, reason='Server Error'),
		FakeResponse(status=502, reason='Bad Gateway'),
		FakeResponse(body=CSV_BODY),
	]})
	fetcher, sleep = make_fetcher(session)
	result = asyncio.run(fetcher.fetch(csv_source(CSV_URL)))
	assert result.method == 'direct'
	assert sleep.delays == [2.0, 4.0]
	assert session.urls() == [CSV_URL] * 3


def test_transient_exhaustion_skips_relays_by_default():
	session = FakeSession({CSV_URL: FakeResponse(status=503, reason='Unavailable')})
	fetcher, sleep = make_fetcher(session)
	with pytest.raises(FetchExhaustedError) as info:
		asyncio.run(fetcher.fetch(csv_source(CSV_URL)))
	assert info.value.attempts == 3
	assert isinstance(info.value.last_error, TransportError)
	assert 'All fetch methods failed for csv' in str(info.value)
	assert session.urls() == [CSV_URL] * 3
	assert sleep.delays == [2.0, 4.0]


def test_access_refusal_goes_straight_to_relays():
	session = FakeSession({
		CSV_URL: FakeResponse(status=403, reason='Forbidden'),
		'http://relay-one.test/': FakeResponse(status=500, reason='Relay down'),
		'http://relay-two.test/': json_response({'contents': CSV_BODY}),
	})
	fetcher, sleep = make_fetcher(session)
	result = asyncio.run(fetcher.fetch(csv_source(CSV_URL)))
	assert result.method == 'proxy'
	assert result.payload == CSV_BODY
	assert result.url == 'http://relay-two.test/' + CSV_URL
	assert sleep.delays == []  # refusals are not retried
	assert session.urls()[0] == CSV_URL
	assert session.urls()[1].startswith('http://relay-one.test/get?url=http%3A%2F%2F')


def test_proxy_on_any_failure():
	session = FakeSession({
		CSV_URL: aiohttp.ClientConnectionError('connection reset'),
		'http://relay-one.test/': FakeResponse(body=CSV_BODY, content_type='text/plain'),
	})
	fetcher, sleep = make_fetcher(session, proxy_on_any_failure=True, max_retries=2)
	result = asyncio.run(fetcher.fetch(csv_source(CSV_URL)))
	assert result.method == 'proxy'
	assert sleep.delays == [2.0]


def test_every_tier_failing_raises_exhausted():
	session = FakeSession({CSV_URL: FakeResponse(status=401, reason='Unauthorized')})
	fetcher, _ = make_fetcher(session)
	with pytest.raises(FetchExhaustedError) as info:
		asyncio.run(fetcher.fetch(csv_source(CSV_URL)))
	assert info.value.attempts == 1 + len(RELAYS)


def test_timeout_is_a_transport_error():
	session = FakeSession({CSV_URL: asyncio.TimeoutError()})
	fetcher, _ = make_fetcher(session, max_retries=1, timeout=5)
	with pytest.raises(FetchExhaustedError) as info:
		asyncio.run(fetcher.fetch(csv_source(CSV_URL)))
	assert isinstance(info.value.last_error, FetchTimeoutError)
	assert 'timeout after 5' in str(info.value.last_error)


def test_empty_body_counts_as_failure():
	session = FakeSession({CSV_URL: [FakeResponse(body='  \n'), FakeResponse(body=CSV_BODY)]})
	fetcher, sleep = make_fetcher(session)
	result = asyncio.run(fetcher.fetch(csv_source(CSV_URL)))
	assert result.payload == CSV_BODY
	assert sleep.delays == [2.0]


def test_undecodable_body_is_a_transport_error():
	session = FakeSession({CSV_URL: FakeResponse(body=b'Actor,Movie\nL\xe9on Actor,Film\n', content_type='text/csv; charset=utf-8')})
	fetcher, _ = make_fetcher(session, max_retries=1)
	with pytest.raises(FetchExhaustedError) as info:
		asyncio.run(fetcher.fetch(csv_source(CSV_URL)))
	assert isinstance(info.value.last_error, TransportError)
	assert 'Undecodable body' in str(info.value.last_error)


def test_at_least_one_attempt_is_required():
	with pytest.raises(ValueError):
		SourceFetcher(max_retries=0)


def test_payload_cache_and_clear():
	session = FakeSession({CSV_URL: FakeResponse(body=CSV_BODY)})
	fetcher, _ = make_fetcher(session)

	async def twice():
		first = await fetcher.fetch(csv_source(CSV_URL))
		second = await fetcher.fetch(csv_source(CSV_URL))
		fetcher.clear_cache()
		third = await fetcher.fetch(csv_source(CSV_URL))
		return first, second, third

	first, second, third = asyncio.run(twice())
	assert (first.method, second.method, third.method) == ('direct', 'cache', 'direct')
	assert second.payload == first.payload
	assert len(session.urls()) == 2


def test_api_source_decodes_json_and_requires_key():
	source = sheets_api_source('sheet123', 'secret')
	session = FakeSession({'https://sheets.googleapis.com/': json_response({'values': [['Actor', 'Movie']]})})
	fetcher, _ = make_fetcher(session)
	result = asyncio.run(fetcher.fetch(source))
	assert result.payload == {'values': [['Actor', 'Movie']]}
	assert fetcher._redact(source.url).endswith('key=***')

	with pytest.raises(TransportError):
		asyncio.run(fetcher.fetch(sheets_api_source('sheet123', None)))


def test_preflight_refusal_tries_relays_first():
	session = FakeSession(
		{'http://relay-one.test/': FakeResponse(body=CSV_BODY)},
		head_routes={CSV_URL: FakeResponse(status=403)},
	)
	fetcher, _ = make_fetcher(session, preflight=True)
	result = asyncio.run(fetcher.fetch(csv_source(CSV_URL)))
	assert result.method == 'proxy'
	assert CSV_URL not in session.urls()


def test_unwrap_envelope():
	assert unwrap_envelope('a,b', 'text/csv') == 'a,b'
	assert unwrap_envelope('{"contents": "a,b"}', 'application/json') == 'a,b'
	assert unwrap_envelope('{"data": "x"}', 'application/json; charset=utf-8') == 'x'
	assert unwrap_envelope('{"status": {}}', 'application/json') is None


def main():
	print("Running SourceFetcher tests...")
	test_direct_success()
	test_transient_failures_are_retried_with_backoff()
	test_transient_exhaustion_skips_relays_by_default()
	test_access_refusal_goes_straight_to_relays()
	test_proxy_on_any_failure()
	test_every_tier_failing_raises_exhausted()
	test_timeout_is_a_transport_error()
	test_empty_body_counts_as_failure()
	test_undecodable_body_is_a_transport_error()
	test_at_least_one_attempt_is_required()
	test_payload_cache_and_clear()
	test_api_source_decodes_json_and_requires_key()
	test_preflight_refusal_tries_relays_first()
	test_unwrap_envelope()
	print("All SourceFetcher tests passed!")


if __name__ == '__main__':
	main()

"""
Tests for ImageEnricher: placeholders, Wikipedia lookup strategies and caching.
Run: python tests/test_images.py
"""

import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
	sys.path.insert(0, str(ROOT))

import aiohttp

from ripdb.images import WIKI_API_URL, WIKI_SUMMARY_URL, ImageEnricher, name_hash, placeholder_image
from tests.fakes import FakeResponse, FakeSession, json_response


SUMMARY_PREFIX = WIKI_SUMMARY_URL.split('{')[0]


def wiki_api(hits=None, pageimage=None, images=None, imageinfo=None):
	"""Route for the action API that answers by query type."""
	def route(url, params):
		if params.get('list') == 'search':
			return json_response({'query': {'search': hits or []}})
		if params.get('prop') == 'pageimages' and pageimage:
			return json_response({'query': {'pages': {'1': {'thumbnail': {'source': pageimage, 'width': 300, 'height': 400}}}}})
		if params.get('prop') == 'images' and images:
			return json_response({'query': {'pages': {'1': {'images': [{'title': t} for t in images]}}}})
		if params.get('prop') == 'imageinfo' and imageinfo and params.get('titles') in imageinfo:
			return json_response({'query': {'pages': {'1': {'imageinfo': [imageinfo[params['titles']]]}}}})
		return json_response({'query': {'pages': {'1': {}}}})
	return route


def test_placeholder_is_deterministic():
	assert name_hash('a') == 97
	assert placeholder_image('a').startswith('https://images.unsplash.com/photo-1500000000097?')
	assert placeholder_image('Sean Bean') == placeholder_image('Sean Bean')
	assert -2**31 <= name_hash('A very long actor name that overflows') < 2**31


def test_summary_thumbnail_is_preferred_and_resized():
	session = FakeSession({
		WIKI_API_URL: wiki_api(hits=[
			{'title': 'Sean Bean (footballer)', 'snippet': 'English footballer'},
			{'title': 'Sean Bean', 'snippet': 'English <b>actor</b>'},
		]),
		SUMMARY_PREFIX: json_response({
			'title': 'Sean Bean',
			'thumbnail': {'source': 'https://upload.test/thumb/320px-Sean_Bean.jpg', 'width': 320, 'height': 400},
		}),
	})
	enricher = ImageEnricher(session=session)
	result = asyncio.run(enricher.resolve('Sean Bean'))
	assert result.url == 'https://upload.test/thumb/400px-Sean_Bean.jpg'
	assert result.title == 'Sean Bean'
	assert result.source == 'wikipedia'
	assert SUMMARY_PREFIX + 'Sean_Bean' in session.urls()


def test_falls_back_to_pageimages():
	session = FakeSession({
		WIKI_API_URL: wiki_api(hits=[{'title': 'John Hurt', 'snippet': 'actor'}], pageimage='https://upload.test/hurt.jpg'),
		SUMMARY_PREFIX: FakeResponse(status=404),
	})
	result = asyncio.run(ImageEnricher(session=session).resolve('John Hurt'))
	assert result.url == 'https://upload.test/hurt.jpg'
	assert result.height == 400


def test_falls_back_to_article_image_listing():
	session = FakeSession({
		WIKI_API_URL: wiki_api(
			hits=[{'title': 'Gary Oldman', 'snippet': 'English actor'}],
			images=['File:Commons-logo.svg', 'File:Face.jpg'],
			imageinfo={
				'File:Commons-logo.svg': {'url': 'https://upload.test/Commons-logo.svg'},
				'File:Face.jpg': {'thumburl': 'https://upload.test/400px-Face.jpg', 'url': 'https://upload.test/Face.jpg'},
			},
		),
		SUMMARY_PREFIX: FakeResponse(status=404),
	})
	result = asyncio.run(ImageEnricher(session=session).resolve('Gary Oldman'))
	assert result.url == 'https://upload.test/400px-Face.jpg'
	assert result.title == 'Gary Oldman'
	info_titles = [p['titles'] for _, _, p in session.calls if p and p.get('prop') == 'imageinfo']
	assert info_titles == ['File:Face.jpg']


def test_misses_are_cached():
	session = FakeSession({WIKI_API_URL: wiki_api(hits=[])})
	enricher = ImageEnricher(session=session)

	async def twice():
		return await enricher.resolve('Nobody'), await enricher.resolve('Nobody')

	assert asyncio.run(twice()) == (None, None)
	assert len(session.calls) == 1
	assert enricher.cached('Nobody')
	assert enricher.cache_stats() == {'size': 1, 'hits': 0, 'misses': 1}


def test_network_errors_resolve_to_none():
	session = FakeSession({WIKI_API_URL: aiohttp.ClientConnectionError('offline')})
	assert asyncio.run(ImageEnricher(session=session).resolve('Gary Oldman')) is None


def test_resolve_many_reports_every_name():
	session = FakeSession({WIKI_API_URL: wiki_api(hits=[])})
	enricher = ImageEnricher(session=session)
	seen = []

	async def on_result(name, result):
		seen.append((name, result))

	names = [f'Actor {i}' for i in range(5)]
	results = asyncio.run(enricher.resolve_many(names, batch_size=2, batch_delay=0, on_result=on_result))
	assert sorted(results) == names
	assert sorted(name for name, _ in seen) == names
	assert all(result is None for _, result in seen)


def main():
	print("Running ImageEnricher tests...")
	test_placeholder_is_deterministic()
	test_summary_thumbnail_is_preferred_and_resized()
	test_falls_back_to_pageimages()
	test_falls_back_to_article_image_listing()
	test_misses_are_cached()
	test_network_errors_resolve_to_none()
	test_resolve_many_reports_every_name()
	print("All ImageEnricher tests passed!")


if __name__ == '__main__':
	main()

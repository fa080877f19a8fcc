"""
Actor portrait enrichment.
Looks actors up on Wikipedia in the background and hands out a deterministic
placeholder until (or instead of) a real portrait.
"""

import asyncio  # bounded concurrency inside a batch
import re  # thumbnail width rewrite
from typing import Awaitable, Callable, Dict, List, Optional, Union  # type hints
from urllib.parse import quote  # page titles in REST paths

import aiohttp  # asynchronous HTTP client
from loguru import logger  # console logging

from .models import ImageResult


WIKI_API_URL = 'https://en.wikipedia.org/w/api.php'
WIKI_SUMMARY_URL = 'https://en.wikipedia.org/api/rest_v1/page/summary/{title}'
PLACEHOLDER_URL = 'https://images.unsplash.com/photo-{photo_id}?w=400&h=400&fit=crop&crop=face&auto=format&q=80'

ACTING_KEYWORDS = ('actor', 'actress', 'film', 'movie')
IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png')
IGNORED_IMAGES = ('commons-logo', 'edit-icon')
THUMB_SIZE = 400

RE_THUMB_WIDTH = re.compile(r'/\d+px-')

# Callback invoked with (actor name, result or None); may be sync or async
ResultCallback = Callable[[str, Optional[ImageResult]], Union[None, Awaitable[None]]]


def name_hash(text: str) -> int:
	"""32-bit signed rolling hash (h * 31 + char), stable across processes."""
	h = 0
	for char in text:
		h = (h * 31 + ord(char)) & 0xFFFFFFFF
	return h - 0x100000000 if h & 0x80000000 else h


def placeholder_image(actor_name: str) -> str:
	"""Same name, same placeholder: mapped into a fixed synthetic photo-id space."""
	photo_id = abs(name_hash(actor_name)) % 1000 + 1500000000000
	return PLACEHOLDER_URL.format(photo_id=photo_id)


class ImageEnricher:
	"""
	Resolves actor portraits. Results (including "nothing found") are cached
	per name for the lifetime of the enricher so lookups are never repeated.
	"""

	def __init__(self, session: Optional[aiohttp.ClientSession] = None, timeout: float = 15.0):
		self._session = session
		self._owns_session = session is None
		self.timeout = timeout
		self._cache: Dict[str, Optional[ImageResult]] = {}

	def placeholder(self, actor_name: str) -> str:
		return placeholder_image(actor_name)

	def cached(self, actor_name: str) -> bool:
		"""True once a lookup has completed, whatever its outcome."""
		return actor_name in self._cache

	async def resolve(self, actor_name: str) -> Optional[ImageResult]:
		"""Find a portrait for one actor, or None. Never raises for network errors."""
		if actor_name in self._cache:
			return self._cache[actor_name]

		logger.debug(f"[Images] Searching Wikipedia for: {actor_name}")
		try:
			title = await self._search(actor_name)
			result = await self._page_image(title) if title else None
		except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
			logger.warning(f"[Images] Lookup failed for {actor_name}: {e}")
			result = None

		if result:
			logger.debug(f"[Images] Found image for {actor_name}: {result.url}")
		self._cache[actor_name] = result
		return result

	async def resolve_many(
		self,
		names: List[str],
		batch_size: int = 10,
		batch_delay: float = 1.0,
		on_result: Optional[ResultCallback] = None,
	) -> Dict[str, Optional[ImageResult]]:
		"""
		Resolve names in sequential batches; lookups inside a batch run concurrently.
		`on_result` is called as each name completes.
		"""
		results: Dict[str, Optional[ImageResult]] = {}
		total = len(names)
		logger.info(f"[Images] Resolving portraits for {total} actors (batch size {batch_size})")

		async def one(name: str) -> None:
			result = await self.resolve(name)
			results[name] = result
			if on_result is not None:
				outcome = on_result(name, result)
				if asyncio.iscoroutine(outcome):
					await outcome

		for start in range(0, total, batch_size):
			batch = names[start:start + batch_size]
			await asyncio.gather(*(one(name) for name in batch))
			logger.debug(f"[Images] Processed {min(start + batch_size, total)}/{total} actor images")
			if start + batch_size < total and batch_delay > 0:
				await asyncio.sleep(batch_delay)

		found = sum(1 for r in results.values() if r is not None)
		logger.info(f"[Images] Found {found}/{total} Wikipedia images")
		return results

	async def _search(self, actor_name: str) -> Optional[str]:
		"""Title of the best matching page, preferring pages that mention acting."""
		data = await self._get_json(WIKI_API_URL, {
			'action': 'query',
			'format': 'json',
			'list': 'search',
			'srsearch': actor_name,
		})
		hits = (data.get('query') or {}).get('search') or []
		if not hits:
			return None
		for hit in hits:
			snippet = (hit.get('snippet') or '').lower()
			if any(word in snippet for word in ACTING_KEYWORDS):
				return hit.get('title')
		return hits[0].get('title')

	async def _page_image(self, title: str) -> Optional[ImageResult]:
		"""Try each strategy in order and keep the first hit."""
		strategies = (self._from_summary, self._from_pageimages, self._from_image_listing)
		for strategy in strategies:
			try:
				result = await strategy(title)
			except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, KeyError) as e:
				logger.debug(f"[Images] {strategy.__name__} failed for '{title}', trying next: {e}")
				continue
			if result:
				return result
		return None

	async def _from_summary(self, title: str) -> Optional[ImageResult]:
		data = await self._get_json(WIKI_SUMMARY_URL.format(title=quote(title.replace(' ', '_'), safe='')))
		thumb = data.get('thumbnail') or {}
		if not thumb.get('source'):
			return None
		return ImageResult(
			url=RE_THUMB_WIDTH.sub(f'/{THUMB_SIZE}px-', thumb['source']),
			title=data.get('title') or title,
			width=thumb.get('width') or THUMB_SIZE,
			height=thumb.get('height') or THUMB_SIZE,
		)

	async def _from_pageimages(self, title: str) -> Optional[ImageResult]:
		data = await self._get_json(WIKI_API_URL, {
			'action': 'query',
			'format': 'json',
			'prop': 'pageimages',
			'piprop': 'thumbnail',
			'pithumbsize': str(THUMB_SIZE),
			'titles': title,
		})
		page = self._first_page(data)
		thumb = (page or {}).get('thumbnail') or {}
		if not thumb.get('source'):
			return None
		return ImageResult(
			url=thumb['source'],
			title=title,
			width=thumb.get('width') or THUMB_SIZE,
			height=thumb.get('height') or THUMB_SIZE,
		)

	async def _from_image_listing(self, title: str) -> Optional[ImageResult]:
		data = await self._get_json(WIKI_API_URL, {
			'action': 'query',
			'format': 'json',
			'prop': 'images',
			'titles': title,
		})
		page = self._first_page(data) or {}
		for image in page.get('images') or []:
			image_title = image.get('title') or ''
			lowered = image_title.lower()
			if any(skip in lowered for skip in IGNORED_IMAGES):
				continue
			if not any(ext in lowered for ext in IMAGE_EXTENSIONS):
				continue
			url = await self._image_url(image_title)
			if url:
				return ImageResult(url=url, title=title)
		return None

	async def _image_url(self, image_title: str) -> Optional[str]:
		data = await self._get_json(WIKI_API_URL, {
			'action': 'query',
			'format': 'json',
			'prop': 'imageinfo',
			'iiprop': 'url',
			'iiurlwidth': str(THUMB_SIZE),
			'titles': image_title,
		})
		info = ((self._first_page(data) or {}).get('imageinfo') or [{}])[0]
		return info.get('thumburl') or info.get('url')

	@staticmethod
	def _first_page(data: dict) -> Optional[dict]:
		pages = (data.get('query') or {}).get('pages') or {}
		for page in pages.values():
			return page
		return None

	async def _get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> dict:
		session = self._ensure_session()
		async with session.get(url, params=params, timeout=aiohttp.ClientTimeout(total=self.timeout)) as response:
			if response.status != 200:
				raise ValueError(f"HTTP {response.status} from {url}")
			data = await response.json(content_type=None)
		return data if isinstance(data, dict) else {}

	def _ensure_session(self) -> aiohttp.ClientSession:
		if self._session is None:
			self._session = aiohttp.ClientSession()
			self._owns_session = True
		return self._session

	def cache_stats(self) -> Dict[str, int]:
		return {
			'size': len(self._cache),
			'hits': sum(1 for v in self._cache.values() if v is not None),
			'misses': sum(1 for v in self._cache.values() if v is None),
		}

	def clear_cache(self) -> None:
		self._cache.clear()
		logger.debug("[Images] Image cache cleared")

	async def close(self) -> None:
		if self._session is not None and self._owns_session:
			await self._session.close()
		self._session = None

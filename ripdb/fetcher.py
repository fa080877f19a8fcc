"""
Source fetching module.
Obtains raw tabular payloads from unreliable external sources through an
ordered chain of transport tiers: cache, direct fetch with retries, relays.
"""

import asyncio  # timeouts and backoff sleeps
import json  # API payloads and relay envelopes
import time  # monotonic clock for the payload cache
from dataclasses import dataclass, field  # result container
from datetime import datetime, timezone  # fetch timestamps
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple  # type hints
from urllib.parse import quote  # relay URL templating

import aiohttp  # asynchronous HTTP client
from loguru import logger  # console logging
from pydantic import BaseModel, Field  # source descriptions

from .errors import AccessRestrictedError, FetchExhaustedError, FetchTimeoutError, TransportError


SHEETS_CSV_URL = 'https://docs.google.com/spreadsheets/d/{spreadsheet_id}/export?format=csv'
SHEETS_API_URL = 'https://sheets.googleapis.com/v4/spreadsheets/{spreadsheet_id}/values/{value_range}?key={api_key}'

# Statuses meaning "this origin will not serve us directly", as opposed to a transient failure
RESTRICTED_STATUSES = {401, 403, 407, 451}

# Keys under which public relays wrap the proxied document
ENVELOPE_KEYS = ('contents', 'data', 'response')

REQUEST_HEADERS = {
	'csv': {
		'Accept': 'text/csv, text/plain, application/csv, */*',
		'User-Agent': 'RIPDB/1.0 (Death Database Fetcher)',
	},
	'api': {
		'Accept': 'application/json',
		'User-Agent': 'RIPDB/1.0 (Death Database Fetcher)',
	},
}


class SourceConfig(BaseModel):
	"""One external source. Source-specific differences are configuration only."""
	name: str = Field(..., description="Label used in logs and errors")
	kind: str = Field(default='csv', description="'csv' for CSV text, 'api' for the Sheets values API")
	url: str = Field(..., description="Fully built endpoint URL")
	requires_key: bool = Field(default=False, description="The endpoint only works with an API key")
	api_key: Optional[str] = Field(default=None, repr=False)
	column_overrides: Dict[str, str] = Field(default_factory=dict, description="canonical field -> exact header")


def csv_source(url: str, column_overrides: Optional[Dict[str, str]] = None) -> SourceConfig:
	"""Any CSV document served over HTTP(S), no authentication."""
	return SourceConfig(name='csv', kind='csv', url=url, column_overrides=column_overrides or {})


def sheets_csv_source(spreadsheet_id: str, gid: Optional[str] = None) -> SourceConfig:
	"""CSV export of a spreadsheet; `gid` selects the sheet tab."""
	url = SHEETS_CSV_URL.format(spreadsheet_id=spreadsheet_id)  # first tab by default
	if gid:
		url += f'&gid={gid}'
	return SourceConfig(name='sheets-csv', kind='csv', url=url)


def sheets_api_source(spreadsheet_id: str, api_key: Optional[str], value_range: str = 'A:Z') -> SourceConfig:
	"""Values API of a spreadsheet. Unusable without a key, which fetch() checks."""
	url = SHEETS_API_URL.format(
		spreadsheet_id=spreadsheet_id,
		value_range=quote(value_range, safe=':!'),  # keep A1 notation readable
		api_key=api_key or '',
	)
	return SourceConfig(name='sheets-api', kind='api', url=url, requires_key=True, api_key=api_key)


@dataclass
class FetchResult:
	source: str  # SourceConfig.name
	kind: str  # 'csv' or 'api'
	payload: Any  # CSV text, or the decoded JSON document for 'api'
	method: str  # 'direct', 'proxy' or 'cache'
	url: str  # URL that actually answered
	fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def unwrap_envelope(body: str, content_type: str) -> Optional[str]:
	"""
	Return the document a relay wrapped in a JSON envelope.
	Non-JSON bodies are returned unchanged; JSON without a known envelope key gives None.
	"""
	if 'json' not in (content_type or '').lower():
		return body
	try:
		doc = json.loads(body)
	except ValueError:
		return body
	if isinstance(doc, dict):
		for key in ENVELOPE_KEYS:
			value = doc.get(key)
			if isinstance(value, str) and value.strip():
				return value
	return None


class SourceFetcher:
	"""
	Runs the transport chain for one source at a time:
	  1. process-lifetime cache (TTL)
	  2. direct GET with a per-attempt timeout and exponential backoff
	  3. public relays, only when the origin refused direct access
	The caller sees either a FetchResult or a single FetchExhaustedError.
	"""

	def __init__(
		self,
		timeout: float = 30.0,
		max_retries: int = 3,
		backoff_base: float = 2.0,
		proxy_templates: Optional[List[str]] = None,
		proxy_on_any_failure: bool = False,
		preflight: bool = False,
		cache_ttl: float = 300.0,
		session: Optional[aiohttp.ClientSession] = None,
		sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
	):
		# Every fetch makes at least one direct attempt
		if max_retries < 1:
			raise ValueError(f"max_retries must be at least 1, got {max_retries}")
		self.timeout = timeout  # seconds per attempt
		self.max_retries = max_retries  # direct attempts per source
		self.backoff_base = backoff_base  # wait backoff_base ** attempt between attempts
		self.proxy_templates = list(proxy_templates or [])  # relay URL templates, tried in order
		self.proxy_on_any_failure = proxy_on_any_failure  # relays after any failure, not only refusals
		self.preflight = preflight  # HEAD probe to pick the first tier
		self.cache_ttl = cache_ttl  # seconds a payload stays cached; 0 disables
		self._session = session  # created lazily when not injected
		self._owns_session = session is None  # only close sessions we created
		self._sleep = sleep  # injectable for tests
		self._cache: Dict[str, Tuple[float, FetchResult]] = {}  # url -> (expires_at, result)

	@classmethod
	def from_config(cls, config, session: Optional[aiohttp.ClientSession] = None) -> "SourceFetcher":
		"""Build a fetcher from a ServiceConfig."""
		return cls(
			timeout=config.timeout,
			max_retries=config.max_retries,
			backoff_base=config.backoff_base,
			proxy_templates=config.proxy_templates,
			proxy_on_any_failure=config.proxy_on_any_failure,
			preflight=config.preflight,
			cache_ttl=config.cache_ttl,
			session=session,
		)

	async def fetch(self, source: SourceConfig) -> FetchResult:
		"""Return the payload of one source or raise FetchExhaustedError."""
		cached = self._cache_get(source.url)
		if cached is not None:
			logger.info(f"[Fetcher] Using cached payload for {source.name} ({cached.method})")
			return FetchResult(source.name, source.kind, cached.payload, 'cache', cached.url, cached.fetched_at)

		if source.requires_key and not source.api_key:
			raise TransportError(f"{source.name} requires an API key", source.url)

		logger.info(f"[Fetcher] Fetching {source.name} from {self._redact(source.url)}")
		logger.debug(f"[Fetcher] Config: retries={self.max_retries}, timeout={self.timeout}s, relays={len(self.proxy_templates)}")

		relays_first = False
		if self.preflight and self.proxy_templates:
			relays_first = (await self.probe(source)) is False

		attempts = 0
		last_error: Optional[BaseException] = None

		if relays_first:
			logger.info(f"[Fetcher] Pre-flight says {source.name} refuses direct access; trying relays first")
			payload, url, used, last_error = await self._via_proxies(source)
			attempts += used
			if payload is not None:
				return self._store(source, payload, 'proxy', url)

		try:
			payload, used = await self._direct(source)
			attempts += used
			return self._store(source, payload, 'direct', source.url)
		except TransportError as e:
			attempts += getattr(e, 'attempts', 1)
			last_error = e
			logger.warning(f"[Fetcher] Direct fetch failed for {source.name}: {e}")
			wants_relay = isinstance(e, AccessRestrictedError) or self.proxy_on_any_failure

		if wants_relay and not relays_first and self.proxy_templates:
			payload, url, used, proxy_error = await self._via_proxies(source)
			attempts += used
			if payload is not None:
				return self._store(source, payload, 'proxy', url)
			last_error = proxy_error or last_error

		logger.error(f"[Fetcher] All fetch methods failed for {source.name}")
		raise FetchExhaustedError(source.name, last_error, attempts)

	async def probe(self, source: SourceConfig) -> Optional[bool]:
		"""
		HEAD the source. True when reachable, False when access is refused,
		None when the probe itself was inconclusive.
		"""
		session = self._ensure_session()
		try:
			async with session.head(
				source.url,
				allow_redirects=True,
				timeout=aiohttp.ClientTimeout(total=min(self.timeout, 10.0)),
			) as response:
				logger.debug(f"[Fetcher] Pre-flight {source.name}: HTTP {response.status}")
				if response.status in RESTRICTED_STATUSES:
					return False
				return 200 <= response.status < 400
		except (aiohttp.ClientError, asyncio.TimeoutError) as e:
			logger.debug(f"[Fetcher] Pre-flight inconclusive for {source.name}: {e}")
			return None

	async def _direct(self, source: SourceConfig) -> Tuple[Any, int]:
		"""Direct tier: bounded attempts with 2**attempt backoff. Returns (payload, attempts)."""
		last_error: Optional[TransportError] = None
		for attempt in range(1, self.max_retries + 1):
			try:
				logger.info(f"[Fetcher] Attempt {attempt}/{self.max_retries} - fetching {source.name} directly")
				body, content_type = await self._get(source.url, REQUEST_HEADERS.get(source.kind, {}))
				payload = self._decode(source, body)
				logger.info(f"[Fetcher] Fetched {source.name} directly ({len(body)} bytes)")
				return payload, attempt
			except AccessRestrictedError as e:
				# The origin's policy will not change between attempts
				e.attempts = attempt
				raise
			except TransportError as e:
				last_error = e
				logger.warning(f"[Fetcher] Attempt {attempt} failed: {e}")
				if attempt < self.max_retries:
					delay = self.backoff_base ** attempt
					logger.info(f"[Fetcher] Waiting {delay:.1f}s before retry...")
					await self._sleep(delay)

		last_error.attempts = self.max_retries
		raise last_error

	async def _via_proxies(self, source: SourceConfig) -> Tuple[Any, Optional[str], int, Optional[TransportError]]:
		"""Relay tier: one attempt per relay, in order. Returns (payload, url, attempts, last_error)."""
		last_error: Optional[TransportError] = None
		used = 0
		target = source.url
		for template in self.proxy_templates:
			proxy_url = template.format(url=target, quoted=quote(target, safe=''))
			used += 1
			try:
				logger.info(f"[Fetcher] Trying relay: {self._redact(proxy_url)}")
				body, content_type = await self._get(proxy_url, REQUEST_HEADERS.get(source.kind, {}))
				inner = unwrap_envelope(body, content_type)
				if inner is None:
					if source.kind != 'api':
						raise TransportError('Relay returned an empty envelope', proxy_url)
					inner = body  # the relay passed the API JSON through untouched
				payload = self._decode(source, inner)
				logger.info(f"[Fetcher] Fetched {source.name} via relay")
				return payload, proxy_url, used, None
			except TransportError as e:
				last_error = e
				logger.warning(f"[Fetcher] Relay failed: {e}")
		return None, None, used, last_error

	async def _get(self, url: str, headers: Dict[str, str]) -> Tuple[str, str]:
		"""One GET. Returns (body, content_type) or raises a TransportError subclass."""
		session = self._ensure_session()
		try:
			async with session.get(url, headers=headers, timeout=aiohttp.ClientTimeout(total=self.timeout)) as response:
				if response.status in RESTRICTED_STATUSES:
					raise AccessRestrictedError(f"HTTP {response.status}: access refused", url, response.status)
				if not 200 <= response.status < 300:
					raise TransportError(f"HTTP {response.status}: {response.reason}", url, response.status)
				body = await response.text()
				content_type = response.headers.get('Content-Type', '')
		except asyncio.TimeoutError as e:
			raise FetchTimeoutError(f"Request timeout after {self.timeout}s", url) from e
		except UnicodeDecodeError as e:
			# Body is not valid in its declared (or default) charset
			raise TransportError(f"Undecodable body: {e}", url) from e
		except aiohttp.ClientError as e:
			raise TransportError(f"{type(e).__name__}: {e}", url) from e

		if not body or not body.strip():
			raise TransportError('Empty response', url, response.status)
		return body, content_type

	def _decode(self, source: SourceConfig, body: str) -> Any:
		"""CSV text passes through; API bodies are parsed as JSON."""
		if source.kind != 'api':
			return body
		try:
			return json.loads(body)
		except ValueError as e:
			raise TransportError(f"Invalid JSON from {source.name}: {e}", source.url) from e

	def _redact(self, url: str) -> str:
		"""Hide API keys in log lines."""
		if 'key=' not in url:
			return url
		head, _, tail = url.partition('key=')
		rest = tail.split('&', 1)
		return head + 'key=***' + ('&' + rest[1] if len(rest) > 1 else '')

	def _ensure_session(self) -> aiohttp.ClientSession:
		"""Return the injected session, or create one on first use."""
		if self._session is None:
			self._session = aiohttp.ClientSession()
			self._owns_session = True
		return self._session

	def _cache_get(self, url: str) -> Optional[FetchResult]:
		"""Cached result for a source URL, or None when absent or expired."""
		entry = self._cache.get(url)
		if entry is None:
			return None
		expires_at, result = entry
		if time.monotonic() >= expires_at:
			del self._cache[url]  # expired entries are dropped on read
			return None
		return result

	def _store(self, source: SourceConfig, payload: Any, method: str, url: str) -> FetchResult:
		"""Wrap a payload in a FetchResult and cache it under the source URL (not the relay URL)."""
		result = FetchResult(source.name, source.kind, payload, method, url)
		if self.cache_ttl > 0:
			self._cache[source.url] = (time.monotonic() + self.cache_ttl, result)
		return result

	def clear_cache(self) -> None:
		"""Forget every cached payload (used by reload)."""
		self._cache.clear()
		logger.debug("[Fetcher] Payload cache cleared")

	async def close(self) -> None:
		"""Close the HTTP session if this fetcher created it."""
		if self._session is not None and self._owns_session:
			await self._session.close()
		self._session = None

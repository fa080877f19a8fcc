"""
DataService façade.
Owns the fallback policy across sources, the in-memory dataset and the image
enrichment lifecycle, and exposes the query operations the UI consumes.
"""

import asyncio  # background enrichment and load de-duplication
import random  # actor suggestions
from dataclasses import dataclass, field  # immutable dataset snapshot
from datetime import datetime, timezone  # load timestamps
from types import MappingProxyType  # read-only views for consumers
from typing import Any, Callable, Dict, List, Mapping, Optional, Union  # type hints

from loguru import logger  # console logging

from .aggregator import DataAggregator
from .config import ServiceConfig
from .csv_parser import RawTable, parse_table
from .errors import EmptyDatasetError, FetchExhaustedError, InvalidSchemaError, RipdbError, TransportError
from .fallback_data import fallback_records
from .fetcher import FetchResult, SourceConfig, SourceFetcher
from .images import ImageEnricher
from .models import Actor, DataSource, DeathEvent, ImageResult, LoadState, SearchFilters, Stats
from .normalizer import RecordNormalizer, slugify
from .schema_mapper import SchemaMapper


ActorListener = Callable[[Actor], Any]  # sync or async "actor updated" callback


@dataclass(frozen=True)
class Dataset:
	"""One complete ingestion result. Replaced as a whole, never edited in place."""
	actors: Dict[str, Actor]
	stats: Stats
	source: DataSource
	source_url: Optional[str] = None
	rejected: int = 0  # rows dropped by the normalizer
	loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class DataService:
	"""
	Lifecycle: idle -> loading -> ready | failed; reload() goes back to loading.
	A failed load still installs the embedded fallback dataset, so consumers
	always get actors plus an explanation (`error`, `data_source == "mock"`).
	"""

	def __init__(
		self,
		config: Optional[ServiceConfig] = None,
		fetcher: Optional[SourceFetcher] = None,
		enricher: Optional[ImageEnricher] = None,
		aggregator: Optional[DataAggregator] = None,
		normalizer: Optional[RecordNormalizer] = None,
	):
		self.config = config or ServiceConfig()
		self.fetcher = fetcher or SourceFetcher.from_config(self.config)
		self.enricher = enricher or ImageEnricher()
		self.aggregator = aggregator or DataAggregator(
			placeholder=self.enricher.placeholder,
			top_genres=self.config.top_genres,
			top_actors=self.config.top_actors,
		)
		self.normalizer = normalizer or RecordNormalizer(default_year=self.config.default_year)

		self._state = LoadState.IDLE
		self._error: Optional[str] = None
		self._last_exception: Optional[BaseException] = None
		self._dataset: Optional[Dataset] = None
		self._generation = 0  # bumped per installed dataset; stale image results are dropped
		self._load_task: Optional[asyncio.Task] = None
		self._image_task: Optional[asyncio.Task] = None
		self._listeners: List[ActorListener] = []

	# ------------------------------------------------------------------
	# Lifecycle
	# ------------------------------------------------------------------

	async def load(self) -> Dataset:
		"""
		Run the source chain and install a dataset. Never raises for network or
		data problems. Concurrent callers share the load already in flight.
		"""
		if self._load_task is not None and not self._load_task.done():
			logger.info("[Service] Load already in progress; waiting for it")
			return await asyncio.shield(self._load_task)
		self._load_task = asyncio.ensure_future(self._load())
		# Cancelling this caller must not cancel the load for callers that joined it
		return await asyncio.shield(self._load_task)

	async def reload(self) -> Dataset:
		"""Discard every cache and the current dataset, then load again."""
		if self._load_task is not None and not self._load_task.done():
			logger.info("[Service] Reload requested during a load; joining the running load")
			return await asyncio.shield(self._load_task)

		logger.info("[Service] Reloading database...")
		await self._cancel_enrichment()
		self.fetcher.clear_cache()
		self.enricher.clear_cache()
		self._dataset = None
		self._error = None
		self._last_exception = None
		return await self.load()

	async def dispose(self) -> None:
		"""Stop background work and release HTTP sessions."""
		await self._cancel_enrichment()
		task, self._load_task = self._load_task, None
		if task is not None and not task.done():
			task.cancel()
			try:
				await task
			except asyncio.CancelledError:
				pass
		await self.fetcher.close()
		await self.enricher.close()
		logger.debug("[Service] Disposed")

	async def _load(self) -> Dataset:
		self._state = LoadState.LOADING
		self._error = None
		await self._cancel_enrichment()

		sources = self.config.sources()
		logger.info(f"[Service] Loading death records from {len(sources)} source(s)")

		last_error: Optional[RipdbError] = None
		for source in sources:
			try:
				dataset = await self._ingest(source)
			except FetchExhaustedError as e:
				last_error = e
			except TransportError as e:
				last_error = FetchExhaustedError(source.name, e, 0)
				logger.warning(f"[Service] Source {source.name} unusable: {e}")
			except (InvalidSchemaError, EmptyDatasetError) as e:
				last_error = e
				logger.warning(f"[Service] Source {source.name} rejected: {e}")
			else:
				self._install(dataset)
				self._state = LoadState.READY
				logger.info(
					f"[Service] Ready with {len(dataset.actors)} actors from {source.name} ({dataset.source.value})"
				)
				self._start_enrichment()
				return dataset

		if last_error is None:
			last_error = FetchExhaustedError('configured sources', None, 0)
		self._last_exception = last_error
		self._error = str(last_error)
		logger.error(f"[Service] Failed to load database: {self._error}")
		logger.info("[Service] Loading embedded fallback data")

		dataset = self._build_dataset(fallback_records(), DataSource.MOCK)
		self._install(dataset)
		self._state = LoadState.FAILED
		return dataset

	async def _ingest(self, source: SourceConfig) -> Dataset:
		"""Fetch -> parse -> map -> normalize -> aggregate for one source."""
		result = await self.fetcher.fetch(source)
		table = self._table(result)

		mapping = SchemaMapper(source.column_overrides).map_required(table.headers)
		logger.info(f"[Service] Field mapping for {source.name}: {mapping}")

		report = self.normalizer.normalize_all(table.rows, mapping)
		if not report.records:
			raise EmptyDatasetError(source.name, report.rejected)

		kind = DataSource.API if source.kind == 'api' else DataSource.CSV
		return self._build_dataset(report.records, kind, result.url, report.rejected)

	def _table(self, result: FetchResult) -> RawTable:
		if result.kind == 'api':
			payload = result.payload if isinstance(result.payload, dict) else {}
			values = payload.get('values') or []
			logger.debug(f"[Service] Values API returned {len(values)} rows")
			return RawTable.from_values(values)
		return parse_table(result.payload)

	def _build_dataset(self, records, source: DataSource, url: Optional[str] = None, rejected: int = 0) -> Dataset:
		aggregated = self.aggregator.aggregate(records)
		return Dataset(
			actors=aggregated.actors,
			stats=aggregated.stats,
			source=source,
			source_url=url,
			rejected=rejected,
		)

	def _install(self, dataset: Dataset) -> None:
		# Readers see either the old or the new dataset, never a mix
		self._generation += 1
		self._dataset = dataset

	# ------------------------------------------------------------------
	# Image enrichment
	# ------------------------------------------------------------------

	def add_listener(self, callback: ActorListener) -> None:
		"""Register an "actor updated" callback, fired after each portrait patch."""
		self._listeners.append(callback)

	def remove_listener(self, callback: ActorListener) -> None:
		if callback in self._listeners:
			self._listeners.remove(callback)

	def _start_enrichment(self) -> None:
		if not self.config.enrich_images or self._dataset is None:
			return
		generation = self._generation
		names = [actor.name for actor in self._dataset.actors.values()]
		self._image_task = asyncio.ensure_future(self._enrich(generation, names))

	async def _enrich(self, generation: int, names: List[str]) -> None:
		async def on_result(name: str, result: Optional[ImageResult]) -> None:
			await self._apply_image(generation, name, result)

		try:
			await self.enricher.resolve_many(
				names,
				batch_size=self.config.image_batch_size,
				batch_delay=self.config.image_batch_delay,
				on_result=on_result,
			)
			logger.info("[Service] Background image fetching completed")
		except asyncio.CancelledError:
			logger.debug("[Service] Background image fetching cancelled")
			raise
		except Exception as e:
			logger.warning(f"[Service] Background image fetching failed: {e}")

	async def _apply_image(self, generation: int, name: str, result: Optional[ImageResult]) -> None:
		"""The only write path for portraits: patch the live actor, then notify."""
		dataset = self._dataset
		if result is None or dataset is None or generation != self._generation:
			return
		actor = dataset.actors.get(slugify(name))
		if actor is None or actor.headshot_url == result.url:
			return
		actor.headshot_url = result.url
		for listener in list(self._listeners):
			try:
				outcome = listener(actor)
				if asyncio.iscoroutine(outcome):
					await outcome
			except Exception as e:
				logger.warning(f"[Service] Actor listener failed for {actor.id}: {e}")

	async def wait_for_images(self) -> None:
		"""Await the running enrichment task, if any."""
		task = self._image_task
		if task is not None and not task.done():
			await task

	async def _cancel_enrichment(self) -> None:
		task, self._image_task = self._image_task, None
		if task is None or task.done():
			return
		task.cancel()
		try:
			await task
		except asyncio.CancelledError:
			pass

	def image_progress(self) -> Dict[str, int]:
		"""Portrait lookups completed so far for the current actors."""
		actors = self._dataset.actors.values() if self._dataset else []
		total = len(actors)
		cached = sum(1 for actor in actors if self.enricher.cached(actor.name))
		return {
			'cached': cached,
			'total': total,
			'progress': round(cached / total * 100) if total else 0,
		}

	# ------------------------------------------------------------------
	# State exposed to the presentation layer
	# ------------------------------------------------------------------

	@property
	def state(self) -> LoadState:
		return self._state

	@property
	def loading(self) -> bool:
		return self._state == LoadState.LOADING

	@property
	def error(self) -> Optional[str]:
		return self._error

	@property
	def last_exception(self) -> Optional[BaseException]:
		return self._last_exception

	@property
	def data_source(self) -> Optional[DataSource]:
		return self._dataset.source if self._dataset else None

	@property
	def actors(self) -> Mapping[str, Actor]:
		return MappingProxyType(self._dataset.actors if self._dataset else {})

	@property
	def stats(self) -> Optional[Stats]:
		return self._dataset.stats if self._dataset else None

	@property
	def dataset(self) -> Optional[Dataset]:
		return self._dataset

	def status(self) -> Dict[str, Any]:
		dataset = self._dataset
		return {
			'state': self._state.value,
			'loading': self.loading,
			'error': self._error,
			'data_source': dataset.source.value if dataset else None,
			'actor_count': len(dataset.actors) if dataset else 0,
			'rejected_rows': dataset.rejected if dataset else 0,
			'has_real_data': bool(dataset) and dataset.source != DataSource.MOCK,
			'loaded_at': dataset.loaded_at.isoformat() if dataset else None,
		}

	# ------------------------------------------------------------------
	# Queries
	# ------------------------------------------------------------------

	def search(self, query: str) -> List[str]:
		"""
		Actor names containing `query` (case-insensitive), in first-seen order,
		at most `search_limit` of them. An empty query matches nothing.
		"""
		needle = (query or '').strip().lower()
		if not needle or self._dataset is None:
			return []
		matches: List[str] = []
		for actor in self._dataset.actors.values():
			if needle in actor.name.lower():
				matches.append(actor.name)
				if len(matches) >= self.config.search_limit:
					break
		return matches

	def get_actor(self, name_or_id: str) -> Optional[Actor]:
		"""Exact slug lookup; None when absent."""
		if self._dataset is None or not name_or_id:
			return None
		return self._dataset.actors.get(slugify(name_or_id))

	def advanced_search(self, filters: Union[SearchFilters, Dict[str, Any], None] = None) -> List[DeathEvent]:
		"""AND of every provided filter over all death events; omitted filters pass everything."""
		if isinstance(filters, dict):
			filters = SearchFilters(**filters)
		filters = filters or SearchFilters()
		if self._dataset is None:
			return []

		def contains(haystack: str, needle: Optional[str]) -> bool:
			return not needle or needle.lower() in (haystack or '').lower()

		results: List[DeathEvent] = []
		for actor in self._dataset.actors.values():
			for event in actor.deaths:
				if not contains(event.actor_name, filters.actor):
					continue
				if not contains(event.movie_title, filters.movie):
					continue
				if not contains(event.genre, filters.genre):
					continue
				if filters.year_start is not None and event.year < filters.year_start:
					continue
				if filters.year_end is not None and event.year > filters.year_end:
					continue
				if filters.death_type and event.death_type.lower() != filters.death_type.lower():
					continue
				if not contains(event.director, filters.director):
					continue
				results.append(event)
		return results

	def random_actors(self, count: int = 6, seed: Optional[int] = None) -> List[str]:
		"""A random sample of actor names for suggestions."""
		names = [actor.name for actor in (self._dataset.actors.values() if self._dataset else [])]
		return random.Random(seed).sample(names, min(count, len(names)))

"""
Service configuration.
A single pydantic model injected into the DataService; `from_env` reads RIPDB_* variables.
"""

import os  # environment lookups
from typing import List, Optional  # type hints

from pydantic import BaseModel, Field  # validated settings

from .fetcher import SourceConfig, csv_source, sheets_api_source, sheets_csv_source


DEFAULT_CSV_URL = 'http://bliskioptyk.pl/combined.csv'

DEFAULT_PROXY_TEMPLATES = [
	'https://api.allorigins.win/get?url={quoted}',
	'https://corsproxy.io/?{quoted}',
	'https://cors-anywhere.herokuapp.com/{url}',
]


class ServiceConfig(BaseModel):
	"""Everything the ingestion core needs to know about its sources and politeness limits."""

	# Sources
	csv_url: Optional[str] = Field(default=DEFAULT_CSV_URL, description="Primary CSV document")
	spreadsheet_id: Optional[str] = Field(default=None, description="Legacy Google spreadsheet id")
	sheet_gid: Optional[str] = Field(default=None, description="Sheet tab id for the CSV export")
	api_key: Optional[str] = Field(default=None, description="Sheets API key; enables the API source")
	value_range: str = Field(default='A:Z', description="Range requested from the values API")

	# Transport
	timeout: float = Field(default=30.0, gt=0, description="Seconds per direct attempt")
	max_retries: int = Field(default=3, ge=1, description="Direct attempts per source")
	backoff_base: float = Field(default=2.0, ge=0, description="Wait base ** attempt seconds between attempts")
	proxy_templates: List[str] = Field(default_factory=lambda: list(DEFAULT_PROXY_TEMPLATES))
	proxy_on_any_failure: bool = Field(default=False, description="Try relays after any direct failure, not only access refusals")
	preflight: bool = Field(default=False, description="Probe with HEAD to pick the first tier")
	cache_ttl: float = Field(default=300.0, ge=0, description="Seconds a fetched payload stays cached")

	# Image enrichment
	enrich_images: bool = True
	image_batch_size: int = Field(default=10, ge=1)
	image_batch_delay: float = Field(default=1.0, ge=0)

	# Queries and aggregation
	search_limit: int = Field(default=10, ge=1)
	top_genres: int = Field(default=5, ge=1)
	top_actors: int = Field(default=10, ge=1)
	default_year: int = 2000

	@classmethod
	def from_env(cls, prefix: str = 'RIPDB_') -> "ServiceConfig":
		"""Build a config from environment variables such as RIPDB_CSV_URL or RIPDB_TIMEOUT."""
		values = {}
		for name in cls.model_fields:
			raw = os.environ.get(f"{prefix}{name.upper()}")
			if raw is None:
				continue
			if name == 'proxy_templates':
				values[name] = [t.strip() for t in raw.split(',') if t.strip()]
			else:
				values[name] = raw  # pydantic coerces "30", "true", ...
		return cls(**values)

	def sources(self) -> List[SourceConfig]:
		"""Live sources in fallback order: values API, primary CSV, sheet CSV export."""
		sources: List[SourceConfig] = []
		if self.spreadsheet_id and self.api_key:
			sources.append(sheets_api_source(self.spreadsheet_id, self.api_key, self.value_range))
		if self.csv_url:
			sources.append(csv_source(self.csv_url))
		if self.spreadsheet_id:
			sources.append(sheets_csv_source(self.spreadsheet_id, self.sheet_gid))
		return sources

"""
Data models for the RIPDB ingestion core.
Defines the records, aggregates and statistics shared by every pipeline stage.
"""

# Import dataclass to define simple "record-like" classes without boilerplate
from dataclasses import dataclass, field  # auto-generates __init__, __repr__, etc.
# Enum for the small closed sets of states exposed to the UI
from enum import Enum  # string-valued enumerations
# Import typing helpers for precise and self-documenting types
from typing import List, Optional  # lists and optional values


# Known on-screen death categories; other values are tolerated as-is
DEATH_TYPES = (
	'violent',
	'heroic',
	'tragic',
	'comedic',
	'supernatural',
	'explosive',
	'survivor',
)


class DataSource(str, Enum):
	"""Where the currently visible dataset came from."""
	API = 'api'  # Google Sheets values API
	CSV = 'csv'  # any CSV document (primary URL or sheet export)
	MOCK = 'mock'  # embedded fallback dataset


class LoadState(str, Enum):
	"""Availability of the dataset held by the DataService."""
	IDLE = 'idle'
	LOADING = 'loading'
	READY = 'ready'
	FAILED = 'failed'


@dataclass
class DeathRecord:
	"""
	One normalized row: a single actor dying (or surviving) in a single movie.
	Produced per ingestion run and discarded once aggregated.
	"""
	actor_name: str  # required, trimmed
	movie_title: str  # required, trimmed
	year: int  # release year, defaulted when unparseable
	character_name: str  # defaulted to "Character"
	death_description: str  # defaulted to "Dies in dramatic scene"
	genre: str  # may hold several comma-separated genres
	director: str  # defaulted to "Unknown"
	death_type: str = 'violent'  # lowercase category
	imdb_rating: Optional[float] = None  # only set when within [0, 10]
	budget: Optional[str] = None  # formatted currency string, e.g. "$60M"
	box_office: Optional[str] = None  # formatted currency string, e.g. "$352.1M"
	poster_url: Optional[str] = None  # optional poster image URL


@dataclass
class DeathEvent:
	"""
	The per-actor view of a DeathRecord, enriched with display fields.
	"""
	id: str  # slug(movie_title) + "-" + year
	actor_name: str  # display name of the owning actor
	movie_title: str
	character: str
	release_date: str  # "<year>-01-01", the sources only carry a year
	year: int
	director: str
	plot_summary: str  # generated text
	poster_url: str  # record poster or deterministic stock poster
	death_description: str
	death_type: str
	genre: str
	imdb_rating: Optional[float] = None
	budget: Optional[str] = None
	box_office: Optional[str] = None


@dataclass
class Actor:
	"""
	Aggregate entity: every distinct death of one performer.
	`awards_count` and `bio` are heuristics derived from the deaths, not sourced data.
	"""
	id: str  # slug of the actor name, unique key
	name: str  # display name (first spelling seen)
	headshot_url: str  # placeholder until the image enricher patches it
	bio: str  # generated descriptive text
	deaths: List[DeathEvent] = field(default_factory=list)  # at most one per movie title
	total_box_office: Optional[str] = None  # e.g. "$1.2B"
	awards_count: int = 0  # heuristic estimate
	birth_date: Optional[str] = None  # no source provides it

	@property
	def death_count(self) -> int:
		"""Always equal to the number of distinct deaths."""
		return len(self.deaths)


@dataclass
class GenreCount:
	genre: str  # primary genre bucket
	count: int  # number of records in that bucket


@dataclass
class ActorRank:
	name: str
	death_count: int


@dataclass
class YearRange:
	min: int
	max: int


@dataclass
class Stats:
	"""
	Global statistics, rebuilt wholesale with every aggregation.
	"""
	total_deaths: int  # records fed to the aggregator
	total_actors: int  # distinct actor identities
	total_movies: int  # distinct movie titles across all actors
	top_genres: List[GenreCount]  # primary-genre histogram, most frequent first
	year_range: YearRange  # earliest and latest plausible release year
	top_actors: List[ActorRank]  # most deaths first


@dataclass
class ImageResult:
	"""A portrait resolved from the encyclopedia service."""
	url: str
	title: str  # page title the image came from
	width: int = 400
	height: int = 400
	source: str = 'wikipedia'


@dataclass
class SearchFilters:
	"""
	Conjunctive filters for the advanced search; None means "no constraint".
	"""
	actor: Optional[str] = None  # substring of the actor name
	movie: Optional[str] = None  # substring of the movie title
	genre: Optional[str] = None  # substring of the genre string
	year_start: Optional[int] = None  # inclusive lower bound
	year_end: Optional[int] = None  # inclusive upper bound
	death_type: Optional[str] = None  # exact category (case-insensitive)
	director: Optional[str] = None  # substring of the director name

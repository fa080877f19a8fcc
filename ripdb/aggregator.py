"""
Aggregation module.
Groups normalized DeathRecords into Actor entities and computes global Stats.
"""

import math  # floor for the awards heuristic
import re  # box-office parsing
from dataclasses import dataclass  # result container
from datetime import date  # default year range
from typing import Callable, Dict, List, Optional  # type hints

from loguru import logger  # console logging

from .models import Actor, ActorRank, DeathEvent, DeathRecord, GenreCount, Stats, YearRange
from .normalizer import event_id, slugify


RE_BOX_OFFICE = re.compile(r'\$\s*([\d,]*\.?\d+)\s*([MB])?', re.I)

# Stock poster ids used when a record has no poster of its own
POSTER_IDS = [
	'1541746078467-6bd7c7a4badb', '1507003211169-0a138ac96936', '1519681393784-2cf36080e399',
	'1489599162113-79b16da9d6c8', '1516371535707-512a1e85281b', '1517604931441-e205c0d74bf4',
	'1571847140471-1d7c1d2e4c67', '1536440136628-849c177c5314', '1594909122845-e5c6c0ea8e9b',
]
POSTER_URL = 'https://images.unsplash.com/photo-{photo_id}?w=300&h=450&fit=crop&auto=format&q=80'


@dataclass
class AggregateResult:
	actors: Dict[str, Actor]  # actor id -> Actor, in first-seen order
	stats: Stats


def primary_genre(genre: str) -> str:
	"""First comma-separated token of a genre string."""
	return (genre or '').split(',')[0].strip()


def parse_box_office(text: Optional[str]) -> Optional[float]:
	"""
	Parse "$352.1M", "$1.2B" or "$45,000,000" into dollars.
	Returns None for anything else so callers can skip it.
	"""
	if not text:
		return None
	match = RE_BOX_OFFICE.search(text)
	if not match:
		return None
	try:
		amount = float(match.group(1).replace(',', ''))
	except ValueError:
		return None
	unit = (match.group(2) or '').upper()
	if unit == 'B':
		return amount * 1e9
	if unit == 'M':
		return amount * 1e6
	return amount


def format_box_office(total: float) -> Optional[str]:
	"""Largest sensible unit: one decimal in billions, whole millions, else nothing."""
	if total >= 1e9:
		return f"${total / 1e9:.1f}B"
	if total >= 1e6:
		return f"${total / 1e6:.0f}M"
	return None


def poster_for(title: str, year: int) -> str:
	"""Stock poster for a movie without one; same title and year, same poster."""
	seed = sum(ord(c) for c in title) + year  # stable across processes
	return POSTER_URL.format(photo_id=POSTER_IDS[seed % len(POSTER_IDS)])


def plot_summary(record: DeathRecord) -> str:
	"""Generated one-paragraph summary, chosen by genre keyword."""
	genre = record.genre.lower()  # keyword match is case-insensitive
	year = record.year  # quoted in every template
	character = record.character_name  # quoted in every template
	if 'horror' in genre:
		return (
			f"A chilling {year} horror film featuring {character} in a spine-tingling performance. "
			"The story builds suspense toward a climactic moment that showcases the ultimate price of confronting supernatural forces."
		)
	if 'action' in genre:
		return (
			f"An adrenaline-pumping {year} action thriller where {character} faces impossible odds. "
			"High-stakes sequences lead to intense confrontations that test the limits of heroism and sacrifice."
		)
	if 'drama' in genre:
		return (
			f"A compelling {year} drama exploring complex human relationships through {character}'s journey. "
			"The narrative builds to an emotionally powerful conclusion that resonates with audiences long after the credits roll."
		)
	return (
		f"A captivating {year} {genre} film featuring {character} in a memorable performance. "
		"The story weaves together compelling themes that culminate in a dramatic and unforgettable finale."
	)


def actor_bio(name: str, deaths: List[DeathEvent]) -> str:
	"""
	Generated biography; a function of the de-duplicated deaths only, never random,
	so the count it quotes always equals the actor's death_count.
	"""
	death_count = len(deaths)
	genres: List[str] = []  # distinct primary genres, first-seen order
	for d in deaths:
		g = primary_genre(d.genre)
		if g and g not in genres:
			genres.append(g)
	years = [d.year for d in deaths]
	year_span = max(years) - min(years) if len(deaths) > 1 else 0  # career length in years

	career = f"{year_span}-year" if year_span > 0 else 'distinguished'
	genre_text = f"{genres[0]} and {genres[1]}" if len(genres) > 1 else (genres[0] if genres else 'drama')
	plural = '' if death_count == 1 else 's'
	return (
		f"Renowned actor with {death_count} memorable on-screen death{plural} throughout their {career} career. "
		f"Known for bringing depth and authenticity to characters across {genre_text} films, "
		f"{name} has created unforgettable final moments that have captivated audiences worldwide."
	)


def awards_estimate(deaths: List[DeathEvent]) -> int:
	"""
	Heuristic, not real award data:
	floor(1.5 * deaths rated above 8) + floor(death count / 5).
	"""
	high_rated = sum(1 for d in deaths if d.imdb_rating is not None and d.imdb_rating > 8)
	return math.floor(high_rated * 1.5) + math.floor(len(deaths) / 5)


class DataAggregator:
	"""
	Builds fresh Actor and Stats structures from a list of records.
	Never mutates previous results, so callers can swap the output in one step.
	"""

	def __init__(
		self,
		placeholder: Optional[Callable[[str], str]] = None,
		top_genres: int = 5,
		top_actors: int = 10,
		current_year: Optional[int] = None,
	):
		self.placeholder = placeholder or (lambda name: '')  # headshot until images resolve
		self.top_genres = top_genres  # size of the genre histogram
		self.top_actors = top_actors  # size of the leaderboard
		self.current_year = current_year or date.today().year  # upper bound of the default year range

	def aggregate(self, records: List[DeathRecord]) -> AggregateResult:
		"""Group records into actors and compute global stats in one pass."""
		logger.info(f"[Aggregator] Aggregating {len(records)} records")

		# Single pass: group records by actor identity, keeping input order
		groups: Dict[str, List[DeathRecord]] = {}
		for record in records:
			groups.setdefault(slugify(record.actor_name), []).append(record)

		actors: Dict[str, Actor] = {}
		duplicates = 0
		for actor_id, group in groups.items():
			name = group[0].actor_name  # first spelling seen is the display name
			deaths: List[DeathEvent] = []  # distinct deaths, input order
			seen_titles = set()  # exact titles already used for this actor
			for record in group:
				# One event per movie per actor; the first occurrence wins
				if record.movie_title in seen_titles:
					duplicates += 1
					continue
				seen_titles.add(record.movie_title)
				deaths.append(self._event(record, name))

			actor = Actor(
				id=actor_id,
				name=name,
				headshot_url=self.placeholder(name),
				bio=actor_bio(name, deaths),
				deaths=deaths,
			)
			# Derived fields, computed from the de-duplicated deaths
			actor.total_box_office = self._total_box_office(deaths)
			actor.awards_count = awards_estimate(deaths)
			actors[actor_id] = actor

		if duplicates:
			logger.debug(f"[Aggregator] Dropped {duplicates} duplicate actor/movie events")

		stats = self._stats(records, actors)
		logger.info(
			f"[Aggregator] Built {stats.total_actors} actors, {stats.total_movies} movies, {stats.total_deaths} deaths"
		)
		return AggregateResult(actors=actors, stats=stats)

	def _event(self, record: DeathRecord, actor_name: str) -> DeathEvent:
		"""Per-actor view of one record, with generated display fields."""
		return DeathEvent(
			id=event_id(record),
			actor_name=actor_name,
			movie_title=record.movie_title,
			character=record.character_name,
			release_date=f"{record.year}-01-01",  # sources only carry a year
			year=record.year,
			director=record.director,
			plot_summary=plot_summary(record),  # generated text
			poster_url=record.poster_url or poster_for(record.movie_title, record.year),  # own poster first
			death_description=record.death_description,
			death_type=record.death_type,
			genre=record.genre,
			imdb_rating=record.imdb_rating,
			budget=record.budget,
			box_office=record.box_office,
		)

	def _total_box_office(self, deaths: List[DeathEvent]) -> Optional[str]:
		"""Sum of the parseable box-office values, formatted; None when nothing parses."""
		amounts = [parse_box_office(d.box_office) for d in deaths]
		amounts = [a for a in amounts if a is not None]  # unparseable values are excluded, not zero
		if not amounts:
			return None
		return format_box_office(sum(amounts))

	def _stats(self, records: List[DeathRecord], actors: Dict[str, Actor]) -> Stats:
		"""Global statistics over every record (duplicates included) and every actor."""
		# Primary-genre histogram; dict order keeps first-seen order for ties
		genre_counts: Dict[str, int] = {}
		for record in records:
			g = primary_genre(record.genre)
			genre_counts[g] = genre_counts.get(g, 0) + 1
		top_genres = sorted(genre_counts.items(), key=lambda kv: kv[1], reverse=True)[:self.top_genres]

		movies = {record.movie_title for record in records}  # distinct titles across actors

		# Only plausible years count toward the range
		years = [r.year for r in records if r.year > 1900]
		year_range = YearRange(min(years), max(years)) if years else YearRange(1900, self.current_year)

		# sorted() is stable, so ties keep first-seen order
		ranked = sorted(actors.values(), key=lambda a: a.death_count, reverse=True)[:self.top_actors]

		return Stats(
			total_deaths=len(records),
			total_actors=len(actors),
			total_movies=len(movies),
			top_genres=[GenreCount(genre=g, count=c) for g, c in top_genres],
			year_range=year_range,
			top_actors=[ActorRank(name=a.name, death_count=a.death_count) for a in ranked],
		)

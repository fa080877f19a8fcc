"""
Record normalization module.
Turns mapped raw rows into validated DeathRecord objects with safe defaults.
"""

import math  # finiteness check for ratings
import re  # year extraction and slugs
from dataclasses import dataclass, field  # report container
from datetime import date  # plausible year window
from typing import Dict, List, Optional  # type hints

from loguru import logger  # console logging

from .errors import MissingRequiredFieldError
from .models import DeathRecord


# Defaults substituted when an optional column is missing or blank
DEFAULTS = {
	'character_name': 'Character',
	'death_description': 'Dies in dramatic scene',
	'genre': 'Drama',
	'director': 'Unknown',
	'death_type': 'violent',
}

MIN_YEAR = 1900  # earliest plausible release year
YEAR_LOOKAHEAD = 5  # announced releases may be a few years out

RE_YEAR = re.compile(r'\d{4}')  # first 4-digit run
RE_SLUG = re.compile(r'[^a-z0-9]+')


def slugify(text: str) -> str:
	"""Lowercase, collapse every run of non-alphanumerics into '-', trim dashes."""
	return RE_SLUG.sub('-', (text or '').lower()).strip('-')


def event_id(record: DeathRecord) -> str:
	"""Identifier of the death event implied by a record (not globally unique)."""
	return f"{slugify(record.movie_title)}-{record.year}"


@dataclass
class NormalizationReport:
	records: List[DeathRecord] = field(default_factory=list)  # accepted rows, input order
	rejected: int = 0  # rows dropped for a missing actor or title
	total: int = 0  # rows seen


class RecordNormalizer:
	"""
	Converts one raw row (source header -> cell text) into a DeathRecord.
	Only the actor name and movie title are identity-bearing; everything else
	is cosmetic and falls back to a default instead of rejecting the row.
	"""

	def __init__(self, default_year: int = 2000, log_limit: int = 5, current_year: Optional[int] = None):
		self.default_year = default_year  # substituted for unparseable years
		self.log_limit = log_limit  # rejections logged one by one before summarizing
		self.current_year = current_year or date.today().year  # anchors the plausible year window

	def normalize(self, row: Dict[str, str], mapping: Dict[str, str], row_number: Optional[int] = None) -> DeathRecord:
		"""Build a DeathRecord or raise MissingRequiredFieldError."""
		actor_name = self._value(row, mapping, 'actor_name')
		if not actor_name:
			raise MissingRequiredFieldError('actor_name', row_number)
		movie_title = self._value(row, mapping, 'movie_title')
		if not movie_title:
			raise MissingRequiredFieldError('movie_title', row_number)

		return DeathRecord(
			actor_name=actor_name,
			movie_title=movie_title,
			year=self._parse_year(self._value(row, mapping, 'year')),
			character_name=self._text(row, mapping, 'character_name'),
			death_description=self._text(row, mapping, 'death_description'),
			genre=self._text(row, mapping, 'genre'),
			director=self._text(row, mapping, 'director'),
			death_type=self._text(row, mapping, 'death_type').lower(),
			imdb_rating=self._parse_rating(self._value(row, mapping, 'imdb_rating')),
			budget=self._value(row, mapping, 'budget') or None,
			box_office=self._value(row, mapping, 'box_office') or None,
			poster_url=self._value(row, mapping, 'poster_url') or None,
		)

	def normalize_all(self, rows: List[Dict[str, str]], mapping: Dict[str, str]) -> NormalizationReport:
		"""
		Normalize every row. Rejections never abort the batch: the first
		`log_limit` are logged individually, the rest only as a total.
		"""
		report = NormalizationReport(total=len(rows))
		for index, row in enumerate(rows):
			row_number = index + 2  # 1-based, after the header line
			try:
				report.records.append(self.normalize(row, mapping, row_number))
			except MissingRequiredFieldError as e:
				report.rejected += 1
				if report.rejected <= self.log_limit:
					logger.warning(f"[Normalizer] Skipping row: {e}")

		if report.rejected > self.log_limit:
			logger.warning(f"[Normalizer] Total rejected rows: {report.rejected}")
		logger.info(f"[Normalizer] Accepted {len(report.records)} of {report.total} rows ({report.rejected} rejected)")
		return report

	def _value(self, row: Dict[str, str], mapping: Dict[str, str], target: str) -> str:
		"""Trimmed cell for a canonical field; empty when the field is unmapped or the cell blank."""
		header = mapping.get(target)
		if not header:
			return ''
		value = row.get(header)
		return str(value).strip() if value is not None else ''

	def _text(self, row: Dict[str, str], mapping: Dict[str, str], target: str) -> str:
		"""Trimmed cell, or the documented default for that field."""
		return self._value(row, mapping, target) or DEFAULTS[target]

	def _parse_year(self, raw: str) -> int:
		"""First 4-digit run inside [MIN_YEAR, current year + YEAR_LOOKAHEAD], else the default year."""
		match = RE_YEAR.search(raw or '')  # "12/03/1979" and "1979-01-01" both work
		if not match:
			return self.default_year
		year = int(match.group(0))
		if year < MIN_YEAR or year > self.current_year + YEAR_LOOKAHEAD:
			return self.default_year
		return year

	def _parse_rating(self, raw: str) -> Optional[float]:
		"""A finite rating within [0, 10], else None."""
		if not raw:
			return None
		try:
			rating = float(raw)
		except ValueError:
			return None
		# float() accepts "nan" and "inf"
		if not math.isfinite(rating) or rating < 0 or rating > 10:
			return None
		return rating

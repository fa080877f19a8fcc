"""
Schema mapping module.
Maps messy, source-specific column headers onto the canonical DeathRecord fields.
"""

import re  # header canonicalization
from typing import Dict, List, Optional, Sequence  # type hints

from loguru import logger  # console logging

from .errors import InvalidSchemaError


# Canonical field -> substrings accepted in a canonicalized header.
# Order matters: fields are offered to each header in this order.
FIELD_SYNONYMS: Dict[str, List[str]] = {
	'actor_name': ['actor', 'name', 'actor_name', 'actorname', 'performer', 'star'],
	'movie_title': ['movie', 'title', 'film', 'movie_title', 'movietitle', 'production'],
	'year': ['year', 'release_year', 'releaseyear', 'date', 'released'],
	'character_name': ['character', 'role', 'character_name', 'charactername'],
	'death_description': ['death', 'death_scene', 'death_description', 'how_died', 'cause', 'description'],
	'genre': ['genre', 'genres', 'category', 'type'],
	'director': ['director', 'directed_by', 'filmmaker'],
	'imdb_rating': ['imdb', 'rating', 'imdb_rating', 'score'],
	'death_type': ['death_type', 'deathtype', 'method', 'manner'],
	'budget': ['budget', 'cost', 'production_budget'],
	'box_office': ['box_office', 'boxoffice', 'gross', 'earnings', 'revenue'],
	'poster_url': ['poster', 'poster_url', 'posterurl', 'image', 'img'],
}

REQUIRED_FIELDS = ('actor_name', 'movie_title')

_NON_ALNUM = re.compile(r'[^a-z0-9]')


def canonicalize_header(header: str) -> str:
	"""Lowercase and replace every non-alphanumeric character with '_'."""
	return _NON_ALNUM.sub('_', (header or '').strip().lower())


class SchemaMapper:
	"""
	Resolves canonical field -> source header.
	A header maps to a field when its canonical form contains one of the
	field's synonyms; the first matching header wins and is never overwritten.
	Per-source overrides name the exact header for a field and take precedence.
	"""

	def __init__(self, overrides: Optional[Dict[str, str]] = None, synonyms: Optional[Dict[str, List[str]]] = None):
		self.overrides = dict(overrides or {})
		self.synonyms = synonyms or FIELD_SYNONYMS

	def map(self, headers: Sequence[str]) -> Dict[str, str]:
		mapping: Dict[str, str] = {}

		# Explicit overrides first, but only when the header really exists
		for target, header in self.overrides.items():
			if header in headers:
				mapping[target] = header
			else:
				logger.warning(f"[Mapper] Override {target} -> '{header}' ignored: header not present")

		for header in headers:
			canonical = canonicalize_header(header)
			if not canonical.strip('_'):
				continue
			for target, names in self.synonyms.items():
				if target in mapping:
					continue
				if any(name in canonical for name in names):
					mapping[target] = header

		unmapped = [h for h in headers if h not in mapping.values()]
		logger.debug(f"[Mapper] Field mapping: {mapping} | unmapped headers: {unmapped}")
		return mapping

	@staticmethod
	def require(mapping: Dict[str, str], headers: Sequence[str] = ()) -> None:
		"""Raise InvalidSchemaError if a mandatory field has no column."""
		missing = [f for f in REQUIRED_FIELDS if f not in mapping]
		if missing:
			raise InvalidSchemaError(missing, headers)

	def map_required(self, headers: Sequence[str]) -> Dict[str, str]:
		"""Map headers and verify that the mandatory fields were found."""
		mapping = self.map(headers)
		self.require(mapping, headers)
		return mapping

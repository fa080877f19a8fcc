"""
Unit tests for RecordNormalizer: required fields, defaults, years and ratings.
Run: python tests/test_normalizer.py
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
	sys.path.insert(0, str(ROOT))

import pytest
from loguru import logger

from ripdb.errors import MissingRequiredFieldError
from ripdb.normalizer import RecordNormalizer, event_id, slugify


MAPPING = {
	'actor_name': 'Actor',
	'movie_title': 'Movie',
	'year': 'Year',
	'imdb_rating': 'Rating',
	'death_type': 'Type',
	'box_office': 'Gross',
}


def normalizer():
	return RecordNormalizer(current_year=2025)


@pytest.fixture
def warnings():
	"""Messages logged at WARNING level or above while the test runs."""
	messages = []
	handler_id = logger.add(lambda message: messages.append(message.record['message']), level='WARNING')
	yield messages
	logger.remove(handler_id)


def test_defaults_fill_optional_fields():
	record = normalizer().normalize({'Actor': ' Sean Bean ', 'Movie': 'GoldenEye', 'Year': '1995'}, MAPPING)
	assert record.actor_name == 'Sean Bean'
	assert record.year == 1995
	assert record.character_name == 'Character'
	assert record.death_description == 'Dies in dramatic scene'
	assert record.genre == 'Drama'
	assert record.director == 'Unknown'
	assert record.death_type == 'violent'
	assert record.imdb_rating is None
	assert record.box_office is None


def test_missing_actor_or_title_is_rejected():
	with pytest.raises(MissingRequiredFieldError) as info:
		normalizer().normalize({'Actor': '   ', 'Movie': 'Alien'}, MAPPING, row_number=4)
	assert info.value.field == 'actor_name'
	assert info.value.row_number == 4
	with pytest.raises(MissingRequiredFieldError):
		normalizer().normalize({'Actor': 'John Hurt', 'Movie': ''}, MAPPING)


@pytest.mark.parametrize('raw, expected', [
	('1995', 1995),
	('Released 12/03/1979', 1979),
	('abc', 2000),
	('', 2000),
	('1850', 2000),
	('2030', 2030),
	('2031', 2000),
])
def test_year_parsing(raw, expected):
	record = normalizer().normalize({'Actor': 'A', 'Movie': 'M', 'Year': raw}, MAPPING)
	assert record.year == expected


@pytest.mark.parametrize('raw, expected', [
	('8.8', 8.8),
	('0', 0.0),
	('10', 10.0),
	('10.5', None),
	('-1', None),
	('nan', None),
	('n/a', None),
])
def test_rating_parsing(raw, expected):
	record = normalizer().normalize({'Actor': 'A', 'Movie': 'M', 'Rating': raw}, MAPPING)
	assert record.imdb_rating == expected


def test_death_type_is_lowercased_and_unknown_values_kept():
	record = normalizer().normalize({'Actor': 'A', 'Movie': 'M', 'Type': 'Heroic'}, MAPPING)
	assert record.death_type == 'heroic'
	record = normalizer().normalize({'Actor': 'A', 'Movie': 'M', 'Type': 'Eaten'}, MAPPING)
	assert record.death_type == 'eaten'


def test_normalize_all_counts_rejections():
	rows = [{'Actor': 'A', 'Movie': 'M'}] + [{'Actor': '', 'Movie': 'M'}] * 7
	report = normalizer().normalize_all(rows, MAPPING)
	assert len(report.records) == 1
	assert report.rejected == 7
	assert report.total == 8


def test_rejections_logged_individually_then_as_a_total(warnings):
	rows = [{'Actor': 'A', 'Movie': 'M'}] + [{'Actor': '', 'Movie': 'M'}] * 7
	normalizer().normalize_all(rows, MAPPING)
	skipped = [m for m in warnings if 'Skipping row' in m]
	assert len(skipped) == 5
	assert '(row 3)' in skipped[0]
	assert [m for m in warnings if 'Total rejected rows' in m] == ['[Normalizer] Total rejected rows: 7']
	assert len(warnings) == 6


def test_few_rejections_have_no_total_line(warnings):
	rows = [{'Actor': 'A', 'Movie': 'M'}, {'Actor': 'B', 'Movie': ' '}]
	report = normalizer().normalize_all(rows, MAPPING)
	assert report.rejected == 1
	assert len(warnings) == 1
	assert "Missing required field 'movie_title' (row 3)" in warnings[0]


def test_slug_and_event_id():
	assert slugify('Samuel L. Jackson') == 'samuel-l-jackson'
	assert slugify('  --Léon!! ') == 'l-on'
	record = normalizer().normalize({'Actor': 'Sean Bean', 'Movie': 'The Lord of the Rings: Part 1', 'Year': '2001'}, MAPPING)
	assert event_id(record) == 'the-lord-of-the-rings-part-1-2001'


def main():
	print("Running RecordNormalizer tests...")
	test_defaults_fill_optional_fields()
	test_missing_actor_or_title_is_rejected()
	test_death_type_is_lowercased_and_unknown_values_kept()
	test_normalize_all_counts_rejections()
	test_slug_and_event_id()
	print("All RecordNormalizer tests passed!")


if __name__ == '__main__':
	main()

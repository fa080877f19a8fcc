"""
Embedded fallback dataset, installed when every live source is exhausted.
Always surfaced with DataSource.MOCK so the UI can disclose degraded state.
"""

from typing import List

from .models import DeathRecord


def _record(actor, movie, year, character, description, genre, director, rating, death_type, budget, box_office):
	return DeathRecord(
		actor_name=actor,
		movie_title=movie,
		year=year,
		character_name=character,
		death_description=description,
		genre=genre,
		director=director,
		death_type=death_type,
		imdb_rating=rating,
		budget=budget,
		box_office=box_office,
	)


def fallback_records() -> List[DeathRecord]:
	"""A fresh copy of the embedded records on every call."""
	return [
		_record("Sean Bean", "GoldenEye", 1995, "Alec Trevelyan", "Falls from satellite dish after being shot",
			"Action, Adventure, Thriller", "Martin Campbell", 7.2, "violent", "$60M", "$352.1M"),
		_record("Sean Bean", "The Lord of the Rings: The Fellowship of the Ring", 2001, "Boromir",
			"Shot with arrows defending Merry and Pippin", "Adventure, Drama, Fantasy", "Peter Jackson", 8.8,
			"heroic", "$93M", "$871.5M"),
		_record("Sean Bean", "Patriot Games", 1992, "Sean Miller", "Killed in boat explosion",
			"Action, Drama, Thriller", "Phillip Noyce", 6.9, "violent", "$45M", "$178.1M"),
		_record("John Hurt", "Alien", 1979, "Kane", "Alien chestburster erupts from his chest",
			"Horror, Sci-Fi", "Ridley Scott", 8.4, "supernatural", "$11M", "$104.9M"),
		_record("John Hurt", "V for Vendetta", 2005, "Adam Sutler", "Shot by Creedy's men",
			"Action, Drama, Sci-Fi", "James McTeigue", 8.2, "violent", "$54M", "$132.5M"),
		_record("Danny Trejo", "Machete", 2010, "Machete Cortez", "Survives (rare for Trejo character)",
			"Action, Crime, Thriller", "Robert Rodriguez", 6.6, "survivor", "$10.5M", "$45.5M"),
		_record("Danny Trejo", "Heat", 1995, "Trejo", "Shot by police during robbery",
			"Action, Crime, Drama", "Michael Mann", 8.3, "violent", "$60M", "$187.4M"),
		_record("Gary Oldman", "The Professional", 1994, "Norman Stansfield", "Killed by Léon's bomb vest",
			"Action, Crime, Drama", "Luc Besson", 8.5, "explosive", "$16M", "$19.5M"),
		_record("Gary Oldman", "Air Force One", 1997, "Ivan Korshunov", "Falls from the plane without parachute",
			"Action, Drama, Thriller", "Wolfgang Petersen", 6.5, "violent", "$85M", "$315.2M"),
		_record("Samuel L. Jackson", "Snakes on a Plane", 2006, "Neville Flynn", "Survives the snake attack",
			"Action, Adventure, Crime", "David R. Ellis", 5.4, "survivor", "$33M", "$62.0M"),
	]

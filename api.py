"""
FastAPI server exposing the RIPDB death database to the presentation layer.
Endpoints:
- GET  /health: basic health check
- GET  /status: load state, error message and data source marker
- GET  /stats: global statistics
- GET  /actors/search?q=...: up to 10 matching actor names
- GET  /actors/{actor_id}: one actor with all of their deaths
- POST /search/advanced: conjunctive filter over death events
- POST /reload: discard caches and load again

Startup builds a DataService from RIPDB_* environment variables and loads it once.
"""

# Import standard libraries for timing
import time  # measure startup and request latencies
from typing import List, Optional  # precise typing for clarity

# Import FastAPI for building the web API and Pydantic for response models
from fastapi import FastAPI, HTTPException, Query  # FastAPI primitives
from pydantic import BaseModel  # response schema definitions

# Import our internal modules for configuration and data access
from ripdb.config import ServiceConfig  # environment-driven settings
from ripdb.models import Actor, DeathEvent, SearchFilters  # core data classes
from ripdb.service import DataService  # ingestion façade

# Import loguru for simple, structured console logging
from loguru import logger  # convenient console logger

# Instantiate the FastAPI application with metadata
app = FastAPI(title="RIPDB API", version="1.0.0")  # web app

# Globals that hold the service instance and measured startup time
SERVICE: Optional[DataService] = None  # will point to the loaded service
STARTUP_TIME_S: float = 0.0  # measures how long startup took


# Pydantic model that describes one death event in responses
class DeathEventOut(BaseModel):
	id: str
	actor_name: str
	movie_title: str
	character: str
	release_date: str
	year: int
	director: str
	plot_summary: str
	poster_url: str
	death_description: str
	death_type: str
	genre: str
	imdb_rating: Optional[float] = None
	budget: Optional[str] = None
	box_office: Optional[str] = None


# Pydantic model for a full actor page
class ActorOut(BaseModel):
	id: str
	name: str
	headshot_url: str
	bio: str
	death_count: int
	deaths: List[DeathEventOut]
	total_box_office: Optional[str] = None
	awards_count: int  # heuristic estimate, not real award data


class GenreCountOut(BaseModel):
	genre: str
	count: int


class ActorRankOut(BaseModel):
	name: str
	death_count: int


class StatsOut(BaseModel):
	total_deaths: int
	total_actors: int
	total_movies: int
	top_genres: List[GenreCountOut]
	year_min: int
	year_max: int
	top_actors: List[ActorRankOut]
	data_source: Optional[str] = None


class StatusOut(BaseModel):
	state: str
	loading: bool
	error: Optional[str] = None
	data_source: Optional[str] = None
	actor_count: int
	rejected_rows: int
	has_real_data: bool
	loaded_at: Optional[str] = None


class SearchOut(BaseModel):
	query: str
	elapsed_ms: float
	results: List[str]


# Request body for the advanced search
class AdvancedSearchIn(BaseModel):
	actor: Optional[str] = None
	movie: Optional[str] = None
	genre: Optional[str] = None
	year_start: Optional[int] = None
	year_end: Optional[int] = None
	death_type: Optional[str] = None
	director: Optional[str] = None


def _event_out(e: DeathEvent) -> DeathEventOut:
	return DeathEventOut(**e.__dict__)


def _actor_out(a: Actor) -> ActorOut:
	return ActorOut(
		id=a.id,
		name=a.name,
		headshot_url=a.headshot_url,
		bio=a.bio,
		death_count=a.death_count,
		deaths=[_event_out(e) for e in a.deaths],
		total_box_office=a.total_box_office,
		awards_count=a.awards_count,
	)


def _require_service() -> DataService:
	if SERVICE is None:  # service must exist to serve
		logger.warning("[API] Request received before the service was initialized")
		raise HTTPException(status_code=503, detail="Service not initialized")
	return SERVICE


# FastAPI startup hook to load the database once
@app.on_event("startup")
async def startup_event():
	"""Build the DataService, load it and log where the data came from."""
	global SERVICE, STARTUP_TIME_S  # refer to module-level globals
	start = time.time()  # start timer for startup latency

	logger.info("[API] Startup: loading death records...")  # log intent
	SERVICE = DataService(ServiceConfig.from_env())  # one service for the process
	await SERVICE.load()  # never raises; falls back to embedded data

	# Compute and log startup duration and mode
	STARTUP_TIME_S = time.time() - start  # elapsed seconds
	status = SERVICE.status()
	logger.info(
		f"[API] Startup complete in {STARTUP_TIME_S:.2f}s. source={status['data_source']} actors={status['actor_count']}"
	)


@app.on_event("shutdown")
async def shutdown_event():
	"""Stop background image fetching and close HTTP sessions."""
	if SERVICE is not None:
		await SERVICE.dispose()


# Simple health endpoint for readiness checks
@app.get("/health")
async def health():
	"""Return minimal health info for liveness/readiness probes."""
	return {
		"status": "ok",  # constant indicator
		"service_ready": SERVICE is not None and not SERVICE.loading,
		"startup_seconds": round(STARTUP_TIME_S, 2),  # startup latency
	}


@app.get("/status", response_model=StatusOut)
async def status():
	"""Load state plus the error and data-source marker the UI uses to disclose degraded data."""
	return StatusOut(**_require_service().status())


@app.get("/stats", response_model=StatsOut)
async def stats():
	service = _require_service()
	s = service.stats
	if s is None:
		raise HTTPException(status_code=503, detail="No data loaded")
	return StatsOut(
		total_deaths=s.total_deaths,
		total_actors=s.total_actors,
		total_movies=s.total_movies,
		top_genres=[GenreCountOut(genre=g.genre, count=g.count) for g in s.top_genres],
		year_min=s.year_range.min,
		year_max=s.year_range.max,
		top_actors=[ActorRankOut(name=a.name, death_count=a.death_count) for a in s.top_actors],
		data_source=service.data_source.value if service.data_source else None,
	)


# Actor name search
@app.get("/actors/search", response_model=SearchOut)
async def search_actors(q: str = Query("", description="Part of an actor name")):
	"""Case-insensitive substring search over actor names."""
	service = _require_service()
	start = time.time()  # start timer
	results = service.search(q)
	elapsed_ms = (time.time() - start) * 1000  # compute ms
	logger.debug(f"[API] /actors/search q='{q}' -> {len(results)} results in {elapsed_ms:.2f} ms")
	return SearchOut(query=q, elapsed_ms=round(elapsed_ms, 2), results=results)


@app.get("/actors/{actor_id}", response_model=ActorOut)
async def get_actor(actor_id: str):
	actor = _require_service().get_actor(actor_id)
	if actor is None:
		raise HTTPException(status_code=404, detail=f"Actor not found: {actor_id}")
	return _actor_out(actor)


@app.post("/search/advanced", response_model=List[DeathEventOut])
async def advanced_search(filters: AdvancedSearchIn):
	events = _require_service().advanced_search(SearchFilters(**filters.model_dump()))
	logger.info(f"[API] /search/advanced served {len(events)} events")
	return [_event_out(e) for e in events]


@app.post("/reload", response_model=StatusOut)
async def reload():
	"""Discard caches and reload the database (manual retry affordance)."""
	service = _require_service()
	await service.reload()
	return StatusOut(**service.status())

"""
Load the death database once and print a summary.

This script:
1) Builds a DataService from RIPDB_* environment variables
2) Runs the source chain (values API -> CSV -> embedded fallback)
3) Logs where the data came from and the headline statistics
4) Optionally waits for the background portrait lookups

Usage:
    python -m scripts.ingest_report
    python -m scripts.ingest_report --wait-images
"""

import argparse  # command-line flags
import asyncio  # run the async service
import time  # measure step timings

from loguru import logger  # console logging

from ripdb.config import ServiceConfig  # environment-driven settings
from ripdb.service import DataService  # ingestion façade


async def run(wait_images: bool) -> None:
	# Headline banner for visibility in console
	logger.info("=" * 60)
	logger.info("RIPDB Ingestion Report")
	logger.info("=" * 60)

	config = ServiceConfig.from_env()
	config.enrich_images = wait_images  # no background lookups unless asked
	service = DataService(config)

	try:
		# 1) Load
		logger.info("[1/3] Loading death records...")
		t0 = time.time()  # start timer
		await service.load()
		status = service.status()
		logger.info(f"[OK] state={status['state']} source={status['data_source']} in {time.time() - t0:.2f}s")
		if service.error:
			logger.warning(f"[!] {service.error}")
		if status['rejected_rows']:
			logger.warning(f"[!] {status['rejected_rows']} rows rejected for missing actor or title")

		# 2) Stats
		logger.info("\n[2/3] Statistics")
		stats = service.stats
		logger.info(f"  Deaths: {stats.total_deaths} | Actors: {stats.total_actors} | Movies: {stats.total_movies}")
		logger.info(f"  Years: {stats.year_range.min} - {stats.year_range.max}")
		for g in stats.top_genres:
			logger.info(f"  Genre {g.genre}: {g.count}")
		for i, a in enumerate(stats.top_actors, 1):
			logger.info(f"  {i}. {a.name} ({a.death_count} deaths)")

		# 3) Images
		if wait_images:
			logger.info("\n[3/3] Waiting for portrait lookups...")
			await service.wait_for_images()
			progress = service.image_progress()
			logger.info(f"[OK] {progress['cached']}/{progress['total']} portraits looked up")
		else:
			logger.info("\n[3/3] Portrait lookups skipped (use --wait-images)")
	finally:
		await service.dispose()

	logger.info("=" * 60)


def main():
	parser = argparse.ArgumentParser(description="Load the RIPDB database and report on it")
	parser.add_argument('--wait-images', action='store_true', help="Resolve actor portraits before exiting")
	args = parser.parse_args()
	asyncio.run(run(args.wait_images))


if __name__ == '__main__':
	main()  # invoke report

"""
Autovagas - job search automation engine.

Subpackages:
- core: configuration, logging, errors, shared models, SQLite schema
- scrapers: proxy pool, session store, scraper job queue, workers
- adapters: per-platform scrape/apply implementations
- auto_apply: scoring, quota/history persistence, orchestrator
"""

__version__ = "0.1.0"

"""Single-URL scrape pipeline.

Sub-modules:
- ``config``             — constants and default limits
- ``url_validator``      — scheme / length / blocked-host checks
- ``robots``             — robots.txt fetch, parse and rule evaluation
- ``http_fetcher``       — time- and size-bounded httpx document fetch
- ``content_extractor``  — BeautifulSoup-based structured extraction
- ``quota``              — per-owner daily counter in a key-value store
- ``schemas``            — pydantic result models
- ``service``            — ``WebscraperService`` orchestrating the above
"""

"""
Core data and query layer.

This package contains:
- dimensions: entity axes and the dimension -> facts column table
- data_loader: parquet locators per time slice; HTTP / local fetch
- engine: embedded DuckDB engine, file buffers, reference-counted handle
- query_compiler: predicates, sorting, projection and their SQL text
- paged_fetcher: generic load / query / count / normalize, paging helpers
- queries: related-entity aggregation, contract listing, entity table
- navigation: drill contexts and breadcrumbs
- tabs: per-tab state and the tab load orchestrator
- debounce: cancellable deferred dispatch
- summary: headline figures and CSV export of the entity table
- session: the explorer controller wiring all of the above
"""

"""
Award Explorer: drill-down exploration of published award / contract statistics.

Packages:
- core: source locators and fetch, embedded query engine, query compilation,
  paged queries, drill navigation, tab loading, debouncing, summaries
"""

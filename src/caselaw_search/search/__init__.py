"""
Search indexing and query engine package.

This package provides a pure-Python search stack:
- analyzers: Tokenizer, case folding and regex matcher helpers
- postings: Immutable posting lists with merge-join intersection
- inverted_index: Term dictionary with substring lookup
- document_store: Document metadata, compressed text and filters
- snapshot: Immutable snapshots and atomic publication
- planner / executor: Literal and regex query plans, ranking
- snippet: Line snippets for results
- persistence: Versioned binary snapshot files
"""

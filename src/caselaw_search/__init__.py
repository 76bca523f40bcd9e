"""Full-text search over a corpus of legal case documents.

Literal and regex queries, jurisdiction and case-type filters, ranked results
with line snippets, served from immutable index snapshots.
"""

__version__ = "0.1.0"

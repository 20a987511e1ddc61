"""
Transforms sub-package for cmc-hist-ingest.

Pure text-to-value steps applied to a rendered snapshot table, kept
free of browser and database concerns so each is testable on plain
strings:
  - numbers.py: Strip currency/percent/unit decoration, parse typed values.
  - columns.py: Map the header row to a per-snapshot ``ColumnIndex``.
"""

"""
Custom exception hierarchy for cmc-hist-ingest.

Every exception raised here is *fatal* for the run: the coordinator
logs the context and lets it propagate.  Recoverable conditions
(rate limiting, render races, overlay interceptions, watchdog timeouts)
are never raised as exceptions past the coordinator; they are expressed
as ``StepOutcome`` values instead (see ``outcome.py``).
"""


class CmcHistIngestError(Exception):
    """Base exception for all cmc-hist-ingest errors."""


class ConfigValidationError(CmcHistIngestError):
    """Raised when cmc_hist.yaml or the environment fails validation.

    For example, an empty config file, or no database URL and no
    ``DB_*`` environment variables to build one from.
    """


class LayoutError(CmcHistIngestError):
    """Raised when the rendered table no longer matches the known layout.

    Typically the ``Rank`` header label is missing, or a positional
    percent-change column falls outside the header row.
    """


class NumberFormatError(CmcHistIngestError):
    """Raised when a cell outside the null-sentinel set is not a number.

    Carries the field class and offending text so the fatal log line
    can say exactly what broke.
    """

    def __init__(self, field: str, text: str) -> None:
        self.field = field
        self.text = text
        super().__init__(f"Cannot parse {field} value {text!r}")


class RankFormatError(CmcHistIngestError):
    """Raised when a rank cell is empty or not an integer.

    Unlike ``NumberFormatError`` this is caught by the extractor and
    turned into a snapshot retry: an unreadable rank means the table was
    captured mid-render.
    """


class RowCeilingError(CmcHistIngestError):
    """Raised when a snapshot reaches the configured row ceiling.

    Means ``max_rows`` / ``row_ceiling`` need to be raised before the
    series can continue.
    """


class DuplicateKeyError(CmcHistIngestError):
    """Raised when a batch holds two records with the same (date, rank, symbol)."""


class PersistenceError(CmcHistIngestError):
    """Raised when a batch cannot be written; the whole batch is rolled back."""


class ExportError(CmcHistIngestError):
    """Raised when the exporter fails to write the table dump.

    For example, permission errors, disk full, or unsupported format.
    """

"""
Run the snapshot series ingestion.

Usage:
    uv run python scripts/run_ingest.py --init            # write cmc_hist.yaml with defaults
    uv run python scripts/run_ingest.py                   # ingest using cmc_hist.yaml
    uv run python scripts/run_ingest.py path/to/other.yaml

Database credentials come from ``store.database_url`` in the config or,
when that is null, from DB_USER / DB_PASS / DB_HOST / DB_PORT / DB_NAME.
The run resumes from the most recent stored snapshot.
"""

from __future__ import annotations

import logging
import sys

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_CONFIG = "cmc_hist.yaml"

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger("run_ingest")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> int:
    import cmc_hist_ingest
    from cmc_hist_ingest.exceptions import CmcHistIngestError

    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    config_path = args[0] if args else DEFAULT_CONFIG

    if "--init" in sys.argv:
        cmc_hist_ingest.init(config_path, force="--force" in sys.argv)
        log.info("Config written to %s; edit it, then run again without --init", config_path)
        return 0

    try:
        summary = cmc_hist_ingest.ingest(config_path)
    except CmcHistIngestError as exc:
        log.error("Stopped: %s", exc)
        log.error("Re-run after fixing the cause; ingestion resumes at the failed date.")
        return 1

    log.info("=" * 70)
    log.info("Snapshots committed : %d", summary.snapshots)
    log.info("Rows inserted       : %s", f"{summary.rows_inserted:,}")
    log.info("Rows skipped        : %s", f"{summary.rows_skipped:,}")
    log.info("Retries             : %d", summary.retries)
    log.info("Session restarts    : %d", summary.session_restarts)
    log.info("Next date           : %s", summary.next_date)
    log.info("=" * 70)
    return 0


if __name__ == "__main__":
    sys.exit(main())

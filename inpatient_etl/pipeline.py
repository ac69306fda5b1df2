"""
SynPUF inpatient claims → clean cohort extract
===============================================

Runs the seven stages in order on the whole table:

  1. ingest        normalize columns, drop empty columns, parse dates
  2. date_window   drop rows with missing/out-of-range required dates
  3. bill_type     derive facility/frequency digits and priority rank
  4. dedup         one row per claim_id
  5. stay_metrics  length_of_stay, billing_span
  6. labels        output layout, column and value labels
  7. export        CSV + SPSS .sav

Usage
-----
    python -m inpatient_etl.pipeline
    python -m inpatient_etl.pipeline --input data/raw/synpuf/claims.csv --output-dir out/

Configuration (.env)
--------------------
    DATA_RAW            input directory (default data/raw)
    DATA_PROCESSED      output directory root (default data/processed)
    STRICT_DERIVATIONS  1 → negative length_of_stay/billing_span aborts the run
    LOG_LEVEL           default INFO
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

import polars as pl
from dotenv import load_dotenv

from inpatient_etl.compute.stay_metrics import derive_stay_metrics
from inpatient_etl.errors import StageError
from inpatient_etl.ingest.claims_ingest import normalize_claims, read_claims
from inpatient_etl.load.exporter import DEFAULT_STEM, export
from inpatient_etl.load.labels import annotate
from inpatient_etl.transform.bill_type import resolve_bill_type, resolve_strategy
from inpatient_etl.transform.claim_dedup import deduplicate_claims
from inpatient_etl.transform.date_window import filter_date_window

load_dotenv()

# Resolve paths from repo root so the pipeline works from any cwd
_REPO_ROOT = Path(__file__).resolve().parents[1]
_raw = os.environ.get("DATA_RAW", str(_REPO_ROOT / "data" / "raw"))
_processed = os.environ.get("DATA_PROCESSED", str(_REPO_ROOT / "data" / "processed"))
RAW = Path(_raw) if Path(_raw).is_absolute() else _REPO_ROOT / _raw
PROCESSED = Path(_processed) if Path(_processed).is_absolute() else _REPO_ROOT / _processed

DEFAULT_INPUT = RAW / "synpuf" / "DE1_0_2008_to_2010_Inpatient_Claims_Sample_1.csv"
DEFAULT_OUT_DIR = PROCESSED / "inpatient"

log = logging.getLogger(__name__)


def strict_from_env() -> bool:
    return os.environ.get("STRICT_DERIVATIONS", "").strip().lower() in ("1", "true", "yes")


@dataclass
class RunSummary:
    rows: dict[str, int] = field(default_factory=dict)
    bill_type_case: Optional[str] = None
    csv_path: Optional[Path] = None
    sav_path: Optional[Path] = None

    def report(self) -> str:
        lines = [f"  {stage:<13} {n:>10,}" for stage, n in self.rows.items()]
        return "\n".join(lines)


def _run_stage(name: str, fn: Callable[[pl.DataFrame], pl.DataFrame], df: pl.DataFrame,
               summary: RunSummary) -> pl.DataFrame:
    try:
        out = fn(df)
    except StageError:
        raise
    except Exception as e:
        raise StageError(name, len(df), str(e)) from e
    log.info("[%s] %s rows in → %s rows out", name, f"{len(df):,}", f"{len(out):,}")
    summary.rows[name] = len(out)
    return out


def run(
    input_path: Path = DEFAULT_INPUT,
    out_dir: Path = DEFAULT_OUT_DIR,
    strict: Optional[bool] = None,
    stem: str = DEFAULT_STEM,
) -> RunSummary:
    strict = strict_from_env() if strict is None else strict
    summary = RunSummary()

    try:
        raw = read_claims(Path(input_path))
    except Exception as e:
        raise StageError("read", 0, str(e)) from e
    summary.rows["read"] = len(raw)

    df = _run_stage("ingest", normalize_claims, raw, summary)
    df = _run_stage("date_window", filter_date_window, df, summary)

    strategy = resolve_strategy(df.columns)
    summary.bill_type_case = strategy.case
    df = _run_stage("bill_type", lambda d: resolve_bill_type(d, strategy), df, summary)

    df = _run_stage("dedup", deduplicate_claims, df, summary)
    df = _run_stage("stay_metrics", lambda d: derive_stay_metrics(d, strict=strict), df, summary)

    try:
        labeled = annotate(df)
    except Exception as e:
        raise StageError("labels", len(df), str(e)) from e
    summary.rows["labels"] = len(labeled.frame)

    try:
        summary.csv_path, summary.sav_path = export(labeled, Path(out_dir), stem=stem)
    except Exception as e:
        raise StageError("export", len(df), str(e)) from e

    log.info("[pipeline] Done: bill-type case %s\n%s", summary.bill_type_case, summary.report())
    return summary


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main() -> None:
    parser = argparse.ArgumentParser(
        description="Clean, de-duplicate and label SynPUF inpatient claims."
    )
    parser.add_argument(
        "--input", type=Path, default=DEFAULT_INPUT,
        help=f"Raw inpatient claims CSV (default: {DEFAULT_INPUT})",
    )
    parser.add_argument(
        "--output-dir", type=Path, default=DEFAULT_OUT_DIR,
        help=f"Directory for the .csv and .sav outputs (default: {DEFAULT_OUT_DIR})",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s [inpatient] %(levelname)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    try:
        run(args.input, args.output_dir)
    except StageError as e:
        log.error("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()

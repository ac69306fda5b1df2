"""
Sanity checks for a produced inpatient extract.

Reads the clean CSV (and the .sav next to it, if present), checks the output
invariants and prints one PASS/FAIL line per check.

Usage
-----
  python scripts/check_extract.py
  python scripts/check_extract.py --csv data/processed/inpatient/inpatient_claims_clean.csv
"""
import argparse
import os
import sys
from pathlib import Path

# Allow running from repo root or scripts/
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import polars as pl
import pyreadstat
from dotenv import load_dotenv

from inpatient_etl.ingest.claims_ingest import DATE_COLS
from inpatient_etl.load.labels import VALUE_LABELS
from inpatient_etl.transform.date_window import WINDOW_END, WINDOW_START

load_dotenv()

_REPO_ROOT = Path(__file__).resolve().parents[1]
_processed = os.environ.get("DATA_PROCESSED", str(_REPO_ROOT / "data" / "processed"))
PROCESSED = Path(_processed) if Path(_processed).is_absolute() else _REPO_ROOT / _processed
DEFAULT_CSV = PROCESSED / "inpatient" / "inpatient_claims_clean.csv"


def _in_window(col: str) -> pl.Expr:
    return pl.col(col).is_between(pl.lit(WINDOW_START), pl.lit(WINDOW_END))


# (label, expression that must be True on every row)
ROW_CHECKS: list[tuple[str, pl.Expr]] = [
    ("admit/from/thru dates present and in window",
     _in_window("admit_date") & _in_window("from_date") & _in_window("thru_date")),
    ("discharge_date null or in window",
     pl.col("discharge_date").is_null() | _in_window("discharge_date")),
    ("priority_rank in {1,2,3}",
     pl.col("priority_rank").is_in([1, 2, 3])),
    ("length_of_stay null when priority_rank == 3",
     (pl.col("priority_rank") != 3) | pl.col("length_of_stay").is_null()),
    ("billing_span == thru_date - from_date",
     pl.col("billing_span") == (pl.col("thru_date") - pl.col("from_date")).dt.total_days()),
    ("billing_span non-negative",
     pl.col("billing_span") >= 0),
]


def load_extract(path: Path) -> pl.DataFrame:
    df = pl.read_csv(path, infer_schema_length=0)
    return df.with_columns(
        [pl.col(c).str.to_date("%Y-%m-%d", strict=False) for c in DATE_COLS if c in df.columns]
        + [pl.col(c).cast(pl.Int32, strict=False)
           for c in ("priority_rank", "length_of_stay", "billing_span") if c in df.columns]
    )


def run_checks(df: pl.DataFrame) -> list[tuple[str, int]]:
    """Return (label, failing row count) for every check."""
    results = [("claim_id unique", len(df) - df["claim_id"].n_unique())]
    for label, expr in ROW_CHECKS:
        n_bad = df.select((~expr.fill_null(False)).sum()).item()
        results.append((label, int(n_bad)))
    return results


def check_sav(path: Path) -> list[tuple[str, int]]:
    _, meta = pyreadstat.read_sav(str(path), metadataonly=True)
    missing = [c for c in VALUE_LABELS if c in meta.column_names
               and not meta.variable_value_labels.get(c)]
    unlabelled = [c for c in meta.column_names if not meta.column_names_to_labels.get(c)]
    return [
        ("value labels on coded columns", len(missing)),
        ("every column has a label", len(unlabelled)),
    ]


def main(csv_path: Path) -> None:
    if not csv_path.exists():
        print(f"\n✗  {csv_path} not found — run python -m inpatient_etl.pipeline first")
        sys.exit(1)

    df = load_extract(csv_path)
    print(f"\n{csv_path}  ({len(df):,} rows, {len(df.columns)} columns)\n")

    results = run_checks(df)
    sav_path = csv_path.with_suffix(".sav")
    if sav_path.exists():
        results += check_sav(sav_path)
    else:
        print(f"  (no {sav_path.name}; skipping label checks)")

    failed = 0
    for label, n_bad in results:
        status = "PASS" if n_bad == 0 else f"FAIL ({n_bad:,})"
        print(f"  {status:<14}  {label}")
        failed += bool(n_bad)

    if failed:
        print(f"\n✗  {failed} check(s) failed\n")
        sys.exit(1)
    print("\n✓  All checks passed\n")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Inpatient extract sanity checks")
    parser.add_argument("--csv", type=Path, default=DEFAULT_CSV, help="Clean extract CSV")
    args = parser.parse_args()
    main(args.csv)

"""
Date-range validation for inpatient claims.

The SynPUF sample covers calendar years 2008–2010. Admission, statement-from
and statement-thru dates are hard requirements: a row missing one of them, or
carrying one outside the window, is dropped. Discharge date is soft: an
out-of-window value is nulled and the row kept.
"""
from __future__ import annotations

import logging
from datetime import date

import polars as pl

log = logging.getLogger(__name__)

WINDOW_START = date(2008, 1, 1)
WINDOW_END = date(2010, 12, 31)

HARD_DATE_COLS = ["admit_date", "from_date", "thru_date"]
SOFT_DATE_COLS = ["discharge_date"]


def in_window(expr: pl.Expr, start: date = WINDOW_START, end: date = WINDOW_END) -> pl.Expr:
    """True when the date is inside [start, end]; null dates give null (filtered out)."""
    return expr.is_between(pl.lit(start), pl.lit(end), closed="both")


def filter_date_window(
    df: pl.DataFrame,
    start: date = WINDOW_START,
    end: date = WINDOW_END,
) -> pl.DataFrame:
    n_in = len(df)

    keep = pl.all_horizontal(
        [in_window(pl.col(c), start, end).fill_null(False) for c in HARD_DATE_COLS]
    )
    df = df.filter(keep)
    removed = n_in - len(df)
    log.info(
        "[date_window] Removed %s of %s rows with a missing or out-of-range required date",
        f"{removed:,}", f"{n_in:,}",
    )

    for c in SOFT_DATE_COLS:
        if c not in df.columns:
            continue
        out_of_range = pl.col(c).is_not_null() & ~in_window(pl.col(c), start, end)
        n_nulled = df.select(out_of_range.sum()).item()
        if n_nulled:
            log.info("[date_window] %s: %s out-of-range values set to null", c, f"{n_nulled:,}")
        df = df.with_columns(
            pl.when(out_of_range).then(None).otherwise(pl.col(c)).alias(c)
        )
    return df

"""
Stay-level metrics for de-duplicated inpatient claims.

  length_of_stay = discharge_date - admit_date      (rank 1/2, discharge known)
                 = thru_date - admit_date           (rank 1/2, discharge unknown)
                 = null                             (rank 3: interim, void, other)
  billing_span   = thru_date - from_date            (every row)

Both are whole days. Negative values come only from malformed input; they are
reported, and in strict mode raised.
"""
from __future__ import annotations

import logging

import polars as pl

from inpatient_etl.errors import DerivationError

log = logging.getLogger(__name__)

LOS_RANKS = [1, 2]


def _days_between(end: pl.Expr, start: pl.Expr) -> pl.Expr:
    return (end - start).dt.total_days().cast(pl.Int32)


def length_of_stay_expr() -> pl.Expr:
    stay_end = pl.coalesce(pl.col("discharge_date"), pl.col("thru_date"))
    return (
        pl.when(pl.col("priority_rank").is_in(LOS_RANKS))
        .then(_days_between(stay_end, pl.col("admit_date")))
        .otherwise(None)
        .cast(pl.Int32)
        .alias("length_of_stay")
    )


def billing_span_expr() -> pl.Expr:
    return _days_between(pl.col("thru_date"), pl.col("from_date")).alias("billing_span")


def check_negative(df: pl.DataFrame, strict: bool = False) -> dict[str, int]:
    """Count negative derived values; warn, or raise DerivationError when strict."""
    counts = df.select(
        (pl.col("length_of_stay") < 0).sum().alias("length_of_stay"),
        (pl.col("billing_span") < 0).sum().alias("billing_span"),
    ).row(0, named=True)
    counts = {k: int(v or 0) for k, v in counts.items()}

    for metric, n in counts.items():
        if not n:
            continue
        examples = (
            df.filter(pl.col(metric) < 0).get_column("claim_id").head(5).to_list()
        )
        msg = f"{n:,} rows with negative {metric} (e.g. claim_id {', '.join(map(str, examples))})"
        if strict:
            raise DerivationError(msg)
        log.warning("[stay_metrics] %s", msg)
    return counts


def derive_stay_metrics(df: pl.DataFrame, strict: bool = False) -> pl.DataFrame:
    df = df.with_columns(length_of_stay_expr(), billing_span_expr())
    check_negative(df, strict=strict)

    los = df["length_of_stay"].drop_nulls()
    if len(los):
        log.info(
            "[stay_metrics] length_of_stay on %s rows: median %.1f, max %d days",
            f"{len(los):,}", los.median(), los.max(),
        )
    return df

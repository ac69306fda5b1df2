"""
Claim de-duplication: one authoritative row per claim_id.

Within a claim the winning row is the first under this ordering:
  1. priority_rank ascending (replacement beats final beats interim/void)
  2. effective end date, max(discharge_date, thru_date) ignoring nulls, descending;
     a row with neither date sorts after every row that has one
  3. original row position ascending
"""
from __future__ import annotations

import logging

import polars as pl

log = logging.getLogger(__name__)

_ROW_IDX = "__row_idx"
_END_DATE = "__effective_end"


def effective_end_date() -> pl.Expr:
    """Later of discharge_date and thru_date; null only when both are null."""
    return pl.max_horizontal(pl.col("discharge_date"), pl.col("thru_date"))


def sort_key() -> tuple[list[str], list[bool]]:
    """Columns and directions of the within-claim ordering (first row wins)."""
    return (
        ["claim_id", "priority_rank", _END_DATE, _ROW_IDX],
        [False, False, True, False],
    )


def deduplicate_claims(df: pl.DataFrame) -> pl.DataFrame:
    n_in = len(df)
    columns = df.columns
    by, descending = sort_key()

    n_unkeyed = df["claim_id"].null_count()
    if n_unkeyed:
        log.info("[dedup] Dropping %s rows with no claim_id", f"{n_unkeyed:,}")
        df = df.filter(pl.col("claim_id").is_not_null())

    winners = (
        df.with_row_index(_ROW_IDX)
        .with_columns(effective_end_date().alias(_END_DATE))
        .sort(by, descending=descending, nulls_last=True)
        .unique(subset=["claim_id"], keep="first", maintain_order=True)
        .sort(_ROW_IDX)
    )
    out = winners.select(columns)

    log.info(
        "[dedup] Collapsed %s rows into %s claims (%s superseded versions dropped)",
        f"{n_in:,}", f"{len(out):,}", f"{n_in - len(out):,}",
    )
    return out

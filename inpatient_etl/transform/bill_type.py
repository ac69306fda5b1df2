"""
Bill-type (type-of-bill) resolution.

The feed carries bill type under one of three names, under two of them at
once, or not at all. Which shape we have is decided once per run from the
column names and captured in a BillTypeStrategy:

  Case A  no candidate column      → every row rank 2, no facility filter
  Case B  one candidate            → derive digits from it
  Case C  two candidates           → derive from the first, warn on disagreement

From the normalized 3-digit code:
  facility_digit  = 1st digit (1 = inpatient hospital)
  frequency_digit = 3rd digit
  priority_rank   = 1 replacement (7), 2 final (1, 4), 3 anything else
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import polars as pl

log = logging.getLogger(__name__)

# Preference order: earlier wins when several are present
BILL_TYPE_CANDIDATES = ("bill_type", "clm_type_cd", "tob")

CASE_NONE = "A"
CASE_SINGLE = "B"
CASE_DUAL = "C"

RANK_REPLACEMENT = 1
RANK_FINAL = 2
RANK_OTHER = 3
DEFAULT_RANK = RANK_FINAL

INPATIENT_FACILITY = 1


@dataclass(frozen=True)
class BillTypeStrategy:
    case: str
    authoritative: Optional[str] = None
    secondary: Optional[str] = None

    @property
    def sources(self) -> tuple[str, ...]:
        return tuple(c for c in (self.authoritative, self.secondary) if c)


def resolve_strategy(columns: Iterable[str]) -> BillTypeStrategy:
    cols = set(columns)
    present = [c for c in BILL_TYPE_CANDIDATES if c in cols]
    if not present:
        return BillTypeStrategy(CASE_NONE)
    if len(present) == 1:
        return BillTypeStrategy(CASE_SINGLE, authoritative=present[0])
    if len(present) > 2:
        log.info("[bill_type] Ignoring extra bill-type column(s): %s", ", ".join(present[2:]))
    return BillTypeStrategy(CASE_DUAL, authoritative=present[0], secondary=present[1])


def normalize_bill_type(expr: pl.Expr) -> pl.Expr:
    """Digits only, leading zeros stripped, left-padded to 3: '0111' → '111', '11' → '011'."""
    digits = expr.cast(pl.Utf8).str.replace_all(r"\D", "")
    return (
        pl.when(digits.is_null() | (digits.str.len_chars() == 0))
        .then(None)
        .otherwise(digits.str.strip_chars_start("0").str.zfill(3))
    )


def priority_rank_expr(freq: pl.Expr) -> pl.Expr:
    return (
        pl.when(freq == 7).then(pl.lit(RANK_REPLACEMENT))
        .when(freq.is_in([1, 4])).then(pl.lit(RANK_FINAL))
        .otherwise(pl.lit(RANK_OTHER))
        .cast(pl.Int8)
    )


def _warn_on_disagreement(df: pl.DataFrame, strategy: BillTypeStrategy) -> int:
    a, b = pl.col(strategy.authoritative), pl.col(strategy.secondary)
    n_disagree, n_one_sided = df.select(
        (a.is_not_null() & b.is_not_null() & (a != b)).sum().alias("disagree"),
        (a.is_null() ^ b.is_null()).sum().alias("one_sided"),
    ).row(0)
    if n_one_sided:
        log.info(
            "[bill_type] %s rows have only one of %s / %s populated",
            f"{n_one_sided:,}", strategy.authoritative, strategy.secondary,
        )
    if n_disagree:
        log.warning(
            "[bill_type] %s and %s disagree on %s rows; using %s",
            strategy.authoritative, strategy.secondary, f"{n_disagree:,}",
            strategy.authoritative,
        )
    return n_disagree


def resolve_bill_type(
    df: pl.DataFrame,
    strategy: Optional[BillTypeStrategy] = None,
) -> pl.DataFrame:
    strategy = strategy or resolve_strategy(df.columns)

    if strategy.case == CASE_NONE:
        log.info("[bill_type] No bill-type column; all rows treated as final inpatient bills")
        return df.with_columns(
            pl.lit(None, dtype=pl.Int8).alias("facility_digit"),
            pl.lit(None, dtype=pl.Int8).alias("frequency_digit"),
            pl.lit(DEFAULT_RANK, dtype=pl.Int8).alias("priority_rank"),
        )

    log.info("[bill_type] Case %s: using %s", strategy.case, " + ".join(strategy.sources))
    df = df.with_columns(
        [normalize_bill_type(pl.col(c)).alias(c) for c in strategy.sources]
    )
    if strategy.case == CASE_DUAL:
        _warn_on_disagreement(df, strategy)

    code = pl.col(strategy.authoritative)
    df = df.with_columns(
        code.str.slice(0, 1).cast(pl.Int8, strict=False).alias("facility_digit"),
        code.str.slice(2, 1).cast(pl.Int8, strict=False).alias("frequency_digit"),
    )
    df = df.with_columns(priority_rank_expr(pl.col("frequency_digit")).alias("priority_rank"))

    n_in = len(df)
    df = df.filter(pl.col("facility_digit") == INPATIENT_FACILITY)
    log.info(
        "[bill_type] Removed %s non-inpatient-facility rows (%s kept)",
        f"{n_in - len(df):,}", f"{len(df):,}",
    )
    return df

"""
SynPUF inpatient claims ingest.

Reads the CMS DE-SynPUF inpatient claims CSV (every column as a string so
leading zeros in codes survive) and normalizes it into the canonical claim
layout used by the rest of the pipeline.

Source columns (2008–2010 sample files):
  DESYNPUF_ID, CLM_ID, SEGMENT, CLM_FROM_DT, CLM_THRU_DT, PRVDR_NUM,
  CLM_PMT_AMT, ..., CLM_ADMSN_DT, ADMTNG_ICD9_DGNS_CD, ..., NCH_BENE_DSCHRG_DT,
  CLM_DRG_CD, ICD9_DGNS_CD_1..10, ICD9_PRCDR_CD_1..6, HCPCS_CD_1..45

Dates are YYYYMMDD; ISO YYYY-MM-DD is also accepted so the pipeline can
re-read its own CSV output.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path

import polars as pl

from inpatient_etl.errors import SchemaError

log = logging.getLogger(__name__)

DATE_FMT = "%Y%m%d"
ISO_DATE_FMT = "%Y-%m-%d"

# Normalized SynPUF name → canonical name
RENAME_MAP = {
    "desynpuf_id":        "beneficiary_id",
    "bene_id":            "beneficiary_id",
    "clm_id":             "claim_id",
    "clm_admsn_dt":       "admit_date",
    "clm_from_dt":        "from_date",
    "clm_thru_dt":        "thru_date",
    "nch_bene_dschrg_dt": "discharge_date",
    "clm_drg_cd":         "drg_code",
}

DATE_COLS = ["admit_date", "from_date", "thru_date", "discharge_date"]
REQUIRED_COLS = ["claim_id", "admit_date", "from_date", "thru_date"]

AMOUNT_COLS = [
    "clm_pmt_amt",
    "nch_prmry_pyr_clm_pd_amt",
    "clm_pass_thru_per_diem_amt",
    "nch_bene_ip_ddctbl_amt",
    "nch_bene_pta_coinsrnc_lblty_am",
    "nch_bene_blood_ddctbl_lblty_am",
    "clm_utlztn_day_cnt",
]

# Identifier/code columns that get whitespace-stripped; blank → null
STRING_COLS = ["claim_id", "beneficiary_id", "drg_code"]

# Canonical optional columns re-added as typed nulls when absent, so the
# output layout does not depend on whether a column happened to be empty
OPTIONAL_COLS = {
    "beneficiary_id": pl.Utf8,
    "discharge_date": pl.Date,
    "drg_code":       pl.Utf8,
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_NON_ALNUM = re.compile(r"[^0-9a-zA-Z]+")


def normalize_column_name(name: str) -> str:
    """'CLM_FROM_DT' → 'clm_from_dt', 'ClaimID' → 'claim_id', ' Bill Type ' → 'bill_type'."""
    name = str(name).replace("\ufeff", "").strip()
    name = _CAMEL_BOUNDARY.sub("_", name)
    name = _NON_ALNUM.sub("_", name)
    return name.strip("_").lower()


def normalize_columns(df: pl.DataFrame) -> pl.DataFrame:
    normalized = [normalize_column_name(c) for c in df.columns]
    seen: dict[str, str] = {}
    for raw, norm in zip(df.columns, normalized):
        if norm in seen:
            raise SchemaError(
                f"Columns {seen[norm]!r} and {raw!r} both normalize to {norm!r}"
            )
        seen[norm] = raw
    df = df.rename(dict(zip(df.columns, normalized)))

    # Only rename where the canonical name is not already taken
    renames: dict[str, str] = {}
    for src, dst in RENAME_MAP.items():
        if src in df.columns and dst not in df.columns and dst not in renames.values():
            renames[src] = dst
    return df.rename(renames)


def _is_missing(col: str, dtype: pl.DataType) -> pl.Expr:
    expr = pl.col(col).is_null()
    if dtype == pl.Utf8:
        expr = expr | (pl.col(col).str.strip_chars() == "")
    return expr


def drop_empty_columns(df: pl.DataFrame) -> pl.DataFrame:
    """Drop every column that is 100% null or blank."""
    if df.is_empty():
        return df
    missing = df.select(
        [_is_missing(c, dt).all().alias(c) for c, dt in df.schema.items()]
    ).row(0, named=True)
    empty = [c for c, all_missing in missing.items() if all_missing]
    if empty:
        log.info("[ingest] Dropping %d all-missing columns: %s", len(empty), ", ".join(empty))
        df = df.drop(empty)
    return df


def _parse_date(col: str) -> pl.Expr:
    """Parse YYYYMMDD (or ISO) string; anything unparseable → null."""
    raw = pl.col(col).cast(pl.Utf8).str.strip_chars()
    return pl.coalesce(
        raw.str.to_date(DATE_FMT, strict=False, exact=True),
        raw.str.to_date(ISO_DATE_FMT, strict=False, exact=True),
    ).alias(col)


def parse_dates(df: pl.DataFrame) -> pl.DataFrame:
    exprs = [
        _parse_date(c)
        for c in DATE_COLS
        if c in df.columns and df.schema[c] != pl.Date
    ]
    if not exprs:
        return df
    before = {c: df[c].null_count() for c in DATE_COLS if c in df.columns}
    df = df.with_columns(exprs)
    for c, n_before in before.items():
        unparsed = df[c].null_count() - n_before
        if unparsed:
            log.info("[ingest] %s: %d unparseable values set to null", c, unparsed)
    return df


def _strip_or_null(col: str) -> pl.Expr:
    s = pl.col(col).cast(pl.Utf8).str.strip_chars()
    return pl.when(s == "").then(None).otherwise(s).alias(col)


def cast_amounts(df: pl.DataFrame) -> pl.DataFrame:
    return df.with_columns(
        [pl.col(c).cast(pl.Float64, strict=False) for c in AMOUNT_COLS if c in df.columns]
    )


def normalize_claims(df: pl.DataFrame) -> pl.DataFrame:
    """Schema Normalizer stage: columns, empty-column drop, dates, amounts. Never drops rows."""
    df = normalize_columns(df)
    df = drop_empty_columns(df)

    missing = [c for c in REQUIRED_COLS if c not in df.columns]
    if missing:
        raise SchemaError(f"Required columns missing after normalization: {missing}")

    absent = [c for c in OPTIONAL_COLS if c not in df.columns]
    if absent:
        log.info("[ingest] No %s column(s); filling with nulls", ", ".join(absent))
        df = df.with_columns([pl.lit(None, dtype=OPTIONAL_COLS[c]).alias(c) for c in absent])

    df = parse_dates(df)
    df = cast_amounts(df)
    df = df.with_columns([_strip_or_null(c) for c in STRING_COLS if c in df.columns])
    return df


def read_claims(path: Path) -> pl.DataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Inpatient claims file not found: {path}")

    df = pl.read_csv(
        path,
        infer_schema_length=0,
        null_values=["", "NA"],
        encoding="utf8-lossy",
    )
    log.info("[ingest] %s: %s rows, %d columns", path.name, f"{len(df):,}", len(df.columns))
    return df

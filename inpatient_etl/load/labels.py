"""
Output layout and labels for the clean inpatient extract.

Value labels and column labels are static lookup tables; annotate() pairs
them with the final frame for the SPSS writer without touching any value.
"""
from __future__ import annotations

import logging
import re
from types import MappingProxyType
from typing import Mapping, NamedTuple

import polars as pl

from inpatient_etl.transform.bill_type import BILL_TYPE_CANDIDATES

log = logging.getLogger(__name__)

FACILITY_LABELS = MappingProxyType({
    1: "Inpatient",
    2: "Outpatient",
    3: "Other",
})

FREQUENCY_LABELS = MappingProxyType({
    1: "Admit-thru-discharge final",
    2: "Interim-first",
    3: "Interim-continuing",
    4: "Interim-last(final)",
    5: "Late charge only",
    7: "Replacement",
    8: "Void/cancel",
})

RANK_LABELS = MappingProxyType({
    1: "Replacement",
    2: "Final",
    3: "Interim/Void",
})

VALUE_LABELS = MappingProxyType({
    "facility_digit":  FACILITY_LABELS,
    "frequency_digit": FREQUENCY_LABELS,
    "priority_rank":   RANK_LABELS,
})

CORE_COLS = [
    "beneficiary_id", "claim_id",
    "admit_date", "from_date", "thru_date", "discharge_date",
    "drg_code",
]
DERIVED_COLS = [
    "facility_digit", "frequency_digit", "priority_rank",
    "length_of_stay", "billing_span",
]
PROTECTED_COLS = frozenset(CORE_COLS) | frozenset(DERIVED_COLS) | frozenset(BILL_TYPE_CANDIDATES)

COLUMN_LABELS = MappingProxyType({
    "beneficiary_id":   "Synthetic beneficiary identifier",
    "claim_id":         "Claim identifier",
    "admit_date":       "Inpatient admission date",
    "from_date":        "Claim statement from date",
    "thru_date":        "Claim statement thru date",
    "discharge_date":   "Beneficiary discharge date",
    "drg_code":         "Diagnosis-related group (DRG) code",
    "bill_type":        "Type of bill (3-digit)",
    "clm_type_cd":      "Claim type code (3-digit)",
    "tob":              "Type of bill (3-digit)",
    "facility_digit":   "Facility type (1st digit of bill type)",
    "frequency_digit":  "Claim frequency (3rd digit of bill type)",
    "priority_rank":    "Claim version priority (1=best)",
    "length_of_stay":   "Length of stay in days",
    "billing_span":     "Days from statement from date to thru date",
    "segment":          "Claim line segment",
    "prvdr_num":        "Provider institution identifier",
    "clm_pmt_amt":      "Claim payment amount",
    "nch_prmry_pyr_clm_pd_amt":       "Primary payer claim paid amount",
    "at_physn_npi":     "Attending physician NPI",
    "op_physn_npi":     "Operating physician NPI",
    "ot_physn_npi":     "Other physician NPI",
    "admtng_icd9_dgns_cd":            "Admitting ICD-9 diagnosis code",
    "clm_pass_thru_per_diem_amt":     "Claim pass-thru per diem amount",
    "nch_bene_ip_ddctbl_amt":         "Inpatient deductible amount",
    "nch_bene_pta_coinsrnc_lblty_am": "Part A coinsurance liability amount",
    "nch_bene_blood_ddctbl_lblty_am": "Blood deductible liability amount",
    "clm_utlztn_day_cnt":             "Claim utilization day count",
})

_CODE_COL_LABELS = [
    (re.compile(r"^icd9_dgns_cd_(\d+)$"), "ICD-9 diagnosis code {}"),
    (re.compile(r"^icd9_prcdr_cd_(\d+)$"), "ICD-9 procedure code {}"),
    (re.compile(r"^hcpcs_cd_(\d+)$"), "HCPCS code {}"),
]


class LabeledFrame(NamedTuple):
    frame: pl.DataFrame
    column_labels: dict[str, str]
    value_labels: dict[str, Mapping[int, str]]


def column_label(col: str) -> str:
    if col in COLUMN_LABELS:
        return COLUMN_LABELS[col]
    for pattern, template in _CODE_COL_LABELS:
        m = pattern.match(col)
        if m:
            return template.format(m.group(1))
    return col


def prune_constant_columns(df: pl.DataFrame) -> pl.DataFrame:
    """Drop unprotected columns holding one value on every row (nulls count as a value)."""
    if len(df) < 2:
        return df
    candidates = [c for c in df.columns if c not in PROTECTED_COLS]
    if not candidates:
        return df
    n_unique = df.select([pl.col(c).n_unique() for c in candidates]).row(0, named=True)
    constant = [c for c, n in n_unique.items() if n == 1]
    if constant:
        log.info("[labels] Dropping %d constant columns: %s", len(constant), ", ".join(constant))
        df = df.drop(constant)
    return df


def order_columns(df: pl.DataFrame) -> pl.DataFrame:
    """Core claim fields, then the remaining source columns as they came, then derived metrics."""
    core = [c for c in CORE_COLS if c in df.columns]
    derived = [c for c in DERIVED_COLS if c in df.columns]
    rest = [c for c in df.columns if c not in core and c not in derived]
    return df.select(core + rest + derived)


def annotate(df: pl.DataFrame) -> LabeledFrame:
    df = order_columns(prune_constant_columns(df))
    return LabeledFrame(
        frame=df,
        column_labels={c: column_label(c) for c in df.columns},
        value_labels={c: VALUE_LABELS[c] for c in VALUE_LABELS if c in df.columns},
    )

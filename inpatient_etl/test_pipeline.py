"""
End-to-end tests: raw SynPUF-layout CSV in, clean CSV + .sav out.

Run:
    pytest inpatient_etl/test_pipeline.py -v
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path

import polars as pl
import pyreadstat
import pytest

from inpatient_etl.errors import DerivationError, StageError
from inpatient_etl.pipeline import run

BASE_ROW = {
    "DESYNPUF_ID": "00013D2EFD8E45D1",
    "CLM_ID": "196661176988405",
    "SEGMENT": "1",
    "CLM_FROM_DT": "20090105",
    "CLM_THRU_DT": "20090110",
    "PRVDR_NUM": "0100AB",
    "CLM_PMT_AMT": "4000.00",
    "CLM_ADMSN_DT": "20090105",
    "NCH_BENE_DSCHRG_DT": "20090110",
    "CLM_DRG_CD": "217",
    "ICD9_DGNS_CD_1": "0389",
    "ICD9_PRCDR_CD_1": "",
    "HCPCS_CD_1": "",
}


def _write_raw(path: Path, rows: list[dict]) -> Path:
    full = [{**BASE_ROW, **r} for r in rows]
    pl.DataFrame(full, schema={k: pl.Utf8 for k in full[0]}).write_csv(path)
    return path


def _read_out(path: Path) -> pl.DataFrame:
    df = pl.read_csv(path, infer_schema_length=0)
    return df.with_columns(
        [pl.col(c).str.to_date("%Y-%m-%d", strict=False)
         for c in ("admit_date", "from_date", "thru_date", "discharge_date") if c in df.columns]
        + [pl.col(c).cast(pl.Int32, strict=False)
           for c in ("priority_rank", "length_of_stay", "billing_span",
                     "facility_digit", "frequency_digit") if c in df.columns]
    )


def _run(tmp_path: Path, rows: list[dict], **kwargs):
    raw = _write_raw(tmp_path / "raw.csv", rows)
    summary = run(raw, tmp_path / "out", **kwargs)
    return summary, _read_out(summary.csv_path)


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------

class TestScenarios:
    def test_a_no_bill_type_column(self, tmp_path):
        summary, out = _run(tmp_path, [{}])
        assert summary.bill_type_case == "A"
        row = out.row(0, named=True)
        assert row["priority_rank"] == 2
        assert row["length_of_stay"] == 5

    def test_b_replacement_wins(self, tmp_path):
        summary, out = _run(tmp_path, [
            {"BILL_TYPE": "111", "CLM_PMT_AMT": "1000.00"},
            {"BILL_TYPE": "117", "CLM_PMT_AMT": "2000.00"},
        ])
        assert summary.rows["bill_type"] == 2
        assert len(out) == 1
        row = out.row(0, named=True)
        assert row["priority_rank"] == 1
        assert row["frequency_digit"] == 7
        assert row["clm_pmt_amt"] == "2000.0"

    def test_c_admit_before_window_dropped(self, tmp_path):
        summary, out = _run(tmp_path, [
            {"CLM_ID": "1", "CLM_ADMSN_DT": "20071231"},
            {"CLM_ID": "2"},
        ])
        assert summary.rows["ingest"] - summary.rows["date_window"] == 1
        assert out["claim_id"].to_list() == ["2"]

    def test_d_late_discharge_nulled(self, tmp_path):
        _, out = _run(tmp_path, [
            {"NCH_BENE_DSCHRG_DT": "20110102", "CLM_THRU_DT": "20090112"},
        ])
        row = out.row(0, named=True)
        assert row["discharge_date"] is None
        assert row["length_of_stay"] == 7

    def test_e_disagreeing_bill_types(self, tmp_path, caplog):
        summary, out = _run(tmp_path, [
            {"CLM_ID": "1", "BILL_TYPE": "117", "TOB": "0111"},
            {"CLM_ID": "2", "BILL_TYPE": "111", "TOB": "111"},
        ])
        assert summary.bill_type_case == "C"
        assert len(out) == 2
        assert out.filter(pl.col("claim_id") == "1")["priority_rank"][0] == 1
        warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
        assert any("bill_type" in m and "tob" in m for m in warnings)


# ---------------------------------------------------------------------------
# Output properties
# ---------------------------------------------------------------------------

def _messy_rows() -> list[dict]:
    return [
        {"CLM_ID": "10", "BILL_TYPE": "112", "CLM_THRU_DT": "20090107", "NCH_BENE_DSCHRG_DT": ""},
        {"CLM_ID": "10", "BILL_TYPE": "111"},
        {"CLM_ID": "10", "BILL_TYPE": "0117", "ICD9_DGNS_CD_1": "4280"},
        {"CLM_ID": "11", "BILL_TYPE": "114", "CLM_ADMSN_DT": "20100301",
         "CLM_FROM_DT": "20100301", "CLM_THRU_DT": "20100315", "NCH_BENE_DSCHRG_DT": "20110101"},
        {"CLM_ID": "12", "BILL_TYPE": "113", "CLM_ADMSN_DT": "20080601",
         "CLM_FROM_DT": "20080610", "CLM_THRU_DT": "20080620", "NCH_BENE_DSCHRG_DT": ""},
        {"CLM_ID": "13", "BILL_TYPE": "131", "CLM_DRG_CD": "0S4"},
        {"CLM_ID": "14", "BILL_TYPE": "211"},
        {"CLM_ID": "15", "BILL_TYPE": "111", "CLM_FROM_DT": "20071215"},
        {"CLM_ID": "16", "BILL_TYPE": "111", "CLM_ADMSN_DT": "2009XX01"},
    ]


class TestOutputProperties:
    def test_invariants(self, tmp_path):
        _, out = _run(tmp_path, _messy_rows())
        assert sorted(out["claim_id"].to_list()) == ["10", "11", "12", "13"]
        assert out["claim_id"].n_unique() == len(out)
        for col in ("admit_date", "from_date", "thru_date"):
            assert out[col].null_count() == 0
            assert out[col].min() >= date(2008, 1, 1)
            assert out[col].max() <= date(2010, 12, 31)
        rank3 = out.filter(pl.col("priority_rank") == 3)
        assert len(rank3) == 1
        assert rank3["length_of_stay"].null_count() == 1
        span = out.select((pl.col("thru_date") - pl.col("from_date")).dt.total_days()).to_series()
        assert out["billing_span"].to_list() == span.to_list()

    def test_claim_10_resolves_to_replacement(self, tmp_path):
        _, out = _run(tmp_path, _messy_rows())
        row = out.filter(pl.col("claim_id") == "10").row(0, named=True)
        assert row["bill_type"] == "117"
        assert row["icd9_dgns_cd_1"] == "4280"

    def test_constant_and_empty_columns_pruned(self, tmp_path):
        _, out = _run(tmp_path, _messy_rows())
        assert "segment" not in out.columns
        assert "hcpcs_cd_1" not in out.columns
        assert "icd9_prcdr_cd_1" not in out.columns

    def test_rerun_on_own_output_is_identical(self, tmp_path):
        first, _ = _run(tmp_path, _messy_rows())
        second = run(first.csv_path, tmp_path / "rerun")
        a = pl.read_csv(first.csv_path, infer_schema_length=0)
        b = pl.read_csv(second.csv_path, infer_schema_length=0)
        assert a.columns == b.columns
        assert a.equals(b)

    def test_rerun_keeps_all_blank_drg_column(self, tmp_path):
        rows = [
            {"CLM_ID": "1", "CLM_DRG_CD": "217", "CLM_ADMSN_DT": "20071231"},
            {"CLM_ID": "2", "CLM_DRG_CD": ""},
            {"CLM_ID": "3", "CLM_DRG_CD": ""},
        ]
        first, out = _run(tmp_path, rows)
        assert out["drg_code"].null_count() == 2
        second = run(first.csv_path, tmp_path / "rerun")
        a = pl.read_csv(first.csv_path, infer_schema_length=0)
        b = pl.read_csv(second.csv_path, infer_schema_length=0)
        assert a.columns == b.columns
        assert a.equals(b)

    def test_blank_claim_ids_dropped(self, tmp_path):
        _, out = _run(tmp_path, [{"CLM_ID": "5"}, {"CLM_ID": "  "}, {"CLM_ID": " "}])
        assert out["claim_id"].to_list() == ["5"]

    def test_sav_matches_csv(self, tmp_path):
        summary, out = _run(tmp_path, _messy_rows())
        sav, meta = pyreadstat.read_sav(str(summary.sav_path))
        assert list(sav.columns) == out.columns
        assert len(sav) == len(out)
        assert meta.variable_value_labels["facility_digit"][1] == "Inpatient"


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestFailures:
    def test_missing_input_is_stage_error(self, tmp_path):
        with pytest.raises(StageError) as exc:
            run(tmp_path / "missing.csv", tmp_path / "out")
        assert exc.value.stage == "read"
        assert isinstance(exc.value.__cause__, FileNotFoundError)

    def test_missing_required_column_names_stage(self, tmp_path):
        raw = tmp_path / "raw.csv"
        pl.DataFrame({"CLM_ID": ["1"], "CLM_FROM_DT": ["20090101"]}).write_csv(raw)
        with pytest.raises(StageError, match=r"\[ingest\] failed on 1 rows"):
            run(raw, tmp_path / "out")

    def test_strict_negative_span_aborts(self, tmp_path):
        rows = [{"CLM_FROM_DT": "20090120"}]
        with pytest.raises(StageError) as exc:
            _run(tmp_path, rows, strict=True)
        assert exc.value.stage == "stay_metrics"
        assert exc.value.rows == 1
        assert isinstance(exc.value.__cause__, DerivationError)

    def test_negative_span_warns_by_default(self, tmp_path, caplog):
        _, out = _run(tmp_path, [{"CLM_FROM_DT": "20090120"}], strict=False)
        assert out["billing_span"].to_list() == [-10]
        assert any("negative billing_span" in r.getMessage() for r in caplog.records)

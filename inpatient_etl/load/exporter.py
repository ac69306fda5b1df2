"""
Exporter: writes the labeled extract as CSV and as an SPSS .sav file.

Writes:  <out_dir>/<stem>.csv   UTF-8, comma-separated, ISO dates
         <out_dir>/<stem>.sav   same rows, column labels + value labels
"""
from __future__ import annotations

import logging
from pathlib import Path

import polars as pl
import pyreadstat

from inpatient_etl.load.labels import LabeledFrame

log = logging.getLogger(__name__)

DEFAULT_STEM = "inpatient_claims_clean"
FILE_LABEL = "SynPUF inpatient claims, de-duplicated 2008-2010 extract"


def write_csv(labeled: LabeledFrame, path: Path) -> Path:
    labeled.frame.write_csv(path)
    log.info("[export] → %s  (%s rows)", path, f"{len(labeled.frame):,}")
    return path


def _to_sav_frame(df: pl.DataFrame):
    # SPSS has no plain-date type on the writer side; dates go out as datetimes
    df = df.with_columns(
        [pl.col(c).cast(pl.Datetime("ns")) for c, dt in df.schema.items() if dt == pl.Date]
    )
    return df.to_pandas()


def write_sav(labeled: LabeledFrame, path: Path) -> Path:
    df = labeled.frame
    pyreadstat.write_sav(
        _to_sav_frame(df),
        str(path),
        file_label=FILE_LABEL,
        column_labels=[labeled.column_labels.get(c, c) for c in df.columns],
        variable_value_labels={c: dict(v) for c, v in labeled.value_labels.items()},
    )
    log.info("[export] → %s  (%s rows, %d value-labelled columns)",
             path, f"{len(df):,}", len(labeled.value_labels))
    return path


def export(labeled: LabeledFrame, out_dir: Path, stem: str = DEFAULT_STEM) -> tuple[Path, Path]:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    csv_path = write_csv(labeled, out_dir / f"{stem}.csv")
    sav_path = write_sav(labeled, out_dir / f"{stem}.sav")
    return csv_path, sav_path

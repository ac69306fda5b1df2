"""
Write a small, deliberately messy SynPUF-layout inpatient claims CSV for
smoke runs of the pipeline.

What goes in:
  - several claims with 2–3 competing versions (interim, final, replacement)
  - admission dates just outside 2008–2010
  - discharge dates past the window
  - a few non-inpatient bill types and some voids
  - blank HCPCS columns (dropped by ingest)

Usage
-----
  python scripts/make_sample_claims.py
  python scripts/make_sample_claims.py --out data/raw/synpuf/sample.csv --claims 500 --seed 7
"""
import argparse
import os
from datetime import date, timedelta
from pathlib import Path

import numpy as np
import polars as pl
from dotenv import load_dotenv

_REPO_ROOT = Path(__file__).resolve().parents[1]

load_dotenv()

_raw = os.environ.get("DATA_RAW", str(_REPO_ROOT / "data" / "raw"))
RAW = Path(_raw) if Path(_raw).is_absolute() else _REPO_ROOT / _raw
DEFAULT_OUT = RAW / "synpuf" / "DE1_0_2008_to_2010_Inpatient_Claims_Sample_1.csv"

DRG_POOL = ["291", "775", "470", "392", "194", "690", "0S4"]
DX_POOL = ["4280", "42731", "486", "5990", "V5789", "25000", "41401"]
PX_POOL = ["3893", "9904", "8154", "3722"]
N_HCPCS = 45

P_EXTRA_VERSION = 0.35
P_REPLACEMENT = 0.30
P_OUT_OF_WINDOW_ADMIT = 0.03
P_LATE_DISCHARGE = 0.03
P_NON_INPATIENT = 0.04
P_VOID = 0.02


def _yyyymmdd(d: date) -> str:
    return d.strftime("%Y%m%d")


def make_claims(n_claims: int, seed: int) -> pl.DataFrame:
    rng = np.random.default_rng(seed)
    rows: list[dict] = []

    for i in range(1, n_claims + 1):
        bene = f"{int(rng.integers(0, 2**62)):016X}"
        clm_id = f"{196661176988405 + i}"

        if rng.random() < P_OUT_OF_WINDOW_ADMIT:
            admit = date(2007, 12, int(rng.integers(20, 32)))
        else:
            admit = date(2008, 1, 1) + timedelta(days=int(rng.integers(0, 1080)))
        los = int(rng.integers(1, 15))
        discharge = admit + timedelta(days=los)
        if rng.random() < P_LATE_DISCHARGE:
            discharge = date(2011, 1, int(rng.integers(1, 20)))

        bill_type = "111"
        if rng.random() < P_NON_INPATIENT:
            bill_type = str(rng.choice(["211", "321", "831"]))
        elif rng.random() < P_VOID:
            bill_type = "118"

        base = {
            "DESYNPUF_ID": bene,
            "CLM_ID": clm_id,
            "SEGMENT": "1",
            "CLM_FROM_DT": _yyyymmdd(admit),
            "CLM_THRU_DT": _yyyymmdd(min(discharge, date(2010, 12, 31))),
            "PRVDR_NUM": f"{rng.integers(10000, 999999):06d}",
            "CLM_PMT_AMT": f"{rng.integers(1, 60) * 1000}.00",
            "CLM_ADMSN_DT": _yyyymmdd(admit),
            "NCH_BENE_DSCHRG_DT": _yyyymmdd(discharge),
            "CLM_DRG_CD": str(rng.choice(DRG_POOL)),
            "CLM_UTLZTN_DAY_CNT": str(los),
            "BILL_TYPE": bill_type,
        }
        for k in range(1, 11):
            base[f"ICD9_DGNS_CD_{k}"] = str(rng.choice(DX_POOL)) if k <= 4 else ""
        for k in range(1, 7):
            base[f"ICD9_PRCDR_CD_{k}"] = str(rng.choice(PX_POOL)) if k == 1 else ""
        for k in range(1, N_HCPCS + 1):
            base[f"HCPCS_CD_{k}"] = ""
        rows.append(base)

        if bill_type != "111" or rng.random() >= P_EXTRA_VERSION:
            continue

        # Interim version covering the first part of the stay
        mid = admit + timedelta(days=max(1, los // 2))
        rows.append({**base, "BILL_TYPE": "112", "CLM_THRU_DT": _yyyymmdd(mid),
                     "NCH_BENE_DSCHRG_DT": ""})
        if rng.random() < P_REPLACEMENT:
            rows.append({**base, "BILL_TYPE": "0117"})

    df = pl.DataFrame(rows)
    return df.sample(fraction=1.0, shuffle=True, seed=seed)


def main() -> None:
    parser = argparse.ArgumentParser(description="Write a messy synthetic SynPUF inpatient CSV.")
    parser.add_argument("--out", type=Path, default=DEFAULT_OUT)
    parser.add_argument("--claims", type=int, default=200)
    parser.add_argument("--seed", type=int, default=7)
    args = parser.parse_args()

    df = make_claims(args.claims, args.seed)
    args.out.parent.mkdir(parents=True, exist_ok=True)
    df.write_csv(args.out)
    print(f"[sample] → {args.out}  ({len(df):,} rows, {df['CLM_ID'].n_unique():,} claims)")


if __name__ == "__main__":
    main()

"""
手作業で補正した住所レコード（パッチ）を読み込む。
- patches/ 配下の *.csv（列は出力テーブルと同じ）を都道府県コードごとにまとめる
- 読み込んだレコードは大字・町丁目レベルの集約前に登録され、計算結果より優先される
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict

import pandas as pd

from gazetteer_logic.core import OUTPUT_COLUMNS, PATCH_DIR, AddressRecord, RecordKey, SourceDataError

logger = logging.getLogger(__name__)

PatchData = Dict[str, Dict[RecordKey, AddressRecord]]


def load_patches(patch_dir: str = PATCH_DIR) -> PatchData:
    base = Path(patch_dir)
    patches: PatchData = {}
    if not base.is_dir():
        return patches
    for path in sorted(base.glob("*.csv")):
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
        missing = [c for c in OUTPUT_COLUMNS if c not in df.columns]
        if missing:
            raise SourceDataError(f"{path}: missing columns {missing}")
        for row in df.to_dict("records"):
            record = AddressRecord.from_row(row)
            record.pref_code = record.pref_code.zfill(2)
            patches.setdefault(record.pref_code, {})[record.key()] = record
        logger.info("patch loaded: %s (%d rows)", path.name, len(df))
    return patches

"""
国土交通省の位置参照情報（大字・町丁目レベル / 街区レベル）を取得・展開するスクリプト。
仕様:
- 取得元: https://nlftp.mlit.go.jp/isj/dls/data/{version}/{都道府県コード}000-{version}.zip
- 大字・町丁目レベルは 13.0b、街区レベルは 18.0a を利用
- ZIP内の最初のCSVを Shift_JIS からUTF-8に変換して data/nlftp_mlit_{130b|180a}_{都道府県コード}.csv に保存
  * 書き込みは .tmp に行い、完了後にリネーム（途中で落ちても壊れたCSVを残さない）
  * CSVが含まれないZIPはエラー
- 読み込み時は "NULL" を欠損値にしないよう keep_default_na=False とする
"""
from __future__ import annotations

import io
import logging
import os
import shutil
from pathlib import Path
from typing import Dict, List

import pandas as pd

from gazetteer_logic.core import (
    DATA_DIR,
    ISJ_GAIKU_VERSION,
    ISJ_OAZA_VERSION,
    ISJ_URL_TEMPLATE,
    SourceDataError,
)
from source_logic.postal_dict_build import download_zip, open_zip

logger = logging.getLogger(__name__)

OAZA_REQUIRED_COLUMNS = ["都道府県名", "市区町村コード", "市区町村名", "大字町丁目名", "緯度", "経度"]
GAIKU_REQUIRED_COLUMNS = [
    "都道府県名",
    "市区町村名",
    "大字・丁目名",
    "小字・通称名",
    "街区符号・地番",
    "緯度",
    "経度",
    "住居表示フラグ",
]


def isj_csv_path(pref_code: str, version: str, data_dir: str = DATA_DIR) -> Path:
    tag = version.replace(".", "")
    return Path(data_dir) / f"nlftp_mlit_{tag}_{pref_code}.csv"


def extract_first_csv(raw: bytes, out_path: Path, encoding: str = "cp932") -> Path:
    with open_zip(raw) as zf:
        names = [n for n in zf.namelist() if not n.endswith("/") and n.lower().endswith(".csv")]
        if not names:
            raise SourceDataError("no CSV file detected in archive file")
        out_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = out_path.with_name(out_path.name + ".tmp")
        with zf.open(names[0]) as src, open(tmp_path, "w", encoding="utf-8", newline="") as dst:
            shutil.copyfileobj(io.TextIOWrapper(src, encoding=encoding, newline=""), dst)
        os.replace(tmp_path, out_path)
    return out_path


def download_isj(pref_code: str, version: str, data_dir: str = DATA_DIR) -> Path:
    out_path = isj_csv_path(pref_code, version, data_dir)
    if out_path.exists():
        return out_path
    url = ISJ_URL_TEMPLATE.format(version=version, pref_code=pref_code)
    logger.info("%s: downloading %s", pref_code, url)
    return extract_first_csv(download_zip(url), out_path)


def download_oaza(pref_code: str, data_dir: str = DATA_DIR) -> Path:
    return download_isj(pref_code, ISJ_OAZA_VERSION, data_dir)


def download_gaiku(pref_code: str, data_dir: str = DATA_DIR) -> Path:
    return download_isj(pref_code, ISJ_GAIKU_VERSION, data_dir)


def read_isj_rows(path: Path, required: List[str]) -> List[Dict[str, str]]:
    if not Path(path).exists():
        raise SourceDataError(f"source file not found: {path}")
    df = pd.read_csv(path, dtype=str, encoding="utf-8", keep_default_na=False, skip_blank_lines=True)
    df.columns = [c.strip() for c in df.columns]
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise SourceDataError(f"{path}: missing columns {missing}")
    return df.to_dict("records")


def read_oaza_rows(pref_code: str, data_dir: str = DATA_DIR) -> List[Dict[str, str]]:
    return read_isj_rows(isj_csv_path(pref_code, ISJ_OAZA_VERSION, data_dir), OAZA_REQUIRED_COLUMNS)


def read_gaiku_rows(pref_code: str, data_dir: str = DATA_DIR) -> List[Dict[str, str]]:
    return read_isj_rows(isj_csv_path(pref_code, ISJ_GAIKU_VERSION, data_dir), GAIKU_REQUIRED_COLUMNS)

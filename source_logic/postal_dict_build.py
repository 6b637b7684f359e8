"""
日本郵政の郵便番号データ（読み仮名データ・ローマ字データ）を取得し、辞書エントリに変換する。
- 取得元:
    https://www.post.japanpost.jp/zipcode/dl/kogaki/zip/ken_all.zip
    https://www.post.japanpost.jp/zipcode/dl/roman/KEN_ALL_ROME.zip
- ダウンロードしたZIPはデータディレクトリに保存し、次回以降は再利用する
- 市区町村名・町域名の空白を除去し、「以下に掲載がない場合」は町域なしとして扱う
"""
from __future__ import annotations

import io
import logging
import os
import zipfile
from pathlib import Path
from typing import List, Optional

import pandas as pd
import requests

from gazetteer_logic.core import (
    DATA_DIR,
    NO_TOWN_SENTINEL,
    POSTAL_KANA_URL,
    POSTAL_ROME_URL,
    PostalEntry,
    SourceDataError,
    normalize_whitespace,
)

logger = logging.getLogger(__name__)

# フォーマットは日本郵政配布のレイアウトに依存するため、列位置で扱う
KANA_COLUMNS = [
    "全国地方公共団体コード",
    "（旧）郵便番号",
    "郵便番号",
    "都道府県名カナ",
    "市区町村名カナ",
    "町域名カナ",
    "都道府県名",
    "市区町村名",
    "町域名",
    "hasMulti",
    "hasBanchiOnAza",
    "hasChomome",
    "hasAlias",
    "update",
    "updateReason",
]

ROME_COLUMNS = [
    "郵便番号",
    "都道府県名",
    "市区町村名",
    "町域名",
    "都道府県名ローマ字",
    "市区町村名ローマ字",
    "町域名ローマ字",
]


def download_zip(url: str) -> bytes:
    resp = requests.get(url, timeout=30)
    resp.raise_for_status()
    return resp.content


def open_zip(raw: bytes) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(io.BytesIO(raw))
    except zipfile.BadZipFile as e:
        raise SourceDataError(f"broken zip archive: {e}") from e


def read_first_csv_from_zip(raw: bytes, encoding: str = "cp932", columns: Optional[List[str]] = None) -> pd.DataFrame:
    with open_zip(raw) as zf:
        names = [n for n in zf.namelist() if not n.endswith("/")]
        if not names:
            raise ValueError("zip has no entries")
        with zf.open(names[0]) as f:
            df = pd.read_csv(f, dtype=str, encoding=encoding, header=None, keep_default_na=False)
    if columns is not None:
        if df.shape[1] < len(columns):
            raise ValueError(f"CSV column count unexpected: {df.shape[1]} < {len(columns)}")
        df = df.iloc[:, : len(columns)]
        df.columns = columns
    return df


def fetch_zip(url: str, data_dir: str = DATA_DIR) -> bytes:
    path = Path(data_dir) / url.rsplit("/", 1)[-1]
    if path.exists():
        return path.read_bytes()
    logger.info("downloading %s", url)
    raw = download_zip(url)
    path.parent.mkdir(parents=True, exist_ok=True)
    # 途中で落ちても壊れたZIPを次回に再利用しないよう .tmp に書いてからリネーム
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_bytes(raw)
    os.replace(tmp_path, path)
    return raw


def clean_town_name(val: Optional[str]) -> str:
    """
    町域名の補正:
    - 空白を除去
    - 「以下に掲載がない場合」なら空（町域なし）扱い
    """
    s = normalize_whitespace(val)
    if NO_TOWN_SENTINEL in s:
        return ""
    return s


def build_kana_entries(df: pd.DataFrame) -> List[PostalEntry]:
    df = df.copy()
    df["市区町村名"] = df["市区町村名"].map(normalize_whitespace)
    no_town = df["町域名"].str.contains(NO_TOWN_SENTINEL, regex=False)
    df["町域名"] = df["町域名"].map(clean_town_name)
    df.loc[no_town, "町域名カナ"] = ""
    return [
        PostalEntry(
            kind="kana",
            postal_code=row["郵便番号"],
            prefecture=row["都道府県名"],
            city=row["市区町村名"],
            town=row["町域名"],
            prefecture_reading=row["都道府県名カナ"],
            city_reading=row["市区町村名カナ"],
            town_reading=row["町域名カナ"],
            local_gov_code=row["全国地方公共団体コード"],
        )
        for row in df.to_dict("records")
    ]


def build_rome_entries(df: pd.DataFrame) -> List[PostalEntry]:
    df = df.copy()
    df["市区町村名"] = df["市区町村名"].map(normalize_whitespace)
    no_town = df["町域名"].str.contains(NO_TOWN_SENTINEL, regex=False)
    df["町域名"] = df["町域名"].map(clean_town_name)
    df.loc[no_town, "町域名ローマ字"] = ""
    return [
        PostalEntry(
            kind="rome",
            postal_code=row["郵便番号"],
            prefecture=row["都道府県名"],
            city=row["市区町村名"],
            town=row["町域名"],
            prefecture_reading=row["都道府県名ローマ字"],
            city_reading=row["市区町村名ローマ字"],
            town_reading=normalize_whitespace(row["町域名ローマ字"]),
        )
        for row in df.to_dict("records")
    ]


def load_postal_kana(data_dir: str = DATA_DIR) -> List[PostalEntry]:
    df = read_first_csv_from_zip(fetch_zip(POSTAL_KANA_URL, data_dir), columns=KANA_COLUMNS)
    return build_kana_entries(df)


def load_postal_rome(data_dir: str = DATA_DIR) -> List[PostalEntry]:
    df = read_first_csv_from_zip(fetch_zip(POSTAL_ROME_URL, data_dir), columns=ROME_COLUMNS)
    return build_rome_entries(df)

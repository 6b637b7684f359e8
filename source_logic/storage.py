"""
出力処理
- SQLite の addresses テーブル（毎回作り直し）へ都道府県順に書き込む
- テーブルを並び替えて CSV / Excel に書き出す
- 街区ポイントは都道府県ごとに CSV へ追記する
"""
from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Iterable

import pandas as pd

from gazetteer_logic.core import GAIKU_OUTPUT_COLUMNS, OUTPUT_COLUMNS, AddressRecord, GaikuPoint

ADDRESSES_DDL = (
    "create table addresses("
    "都道府県コード text, 郵便番号 text, 都道府県名 text, 都道府県名カナ text, 都道府県名ローマ字 text, "
    "市区町村コード text, 市区町村名 text, 市区町村名カナ text, 市区町村名ローマ字 text, "
    "大字町丁目名 text, 大字町丁目名カナ text, 大字町丁目名ローマ字 text, 小字・通称名 text, "
    "緯度 real, 経度 real)"
)
SORT_COLUMNS = ["都道府県コード", "市区町村コード", "大字町丁目名", "小字・通称名"]


def init_db(db_path) -> sqlite3.Connection:
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.execute("drop table if exists addresses")
    conn.execute(ADDRESSES_DDL)
    conn.commit()
    return conn


def write_records(conn: sqlite3.Connection, records: Iterable[AddressRecord]) -> int:
    df = pd.DataFrame([r.to_row() for r in records], columns=OUTPUT_COLUMNS)
    if df.empty:
        return 0
    df.to_sql("addresses", conn, if_exists="append", index=False)
    conn.commit()
    return len(df)


def read_sorted_addresses(conn: sqlite3.Connection) -> pd.DataFrame:
    df = pd.read_sql_query("select * from addresses", conn, dtype={"都道府県コード": str, "市区町村コード": str, "郵便番号": str})
    # 欠損は末尾
    return df.sort_values(SORT_COLUMNS, kind="stable", na_position="last").reset_index(drop=True)


def export_addresses(df: pd.DataFrame, out_path) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    if out_path.suffix.lower() == ".xlsx":
        with pd.ExcelWriter(out_path, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name="addresses", index=False)
    else:
        df.to_csv(out_path, index=False, encoding="utf-8")
    return out_path


def start_gaiku_csv(out_path) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(columns=GAIKU_OUTPUT_COLUMNS).to_csv(out_path, index=False, encoding="utf-8")
    return out_path


def append_gaiku_points(out_path, points: Iterable[GaikuPoint]) -> int:
    df = pd.DataFrame([p.to_row() for p in points], columns=GAIKU_OUTPUT_COLUMNS)
    if df.empty:
        return 0
    df.to_csv(out_path, mode="a", header=False, index=False, encoding="utf-8")
    return len(df)

# -*- coding: utf-8 -*-
"""
都道府県単位の集約処理
- 大字・町丁目レベル（Oaza）: 1キーにつき最初の行を採用してレコード化
- 街区レベル（Gaiku）: 座標をキーごとに集め、代表点を決めて未登録キーだけを追加
- 状態は PrefectureContext に閉じ込め、都道府県ごとに破棄する
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np

from .core import (
    AddressRecord,
    GaikuPoint,
    InvalidStateError,
    NULL_SENTINEL,
    PostalEntry,
    RecordKey,
    build_key,
    han_to_zen_kana,
    normalize_whitespace,
    rename_city,
    town_reading,
)
from .postal_index import PostalDictionaryIndex

logger = logging.getLogger(__name__)

# 代表点探索で同距離とみなす許容差（度）
TIE_EPSILON = 1e-12

# PrefectureContext の状態
SEEDED = "seeded"
OAZA_DONE = "oaza_done"
SAMPLING_COMPLETE = "sampling_complete"
RECORDS_RESOLVED = "records_resolved"


class CoordinateAggregator:
    """レコードキーごとに (経度, 緯度) を蓄積し、代表点を1つ選ぶ。"""

    def __init__(self):
        self.samples: Dict[RecordKey, List[Tuple[float, float]]] = {}
        self.sampling_complete = False

    def add_sample(self, key: RecordKey, lon: float, lat: float) -> None:
        if self.sampling_complete:
            raise InvalidStateError(f"sampling already closed: {key}")
        # 重複点も残す（密集している側に代表点が寄る）
        self.samples.setdefault(key, []).append((lon, lat))

    def close_sampling(self) -> None:
        self.sampling_complete = True

    def resolve_center(self, key: RecordKey) -> Tuple[float, float]:
        """
        全サンプルを囲む最小の長方形（bounding box）の中心に最も近いサンプルを返す。
        等距離の場合は先に追加されたサンプルを採用する。
        """
        if not self.sampling_complete:
            raise InvalidStateError(f"sampling not complete: {key}")
        points = self.samples.get(key)
        if not points:
            raise InvalidStateError(f"no coordinate samples for {key}")
        arr = np.asarray(points, dtype=float)
        center = (arr.min(axis=0) + arr.max(axis=0)) / 2.0
        dist = np.hypot(arr[:, 0] - center[0], arr[:, 1] - center[1])
        idx = int(np.flatnonzero(dist <= dist.min() + TIE_EPSILON)[0])
        return points[idx]


@dataclass
class PrefectureContext:
    pref_code: str
    pref_name: str
    kana_index: PostalDictionaryIndex
    rome_index: PostalDictionaryIndex
    records: Dict[RecordKey, AddressRecord] = field(default_factory=dict)
    coords: CoordinateAggregator = field(default_factory=CoordinateAggregator)
    gaiku_points: List[GaikuPoint] = field(default_factory=list)
    state: str = SEEDED

    @classmethod
    def create(
        cls,
        pref_code: str,
        pref_name: str,
        kana_entries: Iterable[PostalEntry],
        rome_entries: Iterable[PostalEntry],
        patches: Optional[Mapping[RecordKey, AddressRecord]] = None,
    ) -> "PrefectureContext":
        # 辞書は当該都道府県の行だけに絞る
        ctx = cls(
            pref_code=pref_code,
            pref_name=pref_name,
            kana_index=PostalDictionaryIndex((e for e in kana_entries if e.prefecture == pref_name)),
            rome_index=PostalDictionaryIndex((e for e in rome_entries if e.prefecture == pref_name)),
        )
        # パッチは計算結果より優先されるよう先に登録
        if patches:
            ctx.records.update(patches)
        return ctx

    def advance(self, expected: str, new_state: str) -> None:
        if self.state != expected:
            raise InvalidStateError(
                f"{self.pref_code}: expected state {expected}, got {self.state} (-> {new_state})"
            )
        self.state = new_state

    def build_record(
        self,
        prefecture: str,
        city: str,
        town: str,
        koaza: str,
        city_code: Optional[str],
        lat: float,
        lon: float,
    ) -> AddressRecord:
        kana = self.kana_index.lookup(prefecture, city, town)
        rome = self.rome_index.lookup(prefecture, city, town)
        if city_code is None:
            city_code = kana.local_gov_code if kana else ""
        return AddressRecord(
            pref_code=self.pref_code,
            postal_code=kana.postal_code if kana else "",
            prefecture=prefecture,
            prefecture_kana=han_to_zen_kana(kana.prefecture_reading) if kana else "",
            prefecture_rome=rome.prefecture_reading if rome else "",
            city_code=city_code,
            city=city,
            city_kana=han_to_zen_kana(kana.city_reading) if kana else "",
            city_rome=rome.city_reading if rome else "",
            town=town,
            town_kana=town_reading(kana.town_reading, town, kana=True) if kana else "",
            town_rome=town_reading(rome.town_reading, town) if rome else "",
            koaza=koaza,
            lat=lat,
            lon=lon,
        )


def aggregate_oaza(ctx: PrefectureContext, rows: Iterable[Mapping[str, str]], progress=None) -> Dict[RecordKey, AddressRecord]:
    # 位置参照情報(大字・町丁目レベル)から住所レコードを作る
    rows = list(rows)
    total = len(rows)
    for i, line in enumerate(rows, start=1):
        prefecture = line["都道府県名"]
        city = rename_city(prefecture, line["市区町村名"])
        town = normalize_whitespace(line["大字町丁目名"])
        key = build_key(prefecture, city, town)
        if progress:
            progress(i, total)
        # 先に登録されたもの（パッチ含む）を優先
        if key in ctx.records:
            continue
        ctx.records[key] = ctx.build_record(
            prefecture, city, town, "",
            city_code=line["市区町村コード"],
            lat=float(line["緯度"]),
            lon=float(line["経度"]),
        )
    ctx.advance(SEEDED, OAZA_DONE)
    logger.info("%s: 大字・町丁目レベル %d件", ctx.pref_code, len(ctx.records))
    return ctx.records


def _gaiku_key(line: Mapping[str, str]) -> Tuple[RecordKey, str, str, str]:
    prefecture = line["都道府県名"]
    city = rename_city(prefecture, line["市区町村名"])
    # 重複チェックのキーには「大字」「字」を含めない
    town = normalize_whitespace(line["大字・丁目名"])
    koaza = "" if line["小字・通称名"] == NULL_SENTINEL else line["小字・通称名"]
    # レコードには元の小字名を残し、キーだけ空白を除く
    return build_key(prefecture, city, town, normalize_whitespace(koaza)), city, town, koaza


def aggregate_gaiku(ctx: PrefectureContext, rows: Iterable[Mapping[str, str]], progress=None) -> Tuple[Dict[RecordKey, AddressRecord], List[GaikuPoint]]:
    # 位置参照情報(街区レベル)から座標を集約し、未登録キーのレコードを補う
    rows = list(rows)
    total = len(rows)

    # 1周目: 緯度・経度をいったん全部集める。住居表示の街区は別途書き出す
    for line in rows:
        key, city, _, _ = _gaiku_key(line)
        lon = float(line["経度"])
        lat = float(line["緯度"])
        ctx.coords.add_sample(key, lon, lat)
        if line["住居表示フラグ"] == "1":
            ctx.gaiku_points.append(
                GaikuPoint(line["都道府県名"], city, line["大字・丁目名"], line["街区符号・地番"], lon, lat)
            )
    ctx.coords.close_sampling()
    ctx.advance(OAZA_DONE, SAMPLING_COMPLETE)

    # 2周目: 代表点を決めてレコード化
    for i, line in enumerate(rows, start=1):
        key, city, town, koaza = _gaiku_key(line)
        if progress:
            progress(i, total)
        if key in ctx.records:
            continue
        lon, lat = ctx.coords.resolve_center(key)
        ctx.records[key] = ctx.build_record(
            line["都道府県名"], city, town, koaza,
            city_code=None,
            lat=lat,
            lon=lon,
        )
    ctx.advance(SAMPLING_COMPLETE, RECORDS_RESOLVED)
    logger.info("%s: 大字・町丁目レベル %d件", ctx.pref_code, len(ctx.records))
    logger.info("%s: 街区レベル %d件", ctx.pref_code, len(ctx.gaiku_points))
    return ctx.records, ctx.gaiku_points

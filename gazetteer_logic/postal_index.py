# -*- coding: utf-8 -*-
"""
郵便番号辞書インデックス
- 都道府県で絞り込んだ辞書エントリを市区町村名ごとにまとめる
- 町域名は「完全一致 → 丁目を除いて一致 → 町域なしエントリ」の順で探す
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .core import PostalEntry, strip_chome_suffix, strip_parenthetical_suffix


class PostalDictionaryIndex:
    def __init__(self, entries: Iterable[PostalEntry]):
        self.by_city: Dict[str, List[PostalEntry]] = {}
        for entry in entries:
            self.by_city.setdefault(entry.city, []).append(entry)

    def __len__(self) -> int:
        return sum(len(v) for v in self.by_city.values())

    def lookup(self, prefecture: str, city: str, town: str) -> Optional[PostalEntry]:
        # 同じ精度で複数ヒットした場合は先頭を採用する
        candidates = [e for e in self.by_city.get(city, []) if e.prefecture == prefecture]
        if not candidates:
            return None

        for entry in candidates:
            if entry.town and strip_parenthetical_suffix(entry.town) == town:
                return entry

        town_base = strip_chome_suffix(town)
        if town_base and town_base != town:
            for entry in candidates:
                if entry.town and strip_parenthetical_suffix(entry.town) == town_base:
                    return entry

        for entry in candidates:
            if not entry.town:
                return entry
        return None


# -*- coding: utf-8 -*-
"""
郵便番号の補完
- 郵便番号が数字でないレコードについて、町域名ローマ字を補正してローマ字辞書から探す
- 候補1件ならそれを、2件なら後者を採用。それ以外は空のまま残し、要確認としてログ出力
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from .core import AddressRecord, PostalEntry

logger = logging.getLogger(__name__)

POSTAL_CODE_REGEX = re.compile(r"^[0-9]+$")
TRAILING_DIGITS_REGEX = re.compile(r"[0-9]+$")

# 位置参照情報側と郵便番号辞書側のローマ字表記の差異（上から順に、最初の出現のみ置換）
ROME_CORRECTIONS: List[Tuple[str, str]] = [
    ("SHINMAEDA", "SHIMMAEDA"),
    ("IYAMAMINAMI", "IIYAMAMINAMI"),
    ("OGISHINMACHIDORI", "OGISHIMMACHIDORI"),
    ("AZANASHINOKI", "NASHINOKI"),
    ("KAMITOBASANOMOTOCHO", "KAMITOBAASANOMOTOCHO"),
    ("SANMAIBASHI", "SAMMAIBASHI"),
    ("TATEOKASHINMACHI", "TATEOKASHIMMACHI"),
    ("HACCHODAI", "HATCHODAI"),
    ("KANAIWAKAMIECHIZENMACHI", "KANAIWAKAMIECHIZEMMACHI"),
    ("KAMITOBAMINAMIWANOMOTOCHO", "KAMITOBAMINAMIIWANOMOTOCHO"),
    ("SHIZUKINIHAMA", "SHIZUKINIIHAMA"),
    ("TONDASHINMACHI", "TONDASHIMMACHI"),
    ("TATEOKASHIMINAMIWANOMOTOCHO", "TATEOKASHIMINAMIIWANOMOTOCHO"),
    ("SENBADORI", "SEMBADORI"),
    ("SHINMATSUYAMA", "SHIMMATSUYAMA"),
    ("SHINMATSUYAMAMINAMI", "SHIMMATSUYAMAMINAMI"),
    ("UCHIHASHINISHI", "UCHIHASHINISHI(SONOTA)"),
    ("JONANMINAMI", "JONAMMINAMI"),
    ("'", ""),
]


@dataclass
class BackfillResult:
    filled: int = 0
    unresolved: List[AddressRecord] = field(default_factory=list)


def has_postal_code(code: str) -> bool:
    return bool(code) and POSTAL_CODE_REGEX.match(code) is not None


def normalize_town_rome(town_rome: str) -> str:
    s = TRAILING_DIGITS_REGEX.sub("", town_rome or "").replace(" ", "")
    for wrong, right in ROME_CORRECTIONS:
        s = s.replace(wrong, right, 1)
    return s


def find_candidates(record: AddressRecord, rome_by_city: Dict[Tuple[str, str], List[PostalEntry]]) -> List[PostalEntry]:
    target = normalize_town_rome(record.town_rome)
    # 町域名ローマ字が空の行（市区町村単位）はワイルドカードとして一致扱い
    return [
        e for e in rome_by_city.get((record.prefecture, record.city_rome), [])
        if not e.town_reading or e.town_reading.replace(" ", "") == target
    ]


def backfill_postal_codes(records: Iterable[AddressRecord], rome_entries: Iterable[PostalEntry]) -> BackfillResult:
    rome_by_city: Dict[Tuple[str, str], List[PostalEntry]] = {}
    for e in rome_entries:
        rome_by_city.setdefault((e.prefecture, e.city_reading), []).append(e)

    result = BackfillResult()
    for record in records:
        if has_postal_code(record.postal_code):
            continue
        candidates = find_candidates(record, rome_by_city)
        chosen = None
        if len(candidates) == 1:
            chosen = candidates[0]
            if not chosen.town_reading:
                logger.warning("Data may be incorrect, need to check manually: %s", record.to_row())
        elif len(candidates) == 2:
            # 辞書では市区町村単位の行が町域の行より先に並ぶため、後者を採用する
            chosen = candidates[1]

        if chosen is None:
            record.postal_code = ""
            result.unresolved.append(record)
            logger.warning(
                "Unexpected find of record (%d candidates): %s", len(candidates), record.to_row()
            )
            continue
        record.postal_code = chosen.postal_code
        result.filled += 1

    logger.info("郵便番号補完: %d件補完, %d件未解決", result.filled, len(result.unresolved))
    return result

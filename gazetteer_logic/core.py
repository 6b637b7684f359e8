# -*- coding: utf-8 -*-
"""
Core gazetteer logic
- 定数・静的テーブル（都道府県名、市区町村名変更、半角カナ変換表）
- 文字列正規化（空白除去、半角→全角カナ、丁目番号抽出、括弧書き除去）
- レコードキー生成
- データモデル（郵便番号辞書エントリ、住所レコード、街区ポイント）
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Dict, NamedTuple, Optional

# 定数定義
BASE_DIR = os.path.dirname(__file__)
DATA_DIR = os.path.abspath(os.path.join(BASE_DIR, "..", "data"))
PATCH_DIR = os.path.abspath(os.path.join(BASE_DIR, "..", "patches"))
DB_FILE_NAME = "latest.db"
OUTPUT_FILE_NAME = "latest.csv"
GAIKU_OUTPUT_FILE_NAME = "latest_gaiku.csv"

POSTAL_KANA_URL = "https://www.post.japanpost.jp/zipcode/dl/kogaki/zip/ken_all.zip"
POSTAL_ROME_URL = "https://www.post.japanpost.jp/zipcode/dl/roman/KEN_ALL_ROME.zip"
ISJ_URL_TEMPLATE = "https://nlftp.mlit.go.jp/isj/dls/data/{version}/{pref_code}000-{version}.zip"
ISJ_OAZA_VERSION = "13.0b"  # 大字・町丁目レベル
ISJ_GAIKU_VERSION = "18.0a"  # 街区レベル
OAZA_DOWNLOAD_WORKERS = 1
GAIKU_DOWNLOAD_WORKERS = 3

PREF_NAMES = [
    "北海道", "青森県", "岩手県", "宮城県", "秋田県", "山形県", "福島県",
    "茨城県", "栃木県", "群馬県", "埼玉県", "千葉県", "東京都", "神奈川県",
    "新潟県", "富山県", "石川県", "福井県", "山梨県", "長野県", "岐阜県",
    "静岡県", "愛知県", "三重県", "滋賀県", "京都府", "大阪府", "兵庫県",
    "奈良県", "和歌山県", "鳥取県", "島根県", "岡山県", "広島県", "山口県",
    "徳島県", "香川県", "愛媛県", "高知県", "福岡県", "佐賀県", "長崎県",
    "熊本県", "大分県", "宮崎県", "鹿児島県", "沖縄県",
]

# 位置参照情報と郵便番号データの取得時期の差で生じた市区町村名の変更
ISJ_RENAMES = [
    {"pref": "兵庫県", "orig": "篠山市", "renamed": "丹波篠山市"},
    {"pref": "福岡県", "orig": "筑紫郡那珂川町", "renamed": "那珂川市"},
]

# 出力テーブルの列（SQLite の列順と同じ）
OUTPUT_COLUMNS = [
    "都道府県コード",
    "郵便番号",
    "都道府県名",
    "都道府県名カナ",
    "都道府県名ローマ字",
    "市区町村コード",
    "市区町村名",
    "市区町村名カナ",
    "市区町村名ローマ字",
    "大字町丁目名",
    "大字町丁目名カナ",
    "大字町丁目名ローマ字",
    "小字・通称名",
    "緯度",
    "経度",
]
GAIKU_OUTPUT_COLUMNS = ["都道府県名", "市区町村名", "大字町丁目名", "街区番号", "緯度", "経度"]

# 日本郵政の「以下に掲載がない場合」は町域なし（市区町村単位）として扱う
NO_TOWN_SENTINEL = "以下に掲載がない場合"
NULL_SENTINEL = "NULL"

# 半角カナ→全角カナ（濁音・半濁音の2文字組を先に並べる）
HAN2ZEN_MAP: Dict[str, str] = {
    "ｶﾞ": "ガ", "ｷﾞ": "ギ", "ｸﾞ": "グ", "ｹﾞ": "ゲ", "ｺﾞ": "ゴ",
    "ｻﾞ": "ザ", "ｼﾞ": "ジ", "ｽﾞ": "ズ", "ｾﾞ": "ゼ", "ｿﾞ": "ゾ",
    "ﾀﾞ": "ダ", "ﾁﾞ": "ヂ", "ﾂﾞ": "ヅ", "ﾃﾞ": "デ", "ﾄﾞ": "ド",
    "ﾊﾞ": "バ", "ﾋﾞ": "ビ", "ﾌﾞ": "ブ", "ﾍﾞ": "ベ", "ﾎﾞ": "ボ",
    "ﾊﾟ": "パ", "ﾋﾟ": "ピ", "ﾌﾟ": "プ", "ﾍﾟ": "ペ", "ﾎﾟ": "ポ",
    "ｳﾞ": "ヴ", "ﾜﾞ": "ヷ", "ｦﾞ": "ヺ",
    "ｱ": "ア", "ｲ": "イ", "ｳ": "ウ", "ｴ": "エ", "ｵ": "オ",
    "ｶ": "カ", "ｷ": "キ", "ｸ": "ク", "ｹ": "ケ", "ｺ": "コ",
    "ｻ": "サ", "ｼ": "シ", "ｽ": "ス", "ｾ": "セ", "ｿ": "ソ",
    "ﾀ": "タ", "ﾁ": "チ", "ﾂ": "ツ", "ﾃ": "テ", "ﾄ": "ト",
    "ﾅ": "ナ", "ﾆ": "ニ", "ﾇ": "ヌ", "ﾈ": "ネ", "ﾉ": "ノ",
    "ﾊ": "ハ", "ﾋ": "ヒ", "ﾌ": "フ", "ﾍ": "ヘ", "ﾎ": "ホ",
    "ﾏ": "マ", "ﾐ": "ミ", "ﾑ": "ム", "ﾒ": "メ", "ﾓ": "モ",
    "ﾔ": "ヤ", "ﾕ": "ユ", "ﾖ": "ヨ",
    "ﾗ": "ラ", "ﾘ": "リ", "ﾙ": "ル", "ﾚ": "レ", "ﾛ": "ロ",
    "ﾜ": "ワ", "ｦ": "ヲ", "ﾝ": "ン",
    "ｧ": "ァ", "ｨ": "ィ", "ｩ": "ゥ", "ｪ": "ェ", "ｫ": "ォ",
    "ｯ": "ッ", "ｬ": "ャ", "ｭ": "ュ", "ｮ": "ョ",
    "｡": "。", "､": "、", "ｰ": "ー", "｢": "「", "｣": "」", "･": "・",
}
# 長いキーから試すことで2文字組を優先する
HAN2ZEN_REGEX = re.compile(
    "|".join(re.escape(k) for k in sorted(HAN2ZEN_MAP, key=len, reverse=True))
)

CHOME_NUMBER_REGEX = re.compile(r"([二三四五六七八九]?十?[一二三四五六七八九]?)丁目?$")
PAREN_SUFFIX_REGEX = re.compile(r"[(（].+[)）]$")

KANJI_DIGITS = {"〇": 0, "一": 1, "二": 2, "三": 3, "四": 4, "五": 5, "六": 6, "七": 7, "八": 8, "九": 9}


class GazetteerError(Exception):
    """ガゼッティア構築処理の基底例外"""


class InvalidStateError(GazetteerError):
    """処理順序の前提（座標サンプル収集完了など）が満たされていない"""


class SourceDataError(GazetteerError):
    """入力データ（位置参照情報・郵便番号辞書）が存在しない、または形式不正"""


# 文字列正規化
def normalize_whitespace(text: Optional[str]) -> str:
    if text is None:
        return ""
    return str(text).replace("　", "").strip()


def han_to_zen_kana(text: Optional[str]) -> str:
    if not text:
        return ""
    return HAN2ZEN_REGEX.sub(lambda m: HAN2ZEN_MAP[m.group(0)], text)


def kanji_to_number(token: str) -> Optional[int]:
    """
    丁目番号用の漢数字を整数に変換する。
    - 「十」を含む場合は位取り（二十三 -> 23）
    - 含まない場合は1桁ずつ並べた数字として読む（二三 -> 23）
    """
    if not token:
        return None
    if "十" not in token:
        if any(c not in KANJI_DIGITS for c in token):
            return None
        return int("".join(str(KANJI_DIGITS[c]) for c in token))
    left, right = token.split("十", 1)
    if left and left not in KANJI_DIGITS:
        return None
    total = (KANJI_DIGITS[left] if left else 1) * 10
    if right:
        if right not in KANJI_DIGITS:
            return None
        total += KANJI_DIGITS[right]
    return total


def extract_chome_number(text: Optional[str]) -> str:
    # 末尾の「〇丁目」「〇丁」を数字文字列にする。該当しなければ空文字
    if not text:
        return ""
    m = CHOME_NUMBER_REGEX.search(text)
    if not m or not m.group(1):
        return ""
    num = kanji_to_number(m.group(1))
    if num is None:
        return ""
    return str(num)


def strip_chome_suffix(text: Optional[str]) -> str:
    if not text:
        return ""
    m = CHOME_NUMBER_REGEX.search(text)
    # 番号として読めない場合は extract_chome_number と同じく丁目なし扱い
    if not m or kanji_to_number(m.group(1)) is None:
        return text
    return text[: m.start()]


def strip_parenthetical_suffix(text: Optional[str]) -> str:
    if not text:
        return ""
    return PAREN_SUFFIX_REGEX.sub("", text)


def town_reading(dictionary_town: str, source_town: str, kana: bool = False) -> str:
    """
    辞書の町域名読みから出力用の読みを作る。
    - 括弧書きを除去（カナは全角化）
    - 元データの町域名に丁目があれば「 1」のように番号を付ける
    """
    reading = strip_parenthetical_suffix(dictionary_town)
    if kana:
        reading = han_to_zen_kana(reading)
    chome = extract_chome_number(source_town)
    if chome != "":
        reading = f"{reading} {chome}"
    return reading


# レコードキー
class RecordKey(NamedTuple):
    prefecture: str
    city: str
    town: str
    koaza: str = ""


def rename_city(prefecture: str, city: str) -> str:
    for entry in ISJ_RENAMES:
        if entry["pref"] == prefecture and entry["orig"] == city:
            return entry["renamed"]
    return city


def build_key(prefecture: str, city: str, town: str, koaza: Optional[str] = "") -> RecordKey:
    # 町域名・小字名は呼び出し側で空白正規化済みであること
    koaza = "" if koaza is None or koaza == NULL_SENTINEL else koaza
    return RecordKey(prefecture, rename_city(prefecture, city), town, koaza)


def to_pref_code(pref_number) -> str:
    return str(int(pref_number)).zfill(2)


def pref_name_from_code(pref_code: str) -> str:
    n = int(pref_code)
    if not 1 <= n <= len(PREF_NAMES):
        raise ValueError(f"unknown prefecture code: {pref_code}")
    return PREF_NAMES[n - 1]


# データモデル
@dataclass(frozen=True)
class PostalEntry:
    """郵便番号辞書（カナ・ローマ字）の1行。読みは kind に応じてカナまたはローマ字。"""

    kind: str
    postal_code: str
    prefecture: str
    city: str
    town: str
    prefecture_reading: str = ""
    city_reading: str = ""
    town_reading: str = ""
    local_gov_code: str = ""


@dataclass
class AddressRecord:
    pref_code: str
    postal_code: str
    prefecture: str
    prefecture_kana: str
    prefecture_rome: str
    city_code: str
    city: str
    city_kana: str
    city_rome: str
    town: str
    town_kana: str
    town_rome: str
    koaza: str
    lat: float
    lon: float

    def to_row(self) -> Dict[str, object]:
        values = [
            self.pref_code, self.postal_code, self.prefecture, self.prefecture_kana,
            self.prefecture_rome, self.city_code, self.city, self.city_kana, self.city_rome,
            self.town, self.town_kana, self.town_rome, self.koaza, self.lat, self.lon,
        ]
        return dict(zip(OUTPUT_COLUMNS, values))

    @classmethod
    def from_row(cls, row: Dict[str, object]) -> "AddressRecord":
        def s(col: str) -> str:
            val = row.get(col)
            return "" if val is None else str(val)

        return cls(
            pref_code=s("都道府県コード"),
            postal_code=s("郵便番号"),
            prefecture=s("都道府県名"),
            prefecture_kana=s("都道府県名カナ"),
            prefecture_rome=s("都道府県名ローマ字"),
            city_code=s("市区町村コード"),
            city=s("市区町村名"),
            city_kana=s("市区町村名カナ"),
            city_rome=s("市区町村名ローマ字"),
            town=s("大字町丁目名"),
            town_kana=s("大字町丁目名カナ"),
            town_rome=s("大字町丁目名ローマ字"),
            koaza="" if s("小字・通称名") == NULL_SENTINEL else s("小字・通称名"),
            lat=float(row["緯度"]),
            lon=float(row["経度"]),
        )

    def key(self) -> RecordKey:
        return build_key(
            self.prefecture, self.city, normalize_whitespace(self.town), normalize_whitespace(self.koaza)
        )


@dataclass(frozen=True)
class GaikuPoint:
    prefecture: str
    city: str
    district: str
    block_number: str
    lon: float
    lat: float

    def to_row(self) -> Dict[str, object]:
        return {
            "都道府県名": self.prefecture,
            "市区町村名": self.city,
            "大字町丁目名": self.district,
            "街区番号": self.block_number,
            "緯度": self.lat,
            "経度": self.lon,
        }

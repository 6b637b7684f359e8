"""
テスト共通フィクスチャ（東京都千代田区の郵便番号辞書エントリ）
"""

import pytest

from gazetteer_logic.aggregate import PrefectureContext

from factories import kana, rome


@pytest.fixture
def kana_entries():
    return [
        kana("1000000", "", ""),
        kana("1010021", "外神田", "ｿﾄｶﾝﾀﾞ"),
        kana("1000004", "大手町（次のビルを除く）", "ｵｵﾃﾏﾁ(ﾂｷﾞﾉﾋﾞﾙｦﾉｿﾞｸ)"),
        kana("1000014", "永田町", "ﾅｶﾞﾀﾁｮｳ"),
    ]


@pytest.fixture
def rome_entries():
    return [
        rome("1000000", "", ""),
        rome("1010021", "外神田", "SOTOKANDA"),
        rome("1000004", "大手町（次のビルを除く）", "OTEMACHI(TSUGINOBIRUONOZOKU)"),
        rome("1000014", "永田町", "NAGATACHO"),
    ]


@pytest.fixture
def ctx(kana_entries, rome_entries):
    return PrefectureContext.create("13", "東京都", kana_entries, rome_entries)

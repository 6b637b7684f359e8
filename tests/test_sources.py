"""
入力データ（郵便番号辞書・位置参照情報・パッチ）読み込みのテスト
"""

import io
import zipfile

import pytest

from gazetteer_logic.core import OUTPUT_COLUMNS, RecordKey, SourceDataError
from source_logic import isj_source, postal_dict_build
from source_logic.patches import load_patches

KANA_CSV = (
    '13101,"100  ","1000000","ﾄｳｷｮｳﾄ","ﾁﾖﾀﾞｸ","ｲｶﾆｹｲｻｲｶﾞﾅｲﾊﾞｱｲ","東京都","千代田区","以下に掲載がない場合",0,0,0,0,0,0\r\n'
    '13101,"101  ","1010021","ﾄｳｷｮｳﾄ","ﾁﾖﾀﾞｸ","ｿﾄｶﾝﾀﾞ","東京都","千代田区","外神田",0,0,1,0,0,0\r\n'
    '01101,"060  ","0600000","ﾎｯｶｲﾄﾞｳ","ｻｯﾎﾟﾛｼﾁｭｳｵｳｸ","ｲｶﾆｹｲｻｲｶﾞﾅｲﾊﾞｱｲ","北海道","札幌市　中央区","以下に掲載がない場合",0,0,0,0,0,0\r\n'
)

ROME_CSV = (
    '"1000000","東京都","千代田区","以下に掲載がない場合","TOKYO TO","CHIYODA KU","IKANIKEISAIGANAIBAAI"\r\n'
    '"1010021","東京都","千代田区","外神田","TOKYO TO","CHIYODA KU","SOTOKANDA"\r\n'
)

OAZA_CSV = (
    '"都道府県コード","都道府県名","市区町村コード","市区町村名","大字町丁目コード","大字町丁目名","緯度","経度","原典資料コード","大字・字・丁目区分コード"\r\n'
    '"13","東京都","13101","千代田区","131010001001","外神田一丁目","35.700","139.770","3","3"\r\n'
)

GAIKU_CSV = (
    '"都道府県名","市区町村名","大字・丁目名","小字・通称名","街区符号・地番","座標系番号","Ｘ座標","Ｙ座標","緯度","経度","住居表示フラグ","代表フラグ","更新前履歴フラグ","更新後履歴フラグ"\r\n'
    '"東京都","千代田区","外神田一丁目","NULL","5","9","-35000.0","-7000.0","35.700","139.770","1","1","0","0"\r\n'
)


def make_zip(entries, encoding="cp932"):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, text in entries:
            zf.writestr(name, text.encode(encoding) if text else b"")
    return buf.getvalue()


def no_download(url):
    raise AssertionError(f"unexpected download: {url}")


class TestPostalDictionary:
    """郵便番号辞書の読み込みのテスト"""

    def test_kana_entries(self):
        df = postal_dict_build.read_first_csv_from_zip(
            make_zip([("KEN_ALL.CSV", KANA_CSV)]), columns=postal_dict_build.KANA_COLUMNS
        )
        entries = postal_dict_build.build_kana_entries(df)
        assert [e.postal_code for e in entries] == ["1000000", "1010021", "0600000"]
        assert entries[1].town == "外神田"
        assert entries[1].town_reading == "ｿﾄｶﾝﾀﾞ"
        assert entries[1].local_gov_code == "13101"
        assert entries[2].local_gov_code == "01101"

    def test_sentinel_town_is_city_level(self):
        """「以下に掲載がない場合」は町域なし・読みなし"""
        df = postal_dict_build.read_first_csv_from_zip(
            make_zip([("KEN_ALL.CSV", KANA_CSV)]), columns=postal_dict_build.KANA_COLUMNS
        )
        entry = postal_dict_build.build_kana_entries(df)[0]
        assert entry.town == ""
        assert entry.town_reading == ""
        assert entry.city_reading == "ﾁﾖﾀﾞｸ"

    def test_city_whitespace_removed(self):
        df = postal_dict_build.read_first_csv_from_zip(
            make_zip([("KEN_ALL.CSV", KANA_CSV)]), columns=postal_dict_build.KANA_COLUMNS
        )
        assert postal_dict_build.build_kana_entries(df)[2].city == "札幌市中央区"

    def test_rome_entries_from_cached_zip(self, tmp_path, monkeypatch):
        """データディレクトリにZIPがあればダウンロードしない"""
        monkeypatch.setattr(postal_dict_build, "download_zip", no_download)
        (tmp_path / "KEN_ALL_ROME.zip").write_bytes(make_zip([("KEN_ALL_ROME.CSV", ROME_CSV)]))
        entries = postal_dict_build.load_postal_rome(str(tmp_path))
        assert len(entries) == 2
        assert entries[0].kind == "rome"
        assert entries[0].town == ""
        assert entries[0].town_reading == ""
        assert entries[1].town_reading == "SOTOKANDA"
        assert entries[1].prefecture_reading == "TOKYO TO"

    def test_download_is_cached(self, tmp_path, monkeypatch):
        raw = make_zip([("KEN_ALL.CSV", KANA_CSV)])
        calls = []

        def fake_download(url):
            calls.append(url)
            return raw

        monkeypatch.setattr(postal_dict_build, "download_zip", fake_download)
        postal_dict_build.load_postal_kana(str(tmp_path))
        postal_dict_build.load_postal_kana(str(tmp_path))
        assert calls == [postal_dict_build.POSTAL_KANA_URL]
        assert (tmp_path / "ken_all.zip").read_bytes() == raw

    def test_column_count_mismatch(self):
        with pytest.raises(ValueError):
            postal_dict_build.read_first_csv_from_zip(
                make_zip([("KEN_ALL_ROME.CSV", ROME_CSV)]), columns=postal_dict_build.KANA_COLUMNS
            )

    def test_empty_zip(self):
        with pytest.raises(ValueError):
            postal_dict_build.read_first_csv_from_zip(make_zip([]))

    def test_broken_cached_zip(self, tmp_path, monkeypatch):
        """壊れたZIPは入力データのエラーにする"""
        monkeypatch.setattr(postal_dict_build, "download_zip", no_download)
        (tmp_path / "ken_all.zip").write_bytes(b"PK\x03\x04truncated")
        with pytest.raises(SourceDataError, match="broken zip archive"):
            postal_dict_build.load_postal_kana(str(tmp_path))

    def test_cache_written_atomically(self, tmp_path, monkeypatch):
        raw = make_zip([("KEN_ALL_ROME.CSV", ROME_CSV)])
        monkeypatch.setattr(postal_dict_build, "download_zip", lambda url: raw)
        postal_dict_build.load_postal_rome(str(tmp_path))
        assert (tmp_path / "KEN_ALL_ROME.zip").read_bytes() == raw
        assert not (tmp_path / "KEN_ALL_ROME.zip.tmp").exists()

    def test_interrupted_download_leaves_no_cache(self, tmp_path, monkeypatch):
        """書き込み前に落ちた場合はキャッシュを残さず、次回ダウンロードし直す"""
        def fail_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(postal_dict_build, "download_zip", lambda url: make_zip([("KEN_ALL.CSV", KANA_CSV)]))
        monkeypatch.setattr(postal_dict_build.os, "replace", fail_replace)
        with pytest.raises(OSError):
            postal_dict_build.load_postal_kana(str(tmp_path))
        assert not (tmp_path / "ken_all.zip").exists()


class TestIsjSource:
    """位置参照情報の展開・読み込みのテスト"""

    def test_csv_path(self, tmp_path):
        assert isj_source.isj_csv_path("13", "13.0b", str(tmp_path)).name == "nlftp_mlit_130b_13.csv"
        assert isj_source.isj_csv_path("01", "18.0a", str(tmp_path)).name == "nlftp_mlit_180a_01.csv"

    def test_extract_first_csv(self, tmp_path):
        """ディレクトリ項目を飛ばして最初のCSVをUTF-8で保存する"""
        raw = make_zip([("13000-13.0b/", ""), ("13000-13.0b/13_2019.csv", OAZA_CSV), ("13000-13.0b/readme.csv", "x")])
        out = isj_source.extract_first_csv(raw, isj_source.isj_csv_path("13", "13.0b", str(tmp_path)))
        assert out.read_bytes().decode("utf-8") == OAZA_CSV
        assert not out.with_name(out.name + ".tmp").exists()

    def test_no_csv_in_archive(self, tmp_path):
        out = tmp_path / "nlftp_mlit_130b_13.csv"
        with pytest.raises(SourceDataError, match="no CSV file detected"):
            isj_source.extract_first_csv(make_zip([("readme.txt", "x")]), out)
        assert not out.exists()

    def test_broken_archive(self, tmp_path):
        out = tmp_path / "nlftp_mlit_180a_13.csv"
        with pytest.raises(SourceDataError, match="broken zip archive"):
            isj_source.extract_first_csv(b"not a zip", out)
        assert not out.exists()

    def test_read_oaza_rows(self, tmp_path):
        isj_source.isj_csv_path("13", "13.0b", str(tmp_path)).write_text(OAZA_CSV, encoding="utf-8")
        rows = isj_source.read_oaza_rows("13", str(tmp_path))
        assert rows[0]["大字町丁目名"] == "外神田一丁目"
        assert rows[0]["市区町村コード"] == "13101"
        assert rows[0]["緯度"] == "35.700"

    def test_read_gaiku_rows_keeps_null(self, tmp_path):
        """小字の "NULL" は欠損値にせず文字列のまま"""
        isj_source.isj_csv_path("13", "18.0a", str(tmp_path)).write_text(GAIKU_CSV, encoding="utf-8")
        rows = isj_source.read_gaiku_rows("13", str(tmp_path))
        assert rows[0]["小字・通称名"] == "NULL"
        assert rows[0]["住居表示フラグ"] == "1"

    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceDataError):
            isj_source.read_oaza_rows("14", str(tmp_path))

    def test_missing_columns(self, tmp_path):
        isj_source.isj_csv_path("13", "18.0a", str(tmp_path)).write_text(OAZA_CSV, encoding="utf-8")
        with pytest.raises(SourceDataError, match="missing columns"):
            isj_source.read_gaiku_rows("13", str(tmp_path))

    def test_download_skipped_when_present(self, tmp_path, monkeypatch):
        monkeypatch.setattr(isj_source, "download_zip", no_download)
        path = isj_source.isj_csv_path("13", "13.0b", str(tmp_path))
        path.write_text(OAZA_CSV, encoding="utf-8")
        assert isj_source.download_oaza("13", str(tmp_path)) == path

    def test_download_gaiku(self, tmp_path, monkeypatch):
        calls = []

        def fake_download(url):
            calls.append(url)
            return make_zip([("13000-18.0a/13_2019.csv", GAIKU_CSV)])

        monkeypatch.setattr(isj_source, "download_zip", fake_download)
        path = isj_source.download_gaiku("13", str(tmp_path))
        assert calls == ["https://nlftp.mlit.go.jp/isj/dls/data/18.0a/13000-18.0a.zip"]
        assert path.name == "nlftp_mlit_180a_13.csv"
        assert path.read_bytes().decode("utf-8") == GAIKU_CSV


class TestPatches:
    """パッチ読み込みのテスト"""

    def _write(self, path, rows):
        header = ",".join(OUTPUT_COLUMNS)
        path.write_text("\n".join([header] + [",".join(r) for r in rows]) + "\n", encoding="utf-8")

    def test_grouped_by_prefecture(self, tmp_path):
        self._write(
            tmp_path / "fix.csv",
            [
                ["13", "1000014", "東京都", "トウキョウト", "TOKYO TO", "13101", "千代田区", "チヨダク", "CHIYODA KU",
                 "永田町一丁目", "ナガタチョウ 1", "NAGATACHO 1", "NULL", "35.67", "139.74"],
                ["1", "0600000", "北海道", "ホッカイドウ", "HOKKAIDO", "01101", "札幌市中央区", "サッポロシチュウオウク",
                 "SAPPORO SHI CHUO KU", "大通西一丁目", "オオドオリニシ 1", "ODORINISHI 1", "", "43.06", "141.35"],
            ],
        )
        patches = load_patches(str(tmp_path))
        assert set(patches) == {"13", "01"}
        record = patches["13"][RecordKey("東京都", "千代田区", "永田町一丁目", "")]
        assert record.postal_code == "1000014"
        assert record.lat == 35.67
        assert patches["01"][RecordKey("北海道", "札幌市中央区", "大通西一丁目", "")].city_code == "01101"

    def test_missing_directory(self, tmp_path):
        assert load_patches(str(tmp_path / "none")) == {}

    def test_missing_columns(self, tmp_path):
        (tmp_path / "bad.csv").write_text("都道府県コード,郵便番号\n13,1000014\n", encoding="utf-8")
        with pytest.raises(SourceDataError):
            load_patches(str(tmp_path))

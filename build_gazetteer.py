# -*- coding: utf-8 -*-
"""
Japanese address gazetteer build
- 郵便番号辞書と位置参照情報（大字・町丁目 / 街区）を突合し、住所テーブルを作る
- 出力: data/latest.db（addresses テーブル）, data/latest.csv, data/latest_gaiku.csv

使い方:
    python build_gazetteer.py            # 全都道府県
    python build_gazetteer.py 13,14      # 東京都・神奈川県のみ
"""
import argparse
import logging
import sys

from gazetteer_logic import core
from gazetteer_logic.core import GazetteerError
from gazetteer_logic.tasks import run_build_job

logger = logging.getLogger("build_gazetteer")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build the Japanese address gazetteer.")
    parser.add_argument("prefectures", nargs="?", default="", help="都道府県コード（カンマ区切り, 省略時は全件）")
    parser.add_argument("--data-dir", default=core.DATA_DIR, help="ダウンロード・出力先ディレクトリ")
    parser.add_argument("--patch-dir", default=core.PATCH_DIR, help="パッチCSVのディレクトリ")
    parser.add_argument("--output", default=None, help="住所テーブルの出力先（.csv / .xlsx）")
    parser.add_argument("--gaiku-output", default=None, help="街区ポイントCSVの出力先")
    parser.add_argument("--skip-download", action="store_true", help="ダウンロード済みのCSVだけを使う")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def parse_pref_codes(value: str):
    if not value:
        return None
    codes = []
    for token in value.split(","):
        token = token.strip()
        if not token:
            continue
        if not token.isdigit() or not 1 <= int(token) <= len(core.PREF_NAMES):
            raise ValueError(f"invalid prefecture code: {token}")
        codes.append(core.to_pref_code(token))
    return codes


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    try:
        pref_codes = parse_pref_codes(args.prefectures)
    except ValueError as e:
        logger.error("%s", e)
        return 2

    def progress_cb(done, total, phase, message):
        if phase in ("prepare", "build", "done"):
            logger.info("[%s] %d/%d %s", phase, done, total, message)

    try:
        result = run_build_job(
            pref_codes,
            data_dir=args.data_dir,
            patch_dir=args.patch_dir,
            output_path=args.output,
            gaiku_output_path=args.gaiku_output,
            skip_download=args.skip_download,
            progress_cb=progress_cb,
        )
    except (GazetteerError, OSError, ValueError) as e:
        logger.exception("build aborted: %s", e)
        return 1
    logger.info(
        "Saved: %s (%d件), %s (%d件)",
        result["output_path"], result["records"], result["gaiku_output_path"], result["gaiku_points"],
    )
    if result["failed"]:
        logger.error("failed prefectures: %s", ",".join(result["failed"]))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

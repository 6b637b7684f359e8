# -*- coding: utf-8 -*-
"""
Gazetteer build task helpers

- 郵便番号辞書（カナ・ローマ字）を読み込み
- 位置参照情報を都道府県ごとに並行ダウンロード（大字・町丁目は1並列、街区は3並列）
- 集約は都道府県コード順に1件ずつ（大字・町丁目 → 街区）
- 全都道府県の集約後に郵便番号を補完し、SQLite / CSV に出力
- ある都道府県の入力が欠けていても、他の都道府県の処理は続ける
"""
from __future__ import annotations

import logging
import os
import time
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from source_logic.isj_source import download_gaiku, download_oaza, read_gaiku_rows, read_oaza_rows
from source_logic.patches import load_patches
from source_logic.postal_dict_build import load_postal_kana, load_postal_rome
from source_logic.storage import (
    append_gaiku_points,
    export_addresses,
    init_db,
    read_sorted_addresses,
    start_gaiku_csv,
    write_records,
)

from . import core
from .aggregate import PrefectureContext, aggregate_gaiku, aggregate_oaza
from .backfill import backfill_postal_codes
from .core import AddressRecord, GaikuPoint, GazetteerError, PostalEntry, RecordKey, SourceDataError
from .job_queue import JobQueue

logger = logging.getLogger(__name__)


def build_prefecture(
    pref_code: str,
    kana_entries: Sequence[PostalEntry],
    rome_entries: Sequence[PostalEntry],
    oaza_rows: Iterable[Mapping[str, str]],
    gaiku_rows: Iterable[Mapping[str, str]],
    patches: Optional[Mapping[RecordKey, AddressRecord]] = None,
    progress_cb=None,
) -> Tuple[List[AddressRecord], List[GaikuPoint]]:
    """1都道府県分の住所レコードと街区ポイントを作る。"""
    ctx = PrefectureContext.create(
        pref_code, core.pref_name_from_code(pref_code), kana_entries, rome_entries, patches
    )

    def prog(phase):
        def _cb(done, total):
            if progress_cb:
                progress_cb(done, total, phase, pref_code)
        return _cb

    aggregate_oaza(ctx, oaza_rows, progress=prog("oaza"))
    records, points = aggregate_gaiku(ctx, gaiku_rows, progress=prog("gaiku"))
    return list(records.values()), points


def _wait_source(q: JobQueue, job_id: str, pref_code: str) -> None:
    job = q.get_job(job_id)
    if job is not None and not job.finished.is_set():
        logger.info("%s: waiting for %s...", pref_code, job.name)
    job = q.wait_job(job_id)
    if job.status == "error":
        raise SourceDataError(f"{pref_code}: {job.name} failed: {job.error!r}") from job.error


def run_build_job(
    pref_codes: Optional[Iterable] = None,
    *,
    data_dir: str = core.DATA_DIR,
    patch_dir: str = core.PATCH_DIR,
    db_path: Optional[str] = None,
    output_path: Optional[str] = None,
    gaiku_output_path: Optional[str] = None,
    skip_download: bool = False,
    kana_entries: Optional[List[PostalEntry]] = None,
    rome_entries: Optional[List[PostalEntry]] = None,
    progress_cb=None,
) -> Dict[str, object]:
    """
    全体のビルドを実行し、出力パスと件数を返す。
    progress_cb が渡された場合は progress_cb(done, total, phase, message) で進捗通知する。
    """
    t0 = time.perf_counter()
    db_path = db_path or os.path.join(data_dir, core.DB_FILE_NAME)
    output_path = output_path or os.path.join(data_dir, core.OUTPUT_FILE_NAME)
    gaiku_output_path = gaiku_output_path or os.path.join(data_dir, core.GAIKU_OUTPUT_FILE_NAME)
    codes = [core.to_pref_code(c) for c in (pref_codes or range(1, len(core.PREF_NAMES) + 1))]

    if progress_cb:
        progress_cb(0, 1, "prepare", "郵便番号辞書の読込")
    if kana_entries is None:
        kana_entries = load_postal_kana(data_dir)
    if rome_entries is None:
        rome_entries = load_postal_rome(data_dir)
    logger.info("郵便番号辞書: カナ %d件, ローマ字 %d件", len(kana_entries), len(rome_entries))

    oaza_q = gaiku_q = None
    oaza_jobs: Dict[str, str] = {}
    gaiku_jobs: Dict[str, str] = {}
    if not skip_download:
        oaza_q = JobQueue("isj-" + core.ISJ_OAZA_VERSION, core.OAZA_DOWNLOAD_WORKERS)
        gaiku_q = JobQueue("isj-" + core.ISJ_GAIKU_VERSION, core.GAIKU_DOWNLOAD_WORKERS)
        for code in codes:
            oaza_jobs[code] = oaza_q.submit_job(f"nlftp_mlit_130b_{code}", download_oaza, code, data_dir)
            gaiku_jobs[code] = gaiku_q.submit_job(f"nlftp_mlit_180a_{code}", download_gaiku, code, data_dir)

    patch_data = load_patches(patch_dir)
    start_gaiku_csv(gaiku_output_path)

    built: List[Tuple[str, List[AddressRecord]]] = []
    failed: List[str] = []
    gaiku_count = 0
    try:
        for i, code in enumerate(codes, start=1):
            tp0 = time.perf_counter()
            try:
                if not skip_download:
                    _wait_source(oaza_q, oaza_jobs[code], code)
                    _wait_source(gaiku_q, gaiku_jobs[code], code)
                records, points = build_prefecture(
                    code,
                    kana_entries,
                    rome_entries,
                    read_oaza_rows(code, data_dir),
                    read_gaiku_rows(code, data_dir),
                    patches=patch_data.get(code),
                    progress_cb=progress_cb,
                )
            except (GazetteerError, KeyError, ValueError, OSError) as e:
                logger.error("%s: build failed, skipped: %s", code, e)
                failed.append(code)
                continue
            gaiku_count += append_gaiku_points(gaiku_output_path, points)
            built.append((code, records))
            logger.info("%s: build took %.0f milliseconds.", code, (time.perf_counter() - tp0) * 1000)
            if progress_cb:
                progress_cb(i, len(codes), "build", f"{code} 完了")
    finally:
        for q in (oaza_q, gaiku_q):
            if q is not None:
                q.shutdown(wait=False)

    # 全都道府県分が揃ってから郵便番号を補完する
    all_records = [r for _, records in built for r in records]
    result = backfill_postal_codes(all_records, rome_entries)

    conn = init_db(db_path)
    try:
        for _, records in built:
            write_records(conn, records)
        export_addresses(read_sorted_addresses(conn), output_path)
    finally:
        conn.close()

    logger.info("build took %.0f milliseconds.", (time.perf_counter() - t0) * 1000)
    if progress_cb:
        progress_cb(1, 1, "done", "完了")
    return {
        "db_path": db_path,
        "output_path": output_path,
        "gaiku_output_path": gaiku_output_path,
        "records": len(all_records),
        "gaiku_points": gaiku_count,
        "unresolved_postal_codes": len(result.unresolved),
        "failed": failed,
    }

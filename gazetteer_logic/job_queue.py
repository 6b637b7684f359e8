# -*- coding: utf-8 -*-
"""
簡易ジョブキュー（スレッドワーカー）

- submit_job でジョブを投入し、IDを返す
- wait_job で完了まで待ち、状態/結果/エラーを参照
- ワーカー数を指定して同時実行数を制限する（位置参照情報のダウンロード用）
"""
from __future__ import annotations

import logging
import queue
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class Job:
    id: str
    name: str
    func: Callable[..., Any]
    args: Tuple[Any, ...] = ()
    status: str = "queued"  # queued | running | done | error
    result: Any = None
    error: Optional[BaseException] = None
    finished: threading.Event = field(default_factory=threading.Event)


class JobQueue:
    def __init__(self, name: str, workers: int = 1):
        self.name = name
        self.jobs: Dict[str, Job] = {}
        self.q: "queue.Queue[Optional[Job]]" = queue.Queue()
        self.lock = threading.Lock()
        self.workers = [
            threading.Thread(target=self._worker_loop, name=f"{name}-{i}", daemon=True)
            for i in range(max(1, workers))
        ]
        for w in self.workers:
            w.start()

    def submit_job(self, name: str, func: Callable[..., Any], *args: Any) -> str:
        job_id = str(uuid.uuid4())
        job = Job(id=job_id, name=name, func=func, args=args)
        with self.lock:
            self.jobs[job_id] = job
        self.q.put(job)
        return job_id

    def get_job(self, job_id: str) -> Optional[Job]:
        with self.lock:
            return self.jobs.get(job_id)

    def wait_job(self, job_id: str, timeout: Optional[float] = None) -> Job:
        job = self.get_job(job_id)
        if job is None:
            raise KeyError(job_id)
        if not job.finished.wait(timeout):
            raise TimeoutError(f"{self.name}: job {job.name} not finished")
        return job

    def shutdown(self, wait: bool = True) -> None:
        for _ in self.workers:
            self.q.put(None)
        if wait:
            for w in self.workers:
                w.join()

    def _worker_loop(self):
        while True:
            job = self.q.get()
            if job is None:
                self.q.task_done()
                return
            with self.lock:
                job.status = "running"
            try:
                result = job.func(*job.args)
                with self.lock:
                    job.status = "done"
                    job.result = result
            except Exception as e:
                logger.error("%s: job %s failed: %r", self.name, job.name, e)
                with self.lock:
                    job.status = "error"
                    job.error = e
            finally:
                job.finished.set()
                self.q.task_done()

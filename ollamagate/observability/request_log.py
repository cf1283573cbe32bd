"""Per-request log records written as JSON lines by a background worker."""

from __future__ import annotations

import json
import queue
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel

from ollamagate.util.logger import logger
from ollamagate.util.masking import mask_for_log


class RequestLogEntry(BaseModel):
    timestamp: str
    method: str
    path: str
    token: str = ""
    token_valid: bool = False
    request_body: Optional[Any] = None
    response: Optional[Any] = None
    error: Optional[str] = None


def decode_body_for_log(body: bytes | None) -> Any:
    if not body:
        return None
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None


def build_entry(
    *,
    method: str,
    path: str,
    token: str = "",
    token_valid: bool = False,
    request_body: Any = None,
    response: Any = None,
    error: str | None = None,
) -> RequestLogEntry:
    return RequestLogEntry(
        timestamp=datetime.now(tz=timezone.utc).isoformat(),
        method=method,
        path=path,
        token=mask_for_log(token) if token else "",
        token_valid=token_valid,
        request_body=request_body,
        # 与 error 互斥，出错时不记录响应
        response=None if error else response,
        error=error,
    )


class RequestLogSink:
    """Queue request records and append them to ``<log_dir>/<date>.log``."""

    def __init__(self, log_dir: str | Path | None, max_queue: int = 10000) -> None:
        self.log_dir = Path(log_dir) if log_dir else None
        self._queue: queue.Queue[RequestLogEntry | None] = queue.Queue(maxsize=max_queue)
        self._worker: threading.Thread | None = None
        self._lock = threading.Lock()

    def _path_for(self, entry: RequestLogEntry) -> Path:
        assert self.log_dir is not None
        day = entry.timestamp[:10] or datetime.now(tz=timezone.utc).strftime("%Y-%m-%d")
        return self.log_dir / f"{day}.log"

    def _append(self, entry: RequestLogEntry) -> None:
        path = self._path_for(entry)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(entry.model_dump_json(exclude_none=True) + "\n")

    def _worker_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    break
                self._append(item)
            except Exception as exc:  # pragma: no cover - operational safeguard
                logger.warning("request log write failed: %s", exc)
            finally:
                self._queue.task_done()

    def _ensure_worker(self) -> None:
        if self._worker is not None and self._worker.is_alive():
            return
        with self._lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._worker = threading.Thread(target=self._worker_loop, name="ollamagate-request-log", daemon=True)
            self._worker.start()

    def write(self, entry: RequestLogEntry) -> None:
        logger.info(
            "request method=%s path=%s token_valid=%s error=%s",
            entry.method,
            entry.path,
            entry.token_valid,
            entry.error or "",
        )
        if self.log_dir is None:
            return
        self._ensure_worker()
        try:
            self._queue.put_nowait(entry)
        except queue.Full:  # pragma: no cover - overload safeguard
            self._append(entry)
            logger.warning("request log queue full, fallback to sync write path=%s", entry.path)

    def shutdown(self, timeout_seconds: float = 1.0) -> None:
        worker = self._worker
        if worker is None:
            return
        try:
            self._queue.put_nowait(None)
        except queue.Full:
            pass
        worker.join(timeout=timeout_seconds)
        self._worker = None

import asyncio
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from chat_core.domain.exceptions import StorageError
from chat_core.domain.models import utcnow_iso
from chat_core.domain.store import Record
from chat_core.infrastructure.logging.logger import logger


class JsonFileStore:
    """把整个记录集合保存为单个 JSON 数组文件。

    每次 append/clear 都读出全部记录、修改后整体写回；写入先落到同目录的
    临时文件再 os.replace，保证调用方看到的要么是旧文件要么是新文件。
    同一进程内的读-改-写由 asyncio.Lock 串行化，避免两次 append 拿到同一个 id。
    """

    def __init__(self, path: str | Path):
        self._path = Path(path).expanduser().resolve()
        self._lock = asyncio.Lock()
        self._ensure_file_exists()

    @property
    def path(self) -> Path:
        return self._path

    async def append(self, fields: Record) -> Record:
        async with self._lock:
            records = await asyncio.to_thread(self._read_records)
            max_id = max((int(r.get("id") or 0) for r in records), default=0)
            record: Dict[str, Any] = {"id": max_id + 1}
            record.update((k, v) for k, v in fields.items() if k != "id")
            record["timestamp"] = fields.get("timestamp") or utcnow_iso()
            records.append(record)
            await asyncio.to_thread(self._write_records, records)
        return record

    async def clear(self) -> None:
        async with self._lock:
            await asyncio.to_thread(self._write_records, [])

    async def read(self, limit: Optional[int] = None, reverse: bool = False) -> List[Record]:
        records = await asyncio.to_thread(self._read_records)
        if limit:
            records = records[-limit:]
        if reverse:
            records.reverse()
        return records

    # ---- 辅助方法 ----

    def _ensure_file_exists(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            if not self._path.exists():
                self._write_records([])
        except OSError as e:
            raise StorageError(code="STORE_INIT_ERROR", message=str(e), http_status=500, path=str(self._path))

    def _read_records(self) -> List[Record]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageError(code="STORE_READ_ERROR", message=str(e), http_status=500, path=str(self._path))
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error(
                "Error parsing store file",
                extra={"extra": {"path": str(self._path), "error": str(e)}},
            )
            return []
        if not isinstance(data, list):
            logger.error("Store file is not a JSON array", extra={"extra": {"path": str(self._path)}})
            return []
        return data

    def _write_records(self, records: List[Record]) -> None:
        tmp_path = self._path.parent / f"{self._path.stem}.{uuid4().hex}.json.tmp"
        try:
            tmp_path.write_text(json.dumps(records, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except (OSError, TypeError, ValueError) as e:
            tmp_path.unlink(missing_ok=True)
            raise StorageError(code="STORE_WRITE_ERROR", message=str(e), http_status=500, path=str(self._path))

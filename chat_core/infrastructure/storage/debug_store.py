import json
import os
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

from chat_core.domain.models import utcnow_iso
from chat_core.infrastructure.logging.logger import logger


class DebugStore:
    """只保留最近一次请求/响应的调试快照，每次写入覆盖旧内容。"""

    def __init__(self, path: str | Path):
        self._path = Path(path).expanduser().resolve()

    @property
    def path(self) -> Path:
        return self._path

    def store(self, info: Dict[str, Any]) -> None:
        data = {"timestamp": utcnow_iso(), **info}
        tmp_path = self._path.parent / f"{self._path.stem}.{uuid4().hex}.json.tmp"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as e:
            # 调试快照失败不影响主流程
            logger.error("Error storing debug info", extra={"extra": {"path": str(self._path), "error": str(e)}})

    def load(self) -> Optional[Dict[str, Any]]:
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return None

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)

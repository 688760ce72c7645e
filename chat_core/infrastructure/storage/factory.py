"""存储实现工厂。

消息存储与请求日志存储使用同一种实现，只是落在不同的文件上。
目前只有 "file" 一种类型，新增实现时在 _build 中分发即可。
"""

from pathlib import Path

from chat_core.config.settings import Settings
from chat_core.domain.exceptions import ConfigurationError
from chat_core.domain.store import RecordStore
from chat_core.infrastructure.storage.json_store import JsonFileStore


SUPPORTED_STORAGE_TYPES = ("file",)


def create_message_store(settings: Settings, storage_type: str | None = None) -> RecordStore:
    return _build(storage_type or settings.storage_type, settings.storage_path / settings.messages_file)


def create_request_store(settings: Settings, storage_type: str | None = None) -> RecordStore:
    return _build(storage_type or settings.storage_type, settings.storage_path / settings.requests_file)


def _build(storage_type: str, path: Path) -> RecordStore:
    kind = storage_type.lower()
    if kind == "file":
        return JsonFileStore(path)
    raise ConfigurationError(
        code="UNSUPPORTED_STORAGE",
        message=f"Unsupported storage type: {storage_type}",
        http_status=500,
        supported=list(SUPPORTED_STORAGE_TYPES),
    )

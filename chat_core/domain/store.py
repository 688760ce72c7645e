"""记录存储协议。

消息存储和请求日志存储共用同一个协议：一个有序、只追加（可整体清空）的
记录集合。记录是可 JSON 序列化的 dict，存储负责分配自增 id 并补全 timestamp。
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


Record = Dict[str, Any]


@runtime_checkable
class RecordStore(Protocol):
    """存储实现必须提供的能力集合。

    - append: 分配 id（当前最大 id + 1，空存储从 1 开始），写入并返回完整记录。
    - clear: 原子地把记录集合替换为空。
    - read: limit 为 None/0 时返回全部记录；否则返回最近的 limit 条，
      reverse=True 时按从新到旧返回。
    """

    async def append(self, fields: Record) -> Record:
        ...

    async def clear(self) -> None:
        ...

    async def read(self, limit: Optional[int] = None, reverse: bool = False) -> List[Record]:
        ...

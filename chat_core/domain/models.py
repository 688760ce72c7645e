"""统一的对话与结果数据模型。

本模块定义了在存储、编排层和 LLM Client 之间共享的标准数据结构：

- ChatMessage: 发给 LLM 的一条 role/content 消息。
- Completion: 从上游响应解析后的统一结果。
- Turn: 持久化在消息存储中的一轮对话。

LLM Client 只依赖这些模型，并负责在上游 JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional


# 消息角色（与 OpenAI 兼容接口的 role 字段对应）
Role = Literal["system", "user", "assistant"]


def utcnow_iso() -> str:
    """返回当前 UTC 时间的 ISO-8601 字符串（以 Z 结尾）。"""

    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class ChatMessage:
    """一条对话消息，既可用于请求，也可用于响应。"""

    role: str
    content: str

    def to_payload(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatUsage:
    """上游返回的 token 统计信息。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatChoice:
    """单个候选回答（通常只用 index=0 的一条）。"""

    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None


@dataclass
class Completion:
    """一次补全调用的结果。

    - model: 实际请求的模型 ID。
    - choices: 至少一个候选回答。
    - usage: 可选的 token 使用统计。
    - raw: 原始响应 JSON，用于请求日志与调试。
    """

    model: str
    choices: List[ChatChoice]
    usage: Optional[ChatUsage] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def content(self) -> str:
        return self.choices[0].message.content


@dataclass
class Turn:
    """消息存储中的一轮对话。

    id 由存储分配，写入前为 None。
    """

    role: Role
    content: str
    timestamp: Optional[str] = None
    id: Optional[int] = None

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp or utcnow_iso(),
        }
        if self.id is not None:
            record["id"] = self.id
        return record

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Turn":
        return cls(
            role=data["role"],
            content=data.get("content") or "",
            timestamp=data.get("timestamp"),
            id=data.get("id"),
        )

    def to_message(self) -> ChatMessage:
        """去掉 id/timestamp，只保留发给 LLM 的字段。"""

        return ChatMessage(role=self.role, content=self.content)

"""LLM Client 抽象接口。

对话服务不直接依赖具体的 HTTP 实现，而是依赖此协议：

- 负责：把 role/content 消息列表发给上游，并把响应 JSON 解析为 Completion。
- 不负责：解释消息语义、重试、超时之外的取消。

这样可以在不改对话服务代码的前提下替换上游（或在测试里注入假实现）。
"""

from typing import Any, Dict, List, Optional, Protocol, Sequence

from chat_core.domain.models import ChatMessage, Completion


class LLMClient(Protocol):
    """LLM Client 协议。

    实现者需要提供：
    - send_message: 执行一次补全调用，返回 Completion；失败抛出 UpstreamError。
    - send_message_with_additional_model: 使用副模型（未配置时回退到主模型）。
    - drain: 等待尚未完成的请求日志写入。
    """

    name: str

    async def send_message(
        self,
        messages: Sequence[ChatMessage],
        options: Optional[Dict[str, Any]] = None,
    ) -> Completion:
        ...

    async def send_message_with_additional_model(
        self,
        messages: Sequence[ChatMessage],
        options: Optional[Dict[str, Any]] = None,
    ) -> Completion:
        ...

    async def drain(self) -> None:
        ...


def messages_to_payload(messages: Sequence[ChatMessage | Dict[str, Any]]) -> List[Dict[str, str]]:
    """兼容 ChatMessage 与普通 dict 两种写法。"""

    payload = []
    for m in messages:
        if isinstance(m, ChatMessage):
            payload.append(m.to_payload())
        else:
            payload.append({"role": m["role"], "content": m["content"]})
    return payload

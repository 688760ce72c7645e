"""LLM Client 集成层。

该包下的模块负责：
- 定义 LLM Client 抽象接口 (base)。
- 维护逻辑模型名与具体模型 ID 的映射 (registry)。
- 提供 OpenAI 兼容端点的具体实现 (openai_client)。
"""

from typing import Optional

from chat_core.domain.store import RecordStore
from chat_core.providers.base import LLMClient
from chat_core.providers.openai_client import OpenAICompatibleClient


def create_llm_client(settings, request_store: Optional[RecordStore] = None) -> LLMClient:
    """根据配置创建 LLM Client，缺少密钥/地址/模型时抛出 ConfigurationError。"""

    return OpenAICompatibleClient(settings, request_store=request_store)


__all__ = ["LLMClient", "OpenAICompatibleClient", "create_llm_client"]

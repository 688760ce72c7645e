"""Chat Core 顶层包。

该包提供对话编排与可插拔持久化能力：
配置加载、领域模型、LLM Client 适配、对话服务、
文件存储以及请求日志记录。
"""

from chat_core.api.service import ChatServices, build_services
from chat_core.config.settings import Settings, load_settings

__all__ = ["ChatServices", "Settings", "build_services", "load_settings"]

"""对外 API 服务模块。

启动时用一份 Settings 组装存储、LLM Client 与各个服务，
上层（HTTP 路由、CLI 等）只需持有返回的 ChatServices。
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from chat_core.config.settings import Settings, load_settings
from chat_core.domain.store import RecordStore
from chat_core.infrastructure.logging.logger import logger, setup_logger
from chat_core.infrastructure.storage.debug_store import DebugStore
from chat_core.infrastructure.storage.factory import create_message_store, create_request_store
from chat_core.prompts import PromptLoader
from chat_core.providers import LLMClient, create_llm_client
from chat_core.services.chat_service import ChatService
from chat_core.services.review_summary import ReviewSummaryService
from chat_core.services.text_enhancement import TextEnhancementService


@dataclass
class ChatServices:
    settings: Settings
    message_store: RecordStore
    request_store: RecordStore
    llm_client: LLMClient
    chat: ChatService
    text_enhancement: TextEnhancementService
    review_summary: ReviewSummaryService

    async def aclose(self) -> None:
        """关闭前等待所有后台请求日志落盘，直接使用底层服务的调用方应在退出事件循环前调用。"""
        await self.llm_client.drain()


def build_services(settings: Optional[Settings] = None) -> ChatServices:
    """组装全部服务。

    Raises:
        ConfigurationError: 缺少 LLM 密钥/地址/模型，或存储类型不受支持。
    """
    settings = settings or load_settings()
    setup_logger(settings)

    message_store = create_message_store(settings)
    request_store = create_request_store(settings)
    llm_client = create_llm_client(settings, request_store=request_store)
    prompts = PromptLoader(settings.prompts_dir)
    debug_store = DebugStore(settings.storage_path / settings.debug_file)

    logger.info(
        "Chat services initialised",
        extra={"extra": {
            "storage_type": settings.storage_type,
            "storage_root": str(settings.storage_path),
            "model": settings.llm_model,
        }},
    )
    return ChatServices(
        settings=settings,
        message_store=message_store,
        request_store=request_store,
        llm_client=llm_client,
        chat=ChatService(message_store, llm_client, prompts=prompts, request_store=request_store),
        text_enhancement=TextEnhancementService(llm_client, prompts=prompts),
        review_summary=ReviewSummaryService(llm_client, prompts=prompts, debug_store=debug_store),
    )


async def run_chat(services: ChatServices, content: str, role: str = "user") -> Dict[str, Any]:
    """运行一轮对话，返回前等待本轮的请求日志写完。

    Raises:
        各种 domain.exceptions 中定义的异常
    """
    try:
        return await services.chat.process_turn(content, role)
    except Exception as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {"error": str(e)}})
        raise
    finally:
        await services.llm_client.drain()


async def enhance_text(services: ChatServices, text: str) -> Dict[str, Any]:
    try:
        return await services.text_enhancement.enhance_text(text)
    finally:
        await services.llm_client.drain()


async def summarize_reviews(services: ChatServices, reviews: List[Dict[str, Any]]) -> str:
    try:
        return await services.review_summary.generate_summary(reviews)
    finally:
        await services.llm_client.drain()


async def list_messages(services: ChatServices, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    return await services.chat.get_all_turns(limit)


async def list_requests(services: ChatServices, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    return await services.chat.list_requests(limit)

"""对话编排核心模块。

负责把 system prompt、历史消息和新的用户消息组装成上下文，调用 LLM Client，
并把一问一答两侧都写入消息存储。本模块自身不持有持久状态，只在一次调用
期间读写注入进来的消息存储与请求日志存储。
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional
from uuid import uuid4

from chat_core.domain.exceptions import (
    BusinessError,
    ConfigurationError,
    EmptyCompletionError,
    InvalidLLMResponseError,
    LLMCallError,
    PromptNotFoundError,
    StorageError,
    ValidationError,
)
from chat_core.domain.models import ChatMessage, Completion, Turn, utcnow_iso
from chat_core.domain.store import Record, RecordStore
from chat_core.infrastructure.logging.logger import logger
from chat_core.prompts import PromptLoader
from chat_core.providers.base import LLMClient


ROLES = ("system", "user", "assistant")
SYSTEM_PROMPT = "system"
WELCOME_PROMPT = "welcome"


class ChatService:
    def __init__(
        self,
        message_store: RecordStore,
        llm_client: LLMClient,
        prompts: Optional[PromptLoader] = None,
        request_store: Optional[RecordStore] = None,
    ):
        if message_store is None:
            raise ConfigurationError(
                code="MISSING_MESSAGE_STORE",
                message="Message storage is required for ChatService",
                http_status=500,
            )
        for store in (message_store, request_store):
            if store is not None and not isinstance(store, RecordStore):
                raise ConfigurationError(
                    code="INCOMPLETE_STORE",
                    message=f"{type(store).__name__} does not implement append/clear/read",
                    http_status=500,
                )
        self._messages = message_store
        self._requests = request_store
        self._llm = llm_client
        self._prompts = prompts or PromptLoader()

    async def process_turn(self, content: str, role: str = "user") -> Dict[str, Any]:
        """处理一条用户消息并返回助手回复。

        Args:
            content: 用户消息内容，不能为空
            role: 消息角色，默认 "user"

        Returns:
            {content, role: "assistant", timestamp}

        Raises:
            ValidationError: 内容为空或角色非法，此时不会写入任何存储。
            LLMCallError: LLM 调用失败，已写入的用户消息不会回滚。
            InvalidLLMResponseError: 补全结果中取不到回复内容。
        """
        self._validate_content(content)
        self._validate_role(role)
        start_time = time.time()
        log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}"}

        # 1. 先写入用户消息
        user_rec = await self._messages.append(
            Turn(role=role, content=content, timestamp=utcnow_iso()).to_record()
        )
        self._log(
            logging.INFO,
            "Stored user message",
            log_ctx,
            message_id=user_rec.get("id"),
            preview=content[:50] + ("..." if len(content) > 50 else ""),
        )

        # 2. 构造上下文并调用 LLM
        context = await self._build_context(content, role, log_ctx)
        completion = await self._call_llm(context, log_ctx)
        reply = self._extract_reply(completion)

        # 3. 写入助手消息
        assistant_rec = await self._messages.append(
            Turn(role="assistant", content=reply, timestamp=utcnow_iso()).to_record()
        )
        self._log(
            logging.INFO,
            "Completed chat turn",
            log_ctx,
            user_message_id=user_rec.get("id"),
            assistant_message_id=assistant_rec.get("id"),
            elapsed_seconds=round(time.time() - start_time, 2),
        )
        return {"content": reply, "role": "assistant", "timestamp": assistant_rec["timestamp"]}

    async def add_raw_turn(self, data: Dict[str, Any]) -> Record:
        """直接写入一条外部来源的消息，不调用 LLM。"""
        if not isinstance(data, dict):
            raise ValidationError(code="INVALID_MESSAGE", message="Message data must be an object")
        content = data.get("content")
        self._validate_content(content)
        role = data.get("role") or "user"
        self._validate_role(role)
        turn = Turn(role=role, content=content, timestamp=data.get("timestamp") or utcnow_iso())
        return await self._messages.append(turn.to_record())

    async def get_all_turns(self, limit: Optional[int] = None) -> List[Record]:
        # 展示用，始终按时间正序
        return await self._messages.read(limit, reverse=False)

    async def list_requests(self, limit: Optional[int] = None) -> List[Record]:
        """请求日志，按从新到旧返回，未配置请求日志存储时为空。"""
        if self._requests is None:
            return []
        return await self._requests.read(limit, reverse=True)

    async def reset_conversation(self) -> List[Record]:
        """清空消息与请求日志，再写入一条欢迎消息，返回清空后的消息列表。

        欢迎消息加载或写入失败时只记录日志，依然返回当前（可能为空的）消息列表。
        """
        log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}"}
        # 尚未落盘的请求日志必须在清空之前写完
        await self._llm.drain()

        clears = [self._messages.clear()]
        if self._requests is not None:
            clears.append(self._requests.clear())
        await asyncio.gather(*clears)
        self._log(logging.INFO, "Cleared conversation", log_ctx, cleared_requests=self._requests is not None)

        try:
            welcome = await self._prompts.load(WELCOME_PROMPT)
            if welcome.strip():
                await self._messages.append(
                    Turn(role="assistant", content=welcome, timestamp=utcnow_iso()).to_record()
                )
                self._log(logging.INFO, "Initial welcome message added", log_ctx)
        except (PromptNotFoundError, StorageError) as e:
            self._log(logging.ERROR, "Error adding initial welcome message", log_ctx, error=e.message)
        return await self.get_all_turns()

    # ---- 辅助方法 ----

    async def _build_context(self, content: str, role: str, log_ctx: Dict[str, Any]) -> List[ChatMessage]:
        """system prompt + 全部历史（已包含刚写入的用户消息）。

        system prompt 加载失败时不中断本轮对话：去掉 system prompt，
        并在历史末尾再内联追加一次新消息。
        """
        try:
            system_prompt = await self._prompts.load(SYSTEM_PROMPT)
        except PromptNotFoundError as e:
            self._log(logging.WARNING, "System prompt unavailable, continuing without it", log_ctx, error=e.message)
            history = await self._history()
            history.append(ChatMessage(role=role, content=content))
            return history

        return [ChatMessage(role="system", content=system_prompt)] + await self._history()

    async def _history(self) -> List[ChatMessage]:
        records = await self._messages.read()
        return [Turn.from_record(r).to_message() for r in records]

    async def _call_llm(self, context: List[ChatMessage], log_ctx: Dict[str, Any]) -> Completion:
        self._log(logging.INFO, "Calling LLM API", log_ctx, message_count=len(context))
        try:
            completion = await self._llm.send_message(context)
        except EmptyCompletionError as e:
            self._log(logging.ERROR, "Invalid response from LLM service", log_ctx, error=e.message)
            raise InvalidLLMResponseError(
                code="INVALID_LLM_RESPONSE",
                message=f"Invalid response from LLM service: {e.message}",
                http_status=502,
                cause=e.code,
            )
        except BusinessError as e:
            self._log(logging.ERROR, "Error in LLM API call", log_ctx, error=e.message)
            raise LLMCallError(
                code="LLM_CALL_FAILED",
                message=f"LLM API call failed: {e.message}",
                http_status=502,
                cause=e.code,
                **e.extra,
            )
        except Exception as e:
            # 非业务异常多半是客户端实现的缺陷，保留 traceback 和异常链
            logger.exception(
                "Unexpected error in LLM API call",
                extra={"extra": {**log_ctx, "error_type": type(e).__name__}},
            )
            raise LLMCallError(
                code="LLM_CALL_FAILED",
                message=f"LLM API call failed: {e}",
                http_status=502,
                cause=type(e).__name__,
            ) from e
        self._log(logging.INFO, "LLM API response received", log_ctx, model=getattr(completion, "model", None))
        return completion

    @staticmethod
    def _extract_reply(completion: Completion) -> str:
        try:
            content = completion.choices[0].message.content
        except (AttributeError, IndexError, TypeError):
            content = None
        if not isinstance(content, str) or not content:
            raise InvalidLLMResponseError(
                code="INVALID_LLM_RESPONSE",
                message="Invalid response from LLM service",
                http_status=502,
            )
        return content

    @staticmethod
    def _validate_content(content: Any) -> None:
        if not content or not isinstance(content, str):
            raise ValidationError(code="CONTENT_REQUIRED", message="Message content is required")

    @staticmethod
    def _validate_role(role: Any) -> None:
        if role not in ROLES:
            raise ValidationError(
                code="INVALID_ROLE",
                message=f"Role must be one of: {', '.join(ROLES)}",
                role=role,
            )

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})

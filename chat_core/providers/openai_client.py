"""OpenAI 兼容的 chat/completions 适配器。

接口约定：
- URL: 配置中的 LLM_API_URL（完整的 chat/completions 地址）
- 认证: Authorization: Bearer <LLM_KEY>
- 请求体: {messages, model, ...options}
- 响应体: {choices: [{message: {role, content}}], usage?, ...}

本实现只做传输与结构转换，不解释消息语义，也不重试。
每次成功调用后，如果构造时传入了请求日志存储，会在后台任务里写一条
请求日志；写入失败只记录日志，不影响本次调用结果。
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence, Set

import httpx

from chat_core.domain.exceptions import (
    ApiError,
    ConfigurationError,
    EmptyCompletionError,
    NetworkError,
    RateLimitError,
)
from chat_core.domain.models import ChatChoice, ChatMessage, ChatUsage, Completion, utcnow_iso
from chat_core.domain.store import RecordStore
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.base import messages_to_payload
from chat_core.providers.registry import ADDITIONAL_MODEL, DEFAULT_MODEL, build_provider_config


TITLE_WORDS = 5


class OpenAICompatibleClient:
    """OpenAI 兼容上游的客户端实现。"""

    name = "openai-compatible"

    def __init__(self, cfg, request_store: Optional[RecordStore] = None):
        api_key = getattr(cfg, "llm_key", None)
        if not api_key:
            raise ConfigurationError(code="MISSING_API_KEY", message="LLM API key is required", http_status=500)
        self._api_key = api_key
        self._provider = build_provider_config(cfg, name=self.name)
        self._timeout = getattr(cfg, "http_timeout", 30.0)
        self._request_store = request_store
        self._pending: Set[asyncio.Task] = set()

    @property
    def model(self) -> str:
        return self._provider.resolve(DEFAULT_MODEL).provider_model

    @property
    def additional_model(self) -> Optional[str]:
        if not self._provider.has_additional_model:
            return None
        return self._provider.resolve(ADDITIONAL_MODEL).provider_model

    # ---- 补全调用 ----

    async def send_message(
        self,
        messages: Sequence[ChatMessage],
        options: Optional[Dict[str, Any]] = None,
    ) -> Completion:
        body = self._build_payload(messages, options)
        logger.debug("Sending request to LLM API", extra={"extra": {"request": body}})
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                resp = await client.post(
                    self._provider.api_url,
                    json=body,
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            logger.error("Error calling LLM API", extra={"extra": {"error": str(e), "model": body["model"]}})
            raise NetworkError(
                code="NETWORK_ERROR",
                message=f"Failed to get LLM response: {e}",
                http_status=502,
            )

        if resp.status_code == 429:
            raise RateLimitError(
                code="RATE_LIMIT",
                message="Failed to get LLM response: upstream rate limit",
                http_status=502,
                upstream_status=resp.status_code,
                upstream_body=resp.text,
            )
        if not 200 <= resp.status_code < 300:
            logger.error(
                "LLM API returned an error status",
                extra={"extra": {"status": resp.status_code, "body": resp.text}},
            )
            raise ApiError(
                code="API_ERROR",
                message=f"Failed to get LLM response: status {resp.status_code}",
                http_status=502,
                upstream_status=resp.status_code,
                upstream_body=resp.text,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise EmptyCompletionError(
                code="MALFORMED_COMPLETION",
                message=f"Empty or malformed completion: {e}",
                http_status=502,
                upstream_status=resp.status_code,
            )
        logger.debug("LLM API response received", extra={"extra": {"response": data}})

        self._schedule_request_log(body, data)
        return self._parse_response(data, body["model"])

    async def send_message_with_additional_model(
        self,
        messages: Sequence[ChatMessage],
        options: Optional[Dict[str, Any]] = None,
    ) -> Completion:
        opts = dict(options or {})
        opts["model"] = self._provider.resolve(ADDITIONAL_MODEL).provider_model
        return await self.send_message(messages, opts)

    async def ask(self, content: str, options: Optional[Dict[str, Any]] = None) -> str:
        """单条用户消息，直接返回第一条候选的文本。"""

        completion = await self.send_message([ChatMessage(role="user", content=content)], options)
        return completion.content

    async def ask_with_additional_model(self, content: str, options: Optional[Dict[str, Any]] = None) -> str:
        completion = await self.send_message_with_additional_model(
            [ChatMessage(role="user", content=content)], options
        )
        return completion.content

    async def continue_conversation(
        self,
        conversation: Sequence[ChatMessage],
        new_message: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """在已有对话后追加一条用户消息并调用，返回追加了回复的新对话副本。"""

        messages: List[ChatMessage] = list(conversation)
        messages.append(ChatMessage(role="user", content=new_message))
        completion = await self.send_message(messages, options)
        messages.append(completion.choices[0].message)
        return {"conversation": messages, "response": completion}

    async def drain(self) -> None:
        """等待所有后台请求日志写入完成。"""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ---- 请求日志 ----

    def _schedule_request_log(self, request: Dict[str, Any], response: Any) -> None:
        if self._request_store is None:
            return
        task = asyncio.create_task(self._store_request(request, response))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _store_request(self, request: Dict[str, Any], response: Any) -> None:
        try:
            await self._request_store.append(
                {
                    "title": request_title(request),
                    "content": {"request": request, "response": response},
                    "timestamp": utcnow_iso(),
                }
            )
        except Exception as e:
            # 请求日志是尽力而为的，不能让主调用失败
            logger.error("Error storing LLM request", extra={"extra": {"error": str(e)}})

    # ---- 辅助方法 ----

    def _build_payload(self, messages: Sequence[ChatMessage], options: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        opts = dict(options or {})
        model = opts.pop("model", None) or self.model
        return {"messages": messages_to_payload(messages), "model": model, **opts}

    def _parse_response(self, data: Any, model: str) -> Completion:
        raw_choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(raw_choices, list) or not raw_choices:
            raise EmptyCompletionError(
                code="EMPTY_COMPLETION",
                message="Empty or malformed completion: no choices",
                http_status=502,
            )
        choices: List[ChatChoice] = []
        for i, ch in enumerate(raw_choices):
            msg = ch.get("message") if isinstance(ch, dict) else None
            if not isinstance(msg, dict) or not isinstance(msg.get("content"), str):
                raise EmptyCompletionError(
                    code="MALFORMED_COMPLETION",
                    message=f"Empty or malformed completion: choice {i} has no message content",
                    http_status=502,
                )
            cm = ChatMessage(role=msg.get("role") or "assistant", content=msg["content"])
            choices.append(ChatChoice(index=ch.get("index", i), message=cm, finish_reason=ch.get("finish_reason")))
        usage = None
        usage_raw = data.get("usage")
        # usage 是可选字段，非对象时当作缺失
        if isinstance(usage_raw, dict) and usage_raw:
            usage = ChatUsage(
                prompt_tokens=usage_raw.get("prompt_tokens", 0),
                completion_tokens=usage_raw.get("completion_tokens", 0),
                total_tokens=usage_raw.get("total_tokens", 0),
            )
        return Completion(model=model, choices=choices, usage=usage, raw=data)


def request_title(request: Dict[str, Any]) -> str:
    """用请求中最后一条用户消息的前几个词作为日志标题，截断时加 "..."。"""

    user_messages = [m for m in request.get("messages", []) if m.get("role") == "user"]
    last = (user_messages[-1].get("content") or "") if user_messages else ""
    words = " ".join(last.split(" ")[:TITLE_WORDS])
    return words + ("..." if len(last) > len(words) else "")

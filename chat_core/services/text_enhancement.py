"""文本润色功能。"""

from typing import Any, Dict, List

from chat_core.domain.exceptions import BusinessError, UpstreamError, ValidationError
from chat_core.domain.models import ChatMessage, Completion, utcnow_iso
from chat_core.infrastructure.logging.logger import logger
from chat_core.prompts import PromptLoader
from chat_core.providers.base import LLMClient


ENHANCEMENT_PROMPT = "text-enhancement"


class TextEnhancementService:
    def __init__(self, llm_client: LLMClient, prompts: PromptLoader | None = None):
        self._llm = llm_client
        self._prompts = prompts or PromptLoader()

    async def enhance_text(self, original_text: str) -> Dict[str, Any]:
        """用 LLM 润色一段文本。

        Returns:
            {success, original_text, enhanced_text, timestamp}
        """
        if not isinstance(original_text, str) or not original_text.strip():
            raise ValidationError(code="TEXT_REQUIRED", message="Valid text content is required for enhancement")
        try:
            system_prompt = await self._prompts.load(ENHANCEMENT_PROMPT)
            completion = await self._llm.send_message(self._build_messages(system_prompt, original_text))
            enhanced = self._extract_content(completion)
        except BusinessError as e:
            logger.error("Error enhancing text", extra={"extra": {"error": e.message, "code": e.code}})
            raise UpstreamError(
                code="TEXT_ENHANCEMENT_FAILED",
                message=f"Text enhancement failed: {e.message}",
                http_status=502,
                cause=e.code,
            )
        return {
            "success": True,
            "original_text": original_text.strip(),
            "enhanced_text": enhanced.strip(),
            "timestamp": utcnow_iso(),
        }

    @staticmethod
    def _build_messages(system_prompt: str, original_text: str) -> List[ChatMessage]:
        return [
            ChatMessage(role="system", content=system_prompt),
            ChatMessage(role="user", content=original_text.strip()),
        ]

    @staticmethod
    def _extract_content(completion: Completion) -> str:
        if not completion or not completion.choices or completion.choices[0].message is None:
            raise UpstreamError(code="INVALID_LLM_RESPONSE", message="Invalid response from LLM service", http_status=502)
        return completion.choices[0].message.content

"""商品评论摘要功能。

把多条评论整理成带评分的文本，交给 LLM 生成一段 HTML 摘要，
同时提供评分分布统计和按评分/情感筛选的工具方法。
"""

import re
from typing import Any, Dict, List, Optional

from chat_core.domain.exceptions import BusinessError, UpstreamError, ValidationError
from chat_core.domain.models import ChatMessage
from chat_core.infrastructure.logging.logger import logger
from chat_core.infrastructure.storage.debug_store import DebugStore
from chat_core.prompts import PromptLoader
from chat_core.providers.base import LLMClient, messages_to_payload


SUMMARY_PROMPT = "review-summary"
SENTIMENTS = ("positive", "negative", "mixed")

_FENCE_RE = re.compile(r"```html\n?|```\n?")


class ReviewSummaryService:
    def __init__(
        self,
        llm_client: LLMClient,
        prompts: Optional[PromptLoader] = None,
        debug_store: Optional[DebugStore] = None,
    ):
        self._llm = llm_client
        self._prompts = prompts or PromptLoader()
        self._debug = debug_store

    async def generate_summary(self, reviews: List[Dict[str, Any]]) -> str:
        """生成评论摘要（HTML 片段）。"""
        self.validate_reviews(reviews)
        base_prompt = await self._prompts.load(SUMMARY_PROMPT)
        prompt = f"{base_prompt}\n\n{self.format_reviews(reviews)}"
        return self._clean_summary(await self._request_summary(prompt))

    async def _request_summary(self, prompt: str) -> str:
        messages = [ChatMessage(role="user", content=prompt)]
        try:
            completion = await self._llm.send_message(messages)
        except BusinessError as e:
            logger.error("Error requesting AI summary", extra={"extra": {"error": e.message}})
            raise UpstreamError(
                code="SUMMARY_FAILED",
                message=f"Failed to generate summary: {e.message}",
                http_status=502,
                cause=e.code,
            )

        if self._debug is not None:
            self._debug.store(
                {
                    "request": {"messages": messages_to_payload(messages), "prompt": prompt},
                    "response": completion.raw,
                }
            )

        content = completion.choices[0].message.content if completion.choices else None
        if not content or not isinstance(content, str):
            raise UpstreamError(
                code="SUMMARY_FAILED",
                message="Failed to generate summary: No valid content in AI response",
                http_status=502,
            )
        return content

    @staticmethod
    def _clean_summary(response: str) -> str:
        summary = _FENCE_RE.sub("", response).strip()
        if not summary:
            raise UpstreamError(code="EMPTY_SUMMARY", message="Empty summary received from AI", http_status=502)
        return summary

    @staticmethod
    def validate_reviews(reviews: Any) -> None:
        if not isinstance(reviews, list):
            raise ValidationError(code="INVALID_REVIEWS", message="Reviews must be an array")
        if not reviews:
            raise ValidationError(code="INVALID_REVIEWS", message="At least one review is required")
        for review in reviews:
            text = review.get("text") if isinstance(review, dict) else None
            rating = review.get("rating") if isinstance(review, dict) else None
            if (
                not text
                or not isinstance(text, str)
                or not isinstance(rating, int)
                or isinstance(rating, bool)
                or not 1 <= rating <= 5
            ):
                raise ValidationError(
                    code="INVALID_REVIEWS",
                    message="All reviews must have valid text and rating (1-5)",
                )

    @staticmethod
    def format_reviews(reviews: List[Dict[str, Any]]) -> str:
        lines = []
        for i, review in enumerate(reviews, start=1):
            sentiment = f" ({review['sentiment']})" if review.get("sentiment") else ""
            lines.append(f'Review {i} - Rating: {review["rating"]}/5{sentiment}\n"{review["text"]}"\n')
        return "\n".join(lines)

    @staticmethod
    def analyze_distribution(reviews: List[Dict[str, Any]]) -> Dict[str, Any]:
        rating_counts = {r: 0 for r in range(1, 6)}
        sentiment_counts = {s: 0 for s in SENTIMENTS}
        total = 0
        for review in reviews:
            total += review["rating"]
            rating_counts[review["rating"]] += 1
            sentiment = review.get("sentiment")
            if sentiment:
                sentiment_counts[sentiment] = sentiment_counts.get(sentiment, 0) + 1
        return {
            "total_reviews": len(reviews),
            "average_rating": round(total / len(reviews), 1) if reviews else 0,
            "rating_counts": rating_counts,
            "sentiment_counts": sentiment_counts,
        }

    def filter_by_rating(self, reviews: List[Dict[str, Any]], min_rating: int) -> List[Dict[str, Any]]:
        self.validate_reviews(reviews)
        if not isinstance(min_rating, int) or isinstance(min_rating, bool) or not 1 <= min_rating <= 5:
            raise ValidationError(
                code="INVALID_RATING",
                message="Minimum rating must be an integer between 1 and 5",
            )
        return [r for r in reviews if r["rating"] >= min_rating]

    def filter_by_sentiment(self, reviews: List[Dict[str, Any]], sentiment: str) -> List[Dict[str, Any]]:
        self.validate_reviews(reviews)
        if sentiment not in SENTIMENTS:
            raise ValidationError(
                code="INVALID_SENTIMENT",
                message=f"Sentiment type must be one of: {', '.join(SENTIMENTS)}",
            )
        return [r for r in reviews if r.get("sentiment") == sentiment]

import pytest

from chat_core.domain.exceptions import NetworkError, UpstreamError, ValidationError
from chat_core.domain.models import ChatChoice, ChatMessage, Completion
from chat_core.prompts import PromptLoader
from chat_core.services.text_enhancement import TextEnhancementService


class FakeLLM:
    name = "fake"

    def __init__(self, reply="  Better text.  ", exc=None):
        self.reply = reply
        self.exc = exc
        self.calls = []

    async def send_message(self, messages, options=None):
        self.calls.append([m.to_payload() for m in messages])
        if self.exc is not None:
            raise self.exc
        msg = ChatMessage(role="assistant", content=self.reply)
        return Completion(model="fake-model", choices=[ChatChoice(index=0, message=msg)])

    async def drain(self):
        pass


@pytest.fixture
def prompts(tmp_path):
    d = tmp_path / "prompts"
    d.mkdir()
    (d / "text-enhancement.prompt.xml").write_text("Improve the text.", encoding="utf-8")
    return PromptLoader(d)


@pytest.mark.asyncio
async def test_enhance_text(prompts):
    llm = FakeLLM()
    service = TextEnhancementService(llm, prompts=prompts)

    result = await service.enhance_text("  bad text  ")

    assert result["success"] is True
    assert result["original_text"] == "bad text"
    assert result["enhanced_text"] == "Better text."
    assert result["timestamp"]
    assert llm.calls[0] == [
        {"role": "system", "content": "Improve the text."},
        {"role": "user", "content": "bad text"},
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", None, 42])
async def test_enhance_text_requires_text(prompts, text):
    llm = FakeLLM()
    with pytest.raises(ValidationError):
        await TextEnhancementService(llm, prompts=prompts).enhance_text(text)
    assert llm.calls == []


@pytest.mark.asyncio
async def test_enhance_text_wraps_upstream_failure(prompts):
    llm = FakeLLM(exc=NetworkError(code="NETWORK_ERROR", message="down", http_status=502))
    with pytest.raises(UpstreamError) as exc:
        await TextEnhancementService(llm, prompts=prompts).enhance_text("text")
    assert exc.value.message.startswith("Text enhancement failed")


@pytest.mark.asyncio
async def test_enhance_text_missing_prompt(tmp_path):
    empty = tmp_path / "empty"
    empty.mkdir()
    with pytest.raises(UpstreamError) as exc:
        await TextEnhancementService(FakeLLM(), prompts=PromptLoader(empty)).enhance_text("text")
    assert exc.value.extra["cause"] == "PROMPT_NOT_FOUND"

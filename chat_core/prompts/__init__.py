"""提示词加载工具。

按逻辑名读取提示词文本（system、welcome 以及各功能专用提示词），
默认从本目录读取，也可以通过 prompts_dir 指向自定义目录。
未登记的逻辑名会被当作文件名直接查找。
"""

import asyncio
from pathlib import Path
from typing import Mapping, Optional

from chat_core.domain.exceptions import PromptNotFoundError


PROMPTS_DIR = Path(__file__).resolve().parent

PROMPT_FILES: Mapping[str, str] = {
    "system": "system.prompt.xml",
    "welcome": "initial-message.html",
    "text-enhancement": "text-enhancement.prompt.xml",
    "review-summary": "review-summary.prompt.xml",
}


def load_prompt(name: str, prompts_dir: Optional[Path] = None) -> str:
    """根据逻辑名加载提示词文本，文件缺失、不可读或不是合法 UTF-8 时抛出 PromptNotFoundError。"""

    fname = (prompts_dir or PROMPTS_DIR) / PROMPT_FILES.get(name, name)
    try:
        return fname.read_text(encoding="utf-8")
    except (OSError, UnicodeError) as e:
        raise PromptNotFoundError(
            code="PROMPT_NOT_FOUND",
            message=f'Failed to load prompt "{name}": {e}',
            http_status=500,
            path=str(fname),
        )


class PromptLoader:
    """异步包装，供对话服务在事件循环中使用。"""

    def __init__(self, prompts_dir: str | Path | None = None):
        self.prompts_dir = Path(prompts_dir).expanduser().resolve() if prompts_dir else PROMPTS_DIR

    async def load(self, name: str) -> str:
        return await asyncio.to_thread(load_prompt, name, self.prompts_dir)

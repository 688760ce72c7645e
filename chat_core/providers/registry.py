"""Provider 与模型配置。

本模块将“逻辑模型名”与“具体模型 ID”解耦：

- 逻辑名（logical_name）：代码里使用的统一名称，"default" 或 "additional"。
- provider_model：上游实际接受的模型 ID，来自配置 LLM_MODEL / LLM_ADDITIONAL_MODEL。

副模型未配置时，按 "additional" 解析会回退到主模型，不报错。"""

from dataclasses import dataclass
from typing import Dict

from chat_core.domain.exceptions import ConfigurationError
from chat_core.infrastructure.logging.logger import logger


DEFAULT_MODEL = "default"
ADDITIONAL_MODEL = "additional"


@dataclass
class ModelConfig:
    """单个逻辑模型的配置。"""

    logical_name: str
    provider_model: str


@dataclass
class ProviderConfig:
    """上游端点的整体配置。"""

    name: str
    api_url: str
    models: Dict[str, ModelConfig]

    def resolve(self, logical_name: str) -> ModelConfig:
        """按逻辑名取模型，缺失时回退到主模型。"""

        cfg = self.models.get(logical_name)
        if cfg is None:
            logger.info(
                f"No {logical_name} model configured, using default model instead",
                extra={"extra": {"provider": self.name}},
            )
            return self.models[DEFAULT_MODEL]
        return cfg

    @property
    def has_additional_model(self) -> bool:
        return ADDITIONAL_MODEL in self.models


def build_provider_config(settings, name: str = "openai-compatible") -> ProviderConfig:
    """根据配置构造 ProviderConfig，缺少地址或主模型时抛出 ConfigurationError。"""

    api_url = getattr(settings, "llm_api_url", None)
    model = getattr(settings, "llm_model", None)
    if not api_url:
        raise ConfigurationError(code="MISSING_API_URL", message="LLM API URL is required", http_status=500)
    if not model:
        raise ConfigurationError(code="MISSING_MODEL", message="LLM model is required", http_status=500)

    models = {DEFAULT_MODEL: ModelConfig(logical_name=DEFAULT_MODEL, provider_model=model)}
    additional = getattr(settings, "llm_additional_model", None)
    if additional:
        models[ADDITIONAL_MODEL] = ModelConfig(logical_name=ADDITIONAL_MODEL, provider_model=additional)
    else:
        logger.warning("No additional model configured, using default model only")
    return ProviderConfig(name=name, api_url=api_url, models=models)

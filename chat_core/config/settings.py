"""配置管理模块。

支持从初始化参数、环境变量、.env 以及 config.yaml 加载配置，优先级依次降低。
配置只在启动时构造一次（load_settings），再显式传给存储、LLM Client 和
对话服务，不提供模块级全局实例。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type

import yaml
from pydantic import Field, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


CONFIG_FILE_ENV = "CHAT_CORE_CONFIG_FILE"


def _config_file_candidates() -> list[Path]:
    candidates = []
    explicit = os.getenv(CONFIG_FILE_ENV)
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])
    return candidates


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    seen: set[Path] = set()
    for path in _config_file_candidates():
        if path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class YamlConfigSource(PydanticBaseSettingsSource):
    """把 config.yaml 中的顶层键映射到同名字段。"""

    def __init__(self, settings_cls: Type[BaseSettings]):
        super().__init__(settings_cls)
        self._data = _load_config_from_yaml()

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        return self._data.get(field_name), field_name, False

    def __call__(self) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for field_name, field in self.settings_cls.model_fields.items():
            value, key, _ = self.get_field_value(field, field_name)
            if value is not None:
                values[key] = value
        return values


class Settings(BaseSettings):
    """运行配置。

    LLM 相关字段沿用 LLM_KEY / LLM_API_URL / LLM_MODEL / LLM_ADDITIONAL_MODEL
    这组环境变量名（大小写不敏感）。
    """

    # ---- LLM ----
    llm_key: Optional[str] = Field(default=None, description="LLM API 密钥")
    llm_api_url: Optional[str] = Field(default=None, description="chat/completions 完整地址")
    llm_model: Optional[str] = Field(default=None, description="主模型 ID")
    llm_additional_model: Optional[str] = Field(default=None, description="可选的副模型 ID")
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 存储 ----
    storage_type: str = Field(default="file", description="存储实现类型")
    storage_root: str = Field(default=".storage", description="存储根目录")
    messages_file: str = Field(default="messages.json", description="对话消息文件名")
    requests_file: str = Field(default="requests.json", description="LLM 请求日志文件名")
    debug_file: str = Field(default="review-summarizer-debug.json", description="评论摘要调试快照文件名")

    # ---- 提示词 ----
    prompts_dir: Optional[str] = Field(default=None, description="自定义提示词目录，默认使用包内置目录")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_level: str = Field(default="INFO", description="日志级别")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("storage_type")
    @classmethod
    def normalize_storage_type(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.strip().upper()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSource(settings_cls),
            file_secret_settings,
        )

    @property
    def storage_path(self) -> Path:
        return Path(self.storage_root).expanduser().resolve()


def load_settings(**overrides: Any) -> Settings:
    """构造一份配置，overrides 的优先级最高。"""

    return Settings(**overrides)

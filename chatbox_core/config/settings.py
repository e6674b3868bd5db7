"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
优先级：初始化参数 > 环境变量 > .env > config.yaml > secrets。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ERROR_TEXT = "Error: Failed to fetch response."
DEFAULT_STATUS_ERROR_TEXT = "Error: Unable to connect to server."


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CHATBOX_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
        Path(__file__).resolve().parents[1] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
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


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 后端接口 ----
    chat_base_url: str = Field(
        default="http://localhost:8000",
        description="聊天后端基础URL",
    )
    chat_path: str = Field(default="/chat", description="聊天接口路径")
    http_timeout: float = Field(default=30.0, ge=1.0, description="连接/写入超时时间（秒）")
    stream_read_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="两次片段之间允许的最长等待时间（秒），为空表示不限制",
    )
    trust_env: bool = Field(default=False, description="是否读取系统代理等环境配置")

    # ---- 流式解析 ----
    terminator: str = Field(default="[END]", min_length=1, description="内容结束标记")
    detect_split_terminator: bool = Field(
        default=False,
        description="是否使用滑动窗口检测跨片段拆分的结束标记",
    )

    # ---- 展示文案 ----
    error_text: str = Field(default=DEFAULT_ERROR_TEXT, description="连接或读取失败时助手消息的固定内容")
    status_error_text: str = Field(
        default=DEFAULT_STATUS_ERROR_TEXT,
        description="服务端返回非 2xx 或空响应体时助手消息的固定内容",
    )
    pending_text: str = Field(default="...", description="助手消息尚无内容时的占位文本")

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

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("chat_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("chat_base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("chat_path")
    @classmethod
    def validate_chat_path(cls, v: str) -> str:
        return v if v.startswith("/") else f"/{v}"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v!r}")
        return level

    @property
    def chat_url(self) -> str:
        return f"{self.chat_base_url}{self.chat_path}"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()

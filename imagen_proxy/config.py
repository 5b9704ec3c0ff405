"""
配置管理模块
负责从环境变量读取配置
"""
import os
import logging
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

from imagen_proxy.errors import ConfigurationError

# 加载环境变量
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_LOCATION = "us-central1"
DEFAULT_MODEL = "imagen-3.0-generate-001"
DEFAULT_ASPECT_RATIO = "1:1"

MYMEMORY_URL = "https://api.mymemory.translated.net/get"
LIBRETRANSLATE_URL = "https://libretranslate.com/translate"

CREDENTIALS_CLEANUP_STRATEGIES = ("global", "trailing")


@dataclass
class Settings:
    """服务配置"""
    # Google Cloud 配置
    project_id: Optional[str] = None
    location: str = DEFAULT_LOCATION
    credentials_raw: Optional[str] = None
    credentials_cleanup: str = "global"
    token_cache_enabled: bool = False

    # 会话配置
    auth_secret: Optional[str] = None

    # 超时（秒）
    generation_timeout: float = 300.0
    translation_timeout: float = 10.0

    # 翻译服务
    mymemory_url: str = MYMEMORY_URL
    libretranslate_url: str = LIBRETRANSLATE_URL

    # 服务配置
    port: int = 8080

    @property
    def has_credentials(self) -> bool:
        return bool(self.credentials_raw)


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    """
    读取环境变量并清理托管平台带来的多余字符

    托管平台会在值末尾追加字面量 "\\n"，这里一并去掉
    """
    value = os.getenv(name)
    if value is None:
        return default

    value = value.strip()
    if value.endswith("\\n"):
        value = value[:-2].rstrip()

    return value or default


def read_settings() -> Settings:
    """
    从环境变量读取配置

    每次调用都重新读取，凭证因此总是按请求解析，不做缓存
    """
    cleanup = (_getenv("GOOGLE_CREDENTIALS_CLEANUP", "global") or "global").lower()
    if cleanup not in CREDENTIALS_CLEANUP_STRATEGIES:
        raise ConfigurationError(
            f"GOOGLE_CREDENTIALS_CLEANUP 必须是 {', '.join(CREDENTIALS_CLEANUP_STRATEGIES)} 之一，当前为: {cleanup}"
        )

    try:
        generation_timeout = float(_getenv("GENERATION_TIMEOUT", "300"))
        translation_timeout = float(_getenv("TRANSLATION_TIMEOUT", "10"))
        port = int(_getenv("PORT", "8080"))
    except ValueError as e:
        raise ConfigurationError(f"配置项格式错误: {e}") from e

    # GOOGLE_CREDENTIALS 原样保留，清理交给凭证解析器
    return Settings(
        project_id=_getenv("GOOGLE_PROJECT_ID"),
        location=_getenv("GOOGLE_LOCATION", DEFAULT_LOCATION),
        credentials_raw=os.getenv("GOOGLE_CREDENTIALS") or None,
        credentials_cleanup=cleanup,
        token_cache_enabled=(_getenv("GOOGLE_TOKEN_CACHE", "false") or "").lower() == "true",
        auth_secret=_getenv("AUTH_SECRET"),
        generation_timeout=generation_timeout,
        translation_timeout=translation_timeout,
        mymemory_url=_getenv("MYMEMORY_URL", MYMEMORY_URL),
        libretranslate_url=_getenv("LIBRETRANSLATE_URL", LIBRETRANSLATE_URL),
        port=port
    )


def vertex_base_url(settings: Settings) -> str:
    """
    构建 Vertex AI 的 base URL

    Raises:
        ConfigurationError: 未配置项目 ID 或区域
    """
    if not settings.project_id or not settings.location:
        raise ConfigurationError("Google Vertex AI credentials not configured")

    return (
        f"https://{settings.location}-aiplatform.googleapis.com/v1"
        f"/projects/{settings.project_id}/locations/{settings.location}"
    )

"""
Google Cloud 凭证解析模块

托管平台的环境变量会把换行符存成字面量 \\n，这里负责清理并解析
GOOGLE_CREDENTIALS
"""
import re
import json
import logging
from typing import Callable, Dict, Optional
from pydantic import BaseModel, ConfigDict, ValidationError

from imagen_proxy.config import Settings, read_settings
from imagen_proxy.errors import ConfigurationError

logger = logging.getLogger(__name__)

ESCAPED_NEWLINE = "\\n"
_UNESCAPED_NEWLINE_SEQUENCE = re.compile(r"(?<!\\)\\n")
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


class ServiceAccountCredential(BaseModel):
    """服务账号凭证，其余字段原样保留"""
    model_config = ConfigDict(extra="allow")

    type: str = "service_account"
    client_email: str
    private_key: str
    project_id: Optional[str] = None
    private_key_id: Optional[str] = None
    token_uri: str = GOOGLE_TOKEN_URI

    def to_info(self) -> Dict[str, object]:
        """转换为 google-auth 接受的字典"""
        return self.model_dump(exclude_none=True)


def _replace_all_escaped_newlines(cleaned: str) -> str:
    # 整个 JSON 中的字面量 \n 都替换为真正的换行符；
    # 前面还有反斜杠的（双重转义）保留，解析后由私钥检查处理
    return _UNESCAPED_NEWLINE_SEQUENCE.sub("\n", cleaned)


def _strip_trailing_escaped_newline(cleaned: str) -> str:
    # 只移除末尾的字面量 \n，私钥中的换行在解析后单独处理
    if cleaned.endswith(ESCAPED_NEWLINE):
        cleaned = cleaned[:-2]
    return cleaned


CLEANUP_STRATEGIES: Dict[str, Callable[[str], str]] = {
    "global": _replace_all_escaped_newlines,
    "trailing": _strip_trailing_escaped_newline,
}


def parse_google_credentials(
    credentials_raw: Optional[str],
    strategy: str = "global"
) -> ServiceAccountCredential:
    """
    清理并解析 GOOGLE_CREDENTIALS

    Args:
        credentials_raw: 原始的环境变量值
        strategy: 清理策略，global 在解析前替换所有字面量 \\n，
            trailing 只移除末尾的字面量 \\n

    Returns:
        ServiceAccountCredential: 解析后的凭证，private_key 中只含真正的换行符

    Raises:
        ConfigurationError: 值为空或解析失败
    """
    if not credentials_raw:
        raise ConfigurationError("GOOGLE_CREDENTIALS environment variable is not set")

    cleanup = CLEANUP_STRATEGIES.get(strategy)
    if cleanup is None:
        raise ConfigurationError(f"未知的凭证清理策略: {strategy}")

    try:
        cleaned = cleanup(credentials_raw.strip())

        # global 策略会在字符串值内部放入真正的换行符，需要允许控制字符
        data = json.loads(cleaned, strict=False)
        if not isinstance(data, dict):
            raise ValueError("credentials must be a JSON object")

        # 私钥中若仍残留字面量 \n（双重转义），再替换一次
        private_key = data.get("private_key")
        if isinstance(private_key, str) and ESCAPED_NEWLINE in private_key:
            data["private_key"] = private_key.replace(ESCAPED_NEWLINE, "\n")

        return ServiceAccountCredential.model_validate(data)
    except (ValueError, ValidationError) as e:
        logger.error(f"解析 GOOGLE_CREDENTIALS 失败 (strategy={strategy}): {e}")
        raise ConfigurationError(f"Failed to parse GOOGLE_CREDENTIALS: {e}") from e


def load_credentials_from_env(settings: Optional[Settings] = None) -> ServiceAccountCredential:
    """从当前环境变量解析凭证（每次调用重新读取）"""
    settings = settings or read_settings()
    return parse_google_credentials(settings.credentials_raw, settings.credentials_cleanup)

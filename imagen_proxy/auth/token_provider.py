"""
Google OAuth2 Access Token 获取模块
"""
import asyncio
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from imagen_proxy.auth.credentials import ServiceAccountCredential
from imagen_proxy.errors import ConfigurationError

logger = logging.getLogger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"

# 提前 5 分钟视为过期
TOKEN_REFRESH_MARGIN = timedelta(minutes=5)


def _utcnow() -> datetime:
    # google-auth 的 expiry 是不带时区的 UTC 时间
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class AccessToken:
    """访问令牌"""
    token: str
    expires_at: Optional[datetime] = None

    def is_expired(self) -> bool:
        if self.expires_at is None:
            return True
        return _utcnow() >= self.expires_at - TOKEN_REFRESH_MARGIN


def normalize_access_token(raw: Any) -> AccessToken:
    """
    统一令牌格式

    令牌获取结果可能是字符串、带 token 键的字典，或带 token 属性的对象
    （例如 google-auth 的 Credentials），在这里统一转换为 AccessToken

    Raises:
        ConfigurationError: 无法从结果中取得令牌
    """
    if isinstance(raw, AccessToken):
        return raw

    expires_at = None
    if isinstance(raw, str):
        token = raw
    elif isinstance(raw, dict):
        token = raw.get("token")
        expires_at = raw.get("expiry")
    else:
        token = getattr(raw, "token", None)
        expires_at = getattr(raw, "expiry", None)

    if not token or not isinstance(token, str):
        raise ConfigurationError("Failed to get access token")

    if isinstance(expires_at, datetime) and expires_at.tzinfo is not None:
        expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
    elif not isinstance(expires_at, datetime):
        expires_at = None

    return AccessToken(token=token, expires_at=expires_at)


def _refresh_service_account(info: Dict[str, Any]) -> service_account.Credentials:
    credentials = service_account.Credentials.from_service_account_info(
        info,
        scopes=[CLOUD_PLATFORM_SCOPE]
    )
    credentials.refresh(GoogleAuthRequest())
    return credentials


async def fetch_google_access_token(credential: ServiceAccountCredential) -> service_account.Credentials:
    """
    使用服务账号凭证获取访问令牌

    google-auth 的刷新是阻塞调用，放到线程中执行

    Returns:
        service_account.Credentials: 已刷新的凭证对象，token 属性即访问令牌
    """
    logger.info(f"正在获取 Google access token: {credential.client_email}")
    return await asyncio.to_thread(_refresh_service_account, credential.to_info())


def credential_fingerprint(credential: ServiceAccountCredential) -> str:
    """凭证指纹，用作令牌缓存的键"""
    digest = hashlib.sha256()
    digest.update(credential.client_email.encode("utf-8"))
    digest.update(b"\0")
    digest.update((credential.private_key_id or "").encode("utf-8"))
    digest.update(b"\0")
    digest.update(credential.private_key.encode("utf-8"))
    return digest.hexdigest()


class TokenCache:
    """
    按凭证指纹缓存访问令牌

    由应用实例持有；令牌距离过期不足 5 分钟时视为失效
    """

    def __init__(self):
        self._tokens: Dict[str, AccessToken] = {}

    def get(self, credential: ServiceAccountCredential) -> Optional[AccessToken]:
        key = credential_fingerprint(credential)
        cached = self._tokens.get(key)
        if cached is None:
            return None
        if cached.is_expired():
            del self._tokens[key]
            return None
        return cached

    def put(self, credential: ServiceAccountCredential, token: AccessToken) -> None:
        # 没有过期时间的令牌无法判断新鲜度，不缓存
        if token.expires_at is None:
            return
        self._tokens[credential_fingerprint(credential)] = token

    def invalidate(self, credential: Optional[ServiceAccountCredential] = None) -> None:
        """清除指定凭证的令牌，不传参数则全部清除"""
        if credential is None:
            self._tokens.clear()
        else:
            self._tokens.pop(credential_fingerprint(credential), None)

    def __len__(self) -> int:
        return len(self._tokens)

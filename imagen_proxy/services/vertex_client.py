"""
Google Cloud 认证 HTTP 客户端
每个请求发送前自动解析凭证并附加 OAuth2 Bearer 令牌
"""
import logging
from typing import Any, AsyncGenerator, Awaitable, Callable, Optional
import httpx

from imagen_proxy.auth.credentials import ServiceAccountCredential, load_credentials_from_env
from imagen_proxy.auth.token_provider import (
    TokenCache,
    fetch_google_access_token,
    normalize_access_token,
)
from imagen_proxy.errors import ConfigurationError

logger = logging.getLogger(__name__)

GENERATION_TIMEOUT = 300.0

CredentialsLoader = Callable[[], ServiceAccountCredential]
TokenFetcher = Callable[[ServiceAccountCredential], Awaitable[Any]]
ClientFactory = Callable[[str], httpx.AsyncClient]


class GoogleBearerAuth(httpx.Auth):
    """
    请求鉴权钩子

    每次请求都重新解析凭证并获取令牌；传入 token_cache 时优先使用缓存的令牌。
    任何一步失败都会在发出请求之前抛出异常。
    """

    def __init__(
        self,
        credentials_loader: Optional[CredentialsLoader] = None,
        token_fetcher: Optional[TokenFetcher] = None,
        token_cache: Optional[TokenCache] = None
    ):
        self.credentials_loader = credentials_loader or load_credentials_from_env
        self.token_fetcher = token_fetcher or fetch_google_access_token
        self.token_cache = token_cache

    async def get_token(self) -> str:
        credential = self.credentials_loader()

        if self.token_cache is not None:
            cached = self.token_cache.get(credential)
            if cached is not None:
                return cached.token

        access_token = normalize_access_token(await self.token_fetcher(credential))

        if self.token_cache is not None:
            self.token_cache.put(credential, access_token)

        return access_token.token

    async def async_auth_flow(self, request: httpx.Request) -> AsyncGenerator[httpx.Request, httpx.Response]:
        token = await self.get_token()
        request.headers["Authorization"] = f"Bearer {token}"
        yield request

    def sync_auth_flow(self, request: httpx.Request):
        raise RuntimeError("GoogleBearerAuth 只支持 httpx.AsyncClient")


def create_google_auth_client(
    base_url: str,
    credentials_loader: Optional[CredentialsLoader] = None,
    token_fetcher: Optional[TokenFetcher] = None,
    token_cache: Optional[TokenCache] = None,
    timeout: float = GENERATION_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> httpx.AsyncClient:
    """
    创建用于 Google Cloud 认证的 HTTP 客户端

    Args:
        base_url: Google Cloud API 的 base URL
        credentials_loader: 凭证来源，默认每次从环境变量解析
        token_fetcher: 令牌获取函数，默认使用 google-auth
        token_cache: 可选的令牌缓存
        timeout: 请求超时（秒），生成请求较慢，默认 300 秒
        transport: 自定义传输层

    Returns:
        httpx.AsyncClient: 配置好的客户端

    Raises:
        ConfigurationError: base_url 为空
    """
    if not base_url:
        raise ConfigurationError("Google Vertex AI credentials not configured")

    return httpx.AsyncClient(
        base_url=base_url,
        timeout=timeout,
        headers={"Content-Type": "application/json"},
        auth=GoogleBearerAuth(credentials_loader, token_fetcher, token_cache),
        transport=transport
    )

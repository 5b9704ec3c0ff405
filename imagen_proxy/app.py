"""
主服务模块
FastAPI 服务器，代理 Vertex AI Imagen 图片生成接口
"""
import logging
import secrets
from contextlib import asynccontextmanager
from functools import partial
from typing import Any, Dict, Optional

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.middleware.sessions import SessionMiddleware

from imagen_proxy import __version__
from imagen_proxy.auth import (
    TokenCache,
    fetch_google_access_token,
    normalize_access_token,
    parse_google_credentials,
    require_session,
)
from imagen_proxy.config import read_settings, vertex_base_url
from imagen_proxy.errors import ImagenProxyError, InvalidArgument
from imagen_proxy.models import ApiResponse, GenerationRequest
from imagen_proxy.services.imagen import DEFAULT_ERROR_MESSAGE, generate_images, list_publisher_models
from imagen_proxy.services.translator import LibreTranslation, MyMemoryTranslation, PromptTranslator
from imagen_proxy.services.vertex_client import ClientFactory, TokenFetcher, create_google_auth_client

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "Vertex AI Imagen Proxy"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info("正在初始化配置...")
    settings = read_settings()

    if not settings.project_id:
        logger.warning("GOOGLE_PROJECT_ID 未设置，生成接口将返回配置错误")
    if not settings.has_credentials:
        logger.warning("GOOGLE_CREDENTIALS 未设置，生成接口将返回配置错误")

    if settings.token_cache_enabled:
        app.state.token_cache = TokenCache()
        logger.info("已启用 access token 缓存")

    yield

    # 关闭时清理资源
    if app.state.token_cache is not None:
        app.state.token_cache.invalidate()
        app.state.token_cache = None
    logger.info("正在关闭服务...")


def _session_secret() -> str:
    secret = read_settings().auth_secret
    if not secret:
        logger.warning("AUTH_SECRET 未设置，使用随机密钥，重启后会话将失效")
        secret = secrets.token_urlsafe(32)
    return secret


# 创建 FastAPI 应用
app = FastAPI(
    title=SERVICE_NAME,
    description="为已登录用户代理 Google Vertex AI Imagen 图片生成请求",
    version=__version__,
    lifespan=lifespan
)
app.state.token_cache = None

app.add_middleware(SessionMiddleware, secret_key=_session_secret())


@app.exception_handler(ImagenProxyError)
async def handle_proxy_error(request: Request, exc: ImagenProxyError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


# 依赖
def get_translator() -> PromptTranslator:
    settings = read_settings()
    return PromptTranslator(
        [
            MyMemoryTranslation(settings.mymemory_url),
            LibreTranslation(settings.libretranslate_url),
        ],
        timeout=settings.translation_timeout
    )


def get_token_fetcher() -> TokenFetcher:
    return fetch_google_access_token


def get_vertex_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Vertex AI 出站传输层，默认由 httpx 自行创建"""
    return None


def get_client_factory(
    request: Request,
    token_fetcher: TokenFetcher = Depends(get_token_fetcher),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_vertex_transport)
) -> ClientFactory:
    settings = read_settings()
    return partial(
        create_google_auth_client,
        token_fetcher=token_fetcher,
        token_cache=request.app.state.token_cache,
        timeout=settings.generation_timeout,
        transport=transport
    )


async def read_generation_request(request: Request, require_image: bool = False) -> GenerationRequest:
    """
    解析并校验生成请求体

    Raises:
        InvalidArgument: 请求体不是 JSON 对象、缺少 prompt，或图生图缺少 imageBase64
    """
    try:
        body = await request.json()
    except ValueError:
        raise InvalidArgument("Request body must be valid JSON")

    if not isinstance(body, dict):
        raise InvalidArgument("Request body must be a JSON object")

    prompt = body.get("prompt")
    if not prompt or not isinstance(prompt, str):
        raise InvalidArgument("Prompt is required and must be a string")

    if require_image and not body.get("imageBase64"):
        raise InvalidArgument("imageBase64 is required for image-to-image")

    try:
        return GenerationRequest.model_validate(body)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise InvalidArgument(f"Invalid field '{field}': {first.get('msg')}")


async def run_generation(
    label: str,
    user: Dict[str, Any],
    generation_request: GenerationRequest,
    client_factory: ClientFactory,
    translator: PromptTranslator,
    image_to_image: bool = False
) -> Dict[str, Any]:
    logger.info(
        f"[{label}] 收到请求: user={user.get('email')}, model={generation_request.model}, "
        f"aspectRatio={generation_request.aspectRatio}, numberOfImages={generation_request.numberOfImages}, "
        f"hasImage={bool(generation_request.imageBase64)}"
    )

    try:
        base_url = vertex_base_url(read_settings())
        async with client_factory(base_url) as client:
            result = await generate_images(
                client,
                generation_request,
                translator,
                image_base64=generation_request.imageBase64 if image_to_image else None
            )
    except ImagenProxyError as e:
        logger.error(f"[{label}] 错误: {e.status_code} {e.message}")
        if e.error is None:
            e.error = {}
        raise
    except Exception as e:
        logger.error(f"[{label}] 错误: {e}", exc_info=True)
        raise ImagenProxyError(str(e) or DEFAULT_ERROR_MESSAGE, status_code=500, error={}) from e

    return ApiResponse(data=result.model_dump()).model_dump()


@app.get("/")
async def root():
    """服务信息"""
    return {
        "service": SERVICE_NAME,
        "version": __version__,
        "endpoints": {
            "generate": "/api/ai/imagen/generate",
            "image_to_image": "/api/ai/imagen/image-to-image",
            "test_auth": "/api/ai/imagen/test-auth",
            "test": "/api/ai/imagen/test",
            "health": "/health"
        }
    }


@app.get("/health")
async def health():
    """健康检查端点"""
    return {"status": "healthy", "service": SERVICE_NAME, "version": __version__}


@app.post("/api/ai/imagen/generate")
async def imagen_generate(
    request: Request,
    user: Dict[str, Any] = Depends(require_session),
    client_factory: ClientFactory = Depends(get_client_factory),
    translator: PromptTranslator = Depends(get_translator)
):
    """文生图"""
    generation_request = await read_generation_request(request)
    return await run_generation("Imagen Generate", user, generation_request, client_factory, translator)


@app.post("/api/ai/imagen/image-to-image")
async def imagen_image_to_image(
    request: Request,
    user: Dict[str, Any] = Depends(require_session),
    client_factory: ClientFactory = Depends(get_client_factory),
    translator: PromptTranslator = Depends(get_translator)
):
    """图生图，imageBase64 必填"""
    generation_request = await read_generation_request(request, require_image=True)
    return await run_generation(
        "Imagen Image-to-Image",
        user,
        generation_request,
        client_factory,
        translator,
        image_to_image=True
    )


@app.get("/api/ai/imagen/test-auth")
async def imagen_test_auth(
    user: Dict[str, Any] = Depends(require_session),
    token_fetcher: TokenFetcher = Depends(get_token_fetcher)
):
    """测试会话与 Google Cloud 认证"""
    settings = read_settings()

    try:
        credential = parse_google_credentials(settings.credentials_raw, settings.credentials_cleanup)
        access_token = normalize_access_token(await token_fetcher(credential))
    except Exception as e:
        logger.error(f"[Imagen Test-Auth] 错误: {e}")
        raise ImagenProxyError("测试失败", status_code=500, error=str(e)) from e

    return ApiResponse(data={
        "user": user,
        "google": {
            "projectId": settings.project_id,
            "location": settings.location,
            "hasCredentials": settings.has_credentials,
            "accessTokenPrefix": access_token.token[:30] + "...",
            "credentialsType": credential.type,
            "clientEmail": credential.client_email
        }
    }).model_dump()


@app.get("/api/ai/imagen/test")
async def imagen_test(
    user: Dict[str, Any] = Depends(require_session),
    client_factory: ClientFactory = Depends(get_client_factory)
):
    """测试 Vertex AI 连通性：列出可用模型"""
    settings = read_settings()

    try:
        async with client_factory(vertex_base_url(settings)) as client:
            models = await list_publisher_models(client)
    except ImagenProxyError as e:
        logger.error(f"[Imagen Test] 错误: {e.message}")
        error = e.error if e.error is not None else e.message
        raise ImagenProxyError(e.message, status_code=500, error=error) from e
    except Exception as e:
        logger.error(f"[Imagen Test] 错误: {e}", exc_info=True)
        raise ImagenProxyError(str(e) or "测试失败", status_code=500, error=str(e)) from e

    return ApiResponse(data={
        "project": settings.project_id,
        "location": settings.location,
        "models": models
    }).model_dump()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=read_settings().port)

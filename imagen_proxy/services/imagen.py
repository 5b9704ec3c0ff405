"""
Vertex AI Imagen 调用模块
负责构建 predict 请求、调用上游并整理返回的图片
"""
import re
import logging
from typing import Any, Dict, List, Optional, Union
import httpx

from imagen_proxy.errors import UpstreamError
from imagen_proxy.models.schemas import GenerationRequest, GenerationResult
from imagen_proxy.services.translator import PromptTranslator

logger = logging.getLogger(__name__)

PREDICT_ENDPOINT = "/publishers/google/models/{model}:predict"
LIST_MODELS_ENDPOINT = "/publishers/google/models"

DEFAULT_ERROR_MESSAGE = "生成失败"

_DATA_URI_PREFIX = re.compile(r"^data:image/\w+;base64,")


def strip_data_uri(image_base64: str) -> str:
    """去掉 data:image/xxx;base64, 前缀"""
    return _DATA_URI_PREFIX.sub("", image_base64, count=1)


def build_predict_body(
    request: GenerationRequest,
    prompt: str,
    negative_prompt: Optional[str] = None,
    image_base64: Optional[str] = None
) -> Dict[str, Any]:
    """
    构建符合 Vertex AI Imagen API 格式的请求体

    Args:
        request: 原始生成请求
        prompt: 翻译后的提示词
        negative_prompt: 翻译后的负面提示词
        image_base64: 输入图片（图生图）

    Returns:
        Dict[str, Any]: {instances: [...], parameters: {...}}
    """
    instance: Dict[str, Any] = {"prompt": prompt}
    if image_base64:
        instance["image"] = {"bytesBase64Encoded": strip_data_uri(image_base64)}
    if negative_prompt:
        instance["negativePrompt"] = negative_prompt

    parameters: Dict[str, Any] = {
        "aspectRatio": request.aspectRatio,
        "numberOfImages": request.numberOfImages,
    }
    if request.seed is not None:
        parameters["seed"] = request.seed

    return {"instances": [instance], "parameters": parameters}


def predictions_to_images(predictions: List[Any]) -> List[Union[str, Dict[str, Any]]]:
    """将 predictions 转换为 data URI 列表"""
    images = []
    for prediction in predictions:
        if isinstance(prediction, dict) and prediction.get("bytesBase64Encoded"):
            images.append(f"data:image/png;base64,{prediction['bytesBase64Encoded']}")
        else:
            # 其他格式（例如被安全过滤的结果）原样返回
            images.append(prediction)
    return images


def upstream_error_from_response(response: httpx.Response) -> UpstreamError:
    """
    将上游错误响应转换为 UpstreamError

    Google Cloud 错误格式为 {"error": {"message": ...}}，其余情况尝试读取 message
    """
    try:
        body: Any = response.json()
    except ValueError:
        body = response.text

    message = DEFAULT_ERROR_MESSAGE
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message") or message
        elif body.get("message"):
            message = body["message"]

    return UpstreamError(message, status_code=response.status_code, error=body)


async def call_predict(client: httpx.AsyncClient, model: str, body: Dict[str, Any]) -> Dict[str, Any]:
    """
    调用 predict 端点

    Raises:
        UpstreamError: 上游返回非 2xx 状态
    """
    endpoint = PREDICT_ENDPOINT.format(model=model)
    logger.info(f"[Imagen] 调用 Google Vertex AI API: {endpoint}")

    response = await client.post(endpoint, json=body)
    if response.is_error:
        logger.error(f"[Imagen] 上游 API 错误: {response.status_code} {response.text[:500]}")
        raise upstream_error_from_response(response)

    data = response.json()
    return data if isinstance(data, dict) else {}


async def generate_images(
    client: httpx.AsyncClient,
    request: GenerationRequest,
    translator: PromptTranslator,
    image_base64: Optional[str] = None
) -> GenerationResult:
    """
    翻译提示词、调用 Imagen 并整理结果

    Args:
        client: 已配置认证的 Vertex AI 客户端
        request: 生成请求
        translator: 提示词翻译器
        image_base64: 输入图片，传入时为图生图

    Returns:
        GenerationResult: 生成结果
    """
    prompt, negative_prompt = await translator.translate_prompts(request.prompt, request.negativePrompt)

    body = build_predict_body(request, prompt, negative_prompt, image_base64)
    data = await call_predict(client, request.model, body)

    predictions = data.get("predictions") or []
    logger.info(f"[Imagen] 响应成功: predictionsCount={len(predictions)}")

    images = predictions_to_images(predictions)
    return GenerationResult(images=images, count=len(images), model=request.model)


async def list_publisher_models(client: httpx.AsyncClient) -> Any:
    """列出可用的发布方模型（用于连通性测试）"""
    response = await client.get(LIST_MODELS_ENDPOINT)
    if response.is_error:
        raise upstream_error_from_response(response)
    return response.json()

"""
Imagen 请求与响应数据结构
"""
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from imagen_proxy.config import DEFAULT_ASPECT_RATIO, DEFAULT_MODEL

MODEL_NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._-]*$"


class GenerationRequest(BaseModel):
    """图片生成请求"""
    model_config = ConfigDict(protected_namespaces=())

    prompt: str
    model: str = Field(DEFAULT_MODEL, pattern=MODEL_NAME_PATTERN)  # 只允许模型 ID，拼进 URL 路径
    aspectRatio: str = DEFAULT_ASPECT_RATIO
    numberOfImages: int = 1
    negativePrompt: Optional[str] = None
    seed: Optional[int] = None
    imageBase64: Optional[str] = None  # 输入图片的 base64 编码，可带 data URI 前缀


class GenerationResult(BaseModel):
    """图片生成结果"""
    model_config = ConfigDict(protected_namespaces=())

    # 没有 bytesBase64Encoded 的 prediction 原样返回
    images: List[Union[str, Dict[str, Any]]]
    count: int
    model: str


class ApiResponse(BaseModel):
    """统一成功响应"""
    code: int = 1000
    message: str = "success"
    data: Any = None

"""
错误类型定义
每个异常携带 HTTP 状态码与响应体，由应用统一渲染为 JSON
"""
from typing import Any, Dict, Optional


class ImagenProxyError(Exception):
    """代理服务异常基类"""
    status_code: int = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error: Optional[Any] = None
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.error = error

    def to_payload(self) -> Dict[str, Any]:
        """转换为响应体"""
        payload: Dict[str, Any] = {
            "code": self.status_code,
            "message": self.message
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


class ConfigurationError(ImagenProxyError):
    """凭证或项目配置缺失/格式错误"""
    status_code = 500


class AuthenticationError(ImagenProxyError):
    """未登录"""
    status_code = 401

    def __init__(self, message: str = "未登录"):
        super().__init__(message)


class InvalidArgument(ImagenProxyError):
    """请求体不合法"""
    status_code = 400


class UpstreamError(ImagenProxyError):
    """上游 API 返回错误，状态码与错误体原样透传"""


class TranslationError(ImagenProxyError):
    """翻译服务失败（总是在本地回退，不会返回给调用方）"""
    status_code = 502

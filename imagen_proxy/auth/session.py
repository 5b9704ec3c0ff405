"""
会话鉴权依赖

登录流程由外部完成，登录成功后会在会话中写入 user
"""
import logging
from typing import Any, Dict
from fastapi import Request

from imagen_proxy.errors import AuthenticationError

logger = logging.getLogger(__name__)

SESSION_USER_KEY = "user"


async def require_session(request: Request) -> Dict[str, Any]:
    """
    获取当前登录用户

    Raises:
        AuthenticationError: 会话中没有用户信息
    """
    user = request.session.get(SESSION_USER_KEY)
    if not user or not isinstance(user, dict):
        logger.info(f"未登录请求被拒绝: {request.method} {request.url.path}")
        raise AuthenticationError()
    return user

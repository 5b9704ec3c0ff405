"""
提示词翻译模块

检测中文并依次尝试免费翻译服务，全部失败时返回原文，翻译不会阻塞生成
"""
import re
import logging
from typing import List, Optional, Sequence, Tuple
import httpx

from imagen_proxy.config import LIBRETRANSLATE_URL, MYMEMORY_URL
from imagen_proxy.errors import TranslationError

logger = logging.getLogger(__name__)

TRANSLATION_TIMEOUT = 10.0

_CHINESE_PATTERN = re.compile(r"[\u4e00-\u9fa5]")


def contains_chinese(text: str) -> bool:
    """检测文本是否包含中文字符"""
    return bool(_CHINESE_PATTERN.search(text))


class TranslationStrategy:
    """翻译策略基类"""
    name = "base"

    async def translate(self, client: httpx.AsyncClient, text: str, target_lang: str) -> str:
        raise NotImplementedError


class MyMemoryTranslation(TranslationStrategy):
    """MyMemory 翻译（免费，无需认证，GET 查询）"""
    name = "mymemory"

    def __init__(self, url: str = MYMEMORY_URL):
        self.url = url

    async def translate(self, client: httpx.AsyncClient, text: str, target_lang: str) -> str:
        response = await client.get(
            self.url,
            params={"q": text, "langpair": f"zh|{target_lang}"}
        )
        if response.status_code != 200:
            raise TranslationError(f"MyMemory 返回状态码 {response.status_code}")
        data = response.json()
        if not isinstance(data, dict):
            raise TranslationError(f"MyMemory 返回无效响应: {data}")

        # responseStatus 可能是数字也可能是字符串
        response_data = data.get("responseData")
        if str(data.get("responseStatus")) != "200" or not isinstance(response_data, dict):
            raise TranslationError(f"MyMemory 返回无效响应: {data}")

        translated = response_data.get("translatedText")
        if not translated or not isinstance(translated, str):
            raise TranslationError("MyMemory 响应中缺少 translatedText")
        return translated


class LibreTranslation(TranslationStrategy):
    """LibreTranslate 翻译（免费开源，JSON POST）"""
    name = "libretranslate"

    def __init__(self, url: str = LIBRETRANSLATE_URL):
        self.url = url

    async def translate(self, client: httpx.AsyncClient, text: str, target_lang: str) -> str:
        response = await client.post(
            self.url,
            json={
                "q": text,
                "source": "zh",
                "target": target_lang,
                "format": "text"
            },
            headers={"Content-Type": "application/json"}
        )
        if response.status_code != 200:
            raise TranslationError(f"LibreTranslate 返回状态码 {response.status_code}")
        data = response.json()

        translated = data.get("translatedText") if isinstance(data, dict) else None
        if not translated or not isinstance(translated, str):
            raise TranslationError("LibreTranslate 响应中缺少 translatedText")
        return translated


class IdentityTranslation(TranslationStrategy):
    """兜底策略：返回原文"""
    name = "identity"

    async def translate(self, client: httpx.AsyncClient, text: str, target_lang: str) -> str:
        return text


class PromptTranslator:
    """
    按顺序尝试翻译策略，最后总是以原文兜底

    Args:
        strategies: 网络翻译策略，按优先级排列
        timeout: 每次翻译请求的超时（秒）
        transport: 自定义传输层
    """

    def __init__(
        self,
        strategies: Optional[Sequence[TranslationStrategy]] = None,
        timeout: float = TRANSLATION_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if strategies is None:
            strategies = [MyMemoryTranslation(), LibreTranslation()]
        self.strategies: List[TranslationStrategy] = [*strategies, IdentityTranslation()]
        self.timeout = timeout
        self._transport = transport

    async def detect_and_translate(self, text: str, target_lang: str = "en") -> str:
        """不含中文时直接返回原文，不发起网络请求"""
        if not text or not contains_chinese(text):
            return text

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for strategy in self.strategies:
                try:
                    translated = await strategy.translate(client, text, target_lang)
                except Exception as e:
                    logger.warning(f"[Translation] {strategy.name} 翻译失败: {e}")
                    continue

                if strategy.name == "identity":
                    logger.warning("[Translation] 所有翻译服务均失败，使用原文")
                else:
                    logger.info(f"[Translation] {strategy.name}: {text} -> {translated}")
                return translated

        return text

    async def translate_prompts(
        self,
        prompt: str,
        negative_prompt: Optional[str] = None
    ) -> Tuple[str, Optional[str]]:
        """分别翻译提示词和负面提示词"""
        translated_prompt = await self.detect_and_translate(prompt)
        translated_negative = None
        if negative_prompt:
            translated_negative = await self.detect_and_translate(negative_prompt)
        return translated_prompt, translated_negative

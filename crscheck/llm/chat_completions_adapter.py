# chat_completions_adapter.py
# =============================================================================
# OpenAI 兼容 Chat Completions 适配器 / OpenAI-compatible chat completions adapter
#
# 职责：
#   - 将 (system_prompt, user_message) 调用转换为 Chat Completions HTTP 请求
#   - 固定采样参数（temperature / top_p / frequency_penalty）与 token 上限
#   - 每次 call() 只发起一次网络请求；重试与降级由 FallbackRouter 负责
#   - 将所有失败归类为 ProviderError 子类：
#     · 401/403        -> ProviderAuthError
#     · 其它非 2xx      -> ProviderHTTPError
#     · 非 JSON / 缺字段 -> ProviderResponseError
#     · 超时            -> ProviderTimeoutError
#     · 其它传输异常     -> ProviderNetworkError
#
# URL 兼容性：
#   1. 基础 URL：https://api.deepseek.com/v1 -> 自动追加 /chat/completions
#   2. 完整路径：https://xxx/v1/chat/completions -> 直接使用
#
# 请求格式：
#   {"model": "xxx", "messages": [...], "temperature": ..., "top_p": ...,
#    "frequency_penalty": ..., "max_tokens": ..., "stream": false}
#   -> response["choices"][0]["message"]["content"]
# =============================================================================

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse, urlunparse

import httpx

from crscheck.llm.errors import (
    ProviderAuthError,
    ProviderHTTPError,
    ProviderNetworkError,
    ProviderResponseError,
    ProviderTimeoutError,
)

logger = logging.getLogger(__name__)


class ChatCompletionsAdapter:
    """Chat Completions API 适配器。

    通过 httpx 异步 HTTP 直连调用端点，暴露统一接口
    async call(system_prompt, user_message) -> str。
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        model: str,
        name: str = "llm",
        temperature: float = 0.7,
        top_p: float = 0.9,
        frequency_penalty: float = 0.1,
        max_tokens: Optional[int] = 1500,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """初始化适配器。

        Args:
            url: API 端点 URL（基础 URL 或完整 /chat/completions 路径）。
            api_key: API 密钥（Bearer 认证）。
            model: 模型名称。
            name: Provider 显示名，用于日志与错误信息。
            timeout: 单次请求超时时间（秒）。
            transport: 可选的 httpx transport（测试注入 MockTransport）。
        """
        self._endpoint = self._resolve_endpoint(url)
        self._api_key = api_key
        self._model = model
        self._name = name
        self._temperature = temperature
        self._top_p = top_p
        self._frequency_penalty = frequency_penalty
        self._max_tokens = max_tokens
        self._timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return self._name

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def call(
        self,
        system_prompt: str,
        user_message: str,
    ) -> str:
        """发起一次 Chat Completions 请求并返回文本内容。

        Raises:
            ProviderAuthError: HTTP 401/403。
            ProviderHTTPError: 其它非 2xx 响应。
            ProviderResponseError: 响应体无法解析或缺少 content。
            ProviderTimeoutError: 超时。
            ProviderNetworkError: 其它传输层异常。
        """
        request_body = self._build_request(system_prompt, user_message)
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

        start = time.monotonic()
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self._endpoint,
                    headers=headers,
                    json=request_body,
                )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(self._name, self._timeout) from e
        except httpx.RequestError as e:
            raise ProviderNetworkError(self._name, str(e) or type(e).__name__) from e

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.info(
            "[%s] LLM API 响应: HTTP %d, 耗时 %.0fms",
            self._name, response.status_code, elapsed_ms,
        )

        if response.status_code in (401, 403):
            raise ProviderAuthError(self._name, response.status_code, response.text)
        if not response.is_success:
            raise ProviderHTTPError(self._name, response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderResponseError(
                self._name, "响应体不是合法 JSON", body=response.text[:300],
            ) from e

        return self._extract_text(data, self._name)

    # =========================================================================
    # URL 处理
    # =========================================================================

    @staticmethod
    def _resolve_endpoint(url: str) -> str:
        """URL 路径中不含 /chat/completions 时在末尾追加。"""
        parsed = urlparse(url)
        path = parsed.path
        if "/chat/completions" not in path:
            path = path.rstrip("/") + "/chat/completions"
        return urlunparse(parsed._replace(path=path))

    # =========================================================================
    # 请求构建与响应解析
    # =========================================================================

    def _build_request(
        self, system_prompt: str, user_message: str
    ) -> Dict[str, Any]:
        """构建 Chat Completions API 请求体。"""
        messages: List[Dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_message})

        body: Dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "temperature": self._temperature,
            "top_p": self._top_p,
            "frequency_penalty": self._frequency_penalty,
            "stream": False,
        }

        if self._max_tokens is not None:
            body["max_tokens"] = self._max_tokens

        return body

    @staticmethod
    def _extract_text(response_data: Any, provider: str = "llm") -> str:
        """从响应中提取 choices[0].message.content。

        缺少该字段或类型不符时抛出 ProviderResponseError。
        """
        if not isinstance(response_data, dict):
            raise ProviderResponseError(provider, "响应顶层不是 JSON 对象")

        choices = response_data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise ProviderResponseError(
                provider,
                "缺少choices字段",
                body=json.dumps(response_data, ensure_ascii=False)[:300],
            )

        first = choices[0] if isinstance(choices[0], dict) else {}
        message = first.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise ProviderResponseError(
                provider,
                "缺少message.content字段",
                body=json.dumps(response_data, ensure_ascii=False)[:300],
            )
        return content

    @classmethod
    def from_provider_config(
        cls,
        config,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> ChatCompletionsAdapter:
        """从 ProviderConfig 创建适配器实例。

        Raises:
            ValueError: 缺少 url / api_key / model。
        """
        missing = config.missing_fields()
        if missing:
            raise ValueError(
                f"Provider '{config.name}' 缺少必要配置: {', '.join(missing)}"
            )

        return cls(
            url=config.url,
            api_key=config.api_key,
            model=config.model,
            name=config.name,
            temperature=config.temperature,
            top_p=config.top_p,
            frequency_penalty=config.frequency_penalty,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
            transport=transport,
        )

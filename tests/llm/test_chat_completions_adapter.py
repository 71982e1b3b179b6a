# test_chat_completions_adapter.py
# =============================================================================
# ChatCompletionsAdapter 单元测试 / ChatCompletionsAdapter unit tests
# - URL 补全逻辑 / URL completion logic
# - 请求构建 / Request building
# - 响应解析 / Response parsing
# - HTTP 调用与错误分类（httpx.MockTransport） / HTTP call & error mapping
# - from_provider_config 工厂方法 / Factory method
# =============================================================================

import json

import httpx
import pytest

from crscheck.llm.chat_completions_adapter import ChatCompletionsAdapter
from crscheck.llm.config import ProviderConfig
from crscheck.llm.errors import (
    PROVIDER_AUTH,
    PROVIDER_HTTP,
    ProviderAuthError,
    ProviderHTTPError,
    ProviderNetworkError,
    ProviderResponseError,
    ProviderTimeoutError,
)


def _completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def _adapter(handler, **kwargs):
    return ChatCompletionsAdapter(
        url="https://llm.example.com/v1",
        api_key="sk-test",
        model="qwen3",
        name="Qwen3",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestResolveEndpoint:
    """URL 补全逻辑测试。 / URL completion logic tests."""

    def test_appends_chat_completions_to_base_url(self):
        """基础 URL 后补全 /chat/completions。"""
        result = ChatCompletionsAdapter._resolve_endpoint(
            "https://ark.cn-beijing.volces.com/api/v3"
        )
        assert result == "https://ark.cn-beijing.volces.com/api/v3/chat/completions"

    def test_preserves_existing_chat_completions_path(self):
        """已含 /chat/completions 的 URL 不重复追加。"""
        url = "https://api.deepseek.com/v1/chat/completions"
        assert ChatCompletionsAdapter._resolve_endpoint(url) == url

    def test_preserves_query_params(self):
        """补全路径时保留查询参数。"""
        url = "https://llm.example.com/v1/chat/completions?region=cn"
        result = ChatCompletionsAdapter._resolve_endpoint(url)
        assert "region=cn" in result

    def test_strips_trailing_slash(self):
        """去除末尾斜杠后再补全路径。"""
        result = ChatCompletionsAdapter._resolve_endpoint("https://api.deepseek.com/v1/")
        assert result == "https://api.deepseek.com/v1/chat/completions"


class TestBuildRequest:
    """请求构建测试。 / Request building tests."""

    def test_fixed_sampling_parameters(self):
        """请求体使用固定的采样参数。"""
        adapter = ChatCompletionsAdapter(
            url="https://api.example.com/v1", api_key="k", model="m"
        )
        body = adapter._build_request("sys", "hello")
        assert body["model"] == "m"
        assert body["temperature"] == 0.7
        assert body["top_p"] == 0.9
        assert body["frequency_penalty"] == 0.1
        assert body["max_tokens"] == 1500
        assert body["stream"] is False
        assert body["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "hello"},
        ]

    def test_empty_system_prompt_omitted(self):
        """system prompt 为空时不发送 system 消息。"""
        adapter = ChatCompletionsAdapter(
            url="https://api.example.com/v1", api_key="k", model="m"
        )
        body = adapter._build_request("", "hello")
        assert body["messages"] == [{"role": "user", "content": "hello"}]

    def test_max_tokens_none_omitted(self):
        """max_tokens 为 None 时不写入请求体。"""
        adapter = ChatCompletionsAdapter(
            url="https://api.example.com/v1", api_key="k", model="m", max_tokens=None
        )
        assert "max_tokens" not in adapter._build_request("sys", "hi")


class TestExtractText:
    """响应解析测试。 / Response parsing tests."""

    def test_standard_response(self):
        """从标准响应中取出 content。"""
        assert ChatCompletionsAdapter._extract_text(_completion("你好")) == "你好"

    def test_empty_choices_raises(self):
        """choices 为空时抛出异常。"""
        with pytest.raises(ProviderResponseError):
            ChatCompletionsAdapter._extract_text({"choices": []})

    def test_missing_content_raises(self):
        """缺少 content 时抛出异常。"""
        with pytest.raises(ProviderResponseError):
            ChatCompletionsAdapter._extract_text({"choices": [{"message": {}}]})

    def test_non_dict_body_raises(self):
        """响应体不是字典时抛出异常。"""
        with pytest.raises(ProviderResponseError):
            ChatCompletionsAdapter._extract_text(["not", "a", "dict"])


class TestCall:
    """HTTP 调用与错误分类。 / HTTP call and error classification."""

    @pytest.mark.asyncio
    async def test_success_sends_bearer_and_returns_content(self):
        """成功调用携带 Bearer 认证并返回内容。"""
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_completion('{"overallRiskLevel": 42}'))

        content = await _adapter(handler).call("sys", "user")

        assert content == '{"overallRiskLevel": 42}'
        assert seen["url"] == "https://llm.example.com/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["model"] == "qwen3"

    @pytest.mark.asyncio
    async def test_single_request_per_call(self):
        """每次调用只发送一个请求，不在适配器内重试。"""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, text="boom")

        with pytest.raises(ProviderHTTPError):
            await _adapter(handler).call("sys", "user")
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_401_maps_to_auth_error(self):
        """401 映射为认证错误。"""
        adapter = _adapter(lambda request: httpx.Response(401, text="bad key"))
        with pytest.raises(ProviderAuthError) as exc_info:
            await adapter.call("sys", "user")
        assert exc_info.value.code == PROVIDER_AUTH
        assert exc_info.value.status_code == 401
        assert "API密钥认证失败" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_403_maps_to_auth_error(self):
        """403 映射为认证错误。"""
        adapter = _adapter(lambda request: httpx.Response(403, text="denied"))
        with pytest.raises(ProviderAuthError) as exc_info:
            await adapter.call("sys", "user")
        assert "API访问被拒绝" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_500_maps_to_http_error(self):
        """500 映射为 HTTP 错误。"""
        adapter = _adapter(lambda request: httpx.Response(500, text="internal"))
        with pytest.raises(ProviderHTTPError) as exc_info:
            await adapter.call("sys", "user")
        assert exc_info.value.code == PROVIDER_HTTP
        assert exc_info.value.summary() == "PROVIDER_HTTP HTTP 500"

    @pytest.mark.asyncio
    async def test_non_json_body_maps_to_response_error(self):
        """非 JSON 响应体映射为响应错误。"""
        adapter = _adapter(lambda request: httpx.Response(200, text="<html>oops</html>"))
        with pytest.raises(ProviderResponseError):
            await adapter.call("sys", "user")

    @pytest.mark.asyncio
    async def test_missing_choices_maps_to_response_error(self):
        """缺少 choices 映射为响应错误。"""
        adapter = _adapter(lambda request: httpx.Response(200, json={"id": "x"}))
        with pytest.raises(ProviderResponseError) as exc_info:
            await adapter.call("sys", "user")
        assert "缺少choices字段" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_timeout_maps_to_timeout_error(self):
        """请求超时映射为超时错误。"""
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ProviderTimeoutError) as exc_info:
            await _adapter(handler, timeout=5.0).call("sys", "user")
        assert exc_info.value.timeout == 5.0

    @pytest.mark.asyncio
    async def test_connect_error_maps_to_network_error(self):
        """连接失败映射为网络错误。"""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderNetworkError):
            await _adapter(handler).call("sys", "user")


class TestFromProviderConfig:
    """from_provider_config 工厂方法测试。 / Factory method tests."""

    def test_creates_adapter_from_config(self):
        """从 ProviderConfig 创建适配器。"""
        config = ProviderConfig(
            name="DeepSeek",
            url="https://api.deepseek.com/v1",
            api_key="sk-backup",
            model="deepseek-chat",
            timeout=30.0,
        )
        adapter = ChatCompletionsAdapter.from_provider_config(config)
        assert adapter.name == "DeepSeek"
        assert adapter.endpoint == "https://api.deepseek.com/v1/chat/completions"
        assert adapter._timeout == 30.0

    def test_missing_fields_raise(self):
        """配置缺少必填字段时抛出异常。"""
        config = ProviderConfig(name="primary", url="https://x", api_key=None, model="m")
        with pytest.raises(ValueError, match="api_key"):
            ChatCompletionsAdapter.from_provider_config(config)

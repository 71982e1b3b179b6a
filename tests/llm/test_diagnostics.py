# test_diagnostics.py
# =============================================================================
# Provider 连通性诊断测试：四阶段检查与报告渲染
# =============================================================================

from unittest.mock import AsyncMock, MagicMock

import pytest

from crscheck.llm.config import LLMSettings, ProviderConfig
from crscheck.llm.diagnostics import (
    PROBE_MESSAGE,
    ProbeReport,
    ProbeResult,
    format_report,
    probe_all,
    probe_provider,
)
from crscheck.llm.errors import (
    ProviderAuthError,
    ProviderNetworkError,
    ProviderResponseError,
    ProviderTimeoutError,
)


def _config(name="Qwen3"):
    return ProviderConfig(
        name=name,
        url="https://llm.example.com/v1",
        api_key="sk-test",
        model="qwen3",
    )


def _factory(return_value=None, side_effect=None, seen=None):
    def factory(config):
        if seen is not None:
            seen.append(config)
        adapter = MagicMock()
        adapter.call = AsyncMock(return_value=return_value, side_effect=side_effect)
        return adapter

    return factory


class TestProbeProvider:
    @pytest.mark.asyncio
    async def test_success_passes_all_checks(self):
        """调用成功时全部检查通过。"""
        seen = []
        result = await probe_provider(
            _config(), adapter_factory=_factory("测试成功", seen=seen)
        )
        assert result.success is True
        assert result.content == "测试成功"
        assert result.checks.config and result.checks.network
        assert result.checks.auth and result.checks.response
        # 探测请求使用极小的 token 上限
        assert seen[0].max_tokens == 50
        assert seen[0].timeout == 15.0

    @pytest.mark.asyncio
    async def test_incomplete_config_makes_no_call(self):
        """配置不完整时不发起调用。"""
        factory = MagicMock()
        result = await probe_provider(
            ProviderConfig(name="DeepSeek", url="https://x"), adapter_factory=factory
        )
        assert result.success is False
        assert result.checks.config is False
        assert "api_key" in result.error
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_timeout_fails_network_check(self):
        """超时记为网络检查失败。"""
        result = await probe_provider(
            _config(),
            adapter_factory=_factory(side_effect=ProviderTimeoutError("Qwen3", 15.0)),
        )
        assert result.checks.config is True
        assert result.checks.network is False
        assert "超时" in result.error

    @pytest.mark.asyncio
    async def test_connection_error_fails_network_check(self):
        """连接错误记为网络检查失败。"""
        result = await probe_provider(
            _config(),
            adapter_factory=_factory(
                side_effect=ProviderNetworkError("Qwen3", "connection refused")
            ),
        )
        assert result.checks.network is False

    @pytest.mark.asyncio
    async def test_auth_failure_passes_network_only(self):
        """认证失败时仅网络检查通过。"""
        result = await probe_provider(
            _config(), adapter_factory=_factory(side_effect=ProviderAuthError("Qwen3", 401))
        )
        assert result.checks.network is True
        assert result.checks.auth is False
        assert "API密钥认证失败" in result.error

    @pytest.mark.asyncio
    async def test_malformed_response_fails_response_check(self):
        """响应格式错误时响应检查失败。"""
        result = await probe_provider(
            _config(),
            adapter_factory=_factory(
                side_effect=ProviderResponseError("Qwen3", "缺少choices字段")
            ),
        )
        assert result.checks.auth is True
        assert result.checks.response is False

    @pytest.mark.asyncio
    async def test_empty_content_is_failure(self):
        """返回空内容视为失败。"""
        result = await probe_provider(_config(), adapter_factory=_factory("   "))
        assert result.success is False
        assert result.error == "响应内容为空"

    @pytest.mark.asyncio
    async def test_default_probe_message(self):
        """默认发送固定的测试消息。"""
        captured = {}

        def factory(config):
            async def call(system_prompt, user_message):
                captured["message"] = user_message
                return "测试成功"

            adapter = MagicMock()
            adapter.call = call
            return adapter

        await probe_provider(_config(), adapter_factory=factory)
        assert captured["message"] == PROBE_MESSAGE


class TestProbeAll:
    @pytest.mark.asyncio
    async def test_probes_both_roles(self):
        """依次检测 primary 与 backup。"""
        settings = LLMSettings(primary=_config("Qwen3"), backup=_config("DeepSeek"))
        report = await probe_all(settings, adapter_factory=_factory("测试成功"))
        assert list(report.results) == ["primary", "backup"]
        assert report.success_count == 2
        assert report.recommended_provider == "primary"

    @pytest.mark.asyncio
    async def test_backup_skipped_when_fallback_disabled(self):
        """关闭降级时不检测 backup。"""
        settings = LLMSettings(
            primary=_config("Qwen3"), backup=_config("DeepSeek"), enable_fallback=False
        )
        report = await probe_all(settings, adapter_factory=_factory("测试成功"))
        assert list(report.results) == ["primary"]


class TestFormatReport:
    def test_recommends_first_successful(self):
        """推荐第一个可用的服务。"""
        report = ProbeReport(
            results={
                "primary": ProbeResult(provider="Qwen3", endpoint="e", model="m", error="超时"),
                "backup": ProbeResult(provider="DeepSeek", endpoint="e", model="m", success=True),
            },
        )
        text = format_report(report)
        assert report.recommended_provider == "backup"
        assert "推荐服务: backup" in text
        assert "失败数量: 1" in text
        assert "错误: 超时" in text

    def test_no_available_service(self):
        """没有可用服务时的报告。"""
        report = ProbeReport(
            results={"primary": ProbeResult(provider="Qwen3", endpoint="", model="")},
            issues=["主要LLM服务API密钥未配置"],
        )
        text = format_report(report)
        assert "推荐服务: 无可用服务" in text
        assert "  - 主要LLM服务API密钥未配置" in text
        assert "配置验证: 失败" in text

# diagnostics.py
# =============================================================================
# LLM Provider 连通性诊断。
#
# 对每个 Provider 发送一条极短的测试消息，按四个阶段报告结果：
#   配置检查 → 网络检查 → 认证检查 → 响应检查
# 供运维区分"配置缺失""网络不通""密钥失效""响应格式异常"。
# =============================================================================

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from crscheck.llm.chat_completions_adapter import ChatCompletionsAdapter
from crscheck.llm.config import LLMSettings, ProviderConfig
from crscheck.llm.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderHTTPError,
    ProviderNetworkError,
    ProviderTimeoutError,
)

logger = logging.getLogger(__name__)

PROBE_SYSTEM_PROMPT = "你是一个测试助手，请严格按照用户要求回复。"
PROBE_MESSAGE = "请回复'测试成功'四个字，不要添加任何其他内容。"
PROBE_TIMEOUT = 15.0


@dataclass
class ProbeChecks:
    config: bool = False
    network: bool = False
    auth: bool = False
    response: bool = False


@dataclass
class ProbeResult:
    provider: str
    endpoint: str
    model: str
    success: bool = False
    elapsed_ms: float = 0.0
    error: Optional[str] = None
    content: Optional[str] = None
    checks: ProbeChecks = field(default_factory=ProbeChecks)


@dataclass
class ProbeReport:
    results: Dict[str, ProbeResult]
    issues: List[str] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results.values() if r.success)

    @property
    def failure_count(self) -> int:
        return len(self.results) - self.success_count

    @property
    def recommended_provider(self) -> Optional[str]:
        for role, result in self.results.items():
            if result.success:
                return role
        return None


async def probe_provider(
    config: ProviderConfig,
    message: str = PROBE_MESSAGE,
    timeout: float = PROBE_TIMEOUT,
    adapter_factory: Optional[Callable[[ProviderConfig], Any]] = None,
) -> ProbeResult:
    """对单个 Provider 做一次连通性测试。"""
    result = ProbeResult(
        provider=config.name,
        endpoint=config.url or "",
        model=config.model or "",
    )
    if config.missing_fields():
        result.error = f"配置不完整：缺少{'、'.join(config.missing_fields())}"
        return result
    result.checks.config = True

    probe_config = ProviderConfig(
        name=config.name,
        url=config.url,
        api_key=config.api_key,
        model=config.model,
        timeout=timeout,
        max_tokens=50,
        temperature=0.1,
    )
    factory = adapter_factory or ChatCompletionsAdapter.from_provider_config
    adapter = factory(probe_config)

    start = time.monotonic()
    try:
        content = await adapter.call(PROBE_SYSTEM_PROMPT, message)
    except (ProviderTimeoutError, ProviderNetworkError) as exc:
        result.error = exc.message
    except (ProviderAuthError, ProviderHTTPError) as exc:
        # 收到了 HTTP 响应，但认证或状态码不通过
        result.checks.network = True
        result.error = exc.message
    except ProviderError as exc:
        result.checks.network = True
        result.checks.auth = True
        result.error = exc.message
    else:
        result.checks.network = True
        result.checks.auth = True
        if content.strip():
            result.checks.response = True
            result.success = True
            result.content = content
        else:
            result.error = "响应内容为空"
    result.elapsed_ms = (time.monotonic() - start) * 1000

    if result.success:
        logger.info("[%s] 连通性测试成功，耗时 %.0fms", config.name, result.elapsed_ms)
    else:
        logger.warning("[%s] 连通性测试失败: %s", config.name, result.error)
    return result


async def probe_all(
    settings: LLMSettings,
    issues: Optional[List[str]] = None,
    adapter_factory: Optional[Callable[[ProviderConfig], Any]] = None,
) -> ProbeReport:
    """顺序测试 primary 与（启用降级时的）backup。"""
    results: Dict[str, ProbeResult] = {
        "primary": await probe_provider(
            settings.primary, adapter_factory=adapter_factory
        ),
    }
    if settings.enable_fallback:
        results["backup"] = await probe_provider(
            settings.backup, adapter_factory=adapter_factory
        )
    return ProbeReport(results=results, issues=list(issues or []))


def format_report(report: ProbeReport) -> str:
    """渲染纯文本诊断报告。"""

    def mark(ok: bool) -> str:
        return "通过" if ok else "失败"

    lines = ["LLM API 测试报告", "=" * 50, ""]
    lines.append(f"配置验证: {mark(not report.issues)}")
    lines.extend(f"  - {issue}" for issue in report.issues)
    lines.append("")

    for role, result in report.results.items():
        lines.append(f"[{role}] {result.provider} ({result.model or '未配置模型'})")
        lines.append(f"状态: {'成功' if result.success else '失败'}")
        lines.append(f"响应时间: {result.elapsed_ms:.0f}ms")
        if result.error:
            lines.append(f"错误: {result.error}")
        lines.append(f"  - 配置检查: {mark(result.checks.config)}")
        lines.append(f"  - 网络检查: {mark(result.checks.network)}")
        lines.append(f"  - 认证检查: {mark(result.checks.auth)}")
        lines.append(f"  - 响应检查: {mark(result.checks.response)}")
        lines.append("")

    lines.append("总结:")
    lines.append(f"测试总数: {len(report.results)}")
    lines.append(f"成功数量: {report.success_count}")
    lines.append(f"失败数量: {report.failure_count}")
    lines.append(f"推荐服务: {report.recommended_provider or '无可用服务'}")
    return "\n".join(lines)

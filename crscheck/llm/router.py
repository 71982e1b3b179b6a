# router.py
# =============================================================================
# Provider 降级编排模块 / Provider fallback orchestration
#
# 职责：
#   - 按优先级依次尝试 primary → backup → synthetic
#   - 三个状态严格顺序执行，不并发
#   - 捕获每个 Provider 的 ProviderError 并记录，交由下一状态处理
#   - 返回最终提供内容的 Provider 名称
#   - 统计每个 Provider 的调用尝试次数与成功次数（成本审计）
#
# 状态机（线性、无循环）：
#   TRY_PRIMARY --失败--> TRY_BACKUP（backup 可用且启用降级）--失败--> SYNTHETIC
#   primary / backup 未配置时直接跳过，不发起网络请求。
#   SYNTHETIC 被禁用时抛出 AnalysisUnavailableError。
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from crscheck.llm.chat_completions_adapter import ChatCompletionsAdapter
from crscheck.llm.config import LLMSettings, ProviderConfig
from crscheck.llm.errors import AnalysisUnavailableError, ProviderError
from crscheck.llm.synthetic import SYNTHETIC_PROVIDER_NAME, SyntheticAnalysisGenerator

logger = logging.getLogger(__name__)


# =============================================================================
# 调用统计
# =============================================================================


@dataclass
class CallStats:
    """Provider 调用统计。

    attempts 包含失败的请求：即使失败也可能消耗了 API 配额。
    """

    total_attempts: int = 0
    total_calls: int = 0
    attempts_by_provider: Dict[str, int] = field(default_factory=dict)
    calls_by_provider: Dict[str, int] = field(default_factory=dict)
    synthetic_count: int = 0

    def record_attempt(self, provider: str) -> None:
        self.total_attempts += 1
        self.attempts_by_provider[provider] = (
            self.attempts_by_provider.get(provider, 0) + 1
        )

    def record_call(self, provider: str) -> None:
        self.total_calls += 1
        self.calls_by_provider[provider] = self.calls_by_provider.get(provider, 0) + 1

    def to_dict(self) -> dict:
        return {
            "total_attempts": self.total_attempts,
            "total_calls": self.total_calls,
            "synthetic_count": self.synthetic_count,
            "attempts_by_provider": dict(self.attempts_by_provider),
            "calls_by_provider": dict(self.calls_by_provider),
        }


@dataclass
class ProviderReply:
    """一次 call_with_fallback 的结果。"""

    content: str
    provider: str
    synthetic: bool = False
    # 按发生顺序记录的失败 (provider 名称, 错误)
    failures: List[Tuple[str, ProviderError]] = field(default_factory=list)
    mock_mode: bool = False

    def failure_summary(self) -> str:
        if self.mock_mode:
            return "mock mode"
        if not self.failures:
            return "no provider configured"
        return "; ".join(f"{name}: {err.summary()}" for name, err in self.failures)


# =============================================================================
# 编排器
# =============================================================================


class FallbackRouter:
    """按 primary → backup → synthetic 顺序调用 LLM。

    所有适配器暴露统一接口 async call(system_prompt, user_message) -> str，
    并按角色缓存。
    """

    def __init__(
        self,
        settings: LLMSettings,
        adapter_factory: Optional[Callable[[ProviderConfig], Any]] = None,
        synthetic: Optional[SyntheticAnalysisGenerator] = None,
    ) -> None:
        """初始化编排器。

        Args:
            settings: Provider 配置与全局开关。
            adapter_factory: ProviderConfig → 适配器的工厂（默认
                ChatCompletionsAdapter.from_provider_config，测试可注入）。
            synthetic: 合成结果生成器。
        """
        self._settings = settings
        self._adapter_factory = adapter_factory or ChatCompletionsAdapter.from_provider_config
        self._synthetic = synthetic or SyntheticAnalysisGenerator()
        self._adapters: Dict[str, Any] = {}
        self._stats = CallStats()

        for role, cfg in (("primary", settings.primary), ("backup", settings.backup)):
            if cfg.is_usable:
                logger.info("LLM Provider: %s → %s (%s)", role, cfg.name, cfg.model)
            else:
                logger.info("LLM Provider: %s 未配置或已禁用", role)

    @property
    def stats(self) -> CallStats:
        return self._stats

    @property
    def settings(self) -> LLMSettings:
        return self._settings

    def _plan(self) -> List[Tuple[str, ProviderConfig]]:
        """返回本次应尝试的真实 Provider（按顺序）。"""
        if self._settings.force_synthetic:
            return []
        plan = []
        if self._settings.primary.is_usable:
            plan.append(("primary", self._settings.primary))
        if self._settings.enable_fallback and self._settings.backup.is_usable:
            plan.append(("backup", self._settings.backup))
        return plan

    def get_adapter(self, role: str, config: ProviderConfig) -> Any:
        """获取角色对应的适配器实例（带缓存）。"""
        if role not in self._adapters:
            self._adapters[role] = self._adapter_factory(config)
            logger.info(
                "LLM 适配器已创建: role=%s, provider=%s, model=%s",
                role, config.name, config.model,
            )
        return self._adapters[role]

    async def call_with_fallback(
        self, system_prompt: str, user_prompt: str
    ) -> ProviderReply:
        """依次尝试各 Provider，返回第一个成功的回复。

        Raises:
            AnalysisUnavailableError: 真实 Provider 全部失败且禁止合成结果。
        """
        failures: List[Tuple[str, ProviderError]] = []

        for role, config in self._plan():
            adapter = self.get_adapter(role, config)
            self._stats.record_attempt(config.name)
            try:
                content = await adapter.call(system_prompt, user_prompt)
            except ProviderError as exc:
                failures.append((config.name, exc))
                logger.warning(
                    "LLM Provider 调用失败 (%s/%s)，尝试下一级: %s",
                    role, config.name, exc,
                )
                continue
            self._stats.record_call(config.name)
            if failures:
                logger.info("降级成功，由 %s 提供分析结果", config.name)
            return ProviderReply(content=content, provider=config.name, failures=failures)

        if self._settings.force_synthetic:
            logger.warning("已启用模拟模式，跳过真实 LLM 调用")
        elif not self._settings.allow_synthetic:
            logger.error("所有 LLM Provider 均失败且合成模式已禁用")
            raise AnalysisUnavailableError(failures)
        else:
            logger.warning(
                "所有 LLM Provider 均不可用，生成合成分析结果: %s",
                "; ".join(f"{n}: {e}" for n, e in failures) or "无可用 Provider",
            )

        self._stats.synthetic_count += 1
        return ProviderReply(
            content=self._synthetic.generate(system_prompt, user_prompt),
            provider=SYNTHETIC_PROVIDER_NAME,
            synthetic=True,
            failures=failures,
            mock_mode=self._settings.force_synthetic,
        )

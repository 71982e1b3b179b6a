# service.py
# =============================================================================
# AI 分析服务 — analyze_response 的编排入口。
#
# 流程：缓存检查 → 加载 Prompt 配置 → 选择变体 → 渲染答案
#       → FallbackRouter（primary → backup → synthetic）→ 归一化 → 写缓存
#
# AnalysisService 在进程启动时构造一次，通过依赖注入传给调用方；
# 两个缓存（Prompt 配置、分析结果）均为实例私有。
# 只有在真实 Provider 全部失败且禁止合成结果时才抛出
# AnalysisUnavailableError，调用方需自备静态兜底（build_default_result）。
# =============================================================================

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Tuple

from crscheck.analysis.cache import AnalysisCache, fingerprint
from crscheck.analysis.models import AnalysisResult
from crscheck.analysis.normalizer import ResponseNormalizer
from crscheck.llm.config import LLMConfigLoader
from crscheck.llm.errors import ConfigurationError
from crscheck.llm.router import FallbackRouter, ProviderReply
from crscheck.prompts.models import FallbackPrompt, PromptConfig, SurveyResponse
from crscheck.prompts.render import format_user_answers, render_analysis_prompt
from crscheck.prompts.selector import select_prompt
from crscheck.prompts.store import PromptConfigStore

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_PROMPT = FallbackPrompt(
    system_prompt=(
        "你是一名资深的CRS（共同申报准则）合规顾问，擅长评估个人与家族的"
        "境外金融账户、持股架构与税务居民身份风险。请只输出JSON。"
    ),
    analysis_prompt=(
        "以下是用户的问卷回答：\n\n{USER_ANSWERS}\n"
        "请评估其CRS合规风险，并严格按以下JSON结构输出："
        '{"overallRiskLevel": 1-99的整数, "riskLevelComment": "...", '
        '"radarScores": {"金融账户穿透风险": 1-9, "实体分类与结构风险": 1-9, '
        '"税务居民身份协调": 1-9, "控权人UBO暴露风险": 1-9, "合规准备与后续行为": 1-9}, '
        '"detailedAnalysis": {"riskFactors": [], "complianceGaps": [], '
        '"recommendations": [], "riskDetailedAnalysis": {}}, '
        '"actionPlan": {"immediate": [], "shortTerm": [], "longTerm": []}, '
        '"summaryAndSuggestions": {"evaluationSummary": "...", '
        '"optimizationSuggestions": [], "professionalAdvice": "..."}}'
    ),
)


class AnalysisService:
    """问卷提交 → 结构化风险分析。"""

    def __init__(
        self,
        router: FallbackRouter,
        store: Optional[PromptConfigStore] = None,
        cache: Optional[AnalysisCache] = None,
        normalizer: Optional[ResponseNormalizer] = None,
        fallback_prompt: Optional[FallbackPrompt] = DEFAULT_FALLBACK_PROMPT,
    ) -> None:
        """初始化分析服务。

        Args:
            router: Provider 降级编排器。
            store: Prompt 配置存储（默认读取包内配置）。
            cache: 分析结果缓存（默认 5 分钟 TTL）。
            normalizer: 响应归一化器。
            fallback_prompt: 问卷无 Prompt 配置时使用的模板；
                为 None 时此类问卷直接抛出 ConfigurationError。
        """
        self._router = router
        self._store = store if store is not None else PromptConfigStore()
        # AnalysisCache 定义了 __len__，空缓存为假值，不能用 or
        self._cache = cache if cache is not None else AnalysisCache()
        self._normalizer = normalizer if normalizer is not None else ResponseNormalizer()
        self._fallback_prompt = fallback_prompt

    @classmethod
    def from_config(
        cls,
        llm_config: Optional[Dict[str, Any]] = None,
        config_file: Optional[str] = None,
        **kwargs: Any,
    ) -> AnalysisService:
        """按三层配置（代码 > YAML > 环境变量）构建服务。"""
        loader = LLMConfigLoader(llm_config=llm_config, config_file=config_file)
        for issue in loader.validate():
            logger.warning("LLM 配置问题: %s", issue)
        return cls(router=FallbackRouter(loader.load()), **kwargs)

    @property
    def router(self) -> FallbackRouter:
        return self._router

    @property
    def cache(self) -> AnalysisCache:
        return self._cache

    @property
    def store(self) -> PromptConfigStore:
        return self._store

    async def analyze_response(
        self,
        response: SurveyResponse,
        survey_data: Optional[Dict[str, Any]] = None,
    ) -> AnalysisResult:
        """分析一次问卷提交。

        Raises:
            ConfigurationError: 无 Prompt 配置且未设置兜底模板。
            AnalysisUnavailableError: 真实 Provider 全部失败且禁止合成结果。
        """
        start = time.monotonic()
        logger.info(
            "开始AI分析 - ResponseID: %s, 问卷: %s",
            response.response_id or "(unknown)", response.survey_id,
        )

        cache_key = fingerprint(response.survey_id, response.answers)
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.info(
                "缓存命中，跳过AI调用 - 耗时: %.0fms", (time.monotonic() - start) * 1000
            )
            return cached

        config = await self._store.load(response.survey_id)
        formatted_answers = format_user_answers(response.answers, survey_data)
        variant_id, system_prompt, template = self._resolve_prompt(config, response)
        user_prompt = render_analysis_prompt(template, formatted_answers)

        reply = await self._router.call_with_fallback(system_prompt, user_prompt)
        prompt_used = self._describe_prompt_used(variant_id, reply)
        result = self._normalizer.parse(reply.content, prompt_used=prompt_used)

        # 合成结果不缓存
        if not reply.synthetic:
            self._cache.put(cache_key, result)

        logger.info(
            "AI分析完成 - provider=%s, 总耗时: %.0fms",
            reply.provider, (time.monotonic() - start) * 1000,
        )
        return result

    def _resolve_prompt(
        self, config: Optional[PromptConfig], response: SurveyResponse
    ) -> Tuple[str, str, str]:
        """返回 (变体 ID, system prompt, analysis 模板)。"""
        if config is not None:
            variant = select_prompt(config, response.answers)
            if variant.analysis_prompt.strip():
                return variant.id, variant.system_prompt, variant.analysis_prompt
            logger.warning("Prompt 变体 '%s' 的分析模板为空，改用兜底模板", variant.id)
            fallback = config.fallback_prompt or self._fallback_prompt
        else:
            fallback = self._fallback_prompt

        if fallback is None:
            raise ConfigurationError(
                f"问卷 '{response.survey_id}' 没有可用的 Prompt 配置，且未设置兜底模板"
            )
        return fallback.id, fallback.system_prompt, fallback.analysis_prompt

    @staticmethod
    def _describe_prompt_used(variant_id: str, reply: ProviderReply) -> str:
        if reply.synthetic:
            return f"fallback ({reply.failure_summary()})"
        return f"{variant_id} ({reply.provider})"

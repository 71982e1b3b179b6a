# normalizer.py
# =============================================================================
# LLM 响应归一化 / LLM response normalization
#
# parse(raw_text) 是从"任意字符串"到"字段完整、取值合法的 AnalysisResult"
# 的全函数，永不抛出异常。
#
# 流水线：
#   1. clean_text：去除 <think> 标签与装饰符号
#   2. 结构化策略：parse_json_from_llm 提取 JSON 对象 -> 逐字段校验与纠正
#   3. 文本策略：JSON 提取失败时，用正则从散文中提取评分 / 建议 / 总结
#   4. 两种策略都产出同一 camelCase 字典，由 _coerce 统一校验
#   5. 旧版兼容字段（riskScores / suggestions / summary）仅从最终结构派生
# =============================================================================

from __future__ import annotations

import logging
import math
import re
from typing import Any, Dict, List, Optional

from crscheck.analysis.models import (
    DEFAULT_DIMENSION_ANALYSIS,
    DEFAULT_EVALUATION_SUMMARY,
    DEFAULT_OVERALL_RISK,
    DEFAULT_RADAR_SCORE,
    DEFAULT_RECOMMENDATION,
    LEGACY_DIMENSION_MAP,
    MAX_ACTION_ITEMS,
    MAX_COMPLIANCE_GAPS,
    MAX_LEGACY_SUGGESTIONS,
    MAX_RECOMMENDATIONS,
    MAX_RISK_FACTORS,
    OVERALL_RISK_MAX,
    OVERALL_RISK_MIN,
    RADAR_DIMENSIONS,
    RADAR_MAX,
    RADAR_MIN,
    ActionPlan,
    AnalysisResult,
    DetailedAnalysis,
    SummaryAndSuggestions,
    comment_for_level,
    legacy_score,
)
from crscheck.utils.json_parser import parse_json_from_llm

logger = logging.getLogger(__name__)

_THINK_TAG = re.compile(r"<think>[\s\S]*?</think>")
# 常见表情符号 + 杂项符号 (U+2600-26FF) + 装饰符号 (U+2700-27BF) + 变体选择符
_DECORATIVE = re.compile(
    "[\U0001F525\U0001F4BE\U0001F4E1\U0001F680\U0001F50D\U0001F4CB"
    "\U0001F4A1\U0001F4CA\U0001F4C8\U0001F3AF\u2600-\u27BF\uFE0F]"
)
_EXTRA_BLANK_LINES = re.compile(r"\n{3,}")
_NUMERIC = re.compile(r"^-?\d+(?:\.\d+)?$")

_OVERALL_PATTERN = re.compile(
    r"(?:风险等级|整体风险|总体风险|风险评分|综合评分)[^\d\n]{0,10}(\d{1,3})"
)
_SCORE_PATTERN = re.compile(r"(\d{1,3})\s*分")
_SUGGESTION_PATTERN = re.compile(r"(?:建议|推荐|应该)[\s\S]*?(?=\n\n|\n\d+\.|$)")
_SUMMARY_PATTERN = re.compile(r"(?:总结|综合|整体)[\s\S]*?(?=\n\n|$)")


def clean_text(text: str) -> str:
    """去除 <think> 推理内容与装饰性符号，压缩多余空行。"""
    if not text:
        return ""
    cleaned = _THINK_TAG.sub("", text)
    cleaned = _DECORATIVE.sub("", cleaned)
    cleaned = _EXTRA_BLANK_LINES.sub("\n\n", cleaned)
    return cleaned.strip()


# =============================================================================
# 字段纠正 / Field coercion
# =============================================================================


def _coerce_int(value: Any, low: int, high: int) -> Optional[int]:
    """数值（或数字字符串）四舍五入后落在 [low, high] 内则返回，否则 None。"""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not _NUMERIC.match(value):
            return None
        value = float(value)
    if not isinstance(value, (int, float)):
        return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        value = int(math.floor(value + 0.5))
    return value if low <= value <= high else None


def _coerce_str(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    cleaned = clean_text(value)
    return cleaned or None


def _coerce_str_list(value: Any, cap: Optional[int] = None) -> List[str]:
    if not isinstance(value, list):
        return []
    items = [s for s in (_coerce_str(v) for v in value) if s]
    return items[:cap] if cap is not None else items


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


# =============================================================================
# 归一化器 / Normalizer
# =============================================================================


class ResponseNormalizer:
    """把不可信的 LLM 文本转换为完整的 AnalysisResult。"""

    def parse(self, raw_text: Any, prompt_used: str = "") -> AnalysisResult:
        """全函数：任意输入都返回字段完整的结果，不抛异常。"""
        text = clean_text(raw_text) if isinstance(raw_text, str) else ""
        try:
            try:
                data = parse_json_from_llm(text)
            except ValueError:
                logger.info("LLM 响应不是 JSON，改用文本模式解析")
                return self.parse_text(text, prompt_used=prompt_used)
            return self.parse_structured(data, prompt_used=prompt_used)
        except Exception:
            logger.exception("LLM 响应归一化异常，使用默认结果")
            return build_default_result(prompt_used)

    def parse_structured(
        self, data: Dict[str, Any], prompt_used: str = ""
    ) -> AnalysisResult:
        """结构化策略：校验 JSON 字典的每个字段。"""
        return self._coerce(data, prompt_used)

    def parse_text(self, text: str, prompt_used: str = "") -> AnalysisResult:
        """文本策略：从散文中尽力提取评分、建议与总结。"""
        return self._coerce(extract_from_text(text), prompt_used)

    # -------------------------------------------------------------------------
    # 内部方法
    # -------------------------------------------------------------------------

    def _coerce(self, data: Dict[str, Any], prompt_used: str) -> AnalysisResult:
        level = _coerce_int(
            data.get("overallRiskLevel"), OVERALL_RISK_MIN, OVERALL_RISK_MAX
        )
        if level is None:
            level = DEFAULT_OVERALL_RISK
        comment = _coerce_str(data.get("riskLevelComment")) or comment_for_level(level)

        radar = self._coerce_radar(
            _as_dict(data.get("radarScores")), _as_dict(data.get("riskScores"))
        )

        detail = _as_dict(data.get("detailedAnalysis"))
        recommendations = _coerce_str_list(
            detail.get("recommendations"), MAX_RECOMMENDATIONS
        )
        if not recommendations:
            # 旧版输出格式：顶层 suggestions
            recommendations = _coerce_str_list(
                data.get("suggestions"), MAX_RECOMMENDATIONS
            )
        if not recommendations:
            recommendations = [DEFAULT_RECOMMENDATION]

        dim_text = _as_dict(detail.get("riskDetailedAnalysis"))
        detailed = DetailedAnalysis(
            risk_factors=_coerce_str_list(detail.get("riskFactors"), MAX_RISK_FACTORS),
            compliance_gaps=_coerce_str_list(
                detail.get("complianceGaps"), MAX_COMPLIANCE_GAPS
            ),
            recommendations=recommendations,
            risk_detailed_analysis={
                dim: _coerce_str(dim_text.get(dim)) or DEFAULT_DIMENSION_ANALYSIS
                for dim in RADAR_DIMENSIONS
            },
        )

        plan = _as_dict(data.get("actionPlan"))
        action_plan = ActionPlan(
            immediate=_coerce_str_list(plan.get("immediate"), MAX_ACTION_ITEMS),
            short_term=_coerce_str_list(plan.get("shortTerm"), MAX_ACTION_ITEMS),
            long_term=_coerce_str_list(plan.get("longTerm"), MAX_ACTION_ITEMS),
        )

        sas = _as_dict(data.get("summaryAndSuggestions"))
        summary_and_suggestions = SummaryAndSuggestions(
            evaluation_summary=(
                _coerce_str(sas.get("evaluationSummary"))
                or _coerce_str(data.get("summary"))
                or DEFAULT_EVALUATION_SUMMARY
            ),
            optimization_suggestions=_coerce_str_list(
                sas.get("optimizationSuggestions")
            ),
            professional_advice=_coerce_str(sas.get("professionalAdvice")),
        )

        result = AnalysisResult(
            overall_risk_level=level,
            risk_level_comment=comment,
            radar_scores=radar,
            detailed_analysis=detailed,
            action_plan=action_plan,
            summary_and_suggestions=summary_and_suggestions,
            prompt_used=prompt_used,
        )
        return derive_legacy_fields(result)

    @staticmethod
    def _coerce_radar(
        radar_raw: Dict[str, Any], legacy_raw: Dict[str, Any]
    ) -> Dict[str, int]:
        # 旧版 1-5 分评分仅在对应雷达维度缺失时换算使用
        legacy_by_dim = {dim: key for key, dim in LEGACY_DIMENSION_MAP.items()}
        radar: Dict[str, int] = {}
        for dim in RADAR_DIMENSIONS:
            score = _coerce_int(radar_raw.get(dim), RADAR_MIN, RADAR_MAX)
            if score is None and dim not in radar_raw:
                old = _coerce_int(legacy_raw.get(legacy_by_dim[dim]), 1, 5)
                if old is not None:
                    score = int(math.floor(old * 9 / 5 + 0.5))
            radar[dim] = score if score is not None else DEFAULT_RADAR_SCORE
        return radar


# =============================================================================
# 文本模式提取 / Text-pattern extraction
# =============================================================================


def extract_from_text(text: str) -> Dict[str, Any]:
    """从非 JSON 文本中提取出与结构化输出同形的字典（字段可能缺失）。"""
    data: Dict[str, Any] = {}
    if not text:
        return data

    overall = _OVERALL_PATTERN.search(text)
    candidates = [overall.group(1)] if overall else []
    candidates.extend(m.group(1) for m in _SCORE_PATTERN.finditer(text))
    for candidate in candidates:
        level = _coerce_int(candidate, OVERALL_RISK_MIN, OVERALL_RISK_MAX)
        if level is not None:
            data["overallRiskLevel"] = level
            break

    radar: Dict[str, int] = {}
    for dim in RADAR_DIMENSIONS:
        match = re.search(re.escape(dim) + r"[^\d\n]{0,10}(\d{1,2})", text)
        if match:
            radar[dim] = int(match.group(1))
    if radar:
        data["radarScores"] = radar

    suggestions = [
        s for s in (clean_text(m.group(0)) for m in _SUGGESTION_PATTERN.finditer(text))
        if s
    ]
    if suggestions:
        data["detailedAnalysis"] = {"recommendations": suggestions[:MAX_LEGACY_SUGGESTIONS]}

    summary_match = _SUMMARY_PATTERN.search(text)
    if summary_match:
        summary = clean_text(summary_match.group(0))
    else:
        summary = clean_text(text[:200]) + "..."
    data["summaryAndSuggestions"] = {"evaluationSummary": summary}
    return data


# =============================================================================
# 派生与默认 / Derivation & defaults
# =============================================================================


def derive_legacy_fields(result: AnalysisResult) -> AnalysisResult:
    """从归一化结构派生旧版 riskScores / suggestions / summary。"""
    result.risk_scores = {
        legacy: legacy_score(result.radar_scores[dim])
        for legacy, dim in LEGACY_DIMENSION_MAP.items()
    }
    result.suggestions = list(
        result.detailed_analysis.recommendations[:MAX_LEGACY_SUGGESTIONS]
    )
    result.summary = (
        f"风险等级：{result.overall_risk_level}分 - {result.risk_level_comment}"
    )
    return result


def build_default_result(prompt_used: str = "fallback") -> AnalysisResult:
    """全部字段取默认值的结果，可作为调用方的最终静态兜底。"""
    result = AnalysisResult(
        overall_risk_level=DEFAULT_OVERALL_RISK,
        risk_level_comment=comment_for_level(DEFAULT_OVERALL_RISK),
        radar_scores={dim: DEFAULT_RADAR_SCORE for dim in RADAR_DIMENSIONS},
        detailed_analysis=DetailedAnalysis(
            recommendations=[DEFAULT_RECOMMENDATION],
            risk_detailed_analysis={
                dim: DEFAULT_DIMENSION_ANALYSIS for dim in RADAR_DIMENSIONS
            },
        ),
        action_plan=ActionPlan(),
        summary_and_suggestions=SummaryAndSuggestions(),
        prompt_used=prompt_used,
    )
    return derive_legacy_fields(result)

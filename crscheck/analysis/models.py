# models.py
# =============================================================================
# 本模块定义 CRS 风险分析结果的数据模型。
# 包含：雷达维度常量、风险等级分段、AnalysisResult 及其子结构、
#       旧版兼容字段映射。
# 归一化后所有字段均存在且满足取值约束（见 normalizer.py）。
# =============================================================================

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# 五个雷达维度（顺序即展示顺序）
RADAR_DIMENSIONS = (
    "金融账户穿透风险",
    "实体分类与结构风险",
    "税务居民身份协调",
    "控权人UBO暴露风险",
    "合规准备与后续行为",
)

# 旧版 5 维评分（1-5 分）→ 对应的雷达维度
LEGACY_DIMENSION_MAP = {
    "金融账户": "金融账户穿透风险",
    "控制人": "控权人UBO暴露风险",
    "结构": "实体分类与结构风险",
    "合规": "合规准备与后续行为",
    "税务": "税务居民身份协调",
}

OVERALL_RISK_MIN = 1
OVERALL_RISK_MAX = 99
DEFAULT_OVERALL_RISK = 50

RADAR_MIN = 1
RADAR_MAX = 9
DEFAULT_RADAR_SCORE = 5

MAX_RISK_FACTORS = 5
MAX_COMPLIANCE_GAPS = 5
MAX_RECOMMENDATIONS = 8
MAX_ACTION_ITEMS = 3
MAX_LEGACY_SUGGESTIONS = 5

# (上界, 评语)：按 overallRiskLevel 落入的第一个分段取评语
RISK_LEVEL_BANDS = (
    (19, "整体风险较低，现有安排基本符合CRS合规要求，保持定期自查即可。"),
    (39, "整体风险偏低，个别环节存在信息披露或申报细节上的改进空间。"),
    (59, "整体风险中等，部分账户或架构可能受到CRS信息交换影响，建议尽快梳理。"),
    (79, "整体风险较高，存在较明显的信息交换与税务居民身份协调问题，建议寻求专业协助。"),
    (OVERALL_RISK_MAX, "整体风险很高，多个维度存在显著合规缺口，建议立即制定整改方案。"),
)

DEFAULT_DIMENSION_ANALYSIS = "暂无该维度的详细分析，建议结合自身情况咨询专业顾问。"
DEFAULT_EVALUATION_SUMMARY = "基于您的回答，我们为您生成了CRS合规风险分析报告。"
DEFAULT_RECOMMENDATION = "请咨询专业的CRS合规顾问获取个性化建议。"


def comment_for_level(level: int) -> str:
    """按固定分段为整体风险等级生成评语。"""
    for upper, comment in RISK_LEVEL_BANDS:
        if level <= upper:
            return comment
    return RISK_LEVEL_BANDS[-1][1]


def legacy_score(radar_score: int) -> int:
    """1-9 雷达评分换算为 1-5 旧版评分（四舍五入，半数进位）。"""
    return int(math.floor(radar_score * 5 / 9 + 0.5))


@dataclass
class DetailedAnalysis:
    risk_factors: List[str] = field(default_factory=list)
    compliance_gaps: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    # 每个雷达维度一段说明
    risk_detailed_analysis: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "riskFactors": list(self.risk_factors),
            "complianceGaps": list(self.compliance_gaps),
            "recommendations": list(self.recommendations),
            "riskDetailedAnalysis": dict(self.risk_detailed_analysis),
        }


@dataclass
class ActionPlan:
    immediate: List[str] = field(default_factory=list)
    short_term: List[str] = field(default_factory=list)
    long_term: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "immediate": list(self.immediate),
            "shortTerm": list(self.short_term),
            "longTerm": list(self.long_term),
        }


@dataclass
class SummaryAndSuggestions:
    evaluation_summary: str = DEFAULT_EVALUATION_SUMMARY
    optimization_suggestions: List[str] = field(default_factory=list)
    professional_advice: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "evaluationSummary": self.evaluation_summary,
            "optimizationSuggestions": list(self.optimization_suggestions),
        }
        if self.professional_advice:
            data["professionalAdvice"] = self.professional_advice
        return data


@dataclass
class AnalysisResult:
    """归一化后的分析结果，所有字段均已填充。"""

    overall_risk_level: int
    risk_level_comment: str
    radar_scores: Dict[str, int]
    detailed_analysis: DetailedAnalysis
    action_plan: ActionPlan
    summary_and_suggestions: SummaryAndSuggestions
    prompt_used: str = ""

    # 旧版兼容字段（由上面的结构机械派生）
    risk_scores: Dict[str, int] = field(default_factory=dict)
    suggestions: List[str] = field(default_factory=list)
    summary: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """序列化为 camelCase 字典，供 HTTP 层直接输出。"""
        return {
            "overallRiskLevel": self.overall_risk_level,
            "riskLevelComment": self.risk_level_comment,
            "radarScores": dict(self.radar_scores),
            "detailedAnalysis": self.detailed_analysis.to_dict(),
            "actionPlan": self.action_plan.to_dict(),
            "summaryAndSuggestions": self.summary_and_suggestions.to_dict(),
            "promptUsed": self.prompt_used,
            "riskScores": dict(self.risk_scores),
            "suggestions": list(self.suggestions),
            "summary": self.summary,
        }

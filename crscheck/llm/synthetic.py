# synthetic.py
# =============================================================================
# 合成分析结果生成器 / Synthetic analysis generator
#
# 所有真实 Provider 不可用时，本地生成与真实 LLM 回复同构的 JSON 文本，
# 保证下游归一化总能拿到结构合法的输入。
# 取值在合理区间内随机，随机种子取自 Prompt 内容的 SHA256，
# 因此同一输入总是得到同一结果。
# 结果在 evaluationSummary 中明确标注为离线结果。
# =============================================================================

from __future__ import annotations

import hashlib
import json
import random
from typing import Any, Dict, List

from crscheck.analysis.models import RADAR_DIMENSIONS, comment_for_level

SYNTHETIC_PROVIDER_NAME = "synthetic"
OFFLINE_NOTICE = "（本报告由离线规则生成，未经AI模型分析，结论仅供参考）"

_RISK_FACTORS = [
    "持有境外金融账户，账户信息可能通过CRS在税务辖区间交换",
    "资产通过控股平台或离岸实体持有，存在穿透识别风险",
    "税务居民身份自我声明可能与实际情况不一致",
    "对CRS穿透规则理解不充分，申报准确性存在不确定性",
    "跨境资金往来较频繁，容易引起金融机构尽职调查关注",
    "控制人信息披露不完整，可能被认定为UBO信息缺失",
]

_COMPLIANCE_GAPS = [
    "缺少系统化的税务居民身份文件留存",
    "未定期复核境外账户的CRS自我证明",
    "缺少针对离岸架构的合规评估记录",
    "未建立税务信息变更的及时更正机制",
    "对实体分类（主动/被动NFE）缺乏明确判断依据",
]

_RECOMMENDATIONS = [
    "梳理全部境外金融账户，核对各账户的税务居民身份声明",
    "评估现有持股架构在CRS下的实体分类与穿透结果",
    "准备并留存税务居民身份证明材料",
    "定期关注CRS及相关国家税收信息交换政策的变化",
    "建立完善的合规管理体系和内控制度",
    "保持良好的文档记录和申报习惯",
    "必要时咨询专业的CRS合规顾问",
    "对控制人信息进行一次完整的自查与更新",
]

_IMMEDIATE = [
    "核对各金融机构留存的税务居民身份信息",
    "整理境外账户与持股架构清单",
    "确认是否存在需要更正的自我证明",
]
_SHORT_TERM = [
    "完成持股架构的CRS实体分类评估",
    "补充完善控制人与受益所有人信息",
    "与专业顾问讨论潜在的合规缺口",
]
_LONG_TERM = [
    "建立年度CRS合规自查机制",
    "根据政策变化动态调整资产配置与架构",
    "持续跟踪各税务辖区的信息交换进展",
]

_DIMENSION_NOTES = {
    "金融账户穿透风险": "境外金融账户信息将按CRS规则交换至税务居民所在辖区，需关注账户申报完整性。",
    "实体分类与结构风险": "持股实体的分类结果决定是否需要穿透识别控制人，建议复核架构。",
    "税务居民身份协调": "多重税务居民身份或声明不一致时，可能导致信息被交换至多个辖区。",
    "控权人UBO暴露风险": "被动非金融实体的控制人信息会被识别与报送，应确保信息准确。",
    "合规准备与后续行为": "完善的文档与定期自查能够显著降低后续合规风险。",
}


class SyntheticAnalysisGenerator:
    """生成与 LLM 回复同构的合成分析 JSON。"""

    def generate(self, system_prompt: str, user_prompt: str) -> str:
        seed = hashlib.sha256(
            f"{system_prompt}\n{user_prompt}".encode("utf-8")
        ).hexdigest()
        rng = random.Random(seed)
        return json.dumps(self._build(rng), ensure_ascii=False)

    @staticmethod
    def _pick(rng: random.Random, pool: List[str], low: int, high: int) -> List[str]:
        return rng.sample(pool, rng.randint(low, min(high, len(pool))))

    def _build(self, rng: random.Random) -> Dict[str, Any]:
        level = rng.randint(30, 75)
        return {
            "overallRiskLevel": level,
            "riskLevelComment": comment_for_level(level),
            "radarScores": {dim: rng.randint(3, 7) for dim in RADAR_DIMENSIONS},
            "detailedAnalysis": {
                "riskFactors": self._pick(rng, _RISK_FACTORS, 3, 5),
                "complianceGaps": self._pick(rng, _COMPLIANCE_GAPS, 2, 4),
                "recommendations": self._pick(rng, _RECOMMENDATIONS, 4, 6),
                "riskDetailedAnalysis": dict(_DIMENSION_NOTES),
            },
            "actionPlan": {
                "immediate": self._pick(rng, _IMMEDIATE, 2, 3),
                "shortTerm": self._pick(rng, _SHORT_TERM, 2, 3),
                "longTerm": self._pick(rng, _LONG_TERM, 2, 3),
            },
            "summaryAndSuggestions": {
                "evaluationSummary": (
                    f"根据问卷回答，您的整体CRS合规风险评分为{level}分。"
                    f"{comment_for_level(level)}{OFFLINE_NOTICE}"
                ),
                "optimizationSuggestions": self._pick(rng, _RECOMMENDATIONS, 2, 3),
            },
        }

# models.py
# =============================================================================
# 问卷答案与 Prompt 配置的数据模型。
# 包含：AnswerItem / SurveyResponse（输入）、ConditionKind 与条件变体、
#       PromptVariant、FallbackPrompt、PromptConfig。
#
# 条件是带标签的变体：每种 ConditionKind 对应一个独立的 dataclass，
# 新增条件类型需同时在 selector.evaluate_condition 中实现求值。
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

logger = logging.getLogger(__name__)

USER_ANSWERS_PLACEHOLDER = "{USER_ANSWERS}"
DEFAULT_VARIANT_KEY = "default"


# =============================================================================
# 答案 / Answers
# =============================================================================


@dataclass
class AnswerItem:
    """单题答案：value 为标量或标量列表（多选）。"""

    question_id: str
    value: Any

    def value_set(self) -> FrozenSet[str]:
        """把答案值规范为字符串集合（多选与单选统一处理）。"""
        if isinstance(self.value, (list, tuple, set, frozenset)):
            return frozenset(str(v) for v in self.value)
        if self.value is None:
            return frozenset()
        return frozenset({str(self.value)})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AnswerItem:
        """支持 {questionId, value} 与存储格式
        {questionId, optionId | optionIds | textValue | scaleValue}。
        """
        question_id = data.get("questionId") or data.get("question_id")
        if not question_id:
            raise ValueError(f"答案缺少 questionId: {data!r}")
        for key in ("value", "optionIds", "optionId", "textValue", "scaleValue"):
            if data.get(key) is not None:
                return cls(question_id=str(question_id), value=data[key])
        return cls(question_id=str(question_id), value=None)


@dataclass
class SurveyResponse:
    """一次问卷提交：分析的输入。"""

    survey_id: str
    answers: List[AnswerItem]
    response_id: str = ""

    def find(self, question_id: str) -> Optional[AnswerItem]:
        for answer in self.answers:
            if answer.question_id == question_id:
                return answer
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SurveyResponse:
        survey_id = data.get("surveyId") or data.get("survey_id")
        if not survey_id:
            raise ValueError("提交记录缺少 surveyId")
        return cls(
            survey_id=str(survey_id),
            answers=[AnswerItem.from_dict(a) for a in data.get("answers", [])],
            response_id=str(data.get("id") or data.get("responseId") or ""),
        )


# =============================================================================
# 条件 / Conditions
# =============================================================================


class ConditionKind(str, Enum):
    ANSWER_CONTAINS = "answer_contains"


@dataclass(frozen=True)
class AnswerContainsCondition:
    """指定题目的答案与 values 有交集时成立。"""

    question_id: str
    values: FrozenSet[str]

    @property
    def kind(self) -> ConditionKind:
        return ConditionKind.ANSWER_CONTAINS


# 新增条件类型时扩展此别名
Condition = AnswerContainsCondition


def condition_from_dict(data: Any) -> Condition:
    """解析条件字典。

    Raises:
        ValueError: 条件不是字典、未知的条件类型或字段缺失。
    """
    if not isinstance(data, dict):
        raise ValueError(f"条件必须为字典，实际类型: {type(data).__name__}")
    try:
        kind = ConditionKind(data.get("type"))
    except ValueError:
        raise ValueError(f"未知的条件类型: {data.get('type')!r}") from None

    if kind is ConditionKind.ANSWER_CONTAINS:
        question_id = data.get("questionId")
        values = data.get("values")
        if not question_id or not isinstance(values, list):
            raise ValueError("answer_contains 条件需要 questionId 与 values 列表")
        return AnswerContainsCondition(
            question_id=str(question_id),
            values=frozenset(str(v) for v in values),
        )
    raise ValueError(f"未实现的条件类型: {kind.value}")


# =============================================================================
# Prompt 配置 / Prompt config
# =============================================================================


@dataclass
class FallbackPrompt:
    """所选变体模板为空或问卷无配置时使用的 system + user 模板。"""

    system_prompt: str
    analysis_prompt: str
    id: str = "fallback_prompt"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> FallbackPrompt:
        return cls(
            system_prompt=str(data.get("systemPrompt", "")),
            analysis_prompt=str(data.get("analysisPrompt", "")),
        )


@dataclass
class PromptVariant:
    id: str
    name: str
    system_prompt: str
    analysis_prompt: str
    description: str = ""
    condition: Optional[Condition] = None
    # 仅作文档用途，不做校验
    output_format: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, key: str, data: Dict[str, Any]) -> PromptVariant:
        condition = None
        if data.get("condition"):
            condition = condition_from_dict(data["condition"])
        return cls(
            id=str(data.get("id") or key),
            name=str(data.get("name") or key),
            description=str(data.get("description", "")),
            system_prompt=str(data.get("systemPrompt", "")),
            analysis_prompt=str(data.get("analysisPrompt", "")),
            condition=condition,
            output_format=data.get("outputFormat") or {},
        )


@dataclass
class PromptConfig:
    """单个问卷的 Prompt 配置。variants 保持定义顺序（首个匹配胜出）。"""

    survey_id: str
    title: str
    version: str
    variants: Dict[str, PromptVariant]
    fallback_prompt: Optional[FallbackPrompt] = None

    @property
    def default_variant(self) -> PromptVariant:
        return self.variants[DEFAULT_VARIANT_KEY]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PromptConfig:
        """从配置字典构建。

        无法解析的条件变体会被丢弃并记录警告；缺少无条件的
        "default" 变体时抛出 ValueError。
        """
        raw_prompts = data.get("prompts")
        if not isinstance(raw_prompts, dict):
            raise ValueError("prompts 字段必须为字典")

        variants: Dict[str, PromptVariant] = {}
        for key, raw in raw_prompts.items():
            if not isinstance(raw, dict):
                logger.warning("Prompt 变体 '%s' 不是字典，已忽略", key)
                continue
            try:
                variants[key] = PromptVariant.from_dict(key, raw)
            except ValueError as exc:
                if key == DEFAULT_VARIANT_KEY:
                    raise
                logger.warning("Prompt 变体 '%s' 条件非法，已忽略: %s", key, exc)

        default = variants.get(DEFAULT_VARIANT_KEY)
        if default is None:
            raise ValueError("缺少 default 变体")
        if default.condition is not None:
            raise ValueError("default 变体不能带条件")

        fallback = data.get("fallbackPrompt")
        return cls(
            survey_id=str(data.get("surveyId", "")),
            title=str(data.get("title", "")),
            version=str(data.get("version", "")),
            variants=variants,
            fallback_prompt=(
                FallbackPrompt.from_dict(fallback) if isinstance(fallback, dict) else None
            ),
        )

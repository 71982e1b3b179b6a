# prompts/
# Prompt 配置加载、变体选择与答案渲染。

from crscheck.prompts.models import (
    AnswerContainsCondition,
    AnswerItem,
    ConditionKind,
    FallbackPrompt,
    PromptConfig,
    PromptVariant,
    SurveyResponse,
)
from crscheck.prompts.render import format_user_answers, render_analysis_prompt
from crscheck.prompts.selector import evaluate_condition, select_prompt
from crscheck.prompts.store import PromptConfigStore

__all__ = [
    "AnswerContainsCondition",
    "AnswerItem",
    "ConditionKind",
    "FallbackPrompt",
    "PromptConfig",
    "PromptConfigStore",
    "PromptVariant",
    "SurveyResponse",
    "evaluate_condition",
    "format_user_answers",
    "render_analysis_prompt",
    "select_prompt",
]

# selector.py
# =============================================================================
# Prompt 变体选择 — 系统中唯一的分支业务逻辑。
#
# 按配置定义顺序遍历变体（跳过 "default"），返回第一个条件成立的变体；
# 全部不成立时返回 "default"。纯函数、无随机性，不依赖网络。
# =============================================================================

from __future__ import annotations

import logging
from typing import Sequence

from crscheck.prompts.models import (
    DEFAULT_VARIANT_KEY,
    AnswerContainsCondition,
    AnswerItem,
    Condition,
    PromptConfig,
    PromptVariant,
)

logger = logging.getLogger(__name__)


def evaluate_condition(condition: Condition, answers: Sequence[AnswerItem]) -> bool:
    """对答案集合求值单个条件。"""
    if isinstance(condition, AnswerContainsCondition):
        answer = next(
            (a for a in answers if a.question_id == condition.question_id), None
        )
        if answer is None:
            return False
        return not answer.value_set().isdisjoint(condition.values)
    raise TypeError(f"不支持的条件类型: {type(condition).__name__}")


def select_prompt(config: PromptConfig, answers: Sequence[AnswerItem]) -> PromptVariant:
    """选择适用的 Prompt 变体（首个匹配胜出，否则 default）。"""
    for key, variant in config.variants.items():
        if key == DEFAULT_VARIANT_KEY or variant.condition is None:
            continue
        if evaluate_condition(variant.condition, answers):
            logger.info("选择 Prompt: %s (%s)", variant.name, variant.id)
            return variant

    logger.info("无条件匹配，使用默认 Prompt")
    return config.default_variant

# render.py
# 把答案渲染为可读文本并代入分析模板。

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from crscheck.prompts.models import USER_ANSWERS_PLACEHOLDER, AnswerItem

MAX_ANSWER_TEXT_LENGTH = 1000
TRUNCATION_MARK = "...(答案已截断)"


def format_user_answers(
    answers: Sequence[AnswerItem], survey_data: Optional[Dict[str, Any]]
) -> str:
    """按 "问题N: 标题 / 回答: 值" 的格式渲染答案。

    题号取答案在列表中的位置；问卷中找不到对应题目的答案不输出。
    """
    questions = {}
    for q in (survey_data or {}).get("questions") or []:
        if isinstance(q, dict) and q.get("id") is not None:
            questions[str(q["id"])] = q.get("title") or q.get("content") or ""

    lines: List[str] = []
    for index, answer in enumerate(answers):
        if answer.question_id not in questions:
            continue
        lines.append(f"问题{index + 1}: {questions[answer.question_id]}")
        value = answer.value
        if isinstance(value, (list, tuple, set, frozenset)):
            lines.append(f"回答: {', '.join(str(v) for v in value)}")
        else:
            lines.append(f"回答: {'' if value is None else value}")
        lines.append("")
    return "\n".join(lines) + ("\n" if lines else "")


def render_analysis_prompt(template: str, formatted_answers: str) -> str:
    """截断过长的答案文本并代入 {USER_ANSWERS} 占位符。"""
    if len(formatted_answers) > MAX_ANSWER_TEXT_LENGTH:
        formatted_answers = formatted_answers[:MAX_ANSWER_TEXT_LENGTH] + TRUNCATION_MARK
    return template.replace(USER_ANSWERS_PLACEHOLDER, formatted_answers)

# cache.py
# =============================================================================
# 分析结果缓存 / Analysis result cache
#
# 以 (survey_id, 按 questionId 排序后的答案) 的指纹为键，缓存 AnalysisResult，
# 固定 TTL（默认 5 分钟）。过期条目在每次写入时顺带清理，没有后台定时器。
# 进程内、非共享；仅用于避免短时间内重复提交带来的重复付费调用。
# =============================================================================

from __future__ import annotations

import base64
import copy
import json
import logging
import time
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from crscheck.analysis.models import AnalysisResult

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60


def _stable_value(value: Any) -> Any:
    # 多选答案按集合语义处理：顺序无关
    if isinstance(value, (list, tuple, set, frozenset)):
        return sorted(str(v) for v in value)
    return value


def fingerprint(survey_id: str, answers: Iterable[Any]) -> str:
    """计算缓存指纹：survey_id + base64(稳定 JSON(排序后的答案))。

    answers 的元素需带 question_id / value 属性（AnswerItem）。
    """
    ordered = sorted(
        ({"questionId": a.question_id, "value": _stable_value(a.value)} for a in answers),
        key=lambda item: str(item["questionId"]),
    )
    encoded = json.dumps(
        ordered, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str,
    )
    digest = base64.urlsafe_b64encode(encoded.encode("utf-8")).decode("ascii")
    return f"{survey_id}_{digest}"


class AnalysisCache:
    """带 TTL 的进程内结果缓存。

    max_entries 为 None 时不限制条目数（仅靠 TTL 清理）；设定后，
    写入超出上限时淘汰最早写入的条目。
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, Tuple[AnalysisResult, float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self._live(key) is not None

    def _live(self, key: str) -> Optional[AnalysisResult]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        result, stored_at = entry
        if self._clock() - stored_at >= self._ttl:
            return None
        return result

    def get(self, key: str) -> Optional[AnalysisResult]:
        """返回缓存结果的副本；调用方修改返回值不影响缓存。"""
        result = self._live(key)
        return copy.deepcopy(result) if result is not None else None

    def put(self, key: str, result: AnalysisResult) -> None:
        now = self._clock()
        self._entries.pop(key, None)
        self._entries[key] = (copy.deepcopy(result), now)
        self.sweep(now)

        if self._max_entries is not None:
            while len(self._entries) > self._max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]

    def sweep(self, now: Optional[float] = None) -> int:
        """删除所有过期条目，返回删除数量。"""
        now = self._clock() if now is None else now
        expired = [
            key for key, (_, stored_at) in self._entries.items()
            if now - stored_at >= self._ttl
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("清理过期分析缓存 %d 条", len(expired))
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

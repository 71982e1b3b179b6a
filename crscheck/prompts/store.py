# store.py
# =============================================================================
# Prompt 配置存储 — 按问卷 ID 加载并缓存 PromptConfig。
#
# 问卷 ID 经静态映射表解析为配置文件名（JSON / YAML），位于 config_dir 下。
# 成功加载的配置在进程生命周期内缓存，不做失效。
# 映射缺失、文件不存在或解析失败均返回 None 并记录日志，调用方必须
# 自备兜底模板。
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from crscheck.prompts.models import PromptConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent.parent / "data" / "prompt" / "analysis"

DEFAULT_CONFIG_FILES: Dict[str, str] = {
    "bank_crs_01": "ana_bank_crs.json",
    "ai_survey": "ana_ai_survey.json",
}


class PromptConfigStore:
    """按问卷 ID 加载 PromptConfig，首次加载后常驻内存。"""

    def __init__(
        self,
        config_dir: Optional[Path] = None,
        file_map: Optional[Dict[str, str]] = None,
    ) -> None:
        """初始化存储。

        Args:
            config_dir: 配置文件目录（默认为包内 data/prompt/analysis）。
            file_map: 问卷 ID → 文件名映射（默认 DEFAULT_CONFIG_FILES）。
        """
        self._config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self._file_map = dict(DEFAULT_CONFIG_FILES if file_map is None else file_map)
        self._configs: Dict[str, PromptConfig] = {}

    def is_cached(self, survey_id: str) -> bool:
        return survey_id in self._configs

    async def load(self, survey_id: str) -> Optional[PromptConfig]:
        """加载问卷的 Prompt 配置；不可用时返回 None（不抛异常）。"""
        cached = self._configs.get(survey_id)
        if cached is not None:
            return cached

        file_name = self._file_map.get(survey_id)
        if not file_name:
            logger.warning("未找到问卷的 Prompt 配置映射: %s", survey_id)
            return None

        path = self._config_dir / file_name
        if not path.is_file():
            logger.warning("Prompt 配置文件不存在: %s（问卷: %s）", path, survey_id)
            return None

        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
            config = PromptConfig.from_dict(self._parse(path, text))
        except (OSError, ValueError, yaml.YAMLError) as exc:
            # json.JSONDecodeError 是 ValueError 的子类
            logger.warning("Prompt 配置解析失败，视为不存在: %s (%s)", path, exc)
            return None

        self._configs[survey_id] = config
        logger.info(
            "Prompt 配置已加载: %s v%s (%d 个变体)",
            survey_id, config.version, len(config.variants),
        )
        return config

    @staticmethod
    def _parse(path: Path, text: str) -> Dict[str, Any]:
        if path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"配置顶层必须为对象，实际类型: {type(data).__name__}")
        return data

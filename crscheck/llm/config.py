# config.py
# =============================================================================
# LLM Provider 配置加载与合并模块 / LLM provider config loading & merging
#
# 职责 / Responsibilities:
#   - 定义单个 Provider 的配置结构（ProviderConfig）与全局开关（LLMSettings）
#     / Define per-provider config (ProviderConfig) and global switches (LLMSettings)
#   - 实现三层优先级配置加载：代码传入 > 配置文件 > 环境变量
#     / Three-tier priority loading: code > config file > env vars
#   - 为 FallbackRouter 提供 primary / backup 两个 Provider 的完整配置
#     / Provide resolved primary / backup configs to FallbackRouter
#
# 配置格式 / Config shape:
#   primary:  {name, url, api_key, model, timeout, max_tokens, ...}
#   backup:   {...}
#   _default: {...}          # 两个 Provider 共享的默认值 / shared defaults
#   _options: {enable_fallback, allow_synthetic, force_synthetic}
# =============================================================================

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from crscheck.llm.errors import CONFIG_INVALID, ConfigurationError

logger = logging.getLogger(__name__)


# =============================================================================
# 数据结构 / Data Structures
# =============================================================================


@dataclass
class ProviderConfig:
    """单个 LLM Provider 的完整配置。
    / Complete config for a single chat-completions provider.
    """

    name: str
    url: Optional[str] = None
    api_key: Optional[str] = None
    model: Optional[str] = None
    enabled: bool = True

    # 请求超时（秒） / Request timeout (seconds)
    timeout: float = 60.0
    max_tokens: Optional[int] = 1500

    # 固定采样参数 / Fixed sampling parameters
    temperature: float = 0.7
    top_p: float = 0.9
    frequency_penalty: float = 0.1

    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_usable(self) -> bool:
        """启用且 url / api_key / model 均已配置。"""
        return bool(self.enabled and self.url and self.api_key and self.model)

    def missing_fields(self) -> List[str]:
        return [
            key for key in ("url", "api_key", "model")
            if not getattr(self, key)
        ]

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_name: str) -> ProviderConfig:
        """从字典构建配置。 / Build config from dict.

        兼容 endpoint / url、model_name / model 两种写法。
        """
        _known_keys = {
            "name", "url", "endpoint", "api_key", "model", "model_name",
            "enabled", "timeout", "max_tokens", "temperature", "top_p",
            "frequency_penalty",
        }
        try:
            max_tokens = data.get("max_tokens", 1500)
            return cls(
                name=str(data.get("name") or default_name),
                url=data.get("url") or data.get("endpoint") or None,
                api_key=data.get("api_key") or None,
                model=data.get("model") or data.get("model_name") or None,
                enabled=_parse_bool(data.get("enabled", True)),
                timeout=float(data.get("timeout", 60.0)),
                max_tokens=int(max_tokens) if max_tokens is not None else None,
                temperature=float(data.get("temperature", 0.7)),
                top_p=float(data.get("top_p", 0.9)),
                frequency_penalty=float(data.get("frequency_penalty", 0.1)),
                extra={k: v for k, v in data.items() if k not in _known_keys},
            )
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                f"Provider '{default_name}' 配置值非法: {exc}",
                code=CONFIG_INVALID,
            ) from exc


@dataclass
class LLMSettings:
    """Fallback 编排所需的全部配置。"""

    primary: ProviderConfig
    backup: ProviderConfig
    # 允许在 primary 失败后尝试 backup / Allow backup after primary failure
    enable_fallback: bool = True
    # 允许真实 Provider 全部失败后生成合成结果 / Allow synthetic state
    allow_synthetic: bool = True
    # 跳过网络调用，直接生成合成结果（离线/演示） / Mock mode, no network
    force_synthetic: bool = False


# =============================================================================
# 环境变量映射 / Environment variable mapping
# =============================================================================

_ENV_PROVIDER_KEYS = {
    "primary": {
        "name": ("LLM_PRIMARY_NAME",),
        "url": ("LLM_PRIMARY_ENDPOINT", "LLM_API_ENDPOINT"),
        "api_key": ("LLM_PRIMARY_API_KEY", "LLM_API_KEY"),
        "model": ("LLM_PRIMARY_MODEL", "LLM_MODEL"),
    },
    "backup": {
        "name": ("LLM_BACKUP_NAME",),
        "url": ("LLM_BACKUP_ENDPOINT",),
        "api_key": ("LLM_BACKUP_API_KEY",),
        "model": ("LLM_BACKUP_MODEL",),
    },
}

_ENV_SHARED_KEYS = {
    "max_tokens": "LLM_MAX_TOKENS",
}

# 毫秒，加载时换算为秒
_ENV_TIMEOUT_MS = "LLM_TIMEOUT"

_ENV_OPTION_KEYS = {
    "enable_fallback": "LLM_ENABLE_FALLBACK",
    "allow_synthetic": "LLM_ALLOW_SYNTHETIC",
    "force_synthetic": "LLM_ENABLE_MOCK",
}

_DEFAULT_NAMES = {"primary": "primary", "backup": "backup"}


# =============================================================================
# 配置加载器 / Config Loader
# =============================================================================


class LLMConfigLoader:
    """LLM 配置加载器 — 实现三层优先级配置合并。
    / LLM config loader — three-tier priority merging.

    优先级（高→低） / Priority (high→low):
    1. 代码传入（llm_config 字典参数） / Code-level config dict
    2. 配置文件（YAML） / Config file (YAML)
    3. 环境变量 / Environment variables

    每一层内部，角色级配置覆盖 _default。
    / Within a tier, role-level keys override _default.
    """

    _CONFIG_SEARCH_PATHS = [
        "crs_llm_config.yaml",
        "crs_llm_config.yml",
        "config/crs_llm_config.yaml",
        "config/crs_llm_config.yml",
    ]

    ROLES = ("primary", "backup")

    def __init__(
        self,
        llm_config: Optional[Dict[str, Any]] = None,
        config_file: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        """初始化配置加载器。

        Args:
            llm_config: 代码传入的配置字典（最高优先级）。
            config_file: 配置文件路径（不传则自动搜索）。
            environ: 环境变量映射（默认 os.environ，测试可注入）。
        """
        self._code_config = llm_config or {}
        self._file_config: Dict[str, Any] = {}
        self._environ = os.environ if environ is None else environ

        self._load_config_file(config_file)

    def _load_config_file(self, config_file: Optional[str]) -> None:
        if config_file:
            path = Path(config_file)
            if path.exists():
                self._file_config = self._read_yaml(path)
                logger.info("LLM 配置文件已加载: %s", path)
            else:
                logger.warning("指定的 LLM 配置文件不存在: %s", path)
            return

        for search_path in self._CONFIG_SEARCH_PATHS:
            path = Path(search_path)
            if path.exists():
                self._file_config = self._read_yaml(path)
                logger.info("自动发现 LLM 配置文件: %s", path)
                return

        logger.debug("未发现 LLM 配置文件，将依赖代码配置与环境变量")

    def _read_yaml(self, path: Path) -> Dict[str, Any]:
        """读取 YAML 文件并展开环境变量引用。"""
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ConfigurationError(
                f"LLM 配置文件顶层必须为字典: {path}", code=CONFIG_INVALID,
            )
        return _expand_env_vars(raw, self._environ)

    # -------------------------------------------------------------------------
    # 解析 / Resolution
    # -------------------------------------------------------------------------

    def _env_layer(self, role: str) -> Dict[str, Any]:
        layer: Dict[str, Any] = {}
        for key, names in _ENV_PROVIDER_KEYS[role].items():
            for name in names:
                value = self._environ.get(name)
                if value:
                    layer[key] = value
                    break
        for key, name in _ENV_SHARED_KEYS.items():
            value = self._environ.get(name)
            if value:
                layer[key] = value
        timeout_ms = self._environ.get(_ENV_TIMEOUT_MS)
        if timeout_ms:
            try:
                layer["timeout"] = float(timeout_ms) / 1000
            except ValueError:
                raise ConfigurationError(
                    f"{_ENV_TIMEOUT_MS} 必须为毫秒数，实际值: {timeout_ms!r}",
                    code=CONFIG_INVALID,
                ) from None
        return layer

    def resolve(self, role: str) -> ProviderConfig:
        """解析指定 Provider 角色（primary / backup）的完整配置。

        缺少 url / api_key / model 不报错：该 Provider 仅被视为不可用，
        由编排器跳过。
        """
        if role not in self.ROLES:
            raise ConfigurationError(
                f"未知的 Provider 角色: '{role}'（仅支持 primary / backup）",
                code=CONFIG_INVALID,
            )

        merged: Dict[str, Any] = self._env_layer(role)
        for cfg in (self._file_config, self._code_config):
            default = cfg.get("_default", {})
            if isinstance(default, dict):
                merged.update({k: v for k, v in default.items() if v is not None})
            role_cfg = cfg.get(role, {})
            if isinstance(role_cfg, dict):
                merged.update({k: v for k, v in role_cfg.items() if v is not None})

        return ProviderConfig.from_dict(merged, default_name=_DEFAULT_NAMES[role])

    def options(self) -> Dict[str, bool]:
        """解析全局开关。"""
        merged: Dict[str, Any] = {
            "enable_fallback": True,
            "allow_synthetic": True,
            "force_synthetic": False,
        }
        for key, name in _ENV_OPTION_KEYS.items():
            value = self._environ.get(name)
            if value:
                merged[key] = value
        for cfg in (self._file_config, self._code_config):
            opts = cfg.get("_options", {})
            if isinstance(opts, dict):
                merged.update({k: v for k, v in opts.items() if k in merged})
        return {k: _parse_bool(v) for k, v in merged.items()}

    def load(self) -> LLMSettings:
        """一次性解析出 LLMSettings。"""
        opts = self.options()
        return LLMSettings(
            primary=self.resolve("primary"),
            backup=self.resolve("backup"),
            enable_fallback=opts["enable_fallback"],
            allow_synthetic=opts["allow_synthetic"],
            force_synthetic=opts["force_synthetic"],
        )

    def validate(self) -> List[str]:
        """返回配置问题列表（空列表表示配置完整）。"""
        settings = self.load()
        labels = {"url": "endpoint", "api_key": "API密钥", "model": "模型"}
        issues: List[str] = []
        for role, cfg, title in (
            ("primary", settings.primary, "主要"),
            ("backup", settings.backup, "备用"),
        ):
            if role == "backup" and not settings.enable_fallback:
                continue
            for key in cfg.missing_fields():
                issues.append(f"{title}LLM服务{labels[key]}未配置")
        return issues

    def summary(self) -> Dict[str, Dict[str, str]]:
        """输出配置摘要（隐藏 API Key），用于日志/调试。"""
        result = {}
        for role in self.ROLES:
            cfg = self.resolve(role)
            result[role] = {
                "name": cfg.name,
                "model": cfg.model or "(unset)",
                "url": cfg.url or "(unset)",
                "api_key": _mask_key(cfg.api_key),
                "timeout": f"{cfg.timeout:g}s",
            }
        return result


# =============================================================================
# 工具函数 / Utility Functions
# =============================================================================

_ENV_REF = re.compile(r"\$\{([^}]+)\}")


def _expand_env_vars(obj: Any, environ: Mapping[str, str]) -> Any:
    """递归展开字典/列表中的 ${ENV_VAR} 引用。

    支持格式 / Supported formats:
    - ${VAR_NAME}          → environ["VAR_NAME"]
    - ${VAR_NAME:-default} → environ.get("VAR_NAME", "default")
    """
    if isinstance(obj, str):

        def _replace(match):
            var_expr = match.group(1)
            if ":-" in var_expr:
                var_name, default = var_expr.split(":-", 1)
                return environ.get(var_name.strip(), default.strip())
            return environ.get(var_expr.strip(), match.group(0))

        return _ENV_REF.sub(_replace, obj)

    if isinstance(obj, dict):
        return {k: _expand_env_vars(v, environ) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_vars(item, environ) for item in obj]
    return obj


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _mask_key(key: Optional[str]) -> str:
    """遮蔽 API Key，仅显示前 8 位和后 4 位。"""
    if not key:
        return "(unset)"
    if len(key) <= 12:
        return key[:3] + "***"
    return key[:8] + "..." + key[-4:]

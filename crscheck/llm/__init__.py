# llm/__init__.py
# Provider 配置、Chat Completions 适配器、降级编排与诊断 / Provider config, adapter, fallback & diagnostics

from crscheck.llm.chat_completions_adapter import ChatCompletionsAdapter
from crscheck.llm.config import LLMConfigLoader, LLMSettings, ProviderConfig
from crscheck.llm.errors import (
    AnalysisUnavailableError,
    ConfigurationError,
    CRSCheckError,
    ProviderAuthError,
    ProviderError,
    ProviderHTTPError,
    ProviderNetworkError,
    ProviderResponseError,
    ProviderTimeoutError,
)
from crscheck.llm.router import CallStats, FallbackRouter, ProviderReply
from crscheck.llm.synthetic import SyntheticAnalysisGenerator

__all__ = [
    "AnalysisUnavailableError",
    "CallStats",
    "ChatCompletionsAdapter",
    "ConfigurationError",
    "CRSCheckError",
    "FallbackRouter",
    "LLMConfigLoader",
    "LLMSettings",
    "ProviderAuthError",
    "ProviderConfig",
    "ProviderError",
    "ProviderHTTPError",
    "ProviderNetworkError",
    "ProviderReply",
    "ProviderResponseError",
    "ProviderTimeoutError",
    "SyntheticAnalysisGenerator",
]

# errors.py
# =============================================================================
# 错误码与异常层级 / Error codes & exception hierarchy
#
# 传输层错误在 Provider Client 边界统一转换为 ProviderError 子类，
# 编排器只捕获 ProviderError；其余异常一律向上传播。
# / Transport failures become ProviderError subclasses at the client
#   boundary; the orchestrator only catches ProviderError.
# =============================================================================

from __future__ import annotations

from typing import List, Optional, Tuple


# -----------------------------------------------------------------------------
# 错误码 / Error codes
# -----------------------------------------------------------------------------
CONFIG_MISSING = "CONFIG_MISSING"
CONFIG_INVALID = "CONFIG_INVALID"
PROVIDER_AUTH = "PROVIDER_AUTH"
PROVIDER_HTTP = "PROVIDER_HTTP"
PROVIDER_RESPONSE = "PROVIDER_RESPONSE"
PROVIDER_TIMEOUT = "PROVIDER_TIMEOUT"
PROVIDER_NETWORK = "PROVIDER_NETWORK"
ANALYSIS_UNAVAILABLE = "ANALYSIS_UNAVAILABLE"


class CRSCheckError(Exception):
    """所有 crscheck 异常的基类，携带错误码与诊断信息。"""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


class ConfigurationError(CRSCheckError):
    """Prompt 模板或 LLM 配置缺失/非法。"""

    def __init__(self, message: str, code: str = CONFIG_MISSING) -> None:
        super().__init__(code, message)


# -----------------------------------------------------------------------------
# Provider 错误 / Provider errors
# -----------------------------------------------------------------------------


class ProviderError(CRSCheckError):
    """单次 Provider 调用失败。"""

    def __init__(
        self,
        code: str,
        message: str,
        provider: str = "",
        status_code: Optional[int] = None,
        body: str = "",
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        self.body = body
        super().__init__(code, message)

    def summary(self) -> str:
        """简短的一行描述，用于 promptUsed 注释与日志。"""
        if self.status_code is not None:
            return f"{self.code} HTTP {self.status_code}"
        return self.code


class ProviderAuthError(ProviderError):
    """HTTP 401/403：认证或授权失败。"""

    def __init__(self, provider: str, status_code: int, body: str = "") -> None:
        reason = "API密钥认证失败" if status_code == 401 else "API访问被拒绝"
        super().__init__(
            PROVIDER_AUTH,
            f"{provider}: {reason} (HTTP {status_code})",
            provider=provider,
            status_code=status_code,
            body=body,
        )


class ProviderHTTPError(ProviderError):
    """其余非 2xx 响应。"""

    def __init__(self, provider: str, status_code: int, body: str = "") -> None:
        super().__init__(
            PROVIDER_HTTP,
            f"{provider}: HTTP错误 {status_code}: {body[:200]}",
            provider=provider,
            status_code=status_code,
            body=body,
        )


class ProviderResponseError(ProviderError):
    """响应体不是 JSON，或缺少 choices[0].message.content。"""

    def __init__(self, provider: str, message: str, body: str = "") -> None:
        super().__init__(
            PROVIDER_RESPONSE,
            f"{provider}: 响应格式不正确：{message}",
            provider=provider,
            body=body,
        )


class ProviderTimeoutError(ProviderError):
    """请求超时。"""

    def __init__(self, provider: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(
            PROVIDER_TIMEOUT,
            f"{provider}: 请求超时（{timeout:g}s）",
            provider=provider,
        )


class ProviderNetworkError(ProviderError):
    """连接失败等其它传输层异常。"""

    def __init__(self, provider: str, detail: str) -> None:
        super().__init__(
            PROVIDER_NETWORK,
            f"{provider}: 网络请求失败：{detail}",
            provider=provider,
        )


class AnalysisUnavailableError(CRSCheckError):
    """所有真实 Provider 失败且禁止合成结果：唯一向调用方传播的失败。"""

    def __init__(self, failures: List[Tuple[str, ProviderError]]) -> None:
        self.failures = list(failures)
        if failures:
            detail = "; ".join(
                f"{name}: {err.summary()}" for name, err in failures
            )
        else:
            detail = "没有可用的 LLM Provider"
        super().__init__(
            ANALYSIS_UNAVAILABLE,
            f"AI分析不可用（合成模式已禁用）: {detail}",
        )

# analysis/
# 分析结果模型、响应归一化、结果缓存与分析服务。

from crscheck.analysis.cache import AnalysisCache, fingerprint
from crscheck.analysis.models import AnalysisResult
from crscheck.analysis.normalizer import ResponseNormalizer, build_default_result
from crscheck.analysis.service import AnalysisService

__all__ = [
    "AnalysisCache",
    "AnalysisResult",
    "AnalysisService",
    "ResponseNormalizer",
    "build_default_result",
    "fingerprint",
]

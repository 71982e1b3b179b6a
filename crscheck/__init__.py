# crscheck/__init__.py
# =============================================================================
# CRS Check — 问卷 AI 风险分析核心。 / Questionnaire AI risk-analysis core.
# =============================================================================

"""CRS Check — 问卷 AI 风险分析核心。 / Questionnaire AI risk-analysis core."""

from crscheck.analysis.service import AnalysisService

__version__ = "0.1.0"
__all__ = ["AnalysisService", "__version__"]

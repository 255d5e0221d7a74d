from .baseline import analyze_site
from .content_quality import ContentQualityAnalyzer
from .enhanced import EnhancedAuditAnalyzer
from .local_seo import LocalSEOAnalyzer
from .priority import page_priority
from .technical_seo import TechnicalSEOAnalyzer
from .ux_performance import UXPerformanceAnalyzer

__all__ = [
    "analyze_site",
    "EnhancedAuditAnalyzer",
    "ContentQualityAnalyzer",
    "TechnicalSEOAnalyzer",
    "LocalSEOAnalyzer",
    "UXPerformanceAnalyzer",
    "page_priority",
]

from .analyzer import EnhancedAuditAnalyzer, analyze_site
from .classifier import classify_page, classify_site
from .exceptions import OverrideStoreError, SiteAuditError, SiteUnreachableError
from .fetcher import CrawlSession, fetch_page
from .models import AuditFinding, AuditReport, EnhancedAuditReport, PageRecord, SiteStructure
from .orchestrator import SiteCrawler
from .overrides import (
    InMemoryOverrideRepository,
    OverrideRequest,
    OverrideService,
    PageClassificationOverride,
    RedisOverrideRepository,
)
from .parser import parse_html
from .service import AuditService

__all__ = [
    "AuditService",
    "SiteCrawler",
    "CrawlSession",
    "fetch_page",
    "parse_html",
    "classify_page",
    "classify_site",
    "analyze_site",
    "EnhancedAuditAnalyzer",
    "PageRecord",
    "SiteStructure",
    "AuditFinding",
    "AuditReport",
    "EnhancedAuditReport",
    "SiteAuditError",
    "SiteUnreachableError",
    "OverrideService",
    "OverrideRequest",
    "PageClassificationOverride",
    "InMemoryOverrideRepository",
    "RedisOverrideRepository",
    "OverrideStoreError",
]

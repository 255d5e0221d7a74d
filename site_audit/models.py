import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


# finding statuses
OK = "OK"
OFI = "OFI"
PRIORITY_OFI = "Priority OFI"
NA = "N/A"
STATUSES = (OK, OFI, PRIORITY_OFI, NA)

IMPORTANCE_LEVELS = ("High", "Medium", "Low")

# page roles assigned by the classifier
PAGE_TYPES = ("homepage", "contact", "service", "location", "service-area", "other")

# report buckets: attribute name -> serialised key
REPORT_BUCKETS = {
    "on_page": "onPage",
    "structure_navigation": "structureNavigation",
    "contact_page": "contactPage",
    "service_pages": "servicePages",
    "location_pages": "locationPages",
    "service_area_pages": "serviceAreaPages",
}

# enhanced analyzer categories: category label -> serialised view key
ENHANCED_CATEGORIES = {
    "Content Quality": "contentQuality",
    "Technical SEO": "technicalSEO",
    "Local SEO & E-E-A-T": "localSEO",
    "UX & Performance": "uxPerformance",
}


def _empty_headings() -> dict[str, list[str]]:
    return {f"h{level}": [] for level in range(1, 7)}


@dataclass(frozen=True)
class LinkRef:
    url: str
    anchor_text: str = ""
    broken: bool = False

    def to_dict(self) -> dict:
        return {"url": self.url, "anchorText": self.anchor_text, "broken": self.broken}


@dataclass(frozen=True)
class Links:
    internal: list[LinkRef] = field(default_factory=list)
    external: list[LinkRef] = field(default_factory=list)

    @property
    def broken(self) -> list[LinkRef]:
        return [link for link in self.internal + self.external if link.broken]

    def to_dict(self) -> dict:
        return {
            "internal": [link.to_dict() for link in self.internal],
            "external": [link.to_dict() for link in self.external],
        }


@dataclass(frozen=True)
class ImageStats:
    total: int = 0
    with_alt: int = 0
    without_alt: int = 0
    alt_texts: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "withAlt": self.with_alt,
            "withoutAlt": self.without_alt,
            "altTexts": list(self.alt_texts),
        }


@dataclass(frozen=True)
class PageSpeed:
    score: int = 0              # 0-100, derived from load time
    load_time_ms: int = 0

    def to_dict(self) -> dict:
        return {"score": self.score, "loadTimeMs": self.load_time_ms}


@dataclass(frozen=True)
class ContentStructure:
    has_lists: bool = False
    has_faqs: bool = False
    has_video: bool = False
    has_table: bool = False
    has_emphasis: bool = False

    def to_dict(self) -> dict:
        return {
            "hasLists": self.has_lists,
            "hasFAQs": self.has_faqs,
            "hasVideo": self.has_video,
            "hasTable": self.has_table,
            "hasEmphasis": self.has_emphasis,
        }


@dataclass(frozen=True)
class SecurityInfo:
    has_mixed_content: bool = False
    has_security_headers: bool = False   # at least 2 of the 5 standard headers

    def to_dict(self) -> dict:
        return {
            "hasMixedContent": self.has_mixed_content,
            "hasSecurityHeaders": self.has_security_headers,
        }


@dataclass(frozen=True)
class AccessibilityInfo:
    missing_alt_text: int = 0
    has_aria_labels: bool = False
    has_proper_heading_structure: bool = False

    def to_dict(self) -> dict:
        return {
            "missingAltText": self.missing_alt_text,
            "hasAriaLabels": self.has_aria_labels,
            "hasProperHeadingStructure": self.has_proper_heading_structure,
        }


@dataclass(frozen=True)
class SeoIssues:
    noindex: bool = False
    duplicate_meta_tags: bool = False
    thin_content: bool = False
    missing_headings: bool = False

    def to_dict(self) -> dict:
        return {
            "noindex": self.noindex,
            "duplicateMetaTags": self.duplicate_meta_tags,
            "thinContent": self.thin_content,
            "missingHeadings": self.missing_headings,
        }


@dataclass(frozen=True)
class PageRecord:
    url: str                            # normalised, absolute
    status_code: int
    final_url: str = ""                 # may differ from url after redirects

    title: str = ""
    meta_description: str = ""
    body_text: str = ""
    raw_html: str = ""
    headers: dict[str, str] = field(default_factory=dict)    # response headers, lower-cased names

    headings: dict[str, list[str]] = field(default_factory=_empty_headings)
    links: Links = field(default_factory=Links)
    images: ImageStats = field(default_factory=ImageStats)
    schema_types: list[str] = field(default_factory=list)
    word_count: int = 0

    # boolean flags
    mobile_friendly: bool = False
    has_https: bool = False
    has_canonical: bool = False
    has_schema: bool = False
    has_social_tags: bool = False
    has_contact_form: bool = False
    has_phone_number: bool = False
    has_address: bool = False
    has_nap: bool = False
    has_icon: bool = False
    has_hreflang: bool = False
    has_amp: bool = False
    has_robots_meta: bool = False

    canonical_url: Optional[str] = None
    robots: Optional[str] = None

    page_load_speed: PageSpeed = field(default_factory=PageSpeed)
    content_structure: ContentStructure = field(default_factory=ContentStructure)
    security: SecurityInfo = field(default_factory=SecurityInfo)
    accessibility: AccessibilityInfo = field(default_factory=AccessibilityInfo)
    seo_issues: SeoIssues = field(default_factory=SeoIssues)

    # derived text metrics
    readability_score: float = 0.0
    keyword_density: dict[str, float] = field(default_factory=dict)
    topics: list[str] = field(default_factory=list)     # TF-IDF ranked terms

    rendered: bool = False              # DOM came from the headless renderer

    # error info (populated only on failure)
    error: Optional[str] = None

    @classmethod
    def error_record(cls, url: str, title: str, status_code: int, error: str) -> "PageRecord":
        """Degraded record for a failed fetch; every collection empty, every flag False."""
        return cls(url=url, final_url=url, status_code=status_code, title=title, error=error)

    @property
    def h1s(self) -> list[str]:
        return self.headings.get("h1", [])

    @property
    def h2s(self) -> list[str]:
        return self.headings.get("h2", [])

    @property
    def h3s(self) -> list[str]:
        return self.headings.get("h3", [])

    def to_dict(self, include_html: bool = False) -> dict:
        data = {
            "url": self.url,
            "finalUrl": self.final_url,
            "statusCode": self.status_code,
            "title": self.title,
            "metaDescription": self.meta_description,
            "bodyText": self.body_text,
            "headings": {level: list(texts) for level, texts in self.headings.items()},
            "links": self.links.to_dict(),
            "images": self.images.to_dict(),
            "schemaTypes": list(self.schema_types),
            "wordCount": self.word_count,
            "mobileFriendly": self.mobile_friendly,
            "hasHttps": self.has_https,
            "hasCanonical": self.has_canonical,
            "hasSchema": self.has_schema,
            "hasSocialTags": self.has_social_tags,
            "hasContactForm": self.has_contact_form,
            "hasPhoneNumber": self.has_phone_number,
            "hasAddress": self.has_address,
            "hasNAP": self.has_nap,
            "hasIcon": self.has_icon,
            "hasHreflang": self.has_hreflang,
            "hasAmp": self.has_amp,
            "hasRobotsMeta": self.has_robots_meta,
            "canonicalUrl": self.canonical_url,
            "robots": self.robots,
            "pageLoadSpeed": self.page_load_speed.to_dict(),
            "contentStructure": self.content_structure.to_dict(),
            "security": self.security.to_dict(),
            "accessibility": self.accessibility.to_dict(),
            "seoIssues": self.seo_issues.to_dict(),
            "readabilityScore": self.readability_score,
            "keywordDensity": dict(self.keyword_density),
            "topics": list(self.topics),
            "rendered": self.rendered,
            "error": self.error,
        }
        if include_html:
            data["rawHtml"] = self.raw_html
        return data


@dataclass
class SiteStructure:
    homepage: PageRecord
    contact_page: Optional[PageRecord] = None
    service_pages: list[PageRecord] = field(default_factory=list)
    location_pages: list[PageRecord] = field(default_factory=list)
    service_area_pages: list[PageRecord] = field(default_factory=list)
    other_pages: list[PageRecord] = field(default_factory=list)
    has_sitemap_xml: bool = False
    has_robots_txt: bool = False
    reached_max_pages: bool = False

    def classified_pages(self) -> list[PageRecord]:
        """Every non-homepage page, in bucket order."""
        pages = [self.contact_page] if self.contact_page else []
        return pages + self.service_pages + self.location_pages + self.service_area_pages + self.other_pages

    def all_pages(self) -> list[PageRecord]:
        return [self.homepage] + self.classified_pages()

    def typed_pages(self) -> list[tuple[PageRecord, str]]:
        """(page, page_type) pairs for every page including the homepage."""
        pairs = [(self.homepage, "homepage")]
        if self.contact_page:
            pairs.append((self.contact_page, "contact"))
        pairs.extend((p, "service") for p in self.service_pages)
        pairs.extend((p, "location") for p in self.location_pages)
        pairs.extend((p, "service-area") for p in self.service_area_pages)
        pairs.extend((p, "other") for p in self.other_pages)
        return pairs

    def to_dict(self) -> dict:
        return {
            "homepage": self.homepage.to_dict(),
            "contactPage": self.contact_page.to_dict() if self.contact_page else None,
            "servicePages": [p.to_dict() for p in self.service_pages],
            "locationPages": [p.to_dict() for p in self.location_pages],
            "serviceAreaPages": [p.to_dict() for p in self.service_area_pages],
            "otherPages": [p.to_dict() for p in self.other_pages],
            "hasSitemapXml": self.has_sitemap_xml,
            "hasRobotsTxt": self.has_robots_txt,
            "reachedMaxPages": self.reached_max_pages,
        }


@dataclass
class CrawlStats:
    pages_crawled: int = 0
    pages_skipped: int = 0
    errors_encountered: int = 0
    start_time: float = 0.0             # time.monotonic() at crawl start
    end_time: float = 0.0

    @property
    def crawl_time_ms(self) -> int:
        if not self.start_time:
            return 0
        end = self.end_time or time.monotonic()
        return int((end - self.start_time) * 1000)

    def to_dict(self) -> dict:
        return {
            "pagesCrawled": self.pages_crawled,
            "pagesSkipped": self.pages_skipped,
            "errorsEncountered": self.errors_encountered,
            "crawlTimeMs": self.crawl_time_ms,
        }


@dataclass(frozen=True)
class AuditFinding:
    name: str
    description: str
    status: str                         # OK | OFI | Priority OFI | N/A
    importance: str = "Medium"          # High | Medium | Low
    notes: Optional[str] = None
    category: str = ""

    # set on per-page findings only
    page_url: Optional[str] = None
    page_title: Optional[str] = None
    page_type: Optional[str] = None

    def __post_init__(self):
        if self.status not in STATUSES:
            raise ValueError(f"invalid finding status: {self.status!r}")
        if self.importance not in IMPORTANCE_LEVELS:
            raise ValueError(f"invalid finding importance: {self.importance!r}")

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "importance": self.importance,
            "notes": self.notes,
            "category": self.category,
        }
        if self.page_url:
            data["pageUrl"] = self.page_url
            data["pageTitle"] = self.page_title
            data["pageType"] = self.page_type
        return data


@dataclass(frozen=True)
class AuditSummary:
    priority_ofi_count: int = 0
    ofi_count: int = 0
    ok_count: int = 0
    na_count: int = 0
    total: int = 0

    @classmethod
    def from_findings(cls, findings: list[AuditFinding]) -> "AuditSummary":
        counts = {status: 0 for status in STATUSES}
        for finding in findings:
            counts[finding.status] += 1
        return cls(
            priority_ofi_count=counts[PRIORITY_OFI],
            ofi_count=counts[OFI],
            ok_count=counts[OK],
            na_count=counts[NA],
            total=sum(counts.values()),
        )

    def to_dict(self) -> dict:
        return {
            "priorityOfiCount": self.priority_ofi_count,
            "ofiCount": self.ofi_count,
            "okCount": self.ok_count,
            "naCount": self.na_count,
            "total": self.total,
        }


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class AuditReport:
    url: str
    timestamp: str = field(default_factory=_utc_now)
    on_page: list[AuditFinding] = field(default_factory=list)
    structure_navigation: list[AuditFinding] = field(default_factory=list)
    contact_page: list[AuditFinding] = field(default_factory=list)
    service_pages: list[AuditFinding] = field(default_factory=list)
    location_pages: list[AuditFinding] = field(default_factory=list)
    service_area_pages: list[AuditFinding] = field(default_factory=list)

    @property
    def buckets(self) -> dict[str, list[AuditFinding]]:
        return {name: getattr(self, name) for name in REPORT_BUCKETS}

    def all_findings(self) -> list[AuditFinding]:
        findings = []
        for items in self.buckets.values():
            findings.extend(items)
        return findings

    @property
    def summary(self) -> AuditSummary:
        # always recomputed so it can never drift from the buckets
        return AuditSummary.from_findings(self.all_findings())

    def to_dict(self) -> dict:
        data = {"url": self.url, "timestamp": self.timestamp}
        for name, key in REPORT_BUCKETS.items():
            data[key] = {"items": [f.to_dict() for f in getattr(self, name)]}
        data["summary"] = self.summary.to_dict()
        return data


@dataclass
class EnhancedAuditReport(AuditReport):
    analysis_metadata: dict = field(default_factory=dict)
    reached_max_pages: bool = False
    category_scores: dict[str, float] = field(default_factory=dict)
    overall_score: float = 0.0
    page_issues: list[dict] = field(default_factory=list)

    def category_view(self, category: str) -> list[AuditFinding]:
        """Findings of one enhanced category, gathered across every bucket."""
        return [f for f in self.all_findings() if f.category == category]

    def to_dict(self) -> dict:
        data = super().to_dict()
        for category, key in ENHANCED_CATEGORIES.items():
            data[key] = {"items": [f.to_dict() for f in self.category_view(category)]}
        data["analysisMetadata"] = dict(self.analysis_metadata)
        data["reachedMaxPages"] = self.reached_max_pages
        data["categoryScores"] = dict(self.category_scores)
        data["overallScore"] = self.overall_score
        data["pageIssues"] = list(self.page_issues)
        return data

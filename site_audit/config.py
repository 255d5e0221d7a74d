import os

# identifies the audit tool to the target server
USER_AGENT = os.getenv("SITE_AUDIT_USER_AGENT", "SEO-Best-Practices-Assessment-Tool/1.0")

REQUEST_TIMEOUT = float(os.getenv("SITE_AUDIT_REQUEST_TIMEOUT", "45"))  # seconds
MAX_REDIRECTS = int(os.getenv("SITE_AUDIT_MAX_REDIRECTS", "10"))
MAX_CONTENT_BYTES = int(os.getenv("SITE_AUDIT_MAX_CONTENT_BYTES", str(10 * 1024 * 1024)))  # 10 MB ceiling
CRAWL_DELAY = float(os.getenv("SITE_AUDIT_CRAWL_DELAY", "0.5"))  # per-request politeness delay

# crawl budget and batching
MAX_PAGES = int(os.getenv("SITE_AUDIT_MAX_PAGES", "250"))
CONCURRENT_REQUESTS = int(os.getenv("SITE_AUDIT_CONCURRENCY", "5"))
BATCH_DELAY = float(os.getenv("SITE_AUDIT_BATCH_DELAY", "0.5"))
REQUEST_JITTER = float(os.getenv("SITE_AUDIT_REQUEST_JITTER", "1.0"))  # max random delay per request

# broken-link sampling
LINK_CHECK_LIMIT = 5
LINK_CHECK_TIMEOUT = 5
LINK_CHECK_MAX_REDIRECTS = 3
LINK_CHECK_DELAY = 0.1

# HEAD pre-filter
HEAD_TIMEOUT = 3
HEAD_MAX_BYTES = 5 * 1024 * 1024

# discovery
SITEMAP_TIMEOUT = 10
ROBOTS_TIMEOUT = 5
MAX_CHILD_SITEMAPS = 10
MAX_SITEMAP_DEPTH = 3
MAX_NEW_LINKS_PER_PAGE = 5
MAX_PATH_DEPTH = 5

# optional headless rendering
RENDER_ENABLED = os.getenv("SITE_AUDIT_RENDER", "false").lower() in ("1", "true", "yes")
RENDER_POOL_SIZE = int(os.getenv("SITE_AUDIT_RENDER_POOL_SIZE", "2"))
RENDER_TIMEOUT = float(os.getenv("SITE_AUDIT_RENDER_TIMEOUT", "30"))

# override persistence
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")
OVERRIDE_TTL = int(os.getenv("SITE_AUDIT_OVERRIDE_TTL_SECONDS", "0"))  # 0 = keep forever

# region used to recognise national-format phone numbers in page copy
PHONE_REGION = os.getenv("SITE_AUDIT_PHONE_REGION", "US")

LOG_LEVEL = os.getenv("SITE_AUDIT_LOG_LEVEL", "INFO")

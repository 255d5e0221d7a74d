import pytest

from site_audit.cms import CUSTOM, DEFAULT_SKIP_PATTERNS, CmsFingerprint, apply_cms_filter, detect_cms


BASE = "https://acmeplumbing.com/"


@pytest.mark.parametrize("html,expected", [
    ('<script src="/wp-includes/js/jquery.js"></script>', "WordPress"),
    ('<link href="//cdn.shopify.com/s/files/theme.css">', "Shopify"),
    ('<img src="https://static1.squarespace.com/static/logo.png">', "Squarespace"),
    ('<img src="https://static.wixstatic.com/media/van.jpg">', "Wix"),
    ('<script src="/media/system/js/mootools-core.js"></script>', "Joomla"),
    ('<img src="/sites/default/files/truck.jpg">', "Drupal"),
    ("<p>Family-owned plumbers since 1998.</p>", CUSTOM),
])
def test_detect_from_markup(html, expected):
    assert detect_cms(html).cms == expected


@pytest.mark.parametrize("headers,expected", [
    ({"X-Powered-By": "WordPress VIP"}, "WordPress"),
    ({"X-ShopId": "4242"}, "Shopify"),
    ({"X-Generator": "Drupal 10 (https://www.drupal.org)"}, "Drupal"),
    ({"X-Powered-By": "PHP/8.2"}, CUSTOM),
])
def test_detect_from_headers(headers, expected):
    assert detect_cms("", headers).cms == expected


def test_later_platform_wins():
    # a Drupal site linking to a WordPress blog is still Drupal
    html = '<a href="https://blog.example.com/wp-content/post">Blog</a><img src="/sites/default/files/a.jpg">'
    assert detect_cms(html).cms == "Drupal"


@pytest.mark.parametrize("html,framework", [
    ('<div id="root" data-reactroot=""></div>', "React"),
    ('<app-root ng-version="17.0.0"></app-root>', "Angular"),
    ('<div data-v-3f1a2b9c class="hero"></div>', "Vue.js"),
    ("<p>plain</p>", None),
])
def test_framework_detection(html, framework):
    assert detect_cms(html).framework == framework


def test_fingerprint_str_and_known():
    assert str(CmsFingerprint("WordPress", "React")) == "WordPress (React)"
    assert str(CmsFingerprint()) == CUSTOM
    assert CmsFingerprint("Wix").known
    assert not CmsFingerprint().known


def test_empty_input_is_custom():
    fingerprint = detect_cms(None, None)
    assert fingerprint.cms == CUSTOM
    assert fingerprint.skip_patterns == DEFAULT_SKIP_PATTERNS
    assert fingerprint.priority_patterns == ()


# --- filtering ---

def test_wordpress_filter_drops_archives_and_feeds():
    urls = [
        BASE + "services/drains",
        BASE + "category/news",
        BASE + "blog/?replytocom=12",
        BASE + "author/admin",
        BASE + "feed",
        BASE + "gallery",
    ]
    kept, skipped = apply_cms_filter(urls, CmsFingerprint("WordPress"))
    assert kept == [BASE + "services/drains", BASE + "gallery"]
    assert skipped == [BASE + "category/news", BASE + "blog/?replytocom=12", BASE + "author/admin", BASE + "feed"]


def test_shopify_priority_pages_move_first():
    urls = [BASE + "blogs/news", BASE + "cart", BASE + "pages/contact", BASE + "products/valve", BASE + "faq"]
    kept, skipped = apply_cms_filter(urls, CmsFingerprint("Shopify"))
    assert kept == [BASE + "pages/contact", BASE + "products/valve", BASE + "blogs/news", BASE + "faq"]
    assert skipped == [BASE + "cart"]


def test_custom_site_keeps_order():
    urls = [BASE + "gallery", BASE + "contact", BASE + "wp-admin/options.php"]
    kept, skipped = apply_cms_filter(urls, CmsFingerprint())
    assert kept == [BASE + "gallery", BASE + "contact"]
    assert skipped == [BASE + "wp-admin/options.php"]


def test_filter_is_case_insensitive():
    kept, skipped = apply_cms_filter([BASE + "Tag/Pipes"], CmsFingerprint("WordPress"))
    assert kept == []
    assert skipped == [BASE + "Tag/Pipes"]

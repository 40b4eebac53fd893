import pytest

from auditor.core.pipeline import TesterRegistry
from auditor.detectors.accessibility import evaluate_accessibility, heading_issues
from auditor.detectors.base import AuditTarget
from auditor.detectors.js_errors import COLLECT_ERRORS_JS, ErrorCapture, JSErrorChecker, error_key
from auditor.detectors.mobile import MOBILE_SNAPSHOT_JS, MobileChecker, evaluate_viewport
from auditor.detectors.performance import PerformanceMetrics, evaluate_metrics
from auditor.detectors.seo import evaluate_seo
from auditor.detectors.visual import (
    HORIZONTAL_SCROLL_JS, OVERLAPPING_BLOCKS_JS, VIEWPORT_OVERFLOW_JS, VisualChecker,
)
from auditor.models.types import Severity
from fakes import FakeBrowser

URL = "https://example.test/pricing"


async def loaded_page(site):
    browser = FakeBrowser(site={URL: site})
    context = await browser.new_context()
    page = await context.new_page()
    await page.goto(URL)
    return browser, page


async def test_visual_checker_reports_each_anomaly(config):
    pairs = [{"element1": "DIV", "element2": "SECTION"}] * 2
    browser, page = await loaded_page({
        HORIZONTAL_SCROLL_JS: True,
        OVERLAPPING_BLOCKS_JS: lambda limit: pairs[:limit],
        VIEWPORT_OVERFLOW_JS: True,
    })
    findings = await VisualChecker().check(AuditTarget(page, URL, browser, config, http=None))

    assert [f.kind for f in findings] == ["horizontal_scroll", "overlapping_elements", "viewport_overflow"]
    assert [f.severity for f in findings] == [Severity.MAJOR, Severity.MAJOR, Severity.MINOR]
    assert findings[1].message == "Detected 2 overlapping element(s)"


async def test_visual_checker_clean_page(config):
    browser, page = await loaded_page({})
    assert await VisualChecker().check(AuditTarget(page, URL, browser, config, http=None)) == []


def test_accessibility_snapshot():
    issues = evaluate_accessibility({
        "missingAlt": ["a.png", "b.png"],
        "headings": [1, 3],
        "unlabeledInputs": 1,
        "emptyLinks": 0,
        "emptyButtons": 2,
        "sameColorText": 0,
        "hasLang": False,
    })
    kinds = {i.kind: i.severity for i in issues}
    assert kinds == {
        "Missing Alt Text": Severity.MAJOR,
        "Skipped Heading Level": Severity.MINOR,
        "Form Inputs Without Labels": Severity.CRITICAL,
        "Empty Buttons": Severity.CRITICAL,
        "Missing Language Attribute": Severity.MAJOR,
    }


def test_heading_issues():
    assert heading_issues([]) == []
    assert [i.kind for i in heading_issues([2, 3])] == ["Missing H1"]
    assert [i.kind for i in heading_issues([1, 1, 2])] == ["Multiple H1s"]
    assert heading_issues([1, 2, 3, 2]) == []


def test_performance_thresholds():
    issues = evaluate_metrics(PerformanceMetrics(
        load_time_ms=5200, fcp_ms=1000, lcp_ms=3000, cls=0.3,
        total_bytes=4 * 1024 * 1024, image_count=31,
    ))
    kinds = {i.kind: i.severity for i in issues}
    assert kinds == {
        "Slow Page Load": Severity.CRITICAL,
        "Slow Largest Contentful Paint": Severity.MAJOR,
        "High Cumulative Layout Shift": Severity.MAJOR,
        "Large Page Size": Severity.MAJOR,
        "Too Many Images": Severity.MINOR,
    }
    assert evaluate_metrics(PerformanceMetrics(load_time_ms=800, fcp_ms=500, lcp_ms=900)) == []


def test_seo_well_formed_page_is_clean():
    snap = {
        "title": "Pricing plans for teams of every size | Example",
        "description": "x" * 140,
        "canonical": URL,
        "ogTitle": "Pricing", "ogDescription": "Plans", "ogImage": "og.png",
        "h1Count": 1,
        "viewport": "width=device-width, initial-scale=1",
        "robots": "index,follow",
        "imagesWithoutAlt": 0,
        "hasStructuredData": True,
    }
    assert evaluate_seo(snap, URL) == []


def test_seo_flags_blocking_and_http():
    issues = evaluate_seo({"title": "Hi", "robots": "noindex", "h1Count": 2}, "http://example.test/")
    kinds = {i.kind for i in issues}
    assert {"Short Title", "Search Engine Blocking", "Multiple H1s", "Not Using HTTPS",
            "Missing Meta Description", "Missing Canonical URL"} <= kinds


IPHONE = {"name": "iPhone SE", "width": 375, "height": 667}


def test_mobile_page_wide_checks_only_on_first_viewport():
    snap = {
        "horizontalScroll": True,
        "hasViewportMeta": False,
        "smallTargetCount": 3,
        "smallTargets": [{"x": 1, "y": 2, "width": 20, "height": 20, "selector": "a.icon"}],
        "smallText": 4,
        "overlapCount": 0,
        "offscreen": 5,
    }
    first = {i.kind for i in evaluate_viewport(snap, IPHONE, first=True)}
    later = {i.kind for i in evaluate_viewport(snap, IPHONE, first=False)}

    assert first == {
        "Horizontal Scroll on Mobile", "Missing Viewport Meta Tag", "Small Touch Targets",
        "Small Text Size", "Elements Extending Beyond Viewport",
    }
    assert later == {"Horizontal Scroll on Mobile", "Elements Extending Beyond Viewport"}


def test_mobile_touch_target_boxes_reach_metadata():
    snap = {"smallTargetCount": 1, "hasViewportMeta": True,
            "smallTargets": [{"x": 1, "y": 2, "width": 20, "height": 30, "selector": "button"}]}
    [issue] = evaluate_viewport(snap, IPHONE, first=True)
    assert issue.to_metadata()["elements"] == [
        {"x": 1, "y": 2, "width": 20, "height": 30, "selector": "button"},
    ]
    assert issue.viewport == "375x667"


async def test_mobile_checker_closes_every_viewport_context(config):
    browser = FakeBrowser(
        site={URL: {MOBILE_SNAPSHOT_JS: lambda limit: {"horizontalScroll": True, "hasViewportMeta": True}}},
    )
    target = AuditTarget(page=None, url=URL, browser=browser, config=config, http=None)
    issues = await MobileChecker().check(target)

    assert len(issues) == len(config.mobile_viewports)
    assert len(browser.contexts) == len(config.mobile_viewports)
    assert browser.open_contexts == 0
    assert browser.contexts[0].options["viewport"] == {"width": 375, "height": 667}


async def test_mobile_checker_survives_a_failing_viewport(config):
    browser = FakeBrowser(failures={URL: TimeoutError("too slow")})
    target = AuditTarget(page=None, url=URL, browser=browser, config=config, http=None)
    assert await MobileChecker().check(target) == []
    assert browser.open_contexts == 0


class ConsoleMessage:
    def __init__(self, type, text):
        self.type = type
        self.text = text
        self.location = {"url": URL, "lineNumber": 10, "columnNumber": 4}


class PageError:
    message = "boom is not defined"
    stack = "ReferenceError: boom is not defined\n    at app.js:1"


async def test_error_capture_collects_and_deregisters(config):
    browser, page = await loaded_page({
        COLLECT_ERRORS_JS: [
            {"message": "Unhandled Promise Rejection: nope", "kind": "rejection", "stack": None},
            {"message": "boom is not defined", "kind": "exception"},
        ],
    })
    async with ErrorCapture(page) as capture:
        page.fire("console", ConsoleMessage("log", "hello"))
        page.fire("console", ConsoleMessage("error", "Failed to load resource"))
        page.fire("pageerror", PageError())
        target = AuditTarget(page, URL, browser, config, http=None, errors=capture)
        errors = await JSErrorChecker().check(target)

    assert [e.message for e in errors] == [
        "Failed to load resource",
        "boom is not defined",
        "Unhandled Promise Rejection: nope",
    ]
    assert errors[0].source == URL
    assert page.listeners == {"console": [], "pageerror": []}
    assert len(page.init_scripts) == 1


class ThrownError:
    def __init__(self, message):
        self.message = message
        self.stack = f"Error: {message}\n    at app.js:1"


async def test_error_seen_by_both_channels_is_reported_once(config):
    browser, page = await loaded_page({
        COLLECT_ERRORS_JS: [{"message": "Uncaught Error: boom", "kind": "exception"}],
    })
    async with ErrorCapture(page) as capture:
        page.fire("pageerror", ThrownError("boom"))
        errors = await JSErrorChecker().check(AuditTarget(page, URL, browser, config, http=None, errors=capture))

    assert [e.message for e in errors] == ["boom"]
    assert errors[0].stack.startswith("Error: boom")


async def test_rejection_seen_by_both_channels_is_reported_once(config):
    browser, page = await loaded_page({
        COLLECT_ERRORS_JS: [{"message": "Unhandled Promise Rejection: nope", "kind": "rejection"}],
    })
    async with ErrorCapture(page) as capture:
        page.fire("pageerror", ThrownError("nope"))
        errors = await capture.collect()

    assert len(errors) == 1


@pytest.mark.parametrize("message, key", [
    ("boom", "boom"),
    ("Uncaught Error: boom", "boom"),
    ("Uncaught ReferenceError: x is not defined", "x is not defined"),
    ("Uncaught (in promise) TypeError: bad", "bad"),
    ("Unhandled Promise Rejection: nope", "nope"),
    ("Failed to load resource", "Failed to load resource"),
])
def test_error_key_drops_channel_prefixes(message, key):
    assert error_key(message) == key


async def test_js_checker_without_capture_reports_nothing(config):
    browser, page = await loaded_page({})
    assert await JSErrorChecker().check(AuditTarget(page, URL, browser, config, http=None)) == []


def test_registry_defaults_and_edits():
    registry = TesterRegistry()
    assert registry.names() == [
        "js_errors", "visual", "accessibility", "performance", "seo", "links", "forms", "mobile",
    ]
    registry.unregister("mobile")
    registry.register(VisualChecker())
    assert len(registry) == 7
    assert "mobile" not in registry.names()

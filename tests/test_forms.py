import pytest

from auditor.detectors.base import AuditTarget
from auditor.detectors.forms import FormChecker, classify_submission, find_keywords
from auditor.models.findings import FormField, FormOutcome
from auditor.utils.form_filler import (
    FORM_COUNT_JS, FORM_FIELDS_JS, classify_field, is_login_form,
)
from fakes import FakeBrowser, FakeElement, FakeResponse

CONTACT_FIELDS = [
    FormField(name="email", type="email", required=True),
    FormField(name="name", type="text"),
    FormField(name="message", type="textarea"),
]
SUCCESS = ["thank", "received", "success", "submitted", "confirmation"]
ERRORS = ["error", "invalid", "failed", "required", "missing"]


def test_contact_form_with_thank_you_passes():
    result = classify_submission(
        "form:nth-of-type(1)", CONTACT_FIELDS, "Thank you for getting in touch!",
        submit_status=200, navigated=False,
        success_keywords=SUCCESS, error_keywords=ERRORS,
    )
    assert result.result == FormOutcome.PASSED
    assert result.success_indicators == ["thank"]
    assert not result.is_problem


def test_error_keywords_fail_even_with_success_status():
    result = classify_submission(
        "form", CONTACT_FIELDS, "Email is invalid", 200, False, SUCCESS, ERRORS,
    )
    assert result.result == FormOutcome.FAILED
    assert result.error_indicators == ["invalid"]


def test_http_error_status_fails():
    result = classify_submission("form", CONTACT_FIELDS, "Thanks", 500, False, SUCCESS, ERRORS)
    assert result.result == FormOutcome.FAILED
    assert "500" in result.error_message


def test_no_evidence_of_success_fails():
    result = classify_submission("form", CONTACT_FIELDS, "Contact us", None, False, SUCCESS, ERRORS)
    assert result.result == FormOutcome.FAILED
    assert result.error_message == "No success indicators found after form submission"


@pytest.mark.parametrize("status, navigated", [(200, False), (302, False), (None, True)])
def test_status_or_redirect_counts_as_success(status, navigated):
    result = classify_submission("form", CONTACT_FIELDS, "", status, navigated, SUCCESS, ERRORS)
    assert result.result == FormOutcome.PASSED


def test_find_keywords_is_case_insensitive():
    assert find_keywords("SUBMITTED. Thank You", SUCCESS) == ["thank", "submitted"]


@pytest.mark.parametrize(
    "field, kind",
    [
        (FormField("contact_email", "text"), "email"),
        (FormField("q", "email"), "email"),
        (FormField("fname", "text"), "first_name"),
        (FormField("surname", "text"), "last_name"),
        (FormField("full_name", "text"), "name"),
        (FormField("mobile", "text"), "phone"),
        (FormField("x", "tel"), "phone"),
        (FormField("organisation", "text"), "company"),
        (FormField("body", "textarea"), "message"),
        (FormField("agree", "checkbox"), "checkbox"),
        (FormField("country", "select-one"), "select"),
        (FormField("zip", "text"), "text"),
    ],
)
def test_classify_field(field, kind):
    assert classify_field(field) == kind


def test_login_form_detection():
    login = [FormField("email", "email"), FormField("password", "password")]
    assert is_login_form(login)
    assert not is_login_form(login + [FormField("a", "text"), FormField("b", "text")])
    assert not is_login_form(CONTACT_FIELDS)


def contact_form(page):
    def submit(p):
        p.fire("response", FakeResponse(200, method="POST"))
        p.body_text = "Thank you, we received your message"

    children = {
        '"email"': FakeElement(page),
        '"name"': FakeElement(page),
        '"message"': FakeElement(page),
        "submit": FakeElement(page, on_click=submit),
    }
    return [FakeElement(page, children=children)]


async def test_form_checker_submits_and_reloads(config):
    url = "https://example.test/contact"
    fields = [{"name": f.name, "type": f.type, "required": f.required, "label": None}
              for f in CONTACT_FIELDS]
    browser = FakeBrowser(site={url: {
        FORM_COUNT_JS: 1,
        FORM_FIELDS_JS: lambda idx: fields,
        "forms": contact_form,
    }})
    context = await browser.new_context()
    page = await context.new_page()
    await page.goto(url)

    results = await FormChecker().check(AuditTarget(page, url, browser, config, http=None))

    assert len(results) == 1
    assert results[0].result == FormOutcome.PASSED
    assert results[0].submit_status == 200
    # initial load, reload before the form, reload after testing
    assert browser.visits == [url, url, url]
    assert page.listeners["response"] == []


async def test_form_checker_skips_login_forms(config):
    url = "https://example.test/"
    fields = [{"name": "email", "type": "email"}, {"name": "password", "type": "password"}]
    browser = FakeBrowser(site={url: {FORM_COUNT_JS: 1, FORM_FIELDS_JS: lambda idx: fields}})
    context = await browser.new_context()
    page = await context.new_page()
    await page.goto(url)

    assert await FormChecker().check(AuditTarget(page, url, browser, config, http=None)) == []
    assert browser.visits == [url]

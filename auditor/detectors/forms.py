"""Form submission checks.

Every non-login form is filled with synthetic data, submitted, and judged from
the page text and the status of the POST/PUT it triggered. The page is reloaded
before each form and once more at the end, so later checkers see the page as
it was loaded.
"""

from __future__ import annotations

import logging

from auditor.detectors.base import AuditTarget, Checker
from auditor.models.findings import FormField, FormOutcome, FormResult
from auditor.utils.form_filler import (
    FORM_COUNT_JS, FORM_FIELDS_JS, fill_field, is_login_form,
)

logger = logging.getLogger(__name__)


SUBMIT_BUTTON = 'button[type="submit"], input[type="submit"]'


class FormChecker(Checker):
    name = "forms"

    async def check(self, target: AuditTarget) -> list[FormResult]:
        page = target.page
        count = await page.evaluate(FORM_COUNT_JS) or 0
        logger.info("Found %d form(s) on %s", count, target.url)

        results = []
        tested = False
        try:
            for idx in range(count):
                selector = f"form:nth-of-type({idx + 1})"
                try:
                    raw = await page.evaluate(FORM_FIELDS_JS, idx) or []
                    fields = [FormField(**f) for f in raw]
                    if is_login_form(fields):
                        logger.info("Skipping login form #%d on %s", idx, target.url)
                        continue
                    tested = True
                    results.append(await self._test_form(target, idx, selector, fields))
                except Exception as e:
                    logger.warning("Error testing form #%d on %s: %s", idx, target.url, e)
                    results.append(FormResult(
                        selector=selector, fields=[], result=FormOutcome.FAILED,
                        error_message=str(e)[:300],
                    ))
        finally:
            if tested:
                await self._reload(target)
        return results

    async def _test_form(self, target: AuditTarget, idx: int, selector: str,
                         fields: list[FormField]) -> FormResult:
        page = target.page
        await self._reload(target)

        forms = await page.query_selector_all("form")
        if idx >= len(forms):
            return FormResult(
                selector=selector, fields=fields, result=FormOutcome.FAILED,
                error_message="Form disappeared after reload",
            )
        form = forms[idx]
        for field in fields:
            await fill_field(form, field, target.config.test_data)

        statuses: list[int] = []

        def on_response(response):
            if response.request.method in ("POST", "PUT"):
                statuses.append(response.status)

        url_before = page.url
        page.on("response", on_response)
        try:
            submit = await form.query_selector(SUBMIT_BUTTON)
            if submit is not None:
                await submit.click()
            else:
                await form.evaluate("f => f.submit()")
            await page.wait_for_timeout(target.config.idle_timeout_ms)
        finally:
            page.remove_listener("response", on_response)

        text = await page.inner_text("body")
        submit_status = statuses[0] if statuses else None
        navigated = page.url != url_before
        return classify_submission(
            selector, fields, text, submit_status, navigated,
            target.config.success_keywords, target.config.error_keywords,
        )

    async def _reload(self, target: AuditTarget):
        await target.page.goto(
            target.url, wait_until="networkidle", timeout=target.config.page_timeout_ms,
        )
        await target.page.wait_for_timeout(1000)


def find_keywords(text: str, keywords: list[str]) -> list[str]:
    lowered = (text or "").lower()
    return [k for k in keywords if k.lower() in lowered]


def classify_submission(
    selector: str,
    fields: list[FormField],
    page_text: str,
    submit_status: int | None,
    navigated: bool,
    success_keywords: list[str],
    error_keywords: list[str],
) -> FormResult:
    """Decide Passed/Failed for one submitted form."""
    success = find_keywords(page_text, success_keywords)
    errors = find_keywords(page_text, error_keywords)

    result = FormOutcome.PASSED
    message = None
    ok_status = submit_status is not None and 200 <= submit_status < 400

    if errors:
        result = FormOutcome.FAILED
        message = f"Form submission showed errors: {', '.join(errors)}"
    elif submit_status is not None and submit_status >= 400:
        result = FormOutcome.FAILED
        message = f"Form submission returned HTTP {submit_status}"
    elif not success and not ok_status and not navigated:
        result = FormOutcome.FAILED
        message = "No success indicators found after form submission"

    return FormResult(
        selector=selector,
        fields=fields,
        result=result,
        submit_status=submit_status,
        success_indicators=success,
        error_indicators=errors,
        error_message=message,
    )

"""Synthetic values typed into forms under test.

The email is unique per process so repeated runs do not trip
"already registered" checks on the site under test.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field


def unique_email() -> str:
    return f"qa+{int(time.time() * 1000)}@example.com"


@dataclass
class FormTestData:
    email: str = field(default_factory=unique_email)
    name: str = "QA Test User"
    first_name: str = "QA"
    last_name: str = "Test"
    message: str = "Test message from automated QA system"
    phone: str = "555-0100"
    company: str = "QA Test Company"
    text: str = "Test input"

    def value_for(self, kind: str) -> str:
        return getattr(self, kind, self.text)

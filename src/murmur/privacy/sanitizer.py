# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Murmur Contributors

"""Content sanitizer: strips PII patterns from free text before storage.

Redaction replaces, it never rejects: a submission with an email address in
it is stored with ``[email]`` in its place. Rules run in a fixed order and
the whole ordered pass repeats until the text stops changing, so
``sanitize(sanitize(x)) == sanitize(x)`` holds even when one rule's
replacement exposes a match for an earlier rule.

Sanitization is best-effort pattern matching. Anything a rule does not
recognize is left as-is rather than aborting the submission.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

# Upper bound on ordered passes. Real text converges in two or three.
MAX_PASSES = 8


class RedactionKind(StrEnum):
    """Categories of PII the sanitizer removes."""

    SLACK_USER = "slack_user"
    SLACK_GROUP = "slack_group"
    SLACK_CHANNEL = "slack_channel"
    LINK = "link"
    EMAIL = "email"
    HANDLE = "handle"
    IP_ADDRESS = "ip_address"
    CARD = "card"
    PHONE = "phone"
    ID = "id"


REPLACEMENTS: dict[RedactionKind, str] = {
    RedactionKind.SLACK_USER: "[@redacted]",
    RedactionKind.SLACK_GROUP: "[@group]",
    RedactionKind.SLACK_CHANNEL: "[channel]",
    RedactionKind.LINK: "[link]",
    RedactionKind.EMAIL: "[email]",
    RedactionKind.HANDLE: "[@redacted]",
    RedactionKind.IP_ADDRESS: "[ip]",
    RedactionKind.CARD: "[card]",
    RedactionKind.PHONE: "[phone]",
    RedactionKind.ID: "[id]",
}

_ISO_DATE = re.compile(r"\d{4}[-/.]\d{1,2}[-/.]\d{1,2}")
_MIN_PHONE_DIGITS = 7
_MAX_BARE_ID_DIGITS = 10


def luhn_valid(candidate: str) -> bool:
    """Check a digit string (separators allowed) against the Luhn checksum."""
    digits = [int(c) for c in candidate if c.isdigit()]
    if len(digits) < 13:
        return False
    total = 0
    double = False
    for digit in reversed(digits):
        if double:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
        double = not double
    return total % 10 == 0


def _accept_card(match: re.Match[str]) -> bool:
    return luhn_valid(match.group())


def _accept_phone(match: re.Match[str]) -> bool:
    value = match.group()
    digit_count = sum(c.isdigit() for c in value)
    if digit_count < _MIN_PHONE_DIGITS:
        return False
    # Bare digit runs of id length belong to the id rule
    if value.isdigit() and digit_count <= _MAX_BARE_ID_DIGITS:
        return False
    # Calendar dates are not phone numbers
    if _ISO_DATE.fullmatch(value):
        return False
    return True


@dataclass(frozen=True)
class RedactionRule:
    """One ordered pattern redaction.

    ``accept`` lets a rule veto a regex match (e.g. Luhn for cards); a
    vetoed match is left untouched.
    """

    kind: RedactionKind
    pattern: re.Pattern[str]
    accept: Callable[[re.Match[str]], bool] | None = None

    @property
    def replacement(self) -> str:
        return REPLACEMENTS[self.kind]


# Order matters. Links go first so nothing inside a URL is half-redacted,
# and email must precede every digit rule.
DEFAULT_RULES: tuple[RedactionRule, ...] = (
    RedactionRule(
        RedactionKind.SLACK_USER,
        re.compile(r"<@[UW][A-Z0-9]+(?:\|[^>]*)?>"),
    ),
    RedactionRule(
        RedactionKind.SLACK_GROUP,
        re.compile(r"<!subteam\^S[A-Z0-9]+(?:\|[^>]*)?>"),
    ),
    RedactionRule(
        RedactionKind.SLACK_CHANNEL,
        re.compile(r"<#C[A-Z0-9]+(?:\|[^>]*)?>"),
    ),
    RedactionRule(
        RedactionKind.LINK,
        re.compile(r"(?:https?://|www\.)\S+", re.IGNORECASE),
    ),
    # Obfuscated addresses: jane [at] corp [dot] com
    RedactionRule(
        RedactionKind.EMAIL,
        re.compile(
            r"[A-Za-z0-9._%+-]+\s*[\[(]at[\])]\s*[A-Za-z0-9-]+(?:\s*[\[(]dot[\])]\s*[A-Za-z0-9-]+)+",
            re.IGNORECASE,
        ),
    ),
    RedactionRule(
        RedactionKind.EMAIL,
        re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}", re.IGNORECASE),
    ),
    RedactionRule(
        RedactionKind.HANDLE,
        re.compile(r"(?<![\w\[])@[A-Za-z0-9_](?:[A-Za-z0-9_.-]*[A-Za-z0-9_])?"),
    ),
    RedactionRule(
        RedactionKind.IP_ADDRESS,
        re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b"),
    ),
    RedactionRule(
        RedactionKind.CARD,
        re.compile(r"(?<!\d)(?:\d[ -]?){12,18}\d(?!\d)"),
        accept=_accept_card,
    ),
    RedactionRule(
        RedactionKind.PHONE,
        re.compile(r"\+?\d[\d\s().-]{7,}\d"),
        accept=_accept_phone,
    ),
    RedactionRule(
        RedactionKind.ID,
        re.compile(r"\b\d{6,10}\b"),
    ),
)


@dataclass
class ScrubResult:
    """Result of scrubbing one text.

    ``findings`` counts redactions per category. The matched values are
    never recorded.
    """

    text: str
    findings: dict[str, int] = field(default_factory=dict)

    @property
    def was_modified(self) -> bool:
        return bool(self.findings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "redaction_count": sum(self.findings.values()),
            "findings": dict(self.findings),
        }


class ContentSanitizer:
    """Applies an ordered list of redaction rules until the text is stable.

    Usage:
        sanitizer = ContentSanitizer()
        clean = sanitizer.sanitize("mail me at jo@corp.com")
        # "mail me at [email]"
    """

    def __init__(self, rules: tuple[RedactionRule, ...] | None = None):
        self.rules = rules if rules is not None else DEFAULT_RULES

    def scrub(self, text: Any) -> ScrubResult:
        """Redact PII and report which categories fired.

        Args:
            text: Free text. ``None`` becomes ``""``; other non-strings are
                coerced with ``str()``.

        Returns:
            ScrubResult with the sanitized text and per-category counts
        """
        if text is None:
            return ScrubResult(text="")
        if not isinstance(text, str):
            text = str(text)

        findings: Counter[str] = Counter()
        current = text
        for _ in range(MAX_PASSES):
            updated = self._apply_rules(current, findings)
            if updated == current:
                break
            current = updated
        else:
            logger.warning("Sanitizer did not converge within %d passes", MAX_PASSES)

        return ScrubResult(text=current, findings=dict(findings))

    def sanitize(self, text: Any) -> str:
        """Return text with all recognized PII replaced by category tokens."""
        return self.scrub(text).text

    def _apply_rules(self, text: str, findings: Counter[str]) -> str:
        for rule in self.rules:
            text = self._apply_rule(rule, text, findings)
        return text

    @staticmethod
    def _apply_rule(rule: RedactionRule, text: str, findings: Counter[str]) -> str:
        def _replace(match: re.Match[str]) -> str:
            if rule.accept is not None and not rule.accept(match):
                return match.group()
            findings[rule.kind.value] += 1
            return rule.replacement

        return rule.pattern.sub(_replace, text)


# =============================================================================
# SUBMISSION CHECKS (strict mode)
# =============================================================================

_MENTION_CHECK = re.compile(r"(?<![\w\[])@[\w\-.]+|<@[UW][A-Z0-9]+>")
_EMAIL_CHECK = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_PHONE_CHECK = re.compile(r"(\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")

MENTION_MESSAGE = (
    "Please avoid mentioning specific individuals (@username) to protect anonymity. "
    "Focus on behaviors and situations instead."
)
EMAIL_MESSAGE = "Please avoid including email addresses to protect privacy."
PHONE_MESSAGE = "Please avoid including phone numbers to protect privacy."


@dataclass(frozen=True)
class SubmissionCheck:
    """Outcome of a strict-mode submission check."""

    is_valid: bool
    kind: str | None = None
    message: str | None = None


def check_submission(text: str) -> SubmissionCheck:
    """Check a submission for PII that strict orgs reject outright.

    Orgs that do not enable strict mode redact instead; see ``sanitize``.
    Emails are checked first so an address is not reported as a mention.
    """
    if not text:
        return SubmissionCheck(is_valid=True)
    if _EMAIL_CHECK.search(text):
        return SubmissionCheck(is_valid=False, kind="email", message=EMAIL_MESSAGE)
    if _MENTION_CHECK.search(text):
        return SubmissionCheck(is_valid=False, kind="mention", message=MENTION_MESSAGE)
    if _PHONE_CHECK.search(text):
        return SubmissionCheck(is_valid=False, kind="phone", message=PHONE_MESSAGE)
    return SubmissionCheck(is_valid=True)


# Global sanitizer instance
_default_sanitizer: ContentSanitizer | None = None


def get_sanitizer() -> ContentSanitizer:
    """Get the default content sanitizer."""
    global _default_sanitizer
    if _default_sanitizer is None:
        _default_sanitizer = ContentSanitizer()
    return _default_sanitizer


def sanitize(text: Any) -> str:
    """Convenience function to sanitize text with the default rules."""
    return get_sanitizer().sanitize(text)


def scrub(text: Any) -> ScrubResult:
    """Convenience function to scrub text and report findings."""
    return get_sanitizer().scrub(text)

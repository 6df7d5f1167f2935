"""Keyword classification of message text (core domain)."""

from __future__ import annotations

from typing import Iterable, Optional, Tuple

from reportwatch.core.models import Classification, ReportType

REPORT_KEYWORDS = (
    "بلاغ",
    "تبليغ",
    "شكوى",
    "مشكلة",
    "انتهاك",
    "مخالفة",
    "report",
    "complaint",
    "violation",
    "abuse",
    "spam",
)

REQUEST_KEYWORDS = (
    "طلب",
    "استفسار",
    "سؤال",
    "مساعدة",
    "دعم",
    "request",
    "help",
    "support",
    "question",
    "inquiry",
)

URGENT_KEYWORDS = ("عاجل", "خطير", "urgent")
IMPORTANT_KEYWORDS = ("مهم", "important")

# Order matters: the first category with a hit wins.
REPORT_TYPE_KEYWORDS: Tuple[Tuple[ReportType, Tuple[str, ...]], ...] = (
    (ReportType.SPAM, ("سبام", "spam")),
    (ReportType.VIOLATION, ("انتهاك", "violation")),
    (ReportType.INAPPROPRIATE, ("محتوى غير لائق", "inappropriate")),
)

REPORT_CONFIDENCE_PHRASES = (
    (("أريد تبليغ", "want to report"), 0.3),
    (("مشكلة في", "problem with"), 0.2),
    (("ضد القوانين", "against rules"), 0.2),
)

REQUEST_CONFIDENCE_PHRASES = (
    (("أريد طلب", "i need"), 0.3),
    (("مساعدة في", "help with"), 0.2),
    (("كيف", "how to"), 0.2),
)


def _contains_any(lowered: str, keywords: Iterable[str]) -> bool:
    return any(keyword in lowered for keyword in keywords)


def _severity(lowered: str) -> int:
    if _contains_any(lowered, URGENT_KEYWORDS):
        return 3
    if _contains_any(lowered, IMPORTANT_KEYWORDS):
        return 2
    return 1


def _report_type(lowered: str) -> ReportType:
    for report_type, keywords in REPORT_TYPE_KEYWORDS:
        if _contains_any(lowered, keywords):
            return report_type
    return ReportType.GENERAL


def _confidence(lowered: str, is_report: bool, is_request: bool) -> float:
    score = 0.0
    if is_report:
        score += sum(bonus for phrases, bonus in REPORT_CONFIDENCE_PHRASES if _contains_any(lowered, phrases))
    if is_request:
        score += sum(bonus for phrases, bonus in REQUEST_CONFIDENCE_PHRASES if _contains_any(lowered, phrases))
    return max(0.0, min(score, 1.0))


def classify(content: str) -> Classification:
    """Classify message text.

    Matching is a case-insensitive substring check, not tokenized, so
    "spammer" counts as "spam". Report and request flags are independent.
    Severity escalates to 3 on an urgent keyword, else to 2 on an important
    keyword. The report type is only resolved for reports, using the fixed
    order spam, violation, inappropriate, then general.
    """

    lowered = content.lower()
    is_report = _contains_any(lowered, REPORT_KEYWORDS)
    is_request = _contains_any(lowered, REQUEST_KEYWORDS)
    report_type: Optional[ReportType] = _report_type(lowered) if is_report else None

    return Classification(
        is_report=is_report,
        is_request=is_request,
        severity=_severity(lowered),
        report_type=report_type,
        confidence=_confidence(lowered, is_report, is_request),
    )

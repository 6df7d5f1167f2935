from __future__ import annotations

from reportwatch.core.classifier import classify
from reportwatch.core.models import ReportType


def test_spam_report_scenario() -> None:
    result = classify("need to report spam in this group")
    assert result.is_report
    assert result.report_type is ReportType.SPAM
    assert result.severity == 1


def test_urgent_violation_is_severity_three() -> None:
    result = classify("URGENT: this is a clear violation of the rules")
    assert result.is_report
    assert result.report_type is ReportType.VIOLATION
    assert result.severity == 3


def test_important_keyword_gives_severity_two() -> None:
    result = classify("important complaint about the admin")
    assert result.severity == 2
    assert result.report_type is ReportType.GENERAL


def test_report_type_priority_spam_before_violation() -> None:
    result = classify("violation and spam everywhere")
    assert result.report_type is ReportType.SPAM


def test_inappropriate_needs_report_keyword() -> None:
    assert not classify("this is inappropriate").is_report
    result = classify("report: inappropriate pictures")
    assert result.report_type is ReportType.INAPPROPRIATE


def test_substring_match_is_not_tokenized() -> None:
    result = classify("the spammer is back")
    assert result.is_report
    assert result.report_type is ReportType.SPAM


def test_request_and_report_are_independent() -> None:
    result = classify("I need help with a complaint")
    assert result.is_report
    assert result.is_request
    assert result.confidence > 0


def test_plain_text_is_neither() -> None:
    result = classify("good morning everyone")
    assert not result.is_report
    assert not result.is_request
    assert result.report_type is None
    assert result.severity == 1
    assert result.confidence == 0.0


def test_arabic_keywords() -> None:
    result = classify("بلاغ عاجل عن سبام")
    assert result.is_report
    assert result.severity == 3
    assert result.report_type is ReportType.SPAM


def test_confidence_is_clamped() -> None:
    text = "I want to report a problem with spam against rules; I need help with how to fix it"
    result = classify(text)
    assert 0.0 <= result.confidence <= 1.0

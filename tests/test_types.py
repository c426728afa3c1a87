import pytest

from scanopts.types import (
    ANALYZER_INDIVIDUAL_PKGS,
    ANALYZER_LANGUAGES,
    ANALYZER_LOCKFILES,
    ANALYZER_OSES,
    AnalyzerType,
    Report,
    Result,
    SecurityCheck,
    Severity,
    UnknownSeverityError,
    VulnType,
    parse_security_check,
    parse_severity,
    parse_vuln_type,
)


def test_parse_severity_known():
    assert parse_severity("CRITICAL") is Severity.CRITICAL
    assert parse_severity("MEDIUM") is Severity.MEDIUM


def test_parse_severity_unknown_message():
    with pytest.raises(UnknownSeverityError) as excinfo:
        parse_severity("INVALID")
    assert str(excinfo.value) == "unknown severity: INVALID"


def test_parse_severity_is_case_sensitive():
    with pytest.raises(UnknownSeverityError):
        parse_severity("critical")


@pytest.mark.parametrize("severity", list(Severity))
def test_severity_round_trip(severity):
    assert parse_severity(str(severity)) is severity


def test_severity_ordering():
    parsed = [
        parse_severity(name)
        for name in ("LOW", "CRITICAL", "UNKNOWN", "HIGH", "MEDIUM")
    ]
    ordered = sorted(parsed, reverse=True)
    assert ordered[0] is Severity.CRITICAL
    assert ordered[-1] is Severity.UNKNOWN
    assert parse_severity("LOW") < parse_severity("HIGH")


def test_parse_vuln_type():
    assert parse_vuln_type("os") is VulnType.OS
    assert parse_vuln_type("library") is VulnType.LIBRARY
    assert parse_vuln_type("unknown") is VulnType.UNKNOWN
    assert parse_vuln_type("bogus") is VulnType.UNKNOWN


def test_vuln_type_equals_its_string():
    assert parse_vuln_type("os") == "os"
    assert str(parse_vuln_type("library")) == "library"


def test_parse_security_check():
    assert parse_security_check("vuln") is SecurityCheck.VULNERABILITY
    assert parse_security_check("config") is SecurityCheck.CONFIG
    assert parse_security_check("secret") is SecurityCheck.UNKNOWN


def test_analyzer_groups_are_consistent():
    groups = ANALYZER_OSES + ANALYZER_LANGUAGES
    assert all(AnalyzerType(t.value) is t for t in groups)
    assert set(ANALYZER_LOCKFILES) <= set(ANALYZER_LANGUAGES)
    assert set(ANALYZER_INDIVIDUAL_PKGS) <= set(ANALYZER_LANGUAGES)
    assert not set(ANALYZER_OSES) & set(ANALYZER_LANGUAGES)
    apk = AnalyzerType(AnalyzerType.APK_COMMAND.value)
    assert apk not in groups


def test_result_failed_with_vulnerabilities():
    assert Result(vulnerabilities=[{"VulnerabilityID": "CVE-2020-0001"}]).failed() is True


def test_result_failed_with_failing_misconfiguration():
    result = Result(misconfigurations=[{"Status": "PASS"}, {"Status": "FAIL"}])
    assert result.failed() is True


def test_result_not_failed_with_passing_misconfigurations():
    result = Result(misconfigurations=[{"Status": "PASS"}, {"Status": "EXCEPTION"}])
    assert result.failed() is False


def test_report_failed():
    clean = Result(target="a")
    dirty = Result(target="b", vulnerabilities=["x"])
    assert Report(results=[clean]).failed() is False
    assert Report(results=[clean, dirty]).failed() is True
    assert Report().failed() is False
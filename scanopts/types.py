"""Core value types shared by the scanning options and commands."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any


class UnknownSeverityError(ValueError):
    """Raised when a severity name is not recognised."""


class Severity(IntEnum):
    """Vulnerability severity, ordered from least to most severe."""

    UNKNOWN = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    def __str__(self) -> str:
        return self.name


class VulnType(str, Enum):
    """Kind of package a vulnerability scan looks at."""

    OS = "os"
    LIBRARY = "library"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


class SecurityCheck(str, Enum):
    """Kind of security check a scan performs."""

    VULNERABILITY = "vuln"
    CONFIG = "config"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


class AnalyzerType(str, Enum):
    """Analyzers that can be switched off for a scan."""

    # Operating systems
    OS_RELEASE = "os-release"
    ALPINE = "alpine"
    AMAZON = "amazon"
    CBL_MARINER = "cbl-mariner"
    DEBIAN = "debian"
    PHOTON = "photon"
    CENTOS = "centos"
    ROCKY = "rocky"
    ALMA = "alma"
    FEDORA = "fedora"
    ORACLE = "oracle"
    REDHAT = "redhat"
    SUSE = "suse"
    UBUNTU = "ubuntu"

    # OS package managers
    APK = "apk"
    DPKG = "dpkg"
    RPM = "rpm"

    # Programming language packages
    BUNDLER = "bundler"
    GEMSPEC = "gemspec"
    CARGO = "cargo"
    COMPOSER = "composer"
    JAR = "jar"
    NPM = "npm"
    NUGET = "nuget"
    PIP = "pip"
    PIPENV = "pipenv"
    POETRY = "poetry"
    YARN = "yarn"
    GO_MOD = "gomod"
    GO_BINARY = "gobinary"
    NODE_PKG = "node-pkg"
    PYTHON_PKG = "python-pkg"

    # Image history
    APK_COMMAND = "apk-command"

    def __str__(self) -> str:
        return self.value


ANALYZER_OSES: tuple[AnalyzerType, ...] = (
    AnalyzerType.OS_RELEASE,
    AnalyzerType.ALPINE,
    AnalyzerType.AMAZON,
    AnalyzerType.CBL_MARINER,
    AnalyzerType.DEBIAN,
    AnalyzerType.PHOTON,
    AnalyzerType.CENTOS,
    AnalyzerType.ROCKY,
    AnalyzerType.ALMA,
    AnalyzerType.FEDORA,
    AnalyzerType.ORACLE,
    AnalyzerType.REDHAT,
    AnalyzerType.SUSE,
    AnalyzerType.UBUNTU,
    AnalyzerType.APK,
    AnalyzerType.DPKG,
    AnalyzerType.RPM,
)

ANALYZER_LANGUAGES: tuple[AnalyzerType, ...] = (
    AnalyzerType.BUNDLER,
    AnalyzerType.GEMSPEC,
    AnalyzerType.CARGO,
    AnalyzerType.COMPOSER,
    AnalyzerType.JAR,
    AnalyzerType.NPM,
    AnalyzerType.NUGET,
    AnalyzerType.PIP,
    AnalyzerType.PIPENV,
    AnalyzerType.POETRY,
    AnalyzerType.YARN,
    AnalyzerType.GO_MOD,
    AnalyzerType.GO_BINARY,
    AnalyzerType.NODE_PKG,
    AnalyzerType.PYTHON_PKG,
)

ANALYZER_LOCKFILES: tuple[AnalyzerType, ...] = (
    AnalyzerType.BUNDLER,
    AnalyzerType.NPM,
    AnalyzerType.YARN,
    AnalyzerType.PIP,
    AnalyzerType.PIPENV,
    AnalyzerType.POETRY,
    AnalyzerType.GO_MOD,
)

ANALYZER_INDIVIDUAL_PKGS: tuple[AnalyzerType, ...] = (
    AnalyzerType.GEMSPEC,
    AnalyzerType.NODE_PKG,
    AnalyzerType.PYTHON_PKG,
    AnalyzerType.GO_BINARY,
    AnalyzerType.JAR,
)

_STATUS_FAILURE = "FAIL"


def parse_severity(name: str) -> Severity:
    """Return the severity called ``name``; the match is case-sensitive."""
    severity = Severity.__members__.get(name)
    if severity is None:
        raise UnknownSeverityError(f"unknown severity: {name}")
    return severity


def parse_vuln_type(value: str) -> VulnType:
    """Return the vulnerability type for ``value``, or ``VulnType.UNKNOWN``."""
    if value in (VulnType.OS.value, VulnType.LIBRARY.value):
        return VulnType(value)
    return VulnType.UNKNOWN


def parse_security_check(value: str) -> SecurityCheck:
    """Return the security check for ``value``, or ``SecurityCheck.UNKNOWN``."""
    if value in (SecurityCheck.VULNERABILITY.value, SecurityCheck.CONFIG.value):
        return SecurityCheck(value)
    return SecurityCheck.UNKNOWN


def _misconf_status(misconf: Any) -> Any:
    if isinstance(misconf, Mapping):
        return misconf.get("Status")
    return getattr(misconf, "status", None)


@dataclass
class Result:
    """Findings for one scanned target."""

    target: str = ""
    type: str = ""
    vulnerabilities: list[Any] = field(default_factory=list)
    misconfigurations: list[Any] = field(default_factory=list)
    misconf_summary: Any = None

    def failed(self) -> bool:
        """True if there is a vulnerability or a failing misconfiguration."""
        if self.vulnerabilities:
            return True
        return any(_misconf_status(m) == _STATUS_FAILURE for m in self.misconfigurations)


@dataclass
class Report:
    """A scan report made of per-target results."""

    artifact_name: str = ""
    artifact_type: str = ""
    results: list[Result] = field(default_factory=list)

    def failed(self) -> bool:
        """True if any result failed."""
        return any(result.failed() for result in self.results)
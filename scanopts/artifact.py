"""Standalone artifact scanning: per-command analyzer settings and the scan pipeline."""

from __future__ import annotations

import contextlib
import logging
import os
from collections.abc import Callable, Iterable
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from scanopts.commands import ArtifactCommandOption
from scanopts.dbclient import Client
from scanopts.operation import Cache, download_db, new_cache
from scanopts.types import (
    ANALYZER_INDIVIDUAL_PKGS,
    ANALYZER_LANGUAGES,
    ANALYZER_LOCKFILES,
    ANALYZER_OSES,
    AnalyzerType,
    Report,
    Result,
    SecurityCheck,
    VulnType,
)

_LOGGER = logging.getLogger("scanopts")

DEFAULT_POLICY_NAMESPACE = "appshield"


class SkipScan(Exception):
    """Raised when an operation has completed the command and no scan follows."""


@dataclass
class ScanOptions:
    """What a scan looks for."""

    vuln_type: list[VulnType] = field(default_factory=list)
    security_checks: list[SecurityCheck] = field(default_factory=list)
    scan_removed_packages: bool = False
    list_all_packages: bool = False


@dataclass
class ArtifactScanOption:
    """How an artifact is inspected."""

    disabled_analyzers: list[AnalyzerType] = field(default_factory=list)
    skip_files: list[str] = field(default_factory=list)
    skip_dirs: list[str] = field(default_factory=list)
    insecure_skip_tls: bool = False
    offline: bool = False
    no_progress: bool = False


Scan = Callable[[ScanOptions], Report]
InitializeScanner = Callable[
    [str, Cache, bool, ArtifactScanOption, "dict[str, Any] | None"], AbstractContextManager[Scan]
]
InitCache = Callable[[ArtifactCommandOption], Cache]
WriteReport = Callable[[Report, ArtifactCommandOption], None]


def configure_config(opt: ArtifactCommandOption) -> ArtifactCommandOption:
    """Scan only configuration files, without the vulnerability database."""
    opt.disabled_analyzers = [*ANALYZER_OSES, *ANALYZER_LANGUAGES]
    opt.report.vuln_type = []
    opt.report.security_checks = [SecurityCheck.CONFIG]
    opt.db.skip_db_update = True
    return opt


def configure_filesystem(opt: ArtifactCommandOption) -> ArtifactCommandOption:
    """Scan a filesystem without individual package files."""
    opt.disabled_analyzers = list(ANALYZER_INDIVIDUAL_PKGS)
    return opt


def configure_rootfs(opt: ArtifactCommandOption) -> ArtifactCommandOption:
    """Scan a root filesystem without lock files."""
    opt.disabled_analyzers = list(ANALYZER_LOCKFILES)
    return opt


def configure_image(opt: ArtifactCommandOption) -> ArtifactCommandOption:
    """Scan a container image without lock files."""
    opt.disabled_analyzers = list(ANALYZER_LOCKFILES)
    return opt


def configure_repository(opt: ArtifactCommandOption) -> ArtifactCommandOption:
    """Scan a repository for library vulnerabilities only."""
    opt.report.vuln_type = [VulnType.LIBRARY]
    opt.disabled_analyzers = [*ANALYZER_INDIVIDUAL_PKGS, *ANALYZER_OSES]
    return opt


def disabled_analyzers(opt: ArtifactCommandOption) -> list[AnalyzerType]:
    """The command's disabled analyzers plus those the options switch off."""
    analyzers = list(opt.disabled_analyzers)
    if not opt.image.scan_removed_pkgs:
        analyzers.append(AnalyzerType.APK_COMMAND)
    if VulnType.LIBRARY not in opt.report.vuln_type:
        analyzers.extend(ANALYZER_LANGUAGES)
    return analyzers


def build_scan_options(opt: ArtifactCommandOption) -> ScanOptions:
    return ScanOptions(
        vuln_type=list(opt.report.vuln_type),
        security_checks=list(opt.report.security_checks),
        scan_removed_packages=opt.image.scan_removed_pkgs,
        list_all_packages=opt.image.list_all_pkgs,
    )


def build_artifact_option(opt: ArtifactCommandOption) -> ArtifactScanOption:
    return ArtifactScanOption(
        disabled_analyzers=disabled_analyzers(opt),
        skip_files=list(opt.artifact.skip_files),
        skip_dirs=list(opt.artifact.skip_dirs),
        insecure_skip_tls=opt.artifact.insecure,
        offline=opt.artifact.offline_scan,
        no_progress=opt.db.no_progress or opt.global_option.quiet,
    )


def _config_scanner_option(opt: ArtifactCommandOption) -> dict[str, Any] | None:
    if SecurityCheck.CONFIG not in opt.report.security_checks:
        return None
    return {
        "trace": opt.config.trace,
        "namespaces": [*opt.config.policy_namespaces, DEFAULT_POLICY_NAMESPACE],
        "policy_paths": list(opt.config.policy_paths),
        "data_paths": list(opt.config.data_paths),
        "file_patterns": list(opt.config.file_patterns),
    }


def _default_cache_dir() -> str:
    base = os.environ.get("XDG_CACHE_HOME") or str(Path.home() / ".cache")
    return str(Path(base) / "trivy")


def _cache_dir(opt: ArtifactCommandOption) -> str:
    return opt.global_option.cache_dir or _default_cache_dir()


def init_fs_cache(opt: ArtifactCommandOption) -> Cache:
    """Open the cache; --reset and --clear-cache clear it and raise SkipScan."""
    cache = new_cache(opt.cache, _cache_dir(opt))
    _LOGGER.debug(f"cache dir:  {cache.cache_dir}")

    if opt.db.reset:
        with cache:
            cache.reset()
        raise SkipScan("the cache was reset")
    if opt.artifact.clear_cache:
        with cache:
            cache.clear_artifacts()
        raise SkipScan("the artifact cache was cleared")
    return cache


def init_db(opt: ArtifactCommandOption, db_client: Client | None = None) -> None:
    """Make sure the database is present; --download-db-only raises SkipScan."""
    no_progress = opt.global_option.quiet or opt.db.no_progress
    download_db(
        opt.global_option.app_version,
        _cache_dir(opt),
        no_progress,
        opt.db.skip_db_update,
        db_client,
    )
    if opt.db.download_db_only:
        raise SkipScan("only the database was requested")


def exit_code(opt: ArtifactCommandOption, results: Iterable[Result]) -> int:
    """The configured exit code if any result failed, else 0."""
    if opt.report.exit_code != 0 and any(result.failed() for result in results):
        return opt.report.exit_code
    return 0


def _scan(opt: ArtifactCommandOption, initialize_scanner: InitializeScanner, cache: Cache) -> Report:
    target = opt.artifact.input or opt.artifact.target
    scan_options = build_scan_options(opt)
    _LOGGER.debug(f"Vulnerability type:  {[str(v) for v in scan_options.vuln_type]}")
    with initialize_scanner(
        target,
        cache,
        opt.artifact.insecure,
        build_artifact_option(opt),
        _config_scanner_option(opt),
    ) as scan:
        return scan(scan_options)


def run(
    opt: ArtifactCommandOption,
    initialize_scanner: InitializeScanner,
    init_cache: InitCache,
    write_report: WriteReport,
) -> int:
    """Scan the artifact, write the report and return the process exit code."""
    try:
        cache = init_cache(opt)
    except SkipScan:
        return 0

    with contextlib.closing(cache):
        if SecurityCheck.VULNERABILITY in opt.report.security_checks:
            try:
                init_db(opt)
            except SkipScan:
                return 0
        report = _scan(opt, initialize_scanner, cache)
        write_report(report, opt)

    return exit_code(opt, report.results)
"""Client mode: scan an artifact against a remote server's cache and database."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from contextlib import AbstractContextManager, ExitStack
from typing import Any

from scanopts.artifact import DEFAULT_POLICY_NAMESPACE, ArtifactScanOption, ScanOptions
from scanopts.commands import ClientCommandOption
from scanopts.options import OptionError
from scanopts.remote import RemoteCache
from scanopts.types import (
    ANALYZER_LANGUAGES,
    ANALYZER_LOCKFILES,
    AnalyzerType,
    Report,
    Result,
    SecurityCheck,
    VulnType,
)

_LOGGER = logging.getLogger("scanopts")

Scan = Callable[[ScanOptions], Report]
InitializeScanner = Callable[
    [str, RemoteCache, bool, ArtifactScanOption, "dict[str, Any] | None"],
    AbstractContextManager[Scan],
]
WriteReport = Callable[[Report, ClientCommandOption], None]


class ClientRunError(Exception):
    """Raised when a client scan cannot be completed."""


def disabled_analyzers(opt: ClientCommandOption) -> list[AnalyzerType]:
    """The command's disabled analyzers plus those the options switch off."""
    analyzers = list(opt.disabled_analyzers)
    if not opt.image.scan_removed_pkgs:
        analyzers.append(AnalyzerType.APK_COMMAND)
    if VulnType.LIBRARY not in opt.report.vuln_type:
        analyzers.extend(ANALYZER_LANGUAGES)
    return analyzers


def build_artifact_option(opt: ClientCommandOption) -> ArtifactScanOption:
    """How the client inspects the artifact before sending it to the server."""
    return ArtifactScanOption(
        disabled_analyzers=disabled_analyzers(opt),
        skip_files=list(opt.artifact.skip_files),
        skip_dirs=list(opt.artifact.skip_dirs),
        offline=opt.artifact.offline_scan,
    )


def exit_code(opt: ClientCommandOption, results: Iterable[Result]) -> int:
    """The configured exit code if any result has vulnerabilities, else 0."""
    if opt.report.exit_code != 0 and any(result.vulnerabilities for result in results):
        return opt.report.exit_code
    return 0


def _config_scanner_option(opt: ClientCommandOption) -> dict[str, Any] | None:
    if SecurityCheck.CONFIG not in opt.report.security_checks:
        return None
    return {
        "trace": opt.config.trace,
        "namespaces": [*opt.config.policy_namespaces, DEFAULT_POLICY_NAMESPACE],
        "policy_paths": list(opt.config.policy_paths),
        "data_paths": list(opt.config.data_paths),
        "file_patterns": list(opt.config.file_patterns),
    }


def _initialize(opt: ClientCommandOption) -> None:
    try:
        opt.init()
    except OptionError as exc:
        raise ClientRunError(f"initialize error: failed to initialize options: {exc}") from exc
    _LOGGER.debug(f"cache dir:  {opt.global_option.cache_dir}")


def _run(opt: ClientCommandOption, initialize_scanner: InitializeScanner, write_report: WriteReport) -> int:
    _initialize(opt)

    if opt.artifact.clear_cache:
        _LOGGER.warning("A client doesn't have image cache")
        return 0

    remote_cache = RemoteCache(opt.remote_addr, opt.custom_headers)
    target = opt.artifact.input or opt.artifact.target
    kind = "archive" if opt.artifact.input else "docker"

    scan_options = ScanOptions(
        vuln_type=list(opt.report.vuln_type),
        security_checks=list(opt.report.security_checks),
        scan_removed_packages=opt.image.scan_removed_pkgs,
        list_all_packages=opt.image.list_all_pkgs,
    )
    _LOGGER.debug(f"Vulnerability type:  {[str(v) for v in scan_options.vuln_type]}")

    with ExitStack() as stack:
        try:
            scan = stack.enter_context(
                initialize_scanner(
                    target,
                    remote_cache,
                    opt.artifact.insecure,
                    build_artifact_option(opt),
                    _config_scanner_option(opt),
                )
            )
        except TimeoutError:
            raise
        except Exception as exc:
            raise ClientRunError(
                f"scanner initialize error: unable to initialize the {kind} scanner: {exc}"
            ) from exc

        try:
            report = scan(scan_options)
        except TimeoutError:
            raise
        except Exception as exc:
            raise ClientRunError(f"error in image scan: {exc}") from exc

    try:
        write_report(report, opt)
    except TimeoutError:
        raise
    except Exception as exc:
        raise ClientRunError(f"unable to write results: {exc}") from exc

    return exit_code(opt, report.results)


def run(opt: ClientCommandOption, initialize_scanner: InitializeScanner, write_report: WriteReport) -> int:
    """Scan the artifact through the remote server and return the process exit code."""
    opt.disabled_analyzers = list(ANALYZER_LOCKFILES)
    try:
        return _run(opt, initialize_scanner, write_report)
    except TimeoutError:
        _LOGGER.warning("Increase --timeout value")
        raise
"""Command-line option groups and their validation."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from datetime import timedelta
from typing import IO, Any

from scanopts.types import (
    SecurityCheck,
    Severity,
    UnknownSeverityError,
    VulnType,
    parse_security_check,
    parse_severity,
    parse_vuln_type,
)

_LOGGER = logging.getLogger("scanopts")


class OptionError(ValueError):
    """Raised when options are invalid or inconsistent."""


class HelpRequested(Exception):
    """Raised when the command should show its help and stop."""


@dataclass
class CommandContext:
    """Parsed flags, positional arguments and application version."""

    flags: dict[str, Any] = field(default_factory=dict)
    args: list[str] = field(default_factory=list)
    app_version: str = ""

    def get(self, name: str, default: Any = None) -> Any:
        """Return the value of flag ``name``, or ``default`` if it is unset."""
        return self.flags.get(name, default)


def _strings(ctx: CommandContext, name: str) -> list[str]:
    return list(ctx.get(name) or [])


def _resolve(logger: logging.Logger | None) -> logging.Logger:
    return logger if logger is not None else _LOGGER


@dataclass
class GlobalOption:
    """Options shared by every command."""

    context: CommandContext | None = None
    logger: logging.Logger = field(default=_LOGGER, compare=False)
    app_version: str = ""
    quiet: bool = False
    debug: bool = False
    cache_dir: str = ""

    @classmethod
    def from_context(cls, ctx: CommandContext) -> GlobalOption:
        return cls(
            context=ctx,
            logger=_LOGGER,
            app_version=ctx.app_version,
            quiet=bool(ctx.get("quiet", False)),
            debug=bool(ctx.get("debug", False)),
            cache_dir=ctx.get("cache-dir", ""),
        )


@dataclass
class ArtifactOption:
    """Options for scanning one artifact."""

    input: str = ""
    timeout: timedelta = field(default_factory=timedelta)
    clear_cache: bool = False
    insecure: bool = False
    skip_dirs: list[str] = field(default_factory=list)
    skip_files: list[str] = field(default_factory=list)
    offline_scan: bool = False
    target: str = ""

    @classmethod
    def from_context(cls, ctx: CommandContext) -> ArtifactOption:
        timeout = ctx.get("timeout", timedelta())
        if not isinstance(timeout, timedelta):
            timeout = timedelta(seconds=timeout)
        return cls(
            input=ctx.get("input", ""),
            timeout=timeout,
            clear_cache=bool(ctx.get("clear-cache", False)),
            skip_files=_strings(ctx, "skip-files"),
            skip_dirs=_strings(ctx, "skip-dirs"),
            offline_scan=bool(ctx.get("offline-scan", False)),
            insecure=bool(ctx.get("insecure", False)),
        )

    def init(self, ctx: CommandContext, logger: logging.Logger | None = None) -> None:
        """Check the positional arguments and set the scan target."""
        log = _resolve(logger)
        if not self.input and not ctx.args:
            log.debug("trivy requires at least 1 argument or --input option")
            raise HelpRequested()
        if len(ctx.args) > 1:
            log.error("multiple targets cannot be specified")
            raise OptionError("arguments error")
        if not self.input:
            self.target = ctx.args[0]


@dataclass
class RedisOption:
    """TLS files for a redis cache backend."""

    redis_ca_cert: str = ""
    redis_cert: str = ""
    redis_key: str = ""

    def is_empty(self) -> bool:
        return not (self.redis_ca_cert or self.redis_cert or self.redis_key)


@dataclass
class CacheOption:
    """Options selecting the cache backend."""

    cache_backend: str = ""
    redis_option: RedisOption = field(default_factory=RedisOption)

    @classmethod
    def from_context(cls, ctx: CommandContext) -> CacheOption:
        return cls(
            cache_backend=ctx.get("cache-backend", ""),
            redis_option=RedisOption(
                redis_ca_cert=ctx.get("redis-ca", ""),
                redis_cert=ctx.get("redis-cert", ""),
                redis_key=ctx.get("redis-key", ""),
            ),
        )

    def init(self) -> None:
        """Validate the backend and the redis TLS settings."""
        backend = self.cache_backend
        if not backend.startswith("redis://") and backend not in ("fs", ""):
            raise OptionError(f"unsupported cache backend: {backend}")
        redis = self.redis_option
        if not redis.is_empty() and not (redis.redis_ca_cert and redis.redis_cert and redis.redis_key):
            raise OptionError("you must provide CA, cert and key file path when using tls")


@dataclass
class ConfigOption:
    """Options for scanning configuration files."""

    file_patterns: list[str] = field(default_factory=list)
    include_non_failures: bool = False
    skip_policy_update: bool = False
    trace: bool = False
    policy_paths: list[str] = field(default_factory=list)
    data_paths: list[str] = field(default_factory=list)
    policy_namespaces: list[str] = field(default_factory=list)

    @classmethod
    def from_context(cls, ctx: CommandContext) -> ConfigOption:
        return cls(
            include_non_failures=bool(ctx.get("include-non-failures", False)),
            skip_policy_update=bool(ctx.get("skip-policy-update", False)),
            trace=bool(ctx.get("trace", False)),
            file_patterns=_strings(ctx, "file-patterns"),
            policy_paths=_strings(ctx, "config-policy"),
            data_paths=_strings(ctx, "config-data"),
            policy_namespaces=_strings(ctx, "policy-namespaces"),
        )


@dataclass
class DBOption:
    """Options for the vulnerability database."""

    reset: bool = False
    download_db_only: bool = False
    skip_db_update: bool = False
    light: bool = False
    no_progress: bool = False

    @classmethod
    def from_context(cls, ctx: CommandContext) -> DBOption:
        return cls(
            reset=bool(ctx.get("reset", False)),
            download_db_only=bool(ctx.get("download-db-only", False)),
            skip_db_update=bool(ctx.get("skip-db-update", False)),
            light=bool(ctx.get("light", False)),
            no_progress=bool(ctx.get("no-progress", False)),
        )

    def init(self, logger: logging.Logger | None = None) -> None:
        """Reject conflicting flags and warn about deprecated ones."""
        if self.skip_db_update and self.download_db_only:
            raise OptionError("--skip-db-update and --download-db-only options can not be specified both")
        if self.light:
            _resolve(logger).warning("'--light' option is deprecated and will be removed.")


@dataclass
class ImageOption:
    """Options for scanning container images."""

    scan_removed_pkgs: bool = False
    list_all_pkgs: bool = False

    @classmethod
    def from_context(cls, ctx: CommandContext) -> ImageOption:
        return cls(
            scan_removed_pkgs=bool(ctx.get("removed-pkgs", False)),
            list_all_pkgs=bool(ctx.get("list-all-pkgs", False)),
        )


@dataclass
class ReportOption:
    """Options for reporting scan results.

    The ``*_names`` fields and ``output_path`` hold the raw flag values;
    ``init`` turns them into ``severities``, ``vuln_type``,
    ``security_checks`` and ``output``.
    """

    format: str = ""
    template: str = ""
    ignore_file: str = ""
    ignore_unfixed: bool = False
    exit_code: int = 0
    ignore_policy: str = ""

    vuln_type_names: str = ""
    security_check_names: str = ""
    output_path: str = ""
    severity_names: str = ""

    vuln_type: list[VulnType] = field(default_factory=list)
    security_checks: list[SecurityCheck] = field(default_factory=list)
    output: IO[str] | None = None
    severities: list[Severity] = field(default_factory=list)

    @classmethod
    def from_context(cls, ctx: CommandContext) -> ReportOption:
        return cls(
            output_path=ctx.get("output", ""),
            format=ctx.get("format", ""),
            template=ctx.get("template", ""),
            ignore_policy=ctx.get("ignore-policy", ""),
            vuln_type_names=ctx.get("vuln-type", ""),
            security_check_names=ctx.get("security-checks", ""),
            severity_names=ctx.get("severity", ""),
            ignore_file=ctx.get("ignorefile", ""),
            ignore_unfixed=bool(ctx.get("ignore-unfixed", False)),
            exit_code=int(ctx.get("exit-code", 0)),
        )

    def init(self, logger: logging.Logger | None = None) -> None:
        """Parse the raw flag values and open the output."""
        log = _resolve(logger)

        if self.template:
            if not self.format:
                log.warning(
                    "--template is ignored because --format template is not specified. "
                    "Use --template option with --format template option."
                )
            elif self.format != "template":
                log.warning(
                    f"--template is ignored because --format {self.format} is specified. "
                    "Use --template option with --format template option."
                )
        if self.format == "template" and not self.template:
            log.warning(
                "--format template is ignored because --template not is specified. "
                "Specify --template option when you use --format template."
            )

        self.severities = split_severity(log, self.severity_names)
        self._populate_vuln_types()
        self._populate_security_checks()

        self.severity_names = ""
        self.vuln_type_names = ""
        self.security_check_names = ""

        self.output = sys.stdout
        if self.output_path:
            try:
                self.output = open(self.output_path, "w", encoding="utf-8")  # noqa: SIM115
            except OSError as exc:
                raise OptionError(f"failed to create an output file: {exc}") from exc

    def _populate_vuln_types(self) -> None:
        if not self.vuln_type_names:
            return
        for name in self.vuln_type_names.split(","):
            vuln_type = parse_vuln_type(name)
            if vuln_type is VulnType.UNKNOWN:
                raise OptionError(f"vuln type: unknown vulnerability type ({name})")
            self.vuln_type.append(vuln_type)

    def _populate_security_checks(self) -> None:
        if not self.security_check_names:
            return
        for name in self.security_check_names.split(","):
            check = parse_security_check(name)
            if check is SecurityCheck.UNKNOWN:
                raise OptionError(f"security checks: unknown security check ({name})")
            self.security_checks.append(check)


def split_severity(logger: logging.Logger | None, severity: str) -> list[Severity]:
    """Parse a comma separated severity list; unknown names become UNKNOWN."""
    log = _resolve(logger)
    log.debug(f"Severities: {severity}")
    severities = []
    for name in severity.split(","):
        try:
            severities.append(parse_severity(name))
        except UnknownSeverityError as exc:
            log.warning(f"unknown severity option: {exc}")
            severities.append(Severity.UNKNOWN)
    return severities
"""Option sets for the artifact, client and server commands."""

from __future__ import annotations

from dataclasses import dataclass, field

from scanopts.options import (
    ArtifactOption,
    CacheOption,
    CommandContext,
    ConfigOption,
    DBOption,
    GlobalOption,
    ImageOption,
    ReportOption,
)
from scanopts.types import AnalyzerType


def _canonical_header_key(key: str) -> str:
    return "-".join(part[:1].upper() + part[1:].lower() for part in key.split("-"))


def split_custom_headers(headers: list[str]) -> dict[str, str]:
    """Turn ``name:value`` strings into a header mapping; malformed entries are skipped."""
    result: dict[str, str] = {}
    for header in headers:
        name, sep, value = header.partition(":")
        if not sep:
            continue
        result[_canonical_header_key(name)] = value
    return result


@dataclass
class ArtifactCommandOption:
    """Options of the standalone artifact scanning commands."""

    global_option: GlobalOption = field(default_factory=GlobalOption)
    artifact: ArtifactOption = field(default_factory=ArtifactOption)
    db: DBOption = field(default_factory=DBOption)
    image: ImageOption = field(default_factory=ImageOption)
    report: ReportOption = field(default_factory=ReportOption)
    cache: CacheOption = field(default_factory=CacheOption)
    config: ConfigOption = field(default_factory=ConfigOption)
    disabled_analyzers: list[AnalyzerType] = field(default_factory=list)

    @classmethod
    def from_context(cls, ctx: CommandContext) -> ArtifactCommandOption:
        return cls(
            global_option=GlobalOption.from_context(ctx),
            artifact=ArtifactOption.from_context(ctx),
            db=DBOption.from_context(ctx),
            image=ImageOption.from_context(ctx),
            report=ReportOption.from_context(ctx),
            cache=CacheOption.from_context(ctx),
            config=ConfigOption.from_context(ctx),
        )

    def init(self) -> None:
        """Validate every option group; the target is only needed for a scan."""
        logger = self.global_option.logger
        self.report.init(logger)
        self.db.init(logger)
        self.cache.init()
        if self.skip_scan():
            return
        self.artifact.init(self.global_option.context or CommandContext(), logger)

    def skip_scan(self) -> bool:
        """True for --clear-cache, --download-db-only and --reset."""
        return self.artifact.clear_cache or self.db.download_db_only or self.db.reset


@dataclass
class ClientCommandOption:
    """Options of the client command that talks to a remote server."""

    global_option: GlobalOption = field(default_factory=GlobalOption)
    artifact: ArtifactOption = field(default_factory=ArtifactOption)
    image: ImageOption = field(default_factory=ImageOption)
    report: ReportOption = field(default_factory=ReportOption)
    config: ConfigOption = field(default_factory=ConfigOption)
    no_progress: bool = False
    disabled_analyzers: list[AnalyzerType] = field(default_factory=list)
    remote_addr: str = ""
    token: str = ""
    token_header: str = ""
    custom_header_values: list[str] = field(default_factory=list)
    custom_headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_context(cls, ctx: CommandContext) -> ClientCommandOption:
        return cls(
            global_option=GlobalOption.from_context(ctx),
            artifact=ArtifactOption.from_context(ctx),
            image=ImageOption.from_context(ctx),
            report=ReportOption.from_context(ctx),
            config=ConfigOption.from_context(ctx),
            no_progress=bool(ctx.get("no-progress", False)),
            remote_addr=ctx.get("remote", ""),
            token=ctx.get("token", ""),
            token_header=ctx.get("token-header", ""),
            custom_header_values=list(ctx.get("custom-headers") or []),
        )

    def init(self) -> None:
        """Build the request headers and validate the report and artifact options."""
        if self.artifact.clear_cache:
            return
        self.custom_headers = split_custom_headers(self.custom_header_values)
        if self.token:
            self.custom_headers[_canonical_header_key(self.token_header)] = self.token
        logger = self.global_option.logger
        self.report.init(logger)
        self.artifact.init(self.global_option.context or CommandContext(), logger)


@dataclass
class ServerConfig:
    """Options of the server command."""

    global_option: GlobalOption = field(default_factory=GlobalOption)
    db: DBOption = field(default_factory=DBOption)
    cache: CacheOption = field(default_factory=CacheOption)
    listen: str = ""
    token: str = ""
    token_header: str = ""

    @classmethod
    def from_context(cls, ctx: CommandContext) -> ServerConfig:
        return cls(
            global_option=GlobalOption.from_context(ctx),
            db=DBOption.from_context(ctx),
            cache=CacheOption.from_context(ctx),
            listen=ctx.get("listen", ""),
            token=ctx.get("token", ""),
            token_header=ctx.get("token-header", ""),
        )

    def init(self) -> None:
        """Validate the database and cache options."""
        self.db.init(self.global_option.logger)
        self.cache.init()
from contextlib import contextmanager
from datetime import datetime, timezone

import pytest

from scanopts.artifact import (
    DEFAULT_POLICY_NAMESPACE,
    ScanOptions,
    SkipScan,
    build_artifact_option,
    build_scan_options,
    configure_config,
    configure_filesystem,
    configure_image,
    configure_repository,
    configure_rootfs,
    disabled_analyzers,
    exit_code,
    init_db,
    init_fs_cache,
    run,
)
from scanopts.commands import ArtifactCommandOption
from scanopts.dbclient import SCHEMA_VERSION, Client, Metadata, MetadataStore
from scanopts.options import (
    ArtifactOption,
    ConfigOption,
    DBOption,
    GlobalOption,
    ImageOption,
    ReportOption,
)
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

IMAGE_ID = "sha256:e7d92cdc71feacf90708cb59182d0df1b911f8ae022d29e8e95d75ca6a99776a"
NOW = datetime(2019, 10, 1, tzinfo=timezone.utc)


def make_option(tmp_path, **kwargs):
    return ArtifactCommandOption(
        global_option=GlobalOption(cache_dir=str(tmp_path)),
        artifact=kwargs.pop("artifact", ArtifactOption(target="alpine:3.10")),
        **kwargs,
    )


def write_fresh_metadata(cache_dir):
    MetadataStore(cache_dir).update(
        Metadata(version=SCHEMA_VERSION, next_update=datetime(3000, 1, 1, tzinfo=timezone.utc))
    )


class FakeScannerFactory:
    def __init__(self, report):
        self.report = report
        self.calls = []
        self.scan_options = []
        self.closed = False

    @contextmanager
    def __call__(self, target, cache, insecure, artifact_option, config_option):
        self.calls.append((target, insecure, artifact_option, config_option))

        def scan(scan_options):
            self.scan_options.append(scan_options)
            return self.report

        yield scan
        self.closed = True


def test_configure_config(tmp_path):
    opt = configure_config(make_option(tmp_path, report=ReportOption(vuln_type=[VulnType.OS])))
    assert opt.disabled_analyzers == [*ANALYZER_OSES, *ANALYZER_LANGUAGES]
    assert opt.report.vuln_type == []
    assert opt.report.security_checks == [SecurityCheck.CONFIG]
    assert opt.db.skip_db_update is True


def test_configure_filesystem_rootfs_image(tmp_path):
    assert configure_filesystem(make_option(tmp_path)).disabled_analyzers == list(ANALYZER_INDIVIDUAL_PKGS)
    assert configure_rootfs(make_option(tmp_path)).disabled_analyzers == list(ANALYZER_LOCKFILES)
    assert configure_image(make_option(tmp_path)).disabled_analyzers == list(ANALYZER_LOCKFILES)


def test_configure_repository(tmp_path):
    opt = configure_repository(make_option(tmp_path))
    assert opt.report.vuln_type == [VulnType.LIBRARY]
    assert opt.disabled_analyzers == [*ANALYZER_INDIVIDUAL_PKGS, *ANALYZER_OSES]


def test_disabled_analyzers_defaults(tmp_path):
    opt = make_option(tmp_path, report=ReportOption(vuln_type=[VulnType.OS]))
    opt.disabled_analyzers = list(ANALYZER_LOCKFILES)
    got = disabled_analyzers(opt)
    assert got == [*ANALYZER_LOCKFILES, AnalyzerType.APK_COMMAND, *ANALYZER_LANGUAGES]
    assert opt.disabled_analyzers == list(ANALYZER_LOCKFILES)


def test_disabled_analyzers_removed_pkgs_and_library(tmp_path):
    opt = make_option(
        tmp_path,
        image=ImageOption(scan_removed_pkgs=True),
        report=ReportOption(vuln_type=[VulnType.OS, VulnType.LIBRARY]),
    )
    opt.disabled_analyzers = list(ANALYZER_LOCKFILES)
    assert disabled_analyzers(opt) == list(ANALYZER_LOCKFILES)


def test_build_scan_options(tmp_path):
    opt = make_option(
        tmp_path,
        image=ImageOption(scan_removed_pkgs=True, list_all_pkgs=True),
        report=ReportOption(vuln_type=[VulnType.OS], security_checks=[SecurityCheck.VULNERABILITY]),
    )
    assert build_scan_options(opt) == ScanOptions(
        vuln_type=[VulnType.OS],
        security_checks=[SecurityCheck.VULNERABILITY],
        scan_removed_packages=True,
        list_all_packages=True,
    )


def test_build_artifact_option(tmp_path):
    opt = make_option(
        tmp_path,
        artifact=ArtifactOption(skip_files=["a"], skip_dirs=["b"], insecure=True, offline_scan=True),
        report=ReportOption(vuln_type=[VulnType.LIBRARY]),
        image=ImageOption(scan_removed_pkgs=True),
    )
    opt.global_option.quiet = True
    got = build_artifact_option(opt)
    assert got.skip_files == ["a"]
    assert got.skip_dirs == ["b"]
    assert got.insecure_skip_tls is True
    assert got.offline is True
    assert got.no_progress is True
    assert got.disabled_analyzers == []


def test_exit_code(tmp_path):
    opt = make_option(tmp_path, report=ReportOption(exit_code=1))
    failing = [Result(vulnerabilities=[{"VulnerabilityID": "CVE-2020-0001"}])]
    passing = [Result(misconfigurations=[{"Status": "PASS"}])]
    assert exit_code(opt, failing) == 1
    assert exit_code(opt, passing) == 0
    assert exit_code(make_option(tmp_path), failing) == 0


def test_init_fs_cache_opens_cache(tmp_path):
    cache = init_fs_cache(make_option(tmp_path))
    cache.backend.put_artifact(IMAGE_ID, {"OS": "linux"})
    assert cache.backend.get_artifact(IMAGE_ID) == {"OS": "linux"}
    assert cache.cache_dir == str(tmp_path)
    cache.close()


def test_init_fs_cache_reset(tmp_path):
    cache_dir = tmp_path / "cache"
    opt = make_option(cache_dir, db=DBOption(reset=True))
    with pytest.raises(SkipScan):
        init_fs_cache(opt)
    assert not cache_dir.exists()


def test_init_fs_cache_clear_cache(tmp_path):
    cache = init_fs_cache(make_option(tmp_path))
    cache.backend.put_artifact(IMAGE_ID, {})
    cache.close()
    opt = make_option(tmp_path, artifact=ArtifactOption(clear_cache=True))
    with pytest.raises(SkipScan):
        init_fs_cache(opt)
    assert not (tmp_path / "fanal").exists()


def test_init_db_download_only(tmp_path):
    write_fresh_metadata(tmp_path)
    opt = make_option(tmp_path, db=DBOption(download_db_only=True))
    with pytest.raises(SkipScan):
        init_db(opt, Client(str(tmp_path), clock=lambda: NOW))


def test_init_db_fresh_database(tmp_path):
    write_fresh_metadata(tmp_path)
    opt = make_option(tmp_path)
    init_db(opt, Client(str(tmp_path), clock=lambda: NOW))
    assert MetadataStore(tmp_path).get().version == SCHEMA_VERSION


def test_run_config_scan(tmp_path):
    report = Report(results=[Result(misconfigurations=[{"Status": "FAIL"}])])
    factory = FakeScannerFactory(report)
    written = []
    opt = make_option(
        tmp_path,
        report=ReportOption(exit_code=1),
        config=ConfigOption(policy_namespaces=["custom"]),
    )
    configure_config(opt)
    code = run(opt, factory, init_fs_cache, lambda r, o: written.append(r))
    assert code == 1
    assert written == [report]
    target, insecure, _, config_option = factory.calls[0]
    assert target == "alpine:3.10"
    assert insecure is False
    assert config_option["namespaces"] == ["custom", DEFAULT_POLICY_NAMESPACE]
    assert factory.scan_options[0].security_checks == [SecurityCheck.CONFIG]
    assert factory.closed is True


def test_run_vulnerability_scan_uses_input(tmp_path):
    write_fresh_metadata(tmp_path)
    factory = FakeScannerFactory(Report(results=[Result()]))
    opt = make_option(
        tmp_path,
        artifact=ArtifactOption(input="image.tar"),
        report=ReportOption(
            exit_code=1,
            vuln_type=[VulnType.OS],
            security_checks=[SecurityCheck.VULNERABILITY],
        ),
    )
    code = run(opt, factory, init_fs_cache, lambda r, o: None)
    assert code == 0
    assert factory.calls[0][0] == "image.tar"
    assert factory.calls[0][3] is None


def test_run_skip_scan_from_cache(tmp_path):
    factory = FakeScannerFactory(Report())

    def init_cache(opt):
        raise SkipScan()

    assert run(make_option(tmp_path), factory, init_cache, lambda r, o: None) == 0
    assert factory.calls == []


def test_run_download_db_only_skips_scan(tmp_path):
    write_fresh_metadata(tmp_path)
    factory = FakeScannerFactory(Report())
    opt = make_option(
        tmp_path,
        db=DBOption(download_db_only=True),
        report=ReportOption(security_checks=[SecurityCheck.VULNERABILITY]),
    )
    assert run(opt, factory, init_fs_cache, lambda r, o: None) == 0
    assert factory.calls == []
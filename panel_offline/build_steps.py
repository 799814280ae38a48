from __future__ import annotations

import logging
import shutil
import tarfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Literal, Optional

from .build_config import BuildConfig
from .lib.arch import ArchitectureProfile
from .lib.archive import create_tar_gz, extract_strip_components, is_valid_tar
from .lib.assets import asset_path, copy_tree, install_file
from .lib.download import DownloadError, Downloader, FetchResult
from .lib.resolver import ArtifactResolver
from .lib.sources import ReleaseSource
from .patcher import patch_install_script

logger = logging.getLogger(__name__)


PACKAGE_DIR = Path(__file__).resolve().parent

BUNDLE_DOCKER_TGZ = "docker.tgz"
BUNDLE_COMPOSE_BIN = "docker-compose"
BUNDLE_DOCKER_SERVICE = "docker.service"
BUNDLE_UPGRADE_SCRIPT = "upgrade.sh"
BUNDLE_SQLITE_BIN = "sqlite3"
BUNDLE_INSTALL_SCRIPT = "install.sh"


class ArtifactUnavailable(RuntimeError):
    """A required artifact for one (source, arch) pair could not be obtained."""


@dataclass(frozen=True)
class ComponentOutcome:
    status: Literal["included", "skipped"]
    reason: Optional[str] = None


@dataclass(frozen=True)
class BundleOutcome:
    source: str
    arch: str
    status: Literal["built", "skipped"]
    archive: Optional[Path] = None
    reason: Optional[str] = None
    sqlite: Optional[ComponentOutcome] = None
    versions: Dict[str, str] = field(default_factory=dict)


@dataclass
class BuildCtx:
    cfg: BuildConfig
    source: ReleaseSource
    profile: ArchitectureProfile
    version: str
    resolver: ArtifactResolver
    downloader: Downloader
    fetched: Dict[str, FetchResult] = field(default_factory=dict)
    sqlite: Optional[ComponentOutcome] = None

    @property
    def package_dir(self) -> Path:
        return self.cfg.build_root / self.version / self.source.label

    @property
    def bundle_name(self) -> str:
        return f"1panel-{self.version}-{self.source.label}-offline-linux-{self.profile.tag}"

    @property
    def staging_dir(self) -> Path:
        return self.package_dir / self.bundle_name

    @property
    def archive_path(self) -> Path:
        return self.package_dir / f"{self.bundle_name}.tar.gz"

    @property
    def label(self) -> str:
        return f"{self.source.label}/{self.profile.tag}"


def _fetch_required(ctx: BuildCtx, key: str, plan, reason: str) -> None:
    try:
        ctx.fetched[key] = ctx.downloader.fetch_plan(plan)
    except DownloadError as e:
        logger.warning("[%s] %s", ctx.label, e)
        raise ArtifactUnavailable(reason) from e
    logger.info("[%s] %s -> %s", ctx.label, plan.name, ctx.fetched[key].path.name)


def step_00_prepare_staging(ctx: BuildCtx) -> None:
    ctx.package_dir.mkdir(parents=True, exist_ok=True)
    ctx.archive_path.unlink(missing_ok=True)
    if ctx.staging_dir.exists():
        shutil.rmtree(ctx.staging_dir)
    ctx.staging_dir.mkdir(parents=True)


def step_01_fetch_app(ctx: BuildCtx) -> None:
    plan = ctx.resolver.app_package(ctx.source, ctx.profile, ctx.version)
    _fetch_required(ctx, "app", plan, "failed to download app package")


def step_02_fetch_runtime(ctx: BuildCtx) -> None:
    plan = ctx.resolver.runtime_package(ctx.profile)
    tried = ", ".join(plan.versions)
    _fetch_required(
        ctx, "docker", plan, f"failed to download docker {tried} for {ctx.profile.docker_arch}"
    )


def step_03_fetch_compose(ctx: BuildCtx) -> None:
    plan = ctx.resolver.compose_binary(ctx.profile)
    tried = ", ".join(plan.versions)
    _fetch_required(
        ctx, "compose", plan, f"failed to download docker-compose {tried} for {ctx.profile.compose_arch}"
    )


def step_04_unpack_app(ctx: BuildCtx) -> None:
    app_tar = ctx.fetched["app"].path
    # The cache may have been filled by hand; check again before extracting.
    if not is_valid_tar(app_tar):
        app_tar.unlink(missing_ok=True)
        raise ArtifactUnavailable(f"app package {app_tar.name} is not a valid tar.gz")
    try:
        n = extract_strip_components(app_tar, ctx.staging_dir)
    except (tarfile.TarError, OSError) as e:
        raise ArtifactUnavailable(f"cannot unpack app package {app_tar.name}: {e}") from e
    logger.info("[%s] extracted %s entries from %s", ctx.label, n, app_tar.name)


def step_05_embed_sqlite(ctx: BuildCtx) -> None:
    plan = ctx.resolver.sqlite_client(ctx.profile)
    if plan is None:
        if ctx.profile.sqlite_arch:
            reason = "no sqlite3 source configured (sqlite.repo)"
        else:
            reason = f"no sqlite3 build for {ctx.profile.tag}"
        ctx.sqlite = ComponentOutcome("skipped", reason)
        logger.warning("[%s] %s", ctx.label, ctx.sqlite.reason)
        return
    try:
        res = ctx.downloader.fetch_plan(plan)
        install_file(res.path, ctx.staging_dir / BUNDLE_SQLITE_BIN, mode=0o755)
    except (DownloadError, OSError) as e:
        ctx.sqlite = ComponentOutcome("skipped", str(e))
        logger.warning("[%s] sqlite3 not bundled: %s", ctx.label, e)
        return
    ctx.sqlite = ComponentOutcome("included")


def step_06_stage_artifacts(ctx: BuildCtx) -> None:
    stage = ctx.staging_dir
    install_file(ctx.fetched["docker"].path, stage / BUNDLE_DOCKER_TGZ)
    install_file(ctx.fetched["compose"].path, stage / BUNDLE_COMPOSE_BIN, mode=0o755)
    install_file(asset_path("docker.service"), stage / BUNDLE_DOCKER_SERVICE)
    install_file(asset_path("upgrade.sh"), stage / BUNDLE_UPGRADE_SCRIPT, mode=0o755)
    # upgrade.sh runs the applier from this copy.
    copy_tree(str(PACKAGE_DIR), str(stage / PACKAGE_DIR.name), ignore=("__pycache__",))


def step_07_patch_installer(ctx: BuildCtx) -> None:
    script = ctx.staging_dir / BUNDLE_INSTALL_SCRIPT
    if not script.is_file():
        raise ArtifactUnavailable(f"app package has no {BUNDLE_INSTALL_SCRIPT}")
    patch_install_script(script, strict=ctx.cfg.strict_patch)


def step_08_compress(ctx: BuildCtx) -> None:
    create_tar_gz(ctx.staging_dir, ctx.archive_path)
    logger.info("Built %s", ctx.archive_path)


ASSEMBLY_STEPS: List[Callable[[BuildCtx], None]] = [
    step_00_prepare_staging,
    step_01_fetch_app,
    step_02_fetch_runtime,
    step_03_fetch_compose,
    step_04_unpack_app,
    step_05_embed_sqlite,
    step_06_stage_artifacts,
    step_07_patch_installer,
    step_08_compress,
]


def assemble(ctx: BuildCtx) -> BundleOutcome:
    """Build one offline bundle; raises ArtifactUnavailable for a missing artifact."""

    logger.info("=== Build %s %s ===", ctx.version, ctx.label)
    for fn in ASSEMBLY_STEPS:
        logger.debug("[%s] %s", ctx.label, fn.__name__)
        fn(ctx)

    return BundleOutcome(
        source=ctx.source.label,
        arch=ctx.profile.tag,
        status="built",
        archive=ctx.archive_path,
        sqlite=ctx.sqlite,
        versions={k: r.version for k, r in ctx.fetched.items()},
    )

from __future__ import annotations

import argparse
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

import requests

from .build_config import BuildConfig, ConfigError, load_build_config, split_arch_list
from .build_steps import ArtifactUnavailable, BuildCtx, BundleOutcome, assemble
from .lib.arch import UnsupportedArchitecture, get_profile
from .lib.archive import sha256_file
from .lib.download import Downloader
from .lib.sources import CHANNELS, SourceSelectionError, lookup_latest_version, resolve_sources
from .logging_utils import configure_logging
from .patcher import PatchError

logger = logging.getLogger(__name__)


DEFAULT_BUILD_CONFIG = "offline_build.yaml"
CHECKSUMS_NAME = "checksums.txt"


@dataclass
class BuildReport:
    version: str
    outcomes: List[BundleOutcome] = field(default_factory=list)
    checksums: Optional[Path] = None
    cache_hits: int = 0
    downloads: int = 0

    @property
    def built(self) -> List[BundleOutcome]:
        return [o for o in self.outcomes if o.status == "built"]

    @property
    def skipped(self) -> List[BundleOutcome]:
        return [o for o in self.outcomes if o.status == "skipped"]

    @property
    def ok(self) -> bool:
        return bool(self.built)


def confirm_version(version: str, *, input_fn: Callable[[str], str] = input) -> str:
    """Ask the operator to accept `version`, type another one, or abort."""

    answer = input_fn(f"Build offline packages for 1Panel {version}? [Y/n/<other version>] ").strip()
    if not answer or answer.lower() in {"y", "yes"}:
        return version
    if answer.lower() in {"n", "no"}:
        raise ConfigError("Aborted by user")
    return answer


def write_checksums(version_dir: Path, archives: List[Path]) -> Path:
    lines = []
    for p in archives:
        rel = p.relative_to(version_dir).as_posix()
        lines.append(f"{sha256_file(p)}  {rel}")
    out = version_dir / CHECKSUMS_NAME
    out.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return out


def run_build(
    cfg: BuildConfig,
    *,
    session: Optional[requests.Session] = None,
    input_fn: Callable[[str], str] = input,
    sleep: Callable[[float], None] = time.sleep,
) -> BuildReport:
    """Build every (arch, source) bundle the config asks for.

    Under allow_missing a pair whose artifacts can't be fetched is recorded
    as skipped; otherwise ArtifactUnavailable propagates and ends the run.
    """

    sources = resolve_sources(cfg.sources, repo=cfg.custom_repo)
    profiles = [get_profile(a) for a in cfg.arches]

    downloader = Downloader(
        session=session,
        retries=cfg.download_retries,
        retry_delay=cfg.download_retry_delay,
        timeout=cfg.download_timeout,
        sleep=sleep,
    )

    version = cfg.app_version
    if not version:
        version = lookup_latest_version(sources[0], channel=cfg.channel, session=downloader.session)
    if cfg.confirm:
        version = confirm_version(version, input_fn=input_fn)

    resolver = cfg.make_resolver()
    cfg.cache_dir.mkdir(parents=True, exist_ok=True)

    report = BuildReport(version=version)
    logger.info(
        "Building 1Panel %s (%s) for %s from %s",
        version,
        cfg.channel,
        " ".join(p.tag for p in profiles),
        " ".join(s.label for s in sources),
    )

    for profile in profiles:
        for source in sources:
            ctx = BuildCtx(
                cfg=cfg,
                source=source,
                profile=profile,
                version=version,
                resolver=resolver,
                downloader=downloader,
            )
            try:
                outcome = assemble(ctx)
            except ArtifactUnavailable as e:
                if not cfg.allow_missing:
                    logger.error("[%s] %s", ctx.label, e)
                    raise
                logger.warning("[WARN] Skip %s: %s", ctx.label, e)
                outcome = BundleOutcome(source=source.label, arch=profile.tag, status="skipped", reason=str(e))
            report.outcomes.append(outcome)

    report.cache_hits = downloader.cache_hits
    report.downloads = downloader.downloads

    if report.built:
        report.checksums = write_checksums(
            cfg.build_root / version, [o.archive for o in report.built if o.archive is not None]
        )
    _log_summary(report)
    return report


def _log_summary(report: BuildReport) -> None:
    if not report.built:
        logger.error("No offline packages were built.")
    else:
        logger.info("Built: %s", " ".join(f"{o.source}/{o.arch}" for o in report.built))
        for o in report.built:
            if o.sqlite is not None and o.sqlite.status == "skipped":
                logger.info("  %s/%s without sqlite3: %s", o.source, o.arch, o.sqlite.reason)
        logger.info("Checksums: %s", report.checksums)
    if report.skipped:
        logger.warning(
            "Skipped (missing artifacts): %s",
            "; ".join(f"{o.source}/{o.arch}: {o.reason}" for o in report.skipped),
        )
    logger.info("Downloads: %s, cache hits: %s", report.downloads, report.cache_hits)


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="panel-offline-build", description="Build 1Panel v2 offline installer packages.")
    p.add_argument("--config", default=None, help=f"YAML build config (default: {DEFAULT_BUILD_CONFIG} if present)")
    p.add_argument("--log", default=None, help="Build log path")
    p.add_argument("--build-root", default=None, help="Output root (default: build)")
    p.add_argument("--mode", choices=CHANNELS, default=None, help="Download channel (default: stable)")
    p.add_argument("--app_version", default=None, help="1Panel version (default: latest for the chosen mode)")
    p.add_argument("--confirm", action="store_true", default=None, help="Confirm the resolved version interactively")
    p.add_argument("--source", choices=("official", "custom", "both"), default=None, help="Release source")
    p.add_argument("--repo", default=None, help="owner/repo for the custom source")
    p.add_argument("--docker_version", default=None, help="Docker static version (default: 24.0.7)")
    p.add_argument("--compose_version", default=None, help="docker-compose version (default: v2.23.0)")
    p.add_argument(
        "--arch",
        nargs="+",
        default=None,
        help="Architectures, space or comma separated (default: amd64 arm64 armv7 ppc64le s390x)",
    )
    p.add_argument(
        "--allow-missing",
        action="store_true",
        default=None,
        help="Skip architectures whose artifacts are unavailable instead of failing",
    )
    p.add_argument(
        "--lenient-patch",
        action="store_true",
        help="Warn and continue when an install.sh anchor is missing (default: abort)",
    )
    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)

    try:
        base = load_build_config(args.config or DEFAULT_BUILD_CONFIG, required=bool(args.config))
    except (ConfigError, OSError) as e:
        configure_logging(log_path=args.log or BuildConfig(raw={}).log_path)
        logger.error("Cannot load build config: %s", e)
        return 1

    cfg = base.with_overrides(
        {
            "channel": args.mode,
            "app_version": args.app_version,
            "confirm": args.confirm,
            "sources": args.source,
            "custom_repo": args.repo,
            "arches": split_arch_list(args.arch) or None,
            "allow_missing": args.allow_missing,
            "runtime.version": args.docker_version,
            "compose.version": args.compose_version,
            "paths.build_root": args.build_root,
            "paths.log": args.log,
            "patch.strict": False if args.lenient_patch else None,
        }
    )

    configure_logging(log_path=cfg.log_path)

    try:
        report = run_build(cfg)
    except (ConfigError, UnsupportedArchitecture, SourceSelectionError) as e:
        logger.error("Configuration error: %s", e)
        return 1
    except (ArtifactUnavailable, PatchError) as e:
        logger.error("Build aborted: %s", e)
        return 1
    except requests.RequestException as e:
        logger.error("Version lookup failed: %s", e)
        return 1
    except RuntimeError as e:
        logger.error("Build failed: %s", e)
        return 1
    return 0 if report.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())

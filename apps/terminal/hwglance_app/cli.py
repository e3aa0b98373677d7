"""CLI entrypoints for the live display, one-shot dumps and diagnostics."""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from importlib import metadata
from pathlib import Path
from typing import Any, Callable

from hwglance_core import (
    AppConfig,
    DiagnosticsExporter,
    FrameBuilder,
    RefreshScheduler,
    RenderTargetUnavailable,
    SampleCollector,
    build_doctor_payload,
    load_config,
    normalize_config,
    sample_tick_summary,
)
from hwglance_core.logging_setup import configure_logging, get_logger, install_crash_hooks
from hwglance_probes import CATEGORY_ORDER, DiscoveryFailure, ProbeRegistry, default_sources
from hwglance_renderer import PlainRenderer, select_renderer

EXIT_OK = 0
EXIT_NO_PROBES = 2
EXIT_RENDER_UNAVAILABLE = 3


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def _installed_version() -> str:
    try:
        return metadata.version("hwglance")
    except Exception:
        return "0.1.0"


def _categories(text: str) -> list[str]:
    cats = [c.strip().lower() for c in text.split(",") if c.strip()]
    unknown = [c for c in cats if c not in CATEGORY_ORDER]
    if unknown:
        raise argparse.ArgumentTypeError(f"unknown categories: {', '.join(unknown)}")
    return cats


def _load(args: argparse.Namespace) -> AppConfig:
    path = Path(args.config).expanduser() if getattr(args, "config", None) else None
    cfg = load_config(path)
    if getattr(args, "interval_ms", None) is not None:
        cfg.refresh.interval_ms = args.interval_ms
    if getattr(args, "timeout_ms", None) is not None:
        cfg.refresh.tick_timeout_ms = args.timeout_ms
    if getattr(args, "categories", None):
        cfg.sensors.enabled_categories = list(args.categories)
    return normalize_config(cfg)


def _discover(cfg: AppConfig) -> ProbeRegistry:
    sources = default_sources(cfg.sensors.sysfs_root, nvml=cfg.sensors.nvml)
    registry = ProbeRegistry(sources, enabled_categories=cfg.sensors.enabled_categories)
    registry.discover()
    return registry


def _install_signal_handlers(stop: Callable[[], None]) -> dict[int, Any]:
    if threading.current_thread() is not threading.main_thread():
        return {}
    previous: dict[int, Any] = {}

    def _handler(signum, _frame) -> None:
        get_logger().info("signal %s received, stopping", signum, extra={"event": "signal_stop"})
        stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, _handler)
    return previous


def _restore_signal_handlers(previous: dict[int, Any]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


def _refresh(cfg: AppConfig, registry: ProbeRegistry, sinks, rescan: bool = True) -> RefreshScheduler:
    collector = SampleCollector(
        registry,
        timeout_ms=cfg.refresh.tick_timeout_ms,
        max_workers=cfg.refresh.max_workers,
    )
    builder = FrameBuilder(placeholder=cfg.display.placeholder, stale_glyph=cfg.display.stale_glyph)
    return RefreshScheduler(
        registry,
        collector,
        builder,
        sinks=sinks,
        interval_ms=cfg.refresh.interval_ms,
        limits=cfg.normalizer_limits(),
        rescan_interval_s=cfg.refresh.rescan_interval_s if rescan else 0.0,
    )


def _display(cfg: AppConfig, sink_factory: Callable[[], Any], max_ticks: int | None, rescan: bool) -> int:
    logger = get_logger()
    registry = _discover(cfg)
    try:
        registry.require_probes()
    except DiscoveryFailure as exc:
        logger.error("%s", exc, extra={"event": "discovery_failure"})
        print(f"hwglance: {exc}", file=sys.stderr)
        registry.close()
        return EXIT_NO_PROBES

    try:
        sink = sink_factory()
    except RenderTargetUnavailable as exc:
        logger.error("render target unavailable: %s", exc, extra={"event": "render_target_unavailable"})
        registry.close()
        return EXIT_RENDER_UNAVAILABLE

    scheduler = _refresh(cfg, registry, [sink], rescan=rescan)
    previous = _install_signal_handlers(scheduler.stop)
    try:
        scheduler.run(max_ticks=max_ticks)
    except RenderTargetUnavailable:
        return EXIT_RENDER_UNAVAILABLE
    finally:
        _restore_signal_handlers(previous)
        registry.close()
    return EXIT_OK


def cmd_run(args: argparse.Namespace, cfg: AppConfig) -> int:
    install_crash_hooks()
    return _display(
        cfg,
        lambda: select_renderer(
            sys.stdout,
            plain=args.plain,
            thresholds=cfg.temperature_thresholds(),
            color=cfg.display.color,
        ),
        max_ticks=args.ticks,
        rescan=True,
    )


def cmd_once(_args: argparse.Namespace, cfg: AppConfig) -> int:
    def _plain() -> PlainRenderer:
        if sys.stdout is None or sys.stdout.closed:
            raise RenderTargetUnavailable("no writable output stream")
        return PlainRenderer(sys.stdout, separator=False)

    return _display(cfg, _plain, max_ticks=1, rescan=False)


def cmd_list_probes(_args: argparse.Namespace, cfg: AppConfig) -> int:
    registry = _discover(cfg)
    try:
        _print_json(registry.describe())
    finally:
        registry.close()
    return EXIT_OK


def cmd_doctor(args: argparse.Namespace, cfg: AppConfig) -> int:
    registry = _discover(cfg)
    try:
        payload = build_doctor_payload(cfg, registry)
        # One unrendered refresh shows which probes time out or fail right now.
        scheduler = _refresh(cfg, registry, [], rescan=False)
        scheduler.run(max_ticks=1)
        payload["sample_tick"] = sample_tick_summary(scheduler)
        events = scheduler.recent_events()
    finally:
        registry.close()
    payload["version"] = _installed_version()

    if args.export:
        out_dir = Path(args.out_dir).expanduser().resolve() if args.out_dir else None
        bundle = DiagnosticsExporter().bundle(cfg=cfg, doctor_payload=payload, recent_events=events, output_dir=out_dir)
        payload["diagnostics_bundle"] = str(bundle)

    _print_json(payload)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hwglance", description="Live hardware telemetry in the terminal")
    sub = parser.add_subparsers(dest="command", required=True)

    def _common(cmd: argparse.ArgumentParser) -> None:
        cmd.add_argument("--config", default=None, help="Path to config.json (defaults to the per-user config)")
        cmd.add_argument("--categories", type=_categories, default=None, help="Comma-separated categories to show")

    run_cmd = sub.add_parser("run", help="Live, in-place telemetry display")
    _common(run_cmd)
    run_cmd.add_argument("--interval-ms", type=int, default=None, help="Refresh interval")
    run_cmd.add_argument("--timeout-ms", type=int, default=None, help="Per-tick probe deadline")
    run_cmd.add_argument("--plain", action="store_true", help="Line-oriented output instead of in-place redraw")
    run_cmd.add_argument("--ticks", type=int, default=None, help=argparse.SUPPRESS)
    run_cmd.set_defaults(func=cmd_run)

    once_cmd = sub.add_parser("once", help="Print a single frame and exit")
    _common(once_cmd)
    once_cmd.add_argument("--timeout-ms", type=int, default=None, help="Probe deadline")
    once_cmd.set_defaults(func=cmd_once)

    list_cmd = sub.add_parser("list-probes", help="List discovered sensors as JSON")
    _common(list_cmd)
    list_cmd.set_defaults(func=cmd_list_probes)

    doctor_cmd = sub.add_parser("doctor", help="Print diagnostics and discovery results")
    _common(doctor_cmd)
    doctor_cmd.add_argument("--export", action="store_true", help="Export offline diagnostics bundle")
    doctor_cmd.add_argument("--out-dir", default=None, help="Optional output directory for diagnostics bundle")
    doctor_cmd.set_defaults(func=cmd_doctor)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    cfg = _load(args)
    configure_logging(
        keep_files=cfg.diagnostics.keep_log_files,
        console=False,
        level=logging.DEBUG if cfg.diagnostics.debug else logging.INFO,
    )
    return int(args.func(args, cfg))


if __name__ == "__main__":
    raise SystemExit(main())

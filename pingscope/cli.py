# Copyright 2025 icecake0141
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# This file was created or modified with the assistance of an AI (Large Language Model).
# Review for correctness and security.

"""
Command-line interface for PingScope.

This module contains the main entry point and command-line argument handling.
"""

import argparse
import contextlib
import logging
import os
import signal
import sys
from typing import Any, Callable, Dict, Generator, List, Optional, Sequence

from pingscope.config import (
    COLOR_MODES,
    GRAPH_MODES,
    RunConfig,
    detect_color,
    detect_utf8,
    load_config,
    resolve_percentile,
)
from pingscope.hosts import read_host_file
from pingscope.icmp_engine import IcmpProbeEngine
from pingscope.input_keys import read_key, terminal_cbreak_mode
from pingscope.probe_engine import ProbeEngine, ProbeEngineError
from pingscope.qos import QOS_HELP, parse_qos
from pingscope.scheduler import Scheduler, StopFlag
from pingscope.stats import TargetContext
from pingscope.ui_render import LogRegionHandler, PlainRenderer, TerminalRenderer

logger = logging.getLogger(__name__)


def _configure_logging(log_level: str, log_file: Optional[str]) -> None:
    """Configure logging handlers for CLI execution."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.insert(0, logging.FileHandler(os.path.expanduser(log_file), encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(message)s",
        handlers=handlers,
        force=True,
    )


# Hardcoded defaults for config-overridable fields.
# Applied after config merging for any field still set to None.
_HARDCODED_DEFAULTS: Dict[str, Any] = {
    "interval": 1.0,
    "ttl": 64,
    "qos": "0",
    "timeout": 1.0,
    "exit_threshold": 100.0,
    "color": "auto",
    "graph": "sparkline",
    "log_level": "INFO",
}


def _apply_config_to_args(args: argparse.Namespace, config: Dict[str, Any]) -> None:
    """
    Overlay config file values onto a parsed argument namespace.

    Only fields that are still ``None`` (i.e. not explicitly set on the CLI)
    are updated.  Config-supplied ``hosts`` are applied only when the user has
    not provided any hosts on the CLI and has not used ``-f``.

    Args:
        args: Namespace returned by ``argparse.ArgumentParser.parse_args()``.
        config: Dictionary of values loaded from the config file.
    """
    for key, value in config.items():
        if key == "hosts":
            if not getattr(args, "hosts", None) and not getattr(args, "input", None):
                args.hosts = value
        elif hasattr(args, key) and getattr(args, key) is None:
            setattr(args, key, value)


def build_run_config(args: argparse.Namespace) -> RunConfig:
    """
    Derive the immutable run configuration from merged arguments.

    Raises:
        ValueError: If any setting is out of range
    """
    if args.color not in COLOR_MODES:
        raise ValueError(f"Invalid color mode {args.color!r}: use one of {', '.join(COLOR_MODES)}.")
    return RunConfig(
        interval=float(args.interval),
        count=args.count,
        percentile=resolve_percentile(args.percentile, args.count),
        exit_threshold=float(args.exit_threshold) / 100.0,
        ttl=int(args.ttl),
        qos=parse_qos(str(args.qos)),
        timeout=float(args.timeout),
        address_family=args.address_family,
        source_address=args.source_address,
        device=args.device,
        use_color=detect_color(args.color),
        use_utf8=detect_utf8(args.utf8),
        graph_mode=args.graph,
    )


def handle_options(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse and validate command-line arguments."""
    parser = argparse.ArgumentParser(
        description="PingScope - Monitor the latency of one or more hosts with live graphs and percentiles",
        epilog="Sending ICMP echo requests requires root privileges or the cap_net_raw capability.",
    )
    family = parser.add_mutually_exclusive_group()
    family.add_argument(
        "-4",
        dest="address_family",
        action="store_const",
        const="ipv4",
        default=None,
        help="Use IPv4 only",
    )
    family.add_argument(
        "-6",
        dest="address_family",
        action="store_const",
        const="ipv6",
        default=None,
        help="Use IPv6 only",
    )
    parser.add_argument(
        "-c",
        "--count",
        type=int,
        default=None,
        help="Number of rounds to send (default: run until interrupted)",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=float,
        default=None,
        help="Interval in seconds between rounds (default: 1.0, minimum: 0.001)",
    )
    parser.add_argument(
        "-t",
        "--ttl",
        type=int,
        default=None,
        help="Time to live / hop limit of outgoing packets (default: 64)",
    )
    parser.add_argument(
        "-Q",
        "--qos",
        type=str,
        default=None,
        help='QoS (DiffServ / TOS) byte of outgoing packets; "-Q help" lists the accepted values',
    )
    parser.add_argument(
        "-I",
        "--source",
        dest="source_address",
        type=str,
        default=None,
        help="Source address of outgoing packets",
    )
    parser.add_argument(
        "-D",
        "--device",
        type=str,
        default=None,
        help="Network interface to send on",
    )
    parser.add_argument(
        "-f",
        "--input",
        type=str,
        default=None,
        help="File with one host per line ('-' reads standard input)",
    )
    utf8 = parser.add_mutually_exclusive_group()
    utf8.add_argument(
        "-u",
        dest="utf8",
        action="store_const",
        const=True,
        default=None,
        help="Force UTF-8 graph glyphs",
    )
    utf8.add_argument(
        "-U",
        dest="utf8",
        action="store_const",
        const=False,
        default=None,
        help="Disable UTF-8 graph glyphs",
    )
    parser.add_argument(
        "-P",
        "--percentile",
        type=float,
        default=None,
        help="Percentile to report (default: 95, or the second-slowest probe for counts below 20)",
    )
    parser.add_argument(
        "-Z",
        "--exit-threshold",
        dest="exit_threshold",
        type=float,
        default=None,
        help="Exit status counts hosts whose loss exceeds this percentage (default: 100)",
    )
    parser.add_argument(
        "-W",
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for the replies of a round (default: 1.0)",
    )
    parser.add_argument(
        "--color",
        type=str,
        default=None,
        choices=list(COLOR_MODES),
        help="Color output: auto, always or never (default: auto)",
    )
    parser.add_argument(
        "-g",
        "--graph",
        type=str,
        default=None,
        choices=list(GRAPH_MODES),
        help="Graph drawn in each panel (default: sparkline)",
    )
    parser.add_argument(
        "--plain",
        action="store_true",
        default=False,
        help="Print reply lines only, even on a terminal",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Optional log file path for persistent logging",
    )
    parser.add_argument(
        "--no-config",
        action="store_true",
        default=False,
        help="Skip loading ~/.pingscope.conf config file",
    )
    parser.add_argument("hosts", nargs="*", help="Hosts to monitor (IP addresses or hostnames)")

    args = parser.parse_args(argv)

    if args.qos is not None and args.qos.strip().lower() == "help":
        print(QOS_HELP)
        parser.exit(0)

    # Load and apply config file unless --no-config was given
    if not args.no_config:
        try:
            config = load_config()
            _apply_config_to_args(args, config)
        except (ValueError, ImportError) as exc:
            parser.error(str(exc))

    # Apply hardcoded defaults for any config-overridable field still at None
    for field, default in _HARDCODED_DEFAULTS.items():
        if getattr(args, field, None) is None:
            setattr(args, field, default)

    if args.graph not in GRAPH_MODES:
        parser.error(f"--graph must be one of {', '.join(GRAPH_MODES)}.")
    if not 0.0 <= args.exit_threshold <= 100.0:
        parser.error("-Z/--exit-threshold must be a percentage between 0 and 100.")
    try:
        args.run_config = build_run_config(args)
    except ValueError as exc:
        parser.error(str(exc))
    return args


def collect_hosts(args: argparse.Namespace) -> List[str]:
    """
    Gather target names: the host file first, then positional hosts.

    Raises:
        OSError: If the host file cannot be read
    """
    hosts: List[str] = []
    if args.input:
        hosts.extend(read_host_file(args.input))
    hosts.extend(args.hosts or [])
    return hosts


def register_targets(engine: ProbeEngine, hosts: Sequence[str], config: RunConfig) -> List[TargetContext]:
    """
    Add every host to the engine, skipping the ones it rejects.

    Returns:
        One context per accepted host, indexed contiguously
    """
    contexts: List[TargetContext] = []
    for host in hosts:
        try:
            address = engine.add_target(host)
        except ProbeEngineError as exc:
            logger.warning("Adding host '%s' failed: %s", host, exc)
            continue
        contexts.append(TargetContext(len(contexts), host, address, config.interval))
    return contexts


@contextlib.contextmanager
def _signal_handlers(stop_event: StopFlag, renderer: PlainRenderer) -> Generator[None, None, None]:
    """Route interrupt and resize signals to flags for the duration of the run."""

    def _on_stop(_signum, _frame) -> None:
        stop_event.set()

    def _on_resize(_signum, _frame) -> None:
        renderer.request_resize()

    handlers: Dict[int, Callable] = {signal.SIGINT: _on_stop, signal.SIGTERM: _on_stop}
    if hasattr(signal, "SIGWINCH"):
        handlers[signal.SIGWINCH] = _on_resize

    previous = {signum: signal.signal(signum, handler) for signum, handler in handlers.items()}
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


@contextlib.contextmanager
def _log_region(renderer: PlainRenderer) -> Generator[None, None, None]:
    """Send console log records into the renderer's log region instead of the terminal."""
    root = logging.getLogger()
    console_handlers = [
        handler
        for handler in root.handlers
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler)
    ]
    region_handler = LogRegionHandler(renderer)
    region_handler.setFormatter(logging.Formatter("%(message)s"))
    for handler in console_handlers:
        root.removeHandler(handler)
    root.addHandler(region_handler)
    try:
        yield
    finally:
        root.removeHandler(region_handler)
        for handler in console_handlers:
            root.addHandler(handler)


def run(args: argparse.Namespace, engine_factory: Callable[[RunConfig], ProbeEngine] = IcmpProbeEngine) -> int:
    """
    Run the PingScope monitor with parsed arguments.

    Returns:
        Process exit status
    """
    _configure_logging(getattr(args, "log_level", "INFO"), getattr(args, "log_file", None))
    config: RunConfig = args.run_config

    try:
        hosts = collect_hosts(args)
    except OSError as exc:
        logger.error("Reading host file '%s' failed: %s", args.input, exc)
        return 1

    try:
        engine = engine_factory(config)
    except ProbeEngineError as exc:
        logger.error("Cannot start probe engine: %s", exc)
        return 1

    with engine:
        contexts = register_targets(engine, hosts, config)
        if not contexts:
            logger.error("No valid hosts left.")
            return 1

        use_tui = not args.plain and sys.stdout.isatty()
        renderer = TerminalRenderer(config) if use_tui else PlainRenderer(config)
        stop_event = StopFlag()
        scheduler = Scheduler(
            config,
            engine,
            contexts,
            renderer,
            stop_event=stop_event,
            key_reader=read_key if use_tui else None,
        )
        logger.debug(
            "Monitoring %d host(s): interval=%ss, count=%s, percentile=%s.",
            len(contexts),
            config.interval,
            "infinite" if config.unbounded else config.count,
            config.percentile,
        )

        try:
            with contextlib.ExitStack() as stack:
                stack.enter_context(_signal_handlers(stop_event, renderer))
                if use_tui:
                    stack.enter_context(_log_region(renderer))
                    if sys.stdin.isatty():
                        stack.enter_context(terminal_cbreak_mode())
                return scheduler.run()
        except ProbeEngineError as exc:
            logger.error("Probe engine failure: %s", exc)
            return 1


def main() -> None:
    """Main entrypoint for the CLI - parses arguments and runs the application."""
    args = handle_options()
    sys.exit(run(args))

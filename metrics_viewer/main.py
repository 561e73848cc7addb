"""Command line entry point for the metrics viewer."""
import argparse
import logging
import signal
import sys
import threading

from metrics_viewer.config import Config, config_from_args, read_config_file
from metrics_viewer.engine import Poller, run_poller_thread
from metrics_viewer.errors import ConfigurationError
from metrics_viewer.formatter import format_snapshot, summarize
from metrics_viewer.self_metrics import SelfMetrics
from metrics_viewer.series import EventKind
from metrics_viewer.sources import build_source
from metrics_viewer.view_api import ViewAPI

logger = logging.getLogger(__name__)


def setup_logging(log_level: str, log_format: str = "text"):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    # JSON output would need python-json-logger; both formats share one layout
    fmt = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    logging.basicConfig(
        level=level,
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr
    )

    # Reduce noise from some libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="metrics-viewer",
        description="Metrics Viewer - poll, aggregate and view OpenMetrics text"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", "-c", help="Path to configuration YAML file")
    common.add_argument("--file", help="log file with the open metrics format")
    common.add_argument("--url", help="url endpoint to use to get metrics")
    common.add_argument("--user", help="username for url requiring authentication")
    common.add_argument("--password", help="password for url requiring authentication")
    common.add_argument(
        "--remote",
        action="store_true",
        default=None,
        help="call the management API to get the metrics"
    )
    common.add_argument("--remote-url", help="base url of the management API (with --remote)")
    common.add_argument("--token", help="access token for the management API")
    common.add_argument("--interval", type=int, help="scraping interval in seconds (default 5)")
    common.add_argument("--filter", help="regular expression to use for filtering the metrics")
    common.add_argument(
        "--aggregate-ignore-labels",
        help="comma delimited list of labels to ignore when aggregating metrics. "
             "Use 'ALL' or 'NONE' to ignore all or none of the labels (default start,end,status)"
    )
    common.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR")

    subparsers.add_parser("print", parents=[common], help="fetch once and print the aggregated metrics")
    subparsers.add_parser("watch", parents=[common], help="poll and print a summary per cycle")
    serve = subparsers.add_parser("serve", parents=[common], help="poll and serve the view API")
    serve.add_argument("--port", type=int, help="view API port (default 8081)")

    return parser


def load(args) -> Config:
    base = read_config_file(args.config) if args.config else None
    return config_from_args(args, base)


def create_poller(config: Config) -> Poller:
    viewer = config.viewer
    source = build_source(viewer.source, timeout=float(viewer.interval_s))
    return Poller(
        source,
        viewer.interval_s,
        name_filter=viewer.name_filter(),
        ignore=viewer.ignore_set(),
        self_metrics=SelfMetrics(),
        events_buffer=config.api.events_buffer
    )


def cmd_print(poller: Poller) -> int:
    snapshot = poller.run_once()
    if snapshot is None:
        error = poller.last_error
        print(f"Error: {error.message if error else 'no snapshot'}", file=sys.stderr)
        return 1
    sys.stdout.write(format_snapshot(snapshot))
    for warning in snapshot.warnings:
        logger.warning(f"Skipped {warning}")
    return 0


def cmd_watch(poller: Poller) -> int:
    def on_snapshot(snapshot):
        print(summarize(snapshot), flush=True)

    def on_event(event):
        if event.kind is EventKind.FETCH_ERROR:
            print(f"cycle {event.cycle}: error: {event.message}", file=sys.stderr, flush=True)

    poller.subscribe(on_snapshot=on_snapshot, on_event=on_event)
    poller.run()
    return 0


def cmd_serve(poller: Poller, config: Config) -> int:
    view_api = ViewAPI(poller)

    poller_thread = threading.Thread(
        target=run_poller_thread,
        args=(poller,),
        daemon=True
    )
    poller_thread.start()
    logger.info("Poller started")

    logger.info(f"Starting view API on port {config.api.port}")
    try:
        view_api.run(host=config.api.host, port=config.api.port)
    except Exception as e:
        logger.error(f"View API error: {e}", exc_info=True)
        return 1
    finally:
        poller.stop()
    return 0


def main(argv=None) -> int:
    """Main function."""
    args = build_parser().parse_args(argv)

    try:
        config = load(args)
    except ConfigurationError as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 2

    setup_logging(config.logging.level, config.logging.format)
    logger.info(f"Configuration: {config.viewer}")

    poller = create_poller(config)

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        poller.stop()

    if args.command == "watch":
        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    try:
        if args.command == "print":
            return cmd_print(poller)
        if args.command == "watch":
            return cmd_watch(poller)
        return cmd_serve(poller, config)
    finally:
        poller.source.close()


if __name__ == "__main__":
    sys.exit(main())

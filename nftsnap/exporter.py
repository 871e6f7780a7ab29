#!/usr/bin/env python3
"""
nftsnap exporter - nftables metrics for Prometheus

Serves the live nftables state on /metrics. Every scrape reads the kernel
ruleset again through netlink; nothing is cached between scrapes.

Exported families:
- nftables_table_metadata, nftables_chain_metadata, nftables_set_metadata
- nftables_chain_rule_count, nftables_set_size
- nftables_rule_packet_count / nftables_rule_byte_count (rules with a
  comment and a counter)
- nftables_counter_packet_count / nftables_counter_byte_count (named counters)
- nftables_collection_failures, nftables_ineligible_{rules,counters,sets}

Usage:
    sudo nftsnap-exporter --http-addr :9630
    sudo nftsnap-exporter --rule-comments 'export:.*' --set-names 'blocklist_.*'
"""

import argparse
import logging
import re
import signal
import socket
import sys
import threading
from typing import Callable, Iterable, Tuple
from wsgiref.simple_server import WSGIRequestHandler, make_server

from prometheus_client import REGISTRY, make_wsgi_app
from prometheus_client.exposition import ThreadingWSGIServer

from . import __version__
from .collector import Filter, NFTConn, new_collector

logger = logging.getLogger(__name__)

DEFAULT_FILTER = '.*'
DEFAULT_HTTP_ADDR = 'localhost:0'
METRICS_PATH = '/metrics'


class _ThreadingWSGIServer(ThreadingWSGIServer):
    """Serves each scrape in its own thread; server_close() waits for them."""
    daemon_threads = False
    block_on_close = True


class _ThreadingWSGIServerV6(_ThreadingWSGIServer):
    address_family = socket.AF_INET6


class _LoggingHandler(WSGIRequestHandler):
    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)


def compile_filter(pattern: str, option: str) -> Filter:
    """
    Compile a fully anchored filter. Partial matches never pass.

    Raises ValueError naming the command line option on a bad pattern.
    """
    try:
        regex = re.compile(f'(?:{pattern})')
    except re.error as e:
        raise ValueError(f"invalid --{option}: {e}") from e
    return lambda s: regex.fullmatch(s) is not None


def parse_http_addr(addr: str) -> Tuple[str, int]:
    """Split "host:port" (or "[v6]:port", or ":port") into its parts."""
    host, sep, port = addr.rpartition(':')
    if not sep:
        raise ValueError(f"invalid --http-addr {addr!r}: missing port")
    try:
        port_num = int(port)
    except ValueError:
        raise ValueError(f"invalid --http-addr {addr!r}: bad port {port!r}") from None
    if host.startswith('[') and host.endswith(']'):
        host = host[1:-1]
    return host, port_num


def make_app(registry=REGISTRY):
    """WSGI app: metrics on /metrics, everything else redirects there."""
    metrics_app = make_wsgi_app(registry)

    def app(environ, start_response):
        if environ.get('PATH_INFO', '/') == METRICS_PATH:
            return metrics_app(environ, start_response)
        start_response('302 Found', [
            ('Location', METRICS_PATH),
            ('Content-Type', 'text/plain; charset=utf-8'),
        ])
        return [b'Found. Redirecting to /metrics\n']

    return app


def stop_server_on_signal(server, signals: Iterable[int]) -> Callable[[], None]:
    """
    Install handlers that stop the HTTP server.

    The first signal calls server.shutdown() from a helper thread, so
    serve_forever() returns once in-flight requests are done. A second
    signal forces the process to exit. Returns a function restoring the
    previous handlers.
    """
    received = []

    def handler(signum, frame):  # @UnusedVariable
        received.append(signum)
        name = signal.Signals(signum).name
        if len(received) == 1:
            logger.info("Received %s, shutting down...", name)
            threading.Thread(target=server.shutdown, name='http-shutdown', daemon=True).start()
        else:
            logger.warning("Received %s again, exiting immediately", name)
            raise SystemExit(1)

    previous = {sig: signal.signal(sig, handler) for sig in signals}

    def restore():
        for sig, prev in previous.items():
            signal.signal(sig, prev)

    return restore


def start_collector_server(conn: NFTConn, rule_comment_filter: str, counter_name_filter: str,
                           set_name_filter: str, http_addr: str, registry=REGISTRY,
                           signals: Iterable[int] = (signal.SIGINT, signal.SIGTERM)):
    """
    Register a collector for conn and bind the HTTP server.

    Returns (server, cleanup). Call server.serve_forever() to start serving
    and cleanup() once it has returned.
    """
    rule_filter = compile_filter(rule_comment_filter, 'rule-comments')
    counter_filter = compile_filter(counter_name_filter, 'counter-names')
    set_filter = compile_filter(set_name_filter, 'set-names')

    collector, _ = new_collector(conn, rule_filter, counter_filter, set_filter)
    registry.register(collector)

    def unregister():
        registry.unregister(collector)

    try:
        host, port = parse_http_addr(http_addr)
        server_class = _ThreadingWSGIServerV6 if ':' in host else _ThreadingWSGIServer
        server = make_server(host, port, make_app(registry),
                             server_class=server_class, handler_class=_LoggingHandler)
    except Exception:
        unregister()
        raise

    restore_signals = stop_server_on_signal(server, signals)

    def cleanup():
        restore_signals()
        server.server_close()
        unregister()

    return server, cleanup


def setup_logging(standalone: bool = False, level: str = 'INFO') -> None:
    """
    Standalone mode logs to stderr with timestamps. Otherwise logs go to
    stdout without them, for a supervisor (systemd, docker) that adds its own.
    """
    if standalone:
        stream = sys.stderr
        fmt = '%(asctime)s %(levelname)s %(name)s: %(message)s'
    else:
        stream = sys.stdout
        fmt = '%(levelname)s %(name)s: %(message)s'
    logging.basicConfig(stream=stream, format=fmt, level=level.upper(), force=True)


def run(args: argparse.Namespace) -> int:
    """Open netlink, start everything and serve until a signal arrives."""
    from .nft_info import NFTablesQuery

    setup_logging(args.standalone_log, args.log_level)

    with NFTablesQuery() as conn:
        try:
            conn.list_tables()
        except Exception as e:
            raise RuntimeError(f"unable to access NF tables: {e}") from e

        server, cleanup = start_collector_server(
            conn, args.rule_comments, args.counter_names, args.set_names, args.http_addr)
        try:
            host, port = server.server_address[:2]
            logger.info("Listening for HTTP connections on %r...", f"{host}:{port}")
            server.serve_forever()
        finally:
            cleanup()

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='nftsnap-exporter',
        description='nftables metrics exporter for Prometheus',
        epilog='Note: Run with sudo/root (CAP_NET_ADMIN) to read the ruleset',
    )
    parser.add_argument('--version', '-v', action='version',
                        version=f'nftsnap-exporter {__version__}')
    parser.add_argument('--rule-comments', default=DEFAULT_FILTER,
                        help='Regular expression of comments of rules to include (fully anchored).')
    parser.add_argument('--counter-names', default=DEFAULT_FILTER,
                        help='Regular expression of names of counters to include (fully anchored).')
    parser.add_argument('--set-names', default=DEFAULT_FILTER,
                        help='Regular expression of names of sets to include (fully anchored).')
    parser.add_argument('--http-addr', default=DEFAULT_HTTP_ADDR,
                        help='TCP address to listen for HTTP connections on.')
    parser.add_argument('--standalone-log', action='store_true',
                        help='Log to stderr, with time prefix.')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        type=str.upper,
                        help='Logging level (default: INFO)')
    return parser


def main() -> int:
    """Main entry point"""
    args = build_parser().parse_args()

    try:
        return run(args)
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())

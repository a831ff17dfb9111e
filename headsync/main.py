"""
headsync: keeps local stores synced with Ethereum nodes.

Entry point for the process. Initializes all subsystems:
  1. Parse CLI arguments / config file
  2. Build a node client and a store per syncer
  3. Start the read-only JSON-RPC status server
  4. Run every sync loop until shutdown
  5. Handle graceful shutdown
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from headsync.common.config import (
    DEFAULT_INTERVAL,
    DEFAULT_POOL_SIZE,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RPC_URL,
    DEFAULT_TABLE,
    SyncerConfig,
    load_config_file,
)
from headsync.common.errors import ConfigError, StorageError
from headsync.node.client import NodeClient
from headsync.node.rpc_client import RPCNodeClient
from headsync.rpc.server import RPCServer
from headsync.rpc.sync_api import register_sync_api
from headsync.storage.memory_backend import MemoryStore
from headsync.storage.sqlite_backend import SQLiteStore
from headsync.storage.store import Store
from headsync.sync.observer import LoggingObserver, MetricsObserver, ObserverGroup
from headsync.sync.scheduler import SchedulerLoop, run_syncers
from headsync.sync.syncer import Syncer


logger = logging.getLogger("headsync")


def build_store(config: SyncerConfig) -> Store:
    if config.db_path == ":memory:":
        return MemoryStore()
    return SQLiteStore(config.db_path, table=config.table, pool_size=config.pool_size)


def build_node_client(config: SyncerConfig) -> NodeClient:
    return RPCNodeClient(
        config.rpc_url,
        confirmations=config.confirmations,
        timeout=config.request_timeout,
    )


# ---------------------------------------------------------------------------
# Node class
# ---------------------------------------------------------------------------

class HeadSyncNode:
    """Runs one sync loop per configured syncer, plus the status server."""

    def __init__(
        self,
        configs: list[SyncerConfig],
        rpc_host: str = "127.0.0.1",
        rpc_port: int = 0,
    ) -> None:
        if not configs:
            raise ConfigError("no syncer configured")
        for config in configs:
            config.validate()

        self.configs = configs
        self.rpc_host = rpc_host
        self.rpc_port = rpc_port
        self.stop_event = asyncio.Event()
        self.metrics = MetricsObserver()
        observer = ObserverGroup(LoggingObserver(), self.metrics)

        self.loops: list[SchedulerLoop] = []
        for config in configs:
            syncer = Syncer(
                config.name,
                node=build_node_client(config),
                store=build_store(config),
                observer=observer,
            )
            self.loops.append(SchedulerLoop(
                syncer,
                config.interval,
                start_height=config.start_height,
                stop_event=self.stop_event,
            ))

        # RPC server
        self.rpc = RPCServer()
        register_sync_api(self.rpc, self.loops, self.metrics)
        self._rpc_server = None
        self._rpc_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Start the status server, if enabled."""
        logger.info("Starting headsync with %d syncer(s)", len(self.loops))
        for config in self.configs:
            logger.info(
                "  %s: %s -> %s:%s every %.1fs",
                config.name, config.rpc_url, config.db_path, config.table, config.interval,
            )

        if self.rpc_port:
            import uvicorn
            config = uvicorn.Config(
                self.rpc.app,
                host=self.rpc_host,
                port=self.rpc_port,
                log_level="warning",
                loop="asyncio",
            )
            self._rpc_server = uvicorn.Server(config)
            self._rpc_server.config.setup_event_loop = lambda: None
            self._rpc_task = asyncio.create_task(self._rpc_server.serve())
            logger.info("  RPC: %s:%d", self.rpc_host, self.rpc_port)

    async def run(self, max_ticks: Optional[int] = None) -> None:
        await run_syncers(self.loops, max_ticks=max_ticks)

    def stop(self) -> None:
        if not self.stop_event.is_set():
            logger.info("Shutting down...")
        self.stop_event.set()

    async def close(self) -> None:
        """Stop the status server and release node clients and stores."""
        if self._rpc_server is not None:
            self._rpc_server.should_exit = True
            if self._rpc_task is not None:
                await self._rpc_task
        for loop in self.loops:
            await loop.syncer.node.aclose()
            loop.syncer.store.close()
        logger.info("Stopped")

    async def run_until_stopped(self, once: bool = False) -> None:
        """Run until a shutdown signal is received (or one pass each, with once=True)."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.stop)

        try:
            await self.start()
            await self.run(max_ticks=1 if once else None)
        finally:
            self.stop()
            await self.close()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="headsync",
        description="Keep a local store synced with an Ethereum node head",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON file describing one or more syncers (overrides single-syncer flags)",
    )
    parser.add_argument("--name", type=str, default="node", help="Syncer name used in logs (default: node)")
    parser.add_argument(
        "--rpc-url",
        type=str,
        default=DEFAULT_RPC_URL,
        help=f"Node JSON-RPC endpoint (default: {DEFAULT_RPC_URL})",
    )
    parser.add_argument(
        "--db",
        type=str,
        default=":memory:",
        help="SQLite database path, or :memory: (default: :memory:)",
    )
    parser.add_argument(
        "--table",
        type=str,
        default=DEFAULT_TABLE,
        help=f"Entries table name (default: {DEFAULT_TABLE})",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=DEFAULT_INTERVAL,
        help=f"Seconds between sync passes (default: {DEFAULT_INTERVAL})",
    )
    parser.add_argument(
        "--from",
        dest="start_height",
        type=int,
        default=None,
        help="Height to start the first pass from (default: resume from the store)",
    )
    parser.add_argument(
        "--confirmations",
        type=int,
        default=0,
        help="Stay this many blocks behind the node head (default: 0)",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=DEFAULT_REQUEST_TIMEOUT,
        help=f"Node request timeout in seconds (default: {DEFAULT_REQUEST_TIMEOUT})",
    )
    parser.add_argument(
        "--pool-size",
        type=int,
        default=DEFAULT_POOL_SIZE,
        help=f"Database connections per store (default: {DEFAULT_POOL_SIZE})",
    )
    parser.add_argument(
        "--rpc-host",
        type=str,
        default="127.0.0.1",
        help="Status JSON-RPC listen host (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--rpc-port",
        type=int,
        default=0,
        help="Status JSON-RPC listen port, 0 disables it (default: 0)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single pass per syncer, then exit",
    )
    return parser


def build_configs(args: argparse.Namespace) -> list[SyncerConfig]:
    """Syncer configs from --config, or from the single-syncer flags."""
    if args.config:
        return load_config_file(args.config)
    config = SyncerConfig(
        name=args.name,
        rpc_url=args.rpc_url,
        db_path=args.db,
        table=args.table,
        interval=args.interval,
        start_height=args.start_height,
        confirmations=args.confirmations,
        request_timeout=args.request_timeout,
        pool_size=args.pool_size,
    )
    return [config.validate()]


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Setup logging
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    if args.log_level != "DEBUG":
        # httpx logs every request at INFO
        logging.getLogger("httpx").setLevel(logging.WARNING)

    try:
        configs = build_configs(args)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(2)

    async def _run() -> None:
        try:
            node = HeadSyncNode(configs, rpc_host=args.rpc_host, rpc_port=args.rpc_port)
        except ConfigError as e:
            logger.error("Invalid configuration: %s", e)
            sys.exit(2)
        except StorageError as e:
            logger.error("Cannot open store: %s", e)
            sys.exit(1)
        await node.run_until_stopped(once=args.once)

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()

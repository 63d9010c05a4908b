#!/usr/bin/env python3
"""
siblingcast launchers

Runs one worker, or a local cluster of identical workers the way a
process manager in cluster mode would.

Usage:
    siblingcast-worker --config cluster.yaml          # One worker, identity from env
    siblingcast-worker --process-id 1 --clustered     # Explicit identity
    siblingcast-cluster --workers 4 --base-port 9100  # Local cluster
"""
import argparse
import os
import signal
import subprocess
import sys
import tempfile
import time
from pathlib import Path
from typing import List, Optional, Tuple

import uvicorn

from .cluster.node import init_cluster_node
from .config.loader import (
    Config,
    ClusterConfig,
    ServerConfig,
    SiblingConfig,
    load_config,
    resolve_identity,
    save_config,
    set_process_identity,
)
from .utils.logging import logger, setup_logging
from .web.app import create_app


def run_worker(args: argparse.Namespace) -> None:
    """Resolve identity, build the node and serve it until interrupted."""
    config = load_config(Path(args.config) if args.config else None)
    setup_logging(
        level=args.log_level or config.logging.level,
        log_file=Path(config.logging.file) if config.logging.file else None,
        console=config.logging.console,
    )

    identity = resolve_identity(overrides={
        "self_id": args.process_id,
        "instance_id": args.instance_id,
        "service_name": args.service_name,
        "clustered": args.clustered,
    })
    set_process_identity(identity)

    node = init_cluster_node(identity=identity, config=config)
    app = create_app(node)

    host = args.host or config.server.host
    port = args.port or config.server.port
    logger.info(f"Worker {identity.self_id} listening on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="warning")


class ClusterLauncher:
    """Launches and manages a local cluster of worker processes."""

    def __init__(self, workers: int, base_port: int, host: str = "127.0.0.1",
                 service_name: str = "siblingcast"):
        self.workers = workers
        self.base_port = base_port
        self.host = host
        self.service_name = service_name
        self.processes: List[Tuple[str, subprocess.Popen]] = []
        self.config_path: Optional[Path] = None
        self.logger = logger.getChild("launcher")

    def write_config(self) -> Path:
        """Write the shared roster for all workers to a temporary file."""
        roster = [
            SiblingConfig(
                process_id=str(i),
                instance_id=str(i),
                url=f"http://{self.host}:{self.base_port + i}",
            )
            for i in range(self.workers)
        ]
        config = Config(
            cluster=ClusterConfig(siblings=roster),
            server=ServerConfig(host=self.host, port=self.base_port),
        )
        fd, path = tempfile.mkstemp(prefix="siblingcast-", suffix=".yaml")
        os.close(fd)
        self.config_path = Path(path)
        save_config(config, self.config_path)
        return self.config_path

    def launch(self) -> None:
        config_path = self.write_config()

        for i in range(self.workers):
            env = dict(os.environ)
            env.update({
                "SIBLINGCAST_PROCESS_ID": str(i),
                "SIBLINGCAST_INSTANCE_ID": str(i),
                "SIBLINGCAST_SERVICE_NAME": self.service_name,
                "SIBLINGCAST_CLUSTERED": "1",
            })
            proc = subprocess.Popen(
                [
                    sys.executable, "-m", "siblingcast.launcher", "worker",
                    "--config", str(config_path),
                    "--port", str(self.base_port + i),
                ],
                env=env,
            )
            self.processes.append((f"worker-{i}", proc))
            self.logger.info(f"Started worker-{i} (PID {proc.pid}) on port {self.base_port + i}")

    def monitor(self) -> None:
        """Block until a worker dies or the launcher is interrupted."""
        try:
            while True:
                for name, proc in self.processes:
                    if proc.poll() is not None:
                        self.logger.warning(f"{name} stopped unexpectedly (exit code: {proc.returncode})")
                        self.cleanup()
                        return
                time.sleep(1)
        except KeyboardInterrupt:
            self.logger.info("Shutdown requested")
            self.cleanup()

    def cleanup(self) -> None:
        """Stop all workers and remove the shared config."""
        for name, proc in self.processes:
            if proc.poll() is None:
                proc.terminate()
                try:
                    proc.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    self.logger.warning(f"Force killing {name}")
                    proc.kill()
                    proc.wait()
        self.processes.clear()

        if self.config_path and self.config_path.exists():
            self.config_path.unlink()
            self.config_path = None


def _add_worker_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="Path to YAML configuration")
    parser.add_argument("--process-id", help="Process id of this worker")
    parser.add_argument("--instance-id", help="Instance id used to order replies")
    parser.add_argument("--service-name", help="Logical service name shared by siblings")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--clustered", dest="clustered", action="store_true", default=None,
                      help="Take part in a sibling cluster")
    mode.add_argument("--standalone", dest="clustered", action="store_false",
                      help="Answer from this worker only")
    parser.add_argument("--host", help="Bind address")
    parser.add_argument("--port", type=int, help="Bind port")
    parser.add_argument("--log-level", help="Logging level")


def worker_main(argv: Optional[List[str]] = None) -> None:
    """Entry point of siblingcast-worker."""
    parser = argparse.ArgumentParser(description="Run one siblingcast worker")
    _add_worker_arguments(parser)
    run_worker(parser.parse_args(argv))


def cluster_main(argv: Optional[List[str]] = None) -> None:
    """Entry point of siblingcast-cluster."""
    parser = argparse.ArgumentParser(description="Run a local cluster of siblingcast workers")
    parser.add_argument("--workers", type=int, default=2, help="Number of workers")
    parser.add_argument("--base-port", type=int, default=9100, help="Port of worker 0")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address of all workers")
    parser.add_argument("--service-name", default="siblingcast", help="Logical service name")
    args = parser.parse_args(argv)

    launcher = ClusterLauncher(args.workers, args.base_port, args.host, args.service_name)

    def signal_handler(sig, frame):
        launcher.cleanup()
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)

    launcher.launch()
    launcher.monitor()


def main(argv: Optional[List[str]] = None) -> None:
    """``python -m siblingcast.launcher {worker,cluster} ...``"""
    argv = list(sys.argv[1:] if argv is None else argv)
    if argv and argv[0] == "cluster":
        cluster_main(argv[1:])
    elif argv and argv[0] == "worker":
        worker_main(argv[1:])
    else:
        worker_main(argv)


if __name__ == "__main__":
    main()

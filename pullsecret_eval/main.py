"""Pull secret memory evaluation - Entry point."""

import json
import logging
import signal
import sys
import threading
from dotenv import load_dotenv

from .analyze import analyze
from .collector import SecretCollector
from .config import load_config
from .errors import EvaluationError
from .metrics import MetricsServer
from .sources import KubernetesSecretSource, get_k8s_api

logger = logging.getLogger("pullsecret-eval")


def print_progress(count):
    print(f"\r{count} secrets collected ", end="", flush=True)


def main():
    """Main entry point for the pull secret evaluation."""
    # Load environment variables from .env file
    load_dotenv()

    try:
        config = load_config()
    except EvaluationError as e:
        logging.basicConfig(format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info(f"Log level set to: {config.log_level}")

    metrics_server = None
    if config.metrics_port:
        metrics_server = MetricsServer(port=config.metrics_port)
        metrics_server.start()

    shutdown = threading.Event()

    # Setup signal handlers for graceful shutdown
    def signal_handler(signum, frame):
        if shutdown.is_set():
            return
        signal_name = 'SIGTERM' if signum == signal.SIGTERM else 'SIGINT'
        logger.info(f"Received {signal_name}, stopping collection...")
        shutdown.set()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    try:
        v1_api = get_k8s_api(config.kubeconfig)
        source = KubernetesSecretSource(v1_api, watch_timeout=config.watch_timeout)
        collector = SecretCollector(
            duplicate_add_fatal=config.duplicate_add_fatal,
            initial_sync_timeout=config.initial_sync_timeout,
            on_progress=print_progress,
        )

        print("Collecting Secrets, Ctrl+C to analyze\n")
        snapshot = collector.run(source, shutdown)

        result = analyze(
            snapshot,
            skip_undecodable=config.skip_undecodable,
            entry_overhead=config.entry_overhead_bytes,
        )
    except EvaluationError as e:
        logger.error(f"Evaluation failed: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        if metrics_server is not None:
            metrics_server.stop()

    print(f"\n\nResult:\n{json.dumps(result.to_dict(), indent=2)}")
    sys.exit(0)


if __name__ == '__main__':
    main()

"""HTTP server exposing Prometheus metrics and a health check."""

import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

logger = logging.getLogger("pullsecret-eval.metrics")


class _MetricsHandler(BaseHTTPRequestHandler):
    registry = REGISTRY

    def do_GET(self):
        path = self.path.split("?", 1)[0]
        if path == "/metrics":
            self._respond(200, CONTENT_TYPE_LATEST, generate_latest(self.registry))
        elif path == "/healthz":
            body = json.dumps({"status": "healthy"}).encode("utf-8")
            self._respond(200, "application/json", body)
        else:
            self._respond(404, "text/plain", b"Not Found")

    def _respond(self, status, content_type, body):
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)


class MetricsServer:
    """Serves /metrics and /healthz on a background thread."""

    def __init__(self, port=8000, addr="0.0.0.0"):
        self.port = port
        self.addr = addr
        self.server = None
        self._thread = None

    def start(self):
        self.server = ThreadingHTTPServer((self.addr, self.port), _MetricsHandler)
        self._thread = threading.Thread(
            target=self.server.serve_forever, name="metrics-server", daemon=True)
        self._thread.start()
        logger.info(f"Prometheus metrics server started on port {self.port}.")

    def stop(self):
        if self.server is None:
            return
        self.server.shutdown()
        self.server.server_close()
        self.server = None

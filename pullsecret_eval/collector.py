"""Collects a consistent snapshot of cluster secrets from a stream of events."""

import logging
import queue
import time
import types
from prometheus_client import Counter, Gauge

from .errors import DuplicateAddError, SyncTimeoutError
from .models import EventKind

logger = logging.getLogger("pullsecret-eval.collector")

# Prometheus metrics
SECRET_EVENTS = Counter(
    'pullsecret_eval_secret_events_total', 'Total number of secret events received', ['kind'])
DUPLICATE_ADDS = Counter(
    'pullsecret_eval_duplicate_adds_total', 'ADDED events for secrets that were already tracked')
ERRORS_TOTAL = Counter('pullsecret_eval_errors_total',
                       'Total number of fatal errors encountered')
SECRETS_TRACKED = Gauge(
    'pullsecret_eval_secrets_tracked', 'Number of secrets currently tracked')


class SecretCollector:
    """
    Maintains a map of secrets keyed by uid from a SecretSource.

    The map is written only from the source's delivery thread. The caller of
    run() never reads it until the source has been unsubscribed and joined.
    """

    def __init__(self, duplicate_add_fatal=False, initial_sync_timeout=60,
                 poll_interval=0.5, on_progress=None):
        self.duplicate_add_fatal = duplicate_add_fatal
        self.initial_sync_timeout = initial_sync_timeout
        self.poll_interval = poll_interval
        self.on_progress = on_progress
        self._secrets = {}
        self._errors = queue.Queue(maxsize=1)

    def run(self, source, shutdown):
        """
        Collect secrets until shutdown is set, then return a read-only snapshot.

        Raises SyncTimeoutError if the initial listing does not finish within
        initial_sync_timeout, or the first fatal error reported while
        collecting. The source is always unsubscribed before returning.
        """
        source.subscribe(self.handle_event, self.report_error)
        try:
            self._wait_for_initial_sync(source, shutdown)
            while not shutdown.is_set():
                try:
                    error = self._errors.get(timeout=self.poll_interval)
                except queue.Empty:
                    continue
                raise error
        finally:
            source.unsubscribe()

        # A callback finished by unsubscribe() may still have reported an error.
        self._raise_pending_error()

        logger.info(f"Collection stopped with {len(self._secrets)} secrets.")
        return types.MappingProxyType(dict(self._secrets))

    def _wait_for_initial_sync(self, source, shutdown):
        logger.info("Waiting for initial sync...")
        deadline = time.monotonic() + self.initial_sync_timeout
        while not source.wait_for_initial_sync(self.poll_interval):
            self._raise_pending_error()
            if shutdown.is_set():
                logger.warning(
                    "Shutdown requested before initial sync completed, snapshot is incomplete.")
                return
            if time.monotonic() >= deadline:
                raise SyncTimeoutError(
                    f"timed out after {self.initial_sync_timeout}s waiting for initial secret sync")
        logger.info("Initial sync complete, watching for changes.")

    def _raise_pending_error(self):
        try:
            error = self._errors.get_nowait()
        except queue.Empty:
            return
        raise error

    def handle_event(self, event):
        """Apply a single event to the map. Called from the delivery thread only."""
        secret = event.secret
        SECRET_EVENTS.labels(kind=event.kind.value).inc()

        if event.kind is EventKind.ADDED:
            if secret.uid in self._secrets:
                error = DuplicateAddError(secret.uid, secret.namespace, secret.name)
                DUPLICATE_ADDS.inc()
                if self.duplicate_add_fatal:
                    self.report_error(error)
                    return
                logger.warning(str(error))
            self._secrets[secret.uid] = secret
        elif event.kind is EventKind.UPDATED:
            self._secrets[secret.uid] = secret
        elif event.kind is EventKind.DELETED:
            self._secrets.pop(secret.uid, None)
        else:
            raise ValueError(f"Unknown event kind: {event.kind}")

        SECRETS_TRACKED.set(len(self._secrets))
        if self.on_progress is not None:
            self.on_progress(len(self._secrets))

    def report_error(self, error):
        """Record a fatal error. Only the first one is kept."""
        ERRORS_TOTAL.inc()
        try:
            self._errors.put_nowait(error)
        except queue.Full:
            logger.debug(f"Dropping error, one is already pending: {error}")

"""Secret events from a live Kubernetes cluster."""

import logging
import threading
from kubernetes import watch
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from ..errors import ConfigError
from ..models import EventKind, Secret, SecretEvent
from .source import SecretSource

logger = logging.getLogger("pullsecret-eval.cluster")

HTTP_GONE = 410

WATCH_EVENT_KINDS = {
    'ADDED': EventKind.ADDED,
    'MODIFIED': EventKind.UPDATED,
    'DELETED': EventKind.DELETED,
}


def get_k8s_api(kubeconfig=None):
    """Initialize and return Kubernetes API client."""
    from kubernetes import client, config

    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster kube config.")
    except config.ConfigException:
        logger.info(
            "Could not load in-cluster config. Falling back to local kube config.")
        try:
            config.load_kube_config(config_file=kubeconfig)
        except (config.ConfigException, OSError) as e:
            raise ConfigError(f"Unable to load kube config: {e}") from e
    return client.CoreV1Api()


class KubernetesSecretSource(SecretSource):
    """
    Lists and then watches secrets in all namespaces on a background thread.

    Events are handed to the subscriber one at a time from that thread. An
    expired resource version triggers a relist, which is reconciled against
    the secrets already reported so the subscriber sees updates and deletes
    rather than repeated adds.
    """

    def __init__(self, v1_api, watch_timeout=10, reconnect_delay=1, join_timeout=None):
        self.v1_api = v1_api
        self.watch_timeout = watch_timeout
        self.reconnect_delay = reconnect_delay
        self.join_timeout = join_timeout if join_timeout is not None else watch_timeout + 5
        self._on_event = None
        self._on_error = None
        self._thread = None
        self._watch = None
        self._known = {}
        self._synced = threading.Event()
        self._stopped = threading.Event()
        self._delivery_lock = threading.Lock()

    def subscribe(self, on_event, on_error):
        if self._thread is not None:
            raise RuntimeError("KubernetesSecretSource is already subscribed")
        self._on_event = on_event
        self._on_error = on_error
        self._thread = threading.Thread(
            target=self._run, name="secret-watch", daemon=True)
        self._thread.start()

    def wait_for_initial_sync(self, timeout):
        return self._synced.wait(timeout)

    def unsubscribe(self):
        # Once the lock is released no callback is running and none will start.
        with self._delivery_lock:
            if self._stopped.is_set() and self._thread is None:
                return
            self._stopped.set()

        w = self._watch
        if w is not None:
            w.stop()

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(self.join_timeout)
            if thread.is_alive():
                logger.warning(
                    "Watch thread still waiting on the API server, leaving it to exit on its own.")
        self._thread = None

    def _run(self):
        try:
            while not self._stopped.is_set():
                resource_version = self._list()
                self._synced.set()
                self._watch_from(resource_version)
        except Exception as e:
            if self._stopped.is_set():
                logger.debug(f"Ignoring error raised after unsubscribe: {e}")
                return
            logger.error(f"Secret watch failed: {e}")
            self._on_error(e)
        finally:
            logger.info("Watch loop stopped.")

    def _list(self):
        """List all secrets and reconcile them with what was reported so far."""
        logger.info("Listing secrets in all namespaces...")
        response = self.v1_api.list_secret_for_all_namespaces()
        listed = {}
        for item in response.items:
            secret = Secret.from_k8s(item)
            listed[secret.uid] = secret

        for uid, secret in listed.items():
            kind = EventKind.UPDATED if uid in self._known else EventKind.ADDED
            self._deliver(SecretEvent(kind, secret))
        for uid in list(self._known.keys() - listed.keys()):
            self._deliver(SecretEvent(EventKind.DELETED, self._known[uid]))

        logger.info(f"Listed {len(listed)} secrets.")
        return response.metadata.resource_version

    def _watch_from(self, resource_version):
        """Watch until stopped or until the resource version expires."""
        while not self._stopped.is_set():
            w = watch.Watch()
            self._watch = w
            try:
                for event in w.stream(self.v1_api.list_secret_for_all_namespaces,
                                      resource_version=resource_version,
                                      timeout_seconds=self.watch_timeout):
                    if self._stopped.is_set():
                        logger.info(
                            "Shutdown requested during watch loop. Exiting...")
                        break

                    event_type = event.get('type')
                    if event_type == 'ERROR':
                        status = (event.get('raw_object') or {}).get('code')
                        if status == HTTP_GONE:
                            logger.info("Resource version expired, relisting.")
                            return
                        raise ApiException(
                            status=status, reason=f"watch error event: {event.get('raw_object')}")

                    kind = WATCH_EVENT_KINDS.get(event_type)
                    obj = event.get('object')
                    if kind is None or obj is None:
                        continue

                    resource_version = obj.metadata.resource_version
                    self._deliver(SecretEvent(kind, Secret.from_k8s(obj)))
            except ApiException as e:
                if e.status == HTTP_GONE:
                    logger.info("Resource version expired, relisting.")
                    return
                raise
            except (HTTPError, OSError) as e:
                if self._stopped.is_set():
                    break
                logger.warning(
                    f"Watch stream interrupted, will reconnect: {e}")
                self._stopped.wait(self.reconnect_delay)
            finally:
                w.stop()

    def _deliver(self, event):
        with self._delivery_lock:
            if self._stopped.is_set():
                return
            self._on_event(event)

        secret = event.secret
        if event.kind is EventKind.DELETED:
            self._known.pop(secret.uid, None)
        else:
            # Only identity is needed to report a later delete.
            self._known[secret.uid] = Secret(
                uid=secret.uid, namespace=secret.namespace, name=secret.name, type=secret.type)

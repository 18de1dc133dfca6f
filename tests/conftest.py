import base64
import json
import threading
import pytest
from unittest.mock import MagicMock

from pullsecret_eval.models import (
    DOCKERCFG_KEY,
    DOCKERCFG_TYPE,
    DOCKERCONFIGJSON_KEY,
    DOCKERCONFIGJSON_TYPE,
    Secret,
)
from pullsecret_eval.sources import SecretSource


class FakeSource(SecretSource):
    """Delivers a fixed list of events synchronously from subscribe()."""

    def __init__(self, initial=(), sync=True, errors=()):
        self.initial = list(initial)
        self.sync = sync
        self.errors = list(errors)
        self.unsubscribe_calls = 0
        self.on_event = None
        self.on_error = None
        self._synced = threading.Event()

    def subscribe(self, on_event, on_error):
        self.on_event = on_event
        self.on_error = on_error
        for event in self.initial:
            on_event(event)
        for error in self.errors:
            on_error(error)
        if self.sync:
            self._synced.set()

    def unsubscribe(self):
        self.unsubscribe_calls += 1

    def wait_for_initial_sync(self, timeout):
        return self._synced.wait(timeout)


def dockercfg_secret(uid, namespace, name, hosts, annotations=None):
    """A legacy pull secret whose payload maps host to credentials."""
    return Secret(
        uid=uid,
        namespace=namespace,
        name=name,
        type=DOCKERCFG_TYPE,
        annotations=annotations or {},
        data={DOCKERCFG_KEY: json.dumps(hosts).encode("utf-8")},
    )


def dockerconfigjson_secret(uid, namespace, name, hosts, annotations=None):
    """A pull secret with the host map wrapped in 'auths'."""
    return Secret(
        uid=uid,
        namespace=namespace,
        name=name,
        type=DOCKERCONFIGJSON_TYPE,
        annotations=annotations or {},
        data={DOCKERCONFIGJSON_KEY: json.dumps({"auths": hosts}).encode("utf-8")},
    )


def create_mock_secret(uid, name, namespace, secret_type="Opaque", annotations=None,
                       data=None, resource_version="1"):
    """Helper function to create a mock Kubernetes V1Secret."""
    secret = MagicMock()
    secret.metadata.uid = uid
    secret.metadata.name = name
    secret.metadata.namespace = namespace
    secret.metadata.annotations = annotations
    secret.metadata.resource_version = resource_version
    secret.type = secret_type
    secret.data = {k: base64.b64encode(
        v.encode('utf-8')).decode('utf-8') for k, v in (data or {}).items()}
    return secret


@pytest.fixture
def kube_client():
    """Fixture for a mock Kubernetes client."""
    return MagicMock()


@pytest.fixture
def shutdown():
    return threading.Event()

"""Classification and decoding of image pull secrets."""

import json
import logging

from .errors import DecodeError, MissingFieldError, UnknownSecretTypeError
from .models import (
    DOCKERCFG_KEY,
    DOCKERCFG_TYPE,
    DOCKERCONFIGJSON_KEY,
    DOCKERCONFIGJSON_TYPE,
    CredentialEntry,
)

logger = logging.getLogger("pullsecret-eval.secrets")

AUTHS_KEY = "auths"
CREDENTIAL_FIELDS = ("username", "password", "email")


def classify(secrets):
    """Split out the pull secrets from a collection of secrets.

    Returns the pull secrets and the number of secrets that were discarded.
    The input is left untouched.
    """
    pull_secrets = []
    discarded = 0
    for secret in secrets:
        if secret.is_pull_secret:
            pull_secrets.append(secret)
        else:
            discarded += 1
    return pull_secrets, discarded


def decode(secret):
    """Decode a pull secret into a mapping of registry host to CredentialEntry."""
    logger.debug(
        f"Decoding secret '{secret.name}' in namespace '{secret.namespace}'")

    if secret.type == DOCKERCFG_TYPE:
        payload = _load_payload(secret, DOCKERCFG_KEY)
        return _parse_host_map(secret, payload)

    if secret.type == DOCKERCONFIGJSON_TYPE:
        payload = _load_payload(secret, DOCKERCONFIGJSON_KEY)
        if payload is None:
            return {}
        if not isinstance(payload, dict):
            raise DecodeError(
                f"Secret '{secret.name}' in ns '{secret.namespace}': {DOCKERCONFIGJSON_KEY} is not a JSON object")
        return _parse_host_map(secret, payload.get(AUTHS_KEY))

    raise UnknownSecretTypeError(f"unknown secret type: {secret.type}")


def _load_payload(secret, key):
    raw = secret.data.get(key)
    if raw is None:
        raise MissingFieldError(
            f"invalid secret '{secret.name}' in ns '{secret.namespace}', {key} not found")
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError) as e:
        raise DecodeError(
            f"Secret '{secret.name}' in ns '{secret.namespace}': invalid JSON in {key}: {e}") from e


def _parse_host_map(secret, host_map):
    # JSON null decodes to an empty config
    if host_map is None:
        return {}
    if not isinstance(host_map, dict):
        raise DecodeError(
            f"Secret '{secret.name}' in ns '{secret.namespace}': registry config is not a JSON object")

    entries = {}
    for host, raw_entry in host_map.items():
        if raw_entry is None:
            entries[host] = CredentialEntry()
            continue
        if not isinstance(raw_entry, dict):
            raise DecodeError(
                f"Secret '{secret.name}' in ns '{secret.namespace}': entry for host '{host}' is not a JSON object")
        entries[host] = _parse_entry(secret, host, raw_entry)
    return entries


def _parse_entry(secret, host, raw_entry):
    fields = {}
    for key, value in raw_entry.items():
        name = key.lower()
        if name not in CREDENTIAL_FIELDS:
            continue
        if value is not None and not isinstance(value, str):
            raise DecodeError(
                f"Secret '{secret.name}' in ns '{secret.namespace}': field '{key}' for host '{host}' is not a string")
        fields[name] = value
    return CredentialEntry(**fields)

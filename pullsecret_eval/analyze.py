"""Aggregation of pull secret credentials under competing deduplication keys."""

import logging
from prometheus_client import Counter, Histogram

from .errors import DecodeError
from .models import AnalysisResult, Grouping, GroupingStats
from .secrets import classify, decode

logger = logging.getLogger("pullsecret-eval.analyze")

SA_ANNOTATION = "kubernetes.io/service-account.name"
DEFAULT_SERVICE_ACCOUNT = "default"

# Three string headers of 16 bytes each on a 64-bit platform. Only meaningful
# for comparing groupings or runs against each other.
DEFAULT_ENTRY_OVERHEAD = 48

ANALYSIS_DURATION = Histogram(
    'pullsecret_eval_analysis_duration_seconds', 'Duration of the analysis phase')
SECRETS_SKIPPED = Counter(
    'pullsecret_eval_secrets_skipped_total', 'Pull secrets skipped because they could not be decoded')


def has_default_service_account(secret):
    """True when the secret is not tied to an explicitly named service account."""
    sa_name = secret.annotations.get(SA_ANNOTATION, "")
    return sa_name in ("", DEFAULT_SERVICE_ACCOUNT)


def aggregate(pull_secrets, decoded_by_uid):
    """
    Build all four groupings from the decoded pull secrets.

    When two secrets produce the same key the last one iterated wins. Iteration
    order is unspecified, so which credential survives is arbitrary; any entry
    under a key is as good as another since only the number of slots is
    being measured.
    """
    groupings = {grouping: {} for grouping in Grouping}
    ns_host = groupings[Grouping.NS_HOST]
    ns_name_host = groupings[Grouping.NS_NAME_HOST]
    ns_host_no_sa = groupings[Grouping.NS_HOST_NO_SA]
    ns_name_host_no_sa = groupings[Grouping.NS_NAME_HOST_NO_SA]

    for secret in pull_secrets:
        no_sa = has_default_service_account(secret)
        for host, entry in decoded_by_uid[secret.uid].items():
            ns_host_key = (secret.namespace, host)
            ns_name_host_key = (secret.namespace, secret.name, host)

            ns_host[ns_host_key] = entry
            ns_name_host[ns_name_host_key] = entry
            if no_sa:
                ns_host_no_sa[ns_host_key] = entry
                ns_name_host_no_sa[ns_name_host_key] = entry

    return groupings


def estimate_size(grouping, entry_overhead=DEFAULT_ENTRY_OVERHEAD):
    """Approximate footprint of a grouping in bytes, for relative comparison only."""
    size = 0
    for entry in grouping.values():
        size += entry_overhead
        size += len(entry.username or "")
        size += len(entry.password or "")
        size += len(entry.email or "")
    return size


@ANALYSIS_DURATION.time()
def analyze(snapshot, skip_undecodable=False, entry_overhead=DEFAULT_ENTRY_OVERHEAD):
    """
    Run the full analysis on a snapshot of secrets keyed by uid.

    With the default policy the first secret that cannot be decoded aborts the
    run. With skip_undecodable the secret is logged and left out of every
    grouping instead.
    """
    secrets = list(snapshot.values())
    pull_secrets, discarded = classify(secrets)
    logger.info(
        f"Found {len(pull_secrets)} pull secrets out of {len(secrets)} secrets ({discarded} discarded).")

    decoded_by_uid = {}
    decodable = []
    skipped = 0
    for secret in pull_secrets:
        try:
            decoded_by_uid[secret.uid] = decode(secret)
        except DecodeError as e:
            if not skip_undecodable:
                raise
            skipped += 1
            SECRETS_SKIPPED.inc()
            logger.warning(f"Skipping secret '{secret.name}' in ns '{secret.namespace}': {e}")
            continue
        decodable.append(secret)

    groupings = aggregate(decodable, decoded_by_uid)
    stats = {
        grouping: GroupingStats(
            entries=len(entries),
            size_bytes=estimate_size(entries, entry_overhead),
        )
        for grouping, entries in groupings.items()
    }
    for grouping, grouping_stats in stats.items():
        logger.debug(
            f"Grouping '{grouping.value}': {grouping_stats.entries} entries, ~{grouping_stats.size_bytes} bytes")

    return AnalysisResult(
        total_secrets=len(secrets),
        total_pull_secrets=len(pull_secrets),
        groupings=stats,
        skipped_pull_secrets=skipped,
    )

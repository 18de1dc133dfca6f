"""Data types shared by the collector and the analysis pipeline."""

import base64
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

DOCKERCFG_TYPE = "kubernetes.io/dockercfg"
DOCKERCONFIGJSON_TYPE = "kubernetes.io/dockerconfigjson"
OPAQUE_TYPE = "Opaque"

DOCKERCFG_KEY = ".dockercfg"
DOCKERCONFIGJSON_KEY = ".dockerconfigjson"

PULL_SECRET_TYPES = frozenset([DOCKERCFG_TYPE, DOCKERCONFIGJSON_TYPE])


@dataclass(frozen=True)
class Secret:
    """A cluster secret as seen by the collector, with its data already base64-decoded."""

    uid: str
    namespace: str
    name: str
    type: str = OPAQUE_TYPE
    annotations: Dict[str, str] = field(default_factory=dict)
    data: Dict[str, bytes] = field(default_factory=dict)

    @classmethod
    def from_k8s(cls, obj):
        """Build a Secret from a kubernetes V1Secret."""
        metadata = obj.metadata
        return cls(
            uid=str(metadata.uid),
            namespace=metadata.namespace,
            name=metadata.name,
            type=obj.type or OPAQUE_TYPE,
            annotations=dict(metadata.annotations or {}),
            data={
                key: base64.b64decode(value)
                for key, value in (obj.data or {}).items()
            },
        )

    @property
    def is_pull_secret(self):
        return self.type in PULL_SECRET_TYPES


class EventKind(enum.Enum):
    ADDED = "ADDED"
    UPDATED = "UPDATED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class SecretEvent:
    """One lifecycle notification for a secret."""

    kind: EventKind
    secret: Secret


@dataclass(frozen=True)
class CredentialEntry:
    """Registry credential for a single host.

    Entries are immutable, so groupings can hold the same instance without
    one grouping's last writer affecting another.
    """

    username: Optional[str] = None
    password: Optional[str] = None
    email: Optional[str] = None


class Grouping(enum.Enum):
    """Deduplication strategies, each keyed by a tuple built from the secret."""

    NS_HOST = "namespace_host"
    NS_NAME_HOST = "namespace_name_host"
    NS_HOST_NO_SA = "namespace_host_no_sa"
    NS_NAME_HOST_NO_SA = "namespace_name_host_no_sa"


@dataclass(frozen=True)
class GroupingStats:
    entries: int
    size_bytes: int

    def to_dict(self) -> Dict[str, int]:
        return {"entries": self.entries, "size_bytes": self.size_bytes}


@dataclass(frozen=True)
class AnalysisResult:
    total_secrets: int
    total_pull_secrets: int
    groupings: Dict[Grouping, GroupingStats]
    skipped_pull_secrets: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_secrets": self.total_secrets,
            "total_pull_secrets": self.total_pull_secrets,
            "skipped_pull_secrets": self.skipped_pull_secrets,
            "groupings": {
                grouping.value: self.groupings[grouping].to_dict()
                for grouping in Grouping
            },
        }

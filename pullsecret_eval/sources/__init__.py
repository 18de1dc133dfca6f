from .source import SecretSource
from .cluster import KubernetesSecretSource, get_k8s_api

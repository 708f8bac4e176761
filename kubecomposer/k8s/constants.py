"""K8s constants used across the model, validator and serializer modules.

This module contains constants that are shared across multiple modules
to avoid circular import issues.
"""

import re

# API versions per kind
BATCH_API_VERSION = "batch/v1"
RBAC_API_GROUP = "rbac.authorization.k8s.io"
RBAC_API_VERSION = f"{RBAC_API_GROUP}/v1"
CORE_API_VERSION = "v1"
APPS_API_VERSION = "apps/v1"
NETWORKING_API_VERSION = "networking.k8s.io/v1"

# Patterns are applied with fullmatch(); '$' alone also accepts a trailing newline

# DNS-1123 label: lowercase alphanumerics and '-', alphanumeric at both ends
DNS1123_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
DNS1123_LABEL_MAX_LENGTH = 63

# Label keys: optional DNS-subdomain prefix followed by '/', then a qualified name
LABEL_KEY_PREFIX = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")
LABEL_KEY_NAME = re.compile(r"^[A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?$")
LABEL_KEY_PREFIX_MAX_LENGTH = 253
LABEL_KEY_NAME_MAX_LENGTH = 63
LABEL_VALUE = re.compile(r"^([A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?)?$")
LABEL_VALUE_MAX_LENGTH = 63

# ConfigMap / Secret data keys
DATA_KEY = re.compile(r"^[-._a-zA-Z0-9]+$")

# Environment variable names
ENV_VAR_NAME = re.compile(r"^[-._a-zA-Z][-._a-zA-Z0-9]*$")

# Five whitespace-separated cron fields of digits, '*', '/', ',' and '-'
CRON_SCHEDULE = re.compile(r"^([*/0-9,-]+\s+){4}[*/0-9,-]+$")

# Kubernetes quantity subset accepted for cpu/memory (e.g. 100m, 0.5, 128Mi, 1G)
QUANTITY = re.compile(r"^[0-9]+(\.[0-9]+)?(m|k|M|G|T|P|E|Ki|Mi|Gi|Ti|Pi|Ei)?$")

RESTART_POLICIES = ("Never", "OnFailure")
CONCURRENCY_POLICIES = ("Allow", "Forbid", "Replace")
SECRET_TYPES = ("Opaque", "kubernetes.io/tls", "kubernetes.io/dockerconfigjson")
ENV_SOURCE_TYPES = ("configMap", "secret")
SUBJECT_KINDS = ("User", "Group", "ServiceAccount")
ROLE_REF_KINDS = ("Role", "ClusterRole")

# Namespaces every cluster has, whether or not the project models them
SYSTEM_NAMESPACES = ("default", "kube-system", "kube-public", "kube-node-lease")
DEFAULT_NAMESPACE = "default"
DEFAULT_SERVICE_ACCOUNT = "default"

# Default container resources and workload settings
DEFAULT_CPU_REQUEST = "100m"
DEFAULT_MEMORY_REQUEST = "128Mi"
DEFAULT_RESTART_POLICY = "Never"
DEFAULT_BACKOFF_LIMIT = 6
DEFAULT_CONCURRENCY_POLICY = "Allow"

# CronJob fields rendered with these values when left blank
DEFAULT_STARTING_DEADLINE_SECONDS = 60
DEFAULT_SUCCESSFUL_JOBS_HISTORY_LIMIT = 3
DEFAULT_FAILED_JOBS_HISTORY_LIMIT = 1

COPY_SUFFIX = "-copy"

# Deployments and DaemonSets with their companion Service and Ingress
APP_NAME_LABEL = "app.kubernetes.io/name"
PROJECT_LABEL = "project"
SERVICE_SUFFIX = "-service"
INGRESS_SUFFIX = "-ingress"
SERVICE_TYPES = ("ClusterIP", "NodePort", "LoadBalancer")
INGRESS_PATH_TYPES = ("Prefix", "Exact", "ImplementationSpecific")
DEFAULT_SERVICE_TYPE = "ClusterIP"
DEFAULT_SERVICE_PORT = 80
DEFAULT_TARGET_PORT = 8080
MAX_PORT = 65535

# Image pull secrets built from registry credentials
DOCKER_HUB_SERVER = "https://index.docker.io/v1/"
DOCKER_CONFIG_KEY = ".dockerconfigjson"

ALL_VERBS = (
    "get", "list", "create", "update", "patch", "delete", "watch",
    "bind", "escalate", "impersonate", "scale", "*",
)

# Ready-made rule sets offered when starting a new Role or ClusterRole
ROLE_TEMPLATES = {
    "pod-reader": [
        {"apiGroups": [""], "resources": ["pods"], "verbs": ["get", "list", "watch"]},
    ],
    "configmap-manager": [
        {"apiGroups": [""], "resources": ["configmaps"], "verbs": ["get", "list", "create", "update", "delete"]},
    ],
    "deployment-manager": [
        {"apiGroups": ["apps"], "resources": ["deployments"], "verbs": ["get", "list", "create", "update", "delete", "patch"]},
        {"apiGroups": ["apps"], "resources": ["replicasets"], "verbs": ["get", "list"]},
        {"apiGroups": [""], "resources": ["pods"], "verbs": ["get", "list"]},
    ],
    "service-manager": [
        {"apiGroups": [""], "resources": ["services"], "verbs": ["get", "list", "create", "update", "delete"]},
        {"apiGroups": [""], "resources": ["endpoints"], "verbs": ["get", "list"]},
    ],
    "namespace-admin": [
        {"apiGroups": [""], "resources": ["*"], "verbs": ["*"]},
        {"apiGroups": ["apps"], "resources": ["*"], "verbs": ["*"]},
        {"apiGroups": ["networking.k8s.io"], "resources": ["*"], "verbs": ["*"]},
        {"apiGroups": ["batch"], "resources": ["*"], "verbs": ["*"]},
    ],
}

CLUSTER_ROLE_TEMPLATES = {
    "cluster-reader": [
        {"apiGroups": [""], "resources": ["nodes", "namespaces", "persistentvolumes"], "verbs": ["get", "list", "watch"]},
        {"apiGroups": ["storage.k8s.io"], "resources": ["storageclasses"], "verbs": ["get", "list", "watch"]},
    ],
    "node-manager": [
        {"apiGroups": [""], "resources": ["nodes"], "verbs": ["get", "list", "create", "update", "delete", "patch"]},
        {"apiGroups": [""], "resources": ["nodes/status"], "verbs": ["get", "list", "update", "patch"]},
    ],
    "rbac-manager": [
        {"apiGroups": [RBAC_API_GROUP], "resources": ["clusterroles", "clusterrolebindings"], "verbs": ["get", "list", "create", "update", "delete", "bind"]},
        {"apiGroups": [RBAC_API_GROUP], "resources": ["roles", "rolebindings"], "verbs": ["get", "list", "create", "update", "delete", "bind"]},
    ],
    "cluster-admin": [
        {"apiGroups": ["*"], "resources": ["*"], "verbs": ["*"]},
    ],
}

"""Resource model for the Kubernetes kinds kubecomposer can compose.

Every record is a frozen dataclass and every collection inside a record is a
tuple, so a record can only change by being replaced. Defaults match what a
freshly started resource looks like in the editor: one empty container with
100m/128Mi requests, restartPolicy Never, backoffLimit 6, namespace default.

Key concepts:
- KeyValueMap: ordered, key-unique string map used for labels and data
- Container / EnvVar: the pod-level building blocks of workloads
- Job / CronJob: batch workloads (CronJob extends Job with scheduling fields)
- Deployment / DaemonSet: long-running workloads that imply a Service
- Role / ClusterRole / RoleBinding: RBAC records
- Project: the full set of collections a user is editing, plus ProjectSettings
"""

import base64
import json
from dataclasses import dataclass, field
from typing import ClassVar, Dict, Iterable, Iterator, List, Optional, Tuple

from kubecomposer.k8s.constants import (
    CLUSTER_ROLE_TEMPLATES,
    DEFAULT_BACKOFF_LIMIT,
    DEFAULT_CONCURRENCY_POLICY,
    DEFAULT_CPU_REQUEST,
    DEFAULT_MEMORY_REQUEST,
    DEFAULT_NAMESPACE,
    DEFAULT_RESTART_POLICY,
    DEFAULT_SERVICE_ACCOUNT,
    DEFAULT_SERVICE_PORT,
    DEFAULT_SERVICE_TYPE,
    DEFAULT_TARGET_PORT,
    DOCKER_CONFIG_KEY,
    DOCKER_HUB_SERVER,
    PROJECT_LABEL,
    RBAC_API_GROUP,
    ROLE_TEMPLATES,
)


@dataclass(frozen=True)
class KeyValueMap:
    """Ordered string map with unique keys.

    Used for labels and for ConfigMap/Secret data. Keys are unique by
    construction: setting an existing key replaces its value in place, so
    insertion order is preserved for display.

    Example:
        >>> labels = KeyValueMap.from_dict({"app": "worker"})
        >>> labels = labels.set("team", "data")
        >>> labels.keys()
        ('app', 'team')

    Attributes:
        entries: (key, value) pairs in insertion order
    """

    entries: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, str]]) -> "KeyValueMap":
        """Build a map from pairs; a repeated key keeps its first position and last value."""
        result = cls()
        for key, value in pairs:
            result = result.set(key, value)
        return result

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, str]]) -> "KeyValueMap":
        return cls.from_pairs((data or {}).items())

    def set(self, key: str, value: str) -> "KeyValueMap":
        """Return a new map with ``key`` set to ``value``."""
        if key in self:
            return KeyValueMap(tuple((k, value if k == key else v) for k, v in self.entries))
        return KeyValueMap(self.entries + ((key, value),))

    def remove(self, key: str) -> "KeyValueMap":
        return KeyValueMap(tuple((k, v) for k, v in self.entries if k != key))

    def rename(self, old_key: str, new_key: str) -> "KeyValueMap":
        """Return a new map with ``old_key`` renamed in place.

        Any other entry already using ``new_key`` is dropped, keeping keys unique.
        """
        if old_key not in self or old_key == new_key:
            return self
        renamed = []
        for k, v in self.entries:
            if k == old_key:
                renamed.append((new_key, v))
            elif k != new_key:
                renamed.append((k, v))
        return KeyValueMap(tuple(renamed))

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        for k, v in self.entries:
            if k == key:
                return v
        return default

    def keys(self) -> Tuple[str, ...]:
        return tuple(k for k, _ in self.entries)

    def items(self) -> Tuple[Tuple[str, str], ...]:
        return self.entries

    def to_dict(self) -> Dict[str, str]:
        return dict(self.entries)

    def __contains__(self, key: object) -> bool:
        return any(k == key for k, _ in self.entries)

    def __getitem__(self, key: str) -> str:
        for k, v in self.entries:
            if k == key:
                return v
        raise KeyError(key)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self.entries)


# ============================================================================
# Containers
# ============================================================================


@dataclass(frozen=True)
class EnvVarSource:
    """Reference from an environment variable to a ConfigMap or Secret key.

    Attributes:
        type: "configMap" or "secret"
        name: Name of the referenced object (same namespace as the workload)
        key: Data key inside the referenced object
    """

    type: str = "configMap"
    name: str = ""
    key: str = ""


@dataclass(frozen=True)
class EnvVar:
    """Container environment variable.

    Exactly one of ``value`` and ``value_from`` is set. A literal variable has
    ``value`` as a string (possibly empty) and ``value_from`` None; a reference
    has ``value`` None.
    """

    name: str = ""
    value: Optional[str] = ""
    value_from: Optional[EnvVarSource] = None

    @classmethod
    def literal(cls, name: str, value: str) -> "EnvVar":
        return cls(name=name, value=value, value_from=None)

    @classmethod
    def reference(cls, name: str, source_type: str, source_name: str, key: str) -> "EnvVar":
        return cls(name=name, value=None, value_from=EnvVarSource(source_type, source_name, key))

    @property
    def is_reference(self) -> bool:
        return self.value_from is not None


@dataclass(frozen=True)
class ResourceQuantities:
    cpu: str = ""
    memory: str = ""


def _default_requests() -> ResourceQuantities:
    return ResourceQuantities(cpu=DEFAULT_CPU_REQUEST, memory=DEFAULT_MEMORY_REQUEST)


@dataclass(frozen=True)
class ResourceRequirements:
    """Container resource requests and limits in Kubernetes quantity syntax."""

    requests: ResourceQuantities = field(default_factory=_default_requests)
    limits: ResourceQuantities = field(default_factory=ResourceQuantities)

    @property
    def has_limits(self) -> bool:
        return bool(self.limits.cpu or self.limits.memory)

    def effective_limits(self) -> ResourceQuantities:
        """Limits with each blank value replaced by the matching request."""
        return ResourceQuantities(
            cpu=self.limits.cpu or self.requests.cpu,
            memory=self.limits.memory or self.requests.memory,
        )


@dataclass(frozen=True)
class VolumeMount:
    name: str = ""
    mount_path: str = ""


@dataclass(frozen=True)
class Container:
    """A container inside a workload's pod template.

    ``command`` and ``args`` hold the free-text the user typed; they are split
    on whitespace when rendered.
    """

    name: str = ""
    image: str = ""
    command: str = ""
    args: str = ""
    env: Tuple[EnvVar, ...] = ()
    resources: ResourceRequirements = field(default_factory=ResourceRequirements)
    volume_mounts: Tuple[VolumeMount, ...] = ()

    @property
    def command_tokens(self) -> List[str]:
        return self.command.split()

    @property
    def args_tokens(self) -> List[str]:
        return self.args.split()


def new_container(**fields) -> Container:
    return Container(**fields)


def _default_containers() -> Tuple[Container, ...]:
    return (new_container(),)


# ============================================================================
# Workloads
# ============================================================================


@dataclass(frozen=True)
class Job:
    """Batch Job.

    Attributes:
        replicas: Rendered as ``parallelism``
        completions: Number of successful pods required
        backoff_limit: Retries before the Job is marked failed
    """

    kind: ClassVar[str] = "Job"

    name: str = ""
    namespace: str = DEFAULT_NAMESPACE
    labels: KeyValueMap = field(default_factory=KeyValueMap)
    containers: Tuple[Container, ...] = field(default_factory=_default_containers)
    restart_policy: str = DEFAULT_RESTART_POLICY
    replicas: int = 1
    completions: int = 1
    backoff_limit: int = DEFAULT_BACKOFF_LIMIT


@dataclass(frozen=True)
class CronJob(Job):
    """Scheduled Job.

    Blank (None) optional fields are rendered with their Kubernetes-side
    defaults: startingDeadlineSeconds 60, history limits 3 and 1.
    """

    kind: ClassVar[str] = "CronJob"

    schedule: str = ""
    concurrency_policy: str = DEFAULT_CONCURRENCY_POLICY
    starting_deadline: Optional[int] = None
    successful_jobs_history_limit: Optional[int] = None
    failed_jobs_history_limit: Optional[int] = None


def new_job(**fields) -> Job:
    return Job(**fields)


def new_cronjob(**fields) -> CronJob:
    return CronJob(**fields)


@dataclass(frozen=True)
class IngressRule:
    """Route from a host and path to the Deployment's Service.

    An empty ``host`` matches every host.
    """

    host: str = ""
    path: str = "/"
    path_type: str = "Prefix"


@dataclass(frozen=True)
class IngressTLS:
    secret_name: str = ""
    hosts: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Deployment:
    """Long-running workload, rendered with its Service and optional Ingress.

    The app name doubles as the object name; the Service is named
    ``<app>-service`` and the Ingress ``<app>-ingress``.

    Attributes:
        port: Port the Service listens on
        target_port: Container port the Service forwards to
        service_account: ServiceAccount the pods run as, empty for the default
        ingress_enabled: Render an Ingress routing ``ingress_rules`` to the Service
    """

    kind: ClassVar[str] = "Deployment"

    app_name: str = ""
    namespace: str = DEFAULT_NAMESPACE
    labels: KeyValueMap = field(default_factory=KeyValueMap)
    containers: Tuple[Container, ...] = field(default_factory=_default_containers)
    replicas: int = 1
    port: int = DEFAULT_SERVICE_PORT
    target_port: int = DEFAULT_TARGET_PORT
    service_type: str = DEFAULT_SERVICE_TYPE
    service_account: str = ""
    ingress_enabled: bool = False
    ingress_class_name: str = ""
    ingress_rules: Tuple[IngressRule, ...] = ()
    ingress_tls: Tuple[IngressTLS, ...] = ()

    @property
    def name(self) -> str:
        return self.app_name


@dataclass(frozen=True)
class DaemonSet:
    """Per-node workload, rendered with a Service when ``service_enabled`` is set."""

    kind: ClassVar[str] = "DaemonSet"

    app_name: str = ""
    namespace: str = DEFAULT_NAMESPACE
    labels: KeyValueMap = field(default_factory=KeyValueMap)
    containers: Tuple[Container, ...] = field(default_factory=_default_containers)
    service_enabled: bool = False
    port: int = DEFAULT_SERVICE_PORT
    target_port: int = DEFAULT_TARGET_PORT
    service_type: str = DEFAULT_SERVICE_TYPE
    service_account: str = ""
    node_selector: KeyValueMap = field(default_factory=KeyValueMap)

    @property
    def name(self) -> str:
        return self.app_name


# ============================================================================
# Config stores and identities
# ============================================================================


@dataclass(frozen=True)
class Namespace:
    kind: ClassVar[str] = "Namespace"

    name: str = ""
    labels: KeyValueMap = field(default_factory=KeyValueMap)


@dataclass(frozen=True)
class ConfigMap:
    kind: ClassVar[str] = "ConfigMap"

    name: str = ""
    namespace: str = DEFAULT_NAMESPACE
    labels: KeyValueMap = field(default_factory=KeyValueMap)
    data: KeyValueMap = field(default_factory=KeyValueMap)


@dataclass(frozen=True)
class Secret:
    """Secret with plain-text data; values are base64-encoded when rendered."""

    kind: ClassVar[str] = "Secret"

    name: str = ""
    namespace: str = DEFAULT_NAMESPACE
    labels: KeyValueMap = field(default_factory=KeyValueMap)
    data: KeyValueMap = field(default_factory=KeyValueMap)
    type: str = "Opaque"


@dataclass(frozen=True)
class ServiceAccount:
    """Workload identity.

    Attributes:
        secrets: Names of Secrets mounted for the account
        image_pull_secrets: Names of Secrets used to pull images
        automount_token: None leaves automountServiceAccountToken unset
    """

    kind: ClassVar[str] = "ServiceAccount"

    name: str = ""
    namespace: str = DEFAULT_NAMESPACE
    labels: KeyValueMap = field(default_factory=KeyValueMap)
    secrets: Tuple[str, ...] = ()
    image_pull_secrets: Tuple[str, ...] = ()
    automount_token: Optional[bool] = None


def docker_config_json(server: str, username: str, password: str, email: str = "") -> str:
    """Build the ``.dockerconfigjson`` payload that ``kubectl create secret docker-registry`` writes."""
    auth = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    config = {"auths": {server: {"username": username, "password": password, "email": email, "auth": auth}}}
    return json.dumps(config, separators=(",", ":"))


def new_docker_registry_secret(
    name: str,
    username: str,
    password: str,
    email: str = "",
    server: str = DOCKER_HUB_SERVER,
    **fields,
) -> Secret:
    """Start an image pull Secret holding credentials for one registry.

    Example:
        >>> secret = new_docker_registry_secret("hub-pull", "bot", "token", namespace="data")
        >>> secret.type, secret.data.keys()
        ('kubernetes.io/dockerconfigjson', ('.dockerconfigjson',))
    """
    data = KeyValueMap().set(DOCKER_CONFIG_KEY, docker_config_json(server, username, password, email))
    return Secret(name=name, type="kubernetes.io/dockerconfigjson", data=data, **fields)


# ============================================================================
# RBAC
# ============================================================================


@dataclass(frozen=True)
class PolicyRule:
    """Single permission grant.

    An empty string in ``api_groups`` is the core API group; ``*`` in
    ``verbs`` grants every verb.
    """

    api_groups: Tuple[str, ...] = ("",)
    resources: Tuple[str, ...] = ()
    verbs: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Role:
    kind: ClassVar[str] = "Role"

    name: str = ""
    namespace: str = DEFAULT_NAMESPACE
    labels: KeyValueMap = field(default_factory=KeyValueMap)
    rules: Tuple[PolicyRule, ...] = ()


@dataclass(frozen=True)
class ClusterRole:
    kind: ClassVar[str] = "ClusterRole"

    name: str = ""
    labels: KeyValueMap = field(default_factory=KeyValueMap)
    rules: Tuple[PolicyRule, ...] = ()


@dataclass(frozen=True)
class Subject:
    """Identity a binding grants permissions to.

    ``namespace`` is meaningful only for ServiceAccount subjects. The API
    group is derived from the kind and cannot be set directly.
    """

    kind: str = "User"
    name: str = ""
    namespace: Optional[str] = None

    @property
    def api_group(self) -> str:
        return api_group_for_subject_kind(self.kind)


@dataclass(frozen=True)
class RoleRef:
    kind: str = "Role"
    name: str = ""

    @property
    def api_group(self) -> str:
        return RBAC_API_GROUP


@dataclass(frozen=True)
class RoleBinding:
    """RoleBinding, or ClusterRoleBinding when ``is_cluster_scoped`` is set."""

    name: str = ""
    namespace: str = ""
    is_cluster_scoped: bool = False
    labels: KeyValueMap = field(default_factory=KeyValueMap)
    role_ref: Optional[RoleRef] = field(default_factory=RoleRef)
    subjects: Tuple[Subject, ...] = ()

    @property
    def kind(self) -> str:
        return "ClusterRoleBinding" if self.is_cluster_scoped else "RoleBinding"


def api_group_for_subject_kind(kind: str) -> str:
    if kind in ("User", "Group"):
        return RBAC_API_GROUP
    return ""


def new_role_binding(cluster_scoped: bool = False, **fields) -> RoleBinding:
    """Start a binding; cluster-scoped bindings reference a ClusterRole by default."""
    if cluster_scoped:
        fields.setdefault("role_ref", RoleRef(kind="ClusterRole"))
    return RoleBinding(is_cluster_scoped=cluster_scoped, **fields)


def new_subject(kind: str = "User") -> Subject:
    """Start a subject the way the binding editor does.

    ServiceAccount subjects start as the namespace's ``default`` account with
    a namespace still to be chosen; other kinds start blank with no namespace.
    """
    if kind == "ServiceAccount":
        return Subject(kind=kind, name=DEFAULT_SERVICE_ACCOUNT, namespace="")
    return Subject(kind=kind, name="", namespace=None)


def new_role(template: Optional[str] = None, **fields) -> Role:
    """Start a Role, optionally pre-filled from ROLE_TEMPLATES."""
    if template is not None:
        fields.setdefault("rules", rules_from_template(ROLE_TEMPLATES[template]))
    return Role(**fields)


def new_cluster_role(template: Optional[str] = None, **fields) -> ClusterRole:
    """Start a ClusterRole, optionally pre-filled from CLUSTER_ROLE_TEMPLATES."""
    if template is not None:
        fields.setdefault("rules", rules_from_template(CLUSTER_ROLE_TEMPLATES[template]))
    return ClusterRole(**fields)


def rules_from_template(template: List[Dict[str, List[str]]]) -> Tuple[PolicyRule, ...]:
    """Turn a ROLE_TEMPLATES / CLUSTER_ROLE_TEMPLATES entry into PolicyRules."""
    return tuple(
        PolicyRule(
            api_groups=tuple(rule.get("apiGroups", [])),
            resources=tuple(rule.get("resources", [])),
            verbs=tuple(rule.get("verbs", [])),
        )
        for rule in template
    )


# ============================================================================
# Project
# ============================================================================


@dataclass(frozen=True)
class ProjectSettings:
    """Project-wide settings applied to every rendered resource.

    Attributes:
        name: Project name, added to every resource as the ``project`` label
            and to workload selectors. Empty adds nothing.
        global_labels: Labels merged into every resource; a resource's own
            label with the same key wins
    """

    name: str = ""
    global_labels: KeyValueMap = field(default_factory=KeyValueMap)

    def merged_labels(self, labels: KeyValueMap) -> KeyValueMap:
        """Global labels, then the resource's own labels, then ``project``.

        Example:
            >>> settings = ProjectSettings("shop", KeyValueMap.from_dict({"team": "web", "tier": "x"}))
            >>> settings.merged_labels(KeyValueMap.from_dict({"tier": "db"})).to_dict()
            {'team': 'web', 'tier': 'db', 'project': 'shop'}
        """
        merged = KeyValueMap.from_pairs(self.global_labels.items() + labels.items())
        if self.name:
            merged = merged.set(PROJECT_LABEL, self.name)
        return merged


@dataclass(frozen=True)
class Project:
    """All resource collections of one composition, as read-only snapshots."""

    settings: ProjectSettings = field(default_factory=ProjectSettings)
    namespaces: Tuple[Namespace, ...] = ()
    config_maps: Tuple[ConfigMap, ...] = ()
    secrets: Tuple[Secret, ...] = ()
    service_accounts: Tuple[ServiceAccount, ...] = ()
    jobs: Tuple[Job, ...] = ()
    cron_jobs: Tuple[CronJob, ...] = ()
    roles: Tuple[Role, ...] = ()
    cluster_roles: Tuple[ClusterRole, ...] = ()
    role_bindings: Tuple[RoleBinding, ...] = ()
    deployments: Tuple[Deployment, ...] = ()
    daemon_sets: Tuple[DaemonSet, ...] = ()


# Collection name -> record type, in rendering order
PROJECT_COLLECTIONS = (
    ("namespaces", Namespace),
    ("config_maps", ConfigMap),
    ("secrets", Secret),
    ("service_accounts", ServiceAccount),
    ("roles", Role),
    ("cluster_roles", ClusterRole),
    ("role_bindings", RoleBinding),
    ("jobs", Job),
    ("cron_jobs", CronJob),
    ("deployments", Deployment),
    ("daemon_sets", DaemonSet),
)

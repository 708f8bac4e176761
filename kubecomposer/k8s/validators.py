"""Field validators for every resource kind.

Each ``validate_<kind>`` function checks one record against the naming,
scoping and reference rules Kubernetes enforces and returns an error map:
field path -> human readable message, empty when the record is valid. The
paths match the fields an editor shows, with list elements indexed in the
key (``container-image-0``, ``rule-2-verbs``, ``subjects.1.name``).

Validators never raise for bad user input. ``validate`` dispatches on the
record type and raises ContractError only for records it cannot handle.
"""

import json
import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple

from kubecomposer.core.errors import ContractError
from kubecomposer.core.schema import Validator
from kubecomposer.k8s.constants import (
    ALL_VERBS,
    CONCURRENCY_POLICIES,
    CRON_SCHEDULE,
    DATA_KEY,
    DNS1123_LABEL,
    DNS1123_LABEL_MAX_LENGTH,
    ENV_SOURCE_TYPES,
    ENV_VAR_NAME,
    INGRESS_PATH_TYPES,
    LABEL_KEY_NAME,
    LABEL_KEY_NAME_MAX_LENGTH,
    LABEL_KEY_PREFIX,
    LABEL_KEY_PREFIX_MAX_LENGTH,
    LABEL_VALUE,
    LABEL_VALUE_MAX_LENGTH,
    MAX_PORT,
    QUANTITY,
    RESTART_POLICIES,
    ROLE_REF_KINDS,
    SECRET_TYPES,
    SERVICE_TYPES,
    SUBJECT_KINDS,
    SYSTEM_NAMESPACES,
)
from kubecomposer.k8s.models import (
    ClusterRole,
    ConfigMap,
    Container,
    CronJob,
    DaemonSet,
    Deployment,
    Job,
    KeyValueMap,
    Namespace,
    PolicyRule,
    Project,
    ProjectSettings,
    Role,
    RoleBinding,
    Secret,
    ServiceAccount,
)
from kubecomposer.k8s.resolver import MISSING_KEY, MISSING_OBJECT, ReferenceResolver

logger = logging.getLogger(__name__)

ErrorMap = Dict[str, str]

NAME_FORMAT_MESSAGE = (
    "Use only lowercase letters, numbers, and hyphens, "
    "starting and ending with a letter or number (max 63 characters)."
)


@dataclass(frozen=True)
class ValidationContext:
    """Read-only view of the project a record is validated against.

    Attributes:
        namespaces: Namespaces modeled by the project (system namespaces are implied)
        config_maps: ConfigMaps env var references resolve against
        secrets: Secrets env var references resolve against
        service_accounts: ServiceAccounts, for uniqueness checks
        roles: Roles, for uniqueness checks and roleRef resolution
        cluster_roles: ClusterRoles, for uniqueness checks and roleRef resolution
        editing_index: Position of the record being validated within its own
            collection, excluded from uniqueness checks. None when the record
            is new.
    """

    namespaces: Tuple[Namespace, ...] = ()
    config_maps: Tuple[ConfigMap, ...] = ()
    secrets: Tuple[Secret, ...] = ()
    service_accounts: Tuple[ServiceAccount, ...] = ()
    roles: Tuple[Role, ...] = ()
    cluster_roles: Tuple[ClusterRole, ...] = ()
    editing_index: Optional[int] = None

    @classmethod
    def for_project(cls, project: Project, editing_index: Optional[int] = None) -> "ValidationContext":
        return cls(
            namespaces=project.namespaces,
            config_maps=project.config_maps,
            secrets=project.secrets,
            service_accounts=project.service_accounts,
            roles=project.roles,
            cluster_roles=project.cluster_roles,
            editing_index=editing_index,
        )

    def editing(self, index: Optional[int]) -> "ValidationContext":
        return replace(self, editing_index=index)

    def known_namespaces(self) -> List[str]:
        names = list(SYSTEM_NAMESPACES)
        names.extend(ns.name for ns in self.namespaces if ns.name not in names)
        return names

    def resolver(self) -> ReferenceResolver:
        return ReferenceResolver(
            config_maps=self.config_maps,
            secrets=self.secrets,
            service_accounts=self.service_accounts,
            roles=self.roles,
            cluster_roles=self.cluster_roles,
        )

    def others(self, records: Sequence) -> List:
        """Records of a collection other than the one being edited."""
        return [record for i, record in enumerate(records) if i != self.editing_index]


# ============================================================================
# Shared checks
# ============================================================================


def is_valid_name(name: str) -> bool:
    """Check a DNS-1123 label: lowercase alphanumerics and '-', at most 63 chars."""
    return len(name) <= DNS1123_LABEL_MAX_LENGTH and DNS1123_LABEL.fullmatch(name) is not None


def is_valid_label_key(key: str) -> bool:
    """Check a label key: optional DNS-subdomain ``prefix/`` plus a qualified name."""
    prefix, separator, name = key.rpartition("/")
    if separator:
        if not prefix or len(prefix) > LABEL_KEY_PREFIX_MAX_LENGTH:
            return False
        if LABEL_KEY_PREFIX.fullmatch(prefix) is None:
            return False
    return (
        0 < len(name) <= LABEL_KEY_NAME_MAX_LENGTH
        and LABEL_KEY_NAME.fullmatch(name) is not None
    )


def is_valid_label_value(value: str) -> bool:
    return len(value) <= LABEL_VALUE_MAX_LENGTH and LABEL_VALUE.fullmatch(value) is not None


def is_valid_schedule(schedule: str) -> bool:
    return CRON_SCHEDULE.fullmatch(schedule) is not None


def is_valid_quantity(quantity: str) -> bool:
    return QUANTITY.fullmatch(quantity) is not None


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_name(errors: ErrorMap, name: str, required_message: str, key: str = "name") -> None:
    # A bad name always yields exactly one error under ``key``
    if not name:
        errors[key] = required_message
    elif not is_valid_name(name):
        errors[key] = NAME_FORMAT_MESSAGE


def _check_namespace(errors: ErrorMap, namespace: str, required_message: str = "Namespace is required.") -> None:
    if not namespace:
        errors["namespace"] = required_message
    elif not is_valid_name(namespace):
        errors["namespace"] = "Invalid namespace format. " + NAME_FORMAT_MESSAGE


def _check_labels(errors: ErrorMap, labels: KeyValueMap, prefix: str = "label") -> None:
    for i, (key, value) in enumerate(labels.items()):
        if not key:
            errors[f"{prefix}-{i}"] = "Label key is required."
        elif not is_valid_label_key(key):
            errors[f"{prefix}-{i}"] = "Invalid label key format."
        if not is_valid_label_value(value):
            errors[f"{prefix}-{i}-value"] = (
                "Label values must be at most 63 characters of letters, numbers, "
                "'-', '_' or '.', starting and ending with a letter or number."
            )


def _check_int(errors: ErrorMap, key: str, value, minimum: int, message: str) -> None:
    if not _is_int(value) or value < minimum:
        errors[key] = message


def _check_optional_int(errors: ErrorMap, key: str, value, message: str) -> None:
    if value is not None:
        _check_int(errors, key, value, 0, message)


def _check_unique(
    errors: ErrorMap, name: str, others: Sequence, message: str, namespace: Optional[str] = None
) -> None:
    if "name" in errors or not name:
        return
    for other in others:
        if other.name == name and (namespace is None or other.namespace == namespace):
            errors["name"] = message
            return


def _check_data_keys(errors: ErrorMap, data: KeyValueMap) -> None:
    for i, key in enumerate(data.keys()):
        if not key:
            errors[f"data-{i}"] = "Key is required."
        elif DATA_KEY.fullmatch(key) is None:
            errors[f"data-{i}"] = "Keys may contain only letters, numbers, '-', '_' and '.'."


# ============================================================================
# Containers
# ============================================================================


def _check_quantity(errors: ErrorMap, key: str, quantity: str, label: str, example: str) -> None:
    if quantity and not is_valid_quantity(quantity):
        errors[key] = f"Invalid {label} quantity (e.g. {example})."


def _check_env(
    errors: ErrorMap, i: int, container: Container, namespace: str, resolver: ReferenceResolver
) -> None:
    seen = set()
    for j, env in enumerate(container.env):
        prefix = f"container-{i}-env-{j}"
        if not env.name:
            errors[f"{prefix}-name"] = "Environment variable name is required."
        elif ENV_VAR_NAME.fullmatch(env.name) is None:
            errors[f"{prefix}-name"] = "Environment variable names may contain letters, digits, '_', '-' and '.', and must not start with a digit."
        elif env.name in seen:
            errors[f"{prefix}-name"] = "Environment variable names must be unique within a container."
        seen.add(env.name)

        source = env.value_from
        if source is None:
            if env.value is None:
                errors[f"{prefix}-value"] = "Set a value or a ConfigMap/Secret reference."
            continue
        if env.value is not None:
            errors[f"{prefix}-value"] = "Set either a value or a reference, not both."
        if source.type not in ENV_SOURCE_TYPES:
            errors[f"{prefix}-valueFrom"] = "Reference type must be configMap or secret."
            continue

        kind = "ConfigMap" if source.type == "configMap" else "Secret"
        resolution = resolver.resolve_env_var(env, namespace)
        if resolution.status == MISSING_OBJECT:
            errors[f"{prefix}-valueFrom"] = f"{kind} '{source.name}' not found in namespace '{namespace}'."
        elif resolution.status == MISSING_KEY:
            errors[f"{prefix}-valueFrom"] = f"Key '{source.key}' not found in {kind} '{source.name}'."
        elif not resolution.is_resolved:
            errors[f"{prefix}-valueFrom"] = f"Select a {kind} and key."


def _check_volume_mounts(errors: ErrorMap, i: int, container: Container) -> None:
    for j, mount in enumerate(container.volume_mounts):
        prefix = f"container-{i}-mount-{j}"
        if not mount.name:
            errors[f"{prefix}-name"] = "Volume name is required."
        if not mount.mount_path:
            errors[f"{prefix}-mountPath"] = "Mount path is required."
        elif not mount.mount_path.startswith("/"):
            errors[f"{prefix}-mountPath"] = "Mount path must be absolute."


def _check_containers(
    errors: ErrorMap, containers: Sequence[Container], namespace: str, context: ValidationContext
) -> None:
    if not containers:
        errors["containers"] = "At least one container is required."
        return

    resolver = context.resolver()
    seen = set()
    for i, container in enumerate(containers):
        if not container.name:
            errors[f"container-name-{i}"] = "Container name is required."
        elif not is_valid_name(container.name):
            errors[f"container-name-{i}"] = NAME_FORMAT_MESSAGE
        elif container.name in seen:
            errors[f"container-name-{i}"] = "Container names must be unique within a workload."
        seen.add(container.name)

        if not container.image.strip():
            errors[f"container-image-{i}"] = "Container image is required."

        requests = container.resources.requests
        if not requests.cpu:
            errors[f"container-cpu-{i}"] = "CPU request is required."
        else:
            _check_quantity(errors, f"container-cpu-{i}", requests.cpu, "CPU", "100m, 0.5")
        if not requests.memory:
            errors[f"container-mem-{i}"] = "Memory request is required."
        else:
            _check_quantity(errors, f"container-mem-{i}", requests.memory, "memory", "128Mi, 1Gi")

        limits = container.resources.limits
        _check_quantity(errors, f"container-cpu-limit-{i}", limits.cpu, "CPU", "500m, 1")
        _check_quantity(errors, f"container-mem-limit-{i}", limits.memory, "memory", "256Mi, 1Gi")

        _check_env(errors, i, container, namespace, resolver)
        _check_volume_mounts(errors, i, container)


# ============================================================================
# Workloads
# ============================================================================


def _check_job_spec(errors: ErrorMap, job: Job, context: ValidationContext) -> None:
    _check_namespace(errors, job.namespace)
    _check_labels(errors, job.labels)
    _check_containers(errors, job.containers, job.namespace, context)
    if job.restart_policy not in RESTART_POLICIES:
        errors["restartPolicy"] = "Restart policy must be Never or OnFailure."
    _check_int(errors, "replicas", job.replicas, 1, "Parallelism must be a whole number of at least 1.")
    _check_int(errors, "completions", job.completions, 1, "Completions must be a whole number of at least 1.")
    _check_int(errors, "backoffLimit", job.backoff_limit, 0, "Backoff limit must be a whole number of 0 or more.")


def validate_job(job: Job, context: ValidationContext) -> ErrorMap:
    """Validate a Job.

    Example:
        >>> errors = validate_job(Job(name="Sync_Job"), ValidationContext())
        >>> errors["name"] == NAME_FORMAT_MESSAGE
        True
    """
    errors: ErrorMap = {}
    _check_name(errors, job.name, "Job name is required.")
    _check_job_spec(errors, job, context)
    return errors


def validate_cronjob(cronjob: CronJob, context: ValidationContext) -> ErrorMap:
    """Validate a CronJob: the Job checks plus schedule and history settings."""
    errors: ErrorMap = {}
    _check_name(errors, cronjob.name, "CronJob name is required.")
    _check_job_spec(errors, cronjob, context)

    if not cronjob.schedule:
        errors["schedule"] = "Schedule is required."
    elif not is_valid_schedule(cronjob.schedule):
        errors["schedule"] = "Invalid cron format."
    if cronjob.concurrency_policy not in CONCURRENCY_POLICIES:
        errors["concurrencyPolicy"] = "Concurrency policy must be Allow, Forbid or Replace."

    non_negative = "Must be a whole number of 0 or more."
    _check_optional_int(errors, "startingDeadlineSeconds", cronjob.starting_deadline, non_negative)
    _check_optional_int(errors, "successfulJobsHistoryLimit", cronjob.successful_jobs_history_limit, non_negative)
    _check_optional_int(errors, "failedJobsHistoryLimit", cronjob.failed_jobs_history_limit, non_negative)
    return errors


def is_valid_host(host: str) -> bool:
    """Check an Ingress host: a DNS subdomain, optionally starting with ``*.``."""
    if host.startswith("*."):
        host = host[2:]
    return 0 < len(host) <= LABEL_KEY_PREFIX_MAX_LENGTH and LABEL_KEY_PREFIX.fullmatch(host) is not None


def _check_service(errors: ErrorMap, workload) -> None:
    port_message = f"Must be a port number between 1 and {MAX_PORT}."
    _check_int(errors, "port", workload.port, 1, port_message)
    if "port" not in errors and workload.port > MAX_PORT:
        errors["port"] = port_message
    _check_int(errors, "targetPort", workload.target_port, 1, port_message)
    if "targetPort" not in errors and workload.target_port > MAX_PORT:
        errors["targetPort"] = port_message
    if workload.service_type not in SERVICE_TYPES:
        errors["serviceType"] = "Service type must be ClusterIP, NodePort or LoadBalancer."


def _check_service_account(errors: ErrorMap, workload, context: ValidationContext) -> None:
    name = workload.service_account
    if not name:
        return
    if not is_valid_name(name):
        errors["serviceAccount"] = NAME_FORMAT_MESSAGE
    elif name not in context.resolver().service_account_candidates(workload.namespace):
        errors["serviceAccount"] = f"ServiceAccount '{name}' not found in namespace '{workload.namespace}'."


def _check_ingress(errors: ErrorMap, deployment: Deployment) -> None:
    if not deployment.ingress_rules:
        errors["ingress.rules"] = "At least one ingress rule is required."
    for i, rule in enumerate(deployment.ingress_rules):
        if rule.host and not is_valid_host(rule.host):
            errors[f"ingress-rule-{i}-host"] = "Host must be a lowercase DNS name, optionally starting with '*.'."
        if not rule.path.startswith("/"):
            errors[f"ingress-rule-{i}-path"] = "Path must start with '/'."
        if rule.path_type not in INGRESS_PATH_TYPES:
            errors[f"ingress-rule-{i}-pathType"] = "Path type must be Prefix, Exact or ImplementationSpecific."
    for i, tls in enumerate(deployment.ingress_tls):
        if not tls.secret_name:
            errors[f"ingress-tls-{i}-secretName"] = "TLS secret name is required."
        for host in tls.hosts:
            if not is_valid_host(host):
                errors[f"ingress-tls-{i}-hosts"] = f"Invalid TLS host '{host}'."
                break


def validate_deployment(deployment: Deployment, context: ValidationContext) -> ErrorMap:
    """Validate a Deployment together with the Service and Ingress it renders."""
    errors: ErrorMap = {}
    _check_name(errors, deployment.app_name, "App name is required.", key="appName")
    _check_namespace(errors, deployment.namespace)
    _check_labels(errors, deployment.labels)
    _check_containers(errors, deployment.containers, deployment.namespace, context)
    _check_int(errors, "replicas", deployment.replicas, 1, "Replicas must be a whole number of at least 1.")
    _check_service(errors, deployment)
    _check_service_account(errors, deployment, context)
    if deployment.ingress_enabled:
        _check_ingress(errors, deployment)
    return errors


def validate_daemon_set(daemon_set: DaemonSet, context: ValidationContext) -> ErrorMap:
    errors: ErrorMap = {}
    _check_name(errors, daemon_set.app_name, "App name is required.", key="appName")
    _check_namespace(errors, daemon_set.namespace)
    _check_labels(errors, daemon_set.labels)
    _check_containers(errors, daemon_set.containers, daemon_set.namespace, context)
    if daemon_set.service_enabled:
        _check_service(errors, daemon_set)
    _check_service_account(errors, daemon_set, context)
    _check_labels(errors, daemon_set.node_selector, prefix="nodeSelector")
    return errors


# ============================================================================
# Config stores and identities
# ============================================================================


def validate_namespace(namespace: Namespace, context: ValidationContext) -> ErrorMap:
    errors: ErrorMap = {}
    _check_name(errors, namespace.name, "Namespace name is required.")
    _check_unique(errors, namespace.name, context.others(context.namespaces), "Namespace already exists.")
    _check_labels(errors, namespace.labels)
    return errors


def validate_config_map(config_map: ConfigMap, context: ValidationContext) -> ErrorMap:
    errors: ErrorMap = {}
    _check_name(errors, config_map.name, "ConfigMap name is required.")
    _check_unique(
        errors,
        config_map.name,
        context.others(context.config_maps),
        "ConfigMap already exists in this namespace.",
        namespace=config_map.namespace,
    )
    _check_namespace(errors, config_map.namespace)
    _check_labels(errors, config_map.labels)
    _check_data_keys(errors, config_map.data)
    return errors


def _check_secret_type_data(errors: ErrorMap, secret: Secret) -> None:
    data = secret.data
    if secret.type == "kubernetes.io/tls":
        cert = (data.get("tls.crt") or "").strip()
        key = (data.get("tls.key") or "").strip()
        if not cert:
            errors["tls.crt"] = "TLS Certificate is required."
        elif "-----BEGIN CERTIFICATE-----" not in cert:
            errors["tls.crt"] = "TLS Certificate must be in PEM format."
        if not key:
            errors["tls.key"] = "TLS Private Key is required."
        elif "-----BEGIN" not in key:
            errors["tls.key"] = "TLS Private Key must be in PEM format."
    elif secret.type == "kubernetes.io/dockerconfigjson":
        config = (data.get(".dockerconfigjson") or "").strip()
        if not config:
            errors[".dockerconfigjson"] = "Docker config JSON is required."
        else:
            try:
                json.loads(config)
            except ValueError:
                errors[".dockerconfigjson"] = "Docker config must be valid JSON."
    elif not len(data):
        errors["data"] = "At least one data entry is required."


def validate_secret(secret: Secret, context: ValidationContext) -> ErrorMap:
    errors: ErrorMap = {}
    _check_name(errors, secret.name, "Secret name is required.")
    _check_unique(
        errors,
        secret.name,
        context.others(context.secrets),
        "Secret already exists in this namespace.",
        namespace=secret.namespace,
    )
    _check_namespace(errors, secret.namespace)
    _check_labels(errors, secret.labels)
    if secret.type not in SECRET_TYPES:
        errors["type"] = "Secret type must be Opaque, kubernetes.io/tls or kubernetes.io/dockerconfigjson."
    _check_data_keys(errors, secret.data)
    _check_secret_type_data(errors, secret)
    return errors


def validate_service_account(account: ServiceAccount, context: ValidationContext) -> ErrorMap:
    errors: ErrorMap = {}
    _check_name(errors, account.name, "Service Account name is required.")
    _check_unique(
        errors,
        account.name,
        context.others(context.service_accounts),
        "A Service Account with this name already exists in this namespace.",
        namespace=account.namespace,
    )
    _check_namespace(errors, account.namespace)
    _check_labels(errors, account.labels)
    for i, secret_name in enumerate(account.secrets):
        if not secret_name:
            errors[f"secret-{i}"] = "Secret name is required."
    for i, secret_name in enumerate(account.image_pull_secrets):
        if not secret_name:
            errors[f"imagePullSecret-{i}"] = "Image pull secret name is required."
    return errors


# ============================================================================
# RBAC
# ============================================================================


def _check_rules(errors: ErrorMap, rules: Sequence[PolicyRule]) -> None:
    if not rules:
        errors["rules"] = "At least one rule is required."
        return
    for i, rule in enumerate(rules):
        if not rule.api_groups:
            errors[f"rule-{i}-apiGroups"] = 'At least one API group is required (use "" for the core group).'
        if not rule.resources:
            errors[f"rule-{i}-resources"] = "At least one resource must be selected."
        if not rule.verbs:
            errors[f"rule-{i}-verbs"] = "At least one verb must be selected."
        else:
            unknown = [verb for verb in rule.verbs if verb not in ALL_VERBS]
            if unknown:
                errors[f"rule-{i}-verbs"] = f"Unknown verb '{unknown[0]}'."


def validate_role(role: Role, context: ValidationContext) -> ErrorMap:
    errors: ErrorMap = {}
    _check_name(errors, role.name, "Role name is required.")
    _check_unique(
        errors,
        role.name,
        context.others(context.roles),
        "Role already exists in this namespace.",
        namespace=role.namespace,
    )
    _check_namespace(errors, role.namespace, "Namespace is required for Roles.")
    _check_labels(errors, role.labels)
    _check_rules(errors, role.rules)
    return errors


def validate_cluster_role(cluster_role: ClusterRole, context: ValidationContext) -> ErrorMap:
    errors: ErrorMap = {}
    _check_name(errors, cluster_role.name, "ClusterRole name is required.")
    _check_unique(errors, cluster_role.name, context.others(context.cluster_roles), "ClusterRole already exists.")
    _check_labels(errors, cluster_role.labels)
    _check_rules(errors, cluster_role.rules)
    return errors


def validate_role_binding(binding: RoleBinding, context: ValidationContext) -> ErrorMap:
    """Validate a RoleBinding or ClusterRoleBinding.

    A ClusterRoleBinding must reference a ClusterRole and has no namespace.
    A RoleBinding may reference a Role in its own namespace or any
    ClusterRole. ServiceAccount subjects need a namespace the project
    knows about; other subjects must not have one.

    Raises:
        ContractError: If the binding has no roleRef at all
    """
    if binding.role_ref is None:
        raise ContractError(f"{binding.kind} {binding.name!r} has no roleRef", resource=binding)

    errors: ErrorMap = {}
    _check_name(errors, binding.name, "Name is required.")
    if binding.is_cluster_scoped:
        if binding.namespace:
            errors["namespace"] = "ClusterRoleBindings are cluster-wide and take no namespace."
    else:
        _check_namespace(errors, binding.namespace)
    _check_labels(errors, binding.labels)

    role_ref = binding.role_ref
    resolver = context.resolver()
    if role_ref.kind not in ROLE_REF_KINDS:
        errors["roleRef.kind"] = "Role type must be Role or ClusterRole."
    elif binding.is_cluster_scoped and role_ref.kind != "ClusterRole":
        errors["roleRef.kind"] = "ClusterRoleBinding must reference a ClusterRole."
    elif not role_ref.name:
        errors["roleRef.name"] = "Role name is required."
    elif role_ref.kind == "ClusterRole":
        if role_ref.name not in resolver.cluster_role_candidates():
            errors["roleRef.name"] = "ClusterRole not found."
    elif binding.namespace and role_ref.name not in resolver.role_candidates(binding.namespace):
        errors["roleRef.name"] = "Role not found in selected namespace."

    if not binding.subjects:
        errors["subjects"] = "At least one subject is required."
    known_namespaces = context.known_namespaces()
    for i, subject in enumerate(binding.subjects):
        prefix = f"subjects.{i}"
        if subject.kind not in SUBJECT_KINDS:
            errors[f"{prefix}.kind"] = "Subject kind must be User, Group or ServiceAccount."
        if not subject.name:
            errors[f"{prefix}.name"] = "Name required."
        if subject.kind == "ServiceAccount":
            if not subject.namespace:
                errors[f"{prefix}.namespace"] = "Namespace required for ServiceAccount."
            elif subject.namespace not in known_namespaces:
                errors[f"{prefix}.namespace"] = "Namespace does not exist."
        elif subject.namespace:
            errors[f"{prefix}.namespace"] = "Namespace only for ServiceAccount."
    return errors


def validate_project_settings(settings: ProjectSettings, context: ValidationContext) -> ErrorMap:
    """Validate the project name and the global labels merged into every resource."""
    errors: ErrorMap = {}
    if settings.name and not is_valid_name(settings.name):
        errors["name"] = NAME_FORMAT_MESSAGE
    _check_labels(errors, settings.global_labels)
    return errors


# ============================================================================
# Dispatch
# ============================================================================

# Exact record type -> validator; CronJob must not fall back to the Job validator
VALIDATORS: Dict[type, Validator] = {
    Namespace: validate_namespace,
    ConfigMap: validate_config_map,
    Secret: validate_secret,
    ServiceAccount: validate_service_account,
    Job: validate_job,
    CronJob: validate_cronjob,
    Role: validate_role,
    ClusterRole: validate_cluster_role,
    RoleBinding: validate_role_binding,
    Deployment: validate_deployment,
    DaemonSet: validate_daemon_set,
    ProjectSettings: validate_project_settings,
}


def validate(instance, context: Optional[ValidationContext] = None) -> ErrorMap:
    """Validate any supported record.

    Args:
        instance: A record from kubecomposer.k8s.models
        context: Project snapshot to check references and uniqueness against.
            Defaults to an empty project.

    Returns:
        Field-path -> message mapping, empty when the record is valid

    Raises:
        ContractError: If the record type is not supported, or a RoleBinding
            has no roleRef
    """
    validator = VALIDATORS.get(type(instance))
    if validator is None:
        raise ContractError(f"Unsupported resource type: {type(instance).__name__}", resource=instance)
    errors = validator(instance, context if context is not None else ValidationContext())
    logger.debug(f"Validated {type(instance).__name__}: {len(errors)} error(s)")
    return errors

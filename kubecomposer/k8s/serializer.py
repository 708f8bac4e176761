"""Render resource records as Kubernetes manifest YAML.

Documents are assembled as ruamel.yaml CommentedMaps so key order is exactly
the order fields are added here, then dumped with a round-trip YAML instance.
Formatting follows what ``kubectl`` users expect to read:

- 2-space indentation with block sequences at their parent's indent
- cpu/memory quantities, cron schedules, empty strings and ``*`` double-quoted
- ``command``/``args`` as bracketed flow lists of double-quoted tokens
- ``labels: {}`` when a record has no labels

The API server decodes manifests with a YAML 1.1 parser, so strings such as
``yes`` or ``off`` are double-quoted too; left plain they would arrive as
booleans.

A Deployment renders as three documents (Deployment, Service, Ingress when
enabled) and a DaemonSet as one or two (DaemonSet, Service when enabled).
ProjectSettings labels are merged into every document rendered with them.

Serialization is best-effort: invalid records still render. Only records this
module has no renderer for, or a RoleBinding without a roleRef, raise
ContractError.
"""

import base64
import logging
import re
from io import StringIO
from typing import Callable, Dict, Iterable, List, Optional, Union

from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap, CommentedSeq
from ruamel.yaml.scalarstring import DoubleQuotedScalarString, LiteralScalarString

from kubecomposer.core.errors import ContractError
from kubecomposer.k8s.constants import (
    APP_NAME_LABEL,
    APPS_API_VERSION,
    BATCH_API_VERSION,
    CORE_API_VERSION,
    DEFAULT_FAILED_JOBS_HISTORY_LIMIT,
    DEFAULT_STARTING_DEADLINE_SECONDS,
    DEFAULT_SUCCESSFUL_JOBS_HISTORY_LIMIT,
    INGRESS_SUFFIX,
    NETWORKING_API_VERSION,
    PROJECT_LABEL,
    RBAC_API_VERSION,
    SERVICE_SUFFIX,
)
from kubecomposer.k8s.models import (
    PROJECT_COLLECTIONS,
    ClusterRole,
    ConfigMap,
    Container,
    CronJob,
    DaemonSet,
    Deployment,
    EnvVar,
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

logger = logging.getLogger(__name__)

DOCUMENT_SEPARATOR = "---\n"

# Plain scalars a YAML 1.1 parser resolves to bool, null or a base-60 int
YAML11_IMPLICIT = re.compile(
    r"y|Y|yes|Yes|YES|n|N|no|No|NO"
    r"|true|True|TRUE|false|False|FALSE"
    r"|on|On|ON|off|Off|OFF"
    r"|~|null|Null|NULL"
    r"|[-+]?[1-9][0-9_]*(:[0-5]?[0-9])+"
)

_NO_SETTINGS = ProjectSettings()


def _create_yaml_instance() -> YAML:
    """Create a ruamel.yaml instance configured for manifest output.

    Returns:
        YAML instance configured to:
        - Not wrap long strings (image references, base64 data)
        - Use block style unless a sequence is explicitly marked flow
    """
    yaml = YAML()
    yaml.width = 4096
    yaml.default_flow_style = False
    yaml.allow_unicode = True
    return yaml


def _text(value: str) -> Union[str, DoubleQuotedScalarString]:
    # Plain scalars would render an empty string as '', manifests use ""
    if value == "" or YAML11_IMPLICIT.fullmatch(value):
        return DoubleQuotedScalarString(value)
    return value


def _quoted(value: str) -> DoubleQuotedScalarString:
    return DoubleQuotedScalarString(value)


def _rbac_list(values: Iterable[str]) -> CommentedSeq:
    """Block list where the core group ``""`` and wildcard ``*`` are quoted."""
    seq = CommentedSeq()
    for value in values:
        seq.append(_quoted(value) if value == "*" else _text(value))
    return seq


def _token_list(tokens: List[str]) -> CommentedSeq:
    seq = CommentedSeq(_quoted(token) for token in tokens)
    seq.fa.set_flow_style()
    return seq


def _labels(labels: KeyValueMap) -> CommentedMap:
    result = CommentedMap()
    for key, value in labels.items():
        result[key] = _text(value)
    return result


def _metadata(name: str, labels: KeyValueMap, namespace=None) -> CommentedMap:
    metadata = CommentedMap()
    metadata["name"] = _text(name)
    if namespace is not None:
        metadata["namespace"] = _text(namespace)
    metadata["labels"] = _labels(labels)
    return metadata


def _header(api_version: str, kind: str, metadata: CommentedMap) -> CommentedMap:
    document = CommentedMap()
    document["apiVersion"] = api_version
    document["kind"] = kind
    document["metadata"] = metadata
    return document


# ============================================================================
# Workloads
# ============================================================================


def _env_var(env: EnvVar) -> CommentedMap:
    entry = CommentedMap()
    entry["name"] = _text(env.name)
    source = env.value_from
    if source is None:
        entry["value"] = _text(env.value or "")
        return entry
    ref = CommentedMap()
    ref["name"] = _text(source.name)
    ref["key"] = _text(source.key)
    value_from = CommentedMap()
    value_from["secretKeyRef" if source.type == "secret" else "configMapKeyRef"] = ref
    entry["valueFrom"] = value_from
    return entry


def _quantities(cpu: str, memory: str) -> CommentedMap:
    quantities = CommentedMap()
    quantities["cpu"] = _quoted(cpu)
    quantities["memory"] = _quoted(memory)
    return quantities


def _container(container: Container) -> CommentedMap:
    entry = CommentedMap()
    entry["name"] = _text(container.name)
    entry["image"] = _text(container.image)
    if container.command_tokens:
        entry["command"] = _token_list(container.command_tokens)
    if container.args_tokens:
        entry["args"] = _token_list(container.args_tokens)
    if container.env:
        entry["env"] = CommentedSeq(_env_var(env) for env in container.env)
    if container.volume_mounts:
        mounts = CommentedSeq()
        for mount in container.volume_mounts:
            item = CommentedMap()
            item["name"] = _text(mount.name)
            item["mountPath"] = _text(mount.mount_path)
            mounts.append(item)
        entry["volumeMounts"] = mounts

    resources = CommentedMap()
    requests = container.resources.requests
    resources["requests"] = _quantities(requests.cpu, requests.memory)
    if container.resources.has_limits:
        limits = container.resources.effective_limits()
        resources["limits"] = _quantities(limits.cpu, limits.memory)
    entry["resources"] = resources
    return entry


def _job_spec(job: Job) -> CommentedMap:
    pod_spec = CommentedMap()
    pod_spec["restartPolicy"] = job.restart_policy
    pod_spec["containers"] = CommentedSeq(_container(c) for c in job.containers)
    template = CommentedMap()
    template["spec"] = pod_spec

    spec = CommentedMap()
    spec["parallelism"] = job.replicas
    spec["completions"] = job.completions
    spec["backoffLimit"] = job.backoff_limit
    spec["template"] = template
    return spec


def _job(job: Job, settings: ProjectSettings) -> CommentedMap:
    labels = settings.merged_labels(job.labels)
    document = _header(BATCH_API_VERSION, "Job", _metadata(job.name, labels, job.namespace))
    document["spec"] = _job_spec(job)
    return document


def _or_default(value, default: int) -> int:
    return default if value is None else value


def _cronjob(cronjob: CronJob, settings: ProjectSettings) -> CommentedMap:
    labels = settings.merged_labels(cronjob.labels)
    document = _header(BATCH_API_VERSION, "CronJob", _metadata(cronjob.name, labels, cronjob.namespace))
    job_template = CommentedMap()
    job_template["spec"] = _job_spec(cronjob)

    spec = CommentedMap()
    spec["schedule"] = _quoted(cronjob.schedule)
    spec["concurrencyPolicy"] = cronjob.concurrency_policy
    spec["startingDeadlineSeconds"] = _or_default(cronjob.starting_deadline, DEFAULT_STARTING_DEADLINE_SECONDS)
    spec["successfulJobsHistoryLimit"] = _or_default(
        cronjob.successful_jobs_history_limit, DEFAULT_SUCCESSFUL_JOBS_HISTORY_LIMIT
    )
    spec["failedJobsHistoryLimit"] = _or_default(
        cronjob.failed_jobs_history_limit, DEFAULT_FAILED_JOBS_HISTORY_LIMIT
    )
    spec["jobTemplate"] = job_template
    document["spec"] = spec
    return document


# ============================================================================
# Deployments, DaemonSets and their Services
# ============================================================================


def app_labels(workload: Union[Deployment, DaemonSet], settings: ProjectSettings = _NO_SETTINGS) -> KeyValueMap:
    """Labels of every object a Deployment or DaemonSet renders.

    ``app.kubernetes.io/name`` always comes first and always holds the app
    name, so the selector keeps matching the pod template.
    """
    merged = settings.merged_labels(workload.labels)
    return KeyValueMap.from_pairs(
        ((APP_NAME_LABEL, workload.app_name),) + tuple((k, v) for k, v in merged.items() if k != APP_NAME_LABEL)
    )


def _selector(workload: Union[Deployment, DaemonSet], settings: ProjectSettings) -> CommentedMap:
    selector = CommentedMap()
    selector[APP_NAME_LABEL] = _text(workload.app_name)
    if settings.name:
        selector[PROJECT_LABEL] = _text(settings.name)
    return selector


def _pod_template(workload: Union[Deployment, DaemonSet], labels: KeyValueMap) -> CommentedMap:
    pod_spec = CommentedMap()
    if workload.service_account:
        pod_spec["serviceAccountName"] = _text(workload.service_account)
    pod_spec["containers"] = CommentedSeq(_container(c) for c in workload.containers)
    if isinstance(workload, DaemonSet) and len(workload.node_selector):
        pod_spec["nodeSelector"] = _labels(workload.node_selector)

    metadata = CommentedMap()
    metadata["labels"] = _labels(labels)
    template = CommentedMap()
    template["metadata"] = metadata
    template["spec"] = pod_spec
    return template


def _deployment(deployment: Deployment, settings: ProjectSettings) -> CommentedMap:
    labels = app_labels(deployment, settings)
    document = _header(APPS_API_VERSION, "Deployment", _metadata(deployment.app_name, labels, deployment.namespace))
    selector = CommentedMap()
    selector["matchLabels"] = _selector(deployment, settings)
    spec = CommentedMap()
    spec["replicas"] = deployment.replicas
    spec["selector"] = selector
    spec["template"] = _pod_template(deployment, labels)
    document["spec"] = spec
    return document


def _daemon_set(daemon_set: DaemonSet, settings: ProjectSettings) -> CommentedMap:
    labels = app_labels(daemon_set, settings)
    document = _header(APPS_API_VERSION, "DaemonSet", _metadata(daemon_set.app_name, labels, daemon_set.namespace))
    selector = CommentedMap()
    selector["matchLabels"] = _selector(daemon_set, settings)
    spec = CommentedMap()
    spec["selector"] = selector
    spec["template"] = _pod_template(daemon_set, labels)
    document["spec"] = spec
    return document


def _service(workload: Union[Deployment, DaemonSet], settings: ProjectSettings) -> CommentedMap:
    labels = app_labels(workload, settings)
    name = workload.app_name + SERVICE_SUFFIX
    document = _header(CORE_API_VERSION, "Service", _metadata(name, labels, workload.namespace))
    port = CommentedMap()
    port["port"] = workload.port
    port["targetPort"] = workload.target_port
    port["protocol"] = "TCP"
    port["name"] = "http"
    spec = CommentedMap()
    spec["selector"] = _selector(workload, settings)
    spec["ports"] = CommentedSeq([port])
    spec["type"] = workload.service_type
    document["spec"] = spec
    return document


def _ingress(deployment: Deployment, settings: ProjectSettings) -> CommentedMap:
    labels = app_labels(deployment, settings)
    name = deployment.app_name + INGRESS_SUFFIX
    document = _header(NETWORKING_API_VERSION, "Ingress", _metadata(name, labels, deployment.namespace))

    spec = CommentedMap()
    if deployment.ingress_class_name:
        spec["ingressClassName"] = _text(deployment.ingress_class_name)
    # TLS entries without hosts protect nothing and are left out
    tls_entries = [tls for tls in deployment.ingress_tls if tls.hosts]
    if tls_entries:
        tls_seq = CommentedSeq()
        for tls in tls_entries:
            entry = CommentedMap()
            entry["secretName"] = _text(tls.secret_name)
            entry["hosts"] = CommentedSeq(_text(host) for host in tls.hosts)
            tls_seq.append(entry)
        spec["tls"] = tls_seq

    rules = CommentedSeq()
    for rule in deployment.ingress_rules:
        port = CommentedMap()
        port["number"] = deployment.port
        service = CommentedMap()
        service["name"] = _text(deployment.app_name + SERVICE_SUFFIX)
        service["port"] = port
        backend = CommentedMap()
        backend["service"] = service
        path = CommentedMap()
        path["path"] = _text(rule.path)
        path["pathType"] = rule.path_type
        path["backend"] = backend
        http = CommentedMap()
        http["paths"] = CommentedSeq([path])

        entry = CommentedMap()
        if rule.host:
            entry["host"] = _text(rule.host)
        entry["http"] = http
        rules.append(entry)
    spec["rules"] = rules
    document["spec"] = spec
    return document


def _deployment_companions(deployment: Deployment, settings: ProjectSettings) -> List[CommentedMap]:
    documents = [_service(deployment, settings)]
    if deployment.ingress_enabled:
        documents.append(_ingress(deployment, settings))
    return documents


def _daemon_set_companions(daemon_set: DaemonSet, settings: ProjectSettings) -> List[CommentedMap]:
    return [_service(daemon_set, settings)] if daemon_set.service_enabled else []


# ============================================================================
# RBAC
# ============================================================================


def _rules(rules: Iterable[PolicyRule]) -> CommentedSeq:
    result = CommentedSeq()
    for rule in rules:
        entry = CommentedMap()
        entry["apiGroups"] = _rbac_list(rule.api_groups)
        entry["resources"] = _rbac_list(rule.resources)
        entry["verbs"] = _rbac_list(rule.verbs)
        result.append(entry)
    return result


def _role(role: Role, settings: ProjectSettings) -> CommentedMap:
    labels = settings.merged_labels(role.labels)
    document = _header(RBAC_API_VERSION, "Role", _metadata(role.name, labels, role.namespace))
    document["rules"] = _rules(role.rules)
    return document


def _cluster_role(cluster_role: ClusterRole, settings: ProjectSettings) -> CommentedMap:
    labels = settings.merged_labels(cluster_role.labels)
    document = _header(RBAC_API_VERSION, "ClusterRole", _metadata(cluster_role.name, labels))
    document["rules"] = _rules(cluster_role.rules)
    return document


def _role_binding(binding: RoleBinding, settings: ProjectSettings) -> CommentedMap:
    if binding.role_ref is None:
        raise ContractError(f"{binding.kind} {binding.name!r} has no roleRef", resource=binding)

    namespace = None if binding.is_cluster_scoped else binding.namespace
    labels = settings.merged_labels(binding.labels)
    document = _header(RBAC_API_VERSION, binding.kind, _metadata(binding.name, labels, namespace))

    role_ref = CommentedMap()
    role_ref["apiGroup"] = binding.role_ref.api_group
    role_ref["kind"] = binding.role_ref.kind
    role_ref["name"] = _text(binding.role_ref.name)
    document["roleRef"] = role_ref

    subjects = CommentedSeq()
    for subject in binding.subjects:
        entry = CommentedMap()
        entry["kind"] = subject.kind
        entry["name"] = _text(subject.name)
        if subject.kind == "ServiceAccount":
            entry["namespace"] = _text(subject.namespace or "")
        entry["apiGroup"] = _text(subject.api_group)
        subjects.append(entry)
    document["subjects"] = subjects
    return document


# ============================================================================
# Config stores and identities
# ============================================================================


def _data_value(value: str):
    # A literal block would carry trailing spaces into the output; quote those
    lines = value.split("\n")
    if len(lines) == 1:
        return _text(value)
    if all(line == line.rstrip() for line in lines):
        return LiteralScalarString(value)
    return _quoted(value)


def _namespace(namespace: Namespace, settings: ProjectSettings) -> CommentedMap:
    labels = settings.merged_labels(namespace.labels)
    return _header(CORE_API_VERSION, "Namespace", _metadata(namespace.name, labels))


def _config_map(config_map: ConfigMap, settings: ProjectSettings) -> CommentedMap:
    labels = settings.merged_labels(config_map.labels)
    document = _header(CORE_API_VERSION, "ConfigMap", _metadata(config_map.name, labels, config_map.namespace))
    data = CommentedMap()
    for key, value in config_map.data.items():
        data[key] = _data_value(value)
    document["data"] = data
    return document


def _secret(secret: Secret, settings: ProjectSettings) -> CommentedMap:
    labels = settings.merged_labels(secret.labels)
    document = _header(CORE_API_VERSION, "Secret", _metadata(secret.name, labels, secret.namespace))
    document["type"] = secret.type
    data = CommentedMap()
    for key, value in secret.data.items():
        data[key] = base64.b64encode(value.encode("utf-8")).decode("ascii")
    document["data"] = data
    return document


def _service_account(account: ServiceAccount, settings: ProjectSettings) -> CommentedMap:
    labels = settings.merged_labels(account.labels)
    document = _header(CORE_API_VERSION, "ServiceAccount", _metadata(account.name, labels, account.namespace))
    for field_name, names in (("secrets", account.secrets), ("imagePullSecrets", account.image_pull_secrets)):
        if names:
            refs = CommentedSeq()
            for name in names:
                ref = CommentedMap()
                ref["name"] = _text(name)
                refs.append(ref)
            document[field_name] = refs
    if account.automount_token is not None:
        document["automountServiceAccountToken"] = account.automount_token
    return document


# ============================================================================
# Public API
# ============================================================================

# Exact record type -> document builder
_BUILDERS: Dict[type, Callable[..., CommentedMap]] = {
    Namespace: _namespace,
    ConfigMap: _config_map,
    Secret: _secret,
    ServiceAccount: _service_account,
    Role: _role,
    ClusterRole: _cluster_role,
    RoleBinding: _role_binding,
    Job: _job,
    CronJob: _cronjob,
    Deployment: _deployment,
    DaemonSet: _daemon_set,
}

# Records that render extra documents after their own, once they have an app name
_COMPANIONS: Dict[type, Callable[..., List[CommentedMap]]] = {
    Deployment: _deployment_companions,
    DaemonSet: _daemon_set_companions,
}


def is_serializable(instance) -> bool:
    return type(instance) in _BUILDERS


def to_document(instance, settings: Optional[ProjectSettings] = None) -> CommentedMap:
    """Build the manifest mapping for a record without dumping it.

    For a Deployment or DaemonSet this is the workload itself; see
    to_documents for its Service and Ingress.

    Raises:
        ContractError: If the record type has no manifest form, or a
            RoleBinding has no roleRef
    """
    builder = _BUILDERS.get(type(instance))
    if builder is None:
        raise ContractError(f"Cannot serialize resource type: {type(instance).__name__}", resource=instance)
    return builder(instance, settings or _NO_SETTINGS)


def to_documents(instance, settings: Optional[ProjectSettings] = None) -> List[CommentedMap]:
    """Build every manifest mapping a record renders to, in apply order."""
    documents = [to_document(instance, settings)]
    companions = _COMPANIONS.get(type(instance))
    if companions is not None and instance.app_name:
        documents.extend(companions(instance, settings or _NO_SETTINGS))
    return documents


def _dump(document: CommentedMap) -> str:
    stream = StringIO()
    _create_yaml_instance().dump(document, stream)
    return stream.getvalue()


def serialize(instance, settings: Optional[ProjectSettings] = None) -> str:
    """Render one record as a YAML manifest.

    Repeated calls on the same record return identical text. Deployments and
    DaemonSets yield a multi-document stream including their Service.

    Example:
        >>> print(serialize(Role(name="pod-reader", rules=rules_from_template(ROLE_TEMPLATES["pod-reader"]))))
        apiVersion: rbac.authorization.k8s.io/v1
        kind: Role
        metadata:
          name: pod-reader
          namespace: default
          labels: {}
        rules:
        - apiGroups:
          - ""
          resources:
          - pods
          verbs:
          - get
          - list
          - watch

    Args:
        instance: Record to render
        settings: Project settings whose labels are merged into the output

    Raises:
        ContractError: If the record type has no manifest form
    """
    return DOCUMENT_SEPARATOR.join(_dump(document) for document in to_documents(instance, settings))


def serialize_all(instances: Iterable, settings: Optional[ProjectSettings] = None) -> str:
    """Render several records as one multi-document YAML stream."""
    return DOCUMENT_SEPARATOR.join(serialize(instance, settings) for instance in instances)


def serializable_resources(project: Project) -> List:
    """All records of a project that have a manifest form, in apply order.

    Deployments and DaemonSets without an app name are left out; they yield
    no objects, matching count_resources.
    """
    resources = []
    for collection, _ in PROJECT_COLLECTIONS:
        for instance in getattr(project, collection):
            if not is_serializable(instance):
                continue
            if type(instance) in _COMPANIONS and not instance.app_name:
                logger.debug(f"Skipping {instance.kind} without an app name")
                continue
            resources.append(instance)
    logger.debug(f"Collected {len(resources)} serializable resource(s) from project")
    return resources


def serialize_project(project: Project) -> str:
    return serialize_all(serializable_resources(project), project.settings)

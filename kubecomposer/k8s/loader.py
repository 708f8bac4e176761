"""Parse manifest YAML back into resource records.

This is the inverse of kubecomposer.k8s.serializer: any text the serializer
produces parses into records that serialize to the same text again. Fields
the serializer fills with defaults (CronJob history limits, limits falling
back to requests) come back as explicit values. Labels added from
ProjectSettings stay on the records they were rendered into.
"""

import base64
import binascii
import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Tuple

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from kubecomposer.core.errors import ProjectFormatError
from kubecomposer.k8s.constants import (
    APP_NAME_LABEL,
    DEFAULT_BACKOFF_LIMIT,
    DEFAULT_CONCURRENCY_POLICY,
    DEFAULT_NAMESPACE,
    DEFAULT_RESTART_POLICY,
    DEFAULT_SERVICE_PORT,
    DEFAULT_SERVICE_TYPE,
    DEFAULT_TARGET_PORT,
    INGRESS_SUFFIX,
    SERVICE_SUFFIX,
)
from kubecomposer.k8s.models import (
    ClusterRole,
    ConfigMap,
    Container,
    CronJob,
    DaemonSet,
    Deployment,
    EnvVar,
    IngressRule,
    IngressTLS,
    Job,
    KeyValueMap,
    Namespace,
    PolicyRule,
    ResourceQuantities,
    ResourceRequirements,
    Role,
    RoleBinding,
    RoleRef,
    Secret,
    ServiceAccount,
    Subject,
    VolumeMount,
)
from kubecomposer.k8s.utils import (
    as_int,
    as_key_value_map,
    as_optional_bool,
    as_optional_int,
    as_str,
    as_str_tuple,
    expect_list,
    expect_mapping,
)

logger = logging.getLogger(__name__)


def _metadata(document: dict, path: str) -> dict:
    return expect_mapping(document.get("metadata"), f"{path}.metadata")


def _tokens(value: Any, path: str) -> str:
    return " ".join(as_str_tuple(value, path))


def _quantities(value: Any, path: str) -> ResourceQuantities:
    mapping = expect_mapping(value, path)
    return ResourceQuantities(
        cpu=as_str(mapping.get("cpu"), f"{path}.cpu"),
        memory=as_str(mapping.get("memory"), f"{path}.memory"),
    )


def _env_var(value: Any, path: str) -> EnvVar:
    entry = expect_mapping(value, path)
    name = as_str(entry.get("name"), f"{path}.name")
    if "valueFrom" not in entry:
        return EnvVar.literal(name, as_str(entry.get("value"), f"{path}.value"))

    value_from = expect_mapping(entry["valueFrom"], f"{path}.valueFrom")
    for field_name, source_type in (("configMapKeyRef", "configMap"), ("secretKeyRef", "secret")):
        if field_name in value_from:
            ref_path = f"{path}.valueFrom.{field_name}"
            ref = expect_mapping(value_from[field_name], ref_path)
            return EnvVar.reference(
                name,
                source_type,
                as_str(ref.get("name"), f"{ref_path}.name"),
                as_str(ref.get("key"), f"{ref_path}.key"),
            )
    raise ProjectFormatError("expected configMapKeyRef or secretKeyRef", path=f"{path}.valueFrom")


def container_from_manifest(value: Any, path: str) -> Container:
    """Parse one entry of ``spec.template.spec.containers``."""
    entry = expect_mapping(value, path)
    resources = expect_mapping(entry.get("resources"), f"{path}.resources")
    requirements = ResourceRequirements(
        requests=_quantities(resources.get("requests"), f"{path}.resources.requests"),
        limits=_quantities(resources.get("limits"), f"{path}.resources.limits"),
    )
    mounts = []
    for i, item in enumerate(expect_list(entry.get("volumeMounts"), f"{path}.volumeMounts")):
        mount_path = f"{path}.volumeMounts[{i}]"
        mount = expect_mapping(item, mount_path)
        mounts.append(VolumeMount(
            name=as_str(mount.get("name"), f"{mount_path}.name"),
            mount_path=as_str(mount.get("mountPath"), f"{mount_path}.mountPath"),
        ))
    return Container(
        name=as_str(entry.get("name"), f"{path}.name"),
        image=as_str(entry.get("image"), f"{path}.image"),
        command=_tokens(entry.get("command"), f"{path}.command"),
        args=_tokens(entry.get("args"), f"{path}.args"),
        env=tuple(
            _env_var(item, f"{path}.env[{i}]")
            for i, item in enumerate(expect_list(entry.get("env"), f"{path}.env"))
        ),
        resources=requirements,
        volume_mounts=tuple(mounts),
    )


def _job_fields(spec: dict, path: str) -> Dict[str, Any]:
    template = expect_mapping(spec.get("template"), f"{path}.template")
    pod_spec = expect_mapping(template.get("spec"), f"{path}.template.spec")
    containers_path = f"{path}.template.spec.containers"
    return {
        "restart_policy": as_str(pod_spec.get("restartPolicy"), f"{path}.template.spec.restartPolicy", DEFAULT_RESTART_POLICY),
        "containers": tuple(
            container_from_manifest(item, f"{containers_path}[{i}]")
            for i, item in enumerate(expect_list(pod_spec.get("containers"), containers_path))
        ),
        "replicas": as_int(spec.get("parallelism"), f"{path}.parallelism", 1),
        "completions": as_int(spec.get("completions"), f"{path}.completions", 1),
        "backoff_limit": as_int(spec.get("backoffLimit"), f"{path}.backoffLimit", DEFAULT_BACKOFF_LIMIT),
    }


def _common(document: dict, path: str, namespaced: bool = True) -> Dict[str, Any]:
    metadata = _metadata(document, path)
    fields = {
        "name": as_str(metadata.get("name"), f"{path}.metadata.name"),
        "labels": as_key_value_map(metadata.get("labels"), f"{path}.metadata.labels"),
    }
    if namespaced:
        fields["namespace"] = as_str(metadata.get("namespace"), f"{path}.metadata.namespace", DEFAULT_NAMESPACE)
    return fields


def _job(document: dict, path: str) -> Job:
    spec = expect_mapping(document.get("spec"), f"{path}.spec")
    return Job(**_common(document, path), **_job_fields(spec, f"{path}.spec"))


def _cronjob(document: dict, path: str) -> CronJob:
    spec_path = f"{path}.spec"
    spec = expect_mapping(document.get("spec"), spec_path)
    job_template = expect_mapping(spec.get("jobTemplate"), f"{spec_path}.jobTemplate")
    job_spec = expect_mapping(job_template.get("spec"), f"{spec_path}.jobTemplate.spec")
    return CronJob(
        **_common(document, path),
        **_job_fields(job_spec, f"{spec_path}.jobTemplate.spec"),
        schedule=as_str(spec.get("schedule"), f"{spec_path}.schedule"),
        concurrency_policy=as_str(spec.get("concurrencyPolicy"), f"{spec_path}.concurrencyPolicy", DEFAULT_CONCURRENCY_POLICY),
        starting_deadline=as_optional_int(spec.get("startingDeadlineSeconds"), f"{spec_path}.startingDeadlineSeconds"),
        successful_jobs_history_limit=as_optional_int(
            spec.get("successfulJobsHistoryLimit"), f"{spec_path}.successfulJobsHistoryLimit"
        ),
        failed_jobs_history_limit=as_optional_int(
            spec.get("failedJobsHistoryLimit"), f"{spec_path}.failedJobsHistoryLimit"
        ),
    )


def _rules(document: dict, path: str):
    rules = []
    for i, item in enumerate(expect_list(document.get("rules"), f"{path}.rules")):
        rule_path = f"{path}.rules[{i}]"
        rule = expect_mapping(item, rule_path)
        rules.append(PolicyRule(
            api_groups=as_str_tuple(rule.get("apiGroups"), f"{rule_path}.apiGroups"),
            resources=as_str_tuple(rule.get("resources"), f"{rule_path}.resources"),
            verbs=as_str_tuple(rule.get("verbs"), f"{rule_path}.verbs"),
        ))
    return tuple(rules)


def _role(document: dict, path: str) -> Role:
    return Role(**_common(document, path), rules=_rules(document, path))


def _cluster_role(document: dict, path: str) -> ClusterRole:
    return ClusterRole(**_common(document, path, namespaced=False), rules=_rules(document, path))


def _role_binding(document: dict, path: str) -> RoleBinding:
    cluster_scoped = document.get("kind") == "ClusterRoleBinding"
    fields = _common(document, path, namespaced=False)
    if not cluster_scoped:
        metadata = _metadata(document, path)
        fields["namespace"] = as_str(metadata.get("namespace"), f"{path}.metadata.namespace")

    ref = expect_mapping(document.get("roleRef"), f"{path}.roleRef")
    subjects = []
    for i, item in enumerate(expect_list(document.get("subjects"), f"{path}.subjects")):
        subject_path = f"{path}.subjects[{i}]"
        subject = expect_mapping(item, subject_path)
        namespace = subject.get("namespace")
        subjects.append(Subject(
            kind=as_str(subject.get("kind"), f"{subject_path}.kind"),
            name=as_str(subject.get("name"), f"{subject_path}.name"),
            namespace=None if namespace is None else as_str(namespace, f"{subject_path}.namespace"),
        ))
    return RoleBinding(
        is_cluster_scoped=cluster_scoped,
        role_ref=RoleRef(
            kind=as_str(ref.get("kind"), f"{path}.roleRef.kind"),
            name=as_str(ref.get("name"), f"{path}.roleRef.name"),
        ),
        subjects=tuple(subjects),
        **fields,
    )


def _namespace(document: dict, path: str) -> Namespace:
    return Namespace(**_common(document, path, namespaced=False))


def _config_map(document: dict, path: str) -> ConfigMap:
    return ConfigMap(**_common(document, path), data=as_key_value_map(document.get("data"), f"{path}.data"))


def _decode(value: str, path: str) -> str:
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ProjectFormatError("secret data is not valid base64 text", path=path, details=str(e)) from e


def _secret(document: dict, path: str) -> Secret:
    encoded = as_key_value_map(document.get("data"), f"{path}.data")
    data = KeyValueMap.from_pairs((key, _decode(value, f"{path}.data.{key}")) for key, value in encoded.items())
    # stringData entries take precedence, as on the API server
    for key, value in as_key_value_map(document.get("stringData"), f"{path}.stringData").items():
        data = data.set(key, value)
    return Secret(
        **_common(document, path),
        data=data,
        type=as_str(document.get("type"), f"{path}.type", "Opaque"),
    )


def _name_refs(value: Any, path: str):
    names = []
    for i, item in enumerate(expect_list(value, path)):
        ref = expect_mapping(item, f"{path}[{i}]")
        names.append(as_str(ref.get("name"), f"{path}[{i}].name"))
    return tuple(names)


def _service_account(document: dict, path: str) -> ServiceAccount:
    return ServiceAccount(
        **_common(document, path),
        secrets=_name_refs(document.get("secrets"), f"{path}.secrets"),
        image_pull_secrets=_name_refs(document.get("imagePullSecrets"), f"{path}.imagePullSecrets"),
        automount_token=as_optional_bool(
            document.get("automountServiceAccountToken"), f"{path}.automountServiceAccountToken"
        ),
    )


def _workload_fields(document: dict, path: str) -> Dict[str, Any]:
    """Fields shared by Deployments and DaemonSets, read from the workload document."""
    metadata = _metadata(document, path)
    app_name = as_str(metadata.get("name"), f"{path}.metadata.name")
    labels = as_key_value_map(metadata.get("labels"), f"{path}.metadata.labels")
    # The serializer always adds the app label; keep only labels the user set
    if labels.get(APP_NAME_LABEL) == app_name:
        labels = labels.remove(APP_NAME_LABEL)

    spec = expect_mapping(document.get("spec"), f"{path}.spec")
    template = expect_mapping(spec.get("template"), f"{path}.spec.template")
    pod_path = f"{path}.spec.template.spec"
    pod_spec = expect_mapping(template.get("spec"), pod_path)
    return {
        "app_name": app_name,
        "namespace": as_str(metadata.get("namespace"), f"{path}.metadata.namespace", DEFAULT_NAMESPACE),
        "labels": labels,
        "containers": tuple(
            container_from_manifest(item, f"{pod_path}.containers[{i}]")
            for i, item in enumerate(expect_list(pod_spec.get("containers"), f"{pod_path}.containers"))
        ),
        "service_account": as_str(pod_spec.get("serviceAccountName"), f"{pod_path}.serviceAccountName"),
    }


def _deployment(document: dict, path: str) -> Deployment:
    spec = expect_mapping(document.get("spec"), f"{path}.spec")
    return Deployment(
        **_workload_fields(document, path),
        replicas=as_int(spec.get("replicas"), f"{path}.spec.replicas", 1),
    )


def _daemon_set(document: dict, path: str) -> DaemonSet:
    spec = expect_mapping(document.get("spec"), f"{path}.spec")
    template = expect_mapping(spec.get("template"), f"{path}.spec.template")
    pod_spec = expect_mapping(template.get("spec"), f"{path}.spec.template.spec")
    return DaemonSet(
        **_workload_fields(document, path),
        node_selector=as_key_value_map(pod_spec.get("nodeSelector"), f"{path}.spec.template.spec.nodeSelector"),
    )


def _owner_index(resources: List, document: dict, path: str, owner_types: Tuple[type, ...], suffix: str) -> int:
    """Position of the workload a Service or Ingress document was rendered for.

    Raises:
        ProjectFormatError: If no earlier Deployment/DaemonSet in the same
            namespace has a matching app name
    """
    metadata = _metadata(document, path)
    name = as_str(metadata.get("name"), f"{path}.metadata.name")
    namespace = as_str(metadata.get("namespace"), f"{path}.metadata.namespace", DEFAULT_NAMESPACE)
    for index, resource in enumerate(resources):
        if type(resource) in owner_types and resource.namespace == namespace and resource.app_name + suffix == name:
            return index
    owners = " or ".join(owner.__name__ for owner in owner_types)
    raise ProjectFormatError(
        f"{document.get('kind')} {name!r} does not belong to an earlier {owners} in namespace {namespace!r}",
        path=path,
    )


def _attach_service(resources: List, document: dict, path: str) -> None:
    index = _owner_index(resources, document, path, (Deployment, DaemonSet), SERVICE_SUFFIX)
    spec = expect_mapping(document.get("spec"), f"{path}.spec")
    ports = expect_list(spec.get("ports"), f"{path}.spec.ports")
    port = expect_mapping(ports[0] if ports else None, f"{path}.spec.ports[0]")
    fields = {
        "port": as_int(port.get("port"), f"{path}.spec.ports[0].port", DEFAULT_SERVICE_PORT),
        "target_port": as_int(port.get("targetPort"), f"{path}.spec.ports[0].targetPort", DEFAULT_TARGET_PORT),
        "service_type": as_str(spec.get("type"), f"{path}.spec.type", DEFAULT_SERVICE_TYPE),
    }
    if isinstance(resources[index], DaemonSet):
        fields["service_enabled"] = True
    resources[index] = replace(resources[index], **fields)


def _attach_ingress(resources: List, document: dict, path: str) -> None:
    index = _owner_index(resources, document, path, (Deployment,), INGRESS_SUFFIX)
    spec_path = f"{path}.spec"
    spec = expect_mapping(document.get("spec"), spec_path)

    tls = []
    for i, item in enumerate(expect_list(spec.get("tls"), f"{spec_path}.tls")):
        entry = expect_mapping(item, f"{spec_path}.tls[{i}]")
        tls.append(IngressTLS(
            secret_name=as_str(entry.get("secretName"), f"{spec_path}.tls[{i}].secretName"),
            hosts=as_str_tuple(entry.get("hosts"), f"{spec_path}.tls[{i}].hosts"),
        ))

    # One IngressRule per path; the backend is always the app's own Service
    rules = []
    for i, item in enumerate(expect_list(spec.get("rules"), f"{spec_path}.rules")):
        rule_path = f"{spec_path}.rules[{i}]"
        rule = expect_mapping(item, rule_path)
        host = as_str(rule.get("host"), f"{rule_path}.host")
        http = expect_mapping(rule.get("http"), f"{rule_path}.http")
        for j, path_item in enumerate(expect_list(http.get("paths"), f"{rule_path}.http.paths")):
            entry = expect_mapping(path_item, f"{rule_path}.http.paths[{j}]")
            rules.append(IngressRule(
                host=host,
                path=as_str(entry.get("path"), f"{rule_path}.http.paths[{j}].path", "/"),
                path_type=as_str(entry.get("pathType"), f"{rule_path}.http.paths[{j}].pathType", "Prefix"),
            ))

    resources[index] = replace(
        resources[index],
        ingress_enabled=True,
        ingress_class_name=as_str(spec.get("ingressClassName"), f"{spec_path}.ingressClassName"),
        ingress_rules=tuple(rules),
        ingress_tls=tuple(tls),
    )


_PARSERS: Dict[str, Callable[[dict, str], Any]] = {
    "Namespace": _namespace,
    "ConfigMap": _config_map,
    "Secret": _secret,
    "ServiceAccount": _service_account,
    "Role": _role,
    "ClusterRole": _cluster_role,
    "RoleBinding": _role_binding,
    "ClusterRoleBinding": _role_binding,
    "Job": _job,
    "CronJob": _cronjob,
    "Deployment": _deployment,
    "DaemonSet": _daemon_set,
}

SUPPORTED_KINDS = tuple(_PARSERS)

# Kinds folded into an earlier Deployment/DaemonSet instead of becoming records
_ATTACHERS: Dict[str, Callable[[List, dict, str], None]] = {
    "Service": _attach_service,
    "Ingress": _attach_ingress,
}


def parse_manifest(document: Any, path: str = "document[0]"):
    """Turn one parsed manifest mapping into a record.

    Raises:
        ProjectFormatError: If the kind is missing or unsupported, or a field
            has the wrong shape
    """
    document = expect_mapping(document, path)
    kind = document.get("kind")
    if not kind or not isinstance(kind, str):
        raise ProjectFormatError("manifest has no kind", path=path)
    if kind in _ATTACHERS:
        raise ProjectFormatError(f"a {kind} is only read in a stream after its Deployment or DaemonSet", path=path)
    parser = _PARSERS.get(kind)
    if parser is None:
        raise ProjectFormatError(f"unsupported kind {kind!r}", path=path)
    return parser(document, path)


def parse_manifests(text: str) -> List:
    """Parse a (multi-document) manifest stream into records.

    Empty documents, such as the one after a trailing ``---``, are skipped.
    Service and Ingress documents are folded into the Deployment or DaemonSet
    rendered before them, so the stream yields one record per workload.

    Example:
        >>> [job] = parse_manifests(serialize(Job(name="sync-job")))
        >>> job.name
        'sync-job'

    Raises:
        ProjectFormatError: If the text is not valid YAML or a document cannot
            be turned into a record
    """
    yaml = YAML()
    try:
        documents = list(yaml.load_all(text))
    except YAMLError as e:
        raise ProjectFormatError("invalid YAML", details=str(e)) from e

    resources = []
    for i, document in enumerate(documents):
        if document is None:
            continue
        path = f"document[{i}]"
        attach = _ATTACHERS.get(document.get("kind")) if isinstance(document, dict) else None
        if attach is not None:
            attach(resources, document, path)
        else:
            resources.append(parse_manifest(document, path))
    logger.debug(f"Parsed {len(resources)} resource(s) from {len(documents)} document(s)")
    return resources

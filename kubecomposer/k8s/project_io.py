"""Read and write project files.

A project file stores the editor state of a whole composition: every
collection under its camelCase name, each entry holding the fields the
editors collect, plus the project settings. Unlike rendered manifests it
is lossless: blank limits, blank CronJob history settings, workloads
without an app name and the global labels survive a round trip.

Example project file (YAML):

    settings:
      name: shop
      globalLabels: {team: data}
    namespaces:
    - name: data
    jobs:
    - name: sync-job
      namespace: data
      containers:
      - name: sync
        image: busybox:1.36
        command: sh -c
        args: echo syncing
        resources:
          requests: {cpu: 100m, memory: 128Mi}

JSON files use the same structure. The format is picked from the file suffix.
"""

import json
import logging
from io import StringIO
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple, Union

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from kubecomposer.core.errors import ProjectFormatError
from kubecomposer.k8s.constants import (
    DEFAULT_BACKOFF_LIMIT,
    DEFAULT_CONCURRENCY_POLICY,
    DEFAULT_NAMESPACE,
    DEFAULT_RESTART_POLICY,
    DEFAULT_SERVICE_PORT,
    DEFAULT_SERVICE_TYPE,
    DEFAULT_TARGET_PORT,
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
    Project,
    ProjectSettings,
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
    as_bool,
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

JSON_SUFFIXES = (".json",)
YAML_SUFFIXES = (".yaml", ".yml")
SETTINGS_KEY = "settings"


# ============================================================================
# Records -> plain data
# ============================================================================


def _labels(labels: KeyValueMap) -> Dict[str, str]:
    return labels.to_dict()


def _quantities_to_dict(quantities: ResourceQuantities) -> Dict[str, str]:
    return {"cpu": quantities.cpu, "memory": quantities.memory}


def _env_to_dict(env: EnvVar) -> Dict[str, Any]:
    if env.value_from is None:
        return {"name": env.name, "value": env.value}
    source = env.value_from
    return {
        "name": env.name,
        "valueFrom": {"type": source.type, "name": source.name, "key": source.key},
    }


def _container_to_dict(container: Container) -> Dict[str, Any]:
    return {
        "name": container.name,
        "image": container.image,
        "command": container.command,
        "args": container.args,
        "env": [_env_to_dict(env) for env in container.env],
        "resources": {
            "requests": _quantities_to_dict(container.resources.requests),
            "limits": _quantities_to_dict(container.resources.limits),
        },
        "volumeMounts": [{"name": m.name, "mountPath": m.mount_path} for m in container.volume_mounts],
    }


def _job_to_dict(job: Job) -> Dict[str, Any]:
    return {
        "name": job.name,
        "namespace": job.namespace,
        "labels": _labels(job.labels),
        "containers": [_container_to_dict(c) for c in job.containers],
        "restartPolicy": job.restart_policy,
        "replicas": job.replicas,
        "completions": job.completions,
        "backoffLimit": job.backoff_limit,
    }


def _cronjob_to_dict(cronjob: CronJob) -> Dict[str, Any]:
    data = _job_to_dict(cronjob)
    data.update({
        "schedule": cronjob.schedule,
        "concurrencyPolicy": cronjob.concurrency_policy,
        "startingDeadlineSeconds": cronjob.starting_deadline,
        "successfulJobsHistoryLimit": cronjob.successful_jobs_history_limit,
        "failedJobsHistoryLimit": cronjob.failed_jobs_history_limit,
    })
    return data


def _rules_to_list(rules) -> List[Dict[str, List[str]]]:
    return [
        {"apiGroups": list(r.api_groups), "resources": list(r.resources), "verbs": list(r.verbs)}
        for r in rules
    ]


def _role_binding_to_dict(binding: RoleBinding) -> Dict[str, Any]:
    subjects = []
    for subject in binding.subjects:
        entry = {"kind": subject.kind, "name": subject.name}
        if subject.namespace is not None:
            entry["namespace"] = subject.namespace
        subjects.append(entry)
    role_ref = None
    if binding.role_ref is not None:
        role_ref = {"kind": binding.role_ref.kind, "name": binding.role_ref.name}
    return {
        "name": binding.name,
        "namespace": binding.namespace,
        "isClusterScoped": binding.is_cluster_scoped,
        "labels": _labels(binding.labels),
        "roleRef": role_ref,
        "subjects": subjects,
    }


def _service_fields_to_dict(workload: Union[Deployment, DaemonSet]) -> Dict[str, Any]:
    return {
        "port": workload.port,
        "targetPort": workload.target_port,
        "serviceType": workload.service_type,
        "serviceAccount": workload.service_account,
    }


def _deployment_to_dict(deployment: Deployment) -> Dict[str, Any]:
    data = {
        "appName": deployment.app_name,
        "namespace": deployment.namespace,
        "labels": _labels(deployment.labels),
        "containers": [_container_to_dict(c) for c in deployment.containers],
        "replicas": deployment.replicas,
    }
    data.update(_service_fields_to_dict(deployment))
    data["ingress"] = {
        "enabled": deployment.ingress_enabled,
        "className": deployment.ingress_class_name,
        "rules": [{"host": r.host, "path": r.path, "pathType": r.path_type} for r in deployment.ingress_rules],
        "tls": [{"secretName": t.secret_name, "hosts": list(t.hosts)} for t in deployment.ingress_tls],
    }
    return data


def _daemon_set_to_dict(daemon_set: DaemonSet) -> Dict[str, Any]:
    data = {
        "appName": daemon_set.app_name,
        "namespace": daemon_set.namespace,
        "labels": _labels(daemon_set.labels),
        "containers": [_container_to_dict(c) for c in daemon_set.containers],
        "serviceEnabled": daemon_set.service_enabled,
    }
    data.update(_service_fields_to_dict(daemon_set))
    data["nodeSelector"] = _labels(daemon_set.node_selector)
    return data


_WRITERS: Dict[str, Callable[[Any], Dict[str, Any]]] = {
    "namespaces": lambda ns: {"name": ns.name, "labels": _labels(ns.labels)},
    "configMaps": lambda cm: {
        "name": cm.name, "namespace": cm.namespace, "labels": _labels(cm.labels), "data": cm.data.to_dict(),
    },
    "secrets": lambda s: {
        "name": s.name, "namespace": s.namespace, "labels": _labels(s.labels), "type": s.type, "data": s.data.to_dict(),
    },
    "serviceAccounts": lambda sa: {
        "name": sa.name,
        "namespace": sa.namespace,
        "labels": _labels(sa.labels),
        "secrets": list(sa.secrets),
        "imagePullSecrets": list(sa.image_pull_secrets),
        "automountServiceAccountToken": sa.automount_token,
    },
    "jobs": _job_to_dict,
    "cronJobs": _cronjob_to_dict,
    "roles": lambda r: {
        "name": r.name, "namespace": r.namespace, "labels": _labels(r.labels), "rules": _rules_to_list(r.rules),
    },
    "clusterRoles": lambda r: {"name": r.name, "labels": _labels(r.labels), "rules": _rules_to_list(r.rules)},
    "roleBindings": _role_binding_to_dict,
    "deployments": _deployment_to_dict,
    "daemonSets": _daemon_set_to_dict,
}


# ============================================================================
# Plain data -> records
# ============================================================================


def _quantities(value: Any, path: str) -> ResourceQuantities:
    mapping = expect_mapping(value, path)
    return ResourceQuantities(
        cpu=as_str(mapping.get("cpu"), f"{path}.cpu"),
        memory=as_str(mapping.get("memory"), f"{path}.memory"),
    )


def _env(value: Any, path: str) -> EnvVar:
    entry = expect_mapping(value, path)
    name = as_str(entry.get("name"), f"{path}.name")
    if entry.get("valueFrom") is None:
        return EnvVar.literal(name, as_str(entry.get("value"), f"{path}.value"))
    source = expect_mapping(entry["valueFrom"], f"{path}.valueFrom")
    return EnvVar.reference(
        name,
        as_str(source.get("type"), f"{path}.valueFrom.type", "configMap"),
        as_str(source.get("name"), f"{path}.valueFrom.name"),
        as_str(source.get("key"), f"{path}.valueFrom.key"),
    )


def _command(value: Any, path: str) -> str:
    # Hand-written files may list tokens instead of one string
    if isinstance(value, list):
        return " ".join(as_str_tuple(value, path))
    return as_str(value, path)


def _container(value: Any, path: str) -> Container:
    entry = expect_mapping(value, path)
    resources = expect_mapping(entry.get("resources"), f"{path}.resources")
    requests = _quantities(resources.get("requests"), f"{path}.resources.requests")
    mounts = []
    for i, item in enumerate(expect_list(entry.get("volumeMounts"), f"{path}.volumeMounts")):
        mount = expect_mapping(item, f"{path}.volumeMounts[{i}]")
        mounts.append(VolumeMount(
            name=as_str(mount.get("name"), f"{path}.volumeMounts[{i}].name"),
            mount_path=as_str(mount.get("mountPath"), f"{path}.volumeMounts[{i}].mountPath"),
        ))
    return Container(
        name=as_str(entry.get("name"), f"{path}.name"),
        image=as_str(entry.get("image"), f"{path}.image"),
        command=_command(entry.get("command"), f"{path}.command"),
        args=_command(entry.get("args"), f"{path}.args"),
        env=tuple(_env(item, f"{path}.env[{i}]") for i, item in enumerate(expect_list(entry.get("env"), f"{path}.env"))),
        resources=ResourceRequirements(
            # Omitted requests fall back to the editor defaults
            requests=requests if resources.get("requests") is not None else ResourceRequirements().requests,
            limits=_quantities(resources.get("limits"), f"{path}.resources.limits"),
        ),
        volume_mounts=tuple(mounts),
    )


def _containers(entry: dict, path: str) -> Tuple[Container, ...]:
    if "containers" not in entry:
        return (Container(),)
    items = expect_list(entry["containers"], f"{path}.containers")
    return tuple(_container(item, f"{path}.containers[{i}]") for i, item in enumerate(items))


def _job_fields(entry: dict, path: str) -> Dict[str, Any]:
    return {
        "name": as_str(entry.get("name"), f"{path}.name"),
        "namespace": as_str(entry.get("namespace"), f"{path}.namespace", DEFAULT_NAMESPACE),
        "labels": as_key_value_map(entry.get("labels"), f"{path}.labels"),
        "containers": _containers(entry, path),
        "restart_policy": as_str(entry.get("restartPolicy"), f"{path}.restartPolicy", DEFAULT_RESTART_POLICY),
        "replicas": as_int(entry.get("replicas"), f"{path}.replicas", 1),
        "completions": as_int(entry.get("completions"), f"{path}.completions", 1),
        "backoff_limit": as_int(entry.get("backoffLimit"), f"{path}.backoffLimit", DEFAULT_BACKOFF_LIMIT),
    }


def _read_job(entry: dict, path: str) -> Job:
    return Job(**_job_fields(entry, path))


def _read_cronjob(entry: dict, path: str) -> CronJob:
    return CronJob(
        **_job_fields(entry, path),
        schedule=as_str(entry.get("schedule"), f"{path}.schedule"),
        concurrency_policy=as_str(entry.get("concurrencyPolicy"), f"{path}.concurrencyPolicy", DEFAULT_CONCURRENCY_POLICY),
        starting_deadline=as_optional_int(entry.get("startingDeadlineSeconds"), f"{path}.startingDeadlineSeconds"),
        successful_jobs_history_limit=as_optional_int(
            entry.get("successfulJobsHistoryLimit"), f"{path}.successfulJobsHistoryLimit"
        ),
        failed_jobs_history_limit=as_optional_int(entry.get("failedJobsHistoryLimit"), f"{path}.failedJobsHistoryLimit"),
    )


def _read_rules(entry: dict, path: str) -> Tuple[PolicyRule, ...]:
    rules = []
    for i, item in enumerate(expect_list(entry.get("rules"), f"{path}.rules")):
        rule = expect_mapping(item, f"{path}.rules[{i}]")
        rules.append(PolicyRule(
            api_groups=as_str_tuple(rule.get("apiGroups", [""]), f"{path}.rules[{i}].apiGroups"),
            resources=as_str_tuple(rule.get("resources"), f"{path}.rules[{i}].resources"),
            verbs=as_str_tuple(rule.get("verbs"), f"{path}.rules[{i}].verbs"),
        ))
    return tuple(rules)


def _read_role_binding(entry: dict, path: str) -> RoleBinding:
    subjects = []
    for i, item in enumerate(expect_list(entry.get("subjects"), f"{path}.subjects")):
        subject = expect_mapping(item, f"{path}.subjects[{i}]")
        namespace = subject.get("namespace")
        subjects.append(Subject(
            kind=as_str(subject.get("kind"), f"{path}.subjects[{i}].kind", "User"),
            name=as_str(subject.get("name"), f"{path}.subjects[{i}].name"),
            namespace=None if namespace is None else as_str(namespace, f"{path}.subjects[{i}].namespace"),
        ))
    ref = expect_mapping(entry.get("roleRef"), f"{path}.roleRef")
    return RoleBinding(
        name=as_str(entry.get("name"), f"{path}.name"),
        namespace=as_str(entry.get("namespace"), f"{path}.namespace"),
        is_cluster_scoped=as_bool(entry.get("isClusterScoped"), f"{path}.isClusterScoped"),
        labels=as_key_value_map(entry.get("labels"), f"{path}.labels"),
        role_ref=RoleRef(
            kind=as_str(ref.get("kind"), f"{path}.roleRef.kind", "Role"),
            name=as_str(ref.get("name"), f"{path}.roleRef.name"),
        ),
        subjects=tuple(subjects),
    )


def _read_namespaced(entry: dict, path: str) -> Dict[str, Any]:
    return {
        "name": as_str(entry.get("name"), f"{path}.name"),
        "namespace": as_str(entry.get("namespace"), f"{path}.namespace", DEFAULT_NAMESPACE),
        "labels": as_key_value_map(entry.get("labels"), f"{path}.labels"),
    }


def _read_workload(entry: dict, path: str) -> Dict[str, Any]:
    return {
        "app_name": as_str(entry.get("appName"), f"{path}.appName"),
        "namespace": as_str(entry.get("namespace"), f"{path}.namespace", DEFAULT_NAMESPACE),
        "labels": as_key_value_map(entry.get("labels"), f"{path}.labels"),
        "containers": _containers(entry, path),
        "port": as_int(entry.get("port"), f"{path}.port", DEFAULT_SERVICE_PORT),
        "target_port": as_int(entry.get("targetPort"), f"{path}.targetPort", DEFAULT_TARGET_PORT),
        "service_type": as_str(entry.get("serviceType"), f"{path}.serviceType", DEFAULT_SERVICE_TYPE),
        "service_account": as_str(entry.get("serviceAccount"), f"{path}.serviceAccount"),
    }


def _read_ingress_rules(ingress: dict, path: str) -> Tuple[IngressRule, ...]:
    rules = []
    for i, item in enumerate(expect_list(ingress.get("rules"), f"{path}.rules")):
        rule = expect_mapping(item, f"{path}.rules[{i}]")
        rules.append(IngressRule(
            host=as_str(rule.get("host"), f"{path}.rules[{i}].host"),
            path=as_str(rule.get("path"), f"{path}.rules[{i}].path", "/"),
            path_type=as_str(rule.get("pathType"), f"{path}.rules[{i}].pathType", "Prefix"),
        ))
    return tuple(rules)


def _read_ingress_tls(ingress: dict, path: str) -> Tuple[IngressTLS, ...]:
    entries = []
    for i, item in enumerate(expect_list(ingress.get("tls"), f"{path}.tls")):
        tls = expect_mapping(item, f"{path}.tls[{i}]")
        entries.append(IngressTLS(
            secret_name=as_str(tls.get("secretName"), f"{path}.tls[{i}].secretName"),
            hosts=as_str_tuple(tls.get("hosts"), f"{path}.tls[{i}].hosts"),
        ))
    return tuple(entries)


def _read_deployment(entry: dict, path: str) -> Deployment:
    ingress = expect_mapping(entry.get("ingress"), f"{path}.ingress")
    # Older files carry a bare flag instead of the ingress mapping
    enabled = ingress.get("enabled", entry.get("ingressEnabled"))
    return Deployment(
        **_read_workload(entry, path),
        replicas=as_int(entry.get("replicas"), f"{path}.replicas", 1),
        ingress_enabled=as_bool(enabled, f"{path}.ingress.enabled"),
        ingress_class_name=as_str(ingress.get("className"), f"{path}.ingress.className"),
        ingress_rules=_read_ingress_rules(ingress, f"{path}.ingress"),
        ingress_tls=_read_ingress_tls(ingress, f"{path}.ingress"),
    )


def _read_daemon_set(entry: dict, path: str) -> DaemonSet:
    return DaemonSet(
        **_read_workload(entry, path),
        service_enabled=as_bool(entry.get("serviceEnabled"), f"{path}.serviceEnabled"),
        node_selector=as_key_value_map(entry.get("nodeSelector"), f"{path}.nodeSelector"),
    )


def _read_settings(value: Any) -> ProjectSettings:
    settings = expect_mapping(value, SETTINGS_KEY)
    return ProjectSettings(
        name=as_str(settings.get("name"), f"{SETTINGS_KEY}.name"),
        global_labels=as_key_value_map(settings.get("globalLabels"), f"{SETTINGS_KEY}.globalLabels"),
    )


_READERS: Dict[str, Callable[[dict, str], Any]] = {
    "namespaces": lambda e, p: Namespace(
        name=as_str(e.get("name"), f"{p}.name"),
        labels=as_key_value_map(e.get("labels"), f"{p}.labels"),
    ),
    "configMaps": lambda e, p: ConfigMap(
        **_read_namespaced(e, p), data=as_key_value_map(e.get("data"), f"{p}.data"),
    ),
    "secrets": lambda e, p: Secret(
        **_read_namespaced(e, p),
        data=as_key_value_map(e.get("data"), f"{p}.data"),
        type=as_str(e.get("type"), f"{p}.type", "Opaque"),
    ),
    "serviceAccounts": lambda e, p: ServiceAccount(
        **_read_namespaced(e, p),
        secrets=as_str_tuple(e.get("secrets"), f"{p}.secrets"),
        image_pull_secrets=as_str_tuple(e.get("imagePullSecrets"), f"{p}.imagePullSecrets"),
        automount_token=as_optional_bool(e.get("automountServiceAccountToken"), f"{p}.automountServiceAccountToken"),
    ),
    "jobs": _read_job,
    "cronJobs": _read_cronjob,
    "roles": lambda e, p: Role(**_read_namespaced(e, p), rules=_read_rules(e, p)),
    "clusterRoles": lambda e, p: ClusterRole(
        name=as_str(e.get("name"), f"{p}.name"),
        labels=as_key_value_map(e.get("labels"), f"{p}.labels"),
        rules=_read_rules(e, p),
    ),
    "roleBindings": _read_role_binding,
    "deployments": _read_deployment,
    "daemonSets": _read_daemon_set,
}

# camelCase file key -> Project field
FILE_COLLECTIONS = {
    "namespaces": "namespaces",
    "configMaps": "config_maps",
    "secrets": "secrets",
    "serviceAccounts": "service_accounts",
    "jobs": "jobs",
    "cronJobs": "cron_jobs",
    "roles": "roles",
    "clusterRoles": "cluster_roles",
    "roleBindings": "role_bindings",
    "deployments": "deployments",
    "daemonSets": "daemon_sets",
}


# ============================================================================
# Public API
# ============================================================================


def project_to_dict(project: Project) -> Dict[str, Any]:
    """Convert a project into JSON-serializable data.

    The settings come first, then one key per collection.
    """
    data: Dict[str, Any] = {
        SETTINGS_KEY: {
            "name": project.settings.name,
            "globalLabels": _labels(project.settings.global_labels),
        },
    }
    for file_key, field_name in FILE_COLLECTIONS.items():
        data[file_key] = [_WRITERS[file_key](record) for record in getattr(project, field_name)]
    return data


def project_from_dict(data: Any) -> Project:
    """Build a project from parsed file data.

    Missing collections are empty and missing settings are the defaults;
    unknown top-level keys are ignored.

    Raises:
        ProjectFormatError: If a collection or entry has the wrong shape
    """
    data = expect_mapping(data, "project")
    collections = {}
    for file_key, field_name in FILE_COLLECTIONS.items():
        entries = expect_list(data.get(file_key), file_key)
        collections[field_name] = tuple(
            _READERS[file_key](expect_mapping(entry, f"{file_key}[{i}]"), f"{file_key}[{i}]")
            for i, entry in enumerate(entries)
        )
    unknown = [key for key in data if key not in FILE_COLLECTIONS and key != SETTINGS_KEY]
    if unknown:
        logger.debug(f"Ignoring unknown project keys: {', '.join(map(str, unknown))}")
    return Project(settings=_read_settings(data.get(SETTINGS_KEY)), **collections)


def _is_json(path: Path) -> bool:
    suffix = path.suffix.lower()
    if suffix in JSON_SUFFIXES:
        return True
    if suffix in YAML_SUFFIXES:
        return False
    raise ProjectFormatError(f"unsupported project file type {suffix or '(none)'}; use .json, .yaml or .yml", path=str(path))


def load_project(path: str) -> Project:
    """Load a project from a JSON or YAML file.

    Raises:
        FileNotFoundError: If the file does not exist
        ProjectFormatError: If the file cannot be parsed into a project
    """
    file_path = Path(path)
    is_json = _is_json(file_path)
    content = file_path.read_text(encoding="utf-8")
    try:
        data = json.loads(content) if is_json else YAML().load(content)
    except (ValueError, YAMLError) as e:
        raise ProjectFormatError("cannot parse project file", path=str(file_path), details=str(e)) from e

    project = project_from_dict(data)
    total = sum(len(getattr(project, field_name)) for field_name in FILE_COLLECTIONS.values())
    logger.debug(f"Loaded project from {file_path} with {total} record(s)")
    return project


def save_project(project: Project, path: str) -> None:
    """Write a project to a JSON or YAML file, creating parent directories."""
    file_path = Path(path)
    is_json = _is_json(file_path)
    data = project_to_dict(project)
    if is_json:
        content = json.dumps(data, indent=2) + "\n"
    else:
        yaml = YAML()
        yaml.default_flow_style = False
        stream = StringIO()
        yaml.dump(data, stream)
        content = stream.getvalue()
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(content, encoding="utf-8")
    logger.debug(f"Saved project to {file_path}")

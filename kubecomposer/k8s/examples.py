"""Sample resources for demos and tests.

The sample project models a small data-sync setup in a ``data`` namespace:
a Job and a nightly CronJob reading settings from a ConfigMap and a Secret,
a ServiceAccount they could run as with its registry pull Secret, RBAC
letting that account read pods, a dashboard Deployment behind an Ingress and
a log agent DaemonSet. It validates cleanly and renders every supported kind.
"""

from kubecomposer.k8s.models import (
    ConfigMap,
    Container,
    CronJob,
    DaemonSet,
    Deployment,
    EnvVar,
    IngressRule,
    Job,
    KeyValueMap,
    Namespace,
    Project,
    ResourceQuantities,
    ResourceRequirements,
    RoleBinding,
    RoleRef,
    Secret,
    ServiceAccount,
    Subject,
    VolumeMount,
    new_cluster_role,
    new_docker_registry_secret,
    new_role,
)

SAMPLE_NAMESPACE = "data"


def sync_job(namespace: str = "default") -> Job:
    """The ``sync-job`` Job: one busybox container with default requests."""
    return Job(
        name="sync-job",
        namespace=namespace,
        containers=(
            Container(name="sync", image="busybox:1.36", command="sh -c", args="echo syncing"),
        ),
    )


def pod_reader_binding(namespace: str = "default") -> RoleBinding:
    """RoleBinding granting the namespace's default ServiceAccount the pod-reader Role."""
    return RoleBinding(
        name="read-pods",
        namespace=namespace,
        role_ref=RoleRef(kind="Role", name="pod-reader"),
        subjects=(Subject(kind="ServiceAccount", name="default", namespace=namespace),),
    )


def sample_project() -> Project:
    """Build the sample project.

    Example:
        >>> project = sample_project()
        >>> [job.name for job in project.jobs]
        ['sync-job']
    """
    ns = SAMPLE_NAMESPACE
    worker = Container(
        name="sync",
        image="busybox:1.36",
        command="sh -c",
        args="echo syncing",
        env=(
            EnvVar.reference("LOG_LEVEL", "configMap", "sync-config", "LOG_LEVEL"),
            EnvVar.reference("TARGET_PASSWORD", "secret", "sync-credentials", "password"),
            EnvVar.literal("BATCH_SIZE", "500"),
        ),
        resources=ResourceRequirements(
            requests=ResourceQuantities(cpu="100m", memory="128Mi"),
            limits=ResourceQuantities(cpu="500m", memory=""),
        ),
        volume_mounts=(VolumeMount(name="scratch", mount_path="/scratch"),),
    )

    return Project(
        namespaces=(Namespace(name=ns, labels=KeyValueMap.from_dict({"team": "data"})),),
        config_maps=(
            ConfigMap(
                name="sync-config",
                namespace=ns,
                data=KeyValueMap.from_dict({
                    "LOG_LEVEL": "info",
                    "sync.conf": "source=warehouse\ntarget=lake\n",
                }),
            ),
        ),
        secrets=(
            Secret(
                name="sync-credentials",
                namespace=ns,
                data=KeyValueMap.from_dict({"password": "s3cr3t"}),
            ),
            new_docker_registry_secret("registry-pull", "sync-bot", "hub-token", namespace=ns),
        ),
        service_accounts=(
            ServiceAccount(
                name="sync-runner",
                namespace=ns,
                image_pull_secrets=("registry-pull",),
                automount_token=False,
            ),
        ),
        jobs=(
            Job(
                name="sync-job",
                namespace=ns,
                labels=KeyValueMap.from_dict({"app.kubernetes.io/name": "sync"}),
                containers=(worker,),
                restart_policy="OnFailure",
                backoff_limit=3,
            ),
        ),
        cron_jobs=(
            CronJob(
                name="nightly-sync",
                namespace=ns,
                containers=(worker,),
                schedule="0 2 * * *",
                concurrency_policy="Forbid",
            ),
        ),
        roles=(new_role("pod-reader", name="pod-reader", namespace=ns),),
        cluster_roles=(new_cluster_role("cluster-reader", name="cluster-reader"),),
        role_bindings=(
            RoleBinding(
                name="sync-runner-pod-reader",
                namespace=ns,
                role_ref=RoleRef(kind="Role", name="pod-reader"),
                subjects=(
                    Subject(kind="ServiceAccount", name="sync-runner", namespace=ns),
                    Subject(kind="User", name="jane"),
                ),
            ),
            RoleBinding(
                name="ops-cluster-reader",
                is_cluster_scoped=True,
                role_ref=RoleRef(kind="ClusterRole", name="cluster-reader"),
                subjects=(Subject(kind="Group", name="ops"),),
            ),
        ),
        deployments=(
            Deployment(
                app_name="sync-dashboard",
                namespace=ns,
                containers=(Container(name="web", image="nginx:1.27"),),
                ingress_enabled=True,
                ingress_rules=(IngressRule(host="dashboard.example.com"),),
            ),
        ),
        daemon_sets=(
            DaemonSet(
                app_name="log-agent",
                namespace=ns,
                containers=(Container(name="agent", image="fluent/fluent-bit:3.0"),),
            ),
        ),
    )

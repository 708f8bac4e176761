"""Tests for manifest rendering."""

import pytest

from kubecomposer.core.errors import ContractError
from kubecomposer.k8s.examples import pod_reader_binding, sync_job
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
from kubecomposer.k8s.serializer import (
    app_labels,
    is_serializable,
    serializable_resources,
    serialize,
    serialize_all,
    serialize_project,
    to_document,
    to_documents,
)

SYNC_JOB_YAML = """\
apiVersion: batch/v1
kind: Job
metadata:
  name: sync-job
  namespace: default
  labels: {}
spec:
  parallelism: 1
  completions: 1
  backoffLimit: 6
  template:
    spec:
      restartPolicy: Never
      containers:
      - name: sync
        image: busybox:1.36
        command: ["sh", "-c"]
        args: ["echo", "syncing"]
        resources:
          requests:
            cpu: "100m"
            memory: "128Mi"
"""

WEB_DEPLOYMENT_YAML = """\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: web
  namespace: shop
  labels:
    app.kubernetes.io/name: web
spec:
  replicas: 2
  selector:
    matchLabels:
      app.kubernetes.io/name: web
  template:
    metadata:
      labels:
        app.kubernetes.io/name: web
    spec:
      serviceAccountName: web-runner
      containers:
      - name: web
        image: nginx:1.27
        resources:
          requests:
            cpu: "100m"
            memory: "128Mi"
---
apiVersion: v1
kind: Service
metadata:
  name: web-service
  namespace: shop
  labels:
    app.kubernetes.io/name: web
spec:
  selector:
    app.kubernetes.io/name: web
  ports:
  - port: 80
    targetPort: 8080
    protocol: TCP
    name: http
  type: ClusterIP
---
apiVersion: networking.k8s.io/v1
kind: Ingress
metadata:
  name: web-ingress
  namespace: shop
  labels:
    app.kubernetes.io/name: web
spec:
  ingressClassName: nginx
  tls:
  - secretName: web-tls
    hosts:
    - web.example.com
  rules:
  - host: web.example.com
    http:
      paths:
      - path: /
        pathType: Prefix
        backend:
          service:
            name: web-service
            port:
              number: 80
"""

POD_READER_BINDING_YAML = """\
apiVersion: rbac.authorization.k8s.io/v1
kind: RoleBinding
metadata:
  name: read-pods
  namespace: default
  labels: {}
roleRef:
  apiGroup: rbac.authorization.k8s.io
  kind: Role
  name: pod-reader
subjects:
- kind: ServiceAccount
  name: default
  namespace: default
  apiGroup: ""
"""

POD_RULE = PolicyRule(api_groups=("",), resources=("pods",), verbs=("get", "list"))


class TestJobSerialization:
    """Tests for Job and CronJob documents."""

    def test_sync_job(self):
        """Test the full rendering of a minimal Job."""
        assert serialize(sync_job()) == SYNC_JOB_YAML

    def test_serialize_is_stable(self):
        """Test that repeated calls return identical text."""
        job = sync_job()

        assert serialize(job) == serialize(job)

    def test_no_command_or_args_when_blank(self):
        """Test that blank command and args are omitted."""
        output = serialize(Job(name="x", containers=(Container(name="c", image="busybox"),)))

        assert "command" not in output
        assert "args" not in output
        assert "limits" not in output

    def test_limits_fall_back_to_requests(self):
        """Test that a partly set limit is completed from the request."""
        container = Container(
            name="c",
            image="busybox",
            resources=ResourceRequirements(
                requests=ResourceQuantities(cpu="250m", memory="64Mi"),
                limits=ResourceQuantities(cpu="", memory="1Gi"),
            ),
        )

        spec = to_document(Job(name="x", containers=(container,)))["spec"]
        limits = spec["template"]["spec"]["containers"][0]["resources"]["limits"]

        assert dict(limits) == {"cpu": "250m", "memory": "1Gi"}

    def test_env_and_mounts(self):
        """Test literal env, references and volume mounts."""
        container = Container(
            name="c",
            image="busybox",
            env=(
                EnvVar.literal("MODE", "fast"),
                EnvVar.literal("EMPTY", ""),
                EnvVar.reference("LEVEL", "configMap", "app-config", "LOG_LEVEL"),
                EnvVar.reference("PASSWORD", "secret", "db", "password"),
            ),
            volume_mounts=(VolumeMount(name="data", mount_path="/data"),),
        )

        output = serialize(Job(name="x", containers=(container,)))

        assert "- name: MODE\n          value: fast\n" in output
        assert '- name: EMPTY\n          value: ""\n' in output
        assert "configMapKeyRef:\n              name: app-config\n              key: LOG_LEVEL\n" in output
        assert "secretKeyRef:\n              name: db\n              key: password\n" in output
        assert "volumeMounts:\n        - name: data\n          mountPath: /data\n" in output

    def test_labels_rendered_in_order(self):
        """Test that labels keep their insertion order."""
        labels = KeyValueMap.from_pairs([("team", "data"), ("app", "sync")])

        output = serialize(Job(name="x", labels=labels))

        assert "  labels:\n    team: data\n    app: sync\n" in output

    def test_cronjob_defaults(self):
        """Test that blank CronJob fields render their defaults."""
        cronjob = CronJob(name="tick", containers=(Container(name="c", image="busybox"),), schedule="*/5 * * * *")

        output = serialize(cronjob)

        assert "kind: CronJob\n" in output
        assert 'schedule: "*/5 * * * *"\n' in output
        assert "concurrencyPolicy: Allow\n" in output
        assert "startingDeadlineSeconds: 60\n" in output
        assert "successfulJobsHistoryLimit: 3\n" in output
        assert "failedJobsHistoryLimit: 1\n" in output
        assert "jobTemplate:\n    spec:\n      parallelism: 1\n" in output

    def test_cronjob_explicit_values(self):
        """Test that set CronJob fields are rendered as given."""
        cronjob = CronJob(name="tick", schedule="0 2 * * *", starting_deadline=0, failed_jobs_history_limit=5)

        spec = to_document(cronjob)["spec"]

        assert spec["startingDeadlineSeconds"] == 0
        assert spec["failedJobsHistoryLimit"] == 5

    def test_invalid_records_still_render(self):
        """Test that serialization is best-effort for invalid records."""
        output = serialize(Job())

        assert 'name: ""' in output
        assert 'image: ""' in output


class TestRbacSerialization:
    """Tests for Role, ClusterRole and binding documents."""

    def test_pod_reader_binding(self):
        """Test the full rendering of a RoleBinding to a ServiceAccount."""
        assert serialize(pod_reader_binding()) == POD_READER_BINDING_YAML

    def test_role_rules(self):
        """Test that the core group is quoted in block lists."""
        output = serialize(Role(name="pod-reader", rules=(POD_RULE,)))

        assert 'rules:\n- apiGroups:\n  - ""\n  resources:\n  - pods\n  verbs:\n  - get\n  - list\n' in output

    def test_wildcards_quoted(self):
        """Test that '*' entries are quoted."""
        rule = PolicyRule(api_groups=("*",), resources=("*",), verbs=("*",))

        output = serialize(ClusterRole(name="admin", rules=(rule,)))

        assert output.count('- "*"') == 3
        assert "namespace" not in output

    def test_cluster_role_binding_has_no_namespace(self):
        """Test that ClusterRoleBindings render without metadata.namespace."""
        binding = RoleBinding(
            name="ops",
            namespace="ignored",
            is_cluster_scoped=True,
            role_ref=RoleRef(kind="ClusterRole", name="view"),
            subjects=(Subject(kind="Group", name="ops"),),
        )

        output = serialize(binding)

        assert "kind: ClusterRoleBinding\n" in output
        assert "namespace" not in output
        assert "  apiGroup: rbac.authorization.k8s.io\n  kind: ClusterRole\n  name: view\n" in output
        assert "- kind: Group\n  name: ops\n  apiGroup: rbac.authorization.k8s.io\n" in output

    def test_user_subject_has_no_namespace(self):
        """Test that non-ServiceAccount subjects omit namespace even when set."""
        binding = RoleBinding(
            name="b",
            namespace="data",
            role_ref=RoleRef(kind="Role", name="r"),
            subjects=(Subject(kind="User", name="jane", namespace="data"),),
        )

        subjects = to_document(binding)["subjects"]

        assert list(subjects[0]) == ["kind", "name", "apiGroup"]

    def test_missing_role_ref(self):
        """Test that a binding without roleRef cannot be rendered."""
        with pytest.raises(ContractError):
            serialize(RoleBinding(name="b", role_ref=None))


class TestStoreSerialization:
    """Tests for Namespace, ConfigMap, Secret and ServiceAccount documents."""

    def test_namespace(self):
        """Test a namespace document."""
        output = serialize(Namespace(name="data", labels=KeyValueMap.from_dict({"team": "data"})))

        assert output == "apiVersion: v1\nkind: Namespace\nmetadata:\n  name: data\n  labels:\n    team: data\n"

    def test_config_map_multiline_value(self):
        """Test that multi-line data uses a literal block."""
        config_map = ConfigMap(
            name="cfg",
            data=KeyValueMap.from_pairs([("LOG_LEVEL", "info"), ("app.conf", "a=1\nb=2\n")]),
        )

        output = serialize(config_map)

        assert "data:\n  LOG_LEVEL: info\n  app.conf: |\n" in output
        assert "a=1\n" in output

    def test_secret_base64(self):
        """Test that secret values are base64-encoded."""
        secret = Secret(name="creds", data=KeyValueMap.from_dict({"password": "s3cr3t"}))

        output = serialize(secret)

        assert "type: Opaque\n" in output
        assert "password: czNjcjN0\n" in output
        assert "s3cr3t" not in output

    def test_service_account(self):
        """Test secret references and the automount flag."""
        account = ServiceAccount(
            name="runner",
            secrets=("runner-token",),
            image_pull_secrets=("registry",),
            automount_token=False,
        )

        output = serialize(account)

        assert "secrets:\n- name: runner-token\n" in output
        assert "imagePullSecrets:\n- name: registry\n" in output
        assert "automountServiceAccountToken: false\n" in output

    def test_service_account_minimal(self):
        """Test that empty lists and an unset flag are omitted."""
        output = serialize(ServiceAccount(name="runner"))

        assert "secrets" not in output
        assert "automount" not in output


class TestDispatch:
    """Tests for multi-document output and unsupported records."""

    def test_unknown_record_type(self):
        """Test that records without a renderer raise ContractError."""
        assert not is_serializable(Container())
        with pytest.raises(ContractError):
            serialize(Container())

    def test_serialize_all_separates_documents(self):
        """Test the document separator between manifests."""
        output = serialize_all([Namespace(name="a"), Namespace(name="b")])

        assert output.count("---\n") == 1
        assert output.startswith("apiVersion: v1\n")

    def test_project_order(self):
        """Test that project resources render in apply order, skipping workloads without an app name."""
        project = Project(
            jobs=(sync_job(),),
            namespaces=(Namespace(name="data"),),
            deployments=(Deployment(app_name="web"), Deployment(app_name="")),
            daemon_sets=(DaemonSet(app_name=""),),
        )

        resources = serializable_resources(project)

        assert [r.kind for r in resources] == ["Namespace", "Job", "Deployment"]
        assert serialize_project(project) == serialize_all(resources)


def web_deployment(**fields) -> Deployment:
    values = dict(
        app_name="web",
        namespace="shop",
        containers=(Container(name="web", image="nginx:1.27"),),
        replicas=2,
        service_account="web-runner",
        ingress_enabled=True,
        ingress_class_name="nginx",
        ingress_rules=(IngressRule(host="web.example.com"),),
        ingress_tls=(IngressTLS(secret_name="web-tls", hosts=("web.example.com",)),),
    )
    values.update(fields)
    return Deployment(**values)


class TestWorkloadSerialization:
    """Tests for Deployments, DaemonSets and the Services and Ingresses they bring."""

    def test_deployment_with_service_and_ingress(self):
        """Test the full three-document output of a Deployment."""
        assert serialize(web_deployment()) == WEB_DEPLOYMENT_YAML

    def test_documents_match_count(self):
        """Test that the document count follows the ingress and service switches."""
        assert len(to_documents(web_deployment())) == 3
        assert len(to_documents(web_deployment(ingress_enabled=False))) == 2
        assert len(to_documents(DaemonSet(app_name="agent"))) == 1
        assert len(to_documents(DaemonSet(app_name="agent", service_enabled=True))) == 2

    def test_ingress_without_host_or_tls_hosts(self):
        """Test that a rule without host omits it and TLS entries without hosts are dropped."""
        deployment = web_deployment(
            ingress_class_name="",
            ingress_rules=(IngressRule(path="/api", path_type="Exact"),),
            ingress_tls=(IngressTLS(secret_name="unused"),),
        )

        ingress = serialize(deployment).split("---\n")[2]

        assert "ingressClassName" not in ingress
        assert "tls" not in ingress
        assert "  rules:\n  - http:\n      paths:\n      - path: /api\n        pathType: Exact\n" in ingress

    def test_app_label_wins(self):
        """Test that a user label cannot change the selector's app label."""
        deployment = web_deployment(labels=KeyValueMap.from_dict({"tier": "front", "app.kubernetes.io/name": "other"}))

        assert app_labels(deployment).items() == (("app.kubernetes.io/name", "web"), ("tier", "front"))
        assert "other" not in serialize(deployment)

    def test_daemon_set_with_service(self):
        """Test DaemonSet node selector and its optional Service."""
        daemon_set = DaemonSet(
            app_name="agent",
            namespace="ops",
            containers=(Container(name="agent", image="fluent/fluent-bit:3.0"),),
            service_enabled=True,
            port=2020,
            target_port=2020,
            service_type="NodePort",
            node_selector=KeyValueMap.from_dict({"kubernetes.io/os": "linux"}),
        )

        daemon_doc, service_doc = serialize(daemon_set).split("---\n")

        assert daemon_doc.startswith("apiVersion: apps/v1\nkind: DaemonSet\n")
        assert "replicas" not in daemon_doc
        assert "      nodeSelector:\n        kubernetes.io/os: linux\n" in daemon_doc
        assert "  name: agent-service\n" in service_doc
        assert "  - port: 2020\n    targetPort: 2020\n" in service_doc
        assert "  type: NodePort\n" in service_doc

    def test_unnamed_workload_has_no_companions(self):
        """Test that a workload without an app name renders only itself."""
        assert len(to_documents(Deployment(app_name="", ingress_enabled=True))) == 1


class TestProjectSettings:
    """Tests for project-wide labels."""

    SETTINGS = ProjectSettings(name="shop", global_labels=KeyValueMap.from_dict({"team": "web", "tier": "x"}))

    def test_global_labels_merged(self):
        """Test that global labels come first, own labels win and the project label is last."""
        namespace = Namespace(name="shop", labels=KeyValueMap.from_dict({"tier": "db"}))

        output = serialize(namespace, self.SETTINGS)

        assert output.endswith("  labels:\n    team: web\n    tier: db\n    project: shop\n")

    def test_workload_selector_gets_project(self):
        """Test that the selector matches on app and project."""
        output = serialize(web_deployment(ingress_enabled=False), self.SETTINGS)

        assert "    matchLabels:\n      app.kubernetes.io/name: web\n      project: shop\n" in output
        assert "  selector:\n    app.kubernetes.io/name: web\n    project: shop\n" in output
        assert "  labels:\n    app.kubernetes.io/name: web\n    team: web\n    tier: x\n    project: shop\n" in output

    def test_serialize_project_uses_settings(self):
        """Test that project output carries the project's own settings."""
        project = Project(settings=self.SETTINGS, namespaces=(Namespace(name="shop"),))

        assert "    project: shop\n" in serialize_project(project)

    def test_no_settings_no_extra_labels(self):
        """Test that records render unchanged without settings."""
        assert serialize(Namespace(name="shop")).endswith("  labels: {}\n")


class TestImplicitTyping:
    """Tests for strings a YAML 1.1 parser would read as other types."""

    @pytest.mark.parametrize("value", ["yes", "No", "on", "OFF", "y", "n", "true", "False", "null", "~", "1:30"])
    def test_label_values_quoted(self, value):
        """Test that label values stay strings for YAML 1.1 readers."""
        namespace = Namespace(name="data", labels=KeyValueMap.from_dict({"enabled": value}))

        assert f'    enabled: "{value}"\n' in serialize(namespace)

    def test_env_value_quoted(self):
        """Test that an env value of on is quoted."""
        job = Job(name="j", containers=(Container(name="c", image="busybox", env=(EnvVar.literal("DEBUG", "on"),)),))

        assert '        - name: DEBUG\n          value: "on"\n' in serialize(job)

    def test_config_map_value_quoted(self):
        """Test that a ConfigMap value of no is quoted."""
        config_map = ConfigMap(name="flags", data=KeyValueMap.from_dict({"flag": "no"}))

        assert '  flag: "no"\n' in serialize(config_map)

    @pytest.mark.parametrize("value", ["yesterday", "online", "nope", "10:80:1"])
    def test_ordinary_words_plain(self, value):
        """Test that words merely starting like a boolean stay plain."""
        namespace = Namespace(name="data", labels=KeyValueMap.from_dict({"word": value}))

        assert f"    word: {value}\n" in serialize(namespace)

    def test_trailing_spaces_not_in_literal_block(self):
        """Test that multi-line values with trailing spaces are double-quoted."""
        config_map = ConfigMap(name="cfg", data=KeyValueMap.from_dict({"t": "a  \nb"}))

        output = serialize(config_map)

        assert '  t: "a  \\nb"\n' in output
        assert "|" not in output

"""Tests for project file reading and writing."""

import json

import pytest

from kubecomposer.core.errors import ProjectFormatError
from kubecomposer.k8s.examples import sample_project
from kubecomposer.k8s.models import (
    CronJob,
    DaemonSet,
    Deployment,
    EnvVar,
    IngressRule,
    IngressTLS,
    KeyValueMap,
    Project,
    ProjectSettings,
    ResourceQuantities,
)
from kubecomposer.k8s.project_io import (
    load_project,
    project_from_dict,
    project_to_dict,
    save_project,
)

PROJECT_YAML = """\
namespaces:
- name: data
jobs:
- name: sync-job
  namespace: data
  containers:
  - name: sync
    image: busybox:1.36
    command: [sh, -c]
    args: echo syncing
    env:
    - name: LOG_LEVEL
      valueFrom: {type: configMap, name: sync-config, key: LOG_LEVEL}
    resources:
      limits: {cpu: 500m}
cronJobs:
- name: nightly
  schedule: "0 2 * * *"
editorTheme: dark
"""


class TestProjectFiles:
    """Tests for saving and loading whole projects."""

    def test_json_round_trip(self, tmp_path):
        """Test that a project saved as JSON loads back equal."""
        path = tmp_path / "project.json"

        save_project(sample_project(), str(path))

        assert load_project(str(path)) == sample_project()
        assert "jobs" in json.loads(path.read_text(encoding="utf-8"))

    def test_yaml_round_trip(self, tmp_path):
        """Test that a project saved as YAML loads back equal."""
        path = tmp_path / "nested" / "project.yaml"

        save_project(sample_project(), str(path))

        assert load_project(str(path)) == sample_project()

    def test_blank_settings_survive(self):
        """Test that blank limits and CronJob settings are kept as blank."""
        project = Project(cron_jobs=(CronJob(name="tick", schedule="*/5 * * * *"),))

        restored = project_from_dict(json.loads(json.dumps(project_to_dict(project))))

        assert restored == project
        assert restored.cron_jobs[0].starting_deadline is None

    def test_hand_written_yaml(self, tmp_path):
        """Test defaults and shorthand in a hand-written project file."""
        path = tmp_path / "project.yml"
        path.write_text(PROJECT_YAML, encoding="utf-8")

        project = load_project(str(path))

        [job] = project.jobs
        container = job.containers[0]
        assert container.command == "sh -c"
        assert container.args == "echo syncing"
        assert container.env == (EnvVar.reference("LOG_LEVEL", "configMap", "sync-config", "LOG_LEVEL"),)
        assert container.resources.requests == ResourceQuantities(cpu="100m", memory="128Mi")
        assert container.resources.limits == ResourceQuantities(cpu="500m", memory="")
        assert job.backoff_limit == 6

        [cronjob] = project.cron_jobs
        assert cronjob.namespace == "default"
        assert len(cronjob.containers) == 1
        assert cronjob.concurrency_policy == "Allow"

    def test_empty_file_is_empty_project(self, tmp_path):
        """Test that an empty YAML file is an empty project."""
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        assert load_project(str(path)) == Project()


WORKLOAD_PROJECT = Project(
    settings=ProjectSettings(name="shop", global_labels=KeyValueMap.from_dict({"team": "web"})),
    deployments=(
        Deployment(
            app_name="web",
            namespace="shop",
            labels=KeyValueMap.from_dict({"tier": "front"}),
            replicas=2,
            port=8080,
            service_type="NodePort",
            service_account="web-runner",
            ingress_enabled=True,
            ingress_class_name="nginx",
            ingress_rules=(IngressRule(host="web.example.com", path="/app", path_type="Exact"),),
            ingress_tls=(IngressTLS(secret_name="web-tls", hosts=("web.example.com",)),),
        ),
        Deployment(app_name=""),
    ),
    daemon_sets=(
        DaemonSet(
            app_name="agent",
            service_enabled=True,
            target_port=2020,
            node_selector=KeyValueMap.from_dict({"kubernetes.io/os": "linux"}),
        ),
    ),
)


class TestSettingsAndWorkloads:
    """Tests for project settings and workload entries in project files."""

    @pytest.mark.parametrize("name", ["project.json", "project.yaml"])
    def test_round_trip(self, tmp_path, name):
        """Test that settings, ingress and node selectors survive a save and load."""
        path = tmp_path / name

        save_project(WORKLOAD_PROJECT, str(path))

        assert load_project(str(path)) == WORKLOAD_PROJECT

    def test_settings_written_first(self):
        """Test the settings block of a project file."""
        data = project_to_dict(WORKLOAD_PROJECT)

        assert list(data)[0] == "settings"
        assert data["settings"] == {"name": "shop", "globalLabels": {"team": "web"}}
        assert data["deployments"][0]["ingress"]["rules"] == [
            {"host": "web.example.com", "path": "/app", "pathType": "Exact"},
        ]

    def test_missing_settings_are_defaults(self):
        """Test that files without settings load with default settings."""
        assert project_from_dict({"namespaces": []}).settings == ProjectSettings()

    def test_workload_defaults(self):
        """Test the defaults of a sparse Deployment entry and the bare ingress flag."""
        project = project_from_dict({"deployments": [{"appName": "web", "ingressEnabled": True}]})

        [deployment] = project.deployments
        assert deployment.ingress_enabled
        assert deployment.port == 80
        assert deployment.target_port == 8080
        assert deployment.service_type == "ClusterIP"
        assert deployment.namespace == "default"
        assert len(deployment.containers) == 1

    def test_bad_settings(self):
        """Test that malformed settings report their location."""
        with pytest.raises(ProjectFormatError) as excinfo:
            project_from_dict({"settings": {"globalLabels": ["team"]}})

        assert excinfo.value.path == "settings.globalLabels"


class TestProjectFileErrors:
    """Tests for malformed project files."""

    def test_unsupported_suffix(self, tmp_path):
        """Test that only JSON and YAML files are accepted."""
        path = tmp_path / "project.txt"
        path.write_text("{}", encoding="utf-8")

        with pytest.raises(ProjectFormatError) as excinfo:
            load_project(str(path))

        assert ".txt" in str(excinfo.value)

    def test_invalid_json(self, tmp_path):
        """Test that unparsable JSON raises ProjectFormatError."""
        path = tmp_path / "project.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ProjectFormatError):
            load_project(str(path))

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_project(str(tmp_path / "missing.yaml"))

    def test_top_level_must_be_mapping(self):
        """Test that a list at the top level is rejected."""
        with pytest.raises(ProjectFormatError) as excinfo:
            project_from_dict([])

        assert excinfo.value.path == "project"

    def test_entry_error_has_location(self):
        """Test that field errors name the entry."""
        with pytest.raises(ProjectFormatError) as excinfo:
            project_from_dict({"jobs": [{"name": "a"}, {"name": "b", "replicas": "two"}]})

        assert excinfo.value.path == "jobs[1].replicas"

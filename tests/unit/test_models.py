"""Tests for the resource model."""

import dataclasses
import json

import pytest

from kubecomposer.k8s.models import (
    ClusterRole,
    Container,
    CronJob,
    EnvVar,
    Job,
    KeyValueMap,
    PolicyRule,
    Project,
    ProjectSettings,
    ResourceQuantities,
    ResourceRequirements,
    Role,
    RoleBinding,
    RoleRef,
    Subject,
    docker_config_json,
    new_cluster_role,
    new_container,
    new_cronjob,
    new_docker_registry_secret,
    new_job,
    new_role,
    new_role_binding,
    new_subject,
)


class TestKeyValueMap:
    """Tests for the ordered key-unique map."""

    def test_set_appends_new_keys_in_order(self):
        """Test that new keys keep insertion order."""
        labels = KeyValueMap().set("app", "sync").set("team", "data")

        assert labels.keys() == ("app", "team")
        assert labels["team"] == "data"

    def test_set_existing_key_replaces_in_place(self):
        """Test that setting an existing key keeps its position."""
        labels = KeyValueMap.from_dict({"a": "1", "b": "2"}).set("a", "3")

        assert labels.items() == (("a", "3"), ("b", "2"))

    def test_from_pairs_keeps_keys_unique(self):
        """Test that repeated keys keep the first position and the last value."""
        labels = KeyValueMap.from_pairs([("a", "1"), ("b", "2"), ("a", "3")])

        assert labels.items() == (("a", "3"), ("b", "2"))
        assert len(labels) == 2

    def test_remove_drops_key(self):
        """Test that remove drops a key and ignores unknown keys."""
        labels = KeyValueMap.from_dict({"a": "1", "b": "2"})

        assert labels.remove("a").keys() == ("b",)
        assert labels.remove("missing") == labels

    def test_rename_keeps_position_and_uniqueness(self):
        """Test that rename keeps position and drops a clashing entry."""
        labels = KeyValueMap.from_dict({"a": "1", "b": "2", "c": "3"})

        assert labels.rename("b", "x").items() == (("a", "1"), ("x", "2"), ("c", "3"))
        assert labels.rename("a", "c").items() == (("c", "1"), ("b", "2"))

    def test_mapping_helpers(self):
        """Test get, contains, iteration and to_dict."""
        labels = KeyValueMap.from_dict({"a": "1"})

        assert "a" in labels
        assert "b" not in labels
        assert labels.get("b") is None
        assert labels.get("b", "x") == "x"
        assert list(labels) == ["a"]
        assert labels.to_dict() == {"a": "1"}
        with pytest.raises(KeyError):
            labels["b"]

    def test_empty_map_is_falsy(self):
        """Test that an empty map is falsy."""
        assert not KeyValueMap()
        assert KeyValueMap.from_dict(None) == KeyValueMap()


class TestDefaults:
    """Tests for constructor defaults."""

    def test_job_defaults(self):
        """Test that a new Job starts with one empty container and batch defaults."""
        job = new_job()

        assert job.namespace == "default"
        assert job.restart_policy == "Never"
        assert job.replicas == 1
        assert job.completions == 1
        assert job.backoff_limit == 6
        assert len(job.containers) == 1
        assert job.kind == "Job"

    def test_container_defaults(self):
        """Test that containers start with 100m/128Mi requests and blank limits."""
        container = new_container()

        assert container.name == ""
        assert container.image == ""
        assert container.resources.requests == ResourceQuantities(cpu="100m", memory="128Mi")
        assert container.resources.limits == ResourceQuantities()
        assert container.env == ()
        assert container.volume_mounts == ()

    def test_cronjob_defaults(self):
        """Test that CronJob extends Job with scheduling defaults."""
        cronjob = new_cronjob(name="nightly")

        assert isinstance(cronjob, Job)
        assert cronjob.kind == "CronJob"
        assert cronjob.concurrency_policy == "Allow"
        assert cronjob.schedule == ""
        assert cronjob.starting_deadline is None
        assert cronjob.backoff_limit == 6

    def test_role_binding_defaults(self):
        """Test binding defaults and kind derived from scope."""
        binding = new_role_binding()
        cluster_binding = new_role_binding(cluster_scoped=True, name="ops")

        assert binding.kind == "RoleBinding"
        assert binding.role_ref == RoleRef(kind="Role", name="")
        assert binding.subjects == ()
        assert cluster_binding.kind == "ClusterRoleBinding"
        assert cluster_binding.role_ref.kind == "ClusterRole"

    def test_project_is_empty(self):
        """Test that a new project has empty collections."""
        project = Project()

        assert project.jobs == ()
        assert project.role_bindings == ()


class TestRecords:
    """Tests for record behavior."""

    def test_records_are_frozen(self):
        """Test that records cannot be mutated in place."""
        job = Job(name="sync-job")

        with pytest.raises(dataclasses.FrozenInstanceError):
            job.name = "other"

    def test_env_var_constructors(self):
        """Test literal and reference env var constructors."""
        literal = EnvVar.literal("MODE", "fast")
        reference = EnvVar.reference("LOG_LEVEL", "configMap", "app-config", "level")

        assert not literal.is_reference
        assert literal.value == "fast"
        assert reference.is_reference
        assert reference.value is None
        assert reference.value_from.name == "app-config"
        assert reference.value_from.key == "level"

    def test_effective_limits_fall_back_to_requests(self):
        """Test that a blank limit falls back to its request."""
        resources = ResourceRequirements(
            requests=ResourceQuantities(cpu="100m", memory="128Mi"),
            limits=ResourceQuantities(cpu="500m", memory=""),
        )

        assert resources.has_limits
        assert resources.effective_limits() == ResourceQuantities(cpu="500m", memory="128Mi")
        assert not ResourceRequirements().has_limits

    def test_command_tokens_split_on_whitespace(self):
        """Test that command and args split on any whitespace."""
        container = Container(command="sh  -c", args="echo\thello")

        assert container.command_tokens == ["sh", "-c"]
        assert container.args_tokens == ["echo", "hello"]
        assert Container().command_tokens == []


class TestRbacRecords:
    """Tests for RBAC helpers."""

    def test_subject_api_group_follows_kind(self):
        """Test that apiGroup is derived from the subject kind."""
        assert Subject(kind="User").api_group == "rbac.authorization.k8s.io"
        assert Subject(kind="Group").api_group == "rbac.authorization.k8s.io"
        assert Subject(kind="ServiceAccount").api_group == ""
        assert RoleRef().api_group == "rbac.authorization.k8s.io"

    def test_new_subject_service_account(self):
        """Test that ServiceAccount subjects start as default with blank namespace."""
        subject = new_subject("ServiceAccount")

        assert subject.name == "default"
        assert subject.namespace == ""

    def test_new_subject_user_has_no_namespace(self):
        """Test that User subjects start blank without a namespace."""
        subject = new_subject("User")

        assert subject.name == ""
        assert subject.namespace is None

    def test_new_role_from_template(self):
        """Test that a role template fills in rules."""
        role = new_role("pod-reader", name="pod-reader")

        assert isinstance(role, Role)
        assert role.rules == (PolicyRule(api_groups=("",), resources=("pods",), verbs=("get", "list", "watch")),)

    def test_new_cluster_role_from_template(self):
        """Test that a cluster role template fills in rules."""
        cluster_role = new_cluster_role("cluster-admin", name="admin")

        assert isinstance(cluster_role, ClusterRole)
        assert cluster_role.rules[0].verbs == ("*",)

    def test_new_role_without_template_has_no_rules(self):
        """Test that a blank role has no rules."""
        assert new_role(name="custom").rules == ()

    def test_unscoped_binding_kind(self):
        """Test that the binding kind follows the scope flag."""
        assert RoleBinding(is_cluster_scoped=False).kind == "RoleBinding"
        assert RoleBinding(is_cluster_scoped=True).kind == "ClusterRoleBinding"


class TestRegistrySecrets:
    """Tests for image pull Secrets built from registry credentials."""

    def test_docker_config_json(self):
        """Test the auths payload and its basic-auth token."""
        payload = json.loads(docker_config_json("registry.example.com", "bot", "token", "bot@example.com"))

        assert payload == {
            "auths": {
                "registry.example.com": {
                    "username": "bot",
                    "password": "token",
                    "email": "bot@example.com",
                    "auth": "Ym90OnRva2Vu",
                },
            },
        }

    def test_compact_output(self):
        """Test that the payload is a single compact line."""
        assert " " not in docker_config_json("https://index.docker.io/v1/", "bot", "token")

    def test_new_docker_registry_secret(self):
        """Test that the Secret defaults to Docker Hub and takes other fields."""
        secret = new_docker_registry_secret("hub-pull", "bot", "token", namespace="data")

        assert secret.name == "hub-pull"
        assert secret.namespace == "data"
        assert secret.type == "kubernetes.io/dockerconfigjson"
        assert list(json.loads(secret.data[".dockerconfigjson"])["auths"]) == ["https://index.docker.io/v1/"]


class TestProjectSettings:
    """Tests for project-wide labels."""

    def test_defaults_add_nothing(self):
        """Test that empty settings leave labels unchanged."""
        labels = KeyValueMap.from_dict({"app": "web"})

        assert ProjectSettings().merged_labels(labels) == labels

    def test_own_labels_win_and_project_last(self):
        """Test merge order and precedence."""
        settings = ProjectSettings(name="shop", global_labels=KeyValueMap.from_dict({"team": "web", "tier": "x"}))

        merged = settings.merged_labels(KeyValueMap.from_dict({"tier": "db", "project": "mine"}))

        assert merged.items() == (("team", "web"), ("tier", "db"), ("project", "shop"))

    def test_project_defaults_to_empty_settings(self):
        """Test that a new project has default settings."""
        assert Project().settings == ProjectSettings()

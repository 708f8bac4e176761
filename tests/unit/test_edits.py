"""Tests for pure record edits."""

import pytest

from kubecomposer.k8s.edits import (
    add_container,
    add_env_var,
    add_rule,
    add_subject,
    add_volume_mount,
    append,
    duplicate_at,
    duplicate_container,
    remove_at,
    remove_container,
    remove_data_key,
    remove_label,
    remove_subject,
    rename_label,
    replace_at,
    set_cluster_scoped,
    set_data,
    set_label,
    set_limits,
    set_requests,
    toggle_resource,
    toggle_verb,
    update_container,
    update_env_var,
    update_rule,
    update_subject,
    update_volume_mount,
    upsert,
    use_literal_value,
    use_reference,
    with_fields,
    with_subject_kind,
)
from kubecomposer.k8s.models import (
    ConfigMap,
    Container,
    EnvVar,
    Job,
    PolicyRule,
    Role,
    RoleBinding,
    Subject,
)


class TestCollectionHelpers:
    """Tests for generic tuple helpers."""

    def test_append_and_remove_preserve_order(self):
        """Test that append and remove_at keep the other elements in order."""
        items = append(("a", "b"), "c")

        assert items == ("a", "b", "c")
        assert remove_at(items, 1) == ("a", "c")
        assert remove_at(items, 5) == items

    def test_replace_at(self):
        """Test that replace_at swaps exactly one element."""
        assert replace_at(("a", "b", "c"), 1, "x") == ("a", "x", "c")

    def test_replace_at_out_of_range(self):
        """Test that replace_at rejects an index outside the tuple."""
        with pytest.raises(IndexError):
            replace_at(("a",), 3, "x")

    def test_duplicate_named_record(self):
        """Test that duplicating [A] yields [A, A-copy]."""
        containers = (Container(name="worker", image="busybox"),)

        result = duplicate_at(containers, 0)

        assert [c.name for c in result] == ["worker", "worker-copy"]
        assert result[1].image == "busybox"

    def test_duplicate_unnamed_record_stays_unnamed(self):
        """Test that duplicating an unnamed record yields an empty name."""
        result = duplicate_at((Container(image="busybox"),), 0)

        assert [c.name for c in result] == ["", ""]

    def test_duplicate_inserts_after_source(self):
        """Test that the copy lands right after its source."""
        containers = (Container(name="a"), Container(name="b"))

        result = duplicate_at(containers, 0)

        assert [c.name for c in result] == ["a", "a-copy", "b"]

    def test_duplicate_record_without_name(self):
        """Test that records without a name field are copied as is."""
        rules = (PolicyRule(resources=("pods",), verbs=("get",)),)

        assert duplicate_at(rules, 0) == rules + rules

    def test_upsert_appends_or_replaces(self):
        """Test that upsert appends new entries and replaces edited ones."""
        items = ("a", "b")

        assert upsert(items, "c") == ("a", "b", "c")
        assert upsert(items, "x", editing_index=0) == ("x", "b")

    def test_with_fields_returns_new_record(self):
        """Test that with_fields leaves the original untouched."""
        job = Job(name="old")

        updated = with_fields(job, name="new")

        assert updated.name == "new"
        assert job.name == "old"


class TestContainerEdits:
    """Tests for container, env var and volume mount edits."""

    def test_add_update_remove_container(self):
        """Test container lifecycle within a workload."""
        job = add_container(Job(name="sync-job"))
        assert len(job.containers) == 2

        job = update_container(job, 1, name="sidecar", image="envoy")
        assert job.containers[1].name == "sidecar"

        job = remove_container(job, 0)
        assert [c.name for c in job.containers] == ["sidecar"]

    def test_duplicate_container(self):
        """Test that duplicate_container names the copy."""
        job = Job(containers=(Container(name="sync"),))

        assert [c.name for c in duplicate_container(job, 0).containers] == ["sync", "sync-copy"]

    def test_set_requests_and_limits(self):
        """Test that resource setters only touch the given values."""
        container = set_requests(Container(), cpu="250m")
        container = set_limits(container, memory="1Gi")

        assert container.resources.requests.cpu == "250m"
        assert container.resources.requests.memory == "128Mi"
        assert container.resources.limits.memory == "1Gi"
        assert container.resources.limits.cpu == ""

        cleared = set_limits(container, memory="")
        assert not cleared.resources.has_limits

    def test_env_var_edits(self):
        """Test adding and updating env vars."""
        container = add_env_var(Container(), EnvVar.literal("MODE", "fast"))
        container = update_env_var(container, 0, value="slow")

        assert container.env == (EnvVar.literal("MODE", "slow"),)

    def test_switch_env_var_source(self):
        """Test switching between a literal value and a reference."""
        env = use_reference(EnvVar.literal("LOG_LEVEL", "info"), "configMap", "app-config", "level")

        assert env.value is None
        assert env.value_from.name == "app-config"

        env = use_literal_value(env, "debug")
        assert env.value == "debug"
        assert env.value_from is None

    def test_volume_mount_edits(self):
        """Test adding and updating volume mounts."""
        container = add_volume_mount(Container())
        container = update_volume_mount(container, 0, name="data", mount_path="/data")

        assert container.volume_mounts[0].mount_path == "/data"


class TestRbacEdits:
    """Tests for rule and subject edits."""

    def test_rule_edits(self):
        """Test adding, updating and toggling rule fields."""
        role = add_rule(Role(name="reader"))
        role = update_rule(role, 0, resources=("pods",))
        rule = toggle_verb(role.rules[0], "get")
        rule = toggle_verb(rule, "list")
        rule = toggle_verb(rule, "get")
        rule = toggle_resource(rule, "services")

        assert rule.verbs == ("list",)
        assert rule.resources == ("pods", "services")
        assert rule.api_groups == ("",)

    def test_with_subject_kind_service_account(self):
        """Test that switching to ServiceAccount sets name default and blank namespace."""
        subject = with_subject_kind(Subject(kind="User", name="jane"), "ServiceAccount")

        assert subject == Subject(kind="ServiceAccount", name="default", namespace="")
        assert subject.api_group == ""

    def test_with_subject_kind_user_drops_namespace(self):
        """Test that switching away from ServiceAccount clears name and namespace."""
        subject = with_subject_kind(Subject(kind="ServiceAccount", name="runner", namespace="data"), "Group")

        assert subject == Subject(kind="Group", name="", namespace=None)

    def test_with_same_kind_keeps_subject(self):
        """Test that re-selecting the same kind is a no-op."""
        subject = Subject(kind="User", name="jane")

        assert with_subject_kind(subject, "User") is subject

    def test_subject_edits(self):
        """Test adding, updating and removing subjects."""
        binding = add_subject(RoleBinding(name="read-pods"))
        binding = update_subject(binding, 0, kind="ServiceAccount", namespace="data")

        assert binding.subjects == (Subject(kind="ServiceAccount", name="default", namespace="data"),)
        assert remove_subject(binding, 0).subjects == ()

    def test_set_cluster_scoped_clears_namespace(self):
        """Test that a ClusterRoleBinding loses its namespace."""
        binding = set_cluster_scoped(RoleBinding(name="b", namespace="data"), True)

        assert binding.is_cluster_scoped
        assert binding.namespace == ""
        assert not set_cluster_scoped(binding, False).is_cluster_scoped


class TestMapEdits:
    """Tests for label and data edits."""

    def test_label_edits(self):
        """Test setting, renaming and removing labels."""
        job = set_label(Job(), "app", "sync")
        job = set_label(job, "team", "data")
        job = rename_label(job, "app", "app.kubernetes.io/name")

        assert job.labels.keys() == ("app.kubernetes.io/name", "team")
        assert remove_label(job, "team").labels.keys() == ("app.kubernetes.io/name",)

    def test_data_edits(self):
        """Test setting and removing data keys."""
        config_map = set_data(ConfigMap(name="cfg"), "LOG_LEVEL", "info")

        assert config_map.data["LOG_LEVEL"] == "info"
        assert len(remove_data_key(config_map, "LOG_LEVEL").data) == 0

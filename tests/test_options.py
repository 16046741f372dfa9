import pytest

from thanos_manifests.options import (
    DEFAULT_LOG_FORMAT,
    DEFAULT_LOG_LEVEL,
    DEFAULT_THANOS_IMAGE,
    DEFAULT_THANOS_VERSION,
    Additional,
    InMemoryCacheConfig,
    Options,
    RelabelConfig,
    RelabelConfigs,
    augment_with_options,
    get_label_selector_for_owner,
    sanitize_name,
    validate_and_sanitize_name_to_valid_label_value,
    validate_and_sanitize_resource_name,
)


def test_default_container_image():
    assert Options().get_container_image() == DEFAULT_THANOS_IMAGE + ":" + DEFAULT_THANOS_VERSION


def test_custom_container_image():
    opts = Options(image="quay.io/thanos/thanos", version="latest")
    assert opts.get_container_image() == "quay.io/thanos/thanos:latest"


def test_empty_image_uses_default():
    assert Options(image="", version="").get_container_image() == "quay.io/thanos/thanos:v0.35.1"


def test_default_flags():
    assert Options().to_flags() == [
        f"--log.level={DEFAULT_LOG_LEVEL}",
        f"--log.format={DEFAULT_LOG_FORMAT}",
    ]


def test_custom_flags():
    opts = Options(log_level="debug", log_format="json")
    assert opts.to_flags() == ["--log.level=debug", "--log.format=json"]


def test_relabel_config_hashmod():
    r = RelabelConfig(source_label="any", target_label="some_target", modulus=1, action="hashmod")
    assert str(r) == (
        '\n- action: hashmod\n  source_labels: ["any"]\n  target_label: some_target\n  modulus: 1'
    )


def test_relabel_config_keep():
    r = RelabelConfig(source_label="any", target_label="some_target", regex="^test", action="keep")
    assert str(r) == (
        '\n- action: keep\n  source_labels: ["any"]\n  target_label: some_target\n  regex: ^test'
    )


def test_relabel_config_without_target():
    r = RelabelConfig(source_label="any", regex="^test", action="drop")
    assert str(r) == '\n- action: drop\n  source_labels: ["any"]\n  regex: ^test'


def test_relabel_configs_to_flags():
    rc = RelabelConfigs(
        [
            RelabelConfig(source_label="any", target_label="some_target", modulus=1, action="hashmod"),
            RelabelConfig(source_label="any", target_label="some_target", regex="^test", action="keep"),
        ]
    )
    assert rc.to_flags() == (
        "--selector.relabel-config="
        '\n- action: hashmod\n  source_labels: ["any"]\n  target_label: some_target\n  modulus: 1'
        '\n- action: keep\n  source_labels: ["any"]\n  target_label: some_target\n  regex: ^test'
    )


@pytest.mark.parametrize(
    "config, expected",
    [
        (InMemoryCacheConfig(), "type: IN-MEMORY\nconfig:\n"),
        (InMemoryCacheConfig(max_size="100MB"), "type: IN-MEMORY\nconfig:\n  max_size: 100MB\n"),
        (
            InMemoryCacheConfig(max_item_size="10MB"),
            "type: IN-MEMORY\nconfig:\n  max_item_size: 10MB\n",
        ),
        (
            InMemoryCacheConfig(max_size="100MB", max_item_size="10MB"),
            "type: IN-MEMORY\nconfig:\n  max_size: 100MB\n  max_item_size: 10MB\n",
        ),
    ],
)
def test_in_memory_cache_config(config, expected):
    assert str(config) == expected


def test_resource_name_valid_is_unchanged():
    assert validate_and_sanitize_resource_name("thanos-query.valid") == "thanos-query.valid"


def test_resource_name_sanitized():
    assert validate_and_sanitize_resource_name("Foo_Bar:baz") == "foo-bar-baz"


def test_resource_name_long_is_hashed():
    name = "A" * 300
    result = validate_and_sanitize_resource_name(name)
    assert len(result) == 63
    assert result.startswith("a" * 31 + "-")
    assert validate_and_sanitize_resource_name(result) == result


def test_label_value_valid_is_unchanged():
    assert validate_and_sanitize_name_to_valid_label_value("My_Value.1") == "My_Value.1"


def test_label_value_sanitized():
    assert validate_and_sanitize_name_to_valid_label_value("a/b c") == "a-b-c"


def test_sanitize_name_replaces_bad_chars():
    assert sanitize_name("a.b_c") == "a-b-c"


def test_sanitize_name_long():
    result = sanitize_name("x" * 80)
    assert len(result) == 63
    assert result.startswith("x" * 46 + "-")


class _Builder:
    def get_selector_labels(self):
        return {
            "app.kubernetes.io/name": "thanos-query",
            "app.kubernetes.io/instance": "thanos-query-any",
            "operator.thanos.io/owner": "any",
        }


def test_label_selector_for_owner_drops_instance():
    assert get_label_selector_for_owner(_Builder()) == {
        "app.kubernetes.io/name": "thanos-query",
        "operator.thanos.io/owner": "any",
    }


def test_label_selector_for_owner_none():
    assert get_label_selector_for_owner(None) is None


def _deployment():
    return {
        "kind": "Deployment",
        "spec": {"template": {"spec": {"containers": [{"name": "main", "ports": [{"name": "http"}]}]}}},
    }


def test_augment_deployment():
    obj = _deployment()
    opts = Options(
        image="img",
        version="v1",
        resource_requirements={"limits": {"cpu": "1"}},
        additional=Additional(
            volume_mounts=[{"name": "vm"}],
            containers=[{"name": "sidecar"}],
            volumes=[{"name": "vol"}],
            ports=[{"name": "extra"}],
            env=[{"name": "E", "value": "1"}],
        ),
    )
    augment_with_options(obj, opts)
    pod = obj["spec"]["template"]["spec"]
    main = pod["containers"][0]
    assert main["image"] == "img:v1"
    assert main["resources"] == {"limits": {"cpu": "1"}}
    assert main["volumeMounts"] == [{"name": "vm"}]
    assert [c["name"] for c in pod["containers"]] == ["main", "sidecar"]
    assert pod["volumes"] == [{"name": "vol"}]
    assert main["ports"] == [{"name": "http"}, {"name": "extra"}]
    assert main["env"] == [{"name": "E", "value": "1"}]
    assert "volumeMounts" not in pod["containers"][1]


def test_augment_statefulset_without_additions():
    obj = _deployment()
    obj["kind"] = "StatefulSet"
    augment_with_options(obj, Options())
    main = obj["spec"]["template"]["spec"]["containers"][0]
    assert main == {"name": "main", "ports": [{"name": "http"}], "image": "quay.io/thanos/thanos:v0.35.1"}


def test_augment_other_kind_untouched():
    obj = {"kind": "Service", "spec": {"ports": []}}
    augment_with_options(obj, Options(image="img"))
    assert obj == {"kind": "Service", "spec": {"ports": []}}
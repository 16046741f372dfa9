# thanos-manifests

Helpers for producing and reconciling the Kubernetes objects that run Thanos
components. Objects are plain Python dictionaries in the same shape as
Kubernetes manifests, so they can be dumped to YAML or JSON or handed to any
client.

## Modules

- `thanos_manifests.labels`: the standard label keys (`NAME_LABEL`,
  `OWNER_LABEL`, ...), `merge_labels`, `build_label_selector_from` (returns a
  `Selector` with a `matches(labels)` method), `EndpointType`, and
  `sanitize_store_api_endpoint_labels`, which keeps only the highest-priority
  endpoint label (group-strict, group, strict, regular) and changes the mapping
  in place.
- `thanos_manifests.options`: `Options` (owner, namespace, replicas, labels,
  annotations, image, version, log settings, `Additional` extras), with
  `to_flags()` and `get_container_image()` falling back to `info`, `logfmt`
  and `quay.io/thanos/thanos:v0.35.1`. Also `RelabelConfig`,
  `RelabelConfigs.to_flags()`, `InMemoryCacheConfig`, `CacheConfig`,
  `get_label_selector_for_owner`, `validate_and_sanitize_resource_name`,
  `validate_and_sanitize_name_to_valid_label_value`, `sanitize_name` and
  `augment_with_options`, which applies image, resources and extra
  containers, volumes, mounts, ports and env to a Deployment or StatefulSet.
- `thanos_manifests.pdb`: `new_pod_disruption_budget` and
  `PodDisruptionBudgetOptions`; `maxUnavailable` defaults to 1.
- `thanos_manifests.mutations`: `mutate_func_for(existing, desired)` returns a
  callable that merges labels and annotations, copies owner references and the
  managed fields of ConfigMap, Secret, Service, ServiceAccount, Deployment,
  StatefulSet, ServiceMonitor and PodDisruptionBudget onto `existing`. Other
  kinds raise `MutationError`. Workload selectors are only set on objects that
  have no `creationTimestamp` yet.
- `thanos_manifests.handlers`: `Handler(client, logger=None)` with
  `create_or_update`, `delete_resource`, `get_endpoint_slices`,
  `set_feature_gates` / `is_feature_gated` (gates are `(apiVersion, kind)`
  pairs) and `new_resource_pruner()`. `ResourcePruner` is enabled per kind
  (`with_service_account()`, `with_config_map()`, ...) and `prune(keep_names,
  namespace, match_labels)` deletes everything else. The write methods return
  the number of errors rather than raising. `InMemoryClient` is a client that
  stores objects in memory; `NotFoundError` signals a missing object.
- `thanos_manifests.query`: `QueryOptions` (an `Options` with replica labels,
  timeout, lookback delta, max concurrency and `Endpoint`s),
  `new_query_deployment`, `new_query_service`, `query_args`,
  `get_required_labels` and `get_labels`.

## Example

```python
from thanos_manifests.query import QueryOptions, new_query_deployment

opts = QueryOptions(
    owner="example",
    namespace="monitoring",
    timeout="15m",
    lookback_delta="5m",
    max_concurrent=20,
)
deployment = new_query_deployment(opts)
print(deployment["metadata"]["name"])  # thanos-query-example
```

## What it does not do

The package does not talk to a Kubernetes API server: the only client it
ships is `InMemoryClient`, and a real cluster needs a client object with the
same `get`, `list`, `create`, `update`, `delete` and `is_namespaced` methods.
It has no command-line program and no controller loop, and of the Thanos
components it only builds Query resources (Deployment and Service).

## Tests

Install the `test` extra, then run `pytest` from the project directory.
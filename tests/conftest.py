# tests/conftest.py

import copy

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from vpa_controller.config import OWNERSHIP_LABELS, UPDATE_MODE_KEY


class FakeCustomObjectsApi:
    """
    In-memory stand-in for CustomObjectsApi, holding VPA objects keyed by
    (namespace, name). Records every write call.
    """

    def __init__(self):
        self.objects = {}
        self.calls = []
        self._version = 0

    def add(self, obj):
        obj = copy.deepcopy(obj)
        self._version += 1
        obj["metadata"]["resourceVersion"] = str(self._version)
        self.objects[(obj["metadata"]["namespace"], obj["metadata"]["name"])] = obj
        return obj

    def _select(self, items, label_selector):
        wanted = dict(pair.split("=", 1) for pair in label_selector.split(",")) if label_selector else {}
        return [
            copy.deepcopy(obj) for obj in items
            if all((obj["metadata"].get("labels") or {}).get(k) == v for k, v in wanted.items())
        ]

    def list_namespaced_custom_object(self, group, version, namespace, plural, label_selector=None, **kwargs):
        items = [obj for (ns, _), obj in sorted(self.objects.items()) if ns == namespace]
        return {"items": self._select(items, label_selector)}

    def list_cluster_custom_object(self, group, version, plural, label_selector=None, **kwargs):
        items = [obj for _, obj in sorted(self.objects.items())]
        return {"items": self._select(items, label_selector)}

    def create_namespaced_custom_object(self, group, version, namespace, plural, body, **kwargs):
        self.calls.append(("create", namespace, body["metadata"]["name"]))
        if (namespace, body["metadata"]["name"]) in self.objects:
            raise ApiException(status=409, reason="AlreadyExists")
        return self.add(body)

    def replace_namespaced_custom_object(self, group, version, namespace, plural, name, body, **kwargs):
        self.calls.append(("replace", namespace, name))
        current = self.objects.get((namespace, name))
        if current is None:
            raise ApiException(status=404, reason="Not Found")
        if body["metadata"].get("resourceVersion") != current["metadata"]["resourceVersion"]:
            raise ApiException(status=409, reason="Conflict")
        body = copy.deepcopy(body)
        if "status" in current:
            body["status"] = current["status"]
        return self.add(body)

    def delete_namespaced_custom_object(self, group, version, namespace, plural, name, **kwargs):
        self.calls.append(("delete", namespace, name))
        if self.objects.pop((namespace, name), None) is None:
            raise ApiException(status=404, reason="Not Found")
        return {}

    def writes(self):
        return [call for call in self.calls if call[0] in ("create", "replace", "delete")]


def make_vpa(name, namespace="demo", kind="Deployment", target=None, update_mode="Off",
             labels=None, recommendations=None):
    """Build a VPA custom object dict."""
    obj = {
        "apiVersion": "autoscaling.k8s.io/v1",
        "kind": "VerticalPodAutoscaler",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": dict(OWNERSHIP_LABELS) if labels is None else labels,
        },
        "spec": {
            "targetRef": {"apiVersion": "apps/v1", "kind": kind, "name": target or name.rsplit("-", 1)[0]},
            "updatePolicy": {"updateMode": update_mode},
        },
    }
    if recommendations is not None:
        obj["status"] = {"recommendation": {"containerRecommendations": recommendations}}
    return obj


def make_container(name, requests=None, limits=None):
    return client.V1Container(
        name=name,
        resources=client.V1ResourceRequirements(requests=requests, limits=limits),
    )


def _pod_template(containers):
    return client.V1PodTemplateSpec(spec=client.V1PodSpec(containers=containers))


def make_deployment(name, namespace="demo", containers=None, labels=None, annotations=None):
    return client.V1Deployment(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels=labels, annotations=annotations),
        spec=client.V1DeploymentSpec(
            selector=client.V1LabelSelector(match_labels={"app": name}),
            template=_pod_template(containers or [make_container("app")]),
        ),
    )


def make_stateful_set(name, namespace="demo", containers=None, labels=None, annotations=None):
    return client.V1StatefulSet(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels=labels, annotations=annotations),
        spec=client.V1StatefulSetSpec(
            selector=client.V1LabelSelector(match_labels={"app": name}),
            service_name=name,
            template=_pod_template(containers or [make_container("app")]),
        ),
    )


def make_namespace(name="demo", enabled=None, update_mode=None):
    labels = {}
    if enabled is not None:
        labels["vpa-controller.io/enabled"] = enabled
    if update_mode is not None:
        labels[UPDATE_MODE_KEY] = update_mode
    return client.V1Namespace(metadata=client.V1ObjectMeta(name=name, labels=labels))


class FakeAppsV1Api:
    """In-memory stand-in for AppsV1Api list calls."""

    def __init__(self, deployments=None, stateful_sets=None):
        self.deployments = list(deployments or [])
        self.stateful_sets = list(stateful_sets or [])

    def _in(self, items, namespace):
        return [item for item in items if item.metadata.namespace == namespace]

    def list_namespaced_deployment(self, namespace, **kwargs):
        return client.V1DeploymentList(items=self._in(self.deployments, namespace), metadata=client.V1ListMeta())

    def list_deployment_for_all_namespaces(self, **kwargs):
        return client.V1DeploymentList(items=list(self.deployments), metadata=client.V1ListMeta())

    def list_namespaced_stateful_set(self, namespace, **kwargs):
        return client.V1StatefulSetList(items=self._in(self.stateful_sets, namespace), metadata=client.V1ListMeta())

    def list_stateful_set_for_all_namespaces(self, **kwargs):
        return client.V1StatefulSetList(items=list(self.stateful_sets), metadata=client.V1ListMeta())


@pytest.fixture
def custom_api():
    return FakeCustomObjectsApi()


@pytest.fixture
def apps_api():
    return FakeAppsV1Api()


@pytest.fixture(autouse=True)
def no_retry_sleep(monkeypatch):
    """Keep conflict retries from sleeping."""
    monkeypatch.setattr("vpa_controller.vpa_client.time.sleep", lambda seconds: None)

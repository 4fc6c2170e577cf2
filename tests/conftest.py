import copy

import pytest

import mutate
from models import Node, Metadata


NODES = {
    "ip-10-0-1-156": {"visenze.component": "worker"},
    "ip-10-0-1-157": {},
}


class FakeProvider:
    def __init__(self, timeout=None):
        self.timeout = timeout
        self.calls = []

    def get_node(self, node_name):
        self.calls.append(node_name)
        return Node(metadata=Metadata(name=node_name, labels=NODES[node_name]))


DAEMONSET_POD = {
    "metadata": {
        "name": "fluentd-x7k2p",
        "namespace": "kube-system",
        "ownerReferences": [
            {
                "apiVersion": "apps/v1",
                "kind": "DaemonSet",
                "name": "fluentd",
                "uid": "b8a4c4c2-0000-0000-0000-000000000000",
                "controller": True,
            }
        ],
    },
    "spec": {
        "schedulerName": "default-scheduler",
        "affinity": {
            "nodeAffinity": {
                "requiredDuringSchedulingIgnoredDuringExecution": {
                    "nodeSelectorTerms": [
                        {
                            "matchFields": [
                                {
                                    "key": "metadata.name",
                                    "operator": "In",
                                    "values": ["ip-10-0-1-156"],
                                }
                            ]
                        }
                    ]
                }
            }
        },
        "containers": [{"name": "fluentd", "image": "fluentd:v1"}],
    },
}


@pytest.fixture()
def fake_provider():
    return FakeProvider()


@pytest.fixture()
def daemonset_pod():
    return copy.deepcopy(DAEMONSET_POD)


@pytest.fixture()
def review(daemonset_pod):
    return {
        "apiVersion": "admission.k8s.io/v1",
        "kind": "AdmissionReview",
        "request": {
            "uid": "705ab4f5-6393-11e8-b7cc-42010a800002",
            "namespace": "kube-system",
            "operation": "CREATE",
            "object": daemonset_pod,
        },
    }


@pytest.fixture()
def make_app():
    def _make_app(**config):
        return mutate.create_app(
            **{"PROVIDER": FakeProvider, "TESTING": True, **config}
        )

    return _make_app


@pytest.fixture()
def app(make_app):
    app = make_app()
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()

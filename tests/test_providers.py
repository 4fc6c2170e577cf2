import pytest

from unittest import mock

import providers

from exc import ProviderError


@pytest.fixture()
def node_resource():
    with mock.patch("providers.config.load_config"), mock.patch(
        "providers.client.ApiClient"
    ), mock.patch("providers.DynamicClient") as mock_dynamic_client:
        resource = mock.Mock()
        mock_dynamic_client.return_value.resources.get.return_value = resource
        yield resource


def test_get_node(node_resource):
    node_resource.get.return_value.to_dict.return_value = {
        "apiVersion": "v1",
        "kind": "Node",
        "metadata": {
            "name": "ip-10-0-1-156",
            "labels": {"visenze.component": "worker"},
            "resourceVersion": "1234",
        },
        "status": {"phase": "Running"},
    }

    provider = providers.KubernetesProvider(timeout=3)
    node = provider.get_node("ip-10-0-1-156")

    node_resource.get.assert_called_once_with(name="ip-10-0-1-156", _request_timeout=3)
    assert node.metadata.name == "ip-10-0-1-156"
    assert node.metadata.labels == {"visenze.component": "worker"}


def test_get_node_without_timeout(node_resource):
    node_resource.get.return_value.to_dict.return_value = {"metadata": {}}

    providers.KubernetesProvider().get_node("node-a")

    node_resource.get.assert_called_once_with(name="node-a")


def test_config_failure():
    with mock.patch(
        "providers.config.load_config",
        side_effect=providers.config.ConfigException("no config"),
    ):
        with pytest.raises(ProviderError):
            providers.KubernetesProvider()

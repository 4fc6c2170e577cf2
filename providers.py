import logging

from kubernetes import config, client
from openshift.dynamic import DynamicClient
from typing_extensions import Protocol, override

from exc import ProviderError
from models import Node

LOG = logging.getLogger(__name__)


class NodeLookup(Protocol):
    def get_node(self, node_name: str) -> Node: ...


class KubernetesProvider(NodeLookup):
    def __init__(self, timeout: float | None = None):
        """Allocate a Kubernetes dynamic client and Node API client"""

        super().__init__()

        try:
            config.load_config()
        except config.ConfigException as err:
            LOG.warning("unable to configure Kubernetes client: %s", err)
            raise ProviderError("unable to configure Kubernetes client")

        k8s_client = client.ApiClient()
        dyn_client = DynamicClient(k8s_client)

        self._client = dyn_client
        self._timeout = timeout
        self._node_resource = dyn_client.resources.get(api_version="v1", kind="Node")

    @override
    def get_node(self, node_name):
        kwargs = {}
        if self._timeout is not None:
            kwargs["_request_timeout"] = self._timeout

        node_obj = self._node_resource.get(name=node_name, **kwargs)
        return Node.model_validate(node_obj.to_dict())

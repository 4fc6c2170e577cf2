"""Mutating admission webhook for DaemonSet pods.

The API server calls the webhook before a pod is persisted. DaemonSet pods
are not bound to a node yet at that point, but the DaemonSet controller pins
each of them to its node with a required node affinity on `metadata.name`.
We use that to find the node, read its labels, and hand both to a patch
builder that decides how the pod should be changed.

The webhook never denies a pod. Failures while resolving or inspecting the
node only mean that no patch is produced; an admission review we cannot
parse at all is rejected with an HTTP error.
"""

import logging
from collections.abc import Mapping
from types import MappingProxyType

import pydantic
from flask import Flask, abort, request, current_app
from pydantic_core import PydanticSerializationError
from typing_extensions import Protocol

from models import (
    AdmissionReview,
    AdmissionResponse,
    ControllerKind,
    Patch,
    PatchAction,
    PatchType,
    Pod,
    Status,
)

from providers import KubernetesProvider, NodeLookup
from exc import (
    ApplicationError,
    DecodeError,
    EncodeError,
    FetchError,
    NotFoundError,
)

LOG = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

NODE_NAME_FIELD = "metadata.name"


class PatchBuilder(Protocol):
    def __call__(
        self,
        pod: Pod,
        node_name: str,
        labels: Mapping[str, str],
        label_name: str,
    ) -> list[PatchAction]: ...


def build_patch(pod, node_name, labels, label_name):
    """Default patch policy.

    Looks for `label_name` on the node but does not act on it yet, so the
    result is always an empty patch. Replace it through the PATCH_BUILDER
    setting to mutate pods. Operations are applied by the API server in the
    order they are returned.
    """

    if label_name in labels:
        LOG.info("found the label, the value is %s", labels[label_name])

    return []


class DEFAULTS:
    LABEL_NAME = "visenze.component"
    VERBOSE = False
    NODE_LOOKUP_TIMEOUT = 5
    PROVIDER = KubernetesProvider
    PATCH_BUILDER = staticmethod(build_patch)


def json_patch_escape(val):
    return val.replace("~", "~0").replace("/", "~1")


def classify_owner(pod: Pod, verbose: bool = False) -> ControllerKind:
    owner_references = pod.metadata.ownerReferences
    if not owner_references:
        return ControllerKind.NONE

    # A pod has at most one controlling owner; only the first one is considered.
    kind = owner_references[0].kind
    if verbose:
        LOG.info("owner references type: %s", kind)

    return ControllerKind.from_kind(kind)


def resolve_node_name(pod: Pod) -> str:
    """Return the name of the node a pod is pinned to.

    The DaemonSet controller adds a required node affinity term like:

        nodeSelectorTerms:
          - matchFields:
              - key: metadata.name
                operator: In
                values: [ip-10-0-1-156.us-west-2.compute.internal]

    Raises NotFoundError if there is no such term, including when the pod
    has no node affinity at all.
    """

    for term in pod.node_selector_terms:
        for field in term.matchFields:
            if field.key == NODE_NAME_FIELD and field.values:
                return field.values[0]

    raise NotFoundError("can't find the node for the daemonset pod")


def inspect_node(provider: NodeLookup, node_name: str) -> Mapping[str, str]:
    try:
        node = provider.get_node(node_name)
    except Exception as err:
        LOG.warning("failed to get node %s: %s", node_name, err)
        raise FetchError(f"failed to get node {node_name}") from err

    return MappingProxyType(node.metadata.labels)


def mutate_daemonset_pod(
    provider: NodeLookup,
    pod: Pod,
    label_name: str = DEFAULTS.LABEL_NAME,
    patch_builder: PatchBuilder = build_patch,
    verbose: bool = False,
) -> list[PatchAction]:
    if classify_owner(pod, verbose) is not ControllerKind.DAEMONSET:
        return []

    try:
        node_name = resolve_node_name(pod)
    except NotFoundError as err:
        LOG.warning(
            "Can't find the node the pod (%s/%s) will run on: %s",
            pod.metadata.namespace,
            pod.metadata.name,
            err,
        )
        return []

    if verbose:
        LOG.info("node name: %s", node_name)
        LOG.info("scheduler name: %s", pod.spec.schedulerName)

    try:
        labels = inspect_node(provider, node_name)
    except FetchError:
        return []

    return list(patch_builder(pod, node_name, labels, label_name))


def mutate(
    body: bytes,
    provider: NodeLookup,
    label_name: str = DEFAULTS.LABEL_NAME,
    patch_builder: PatchBuilder = build_patch,
    verbose: bool = False,
) -> bytes:
    """Turn a serialized AdmissionReview request into a serialized
    AdmissionReview response.

    Returns an empty byte string if the review has no request. Raises
    DecodeError if the review or the pod it carries cannot be parsed, and
    EncodeError if the response cannot be serialized.
    """

    if verbose:
        LOG.info("recv: %s", body.decode(errors="replace"))

    try:
        review = AdmissionReview.model_validate_json(body)
    except pydantic.ValidationError as err:
        raise DecodeError(f"unmarshaling request failed with {err}") from err

    if review.request is None:
        return b""

    if review.request.object is None:
        raise DecodeError("unable to unmarshal pod object: request has no object")

    try:
        pod = Pod.model_validate(review.request.object)
    except pydantic.ValidationError as err:
        raise DecodeError(f"unable to unmarshal pod object: {err}") from err

    # The API server applies the patch; we only describe it.
    actions = mutate_daemonset_pod(provider, pod, label_name, patch_builder, verbose)
    LOG.info("patch for %s: %s", review.request.uid, actions)

    try:
        response = AdmissionResponse(
            allowed=True,
            uid=review.request.uid,
            patchType=PatchType.JSONPatch,
            patch=Patch(actions),
            status=Status(status="Success"),
        )
        out = AdmissionReview(
            apiVersion=review.apiVersion,
            kind=review.kind,
            response=response,
        )
        response_body = out.model_dump_json(exclude_none=True).encode()
    except (pydantic.ValidationError, PydanticSerializationError) as err:
        raise EncodeError(f"marshaling response failed with {err}") from err

    if verbose:
        LOG.info("resp: %s", response_body.decode())

    return response_body


def mutate_pod():
    if not request.is_json:
        abort(415)

    res = mutate(
        request.get_data(),
        current_app.provider,
        label_name=current_app.config["LABEL_NAME"],
        patch_builder=current_app.config["PATCH_BUILDER"],
        verbose=current_app.config["VERBOSE"],
    )
    return res, 200, {"content-type": "application/json"}


def handle_decodeerror(err):
    return str(err), 400, {"content-type": "text/plain"}


def handle_applicationerror(err):
    LOG.error("failed to process admission review: %s", err)
    return str(err), 500, {"content-type": "text/plain"}


def health():
    return "OK", 200, {"content-type": "text/plain"}


def create_app(**config) -> Flask:
    """Build the webhook app.

    Settings come from DEFAULTS, then from DSMUTATOR_* environment variables,
    then from keyword arguments, so tests can hand in a fake PROVIDER. The
    provider is created once here and shared by all requests.
    """

    app = Flask(__name__)
    app.config.from_object(DEFAULTS)
    app.config.from_prefixed_env("DSMUTATOR")
    if config:
        app.config.update(config)

    if not app.config.get("LABEL_NAME"):
        LOG.error("Missing label name configuration")
        raise SystemExit(1)

    app.provider = app.config["PROVIDER"](timeout=app.config["NODE_LOOKUP_TIMEOUT"])

    app.errorhandler(DecodeError)(handle_decodeerror)
    app.errorhandler(ApplicationError)(handle_applicationerror)
    app.add_url_rule("/healthz", view_func=health)
    app.add_url_rule("/mutate", view_func=mutate_pod, methods=["POST"])

    return app

import base64
from typing import Any, Literal
from pydantic import (
    BaseModel,
    Field,
    RootModel,
    model_serializer,
    model_validator,
    field_validator,
)
from enum import StrEnum


class ApiVersion(StrEnum):
    V1 = "admission.k8s.io/v1"
    V1BETA1 = "admission.k8s.io/v1beta1"


class Operation(StrEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CONNECT = "CONNECT"


class PatchType(StrEnum):
    JSONPatch = "JSONPatch"


class PatchOp(StrEnum):
    REPLACE = "replace"
    ADD = "add"
    REMOVE = "remove"


class ControllerKind(StrEnum):
    """Kind of the controller that owns a pod."""

    DAEMONSET = "DaemonSet"
    REPLICASET = "ReplicaSet"
    STATEFULSET = "StatefulSet"
    NONE = "None"
    OTHER = "Other"

    @classmethod
    def from_kind(cls, kind: str | None) -> "ControllerKind":
        if not kind:
            return cls.NONE
        if kind in (cls.DAEMONSET, cls.REPLICASET, cls.STATEFULSET):
            return cls(kind)
        return cls.OTHER


class PatchAction(BaseModel):
    op: PatchOp
    path: str
    value: Any = None

    @model_serializer(mode="wrap")
    def serialize(self, handler):
        data = handler(self)
        # Only remove operations go without a value; a null value is kept.
        if self.op is PatchOp.REMOVE:
            data.pop("value", None)
        return data


# https://jsonpatch.com/
Patch = RootModel[list[PatchAction]]


# https://kubernetes.io/docs/reference/generated/kubernetes-api/v1.30/#status-v1-meta
class Status(BaseModel):
    status: str | None = None
    message: str | None = None
    reason: str | None = None
    code: int | None = None


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionResponse
class AdmissionResponse(BaseModel):
    allowed: bool
    status: Status | None = None
    uid: str
    patchType: PatchType | None = None
    patch: str | None = None

    @field_validator("patch", mode="before")
    @classmethod
    def validate_patch(cls, val):
        if isinstance(val, Patch):
            val = base64.b64encode(
                val.model_dump_json().encode()
            ).decode()
        elif isinstance(val, (str, bytes)):
            # Make sure the base64 string contains valid data.
            Patch.model_validate_json(base64.b64decode(val))
            if isinstance(val, bytes):
                val = val.decode()
        return val

    @model_validator(mode="after")
    def validate_model(self):
        if self.patch and not self.patchType:
            raise ValueError("missing patchType field")

        return self

    def decoded_patch(self) -> Patch | None:
        if self.patch is None:
            return None
        return Patch.model_validate_json(base64.b64decode(self.patch))


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionRequest
class AdmissionRequest(BaseModel):
    uid: str = ""
    name: str | None = None
    namespace: str | None = None
    operation: Operation = Operation.CREATE
    object: dict[str, Any] | None = None


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionReview
class AdmissionReview(BaseModel):
    apiVersion: ApiVersion = ApiVersion.V1
    kind: Literal["AdmissionReview"] = "AdmissionReview"
    request: AdmissionRequest | None = None
    response: AdmissionResponse | None = None


class OwnerReference(BaseModel):
    apiVersion: str | None = None
    kind: str
    name: str | None = None
    uid: str | None = None
    controller: bool | None = None


class Metadata(BaseModel):
    name: str | None = None
    namespace: str | None = None
    labels: dict[str, str] = {}
    ownerReferences: list[OwnerReference] = []


# https://kubernetes.io/docs/reference/generated/kubernetes-api/v1.30/#nodeselectorrequirement-v1-core
class NodeSelectorRequirement(BaseModel):
    key: str
    operator: str | None = None
    values: list[str] = []


class NodeSelectorTerm(BaseModel):
    matchExpressions: list[NodeSelectorRequirement] = []
    matchFields: list[NodeSelectorRequirement] = []


class NodeSelector(BaseModel):
    nodeSelectorTerms: list[NodeSelectorTerm] = []


class NodeAffinity(BaseModel):
    requiredDuringSchedulingIgnoredDuringExecution: NodeSelector | None = None


class Affinity(BaseModel):
    nodeAffinity: NodeAffinity | None = None


class PodSpec(BaseModel):
    schedulerName: str | None = None
    nodeName: str | None = None
    affinity: Affinity | None = None


class Pod(BaseModel):
    metadata: Metadata = Field(default_factory=Metadata)
    spec: PodSpec | None = None

    @property
    def node_selector_terms(self) -> list[NodeSelectorTerm]:
        """Required node affinity terms, or an empty list if any part of
        spec.affinity.nodeAffinity.requiredDuringSchedulingIgnoredDuringExecution
        is missing."""

        try:
            affinity = self.spec.affinity.nodeAffinity
            selector = affinity.requiredDuringSchedulingIgnoredDuringExecution
        except AttributeError:
            return []

        return selector.nodeSelectorTerms if selector else []


class Node(BaseModel):
    metadata: Metadata = Field(default_factory=Metadata)

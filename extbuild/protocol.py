"""Wire schema for the plugin request/response protocol.

A plugin is spawned once per exchange with the verb as its only
argument. The request is written to its stdin as a single JSON document
and the response is read from its stdout. Responses are externally
tagged, exactly one of::

    {"Success": {...}}
    {"Failure": {"message": "..."}}
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

PLUGIN_PREFIX = "cargobuild-"

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class TargetKind(str, Enum):
    """Kind of artifact a plugin can describe."""

    BIN = "Bin"
    LIB = "Lib"


class TargetDescriptor(_WireModel):
    """A buildable artifact as described by the plugin."""

    kind: TargetKind
    name: str
    src_path: str


class TargetRequest(_WireModel):
    """Request body for the ``targets`` verb."""

    package_name: str
    package_root: str


class TargetSuccess(_WireModel):
    targets: list[TargetDescriptor]
    warnings: list[str]
    errors: list[str]


class TargetSuccessResponse(_WireModel):
    success: TargetSuccess = Field(alias="Success")


class OutputsRequest(_WireModel):
    """Request body for the ``outputs`` verb.

    Sent after the ``build`` verb has run for the same target. Paths in
    the response may be relative to ``out_dir``.
    """

    package_name: str
    package_root: str
    target: TargetDescriptor
    out_dir: str


class OutputsSuccess(_WireModel):
    outputs: list[str]


class OutputsSuccessResponse(_WireModel):
    success: OutputsSuccess = Field(alias="Success")


class Failure(_WireModel):
    message: str


class FailureResponse(_WireModel):
    """In-band failure reported by the plugin, shared by every verb."""

    failure: Failure = Field(alias="Failure")


TargetResponse = TargetSuccessResponse | FailureResponse
OutputsResponse = OutputsSuccessResponse | FailureResponse


# ---------------------------------------------------------------------------
# Verbs and protocol kinds
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Verb:
    """One operation a plugin can be asked to perform.

    ``request_model`` is None for verbs that are plain command
    invocations rather than a JSON exchange.
    """

    name: str
    request_model: type[BaseModel] | None = None
    response: TypeAdapter | None = None

    @property
    def is_exchange(self) -> bool:
        return self.request_model is not None


VERBS: dict[str, Verb] = {
    "build": Verb("build"),
    "targets": Verb("targets", TargetRequest, TypeAdapter(TargetResponse)),
    "outputs": Verb("outputs", OutputsRequest, TypeAdapter(OutputsResponse)),
}


@dataclass(frozen=True)
class ProtocolKind:
    """A family of plugins sharing a naming convention and verb set."""

    name: str
    noun: str
    verbs: frozenset[str]
    prefix: str = PLUGIN_PREFIX

    def supports(self, verb: str) -> bool:
        return verb in self.verbs


BUILD_SYSTEM = ProtocolKind(
    name="build-system",
    noun="build system",
    verbs=frozenset({"build", "targets", "outputs"}),
)
LANGUAGE = ProtocolKind(
    name="language",
    noun="language",
    verbs=frozenset({"build", "outputs"}),
)

KINDS: dict[str, ProtocolKind] = {kind.name: kind for kind in (BUILD_SYSTEM, LANGUAGE)}


def decode_response(verb: str, raw: bytes | str) -> TargetResponse | OutputsResponse:
    """Validate a response body for *verb*.

    Raises:
        KeyError: If *verb* has no JSON exchange.
        pydantic.ValidationError: If the body is not valid JSON or does
            not match the verb's response schema.
    """
    spec = VERBS[verb]
    if spec.response is None:
        raise KeyError(f"Verb {verb!r} has no response schema")
    return spec.response.validate_json(raw)

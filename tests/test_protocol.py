"""Tests for extbuild.protocol."""

import json

import pytest
from pydantic import ValidationError

from extbuild.protocol import (
    BUILD_SYSTEM,
    KINDS,
    LANGUAGE,
    VERBS,
    FailureResponse,
    OutputsSuccessResponse,
    TargetKind,
    TargetRequest,
    TargetSuccessResponse,
    decode_response,
)


class TestDecodeTargets:
    def test_success(self) -> None:
        raw = json.dumps(
            {
                "Success": {
                    "targets": [
                        {"kind": "Bin", "name": "foo", "src_path": "src/main"},
                        {"kind": "Lib", "name": "bar", "src_path": "src/bar"},
                    ],
                    "warnings": ["w"],
                    "errors": [],
                }
            }
        )
        resp = decode_response("targets", raw)
        assert isinstance(resp, TargetSuccessResponse)
        assert [t.kind for t in resp.success.targets] == [TargetKind.BIN, TargetKind.LIB]
        assert resp.success.warnings == ["w"]

    def test_failure(self) -> None:
        resp = decode_response("targets", b'{"Failure": {"message": "missing sources"}}')
        assert isinstance(resp, FailureResponse)
        assert resp.failure.message == "missing sources"

    def test_both_variants_rejected(self) -> None:
        raw = '{"Success": {"targets": [], "warnings": [], "errors": []}, "Failure": {"message": "x"}}'
        with pytest.raises(ValidationError):
            decode_response("targets", raw)

    def test_unknown_kind_rejected(self) -> None:
        raw = '{"Success": {"targets": [{"kind": "Dylib", "name": "a", "src_path": "b"}], "warnings": [], "errors": []}}'
        with pytest.raises(ValidationError):
            decode_response("targets", raw)

    def test_missing_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            decode_response("targets", '{"Success": {"targets": []}}')

    def test_extra_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            decode_response("targets", '{"Failure": {"message": "x", "code": 2}}')

    @pytest.mark.parametrize("raw", ["", "not json", "[]", "null", '{"Ok": {}}'])
    def test_malformed(self, raw: str) -> None:
        with pytest.raises(ValidationError):
            decode_response("targets", raw)


class TestDecodeOutputs:
    def test_success(self) -> None:
        resp = decode_response("outputs", '{"Success": {"outputs": ["a.o", "/abs/b.o"]}}')
        assert isinstance(resp, OutputsSuccessResponse)
        assert resp.success.outputs == ["a.o", "/abs/b.o"]

    def test_targets_body_is_not_an_outputs_body(self) -> None:
        with pytest.raises(ValidationError):
            decode_response("outputs", '{"Success": {"targets": [], "warnings": [], "errors": []}}')


class TestVerbs:
    def test_build_has_no_schema(self) -> None:
        assert VERBS["build"].is_exchange is False
        with pytest.raises(KeyError):
            decode_response("build", "{}")

    def test_request_wire_form(self) -> None:
        req = TargetRequest(package_name="demo", package_root="/work/demo")
        assert json.loads(req.model_dump_json()) == {"package_name": "demo", "package_root": "/work/demo"}


class TestProtocolKinds:
    def test_build_system_verbs(self) -> None:
        assert BUILD_SYSTEM.supports("targets")
        assert BUILD_SYSTEM.supports("build")
        assert BUILD_SYSTEM.supports("outputs")

    def test_language_has_no_targets_verb(self) -> None:
        assert not LANGUAGE.supports("targets")
        assert LANGUAGE.supports("build")

    def test_shared_prefix(self) -> None:
        assert BUILD_SYSTEM.prefix == LANGUAGE.prefix == "cargobuild-"

    def test_kinds_by_name(self) -> None:
        assert KINDS["build-system"] is BUILD_SYSTEM
        assert KINDS["language"] is LANGUAGE

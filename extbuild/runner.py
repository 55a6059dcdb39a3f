"""Plugin invocation client — builds commands and runs protocol exchanges."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

from pydantic import BaseModel, ValidationError

from extbuild.config import Settings
from extbuild.events import InvocationEvent, write_event
from extbuild.protocol import (
    VERBS,
    FailureResponse,
    OutputsRequest,
    TargetRequest,
    decode_response,
)
from extbuild.registry import PluginCommand, PluginError, PluginHandle, Registry
from extbuild.targets import BuildUnit, Target, from_descriptor

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class UnsupportedVerbError(PluginError):
    """Raised when a verb is not part of the registry's protocol kind."""


class LaunchError(PluginError):
    """Raised when the plugin process cannot be spawned."""

    def __init__(self, path: Path, reason: object = None) -> None:
        msg = f"Could not launch {path}"
        if reason is not None:
            msg += f": {reason}"
        super().__init__(msg)
        self.path = path


class ProtocolError(PluginError):
    """Raised when a plugin's output is not a well-formed response."""

    def __init__(self, path: Path, reason: object = None) -> None:
        msg = f"Invalid response from `{path}`"
        if reason is not None:
            msg += f"\n\nCaused by:\n  {reason}"
        super().__init__(msg)
        self.path = path


class ExecutionError(PluginError):
    """Raised when a plugin exits unsuccessfully, whatever it printed."""

    def __init__(self, path: Path, returncode: int) -> None:
        if returncode < 0:
            status = f"signal: {-returncode}"
        else:
            status = f"exit status: {returncode}"
        super().__init__(f"{path} exited with {status}")
        self.path = path
        self.returncode = returncode


class InBandFailure(PluginError):
    """A well-formed ``Failure`` response; the message is the plugin's own."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class PluginTimeoutError(PluginError):
    """Raised when an opt-in timeout expires and the plugin is killed."""

    def __init__(self, path: Path, timeout: float) -> None:
        super().__init__(f"{path} did not finish within {timeout:g}s and was killed")
        self.path = path
        self.timeout = timeout


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class PluginClient:
    """Invokes registered plugins on behalf of the host.

    The client keeps no per-call state, so one instance can serve
    concurrent invocations from several threads.
    """

    def __init__(self, registry: Registry, settings: Settings | None = None) -> None:
        self._registry = registry
        # Library callers get no event log unless they pass settings asking for one.
        self._settings = settings if settings is not None else Settings(record_events=False)

    @property
    def registry(self) -> Registry:
        return self._registry

    def _handle_for(self, identifier: str, verb: str) -> PluginHandle:
        handle = self._registry.get(identifier)
        kind = self._registry.kind
        if verb not in VERBS or not kind.supports(verb):
            raise UnsupportedVerbError(f"The {kind.noun} protocol has no `{verb}` verb (plugin {identifier})")
        return handle

    def command(self, identifier: str, verb: str) -> PluginCommand:
        """Return ``<plugin> <verb>`` for the caller to extend and run."""
        return self._handle_for(identifier, verb).command(verb)

    def compiler(self, identifier: str) -> PluginCommand:
        """Return the ``build`` command; the caller owns its execution."""
        return self.command(identifier, "build")

    def toolchain_hash(self, identifier: str) -> int:
        return self._registry.toolchain_hash(identifier)

    def exchange(self, handle: PluginHandle, verb: str, request: BaseModel) -> BaseModel:
        """Run one request/response exchange and return the success body.

        The child runs with an empty environment, its stderr discarded.
        The request is written and stdin closed, then stdout is read to
        the end before the exit status is collected.

        Raises:
            UnsupportedVerbError: *verb* is not a request/response verb.
            TypeError: *request* is not the verb's request model.
            LaunchError: The process could not be spawned.
            PluginTimeoutError: ``timeout_seconds`` expired.
            ProtocolError: Output is not a valid response, regardless of
                the exit status.
            ExecutionError: Non-zero exit, even over a valid response.
            InBandFailure: The response is the ``Failure`` variant.
        """
        spec = VERBS.get(verb)
        if spec is None or not spec.is_exchange:
            raise UnsupportedVerbError(f"`{verb}` is not a request/response verb (plugin {handle.identifier})")
        if not isinstance(request, spec.request_model):
            raise TypeError(f"`{verb}` expects {spec.request_model.__name__}, got {type(request).__name__}")

        timeout = self._settings.timeout_seconds
        payload = request.model_dump_json().encode("utf-8")
        argv = handle.command(verb).argv()

        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                env={},
            )
        except OSError as exc:
            raise LaunchError(handle.path, exc.strerror or exc) from exc

        with proc:
            try:
                stdout, _ = proc.communicate(payload, timeout=timeout)
            except subprocess.TimeoutExpired as exc:
                proc.kill()
                proc.communicate()
                raise PluginTimeoutError(handle.path, timeout) from exc

        try:
            response = decode_response(verb, stdout)
        except ValidationError as exc:
            raise ProtocolError(handle.path, exc) from exc

        if proc.returncode != 0:
            raise ExecutionError(handle.path, proc.returncode)

        if isinstance(response, FailureResponse):
            raise InBandFailure(response.failure.message)
        return response.success

    def _logged_exchange(self, identifier: str, verb: str, request: BaseModel) -> BaseModel:
        handle = self._handle_for(identifier, verb)
        try:
            body = self.exchange(handle, verb, request)
        except PluginError as exc:
            self._record(InvocationEvent(action=verb, plugin=identifier, status="error", detail=str(exc), paths=[str(handle.path)]))
            raise
        self._record(InvocationEvent(action=verb, plugin=identifier, status="ok", paths=[str(handle.path)]))
        return body

    def _record(self, event: InvocationEvent) -> None:
        if not self._settings.record_events:
            return
        try:
            write_event(self._settings.log_path(), event)
        except OSError as exc:
            logger.warning("Could not record %s event for %s: %s", event.action, event.plugin, exc)

    def targets(
        self,
        identifier: str,
        package_name: str,
        package_root: Path | str,
        warnings: list[str] | None = None,
        errors: list[str] | None = None,
    ) -> list[Target]:
        """Ask plugin *identifier* for the targets of a package.

        The plugin's advisory warnings and errors are appended, in order,
        to *warnings* and *errors*.
        """
        request = TargetRequest(package_name=package_name, package_root=os.fspath(package_root))
        body = self._logged_exchange(identifier, "targets", request)

        targets = [from_descriptor(desc) for desc in body.targets]
        if warnings is not None:
            warnings.extend(body.warnings)
        if errors is not None:
            errors.extend(body.errors)
        return targets

    def outputs(self, identifier: str, unit: BuildUnit) -> list[Path]:
        """Return the files the plugin produced for *unit*.

        Only meaningful after the unit's ``build`` invocation has run.
        Relative paths reported by the plugin are taken relative to
        ``unit.out_dir``; every returned path is absolute.
        """
        out_dir = Path(os.path.abspath(unit.out_dir))
        request = OutputsRequest(
            package_name=unit.package_name,
            package_root=os.fspath(unit.package_root),
            target=unit.target.to_descriptor(),
            out_dir=os.fspath(out_dir),
        )
        body = self._logged_exchange(identifier, "outputs", request)
        return [out_dir / p for p in body.outputs]

class DgsError(RuntimeError):
    """Base class for errors reported to the operator."""


class ConnectivityError(DgsError):
    pass


class RuntimeCallError(DgsError):
    pass


class GameResolutionError(DgsError):
    def __init__(self, identifier: str, candidates: tuple[str, ...] = ()):
        self.identifier = identifier
        self.candidates = tuple(candidates)
        if self.candidates:
            names = ", ".join(f"`{c}`" for c in self.candidates)
            message = f"Unable to find unique matching game for: `{identifier}`, found: {names}"
        else:
            message = f"Unable to find a matching game for: `{identifier}`"
        super().__init__(message)

    @property
    def kind(self) -> str:
        return "ambiguous" if self.candidates else "not_found"


class RecordProjectionError(DgsError):
    pass


class PortAllocationError(DgsError):
    pass


class UnsupportedPortsError(DgsError):
    pass


class PullError(DgsError):
    pass


class LifecycleStepError(DgsError):
    def __init__(self, step: str, container_id: str | None, cause: Exception):
        self.step = step
        self.container_id = container_id
        self.cause = cause
        message = f"Failed to {step} container"
        if container_id:
            message += f" {container_id[:12]}"
        super().__init__(f"{message}: {cause}")


class CleanupError(DgsError):
    """Stop and/or remove failed.

    Only a failed remove leaves the container behind; ``needs_manual_cleanup``
    tells the two cases apart.
    """

    def __init__(self, container_id: str, errors: list[LifecycleStepError]):
        self.container_id = container_id
        self.errors = list(errors)
        details = "; ".join(str(e) for e in self.errors)
        if self.needs_manual_cleanup:
            message = (
                f"Cleanup of container {container_id} incomplete ({details}). "
                f"Remove it manually with `docker rm -f {container_id}`."
            )
        else:
            message = f"Container {container_id} was removed, but {details[0].lower()}{details[1:]}."
        super().__init__(message)

    @property
    def needs_manual_cleanup(self) -> bool:
        return any(e.step == "remove" for e in self.errors)

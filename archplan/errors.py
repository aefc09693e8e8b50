"""Exceptions raised synchronously to callers of the workflow core."""


class ArchPlanError(Exception):
    """Base class for all architecture planner errors."""


class ProjectNotFound(ArchPlanError):
    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"Project {project_id} not found")


class InvalidTransition(ArchPlanError):
    """The project is not in a state from which the requested transition is legal."""

    def __init__(self, project_id: str, current: str | None, requested: str):
        self.project_id = project_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Project {project_id} cannot move from {current!r} to {requested!r}"
        )


class TransitionValidationError(ArchPlanError):
    """A transition's data precondition failed. ``message`` is safe to show to users."""

    def __init__(self, project_id: str, requested: str, message: str, errors: dict | None = None):
        self.project_id = project_id
        self.requested = requested
        self.message = message
        self.errors = errors or {}
        super().__init__(message)


class UploadNotFound(ArchPlanError):
    def __init__(self, upload_id: int):
        self.upload_id = upload_id
        super().__init__(f"Upload {upload_id} not found")


class UploadTooLargeError(ArchPlanError):
    def __init__(self, size: int, max_size: int):
        self.size = size
        self.max_size = max_size
        super().__init__(f"File size {size} bytes exceeds {max_size} bytes limit")

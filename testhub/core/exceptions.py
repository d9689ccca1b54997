"""
Error types shared by the ingestion services.

How the import pipeline treats them:
    NotFoundError     from a batch pre-check (project, test run): the call
                      aborts before any row is written
    ValidationError   from a single row or execution: recorded against that
                      item, the batch carries on
    ConflictError     display id allocation gave up

The CLI turns any of them into a ``click.ClickException``.
"""


class NotFoundError(Exception):
    """A lookup by key found nothing, optionally within a project scope."""

    def __init__(self, resource: str, resource_id: int | str | None = None, project_id: int | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.project_id = project_id
        parts = [resource]
        if resource_id is not None:
            parts.append(f"id={resource_id}")
        parts.append("not found")
        if project_id is not None:
            parts.append(f"(project={project_id})")
        super().__init__(" ".join(parts))


class ValidationError(Exception):
    """Bad input for a service call.

    ``message`` ends up verbatim in import diagnostics; for enumerations it
    lists the accepted values. ``details`` maps field name to problem.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details) if details else {}


class XmlFormatError(ValidationError):
    """TestNG result document that is empty or not well-formed XML."""


class ConflictError(Exception):
    """A unique value (display id) could not be allocated."""

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")

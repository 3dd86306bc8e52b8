"""
Error taxonomy shared by the pipeline and the API boundary.

Collaborators raise these; pipeline components catch them per URL or
per domain, log, and keep going. Only the API layer turns them into
failed responses.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for every error raised by the discovery pipeline."""


class FetchError(PipelineError):
    """Network failure, timeout or HTTP >= 400 while fetching a page."""

    def __init__(self, url: str, reason: str, status_code: int | None = None) -> None:
        self.url = url
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed to fetch {url}: {reason}")


class CapabilityUnavailableError(PipelineError):
    """Search or completion provider is down, rate limited or not configured."""

    def __init__(self, capability: str, reason: str) -> None:
        self.capability = capability
        self.reason = reason
        super().__init__(f"{capability} unavailable: {reason}")


class InvalidRequestError(PipelineError):
    """Caller input rejected before entering the pipeline."""


class AllBranchesFailedError(PipelineError):
    """Every competitor analysis in a discovery run failed."""

    def __init__(self, attempted: int) -> None:
        self.attempted = attempted
        super().__init__(f"All {attempted} competitor analyses failed")


class TaskNotFoundError(PipelineError):
    """Monitoring task id does not exist."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Monitoring task {task_id} not found")

class ReconcileError(Exception):
    """Base class for every failure raised by the reconcile core."""


class NotFoundError(ReconcileError):
    pass


class PolicyNotFoundError(NotFoundError):
    def __init__(self, policy_id):
        super().__init__(f"backup policy {policy_id} not found")
        self.policy_id = policy_id


class JobNotFoundError(NotFoundError):
    def __init__(self, job_name: str):
        super().__init__(f"backup job {job_name} not found")
        self.job_name = job_name


class TransientStoreError(ReconcileError):
    """The store could not be read or written; retry the whole pass."""


class UpdateConflictError(TransientStoreError):
    def __init__(self, policy_id, resource_version: int):
        super().__init__(
            f"backup policy {policy_id} was modified concurrently (expected version {resource_version})"
        )
        self.policy_id = policy_id
        self.resource_version = resource_version


class InvalidScheduleError(ReconcileError):
    def __init__(self, expression: str, reason: str):
        super().__init__(f"{reason} (schedule {expression!r})")
        self.expression = expression
        self.reason = reason


class JobCreationError(ReconcileError):
    pass

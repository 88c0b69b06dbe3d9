import logging

import docker
from docker.errors import DockerException, NotFound

from .config import settings
from .errors import JobCreationError, JobNotFoundError
from .jobspec import LABEL_MANAGED_BY, LABEL_OWNER_UID, MANAGED_BY
from .schemas import Job, JobSpec, JobState

logger = logging.getLogger(__name__)

TERMINAL_CONTAINER_STATES = {"exited", "dead"}


def get_client():
    return docker.DockerClient(base_url=settings.docker_base_url)


def job_state(container) -> JobState:
    state = container.attrs.get("State", {})
    status = state.get("Status", container.status)
    if status not in TERMINAL_CONTAINER_STATES:
        return JobState.running
    if status == "exited" and state.get("ExitCode") == 0:
        return JobState.succeeded
    return JobState.failed


def _to_job(container) -> Job:
    return Job(
        name=container.name,
        state=job_state(container),
        owner_uid=container.labels.get(LABEL_OWNER_UID, ""),
    )


class DockerJobRunner:
    """Runs each backup job as one detached container on the Docker engine."""

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_client()
        return self._client

    def get_job(self, name: str) -> Job:
        try:
            container = self.client.containers.get(name)
        except NotFound as exc:
            raise JobNotFoundError(name) from exc
        return _to_job(container)

    def create_job(self, spec: JobSpec) -> Job:
        try:
            container = self.client.containers.run(
                image=spec.image,
                name=spec.name,
                detach=True,
                environment=spec.environment,
                volumes=spec.volumes,
                labels=spec.labels,
            )
        except DockerException as exc:
            raise JobCreationError(f"docker refused job {spec.name}: {exc}") from exc
        logger.info("job_created name=%s image=%s", spec.name, spec.image)
        return Job(name=spec.name, state=JobState.running, owner_uid=spec.labels.get(LABEL_OWNER_UID, ""))

    def collect_orphans(self, live_uids: set[str]) -> list[str]:
        """Remove managed job containers whose owning policy no longer exists."""
        removed = []
        containers = self.client.containers.list(all=True, filters={"label": f"{LABEL_MANAGED_BY}={MANAGED_BY}"})
        for container in containers:
            owner_uid = container.labels.get(LABEL_OWNER_UID, "")
            if owner_uid in live_uids:
                continue
            try:
                container.remove(force=True)
            except NotFound:
                continue
            logger.info("orphan_job_removed name=%s owner_uid=%s", container.name, owner_uid)
            removed.append(container.name)
        return removed

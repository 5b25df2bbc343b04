"""
Redis key schema.

Every key the queue touches is built here. With the default prefix "q":

    q:job:<id>               hash        job fields
    q:job:<id>:log           list        job log lines
    q:job:types              set         job types ever saved
    q:jobs                   sorted set  all job ids by score
    q:jobs:<state>           sorted set  job ids in a state
    q:jobs:<type>:<state>    sorted set  job ids of a type in a state
    q:<type>:jobs            list        wake-up markers (compatibility mode)
    q:settings               hash        operator settings
"""

from dataclasses import dataclass

from kue.constants import DEFAULT_KEY_PREFIX


@dataclass(frozen=True)
class KeySchema:
    """Builds keys under one prefix."""

    prefix: str = DEFAULT_KEY_PREFIX

    def job(self, job_id: str) -> str:
        return f"{self.prefix}:job:{job_id}"

    def job_log(self, job_id: str) -> str:
        return f"{self.prefix}:job:{job_id}:log"

    def types(self) -> str:
        return f"{self.prefix}:job:types"

    def jobs(self) -> str:
        return f"{self.prefix}:jobs"

    def state(self, state: str) -> str:
        return f"{self.prefix}:jobs:{state}"

    def type_state(self, job_type: str, state: str) -> str:
        return f"{self.prefix}:jobs:{job_type}:{state}"

    def wakeup(self, job_type: str) -> str:
        return f"{self.prefix}:{job_type}:jobs"

    def settings(self) -> str:
        return f"{self.prefix}:settings"

    def index_keys(self, job_type: str, state: str) -> tuple[str, str, str]:
        """The three sorted sets a job is indexed in for a given state."""
        return self.jobs(), self.state(state), self.type_state(job_type, state)

"""Job lifecycle constants and transition rules.

Status only moves forward through draft -> generating -> compiling ->
completed, or to failed from any non-terminal status.
"""

from typing import Dict

from clipreel.schemas.job import JobStatus

JOB_STATES = {
    JobStatus.DRAFT: "Created, clips not yet generated",
    JobStatus.GENERATING: "Generating clips from source images",
    JobStatus.COMPILING: "Concatenating clips into the final MP4",
    JobStatus.COMPLETED: "Final video uploaded",
    JobStatus.FAILED: "Job encountered an unrecoverable error",
}

STEP_TRANSITIONS: Dict[JobStatus, JobStatus] = {
    JobStatus.DRAFT: JobStatus.GENERATING,
    JobStatus.GENERATING: JobStatus.COMPILING,
    JobStatus.COMPILING: JobStatus.COMPLETED,
}

TERMINAL_STATES = {JobStatus.COMPLETED, JobStatus.FAILED}


def is_terminal(status: JobStatus) -> bool:
    return JobStatus(status) in TERMINAL_STATES


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Check whether a job may move from ``current`` to ``target``.

    Re-entering the current non-terminal status is allowed so a run
    interrupted mid-phase can be restarted by the scheduler.

    Examples:
        >>> can_transition(JobStatus.DRAFT, JobStatus.GENERATING)
        True
        >>> can_transition(JobStatus.DRAFT, JobStatus.COMPLETED)
        False
        >>> can_transition(JobStatus.COMPLETED, JobStatus.FAILED)
        False
    """
    current = JobStatus(current)
    target = JobStatus(target)
    if current in TERMINAL_STATES:
        return False
    if target == JobStatus.FAILED:
        return True
    return target == current or STEP_TRANSITIONS.get(current) == target

from .base import Job, JobError, JobManager, JobProgress, JobState, JobStatus
from .scan_job import ScanJob
from .sync_job import SyncJob
from .organize_job import OrganizeJob

"""
Job Queue Package
=================

Detached background jobs with their own error channel.
"""

from .queue import BackgroundQueue, JobInfo, JobStatus

__all__ = ["BackgroundQueue", "JobInfo", "JobStatus"]

"""
🎬 TrailerBox - Supervisor Module
審核流程：提交佇列 (Submission Queue) + 審核交易 (Moderation) + 管理員目錄 (Admin Directory)
"""

from trailerbox.supervisor.submission_queue import IdAllocator, SubmissionQueue
from trailerbox.supervisor.moderation import ModerationTransaction
from trailerbox.supervisor.admin_directory import AdminDirectory

__all__ = [
    "IdAllocator",
    "SubmissionQueue",
    "ModerationTransaction",
    "AdminDirectory",
]

"""
resumegen - asynchronous resume generation job orchestration.

Jobs are persisted, handed to an external worker pool through a message
broker, and polled for completion. See resumegen.jobs for the core.
"""

__version__ = "0.1.0"

"""Lock model for concurrent validation prevention."""

from datetime import datetime

from pydantic import BaseModel, Field


class Lock(BaseModel):
    """Active validation lock written to .vouch/validate.lock.

    Attributes:
        pid: Process ID of the lock holder.
        tree_hash: Tree identity being validated, if known.
        command: Command that acquired the lock.
        started_at: When the lock was acquired.
        last_heartbeat: Last heartbeat update (for stale detection).
    """

    pid: int = Field(description="Process ID holding the lock")
    tree_hash: str | None = Field(default=None, description="Tree identity under validation")
    command: str = Field(description="Command that acquired lock")
    started_at: datetime = Field(default_factory=datetime.now)
    last_heartbeat: datetime = Field(default_factory=datetime.now)

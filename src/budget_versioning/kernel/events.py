"""
Event envelope

Every change to a budget version is recorded as an Event. The domain payload
(VersionCreated, VersionItemAdded, ...) is dumped to JSON-compatible data and
carried in `payload`; the envelope holds what the event store needs to order,
group and lock on.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class Event(BaseModel):
    """
    Immutable record of one change

    Attributes:
        event_id: UUIDv7, sortable by creation time
        stream_id: Budget version the event belongs to
        stream_type: Aggregate kind, "budget_version"
        event_type: Payload class name, e.g. "VersionApproved"
        occurred_at: UTC time the change was decided
        actor_id: Who issued the command (None for system changes)
        command_id: Shared by all events of one command, i.e. one atomic batch
        payload: JSON-compatible domain data
        version: Position in the stream, starting at 1; (stream_id, version)
            is unique and drives optimistic locking
    """

    event_id: str
    stream_id: str
    stream_type: str
    event_type: str
    occurred_at: datetime
    actor_id: str | None = None
    command_id: str
    payload: dict = Field(default_factory=dict)
    version: int = Field(ge=1)

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "event_id": "01908e9a-3b87-7000-8000-5f2c1d9e0a41",
                    "stream_id": "01908e9a-1111-7000-8000-000000000001",
                    "stream_type": "budget_version",
                    "event_type": "VersionApproved",
                    "occurred_at": "2024-01-10T10:30:00Z",
                    "actor_id": "maria",
                    "command_id": "01908e9a-3b80-7000-8000-aa11bb22cc33",
                    "payload": {"version_id": "01908e9a-1111-7000-8000-000000000001"},
                    "version": 4,
                }
            ]
        },
    }

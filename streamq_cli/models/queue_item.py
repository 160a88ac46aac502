"""
Pydantic models describing a single download request.
"""

from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from streamq_cli.exceptions import InvalidQueueItemError

# Identifiers are opaque: the producer may use numbers or strings.
Identifier = Union[int, str]


class UserInfo(BaseModel):
    """The user a video belongs to."""

    model_config = ConfigDict(extra="ignore")

    id: Identifier = ""
    name: str = ""


class VideoInfo(BaseModel):
    """The video to download. `id` is the unique key for removal and history."""

    model_config = ConfigDict(extra="ignore")

    id: Identifier
    url: str
    title: str | None = None
    time: int | float | None = None


class QueueItem(BaseModel):
    """One pending or in-flight download."""

    model_config = ConfigDict(extra="ignore")

    user: UserInfo = Field(default_factory=UserInfo)
    video: VideoInfo

    @classmethod
    def from_data(cls, data: Any) -> "QueueItem":
        """
        Builds a queue item from another item or a plain mapping.

        Raises:
            InvalidQueueItemError: If the mapping lacks a video id or URL.
        """
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidQueueItemError(f"Invalid download request:\n{e}") from e

    def to_record(self) -> dict[str, Any]:
        """Returns the JSON-serializable form written to the queue file."""
        return self.model_dump(mode="json")


def same_id(left: Identifier, right: Identifier) -> bool:
    """Compares two opaque identifiers, treating 42 and '42' as equal."""
    if left == right:
        return True
    return str(left) == str(right)

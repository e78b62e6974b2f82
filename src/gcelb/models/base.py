"""Base model for Google Cloud resources."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel as PydanticBaseModel
from pydantic import ConfigDict, Field


class BaseModel(PydanticBaseModel):
    """Base class for all gcelb resource models.

    Provides the fields every resource shares plus conversion helpers.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(..., description="Resource identifier")
    name: str = Field(default="", description="Resource name")
    project_id: str | None = Field(None, description="GCP project ID")
    created_at: datetime | None = Field(None, description="Creation timestamp")
    labels: dict[str, str] = Field(default_factory=dict, description="Resource labels")
    raw_data: dict[str, Any] = Field(
        default_factory=dict,
        description="Raw API response data",
        exclude=True,
        repr=False,
    )

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "BaseModel":
        """Create a model from an API response.

        Subclasses override this to map provider field names.

        Args:
            data: API response data

        Returns:
            Model instance
        """
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        """Convert the model to a dictionary, dropping None values.

        Returns:
            Dictionary representation of the model
        """
        return self.model_dump(mode="json", exclude_none=True)

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id!r}, name={self.name!r})"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a Compute Engine RFC 3339 timestamp.

    Args:
        value: Timestamp such as "2014-03-04T10:12:13.123-08:00"

    Returns:
        Timezone-aware datetime, or None when missing or unparseable
    """
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None

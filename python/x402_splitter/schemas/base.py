"""Foundation types for the splitter wire schemas."""

from typing import TypeAlias

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

Network: TypeAlias = str
"""CAIP-2 format network identifier (e.g., "solana:EtWTRABZaYq6iMfeYKouRu166VU2xqa1")."""


class BaseSplitterModel(BaseModel):
    """Base class for all wire models with camelCase JSON serialization.

    Unknown fields are rejected rather than ignored.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        extra="forbid",
    )

    def to_wire(self) -> dict:
        """Serialize with camelCase keys, omitting unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

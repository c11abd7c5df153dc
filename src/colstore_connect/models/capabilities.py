"""Store capabilities model."""

from pydantic import BaseModel, Field


class StoreCapabilities(BaseModel):
    """Flags indicating which optional store features an adapter supports."""

    secondary_indexes: bool = Field(
        default=False,
        description="Store has a secondary index coordinator",
    )
    mob: bool = Field(
        default=False,
        description="Store supports the large-object (MOB) storage class",
    )
    access_control: bool = Field(
        default=False,
        description="Store supports permission grants and revokes",
    )
    region_split: bool = Field(
        default=False,
        description="Store supports pre-split tables and region splitting",
    )
    persistent: bool = Field(
        default=False,
        description="Data survives closing the connection",
    )

    def get_supported_features(self) -> list[str]:
        """Get list of supported feature names."""
        return [
            field_name
            for field_name, value in self.model_dump().items()
            if value is True
        ]

    def get_unsupported_features(self) -> list[str]:
        """Get list of unsupported feature names."""
        return [
            field_name
            for field_name, value in self.model_dump().items()
            if value is False
        ]

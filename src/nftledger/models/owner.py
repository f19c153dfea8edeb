"""Owner entity - account that has sent or received a token."""

from sqlmodel import Field, SQLModel


class Owner(SQLModel, table=True):
    """Owner is identified solely by its lowercase account address."""

    __tablename__ = "owners"  # type: ignore[assignment]

    id: str = Field(primary_key=True, max_length=42)

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from models.coordinate import Coordinate, GeofenceDefinition, GeofenceSource

# Defines the Structure of Data for Comparing an Employee Position to Expected Location


# Circular Geofence Owned By A Branch (scope_key = branch id)
# Or A Custom Premise (scope_key = device id)
class Geofence(SQLModel, table=True):
    __tablename__ = "geofence"

    # One Active Definition Per Source/Scope; Re-Saves Replace It
    __table_args__ = (
        UniqueConstraint("source", "scope_key", name="uq_geofence_source_scope"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    source: GeofenceSource = Field(index=True)
    scope_key: str = Field(index=True, description="Branch id or device id")
    name: str = Field(..., description="Human-friendly premise name")
    center_lat: float = Field(..., description="Latitude of geofence center")
    center_lng: float = Field(..., description="Longitude of geofence center")
    radius_meters: float = Field(..., description="Allowed radius in meters")
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_definition(self) -> GeofenceDefinition:
        return GeofenceDefinition(
            name=self.name,
            center=Coordinate(latitude=self.center_lat, longitude=self.center_lng),
            radius_meters=self.radius_meters,
            source=self.source,
        )

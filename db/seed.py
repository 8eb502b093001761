# Insert Sample Branch Geofences
from sqlmodel import SQLModel

from db.session import engine
from models.coordinate import Coordinate, GeofenceDefinition, GeofenceSource
from services.persistence import LocalStore

SAMPLE_BRANCHES = {
    "HQ": GeofenceDefinition(
        name="Head Office",
        center=Coordinate(latitude=38.9931538759034, longitude=-76.9428334513501),
        radius_meters=250.0,
        source=GeofenceSource.BRANCH,
    ),
    "FACTORY": GeofenceDefinition(
        name="Factory",
        center=Coordinate(latitude=38.9870, longitude=-76.9380),
        radius_meters=400.0,  # Larger site
        source=GeofenceSource.BRANCH,
    ),
}


def seed_branch_geofences(target_engine=engine):
    SQLModel.metadata.create_all(target_engine)
    store = LocalStore(target_engine)
    for branch_id, definition in SAMPLE_BRANCHES.items():
        if store.load_geofence_definition(GeofenceSource.BRANCH, branch_id):
            print(f"{branch_id} geofence already exists")
            continue
        store.save_geofence_definition(branch_id, definition)
        print(f"Added {branch_id} geofence")


if __name__ == "__main__":
    seed_branch_geofences()

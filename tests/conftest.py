import zipfile
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from transit_mcp.data.feed_parser import FeedArchive
from transit_mcp.data.importer import FeedImporter
from transit_mcp.data.store import FeedStore
from transit_mcp.models.gtfs import FeedValidators

CHICAGO = ZoneInfo("America/Chicago")

# Monday 2024-06-03, before the morning trips
MONDAY_MORNING = datetime(2024, 6, 3, 7, 55, tzinfo=CHICAGO)

# Stop coordinates (Lake St corridor, Minneapolis)
LYNDALE_EAST = (44.9485, -93.2880)
LYNDALE_WEST = (44.9482, -93.2881)
HENNEPIN = (44.9485, -93.2983)
FRANKLIN_CHICAGO = (44.9627, -93.2625)


def _stop_times_rows() -> list[str]:
    rows = []
    # Route 21 eastbound: Hennepin then Lyndale (east side), regular 20 min then a gap
    eastbound = [
        ("07:57", "08:00"),
        ("08:17", "08:20"),
        ("08:37", "08:40"),
        ("08:57", "09:00"),
        ("09:32", "09:35"),
    ]
    for i, (at_hennepin, at_lyndale) in enumerate(eastbound):
        rows.append(f"T21E{i},{at_hennepin}:00,{at_hennepin}:00,HENNEPIN,1")
        rows.append(f"T21E{i},{at_lyndale}:00,{at_lyndale}:00,LYNDALE_E,2")
    # Post-midnight trip of the weekday service
    rows.append("T21E_LATE,25:07:00,25:07:00,HENNEPIN,1")
    rows.append("T21E_LATE,25:10:00,25:10:00,LYNDALE_E,2")
    # Route 21 westbound: Lyndale (west side) then Hennepin
    rows.append("T21W0,08:10:00,08:10:00,LYNDALE_W,1")
    rows.append("T21W0,08:13:00,08:13:00,HENNEPIN,2")
    rows.append("T21W1,08:30:00,08:30:00,LYNDALE_W,1")
    rows.append("T21W1,08:33:00,08:33:00,HENNEPIN,2")
    # Route 2 (no short name)
    rows.append("T2_WKDY,08:15:00,08:15:00,FRANKLIN,1")
    rows.append("T2_SAT,09:00:00,09:00:00,FRANKLIN,1")
    return rows


def write_sample_feed(gtfs_dir: Path) -> Path:
    """Write a small but complete GTFS feed into a directory."""
    gtfs_dir.mkdir(parents=True, exist_ok=True)

    (gtfs_dir / "agency.txt").write_text(
        "agency_id,agency_name,agency_url,agency_timezone\n"
        "MT,Metro Transit,https://www.metrotransit.org,America/Chicago\n"
    )
    (gtfs_dir / "routes.txt").write_text(
        "route_id,agency_id,route_short_name,route_long_name,route_type,route_color,"
        "route_text_color,route_sort_order\n"
        "21,MT,21,Lake St - Selby Av,3,0053A0,FFFFFF,21\n"
        "2,MT,,Franklin Av Crosstown,3,ED1B2E,FFFFFF,2\n"
    )
    (gtfs_dir / "stops.txt").write_text(
        "stop_id,stop_code,stop_name,stop_desc,stop_lat,stop_lon,location_type,"
        "parent_station,wheelchair_boarding\n"
        f"LYNDALE_E,1001,Lake St & Lyndale Ave,Nearside E,{LYNDALE_EAST[0]},{LYNDALE_EAST[1]},0,,1\n"
        f"LYNDALE_W,1002,Lake St & Lyndale Ave,Farside W,{LYNDALE_WEST[0]},{LYNDALE_WEST[1]},0,,1\n"
        f"HENNEPIN,1003,Lake St & Hennepin Ave,Nearside E,{HENNEPIN[0]},{HENNEPIN[1]},0,,1\n"
        f"FRANKLIN,1004,Franklin Ave & Chicago Ave,,{FRANKLIN_CHICAGO[0]},"
        f"{FRANKLIN_CHICAGO[1]},0,,0\n"
        "UPTOWN,,Uptown Station,,44.9490,-93.2990,1,,1\n"
    )
    (gtfs_dir / "calendar.txt").write_text(
        "service_id,monday,tuesday,wednesday,thursday,friday,saturday,sunday,start_date,end_date\n"
        "WKDY,1,1,1,1,1,0,0,20240101,20241231\n"
        "SAT,0,0,0,0,0,1,0,20240101,20241231\n"
    )
    (gtfs_dir / "calendar_dates.txt").write_text(
        "service_id,date,exception_type\nWKDY,20240704,2\nSAT,20240704,1\n"
    )
    trips = ["trip_id,route_id,service_id,trip_headsign,direction_id,block_id,shape_id"]
    trips += [f"T21E{i},21,WKDY,Lake St / Minnehaha,0,B1,SH21E" for i in range(5)]
    trips.append("T21E_LATE,21,WKDY,Lake St / Minnehaha,0,B1,SH21E")
    trips += [f"T21W{i},21,WKDY,Uptown Station,1,B2," for i in range(2)]
    trips.append("T2_WKDY,2,WKDY,Franklin / Chicago,0,,")
    trips.append("T2_SAT,2,SAT,Franklin / Chicago,0,,")
    (gtfs_dir / "trips.txt").write_text("\n".join(trips) + "\n")
    (gtfs_dir / "stop_times.txt").write_text(
        "trip_id,arrival_time,departure_time,stop_id,stop_sequence\n"
        + "\n".join(_stop_times_rows())
        + "\n"
    )
    (gtfs_dir / "shapes.txt").write_text(
        "shape_id,shape_pt_lat,shape_pt_lon,shape_pt_sequence\n"
        f"SH21E,{HENNEPIN[0]},{HENNEPIN[1]},1\n"
        f"SH21E,{LYNDALE_EAST[0]},{LYNDALE_EAST[1]},2\n"
    )
    return gtfs_dir


@pytest.fixture
def sample_gtfs_dir(tmp_path: Path) -> Path:
    """Create a sample GTFS directory with minimal valid data."""
    return write_sample_feed(tmp_path / "gtfs")


@pytest.fixture
def sample_gtfs_zip(sample_gtfs_dir: Path, tmp_path: Path) -> Path:
    """Create a sample GTFS ZIP file from the directory."""
    zip_path = tmp_path / "gtfs.zip"
    with zipfile.ZipFile(zip_path, "w") as zf:
        for file_path in sample_gtfs_dir.iterdir():
            zf.write(file_path, file_path.name)
    return zip_path


@pytest.fixture
async def empty_store(tmp_path: Path) -> FeedStore:
    """Migrated store with no feed imported."""
    store = FeedStore(tmp_path / "transit.db")
    await store.open()
    return store


@pytest.fixture
async def loaded_store(empty_store: FeedStore, sample_gtfs_dir: Path) -> FeedStore:
    """Store with the sample feed imported."""
    with FeedArchive(sample_gtfs_dir) as archive:
        await FeedImporter(empty_store).import_archive(
            archive, FeedValidators(last_modified="Mon, 03 Jun 2024 03:00:00 GMT", etag='"v1"')
        )
    return empty_store


@pytest.fixture
def monday_morning() -> datetime:
    return MONDAY_MORNING

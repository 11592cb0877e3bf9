import pytest

from onthespot.models.location_status import (
    CategoryClass,
    LocationStatus,
    allowed_statuses,
    classify_category,
    default_status,
    is_status_allowed,
)
from onthespot.schemas.location import Location, LocationResponse


@pytest.mark.parametrize(
    "category, expected",
    [
        ("Cafe", CategoryClass.QUEUE_BASED),
        ("  fast food ", CategoryClass.QUEUE_BASED),
        ("Terminal", CategoryClass.QUEUE_BASED),
        ("Laundry", CategoryClass.AVAILABILITY_BASED),
        ("parking", CategoryClass.AVAILABILITY_BASED),
        ("Study Spot", CategoryClass.AMBIENCE_BASED),
        ("", CategoryClass.AMBIENCE_BASED),
    ],
)
def test_classify_category(category, expected):
    assert classify_category(category) == expected


def test_aliases_share_values():
    assert LocationStatus.MODERATE is LocationStatus.SHORT_LINE
    assert LocationStatus.OCCUPIED is LocationStatus.IN_USE
    assert LocationStatus("inUse") is LocationStatus.IN_USE


def test_default_status_is_first_of_axis():
    assert default_status(CategoryClass.QUEUE_BASED) == LocationStatus.NO_LINE
    assert default_status(CategoryClass.AVAILABILITY_BASED) == LocationStatus.AVAILABLE
    assert default_status(CategoryClass.AMBIENCE_BASED) == LocationStatus.QUIET


def test_statuses_do_not_cross_axes():
    assert is_status_allowed(CategoryClass.QUEUE_BASED, LocationStatus.LONG_LINE)
    assert not is_status_allowed(CategoryClass.QUEUE_BASED, LocationStatus.QUIET)
    assert allowed_statuses(CategoryClass.AVAILABILITY_BASED) == [LocationStatus.AVAILABLE, LocationStatus.IN_USE]


def test_display_metadata():
    assert LocationStatus.SHORT_LINE.title == "Short Wait"
    assert LocationStatus.QUIET.score > LocationStatus.NOISY.score
    assert LocationStatus.IN_USE.color == "red"


def test_location_document_round_trip_uses_camel_case_keys():
    location = Location.new("Main Library", "Study Spot", 37.5, 127.0)
    doc = location.to_doc()

    assert "id" not in doc
    assert doc["currentStatus"] == "quiet"
    assert doc["categoryClass"] == "ambienceBased"
    assert doc["coordinate"] == {"latitude": 37.5, "longitude": 127.0}

    restored = Location.from_doc({**doc, "id": location.id})
    assert restored.model_dump() == location.model_dump()


def test_missing_category_class_is_resolved_from_category():
    location = Location.from_doc({
        "id": "legacy",
        "name": "Old Cafe",
        "category": "Cafe",
        "coordinate": {"latitude": 0, "longitude": 0},
        "currentStatus": "longLine",
        "lastUpdate": "2024-01-01T00:00:00Z",
    })
    assert location.category_class == CategoryClass.QUEUE_BASED


def test_response_carries_status_display():
    location = Location.new("Laundry B", "Laundry", 1.0, 2.0, LocationStatus.OCCUPIED)
    response = LocationResponse.from_location(location)
    assert response.current_status == LocationStatus.IN_USE
    assert response.status_title == "Occupied"
    assert response.lat == 1.0 and response.lng == 2.0

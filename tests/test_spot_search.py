from onthespot.models.location_status import LocationStatus
from onthespot.schemas.location import Location
from onthespot.services import spot_search


def spots():
    return [
        Location.new("Main Library", "Study Spot", 37.5, 127.0, LocationStatus.NOISY),
        Location.new("Blue Cafe", "Cafe", 37.5, 127.0, LocationStatus.NO_LINE),
        Location.new("Dorm Laundry", "Laundry", 37.5, 127.0, LocationStatus.IN_USE),
        Location.new("Reading Room", "Study Spot", 37.5, 127.0, LocationStatus.QUIET),
        Location.new("Burger Stop", "Fast Food", 37.5, 127.0, LocationStatus.SHORT_LINE),
    ]


def names(locations):
    return [loc.name for loc in locations]


def test_text_matches_name_or_category_case_insensitively():
    assert names(spot_search.filter_spots(spots(), text="STUDY")) == ["Reading Room", "Main Library"]
    assert names(spot_search.filter_spots(spots(), text="burger")) == ["Burger Stop"]


def test_category_is_exact():
    assert names(spot_search.filter_spots(spots(), category="Cafe")) == ["Blue Cafe"]
    assert spot_search.filter_spots(spots(), category="cafe") == []


def test_vibe_filters_related_statuses():
    assert names(spot_search.filter_spots(spots(), vibe="Quick / Open")) == ["Blue Cafe", "Burger Stop"]
    assert names(spot_search.filter_spots(spots(), vibe="Busy / Full")) == ["Main Library", "Dorm Laundry"]


def test_unknown_vibe_is_ignored():
    assert len(spot_search.filter_spots(spots(), vibe="Party")) == 5


def test_sort_by_score_is_stable():
    result = spot_search.filter_spots(spots())
    assert names(result) == [
        "Blue Cafe",
        "Reading Room",
        "Burger Stop",
        "Main Library",
        "Dorm Laundry",
    ]


def test_trending_takes_first_n():
    assert names(spot_search.trending(spots(), n=2)) == ["Main Library", "Blue Cafe"]


def test_haversine_one_degree_of_latitude():
    assert round(spot_search.haversine_m(0, 0, 1, 0)) == 111195

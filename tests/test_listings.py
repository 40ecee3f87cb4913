"""Tests for the geo feed filter and the AI webhook payload mapping."""

import uuid
from decimal import Decimal

import pytest

from listings import (
    parse_coordinates, parse_final_rate, filter_active, build_listing_params,
    find_missing_fields, InvalidCoordinatesError, InvalidListingError, MissingFieldsError
)

USER_ID = str(uuid.uuid4())

SAMPLE_PAYLOAD = {
    "itemName": "Study Table",
    "category": "Furniture",
    "suggestedPriceINR": 1500,
    "estimatedWeightKg": 12.5,
    "lat": "12.9716",
    "lon": 77.5946,
    "user_id": USER_ID,
    "description": "Solid wood",
    "imageUrl": "https://cdn.example.com/table.jpg"
}

def test_parse_coordinates_accepts_strings_and_numbers():
    """Test that query strings and JSON numbers both parse."""
    assert parse_coordinates("12.5", 77) == (12.5, 77.0)

@pytest.mark.parametrize("lat,lon", [(None, "77"), ("12", None), ("", "77"), ("12", "  ")])
def test_parse_coordinates_missing(lat, lon):
    """Test the required-parameter message."""
    with pytest.raises(InvalidCoordinatesError) as exc_info:
        parse_coordinates(lat, lon)
    assert str(exc_info.value) == "Query parameters lat and lon are required"

@pytest.mark.parametrize("lat,lon", [("abc", "77"), ("12", "nan"), ("inf", "77"), (True, 77)])
def test_parse_coordinates_not_numbers(lat, lon):
    """Test the invalid-number message."""
    with pytest.raises(InvalidCoordinatesError) as exc_info:
        parse_coordinates(lat, lon)
    assert str(exc_info.value) == "lat and lon must be valid numbers"

def test_filter_active_drops_sold_swapped_and_missing():
    """Test that only candidates still active are kept, in order."""
    candidates = [
        {"id": "a", "distance_meters": 10},
        {"id": "b", "distance_meters": 20},
        {"id": "c", "distance_meters": 30},
        {"id": "d", "distance_meters": 40},
        {"id": "e", "distance_meters": 50}
    ]
    statuses = {"a": "active", "b": "sold", "c": "swapped", "e": "active"}

    result = filter_active(candidates, statuses)

    assert [row["id"] for row in result] == ["a", "e"]

def test_find_missing_fields_in_order():
    """Test that missing keys are reported in their fixed order."""
    payload = {"category": "Books", "itemName": "", "lon": 1}

    assert find_missing_fields(payload) == [
        "itemName", "suggestedPriceINR", "estimatedWeightKg", "lat", "user_id"
    ]

def test_build_listing_params():
    """Test the mapping onto insert_listing_with_location parameters."""
    params = build_listing_params(SAMPLE_PAYLOAD)

    assert params == {
        "p_title": "Study Table",
        "p_description": "Solid wood",
        "p_category": "Furniture",
        "p_price": Decimal("1500.0"),
        "p_ai_metadata": {
            "estimatedWeightKg": 12.5,
            "imageUrl": "https://cdn.example.com/table.jpg"
        },
        "p_user_id": USER_ID,
        "p_user_lat": 12.9716,
        "p_user_lon": 77.5946
    }

def test_build_listing_params_without_optional_fields():
    """Test that imageUrl and description are optional."""
    payload = {k: v for k, v in SAMPLE_PAYLOAD.items() if k not in ("imageUrl", "description")}

    params = build_listing_params(payload)

    assert params["p_description"] is None
    assert params["p_ai_metadata"] == {"estimatedWeightKg": 12.5}

def test_build_listing_params_missing_fields():
    """Test that the missing list travels with the error."""
    with pytest.raises(MissingFieldsError) as exc_info:
        build_listing_params({"itemName": "Lamp"})

    assert exc_info.value.missing == [
        "category", "suggestedPriceINR", "estimatedWeightKg", "lat", "lon", "user_id"
    ]

def test_build_listing_params_bad_coordinates():
    """Test that non-numeric coordinates are rejected."""
    with pytest.raises(InvalidCoordinatesError):
        build_listing_params(dict(SAMPLE_PAYLOAD, lat="north"))

def test_build_listing_params_bad_user_id():
    """Test that user_id must be a UUID."""
    with pytest.raises(InvalidListingError):
        build_listing_params(dict(SAMPLE_PAYLOAD, user_id="someone"))

@pytest.mark.parametrize("rate,expected", [(500, 500), ("499.5", 499.5), (0, 0), ("250", 250)])
def test_parse_final_rate(rate, expected):
    """Test accepted closing prices."""
    assert parse_final_rate(rate) == expected

@pytest.mark.parametrize("rate", [None, "", -1, "cheap", float("inf"), True])
def test_parse_final_rate_rejected(rate):
    """Test rejected closing prices."""
    with pytest.raises(InvalidListingError):
        parse_final_rate(rate)

"""
Unit Tests - Search Cache Keys
"""
from datetime import date

import pytest

from src.cache import UnknownCategoryError, generate_search_hash, get_policy, normalize_search_params


HOTEL_SEARCH = {
    "destination": "New York",
    "check_in": "2030-06-01",
    "check_out": "2030-06-05",
    "adults": 2,
    "rooms": 1,
}


class TestGenerateSearchHash:
    def test_length_and_alphabet(self):
        search_hash = generate_search_hash("hotel", HOTEL_SEARCH)

        assert len(search_hash) == 16
        assert all(c in "0123456789abcdef" for c in search_hash)

    def test_custom_length(self):
        assert len(generate_search_hash("hotel", HOTEL_SEARCH, length=32)) == 32

    def test_key_order_does_not_matter(self):
        reordered = dict(reversed(list(HOTEL_SEARCH.items())))

        assert generate_search_hash("hotel", reordered) == generate_search_hash("hotel", HOTEL_SEARCH)

    def test_destination_casing_and_whitespace(self):
        messy = {**HOTEL_SEARCH, "destination": "  new   YORK "}

        assert generate_search_hash("hotel", messy) == generate_search_hash("hotel", HOTEL_SEARCH)

    def test_numeric_strings_and_dates(self):
        loose = {**HOTEL_SEARCH, "adults": "2", "check_in": date(2030, 6, 1)}

        assert generate_search_hash("hotel", loose) == generate_search_hash("hotel", HOTEL_SEARCH)

    def test_defaults_match_explicit_values(self):
        implicit = {k: v for k, v in HOTEL_SEARCH.items() if k != "rooms"}

        assert generate_search_hash("hotel", implicit) == generate_search_hash("hotel", HOTEL_SEARCH)

    def test_relevant_change_changes_hash(self):
        later = {**HOTEL_SEARCH, "check_in": "2030-06-02"}

        assert generate_search_hash("hotel", later) != generate_search_hash("hotel", HOTEL_SEARCH)

    def test_category_is_part_of_key(self):
        assert generate_search_hash("hotel", HOTEL_SEARCH) != generate_search_hash("package", HOTEL_SEARCH)

    def test_irrelevant_fields_ignored(self):
        noisy = {**HOTEL_SEARCH, "cabin_class": "business", "session": "abc"}

        assert generate_search_hash("hotel", noisy) == generate_search_hash("hotel", HOTEL_SEARCH)

    def test_category_extras_matter(self):
        economy = {"origin": "JFK", "destination": "LIS", "departure_date": "2030-06-01", "cabin_class": "economy"}
        business = {**economy, "cabin_class": "Business"}

        assert generate_search_hash("flight", economy) != generate_search_hash("flight", business)

    def test_unknown_category(self):
        with pytest.raises(UnknownCategoryError):
            generate_search_hash("spaceship", HOTEL_SEARCH)


class TestNormalizeSearchParams:
    def test_aliases(self):
        normalized = normalize_search_params("rental_car", {
            "city": "Lisbon ",
            "pickup_date": "2030-06-01",
            "dropoff_date": "2030-06-03",
            "car_type": "SUV",
        })

        assert normalized == {
            "category": "rental_car",
            "destination": "lisbon",
            "check_in": "2030-06-01",
            "check_out": "2030-06-03",
            "adults": 1,
            "children": 0,
            "car_type": "suv",
        }

    def test_numeric_extras(self):
        normalized = normalize_search_params("hotel", {"destination": "Rome", "min_stars": "4"})

        assert normalized["min_stars"] == 4
        assert normalized["rooms"] == 1


class TestPolicies:
    @pytest.mark.parametrize("category,ttl,threshold", [
        ("hotel", 24, 4),
        ("flight", 2, 0.5),
        ("rental_car", 12, 2),
        ("transfer", 12, 2),
        ("excursion", 12, 2),
        ("package", 6, 1),
    ])
    def test_policy_table(self, category, ttl, threshold):
        policy = get_policy(category)

        assert policy.ttl_hours == ttl
        assert policy.refresh_threshold_hours == threshold

    def test_unknown_category(self):
        with pytest.raises(UnknownCategoryError):
            get_policy("cruise")

from __future__ import annotations

import unittest

from spaceshare.services.search_engine import (
    GEO_NEW,
    FilterSpec,
    ListingRecord,
    SearchValidationError,
    normalize_text,
    search,
)


HCM = "Hồ Chí Minh"


def _rec(listing_id: int, **overrides) -> ListingRecord:
    fields = {
        "id": listing_id,
        "title": f"Listing {listing_id}",
        "province_old": HCM,
        "district_old": "Quận 1",
        "province_new": HCM,
        "ward_new": "Phường Bến Nghé",
        "status": "approved",
        "price_min": 100000,
        "price_max": 300000,
    }
    fields.update(overrides)
    return ListingRecord(**fields)


def _spec(**overrides) -> FilterSpec:
    fields = {"province": HCM}
    fields.update(overrides)
    return FilterSpec(**fields)


def _ids(result) -> list[int]:
    return [item.id for item in result.results]


class NormalizeTextTestCase(unittest.TestCase):
    def test_strips_diacritics_case_and_whitespace(self):
        self.assertEqual(normalize_text("  Cà Phê   Đà Lạt "), "ca phe da lat")
        self.assertEqual(normalize_text("VĂN PHÒNG"), "van phong")

    def test_is_idempotent(self):
        for raw in ("Cà Fe  Vũ", "Đường Nguyễn Huệ", "", "   ", "abc"):
            once = normalize_text(raw)
            self.assertEqual(normalize_text(once), once)

    def test_whitespace_insensitive_after_compaction(self):
        left = normalize_text("Cà Fe  Vũ").replace(" ", "")
        right = normalize_text("cafevu").replace(" ", "")
        self.assertEqual(left, right)

    def test_none_is_empty(self):
        self.assertEqual(normalize_text(None), "")


class SearchFilterTestCase(unittest.TestCase):
    def test_empty_candidates(self):
        result = search([], _spec())
        self.assertEqual(result.results, [])
        self.assertEqual(result.total, 0)

    def test_status_and_visibility_always_applied(self):
        candidates = [
            _rec(1, status="approved"),
            _rec(2, status="expired"),
            _rec(3, status="pending"),
            _rec(4, status="draft"),
            _rec(5, status="approved", is_hidden=True),
        ]
        self.assertEqual(_ids(search(candidates, _spec())), [2, 1])

    def test_geography_old_system_with_district_set(self):
        candidates = [
            _rec(1, district_old="Quận 1"),
            _rec(2, district_old="Quận 3"),
            _rec(3, district_old="Quận 7"),
            _rec(4, province_old="Hà Nội"),
        ]
        self.assertEqual(_ids(search(candidates, _spec())), [3, 2, 1])
        spec = _spec(districts=frozenset({"Quận 1", "Quận 7"}))
        self.assertEqual(_ids(search(candidates, spec)), [3, 1])

    def test_geography_new_system_uses_ward(self):
        candidates = [
            _rec(1, ward_new="Phường Bến Nghé", province_old="Khác"),
            _rec(2, ward_new="Phường Sài Gòn"),
        ]
        spec = _spec(geo_system=GEO_NEW, wards=frozenset({"Phường Bến Nghé"}))
        self.assertEqual(_ids(search(candidates, spec)), [1])

    def test_not_suitable_for_any_overlap_excludes(self):
        candidates = [
            _rec(1, not_suitable_for=frozenset({"Nấu ăn"})),
            _rec(2, not_suitable_for=frozenset({"Tiệc"})),
            _rec(3),
        ]
        spec = _spec(not_suitable_for=frozenset({"Nấu ăn", "Karaoke"}))
        self.assertEqual(_ids(search(candidates, spec)), [3, 2])

    def test_suitable_for_cross_exclusion_requires_superset(self):
        candidates = [
            _rec(1, not_suitable_for=frozenset({"A"})),
            _rec(2, not_suitable_for=frozenset({"A", "B"})),
            _rec(3, not_suitable_for=frozenset({"A", "B", "C"})),
            _rec(4),
        ]
        spec = _spec(suitable_for=frozenset({"A", "B"}))
        self.assertEqual(sorted(_ids(search(candidates, spec))), [1, 4])

    def test_tag_filters_match_any_overlap(self):
        candidates = [
            _rec(1, space_types=frozenset({"Bếp"}), amenities=frozenset({"Wifi", "Máy lạnh"})),
            _rec(2, space_types=frozenset({"Văn phòng"}), amenities=frozenset({"Wifi"})),
            _rec(3, space_types=frozenset({"Bếp", "Kho"}), amenities=frozenset()),
        ]
        spec = _spec(space_types=frozenset({"Bếp"}), amenities=frozenset({"Máy lạnh", "Bãi xe"}))
        self.assertEqual(_ids(search(candidates, spec)), [1])

    def test_location_type_membership(self):
        candidates = [
            _rec(1, location_type="Mặt tiền"),
            _rec(2, location_type="Trong hẻm"),
            _rec(3, location_type=""),
        ]
        spec = _spec(location_types=frozenset({"Mặt tiền", "Trong TTTM"}))
        self.assertEqual(_ids(search(candidates, spec)), [1])

    def test_nearby_features_overlap(self):
        candidates = [
            _rec(1, nearby_features=frozenset({"Trường học"})),
            _rec(2, nearby_features=frozenset({"Chợ"})),
        ]
        spec = _spec(nearby_features=frozenset({"Chợ", "Bệnh viện"}))
        self.assertEqual(_ids(search(candidates, spec)), [2])

    def test_price_range_overlap(self):
        candidates = [
            _rec(1, price_min=30000, price_max=60000),
            _rec(2, price_min=10000, price_max=20000),
        ]
        self.assertEqual(_ids(search(candidates, _spec(price_min=50000, price_max=100000))), [1])
        self.assertEqual(_ids(search(candidates, _spec(price_min=30000, price_max=40000))), [1])
        self.assertEqual(_ids(search(candidates, _spec(price_min=15000))), [2, 1])
        self.assertEqual(_ids(search(candidates, _spec(price_max=25000))), [2])
        self.assertEqual(_ids(search(candidates, _spec(price_max=9000))), [])

    def test_inverted_listing_price_is_tolerated(self):
        candidates = [_rec(1, price_min=80000, price_max=50000)]
        self.assertEqual(_ids(search(candidates, _spec(price_min=60000, price_max=90000))), [])
        self.assertEqual(_ids(search(candidates, _spec(price_min=40000, price_max=90000))), [1])

    def test_missing_listing_price_fails_bound_checks(self):
        candidates = [_rec(1, price_min=None, price_max=None)]
        self.assertEqual(_ids(search(candidates, _spec())), [1])
        self.assertEqual(_ids(search(candidates, _spec(price_min=1))), [])

    def test_text_query_is_accent_case_and_space_insensitive(self):
        candidates = [
            _rec(1, title="Văn Phòng chia sẻ Quận 1"),
            _rec(2, description="Bếp  công nghiệp cho thuê theo giờ"),
            _rec(3, address_old="12 Đường Cà Fe Vũ"),
            _rec(4, title="Kho lạnh"),
        ]
        self.assertEqual(_ids(search(candidates, _spec(query="van phong"))), [1])
        self.assertEqual(_ids(search(candidates, _spec(query="BEPCONG"))), [2])
        self.assertEqual(_ids(search(candidates, _spec(query="cafevu"))), [3])
        self.assertEqual(len(search(candidates, _spec(query="   ")).results), 4)

    def test_text_query_uses_address_of_active_system(self):
        candidates = [_rec(1, address_old="Số 5 Lê Lợi", address_new="Số 5 Đồng Khởi")]
        self.assertEqual(_ids(search(candidates, _spec(query="le loi"))), [1])
        self.assertEqual(_ids(search(candidates, _spec(query="dong khoi"))), [])
        new_spec = _spec(geo_system=GEO_NEW, wards=frozenset({"Phường Bến Nghé"}), query="dong khoi")
        self.assertEqual(_ids(search(candidates, new_spec)), [1])

    def test_time_of_day_label_matches_session_suffix(self):
        candidates = [
            _rec(1, time_slots=("Thứ 2|Sáng", "Thứ 3|Tối")),
            _rec(2, time_slots=("Cuối tuần|Cả ngày",)),
            _rec(3, time_slots=("Thứ 2|Chiều",)),
            _rec(4, time_slots=()),
        ]
        spec = _spec(time_of_day=frozenset({"Buổi sáng", "Nguyên ngày"}))
        self.assertEqual(_ids(search(candidates, spec)), [2, 1])

    def test_unknown_time_labels_match_nothing(self):
        candidates = [_rec(1, time_slots=("Thứ 2|Sáng",))]
        self.assertEqual(_ids(search(candidates, _spec(time_of_day=frozenset({"Nửa đêm"})))), [])


class SearchRankingTestCase(unittest.TestCase):
    def test_default_order_is_id_descending(self):
        candidates = [_rec(2), _rec(9), _rec(5)]
        self.assertEqual(_ids(search(candidates, _spec())), [9, 5, 2])

    def test_suitable_for_boost_is_stable_partition(self):
        a = _rec(40, suitable_for=frozenset())
        b = _rec(30, suitable_for=frozenset({"Workshop"}))
        c = _rec(20, suitable_for=frozenset({"Khác"}))
        d = _rec(10, suitable_for=frozenset({"Workshop", "Họp"}))
        spec = _spec(suitable_for=frozenset({"Workshop"}))
        self.assertEqual(_ids(search([a, b, c, d], spec)), [30, 10, 40, 20])

    def test_boost_never_excludes(self):
        candidates = [_rec(1), _rec(2, suitable_for=frozenset({"Họp"}))]
        result = search(candidates, _spec(suitable_for=frozenset({"Workshop"})))
        self.assertEqual(result.total, 2)

    def test_deterministic(self):
        candidates = [_rec(i, suitable_for=frozenset({"X"}) if i % 3 == 0 else frozenset()) for i in range(1, 30)]
        spec = _spec(suitable_for=frozenset({"X"}), page=2, page_size=5)
        self.assertEqual(search(candidates, spec), search(list(reversed(candidates)), spec))


class SearchPaginationTestCase(unittest.TestCase):
    def test_total_counts_before_slicing(self):
        candidates = [_rec(i) for i in range(1, 26)]
        first = search(candidates, _spec(page=1, page_size=10))
        third = search(candidates, _spec(page=3, page_size=10))
        self.assertEqual(first.total, 25)
        self.assertEqual(_ids(first), list(range(25, 15, -1)))
        self.assertEqual(_ids(third), [5, 4, 3, 2, 1])
        self.assertEqual(search(candidates, _spec(page=9, page_size=10)).results, [])

    def test_all_results_skips_pagination(self):
        candidates = [_rec(i) for i in range(1, 26)]
        result = search(candidates, _spec(page=2, page_size=5, all_results=True))
        self.assertEqual(len(result.results), 25)
        self.assertEqual(result.total, 25)


class FilterSpecValidationTestCase(unittest.TestCase):
    def test_province_is_mandatory(self):
        with self.assertRaises(SearchValidationError):
            FilterSpec(province="  ").validate()

    def test_ward_required_for_new_system(self):
        with self.assertRaises(SearchValidationError):
            FilterSpec(province=HCM, geo_system=GEO_NEW).validate()
        FilterSpec(province=HCM, geo_system=GEO_NEW, wards=frozenset({"Phường 1"})).validate()

    def test_unknown_geo_system(self):
        with self.assertRaises(SearchValidationError):
            FilterSpec(province=HCM, geo_system="future").validate()


class EndToEndScenarioTestCase(unittest.TestCase):
    def test_province_text_and_price_overlap(self):
        candidates = [
            _rec(1, title="Văn phòng mini", price_min=150000, price_max=250000),
            _rec(2, title="Văn Phòng ảo", price_min=600000, price_max=900000),
            _rec(3, title="Kho hàng", price_min=200000, price_max=400000),
            _rec(4, title="van phong chung", province_old="Hà Nội"),
            _rec(5, title="VĂN PHÒNG trọn gói", price_min=300000, price_max=500000),
        ]
        spec = _spec(query="van phong", price_min=200000, price_max=500000)
        result = search(candidates, spec)
        self.assertEqual(_ids(result), [5, 1])
        self.assertEqual(result.total, 2)


if __name__ == "__main__":
    unittest.main()

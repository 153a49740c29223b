"""
Unit tests for specification standardization, classification and queries

Author: GearShop
Date: 2025-06-02
"""
import pytest
from unittest.mock import MagicMock

from gearshop.core.exceptions import InvalidRequestError, NotFoundError
from gearshop.domain.specification import (
    CompareRequest,
    PrioritySpec,
    RecommendRequest,
    SpecificationFilter,
)
from gearshop.services.specification_service import (
    SpecificationService,
    analyze_product,
    category_key,
    classify_use_case,
    standardize_specs,
)


@pytest.fixture
def catalog(product_factory):
    return [
        product_factory(
            product_id=1, name="Logitech G Pro X Superlight", price="3290000", category_id=3,
            specifications={"DPI": "25,600", "Weight": "63 g", "Connectivity": "LIGHTSPEED Wireless"},
        ),
        product_factory(
            product_id=2, name="Razer DeathAdder Essential", price="490000", category_id=3, brand="Razer",
            specifications={"DPI": "6400", "Connectivity": "USB wired"},
        ),
        product_factory(
            product_id=3, name="Corsair K70 RGB", price="3500000", category_id=4,
            category_name="Bàn phím cơ", brand="Corsair",
            specifications={"Type": "Mechanical", "Switches": "Cherry  MX Red", "Backlight": "RGB",
                            "Layout": "Full-size 100%", "Connectivity": "USB-C"},
        ),
        product_factory(
            product_id=4, name="ASUS ROG Strix XG27AQ", price="8900000", category_id=6,
            category_name="Màn hình", brand="ASUS",
            specifications={"Resolution": "2560x1440", "Refresh Rate": "170Hz", "Panel": "IPS"},
        ),
    ]


@pytest.fixture
def service(catalog):
    repo = MagicMock()
    repo.find_all_for_index.return_value = catalog
    repo.find_by_ids.side_effect = lambda ids: [p for p in catalog if p.id in ids]
    return SpecificationService(product_repository=repo)


class TestStandardization:

    def test_keys_and_values(self):
        specs = standardize_specs({
            "DPI": "25,600",
            "Weight": "63 g",
            "Bộ nhớ": "16 GB",
            "Refresh Rate": "240Hz",
            "Backlight": "Razer Chroma",
            "Connectivity": "Wireless + Bluetooth",
        })

        assert specs == {
            "dpi": "Up to 25600",
            "weight": "63g",
            "memory": "16GB DDR5",
            "refresh_rate": "240Hz",
            "backlight": "RGB",
            "connectivity": "Hybrid Wireless",
        }

    def test_category_keys(self):
        assert category_key("Chuột") == "mice"
        assert category_key("Gaming Laptop") == "laptops"
        assert category_key("Phụ kiện") == "unknown"


class TestClassification:

    @pytest.mark.parametrize("product_id,tier", [(1, "high"), (2, "entry"), (3, "mid"), (4, "mid")])
    def test_performance_tiers(self, catalog, product_id, tier):
        product = next(p for p in catalog if p.id == product_id)
        assert analyze_product(product)["performance_tier"] == tier

    def test_headsets_have_no_tier(self, product_factory):
        headset = product_factory(category_name="Tai nghe", specifications={"Microphone": "Detachable"})
        assert analyze_product(headset)["performance_tier"] == "unknown"

    def test_use_cases(self):
        assert classify_use_case("Logitech G Pro X", "", {"layout": "Tenkeyless"}) == "competitive"
        assert classify_use_case("Dell UltraSharp", "", {"resolution": "4K", "panel": "IPS"}) == "content"
        assert classify_use_case("Generic mouse", "", {}) == "casual"

    def test_pro_must_be_a_whole_word(self):
        assert classify_use_case("Logitech G Prodigy", "", {}) == "casual"

    def test_analyzed_payload_keeps_original_specs(self, catalog):
        data = analyze_product(catalog[0])

        assert data["original_specifications"]["DPI"] == "25,600"
        assert data["specifications"]["dpi"] == "Up to 25600"
        assert data["category_key"] == "mice"
        assert data["name"] == "Logitech G Pro X Superlight"


class TestSpecificationService:

    def test_analyze_report(self, service):
        report = service.analyze()

        assert report["total_products"] == 4
        assert report["categories"] == {"mice": 2, "keyboards": 1, "monitors": 1}
        assert report["performance_tiers"]["high"] == 1
        assert report["specifications"]["dpi"] == ["Up to 25600", "Up to 6400"]
        assert len(report["analyzed_products"]) == 4

    def test_analyze_empty_catalog(self):
        repo = MagicMock()
        repo.find_all_for_index.return_value = []
        with pytest.raises(NotFoundError):
            SpecificationService(product_repository=repo).analyze()

    def test_filter_by_spec_value_and_price(self, service):
        """Test spec keys in the filter are standardized like the product's"""
        # Arrange
        criteria = SpecificationFilter(specifications={"Connectivity": ["wireless", "bluetooth"]}, max_price=5_000_000)

        # Act
        page = service.filter(criteria)

        # Assert
        assert [p["id"] for p in page["products"]] == [1]
        assert page["total_products"] == 1
        assert page["has_next_page"] is False

    def test_filter_sorts_and_paginates(self, service):
        page = service.filter(SpecificationFilter(sort_by="price", sort_order="desc", page=2, limit=3))

        assert [p["id"] for p in page["products"]] == [2]
        assert page["total_pages"] == 2
        assert page["has_prev_page"] is True

    def test_filter_by_tier(self, service):
        page = service.filter(SpecificationFilter(category_id=3, performance_tier="entry"))
        assert [p["id"] for p in page["products"]] == [2]

    def test_category_specifications(self, service):
        data = service.category_specifications(3)

        assert data["category_key"] == "mice"
        assert data["total_products"] == 2
        assert data["specifications"]["connectivity"] == ["Wired", "Wireless"]

        with pytest.raises(NotFoundError):
            service.category_specifications(99)

    def test_compare_matrix(self, service):
        result = service.compare(CompareRequest(product_ids=[1, 2]))

        assert [p["id"] for p in result["products"]] == [1, 2]
        assert result["specification_matrix"]["weight"] == [
            {"product_id": 1, "value": "63g"},
            {"product_id": 2, "value": "N/A"},
        ]

    @pytest.mark.parametrize("ids", [[1], [1, 1], [1, 2, 3, 4, 5, 6]])
    def test_compare_needs_two_to_five_products(self, service, ids):
        with pytest.raises(InvalidRequestError):
            service.compare(CompareRequest(product_ids=ids))

    def test_compare_missing_product(self, service):
        with pytest.raises(NotFoundError, match="99"):
            service.compare(CompareRequest(product_ids=[1, 99]))

    def test_recommend_by_tier_within_budget(self, service):
        result = service.recommend(RecommendRequest(category_id=3, budget=4_000_000, use_case="competitive"))

        assert [p["id"] for p in result["recommendations"]] == [1, 2]

    def test_recommend_by_priority_specs(self, service):
        result = service.recommend(RecommendRequest(
            use_case="casual",
            priority_specs=[PrioritySpec(key="Backlight", value="rgb", weight=2)],
        ))

        top = result["recommendations"][0]
        assert top["id"] == 3
        assert top["recommendation_score"] == 2

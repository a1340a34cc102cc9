import json

from glassbox.config import FilterRules
from glassbox.demo.catalog import SAMPLE_CATALOG, Product, load_catalog, search_products
from glassbox.demo.filters import evaluate_filters


def _product(**overrides) -> Product:
    fields = dict(id="p", title="Thing", price=20.0, rating=4.0, reviews=100, keywords=[])
    fields.update(overrides)
    return Product(**fields)


def test_load_catalog_from_file(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps([{"id": "x", "title": "Mug", "price": 9.5, "rating": 4.1, "reviews": 10}]))

    [product] = load_catalog(path)
    assert product.title == "Mug"
    assert product.keywords == []
    assert load_catalog() == SAMPLE_CATALOG


def test_search_matches_title_and_keywords():
    catalog = [
        _product(id="1", title="Steel Water Bottle"),
        _product(id="2", title="Flask", keywords=["hydration"]),
        _product(id="3", title="Yoga Mat", keywords=["yoga"]),
    ]
    found = search_products(catalog, ["water", "hydration pack"])
    assert [p.id for p in found] == ["1", "2"]
    assert search_products(catalog, []) == []


def test_filters_apply_thresholds():
    rules = FilterRules()
    candidates = [
        _product(id="ok", title="Good"),
        _product(id="cheap", title="Cheap", price=10.0),
        _product(id="bad", title="Bad", rating=2.9, reviews=49),
    ]
    result = evaluate_filters(candidates, rules)

    assert result.kind == "filter_evaluation"
    assert (result.total_evaluated, result.passed_count, result.failed_count) == (3, 1, 2)
    good, cheap, bad = result.evaluations
    assert good.qualified and good.rejection_reason is None
    assert cheap.failed_filters == ["min_price"]
    assert cheap.filter_results["min_price"].detail == "$10.00 <= $10.00"
    assert "likely an accessory" in cheap.rejection_reason
    assert bad.failed_filters == ["min_rating", "min_reviews"]
    assert "Only 49 reviews (need 50+)." in bad.rejection_reason
    assert set(result.filters_applied) == {"min_price", "min_rating", "min_reviews"}

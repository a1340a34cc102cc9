"""Product catalog used by the demo pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

from pydantic import BaseModel, Field, TypeAdapter


class Product(BaseModel):
    id: str
    title: str
    price: float
    rating: float
    reviews: int
    category: str = ""
    keywords: list[str] = Field(default_factory=list)


_product_list = TypeAdapter(list[Product])

SAMPLE_CATALOG: list[Product] = _product_list.validate_python(
    [
        {"id": "wb-1", "title": "HydroFlask 32oz Wide Mouth Water Bottle", "price": 44.95, "rating": 4.8, "reviews": 18230, "category": "water-bottle", "keywords": ["water", "bottle", "insulated", "hydration"]},
        {"id": "wb-2", "title": "Nalgene Tritan Water Bottle", "price": 14.99, "rating": 4.7, "reviews": 9120, "category": "water-bottle", "keywords": ["water", "bottle", "bpa-free"]},
        {"id": "wb-3", "title": "Water Bottle Cleaning Brush Set", "price": 7.99, "rating": 4.3, "reviews": 2210, "category": "water-bottle", "keywords": ["bottle", "brush", "cleaning"]},
        {"id": "wb-4", "title": "Generic Plastic Water Bottle", "price": 11.50, "rating": 2.6, "reviews": 40, "category": "water-bottle", "keywords": ["water", "bottle"]},
        {"id": "wb-5", "title": "Stanley Quencher Tumbler 40oz", "price": 45.00, "rating": 4.6, "reviews": 25410, "category": "tumbler", "keywords": ["tumbler", "water", "insulated", "mug"]},
        {"id": "rs-1", "title": "Nike Pegasus 40 Running Shoes", "price": 129.99, "rating": 4.6, "reviews": 5400, "category": "running-shoes", "keywords": ["running", "shoes", "sneakers"]},
        {"id": "rs-2", "title": "Brooks Ghost 15 Running Shoes", "price": 139.95, "rating": 4.7, "reviews": 7300, "category": "running-shoes", "keywords": ["running", "shoes", "marathon"]},
        {"id": "rs-3", "title": "Shoe Laces Replacement Pack", "price": 5.99, "rating": 4.1, "reviews": 880, "category": "running-shoes", "keywords": ["shoes", "laces"]},
        {"id": "eb-1", "title": "Sony WF-1000XM5 Wireless Earbuds", "price": 279.99, "rating": 4.5, "reviews": 3900, "category": "wireless-earbuds", "keywords": ["earbuds", "wireless", "bluetooth", "audio"]},
        {"id": "eb-2", "title": "Budget Bluetooth Earbuds", "price": 19.99, "rating": 3.4, "reviews": 120, "category": "wireless-earbuds", "keywords": ["earbuds", "bluetooth"]},
        {"id": "bp-1", "title": "Osprey Daylite Backpack", "price": 65.00, "rating": 4.8, "reviews": 4100, "category": "backpack", "keywords": ["backpack", "daypack", "bag"]},
        {"id": "ym-1", "title": "Manduka PRO Yoga Mat", "price": 129.00, "rating": 4.7, "reviews": 6200, "category": "yoga-mat", "keywords": ["yoga", "mat", "pilates"]},
    ]
)


def load_catalog(path: Optional[str | Path] = None) -> list[Product]:
    """Load products from a JSON array file, or the bundled sample."""
    if path is None:
        return list(SAMPLE_CATALOG)
    return _product_list.validate_json(Path(path).read_bytes())


def search_terms(keywords: Iterable[str]) -> list[str]:
    return [term for keyword in keywords for term in keyword.lower().split()]


def search_products(catalog: Iterable[Product], keywords: Iterable[str]) -> list[Product]:
    """Products whose title or keywords contain any search term."""
    terms = search_terms(keywords)
    matches = []
    for product in catalog:
        title = product.title.lower()
        for term in terms:
            if term in title or any(
                term in kw.lower() or kw.lower() in term for kw in product.keywords
            ):
                matches.append(product)
                break
    return matches

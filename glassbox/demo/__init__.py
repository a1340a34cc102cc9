"""Product matching demo pipeline run under the tracer."""

from .catalog import Product, load_catalog, search_products
from .pipeline import MatchResult, ProductMatchPipeline

__all__ = [
    "MatchResult",
    "Product",
    "ProductMatchPipeline",
    "load_catalog",
    "search_products",
]

"""Quality filters applied to candidate products."""

from __future__ import annotations

from ..config import FilterRules
from ..outputs import FilterCheck, FilterEvaluation, FilterEvaluationOutput, ProductMetrics
from .catalog import Product


def evaluate_product(product: Product, rules: FilterRules) -> FilterEvaluation:
    min_price = rules.min_price.value
    min_rating = rules.min_rating.value
    min_reviews = int(rules.min_reviews.value)

    price_ok = product.price > min_price
    rating_ok = product.rating >= min_rating
    reviews_ok = product.reviews >= min_reviews

    checks = {
        "min_price": FilterCheck(
            passed=price_ok,
            detail=f"${product.price:.2f} {'>' if price_ok else '<='} ${min_price:.2f}",
        ),
        "min_rating": FilterCheck(
            passed=rating_ok,
            detail=f"{product.rating} {'>=' if rating_ok else '<'} {min_rating}",
        ),
        "min_reviews": FilterCheck(
            passed=reviews_ok,
            detail=f"{product.reviews} {'>=' if reviews_ok else '<'} {min_reviews}",
        ),
    }

    reasons = []
    if not price_ok:
        reasons.append(
            f"Price ${product.price:.2f} is below ${min_price:.2f}, likely an accessory."
        )
    if not rating_ok:
        reasons.append(f"Rating {product.rating} below {min_rating} threshold.")
    if not reviews_ok:
        reasons.append(f"Only {product.reviews} reviews (need {min_reviews}+).")

    return FilterEvaluation(
        id=product.id,
        title=product.title,
        metrics=ProductMetrics(
            price=product.price, rating=product.rating, reviews=product.reviews
        ),
        filter_results=checks,
        qualified=not reasons,
        failed_filters=[name for name, check in checks.items() if not check.passed],
        rejection_reason=" ".join(reasons) or None,
    )


def evaluate_filters(candidates: list[Product], rules: FilterRules) -> FilterEvaluationOutput:
    evaluations = [evaluate_product(product, rules) for product in candidates]
    passed = sum(1 for e in evaluations if e.qualified)
    return FilterEvaluationOutput(
        filters_applied={
            "min_price": rules.min_price,
            "min_rating": rules.min_rating,
            "min_reviews": rules.min_reviews,
        },
        total_evaluated=len(evaluations),
        passed_count=passed,
        failed_count=len(evaluations) - passed,
        evaluations=evaluations,
    )

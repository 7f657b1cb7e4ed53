from datetime import datetime, timedelta, timezone

from conftest import T0, make_scored
from ds_trend_pipeline.pipeline.quality import (
    QualityRules,
    deduplicate,
    filter_products,
    filter_with_report,
    rejection_reasons,
)


def _scenario_a():
    return [
        make_scored(80, id="c1", rating=4.5, review_count=200, price=30),
        make_scored(27, id="c2", rating=2.0, review_count=10, price=6),
        make_scored(75, id="c3", rating=4.0, review_count=0, price=40),
    ]


def test_scenario_a_keeps_first_and_third_in_score_order():
    kept = filter_products(_scenario_a())
    assert [p.id for p in kept] == ["c1", "c3"]


def test_rejection_lists_every_broken_rule():
    reasons = rejection_reasons(_scenario_a()[1])
    assert len(reasons) == 3
    assert any(r.startswith("score") for r in reasons)
    assert any(r.startswith("price") for r in reasons)
    assert any(r.startswith("rating") for r in reasons)


def test_unreviewed_items_skip_the_rating_floor_unless_disabled():
    fresh = make_scored(90, rating=0, review_count=0)
    assert rejection_reasons(fresh) == []
    assert rejection_reasons(fresh, QualityRules(exempt_unreviewed=False)) == ["rating 0 < 3.5"]


def test_short_titles_and_missing_images_are_rejected():
    assert rejection_reasons(make_scored(90, title="Earbuds")) == ["title too short"]
    assert rejection_reasons(make_scored(90, image_url="")) == ["no image"]


def test_price_bounds_are_inclusive():
    assert rejection_reasons(make_scored(90, price=10)) == []
    assert rejection_reasons(make_scored(90, price=500)) == []
    assert rejection_reasons(make_scored(90, price=500.01)) != []


def test_duplicates_keep_the_higher_score():
    kept = filter_products([make_scored(72, id="dup"), make_scored(90, id="dup")])
    assert len(kept) == 1
    assert kept[0].trend_score == 90


def test_duplicate_tie_keeps_the_earlier_observation():
    early = make_scored(80, id="dup", title="Earlier listing title", observed_at=T0)
    late = make_scored(80, id="dup", title="Later listing title", observed_at=T0 + timedelta(hours=2))
    assert deduplicate([late, early]) == [early]
    assert deduplicate([early, late]) == [early]


def test_dedup_runs_after_validation():
    # The higher-scoring copy is invalid, so the valid lower one survives
    invalid = make_scored(95, id="dup", image_url="")
    valid = make_scored(75, id="dup")
    report = filter_with_report([invalid, valid])
    assert [p.trend_score for p in report.kept] == [75]
    assert report.duplicates == 0
    assert [r.item_id for r in report.rejected] == ["dup"]


def test_ties_break_on_review_count_then_id():
    products = [
        make_scored(80, id="b", review_count=100),
        make_scored(80, id="a", review_count=100),
        make_scored(80, id="c", review_count=900),
    ]
    assert [p.id for p in filter_products(products)] == ["c", "a", "b"]


def test_results_are_truncated():
    products = [make_scored(70 + i, id=f"p{i:02d}") for i in range(30)]
    kept = filter_products(products, QualityRules(max_results=5))
    assert [p.trend_score for p in kept] == [99, 98, 97, 96, 95]


def test_filter_is_idempotent_and_order_independent():
    products = [make_scored(70 + i, id=f"p{i}", review_count=i * 10) for i in range(12)]
    products += [make_scored(50, id="low"), make_scored(88, id="p3")]
    once = filter_products(products)
    assert filter_products(once) == once
    assert filter_products(list(reversed(products))) == once


def test_empty_input():
    assert filter_products([]) == []


def test_dedup_compares_naive_and_aware_timestamps():
    naive = make_scored(80, id="dup", title="Naive listing title", observed_at=datetime(2026, 1, 1))
    aware = make_scored(
        80, id="dup", title="Aware listing title", observed_at=datetime(2026, 1, 2, tzinfo=timezone.utc)
    )
    assert deduplicate([aware, naive]) == [naive]
    assert [p.id for p in filter_products([naive, aware])] == ["dup"]

from conftest import make_scored, make_scored_signal
from ds_trend_pipeline.pipeline.models import RegionScore, SignalSummary
from ds_trend_pipeline.pipeline.recommender import generate_recommendations


def test_all_rules_fire_in_order():
    signals = [
        make_scored_signal("air fryer", 92),
        make_scored_signal("pet camera", 81),
        make_scored_signal("massage gun", 85),
        make_scored_signal("yoga mat", 88),
        make_scored_signal("#desksetup", 74, kind="social"),
    ]
    products = [
        make_scored(80, id="a", review_count=150),
        make_scored(90, id="b", review_count=99),
        make_scored(75, id="c", review_count=100),
    ]
    summary = SignalSummary(top_regions=(
        RegionScore("US-CA", "California", 100),
        RegionScore("US-TX", "", 90),
        RegionScore("US-NY", "New York", 80),
    ))

    assert generate_recommendations(signals, products, summary) == [
        "Focus on high-scoring trends: air fryer, yoga mat, massage gun",
        "Leverage trending social hashtags: #desksetup",
        "Consider sourcing: 2 high-potential products identified",
        "Target regions: California, US-TX",
    ]


def test_social_signals_do_not_count_as_search_trends():
    signals = [make_scored_signal("#viral", 95, kind="social")]
    assert generate_recommendations(signals, [], SignalSummary()) == [
        "Leverage trending social hashtags: #viral",
    ]


def test_nothing_triggered():
    signals = [make_scored_signal("lamp", 79), make_scored_signal("#cozy", 69, kind="social")]
    products = [make_scored(74, review_count=1000)]
    assert generate_recommendations(signals, products, SignalSummary()) == []

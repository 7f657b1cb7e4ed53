from conftest import make_scored_signal
from ds_trend_pipeline.pipeline.dedup import derive_query_terms
from ds_trend_pipeline.pipeline.normalizer import normalize_term, strip_marketplace_names


def test_normalize_term_strips_hashtag_and_marketplace_names():
    assert normalize_term("#LED_Strip_Lights") == "led strip lights"
    assert normalize_term("  Amazon Air Fryer!! ") == "air fryer"
    assert normalize_term("#tiktokshop") == "tiktokshop"
    assert normalize_term("#TikTok") == ""


def test_strip_marketplace_names_keeps_other_words():
    assert strip_marketplace_names("Walmart Exclusive Mug").split() == ["Exclusive", "Mug"]


def test_terms_follow_signal_rank_and_respect_top_k():
    signals = [
        make_scored_signal("pet camera", 70),
        make_scored_signal("air fryer", 95),
        make_scored_signal("massage gun", 85),
    ]
    assert derive_query_terms(signals, top_k=2) == ["air fryer", "massage gun"]
    assert derive_query_terms(signals, top_k=0) == []


def test_near_duplicate_terms_fold_into_higher_ranked():
    signals = [
        make_scored_signal("wireless earbuds", 90),
        make_scored_signal("#Earbuds_Wireless", 80, kind="social"),
        make_scored_signal("portable charger", 60),
    ]
    assert derive_query_terms(signals) == ["wireless earbuds", "portable charger"]


def test_empty_keys_are_dropped():
    signals = [make_scored_signal("#amazon", 99), make_scored_signal("yoga mat", 50)]
    assert derive_query_terms(signals) == ["yoga mat"]

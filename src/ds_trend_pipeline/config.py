from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Database (catalog sink + run history)
    database_url: str = "sqlite+aiosqlite:///./data.db"

    # Publishing backend
    cms_api_url: str = "http://localhost:3000/api"
    cms_api_key: str = ""
    publish_threshold: float = 85.0
    title_max_length: int = 80
    slug_max_length: int = 50
    image_dir: Path = Path("./data/images/products")
    image_url_prefix: str = "/images/products"

    # Notifications
    webhook_url: str = ""

    # Rate limiting / timeouts
    source_delay_secs: float = 2.0
    publish_delay_secs: float = 1.0
    call_timeout_secs: float = 30.0

    # Feeds (file paths or URLs) used by the CLI and the scheduled job
    signal_feeds: list[str] = []
    product_feeds: list[str] = []
    publish_sink: str = "none"  # none | cms | db

    # Signal collection
    seed_keywords: list[str] = [
        "wireless earbuds", "portable charger", "LED strip lights",
        "air fryer", "massage gun", "resistance bands", "pet camera",
    ]
    geo: str = "US"
    timeframe: str = "today 1-m"
    top_k_signals: int = 10
    summary_top_n: int = 5

    # Scoring references and weights
    rating_weight: float = 0.4
    review_weight: float = 0.4
    price_weight: float = 0.2
    ref_reviews: float = 1000.0
    ref_price: float = 200.0
    post_weight: float = 0.4
    engagement_weight: float = 0.4
    view_weight: float = 0.2
    ref_posts: float = 100.0
    ref_engagement: float = 10.0
    ref_views: float = 1_000_000.0
    max_rank: int = 100

    # Quality gate
    min_score: float = 70.0
    min_price: float = 10.0
    max_price: float = 500.0
    min_rating: float = 3.5
    exempt_unreviewed: bool = True
    min_title_length: int = 10
    max_results: int = 20

    # Scheduling
    pipeline_cron: str = "0 8 * * *"
    pipeline_timezone: str = "America/New_York"

    # App
    log_level: str = "INFO"


settings = Settings()

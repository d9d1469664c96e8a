from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    redis_url: str = "redis://localhost:6379"

    # Store backend: "memory" or "redis"
    store_backend: str = "memory"
    store_namespace: str = "reelroom"

    # Catalog provider: "tmdb" or "static"
    catalog_provider: str = "tmdb"
    tmdb_api_token: str = ""
    tmdb_base_url: str = "https://api.themoviedb.org/3/"
    tmdb_image_base_url: str = "https://image.tmdb.org/t/p/w500"
    static_catalog_path: str = ""
    catalog_locale: str = "en-US"

    max_members: int = 10
    room_code_length: int = 6
    room_code_attempts: int = 5
    page_spread: int = 100

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()

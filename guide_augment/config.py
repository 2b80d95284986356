from pydantic_settings import BaseSettings

from guide_augment.errors import ConfigurationError


class Settings(BaseSettings):
    model_config = {
        "env_file": ".env",
        "extra": "ignore",
        "env_prefix": "",
        "case_sensitive": False,
    }

    # Language model
    anthropic_api_key: str = ""
    extraction_model: str = "claude-sonnet-4-5-20250929"
    extraction_max_tokens: int = 4096
    llm_max_retries: int = 3
    llm_timeout_seconds: float = 120.0
    llm_cache_dir: str = ""

    # Catalog search service
    catalog_api_url: str = "http://localhost:8787"
    catalog_api_key: str = ""
    catalog_timeout_seconds: float = 10.0
    catalog_max_attempts: int = 3

    # Corpus
    content_dir: str = "content/posts"
    backup_dir: str = "content/backups"
    min_content_length: int = 500

    # Matching
    similarity_threshold: float = 0.3
    max_products_per_gear: int = 3

    # Batch
    inter_document_delay_seconds: float = 2.0

    # App
    environment: str = "development"
    log_level: str = "INFO"
    log_file: str = ""

    def require_anthropic_key(self) -> str:
        """Return the Anthropic key or fail the run before any document is touched."""
        key = self.anthropic_api_key.strip()
        if not key:
            raise ConfigurationError("ANTHROPIC_API_KEY not set")
        return key


settings = Settings()

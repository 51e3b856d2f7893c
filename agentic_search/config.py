from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenRouter (chat completions)
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "anthropic/claude-sonnet-4.5"
    openrouter_model: str = ""
    citation_model: str = ""  # optional override for Citation Mode calls only

    # Parallel (search + extract)
    parallel_api_key: str = ""
    parallel_base_url: str = "https://api.parallel.ai"
    parallel_beta_header: str = "search-extract-2025-10-10"

    # HTTP timeouts
    llm_timeout_seconds: float = 120.0
    llm_connect_timeout_seconds: float = 10.0
    parallel_timeout_seconds: float = 60.0

    # Research loop
    research_max_iterations: int = 50
    stream_chunk_size: int = 10
    stream_chunk_delay_ms: int = 20

    # Citation Mode
    citation_batch_size: int = 5
    claim_min_length: int = 10
    claim_merge_gap: int = 10
    excerpt_concurrency: int = 3
    excerpt_cache_max_entries: int = 1024
    excerpt_cache_ttl_seconds: int = 6 * 60 * 60
    excerpt_max_content_chars: int = 15000

    # App
    app_title: str = "AgenticSearch Research Agent"
    app_referer: str = "http://localhost:5173"
    api_host: str = "127.0.0.1"
    api_port: int = 8000
    cors_origins: str = "http://localhost:5173"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # LLM
    llm_provider: str = "anthropic"
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    deepseek_api_key: str = ""
    llm_api_key: str = ""  # Generic key - used when provider-specific key is empty
    llm_model: str = "claude-sonnet-4-20250514"
    llm_base_url: str = ""  # Custom base URL for openai_compatible provider
    llm_max_tokens: int = 4000
    llm_temperature: float = 0.3

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    json_logs: bool = False
    cors_origins: list[str] = ["*"]

    # Browser
    browser_headless: bool = True
    browser_timeout: float = 30.0  # seconds, per navigation attempt
    browser_max_contexts: int = 5
    browser_user_agent: str = "SmartBrowser/1.0"
    navigation_retries: int = 3
    session_idle_timeout: float = 1800.0
    session_sweep_interval: float = 300.0

    # Tasks
    task_timeout: float = 30.0
    task_history_limit: int = 100

    # Content
    summary_cache_ttl: float = 86400.0
    summary_cache_size: int = 1000
    min_content_length: int = 100

    # Security
    blocked_domains: list[str] = ["malicious-site.com", "phishing-site.com"]

    # Rate limiting (fixed window per client address)
    rate_limit_requests: int = 100
    rate_limit_window: float = 900.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()

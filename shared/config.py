from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Blockchain
    ORACLE_RPC_URL: str = ""
    CHAIN_ID: int = 43114
    ORACLE_PRIVATE_KEY: str = ""
    POOL_ORACLE_ADDRESS: str = ""

    # Model service
    ANTHROPIC_API_KEY: str = ""
    AI_MODEL: str = "claude-sonnet-4-20250514"
    AI_TEMPERATURE: float = 0.3
    AI_MAX_TOKENS: int = 1500
    AI_RECOMMENDATIONS_ENABLED: bool = True
    AI_TIMEOUT_SECONDS: float = 30.0

    # Price feed
    COINGECKO_API_URL: str = "https://api.coingecko.com/api/v3"
    PRICE_CACHE_TTL_SECONDS: int = 60
    FALLBACK_BTC_PRICE_USD: float = 100_000.0

    # Protocol feeds: protocol name -> JSON endpoint returning normalized pools
    YIELD_FEEDS: dict[str, str] = {}
    ADAPTER_TIMEOUT_SECONDS: float = 15.0

    # Application
    API_SECRET_KEY: str = "dev-secret-key"
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()

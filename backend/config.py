from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    APP_ENV: str = "development"
    DEBUG: bool = True

    # Monnaie unique de la boutique
    CURRENCY:          str = "USD"
    CURRENCY_DECIMALS: int = 2      # 2 → calculs internes en centimes

    # Codes promo
    PROMO_CODE_CASE_INSENSITIVE: bool = True
    MAX_CATALOG_SIZE:            int  = 500

    # Rate limiting (saisie de codes promo)
    RATE_LIMIT_ENABLED:    bool = True
    APPLY_CODE_RATE_LIMIT: str  = "20/minute"

    model_config = SettingsConfigDict(
        env_file=[".env", "../.env"],  # cherche dans backend/ puis dans la racine
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()

from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(raw_value: str) -> list[str]:
    return [part.strip() for part in raw_value.split(",") if part.strip()]


def _normalize_env(raw_value: str) -> str:
    normalized = raw_value.strip().lower()
    return "production" if normalized == "production" else "development"


def _is_permissive_origin(value: str) -> bool:
    normalized = value.strip().lower()
    if not normalized:
        return False
    if normalized == "*":
        return True
    return "://*" in normalized


class Settings(BaseSettings):
    APP_ENV: str = "development"
    LOG_LEVEL: str = "info"

    # CORS
    CORS_ALLOW_ORIGINS: str = ""

    # Auth
    JWT_SECRET: str
    JWT_EXPIRES_SEC: int = 604800  # 7 days

    # Database
    DATABASE_URL: str = ""
    DB_STATEMENT_TIMEOUT_MS: int = 5000
    DB_SLOW_QUERY_MS: int = 300

    # Fitbit
    FITBIT_API_BASE_URL: str = "https://api.fitbit.com"
    FITBIT_CONNECT_TIMEOUT_SEC: float = 5.0
    FITBIT_READ_TIMEOUT_SEC: float = 10.0
    FITBIT_MAX_RETRIES: int = 1

    # Google Fit
    GOOGLE_FIT_API_BASE_URL: str = "https://www.googleapis.com/fitness/v1"
    GOOGLE_FIT_CONNECT_TIMEOUT_SEC: float = 5.0
    GOOGLE_FIT_READ_TIMEOUT_SEC: float = 10.0
    GOOGLE_FIT_MAX_RETRIES: int = 1

    # Economy
    CHECKIN_REWARD_FULL_COINS: int = 30
    CHECKIN_REWARD_HALF_COINS: int = 15
    CHECKIN_REWARD_MINIMAL_COINS: int = 5
    FREEZE_TOKEN_PRICE_COINS: int = 100
    STAKE_PAYOUT_MULTIPLIER: float = 1.5

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def env_mode(self) -> str:
        return _normalize_env(self.APP_ENV)

    def is_production(self) -> bool:
        return self.env_mode() == "production"

    def get_cors_allow_origins(self) -> list[str]:
        configured = _split_csv(self.CORS_ALLOW_ORIGINS)
        if configured:
            if self.is_production() and any(_is_permissive_origin(origin) for origin in configured):
                raise ValueError("Permissive CORS origin is not allowed in production")
            return configured

        if self.is_production():
            return []

        return [
            "http://localhost",
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ]

    def checkin_reward_coins(self, tier: str) -> int:
        rewards = {
            "full": self.CHECKIN_REWARD_FULL_COINS,
            "half": self.CHECKIN_REWARD_HALF_COINS,
            "minimal": self.CHECKIN_REWARD_MINIMAL_COINS,
        }
        return max(0, int(rewards.get(tier, 0)))

    def fitbit_timeouts(self) -> tuple[float, float]:
        return float(self.FITBIT_CONNECT_TIMEOUT_SEC), float(self.FITBIT_READ_TIMEOUT_SEC)

    def google_fit_timeouts(self) -> tuple[float, float]:
        return float(self.GOOGLE_FIT_CONNECT_TIMEOUT_SEC), float(self.GOOGLE_FIT_READ_TIMEOUT_SEC)

    def stake_payout(self, stake_amount: int) -> int:
        return int(max(0, stake_amount) * float(self.STAKE_PAYOUT_MULTIPLIER))


settings = Settings()

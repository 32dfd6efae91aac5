from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Настройки базы данных
    DATABASE_USER: str = "loyalty"
    DATABASE_PASSWORD: str = ""
    DATABASE_HOST: str = "localhost"
    DATABASE_PORT: int = 5432
    DATABASE_NAME: str = "loyalty"
    # Полный URL (например, sqlite для тестов) перекрывает настройки выше
    DATABASE_URL_OVERRIDE: Optional[str] = None

    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379

    TELEGRAM_BOT_TOKEN: str

    # Статические ключи для кассовых терминалов и админки
    ADMIN_API_KEY: str
    CASHIER_API_KEY: str

    # Кеш настроек лояльности и окно защиты от повторов
    SETTINGS_CACHE_TTL_SECONDS: int = 30
    IDEMPOTENCY_TTL_SECONDS: int = 10

    MAX_PURCHASE_AMOUNT: float = 1_000_000
    MAX_ADJUSTMENT_AMOUNT: int = 100_000

    # Значения по умолчанию, если таблица настроек недоступна
    DEFAULT_EARNING_PERCENT: float = 4.0
    DEFAULT_MAX_DISCOUNT_PERCENT: float = 20.0
    DEFAULT_EXPIRY_DAYS: int = 45
    DEFAULT_MIN_REDEMPTION_AMOUNT: float = 1.0
    DEFAULT_WELCOME_BONUS: int = 500

    # Расписание фоновых задач
    SCHEDULER_TIMEZONE: str = "UTC"
    EXPIRE_POINTS_CRON_HOUR: int = 2
    CLEANUP_TRANSACTIONS_CRON_HOUR: int = 3
    NOTIFY_EXPIRING_CRON_HOUR: int = 10
    # В режиме dry-run задачи только считают, ничего не меняя
    JOBS_DRY_RUN: bool = Field(default=False)

    @property
    def REDIS_URL(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}"
    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return f"postgresql+psycopg2://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"

    model_config = SettingsConfigDict(env_file=".env")

settings = Settings()

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    APP_NAME: str = "PDV-CORE"
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    DATABASE_URL: str = "sqlite+pysqlite:///./pdv.db"
    DEFAULT_OPERATOR_USERNAME: str = "caixa01"
    DEFAULT_OPERATOR_PASSWORD: str = "change-me"
    DEFAULT_TERMINAL_ID: str = "PDV-01"
    LOYALTY_POINT_VALUE: str = "0.05"
    LOYALTY_SPEND_PER_POINT: int = 10
    LOGIN_MAX_ATTEMPTS: int = 5
    LOGIN_ATTEMPT_WINDOW_MINUTES: int = 30
    PAYMENT_GATEWAY_URL: str = ""
    PAYMENT_GATEWAY_API_KEY: str = ""
    PAYMENT_GATEWAY_TIMEOUT_SEC: float = 30.0
    FISCAL_ENABLED: bool = False
    FISCAL_API_URL: str = ""
    FISCAL_API_KEY: str = ""
    FISCAL_TIMEOUT_SEC: float = 15.0
    DEFAULT_FISCAL_DOCUMENT_TYPE: str = "nfce"
    HTTP_MAX_CONNECTIONS: int = 10

settings = Settings()

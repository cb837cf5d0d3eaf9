from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # Licensing Authority
    LICENSE_API_URL: str = "https://licensing.example.com"
    ENDPOINT_SUFFIX: str = "/actions/phone-home"
    LICENSE_API_TIMEOUT: int = 30
    LICENSE_API_CONNECT_TIMEOUT: int = 30
    LICENSE_API_ALLOW_REDIRECTS: bool = True

    # Installation Info
    PRODUCT_NAME: str = "PhoneHome"
    APP_VERSION: str = "1.0.0"
    APP_EDITION: str = "personal"
    SHOW_BETA_UPDATES: bool = False
    SITE_URL: str = "http://localhost:8000/"

    # Paths
    CONFIG_PATH: str = "./config"
    LICENSE_KEY_PATH: str = "./config/license.key"

    # Database
    DATABASE_URL: str = "sqlite:///./phonehome.db"

    # Circuit breaker cooldown after a connect failure
    CONNECT_FAILURE_TTL_SECONDS: int = 300

    # Scheduled check-in
    PHONE_HOME_INTERVAL_HOURS: int = 24
    PHONE_HOME_SCHEDULE_ENABLED: bool = True

    class Config:
        env_file = ".env"

settings = Settings()

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    database_url: str

    # Connection pool bounds
    DB_POOL_MIN: int = 2
    DB_POOL_MAX: int = 10

    # Security
    SECRET_KEY: str = "something"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 12
    BCRYPT_ROUNDS: int = 10

    # Resilience
    CIRCUIT_FAILURE_THRESHOLD: int = 3
    CIRCUIT_RESET_SECONDS: float = 30
    IDLE_TIMEOUT_MINUTES: float = 15
    IDLE_CHECK_SECONDS: int = 60
    STARTUP_DB_ATTEMPTS: int = 3
    STARTUP_RETRY_SECONDS: float = 5

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

settings = Settings()

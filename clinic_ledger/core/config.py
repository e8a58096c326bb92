from decimal import Decimal
from pydantic_settings import BaseSettings
from pydantic import model_validator
from typing import List
from urllib.parse import quote_plus
import os

class Settings(BaseSettings):
    APP_ENV: str = "local"

    # Database URL - can be provided directly or constructed from components
    DATABASE_URL: str | None = None

    # Individual database components (for constructing DATABASE_URL)
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_NAME: str = ""
    SQL_ECHO: bool = False

    # Manual opening balances, applied once when a domain account row is first created
    MAIN_OPENING_BALANCE: Decimal = Decimal("0.00")
    HOSPITAL_OPENING_BALANCE: Decimal = Decimal("0.00")
    MEDICINE_OPENING_BALANCE: Decimal = Decimal("0.00")
    OPTICS_OPENING_BALANCE: Decimal = Decimal("0.00")
    OPERATION_OPENING_BALANCE: Decimal = Decimal("0.00")

    # Reports
    STATEMENT_MAX_DAYS: int = 366

    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    class Config:
        env_file = ".env" if os.getenv("APP_ENV", "local") == "local" else ".env.prod"
        env_file_encoding = "utf-8"

    @model_validator(mode='after')
    def construct_database_url(self):
        """Construct DATABASE_URL from components if not provided directly."""
        if not self.DATABASE_URL:
            if not self.DB_NAME:
                raise ValueError("Either DATABASE_URL or DB_NAME must be provided")

            # URL encode password to handle special characters
            password_part = f":{quote_plus(self.DB_PASSWORD)}" if self.DB_PASSWORD else ""
            self.DATABASE_URL = f"postgresql://{self.DB_USER}{password_part}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

        # Ensure DATABASE_URL is always a string after validation
        assert self.DATABASE_URL is not None, "DATABASE_URL must be set"
        return self

    @property
    def database_url(self) -> str:
        """Get DATABASE_URL as a guaranteed string."""
        assert self.DATABASE_URL is not None, "DATABASE_URL must be set"
        return self.DATABASE_URL

    def opening_balance_for(self, domain: str) -> Decimal:
        """Manual base constant for a ledger domain (0 when not configured)."""
        value = getattr(self, f"{domain.upper()}_OPENING_BALANCE", None)
        return Decimal(str(value)) if value is not None else Decimal("0.00")

settings = Settings()

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
from pydantic import field_validator


class Settings(BaseSettings):
    # Database settings
    DATABASE_URL: str = 'sqlite:///./data/monterrey.db'
    # auto: probar soporte de transacciones y degradar a ejecución secuencial
    # required: nunca degradar; disabled: siempre secuencial
    DB_TRANSACTION_MODE: str = 'auto'
    DB_STATEMENT_TIMEOUT_MS: int = 15000

    # Business settings
    TIMEZONE: str = 'America/Santo_Domingo'
    DEFAULT_TAX_RATE: float = 18.0  # ITBIS
    AMOUNT_TOLERANCE: float = 0.01
    NCF_TYPES: str = 'B01,B02,B04,B14,B15,B16'
    CREDIT_NOTE_NCF_TYPE: str = 'B04'
    INVOICE_NUMBER_PREFIX: str = 'FAC'
    CREDIT_NOTE_NUMBER_PREFIX: str = 'NC'
    EXPENSE_CATEGORIES: str = 'Servicios,Nómina,Materia Prima,Mantenimiento,Impuestos,Préstamos,Otros'

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def ncf_types_list(self) -> List[str]:
        return [t.strip().upper() for t in self.NCF_TYPES.split(",") if t.strip()]

    @property
    def expense_categories_list(self) -> List[str]:
        return [c.strip() for c in self.EXPENSE_CATEGORIES.split(",") if c.strip()]

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("DB_TRANSACTION_MODE", mode="before")
    @classmethod
    def parse_transaction_mode(cls, v):
        value = str(v).lower().strip('"').strip("'")
        if value not in ("auto", "required", "disabled"):
            raise ValueError("DB_TRANSACTION_MODE debe ser 'auto', 'required' o 'disabled'")
        return value

settings = Settings()

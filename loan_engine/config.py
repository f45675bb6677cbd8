"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based
configuration, and the immutable calculation policy derived from it.
"""

from pydantic_settings import BaseSettings
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


class LoanEngineConfig(BaseSettings):
    """Loan calculation engine configuration"""

    # Rounding configuration
    money_decimal_places: int = 2        # Currency minor units
    rate_decimal_places: int = 4         # Reported APR / effective rate precision

    # Early settlement configuration
    max_rebate_fraction: str = "0.50"    # Cap on interest rebated per installment

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr

    class Config:
        env_prefix = "LOAN_ENGINE_"
        env_file = ".env"
        case_sensitive = False
        frozen = True


# Global configuration instance
config = LoanEngineConfig()


def get_config() -> LoanEngineConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LoanEngineConfig:
    """Reload configuration from environment"""
    global config
    config = LoanEngineConfig()
    return config


@dataclass(frozen=True)
class CalculationPolicy:
    """
    Rounding and rebate rules every calculation follows.

    Rounding residue is always absorbed into the final installment's
    principal so the closing balance is exactly zero; no other residue
    policy is supported.
    """
    money_places: int = 2
    rate_places: int = 4
    max_rebate_fraction: Decimal = Decimal('0.50')
    absorb_residue_in_final_installment: bool = True

    def __post_init__(self):
        if not isinstance(self.max_rebate_fraction, Decimal):
            object.__setattr__(self, 'max_rebate_fraction', Decimal(str(self.max_rebate_fraction)))

        if self.money_places < 0 or self.rate_places < 0:
            raise ValueError("Decimal places cannot be negative")
        if self.max_rebate_fraction < Decimal('0') or self.max_rebate_fraction > Decimal('1'):
            raise ValueError("Maximum rebate fraction must be between 0 and 1")
        if not self.absorb_residue_in_final_installment:
            raise ValueError("Rounding residue must be absorbed into the final installment")

    @property
    def money_quantum(self) -> Decimal:
        return Decimal('0.1') ** self.money_places

    @classmethod
    def from_config(cls, settings: Optional[LoanEngineConfig] = None) -> 'CalculationPolicy':
        """Build a policy from environment configuration"""
        settings = settings or get_config()
        return cls(
            money_places=settings.money_decimal_places,
            rate_places=settings.rate_decimal_places,
            max_rebate_fraction=Decimal(settings.max_rebate_fraction)
        )


# Fixed at import; pass an explicit policy to override per call
DEFAULT_POLICY = CalculationPolicy.from_config()

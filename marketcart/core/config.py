"""Cart Service Configuration"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings

from ..models.policy import PricingPolicy, SellerPolicy


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    # Application
    app_name: str = "Marketplace Cart"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8002

    # Cart Persistence Gateway
    gateway_base_url: Optional[str] = None
    gateway_access_token: Optional[str] = None
    gateway_timeout_seconds: float = 30.0

    # Pricing policy defaults (server values take precedence once synced)
    default_currency: str = "USD"
    default_platform_fee_percent: Decimal = Decimal("0")
    tax_rate_percent: Decimal = Decimal("0")
    default_shipping_estimate: Optional[Decimal] = None
    default_minimum_order_amount: Decimal = Decimal("0")

    # Synchronization
    sync_enabled: bool = True
    sync_retry_base_delay: float = 0.5
    sync_retry_max_delay: float = 30.0
    sync_max_attempts: int = 5

    # Sessions
    session_max_age_hours: int = 24

    class Config:
        env_prefix = "CART_"
        env_file = "config/.env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @property
    def gateway_configured(self) -> bool:
        return bool(self.sync_enabled and self.gateway_base_url)

    def build_pricing_policy(self) -> PricingPolicy:
        """
        Initial pricing policy for a new cart.

        Without a default shipping estimate every seller needs an explicit
        policy, and adding an item from an unknown seller is an error.
        """
        default_seller_policy = None
        if self.default_shipping_estimate is not None:
            default_seller_policy = SellerPolicy(
                shipping_estimate=self.default_shipping_estimate,
                minimum_order_amount=self.default_minimum_order_amount,
            )

        return PricingPolicy(
            currency=self.default_currency,
            platform_fee_percent=self.default_platform_fee_percent,
            tax_rate_percent=self.tax_rate_percent,
            default_seller_policy=default_seller_policy,
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()

from tenant_billing.business.currency.models import ExchangeRate
from tenant_billing.business.currency.schemas import ExchangeRateCreate, ExchangeRateRead, ResolvedRateRead
from tenant_billing.business.currency.service import CurrencyResolver, apply_markup, currency_resolver

__all__ = [
    "ExchangeRate",
    "ExchangeRateCreate",
    "ExchangeRateRead",
    "ResolvedRateRead",
    "CurrencyResolver",
    "apply_markup",
    "currency_resolver",
]

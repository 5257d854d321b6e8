from tenant_billing.business.payments.models import ChequeDetail, Payment, PaymentAllocation, PaymentRefund
from tenant_billing.business.payments.schemas import PaymentCreate, PaymentRead
from tenant_billing.business.payments.service import PaymentService, payment_service, register_cheque_handlers

__all__ = [
    "ChequeDetail",
    "Payment",
    "PaymentAllocation",
    "PaymentRefund",
    "PaymentCreate",
    "PaymentRead",
    "PaymentService",
    "payment_service",
    "register_cheque_handlers",
]

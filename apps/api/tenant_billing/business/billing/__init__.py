from tenant_billing.business.billing.models import Invoice, InvoiceItem
from tenant_billing.business.billing.schemas import GenerateInvoiceRequest, InvoiceItemCreate, InvoiceRead
from tenant_billing.business.billing.service import BillingService, billing_service, recompute_invoice_status

__all__ = [
    "Invoice",
    "InvoiceItem",
    "GenerateInvoiceRequest",
    "InvoiceItemCreate",
    "InvoiceRead",
    "BillingService",
    "billing_service",
    "recompute_invoice_status",
]

from tenant_billing.business.resources.service import ResourceKind, ResourceOwnerRead, load_resource_owner

__all__ = ["ResourceKind", "ResourceOwnerRead", "load_resource_owner"]

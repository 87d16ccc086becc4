from app.models.user import User
from app.models.audit_log import AuditLog
from app.models.property import Property, PropertyImage
from app.models.lead import Lead
from app.models.template import Template
from app.models.credit_entry import CreditEntry
from app.models.credit_package import CreditPackage
from app.models.promo_code import PromoCode
from app.models.transaction import Transaction

__all__ = [
    "User",
    "AuditLog",
    "Property",
    "PropertyImage",
    "Lead",
    "Template",
    "CreditEntry",
    "CreditPackage",
    "PromoCode",
    "Transaction",
]

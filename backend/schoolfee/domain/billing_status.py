from enum import Enum


class BillingStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class BillingMethod(str, Enum):
    manual = "manual"
    mpesa = "mpesa"

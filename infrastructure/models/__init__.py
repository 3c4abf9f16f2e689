"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import OrderModel, PlanModel, PlanTrialDeviceModel
from .payment import PaymentConfigModel

__all__ = [
    "Base",
    "metadata",
    "OrderModel",
    "PlanModel",
    "PlanTrialDeviceModel",
    "PaymentConfigModel",
]

from models.subscription import Subscription
from models.delivery import SubscriptionDelivery
from models.admin_pause import AdminPause, AdminAuditLog
from models.delivery_schedule_setting import DeliveryScheduleSetting

__all__ = [
    "Subscription", "SubscriptionDelivery",
    "AdminPause", "AdminAuditLog", "DeliveryScheduleSetting",
]

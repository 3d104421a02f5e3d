"""
数据库模型
"""
from namaste_loyalty.models.user import User
from namaste_loyalty.models.delivery_code import DeliveryCode
from namaste_loyalty.models.points_transaction import PointsTransaction, TransactionType
from namaste_loyalty.models.reward import Reward, RewardCategory
from namaste_loyalty.models.redemption import Redemption
from namaste_loyalty.models.store_location import StoreLocation
from namaste_loyalty.models.failed_code_attempt import FailedCodeAttempt
from namaste_loyalty.models.operator_alert import OperatorAlert

__all__ = [
    "User",
    "DeliveryCode",
    "PointsTransaction",
    "TransactionType",
    "Reward",
    "RewardCategory",
    "Redemption",
    "StoreLocation",
    "FailedCodeAttempt",
    "OperatorAlert",
]

from vacuum.models.operators import Operator
from vacuum.models.accounts import TrackedAccount
from vacuum.models.history import ReclaimHistory
from vacuum.models.protection import ProtectedAccount

__all__ = [
    "Operator",
    "TrackedAccount",
    "ReclaimHistory",
    "ProtectedAccount",
]

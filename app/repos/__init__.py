from .account import AccountRepo
from .owner import OwnerRepo
from .relay_log import RelayLogRepo

__all__ = [
    "AccountRepo",
    "OwnerRepo",
    "RelayLogRepo",
]

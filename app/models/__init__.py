from .account import Account, AccountStatus, AutomationMode
from .base import Base
from .owner import Owner
from .relay_log import RelayLog

__all__ = [
    "Base",
    "Account",
    "AccountStatus",
    "AutomationMode",
    "Owner",
    "RelayLog",
]

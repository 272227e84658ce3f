"""
User role and actor enumerations.

Defines who may act on the lifecycle of routes, deliveries and LGPD requests.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Processes LGPD requests and runs compliance sweeps
        DISPATCHER: Plans routes and manages deliveries
        DRIVER: Executes routes and records delivery attempts
        CUSTOMER: Owns deliveries and files data-subject requests
    """
    ADMIN = "ADMIN"
    DISPATCHER = "DISPATCHER"
    DRIVER = "DRIVER"
    CUSTOMER = "CUSTOMER"


class ActorType(str, enum.Enum):
    """Kind of actor recorded on audit rows."""
    USER = "user"
    ADMIN = "admin"
    DRIVER = "driver"
    SYSTEM = "system"

"""Enum definitions for application constants."""

from enum import Enum


class AccountType(str, Enum):
    """
    Kinds of public profiles.

    USER is the personal ("person") account bound one-to-one to a User;
    guest profiles are USER accounts flagged with ``is_guest``.
    """
    USER = "USER"
    ORGANIZATION = "ORGANIZATION"
    COLLECTIVE = "COLLECTIVE"
    FUND = "FUND"
    EVENT = "EVENT"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid account type."""
        return value in cls._value2member_map_


class MemberRole(str, Enum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    BACKER = "BACKER"
    FOLLOWER = "FOLLOWER"


class TransactionType(str, Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class OrderStatus(str, Enum):
    NEW = "NEW"
    PENDING = "PENDING"
    PAID = "PAID"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"


class PaymentMethodService(str, Enum):
    STRIPE = "stripe"


class PaymentMethodType(str, Enum):
    CREDITCARD = "creditcard"


DEFAULT_ORDER_STATUS = OrderStatus.NEW
DEFAULT_CURRENCY = "USD"

"""Errors raised by the rank progression engine."""

from decimal import Decimal
from typing import Optional

from .constants import DEFAULT_COST_MESSAGE
from .models import format_money


class RankError(Exception):
    """Base class for rank engine failures shown to members."""

    user_message = "Something went wrong with your rank."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.user_message)
        if message:
            self.user_message = message


class ConfigurationInvalid(RankError):
    """No usable rank table is loaded."""

    user_message = "No ranks configured!"


class AlreadyMaxRank(RankError):
    user_message = "You are already at the highest rank!"


class InvalidTarget(RankError):
    def __init__(self, target: str):
        self.target = target
        super().__init__(f"Rank '{target}' not found!")


class NotAnAdvance(RankError):
    def __init__(self, target: str, current: str):
        self.target = target
        self.current = current
        super().__init__("You already have this rank or a higher one!")


class RankGated(RankError):
    """A rank in the requested range cannot be bought with currency."""

    def __init__(self, rank: str, message: Optional[str] = None, target: Optional[str] = None):
        self.rank = rank
        self.message = message or DEFAULT_COST_MESSAGE
        self.target = target
        if target and target != rank:
            text = (
                f"Cannot upgrade to {target} because '{rank}' is in the path "
                f"and cannot be purchased with currency.\n{self.message}"
            )
        else:
            text = self.message
        super().__init__(text)


class InsufficientFunds(RankError):
    def __init__(self, required: Decimal, available: Decimal):
        self.required = required
        self.available = available
        super().__init__(
            f"You don't have enough money! Cost: {format_money(required)} | "
            f"Your balance: {format_money(available)}"
        )


class ExternalDebitFailed(RankError):
    """The balance store refused or failed the withdrawal."""

    def __init__(self, member_id: int, amount: Decimal):
        self.member_id = member_id
        self.amount = amount
        super().__init__("Your payment could not be processed. No rank changes were made.")


class MembershipUnavailable(RankError):
    """The group directory could not load a member's roles."""

    def __init__(self, member_id: int):
        self.member_id = member_id
        super().__init__(f"Could not load membership for member {member_id}")


class BalanceUnavailable(RankError):
    """The balance store could not be read."""

    def __init__(self, member_id: int):
        self.member_id = member_id
        super().__init__("Your balance could not be checked right now. Please try again later.")

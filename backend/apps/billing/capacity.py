"""
Seat capacity guard.

A seat limit may never drop below the number of active members. The check
is unconditional: even when the invoice is deferred to the next renewal,
the new seat limit applies immediately, so the guard does not look at
apply_immediately.
"""

from dataclasses import dataclass

from apps.billing.exceptions import SeatReductionBlockedError


@dataclass(frozen=True)
class CapacityDecision:
    allowed: bool
    reason: str = ""
    members_to_remove: int = 0

    def raise_if_denied(self) -> None:
        if not self.allowed:
            raise SeatReductionBlockedError(self.reason, members_to_remove=self.members_to_remove)


def check_seat_change(
    requested_seat_count: int,
    current_active_member_count: int,
    current_seat_limit: int,
) -> CapacityDecision:
    """
    Decide whether the seat limit may change to requested_seat_count.

    current_seat_limit is informational; increases and reductions are judged
    against occupied seats only.
    """
    if requested_seat_count >= current_active_member_count:
        return CapacityDecision(allowed=True)

    excess = current_active_member_count - requested_seat_count
    noun = "member" if excess == 1 else "members"
    return CapacityDecision(
        allowed=False,
        reason=(
            f"Your organization has {current_active_member_count} active members. "
            f"Remove {excess} {noun} before reducing to {requested_seat_count} seats "
            f"(currently {current_seat_limit})."
        ),
        members_to_remove=excess,
    )

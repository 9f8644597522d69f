"""Reply intent models.

NO PII stored. Only the classification result.
"""

from enum import Enum

from physiohub.domain.appointments import AppointmentStatus


class ReplyIntent(str, Enum):
    """What a patient's free-text reply means for a pending appointment."""

    CONFIRM = "confirm"
    CANCEL = "cancel"
    UNRECOGNIZED = "unrecognized"

    def target_status(self) -> AppointmentStatus:
        """Appointment status this intent resolves to.

        Raises:
            ValueError: For UNRECOGNIZED, which never changes state.
        """
        if self is ReplyIntent.CONFIRM:
            return AppointmentStatus.CONFIRMED
        if self is ReplyIntent.CANCEL:
            return AppointmentStatus.CANCELLED
        raise ValueError("unrecognized reply has no target status")

    def action(self) -> str:
        """Past-tense action label used in responses and audit rows."""
        if self is ReplyIntent.CONFIRM:
            return "confirmed"
        if self is ReplyIntent.CANCEL:
            return "cancelled"
        return "none"

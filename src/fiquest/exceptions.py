"""Domain exceptions.

Rule violations subclass ``DomainError`` (a ``ValueError``, rendered as HTTP
400) and missing rows subclass ``NotFoundError`` (rendered as HTTP 404).
Each class carries a stable ``code`` for API clients.
"""


class DomainError(ValueError):
    """A business rule rejected the operation."""

    code = "DOMAIN_ERROR"
    default_message = "Operation not allowed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(LookupError):
    """A referenced row does not exist."""

    code = "NOT_FOUND"
    default_message = "Not found"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# --- Invitation rules ---


class NotFriendsError(DomainError):
    code = "NOT_FRIENDS"
    default_message = "You can only invite friends to a challenge"


class ChallengeUnavailableError(DomainError):
    code = "CHALLENGE_UNAVAILABLE"
    default_message = "Challenge not found or inactive"


class ChallengeNotAssignedError(DomainError):
    code = "CHALLENGE_NOT_ASSIGNED"
    default_message = "You don't have this challenge today"


class RegiftNotAllowedError(DomainError):
    code = "REGIFT_NOT_ALLOWED"
    default_message = "You cannot forward a challenge you received as an invitation"


class FriendDailyQuotaError(DomainError):
    code = "FRIEND_DAILY_QUOTA"
    default_message = "You have already invited this friend today"


class ChallengeDailyQuotaError(DomainError):
    code = "CHALLENGE_DAILY_QUOTA"
    default_message = "You have already used this challenge to invite someone today"


class NotInvitationRecipientError(DomainError):
    code = "NOT_INVITATION_RECIPIENT"
    default_message = "This invitation is not addressed to you"


class NotInvitationSenderError(DomainError):
    code = "NOT_INVITATION_SENDER"
    default_message = "Only the sender can cancel this invitation"


class InvitationAlreadyProcessedError(DomainError):
    code = "INVITATION_ALREADY_PROCESSED"
    default_message = "This invitation has already been processed"


class InvitationConflictError(DomainError):
    code = "INVITATION_CONFLICT"
    default_message = "Another invitation was being sent at the same time, please try again"


# --- Challenge completion ---


class ChallengeNotOwnedError(DomainError):
    code = "CHALLENGE_NOT_OWNED"
    default_message = "This challenge does not belong to you"


class ChallengeAlreadyCompletedError(DomainError):
    code = "CHALLENGE_ALREADY_COMPLETED"
    default_message = "Challenge already completed"


# --- Missing rows ---


class UserNotFoundError(NotFoundError):
    code = "USER_NOT_FOUND"
    default_message = "User not found"


class InvitationNotFoundError(NotFoundError):
    code = "INVITATION_NOT_FOUND"
    default_message = "Invitation not found"


class ChallengeNotFoundError(NotFoundError):
    code = "CHALLENGE_NOT_FOUND"
    default_message = "Challenge not found"


class UserChallengeNotFoundError(NotFoundError):
    code = "USER_CHALLENGE_NOT_FOUND"
    default_message = "User challenge not found"

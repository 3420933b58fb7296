"""Business error taxonomy for the membership workflow.

Ledger and engine functions raise these; the public operations in
``membership_service`` catch them at the boundary and turn them into
``OperationResult`` failures, so none of them reach a router uncaught.
"""

from fastapi import status


class MembershipError(Exception):
    kind = "error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be completed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return type(self).__name__


class ValidationError(MembershipError):
    kind = "validation"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Invalid request"


class ConflictError(MembershipError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Request conflicts with the current state"


class NotFoundError(MembershipError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Record not found"


class AuthorizationError(MembershipError):
    kind = "authorization"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are not allowed to perform this action"


class DependencyError(MembershipError):
    kind = "dependency"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "A storage error occurred, please try again later"


class DuplicateActiveSubscription(ConflictError):
    default_message = "You already have an active or pending subscription"


class AlreadyProcessed(ConflictError):
    default_message = "Payment not found or already processed"


class ActiveSubscriptionProtected(ConflictError):
    default_message = "Cannot delete active subscriptions"


class PendingSubscriptionExists(ConflictError):
    default_message = "Member has a pending subscription"


class MemberNotVerified(ConflictError):
    default_message = "Member must be verified before renewing membership"


class PlanInUse(ConflictError):
    default_message = "Plan has subscriptions attached"


class PlanNotFound(NotFoundError):
    default_message = "Invalid plan selected"


class PaymentNotFound(NotFoundError):
    default_message = "Payment not found"


class SubscriptionNotFound(NotFoundError):
    default_message = "Subscription not found"


class MemberNotFound(NotFoundError):
    default_message = "Member not found"


class SubscriptionInconsistent(DependencyError):
    default_message = "Payment is not attached to a subscription"


class ProofStorageError(DependencyError):
    default_message = "Failed to upload payment proof"

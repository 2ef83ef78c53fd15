"""
Custom exceptions for IdleKeeper.

These exceptions separate transient platform failures from configuration
problems so the sweep can decide what to retry, what to skip and what to
treat as fatal.
"""


class IdleKeeperError(Exception):
    """Base exception for all IdleKeeper errors."""

    def __init__(self, message: str, code: str = "IDLEKEEPER_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ConfigurationError(IdleKeeperError):
    """Application configuration error."""

    def __init__(self, message: str, field: str = None):
        self.field = field
        super().__init__(message, "CONFIGURATION_ERROR")


class GatewayError(IdleKeeperError):
    """Error communicating with the chat platform."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(message, "GATEWAY_ERROR")


class MemberNotFoundError(GatewayError):
    """Member is not (or no longer) part of the community."""

    def __init__(self, member_id: str, community_id: str = None):
        self.member_id = member_id
        self.community_id = community_id
        message = f"Member {member_id} not found"
        if community_id:
            message = f"Member {member_id} not found in community {community_id}"
        super().__init__(message)
        self.code = "MEMBER_NOT_FOUND"


class GrantResolutionError(IdleKeeperError):
    """A tier role is missing and could not be created."""

    def __init__(self, community_id: str, grant_name: str, original_error: Exception = None):
        self.community_id = community_id
        self.grant_name = grant_name
        self.original_error = original_error
        message = f"Role '{grant_name}' could not be resolved in community {community_id}"
        super().__init__(message, "GRANT_RESOLUTION_ERROR")


class ReconciliationError(IdleKeeperError):
    """Role grants could not be brought in line with the member's tier."""

    def __init__(self, community_id: str, member_id: str, tier: str, attempts: int,
                 original_error: Exception = None):
        self.community_id = community_id
        self.member_id = member_id
        self.tier = tier
        self.attempts = attempts
        self.original_error = original_error
        message = (
            f"Could not reconcile member {member_id} in community {community_id} "
            f"to tier '{tier}' after {attempts} attempts"
        )
        super().__init__(message, "RECONCILIATION_FAILED")


class RemovalError(IdleKeeperError):
    """Member removal was not confirmed by the platform."""

    def __init__(self, community_id: str, member_id: str, original_error: Exception = None):
        self.community_id = community_id
        self.member_id = member_id
        self.original_error = original_error
        message = f"Failed to remove member {member_id} from community {community_id}"
        super().__init__(message, "REMOVAL_FAILED")


class StoreError(IdleKeeperError):
    """Persisting activity state failed."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(message, "STORE_ERROR")

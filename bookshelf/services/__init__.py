"""Service layer — business rules, validation and typed failures."""


class ServiceError(Exception):
    """Base service exception."""


class NotFoundError(ServiceError):
    """Referenced entity does not exist."""


class ConflictError(ServiceError):
    """Uniqueness rule violated."""


class ValidationError(ServiceError):
    """Request payload, identifier or attachments rejected."""


class AuthenticationError(ServiceError):
    """Missing, malformed or expired bearer token (-> HTTP 401)."""


class AuthorizationError(ServiceError):
    """Authenticated user lacks the required role (-> HTTP 403)."""


class InvalidCredentialsError(ServiceError):
    """Login password does not match the stored hash."""


# -- Conflicts ---------------------------------------------------------------


class DuplicateFullNameError(ConflictError):
    def __init__(self, full_name: str) -> None:
        super().__init__(f"author with full name {full_name} already exists")
        self.full_name = full_name


class DuplicateIdentifierError(ConflictError):
    def __init__(self, username: str) -> None:
        super().__init__(f"user with username {username} already exists")
        self.username = username


# -- Validation --------------------------------------------------------------


class InvalidIdentifierError(ValidationError):
    def __init__(self, raw_id: object) -> None:
        super().__init__(f"id {raw_id!r} is invalid")
        self.raw_id = raw_id


class EmptyPayloadError(ValidationError):
    def __init__(self) -> None:
        super().__init__("payload is empty")


class EmptyFilesError(ValidationError):
    def __init__(self) -> None:
        super().__init__("files are empty")


class MissingFieldError(ValidationError):
    def __init__(self, field: str) -> None:
        super().__init__(f"{field} is undefined")
        self.field = field


class MissingFileSlotError(ValidationError):
    def __init__(self, slot: str) -> None:
        super().__init__(f"{slot} file is undefined")
        self.slot = slot


class NoChangesRequestedError(ValidationError):
    def __init__(self) -> None:
        super().__init__("no properties for updating")


class InvalidPayloadError(ValidationError):
    """Registration or login body lacks a required field."""

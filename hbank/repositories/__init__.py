"""Repository layer - data access abstraction.

Repositories are the credential store every auth flow reads and writes
through. They expose plain finds plus the conditional operations the flows
need for single-use semantics:

- ``consume``: compare-and-delete, True only for the caller that removed the row
- ``mark_used``: compare-and-set on a refresh token
- ``try_acquire``: monotonic advance of a rate limit marker

Repositories flush but never commit; services own the transaction.

Dependency direction: Services -> Repositories -> Models
"""

from .code_repository import CodeRepository
from .exceptions import DuplicateError, RepositoryError
from .rate_limit_repository import RateLimitRepository
from .recovery_code_repository import RecoveryCodeRepository
from .token_repository import TokenRepository
from .user_repository import UserRepository

__all__ = [
    "CodeRepository",
    "DuplicateError",
    "RateLimitRepository",
    "RecoveryCodeRepository",
    "RepositoryError",
    "TokenRepository",
    "UserRepository",
]

"""Bearer token schema.

Tokens are issued by the external identity provider; the API only verifies
them and scopes every resource by the ``sub`` claim.
"""

from datetime import datetime

from sqlmodel import SQLModel


class TokenPayload(SQLModel):
    """JWT token payload schema."""

    sub: str  # user id at the identity provider
    exp: datetime

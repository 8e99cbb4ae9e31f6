"""EmailProvider protocol: services depend on this, not the concrete implementation.

The provider only delivers; subject and body are rendered by the caller.
``send`` returns False on any delivery failure instead of raising.
"""

from typing import Optional, Protocol


class EmailProvider(Protocol):
    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
    ) -> bool: ...

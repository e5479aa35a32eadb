from fastapi import Depends

from servicing.utils.api_client import SmartLendClient
from .config import settings
from .security import Session, get_session


async def get_smartlend_client(session: Session = Depends(get_session)):
    """One upstream client per request, bound to the caller's token."""
    async with SmartLendClient(
        settings.SMARTLEND_API_URL,
        token=session.token,
        timeout=settings.SMARTLEND_API_TIMEOUT,
    ) as client:
        yield client

"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stormlink.database import get_session
from stormlink.services.verification import VerificationService
from stormlink.tasks.queue import JobPublisher, get_publisher

# Type alias for database session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]

PublisherDep = Annotated[JobPublisher, Depends(get_publisher)]


def get_verification_service(session: SessionDep, publisher: PublisherDep) -> VerificationService:
    """Build a verification service bound to the request's session."""
    return VerificationService(session, publisher=publisher)


VerificationServiceDep = Annotated[VerificationService, Depends(get_verification_service)]

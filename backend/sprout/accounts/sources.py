"""
Database-backed AccountStatusSource.
"""

import asyncio

from sqlalchemy.orm import sessionmaker

from sprout.accounts.models import AccountStatus, AccountStatusSource
from sprout.services.family_access_service import FamilyAccessService


class DatabaseAccountStatusSource(AccountStatusSource):
    """Runs FamilyAccessService.get_account_status in a worker thread."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def load_sync(self, identity_id: str) -> AccountStatus:
        session = self.session_factory()
        try:
            return FamilyAccessService(session).get_account_status(identity_id)
        finally:
            session.close()

    async def load(self, identity_id: str) -> AccountStatus:
        return await asyncio.to_thread(self.load_sync, identity_id)

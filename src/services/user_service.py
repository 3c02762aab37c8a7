# src/services/user_service.py
import logging
import uuid
from typing import List, Optional
from uuid import UUID
from ..database.repositories import UserRepository
from ..exceptions import AddressNotFound, UserNotFound
from ..models.product import BankAccount
from ..models.user import Address, AddressInput, User

logger = logging.getLogger(__name__)

class UserService:
    def __init__(self, db, users: Optional[UserRepository] = None):
        self.db = db
        self.users = users or UserRepository(db)

    async def register_user(self, user_id: int, username: Optional[str],
                            first_name: Optional[str], last_name: Optional[str]) -> User:
        """Create or refresh the Telegram profile"""
        return await self.users.upsert(User(
            user_id=user_id,
            username=username,
            first_name=first_name,
            last_name=last_name
        ))

    async def get_user(self, user_id: int) -> User:
        user = await self.users.get(user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user

    async def list_addresses(self, user_id: int) -> List[Address]:
        return await self.users.list_addresses(user_id)

    async def get_address(self, user_id: int, address_id: UUID) -> Address:
        address = await self.users.get_address(user_id, address_id)
        if address is None:
            raise AddressNotFound(address_id)
        return address

    async def add_address(self, user_id: int, data: AddressInput,
                          make_default: bool = False) -> Address:
        """Save an address; the first one a user saves becomes the default"""
        await self.get_user(user_id)
        address = await self.users.insert_address(Address(
            address_id=uuid.uuid4(),
            user_id=user_id,
            is_default=make_default,
            **data.model_dump()
        ))
        logger.info(f"User {user_id} added address {address.address_id}")
        return address

    async def update_address(self, user_id: int, address_id: UUID, data: AddressInput) -> Address:
        current = await self.get_address(user_id, address_id)
        updated = await self.users.update_address(current.model_copy(update=data.model_dump()))
        if updated is None:
            raise AddressNotFound(address_id)
        return updated

    async def delete_address(self, user_id: int, address_id: UUID):
        if not await self.users.delete_address(user_id, address_id):
            raise AddressNotFound(address_id)
        logger.info(f"User {user_id} deleted address {address_id}")

    async def set_default_address(self, user_id: int, address_id: UUID) -> Address:
        address = await self.users.set_default_address(user_id, address_id)
        if address is None:
            raise AddressNotFound(address_id)
        return address

    async def get_payment_account(self, user_id: int) -> Optional[BankAccount]:
        user = await self.get_user(user_id)
        return user.payment_account

    async def set_payment_account(self, user_id: int, account: BankAccount) -> User:
        user = await self.users.set_payment_account(user_id, account)
        if user is None:
            raise UserNotFound(user_id)
        logger.info(f"User {user_id} saved a payout account")
        return user

    async def delete_payment_account(self, user_id: int) -> User:
        user = await self.users.set_payment_account(user_id, None)
        if user is None:
            raise UserNotFound(user_id)
        return user

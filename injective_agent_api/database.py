"""
Database service for MongoDB operations.
Handles per-user settings: wallets and the default wallet pointer.
Private keys are stored encrypted by the caller and never decrypted here.
"""
import logging
from typing import List, Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from injective_agent_api.models import user_settings_document, wallet_document

logger = logging.getLogger(__name__)


class DatabaseService:
    def __init__(self, mongo_url: str, database_name: str):
        self.client = AsyncIOMotorClient(mongo_url)
        self.db: AsyncIOMotorDatabase = self.client[database_name]

        # Collections
        self.user_settings = self.db["user_settings"]

    async def setup_indexes(self):
        """Create necessary indexes for performance."""
        await self.user_settings.create_index("user_id", unique=True)
        await self.user_settings.create_index("wallets.address")
        logger.info("Database indexes created")

    # =========================================================================
    # USER SETTINGS
    # =========================================================================

    async def get_user_settings(self, user_id: str) -> Optional[dict]:
        return await self.user_settings.find_one({"user_id": user_id})

    async def get_or_create_user_settings(self, user_id: str, user_name: Optional[str] = None) -> dict:
        settings = await self.get_user_settings(user_id)
        if settings:
            return settings
        doc = user_settings_document(user_id, user_name)
        await self.user_settings.insert_one(doc)
        logger.info(f"Created settings for user {user_id}")
        return doc

    # =========================================================================
    # WALLETS
    # =========================================================================

    async def add_wallet(
        self,
        user_id: str,
        name: str,
        address: str,
        encrypted_private_key: str,
    ) -> bool:
        """
        Add a wallet to a user's settings.

        The first wallet becomes the default.

        Returns:
            False if the user already has a wallet with this name
        """
        settings = await self.get_or_create_user_settings(user_id)
        if any(w.get("name") == name for w in settings.get("wallets", [])):
            return False

        update = {"$push": {"wallets": wallet_document(name, address, encrypted_private_key)}}
        if not settings.get("default_wallet"):
            update["$set"] = {"default_wallet": name}

        await self.user_settings.update_one({"user_id": user_id}, update)
        logger.info(f"Added wallet '{name}' for user {user_id}")
        return True

    async def list_wallets(self, user_id: str) -> List[dict]:
        """Wallet name/address pairs, without key material."""
        settings = await self.get_user_settings(user_id)
        if not settings:
            return []
        return [
            {"name": w.get("name"), "address": w.get("address")}
            for w in settings.get("wallets", [])
        ]

    async def set_default_wallet(self, user_id: str, name: str) -> bool:
        result = await self.user_settings.update_one(
            {"user_id": user_id, "wallets.name": name},
            {"$set": {"default_wallet": name}},
        )
        return result.matched_count > 0

    async def get_default_wallet(self, user_id: str) -> Optional[dict]:
        """Full wallet record (including the encrypted key) of the user's default wallet."""
        settings = await self.get_user_settings(user_id)
        if not settings or not settings.get("default_wallet"):
            return None
        for wallet in settings.get("wallets", []):
            if wallet.get("name") == settings["default_wallet"]:
                return wallet
        return None

    async def remove_wallet(self, user_id: str, name: str) -> bool:
        settings = await self.get_user_settings(user_id)
        if not settings:
            return False

        remaining = [w for w in settings.get("wallets", []) if w.get("name") != name]
        if len(remaining) == len(settings.get("wallets", [])):
            return False

        update = {"$pull": {"wallets": {"name": name}}}
        if settings.get("default_wallet") == name:
            update["$set"] = {"default_wallet": remaining[0]["name"] if remaining else None}

        await self.user_settings.update_one({"user_id": user_id}, update)
        logger.info(f"Removed wallet '{name}' for user {user_id}")
        return True

from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            mongo_url = os.environ['MONGO_URL']
            self.client = AsyncIOMotorClient(mongo_url)
            self.db = self.client[os.environ['DB_NAME']]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {os.environ['DB_NAME']}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    async def _create_indexes(self):
        """Create MongoDB indexes for token lookups and broker listings."""
        try:
            # Public form links - looked up by token on every form load
            await self.db.public_form_links.create_index("link_token", unique=True)
            await self.db.public_form_links.create_index("broker_id")

            # Clients - onboarding token is sparse (clients created by public links have none)
            await self.db.clients.create_index("client_id", unique=True)
            try:
                await self.db.clients.create_index("onboarding_token", unique=True, sparse=True)
            except Exception:
                pass  # Index may already exist with different options
            await self.db.clients.create_index([("broker_id", 1), ("created_at", -1)])

            await self.db.brokers.create_index("broker_id", unique=True)
            await self.db.form_templates.create_index("template_id", unique=True)

            await self.db.documents.create_index("document_id", unique=True)
            await self.db.documents.create_index([("client_id", 1), ("status", 1)])

            await self.db.public_form_submissions.create_index([("link_token", 1), ("created_at", -1)])
            await self.db.public_form_submissions.create_index([("broker_id", 1), ("created_at", -1)])

            logger.info("Database indexes created")
        except Exception as e:
            logger.warning(f"Index creation warning: {e}")

# Global database instance
database = Database()

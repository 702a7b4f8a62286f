import asyncio
import json
import logging
import os
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from kvsqlite import Client

from .models import Document

logger = logging.getLogger(__name__)

DATA_KEY = "data"


class DocumentStore:
    """Whole-document persistence over a kvsqlite client.

    The entire state lives under a single key and every mutation is a full
    read-modify-write. ``transaction`` serialises mutations per user id.
    """

    def __init__(self, db, key: str = DATA_KEY):
        self.db = db
        self.key = key
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def load(self) -> Document:
        try:
            raw = await self.db.get(self.key)
            if raw is None:
                doc = Document()
                await self.save(doc)
                return doc
            data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
            if not isinstance(data, dict):
                raise ValueError(f"stored document is a {type(data).__name__}, not an object")
            return Document.from_dict(data)
        except Exception as e:
            logger.error(f"Error reading database: {e}")
            return Document(degraded=True)

    async def save(self, doc: Document) -> bool:
        if doc.degraded:
            logger.warning("Refusing to overwrite the store with a degraded document")
            return False
        try:
            await self.db.set(self.key, json.dumps(doc.to_dict(), ensure_ascii=False))
            return True
        except Exception as e:
            logger.error(f"Error writing to database: {e}")
            return False

    @asynccontextmanager
    async def transaction(self, *user_ids) -> AsyncIterator[Document]:
        """Load, yield for mutation, then save, holding the users' locks.

        Nothing is saved if the body raises.
        """
        keys = sorted({str(uid) for uid in user_ids if uid is not None})
        locks = [self._locks[k] for k in keys]
        for lock in locks:
            await lock.acquire()
        try:
            doc = await self.load()
            yield doc
            await self.save(doc)
        finally:
            for lock in reversed(locks):
                lock.release()

    async def get_user(self, user_id):
        doc = await self.load()
        return doc.get_user(user_id)


def open_store(path: str) -> DocumentStore:
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    return DocumentStore(Client(path))

"""
Database Helper Functions

MongoDB access with graceful fallback.
- Primary: real MongoDB via DATABASE_URL + DATABASE_NAME
- Fallback: Mongita (embedded MongoDB-compatible) so the app fully works without external DB

DocumentStore wraps whichever database was selected and is the only place that
talks to collections directly.
"""

from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union
import logging

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.errors import PyMongoError
from mongita import MongitaClientDisk

from errors import Conflict, ValidationError
from settings import Settings

logger = logging.getLogger(__name__)

# Attempts made by DocumentStore.modify before giving up on a contended document
MAX_ATTEMPTS = 5


def connect(settings: Settings):
    """Return a database handle, preferring a reachable MongoDB over Mongita."""
    if settings.database_url:
        try:
            client = MongoClient(settings.database_url, serverSelectionTimeoutMS=2000)
            client.admin.command("ping")  # ensure reachable now
            logger.info("Connected to MongoDB database %s", settings.database_name)
            return client[settings.database_name]
        except PyMongoError as e:
            logger.warning("MongoDB unreachable (%s), falling back to Mongita", e)

    client = MongitaClientDisk()
    logger.info("Using embedded Mongita database %s", settings.database_name)
    return client[settings.database_name]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid id")


def serialize(doc: dict):
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    # Convert datetimes to isoformat
    for k, v in list(doc.items()):
        if hasattr(v, "isoformat"):
            doc[k] = v.isoformat()
    return doc


def project(doc: dict, fields: Sequence[str]) -> dict:
    """Keep only the given fields of a document, plus its id."""
    out = {"id": str(doc["_id"])}
    for field in fields:
        out[field] = doc.get(field)
    return out


class DocumentStore:
    def __init__(self, db):
        self.db = db

    def _collection(self, name: str):
        return self.db[name]

    def insert(self, collection_name: str, data: Union[BaseModel, dict]) -> str:
        """Insert a single document with timestamps and a fresh revision"""
        if isinstance(data, BaseModel):
            data_dict = data.model_dump()
        else:
            data_dict = dict(data)

        now = utcnow()
        data_dict['created_at'] = now
        data_dict['updated_at'] = now
        data_dict['revision'] = 0

        result = self._collection(collection_name).insert_one(data_dict)
        return str(result.inserted_id)

    def find_by_id(self, collection_name: str, doc_id: str) -> Optional[dict]:
        return self._collection(collection_name).find_one({"_id": to_object_id(doc_id)})

    def find(
        self,
        collection_name: str,
        filter_dict: Optional[dict] = None,
        sort: Optional[List[Tuple[str, int]]] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[dict]:
        """Get documents from a collection"""
        cursor = self._collection(collection_name).find(filter_dict or {})
        if sort:
            cursor = cursor.sort(sort)
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def count(self, collection_name: str, filter_dict: Optional[dict] = None) -> int:
        return self._collection(collection_name).count_documents(filter_dict or {})

    def update_fields(self, collection_name: str, doc_id: str, fields: dict) -> Optional[dict]:
        """Partial update: $set the given fields and bump the revision."""
        oid = to_object_id(doc_id)
        result = self._collection(collection_name).update_one(
            {"_id": oid},
            {"$set": {**fields, "updated_at": utcnow()}, "$inc": {"revision": 1}},
        )
        if not result.matched_count:
            return None
        return self._collection(collection_name).find_one({"_id": oid})

    def modify(self, collection_name: str, doc_id: str, mutate: Callable[[dict], dict]) -> Optional[dict]:
        """
        Read-compute-write guarded by the document revision.

        `mutate` receives the current document and returns the fields to $set.
        The write only lands if nobody else changed the document in between;
        otherwise the document is re-read and `mutate` runs again.
        Returns the updated document, or None if it does not exist.
        """
        oid = to_object_id(doc_id)
        collection = self._collection(collection_name)
        for attempt in range(MAX_ATTEMPTS):
            doc = collection.find_one({"_id": oid})
            if doc is None:
                return None
            changes = mutate(doc)
            result = collection.update_one(
                {"_id": oid, "revision": doc.get("revision", 0)},
                {"$set": {**changes, "updated_at": utcnow()}, "$inc": {"revision": 1}},
            )
            if result.matched_count:
                return collection.find_one({"_id": oid})
            logger.debug("Revision race on %s/%s (attempt %d)", collection_name, doc_id, attempt + 1)
        raise Conflict()

    def toggle_member(self, collection_name: str, doc_id: str, field: str, member: str) -> Optional[dict]:
        """Remove `member` from the list `field` if present, append it otherwise."""
        def flip(doc: dict) -> dict:
            values = list(doc.get(field) or [])
            if member in values:
                values = [v for v in values if v != member]
            else:
                values.append(member)
            return {field: values}

        return self.modify(collection_name, doc_id, flip)

    def delete(self, collection_name: str, doc_id: str) -> bool:
        result = self._collection(collection_name).delete_one({"_id": to_object_id(doc_id)})
        return result.deleted_count > 0

    def delete_many(self, collection_name: str, filter_dict: dict) -> int:
        return self._collection(collection_name).delete_many(filter_dict).deleted_count

    def delete_ids(self, collection_name: str, doc_ids: Iterable[str]) -> int:
        oids = [to_object_id(d) for d in doc_ids]
        if not oids:
            return 0
        return self.delete_many(collection_name, {"_id": {"$in": oids}})

    def resolve_users(self, user_ids: Iterable[str], fields: Sequence[str]) -> Dict[str, dict]:
        """Populate user references: map each user id to its projected display fields."""
        user_ids = list(dict.fromkeys(user_ids))
        oids = [ObjectId(u) for u in user_ids if ObjectId.is_valid(u)]
        found = {}
        if oids:
            for doc in self._collection("user").find({"_id": {"$in": oids}}):
                found[str(doc["_id"])] = project(doc, fields)
        # Unknown users still resolve to a bare reference
        return {uid: found.get(uid, {"id": uid}) for uid in user_ids}

    def resolve(self, collection_name: str, doc_ids: Iterable[str]) -> List[dict]:
        """Populate document references, keeping the reference order and dropping dangling ids."""
        doc_ids = list(doc_ids)
        oids = [ObjectId(d) for d in doc_ids if ObjectId.is_valid(d)]
        if not oids:
            return []
        by_id = {str(d["_id"]): d for d in self._collection(collection_name).find({"_id": {"$in": oids}})}
        return [by_id[d] for d in doc_ids if d in by_id]

"""
Document store backends.

JsonFileStore keeps one JSON file per collection (BSON extended JSON, written
atomically) and evaluates queries in-process; MongoStore delegates to a
MongoDB server through pymongo. Both raise DuplicateKeyError for unique
index violations and StoreError for anything else that goes wrong.
"""

import copy
import shutil
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId, json_util
from pymongo import MongoClient, ReturnDocument
from pymongo import errors as mongo_errors

from .errors import DuplicateKeyError, StoreError
from .query import apply_update, get_path, matches
from ..utils.logger import get_logger

logger = get_logger(__name__)

IndexKeys = Sequence[Tuple[str, int]]
SortSpec = Optional[Sequence[Tuple[str, int]]]

JSON_OPTIONS = json_util.JSONOptions(json_mode=json_util.JSONMode.RELAXED, tz_aware=False)


def index_name(keys: IndexKeys) -> str:
    return "_".join(f"{field}_{direction}" for field, direction in keys)


class DocumentStore(ABC):
    """Primitive operations every backend provides"""

    @abstractmethod
    def insert_one(self, collection: str, document: Dict[str, Any]) -> Any:
        """Insert a document, returning its _id"""

    @abstractmethod
    def find_one(self, collection: str, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """First document matching ``query`` or None"""

    @abstractmethod
    def find(
        self,
        collection: str,
        query: Dict[str, Any],
        sort: SortSpec = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """All documents matching ``query``"""

    @abstractmethod
    def update_one(self, collection: str, query: Dict[str, Any], update: Dict[str, Any]) -> int:
        """Apply an update document to the first match; returns the matched count"""

    @abstractmethod
    def find_one_and_update(
        self,
        collection: str,
        query: Dict[str, Any],
        update: Dict[str, Any],
        return_new: bool = True,
    ) -> Optional[Dict[str, Any]]:
        """Atomically update the first match and return it"""

    @abstractmethod
    def delete_one(self, collection: str, query: Dict[str, Any]) -> int:
        """Remove the first match; returns the deleted count"""

    @abstractmethod
    def count(self, collection: str, query: Dict[str, Any]) -> int:
        """Number of documents matching ``query``"""

    @abstractmethod
    def create_index(self, collection: str, keys: IndexKeys, **options: Any) -> str:
        """Create a secondary index and return its name"""

    @abstractmethod
    def drop(self, collection: str) -> None:
        """Remove a collection and its indexes"""

    def close(self) -> None:
        """Release backend resources"""


class JsonFileStore(DocumentStore):
    """
    File-backed store: ``<data_dir>/<collection>.json``.

    Every operation holds a process-wide lock for its whole
    read-modify-write cycle, which makes single operations atomic within
    one process.
    """

    def __init__(self, data_dir: str = "data"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(exist_ok=True, parents=True)
        self.lock = threading.RLock()

    def _collection_path(self, collection: str) -> Path:
        return self.data_dir / f"{collection}.json"

    def _load(self, collection: str) -> Dict[str, Any]:
        path = self._collection_path(collection)
        if not path.exists():
            return {"documents": [], "indexes": []}
        try:
            with open(path, "r", encoding="utf-8") as f:
                payload = json_util.loads(f.read(), json_options=JSON_OPTIONS)
        except (ValueError, OSError) as e:
            raise StoreError(f"Failed to load collection {collection} from {path}: {e}")
        payload.setdefault("documents", [])
        payload.setdefault("indexes", [])
        return payload

    def _save(self, collection: str, payload: Dict[str, Any]) -> None:
        self._atomic_write(self._collection_path(collection), payload)

    def _atomic_write(self, path: Path, data: Dict[str, Any]) -> None:
        """Write JSON file atomically"""
        dir_path = path.parent
        with tempfile.NamedTemporaryFile(mode="w", dir=dir_path, delete=False, encoding="utf-8") as tf:
            tf.write(json_util.dumps(data, json_options=JSON_OPTIONS, indent=2))
            temp_path = Path(tf.name)

        try:
            shutil.move(str(temp_path), str(path))
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise StoreError(f"Failed to save collection to {path}: {e}")

    def _check_unique(
        self,
        collection: str,
        payload: Dict[str, Any],
        candidate: Dict[str, Any],
        skip_index: Optional[int] = None,
    ) -> None:
        for index in payload["indexes"]:
            if not index.get("unique"):
                continue
            fields = [field for field, _ in index["keys"]]
            key = tuple(get_path(candidate, field) for field in fields)
            if index.get("sparse") and all(value is None for value in key):
                continue
            for i, existing in enumerate(payload["documents"]):
                if i == skip_index:
                    continue
                if tuple(get_path(existing, field) for field in fields) == key:
                    raise DuplicateKeyError(
                        f"E11000 duplicate key error collection: {collection} index: {index['name']}",
                        collection,
                        dict(zip(fields, key)),
                    )

    def insert_one(self, collection: str, document: Dict[str, Any]) -> Any:
        with self.lock:
            payload = self._load(collection)
            doc = copy.deepcopy(document)
            doc.setdefault("_id", ObjectId())
            if any(existing["_id"] == doc["_id"] for existing in payload["documents"]):
                raise DuplicateKeyError(
                    f"E11000 duplicate key error collection: {collection} index: _id_",
                    collection,
                    {"_id": doc["_id"]},
                )
            self._check_unique(collection, payload, doc)
            payload["documents"].append(doc)
            self._save(collection, payload)
            return doc["_id"]

    def find_one(self, collection: str, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        results = self.find(collection, query, limit=1)
        return results[0] if results else None

    def find(
        self,
        collection: str,
        query: Dict[str, Any],
        sort: SortSpec = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        with self.lock:
            documents = self._load(collection)["documents"]
        found = [doc for doc in documents if matches(doc, query)]
        for field, direction in reversed(list(sort or [])):
            found.sort(
                key=lambda doc: (get_path(doc, field) is not None, get_path(doc, field)),
                reverse=direction < 0,
            )
        if limit:
            found = found[:limit]
        return copy.deepcopy(found)

    def _update_first(
        self,
        collection: str,
        query: Dict[str, Any],
        update: Dict[str, Any],
    ) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
        with self.lock:
            payload = self._load(collection)
            for i, doc in enumerate(payload["documents"]):
                if not matches(doc, query):
                    continue
                before = copy.deepcopy(doc)
                after = apply_update(copy.deepcopy(doc), update)
                after["_id"] = before["_id"]
                self._check_unique(collection, payload, after, skip_index=i)
                payload["documents"][i] = after
                self._save(collection, payload)
                return before, copy.deepcopy(after)
        return None, None

    def update_one(self, collection: str, query: Dict[str, Any], update: Dict[str, Any]) -> int:
        before, _ = self._update_first(collection, query, update)
        return 0 if before is None else 1

    def find_one_and_update(
        self,
        collection: str,
        query: Dict[str, Any],
        update: Dict[str, Any],
        return_new: bool = True,
    ) -> Optional[Dict[str, Any]]:
        before, after = self._update_first(collection, query, update)
        return after if return_new else before

    def delete_one(self, collection: str, query: Dict[str, Any]) -> int:
        with self.lock:
            payload = self._load(collection)
            for i, doc in enumerate(payload["documents"]):
                if matches(doc, query):
                    del payload["documents"][i]
                    self._save(collection, payload)
                    return 1
        return 0

    def count(self, collection: str, query: Dict[str, Any]) -> int:
        return len(self.find(collection, query))

    def create_index(self, collection: str, keys: IndexKeys, **options: Any) -> str:
        keys = [(field, int(direction)) for field, direction in keys]
        name = options.get("name") or index_name(keys)
        with self.lock:
            payload = self._load(collection)
            index = {
                "name": name,
                "keys": [list(pair) for pair in keys],
                "unique": bool(options.get("unique", False)),
                "sparse": bool(options.get("sparse", False)),
            }
            existing = next((ix for ix in payload["indexes"] if ix["name"] == name), None)
            if existing == index:
                return name
            if existing is not None:
                raise StoreError(f"Index {name} already exists on {collection} with different options")
            if index["unique"]:
                probe = {"documents": [], "indexes": [index]}
                for doc in payload["documents"]:
                    self._check_unique(collection, probe, doc)
                    probe["documents"].append(doc)
            payload["indexes"].append(index)
            self._save(collection, payload)
        logger.debug("Index created", collection=collection, index=name)
        return name

    def list_indexes(self, collection: str) -> List[Dict[str, Any]]:
        with self.lock:
            return copy.deepcopy(self._load(collection)["indexes"])

    def drop(self, collection: str) -> None:
        with self.lock:
            path = self._collection_path(collection)
            if path.exists():
                path.unlink()


class MongoStore(DocumentStore):
    """pymongo-backed store over one database"""

    def __init__(self, database, client: Optional[MongoClient] = None):
        self.db = database
        self.client = client

    @classmethod
    def from_uri(cls, uri: str, database_name: str, server_selection_timeout_ms: int = 5000) -> "MongoStore":
        client = MongoClient(uri, serverSelectionTimeoutMS=server_selection_timeout_ms)
        return cls(client[database_name], client=client)

    def _duplicate(self, collection: str, error: mongo_errors.DuplicateKeyError) -> DuplicateKeyError:
        details = error.details or {}
        return DuplicateKeyError(str(error), collection, details.get("keyValue"))

    def insert_one(self, collection: str, document: Dict[str, Any]) -> Any:
        try:
            return self.db[collection].insert_one(copy.deepcopy(document)).inserted_id
        except mongo_errors.DuplicateKeyError as e:
            raise self._duplicate(collection, e)
        except mongo_errors.PyMongoError as e:
            raise StoreError(f"insert into {collection} failed: {e}")

    def find_one(self, collection: str, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return self.db[collection].find_one(query)
        except mongo_errors.PyMongoError as e:
            raise StoreError(f"find_one on {collection} failed: {e}")

    def find(
        self,
        collection: str,
        query: Dict[str, Any],
        sort: SortSpec = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        try:
            cursor = self.db[collection].find(query)
            if sort:
                cursor = cursor.sort(list(sort))
            if limit:
                cursor = cursor.limit(limit)
            return list(cursor)
        except mongo_errors.PyMongoError as e:
            raise StoreError(f"find on {collection} failed: {e}")

    def update_one(self, collection: str, query: Dict[str, Any], update: Dict[str, Any]) -> int:
        try:
            return self.db[collection].update_one(query, update).matched_count
        except mongo_errors.DuplicateKeyError as e:
            raise self._duplicate(collection, e)
        except mongo_errors.PyMongoError as e:
            raise StoreError(f"update on {collection} failed: {e}")

    def find_one_and_update(
        self,
        collection: str,
        query: Dict[str, Any],
        update: Dict[str, Any],
        return_new: bool = True,
    ) -> Optional[Dict[str, Any]]:
        try:
            return self.db[collection].find_one_and_update(
                query,
                update,
                return_document=ReturnDocument.AFTER if return_new else ReturnDocument.BEFORE,
            )
        except mongo_errors.DuplicateKeyError as e:
            raise self._duplicate(collection, e)
        except mongo_errors.PyMongoError as e:
            raise StoreError(f"find_one_and_update on {collection} failed: {e}")

    def delete_one(self, collection: str, query: Dict[str, Any]) -> int:
        try:
            return self.db[collection].delete_one(query).deleted_count
        except mongo_errors.PyMongoError as e:
            raise StoreError(f"delete on {collection} failed: {e}")

    def count(self, collection: str, query: Dict[str, Any]) -> int:
        try:
            return self.db[collection].count_documents(query)
        except mongo_errors.PyMongoError as e:
            raise StoreError(f"count on {collection} failed: {e}")

    def create_index(self, collection: str, keys: IndexKeys, **options: Any) -> str:
        try:
            return self.db[collection].create_index(list(keys), **options)
        except mongo_errors.DuplicateKeyError as e:
            raise self._duplicate(collection, e)
        except mongo_errors.PyMongoError as e:
            raise StoreError(f"create_index on {collection} failed: {e}")

    def drop(self, collection: str) -> None:
        try:
            self.db.drop_collection(collection)
        except mongo_errors.PyMongoError as e:
            raise StoreError(f"drop of {collection} failed: {e}")

    def close(self) -> None:
        if self.client is not None:
            self.client.close()

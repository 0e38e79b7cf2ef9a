"""
Database Helper Functions

MongoDB access for the API. A Store wraps one pymongo Database and is
passed to whatever needs it; there is no module-level connection. Every
pymongo error leaves this module as StoreFailure.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

import pymongo
from bson import ObjectId
from pydantic import BaseModel
from pymongo.errors import PyMongoError

from config import ARTICLES, CATEGORIES, COUNTRIES, Settings
from criteria import LISTING, build_article_sort, build_query
from errors import StoreFailure
from logger import logger
from schemas import ArticleFilter, ArticleSort, CategoryFilter, CountryFilter

ARTICLE_TEXT_INDEX = "article_text_index"
ARTICLE_TITLE_DATE_INDEX = "article_title_created_index"


class Store:
    """Collection access over one database"""

    def __init__(self, db, client=None):
        self.db = db
        self.client = client

    @property
    def name(self) -> str:
        return self.db.name

    def _run(self, action: str, collection: str, call):
        try:
            return call(self.db[collection])
        except PyMongoError as e:
            logger.error(f"✗ {action} on {collection} failed: {e}")
            raise StoreFailure(f"Error encountered while {action} {collection} collection.") from e

    # -------------------------
    # Generic operations
    # -------------------------

    def find(self, collection: str, criteria: Dict[str, Any],
             projection: Optional[Dict[str, Any]] = None,
             sort: Optional[List[Tuple[str, int]]] = None) -> List[Dict[str, Any]]:
        def call(coll):
            cursor = coll.find(criteria, projection)
            if sort:
                cursor = cursor.sort(sort)
            return list(cursor)
        return self._run("reading", collection, call)

    def find_one(self, collection: str, criteria: Dict[str, Any],
                 projection: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        return self._run("reading", collection, lambda coll: coll.find_one(criteria, projection))

    def insert(self, collection: str, document: Dict[str, Any]) -> ObjectId:
        result = self._run("adding to", collection, lambda coll: coll.insert_one(document))
        return result.inserted_id

    def update(self, collection: str, criteria: Dict[str, Any], update: Dict[str, Any]) -> int:
        """Apply one update document; returns the matched count."""
        result = self._run("updating", collection, lambda coll: coll.update_one(criteria, update))
        return result.matched_count

    def delete(self, collection: str, criteria: Dict[str, Any]) -> int:
        result = self._run("deleting from", collection, lambda coll: coll.delete_one(criteria))
        return result.deleted_count

    def list_collection_names(self) -> List[str]:
        try:
            return self.db.list_collection_names()
        except PyMongoError as e:
            raise StoreFailure("Error encountered while listing collections.") from e

    # -------------------------
    # Typed reads
    # -------------------------

    def find_countries(self, filters: CountryFilter, include_children: bool = False,
                       exact: bool = False) -> List[Dict[str, Any]]:
        criteria, projection = build_query(COUNTRIES, filters, include_children, exact=exact)
        return self.find(COUNTRIES, criteria, projection)

    def find_categories(self, filters: CategoryFilter, include_children: bool = False,
                        exact: bool = False) -> List[Dict[str, Any]]:
        criteria, projection = build_query(CATEGORIES, filters, include_children, exact=exact)
        return self.find(CATEGORIES, criteria, projection)

    def find_articles(self, filters: ArticleFilter, sort: Optional[ArticleSort] = None,
                      view: str = LISTING) -> List[Dict[str, Any]]:
        criteria, projection = build_query(ARTICLES, filters, view=view)
        return self.find(ARTICLES, criteria, projection, build_article_sort(sort))

    def get_country(self, country_id: ObjectId) -> Optional[Dict[str, Any]]:
        return self.find_one(COUNTRIES, {"_id": country_id})

    def get_category(self, category_id: ObjectId) -> Optional[Dict[str, Any]]:
        return self.find_one(CATEGORIES, {"_id": category_id})

    def get_article(self, article_id: ObjectId) -> Optional[Dict[str, Any]]:
        return self.find_one(ARTICLES, {"_id": article_id})

    def close(self):
        if self.client is not None:
            self.client.close()


def connect(settings: Settings) -> Store:
    if not settings.database_url:
        raise StoreFailure("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    client = pymongo.MongoClient(settings.database_url)
    logger.info(f"Connected to database {settings.database_name}")
    return Store(client[settings.database_name], client)


def ensure_indexes(store: Store) -> int:
    """Create the article indexes if they do not exist"""
    articles = store.db[ARTICLES]
    created = 0
    try:
        existing = {idx["name"] for idx in articles.list_indexes()}
        if ARTICLE_TEXT_INDEX not in existing:
            articles.create_index([
                ("title", pymongo.TEXT),
                ("description", pymongo.TEXT),
                ("details.content", pymongo.TEXT),
            ], name=ARTICLE_TEXT_INDEX)
            created += 1
        if ARTICLE_TITLE_DATE_INDEX not in existing:
            articles.create_index([
                ("title", pymongo.ASCENDING),
                ("createdDate", pymongo.DESCENDING),
            ], name=ARTICLE_TITLE_DATE_INDEX)
            created += 1
    except PyMongoError as e:
        logger.error(f"✗ index creation on {ARTICLES} failed: {e}")
        raise StoreFailure("Error encountered while creating article indexes.") from e

    if created > 0:
        logger.info(f"✓ created {created} article index(es)")
    return created


def create_document(store: Store, collection_name: str, data: Union[BaseModel, dict]) -> ObjectId:
    """Insert a single document with a creation timestamp"""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()

    data_dict["created_at"] = datetime.now(timezone.utc)
    return store.insert(collection_name, data_dict)

"""
Service operations

Validate, prepare and execute reads and writes for countries, categories
and articles. `validate_and_prepare_*` never write; the create/update/
delete helpers raise ValidationFailure, NotFound or MalformedIdentity and
let StoreFailure from the Store pass through untouched.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId

from config import ARTICLES, CATEGORIES, COUNTRIES
from criteria import FULL, LISTING
from database import Store, create_document
from entity_validators import (
    validate_article, validate_category, validate_city_change, validate_comment,
    validate_comment_change, validate_country, validate_rating,
    validate_subcategory_change,
)
from errors import MalformedIdentity, NotFound, ValidationFailure
from filters import is_object_id
from merge import BULK, SINGLE_PULL, SINGLE_SET, assign_identities, merge_embedded, new_identity
from schemas import (
    ArticleCreate, ArticleFilter, ArticleSort, ArticleUpdate, CategoryCreate,
    CategoryFilter, CategoryUpdate, CityUpdate, CommentIn, CommentUpdate,
    CountryCreate, CountryFilter, CountryUpdate, SubcategoryUpdate, Violation,
)


@dataclass
class PreparedWrite:
    """A validated write: an insert when `criteria` is None, else an update."""
    collection: str
    document: Dict[str, Any]
    criteria: Optional[Dict[str, Any]] = None


def parse_identity(value, field: str = "id") -> ObjectId:
    if not is_object_id(value):
        raise MalformedIdentity(field, value)
    return ObjectId(value)


def _strip(value):
    return value.strip() if isinstance(value, str) else value


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _supplied(payload, name: str) -> bool:
    return name in payload.model_fields_set and getattr(payload, name) is not None


def _children(items, *text_fields) -> List[Dict[str, Any]]:
    """Request children as dicts with their text fields stripped."""
    cleaned = []
    for item in items:
        data = item.model_dump(exclude_none=True)
        for name in text_fields:
            if name in data:
                data[name] = data[name].strip()
        cleaned.append(data)
    return cleaned


def _execute(store: Store, prepared: PreparedWrite) -> ObjectId:
    if prepared.criteria is None:
        return store.insert(prepared.collection, prepared.document)
    if prepared.document:
        if not store.update(prepared.collection, prepared.criteria, prepared.document):
            raise NotFound("id", str(prepared.criteria["_id"]), "Document no longer exists")
    return prepared.criteria["_id"]


def _require(document, field: str, value, label: str):
    if document is None:
        raise NotFound(field, value, f"{label} does not exist")
    return document


def _child(parent: dict, field: str, child_id: ObjectId) -> Optional[dict]:
    for child in parent.get(field, []):
        if child.get("_id") == child_id:
            return child
    return None


def _raise_if(violations: List[Violation]):
    if violations:
        raise ValidationFailure(violations)


# -------------------------
# Countries
# -------------------------

def query_countries(store: Store, filters: CountryFilter, include_children: bool = False) -> List[dict]:
    return store.find_countries(filters, include_children)


def get_country(store: Store, country_id: str) -> dict:
    return _require(store.get_country(parse_identity(country_id)), "id", country_id, "Country")


def validate_and_prepare_country(store: Store, payload, is_create: bool = True
                                 ) -> Tuple[List[Violation], Optional[PreparedWrite]]:
    violations = validate_country(store, payload, is_create)
    if violations:
        return violations, None

    if is_create:
        document = {
            "code": payload.code.strip().upper(),
            "name": payload.name.strip(),
            "cities": assign_identities(_children(payload.cities, "name")),
        }
        return [], PreparedWrite(COUNTRIES, document)

    country_id = ObjectId(payload.id)
    existing = _require(store.get_country(country_id), "id", payload.id, "Country")
    update = {}
    changes = {}
    if _supplied(payload, "code"):
        changes["code"] = payload.code.strip().upper()
    if _supplied(payload, "name"):
        changes["name"] = payload.name.strip()
    if changes:
        update["$set"] = changes
    if payload.cities:
        merged = merge_embedded(country_id, "cities", existing.get("cities", []),
                                _children(payload.cities, "name"), BULK)
        update.update(merged.update)
    return [], PreparedWrite(COUNTRIES, update, {"_id": country_id})


def create_country(store: Store, payload: CountryCreate) -> dict:
    violations, prepared = validate_and_prepare_country(store, payload, True)
    _raise_if(violations)
    country_id = create_document(store, COUNTRIES, prepared.document)
    return store.get_country(country_id)


def update_country(store: Store, payload: CountryUpdate) -> dict:
    violations, prepared = validate_and_prepare_country(store, payload, False)
    _raise_if(violations)
    return store.get_country(_execute(store, prepared))


def delete_country(store: Store, country_id: str) -> int:
    deleted = store.delete(COUNTRIES, {"_id": parse_identity(country_id)})
    if not deleted:
        raise NotFound("id", country_id, "Country does not exist")
    return deleted


def update_city(store: Store, country_id: str, city_id: str, changes: CityUpdate) -> dict:
    country = get_country(store, country_id)
    city_oid = parse_identity(city_id, "cityId")
    _require(_child(country, "cities", city_oid), "cityId", city_id, f"City in Country {country['code']}")
    _raise_if(validate_city_change(country, city_oid, changes))

    fields = changes.model_dump(exclude_unset=True)
    if fields.get("name") is not None:
        fields["name"] = fields["name"].strip()
    merged = merge_embedded(country["_id"], "cities", country["cities"], fields, SINGLE_SET, city_oid)
    if merged.update:
        store.update(COUNTRIES, merged.criteria, merged.update)
    return store.get_country(country["_id"])


def remove_city(store: Store, country_id: str, city_id: str) -> dict:
    country = get_country(store, country_id)
    city_oid = parse_identity(city_id, "cityId")
    _require(_child(country, "cities", city_oid), "cityId", city_id, f"City in Country {country['code']}")
    merged = merge_embedded(country["_id"], "cities", country["cities"], None, SINGLE_PULL, city_oid)
    store.update(COUNTRIES, merged.criteria, merged.update)
    return store.get_country(country["_id"])


# -------------------------
# Categories
# -------------------------

def query_categories(store: Store, filters: CategoryFilter, include_children: bool = False) -> List[dict]:
    return store.find_categories(filters, include_children)


def get_category(store: Store, category_id: str) -> dict:
    return _require(store.get_category(parse_identity(category_id)), "id", category_id, "Category")


def validate_and_prepare_category(store: Store, payload, is_create: bool = True
                                  ) -> Tuple[List[Violation], Optional[PreparedWrite]]:
    violations = validate_category(store, payload, is_create)
    if violations:
        return violations, None

    if is_create:
        document = {
            "value": payload.value.strip(),
            "name": payload.name.strip(),
            "subcats": assign_identities(_children(payload.subcats or [], "value", "name")),
        }
        return [], PreparedWrite(CATEGORIES, document)

    category_id = ObjectId(payload.id)
    existing = _require(store.get_category(category_id), "id", payload.id, "Category")
    update = {}
    changes = {}
    if _supplied(payload, "value"):
        changes["value"] = payload.value.strip()
    if _supplied(payload, "name"):
        changes["name"] = payload.name.strip()
    if changes:
        update["$set"] = changes
    if payload.subcats:
        merged = merge_embedded(category_id, "subcats", existing.get("subcats", []),
                                _children(payload.subcats, "value", "name"), BULK)
        update.update(merged.update)
    return [], PreparedWrite(CATEGORIES, update, {"_id": category_id})


def create_category(store: Store, payload: CategoryCreate) -> dict:
    violations, prepared = validate_and_prepare_category(store, payload, True)
    _raise_if(violations)
    category_id = create_document(store, CATEGORIES, prepared.document)
    return store.get_category(category_id)


def update_category(store: Store, payload: CategoryUpdate) -> dict:
    violations, prepared = validate_and_prepare_category(store, payload, False)
    _raise_if(violations)
    return store.get_category(_execute(store, prepared))


def delete_category(store: Store, category_id: str) -> int:
    deleted = store.delete(CATEGORIES, {"_id": parse_identity(category_id)})
    if not deleted:
        raise NotFound("id", category_id, "Category does not exist")
    return deleted


def update_subcategory(store: Store, category_id: str, subcat_id: str, changes: SubcategoryUpdate) -> dict:
    category = get_category(store, category_id)
    subcat_oid = parse_identity(subcat_id, "subcatId")
    _require(_child(category, "subcats", subcat_oid), "subcatId", subcat_id,
             f"Sub-category in Category {category['value']}")
    _raise_if(validate_subcategory_change(category, subcat_oid, changes))

    fields = {k: _strip(v) for k, v in changes.model_dump(exclude_unset=True).items()}
    merged = merge_embedded(category["_id"], "subcats", category["subcats"], fields, SINGLE_SET, subcat_oid)
    if merged.update:
        store.update(CATEGORIES, merged.criteria, merged.update)
    return store.get_category(category["_id"])


def remove_subcategory(store: Store, category_id: str, subcat_id: str) -> dict:
    category = get_category(store, category_id)
    subcat_oid = parse_identity(subcat_id, "subcatId")
    _require(_child(category, "subcats", subcat_oid), "subcatId", subcat_id,
             f"Sub-category in Category {category['value']}")
    merged = merge_embedded(category["_id"], "subcats", category["subcats"], None, SINGLE_PULL, subcat_oid)
    store.update(CATEGORIES, merged.criteria, merged.update)
    return store.get_category(category["_id"])


# -------------------------
# Articles
# -------------------------

def query_articles(store: Store, filters: ArticleFilter, sort: Optional[ArticleSort] = None,
                   view: str = LISTING) -> List[dict]:
    return store.find_articles(filters, sort, FULL if view == FULL else LISTING)


def get_article(store: Store, article_id: str) -> dict:
    return _require(store.get_article(parse_identity(article_id)), "id", article_id, "Article")


def _location_document(location) -> Dict[str, Any]:
    return {
        "countryId": ObjectId(location.countryId),
        "cityId": ObjectId(location.cityId),
        "address": location.address.strip(),
    }


def _category_refs(refs) -> List[Dict[str, Any]]:
    return [{"catId": ObjectId(ref.catId), "subcatIds": [ObjectId(s) for s in ref.subcatIds]} for ref in refs]


def _sections(sections) -> List[Dict[str, Any]]:
    return [{"sectionName": s.sectionName.strip(), "content": s.content} for s in sections]


def _contributor_document(contributor, is_author: bool) -> Dict[str, Any]:
    name = contributor.name.strip()
    return {
        "name": name,
        "displayName": _strip(contributor.displayName) or name,
        "email": contributor.email.strip(),
        "isAuthor": is_author,
        "isLastMod": True,
    }


def _with_last_modifier(contributors: List[dict], contributor) -> List[dict]:
    """Existing contributor by email becomes last modifier; otherwise append."""
    address = contributor.email.strip().casefold()
    if any(str(c.get("email", "")).casefold() == address for c in contributors):
        return [dict(c, isLastMod=str(c.get("email", "")).casefold() == address) for c in contributors]
    demoted = [dict(c, isLastMod=False) for c in contributors]
    return demoted + [_contributor_document(contributor, is_author=False)]


def validate_and_prepare_article(store: Store, payload, is_create: bool = True
                                 ) -> Tuple[List[Violation], Optional[PreparedWrite]]:
    violations = validate_article(store, payload, is_create)
    if violations:
        return violations, None

    now = _now()
    if is_create:
        document = {
            "title": payload.title.strip(),
            "description": payload.description.strip(),
            "details": _sections(payload.details or []),
            "photos": [p.strip() for p in payload.photos or []],
            "tags": [t.strip() for t in payload.tags or []],
            "location": _location_document(payload.location),
            "categories": _category_refs(payload.categories),
            "contributors": [_contributor_document(payload.contributor, is_author=True)],
            "rating": {"avg": 0, "count": 0},
            "comments": [],
            "createdDate": now,
            "lastModified": now,
            "allowPublic": bool(payload.allowPublic),
        }
        return [], PreparedWrite(ARTICLES, document)

    article_id = ObjectId(payload.id)
    existing = _require(store.get_article(article_id), "id", payload.id, "Article")
    changes = {"lastModified": now}
    if _supplied(payload, "title"):
        changes["title"] = payload.title.strip()
    if _supplied(payload, "description"):
        changes["description"] = payload.description.strip()
    if _supplied(payload, "photos"):
        changes["photos"] = [p.strip() for p in payload.photos]
    if _supplied(payload, "tags"):
        changes["tags"] = [t.strip() for t in payload.tags]
    if _supplied(payload, "location"):
        changes["location"] = _location_document(payload.location)
    if _supplied(payload, "categories"):
        changes["categories"] = _category_refs(payload.categories)
    if _supplied(payload, "allowPublic"):
        changes["allowPublic"] = payload.allowPublic
    if payload.contributor is not None:
        changes["contributors"] = _with_last_modifier(existing.get("contributors", []), payload.contributor)

    update = {"$set": changes}
    if payload.details:
        update["$push"] = {"details": {"$each": _sections(payload.details)}}
    return [], PreparedWrite(ARTICLES, update, {"_id": article_id})


def create_article(store: Store, payload: ArticleCreate) -> dict:
    violations, prepared = validate_and_prepare_article(store, payload, True)
    _raise_if(violations)
    return store.get_article(_execute(store, prepared))


def update_article(store: Store, payload: ArticleUpdate) -> dict:
    violations, prepared = validate_and_prepare_article(store, payload, False)
    _raise_if(violations)
    return store.get_article(_execute(store, prepared))


def delete_article(store: Store, article_id: str) -> int:
    deleted = store.delete(ARTICLES, {"_id": parse_identity(article_id)})
    if not deleted:
        raise NotFound("id", article_id, "Article does not exist")
    return deleted


def add_comment(store: Store, article_id: str, comment: CommentIn) -> dict:
    article = get_article(store, article_id)
    _raise_if(validate_comment(comment))

    document = {
        "_id": new_identity(),
        "name": comment.name.strip(),
        "email": comment.email.strip(),
        "content": comment.content,
        "createdDate": _now(),
    }
    merged = merge_embedded(article["_id"], "comments", article.get("comments", []), [document], BULK)
    store.update(ARTICLES, merged.criteria, merged.update)
    return document


def update_comment(store: Store, article_id: str, comment_id: str, changes: CommentUpdate) -> dict:
    article = get_article(store, article_id)
    comment_oid = parse_identity(comment_id, "commentId")
    _require(_child(article, "comments", comment_oid), "commentId", comment_id, "Comment")
    _raise_if(validate_comment_change(changes))

    merged = merge_embedded(article["_id"], "comments", article["comments"],
                            {"content": changes.content}, SINGLE_SET, comment_oid)
    store.update(ARTICLES, merged.criteria, merged.update)
    return _child(store.get_article(article["_id"]), "comments", comment_oid)


def remove_comment(store: Store, article_id: str, comment_id: str) -> dict:
    article = get_article(store, article_id)
    comment_oid = parse_identity(comment_id, "commentId")
    _require(_child(article, "comments", comment_oid), "commentId", comment_id, "Comment")
    merged = merge_embedded(article["_id"], "comments", article["comments"], None, SINGLE_PULL, comment_oid)
    store.update(ARTICLES, merged.criteria, merged.update)
    return store.get_article(article["_id"])


def rate_article(store: Store, article_id: str, value) -> dict:
    article = get_article(store, article_id)
    _raise_if(validate_rating(value))

    rating = article.get("rating") or {"avg": 0, "count": 0}
    count = rating.get("count", 0) + 1
    avg = round((rating.get("avg", 0) * (count - 1) + value) / count, 2)
    store.update(ARTICLES, {"_id": article["_id"]}, {"$set": {"rating": {"avg": avg, "count": count}}})
    return {"avg": avg, "count": count}

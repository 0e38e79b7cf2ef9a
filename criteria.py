"""
Criteria builder

Turns filter objects into (criteria, projection) pairs for pymongo's
find(). Nothing here touches the database.
"""
import math
from typing import List, Optional, Tuple

import pymongo

from config import ARTICLES, CATEGORIES, COUNTRIES
from filters import classify, clean, condition, pattern
from schemas import ArticleFilter, ArticleSort, CategoryFilter, CountryFilter

LISTING = "listing"
FULL = "full"

ARTICLE_LISTING_FIELDS = (
    "title", "description", "photos", "tags", "location", "categories",
    "rating", "createdDate", "lastModified", "allowPublic",
)

SORT_FIELDS = {
    "createdDate": "createdDate",
    "lastModified": "lastModified",
    "title": "title",
    "rating": "rating.avg",
}

RATING_MIN = 0
RATING_MAX = 5


def _child_lookup(field: str, value: str, text_fields, exact: bool) -> dict:
    """Inner $elemMatch condition for a child given by id or by text."""
    match = classify(field, value)
    if match.is_identity:
        return {"_id": match.value}
    text = pattern(value, exact)
    if len(text_fields) == 1:
        return {text_fields[0]: text}
    return {"$or": [{name: text} for name in text_fields]}


def build_country_query(filters: CountryFilter, include_children: bool = False,
                        exact: bool = False) -> Tuple[dict, dict]:
    criteria = {}
    projection = {"code": 1, "name": 1}

    country_id = clean(filters.id)
    code = clean(filters.code)
    name = clean(filters.name)
    city = clean(filters.city)

    if country_id:
        criteria["_id"] = condition("id", country_id)
    if code:
        criteria["code"] = pattern(code, exact)
    if name:
        criteria["name"] = pattern(name, exact)

    city_match = None
    if city:
        city_match = {"$elemMatch": _child_lookup("city", city, ["name"], exact)}
        criteria["cities"] = city_match

    if include_children:
        projection["cities"] = city_match or 1

    return criteria, projection


def build_category_query(filters: CategoryFilter, include_children: bool = False,
                         exact: bool = False) -> Tuple[dict, dict]:
    criteria = {}
    projection = {"value": 1, "name": 1}

    category_id = clean(filters.id)
    value = clean(filters.value)
    name = clean(filters.name)
    subcat = clean(filters.subcat)

    if category_id:
        criteria["_id"] = condition("id", category_id)
    if value:
        criteria["value"] = pattern(value, exact)
    if name:
        criteria["name"] = pattern(name, exact)

    subcat_match = None
    if subcat:
        subcat_match = {"$elemMatch": _child_lookup("subcat", subcat, ["name", "value"], exact)}
        criteria["subcats"] = subcat_match

    if include_children:
        projection["subcats"] = subcat_match or 1

    return criteria, projection


def _number(value) -> Optional[float]:
    value = clean(value)
    if value is None:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def build_article_query(filters: ArticleFilter, view: str = LISTING) -> Tuple[dict, Optional[dict]]:
    criteria = {}

    search = clean(filters.search)
    if search:
        criteria["$text"] = {"$search": search}

    country_id = clean(filters.countryId)
    city_id = clean(filters.cityId)
    if country_id:
        criteria["location.countryId"] = condition("countryId", country_id)
    if city_id:
        criteria["location.cityId"] = condition("cityId", city_id)

    # Both ids must hold on the same categories entry
    cat_id = clean(filters.catId)
    subcat_id = clean(filters.subcatId)
    membership = {}
    if cat_id:
        membership["catId"] = condition("catId", cat_id)
    if subcat_id:
        membership["subcatIds"] = condition("subcatId", subcat_id)
    if membership:
        criteria["categories"] = {"$elemMatch": membership}

    rating_from = _number(filters.ratingFrom)
    rating_to = _number(filters.ratingTo)
    if rating_from is not None or rating_to is not None:
        criteria["rating.avg"] = {
            "$gte": RATING_MIN if rating_from is None else rating_from,
            "$lte": RATING_MAX if rating_to is None else rating_to,
        }

    if view == FULL:
        return criteria, None
    return criteria, {field: 1 for field in ARTICLE_LISTING_FIELDS}


def build_article_sort(sort: Optional[ArticleSort] = None) -> List[Tuple[str, int]]:
    """createdDate descending by default; title, then _id, break ties."""
    sort = sort or ArticleSort()
    field = SORT_FIELDS.get(clean(sort.sortField) or "", "createdDate")

    order = (clean(sort.sortOrder) or "desc").lower()
    direction = pymongo.ASCENDING if order in ("asc", "1", "ascending") else pymongo.DESCENDING

    if field == "title":
        return [("title", direction), ("_id", pymongo.ASCENDING)]
    return [(field, direction), ("title", pymongo.ASCENDING)]


def build_query(kind: str, filters, include_children: bool = False,
                view: str = LISTING, exact: bool = False):
    """Dispatch on collection name."""
    if kind == COUNTRIES:
        return build_country_query(filters, include_children, exact)
    if kind == CATEGORIES:
        return build_category_query(filters, include_children, exact)
    if kind == ARTICLES:
        return build_article_query(filters, view)
    raise ValueError(f"Unknown collection: {kind}")

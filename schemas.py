"""
Database Schemas for the travel guide

The collection models describe what is stored in MongoDB (countries,
categories, articles) and are exposed through GET /schema. The request
models below them are what the API accepts: every field is optional so
that a missing value turns into a validation violation instead of a
framework error, and so an update can tell "not supplied" (absent from
model_fields_set) from "supplied as empty".
"""
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, EmailStr, Field

# -------------------------
# Core Collections
# -------------------------

class City(BaseModel):
    """Embedded in Country.cities"""
    id: str = Field(..., description="City ID, assigned on first insertion")
    name: str = Field(..., description="City name, unique within its country")
    lat: Optional[float] = Field(None, ge=-90, le=90, description="Latitude")
    lng: Optional[float] = Field(None, ge=-180, le=180, description="Longitude")


class Country(BaseModel):
    """Countries collection schema
    Collection name: "countries"
    """
    code: str = Field(..., min_length=2, max_length=2, description="ISO 3166-1 alpha-2, upper case")
    name: str = Field(..., description="Display name")
    cities: List[City] = Field(default_factory=list, description="Cities of the country")


class Subcategory(BaseModel):
    """Embedded in Category.subcats"""
    id: str
    value: str = Field(..., description="Token, unique within its category")
    name: str


class Category(BaseModel):
    """Categories collection schema
    Collection name: "categories"
    """
    value: str = Field(..., description="Token, unique across categories")
    name: str = Field(..., description="Display name")
    subcats: List[Subcategory] = Field(default_factory=list)


class Section(BaseModel):
    sectionName: str
    content: str


class Location(BaseModel):
    countryId: str
    cityId: str
    address: str


class CategoryRef(BaseModel):
    catId: str
    subcatIds: List[str] = Field(default_factory=list)


class Contributor(BaseModel):
    name: str
    displayName: str
    email: EmailStr
    isAuthor: bool = False
    isLastMod: bool = False


class Rating(BaseModel):
    avg: float = Field(0, ge=0, le=5)
    count: int = Field(0, ge=0)


class Comment(BaseModel):
    id: str
    name: str
    email: EmailStr
    content: str
    createdDate: datetime


class Article(BaseModel):
    """Articles collection schema
    Collection name: "articles"
    """
    title: str = Field(..., min_length=10, max_length=100)
    description: str = Field(..., min_length=10, max_length=200)
    details: List[Section] = Field(default_factory=list)
    photos: List[str] = Field(default_factory=list, description="Photo URLs")
    tags: List[str] = Field(default_factory=list)
    location: Location
    categories: List[CategoryRef]
    contributors: List[Contributor] = Field(default_factory=list)
    rating: Rating = Field(default_factory=Rating)
    comments: List[Comment] = Field(default_factory=list)
    createdDate: datetime
    lastModified: datetime
    allowPublic: bool = False


# -------------------------
# Violations
# -------------------------

class Violation(BaseModel):
    field: str
    value: Optional[Any] = None
    message: str


# -------------------------
# Requests: countries
# -------------------------

class CountryFilter(BaseModel):
    id: Optional[str] = None
    code: Optional[str] = None
    name: Optional[str] = None
    city: Optional[str] = None


class CityIn(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None


class CountryCreate(BaseModel):
    code: Optional[str] = None
    name: Optional[str] = None
    cities: Optional[List[CityIn]] = None


class CountryUpdate(BaseModel):
    id: Optional[str] = None
    code: Optional[str] = None
    name: Optional[str] = None
    cities: Optional[List[CityIn]] = None


class CityUpdate(BaseModel):
    name: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None


# -------------------------
# Requests: categories
# -------------------------

class CategoryFilter(BaseModel):
    id: Optional[str] = None
    value: Optional[str] = None
    name: Optional[str] = None
    subcat: Optional[str] = None


class SubcategoryIn(BaseModel):
    id: Optional[str] = None
    value: Optional[str] = None
    name: Optional[str] = None


class CategoryCreate(BaseModel):
    value: Optional[str] = None
    name: Optional[str] = None
    subcats: Optional[List[SubcategoryIn]] = None


class CategoryUpdate(BaseModel):
    id: Optional[str] = None
    value: Optional[str] = None
    name: Optional[str] = None
    subcats: Optional[List[SubcategoryIn]] = None


class SubcategoryUpdate(BaseModel):
    value: Optional[str] = None
    name: Optional[str] = None


# -------------------------
# Requests: articles
# -------------------------

class ArticleFilter(BaseModel):
    search: Optional[str] = None
    countryId: Optional[str] = None
    cityId: Optional[str] = None
    catId: Optional[str] = None
    subcatId: Optional[str] = None
    # Kept as text: non-numeric bounds are ignored, not rejected
    ratingFrom: Optional[str] = None
    ratingTo: Optional[str] = None


class ArticleSort(BaseModel):
    sortField: Optional[str] = None
    sortOrder: Optional[str] = None


class SectionIn(BaseModel):
    sectionName: Optional[str] = None
    content: Optional[str] = None


class LocationIn(BaseModel):
    countryId: Optional[str] = None
    cityId: Optional[str] = None
    address: Optional[str] = None


class CategoryRefIn(BaseModel):
    catId: Optional[str] = None
    subcatIds: List[str] = Field(default_factory=list)


class ContributorIn(BaseModel):
    name: Optional[str] = None
    displayName: Optional[str] = None
    email: Optional[str] = None


class ArticleCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    details: Optional[List[SectionIn]] = None
    photos: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    location: Optional[LocationIn] = None
    categories: Optional[List[CategoryRefIn]] = None
    contributor: Optional[ContributorIn] = None
    allowPublic: bool = False


class ArticleUpdate(BaseModel):
    id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    details: Optional[List[SectionIn]] = None
    photos: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    location: Optional[LocationIn] = None
    categories: Optional[List[CategoryRefIn]] = None
    contributor: Optional[ContributorIn] = None
    allowPublic: Optional[bool] = None


class CommentIn(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    content: Optional[str] = None


class CommentUpdate(BaseModel):
    content: Optional[str] = None


class RatingIn(BaseModel):
    value: Optional[float] = None

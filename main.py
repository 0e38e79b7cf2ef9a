from contextlib import asynccontextmanager
from typing import Optional

from bson import ObjectId
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import services
from config import ARTICLES, CATEGORIES, COUNTRIES, load_settings
from database import Store, connect, ensure_indexes
from errors import MalformedIdentity, NotFound, StoreFailure, ValidationFailure
from logger import logger, setup_logger
from schemas import (
    Article, ArticleCreate, ArticleFilter, ArticleSort, ArticleUpdate, Category,
    CategoryCreate, CategoryFilter, CategoryUpdate, CityUpdate, CommentIn,
    CommentUpdate, Country, CountryCreate, CountryFilter, CountryUpdate,
    RatingIn, SubcategoryUpdate,
)


# -------------------------
# Helpers
# -------------------------

def serialize(doc):
    """Rename `_id` to `id` at every level and render ObjectIds as strings."""
    if isinstance(doc, list):
        return [serialize(d) for d in doc]
    if isinstance(doc, dict):
        out = {}
        for k, v in doc.items():
            out["id" if k == "_id" else k] = serialize(v)
        return out
    if isinstance(doc, ObjectId):
        return str(doc)
    return doc


def send_success(data):
    data = serialize(data)
    return {"data": data, "count": len(data) if isinstance(data, list) else 1}


def get_store(request: Request) -> Store:
    store = request.app.state.store
    if store is None:
        raise HTTPException(status_code=500, detail="Database not available")
    return store


def _rejected(status_code: int, main: str, details):
    return JSONResponse(status_code=status_code, content={
        "main": main,
        "details": jsonable_encoder(details),
    })


@asynccontextmanager
async def lifespan(app: FastAPI):
    opened = None
    if app.state.store is None:
        settings = load_settings()
        setup_logger(level=settings.log_level)
        if settings.database_url:
            opened = connect(settings)
            ensure_indexes(opened)
            app.state.store = opened
        else:
            logger.warning("DATABASE_URL not set, running without a database")
    yield
    if opened is not None:
        opened.close()
        app.state.store = None


app = FastAPI(title="Travel Guide API", version="0.1.0", lifespan=lifespan)
app.state.store = None

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ValidationFailure)
async def validation_failure(request: Request, exc: ValidationFailure):
    logger.info(f"{request.method} {request.url.path} rejected: {len(exc.violations)} violation(s)")
    return _rejected(406, "Not Acceptable. Request has failed validation.", [v.model_dump() for v in exc.violations])


@app.exception_handler(MalformedIdentity)
async def malformed_identity(request: Request, exc: MalformedIdentity):
    return _rejected(400, "Bad Request. Malformed identity.", [exc.violation.model_dump()])


@app.exception_handler(NotFound)
async def not_found(request: Request, exc: NotFound):
    return _rejected(404, "Not Found.", [exc.violation.model_dump()])


@app.exception_handler(StoreFailure)
async def store_failure(request: Request, exc: StoreFailure):
    logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=500, content={
        "main": "Internal Server Error. Please contact administrator.",
        "details": exc.message,
    })


# -------------------------
# Basic + Schema Introspection
# -------------------------

@app.get("/")
def root():
    return {"message": "Travel Guide API running"}


@app.get("/schema")
def get_schema():
    return {
        "collections": [COUNTRIES, CATEGORIES, ARTICLES],
        "models": {
            COUNTRIES: Country.model_json_schema(),
            CATEGORIES: Category.model_json_schema(),
            ARTICLES: Article.model_json_schema(),
        },
    }


@app.get("/test")
def test_database(request: Request):
    store = request.app.state.store
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": None,
        "collections": [],
    }
    if store is not None:
        response["database_name"] = store.name
        try:
            response["collections"] = store.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
        except StoreFailure as e:
            response["database"] = f"⚠️  Connected but Error: {e.message[:50]}"
    return response


# -------------------------
# Countries
# -------------------------

@app.get("/countries")
def list_countries(id: Optional[str] = None, code: Optional[str] = None, name: Optional[str] = None,
                   city: Optional[str] = None, store: Store = Depends(get_store)):
    filters = CountryFilter(id=id, code=code, name=name, city=city)
    return send_success(services.query_countries(store, filters))


@app.get("/countries/cities")
def list_countries_with_cities(id: Optional[str] = None, code: Optional[str] = None,
                               name: Optional[str] = None, city: Optional[str] = None,
                               store: Store = Depends(get_store)):
    filters = CountryFilter(id=id, code=code, name=name, city=city)
    return send_success(services.query_countries(store, filters, include_children=True))


@app.get("/countries/{country_id}")
def read_country(country_id: str, store: Store = Depends(get_store)):
    return send_success(services.get_country(store, country_id))


@app.post("/countries")
def add_country(payload: CountryCreate, store: Store = Depends(get_store)):
    return send_success(services.create_country(store, payload))


@app.patch("/countries")
def edit_country(payload: CountryUpdate, store: Store = Depends(get_store)):
    return send_success(services.update_country(store, payload))


@app.delete("/countries/{country_id}")
def remove_country(country_id: str, store: Store = Depends(get_store)):
    return send_success({"deleted": services.delete_country(store, country_id)})


@app.patch("/countries/{country_id}/cities/{city_id}")
def edit_city(country_id: str, city_id: str, payload: CityUpdate, store: Store = Depends(get_store)):
    return send_success(services.update_city(store, country_id, city_id, payload))


@app.delete("/countries/{country_id}/cities/{city_id}")
def remove_city(country_id: str, city_id: str, store: Store = Depends(get_store)):
    return send_success(services.remove_city(store, country_id, city_id))


# -------------------------
# Categories
# -------------------------

@app.get("/categories")
def list_categories(id: Optional[str] = None, value: Optional[str] = None, name: Optional[str] = None,
                    subcat: Optional[str] = None, store: Store = Depends(get_store)):
    filters = CategoryFilter(id=id, value=value, name=name, subcat=subcat)
    return send_success(services.query_categories(store, filters))


@app.get("/categories/sub")
def list_categories_with_subcats(id: Optional[str] = None, value: Optional[str] = None,
                                 name: Optional[str] = None, subcat: Optional[str] = None,
                                 store: Store = Depends(get_store)):
    filters = CategoryFilter(id=id, value=value, name=name, subcat=subcat)
    return send_success(services.query_categories(store, filters, include_children=True))


@app.get("/categories/{category_id}")
def read_category(category_id: str, store: Store = Depends(get_store)):
    return send_success(services.get_category(store, category_id))


@app.post("/categories")
def add_category(payload: CategoryCreate, store: Store = Depends(get_store)):
    return send_success(services.create_category(store, payload))


@app.patch("/categories")
def edit_category(payload: CategoryUpdate, store: Store = Depends(get_store)):
    return send_success(services.update_category(store, payload))


@app.delete("/categories/{category_id}")
def remove_category(category_id: str, store: Store = Depends(get_store)):
    return send_success({"deleted": services.delete_category(store, category_id)})


@app.patch("/categories/{category_id}/subcats/{subcat_id}")
def edit_subcategory(category_id: str, subcat_id: str, payload: SubcategoryUpdate,
                     store: Store = Depends(get_store)):
    return send_success(services.update_subcategory(store, category_id, subcat_id, payload))


@app.delete("/categories/{category_id}/subcats/{subcat_id}")
def remove_subcategory(category_id: str, subcat_id: str, store: Store = Depends(get_store)):
    return send_success(services.remove_subcategory(store, category_id, subcat_id))


# -------------------------
# Articles
# -------------------------

@app.get("/articles")
def list_articles(search: Optional[str] = None, countryId: Optional[str] = None,
                  cityId: Optional[str] = None, catId: Optional[str] = None,
                  subcatId: Optional[str] = None, ratingFrom: Optional[str] = None,
                  ratingTo: Optional[str] = None, sortField: Optional[str] = None,
                  sortOrder: Optional[str] = None, view: str = "listing",
                  store: Store = Depends(get_store)):
    filters = ArticleFilter(search=search, countryId=countryId, cityId=cityId, catId=catId,
                            subcatId=subcatId, ratingFrom=ratingFrom, ratingTo=ratingTo)
    sort = ArticleSort(sortField=sortField, sortOrder=sortOrder)
    return send_success(services.query_articles(store, filters, sort, view))


@app.get("/articles/{article_id}")
def read_article(article_id: str, store: Store = Depends(get_store)):
    return send_success(services.get_article(store, article_id))


@app.post("/articles")
def add_article(payload: ArticleCreate, store: Store = Depends(get_store)):
    return send_success(services.create_article(store, payload))


@app.patch("/articles")
def edit_article(payload: ArticleUpdate, store: Store = Depends(get_store)):
    return send_success(services.update_article(store, payload))


@app.delete("/articles/{article_id}")
def remove_article(article_id: str, store: Store = Depends(get_store)):
    return send_success({"deleted": services.delete_article(store, article_id)})


@app.post("/articles/{article_id}/comments")
def add_comment(article_id: str, payload: CommentIn, store: Store = Depends(get_store)):
    return send_success(services.add_comment(store, article_id, payload))


@app.patch("/articles/{article_id}/comments/{comment_id}")
def edit_comment(article_id: str, comment_id: str, payload: CommentUpdate,
                 store: Store = Depends(get_store)):
    return send_success(services.update_comment(store, article_id, comment_id, payload))


@app.delete("/articles/{article_id}/comments/{comment_id}")
def remove_comment(article_id: str, comment_id: str, store: Store = Depends(get_store)):
    return send_success(services.remove_comment(store, article_id, comment_id))


@app.post("/articles/{article_id}/rating")
def rate_article(article_id: str, payload: RatingIn, store: Store = Depends(get_store)):
    return send_success(services.rate_article(store, article_id, payload.value))


if __name__ == "__main__":
    import uvicorn
    settings = load_settings()
    uvicorn.run(app, host="0.0.0.0", port=settings.port)

"""Pytest configuration and fixtures."""

import mongomock
import pytest
from fastapi.testclient import TestClient

import services
from database import Store
import main
from schemas import CategoryCreate, CityIn, CountryCreate, SubcategoryIn


@pytest.fixture
def store():
    """Store over an in-memory database."""
    client = mongomock.MongoClient()
    return Store(client["travel_guide_test"], client)


@pytest.fixture
def japan(store):
    return services.create_country(store, CountryCreate(
        code="jp",
        name="Japan",
        cities=[CityIn(name="Kyoto", lat=35.0, lng=135.8), CityIn(name="Osaka")],
    ))


@pytest.fixture
def singapore(store):
    return services.create_country(store, CountryCreate(
        code="SG",
        name="Singapore",
        cities=[CityIn(name="Singapore")],
    ))


@pytest.fixture
def food(store):
    return services.create_category(store, CategoryCreate(
        value="food",
        name="Food",
        subcats=[SubcategoryIn(value="halal", name="Halal"),
                 SubcategoryIn(value="street-food", name="Street Food")],
    ))


@pytest.fixture
def article_payload(japan, food):
    """A valid article create payload (as a dict)."""
    return {
        "title": "A Great Day Out",
        "description": "Ten words of valid length here now",
        "location": {
            "countryId": str(japan["_id"]),
            "cityId": str(japan["cities"][0]["_id"]),
            "address": "12 Main St",
        },
        "categories": [{"catId": str(food["_id"]), "subcatIds": []}],
        "contributor": {"name": "Alice", "email": "a@example.com"},
    }


@pytest.fixture
def serve():
    """Point the app at a given store for one test."""
    def use(store):
        main.app.state.store = store
        return TestClient(main.app)
    yield use
    main.app.state.store = None


@pytest.fixture
def client(store, serve):
    return serve(store)

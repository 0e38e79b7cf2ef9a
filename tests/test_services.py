"""Tests for the service operations against an in-memory store."""

import pytest
from bson import ObjectId

import services
from config import ARTICLES, COUNTRIES
from errors import MalformedIdentity, NotFound, ValidationFailure
from schemas import (
    ArticleCreate, ArticleFilter, ArticleSort, ArticleUpdate, CategoryCreate,
    CategoryFilter, CategoryUpdate, CityIn, CityUpdate, CommentIn, CommentUpdate,
    CountryCreate, CountryFilter, CountryUpdate, SubcategoryIn, SubcategoryUpdate,
)


class TestCountries:
    def test_create_upper_cases_code_and_assigns_city_ids(self, japan):
        assert japan["code"] == "JP"
        assert [c["name"] for c in japan["cities"]] == ["Kyoto", "Osaka"]
        assert all(isinstance(c["_id"], ObjectId) for c in japan["cities"])
        assert "created_at" in japan

    def test_prepare_does_not_write(self, store):
        violations, prepared = services.validate_and_prepare_country(
            store, CountryCreate(code="my", name="Malaysia", cities=[CityIn(name="Penang")]), True)
        assert violations == []
        assert prepared.collection == COUNTRIES
        assert prepared.criteria is None
        assert prepared.document["code"] == "MY"
        assert store.find(COUNTRIES, {}) == []

    def test_prepare_returns_violations(self, store):
        violations, prepared = services.validate_and_prepare_country(store, CountryCreate(code="MYS"), True)
        assert prepared is None
        assert [v.field for v in violations] == ["code", "name", "cities"]

    def test_create_invalid_raises(self, store):
        with pytest.raises(ValidationFailure) as exc:
            services.create_country(store, CountryCreate(code="JPN", name="Japan", cities=[CityIn(name="Kyoto")]))
        assert [v.field for v in exc.value.violations] == ["code"]

    def test_update_name_only_changes_name(self, store, japan):
        updated = services.update_country(store, CountryUpdate(id=str(japan["_id"]), name="Nippon"))
        assert updated["name"] == "Nippon"
        assert {k: v for k, v in updated.items() if k != "name"} == \
               {k: v for k, v in japan.items() if k != "name"}

    def test_update_appends_cities_and_keeps_ids(self, store, japan):
        updated = services.update_country(store, CountryUpdate(id=str(japan["_id"]), cities=[CityIn(name="Nara")]))
        assert [c["name"] for c in updated["cities"]] == ["Kyoto", "Osaka", "Nara"]
        assert updated["cities"][:2] == japan["cities"]

    def test_city_round_trip(self, store, japan):
        [found] = services.query_countries(store, CountryFilter(city="Kyoto"), include_children=True)
        [kyoto] = found["cities"]
        assert kyoto["_id"] == japan["cities"][0]["_id"]
        assert (kyoto["name"], kyoto["lat"], kyoto["lng"]) == ("Kyoto", 35.0, 135.8)

        resubmitted = CityIn(id=str(kyoto["_id"]), name="Kyoto", lat=35.0, lng=135.8)
        updated = services.update_country(store, CountryUpdate(id=str(japan["_id"]), cities=[resubmitted]))
        assert updated["cities"] == japan["cities"]

    def test_filter_by_city_identity(self, store, japan, singapore):
        osaka = japan["cities"][1]
        results = services.query_countries(store, CountryFilter(city=str(osaka["_id"])), include_children=True)
        assert [r["_id"] for r in results] == [japan["_id"]]
        assert results[0]["cities"] == [osaka]

    def test_query_without_children(self, store, japan, singapore):
        results = services.query_countries(store, CountryFilter(name="sing"))
        assert [r["code"] for r in results] == ["SG"]
        assert "cities" not in results[0]

    def test_get_country(self, store, japan):
        assert services.get_country(store, str(japan["_id"]))["code"] == "JP"
        with pytest.raises(MalformedIdentity):
            services.get_country(store, "xyz")
        with pytest.raises(NotFound):
            services.get_country(store, str(ObjectId()))

    def test_delete(self, store, japan):
        assert services.delete_country(store, str(japan["_id"])) == 1
        with pytest.raises(NotFound):
            services.delete_country(store, str(japan["_id"]))


class TestCities:
    def test_update_city_sets_only_supplied_fields(self, store, japan):
        kyoto, osaka = japan["cities"]
        updated = services.update_city(store, str(japan["_id"]), str(kyoto["_id"]), CityUpdate(lat=35.01))
        assert updated["cities"][0] == dict(kyoto, lat=35.01)
        assert updated["cities"][1] == osaka

    def test_update_city_rejects_sibling_name(self, store, japan):
        kyoto = japan["cities"][0]
        with pytest.raises(ValidationFailure):
            services.update_city(store, str(japan["_id"]), str(kyoto["_id"]), CityUpdate(name="Osaka"))

    def test_update_unknown_city(self, store, japan):
        with pytest.raises(NotFound):
            services.update_city(store, str(japan["_id"]), str(ObjectId()), CityUpdate(name="Nara"))
        with pytest.raises(MalformedIdentity):
            services.update_city(store, str(japan["_id"]), "nara", CityUpdate(name="Nara"))

    def test_remove_city(self, store, japan):
        kyoto, osaka = japan["cities"]
        updated = services.remove_city(store, str(japan["_id"]), str(kyoto["_id"]))
        assert updated["cities"] == [osaka]


class TestCategories:
    def test_create(self, food):
        assert food["value"] == "food"
        assert [s["value"] for s in food["subcats"]] == ["halal", "street-food"]

    def test_second_create_with_same_value(self, store, food):
        with pytest.raises(ValidationFailure) as exc:
            services.create_category(store, CategoryCreate(value="Food ", name="Food"))
        [violation] = exc.value.violations
        assert "already exists" in violation.message
        assert str(food["_id"]) in violation.message

    def test_query_by_subcat(self, store, food):
        [found] = services.query_categories(store, CategoryFilter(subcat="street"), include_children=True)
        assert [s["value"] for s in found["subcats"]] == ["street-food"]

    def test_update_appends_subcats(self, store, food):
        updated = services.update_category(store, CategoryUpdate(
            id=str(food["_id"]), subcats=[SubcategoryIn(value="vegan", name="Vegan")]))
        assert [s["value"] for s in updated["subcats"]] == ["halal", "street-food", "vegan"]
        assert updated["subcats"][:2] == food["subcats"]

    def test_update_and_remove_subcategory(self, store, food):
        halal, street = food["subcats"]
        updated = services.update_subcategory(store, str(food["_id"]), str(halal["_id"]),
                                              SubcategoryUpdate(name="Halal Eats"))
        assert updated["subcats"][0] == dict(halal, name="Halal Eats")

        updated = services.remove_subcategory(store, str(food["_id"]), str(street["_id"]))
        assert [s["_id"] for s in updated["subcats"]] == [halal["_id"]]

    def test_delete(self, store, food):
        assert services.delete_category(store, str(food["_id"])) == 1


class TestArticles:
    @pytest.fixture
    def article(self, store, article_payload):
        return services.create_article(store, ArticleCreate(**article_payload, allowPublic=True))

    def test_create_scenario(self, store, article_payload):
        violations, prepared = services.validate_and_prepare_article(store, ArticleCreate(**article_payload), True)
        assert violations == []
        document = prepared.document
        assert document["rating"] == {"avg": 0, "count": 0}
        assert document["comments"] == []
        assert document["contributors"] == [{
            "name": "Alice", "displayName": "Alice", "email": "a@example.com",
            "isAuthor": True, "isLastMod": True,
        }]
        assert isinstance(document["location"]["countryId"], ObjectId)

    def test_new_contributor_appended_and_previous_demoted(self, store, article):
        updated = services.update_article(store, ArticleUpdate(
            id=str(article["_id"]), contributor={"name": "Bob", "email": "bob@example.com"}))
        contributors = updated["contributors"]
        assert [c["name"] for c in contributors] == ["Alice", "Bob"]
        assert [c["isLastMod"] for c in contributors] == [False, True]
        assert [c["isAuthor"] for c in contributors] == [True, False]

    def test_known_contributor_on_private_article_becomes_last_modifier(self, store, article):
        article_id = str(article["_id"])
        services.update_article(store, ArticleUpdate(
            id=article_id, contributor={"name": "Bob", "email": "bob@example.com"}))
        services.update_article(store, ArticleUpdate(id=article_id, allowPublic=False))

        updated = services.update_article(store, ArticleUpdate(
            id=article_id, contributor={"name": "Alice", "email": "A@example.com"}))
        contributors = updated["contributors"]
        assert [c["name"] for c in contributors] == ["Alice", "Bob"]
        assert [c["isLastMod"] for c in contributors] == [True, False]
        assert [c["isAuthor"] for c in contributors] == [True, False]

    def test_blank_tag_rejected(self, store, article_payload):
        with pytest.raises(ValidationFailure) as exc:
            services.create_article(store, ArticleCreate(**article_payload, tags=["   ", "halal"]))
        assert [v.field for v in exc.value.violations] == ["tags[0]"]
        assert store.find(ARTICLES, {}) == []

    def test_update_appends_sections(self, store, article):
        updated = services.update_article(store, ArticleUpdate(
            id=str(article["_id"]), details=[{"sectionName": "Getting There", "content": "Train."}]))
        assert updated["details"] == [{"sectionName": "Getting There", "content": "Train."}]
        assert updated["title"] == article["title"]

    def test_query_by_location_and_view(self, store, article, japan, singapore):
        listing = services.query_articles(store, ArticleFilter(countryId=str(japan["_id"])))
        assert [a["_id"] for a in listing] == [article["_id"]]
        assert "contributors" not in listing[0]

        full = services.query_articles(store, ArticleFilter(countryId=str(japan["_id"])), view="full")
        assert "contributors" in full[0]

        assert services.query_articles(store, ArticleFilter(countryId=str(singapore["_id"]))) == []

    def test_query_by_category(self, store, article, food):
        found = services.query_articles(store, ArticleFilter(catId=str(food["_id"])))
        assert len(found) == 1
        assert services.query_articles(store, ArticleFilter(catId=str(ObjectId()))) == []

    def test_sorted_by_title(self, store, article_payload):
        for title in ("Zen Gardens Walk", "Morning Markets"):
            services.create_article(store, ArticleCreate(**dict(article_payload, title=title)))
        found = services.query_articles(store, ArticleFilter(), ArticleSort(sortField="title", sortOrder="asc"))
        assert [a["title"] for a in found] == ["Morning Markets", "Zen Gardens Walk"]

    def test_comments(self, store, article):
        comment = services.add_comment(store, str(article["_id"]),
                                       CommentIn(name="Bob", email="bob@example.com", content="Lovely"))
        assert isinstance(comment["_id"], ObjectId)

        edited = services.update_comment(store, str(article["_id"]), str(comment["_id"]),
                                         CommentUpdate(content="Lovely place"))
        assert edited["content"] == "Lovely place"
        assert edited["_id"] == comment["_id"]

        remaining = services.remove_comment(store, str(article["_id"]), str(comment["_id"]))
        assert remaining["comments"] == []

    def test_invalid_comment(self, store, article):
        with pytest.raises(ValidationFailure):
            services.add_comment(store, str(article["_id"]), CommentIn(name="Bob"))

    def test_rating(self, store, article):
        assert services.rate_article(store, str(article["_id"]), 4) == {"avg": 4.0, "count": 1}
        assert services.rate_article(store, str(article["_id"]), 5) == {"avg": 4.5, "count": 2}
        assert store.get_article(article["_id"])["rating"] == {"avg": 4.5, "count": 2}
        with pytest.raises(ValidationFailure):
            services.rate_article(store, str(article["_id"]), 6)

    def test_delete(self, store, article):
        assert services.delete_article(store, str(article["_id"])) == 1
        assert store.find(ARTICLES, {}) == []

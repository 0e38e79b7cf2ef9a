"""Tests for criteria and projection construction."""

import pytest
from bson import ObjectId

from config import COUNTRIES
from criteria import (
    FULL, LISTING, build_article_query, build_article_sort, build_category_query,
    build_country_query, build_query,
)
from schemas import ArticleFilter, ArticleSort, CategoryFilter, CountryFilter

HEX_ID = "5f8d0d55b54764421b7156c9"
OTHER_ID = "5f8d0d55b54764421b7156ca"


class TestCountryQuery:
    def test_no_filters(self):
        criteria, projection = build_country_query(CountryFilter())
        assert criteria == {}
        assert projection == {"code": 1, "name": 1}

    def test_scalar_filters_are_substrings(self):
        criteria, _ = build_country_query(CountryFilter(code="j", name="pan"))
        assert criteria["code"] == {"$regex": "j", "$options": "i"}
        assert criteria["name"] == {"$regex": "pan", "$options": "i"}

    def test_exact_mode_anchors(self):
        criteria, _ = build_country_query(CountryFilter(code="JP"), exact=True)
        assert criteria["code"] == {"$regex": "^JP$", "$options": "i"}

    def test_city_by_name(self):
        criteria, projection = build_country_query(CountryFilter(city="Kyoto"))
        assert criteria["cities"] == {"$elemMatch": {"name": {"$regex": "Kyoto", "$options": "i"}}}
        assert "cities" not in projection

    def test_city_by_identity(self):
        criteria, _ = build_country_query(CountryFilter(city=HEX_ID))
        assert criteria["cities"] == {"$elemMatch": {"_id": ObjectId(HEX_ID)}}

    def test_include_children_without_lookup(self):
        _, projection = build_country_query(CountryFilter(), include_children=True)
        assert projection["cities"] == 1

    def test_include_children_narrowed_to_lookup(self):
        criteria, projection = build_country_query(CountryFilter(city=HEX_ID), include_children=True)
        assert projection["cities"] == criteria["cities"]

    def test_identity_filter(self):
        criteria, _ = build_country_query(CountryFilter(id=HEX_ID))
        assert criteria["_id"] == ObjectId(HEX_ID)

    def test_blank_values_ignored(self):
        criteria, _ = build_country_query(CountryFilter(code="  ", name=""))
        assert criteria == {}


class TestCategoryQuery:
    def test_subcat_text_matches_name_or_value(self):
        criteria, _ = build_category_query(CategoryFilter(subcat="halal"))
        text = {"$regex": "halal", "$options": "i"}
        assert criteria["subcats"] == {"$elemMatch": {"$or": [{"name": text}, {"value": text}]}}

    def test_subcat_identity(self):
        criteria, projection = build_category_query(CategoryFilter(subcat=HEX_ID), include_children=True)
        assert criteria["subcats"] == {"$elemMatch": {"_id": ObjectId(HEX_ID)}}
        assert projection["subcats"] == {"$elemMatch": {"_id": ObjectId(HEX_ID)}}

    def test_projection(self):
        _, projection = build_category_query(CategoryFilter(value="food"))
        assert projection == {"value": 1, "name": 1}


class TestArticleQuery:
    def test_free_text(self):
        criteria, _ = build_article_query(ArticleFilter(search="mosque"))
        assert criteria == {"$text": {"$search": "mosque"}}

    def test_location_identities(self):
        criteria, _ = build_article_query(ArticleFilter(countryId=HEX_ID, cityId=OTHER_ID))
        assert criteria["location.countryId"] == ObjectId(HEX_ID)
        assert criteria["location.cityId"] == ObjectId(OTHER_ID)

    def test_category_membership_on_same_entry(self):
        criteria, _ = build_article_query(ArticleFilter(catId=HEX_ID, subcatId=OTHER_ID))
        assert criteria["categories"] == {
            "$elemMatch": {"catId": ObjectId(HEX_ID), "subcatIds": ObjectId(OTHER_ID)}
        }

    def test_rating_defaults_fill_missing_bound(self):
        criteria, _ = build_article_query(ArticleFilter(ratingFrom="3"))
        assert criteria["rating.avg"] == {"$gte": 3.0, "$lte": 5}

    def test_non_numeric_rating_ignored(self):
        criteria, _ = build_article_query(ArticleFilter(ratingFrom="abc", ratingTo="high"))
        assert "rating.avg" not in criteria

    @pytest.mark.parametrize("bound", ["nan", "inf", "-inf"])
    def test_non_finite_rating_ignored(self, bound):
        criteria, _ = build_article_query(ArticleFilter(ratingFrom=bound, ratingTo=bound))
        assert "rating.avg" not in criteria

    def test_listing_projection(self):
        _, projection = build_article_query(ArticleFilter(), LISTING)
        assert projection["title"] == 1
        assert "comments" not in projection
        assert "contributors" not in projection

    def test_full_view_has_no_projection(self):
        _, projection = build_article_query(ArticleFilter(), FULL)
        assert projection is None


class TestArticleSort:
    def test_default(self):
        assert build_article_sort() == [("createdDate", -1), ("title", 1)]

    def test_title_breaks_ties_with_id(self):
        sort = build_article_sort(ArticleSort(sortField="title", sortOrder="asc"))
        assert sort == [("title", 1), ("_id", 1)]

    def test_rating_alias(self):
        sort = build_article_sort(ArticleSort(sortField="rating", sortOrder="desc"))
        assert sort == [("rating.avg", -1), ("title", 1)]

    def test_unknown_field_falls_back(self):
        sort = build_article_sort(ArticleSort(sortField="password"))
        assert sort[0] == ("createdDate", -1)


class TestBuildQuery:
    def test_dispatch(self):
        assert build_query(COUNTRIES, CountryFilter(code="jp")) == build_country_query(CountryFilter(code="jp"))

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            build_query("users", CountryFilter())

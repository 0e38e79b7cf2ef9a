"""
Entity validators

Each validator runs every applicable rule and returns the violations in a
fixed order (fields in declaration order, children in input order). A
field reports at most one violation. Existence and uniqueness checks read
back through the Store; nothing is written here.
"""
from typing import Dict, Iterable, List, Optional, Tuple, Union

from bson import ObjectId

from filters import is_object_id
from schemas import (
    ArticleCreate, ArticleUpdate, CategoryCreate, CategoryFilter, CategoryRefIn,
    CategoryUpdate, CityIn, CityUpdate, CommentIn, CommentUpdate, ContributorIn,
    CountryCreate, CountryFilter, CountryUpdate, LocationIn, SectionIn,
    SubcategoryIn, SubcategoryUpdate, Violation,
)
from validators import (
    display_name, email, first_violation, length_bounds, numeric_range,
    required, tag, token, url,
)

TITLE_MIN, TITLE_MAX = 10, 100
DESCRIPTION_MIN, DESCRIPTION_MAX = 10, 200
PERSON_NAME_MIN, PERSON_NAME_MAX = 3, 80
SECTION_NAME_MIN, SECTION_NAME_MAX = 5, 100
ADDRESS_MIN = 5
LAT_RANGE = (-90, 90)
LNG_RANGE = (-180, 180)
RATING_RANGE = (1, 5)


def _add(violations: List[Violation], *results: Optional[Violation]):
    for result in results:
        if result is not None:
            violations.append(result)


def _strip(value: Optional[str]) -> Optional[str]:
    return value.strip() if isinstance(value, str) else value


def resolve_identity(getter, field: str, value, label: str) -> Tuple[Optional[Violation], Optional[dict]]:
    """Look up a document by identity; malformed ids never reach the store."""
    missing = required(field, value, label)
    if missing:
        return missing, None
    if not is_object_id(value):
        return Violation(field=field, value=value, message="Invalid ID format"), None
    document = getter(ObjectId(value))
    if document is None:
        return Violation(field=field, value=value,
                         message=f"{label} does not exist, please do create instead"), None
    return None, document


def _child_id_violation(field: str, child_id, known_ids, label: str, parent: str) -> Optional[Violation]:
    if child_id is None or known_ids is None:
        return None
    if not is_object_id(child_id):
        return Violation(field=field, value=child_id, message="Invalid ID format")
    if ObjectId(child_id) not in known_ids:
        return Violation(field=field, value=child_id, message=f"{label} does not exist in {parent}")
    return None


# -------------------------
# Countries and cities
# -------------------------

def _country_code(store, code: Optional[str], exclude_id: Optional[ObjectId] = None) -> Optional[Violation]:
    missing = required("code", code, "Country Code")
    if missing:
        return missing
    if len(code) != 2 or not code.isascii() or not code.isalpha():
        return Violation(field="code", value=code, message="Country Code must use ISO 3166-1 alpha-2")
    others = [c for c in store.find_countries(CountryFilter(code=code), exact=True) if c["_id"] != exclude_id]
    if others:
        return Violation(field="code", value=code,
                         message=f"Country Code already exists (id {others[0]['_id']}), please do update instead")
    return None


def validate_city(city: CityIn, index: int, siblings: List[dict], seen: set,
                  known_ids=None, field: str = "cities", parent: str = "Country") -> List[Violation]:
    """One city of a submitted batch.

    `siblings` are the cities already stored in the parent; `seen` collects
    the names earlier in the same batch. `known_ids` is None on create, when
    submitted ids are ignored.
    """
    prefix = f"{field}[{index}]"
    violations = []
    id_violation = _child_id_violation(f"{prefix}.id", city.id, known_ids, "City", parent)
    _add(violations, id_violation)

    name = _strip(city.name)
    name_violation = first_violation(
        required(f"{prefix}.name", name, "City Name"),
        display_name(f"{prefix}.name", name, "City Name"),
    )
    resubmitted = known_ids is not None and city.id is not None and id_violation is None
    if name_violation is None and not resubmitted:
        key = name.casefold()
        if any(str(s.get("name", "")).strip().casefold() == key for s in siblings):
            name_violation = Violation(field=f"{prefix}.name", value=name,
                                       message=f"City Name already exists in {parent}")
        elif key in seen:
            name_violation = Violation(field=f"{prefix}.name", value=name,
                                       message="City Name is duplicated in request")
        seen.add(key)
    _add(violations, name_violation)

    _add(violations,
         numeric_range(f"{prefix}.lat", city.lat, "Latitude", *LAT_RANGE),
         numeric_range(f"{prefix}.lng", city.lng, "Longitude", *LNG_RANGE))
    return violations


def validate_cities(store, cities: Iterable[CityIn], parent_code: Optional[str] = None,
                    parent: Optional[dict] = None) -> List[Violation]:
    """Cities of one country.

    On update `parent` is the stored country and submitted ids must belong to
    it. On create the names are scoped to whichever country already holds
    `parent_code`, and submitted ids are ignored.
    """
    known_ids = None
    if parent is not None:
        known_ids = {c["_id"] for c in parent.get("cities", [])}
    elif parent_code:
        found = store.find_countries(CountryFilter(code=parent_code), include_children=True, exact=True)
        parent = found[0] if found else None

    siblings = parent.get("cities", []) if parent else []
    label = f"Country {parent['code']}" if parent else "Country"

    violations = []
    seen = set()
    for index, city in enumerate(cities):
        violations.extend(validate_city(city, index, siblings, seen, known_ids, parent=label))
    return violations


def validate_country(store, payload: Union[CountryCreate, CountryUpdate], is_create: bool = True) -> List[Violation]:
    violations = []
    code = _strip(payload.code)
    name = _strip(payload.name)

    existing = None
    if is_create:
        _add(violations, _country_code(store, code))
    else:
        missing, existing = resolve_identity(store.get_country, "id", payload.id, "Country")
        _add(violations, missing)
        if code is not None and existing is not None:
            _add(violations, _country_code(store, code, existing["_id"]))

    if is_create:
        _add(violations, first_violation(required("name", name, "Country Name"),
                                          display_name("name", name, "Country Name")))
    else:
        _add(violations, display_name("name", name, "Country Name"))

    if is_create and not payload.cities:
        violations.append(Violation(field="cities", message="Country needs to have at least one city"))
    if payload.cities:
        if is_create:
            violations.extend(validate_cities(store, payload.cities, parent_code=code))
        elif existing is not None:
            violations.extend(validate_cities(store, payload.cities, parent=existing))
        else:
            violations.extend(validate_cities(store, payload.cities))
    return violations


def validate_city_change(country: dict, city_id: ObjectId, changes: CityUpdate) -> List[Violation]:
    violations = []
    supplied = changes.model_fields_set
    if "name" in supplied:
        name = _strip(changes.name)
        name_violation = first_violation(required("name", name, "City Name"),
                                         display_name("name", name, "City Name"))
        if name_violation is None:
            key = name.casefold()
            for city in country.get("cities", []):
                if city["_id"] != city_id and str(city.get("name", "")).strip().casefold() == key:
                    name_violation = Violation(field="name", value=name,
                                               message=f"City Name already exists in Country {country['code']}")
                    break
        _add(violations, name_violation)
    _add(violations,
         numeric_range("lat", changes.lat, "Latitude", *LAT_RANGE),
         numeric_range("lng", changes.lng, "Longitude", *LNG_RANGE))
    return violations


# -------------------------
# Categories and sub-categories
# -------------------------

def _category_value(store, value: Optional[str], exclude_id: Optional[ObjectId] = None) -> Optional[Violation]:
    invalid = first_violation(required("value", value, "Category Value"),
                              token("value", value, "Category Value"))
    if invalid:
        return invalid
    others = [c for c in store.find_categories(CategoryFilter(value=value), exact=True) if c["_id"] != exclude_id]
    if others:
        return Violation(field="value", value=value,
                         message=f"Category Value already exists (id {others[0]['_id']}), please do update instead")
    return None


def validate_subcategory(subcat: SubcategoryIn, index: int, siblings: List[dict], seen: set,
                         known_ids=None, parent: str = "Category") -> List[Violation]:
    prefix = f"subcats[{index}]"
    violations = []
    id_violation = _child_id_violation(f"{prefix}.id", subcat.id, known_ids, "Sub-category", parent)
    _add(violations, id_violation)

    value = _strip(subcat.value)
    value_violation = first_violation(
        required(f"{prefix}.value", value, "Sub-category Value"),
        token(f"{prefix}.value", value, "Sub-category Value"),
    )
    resubmitted = known_ids is not None and subcat.id is not None and id_violation is None
    if value_violation is None and not resubmitted:
        key = value.casefold()
        if any(str(s.get("value", "")).strip().casefold() == key for s in siblings):
            value_violation = Violation(field=f"{prefix}.value", value=value,
                                        message=f"Sub-category Value already exists in {parent}")
        elif key in seen:
            value_violation = Violation(field=f"{prefix}.value", value=value,
                                        message="Sub-category Value is duplicated in request")
        seen.add(key)
    _add(violations, value_violation)

    name = _strip(subcat.name)
    _add(violations, first_violation(required(f"{prefix}.name", name, "Sub-category Name"),
                                     display_name(f"{prefix}.name", name, "Sub-category Name")))
    return violations


def validate_subcategories(store, subcats: Iterable[SubcategoryIn], parent_value: Optional[str] = None,
                           parent: Optional[dict] = None) -> List[Violation]:
    known_ids = None
    if parent is not None:
        known_ids = {s["_id"] for s in parent.get("subcats", [])}
    elif parent_value:
        found = store.find_categories(CategoryFilter(value=parent_value), include_children=True, exact=True)
        parent = found[0] if found else None

    siblings = parent.get("subcats", []) if parent else []
    label = f"Category {parent['value']}" if parent else "Category"

    violations = []
    seen = set()
    for index, subcat in enumerate(subcats):
        violations.extend(validate_subcategory(subcat, index, siblings, seen, known_ids, parent=label))
    return violations


def validate_category(store, payload: Union[CategoryCreate, CategoryUpdate], is_create: bool = True) -> List[Violation]:
    violations = []
    value = _strip(payload.value)
    name = _strip(payload.name)

    existing = None
    if is_create:
        _add(violations, _category_value(store, value))
    else:
        missing, existing = resolve_identity(store.get_category, "id", payload.id, "Category")
        _add(violations, missing)
        if value is not None and existing is not None:
            _add(violations, _category_value(store, value, existing["_id"]))

    if is_create:
        _add(violations, first_violation(required("name", name, "Category Name"),
                                         display_name("name", name, "Category Name")))
    else:
        _add(violations, display_name("name", name, "Category Name"))

    if payload.subcats:
        if is_create:
            violations.extend(validate_subcategories(store, payload.subcats, parent_value=value))
        elif existing is not None:
            violations.extend(validate_subcategories(store, payload.subcats, parent=existing))
        else:
            violations.extend(validate_subcategories(store, payload.subcats))
    return violations


def validate_subcategory_change(category: dict, subcat_id: ObjectId,
                                changes: SubcategoryUpdate) -> List[Violation]:
    violations = []
    supplied = changes.model_fields_set
    if "value" in supplied:
        value = _strip(changes.value)
        value_violation = first_violation(required("value", value, "Sub-category Value"),
                                          token("value", value, "Sub-category Value"))
        if value_violation is None:
            key = value.casefold()
            for subcat in category.get("subcats", []):
                if subcat["_id"] != subcat_id and str(subcat.get("value", "")).strip().casefold() == key:
                    value_violation = Violation(
                        field="value", value=value,
                        message=f"Sub-category Value already exists in Category {category['value']}")
                    break
        _add(violations, value_violation)
    if "name" in supplied:
        name = _strip(changes.name)
        _add(violations, first_violation(required("name", name, "Sub-category Name"),
                                         display_name("name", name, "Sub-category Name")))
    return violations


# -------------------------
# Articles
# -------------------------

def validate_contributor(contributor: Optional[ContributorIn], existing: Optional[List[dict]] = None,
                         allow_public: bool = False, field: str = "contributor") -> List[Violation]:
    """`existing` is None on create; on update it holds the article's contributors."""
    missing = required(field, contributor, "Contributor")
    if missing:
        return [missing]

    violations = []
    name = _strip(contributor.name)
    _add(violations, first_violation(
        required(f"{field}.name", name, "Contributor Name"),
        length_bounds(f"{field}.name", name, "Contributor Name", PERSON_NAME_MIN, PERSON_NAME_MAX),
        display_name(f"{field}.name", name, "Contributor Name"),
    ))

    address = _strip(contributor.email)
    email_violation = first_violation(
        required(f"{field}.email", address, "Contributor Email"),
        email(f"{field}.email", address, "Contributor Email"),
    )
    if email_violation is None and existing is not None:
        emails = {str(c.get("email", "")).casefold() for c in existing}
        if allow_public and address.casefold() in emails:
            email_violation = Violation(field=f"{field}.email", value=address,
                                        message="Contributor Email already exists in Article")
        elif not allow_public and address.casefold() not in emails:
            email_violation = Violation(field=f"{field}.email", value=address,
                                        message="Article does not allow public contribution")
    _add(violations, email_violation)

    shown = _strip(contributor.displayName)
    _add(violations, first_violation(
        length_bounds(f"{field}.displayName", shown, "Display Name", PERSON_NAME_MIN, PERSON_NAME_MAX),
        display_name(f"{field}.displayName", shown, "Display Name"),
    ))
    return violations


def validate_location(store, location: Optional[LocationIn]) -> List[Violation]:
    missing = required("location", location, "Location")
    if missing:
        return [missing]

    violations = []
    country_violation, country = resolve_identity(
        store.get_country, "location.countryId", location.countryId, "Country")
    _add(violations, country_violation)

    city_id = location.cityId
    city_violation = required("location.cityId", city_id, "City")
    if city_violation is None and not is_object_id(city_id):
        city_violation = Violation(field="location.cityId", value=city_id, message="Invalid ID format")
    if city_violation is None and country is not None:
        if not any(c["_id"] == ObjectId(city_id) for c in country.get("cities", [])):
            city_violation = Violation(field="location.cityId", value=city_id,
                                       message=f"City does not exist in Country {country['code']}")
    _add(violations, city_violation)

    address = _strip(location.address)
    _add(violations, first_violation(
        required("location.address", address, "Address"),
        length_bounds("location.address", address, "Address", ADDRESS_MIN),
    ))
    return violations


def validate_category_refs(store, refs: Optional[List[CategoryRefIn]]) -> List[Violation]:
    if not refs:
        return [Violation(field="categories", message="Article needs to have at least one category")]

    violations = []
    categories: Dict[str, Optional[dict]] = {}
    for index, ref in enumerate(refs):
        prefix = f"categories[{index}]"
        if ref.catId in categories:
            category = categories[ref.catId]
        else:
            problem, category = resolve_identity(store.get_category, f"{prefix}.catId", ref.catId, "Category")
            _add(violations, problem)
            if ref.catId is not None:
                categories[ref.catId] = category

        for position, subcat_id in enumerate(ref.subcatIds):
            field = f"{prefix}.subcatIds[{position}]"
            if not is_object_id(subcat_id):
                violations.append(Violation(field=field, value=subcat_id, message="Invalid ID format"))
            elif category is not None and not any(
                    s["_id"] == ObjectId(subcat_id) for s in category.get("subcats", [])):
                violations.append(Violation(field=field, value=subcat_id,
                                            message=f"Sub-category does not exist in Category {category['value']}"))
    return violations


def validate_section(section: SectionIn, index: int) -> List[Violation]:
    prefix = f"details[{index}]"
    violations = []
    name = _strip(section.sectionName)
    _add(violations, first_violation(
        required(f"{prefix}.sectionName", name, "Section Name"),
        length_bounds(f"{prefix}.sectionName", name, "Section Name", SECTION_NAME_MIN, SECTION_NAME_MAX),
        display_name(f"{prefix}.sectionName", name, "Section Name"),
    ))
    _add(violations, required(f"{prefix}.content", section.content, "Section Content"))
    return violations


def validate_article(store, payload: Union[ArticleCreate, ArticleUpdate], is_create: bool = True) -> List[Violation]:
    """Full rule set on create; on update only the supplied fields are checked."""
    violations = []
    existing = None
    if not is_create:
        missing, existing = resolve_identity(store.get_article, "id", payload.id, "Article")
        _add(violations, missing)

    def supplied(name):
        return is_create or name in payload.model_fields_set

    if supplied("title"):
        title = _strip(payload.title)
        _add(violations, first_violation(
            required("title", title, "Title"),
            length_bounds("title", title, "Title", TITLE_MIN, TITLE_MAX),
            display_name("title", title, "Title"),
        ))

    if supplied("description"):
        description = _strip(payload.description)
        _add(violations, first_violation(
            required("description", description, "Description"),
            length_bounds("description", description, "Description", DESCRIPTION_MIN, DESCRIPTION_MAX),
        ))

    for index, photo in enumerate(payload.photos or []):
        _add(violations, url(f"photos[{index}]", photo, "Photo"))

    for index, value in enumerate(payload.tags or []):
        _add(violations, tag(f"tags[{index}]", value, "Tag"))

    if is_create:
        violations.extend(validate_contributor(payload.contributor))
    elif payload.contributor is not None and existing is not None:
        violations.extend(validate_contributor(payload.contributor, existing.get("contributors", []),
                                               bool(existing.get("allowPublic", False))))

    if supplied("location"):
        violations.extend(validate_location(store, payload.location))

    if supplied("categories"):
        violations.extend(validate_category_refs(store, payload.categories))

    for index, section in enumerate(payload.details or []):
        violations.extend(validate_section(section, index))

    return violations


# -------------------------
# Comments and ratings
# -------------------------

def validate_comment(comment: CommentIn) -> List[Violation]:
    violations = []
    name = _strip(comment.name)
    _add(violations, first_violation(
        required("name", name, "Name"),
        length_bounds("name", name, "Name", PERSON_NAME_MIN, PERSON_NAME_MAX),
        display_name("name", name, "Name"),
    ))
    address = _strip(comment.email)
    _add(violations, first_violation(required("email", address, "Email"), email("email", address, "Email")))
    _add(violations, required("content", comment.content, "Comment"))
    return violations


def validate_comment_change(changes: CommentUpdate) -> List[Violation]:
    problem = required("content", changes.content, "Comment")
    return [problem] if problem else []


def validate_rating(value) -> List[Violation]:
    problem = first_violation(required("value", value, "Rating"),
                              numeric_range("value", value, "Rating", *RATING_RANGE))
    return [problem] if problem else []

"""
Embedded collection merge

Builds the documents and update fragments for array-valued children
(cities, subcats, comments, details). A child gets its `_id` once, the
first time it is stored; bulk updates only ever append.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel

BULK = "bulk"
SINGLE_SET = "single-set"
SINGLE_PULL = "single-pull"
MODES = (BULK, SINGLE_SET, SINGLE_PULL)


@dataclass
class EmbeddedUpdate:
    """Store update for one parent document.

    `children` is the merged array for bulk merges and None otherwise.
    `update` is empty when there is nothing to write.
    """
    criteria: Dict[str, Any]
    update: Dict[str, Any]
    children: Optional[List[Dict[str, Any]]] = None


def new_identity() -> ObjectId:
    return ObjectId()


def to_child_document(child: Union[BaseModel, dict]) -> Dict[str, Any]:
    """Request child -> stored child; `id` becomes `_id`, unset fields are dropped."""
    if isinstance(child, BaseModel):
        data = child.model_dump(exclude_none=True)
    else:
        data = {k: v for k, v in child.items() if v is not None}
    child_id = data.pop("id", None)
    if child_id is not None:
        data["_id"] = child_id if isinstance(child_id, ObjectId) else ObjectId(child_id)
    return data


def assign_identities(children: List[Union[BaseModel, dict]]) -> List[Dict[str, Any]]:
    """Create path: every child gets a fresh identity."""
    documents = []
    for child in children:
        if isinstance(child, BaseModel):
            child = child.model_dump(exclude_none=True)
        document = {k: v for k, v in child.items() if k not in ("id", "_id") and v is not None}
        document["_id"] = new_identity()
        documents.append(document)
    return documents


def append_children(existing: List[Dict[str, Any]],
                    submitted: List[Union[BaseModel, dict]]) -> List[Dict[str, Any]]:
    """New children to append after `existing`.

    Submitted children already present (same `_id`) are skipped; children
    without an identity get one.
    """
    known = {child.get("_id") for child in existing}
    appended = []
    for child in submitted:
        document = to_child_document(child)
        if "_id" not in document:
            document["_id"] = new_identity()
        elif document["_id"] in known:
            continue
        known.add(document["_id"])
        appended.append(document)
    return appended


def set_child_fields(field: str, changes: Union[BaseModel, dict]) -> Dict[str, Any]:
    """$set fragment touching only the supplied fields of the matched child."""
    if isinstance(changes, BaseModel):
        changes = changes.model_dump(exclude_unset=True)
    return {"$set": {f"{field}.$.{key}": value for key, value in changes.items() if key not in ("id", "_id")}}


def pull_child(field: str, child_id: ObjectId) -> Dict[str, Any]:
    return {"$pull": {field: {"_id": child_id}}}


def merge_embedded(parent_id: ObjectId, field: str, existing: List[Dict[str, Any]],
                   submitted, mode: str = BULK, child_id: Optional[ObjectId] = None) -> EmbeddedUpdate:
    """Update for the `field` array of parent `parent_id`.

    bulk:        `submitted` is a list of children appended after `existing`.
    single-set:  `submitted` holds the fields to set on child `child_id`.
    single-pull: child `child_id` is removed; `submitted` is ignored.
    """
    if mode == BULK:
        appended = append_children(existing, submitted or [])
        update = {"$push": {field: {"$each": appended}}} if appended else {}
        return EmbeddedUpdate({"_id": parent_id}, update, list(existing) + appended)

    if child_id is None:
        raise ValueError(f"{mode} merge needs a child identity")

    if mode == SINGLE_SET:
        update = set_child_fields(field, submitted)
        if not update["$set"]:
            update = {}
        return EmbeddedUpdate({"_id": parent_id, f"{field}._id": child_id}, update)

    if mode == SINGLE_PULL:
        return EmbeddedUpdate({"_id": parent_id}, pull_child(field, child_id))

    raise ValueError(f"Unknown merge mode: {mode}")

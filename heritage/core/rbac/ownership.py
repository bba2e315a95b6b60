"""Ownership resolution for museum-scoped access.

An actor's scope is anchored by museum affiliation:

- super_admin: every resource on the platform
- museum_admin / museum_staff: resources linked to their own museum
- visitor: only rental requests they filed themselves

Resolution fails closed: a resource (or actor) without a museum link is
simply out of scope, never an error.
"""

from typing import Any, Optional

from sqlalchemy import false

from .roles import Role


def museum_id_of(resource: Any) -> Optional[Any]:
    """Return the museum a resource is anchored to, or None.

    Museums anchor to themselves; artifacts, rentals and actors carry a
    direct ``museum_id`` field.
    """
    if resource is None:
        return None
    if getattr(resource, "resource_type", None) == "museum":
        return getattr(resource, "id", None)
    return getattr(resource, "museum_id", None)


def owner_id_of(resource: Any) -> Optional[Any]:
    """Return the id of the actor who authored a visitor-owned resource."""
    if getattr(resource, "resource_type", None) == "rental":
        return getattr(resource, "renter_id", None)
    return None


def in_scope(actor: Any, resource: Any) -> bool:
    """Check whether a resource falls inside an actor's scope."""
    if actor is None or resource is None:
        return False

    try:
        role = Role(actor.role)
    except ValueError:
        return False

    if role == Role.SUPER_ADMIN:
        return True

    if role in (Role.MUSEUM_ADMIN, Role.MUSEUM_STAFF):
        actor_museum = getattr(actor, "museum_id", None)
        resource_museum = museum_id_of(resource)
        if actor_museum is None or resource_museum is None:
            return False
        return actor_museum == resource_museum

    # Visitors never administer artifacts or museums
    owner = owner_id_of(resource)
    return owner is not None and owner == actor.id


def scope_query(query, actor: Any, model):
    """Narrow a SQLAlchemy query to the rows an actor may see.

    Args:
        query: Query over ``model``
        actor: Acting user
        model: Mapped class with a ``resource_type`` attribute

    Returns:
        The filtered query. Actors with no scope get a query that matches
        nothing.
    """
    if actor is None:
        return query.filter(false())

    try:
        role = Role(actor.role)
    except ValueError:
        return query.filter(false())

    if role == Role.SUPER_ADMIN:
        return query

    if role in (Role.MUSEUM_ADMIN, Role.MUSEUM_STAFF):
        if actor.museum_id is None:
            return query.filter(false())
        column = model.id if model.resource_type == "museum" else model.museum_id
        return query.filter(column == actor.museum_id)

    if model.resource_type == "rental":
        return query.filter(model.renter_id == actor.id)

    return query.filter(false())

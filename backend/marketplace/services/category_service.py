# Overview: Service-layer operations for the category tree; encapsulates business logic and database work.

"""
Category Service

Categories form a tree of at most MAX_CATEGORY_LEVEL + 1 levels (root = 0).
Each child holds `parent_id`; each parent holds ordered CategoryChild links.
Both sides, plus slug and level, are written in one transaction.

Stored data is never silently repaired: cycles and dangling links raise
IntegrityError and are logged.
"""

from __future__ import annotations

import re
from collections import deque

from flask import current_app
from sqlalchemy import update

from ..errors import ConflictError, IntegrityError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, CategoryAttribute, CategoryChild
from ..models.catalog import CATEGORY_ATTRIBUTE_TYPES
from ..ports import ProductCatalog, get_catalog, get_clock
from .concurrency import check_version, run_in_transaction

MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
DEFAULT_ICON = "fas fa-tag"

_SLUG_SEPARATOR = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """Lowercase, runs of non-alphanumerics -> '-', trim leading/trailing '-'."""
    return _SLUG_SEPARATOR.sub("-", value.lower()).strip("-")


def _max_level() -> int:
    return int(current_app.config.get("MAX_CATEGORY_LEVEL", 3))


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError(f"Category {category_id} not found", entity="category", id=category_id)
    return category


def _clean_name(name: str | None, *, exclude_id: int | None = None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Category name is required", entity="category", field="name")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValidationError(
            f"Category name exceeds max length {MAX_NAME_LENGTH}",
            entity="category",
            field="name",
            expected=f"<= {MAX_NAME_LENGTH} chars",
        )
    query = db.session.query(Category.id).filter(db.func.lower(Category.name) == cleaned.lower())
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first() is not None:
        raise ValidationError(f"Category name '{cleaned}' already exists", entity="category", field="name")
    return cleaned


def _clean_slug(raw: str, *, exclude_id: int | None = None) -> str:
    slug = slugify(raw)
    if not slug:
        raise ValidationError("Category slug must contain letters or digits", entity="category", field="slug")
    query = db.session.query(Category.id).filter(Category.slug == slug)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first() is not None:
        raise ValidationError(f"Category slug '{slug}' already exists", entity="category", field="slug")
    return slug


def _clean_description(description: str | None) -> str | None:
    if description is None:
        return None
    description = description.strip()
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Category description exceeds max length {MAX_DESCRIPTION_LENGTH}",
            entity="category",
            field="description",
            expected=f"<= {MAX_DESCRIPTION_LENGTH} chars",
        )
    return description or None


def _build_attributes(attributes: list[dict] | None) -> list[CategoryAttribute]:
    rows: list[CategoryAttribute] = []
    for position, attr in enumerate(attributes or []):
        if not isinstance(attr, dict):
            raise ValidationError(f"attributes[{position}] must be an object", field=f"attributes[{position}]")
        name = str(attr.get("name") or "").strip()
        if not name:
            raise ValidationError(f"attributes[{position}].name is required", field=f"attributes[{position}].name")
        attr_type = attr.get("type")
        if attr_type not in CATEGORY_ATTRIBUTE_TYPES:
            raise ValidationError(
                f"attributes[{position}].type must be one of: {', '.join(CATEGORY_ATTRIBUTE_TYPES)}",
                field=f"attributes[{position}].type",
                expected=list(CATEGORY_ATTRIBUTE_TYPES),
            )
        options = attr.get("options") or []
        if attr_type in ("select", "multiselect") and not options:
            raise ValidationError(
                f"attributes[{position}].options are required for {attr_type}",
                field=f"attributes[{position}].options",
            )
        rows.append(
            CategoryAttribute(
                position=position,
                name=name,
                attr_type=attr_type,
                options_json=[str(o) for o in options],
                required=bool(attr.get("required", False)),
                filterable=bool(attr.get("filterable", True)),
            )
        )
    return rows


def _apply_seo(category: Category, seo: dict | None) -> None:
    if not seo:
        return
    meta_title = seo.get("meta_title")
    meta_description = seo.get("meta_description")
    if meta_title and len(meta_title) > 60:
        raise ValidationError("meta_title exceeds max length 60", field="seo.meta_title")
    if meta_description and len(meta_description) > 160:
        raise ValidationError("meta_description exceeds max length 160", field="seo.meta_description")
    category.meta_title = meta_title
    category.meta_description = meta_description
    category.meta_keywords_json = [str(k).strip() for k in (seo.get("keywords") or []) if str(k).strip()]


def _require_depth(parent: Category | None, *, subtree_depth: int = 0) -> int:
    """Level for a node placed under `parent`; rejects trees deeper than the max level."""
    level = 0 if parent is None else parent.level + 1
    max_level = _max_level()
    if level + subtree_depth > max_level:
        raise ValidationError(
            f"Category level cannot exceed {max_level}",
            entity="category",
            field="level",
            id=parent.id if parent is not None else None,
            expected=f"0-{max_level}",
        )
    return level


def _touch(category: Category, now) -> None:
    """
    Bump the row version of a parent whose children links changed.

    Links live in their own table, so the parent row is claimed explicitly;
    a writer holding the old version then fails with ConflictError.
    """
    result = db.session.execute(
        update(Category)
        .where(Category.id == category.id, Category.version_id == category.version_id)
        .values(version_id=Category.version_id + 1, updated_at=now)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        raise ConflictError(
            f"Category {category.id} was modified concurrently",
            entity="category",
            id=category.id,
        )


def _link_child(parent: Category, child: Category, now) -> None:
    parent.child_links.append(
        CategoryChild(child_id=child.id, position=len(parent.child_links))
    )
    _touch(parent, now)


def _unlink_child(parent: Category, child_id: int, now) -> None:
    parent.child_links[:] = [link for link in parent.child_links if link.child_id != child_id]
    for position, link in enumerate(parent.child_links):
        link.position = position
    _touch(parent, now)


def create_category(
    name: str,
    parent_id: int | None = None,
    description: str | None = None,
    icon: str | None = None,
    *,
    slug: str | None = None,
    is_active: bool = True,
    is_featured: bool = False,
    sort_order: int = 0,
    attributes: list[dict] | None = None,
    seo: dict | None = None,
) -> Category:
    """
    Create a category, optionally under a parent.

    Slug, level and the parent's children registration commit together;
    a failure leaves neither the child nor the link behind.
    """
    def _op() -> Category:
        cleaned_name = _clean_name(name)
        cleaned_slug = _clean_slug(slug or cleaned_name)
        cleaned_description = _clean_description(description)
        attribute_rows = _build_attributes(attributes)

        parent = None
        if parent_id is not None:
            parent = db.session.get(Category, parent_id)
            if parent is None:
                raise NotFoundError(
                    f"Parent category {parent_id} not found",
                    entity="category",
                    id=parent_id,
                    field="parent_id",
                )
        level = _require_depth(parent)

        now = get_clock().now()
        category = Category(
            name=cleaned_name,
            slug=cleaned_slug,
            description=cleaned_description,
            icon=(icon or DEFAULT_ICON).strip(),
            parent_id=parent.id if parent is not None else None,
            level=level,
            is_active=is_active,
            is_featured=is_featured,
            sort_order=sort_order,
            product_count=0,
            created_at=now,
            updated_at=now,
        )
        category.attributes = attribute_rows
        _apply_seo(category, seo)
        db.session.add(category)
        db.session.flush()

        if parent is not None:
            _link_child(parent, category, now)

        current_app.logger.info("Created category %s (%s) at level %s", category.id, category.slug, level)
        return category

    return run_in_transaction(_op, entity_name="category", entity_id=parent_id)


def update_category(
    category_id: int,
    *,
    name: str | None = None,
    slug: str | None = None,
    description: str | None = None,
    icon: str | None = None,
    is_active: bool | None = None,
    is_featured: bool | None = None,
    sort_order: int | None = None,
    attributes: list[dict] | None = None,
    seo: dict | None = None,
    expected_version: int | None = None,
) -> Category:
    """Update category fields; a rename recomputes the slug unless one is given."""
    def _op() -> Category:
        category = get_category(category_id)
        check_version(category, expected_version, entity_name="category")

        if name is not None:
            category.name = _clean_name(name, exclude_id=category.id)
            if slug is None:
                category.slug = _clean_slug(category.name, exclude_id=category.id)
        if slug is not None:
            category.slug = _clean_slug(slug, exclude_id=category.id)
        if description is not None:
            category.description = _clean_description(description)
        if icon is not None:
            category.icon = icon.strip() or DEFAULT_ICON
        if is_active is not None:
            category.is_active = is_active
        if is_featured is not None:
            category.is_featured = is_featured
        if sort_order is not None:
            category.sort_order = sort_order
        if attributes is not None:
            category.attributes = _build_attributes(attributes)
        _apply_seo(category, seo)

        category.updated_at = get_clock().now()
        return category

    return run_in_transaction(_op, entity_name="category", entity_id=category_id)


def _descendants_with_depth(category: Category) -> list[tuple[Category, int]]:
    """
    Breadth-first walk of the children links.

    Returns (node, depth relative to `category`) pairs. Revisiting a node
    (cycle or duplicate link) or following a link to a missing category
    raises IntegrityError.
    """
    result: list[tuple[Category, int]] = []
    visited = {category.id}
    queue = deque((child_id, 1, category.id) for child_id in category.children_ids)

    while queue:
        child_id, depth, via = queue.popleft()
        if child_id in visited:
            current_app.logger.error(
                "Category graph revisits %s via %s (cycle or duplicate link)", child_id, via
            )
            raise IntegrityError(
                f"Category {child_id} reached twice below category {category.id}",
                entity="category",
                id=child_id,
                parent_id=via,
            )
        node = db.session.get(Category, child_id)
        if node is None:
            current_app.logger.error("Category %s links to missing child %s", via, child_id)
            raise IntegrityError(
                f"Category {via} links to missing child {child_id}",
                entity="category",
                id=child_id,
                parent_id=via,
            )
        visited.add(child_id)
        result.append((node, depth))
        queue.extend((grandchild_id, depth + 1, node.id) for grandchild_id in node.children_ids)

    return result


def get_descendants(category_id: int) -> list[Category]:
    """All categories below `category_id`, breadth-first."""
    category = get_category(category_id)
    return [node for node, _ in _descendants_with_depth(category)]


def get_hierarchy(category_id: int, *, strict: bool = False) -> list[Category]:
    """
    Chain of categories from the root down to `category_id`.

    A parent id pointing at a missing row ends the walk early (the chain
    is returned from the last reachable ancestor) and is logged; with
    strict=True it raises IntegrityError instead. A parent cycle always
    raises IntegrityError.
    """
    category = get_category(category_id)
    chain = [category]
    seen = {category.id}
    current = category

    while current.parent_id is not None:
        if current.parent_id in seen:
            current_app.logger.error("Category parent cycle at %s -> %s", current.id, current.parent_id)
            raise IntegrityError(
                f"Category parent cycle detected at {current.id}",
                entity="category",
                id=current.id,
                parent_id=current.parent_id,
            )
        parent = db.session.get(Category, current.parent_id)
        if parent is None:
            current_app.logger.warning(
                "Category %s references missing parent %s; hierarchy truncated", current.id, current.parent_id
            )
            if strict:
                raise IntegrityError(
                    f"Category {current.id} references missing parent {current.parent_id}",
                    entity="category",
                    id=current.id,
                    parent_id=current.parent_id,
                )
            break
        chain.append(parent)
        seen.add(parent.id)
        current = parent

    chain.reverse()
    return chain


def update_product_count(category_id: int, *, catalog: ProductCatalog | None = None) -> int:
    """Set product_count to the active products in the category and all descendants."""
    catalog = catalog or get_catalog()

    def _op() -> int:
        category = get_category(category_id)
        ids = [category.id] + [node.id for node in get_descendants(category.id)]
        count = int(catalog.count_active_products(ids))
        category.product_count = count
        category.updated_at = get_clock().now()
        return count

    return run_in_transaction(_op, entity_name="category", entity_id=category_id)


def recount_all(*, catalog: ProductCatalog | None = None) -> dict[int, int]:
    """Recompute product_count for every category; returns {id: count}."""
    catalog = catalog or get_catalog()
    counts: dict[int, int] = {}
    for (category_id,) in db.session.query(Category.id).order_by(Category.level.desc(), Category.id).all():
        counts[category_id] = update_product_count(category_id, catalog=catalog)
    return counts


def build_tree(parent_id: int | None = None) -> list[dict]:
    """
    Nested forest of active categories under `parent_id` (roots when None),
    each level ordered by (sort_order, name).
    """
    def _children(pid: int | None, path: frozenset[int]) -> list[dict]:
        query = db.session.query(Category).filter(Category.is_active.is_(True))
        if pid is None:
            query = query.filter(Category.parent_id.is_(None))
        else:
            query = query.filter(Category.parent_id == pid)
        nodes = query.order_by(Category.sort_order, Category.name).all()

        forest = []
        for node in nodes:
            if node.id in path:
                current_app.logger.error("Category parent cycle at %s while building tree", node.id)
                raise IntegrityError(
                    f"Category parent cycle detected at {node.id}",
                    entity="category",
                    id=node.id,
                )
            forest.append({
                "category": node.to_dict(),
                "children": _children(node.id, path | {node.id}),
            })
        return forest

    start = frozenset() if parent_id is None else frozenset({parent_id})
    return _children(parent_id, start)


def get_featured(limit: int = 10) -> list[Category]:
    if limit < 0:
        raise ValidationError("limit must be >= 0", field="limit", expected=">= 0")
    return (
        db.session.query(Category)
        .filter(Category.is_featured.is_(True), Category.is_active.is_(True))
        .order_by(Category.sort_order, Category.name)
        .limit(limit)
        .all()
    )


def move_category(
    category_id: int,
    new_parent_id: int | None,
    *,
    expected_version: int | None = None,
) -> Category:
    """
    Reparent a category (None makes it a root).

    Rejects a parent inside the moved subtree and any placement that
    would push the subtree past the max level; subtree levels and both
    parents' children links are updated in one transaction.
    """
    def _op() -> Category:
        category = get_category(category_id)
        check_version(category, expected_version, entity_name="category")

        if new_parent_id == category.id:
            raise ValidationError("Category cannot be its own parent", entity="category", id=category.id, field="parent_id")

        subtree = _descendants_with_depth(category)
        new_parent = None
        if new_parent_id is not None:
            new_parent = db.session.get(Category, new_parent_id)
            if new_parent is None:
                raise NotFoundError(
                    f"Parent category {new_parent_id} not found",
                    entity="category",
                    id=new_parent_id,
                    field="parent_id",
                )
            if any(node.id == new_parent.id for node, _ in subtree):
                raise ValidationError(
                    f"Category {new_parent.id} is a descendant of {category.id}; move would create a cycle",
                    entity="category",
                    id=category.id,
                    field="parent_id",
                )

        max_depth = max((depth for _, depth in subtree), default=0)
        new_level = _require_depth(new_parent, subtree_depth=max_depth)

        now = get_clock().now()
        if category.parent_id is not None and category.parent_id != new_parent_id:
            old_parent = db.session.get(Category, category.parent_id)
            if old_parent is not None:
                _unlink_child(old_parent, category.id, now)
        if new_parent is not None and category.id not in new_parent.children_ids:
            _link_child(new_parent, category, now)

        category.parent_id = new_parent.id if new_parent is not None else None
        category.level = new_level
        category.updated_at = now
        for node, depth in subtree:
            node.level = new_level + depth
            node.updated_at = now

        current_app.logger.info("Moved category %s under %s (level %s)", category.id, new_parent_id, new_level)
        return category

    return run_in_transaction(_op, entity_name="category", entity_id=category_id)


def delete_category(category_id: int, *, catalog: ProductCatalog | None = None) -> None:
    """Delete a leaf category that no product references."""
    catalog = catalog or get_catalog()

    def _op() -> None:
        category = get_category(category_id)
        if category.child_links:
            raise ValidationError(
                "Cannot delete category with subcategories",
                entity="category",
                id=category.id,
            )
        if catalog.count_products_in_categories([category.id]) > 0:
            raise ValidationError(
                "Cannot delete category with products",
                entity="category",
                id=category.id,
            )
        if category.parent_id is not None:
            parent = db.session.get(Category, category.parent_id)
            if parent is not None:
                _unlink_child(parent, category.id, get_clock().now())
        db.session.delete(category)
        current_app.logger.info("Deleted category %s", category_id)

    run_in_transaction(_op, entity_name="category", entity_id=category_id)

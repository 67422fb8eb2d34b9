from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


CATEGORY_ATTRIBUTE_TYPES = ("text", "number", "boolean", "select", "multiselect")
PRODUCT_STATUSES = ("draft", "active", "inactive", "suspended")


class Category(db.Model):
    """
    Product category node.

    Parent/children are id links: `parent_id` on the child, plus ordered
    `CategoryChild` rows on the parent. The service layer keeps both in
    step; `level` is parent.level + 1 (root = 0).
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.Index("ix_categories_parent_sort", "parent_id", "sort_order", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.String(500), nullable=True)
    slug = db.Column(db.String(120), nullable=False, unique=True, index=True)
    icon = db.Column(db.String(64), nullable=False, default="fas fa-tag")

    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    level = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    is_featured = db.Column(db.Boolean, nullable=False, default=False, index=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    # Cached; recomputed by category_service.update_product_count
    product_count = db.Column(db.Integer, nullable=False, default=0)

    # SEO
    meta_title = db.Column(db.String(60), nullable=True)
    meta_description = db.Column(db.String(160), nullable=True)
    meta_keywords_json = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    child_links = db.relationship(
        "CategoryChild",
        foreign_keys="CategoryChild.parent_id",
        order_by="CategoryChild.position",
        cascade="all, delete-orphan",
        back_populates="parent",
    )
    attributes = db.relationship(
        "CategoryAttribute",
        order_by="CategoryAttribute.position",
        cascade="all, delete-orphan",
        back_populates="category",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def children_ids(self) -> list[int]:
        return [link.child_id for link in self.child_links]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "slug": self.slug,
            "icon": self.icon,
            "parent_id": self.parent_id,
            "children": self.children_ids,
            "level": self.level,
            "is_active": self.is_active,
            "is_featured": self.is_featured,
            "sort_order": self.sort_order,
            "product_count": self.product_count,
            "attributes": [a.to_dict() for a in self.attributes],
            "seo": {
                "meta_title": self.meta_title,
                "meta_description": self.meta_description,
                "keywords": list(self.meta_keywords_json or []),
            },
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class CategoryChild(db.Model):
    """Ordered parent -> child link (the parent's `children` list)."""
    __tablename__ = "category_children"
    __table_args__ = (
        db.UniqueConstraint("parent_id", "child_id", name="uq_category_children_parent_child"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    child_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    parent = db.relationship("Category", foreign_keys=[parent_id], back_populates="child_links")


class CategoryAttribute(db.Model):
    """Filterable attribute definition attached to a category."""
    __tablename__ = "category_attributes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    name = db.Column(db.String(64), nullable=False)
    attr_type = db.Column(db.String(16), nullable=False)  # text, number, boolean, select, multiselect
    options_json = db.Column(db.JSON, nullable=True)
    required = db.Column(db.Boolean, nullable=False, default=False)
    filterable = db.Column(db.Boolean, nullable=False, default=True)

    category = db.relationship("Category", back_populates="attributes")

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "type": self.attr_type,
            "options": list(self.options_json or []),
            "required": self.required,
            "filterable": self.filterable,
        }


class Product(db.Model):
    """Catalog listing owned by a vendor. Only id-level facts live here."""
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_status", "category_id", "status", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    name = db.Column(db.String(200), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    image_url = db.Column(db.String(500), nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "category_id": self.category_id,
            "name": self.name,
            "sku": self.sku,
            "image_url": self.image_url,
            "price_cents": self.price_cents,
            "status": self.status,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }

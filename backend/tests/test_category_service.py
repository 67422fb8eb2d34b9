# Overview: Pytest coverage for the category tree service.

import pytest

from marketplace.errors import IntegrityError, NotFoundError, ValidationError
from marketplace.models import Category, CategoryChild, Product
from marketplace.services import category_service
from marketplace.services.category_service import slugify


def _product(db_session, vendor, category, *, status="active", is_active=True, name="Item"):
    product = Product(
        vendor_id=vendor.id,
        category_id=category.id,
        name=name,
        price_cents=1000,
        status=status,
        is_active=is_active,
    )
    db_session.add(product)
    db_session.commit()
    return product


class TestSlugify:
    @pytest.mark.parametrize("name,expected", [
        ("Electronics", "electronics"),
        ("Home & Garden", "home-garden"),
        ("  --Kids' Toys!!  ", "kids-toys"),
        ("4K TVs / Projectors", "4k-tvs-projectors"),
    ])
    def test_slug_derivation(self, name, expected):
        assert slugify(name) == expected


class TestCreateCategory:
    """create_category validation, level and children registration."""

    def test_root_category_has_level_zero(self, db_session, clock):
        root = category_service.create_category("Electronics")
        assert root.level == 0
        assert root.parent_id is None
        assert root.slug == "electronics"
        assert root.icon == "fas fa-tag"
        assert root.children_ids == []

    def test_child_registered_in_parent(self, db_session, clock):
        root = category_service.create_category("Electronics")
        child = category_service.create_category("Laptops", root.id)

        db_session.refresh(root)
        assert child.level == 1
        assert child.parent_id == root.id
        assert root.children_ids == [child.id]

    def test_children_keep_insertion_order(self, db_session, clock):
        root = category_service.create_category("Electronics")
        a = category_service.create_category("Phones", root.id)
        b = category_service.create_category("Cameras", root.id)
        db_session.refresh(root)
        assert root.children_ids == [a.id, b.id]

    def test_name_is_trimmed(self, db_session, clock):
        category = category_service.create_category("  Books  ")
        assert category.name == "Books"
        assert category.slug == "books"

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_empty_name_rejected(self, db_session, clock, name):
        with pytest.raises(ValidationError) as exc:
            category_service.create_category(name)
        assert exc.value.details["field"] == "name"

    def test_long_name_rejected(self, db_session, clock):
        with pytest.raises(ValidationError):
            category_service.create_category("x" * 101)

    def test_name_at_limit_accepted(self, db_session, clock):
        assert category_service.create_category("x" * 100).name == "x" * 100

    def test_duplicate_name_rejected_case_insensitively(self, db_session, clock):
        category_service.create_category("Electronics")
        with pytest.raises(ValidationError):
            category_service.create_category("electronics")

    def test_long_description_rejected(self, db_session, clock):
        with pytest.raises(ValidationError):
            category_service.create_category("Books", description="d" * 501)

    def test_missing_parent_is_not_found(self, db_session, clock):
        with pytest.raises(NotFoundError) as exc:
            category_service.create_category("Orphan", 9999)
        assert exc.value.details["id"] == 9999
        assert db_session.query(Category).count() == 0

    def test_invalid_attribute_type_rejected(self, db_session, clock):
        with pytest.raises(ValidationError):
            category_service.create_category("Books", attributes=[{"name": "Pages", "type": "integer"}])

    def test_attributes_and_seo_stored(self, db_session, clock):
        category = category_service.create_category(
            "Shoes",
            attributes=[
                {"name": "Size", "type": "select", "options": ["40", "41"], "required": True},
                {"name": "Waterproof", "type": "boolean"},
            ],
            seo={"meta_title": "Shoes", "keywords": ["shoes", " sneakers "]},
        )
        data = category.to_dict()
        assert [a["name"] for a in data["attributes"]] == ["Size", "Waterproof"]
        assert data["attributes"][0]["options"] == ["40", "41"]
        assert data["attributes"][0]["required"] is True
        assert data["attributes"][1]["filterable"] is True
        assert data["seo"]["keywords"] == ["shoes", "sneakers"]

    def test_level_three_parent_rejected(self, db_session, clock):
        l0 = category_service.create_category("L0")
        l1 = category_service.create_category("L1", l0.id)
        l2 = category_service.create_category("L2", l1.id)
        l3 = category_service.create_category("L3", l2.id)
        assert l3.level == 3

        with pytest.raises(ValidationError) as exc:
            category_service.create_category("L4", l3.id)
        assert exc.value.details["field"] == "level"

        # Nothing half-written: no L4 row and no new link on L3
        db_session.refresh(l3)
        assert l3.children_ids == []
        assert db_session.query(Category).filter_by(name="L4").count() == 0

    def test_parent_version_bumped_with_child(self, db_session, clock):
        root = category_service.create_category("Electronics")
        before = root.version_id
        category_service.create_category("Laptops", root.id)
        db_session.refresh(root)
        assert root.version_id == before + 1


class TestHierarchy:
    def test_root_to_self(self, db_session, clock):
        a = category_service.create_category("A")
        b = category_service.create_category("B", a.id)
        c = category_service.create_category("C", b.id)
        assert [n.name for n in category_service.get_hierarchy(c.id)] == ["A", "B", "C"]
        assert [n.name for n in category_service.get_hierarchy(a.id)] == ["A"]

    def test_broken_chain_returns_partial_chain(self, db_session, clock):
        orphan = Category(name="Orphan", slug="orphan", parent_id=424242, level=1)
        db_session.add(orphan)
        db_session.commit()
        child = category_service.create_category("Orphan Child", orphan.id)

        chain = category_service.get_hierarchy(child.id)
        assert [n.name for n in chain] == ["Orphan", "Orphan Child"]

    def test_broken_chain_strict_raises(self, db_session, clock):
        orphan = Category(name="Orphan", slug="orphan", parent_id=424242, level=1)
        db_session.add(orphan)
        db_session.commit()
        with pytest.raises(IntegrityError):
            category_service.get_hierarchy(orphan.id, strict=True)

    def test_parent_cycle_raises(self, db_session, clock):
        a = category_service.create_category("A")
        b = category_service.create_category("B", a.id)
        a.parent_id = b.id
        db_session.commit()
        with pytest.raises(IntegrityError):
            category_service.get_hierarchy(b.id)

    def test_missing_category(self, db_session, clock):
        with pytest.raises(NotFoundError):
            category_service.get_hierarchy(12345)


class TestDescendants:
    def test_breadth_first_order(self, db_session, clock):
        root = category_service.create_category("Root")
        a = category_service.create_category("A", root.id)
        b = category_service.create_category("B", root.id)
        a1 = category_service.create_category("A1", a.id)
        b1 = category_service.create_category("B1", b.id)
        a2 = category_service.create_category("A2", a1.id)

        names = [n.name for n in category_service.get_descendants(root.id)]
        assert names == ["A", "B", "A1", "B1", "A2"]
        assert category_service.get_descendants(a2.id) == []

    def test_cycle_terminates_with_integrity_error(self, db_session, clock):
        a = category_service.create_category("A")
        b = category_service.create_category("B", a.id)
        # Corrupt the children links: B lists A as its child
        db_session.add(CategoryChild(parent_id=b.id, child_id=a.id, position=0))
        db_session.commit()

        with pytest.raises(IntegrityError) as exc:
            category_service.get_descendants(a.id)
        assert exc.value.details["id"] == a.id

    def test_link_to_missing_child_raises(self, db_session, clock):
        a = category_service.create_category("A")
        db_session.add(CategoryChild(parent_id=a.id, child_id=777, position=0))
        db_session.commit()
        with pytest.raises(IntegrityError):
            category_service.get_descendants(a.id)


class TestProductCount:
    def test_counts_active_products_across_descendants(self, db_session, clock, vendor):
        electronics = category_service.create_category("Electronics")
        laptops = category_service.create_category("Laptops", electronics.id)
        _product(db_session, vendor, laptops, name="Laptop 1")
        _product(db_session, vendor, laptops, name="Laptop 2")

        assert category_service.update_product_count(electronics.id) == 2
        db_session.refresh(electronics)
        assert electronics.product_count == 2

    def test_inactive_and_draft_products_not_counted(self, db_session, clock, vendor):
        books = category_service.create_category("Books")
        _product(db_session, vendor, books, name="Live")
        _product(db_session, vendor, books, name="Draft", status="draft")
        _product(db_session, vendor, books, name="Hidden", is_active=False)
        assert category_service.update_product_count(books.id) == 1

    def test_injected_catalog_receives_all_ids(self, db_session, clock):
        root = category_service.create_category("Root")
        child = category_service.create_category("Child", root.id)
        seen = []

        class RecordingCatalog:
            def count_active_products(self, category_ids):
                seen.append(sorted(category_ids))
                return 7

        assert category_service.update_product_count(root.id, catalog=RecordingCatalog()) == 7
        assert seen == [sorted([root.id, child.id])]

    def test_recount_all(self, db_session, clock, vendor):
        root = category_service.create_category("Root")
        child = category_service.create_category("Child", root.id)
        _product(db_session, vendor, child)
        _product(db_session, vendor, root, name="Root item")
        counts = category_service.recount_all()
        assert counts == {root.id: 2, child.id: 1}


class TestTreeAndFeatured:
    def test_build_tree_orders_by_sort_order_then_name(self, db_session, clock):
        root = category_service.create_category("Root")
        category_service.create_category("Zeta", root.id, sort_order=0)
        category_service.create_category("Alpha", root.id, sort_order=1)
        category_service.create_category("Beta", root.id, sort_order=0)
        category_service.create_category("Hidden", root.id, is_active=False)
        category_service.create_category("Other Root", sort_order=5)

        forest = category_service.build_tree()
        assert [n["category"]["name"] for n in forest] == ["Root", "Other Root"]
        assert [n["category"]["name"] for n in forest[0]["children"]] == ["Beta", "Zeta", "Alpha"]

    def test_build_tree_from_parent(self, db_session, clock):
        root = category_service.create_category("Root")
        child = category_service.create_category("Child", root.id)
        category_service.create_category("Grandchild", child.id)
        forest = category_service.build_tree(root.id)
        assert forest[0]["category"]["name"] == "Child"
        assert forest[0]["children"][0]["category"]["name"] == "Grandchild"
        assert forest[0]["children"][0]["children"] == []

    def test_get_featured(self, db_session, clock):
        category_service.create_category("B Featured", is_featured=True)
        category_service.create_category("A Featured", is_featured=True)
        category_service.create_category("First", is_featured=True, sort_order=-1)
        category_service.create_category("Plain")
        category_service.create_category("Inactive Featured", is_featured=True, is_active=False)

        names = [c.name for c in category_service.get_featured()]
        assert names == ["First", "A Featured", "B Featured"]
        assert [c.name for c in category_service.get_featured(limit=1)] == ["First"]


class TestUpdateMoveDelete:
    def test_rename_recomputes_slug(self, db_session, clock):
        category = category_service.create_category("Cell Phones")
        updated = category_service.update_category(category.id, name="Mobile Phones")
        assert updated.slug == "mobile-phones"

    def test_rename_to_existing_name_rejected(self, db_session, clock):
        category_service.create_category("Books")
        music = category_service.create_category("Music")
        with pytest.raises(ValidationError):
            category_service.update_category(music.id, name="BOOKS")

    def test_move_updates_links_and_levels(self, db_session, clock):
        a = category_service.create_category("A")
        b = category_service.create_category("B")
        child = category_service.create_category("Child", a.id)
        grandchild = category_service.create_category("Grandchild", child.id)

        category_service.move_category(child.id, b.id)
        db_session.refresh(a)
        db_session.refresh(b)
        assert a.children_ids == []
        assert b.children_ids == [child.id]
        assert db_session.get(Category, grandchild.id).level == 2

        category_service.move_category(child.id, None)
        assert db_session.get(Category, child.id).level == 0
        assert db_session.get(Category, grandchild.id).level == 1

    def test_move_under_own_descendant_rejected(self, db_session, clock):
        a = category_service.create_category("A")
        b = category_service.create_category("B", a.id)
        with pytest.raises(ValidationError):
            category_service.move_category(a.id, b.id)
        with pytest.raises(ValidationError):
            category_service.move_category(a.id, a.id)
        assert db_session.get(Category, a.id).parent_id is None

    def test_move_respects_max_depth(self, db_session, clock):
        deep = category_service.create_category("D0")
        d1 = category_service.create_category("D1", deep.id)
        d2 = category_service.create_category("D2", d1.id)
        subtree = category_service.create_category("S0")
        category_service.create_category("S1", subtree.id)
        # S0 at level 3 would push S1 to level 4
        with pytest.raises(ValidationError):
            category_service.move_category(subtree.id, d2.id)

    def test_delete_refused_with_children_or_products(self, db_session, clock, vendor):
        root = category_service.create_category("Root")
        leaf = category_service.create_category("Leaf", root.id)
        with pytest.raises(ValidationError):
            category_service.delete_category(root.id)

        _product(db_session, vendor, leaf, status="draft")
        with pytest.raises(ValidationError):
            category_service.delete_category(leaf.id)

    def test_delete_leaf_unlinks_parent(self, db_session, clock):
        root = category_service.create_category("Root")
        leaf = category_service.create_category("Leaf", root.id)
        category_service.delete_category(leaf.id)
        db_session.refresh(root)
        assert root.children_ids == []
        assert db_session.get(Category, leaf.id) is None

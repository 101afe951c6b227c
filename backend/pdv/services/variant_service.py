# Overview: Service-layer operations for attribute types and product variants (size/color grids).

"""
Variant grid

Attribute types (size, color, ...) own a list of options. A product's grid
is the cartesian product of the options chosen per type; every combination
becomes a ProductVariant with its own SKU, optional price and stock counter.

Stock rules are the same as for products: a variant's stock_quantity only
changes through inventory_service.apply_movement, so each change leaves a
StockMovement (with variant_id) and audit_variant_stock can replay it.
"""

from __future__ import annotations

from itertools import product as cartesian

from flask import current_app

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import AttributeOption, AttributeType, Product, ProductVariant, variant_options
from ..validation import MAX_PRICE_CENTS, coerce_int
from .concurrency import lock_for_update, run_with_retry
from .inventory_service import apply_movement, get_product_for_stock


STATUS_CHOICES = ("ACTIVE", "INACTIVE")
SKU_PART_LENGTH = 3


# Attribute types

def get_attribute_type(type_id: int) -> AttributeType:
    attribute_type = db.session.query(AttributeType).filter_by(id=type_id).first()
    if not attribute_type:
        raise NotFoundError("Attribute type not found")
    return attribute_type


def list_attribute_types(*, include_inactive: bool = False) -> list[AttributeType]:
    query = db.session.query(AttributeType)
    if not include_inactive:
        query = query.filter(AttributeType.status == "ACTIVE")
    return query.order_by(AttributeType.name.asc()).all()


def _clean_name(value, field: str, max_length: int = 64) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError([{"field": field, "message": f"{field} is required"}])
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError([{"field": field, "message": f"{field} exceeds max length {max_length}"}])
    return value


def _ensure_type_name_free(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(AttributeType.id).filter(AttributeType.name == name)
    if exclude_id is not None:
        query = query.filter(AttributeType.id != exclude_id)
    if query.first():
        raise ConflictError("Attribute type already exists", details={"field": "name"})


def create_attribute_type(*, name, description: str | None = None, options=None) -> AttributeType:
    """Create a type with its initial options; option order is kept as given."""
    name = _clean_name(name, "name")
    values = []
    for idx, raw in enumerate(options or []):
        value = _clean_name(raw, f"options[{idx}]")
        if value in values:
            raise ValidationError([{"field": f"options[{idx}]", "message": f"Duplicate option: {value}"}])
        values.append(value)

    _ensure_type_name_free(name)

    attribute_type = AttributeType(name=name, description=description, status="ACTIVE")
    for position, value in enumerate(values):
        attribute_type.options.append(AttributeOption(value=value, position=position))
    db.session.add(attribute_type)
    db.session.commit()
    return attribute_type


def update_attribute_type(type_id: int, *, name=None, description=None, status=None) -> AttributeType:
    attribute_type = get_attribute_type(type_id)

    if name is not None:
        name = _clean_name(name, "name")
        _ensure_type_name_free(name, exclude_id=attribute_type.id)
        attribute_type.name = name
    if description is not None:
        attribute_type.description = description.strip() or None
    if status is not None:
        if status not in STATUS_CHOICES:
            raise ValidationError([{"field": "status", "message": "status must be one of ACTIVE, INACTIVE"}])
        attribute_type.status = status

    db.session.commit()
    return attribute_type


def deactivate_attribute_type(type_id: int) -> AttributeType:
    attribute_type = get_attribute_type(type_id)
    if attribute_type.status != "INACTIVE":
        attribute_type.status = "INACTIVE"
        db.session.commit()
    return attribute_type


def add_option(type_id: int, *, value) -> AttributeOption:
    attribute_type = get_attribute_type(type_id)
    value = _clean_name(value, "value")

    if any(option.value == value for option in attribute_type.options):
        raise ConflictError("Option already exists for this attribute", details={"field": "value"})

    position = max((option.position for option in attribute_type.options), default=-1) + 1
    option = AttributeOption(attribute_type_id=attribute_type.id, value=value, position=position)
    db.session.add(option)
    db.session.commit()
    return option


def delete_option(option_id: int) -> None:
    """Hard delete; refused while any variant still uses the option."""
    option = db.session.query(AttributeOption).filter_by(id=option_id).first()
    if not option:
        raise NotFoundError("Attribute option not found")

    in_use = (
        db.session.query(variant_options.c.variant_id)
        .filter(variant_options.c.option_id == option.id)
        .count()
    )
    if in_use:
        raise ConflictError(
            "Option is used by product variants",
            details={"option_id": option.id, "variant_count": in_use},
        )

    db.session.delete(option)
    db.session.commit()


# Variants

def get_variant(variant_id: int, *, lock: bool = False) -> ProductVariant:
    query = db.session.query(ProductVariant).filter_by(id=variant_id)
    if lock:
        query = lock_for_update(query)
    variant = query.first()
    if not variant:
        raise NotFoundError("Variant not found", details={"variant_id": variant_id})
    return variant


def list_variants(product_id: int, *, include_inactive: bool = False) -> list[ProductVariant]:
    get_product_for_stock(product_id)
    query = db.session.query(ProductVariant).filter(ProductVariant.product_id == product_id)
    if not include_inactive:
        query = query.filter(ProductVariant.status == "ACTIVE")
    return query.order_by(ProductVariant.sku.asc()).all()


def _parse_option_ids(option_ids) -> list[int]:
    if not isinstance(option_ids, list) or not option_ids:
        raise ValidationError([{"field": "option_ids", "message": "option_ids must be a non-empty list"}])
    parsed = []
    for idx, raw in enumerate(option_ids):
        try:
            parsed.append(coerce_int(raw, f"option_ids[{idx}]"))
        except ValueError as e:
            raise ValidationError([{"field": f"option_ids[{idx}]", "message": str(e)}])
    return list(dict.fromkeys(parsed))


def _sku_for(code: str, combination: tuple[AttributeOption, ...], counter: int) -> str:
    parts = [option.value[:SKU_PART_LENGTH].upper() for option in combination]
    return "-".join([code, *parts, str(counter)])


def generate_grid(*, product_id: int, option_ids) -> dict:
    """
    Create one variant per missing combination of the selected options.

    Options are grouped by attribute type (types ordered by first
    appearance in option_ids). Combinations the product already has are
    skipped, so generating twice is harmless. New variants start with
    stock 0 and the product's current price.
    """
    ids = _parse_option_ids(option_ids)

    def _op() -> dict:
        product = get_product_for_stock(product_id, lock=True)

        options = db.session.query(AttributeOption).filter(AttributeOption.id.in_(ids)).all()
        found = {option.id: option for option in options}
        missing = [option_id for option_id in ids if option_id not in found]
        if missing:
            raise NotFoundError("Attribute option not found", details={"option_ids": missing})

        groups: dict[int, list[AttributeOption]] = {}
        for option_id in ids:
            option = found[option_id]
            if not option.attribute_type.is_active:
                raise ConflictError(
                    f"Attribute {option.attribute_type.name} is inactive",
                    details={"attribute_type_id": option.attribute_type_id},
                )
            groups.setdefault(option.attribute_type_id, []).append(option)

        existing = db.session.query(ProductVariant).filter_by(product_id=product.id).all()
        existing_keys = {variant.option_key for variant in existing}
        counter = len(existing)

        created = []
        for combination in cartesian(*groups.values()):
            key = frozenset(option.id for option in combination)
            if key in existing_keys:
                continue
            counter += 1
            sku = _sku_for(product.code, combination, counter)
            if db.session.query(ProductVariant.id).filter(ProductVariant.sku == sku).first():
                raise ConflictError("SKU already registered", details={"field": "sku", "sku": sku})

            variant = ProductVariant(
                product_id=product.id,
                sku=sku,
                price_cents=product.price_cents,
                stock_quantity=0,
                status="ACTIVE",
            )
            variant.options = list(combination)
            db.session.add(variant)
            existing_keys.add(key)
            created.append(variant)

        db.session.commit()
        current_app.logger.info(
            "Variant grid for product %s: %s created, %s existing",
            product.id, len(created), len(existing),
        )
        return {
            "created": [variant.to_dict() for variant in created],
            "existing_count": len(existing),
            "created_count": len(created),
        }

    return run_with_retry(_op)


def _check_variant_price(value) -> int | None:
    if value is None:
        return None
    try:
        value = coerce_int(value, "price_cents")
    except ValueError as e:
        raise ValidationError([{"field": "price_cents", "message": str(e)}])
    if value < 0 or value > MAX_PRICE_CENTS:
        raise ValidationError([{
            "field": "price_cents",
            "message": f"price_cents must be between 0 and {MAX_PRICE_CENTS}",
        }])
    return value


def _check_new_stock(value) -> int:
    try:
        value = coerce_int(value, "stock_quantity")
    except ValueError as e:
        raise ValidationError([{"field": "stock_quantity", "message": str(e)}])
    if value < 0:
        raise ValidationError([{"field": "stock_quantity", "message": "stock_quantity must be >= 0"}])
    return value


def _ensure_variant_codes_free(variant: ProductVariant, sku: str | None, barcode: str | None) -> None:
    if sku and sku != variant.sku:
        if db.session.query(ProductVariant.id).filter(ProductVariant.sku == sku).first():
            raise ConflictError("SKU already registered", details={"field": "sku"})
    if barcode and barcode != variant.barcode:
        taken = (
            db.session.query(ProductVariant.id).filter(ProductVariant.barcode == barcode).first()
            or db.session.query(Product.id).filter(Product.barcode == barcode).first()
        )
        if taken:
            raise ConflictError("Barcode already registered", details={"field": "barcode"})


def _apply_variant_patch(variant: ProductVariant, patch: dict, *, employee_id: int | None) -> None:
    """Write a validated patch; a stock change becomes an ADJUST movement."""
    if "sku" in patch:
        variant.sku = patch["sku"]
    if "barcode" in patch:
        variant.barcode = patch["barcode"]
    if "price_cents" in patch:
        variant.price_cents = patch["price_cents"]
    if "status" in patch:
        variant.status = patch["status"]

    new_stock = patch.get("stock_quantity")
    if new_stock is not None and new_stock != variant.stock_quantity:
        before = variant.stock_quantity
        apply_movement(
            variant.product,
            variant=variant,
            kind="ADJUST",
            quantity=abs(new_stock - before),
            reason=f"Variant {variant.sku} stock adjusted",
            note=f"Stock adjusted from {before} to {new_stock}",
            employee_id=employee_id,
            new_stock=new_stock,
        )


def _validate_variant_payload(payload) -> dict:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    allowed = {"sku", "barcode", "price_cents", "stock_quantity", "status"}
    unknown = sorted(set(payload) - allowed)
    if unknown:
        raise ValidationError([{"field": key, "message": f"Field not allowed: {key}"} for key in unknown])

    patch: dict = {}
    if "sku" in payload:
        patch["sku"] = _clean_name(payload["sku"], "sku")
    if "barcode" in payload:
        barcode = payload["barcode"]
        patch["barcode"] = _clean_name(barcode, "barcode") if barcode not in (None, "") else None
    if "price_cents" in payload:
        patch["price_cents"] = _check_variant_price(payload["price_cents"])
    if "stock_quantity" in payload:
        patch["stock_quantity"] = _check_new_stock(payload["stock_quantity"])
    if "status" in payload:
        if payload["status"] not in STATUS_CHOICES:
            raise ValidationError([{"field": "status", "message": "status must be one of ACTIVE, INACTIVE"}])
        patch["status"] = payload["status"]
    return patch


def update_variant(variant_id: int, payload, *, employee_id: int | None = None) -> ProductVariant:
    """
    Update SKU, barcode, price, status or stock of one variant.

    A price of None falls back to the product price. A new stock_quantity
    is recorded as an ADJUST movement on the variant counter.
    """
    patch = _validate_variant_payload(payload)

    def _op() -> ProductVariant:
        variant = get_variant(variant_id, lock=True)
        _ensure_variant_codes_free(variant, patch.get("sku"), patch.get("barcode"))
        _apply_variant_patch(variant, patch, employee_id=employee_id)
        db.session.commit()
        return variant

    return run_with_retry(_op)


def deactivate_variant(variant_id: int) -> ProductVariant:
    variant = get_variant(variant_id)
    if variant.status != "INACTIVE":
        variant.status = "INACTIVE"
        db.session.commit()
    return variant


def batch_update(items, *, employee_id: int | None = None) -> list[ProductVariant]:
    """
    Update several variants in one transaction: all of them or none.

    Each item is {"id": ..., "price_cents"?, "stock_quantity"?, "status"?}.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError([{"field": "variants", "message": "variants must be a non-empty list"}])

    parsed: list[tuple[int, dict]] = []
    errors = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            errors.append({"field": f"variants[{idx}]", "message": "item must be an object"})
            continue
        data = dict(item)
        try:
            variant_id = coerce_int(data.pop("id", None), "id")
        except ValueError as e:
            errors.append({"field": f"variants[{idx}]", "message": str(e)})
            continue
        if set(data) - {"price_cents", "stock_quantity", "status"}:
            errors.append({"field": f"variants[{idx}]", "message": "only price_cents, stock_quantity and status can be batch updated"})
            continue
        try:
            parsed.append((variant_id, _validate_variant_payload(data)))
        except ValidationError as e:
            errors.extend({"field": f"variants[{idx}].{err['field']}", "message": err["message"]} for err in e.fields)
    if errors:
        raise ValidationError(errors)

    def _op() -> list[ProductVariant]:
        updated = []
        for variant_id, patch in parsed:
            variant = get_variant(variant_id, lock=True)
            _apply_variant_patch(variant, patch, employee_id=employee_id)
            updated.append(variant)
        db.session.commit()
        return updated

    return run_with_retry(_op)

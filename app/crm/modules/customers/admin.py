from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.crm.auth import json_body
from app.crm.db import db_session
from app.crm.errors import ValidationError
from app.crm.modules.customers.service import CustomerFilter, CustomerRepository, serialize_customer
from app.crm.rbac import (
    CUSTOMERS_CREATE,
    CUSTOMERS_DELETE,
    CUSTOMERS_LIST,
    CUSTOMERS_READ,
    CUSTOMERS_UPDATE,
    require_operation,
)

bp = Blueprint("customers", __name__)


def _int_arg(name: str, default: int) -> int:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be a positive integer")


def _filter_from_request() -> CustomerFilter:
    limit = _int_arg("limit", current_app.config["DEFAULT_PAGE_SIZE"])
    if limit > current_app.config["MAX_PAGE_SIZE"]:
        limit = current_app.config["MAX_PAGE_SIZE"]
    return CustomerFilter(
        search=(request.args.get("search") or "").strip() or None,
        status=(request.args.get("status") or "").strip() or None,
        province=(request.args.get("province") or "").strip() or None,
        page=_int_arg("page", 1),
        limit=limit,
    )


@bp.get("/customers")
@require_operation(CUSTOMERS_LIST)
def customers_list():
    s = db_session()
    customers, page_info = CustomerRepository(s).list(_filter_from_request())
    return jsonify(
        {
            "customers": [serialize_customer(c) for c in customers],
            "pagination": page_info.to_dict(),
        }
    )


@bp.post("/customers")
@require_operation(CUSTOMERS_CREATE)
def customers_create():
    s = db_session()
    customer = CustomerRepository(s).create(json_body(), g.current_principal.sub)
    s.commit()
    return jsonify({"customer": serialize_customer(customer)}), 201


@bp.get("/customers/<customer_id>")
@require_operation(CUSTOMERS_READ)
def customers_detail(customer_id: str):
    s = db_session()
    return jsonify({"customer": serialize_customer(CustomerRepository(s).get(customer_id))})


@bp.put("/customers/<customer_id>")
@require_operation(CUSTOMERS_UPDATE)
def customers_update(customer_id: str):
    s = db_session()
    customer = CustomerRepository(s).update(customer_id, json_body(), g.current_principal.sub)
    s.commit()
    return jsonify({"customer": serialize_customer(customer)})


@bp.delete("/customers/<customer_id>")
@require_operation(CUSTOMERS_DELETE)
def customers_delete(customer_id: str):
    s = db_session()
    CustomerRepository(s).delete(customer_id)
    s.commit()
    current_app.logger.info("Customer deleted id=%s by=%s", customer_id, g.current_principal.sub)
    return jsonify({"message": "Customer deleted"})

# ==============================================
# Relational rows → MongoDB documents
# ==============================================
#
# PURPOSE:
#   Pure functions that turn the row sets read by the Migrator into
#   the document model. No I/O happens here.
#
# DOCUMENT SHAPES:
# ----------------
#   restaurants: {restaurantId, name, address, menu: [{menuItemId, name, price}]}
#
#   people:      {personId, name, email, phone, roles: [...],
#                 customer?: {defaultAddress}, rider?: {vehicleType}}
#
#   orders:      {orderId, createdAt, status, totalAmount,
#                 customer:   {personId, name, email},
#                 restaurant: {restaurantId, name},
#                 items:      [{menuItemId, name, unitPrice, quantity}],
#                 payment:    {method, paidAt} | None,
#                 delivery:   {rider: {personId, name, email},
#                              deliveryStatus, assignedAt} | None}
#
#   Orders embed copies of what the reports filter on (restaurant name,
#   rider email) instead of referencing other collections.
#
# ==============================================

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional


@dataclass
class Snapshot:
    """Everything read from MySQL in one migration transaction."""
    restaurants: list[dict] = field(default_factory=list)
    menu_items: list[dict] = field(default_factory=list)
    people: list[dict] = field(default_factory=list)
    customers: list[dict] = field(default_factory=list)
    riders: list[dict] = field(default_factory=list)
    orders: list[dict] = field(default_factory=list)
    order_items: list[dict] = field(default_factory=list)
    deliveries: list[dict] = field(default_factory=list)


def _num(value: Any) -> Any:
    # BSON has no Decimal; DECIMAL columns come back from pymysql as Decimal
    if isinstance(value, Decimal):
        return float(value)
    return value


def _person_ref(person: Optional[dict]) -> Optional[dict]:
    if person is None:
        return None
    return {
        "personId": person["person_id"],
        "name": person["name"],
        "email": person["email"],
    }


def restaurant_documents(snapshot: Snapshot) -> list[dict]:
    menus = defaultdict(list)
    for item in snapshot.menu_items:
        menus[item["restaurant_id"]].append({
            "menuItemId": item["menu_item_id"],
            "name": item["name"],
            "price": _num(item["price"]),
        })

    return [
        {
            "restaurantId": row["restaurant_id"],
            "name": row["name"],
            "address": row.get("address"),
            "menu": menus.get(row["restaurant_id"], []),
        }
        for row in snapshot.restaurants
    ]


def person_documents(snapshot: Snapshot) -> list[dict]:
    customers = {row["person_id"]: row for row in snapshot.customers}
    riders = {row["person_id"]: row for row in snapshot.riders}

    documents = []
    for row in snapshot.people:
        person_id = row["person_id"]
        doc = {
            "personId": person_id,
            "name": row["name"],
            "email": row["email"],
            "phone": row.get("phone"),
            "roles": [],
        }
        if person_id in customers:
            doc["roles"].append("customer")
            doc["customer"] = {"defaultAddress": customers[person_id].get("default_address")}
        if person_id in riders:
            doc["roles"].append("rider")
            doc["rider"] = {"vehicleType": riders[person_id].get("vehicle_type")}
        documents.append(doc)
    return documents


def order_documents(snapshot: Snapshot) -> list[dict]:
    people = {row["person_id"]: row for row in snapshot.people}
    restaurants = {row["restaurant_id"]: row for row in snapshot.restaurants}
    deliveries = {row["order_id"]: row for row in snapshot.deliveries}

    items = defaultdict(list)
    for item in snapshot.order_items:
        items[item["order_id"]].append({
            "menuItemId": item.get("menu_item_id"),
            "name": item["name"],
            "unitPrice": _num(item["unit_price"]),
            "quantity": item["quantity"],
        })

    documents = []
    for row in snapshot.orders:
        order_id = row["order_id"]
        restaurant = restaurants.get(row["restaurant_id"])

        payment = None
        if row.get("paid_at") is not None:
            payment = {"method": row.get("payment_method"), "paidAt": row["paid_at"]}

        delivery = None
        if order_id in deliveries:
            d = deliveries[order_id]
            delivery = {
                "rider": _person_ref(people.get(d["rider_id"])),
                "deliveryStatus": d["delivery_status"],
                "assignedAt": d.get("assigned_at"),
            }

        documents.append({
            "orderId": order_id,
            "createdAt": row["created_at"],
            "status": row["status"],
            "totalAmount": _num(row.get("total_amount")),
            "customer": _person_ref(people.get(row["customer_id"])),
            "restaurant": {
                "restaurantId": row["restaurant_id"],
                "name": restaurant["name"] if restaurant else None,
            },
            "items": items.get(order_id, []),
            "payment": payment,
            "delivery": delivery,
        })
    return documents

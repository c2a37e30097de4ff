# Overview: Service-layer operations for clients.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, NotFound, ValidationError
from ..models import Client
from ..validation import normalize
from .pagination import paginate

CLIENT_NAME_MAX = 255


def normalize_client_name(name) -> str:
    if not isinstance(name, str):
        raise ValidationError("Client name is required")
    value = normalize({"name": name})["name"]
    if not value:
        raise ValidationError("Client name cannot be blank")
    if len(value) > CLIENT_NAME_MAX:
        raise ValidationError(f"Client name exceeds max length {CLIENT_NAME_MAX}")
    return value


def find_by_name(name: str) -> Client | None:
    return db.session.query(Client).filter_by(name=normalize_client_name(name)).first()


def get_client(client_id: int) -> Client:
    client = db.session.get(Client, client_id)
    if not client:
        raise NotFound("Client not found", details={"client_id": client_id})
    return client


def create_client_inner(name: str) -> Client:
    """Insert without committing; used by the product importer as well."""
    value = normalize_client_name(name)
    if db.session.query(Client.id).filter_by(name=value).first():
        raise ConflictError(f"Client already exists: {value}", details={"name": value})
    client = Client(name=value)
    db.session.add(client)
    db.session.flush()
    return client


def create_client(name: str) -> Client:
    try:
        client = create_client_inner(name)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Client already exists")
    return client


def update_client(client_id: int, name: str) -> Client:
    client = get_client(client_id)
    value = normalize_client_name(name)
    if value != client.name:
        clash = db.session.query(Client.id).filter(Client.name == value, Client.id != client_id).first()
        if clash:
            raise ConflictError(f"Client already exists: {value}", details={"name": value})
        client.name = value
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Client already exists")
    return client


def list_clients(*, name: str | None = None, page: int | None = None, per_page: int | None = None) -> dict:
    """Clients ordered by name; `name` is a case-insensitive substring filter."""
    query = db.session.query(Client)
    if name:
        query = query.filter(Client.name.contains(name.strip().lower()))
    query = query.order_by(Client.name.asc(), Client.id.asc())

    if page is None:
        clients = query.all()
        return {"items": [c.to_dict() for c in clients], "count": len(clients)}

    clients, pagination = paginate(query, page, per_page)
    return {
        "items": [c.to_dict() for c in clients],
        "count": len(clients),
        "pagination": pagination,
    }

# src/securevault/server/routers/vault.py
import logging
from typing import Any, List, Optional

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..deps import IdentityDep, ServicesDep
from ...core.errors import StorageError
from ...core.models import EntryCreate, EntryUpdate, ExportBundle, VaultEntry

logger = logging.getLogger(__name__)

router = APIRouter()


class EntryListResponse(BaseModel):
    entries: List[VaultEntry]


class EntryResponse(BaseModel):
    entry: VaultEntry


class OkResponse(BaseModel):
    ok: bool = True


class CategoryRequest(BaseModel):
    category: Optional[Any] = None


class CategoryResponse(BaseModel):
    category: str


class CategoryListResponse(BaseModel):
    categories: List[str]


class HealthResponse(BaseModel):
    status: str
    backend: str


# --- entries ---

@router.get("/entries", response_model=EntryListResponse)
def list_entries(identity: IdentityDep, services: ServicesDep):
    return EntryListResponse(entries=services.vault.list_entries(identity.username))


@router.post("/entries", response_model=EntryResponse, status_code=status.HTTP_201_CREATED)
def add_entry(body: EntryCreate, identity: IdentityDep, services: ServicesDep):
    entry = services.vault.add_entry(identity.username, body)
    logger.info("User %s added entry %s", identity.username, entry.id)
    return EntryResponse(entry=entry)


@router.put("/entries/{entry_id}", response_model=EntryResponse)
def update_entry(entry_id: str, body: EntryUpdate, identity: IdentityDep, services: ServicesDep):
    return EntryResponse(entry=services.vault.update_entry(identity.username, entry_id, body))


@router.delete("/entries/{entry_id}", response_model=OkResponse)
def delete_entry(entry_id: str, identity: IdentityDep, services: ServicesDep):
    services.vault.delete_entry(identity.username, entry_id)
    return OkResponse()


# --- categories (derived from tags) ---

@router.get("/categories", response_model=CategoryListResponse)
def list_categories(identity: IdentityDep, services: ServicesDep):
    return CategoryListResponse(categories=sorted(services.vault.list_categories(identity.username)))


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
def declare_category(body: CategoryRequest, identity: IdentityDep, services: ServicesDep):
    return CategoryResponse(category=services.vault.declare_category(body.category))


# names may contain "/" once decoded, so match the rest of the path
@router.delete("/categories/{name:path}", response_model=OkResponse)
def delete_category(name: str, identity: IdentityDep, services: ServicesDep):
    services.vault.delete_category(identity.username, name)
    return OkResponse()


# --- export / health ---

@router.get("/export", response_model=ExportBundle)
def export_vault(identity: IdentityDep, services: ServicesDep):
    return services.vault.export(identity.username)


@router.get("/health", response_model=HealthResponse)
def health(services: ServicesDep):
    try:
        services.storage.healthcheck()
    except StorageError:
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"error": "Storage unavailable"})
    return HealthResponse(status="ok", backend=services.storage.name)

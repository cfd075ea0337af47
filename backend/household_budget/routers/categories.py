from typing import Any

from fastapi import APIRouter, Depends

from ..deps import current_user_id, get_store
from ..persistence import DataStore
from ..schemas import CategoryCreate, CategoryUpdate, CsvImportRequest
from ..services.categories import CategoryService

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("")
async def list_categories(user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)) -> dict[str, Any]:
    return {"success": True, "categories": CategoryService(store).list_categories(user_id)}


@router.get("/tree")
async def category_tree(user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)) -> dict[str, Any]:
    return {"success": True, "categories": CategoryService(store).tree(user_id)}


@router.get("/parents")
async def parent_categories(user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)) -> dict[str, Any]:
    return {"success": True, "categories": CategoryService(store).parents(user_id)}


@router.get("/hidden")
async def hidden_categories(user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)) -> dict[str, Any]:
    return {"success": True, "categories": CategoryService(store).hidden(user_id)}


@router.get("/savings")
async def savings_categories(user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)) -> dict[str, Any]:
    return {"success": True, "categories": CategoryService(store).savings(user_id)}


@router.post("/initialize")
async def initialize_categories(
    user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)
) -> dict[str, Any]:
    return {"success": True, "categories": CategoryService(store).initialize_defaults(user_id)}


@router.post("/import-csv")
async def import_categories_csv(
    payload: CsvImportRequest,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    return {"success": True, **CategoryService(store).import_csv(user_id, payload.csvContent)}


@router.get("/{category_id}")
async def get_category(
    category_id: str, user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)
) -> dict[str, Any]:
    return {"success": True, "category": CategoryService(store).require_category(user_id, category_id)}


@router.get("/{category_id}/subcategories")
async def get_subcategories(
    category_id: str, user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)
) -> dict[str, Any]:
    service = CategoryService(store)
    service.require_category(user_id, category_id)
    return {"success": True, "categories": service.subcategories(user_id, category_id)}


@router.post("", status_code=201)
async def create_category(
    payload: CategoryCreate,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    return {"success": True, "category": CategoryService(store).create_category(user_id, payload)}


@router.put("/{category_id}")
async def update_category(
    category_id: str,
    payload: CategoryUpdate,
    user_id: str = Depends(current_user_id),
    store: DataStore = Depends(get_store),
) -> dict[str, Any]:
    return {"success": True, "category": CategoryService(store).update_category(user_id, category_id, payload)}


@router.delete("/{category_id}")
async def delete_category(
    category_id: str, user_id: str = Depends(current_user_id), store: DataStore = Depends(get_store)
) -> dict[str, Any]:
    deleted = CategoryService(store).delete_category(user_id, category_id)
    return {"success": True, "deletedCount": deleted}

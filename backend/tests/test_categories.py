import pytest

from household_budget.csv_import import parse_category_csv
from household_budget.errors import ApiError
from household_budget.services.categories import CATEGORIES, DEFAULT_CATEGORIES


def _create(client, headers, **body):
    res = client.post("/api/v1/categories", json=body, headers=headers)
    assert res.status_code == 201, res.json()
    return res.json()["category"]


def _import(client, headers, content):
    return client.post("/api/v1/categories/import-csv", json={"csvContent": content}, headers=headers)


def test_initialize_seeds_defaults_once(client, auth_headers) -> None:
    first = client.post("/api/v1/categories/initialize", headers=auth_headers).json()["categories"]
    second = client.post("/api/v1/categories/initialize", headers=auth_headers).json()["categories"]
    assert len(first) == len(DEFAULT_CATEGORIES)
    assert [c["id"] for c in first] == [c["id"] for c in second]
    by_name = {c["name"]: c for c in first}
    assert by_name["Savings"]["isSavings"] is True
    assert by_name["Transfers"]["isHidden"] is True
    assert all(c["isCustom"] is False for c in first)


def test_parent_child_views(client, auth_headers) -> None:
    food = _create(client, auth_headers, name="Food")
    _create(client, auth_headers, name="Groceries", parentId=food["id"])
    _create(client, auth_headers, name="Transfers", isHidden=True)
    _create(client, auth_headers, name="Emergency Fund", isSavings=True)

    parents = client.get("/api/v1/categories/parents", headers=auth_headers).json()["categories"]
    assert {c["name"] for c in parents} == {"Food", "Transfers", "Emergency Fund"}
    subs = client.get(f"/api/v1/categories/{food['id']}/subcategories", headers=auth_headers).json()["categories"]
    assert [c["name"] for c in subs] == ["Groceries"]
    tree = client.get("/api/v1/categories/tree", headers=auth_headers).json()["categories"]
    assert next(t for t in tree if t["name"] == "Food")["children"][0]["name"] == "Groceries"
    hidden = client.get("/api/v1/categories/hidden", headers=auth_headers).json()["categories"]
    assert [c["name"] for c in hidden] == ["Transfers"]
    savings = client.get("/api/v1/categories/savings", headers=auth_headers).json()["categories"]
    assert [c["name"] for c in savings] == ["Emergency Fund"]


def test_only_one_level_of_nesting(client, auth_headers) -> None:
    food = _create(client, auth_headers, name="Food")
    groceries = _create(client, auth_headers, name="Groceries", parentId=food["id"])
    res = client.post("/api/v1/categories", json={"name": "Produce", "parentId": groceries["id"]}, headers=auth_headers)
    assert res.status_code == 400
    assert res.json()["error"] == "Cannot create subcategory under another subcategory"


def test_missing_parent_is_404(client, auth_headers) -> None:
    res = client.post("/api/v1/categories", json={"name": "Orphan", "parentId": "nope"}, headers=auth_headers)
    assert res.status_code == 404
    assert res.json()["error"] == "Parent category not found"


def test_name_and_description_limits(client, auth_headers) -> None:
    assert client.post("/api/v1/categories", json={"name": ""}, headers=auth_headers).status_code == 400
    assert client.post("/api/v1/categories", json={"name": "x" * 101}, headers=auth_headers).status_code == 400
    res = client.post("/api/v1/categories", json={"name": "ok", "description": "d" * 501}, headers=auth_headers)
    assert res.status_code == 400


def test_update_and_cascade_delete(client, auth_headers, store, user_id) -> None:
    food = _create(client, auth_headers, name="Food")
    _create(client, auth_headers, name="Groceries", parentId=food["id"])
    _create(client, auth_headers, name="Rent")

    res = client.put(f"/api/v1/categories/{food['id']}", json={"name": "Food & Drink"}, headers=auth_headers)
    assert res.json()["category"]["name"] == "Food & Drink"

    res = client.delete(f"/api/v1/categories/{food['id']}", headers=auth_headers)
    assert res.json()["deletedCount"] == 2
    assert [c["name"] for c in store.get_list(CATEGORIES, user_id)] == ["Rent"]
    assert client.get(f"/api/v1/categories/{food['id']}", headers=auth_headers).status_code == 404


def test_parse_quoted_fields_and_booleans() -> None:
    content = (
        "Parent,Child,Type,Hidden,Savings,Description\n"
        'Food,"Coffee, Tea & Snacks",expense,no,no,"Said ""hi"" to the barista"\n'
        "Savings,Rainy Day,expense,N,YES,\n"
        ",Transfers,transfer,y,0,\n"
    )
    parsed = parse_category_csv(content)
    assert parsed.errors == []
    coffee, rainy, transfers = parsed.rows
    assert coffee.name == "Coffee, Tea & Snacks"
    assert coffee.description == 'Said "hi" to the barista'
    assert rainy.is_savings is True and rainy.is_hidden is False
    assert transfers.parent is None and transfers.is_hidden is True


def test_parse_header_errors() -> None:
    with pytest.raises(ApiError, match="CSV content is required"):
        parse_category_csv("   ")
    with pytest.raises(ApiError, match="CSV file must have a header row and at least one data row"):
        parse_category_csv("Parent,Child\n")
    with pytest.raises(ApiError, match="Missing required headers: Child"):
        parse_category_csv("Parent,Name\nFood,Coffee\n")


def test_header_is_case_insensitive_and_bom_tolerant() -> None:
    parsed = parse_category_csv("\ufeffparent,CHILD\nFood,Coffee\n")
    assert [(r.parent, r.name) for r in parsed.rows] == [("Food", "Coffee")]


def test_import_creates_parents_and_children(client, auth_headers, store, user_id) -> None:
    content = "Parent,Child,Hidden\nFood,Groceries,no\nFood,Dining Out,no\n,Transfers,yes\nTravel,Flights,\n"
    res = _import(client, auth_headers, content)
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["errors"] == []
    assert body["importedCount"] == 6
    assert body["skipped"] == 0

    categories = store.get_list(CATEGORIES, user_id)
    parents = {c["name"]: c for c in categories if not c["parentId"]}
    assert set(parents) == {"Food", "Transfers", "Travel"}
    assert parents["Transfers"]["isHidden"] is True
    children = [c["name"] for c in categories if c["parentId"] == parents["Food"]["id"]]
    assert children == ["Groceries", "Dining Out"]


def test_import_reports_row_errors_and_continues(client, auth_headers) -> None:
    _create(client, auth_headers, name="Food")
    content = "Parent,Child\nFood,Groceries\nFood,\nFood,groceries\n,Food\n"
    body = _import(client, auth_headers, content).json()
    assert body["importedCount"] == 1
    assert body["skipped"] == 2
    assert body["message"] == "Successfully imported 1 categories, skipped 2 duplicates"
    assert body["errors"] == [
        {"row": 3, "message": "Category name is required"},
        {"row": 4, "message": 'Category "groceries" already exists'},
        {"row": 5, "message": 'Category "Food" already exists'},
    ]


def test_import_with_no_valid_rows_fails(client, auth_headers) -> None:
    res = _import(client, auth_headers, "Parent,Child\nFood,\n")
    assert res.status_code == 400
    body = res.json()
    assert body["error"] == "No valid category rows found in CSV"
    assert body["errors"] == [{"row": 2, "message": "Category name is required"}]


def test_import_header_only_is_400(client, auth_headers) -> None:
    res = _import(client, auth_headers, "Parent,Child")
    assert res.status_code == 400
    assert res.json()["error"] == "CSV file must have a header row and at least one data row"


def test_import_empty_is_400(client, auth_headers) -> None:
    res = _import(client, auth_headers, "")
    assert res.status_code == 400
    assert res.json()["error"] == "CSV content is required"

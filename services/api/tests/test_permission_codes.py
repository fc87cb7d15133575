from tms_api.services.permission_codes import (
    PERMISSION_CATALOG,
    STANDALONE_PERMISSIONS,
    PermissionCode,
    actions_on,
    crud,
    normalize_permission,
    permission_catalog,
)


def test_parse_splits_at_first_underscore():
    assert PermissionCode.parse("VIEW_FORM_TEMPLATES") == PermissionCode("VIEW", "FORM_TEMPLATES")
    assert PermissionCode.parse(" view_employees ") == PermissionCode("VIEW", "EMPLOYEES")
    code = PermissionCode("EDIT", "USERS")
    assert PermissionCode.parse(code) is code


def test_parse_rejects_codes_without_resource():
    assert PermissionCode.parse("SUPERPOWER") is None
    assert PermissionCode.parse("VIEW_") is None
    assert PermissionCode.parse("_USERS") is None


def test_from_parts_and_wire_format():
    code = PermissionCode.from_parts("export", " reports ")
    assert code.code == "EXPORT_REPORTS"
    assert str(code) == "EXPORT_REPORTS"
    assert normalize_permission(code) == "EXPORT_REPORTS"
    assert normalize_permission(" delete_users") == "DELETE_USERS"


def test_catalog_helpers():
    assert crud("COURSES") == {"VIEW_COURSES", "CREATE_COURSES", "EDIT_COURSES", "DELETE_COURSES"}
    assert actions_on("REPORTS", "EXPORT") == {"EXPORT_REPORTS"}
    assert STANDALONE_PERMISSIONS <= PERMISSION_CATALOG
    assert "DOWNLOAD_DOCUMENTS" in PERMISSION_CATALOG
    catalog = permission_catalog()
    assert catalog == sorted(catalog)
    assert len(catalog) == len(PERMISSION_CATALOG)

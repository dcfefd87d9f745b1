from __future__ import annotations

import pytest

from rolegraph.core.rbac.errors import InvalidNameError
from rolegraph.core.rbac.validators import validate_role_name, validate_scope_name


@pytest.mark.parametrize("name", ["admin", "workspace.editor", "a b"])
def test_validate_role_name_accepts_trimmed_names(name: str) -> None:
    assert validate_role_name(name) == name


@pytest.mark.parametrize("name", ["", " ", " admin", "admin\n", None, 7])
def test_validate_role_name_rejects(name) -> None:
    with pytest.raises(InvalidNameError) as excinfo:
        validate_role_name(name)
    assert excinfo.value.kind == "role"


def test_validate_scope_name_allows_global() -> None:
    assert validate_scope_name(None) is None
    assert validate_scope_name("acme") == "acme"
    with pytest.raises(InvalidNameError, match="Invalid scope name"):
        validate_scope_name("acme ")

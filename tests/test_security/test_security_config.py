"""Tests for the YAML route rules."""
from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from cargo_api.security.config import load_security_config

CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "security_config.yaml"


@pytest.fixture(scope="module")
def config():
    return load_security_config(CONFIG_PATH)


def test_public_routes_do_not_require_auth(config):
    assert config.match("/health", "GET").auth_required is False
    assert config.match("/auth/login", "post").auth_required is False
    assert config.match("/public/track/DEMO/MUM2024000001", "GET").auth_required is False


def test_unlisted_routes_fall_back_to_default(config):
    rule = config.match("/consignments", "GET")
    assert rule.auth_required is True
    assert rule.required_roles == frozenset()


def test_templates_match_by_method(config):
    assert config.match("/branches/abc-123", "PATCH").required_roles == frozenset({"admin", "superadmin"})
    assert config.match("/branches/abc-123", "GET").required_roles == frozenset()


def test_customer_import_allows_managers(config):
    assert "manager" in config.match("/customers/import", "POST").required_roles


def test_unknown_role_in_config_is_rejected(tmp_path):
    path = tmp_path / "security.yaml"
    path.write_text(
        "security:\n  routes:\n    - path: /x\n      methods: [GET]\n      required_roles: [driver]\n",
        encoding="utf-8",
    )
    with pytest.raises(ValidationError):
        load_security_config(path)


def test_missing_top_level_key_is_rejected(tmp_path):
    path = tmp_path / "security.yaml"
    path.write_text("routes: []\n", encoding="utf-8")
    with pytest.raises(ValueError, match="security"):
        load_security_config(path)

import importlib
import os
import sys

import pytest


def test_import_app_main_has_all_required_dependencies(monkeypatch: pytest.MonkeyPatch) -> None:
    """Regression guard: streakly.main import must not fail on missing deps."""
    monkeypatch.setenv("JWT_SECRET", os.getenv("JWT_SECRET", "test_jwt_secret"))

    try:
        importlib.import_module("streakly.main")
    except ModuleNotFoundError as exc:
        pytest.fail(f"Importing streakly.main failed with ModuleNotFoundError: {exc}")

    assert "streakly.main" in sys.modules


@pytest.mark.parametrize(
    "module_name",
    [
        "streakly.autocheckin",
        "streakly.integrations.fitbit",
        "streakly.integrations.google_fit",
    ],
)
def test_job_modules_importable(module_name: str) -> None:
    try:
        importlib.import_module(module_name)
    except ModuleNotFoundError as exc:
        pytest.fail(f"Importing {module_name} failed with ModuleNotFoundError: {exc}")

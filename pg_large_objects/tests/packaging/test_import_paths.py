"""Packaging sanity checks for import paths."""
from importlib import import_module


def test_import_public_api():
    mod = import_module("pg_large_objects")
    for name in ("LargeObject", "LargeObjectRepo", "UploadWriter", "Mode", "Whence", "__version__"):
        assert hasattr(mod, name)


def test_import_web_app():
    mod = import_module("pg_large_objects.web.main")
    assert hasattr(mod, "app")

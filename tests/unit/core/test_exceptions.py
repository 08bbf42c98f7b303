"""Unit tests for core.exceptions module."""

from dostr.core.exceptions import (
    CapacityError,
    ConfigurationError,
    ConnectivityError,
    DostrError,
    FetchError,
    RegistryCorruptError,
    RegistryError,
    SourceExistsError,
    SourceNotFoundError,
)


class TestHierarchy:
    def test_all_derive_from_base(self):
        for exc in (
            ConfigurationError,
            RegistryError,
            CapacityError,
            FetchError,
            ConnectivityError,
        ):
            assert issubclass(exc, DostrError)

    def test_registry_family(self):
        for exc in (SourceExistsError, SourceNotFoundError, RegistryCorruptError):
            assert issubclass(exc, RegistryError)


class TestAttributes:
    def test_source_exists(self):
        error = SourceExistsError("123")
        assert error.source_id == "123"
        assert "123" in str(error)

    def test_capacity(self):
        error = CapacityError(10)
        assert error.limit == 10
        assert "10" in str(error)

    def test_fetch_status(self):
        assert FetchError("boom", status=404).status == 404
        assert FetchError("boom").status is None

# Fake implementations for testing

from .fake_storage import FakeStorage, FakeWriter

__all__ = ["FakeStorage", "FakeWriter"]

"""Social feed proxy: RSS-Bridge discovery and an authenticated feed proxy."""

__version__ = "0.1.0"

"""Product Catalog API."""

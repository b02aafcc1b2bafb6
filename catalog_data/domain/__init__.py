"""Domain layer - error taxonomy for the catalog data layer."""

"""CSV import stages for the geo reference hierarchy."""

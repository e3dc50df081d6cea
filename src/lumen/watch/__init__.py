"""Change notification, debouncing and reconciliation of watched trees."""

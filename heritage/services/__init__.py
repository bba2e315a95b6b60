"""Services consuming workflow events."""

"""Services for the Bazaar application."""

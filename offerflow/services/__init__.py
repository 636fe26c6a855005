"""Process entry points for the independently deployable services."""

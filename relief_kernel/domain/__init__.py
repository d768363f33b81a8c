"""Pure domain value objects: clock, currency registry, workflow types."""

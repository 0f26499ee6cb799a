"""Pure domain layer: clock, caller scope, value objects, workflow types."""

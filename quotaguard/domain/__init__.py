"""Domain Layer: value objects, events, exceptions and interfaces."""
